"""Gitarbor - repository state engine for a terminal git client."""

__version__ = "0.3.0"
