"""Utility helpers for gitarbor."""
