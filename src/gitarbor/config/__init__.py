"""Configuration for gitarbor."""

from gitarbor.config.config_loader import ConfigError, ConfigLoader, ConfigParsingError
from gitarbor.config.config_schema import AppConfigSchema

__all__ = ["AppConfigSchema", "ConfigError", "ConfigLoader", "ConfigParsingError"]
