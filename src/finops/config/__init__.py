"""Configuration module for the finops toolkit."""

from finops.config.logging import configure_logging, get_logger
from finops.config.settings import (
    ConfigurationError,
    FlatSettings,
    get_settings,
    require_setting,
)

__all__ = [
    "ConfigurationError",
    "FlatSettings",
    "get_settings",
    "require_setting",
    "configure_logging",
    "get_logger",
]
