"""Configuration module for rentledger."""

from rentledger.config.logging import configure_logging, get_logger
from rentledger.config.settings import FlatSettings, get_settings

__all__ = ["FlatSettings", "get_settings", "configure_logging", "get_logger"]
