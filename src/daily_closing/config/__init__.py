"""Configuration module for the daily closing ledger."""

from daily_closing.config.logging import configure_logging
from daily_closing.config.settings import Settings, get_settings

__all__ = ["Settings", "get_settings", "configure_logging"]
