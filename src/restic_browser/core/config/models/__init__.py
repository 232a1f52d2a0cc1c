"""Pydantic models for restic-browser configuration."""

from restic_browser.core.config.models.main import Config, LoggingConfig, ResticConfig

__all__ = ["Config", "LoggingConfig", "ResticConfig"]
