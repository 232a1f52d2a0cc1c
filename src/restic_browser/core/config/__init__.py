"""Configuration loading for restic-browser.

Configuration is read from a YAML file (default: ``restic-browser.yaml`` in
the working directory, then ``~/.config/restic-browser/config.yaml``) and
validated with pydantic. The loaded config is kept as a module level
singleton.

Usage:
    from restic_browser.core.config import get_config, load_config_file

    load_config_file()          # or load_config({...}) in tests
    timeout = get_config().restic.timeout
"""

import logging
import threading
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from restic_browser.core.config.models import Config, LoggingConfig, ResticConfig
from restic_browser.core.exceptions import ConfigError

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "restic-browser.yaml"
USER_CONFIG_PATH = Path("~/.config/restic-browser/config.yaml")

_config: Config | None = None
_config_lock = threading.Lock()


def load_config(data: dict[str, Any] | None) -> Config:
    """Validate a config dictionary and install it as the singleton.

    Args:
        data: Parsed configuration. None means all defaults.

    Returns:
        The validated Config.

    Raises:
        ConfigError: If validation fails.

    """
    global _config

    try:
        config = Config.model_validate(data or {})
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration:\n{e}") from e

    with _config_lock:
        _config = config
    return config


def find_config_file(start: Path | None = None) -> Path | None:
    """Return the first existing default config file, or None."""
    candidates = [(start or Path.cwd()) / CONFIG_FILENAME, USER_CONFIG_PATH.expanduser()]
    for candidate in candidates:
        if candidate.is_file():
            return candidate
    return None


def load_config_file(path: Path | None = None) -> Config:
    """Load configuration from a YAML file.

    Args:
        path: Config file. None searches the default locations and falls
            back to defaults when none exists.

    Returns:
        The validated Config.

    Raises:
        ConfigError: If the file cannot be read, is not valid YAML or fails
            validation.

    """
    if path is None:
        path = find_config_file()
        if path is None:
            logger.debug("No config file found, using defaults")
            return load_config(None)

    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except OSError as e:
        raise ConfigError(f"Cannot read config file {path}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if data is not None and not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a mapping")

    logger.debug("Loaded config from %s", path)
    return load_config(data)


def get_config() -> Config:
    """Return the loaded config, loading defaults on first use."""
    with _config_lock:
        if _config is not None:
            return _config
    return load_config(None)


def _reset_config() -> None:
    """Drop the singleton. Tests only."""
    global _config
    with _config_lock:
        _config = None


__all__ = [
    "CONFIG_FILENAME",
    "Config",
    "LoggingConfig",
    "ResticConfig",
    "_reset_config",
    "find_config_file",
    "get_config",
    "load_config",
    "load_config_file",
]
