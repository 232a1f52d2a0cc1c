"""Main configuration models."""

import logging
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

logger = logging.getLogger(__name__)

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class ResticConfig(BaseModel):
    """How the restic binary is located and invoked.

    Attributes:
        path: Explicit restic binary. None = RESTIC_BROWSER_RESTIC_PATH or PATH.
        rclone_path: rclone binary passed to restic for rclone locations.
        timeout: Default timeout per restic invocation in seconds.
        isolated_environment: Pass credentials through private per-process
            environments instead of the process environment.
        global_flags: Extra flags passed to every data command.

    """

    model_config = ConfigDict(frozen=True)

    path: str | None = Field(default=None, description="Path to the restic binary")
    rclone_path: str | None = Field(default=None, description="Path to the rclone binary")
    timeout: float | None = Field(
        default=None,
        gt=0,
        description="Timeout in seconds for a single restic invocation",
    )
    isolated_environment: bool = Field(
        default=True,
        description="Never write repository credentials into the process environment",
    )
    global_flags: list[str] = Field(
        default_factory=list,
        description="Flags appended to every restic data command",
    )

    @field_validator("global_flags", mode="before")
    @classmethod
    def coerce_none_to_empty_list(cls, v: Any) -> list[str]:
        """YAML parses empty keys as None."""
        if v is None:
            return []
        return list(v)

    @field_validator("global_flags")
    @classmethod
    def reject_repository_flags(cls, v: list[str]) -> list[str]:
        """The repository is always given by the location."""
        for flag in v:
            if flag in ("-r", "--repo", "--repository-file") or flag.startswith("--repo="):
                raise ValueError(f"global_flags must not select a repository: {flag}")
        return v


class LoggingConfig(BaseModel):
    """Logging configuration."""

    model_config = ConfigDict(frozen=True)

    level: str = Field(default="WARNING", description="Root log level")

    @field_validator("level", mode="before")
    @classmethod
    def normalize_level(cls, v: Any) -> str:
        """Accept level names in any case."""
        level = str(v).upper()
        if level not in _LOG_LEVELS:
            raise ValueError(f"invalid log level '{v}', expected one of {', '.join(_LOG_LEVELS)}")
        return level


class Config(BaseModel):
    """Root configuration, loaded from restic-browser.yaml."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    restic: ResticConfig = Field(default_factory=ResticConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
