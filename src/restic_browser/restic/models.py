"""Domain entities parsed from restic's JSON output."""

import re
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

FILE_TYPE_FILE = "file"
FILE_TYPE_DIR = "dir"

# restic prints nanosecond timestamps, datetime holds microseconds
_FRACTION_RE = re.compile(r"(\.\d{6})\d+")


def _truncate_fraction(value: Any) -> Any:
    if isinstance(value, str):
        return _FRACTION_RE.sub(r"\1", value, count=1)
    return value


class Snapshot(BaseModel):
    """A snapshot as printed by ``restic snapshots --json``."""

    model_config = ConfigDict(frozen=True)

    id: str
    short_id: str = ""
    time: datetime
    paths: list[str] = Field(default_factory=list)
    hostname: str = ""
    username: str = ""
    tags: list[str] = Field(default_factory=list)
    uid: int = 0
    gid: int = 0
    parent: str | None = None
    tree: str | None = None

    @field_validator("time", mode="before")
    @classmethod
    def truncate_nanoseconds(cls, v: Any) -> Any:
        """Drop sub-microsecond digits restic includes in timestamps."""
        return _truncate_fraction(v)

    @field_validator("paths", "tags", mode="before")
    @classmethod
    def coerce_none_to_empty_list(cls, v: Any) -> Any:
        """restic prints null for snapshots without tags."""
        if v is None:
            return []
        return v


class FileEntry(BaseModel):
    """A file or directory node as printed by ``restic ls --json``.

    ``type`` is normally "file" or "dir"; other node types restic knows
    (symlink, dev, fifo, ...) are kept as printed.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    type: str
    path: str
    uid: int = 0
    gid: int = 0
    size: int = 0
    mode: int = 0
    mtime: datetime | None = None
    atime: datetime | None = None
    ctime: datetime | None = None

    @field_validator("mtime", "atime", "ctime", mode="before")
    @classmethod
    def truncate_nanoseconds(cls, v: Any) -> Any:
        """Drop sub-microsecond digits restic includes in timestamps."""
        if v == "":
            return None
        return _truncate_fraction(v)

    @property
    def is_dir(self) -> bool:
        """True for directory entries."""
        return self.type == FILE_TYPE_DIR

    @property
    def is_file(self) -> bool:
        """True for regular file entries."""
        return self.type == FILE_TYPE_FILE
