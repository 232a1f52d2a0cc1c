"""Exception hierarchy for restic-browser.

All errors raised by the library derive from ResticBrowserError so callers
can catch everything with a single handler. Errors produced while talking to
the restic binary derive from ResticError and are grouped by cause:

- BinaryNotFoundError / LaunchError: the process could not be started
- ResticCommandError: restic ran and reported a failure (non-zero exit)
- CommandAbortedError / CommandTimeoutError / CommandCancelledError:
  the process was terminated before it finished
- ResticParseError: restic succeeded but its output could not be parsed
- NotFoundError: the query succeeded but returned nothing
- PreconditionError: the operation was refused before spawning a process
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from pathlib import Path

    from restic_browser.restic.process import ExitStatus

__all__ = [
    "BinaryNotFoundError",
    "CommandAbortedError",
    "CommandCancelledError",
    "CommandTimeoutError",
    "ConfigError",
    "InvalidSnapshotError",
    "LaunchError",
    "NoFilesError",
    "NoSnapshotsError",
    "NotARepositoryError",
    "NotFoundError",
    "OpenError",
    "PreconditionError",
    "RepositoryNotOpenError",
    "ResticBrowserError",
    "ResticCommandError",
    "ResticError",
    "ResticParseError",
    "TargetExistsError",
    "UnsupportedVersionError",
]


class ResticBrowserError(Exception):
    """Base exception for all restic-browser errors."""


class ConfigError(ResticBrowserError):
    """Configuration file is missing, unreadable or invalid."""


class ResticError(ResticBrowserError):
    """Base exception for errors related to the restic binary."""


class OpenError(ResticBrowserError):
    """A file or URL could not be opened with the default application."""


# =============================================================================
# Binary resolution and launch failures
# =============================================================================


class BinaryNotFoundError(ResticError):
    """The restic binary could not be found or is not executable."""


class LaunchError(ResticError):
    """The restic process could not be started or waited for.

    Attributes:
        exit_code: Synthesized exit code (always non-zero).
        stderr: Launch error message.

    """

    def __init__(self, message: str, *, exit_code: int = 1, stderr: str = "") -> None:
        super().__init__(message)
        self.exit_code = exit_code
        self.stderr = stderr


# =============================================================================
# Tool reported failures
# =============================================================================


class ResticCommandError(ResticError):
    """restic exited with a non-zero exit code.

    The message is restic's stderr as-is, so it can be shown to users
    without further formatting.

    Attributes:
        exit_code: Process exit code.
        exit_status: Semantic classification of exit_code.
        stderr: Captured stderr (empty string if none).
        command: Argument vector that was executed.

    """

    def __init__(
        self,
        message: str,
        *,
        exit_code: int,
        exit_status: ExitStatus,
        stderr: str = "",
        command: tuple[str, ...] = (),
    ) -> None:
        super().__init__(message)
        self.exit_code = exit_code
        self.exit_status = exit_status
        self.stderr = stderr
        self.command = command


class CommandAbortedError(ResticError):
    """The process was terminated because a newer command in its group started."""


class CommandTimeoutError(ResticError):
    """The process did not finish within its timeout and was terminated."""


class CommandCancelledError(ResticError):
    """The process was terminated because its cancellation token fired."""


# =============================================================================
# Output interpretation
# =============================================================================


class ResticParseError(ResticError):
    """restic succeeded but printed output that could not be parsed.

    Attributes:
        payload: The offending output (possibly truncated).

    """

    def __init__(self, message: str, *, payload: str = "") -> None:
        super().__init__(message)
        self.payload = payload


class NotFoundError(ResticError):
    """A query succeeded but found nothing."""


class NoSnapshotsError(NotFoundError):
    """The repository contains no snapshots."""

    def __init__(self, message: str = "no snapshots found") -> None:
        super().__init__(message)


class NoFilesError(NotFoundError):
    """A snapshot has no files at the requested path.

    Attributes:
        path: The path that was listed.

    """

    def __init__(self, path: str) -> None:
        super().__init__(f"no files in path: '{path}'")
        self.path = path


class InvalidSnapshotError(NotFoundError):
    """A snapshot id is not known to the caller's snapshot table."""

    def __init__(self, snapshot_id: str) -> None:
        super().__init__(f"{snapshot_id} is not a valid snapshot ID")
        self.snapshot_id = snapshot_id


# =============================================================================
# Preconditions checked before spawning a process
# =============================================================================


class PreconditionError(ResticError):
    """An operation was refused before any process was spawned."""


class UnsupportedVersionError(PreconditionError):
    """The restic binary is too old for the requested feature.

    Attributes:
        feature: Feature name (e.g. "zip-dump").
        required: Minimum version string.
        actual: Version string of the bound binary.

    """

    def __init__(self, message: str, *, feature: str, required: str, actual: str) -> None:
        super().__init__(message)
        self.feature = feature
        self.required = required
        self.actual = actual


class TargetExistsError(PreconditionError):
    """A dump target file already exists and would be overwritten."""

    def __init__(self, path: Path | str) -> None:
        super().__init__(f"target file '{path}' already exists")
        self.path = path


class NotARepositoryError(PreconditionError):
    """A directory does not look like a restic repository."""


class RepositoryNotOpenError(PreconditionError):
    """An operation needs an open repository but none was opened."""
