"""restic tool client.

ResticClient knows how to find the restic binary, which version it is and
how restic reports results. It wraps ProcessRunner and turns raw command
results into typed errors:

- launch failures -> BinaryNotFoundError / LaunchError
- processes terminated by a newer command in their group -> CommandAbortedError
- non-zero exit -> ResticCommandError with restic's stderr as message

Feature gates compare the probed version against the release that
introduced a feature.
"""

from __future__ import annotations

import logging
import os
import re
import shutil
import signal
from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import Any, BinaryIO, NamedTuple

from restic_browser.core.exceptions import (
    BinaryNotFoundError,
    CommandAbortedError,
    LaunchError,
    ResticCommandError,
    UnsupportedVersionError,
)
from restic_browser.core.platform_command import IS_WINDOWS, restic_program_name
from restic_browser.restic.process import (
    CancellationToken,
    CommandResult,
    ExitStatus,
    ProcessRunner,
)

logger = logging.getLogger(__name__)

# Environment variable overriding the PATH lookup for the restic binary
RESTIC_PATH_ENV = "RESTIC_BROWSER_RESTIC_PATH"

# The b2 backend of some restic releases prints this into otherwise valid stdout
B2_SPURIOUS_OUTPUT = "b2_download_file_by_name: 404: : b2.b2err"

_VERSION_FIELD_RE = re.compile(r"^\d+")


class ResticVersion(NamedTuple):
    """restic version number, ordered like a tuple."""

    major: int
    minor: int
    patch: int

    def __str__(self) -> str:
        return f"{self.major}.{self.minor}.{self.patch}"


UNKNOWN_VERSION = ResticVersion(0, 0, 0)

# Feature name -> first restic release supporting it
FEATURES: dict[str, ResticVersion] = {
    # dump --archive zip, needed to dump folders
    "zip-dump": ResticVersion(0, 12, 0),
    "insecure-tls": ResticVersion(0, 14, 0),
}


def parse_version(text: str) -> ResticVersion:
    """Parse ``restic version`` output.

    The expected format is ``"<name> <major>.<minor>.<patch> <trailing info>"``.
    Fields that cannot be parsed default to 0 instead of failing, so newer
    releases that change the trailing text stay usable.

    Args:
        text: Output of ``restic version``.

    Returns:
        The parsed version, (0, 0, 0) if nothing could be parsed.

    Examples:
        >>> parse_version("restic 0.16.2 compiled with go1.21.3 on linux/amd64")
        ResticVersion(major=0, minor=16, patch=2)
        >>> parse_version("restic 0.17.0-dev (compiled manually)")
        ResticVersion(major=0, minor=17, patch=0)

    """
    words = text.strip().split(" ")
    if len(words) < 2:
        return UNKNOWN_VERSION

    numbers = [0, 0, 0]
    for index, part in enumerate(words[1].split(".")[:3]):
        match = _VERSION_FIELD_RE.match(part)
        numbers[index] = int(match.group()) if match else 0
    return ResticVersion(*numbers)


def supports(version: ResticVersion, feature: str) -> bool:
    """Check a version against a feature's introduction version.

    Args:
        version: restic version to check.
        feature: Feature name from FEATURES.

    Returns:
        True if ``version`` is at least the feature's introduction version.

    Raises:
        ValueError: If the feature name is unknown.

    """
    try:
        required = FEATURES[feature]
    except KeyError:
        raise ValueError(f"unknown restic feature: {feature}") from None
    return version >= required


def resolve_restic_path(explicit: str | Path | None = None) -> Path:
    """Locate the restic binary.

    Resolution order: explicit path, RESTIC_BROWSER_RESTIC_PATH, PATH lookup.

    Args:
        explicit: Path given by the user or configuration.

    Returns:
        Absolute path to an executable file.

    Raises:
        BinaryNotFoundError: If no usable binary was found.

    """
    candidate = explicit or os.environ.get(RESTIC_PATH_ENV)
    if candidate:
        path = Path(candidate).expanduser().absolute()
        if not path.is_file():
            raise BinaryNotFoundError(f"restic binary not found at '{path}'")
        if not IS_WINDOWS and not os.access(path, os.X_OK):
            raise BinaryNotFoundError(f"restic binary at '{path}' is not executable")
        return path

    name = restic_program_name()
    found = shutil.which(name)
    if found is None:
        raise BinaryNotFoundError(f"unable to find '{name}' in PATH")
    return Path(found).absolute()


class ResticClient:
    """Invokes one restic binary.

    Attributes:
        path: Absolute path of the restic binary.
        runner: ProcessRunner used for all invocations.
        global_flags: Flags inserted after the subcommand of every data command.
        rclone_path: Optional rclone binary for rclone locations.
        timeout: Default timeout in seconds (None = wait forever).

    Example:
        >>> client = ResticClient.find()
        >>> client.version
        ResticVersion(major=0, minor=16, patch=2)
        >>> client.supports_feature("zip-dump")
        True

    """

    def __init__(
        self,
        path: str | Path,
        *,
        runner: ProcessRunner | None = None,
        version: ResticVersion | None = None,
        global_flags: Sequence[str] = (),
        rclone_path: str | Path | None = None,
        timeout: float | None = None,
    ) -> None:
        self.path = Path(path)
        self.runner = runner if runner is not None else ProcessRunner()
        self.global_flags = tuple(global_flags)
        self.rclone_path = Path(rclone_path) if rclone_path is not None else None
        self.timeout = timeout
        self._version = version
        self.version_string = ""

    @classmethod
    def find(cls, **kwargs: Any) -> ResticClient:
        """Create a client for the restic binary found via resolve_restic_path().

        The version is probed immediately so a broken binary is reported
        at startup rather than on first use.

        Raises:
            BinaryNotFoundError: If restic cannot be found or started.
            ResticCommandError: If ``restic version`` fails.

        """
        client = cls(resolve_restic_path(), **kwargs)
        client.probe_version()
        return client

    @classmethod
    def from_path(cls, path: str | Path, **kwargs: Any) -> ResticClient:
        """Create a client for an explicitly given restic binary.

        Raises:
            BinaryNotFoundError: If the path is not an executable file.
            ResticCommandError: If ``restic version`` fails.

        """
        client = cls(resolve_restic_path(path), **kwargs)
        client.probe_version()
        return client

    @property
    def version(self) -> ResticVersion:
        """Version of the bound binary, probed on first access."""
        if self._version is None:
            self.probe_version()
        assert self._version is not None
        return self._version

    def probe_version(self) -> ResticVersion:
        """Query the binary's version with ``restic version``.

        Returns:
            Parsed version (fields default to 0 if unparseable).

        Raises:
            BinaryNotFoundError: If the binary cannot be started.
            ResticCommandError: If ``restic version`` fails.

        """
        result = self.run(["version"])
        self.version_string = result.stdout.strip()
        self._version = parse_version(result.stdout)
        if self._version == UNKNOWN_VERSION:
            logger.warning("Cannot parse restic version from: %r", self.version_string)
        else:
            logger.debug("restic %s at %s", self._version, self.path)
        return self._version

    def supports_feature(self, name: str) -> bool:
        """Check whether the bound binary supports a feature.

        Args:
            name: Feature name, e.g. "zip-dump".

        Returns:
            True if the binary's version is at least the feature's
            introduction version.

        Raises:
            ValueError: If the feature name is unknown.

        """
        return supports(self.version, name)

    def require_feature(self, name: str, message: str | None = None) -> None:
        """Raise UnsupportedVersionError unless the feature is supported.

        Args:
            name: Feature name.
            message: Error message shown to users. Defaults to a generic
                upgrade hint.

        """
        if self.supports_feature(name):
            return
        required = FEATURES[name]
        raise UnsupportedVersionError(
            message
            or (
                f"your version of restic ({self.version}) does not support '{name}'. "
                f"Please upgrade restic to version >= {required}"
            ),
            feature=name,
            required=str(required),
            actual=str(self.version),
        )

    def rclone_args(self, prefix: str) -> list[str]:
        """Extra arguments for rclone based locations."""
        if prefix.startswith("rclone") and self.rclone_path is not None:
            return ["--option", f"rclone.program={self.rclone_path}"]
        return []

    def run(
        self,
        args: Sequence[str],
        *,
        env: Mapping[str, str] | None = None,
        timeout: float | None = None,
        cancel_token: CancellationToken | None = None,
        group: str | None = None,
        check: bool = True,
    ) -> CommandResult:
        """Run a restic command and capture its output.

        Args:
            args: restic arguments, e.g. ["snapshots", "--json"].
            env: Complete environment for the child.
            timeout: Seconds before termination (default: self.timeout).
            cancel_token: Token terminating the child when cancelled.
            group: Command group, see ProcessRunner.terminate_group().
            check: Raise ResticCommandError on non-zero exit.

        Returns:
            CommandResult with known spurious output removed from stdout.

        Raises:
            BinaryNotFoundError: If the binary cannot be found or executed.
            LaunchError: If the process could not be started.
            CommandAbortedError: If a newer command in the group replaced it.
            ResticCommandError: If restic failed and check is True.

        """
        result = self.runner.run(
            str(self.path),
            self._args(args),
            env=env,
            timeout=timeout if timeout is not None else self.timeout,
            cancel_token=cancel_token,
            group=group,
        )
        if B2_SPURIOUS_OUTPUT in result.stdout:
            result = CommandResult(
                args=result.args,
                stdout=result.stdout.replace(B2_SPURIOUS_OUTPUT, ""),
                stderr=result.stderr,
                exit_code=result.exit_code,
                error=result.error,
            )
        return self._check(result, group=group, check=check)

    def run_redirected(
        self,
        args: Sequence[str],
        sink: BinaryIO,
        *,
        env: Mapping[str, str] | None = None,
        timeout: float | None = None,
        cancel_token: CancellationToken | None = None,
        group: str | None = None,
        check: bool = True,
    ) -> CommandResult:
        """Run a restic command streaming stdout into ``sink``.

        Same arguments, return value and errors as run().
        """
        result = self.runner.run_redirected(
            str(self.path),
            self._args(args),
            sink,
            env=env,
            timeout=timeout if timeout is not None else self.timeout,
            cancel_token=cancel_token,
            group=group,
        )
        return self._check(result, group=group, check=check)

    def _args(self, args: Sequence[str]) -> list[str]:
        if not self.global_flags or not args or args[0] == "version":
            return list(args)
        return [args[0], *self.global_flags, *args[1:]]

    def _check(self, result: CommandResult, *, group: str | None, check: bool) -> CommandResult:
        if result.error is not None:
            if isinstance(result.error, FileNotFoundError | PermissionError):
                raise BinaryNotFoundError(
                    f"failed to run restic at '{self.path}': {result.error}"
                ) from result.error
            raise LaunchError(
                f"failed to launch restic: {result.error}",
                exit_code=result.exit_code,
                stderr=result.stderr,
            ) from result.error

        if result.succeeded or not check:
            return result

        command = " ".join(result.args[1:])
        if group is not None and (
            ExitStatus.get_signal_number(result.exit_code) == signal.SIGTERM
        ):
            logger.info("restic '%s' command got aborted", command)
            raise CommandAbortedError("Command got aborted")

        logger.warning(
            "restic '%s' command failed with status %d:\n%s",
            command,
            result.exit_code,
            result.stderr,
        )
        raise ResticCommandError(
            result.stderr.strip() or f"restic exited with code {result.exit_code}",
            exit_code=result.exit_code,
            exit_status=result.exit_status,
            stderr=result.stderr,
            command=result.args,
        )
