"""Repository client: typed queries and file extraction for one location.

Every restic invocation is bracketed by the CredentialContext and gets the
repository target appended as ``--repo <target>``.
"""

from __future__ import annotations

import contextlib
import logging
import os
from pathlib import Path
from typing import BinaryIO

from pydantic import TypeAdapter, ValidationError

from restic_browser.core.exceptions import (
    NoFilesError,
    NoSnapshotsError,
    ResticParseError,
    TargetExistsError,
)
from restic_browser.restic.client import ResticClient
from restic_browser.restic.credentials import CredentialContext
from restic_browser.restic.location import Location
from restic_browser.restic.models import FileEntry, Snapshot
from restic_browser.restic.process import CancellationToken, CommandResult

logger = logging.getLogger(__name__)

# Entries a directory needs to be recognized as a restic repository
REPOSITORY_CONFIG_FILE = "config"
REPOSITORY_DIRECTORIES = ("data", "index", "keys", "locks", "snapshots")

# Archive extension used when dumping directories
DIRECTORY_ARCHIVE_EXTENSION = ".zip"

# Command group of file listings: a new listing supersedes the running one
FILES_COMMAND_GROUP = "files"

# Longest payload excerpt kept in parse errors
_PAYLOAD_EXCERPT = 200

_SNAPSHOT_LIST = TypeAdapter(list[Snapshot])


def is_directory_a_repository(path: str | Path) -> bool:
    """Check whether a directory looks like a local restic repository.

    Args:
        path: Directory to check.

    Returns:
        True if it has a ``config`` file and the data, index, keys, locks
        and snapshots directories.

    """
    base = Path(path)
    if not (base / REPOSITORY_CONFIG_FILE).is_file():
        return False
    return all((base / name).is_dir() for name in REPOSITORY_DIRECTORIES)


def normalize_newlines(text: str) -> str:
    """Collapse CRLF and lone CR line endings to LF."""
    return text.replace("\r\n", "\n").replace("\r", "\n")


def parse_snapshots(stdout: str) -> list[Snapshot]:
    """Parse ``restic snapshots --json`` output.

    Args:
        stdout: restic stdout.

    Returns:
        Non-empty list of snapshots.

    Raises:
        NoSnapshotsError: If restic printed ``null`` or an empty array.
        ResticParseError: If the output is not a valid snapshot array.

    """
    payload = stdout.strip()
    if payload == "null":
        raise NoSnapshotsError()
    try:
        snapshots = _SNAPSHOT_LIST.validate_json(payload)
    except ValidationError as e:
        raise ResticParseError(
            f"failed to parse snapshot info: {e}", payload=payload[:_PAYLOAD_EXCERPT]
        ) from e
    if not snapshots:
        raise NoSnapshotsError()
    return snapshots


def parse_files(stdout: str, path: str) -> list[FileEntry]:
    """Parse ``restic ls --json`` JSON-Lines output.

    The first record line describes the snapshot and is skipped, as is every
    line that does not start with ``{`` (blank lines, progress noise).

    Args:
        stdout: restic stdout.
        path: Listed path, used in error messages.

    Returns:
        Non-empty list of file entries.

    Raises:
        NoFilesError: If no entries remain after skipping non-records.
        ResticParseError: If a record line is not a valid file entry.

    """
    files: list[FileEntry] = []
    header_seen = False
    for line in normalize_newlines(stdout).split("\n"):
        if not line.startswith("{"):
            continue
        if not header_seen:
            header_seen = True
            continue
        try:
            files.append(FileEntry.model_validate_json(line))
        except ValidationError as e:
            raise ResticParseError(
                f"failed to parse file info: {e}", payload=line[:_PAYLOAD_EXCERPT]
            ) from e
    if not files:
        raise NoFilesError(path)
    return files


def _snapshot_id(snapshot: Snapshot | str) -> str:
    return snapshot if isinstance(snapshot, str) else snapshot.id


class Repository:
    """restic repository bound to one location and one restic binary.

    Attributes:
        location: Repository location (immutable).
        client: restic client used for all invocations.
        credentials: Credential context providing subprocess environments.

    Example:
        >>> repo = Repository(Location(path="/srv/backup", password="pw"), client)
        >>> snapshot = repo.list_snapshots()[-1]
        >>> files = repo.list_files(snapshot, "/home")

    """

    def __init__(
        self,
        location: Location,
        client: ResticClient,
        *,
        credentials: CredentialContext | None = None,
    ) -> None:
        self.location = location
        self.client = client
        self.credentials = credentials if credentials is not None else CredentialContext()

    def list_snapshots(
        self,
        *,
        timeout: float | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> list[Snapshot]:
        """List all snapshots of the repository.

        Raises:
            NoSnapshotsError: If the repository has no snapshots.
            ResticParseError: If restic's output is malformed.
            ResticCommandError: If restic failed (wrong password, no repo...).

        """
        result = self._run(
            ["snapshots", "--json"], timeout=timeout, cancel_token=cancel_token
        )
        snapshots = parse_snapshots(result.stdout)
        logger.debug(
            "Found %d snapshots in %s", len(snapshots), self.location.path_or_bucket_name()
        )
        return snapshots

    def list_files(
        self,
        snapshot: Snapshot | str,
        path: str = "/",
        *,
        timeout: float | None = None,
        cancel_token: CancellationToken | None = None,
        group: str | None = None,
    ) -> list[FileEntry]:
        """List the files of a snapshot at a path.

        Listings run concurrently unless a command group is given. Within a
        group (e.g. FILES_COMMAND_GROUP) a new listing aborts the one still
        running.

        Args:
            snapshot: Snapshot or snapshot id.
            path: Absolute path inside the snapshot.
            group: Optional command group of the listing.

        Raises:
            NoFilesError: If there are no files at the path.
            ResticParseError: If restic's output is malformed.
            ResticCommandError: If restic failed.
            CommandAbortedError: If a newer listing in the group replaced this one.

        """
        result = self._run(
            ["ls", _snapshot_id(snapshot), "--json", path],
            timeout=timeout,
            cancel_token=cancel_token,
            group=group,
        )
        return parse_files(result.stdout, path)

    def restore_file(
        self,
        snapshot: Snapshot | str,
        file: FileEntry,
        target_dir: str | Path,
        *,
        timeout: float | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> Path:
        """Restore a file or directory into a target directory.

        restic recreates the file's original path below ``target_dir``.

        Returns:
            Path of the restored file or directory.

        Raises:
            ResticCommandError: If restic failed, with restic's stderr.

        """
        target = Path(target_dir)
        self._run(
            ["restore", _snapshot_id(snapshot), "--target", str(target), "--include", file.path],
            timeout=timeout,
            cancel_token=cancel_token,
        )
        restored = target / file.path.lstrip("/")
        logger.info("Restored %s to %s", file.path, restored)
        return restored

    def dump_file(
        self,
        snapshot: Snapshot | str,
        file: FileEntry,
        target_dir: str | Path,
        *,
        timeout: float | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> Path:
        """Dump a file, or a directory as zip archive, into a target directory.

        restic's stdout is streamed straight into the target file. Existing
        files are never overwritten. A partially written target is removed
        when restic fails.

        Returns:
            Path of the written file.

        Raises:
            UnsupportedVersionError: If a directory is dumped with restic
                older than 0.12.0 (checked before spawning restic).
            TargetExistsError: If the target file already exists.
            ResticCommandError: If restic failed.

        """
        if file.is_dir:
            self.client.require_feature(
                "zip-dump",
                "your version of restic does not support folder dumps. "
                "Please upgrade restic to version >= 0.12.0 to restore folders",
            )

        target = Path(target_dir) / file.name
        if file.is_dir:
            target = target.with_name(target.name + DIRECTORY_ARCHIVE_EXTENSION)
        if target.exists():
            raise TargetExistsError(target)

        args = ["dump"]
        if self.client.supports_feature("zip-dump"):
            args += ["--archive", "zip"]
        args += [_snapshot_id(snapshot), file.path]

        try:
            sink = open(target, "xb")
        except FileExistsError:
            raise TargetExistsError(target) from None
        try:
            with sink:
                self._run_redirected(args, sink, timeout=timeout, cancel_token=cancel_token)
        except BaseException:
            with contextlib.suppress(OSError):
                os.unlink(target)
            raise

        logger.info("Dumped %s to %s", file.path, target)
        return target

    def _repo_args(self) -> list[str]:
        args = self.client.rclone_args(self.location.prefix)
        if self.location.insecure_tls:
            self.client.require_feature("insecure-tls")
            args.append("--insecure-tls")
        args += ["--repo", self.location.path_or_bucket_name()]
        return args

    def _run(
        self,
        args: list[str],
        *,
        timeout: float | None,
        cancel_token: CancellationToken | None,
        group: str | None = None,
    ) -> CommandResult:
        command = args + self._repo_args()
        with self.credentials.scoped(self.location) as env:
            return self.client.run(
                command, env=env, timeout=timeout, cancel_token=cancel_token, group=group
            )

    def _run_redirected(
        self,
        args: list[str],
        sink: BinaryIO,
        *,
        timeout: float | None,
        cancel_token: CancellationToken | None,
    ) -> CommandResult:
        command = args + self._repo_args()
        with self.credentials.scoped(self.location) as env:
            return self.client.run_redirected(
                command,
                sink,
                env=env,
                timeout=timeout,
                cancel_token=cancel_token,
            )

