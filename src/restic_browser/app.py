"""Application controller for restic-browser hosts.

ResticBrowserApp implements the browsing workflow (find restic, open a
repository, list snapshots and files, restore and dump) on top of the
library. Dialogs and temporary directories are provided by the host through
the HostServices protocol; the controller defines none of them, so the same
workflow can be driven by a GUI toolkit, a TUI or tests.

A dialog the user dismisses is reported by the host as None; the controller
then returns None without error.
"""

from __future__ import annotations

import logging
import shutil
from collections.abc import Callable
from pathlib import Path
from typing import Literal, Protocol
from urllib.parse import urlparse

import typer

from restic_browser.core.exceptions import (
    InvalidSnapshotError,
    NotARepositoryError,
    OpenError,
    RepositoryNotOpenError,
    ResticError,
)
from restic_browser.core.platform_command import restic_program_name
from restic_browser.core.text_encoding import read_secret_file
from restic_browser.restic.client import ResticClient
from restic_browser.restic.credentials import CredentialContext
from restic_browser.restic.location import Location
from restic_browser.restic.models import FileEntry, Snapshot
from restic_browser.restic.repository import (
    FILES_COMMAND_GROUP,
    Repository,
    is_directory_a_repository,
)

logger = logging.getLogger(__name__)

MessageLevel = Literal["info", "warning", "error"]

TEMP_DIR_PREFIX = "restic-browser-"

# URL schemes passed to the default application unchanged
URL_SCHEMES = ("http", "https", "file")


class HostServices(Protocol):
    """Services the host application provides to the controller."""

    def pick_directory(self, title: str) -> str | None:
        """Ask the user for a directory. None if cancelled."""
        ...

    def pick_file(self, title: str, default_filename: str = "") -> str | None:
        """Ask the user for a file. None if cancelled."""
        ...

    def show_message(self, title: str, message: str, level: MessageLevel) -> None:
        """Show a message to the user and wait for confirmation."""
        ...

    def make_temp_dir(self, prefix: str) -> str:
        """Create a new temporary directory and return its path."""
        ...


class ResticBrowserApp:
    """Browsing workflow controller.

    Attributes:
        host: Host services used for dialogs and temp directories.
        client: restic client, None until a binary was found.
        repo: Currently open repository, None until open_repo() succeeded.
        snapshots: Snapshots of the open repository by id.

    """

    def __init__(
        self,
        host: HostServices,
        *,
        client_factory: Callable[[], ResticClient] = ResticClient.find,
        credentials: CredentialContext | None = None,
    ) -> None:
        """Initialize the controller.

        Args:
            host: Host services.
            client_factory: Locates restic at startup (default: PATH lookup).
            credentials: Credential context shared by all repositories.

        """
        self.host = host
        self.client: ResticClient | None = None
        self.repo: Repository | None = None
        self.snapshots: dict[str, Snapshot] = {}
        self._client_factory = client_factory
        self._credentials = credentials if credentials is not None else CredentialContext()
        self._temp_dirs: list[Path] = []

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def startup(self) -> None:
        """Locate restic, asking the user for the binary if it is not in PATH.

        Never raises: problems are shown to the user and leave ``client``
        unset.
        """
        try:
            self.client = self._client_factory()
            return
        except ResticError as e:
            logger.warning("restic not found: %s", e)
            self.host.show_message(
                "Restic Binary Missing",
                f"Failed to find a restic program in your $PATH: {e}\n\n"
                "Please select your installed restic binary manually in the following dialog.",
                "warning",
            )

        path = self.host.pick_file(
            "Please select your restic program", default_filename=restic_program_name()
        )
        if not path:
            return
        try:
            self.client = ResticClient.from_path(path)
        except ResticError as e:
            self.host.show_message(
                "Restic Binary Error", f"Failed to set restic binary: {e}", "error"
            )

    def shutdown(self) -> None:
        """Remove the temporary directories created for dumps."""
        while self._temp_dirs:
            temp_dir = self._temp_dirs.pop()
            if not temp_dir.exists():
                continue
            try:
                shutil.rmtree(temp_dir)
            except OSError as e:
                logger.warning("Failed to remove temp dir %s: %s", temp_dir, e)

    # =========================================================================
    # Repository selection
    # =========================================================================

    def default_repo_location(self) -> Location:
        """Location preset from restic's environment variables."""
        return Location.from_env()

    def read_password_from_file(self) -> str | None:
        """Ask for a password file and return its single-line content.

        Returns:
            The password, or None if the dialog was cancelled.

        Raises:
            OSError: If the selected file cannot be read.

        """
        filename = self.host.pick_file("Please select a password file")
        if not filename:
            return None
        return read_secret_file(filename)

    def select_local_repo(self) -> str | None:
        """Ask for a local repository directory.

        Returns:
            The directory, or None if the dialog was cancelled.

        Raises:
            NotARepositoryError: If the directory is not a restic repository.

        """
        directory = self.host.pick_directory("Please select a restic repository directory")
        if not directory:
            return None
        if not is_directory_a_repository(directory):
            raise NotARepositoryError("directory doesn't look like a restic backup location")
        return directory

    def open_repo(self, location: Location) -> list[Snapshot]:
        """Open a repository and remember its snapshots.

        The previous repository stays open if this one fails.

        Returns:
            Snapshots of the repository.

        Raises:
            RepositoryNotOpenError: If no restic binary is available.
            ResticError: If listing snapshots fails.

        """
        if self.client is None:
            raise RepositoryNotOpenError("failed to find restic program")
        repo = Repository(location, self.client, credentials=self._credentials)
        snapshots = repo.list_snapshots()
        self.repo = repo
        self.snapshots = {snapshot.id: snapshot for snapshot in snapshots}
        logger.info("Opened %s with %d snapshots", location.path_or_bucket_name(), len(snapshots))
        return snapshots

    # =========================================================================
    # Browsing and extraction
    # =========================================================================

    def get_files_for_path(self, snapshot_id: str, path: str) -> list[FileEntry]:
        """List the files of a known snapshot at a path.

        A newer listing aborts the one still running with CommandAbortedError.
        """
        repo, snapshot = self._resolve(snapshot_id)
        return repo.list_files(snapshot, path, group=FILES_COMMAND_GROUP)

    def restore_file(self, snapshot_id: str, file: FileEntry) -> Path | None:
        """Ask for a target directory and restore a file into it.

        Returns:
            Restored path, or None if the dialog was cancelled.

        """
        repo, snapshot = self._resolve(snapshot_id)
        target = self.host.pick_directory("Please select a target directory")
        if not target:
            return None
        return repo.restore_file(snapshot, file, target)

    def dump_file(self, snapshot_id: str, file: FileEntry) -> Path | None:
        """Ask for a target directory and dump a file into it.

        Returns:
            Written file, or None if the dialog was cancelled.

        """
        repo, snapshot = self._resolve(snapshot_id)
        target = self.host.pick_directory("Please select a target directory")
        if not target:
            return None
        return repo.dump_file(snapshot, file, target)

    def dump_file_to_temp(self, snapshot_id: str, file: FileEntry) -> Path:
        """Dump a file into a fresh temporary directory, e.g. to open it.

        The directory is removed again by shutdown().

        Returns:
            Written file.

        """
        repo, snapshot = self._resolve(snapshot_id)
        target = Path(self.host.make_temp_dir(TEMP_DIR_PREFIX))
        self._temp_dirs.append(target)
        return repo.dump_file(snapshot, file, target)

    def open_file_or_url(self, path_or_url: str | Path) -> str:
        """Open a file or URL with the system's default application.

        http, https and file URLs are passed through unchanged, anything
        else is treated as a path and made absolute.

        Returns:
            The path or URL that was opened.

        Raises:
            OpenError: If the default application could not be started.

        """
        target = str(path_or_url)
        if urlparse(target).scheme not in URL_SCHEMES:
            target = str(Path(target).absolute())

        logger.debug("Opening %s", target)
        try:
            exit_code = typer.launch(target)
        except OSError as e:
            raise OpenError(f"failed to open {target}: {e}") from e
        if exit_code != 0:
            raise OpenError(f"failed to open {target}: launcher exited with {exit_code}")
        return target

    def _resolve(self, snapshot_id: str) -> tuple[Repository, Snapshot]:
        if self.repo is None:
            raise RepositoryNotOpenError("no repository opened")
        snapshot = self.snapshots.get(snapshot_id)
        if snapshot is None:
            raise InvalidSnapshotError(snapshot_id)
        return self.repo, snapshot
