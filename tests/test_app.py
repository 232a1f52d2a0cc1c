"""Tests for the host-facing application controller."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import patch

import pytest

from restic_browser.app import ResticBrowserApp
from restic_browser.core.exceptions import (
    BinaryNotFoundError,
    InvalidSnapshotError,
    NoSnapshotsError,
    NotARepositoryError,
    OpenError,
    RepositoryNotOpenError,
)
from restic_browser.restic.credentials import CredentialContext
from restic_browser.restic.location import Location
from restic_browser.restic.models import FileEntry
from restic_browser.restic.repository import FILES_COMMAND_GROUP

SNAPSHOT_ID = "1f2e3d4c5b6a79881f2e3d4c5b6a79881f2e3d4c5b6a79881f2e3d4c5b6a7988"
NOTES = FileEntry(name="notes.txt", type="file", path="/home/user/notes.txt", size=42)


class FakeHost:
    """HostServices implementation answering dialogs from queues."""

    def __init__(self, tmp_path: Path) -> None:
        self.tmp_path = tmp_path
        self.directories: list[str | None] = []
        self.files: list[str | None] = []
        self.messages: list[tuple[str, str, str]] = []
        self.temp_dirs: list[Path] = []

    def pick_directory(self, title: str) -> str | None:
        return self.directories.pop(0) if self.directories else None

    def pick_file(self, title: str, default_filename: str = "") -> str | None:
        return self.files.pop(0) if self.files else None

    def show_message(self, title: str, message: str, level: str) -> None:
        self.messages.append((title, message, level))

    def make_temp_dir(self, prefix: str) -> str:
        path = self.tmp_path / f"temp{len(self.temp_dirs)}"
        path.mkdir()
        self.temp_dirs.append(path)
        return str(path)


@pytest.fixture
def host(tmp_path: Path) -> FakeHost:
    """A FakeHost with empty dialog queues."""
    return FakeHost(tmp_path)


@pytest.fixture
def browser(host: FakeHost, make_client) -> ResticBrowserApp:
    """An app with a working restic client."""
    app = ResticBrowserApp(host, client_factory=make_client, credentials=CredentialContext({}))
    app.startup()
    return app


@pytest.fixture
def opened(browser: ResticBrowserApp, fake_runner, snapshots_json: str) -> ResticBrowserApp:
    """An app with /srv/backup opened."""
    fake_runner.queue(stdout=snapshots_json)
    browser.open_repo(Location(path="/srv/backup", password="pw"))
    return browser


class TestStartup:
    """Tests for startup() and shutdown()."""

    def test_startup_finds_restic(self, browser: ResticBrowserApp, host: FakeHost) -> None:
        """No dialogs are shown when restic is found."""
        assert browser.client is not None
        assert host.messages == []

    def test_missing_restic_asks_for_binary(self, host: FakeHost) -> None:
        """A missing binary is reported and the user may pick one."""

        def not_found():
            raise BinaryNotFoundError("unable to find 'restic' in PATH")

        app = ResticBrowserApp(host, client_factory=not_found)
        app.startup()
        assert app.client is None
        assert host.messages[0][0] == "Restic Binary Missing"
        assert host.messages[0][2] == "warning"

    def test_picked_binary_is_invalid(self, host: FakeHost, tmp_path: Path) -> None:
        """A picked file that is no restic binary is reported."""

        def not_found():
            raise BinaryNotFoundError("unable to find 'restic' in PATH")

        host.files.append(str(tmp_path / "missing-restic"))
        app = ResticBrowserApp(host, client_factory=not_found)
        app.startup()
        assert app.client is None
        assert [m[0] for m in host.messages] == ["Restic Binary Missing", "Restic Binary Error"]

    def test_shutdown_removes_temp_dir(
        self, opened: ResticBrowserApp, host: FakeHost, fake_runner
    ) -> None:
        """Temporary dumps are removed on shutdown."""
        fake_runner.redirect_output = b"data"
        dumped = opened.dump_file_to_temp(SNAPSHOT_ID, NOTES)
        assert dumped.read_bytes() == b"data"
        opened.shutdown()
        assert not host.temp_dirs[0].exists()
        opened.shutdown()


class TestRepositorySelection:
    """Tests for location helpers."""

    def test_default_location_from_env(
        self, browser: ResticBrowserApp, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """The default location is read from restic's variables."""
        monkeypatch.setenv("RESTIC_REPOSITORY", "/srv/backup")
        monkeypatch.setenv("RESTIC_PASSWORD", "pw")
        location = browser.default_repo_location()
        assert location.path == "/srv/backup"
        assert location.password == "pw"

    def test_read_password_from_file(
        self, browser: ResticBrowserApp, host: FakeHost, tmp_path: Path
    ) -> None:
        """The picked file's first line is the password."""
        password_file = tmp_path / "pw"
        password_file.write_bytes(b"\xef\xbb\xbfsecret\n")
        host.files.append(str(password_file))
        assert browser.read_password_from_file() == "secret"

    def test_read_password_cancelled(self, browser: ResticBrowserApp) -> None:
        """Cancelling the dialog returns None."""
        assert browser.read_password_from_file() is None

    def test_select_local_repo(
        self, browser: ResticBrowserApp, host: FakeHost, tmp_path: Path
    ) -> None:
        """A directory with repository layout is accepted."""
        repo = tmp_path / "repo"
        repo.mkdir()
        (repo / "config").write_bytes(b"")
        for name in ("data", "index", "keys", "locks", "snapshots"):
            (repo / name).mkdir()
        host.directories.append(str(repo))
        assert browser.select_local_repo() == str(repo)

    def test_select_non_repository(
        self, browser: ResticBrowserApp, host: FakeHost, tmp_path: Path
    ) -> None:
        """Other directories are rejected."""
        host.directories.append(str(tmp_path))
        with pytest.raises(NotARepositoryError):
            browser.select_local_repo()

    def test_select_cancelled(self, browser: ResticBrowserApp) -> None:
        """Cancelling the dialog returns None."""
        assert browser.select_local_repo() is None


class TestOpenRepo:
    """Tests for open_repo()."""

    def test_snapshots_are_cached(self, opened: ResticBrowserApp) -> None:
        """Opened snapshots are known by id."""
        assert SNAPSHOT_ID in opened.snapshots
        assert len(opened.snapshots) == 2

    def test_failed_open_keeps_previous_repo(
        self, opened: ResticBrowserApp, fake_runner
    ) -> None:
        """A failing open does not replace the open repository."""
        previous = opened.repo
        fake_runner.queue(stdout="null")
        with pytest.raises(NoSnapshotsError):
            opened.open_repo(Location(path="/srv/empty"))
        assert opened.repo is previous
        assert SNAPSHOT_ID in opened.snapshots

    def test_open_without_restic(self, host: FakeHost) -> None:
        """Opening needs a restic binary."""
        with pytest.raises(RepositoryNotOpenError):
            ResticBrowserApp(host).open_repo(Location(path="/srv/backup"))


class TestFiles:
    """Tests for browsing and extraction."""

    def test_get_files_for_path(
        self, opened: ResticBrowserApp, fake_runner, ls_output: str
    ) -> None:
        """Files of a known snapshot are listed."""
        fake_runner.queue(stdout=ls_output)
        files = opened.get_files_for_path(SNAPSHOT_ID, "/home/user")
        assert [f.name for f in files] == ["user", "notes.txt", "docs"]
        assert fake_runner.calls[-1]["args"][:2] == ["ls", SNAPSHOT_ID]
        assert fake_runner.calls[-1]["group"] == FILES_COMMAND_GROUP

    def test_unknown_snapshot(self, opened: ResticBrowserApp) -> None:
        """Unknown snapshot ids are rejected before running restic."""
        with pytest.raises(InvalidSnapshotError, match="deadbeef is not a valid snapshot ID"):
            opened.get_files_for_path("deadbeef", "/")

    def test_no_repository_open(self, browser: ResticBrowserApp) -> None:
        """Browsing needs an open repository."""
        with pytest.raises(RepositoryNotOpenError):
            browser.get_files_for_path(SNAPSHOT_ID, "/")

    def test_restore_cancelled(self, opened: ResticBrowserApp, fake_runner) -> None:
        """Cancelling the target dialog runs nothing."""
        calls = len(fake_runner.calls)
        assert opened.restore_file(SNAPSHOT_ID, NOTES) is None
        assert len(fake_runner.calls) == calls

    def test_restore(self, opened: ResticBrowserApp, host: FakeHost, tmp_path: Path) -> None:
        """The file is restored below the picked directory."""
        host.directories.append(str(tmp_path))
        restored = opened.restore_file(SNAPSHOT_ID, NOTES)
        assert restored == tmp_path / "home" / "user" / "notes.txt"

    def test_dump(
        self, opened: ResticBrowserApp, host: FakeHost, fake_runner, tmp_path: Path
    ) -> None:
        """The file is dumped into the picked directory."""
        fake_runner.redirect_output = b"hello"
        host.directories.append(str(tmp_path))
        dumped = opened.dump_file(SNAPSHOT_ID, NOTES)
        assert dumped == tmp_path / "notes.txt"
        assert dumped.read_bytes() == b"hello"

    def test_dump_cancelled(self, opened: ResticBrowserApp) -> None:
        """Cancelling the target dialog returns None."""
        assert opened.dump_file(SNAPSHOT_ID, NOTES) is None


class TestOpenFileOrUrl:
    """Tests for open_file_or_url()."""

    @pytest.mark.parametrize(
        "url",
        [
            "https://restic.net/",
            "http://localhost:8000/docs",
            "file:///tmp/notes.txt",
        ],
    )
    def test_urls_are_passed_through(self, browser: ResticBrowserApp, url: str) -> None:
        """http, https and file URLs are opened unchanged."""
        with patch("typer.launch", return_value=0) as launch:
            assert browser.open_file_or_url(url) == url
        launch.assert_called_once_with(url)

    def test_relative_path_is_made_absolute(
        self, browser: ResticBrowserApp, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Plain paths are resolved against the working directory."""
        monkeypatch.chdir(tmp_path)
        with patch("typer.launch", return_value=0) as launch:
            opened = browser.open_file_or_url("notes.txt")
        expected = str(Path.cwd() / "notes.txt")
        assert opened == expected
        launch.assert_called_once_with(expected)

    def test_dumped_file_is_opened(
        self, opened: ResticBrowserApp, fake_runner, host: FakeHost
    ) -> None:
        """A temporary dump can be handed to the default application."""
        fake_runner.redirect_output = b"data"
        dumped = opened.dump_file_to_temp(SNAPSHOT_ID, NOTES)
        with patch("typer.launch", return_value=0) as launch:
            opened.open_file_or_url(dumped)
        launch.assert_called_once_with(str(host.temp_dirs[0] / "notes.txt"))

    def test_launcher_failure(self, browser: ResticBrowserApp) -> None:
        """A non-zero launcher exit code raises OpenError."""
        with patch("typer.launch", return_value=3), pytest.raises(OpenError, match="exited with 3"):
            browser.open_file_or_url("https://restic.net/")

    def test_launcher_missing(self, browser: ResticBrowserApp) -> None:
        """A launcher that cannot start raises OpenError."""
        with (
            patch("typer.launch", side_effect=FileNotFoundError("xdg-open")),
            pytest.raises(OpenError, match="xdg-open"),
        ):
            browser.open_file_or_url("https://restic.net/")
