"""restic-browser command line interface.

Browse restic repositories from the terminal:
- `restic-browser version`: show restic-browser and restic versions
- `restic-browser snapshots`: list the snapshots of a repository
- `restic-browser ls SNAPSHOT [PATH]`: list a directory of a snapshot
- `restic-browser tree SNAPSHOT [PATH]`: show a directory tree
- `restic-browser restore SNAPSHOT PATH`: restore a file or directory
- `restic-browser dump SNAPSHOT PATH`: dump a file (directories as .zip)

The repository and password default to restic's own environment variables
(RESTIC_REPOSITORY, RESTIC_PASSWORD, ...).

Example:
    $ restic-browser -r /srv/backup --password-file ~/.restic-pw snapshots
    $ restic-browser -r s3:s3.amazonaws.com/bucket ls latest /home
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

import typer
from rich.table import Table

from restic_browser import __version__
from restic_browser.cli_utils import (
    EXIT_CONFIG_ERROR,
    _fail,
    _info,
    _setup_logging,
    _success,
    console,
)
from restic_browser.core.config import get_config, load_config_file
from restic_browser.core.exceptions import NoFilesError, ResticBrowserError
from restic_browser.core.text_encoding import read_secret_file
from restic_browser.file_tree import build_tree, render_tree, split_path
from restic_browser.restic.client import ResticClient
from restic_browser.restic.credentials import CredentialContext
from restic_browser.restic.location import Location
from restic_browser.restic.models import FileEntry
from restic_browser.restic.repository import Repository

logger = logging.getLogger(__name__)

app = typer.Typer(
    name="restic-browser",
    help="Browse and restore files from restic backup repositories",
    no_args_is_help=True,
)


@dataclass
class CliState:
    """Global options shared by all commands."""

    repo: str | None = None
    password_file: Path | None = None
    insecure_tls: bool = False
    restic: Path | None = None
    timeout: float | None = None


@app.callback()
def main(
    ctx: typer.Context,
    repo: str = typer.Option(
        None,
        "--repo",
        "-r",
        help="Repository to open (default: $RESTIC_REPOSITORY)",
    ),
    password_file: Path = typer.Option(
        None,
        "--password-file",
        "-p",
        help="File containing the repository password (default: $RESTIC_PASSWORD...)",
    ),
    insecure_tls: bool = typer.Option(
        False,
        "--insecure-tls",
        help="Skip TLS certificate verification (restic >= 0.14.0)",
    ),
    restic: Path = typer.Option(
        None,
        "--restic",
        help="restic binary (default: config, $RESTIC_BROWSER_RESTIC_PATH or PATH)",
    ),
    config: Path = typer.Option(
        None,
        "--config",
        "-c",
        help="Configuration file (default: ./restic-browser.yaml)",
    ),
    timeout: float = typer.Option(
        None,
        "--timeout",
        "-t",
        min=0.1,
        help="Timeout in seconds for each restic invocation",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Only log errors"),
) -> None:
    """Browse and restore files from restic backup repositories."""
    try:
        load_config_file(config)
    except ResticBrowserError as e:
        raise _fail(e) from None
    _setup_logging(verbose=verbose, quiet=quiet)
    ctx.obj = CliState(
        repo=repo,
        password_file=password_file,
        insecure_tls=insecure_tls,
        restic=restic,
        timeout=timeout,
    )


# =============================================================================
# Helpers
# =============================================================================


def _state(ctx: typer.Context) -> CliState:
    return ctx.obj if isinstance(ctx.obj, CliState) else CliState()


def _make_client(state: CliState) -> ResticClient:
    """Create the restic client from options and configuration."""
    restic_config = get_config().restic
    kwargs = {
        "global_flags": restic_config.global_flags,
        "rclone_path": restic_config.rclone_path,
        "timeout": state.timeout if state.timeout is not None else restic_config.timeout,
    }
    explicit = state.restic or restic_config.path
    if explicit:
        return ResticClient.from_path(explicit, **kwargs)
    return ResticClient.find(**kwargs)


def _make_location(state: CliState) -> Location:
    """Build the repository location from options, falling back to restic's env vars."""
    env_location = Location.from_env(password_command_timeout=state.timeout)
    password = env_location.password
    if state.password_file is not None:
        try:
            password = read_secret_file(state.password_file)
        except OSError as e:
            console.print(f"[red]Error:[/red] Cannot read password file: {e}")
            raise typer.Exit(code=EXIT_CONFIG_ERROR) from None

    if not state.repo:
        insecure_tls = state.insecure_tls or env_location.insecure_tls
        return env_location.model_copy(
            update={"password": password, "insecure_tls": insecure_tls}
        )
    return Location.from_repository_string(
        state.repo, password=password, insecure_tls=state.insecure_tls
    )


def _open_repository(state: CliState) -> Repository:
    location = _make_location(state)
    if not location.path:
        console.print(
            "[red]Error:[/red] No repository given. Use --repo or set RESTIC_REPOSITORY."
        )
        raise typer.Exit(code=EXIT_CONFIG_ERROR)

    credentials = CredentialContext(isolated=get_config().restic.isolated_environment)
    return Repository(location, _make_client(state), credentials=credentials)


def _find_entry(repo: Repository, snapshot: str, path: str) -> FileEntry:
    """Look up the entry for exactly ``path`` in a snapshot."""
    wanted = "/" + "/".join(split_path(path))
    for entry in repo.list_files(snapshot, wanted):
        if entry.path == wanted:
            return entry
    raise NoFilesError(path)


def _format_size(entry: FileEntry) -> str:
    return "" if entry.is_dir else str(entry.size)


# =============================================================================
# Commands
# =============================================================================


@app.command(name="version")
def version_command(ctx: typer.Context) -> None:
    """Show the restic-browser version and the version of the restic binary."""
    console.print(f"restic-browser {__version__}")
    try:
        client = _make_client(_state(ctx))
    except ResticBrowserError as e:
        raise _fail(e) from None
    console.print(client.version_string or f"restic {client.version}")
    console.print(f"[dim]{client.path}[/dim]")


@app.command(name="snapshots")
def snapshots_command(ctx: typer.Context) -> None:
    """List the snapshots of the repository."""
    try:
        repo = _open_repository(_state(ctx))
        snapshots = repo.list_snapshots()
    except ResticBrowserError as e:
        raise _fail(e) from None

    table = Table(title=f"Snapshots in {repo.location.path_or_bucket_name()}")
    table.add_column("ID", style="cyan")
    table.add_column("Time")
    table.add_column("Host")
    table.add_column("User")
    table.add_column("Tags")
    table.add_column("Paths")
    for snapshot in snapshots:
        table.add_row(
            snapshot.short_id or snapshot.id[:8],
            snapshot.time.strftime("%Y-%m-%d %H:%M:%S"),
            snapshot.hostname,
            snapshot.username,
            ", ".join(snapshot.tags),
            "\n".join(snapshot.paths),
        )
    console.print(table)
    logger.debug("Listed %d snapshots", len(snapshots))


@app.command(name="ls")
def ls_command(
    ctx: typer.Context,
    snapshot: str = typer.Argument(..., help="Snapshot ID (or 'latest')"),
    path: str = typer.Argument("/", help="Directory inside the snapshot"),
) -> None:
    """List the direct contents of a directory in a snapshot."""
    try:
        repo = _open_repository(_state(ctx))
        files = repo.list_files(snapshot, path)
    except ResticBrowserError as e:
        raise _fail(e) from None

    entries = build_tree(files).files_for_directory(path)
    table = Table(title=f"{snapshot}:{path}")
    table.add_column("Type", width=8)
    table.add_column("Size", justify="right")
    table.add_column("Modified")
    table.add_column("Name", style="bold")
    for entry in sorted(entries, key=lambda e: (not e.is_dir, e.name)):
        table.add_row(
            entry.type,
            _format_size(entry),
            entry.mtime.strftime("%Y-%m-%d %H:%M") if entry.mtime else "",
            entry.name + ("/" if entry.is_dir else ""),
        )
    console.print(table)


@app.command(name="tree")
def tree_command(
    ctx: typer.Context,
    snapshot: str = typer.Argument(..., help="Snapshot ID (or 'latest')"),
    path: str = typer.Argument("/", help="Directory inside the snapshot"),
    depth: int = typer.Option(None, "--depth", "-d", min=1, help="Maximum depth to show"),
) -> None:
    """Show the files of a snapshot as a directory tree."""
    try:
        repo = _open_repository(_state(ctx))
        files = repo.list_files(snapshot, path)
    except ResticBrowserError as e:
        raise _fail(e) from None

    root = build_tree(files)
    node = root.find_node(path) or root
    console.print(render_tree(node, max_depth=depth))


@app.command(name="restore")
def restore_command(
    ctx: typer.Context,
    snapshot: str = typer.Argument(..., help="Snapshot ID (or 'latest')"),
    path: str = typer.Argument(..., help="File or directory to restore"),
    target: Path = typer.Option(
        Path("."),
        "--target",
        help="Directory to restore into (the original path is recreated below it)",
    ),
) -> None:
    """Restore a file or directory from a snapshot."""
    if not target.is_dir():
        console.print(f"[red]Error:[/red] Not a directory: {target}")
        raise typer.Exit(code=EXIT_CONFIG_ERROR)

    try:
        repo = _open_repository(_state(ctx))
        entry = _find_entry(repo, snapshot, path)
        _info(f"Restoring {entry.path} ...")
        restored = repo.restore_file(snapshot, entry, target)
    except ResticBrowserError as e:
        raise _fail(e) from None
    _success(f"Restored to {restored}")


@app.command(name="dump")
def dump_command(
    ctx: typer.Context,
    snapshot: str = typer.Argument(..., help="Snapshot ID (or 'latest')"),
    path: str = typer.Argument(..., help="File or directory to dump"),
    target: Path = typer.Option(
        Path("."),
        "--target",
        help="Directory to write the file into (directories are written as .zip)",
    ),
) -> None:
    """Dump a single file, or a directory as zip archive, from a snapshot."""
    if not target.is_dir():
        console.print(f"[red]Error:[/red] Not a directory: {target}")
        raise typer.Exit(code=EXIT_CONFIG_ERROR)

    try:
        repo = _open_repository(_state(ctx))
        entry = _find_entry(repo, snapshot, path)
        dumped = repo.dump_file(snapshot, entry, target)
    except ResticBrowserError as e:
        raise _fail(e) from None
    _success(f"Dumped to {dumped}")


if __name__ == "__main__":
    app()
