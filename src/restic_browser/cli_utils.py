"""Shared helpers for the restic-browser CLI commands."""

import logging

import typer
from rich.console import Console
from rich.logging import RichHandler

from restic_browser.core.config import get_config
from restic_browser.core.exceptions import (
    BinaryNotFoundError,
    ConfigError,
    NotFoundError,
    PreconditionError,
    ResticBrowserError,
    ResticCommandError,
)

# Exit codes
EXIT_SUCCESS = 0
EXIT_ERROR = 1
EXIT_CONFIG_ERROR = 2
EXIT_NOT_FOUND = 3
EXIT_PRECONDITION = 4
EXIT_BINARY_NOT_FOUND = 127

# Shared console for output
console = Console()
err_console = Console(stderr=True)


def _error(message: str) -> None:
    err_console.print(f"[red]Error:[/red] {message}")


def _warning(message: str) -> None:
    err_console.print(f"[yellow]Warning:[/yellow] {message}")


def _info(message: str) -> None:
    console.print(f"[blue]Info:[/blue] {message}")


def _success(message: str) -> None:
    console.print(f"[green]{message}[/green]")


def _setup_logging(verbose: bool = False, quiet: bool = False) -> None:
    """Configure root logging for a CLI invocation.

    The level comes from the loaded config unless overridden by
    ``--verbose`` (DEBUG) or ``--quiet`` (ERROR).
    """
    if verbose:
        level = logging.DEBUG
    elif quiet:
        level = logging.ERROR
    else:
        level = logging.getLevelName(get_config().logging.level)

    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=err_console, show_path=False, rich_tracebacks=verbose)],
        force=True,
    )


def _exit_code_for(error: ResticBrowserError) -> int:
    """Map an error to a process exit code."""
    if isinstance(error, ConfigError):
        return EXIT_CONFIG_ERROR
    if isinstance(error, BinaryNotFoundError):
        return EXIT_BINARY_NOT_FOUND
    if isinstance(error, NotFoundError):
        return EXIT_NOT_FOUND
    if isinstance(error, PreconditionError):
        return EXIT_PRECONDITION
    return EXIT_ERROR


def _fail(error: ResticBrowserError) -> typer.Exit:
    """Report an error and return the typer.Exit to raise."""
    _error(str(error))
    if isinstance(error, ResticCommandError) and error.command:
        logging.getLogger(__name__).debug("Failed command: %s", " ".join(error.command))
    return typer.Exit(code=_exit_code_for(error))
