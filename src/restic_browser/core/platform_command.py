"""Cross-platform process spawning helpers.

restic ships as ``restic`` on POSIX and ``restic.exe`` on Windows. On
Windows, console programs spawned from a GUI host flash a console window
unless they are created with CREATE_NO_WINDOW, so every spawn goes through
get_creation_flags().
"""

from __future__ import annotations

import logging
import sys
from typing import Literal

logger = logging.getLogger(__name__)

# Platform detection
IS_WINDOWS = sys.platform == "win32"
IS_POSIX = not IS_WINDOWS

# Win32 process creation flag, see CreateProcess docs
CREATE_NO_WINDOW = 0x08000000

RESTIC_BASE_NAME = "restic"


def program_name(base_name: str) -> str:
    """Return the platform dependent executable name for a program.

    Args:
        base_name: Program name without extension (e.g., "restic").

    Returns:
        ``base_name`` on POSIX, ``base_name + ".exe"`` on Windows.

    Examples:
        >>> program_name("restic")
        'restic'  # on POSIX
        'restic.exe'  # on Windows

    """
    if IS_WINDOWS:
        return base_name + ".exe"
    return base_name


def restic_program_name() -> str:
    """Return the expected restic executable name for this platform."""
    return program_name(RESTIC_BASE_NAME)


def get_creation_flags() -> int:
    """Get subprocess creation flags for spawning console programs.

    Returns:
        CREATE_NO_WINDOW on Windows, 0 elsewhere.

    """
    if IS_WINDOWS:
        return CREATE_NO_WINDOW
    return 0


PlatformType = Literal["windows", "posix", "unknown"]


def get_platform() -> PlatformType:
    """Get the current platform type.

    Returns:
        'windows' for Windows, 'posix' for Linux/macOS, 'unknown' otherwise.

    """
    if IS_WINDOWS:
        return "windows"
    elif IS_POSIX:
        return "posix"
    return "unknown"
