"""restic-browser: typed access to restic repositories through the restic binary.

Example:
    >>> from restic_browser import Location, Repository, ResticClient
    >>> client = ResticClient.find()
    >>> repo = Repository(Location(path="/srv/backup", password="secret"), client)
    >>> snapshots = repo.list_snapshots()

"""

from restic_browser.file_tree import DirectoryTreeNode, build_tree
from restic_browser.restic.client import ResticClient, ResticVersion
from restic_browser.restic.credentials import CredentialContext
from restic_browser.restic.location import EnvValue, Location
from restic_browser.restic.models import FileEntry, Snapshot
from restic_browser.restic.repository import Repository, is_directory_a_repository

__version__ = "0.3.0"

__all__ = [
    "CredentialContext",
    "DirectoryTreeNode",
    "EnvValue",
    "FileEntry",
    "Location",
    "Repository",
    "ResticClient",
    "ResticVersion",
    "Snapshot",
    "build_tree",
    "is_directory_a_repository",
]
