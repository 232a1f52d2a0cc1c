"""Directory tree nodes."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field

from restic_browser.file_tree.types import ROOT_ID, ROOT_NAME, ROOT_TYPE, ExportedNode
from restic_browser.restic.models import FILE_TYPE_DIR, FileEntry

logger = logging.getLogger(__name__)


def split_path(path: str) -> list[str]:
    """Split a path into its segments.

    Backslashes are treated as separators and one leading and one trailing
    slash are stripped.

    Args:
        path: Absolute or relative path.

    Returns:
        Ordered path segments, empty for "" and "/".

    Examples:
        >>> split_path("/home/user/")
        ['home', 'user']

    """
    slash_path = path.replace("\\", "/")
    if slash_path.startswith("/"):
        slash_path = slash_path[1:]
    if slash_path.endswith("/"):
        slash_path = slash_path[:-1]
    if not slash_path:
        return []
    return slash_path.split("/")


@dataclass
class DirectoryTreeNode:
    """A node of the directory tree.

    The parent exclusively owns its children; nodes hold no reference to
    their parent. Each child is stored under its own name.

    Attributes:
        name: Path segment of this node.
        file: Attached file entry. None for the root and for directories
            only known from deeper paths (placeholders).
        children: Child nodes by name.

    """

    name: str = ROOT_NAME
    file: FileEntry | None = None
    children: dict[str, DirectoryTreeNode] = field(default_factory=dict)

    def insert(self, file: FileEntry) -> DirectoryTreeNode:
        """Insert a file entry, creating missing ancestors as placeholders.

        Inserting the same entry again leaves the tree shape unchanged.

        Args:
            file: Entry to insert; its path decides the position.

        Returns:
            The node the entry was attached to (self for paths without
            segments, which are ignored).

        """
        segments = split_path(file.path)
        if not segments:
            logger.debug("Ignoring file entry without path segments: %r", file.path)
            return self

        node = self
        for segment in segments:
            child = node.children.get(segment)
            if child is None:
                child = DirectoryTreeNode(name=segment)
                node.children[segment] = child
            node = child
        node.file = file
        return node

    def find_node(self, path: str) -> DirectoryTreeNode | None:
        """Look up the node for a path.

        Args:
            path: Path relative to this node ("/" returns self).

        Returns:
            The node, or None if the path is not in the tree.

        """
        node = self
        for segment in split_path(path):
            child = node.children.get(segment)
            if child is None:
                return None
            node = child
        return node

    def files_for_directory(self, path: str) -> list[FileEntry]:
        """Return the attached files of a directory's direct children.

        Placeholder children (no attached file) are skipped; the lookup is
        one level deep only.

        Args:
            path: Directory path.

        Returns:
            File entries of the children, empty if the path is unknown.

        """
        node = self.find_node(path)
        if node is None:
            return []
        return [child.file for child in node.children.values() if child.file is not None]

    def export(self, _path: str = "") -> ExportedNode:
        """Export this subtree in presentation format.

        The node this is called on is exported as the synthetic root if it
        has no attached file. Placeholders are exported as directories with
        their computed path as id.

        Returns:
            Nested ``{"name", "type", "id", "children"}`` dictionaries.

        """
        if self.file is not None:
            node_type = self.file.type
            node_id = self.file.path
        elif not _path:
            node_type = ROOT_TYPE
            node_id = ROOT_ID
        else:
            node_type = FILE_TYPE_DIR
            node_id = _path
        return {
            "name": self.name,
            "type": node_type,
            "id": node_id,
            "children": [
                child.export(f"{_path}/{name}") for name, child in self.children.items()
            ],
        }

    def walk(self) -> Iterable[DirectoryTreeNode]:
        """Yield all nodes below this one, depth first."""
        for child in self.children.values():
            yield child
            yield from child.walk()


def build_tree(files: Iterable[FileEntry]) -> DirectoryTreeNode:
    """Create a tree for the given files.

    Args:
        files: Entries to insert, in any order.

    Returns:
        The root node.

    """
    root = DirectoryTreeNode()
    for file in files:
        root.insert(file)
    return root
