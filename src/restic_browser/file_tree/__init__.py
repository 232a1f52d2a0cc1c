"""Directory tree built from flat restic file listings.

restic lists files as absolute, slash-delimited paths. The tree groups them
into nested nodes so a presentation layer can expand one directory at a
time, or export the whole structure in a widget friendly format.

Usage:
    from restic_browser.file_tree import build_tree

    root = build_tree(repo.list_files(snapshot, "/"))
    children = root.files_for_directory("/home")
    data = root.export()
"""

from restic_browser.file_tree.formatter import render_tree
from restic_browser.file_tree.node import DirectoryTreeNode, build_tree, split_path
from restic_browser.file_tree.types import ExportedNode

__all__ = ["DirectoryTreeNode", "ExportedNode", "build_tree", "render_tree", "split_path"]
