"""Shared types for the file_tree module."""

from typing import TypedDict

ROOT_NAME = "/"
ROOT_TYPE = "root"
ROOT_ID = "root"


class ExportedNode(TypedDict):
    """A tree node in presentation format.

    Attributes:
        name: Path segment (ROOT_NAME for the synthetic root).
        type: restic node type ("file", "dir", ...) or ROOT_TYPE.
        id: Absolute path of the node, ROOT_ID for the root.
        children: Exported child nodes, in no particular order.

    """

    name: str
    type: str
    id: str
    children: list["ExportedNode"]
