"""Terminal rendering of directory trees."""

from rich.markup import escape
from rich.tree import Tree

from restic_browser.file_tree.node import DirectoryTreeNode


def _label(node: DirectoryTreeNode) -> str:
    name = escape(node.name)
    if node.file is None or node.file.is_dir:
        return f"[bold blue]{name}/[/bold blue]" if node.name != "/" else "[bold]/[/bold]"
    return f"{name} [dim]({node.file.size} B)[/dim]"


def render_tree(node: DirectoryTreeNode, max_depth: int | None = None) -> Tree:
    """Render a directory tree as a rich Tree.

    Children are sorted: directories first, then by name.

    Args:
        node: Root of the subtree to render.
        max_depth: Levels below ``node`` to include (None = all).

    Returns:
        A rich Tree ready for Console.print().

    """
    tree = Tree(_label(node))
    _add_children(tree, node, max_depth)
    return tree


def _add_children(tree: Tree, node: DirectoryTreeNode, depth: int | None) -> None:
    if depth is not None and depth <= 0:
        return
    children = sorted(
        node.children.values(),
        key=lambda child: (not (child.children or (child.file and child.file.is_dir)), child.name),
    )
    for child in children:
        branch = tree.add(_label(child))
        _add_children(branch, child, None if depth is None else depth - 1)
