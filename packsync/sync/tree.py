"""Hierarchical diff tree built from a flat list of diff entries."""

from dataclasses import dataclass, field
from typing import Iterable, Iterator, Optional

from .diff import DiffFile, FileStatus


@dataclass
class TreeNode:
    """A node of the diff tree.

    Leaves carry the status of the diff entry they were built from.
    Intermediate directory nodes carry no status.
    """

    name: str
    """Last path segment"""

    path: str
    """Relative path from the tree root"""

    status: Optional[FileStatus] = None
    """Diff status, set on leaves only"""

    children: list["TreeNode"] = field(default_factory=list)
    """Child nodes, directories first after sorting"""

    @property
    def is_dir(self) -> bool:
        return bool(self.children)

    def to_dict(self) -> dict:
        data: dict = {"name": self.name, "path": self.path}
        if self.status is not None:
            data["status"] = self.status.value
        if self.children:
            data["children"] = [child.to_dict() for child in self.children]
        return data


def _sort_key(node: TreeNode) -> tuple[bool, str, str]:
    return (not node.is_dir, node.name, node.path)


def _sort_nodes(nodes: list[TreeNode]) -> None:
    nodes.sort(key=_sort_key)
    for node in nodes:
        if node.children:
            _sort_nodes(node.children)


def build_tree(diff_files: Iterable[DiffFile]) -> list[TreeNode]:
    """Build a sorted tree from diff entries.

    Each path is split on ``/``. Directory nodes are created on demand and
    shared by every path with the same prefix; segment matching is exact and
    case-sensitive. Siblings are sorted with directories first, then by name.
    A path that is both a file and the prefix of another path, such as
    ``a`` next to ``a/b``, gives two siblings named ``a``: the directory
    and the leaf.

    Args:
        diff_files: Flat diff entries

    Returns:
        Root-level nodes of the tree

    Examples:
        >>> nodes = build_tree([DiffFile("mods/a.jar", FileStatus.NEW)])
        >>> nodes[0].name, nodes[0].children[0].path
        ('mods', 'mods/a.jar')
    """
    roots: list[TreeNode] = []

    for diff_file in diff_files:
        parts = [part for part in diff_file.path.split("/") if part]
        if not parts:
            continue

        level = roots
        for depth, part in enumerate(parts):
            current_path = "/".join(parts[: depth + 1])
            is_leaf = depth == len(parts) - 1

            if is_leaf:
                existing = next(
                    (n for n in level if n.path == current_path and n.status is not None),
                    None,
                )
                if existing is not None:
                    existing.status = diff_file.status
                else:
                    level.append(
                        TreeNode(name=part, path=current_path, status=diff_file.status)
                    )
                break

            directory = next(
                (n for n in level if n.name == part and n.status is None), None
            )
            if directory is None:
                directory = TreeNode(name=part, path=current_path)
                level.append(directory)
            level = directory.children

    _sort_nodes(roots)
    return roots


def iter_leaves(nodes: Iterable[TreeNode]) -> Iterator[TreeNode]:
    """Yield every status-carrying node, depth-first in tree order."""
    for node in nodes:
        if node.status is not None:
            yield node
        if node.children:
            yield from iter_leaves(node.children)
