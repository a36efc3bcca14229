"""Traversal and lookup primitives over immutable schema trees.

Every walk here is an explicit worklist bounded by ``max_depth``: nodes nested
deeper than the bound are never visited, so malformed or adversarial input
cannot exhaust the interpreter stack.
"""

from __future__ import annotations

from typing import Callable, Iterator

from .config import DEFAULT_MAX_DEPTH
from .models import Node

__all__ = [
    "collect_ids",
    "count_nodes",
    "depth_of",
    "find",
    "is_descendant",
    "iter_nodes",
    "locate",
    "map_path",
    "parent_of",
    "subtree_height",
]

IndexPath = tuple[int, ...]


def iter_nodes(root: Node, *, max_depth: int = DEFAULT_MAX_DEPTH) -> Iterator[tuple[Node, IndexPath]]:
    """Yield ``(node, index_path)`` pairs depth-first, in document order."""

    stack: list[tuple[Node, IndexPath]] = [(root, ())]
    while stack:
        node, path = stack.pop()
        yield node, path
        if len(path) >= max_depth:
            continue
        for index in range(len(node.children) - 1, -1, -1):
            stack.append((node.children[index], path + (index,)))


def locate(root: Node, node_id: str | None, *, max_depth: int = DEFAULT_MAX_DEPTH) -> IndexPath | None:
    """Return the child-index path from ``root`` to ``node_id``, or None."""

    if node_id is None:
        return None
    for node, path in iter_nodes(root, max_depth=max_depth):
        if node.id == node_id:
            return path
    return None


def find(root: Node, node_id: str | None, *, max_depth: int = DEFAULT_MAX_DEPTH) -> Node | None:
    path = locate(root, node_id, max_depth=max_depth)
    if path is None:
        return None
    return _chain(root, path)[-1]


def parent_of(root: Node, node_id: str | None, *, max_depth: int = DEFAULT_MAX_DEPTH) -> tuple[Node, int] | None:
    """Return ``(parent, index)`` for ``node_id``; None for the root or a missing id."""

    path = locate(root, node_id, max_depth=max_depth)
    if not path:
        return None
    chain = _chain(root, path)
    return chain[-2], path[-1]


def depth_of(root: Node, node_id: str | None, *, max_depth: int = DEFAULT_MAX_DEPTH) -> int | None:
    path = locate(root, node_id, max_depth=max_depth)
    return None if path is None else len(path)


def map_path(
    root: Node,
    node_id: str | None,
    fn: Callable[[Node], Node],
    *,
    max_depth: int = DEFAULT_MAX_DEPTH,
) -> Node:
    """Replace ``node_id`` with ``fn(node)`` and rebuild only its ancestors.

    Siblings of every rebuilt node are carried over by reference. When the id
    is missing, or ``fn`` hands back the node it was given, ``root`` itself is
    returned.
    """

    path = locate(root, node_id, max_depth=max_depth)
    if path is None:
        return root
    chain = _chain(root, path)
    replacement = fn(chain[-1])
    if replacement is chain[-1]:
        return root
    for depth in range(len(path) - 1, -1, -1):
        parent = chain[depth]
        children = list(parent.children)
        children[path[depth]] = replacement
        replacement = parent.with_children(children)
    return replacement


def is_descendant(
    root: Node,
    ancestor_id: str | None,
    candidate_id: str | None,
    *,
    max_depth: int = DEFAULT_MAX_DEPTH,
) -> bool:
    """True when ``candidate_id`` sits strictly below ``ancestor_id``."""

    ancestor_path = locate(root, ancestor_id, max_depth=max_depth)
    candidate_path = locate(root, candidate_id, max_depth=max_depth)
    if ancestor_path is None or candidate_path is None:
        return False
    return len(candidate_path) > len(ancestor_path) and candidate_path[: len(ancestor_path)] == ancestor_path


def collect_ids(root: Node, *, max_depth: int = DEFAULT_MAX_DEPTH) -> set[str]:
    return {node.id for node, _ in iter_nodes(root, max_depth=max_depth) if node.id is not None}


def count_nodes(root: Node, *, max_depth: int = DEFAULT_MAX_DEPTH) -> int:
    return sum(1 for _ in iter_nodes(root, max_depth=max_depth))


def subtree_height(root: Node, *, max_depth: int = DEFAULT_MAX_DEPTH) -> int:
    """Edges on the longest downward path, saturating at ``max_depth + 1``."""

    height = 0
    stack: list[tuple[Node, int]] = [(root, 0)]
    while stack:
        node, depth = stack.pop()
        height = max(height, depth)
        if depth > max_depth:
            continue
        for child in node.children:
            stack.append((child, depth + 1))
    return height


def _chain(root: Node, path: IndexPath) -> list[Node]:
    chain = [root]
    for index in path:
        chain.append(chain[-1].children[index])
    return chain
