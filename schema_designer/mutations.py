"""Structural mutations over schema trees.

Each operation comes in two forms. ``MutationEngine.apply_*`` returns a
:class:`MutationResult` that says whether the tree changed and, if not, why.
The module-level functions (``insert``, ``update``, ...) return the resulting
tree only; a refused mutation hands back the very same tree object.

Refusals never raise. Malformed node payloads do, with :class:`ValidationError`.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Sequence

from .config import DEFAULT_MAX_DEPTH
from .errors import (
    AT_BOUNDARY,
    CYCLE_DETECTED,
    DEPTH_LIMIT_EXCEEDED,
    DUPLICATE_ID,
    NO_CHANGE,
    NOT_FOUND,
    ROOT_PROTECTED,
    ValidationError,
)
from .identity import IdentityAssigner
from .logging import get_logger
from .models import CHILD_SLOT_KEYS, Node, normalize_children
from .tree import collect_ids, find, is_descendant, iter_nodes, locate, map_path, parent_of, subtree_height

__all__ = [
    "DIRECTIONS",
    "MutationEngine",
    "MutationResult",
    "insert",
    "move",
    "move_sibling",
    "remove",
    "update",
]

logger = get_logger(__name__)

DIRECTIONS = ("up", "down")


@dataclass(frozen=True, slots=True)
class MutationResult:
    """Outcome of a mutation: the resulting tree plus applied/refused status."""

    tree: Node
    applied: bool
    reason: str | None = None
    node_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"applied": self.applied}
        if self.reason is not None:
            payload["reason"] = self.reason
        if self.node_id is not None:
            payload["node_id"] = self.node_id
        return payload


class MutationEngine:
    def __init__(self, assigner: IdentityAssigner | None = None, *, max_depth: int = DEFAULT_MAX_DEPTH) -> None:
        self.max_depth = max_depth
        self.assigner = assigner or IdentityAssigner(max_depth=max_depth)

    # ------------------------------------------------------------------
    # Insert
    # ------------------------------------------------------------------
    def apply_insert(
        self,
        tree: Node,
        parent_id: str,
        new_node: Node | Mapping[str, Any],
        index: int | None = None,
    ) -> MutationResult:
        node = self._coerce_node(new_node)
        parent_path = locate(tree, parent_id, max_depth=self.max_depth)
        if parent_path is None:
            return self._refuse(tree, "insert", NOT_FOUND, parent_id)
        if len(parent_path) + 1 + subtree_height(node, max_depth=self.max_depth) > self.max_depth:
            return self._refuse(tree, "insert", DEPTH_LIMIT_EXCEEDED, parent_id)

        taken = collect_ids(tree, max_depth=self.max_depth)
        if _has_id_conflict(node, taken, max_depth=self.max_depth):
            return self._refuse(tree, "insert", DUPLICATE_ID, node.id)

        node = self.assigner.ensure_ids(node, taken=taken)
        updated = map_path(
            tree,
            parent_id,
            lambda parent: parent.with_children(_inserted(parent.children, node, index)),
            max_depth=self.max_depth,
        )
        return MutationResult(updated, True, node_id=node.id)

    # ------------------------------------------------------------------
    # Update
    # ------------------------------------------------------------------
    def apply_update(self, tree: Node, node_id: str, partial_props: Mapping[str, Any]) -> MutationResult:
        target_path = locate(tree, node_id, max_depth=self.max_depth)
        if target_path is None:
            return self._refuse(tree, "update", NOT_FOUND, node_id)
        target = find(tree, node_id, max_depth=self.max_depth)
        assert target is not None

        changes = dict(partial_props)
        changes.pop("id", None)

        node_type = changes.pop("type", target.type)
        if not isinstance(node_type, str) or not node_type:
            raise ValidationError("Node 'type' must be a non-empty string", details={"node_id": node_id})

        slots = [key for key in CHILD_SLOT_KEYS if key in changes]
        if len(slots) > 1:
            raise ValidationError("Update declares both 'body' and 'children'", details={"node_id": node_id})
        children = target.children
        if slots:
            raw_children = changes.pop(slots[0])
            children = normalize_children(raw_children, max_depth=self.max_depth, path=f"$.{slots[0]}")
            for child in children:
                if len(target_path) + 1 + subtree_height(child, max_depth=self.max_depth) > self.max_depth:
                    return self._refuse(tree, "update", DEPTH_LIMIT_EXCEEDED, node_id)
            taken = collect_ids(tree, max_depth=self.max_depth) - collect_ids(target, max_depth=self.max_depth)
            taken.add(target.id)
            wrapper = Node(id=None, type="_", children=children)
            if _has_id_conflict(wrapper, taken, max_depth=self.max_depth):
                return self._refuse(tree, "update", DUPLICATE_ID, node_id)
            children = self.assigner.ensure_ids(wrapper, taken=taken).children

        props = {**target.props, **changes}
        if node_type == target.type and props == dict(target.props) and children == target.children:
            return self._refuse(tree, "update", NO_CHANGE, node_id)

        replacement = Node(id=target.id, type=node_type, props=props, children=children)
        updated = map_path(tree, node_id, lambda _node: replacement, max_depth=self.max_depth)
        return MutationResult(updated, True, node_id=node_id)

    # ------------------------------------------------------------------
    # Remove
    # ------------------------------------------------------------------
    def apply_remove(self, tree: Node, node_id: str) -> MutationResult:
        if node_id == tree.id:
            return self._refuse(tree, "remove", ROOT_PROTECTED, node_id)
        located = parent_of(tree, node_id, max_depth=self.max_depth)
        if located is None:
            return self._refuse(tree, "remove", NOT_FOUND, node_id)
        parent, index = located
        updated = map_path(
            tree,
            parent.id,
            lambda node: node.with_children(node.children[:index] + node.children[index + 1 :]),
            max_depth=self.max_depth,
        )
        return MutationResult(updated, True, node_id=node_id)

    # ------------------------------------------------------------------
    # Move
    # ------------------------------------------------------------------
    def apply_move(
        self,
        tree: Node,
        node_id: str,
        target_parent_id: str,
        target_index: int | None = None,
    ) -> MutationResult:
        """Relocate ``node_id`` under ``target_parent_id`` in one step.

        ``target_index`` addresses the target's children as they are once the
        node has been taken out of its current place; None appends.
        """

        if node_id == tree.id:
            return self._refuse(tree, "move", ROOT_PROTECTED, node_id)
        located = parent_of(tree, node_id, max_depth=self.max_depth)
        if located is None or locate(tree, target_parent_id, max_depth=self.max_depth) is None:
            return self._refuse(tree, "move", NOT_FOUND, node_id)
        if node_id == target_parent_id or is_descendant(tree, node_id, target_parent_id, max_depth=self.max_depth):
            return self._refuse(tree, "move", CYCLE_DETECTED, node_id)

        source_parent, source_index = located
        node = source_parent.children[source_index]
        detached = map_path(
            tree,
            source_parent.id,
            lambda parent: parent.with_children(parent.children[:source_index] + parent.children[source_index + 1 :]),
            max_depth=self.max_depth,
        )

        target_path = locate(detached, target_parent_id, max_depth=self.max_depth)
        assert target_path is not None
        if len(target_path) + 1 + subtree_height(node, max_depth=self.max_depth) > self.max_depth:
            return self._refuse(tree, "move", DEPTH_LIMIT_EXCEEDED, node_id)

        target = find(detached, target_parent_id, max_depth=self.max_depth)
        assert target is not None
        resolved_index = _clamp(target_index, len(target.children))
        if target_parent_id == source_parent.id and resolved_index == source_index:
            return self._refuse(tree, "move", NO_CHANGE, node_id)

        updated = map_path(
            detached,
            target_parent_id,
            lambda parent: parent.with_children(_inserted(parent.children, node, resolved_index)),
            max_depth=self.max_depth,
        )
        return MutationResult(updated, True, node_id=node_id)

    def apply_move_sibling(self, tree: Node, node_id: str, direction: str) -> MutationResult:
        if direction not in DIRECTIONS:
            raise ValueError(f"direction must be one of {DIRECTIONS}, got {direction!r}")
        if node_id == tree.id:
            return self._refuse(tree, "move_sibling", ROOT_PROTECTED, node_id)
        located = parent_of(tree, node_id, max_depth=self.max_depth)
        if located is None:
            return self._refuse(tree, "move_sibling", NOT_FOUND, node_id)
        parent, index = located
        other = index - 1 if direction == "up" else index + 1
        if other < 0 or other >= len(parent.children):
            return self._refuse(tree, "move_sibling", AT_BOUNDARY, node_id)

        children = list(parent.children)
        children[index], children[other] = children[other], children[index]
        updated = map_path(tree, parent.id, lambda node: node.with_children(children), max_depth=self.max_depth)
        return MutationResult(updated, True, node_id=node_id)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _coerce_node(self, value: Node | Mapping[str, Any]) -> Node:
        if isinstance(value, Node):
            return value
        return Node.from_dict(value, max_depth=self.max_depth)

    def _refuse(self, tree: Node, operation: str, reason: str, node_id: str | None) -> MutationResult:
        logger.debug(
            "mutation.refused",
            extra={"context": {"operation": operation, "reason": reason, "node_id": node_id}},
        )
        return MutationResult(tree, False, reason=reason, node_id=node_id)


def _clamp(index: int | None, length: int) -> int:
    if index is None:
        return length
    return max(0, min(index, length))


def _inserted(children: Sequence[Node], node: Node, index: int | None) -> tuple[Node, ...]:
    position = _clamp(index, len(children))
    return (*children[:position], node, *children[position:])


def _has_id_conflict(node: Node, taken: set[str], *, max_depth: int) -> bool:
    seen: set[str] = set()
    for candidate in _explicit_ids(node, max_depth=max_depth):
        if candidate in taken or candidate in seen:
            return True
        seen.add(candidate)
    return False


def _explicit_ids(node: Node, *, max_depth: int) -> list[str]:
    return [item.id for item, _ in iter_nodes(node, max_depth=max_depth) if item.id is not None]


_DEFAULT_ENGINE = MutationEngine()


def insert(tree: Node, parent_id: str, new_node: Node | Mapping[str, Any], index: int | None = None) -> Node:
    return _DEFAULT_ENGINE.apply_insert(tree, parent_id, new_node, index).tree


def update(tree: Node, node_id: str, partial_props: Mapping[str, Any]) -> Node:
    return _DEFAULT_ENGINE.apply_update(tree, node_id, partial_props).tree


def remove(tree: Node, node_id: str) -> Node:
    return _DEFAULT_ENGINE.apply_remove(tree, node_id).tree


def move(tree: Node, node_id: str, target_parent_id: str, target_index: int | None = None) -> Node:
    return _DEFAULT_ENGINE.apply_move(tree, node_id, target_parent_id, target_index).tree


def move_sibling(tree: Node, node_id: str, direction: str) -> Node:
    return _DEFAULT_ENGINE.apply_move_sibling(tree, node_id, direction).tree
