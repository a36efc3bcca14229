"""Immutable schema node model and its wire codec."""

from __future__ import annotations

import copy
from dataclasses import dataclass, field, replace
from typing import Any, Iterable, Mapping

from .errors import ValidationError

__all__ = [
    "CHILD_SLOT_KEYS",
    "RESERVED_KEYS",
    "Node",
    "normalize_children",
]

CHILD_SLOT_KEYS: tuple[str, ...] = ("body", "children")
RESERVED_KEYS = frozenset({"id", "type", *CHILD_SLOT_KEYS})


@dataclass(frozen=True, slots=True)
class Node:
    """A single element of a schema tree.

    Nodes are never mutated. Every edit builds new nodes along the path to the
    root and reuses untouched subtrees by reference, so two trees that share a
    subtree share the very same objects. ``props`` must be treated as
    read-only for the same reason.
    """

    id: str | None
    type: str
    props: Mapping[str, Any] = field(default_factory=dict)
    children: tuple["Node", ...] = ()

    def with_props(self, props: Mapping[str, Any]) -> "Node":
        return replace(self, props=dict(props))

    def with_children(self, children: Iterable["Node"]) -> "Node":
        return replace(self, children=tuple(children))

    def with_id(self, node_id: str) -> "Node":
        return replace(self, id=node_id)

    def detached_copy(self) -> "Node":
        """Return a copy whose props share no mutable state with this node."""

        return Node(
            id=self.id,
            type=self.type,
            props=copy.deepcopy(dict(self.props)),
            children=tuple(child.detached_copy() for child in self.children),
        )

    def to_dict(self, *, children_key: str = "body") -> dict[str, Any]:
        payload: dict[str, Any] = {}
        if self.id is not None:
            payload["id"] = self.id
        payload["type"] = self.type
        for key, value in self.props.items():
            payload[key] = copy.deepcopy(value)
        payload[children_key] = [child.to_dict(children_key=children_key) for child in self.children]
        return payload

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any], *, max_depth: int = 100) -> "Node":
        """Build a node from its wire form, normalizing every child slot shape."""

        return _node_from_mapping(payload, depth=0, max_depth=max_depth, path="$")


def normalize_children(value: Any, *, max_depth: int = 100, path: str = "$") -> tuple[Node, ...]:
    """Normalize an absent, single-node or list child slot to a tuple of nodes."""

    return _children_from_slot(value, depth=0, max_depth=max_depth, path=path)


def _node_from_mapping(payload: Any, *, depth: int, max_depth: int, path: str) -> Node:
    if isinstance(payload, Node):
        return payload
    if not isinstance(payload, Mapping):
        raise ValidationError(f"Node at {path} must be an object", details={"path": path})
    if depth > max_depth:
        raise ValidationError(
            f"Document nesting exceeds the maximum depth of {max_depth}",
            details={"path": path, "max_depth": max_depth},
        )

    node_type = payload.get("type")
    if not isinstance(node_type, str) or not node_type:
        raise ValidationError(f"Node at {path} requires a non-empty string 'type'", details={"path": path})

    node_id = payload.get("id")
    if node_id is not None and (not isinstance(node_id, str) or not node_id):
        raise ValidationError(f"Node at {path} has an invalid 'id'", details={"path": path})

    slots = [key for key in CHILD_SLOT_KEYS if key in payload]
    if len(slots) > 1:
        raise ValidationError(
            f"Node at {path} declares both 'body' and 'children'",
            details={"path": path},
        )
    children: tuple[Node, ...] = ()
    if slots:
        slot = slots[0]
        children = _children_from_slot(payload[slot], depth=depth, max_depth=max_depth, path=f"{path}.{slot}")

    props = {key: copy.deepcopy(value) for key, value in payload.items() if key not in RESERVED_KEYS}
    return Node(id=node_id, type=node_type, props=props, children=children)


def _children_from_slot(value: Any, *, depth: int, max_depth: int, path: str) -> tuple[Node, ...]:
    if value is None:
        return ()
    if isinstance(value, (Node, Mapping)):
        return (_node_from_mapping(value, depth=depth + 1, max_depth=max_depth, path=path),)
    if isinstance(value, (list, tuple)):
        return tuple(
            _node_from_mapping(item, depth=depth + 1, max_depth=max_depth, path=f"{path}[{index}]")
            for index, item in enumerate(value)
        )
    raise ValidationError(f"Child slot at {path} must be a node, a list of nodes, or null", details={"path": path})
