"""Selection, hover and drag-source state."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from .config import DEFAULT_MAX_DEPTH
from .models import Node
from .tree import collect_ids

__all__ = ["SelectionModel"]


@dataclass(slots=True)
class SelectionModel:
    """References into the current tree held by the designer surface.

    ``dragging_node_id`` and ``dragging_type`` are mutually exclusive, and the
    root can never be the dragged node.
    """

    root_id: str | None = None
    selected_node_id: str | None = None
    hovered_node_id: str | None = None
    dragging_node_id: str | None = None
    dragging_type: str | None = None

    def select(self, node_id: str | None) -> None:
        self.selected_node_id = node_id

    def hover(self, node_id: str | None) -> None:
        self.hovered_node_id = node_id

    def start_node_drag(self, node_id: str) -> bool:
        if node_id == self.root_id:
            return False
        self.dragging_type = None
        self.dragging_node_id = node_id
        return True

    def start_type_drag(self, node_type: str) -> None:
        self.dragging_node_id = None
        self.dragging_type = node_type

    def end_drag(self) -> None:
        self.dragging_node_id = None
        self.dragging_type = None
        self.hovered_node_id = None

    @property
    def is_dragging(self) -> bool:
        return self.dragging_node_id is not None or self.dragging_type is not None

    def prune(self, tree: Node, *, max_depth: int = DEFAULT_MAX_DEPTH) -> None:
        """Drop references to nodes that are no longer part of ``tree``."""

        self.root_id = tree.id
        live = collect_ids(tree, max_depth=max_depth)
        if self.selected_node_id not in live:
            self.selected_node_id = None
        if self.hovered_node_id not in live:
            self.hovered_node_id = None
        if self.dragging_node_id not in live or self.dragging_node_id == self.root_id:
            self.dragging_node_id = None

    def clear(self) -> None:
        self.selected_node_id = None
        self.end_drag()

    def to_dict(self) -> dict[str, Any]:
        return {
            "selected_node_id": self.selected_node_id,
            "hovered_node_id": self.hovered_node_id,
            "dragging_node_id": self.dragging_node_id,
            "dragging_type": self.dragging_type,
        }
