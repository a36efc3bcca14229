"""Drag-and-drop and resize sessions.

A drag runs ``IDLE -> DRAGGING -> HOVERING -> DROPPED | CANCELLED``. Only the
drop produces a mutation; hover updates are visual state. Resizing works the
same way: previews are visual and only ``end`` yields the size to commit.
"""

from __future__ import annotations

import enum
import math
from dataclasses import dataclass, field
from typing import Any

from .catalog import ResizeConstraints
from .config import DEFAULT_DROP_SPLIT, DEFAULT_GRID_SIZE

__all__ = [
    "DragPhase",
    "DragSession",
    "DropResolver",
    "DropTarget",
    "ResizeSession",
    "snap",
]


class DragPhase(str, enum.Enum):
    IDLE = "idle"
    DRAGGING = "dragging"
    HOVERING = "hovering"
    DROPPED = "dropped"
    CANCELLED = "cancelled"


@dataclass(frozen=True, slots=True)
class DropTarget:
    """Resolved insertion point. ``index`` None means append."""

    parent_id: str
    index: int | None

    def to_dict(self) -> dict[str, Any]:
        return {"parent_id": self.parent_id, "index": self.index}


class DropResolver:
    """Map a pointer position over a hovered node to an insertion point.

    The hovered node always becomes the parent. A pointer in the upper part of
    the element (fraction at or below ``split``) prepends, anything lower
    appends.
    """

    def __init__(self, split: float = DEFAULT_DROP_SPLIT) -> None:
        self.split = split

    def resolve(self, target_id: str, fraction: float) -> DropTarget:
        if math.isnan(fraction):
            fraction = 0.0
        fraction = max(0.0, min(1.0, fraction))
        return DropTarget(target_id, 0 if fraction <= self.split else None)


@dataclass(slots=True)
class DragSession:
    resolver: DropResolver = field(default_factory=DropResolver)
    phase: DragPhase = DragPhase.IDLE
    source_node_id: str | None = None
    source_type: str | None = None
    target: DropTarget | None = None

    @property
    def active(self) -> bool:
        return self.phase in (DragPhase.DRAGGING, DragPhase.HOVERING)

    def start_node(self, node_id: str) -> None:
        self._start()
        self.source_node_id = node_id

    def start_type(self, node_type: str) -> None:
        self._start()
        self.source_type = node_type

    def over(self, target_id: str, fraction: float) -> DropTarget | None:
        if not self.active:
            return None
        self.target = self.resolver.resolve(target_id, fraction)
        self.phase = DragPhase.HOVERING
        return self.target

    def leave(self) -> None:
        if self.phase is DragPhase.HOVERING:
            self.target = None
            self.phase = DragPhase.DRAGGING

    def drop(self) -> DropTarget | None:
        """Finish the session, returning the target to commit to (None if not hovering)."""

        if not self.active:
            return None
        target = self.target
        self.phase = DragPhase.DROPPED if target is not None else DragPhase.CANCELLED
        return target

    def finish(self) -> None:
        """End the session as dropped without a resolved target (free-form canvas drops)."""

        if self.active:
            self.phase = DragPhase.DROPPED
            self.target = None

    def cancel(self) -> bool:
        if not self.active:
            return False
        self.phase = DragPhase.CANCELLED
        self.target = None
        return True

    def _start(self) -> None:
        self.phase = DragPhase.DRAGGING
        self.source_node_id = None
        self.source_type = None
        self.target = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "phase": self.phase.value,
            "source_node_id": self.source_node_id,
            "source_type": self.source_type,
            "target": self.target.to_dict() if self.target else None,
        }


@dataclass(slots=True)
class ResizeSession:
    node_id: str
    constraints: ResizeConstraints = field(default_factory=ResizeConstraints)
    width: float | None = None
    height: float | None = None

    def preview(self, width: float | None, height: float | None) -> tuple[float | None, float | None]:
        self.width, self.height = self.constraints.clamp(width, height)
        return self.width, self.height

    def style_changes(self) -> dict[str, str]:
        changes: dict[str, str] = {}
        if self.width is not None:
            changes["width"] = _px(self.width)
        if self.height is not None:
            changes["height"] = _px(self.height)
        return changes

    def to_dict(self) -> dict[str, Any]:
        return {"node_id": self.node_id, "width": self.width, "height": self.height}


def snap(value: float, grid_size: int = DEFAULT_GRID_SIZE, *, enabled: bool = True) -> float:
    if not enabled or grid_size <= 0:
        return value
    return round(value / grid_size) * grid_size


def _px(value: float) -> str:
    if float(value).is_integer():
        return f"{int(value)}px"
    return f"{value}px"
