"""Linear undo/redo history over tree snapshots."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Optional

from .config import DEFAULT_HISTORY_LIMIT
from .logging import get_logger
from .models import Node

__all__ = ["HistoryEntry", "HistoryManager"]

logger = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class HistoryEntry:
    """A snapshot plus the label of the step that leads away from it.

    Snapshots are the immutable trees themselves; consecutive entries share
    every subtree a mutation did not touch.
    """

    tree: Node
    label: str


class HistoryManager:
    """Keeps ``past``, ``current`` and ``future`` trees.

    Only trees that differ from ``current`` are committed, so refused
    mutations (which return the current tree object) never create an entry.
    ``limit`` caps the undo depth; 0 means unbounded.
    """

    def __init__(self, initial: Node, *, limit: int = DEFAULT_HISTORY_LIMIT) -> None:
        self.limit = limit
        self._current = initial
        self._past: list[HistoryEntry] = []
        self._future: list[HistoryEntry] = []

        self.on_state_changed: Optional[Callable[[], None]] = None

    @property
    def current(self) -> Node:
        return self._current

    @property
    def past(self) -> list[Node]:
        return [entry.tree for entry in self._past]

    @property
    def future(self) -> list[Node]:
        return [entry.tree for entry in self._future]

    @property
    def can_undo(self) -> bool:
        return len(self._past) > 0

    @property
    def can_redo(self) -> bool:
        return len(self._future) > 0

    @property
    def undo_label(self) -> str | None:
        return self._past[-1].label if self._past else None

    @property
    def redo_label(self) -> str | None:
        return self._future[-1].label if self._future else None

    def commit(self, tree: Node, label: str = "Edit") -> bool:
        if tree is self._current:
            return False
        self._past.append(HistoryEntry(self._current, label))
        if self.limit > 0:
            while len(self._past) > self.limit:
                self._past.pop(0)
        self._future.clear()
        self._current = tree
        logger.debug("history.commit", extra={"context": {"label": label, "past": len(self._past)}})
        self._notify_changed()
        return True

    def undo(self) -> Node | None:
        if not self._past:
            return None
        entry = self._past.pop()
        self._future.append(HistoryEntry(self._current, entry.label))
        self._current = entry.tree
        logger.debug("history.undo", extra={"context": {"label": entry.label}})
        self._notify_changed()
        return self._current

    def redo(self) -> Node | None:
        if not self._future:
            return None
        entry = self._future.pop()
        self._past.append(HistoryEntry(self._current, entry.label))
        self._current = entry.tree
        logger.debug("history.redo", extra={"context": {"label": entry.label}})
        self._notify_changed()
        return self._current

    def reset(self, tree: Node) -> None:
        """Replace the current tree and drop all history."""

        self._past.clear()
        self._future.clear()
        self._current = tree
        self._notify_changed()

    def to_dict(self) -> dict[str, object]:
        return {
            "can_undo": self.can_undo,
            "can_redo": self.can_redo,
            "undo_label": self.undo_label,
            "redo_label": self.redo_label,
            "past": len(self._past),
            "future": len(self._future),
        }

    def _notify_changed(self) -> None:
        if self.on_state_changed:
            self.on_state_changed()
