"""Keyboard shortcut resolution."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Any, Mapping

__all__ = ["EDITABLE_TAGS", "KeyCommand", "KeyEvent", "resolve_command"]

EDITABLE_TAGS = frozenset({"input", "textarea", "select"})


class KeyCommand(str, enum.Enum):
    UNDO = "undo"
    REDO = "redo"
    COPY = "copy"
    CUT = "cut"
    PASTE = "paste"
    DUPLICATE = "duplicate"
    REMOVE = "remove"
    MOVE_UP = "move_up"
    MOVE_DOWN = "move_down"
    CANCEL = "cancel"


@dataclass(frozen=True, slots=True)
class KeyEvent:
    key: str
    ctrl: bool = False
    meta: bool = False
    shift: bool = False
    alt: bool = False
    target_tag: str | None = None
    content_editable: bool = False

    @property
    def command_modifier(self) -> bool:
        return self.ctrl or self.meta

    @property
    def in_editable_target(self) -> bool:
        if self.content_editable:
            return True
        return (self.target_tag or "").lower() in EDITABLE_TAGS

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "KeyEvent":
        key = payload.get("key")
        if not isinstance(key, str) or not key:
            raise ValueError("key event requires a non-empty 'key'")
        return cls(
            key=key,
            ctrl=bool(payload.get("ctrl", False)),
            meta=bool(payload.get("meta", False)),
            shift=bool(payload.get("shift", False)),
            alt=bool(payload.get("alt", False)),
            target_tag=payload.get("target_tag"),
            content_editable=bool(payload.get("content_editable", False)),
        )


_MODIFIED_KEYS = {
    "c": KeyCommand.COPY,
    "x": KeyCommand.CUT,
    "v": KeyCommand.PASTE,
    "d": KeyCommand.DUPLICATE,
    "y": KeyCommand.REDO,
    "arrowup": KeyCommand.MOVE_UP,
    "arrowdown": KeyCommand.MOVE_DOWN,
}


def resolve_command(event: KeyEvent) -> KeyCommand | None:
    """Map a key event to a designer command.

    Nothing resolves while focus is in an editable control, except Escape,
    which only ever cancels an in-progress gesture.
    """

    key = event.key.lower()
    if key == "escape":
        return KeyCommand.CANCEL
    if event.in_editable_target:
        return None
    if key in ("delete", "backspace") and not event.command_modifier:
        return KeyCommand.REMOVE
    if not event.command_modifier:
        return None
    if key == "z":
        return KeyCommand.REDO if event.shift else KeyCommand.UNDO
    return _MODIFIED_KEYS.get(key)
