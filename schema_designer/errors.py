"""Centralized error codes, refusal reasons and exception types."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping

__all__ = [
    "NOT_FOUND",
    "VALIDATION_ERROR",
    "CONFIG_ERROR",
    "STORAGE_ERROR",
    "INVALID_ARGUMENT",
    "INTERNAL_ERROR",
    "CYCLE_DETECTED",
    "ROOT_PROTECTED",
    "DEPTH_LIMIT_EXCEEDED",
    "DUPLICATE_ID",
    "AT_BOUNDARY",
    "NO_CHANGE",
    "NO_SELECTION",
    "CLIPBOARD_EMPTY",
    "UNKNOWN_COMPONENT",
    "NO_DRAG_SESSION",
    "NOT_RESIZABLE",
    "SchemaDesignerError",
    "ValidationError",
    "error_payload",
]

# Error codes surfaced to callers.
NOT_FOUND = "NOT_FOUND"
VALIDATION_ERROR = "VALIDATION_ERROR"
CONFIG_ERROR = "CONFIG_ERROR"
STORAGE_ERROR = "STORAGE_ERROR"
INVALID_ARGUMENT = "INVALID_ARGUMENT"
INTERNAL_ERROR = "INTERNAL_ERROR"

# Refusal reasons. A refused mutation leaves the tree untouched and is never raised.
CYCLE_DETECTED = "CYCLE_DETECTED"
ROOT_PROTECTED = "ROOT_PROTECTED"
DEPTH_LIMIT_EXCEEDED = "DEPTH_LIMIT_EXCEEDED"
DUPLICATE_ID = "DUPLICATE_ID"
AT_BOUNDARY = "AT_BOUNDARY"
NO_CHANGE = "NO_CHANGE"
NO_SELECTION = "NO_SELECTION"
CLIPBOARD_EMPTY = "CLIPBOARD_EMPTY"
UNKNOWN_COMPONENT = "UNKNOWN_COMPONENT"
NO_DRAG_SESSION = "NO_DRAG_SESSION"
NOT_RESIZABLE = "NOT_RESIZABLE"


@dataclass(slots=True)
class SchemaDesignerError(Exception):
    """Domain-specific exception carrying an error code and message."""

    code: str
    message: str
    details: Mapping[str, Any] | None = None

    def __str__(self) -> str:  # pragma: no cover - delegation to message
        return self.message

    def to_dict(self) -> dict[str, Any]:
        return error_payload(self.code, self.message, details=self.details)


class ValidationError(SchemaDesignerError):
    """Raised when an imported or exported document is structurally invalid."""

    def __init__(self, message: str, *, details: Mapping[str, Any] | None = None) -> None:
        super().__init__(VALIDATION_ERROR, message, details)


def error_payload(code: str, message: str, *, details: Mapping[str, Any] | None = None) -> dict[str, Any]:
    """Build a structured error payload used in tool responses."""

    payload: dict[str, Any] = {
        "code": code,
        "message": message,
    }
    if details:
        payload["details"] = dict(details)
    return payload
