from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from threading import RLock
from time import monotonic
from typing import Mapping

_DEFAULT_OPERATIONS = ("insert", "update", "remove", "move", "paste", "undo", "redo", "load")

_registry_lock = RLock()
_registry: "MetricsRegistry | None" = None


@dataclass(frozen=True)
class MetricsSnapshot:
    """Immutable snapshot of the current metrics state."""

    operations: Mapping[str, int]
    refusals: Mapping[str, int]
    errors: Mapping[str, int]
    uptime_seconds: float


class MetricsRegistry:
    """Thread-safe counters for designer operations, refusals and errors."""

    __slots__ = ("_operations", "_refusals", "_errors", "_lock", "_started_at")

    def __init__(self) -> None:
        self._operations: Counter[str] = Counter()
        self._refusals: Counter[str] = Counter()
        self._errors: Counter[str] = Counter()
        self._lock = RLock()
        self._started_at = monotonic()

    def record_operation(self, name: str, *, count: int = 1) -> None:
        if count <= 0:
            return
        key = name.strip().lower()
        if not key:
            return
        with self._lock:
            self._operations[key] += count

    def record_refusal(self, reason: str, *, count: int = 1) -> None:
        if count <= 0:
            return
        key = reason.strip().upper() or "UNKNOWN"
        with self._lock:
            self._refusals[key] += count

    def record_error(self, code: str, *, count: int = 1) -> None:
        if count <= 0:
            return
        key = code.strip().upper()
        if not key:
            return
        with self._lock:
            self._errors[key] += count

    def snapshot(self) -> MetricsSnapshot:
        with self._lock:
            operations: dict[str, int] = {name: int(self._operations.get(name, 0)) for name in _DEFAULT_OPERATIONS}
            for name, value in self._operations.items():
                if name not in operations:
                    operations[name] = int(value)
            refusals = {reason: int(value) for reason, value in self._refusals.items()}
            errors = {code: int(value) for code, value in self._errors.items()}
            uptime = max(monotonic() - self._started_at, 0.0)
        return MetricsSnapshot(operations=operations, refusals=refusals, errors=errors, uptime_seconds=uptime)

    def reset(self) -> None:
        with self._lock:
            self._operations.clear()
            self._refusals.clear()
            self._errors.clear()
            self._started_at = monotonic()


def install_registry(registry: MetricsRegistry | None) -> None:
    """Install the active metrics registry (or disable metrics when None)."""

    with _registry_lock:
        global _registry
        _registry = registry


def get_registry_optional() -> MetricsRegistry | None:
    with _registry_lock:
        return _registry


def record_operation(name: str, *, count: int = 1) -> None:
    registry = get_registry_optional()
    if registry is not None:
        registry.record_operation(name, count=count)


def record_refusal(reason: str, *, count: int = 1) -> None:
    registry = get_registry_optional()
    if registry is not None:
        registry.record_refusal(reason, count=count)


def record_error(code: str, *, count: int = 1) -> None:
    registry = get_registry_optional()
    if registry is not None:
        registry.record_error(code, count=count)


def format_prometheus(snapshot: MetricsSnapshot, *, nodes_current: int, history_past: int, history_future: int) -> str:
    """Render metrics using Prometheus exposition format (text, version 0.0.4)."""

    lines: list[str] = []

    lines.append("# HELP schema_designer_ops_total Committed and attempted designer operations by type.")
    lines.append("# TYPE schema_designer_ops_total counter")
    for name in sorted(snapshot.operations):
        lines.append(f'schema_designer_ops_total{{op="{name}"}} {snapshot.operations[name]}')

    lines.append("# HELP schema_designer_refusals_total Operations refused without changing the tree, by reason.")
    lines.append("# TYPE schema_designer_refusals_total counter")
    if snapshot.refusals:
        for reason in sorted(snapshot.refusals):
            lines.append(f'schema_designer_refusals_total{{reason="{reason}"}} {snapshot.refusals[reason]}')
    else:
        lines.append('schema_designer_refusals_total{reason="none"} 0')

    lines.append("# HELP schema_designer_errors_total Total errors returned, grouped by error code.")
    lines.append("# TYPE schema_designer_errors_total counter")
    if snapshot.errors:
        for code in sorted(snapshot.errors):
            lines.append(f'schema_designer_errors_total{{code="{code}"}} {snapshot.errors[code]}')
    else:
        lines.append('schema_designer_errors_total{code="none"} 0')

    lines.append("# HELP schema_designer_nodes_current Node count of the current document.")
    lines.append("# TYPE schema_designer_nodes_current gauge")
    lines.append(f"schema_designer_nodes_current {nodes_current}")

    lines.append("# HELP schema_designer_history_entries Undo and redo entries held in history.")
    lines.append("# TYPE schema_designer_history_entries gauge")
    lines.append(f'schema_designer_history_entries{{stack="past"}} {history_past}')
    lines.append(f'schema_designer_history_entries{{stack="future"}} {history_future}')

    lines.append("# HELP schema_designer_uptime_seconds Server uptime in seconds.")
    lines.append("# TYPE schema_designer_uptime_seconds gauge")
    lines.append(f"schema_designer_uptime_seconds {snapshot.uptime_seconds:.6f}")

    return "\n".join(lines) + "\n"
