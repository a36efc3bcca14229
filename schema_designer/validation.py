"""Document import and export.

Import is strict: a document that is not valid JSON, is nested too deeply,
violates the node shape or repeats an id raises :class:`ValidationError` with
one entry per problem under ``details["errors"]``. Nodes that simply lack an
id are given one.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from typing import Any

import jsonschema

from .config import DEFAULT_MAX_DEPTH
from .errors import ValidationError
from .identity import IdentityAssigner
from .logging import get_logger
from .models import CHILD_SLOT_KEYS, Node
from .tree import iter_nodes

__all__ = [
    "NODE_SCHEMA",
    "check_unique_ids",
    "dumps_document",
    "export_document",
    "parse_document",
    "validate_document_shape",
]

logger = get_logger(__name__)

# Shape of a single node. Children are walked explicitly so nesting depth is
# bounded here and not by the validator's recursion.
NODE_SCHEMA: dict[str, Any] = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "type": "object",
    "required": ["type"],
    "properties": {
        "id": {"type": "string", "minLength": 1},
        "type": {"type": "string", "minLength": 1},
        "body": {"$ref": "#/$defs/slot"},
        "children": {"$ref": "#/$defs/slot"},
    },
    "not": {"required": ["body", "children"]},
    "$defs": {
        "slot": {
            "anyOf": [
                {"type": "null"},
                {"type": "object"},
                {"type": "array", "items": {"type": "object"}},
            ]
        }
    },
}

_VALIDATOR_CLS = jsonschema.validators.validator_for(NODE_SCHEMA)
_VALIDATOR_CLS.check_schema(NODE_SCHEMA)
_NODE_VALIDATOR = _VALIDATOR_CLS(NODE_SCHEMA)


def validate_document_shape(payload: Any, *, max_depth: int = DEFAULT_MAX_DEPTH) -> list[dict[str, Any]]:
    """Return every shape problem found in ``payload`` as ``{"path", "message"}`` dicts."""

    problems: list[dict[str, Any]] = []
    stack: list[tuple[Any, int, str]] = [(payload, 0, "$")]
    while stack:
        value, depth, path = stack.pop()
        if depth > max_depth:
            problems.append({"path": path, "message": f"Nesting exceeds the maximum depth of {max_depth}"})
            continue
        errors = sorted(_NODE_VALIDATOR.iter_errors(value), key=lambda err: err.json_path)
        for error in errors:
            problems.append({"path": path + error.json_path[1:], "message": error.message})
        if not isinstance(value, Mapping):
            continue
        pending: list[tuple[Any, int, str]] = []
        for key in CHILD_SLOT_KEYS:
            slot = value.get(key)
            slot_path = f"{path}.{key}"
            if isinstance(slot, Mapping):
                pending.append((slot, depth + 1, slot_path))
            elif isinstance(slot, list):
                pending.extend(
                    (item, depth + 1, f"{slot_path}[{index}]")
                    for index, item in enumerate(slot)
                    if isinstance(item, Mapping)
                )
        stack.extend(reversed(pending))
    return problems


def parse_document(
    payload: Mapping[str, Any] | str,
    *,
    max_depth: int = DEFAULT_MAX_DEPTH,
    assigner: IdentityAssigner | None = None,
) -> Node:
    """Parse a wire-format document into a fully identified tree."""

    if isinstance(payload, str):
        try:
            payload = json.loads(payload)
        except json.JSONDecodeError as exc:
            raise ValidationError(
                f"Invalid JSON: {exc.msg}",
                details={"errors": [{"path": "$", "message": exc.msg, "line": exc.lineno, "column": exc.colno}]},
            ) from exc

    problems = validate_document_shape(payload, max_depth=max_depth)
    if problems:
        logger.debug("document.invalid", extra={"context": {"problems": len(problems)}})
        raise ValidationError(
            f"Document failed validation with {len(problems)} problem(s)",
            details={"errors": problems},
        )

    root = Node.from_dict(payload, max_depth=max_depth)
    check_unique_ids(root, max_depth=max_depth)

    assigner = assigner or IdentityAssigner(max_depth=max_depth)
    return assigner.ensure_ids(root)


def check_unique_ids(root: Node, *, max_depth: int = DEFAULT_MAX_DEPTH) -> None:
    """Raise :class:`ValidationError` listing every node whose id repeats an earlier one."""

    seen: set[str] = set()
    duplicates: list[dict[str, Any]] = []
    for node, path in iter_nodes(root, max_depth=max_depth):
        if node.id is None:
            continue
        if node.id in seen:
            duplicates.append({"path": _index_path(path), "message": f"Duplicate id '{node.id}'"})
        seen.add(node.id)
    if duplicates:
        raise ValidationError("Document contains duplicate ids", details={"errors": duplicates})


def export_document(tree: Node, *, children_key: str = "body") -> dict[str, Any]:
    if children_key not in CHILD_SLOT_KEYS:
        raise ValidationError(f"Unsupported children key '{children_key}'", details={"children_key": children_key})
    return tree.to_dict(children_key=children_key)


def dumps_document(tree: Node, *, children_key: str = "body", indent: int | None = 2) -> str:
    return json.dumps(export_document(tree, children_key=children_key), indent=indent, ensure_ascii=False)


def _index_path(path: tuple[int, ...]) -> str:
    return "$" + "".join(f".children[{index}]" for index in path)
