"""Node identity assignment."""

from __future__ import annotations

import re
from typing import Callable, Iterable
from uuid import uuid4

from .config import DEFAULT_ID_LENGTH, DEFAULT_MAX_DEPTH
from .errors import INTERNAL_ERROR, SchemaDesignerError, ValidationError
from .models import Node
from .tree import collect_ids

__all__ = ["IdentityAssigner", "ensure_ids", "reassign_ids"]

_MAX_ATTEMPTS = 10_000
_PREFIX_SANITIZER = re.compile(r"[^A-Za-z0-9_-]+")


class IdentityAssigner:
    """Hands out ``<type>-<token>`` ids that are unique against a set of taken ids."""

    def __init__(
        self,
        *,
        id_length: int = DEFAULT_ID_LENGTH,
        max_depth: int = DEFAULT_MAX_DEPTH,
        token_factory: Callable[[], str] | None = None,
    ) -> None:
        self.id_length = id_length
        self.max_depth = max_depth
        self._token_factory = token_factory or (lambda: uuid4().hex)

    def generate(self, node_type: str, taken: set[str]) -> str:
        """Return a fresh id for ``node_type`` and add it to ``taken``."""

        prefix = _PREFIX_SANITIZER.sub("-", node_type).strip("-") or "node"
        attempts = 0
        while True:
            candidate = f"{prefix}-{self._token_factory()[: self.id_length]}"
            if candidate not in taken:
                taken.add(candidate)
                return candidate
            attempts += 1
            if attempts > _MAX_ATTEMPTS:
                raise SchemaDesignerError(INTERNAL_ERROR, f"Unable to generate unique id for type '{node_type}'")

    def ensure_ids(self, node: Node, *, taken: Iterable[str] = ()) -> Node:
        """Give every id-less node in ``node`` a fresh id.

        Existing ids are kept. The result avoids both the ids already present in
        ``node`` and ``taken``. When nothing is missing the same object comes
        back, which makes the operation idempotent.
        """

        reserved = set(taken)
        reserved.update(collect_ids(node, max_depth=self.max_depth))
        return self._fill(node, reserved, depth=0)

    def reassign_ids(self, node: Node, *, taken: Iterable[str] = ()) -> Node:
        """Return a copy of ``node`` where every id is freshly generated."""

        reserved = set(taken)
        return self._replace(node, reserved, depth=0)

    def _fill(self, node: Node, taken: set[str], *, depth: int) -> Node:
        self._check_depth(depth)
        children = tuple(self._fill(child, taken, depth=depth + 1) for child in node.children)
        changed = any(new is not old for new, old in zip(children, node.children))
        if node.id is None:
            return Node(id=self.generate(node.type, taken), type=node.type, props=node.props, children=children)
        if changed:
            return node.with_children(children)
        return node

    def _replace(self, node: Node, taken: set[str], *, depth: int) -> Node:
        self._check_depth(depth)
        node_id = self.generate(node.type, taken)
        children = tuple(self._replace(child, taken, depth=depth + 1) for child in node.children)
        return Node(id=node_id, type=node.type, props=node.props, children=children)

    def _check_depth(self, depth: int) -> None:
        if depth > self.max_depth:
            raise ValidationError(
                f"Node nesting exceeds the maximum depth of {self.max_depth}",
                details={"max_depth": self.max_depth},
            )


_DEFAULT_ASSIGNER = IdentityAssigner()


def ensure_ids(node: Node, *, taken: Iterable[str] = ()) -> Node:
    return _DEFAULT_ASSIGNER.ensure_ids(node, taken=taken)


def reassign_ids(node: Node, *, taken: Iterable[str] = ()) -> Node:
    return _DEFAULT_ASSIGNER.reassign_ids(node, taken=taken)
