"""Single-slot clipboard for subtrees."""

from __future__ import annotations

from .errors import CLIPBOARD_EMPTY, NOT_FOUND, ROOT_PROTECTED
from .logging import get_logger
from .models import Node
from .mutations import MutationEngine, MutationResult
from .tree import collect_ids, find, parent_of

__all__ = ["ClipboardManager"]

logger = get_logger(__name__)


class ClipboardManager:
    """Copy, cut, duplicate and paste on top of a :class:`MutationEngine`.

    The register holds a detached copy of a subtree. It is independent of any
    live tree and is never mutated, so one copy can be pasted many times.
    """

    def __init__(self, engine: MutationEngine | None = None) -> None:
        self.engine = engine or MutationEngine()
        self._register: Node | None = None

    @property
    def register(self) -> Node | None:
        return self._register

    @property
    def can_paste(self) -> bool:
        return self._register is not None

    def clear(self) -> None:
        self._register = None

    def copy(self, tree: Node, node_id: str) -> bool:
        node = find(tree, node_id, max_depth=self.engine.max_depth)
        if node is None:
            return False
        self._register = node.detached_copy()
        logger.debug("clipboard.copy", extra={"context": {"node_id": node_id}})
        return True

    def cut(self, tree: Node, node_id: str) -> MutationResult:
        if node_id == tree.id:
            return MutationResult(tree, False, reason=ROOT_PROTECTED, node_id=node_id)
        if not self.copy(tree, node_id):
            return MutationResult(tree, False, reason=NOT_FOUND, node_id=node_id)
        return self.engine.apply_remove(tree, node_id)

    def duplicate(self, tree: Node, node_id: str) -> MutationResult:
        if node_id == tree.id:
            return MutationResult(tree, False, reason=ROOT_PROTECTED, node_id=node_id)
        located = parent_of(tree, node_id, max_depth=self.engine.max_depth)
        if located is None:
            return MutationResult(tree, False, reason=NOT_FOUND, node_id=node_id)
        parent, index = located
        clone = self._fresh_clone(parent.children[index], tree)
        return self.engine.apply_insert(tree, parent.id, clone, index + 1)

    def paste(self, tree: Node, target_parent_id: str) -> MutationResult:
        if self._register is None:
            return MutationResult(tree, False, reason=CLIPBOARD_EMPTY, node_id=target_parent_id)
        clone = self._fresh_clone(self._register, tree)
        return self.engine.apply_insert(tree, target_parent_id, clone)

    def _fresh_clone(self, node: Node, tree: Node) -> Node:
        taken = collect_ids(tree, max_depth=self.engine.max_depth)
        return self.engine.assigner.reassign_ids(node.detached_copy(), taken=taken)
