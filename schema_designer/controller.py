"""Designer session orchestration.

:class:`DesignerController` owns the one current tree of a designer session
together with its history, clipboard, selection and gesture state. Every
public operation returns a :class:`MutationResult`; ``applied`` says whether
the request took effect and ``reason`` names the refusal otherwise. Only
results that change the tree are committed to history and pushed to
listeners.
"""

from __future__ import annotations

from typing import Any, Callable, Mapping

from .catalog import ComponentCatalog, StaticCatalog, build_node
from .clipboard import ClipboardManager
from .config import DesignerOptions
from .drag import DragSession, DropResolver, ResizeSession, snap
from .errors import (
    NO_CHANGE,
    NO_DRAG_SESSION,
    NO_SELECTION,
    NOT_FOUND,
    NOT_RESIZABLE,
    ROOT_PROTECTED,
    UNKNOWN_COMPONENT,
)
from .history import HistoryManager
from .identity import IdentityAssigner
from .keyboard import KeyCommand, KeyEvent, resolve_command
from .logging import get_logger
from .models import Node
from .mutations import MutationEngine, MutationResult
from .selection import SelectionModel
from .tree import count_nodes, find
from .validation import check_unique_ids, export_document, parse_document

__all__ = ["DEFAULT_ROOT", "DesignerController", "Listener"]

logger = get_logger(__name__)

Listener = Callable[[Node], None]

DEFAULT_ROOT: dict[str, Any] = {"id": "root", "type": "div"}


class DesignerController:
    def __init__(
        self,
        document: Node | Mapping[str, Any] | str | None = None,
        *,
        options: DesignerOptions | None = None,
        catalog: ComponentCatalog | None = None,
        assigner: IdentityAssigner | None = None,
    ) -> None:
        self.options = options or DesignerOptions()
        self.assigner = assigner or IdentityAssigner(id_length=self.options.id_length, max_depth=self.options.max_depth)
        self.engine = MutationEngine(self.assigner, max_depth=self.options.max_depth)
        self.clipboard = ClipboardManager(self.engine)
        self.catalog: ComponentCatalog = catalog if catalog is not None else StaticCatalog.builtin()
        self.drag = DragSession(DropResolver(self.options.drop_split))
        self.resize: ResizeSession | None = None
        self._listeners: list[Listener] = []

        tree = self._parse(document if document is not None else DEFAULT_ROOT)
        self.history = HistoryManager(tree, limit=self.options.history_limit)
        self.selection = SelectionModel(root_id=tree.id)

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------
    @property
    def tree(self) -> Node:
        return self.history.current

    @property
    def root_id(self) -> str:
        assert self.tree.id is not None
        return self.tree.id

    @property
    def can_undo(self) -> bool:
        return self.history.can_undo

    @property
    def can_redo(self) -> bool:
        return self.history.can_redo

    @property
    def can_paste(self) -> bool:
        return self.clipboard.can_paste

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register ``listener`` for every new current tree; returns an unsubscribe callable."""

        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def state(self) -> dict[str, Any]:
        return {
            "root_id": self.root_id,
            "node_count": count_nodes(self.tree, max_depth=self.options.max_depth),
            "selection": self.selection.to_dict(),
            "history": self.history.to_dict(),
            "can_paste": self.can_paste,
            "drag": self.drag.to_dict(),
            "resize": self.resize.to_dict() if self.resize else None,
        }

    # ------------------------------------------------------------------
    # Document import / export
    # ------------------------------------------------------------------
    def load_document(self, document: Node | Mapping[str, Any] | str) -> Node:
        """Replace the document. History, selection and gestures reset; the clipboard stays."""

        tree = self._parse(document)
        self.history.reset(tree)
        self.selection = SelectionModel(root_id=tree.id)
        self.drag.cancel()
        self.resize = None
        logger.info("document.loaded", extra={"context": {"root_id": tree.id}})
        self._notify()
        return tree

    def export_document(self) -> dict[str, Any]:
        return export_document(self.tree, children_key=self.options.children_key)

    # ------------------------------------------------------------------
    # Structural edits
    # ------------------------------------------------------------------
    def insert(
        self,
        parent_id: str,
        node: Node | Mapping[str, Any],
        index: int | None = None,
    ) -> MutationResult:
        node_type = node.type if isinstance(node, Node) else node.get("type", "node")
        result = self.engine.apply_insert(self.tree, parent_id, node, index)
        return self._commit(result, f"Insert {node_type}", select=True)

    def insert_component(
        self,
        component_type: str,
        parent_id: str | None = None,
        index: int | None = None,
    ) -> MutationResult:
        template = self.catalog.get_template(component_type)
        if template is None:
            return self._refuse(UNKNOWN_COMPONENT, None)
        return self.insert(parent_id or self.root_id, build_node(template), index)

    def update(self, node_id: str, props: Mapping[str, Any]) -> MutationResult:
        return self._commit(self.engine.apply_update(self.tree, node_id, props), "Update node")

    def remove(self, node_id: str | None = None) -> MutationResult:
        node_id = node_id or self.selection.selected_node_id
        if node_id is None:
            return self._refuse(NO_SELECTION, None)
        return self._commit(self.engine.apply_remove(self.tree, node_id), "Remove node")

    def move(self, node_id: str, parent_id: str, index: int | None = None) -> MutationResult:
        return self._commit(self.engine.apply_move(self.tree, node_id, parent_id, index), "Move node")

    def move_sibling(self, node_id: str | None, direction: str) -> MutationResult:
        node_id = node_id or self.selection.selected_node_id
        if node_id is None:
            return self._refuse(NO_SELECTION, None)
        result = self.engine.apply_move_sibling(self.tree, node_id, direction)
        return self._commit(result, f"Move node {direction}")

    # ------------------------------------------------------------------
    # Clipboard
    # ------------------------------------------------------------------
    def copy(self, node_id: str | None = None) -> MutationResult:
        node_id = node_id or self.selection.selected_node_id
        if node_id is None:
            return self._refuse(NO_SELECTION, None)
        if not self.clipboard.copy(self.tree, node_id):
            return self._refuse(NOT_FOUND, node_id)
        return MutationResult(self.tree, True, node_id=node_id)

    def cut(self, node_id: str | None = None) -> MutationResult:
        node_id = node_id or self.selection.selected_node_id
        if node_id is None:
            return self._refuse(NO_SELECTION, None)
        return self._commit(self.clipboard.cut(self.tree, node_id), "Cut node")

    def duplicate(self, node_id: str | None = None) -> MutationResult:
        node_id = node_id or self.selection.selected_node_id
        if node_id is None:
            return self._refuse(NO_SELECTION, None)
        return self._commit(self.clipboard.duplicate(self.tree, node_id), "Duplicate node", select=True)

    def paste(self, target_parent_id: str | None = None) -> MutationResult:
        if target_parent_id is None:
            target_parent_id = self._default_paste_target()
        return self._commit(self.clipboard.paste(self.tree, target_parent_id), "Paste node", select=True)

    # ------------------------------------------------------------------
    # History
    # ------------------------------------------------------------------
    def undo(self) -> MutationResult:
        label = self.history.undo_label
        if self.history.undo() is None:
            return self._refuse(NO_CHANGE, None)
        self._after_history_step("history.undo", label)
        return MutationResult(self.tree, True)

    def redo(self) -> MutationResult:
        label = self.history.redo_label
        if self.history.redo() is None:
            return self._refuse(NO_CHANGE, None)
        self._after_history_step("history.redo", label)
        return MutationResult(self.tree, True)

    # ------------------------------------------------------------------
    # Selection
    # ------------------------------------------------------------------
    def select(self, node_id: str | None) -> MutationResult:
        if node_id is not None and find(self.tree, node_id, max_depth=self.options.max_depth) is None:
            return self._refuse(NOT_FOUND, node_id)
        self.selection.select(node_id)
        logger.debug("selection.changed", extra={"context": {"node_id": node_id}})
        return MutationResult(self.tree, True, node_id=node_id)

    def hover(self, node_id: str | None) -> MutationResult:
        if node_id is not None and find(self.tree, node_id, max_depth=self.options.max_depth) is None:
            return self._refuse(NOT_FOUND, node_id)
        self.selection.hover(node_id)
        return MutationResult(self.tree, True, node_id=node_id)

    # ------------------------------------------------------------------
    # Drag and drop
    # ------------------------------------------------------------------
    def start_drag(self, *, node_id: str | None = None, node_type: str | None = None) -> MutationResult:
        if (node_id is None) == (node_type is None):
            raise ValueError("start_drag needs exactly one of node_id or node_type")
        if node_id is not None:
            if node_id == self.root_id:
                return self._refuse(ROOT_PROTECTED, node_id)
            if find(self.tree, node_id, max_depth=self.options.max_depth) is None:
                return self._refuse(NOT_FOUND, node_id)
            self.selection.start_node_drag(node_id)
            self.drag.start_node(node_id)
        else:
            assert node_type is not None
            if self.catalog.get_template(node_type) is None:
                return self._refuse(UNKNOWN_COMPONENT, None)
            self.selection.start_type_drag(node_type)
            self.drag.start_type(node_type)
        logger.debug("drag.start", extra={"context": {"node_id": node_id, "node_type": node_type}})
        return MutationResult(self.tree, True, node_id=node_id)

    def drag_over(self, target_id: str, fraction: float) -> MutationResult:
        if not self.drag.active:
            return self._refuse(NO_DRAG_SESSION, target_id)
        if find(self.tree, target_id, max_depth=self.options.max_depth) is None:
            self.drag.leave()
            self.selection.hover(None)
            return self._refuse(NOT_FOUND, target_id)
        target = self.drag.over(target_id, fraction)
        self.selection.hover(target_id)
        logger.debug("drag.over", extra={"context": target.to_dict() if target else {}})
        return MutationResult(self.tree, True, node_id=target_id)

    def drag_leave(self) -> None:
        self.drag.leave()
        self.selection.hover(None)

    def drop(self) -> MutationResult:
        if not self.drag.active:
            return self._refuse(NO_DRAG_SESSION, None)
        source_node_id = self.drag.source_node_id
        source_type = self.drag.source_type
        target = self.drag.drop()
        self.selection.end_drag()
        if target is None:
            return self._refuse(NO_CHANGE, source_node_id)
        if source_node_id is not None:
            return self.move(source_node_id, target.parent_id, target.index)
        assert source_type is not None
        return self.insert_component(source_type, target.parent_id, target.index)

    def drop_on_canvas(self, x: float, y: float) -> MutationResult:
        """Drop the dragged item at a free-form canvas point under the root."""

        if not self.drag.active:
            return self._refuse(NO_DRAG_SESSION, None)
        source_node_id = self.drag.source_node_id
        source_type = self.drag.source_type
        self.drag.finish()
        self.selection.end_drag()
        position = {
            "position": "absolute",
            "left": f"{snap(x, self.options.grid_size, enabled=self.options.snap_to_grid):g}px",
            "top": f"{snap(y, self.options.grid_size, enabled=self.options.snap_to_grid):g}px",
        }
        if source_node_id is not None:
            node = find(self.tree, source_node_id, max_depth=self.options.max_depth)
            if node is None:
                return self._refuse(NOT_FOUND, source_node_id)
            style = {**_style_of(node.props), **position}
            return self._commit(self.engine.apply_update(self.tree, source_node_id, {"style": style}), "Move node")

        assert source_type is not None
        template = self.catalog.get_template(source_type)
        if template is None:
            return self._refuse(UNKNOWN_COMPONENT, None)
        node = build_node(template)
        node = node.with_props({**node.props, "style": {**_style_of(node.props), **position}})
        return self.insert(self.root_id, node)

    def cancel_drag(self) -> bool:
        cancelled = self.drag.cancel()
        self.selection.end_drag()
        if cancelled:
            logger.debug("drag.cancelled")
        return cancelled

    # ------------------------------------------------------------------
    # Resize
    # ------------------------------------------------------------------
    def begin_resize(self, node_id: str) -> MutationResult:
        node = find(self.tree, node_id, max_depth=self.options.max_depth)
        if node is None:
            return self._refuse(NOT_FOUND, node_id)
        template = self.catalog.get_template(node.type)
        if template is None or not template.resizable:
            return self._refuse(NOT_RESIZABLE, node_id)
        self.resize = ResizeSession(node_id, template.resize_constraints)
        return MutationResult(self.tree, True, node_id=node_id)

    def preview_resize(self, width: float | None, height: float | None) -> MutationResult:
        if self.resize is None:
            return self._refuse(NO_DRAG_SESSION, None)
        self.resize.preview(width, height)
        return MutationResult(self.tree, True, node_id=self.resize.node_id)

    def end_resize(self) -> MutationResult:
        session, self.resize = self.resize, None
        if session is None:
            return self._refuse(NO_DRAG_SESSION, None)
        node = find(self.tree, session.node_id, max_depth=self.options.max_depth)
        if node is None:
            return self._refuse(NOT_FOUND, session.node_id)
        changes = session.style_changes()
        if not changes:
            return self._refuse(NO_CHANGE, session.node_id)
        style = {**_style_of(node.props), **changes}
        return self._commit(self.engine.apply_update(self.tree, session.node_id, {"style": style}), "Resize node")

    def cancel_resize(self) -> bool:
        cancelled = self.resize is not None
        self.resize = None
        return cancelled

    # ------------------------------------------------------------------
    # Keyboard
    # ------------------------------------------------------------------
    def handle_key(self, event: KeyEvent) -> tuple[KeyCommand | None, MutationResult | None]:
        command = resolve_command(event)
        if command is None:
            return None, None
        if command is KeyCommand.CANCEL:
            cancelled = self.cancel_drag() | self.cancel_resize()
            if not cancelled:
                return command, self._refuse(NO_DRAG_SESSION, None)
            return command, MutationResult(self.tree, True)

        handlers: dict[KeyCommand, Callable[[], MutationResult]] = {
            KeyCommand.UNDO: self.undo,
            KeyCommand.REDO: self.redo,
            KeyCommand.COPY: self.copy,
            KeyCommand.CUT: self.cut,
            KeyCommand.PASTE: self.paste,
            KeyCommand.DUPLICATE: self.duplicate,
            KeyCommand.REMOVE: self.remove,
            KeyCommand.MOVE_UP: lambda: self.move_sibling(None, "up"),
            KeyCommand.MOVE_DOWN: lambda: self.move_sibling(None, "down"),
        }
        return command, handlers[command]()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _parse(self, document: Node | Mapping[str, Any] | str) -> Node:
        if isinstance(document, Node):
            check_unique_ids(document, max_depth=self.options.max_depth)
            return self.assigner.ensure_ids(document)
        return parse_document(document, max_depth=self.options.max_depth, assigner=self.assigner)

    def _default_paste_target(self) -> str:
        if self.options.paste_target == "selection" and self.selection.selected_node_id is not None:
            return self.selection.selected_node_id
        return self.root_id

    def _commit(self, result: MutationResult, label: str, *, select: bool = False) -> MutationResult:
        if not result.applied or not self.history.commit(result.tree, label):
            return result
        self.selection.prune(self.tree, max_depth=self.options.max_depth)
        if select and result.node_id is not None:
            self.selection.select(result.node_id)
        logger.debug("mutation.committed", extra={"context": {"label": label, "node_id": result.node_id}})
        self._notify()
        return result

    def _after_history_step(self, event: str, label: str | None) -> None:
        self.selection.prune(self.tree, max_depth=self.options.max_depth)
        logger.debug(event, extra={"context": {"label": label}})
        self._notify()

    def _refuse(self, reason: str, node_id: str | None) -> MutationResult:
        logger.debug("designer.refused", extra={"context": {"reason": reason, "node_id": node_id}})
        return MutationResult(self.tree, False, reason=reason, node_id=node_id)

    def _notify(self) -> None:
        tree = self.tree
        for listener in list(self._listeners):
            try:
                listener(tree)
            except Exception:
                logger.exception("listener.failed")


def _style_of(props: Mapping[str, Any]) -> dict[str, Any]:
    style = props.get("style")
    return dict(style) if isinstance(style, Mapping) else {}
