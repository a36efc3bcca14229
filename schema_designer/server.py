"""FastMCP server entrypoint for the schema designer."""

from __future__ import annotations

import inspect
import threading
import time
from dataclasses import dataclass
from datetime import timedelta
from functools import wraps
from typing import Any, Callable, Mapping

from fastmcp import FastMCP
from starlette.requests import Request
from starlette.responses import PlainTextResponse, Response

from . import metrics
from .catalog import StaticCatalog
from .config import Config, ConfigError, load_config
from .controller import DesignerController
from .errors import (
    CONFIG_ERROR,
    INVALID_ARGUMENT,
    SchemaDesignerError,
)
from .identity import IdentityAssigner
from .keyboard import KeyEvent
from .logging import configure_logging, get_logger
from .models import Node
from .mutations import MutationResult
from .storage import DocumentStore, DocumentWriter, StorageError
from .transports import HttpTransportConfig, run_http, run_stdio

LOGGER = get_logger(__name__)
SERVER = FastMCP(name="schema-designer")


@dataclass(slots=True)
class AppState:
    config: Config
    controller: DesignerController
    catalog: StaticCatalog
    store: DocumentStore | None = None
    writer: DocumentWriter | None = None
    unsubscribe_store: Callable[[], None] | None = None


APP_STATE: AppState | None = None
_METRICS_ROUTE_NAME = "__schema_designer_metrics__"


class ShutdownManager:
    """Track active tool requests so shutdown can drain gracefully."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._condition = threading.Condition(self._lock)
        self._active_requests = 0
        self._shutdown_requested = False
        self._deadline: float | None = None
        self._timeout = timedelta(seconds=5)

    def configure(self, timeout: timedelta) -> None:
        """Reset state for a new application lifecycle."""

        if timeout.total_seconds() < 0:
            timeout = timedelta(seconds=0)
        with self._condition:
            self._timeout = timeout
            self._active_requests = 0
            self._shutdown_requested = False
            self._deadline = None

    def try_enter(self) -> Callable[[], None] | None:
        """Register a request; returns its release callback, or None while shutting down."""

        with self._condition:
            if self._shutdown_requested:
                return None
            self._active_requests += 1

        def release() -> None:
            with self._condition:
                if self._active_requests > 0:
                    self._active_requests -= 1
                    self._condition.notify_all()

        return release

    def request_shutdown(self, timeout: timedelta | None = None) -> None:
        with self._condition:
            if self._shutdown_requested:
                return
            effective_timeout = timeout if timeout is not None else self._timeout
            if effective_timeout.total_seconds() < 0:
                effective_timeout = timedelta(seconds=0)
            self._shutdown_requested = True
            self._deadline = time.monotonic() + effective_timeout.total_seconds()
            self._condition.notify_all()

    def wait_for_drain(self) -> bool:
        """Wait for active requests to finish until the shutdown deadline."""

        with self._condition:
            while self._active_requests > 0:
                deadline = self._deadline
                if deadline is not None:
                    remaining = deadline - time.monotonic()
                    if remaining <= 0:
                        return False
                    self._condition.wait(timeout=remaining)
                else:
                    self._condition.wait()
            return True

    @property
    def active_requests(self) -> int:
        with self._condition:
            return self._active_requests


_SHUTDOWN_MANAGER = ShutdownManager()


def _normalise_metrics_path(path: str) -> str:
    if not path:
        return "/metrics"
    normalised = path if path.startswith("/") else f"/{path}"
    if len(normalised) > 1 and normalised.endswith("/"):
        normalised = normalised.rstrip("/")
    return normalised or "/metrics"


def _remove_metrics_route() -> None:
    routes = getattr(SERVER, "_additional_http_routes", None)
    if not routes:
        return
    routes[:] = [route for route in routes if getattr(route, "name", None) != _METRICS_ROUTE_NAME]


def _register_metrics_route(path: str) -> None:
    cleaned = _normalise_metrics_path(path)
    _remove_metrics_route()

    @SERVER.custom_route(cleaned, methods=["GET"], name=_METRICS_ROUTE_NAME, include_in_schema=False)
    async def metrics_endpoint(_request: Request) -> Response:
        registry = metrics.get_registry_optional()
        if registry is None or APP_STATE is None:
            return PlainTextResponse("metrics unavailable\n", status_code=503)
        body = render_metrics(registry)
        return PlainTextResponse(body, media_type="text/plain; version=0.0.4")


def render_metrics(registry: metrics.MetricsRegistry) -> str:
    controller = get_controller()
    state = controller.state()
    return metrics.format_prometheus(
        registry.snapshot(),
        nodes_current=state["node_count"],
        history_past=state["history"]["past"],
        history_future=state["history"]["future"],
    )


def initialize_app(config: Config) -> None:
    """Build the designer session and its collaborators from ``config``."""

    global APP_STATE
    _SHUTDOWN_MANAGER.configure(config.shutdown_timeout)

    catalog = StaticCatalog.from_file(config.catalog_file) if config.catalog_file else StaticCatalog.builtin()
    options = config.designer_options()
    assigner = IdentityAssigner(id_length=options.id_length, max_depth=options.max_depth)

    store: DocumentStore | None = None
    document: Node | None = None
    if config.document_path is not None:
        store = DocumentStore(
            config.document_path,
            children_key=options.children_key,
            max_depth=options.max_depth,
            assigner=assigner,
        )
        document = store.load()

    controller = DesignerController(document, options=options, catalog=catalog, assigner=assigner)
    writer: DocumentWriter | None = None
    unsubscribe_store: Callable[[], None] | None = None
    if store is not None:
        writer = DocumentWriter(store, on_error=_record_save_failure)
        writer.start()
        unsubscribe_store = controller.subscribe(writer.submit)

    metrics.install_registry(metrics.MetricsRegistry())
    if config.enable_metrics:
        _register_metrics_route(config.metrics_path)
    else:
        _remove_metrics_route()

    APP_STATE = AppState(
        config=config,
        controller=controller,
        catalog=catalog,
        store=store,
        writer=writer,
        unsubscribe_store=unsubscribe_store,
    )
    LOGGER.info(
        "app.initialized",
        extra={
            "context": {
                "document_path": str(config.document_path) if config.document_path else None,
                "root_id": controller.root_id,
                "components": len(catalog),
            }
        },
    )


def shutdown_app() -> None:
    """Drain in-flight tool calls and clear application state."""

    global APP_STATE
    if APP_STATE is None:
        return
    config = APP_STATE.config
    _SHUTDOWN_MANAGER.request_shutdown(config.shutdown_timeout)
    drained = _SHUTDOWN_MANAGER.wait_for_drain()
    if not drained:
        LOGGER.warning(
            "shutdown.timeout",
            extra={
                "context": {
                    "active_requests": _SHUTDOWN_MANAGER.active_requests,
                    "timeout_seconds": config.shutdown_timeout.total_seconds(),
                }
            },
        )
    if APP_STATE.unsubscribe_store is not None:
        APP_STATE.unsubscribe_store()
    if APP_STATE.writer is not None and not APP_STATE.writer.stop(config.shutdown_timeout.total_seconds()):
        LOGGER.warning("shutdown.save_pending", extra={"context": {"path": str(APP_STATE.writer.store.path)}})
    metrics.install_registry(None)
    _remove_metrics_route()
    APP_STATE = None


def _record_save_failure(error: StorageError) -> None:
    metrics.record_error(error.code)


def get_controller() -> DesignerController:
    if APP_STATE is None:
        raise SchemaDesignerError(CONFIG_ERROR, "Server is not initialised")
    return APP_STATE.controller


def success(payload: Mapping[str, Any]) -> dict[str, Any]:
    return {"ok": True, **payload}


def failure(error: SchemaDesignerError) -> dict[str, Any]:
    metrics.record_error(error.code)
    return {"ok": False, "error": error.to_dict()}


def _shutdown_protected(func):
    if inspect.iscoroutinefunction(func):

        @wraps(func)
        async def async_wrapper(*args, **kwargs):
            release = _SHUTDOWN_MANAGER.try_enter()
            if release is None:
                return failure(SchemaDesignerError(CONFIG_ERROR, "Server is shutting down"))
            try:
                return await func(*args, **kwargs)
            finally:
                release()

        return async_wrapper

    @wraps(func)
    def sync_wrapper(*args, **kwargs):
        release = _SHUTDOWN_MANAGER.try_enter()
        if release is None:
            raise SchemaDesignerError(CONFIG_ERROR, "Server is shutting down")
        try:
            return func(*args, **kwargs)
        finally:
            release()

    return sync_wrapper


def _designer_error_guard(func):
    """Convert domain and argument errors into structured failure responses."""

    @wraps(func)
    async def wrapper(*args, **kwargs):
        try:
            return await func(*args, **kwargs)
        except SchemaDesignerError as exc:
            return failure(exc)
        except ValueError as exc:
            return failure(SchemaDesignerError(INVALID_ARGUMENT, str(exc)))

    return wrapper


def _result_response(
    controller: DesignerController,
    result: MutationResult,
    operation: str,
    **extra: Any,
) -> dict[str, Any]:
    if result.applied:
        metrics.record_operation(operation)
    elif result.reason:
        metrics.record_refusal(result.reason)
    return success(
        {
            **result.to_dict(),
            **extra,
            "selected_node_id": controller.selection.selected_node_id,
            "can_undo": controller.can_undo,
            "can_redo": controller.can_redo,
            "can_paste": controller.can_paste,
        }
    )


# ----------------------------------------------------------------------
# Document tools
# ----------------------------------------------------------------------
@_designer_error_guard
@_shutdown_protected
async def _designer_get_document_impl() -> dict[str, Any]:
    controller = get_controller()
    return success({"root_id": controller.root_id, "document": controller.export_document()})


@_designer_error_guard
@_shutdown_protected
async def _designer_load_document_impl(document: dict[str, Any] | str) -> dict[str, Any]:
    controller = get_controller()
    controller.load_document(document)
    metrics.record_operation("load")
    return success({"root_id": controller.root_id, "document": controller.export_document()})


@_designer_error_guard
@_shutdown_protected
async def _designer_get_state_impl() -> dict[str, Any]:
    return success({"state": get_controller().state()})


@_designer_error_guard
@_shutdown_protected
async def _designer_list_components_impl() -> dict[str, Any]:
    if APP_STATE is None:
        raise SchemaDesignerError(CONFIG_ERROR, "Server is not initialised")
    components = [template.to_dict() for template in APP_STATE.catalog.templates()]
    return success({"components": components})


# ----------------------------------------------------------------------
# Structural edit tools
# ----------------------------------------------------------------------
@_designer_error_guard
@_shutdown_protected
async def _designer_insert_node_impl(
    parent_id: str,
    node: dict[str, Any],
    index: int | None = None,
) -> dict[str, Any]:
    controller = get_controller()
    return _result_response(controller, controller.insert(parent_id, node, index), "insert")


@_designer_error_guard
@_shutdown_protected
async def _designer_insert_component_impl(
    component_type: str,
    parent_id: str | None = None,
    index: int | None = None,
) -> dict[str, Any]:
    controller = get_controller()
    return _result_response(controller, controller.insert_component(component_type, parent_id, index), "insert")


@_designer_error_guard
@_shutdown_protected
async def _designer_update_node_impl(node_id: str, props: dict[str, Any]) -> dict[str, Any]:
    controller = get_controller()
    return _result_response(controller, controller.update(node_id, props), "update")


@_designer_error_guard
@_shutdown_protected
async def _designer_remove_node_impl(node_id: str | None = None) -> dict[str, Any]:
    controller = get_controller()
    return _result_response(controller, controller.remove(node_id), "remove")


@_designer_error_guard
@_shutdown_protected
async def _designer_move_node_impl(node_id: str, parent_id: str, index: int | None = None) -> dict[str, Any]:
    controller = get_controller()
    return _result_response(controller, controller.move(node_id, parent_id, index), "move")


@_designer_error_guard
@_shutdown_protected
async def _designer_move_sibling_impl(direction: str, node_id: str | None = None) -> dict[str, Any]:
    controller = get_controller()
    return _result_response(controller, controller.move_sibling(node_id, direction), "move")


# ----------------------------------------------------------------------
# Clipboard and history tools
# ----------------------------------------------------------------------
@_designer_error_guard
@_shutdown_protected
async def _designer_copy_impl(node_id: str | None = None) -> dict[str, Any]:
    controller = get_controller()
    return _result_response(controller, controller.copy(node_id), "copy")


@_designer_error_guard
@_shutdown_protected
async def _designer_cut_impl(node_id: str | None = None) -> dict[str, Any]:
    controller = get_controller()
    return _result_response(controller, controller.cut(node_id), "cut")


@_designer_error_guard
@_shutdown_protected
async def _designer_duplicate_impl(node_id: str | None = None) -> dict[str, Any]:
    controller = get_controller()
    return _result_response(controller, controller.duplicate(node_id), "duplicate")


@_designer_error_guard
@_shutdown_protected
async def _designer_paste_impl(parent_id: str | None = None) -> dict[str, Any]:
    controller = get_controller()
    return _result_response(controller, controller.paste(parent_id), "paste")


@_designer_error_guard
@_shutdown_protected
async def _designer_undo_impl() -> dict[str, Any]:
    controller = get_controller()
    label = controller.history.undo_label
    return _result_response(controller, controller.undo(), "undo", label=label)


@_designer_error_guard
@_shutdown_protected
async def _designer_redo_impl() -> dict[str, Any]:
    controller = get_controller()
    label = controller.history.redo_label
    return _result_response(controller, controller.redo(), "redo", label=label)


# ----------------------------------------------------------------------
# Interaction tools
# ----------------------------------------------------------------------
@_designer_error_guard
@_shutdown_protected
async def _designer_select_impl(node_id: str | None = None) -> dict[str, Any]:
    controller = get_controller()
    return _result_response(controller, controller.select(node_id), "select")


@_designer_error_guard
@_shutdown_protected
async def _designer_key_impl(
    key: str,
    ctrl: bool = False,
    meta: bool = False,
    shift: bool = False,
    alt: bool = False,
    target_tag: str | None = None,
    content_editable: bool = False,
) -> dict[str, Any]:
    controller = get_controller()
    event = KeyEvent(
        key=key,
        ctrl=ctrl,
        meta=meta,
        shift=shift,
        alt=alt,
        target_tag=target_tag,
        content_editable=content_editable,
    )
    command, result = controller.handle_key(event)
    if command is None or result is None:
        return success({"command": None, "applied": False})
    return _result_response(controller, result, command.value, command=command.value)


@_designer_error_guard
@_shutdown_protected
async def _designer_drag_start_impl(node_id: str | None = None, component_type: str | None = None) -> dict[str, Any]:
    controller = get_controller()
    result = controller.start_drag(node_id=node_id, node_type=component_type)
    return _result_response(controller, result, "drag_start", drag=controller.drag.to_dict())


@_designer_error_guard
@_shutdown_protected
async def _designer_drag_over_impl(target_id: str, fraction: float) -> dict[str, Any]:
    controller = get_controller()
    result = controller.drag_over(target_id, fraction)
    return _result_response(controller, result, "drag_over", drag=controller.drag.to_dict())


@_designer_error_guard
@_shutdown_protected
async def _designer_drop_impl(x: float | None = None, y: float | None = None) -> dict[str, Any]:
    controller = get_controller()
    if (x is None) != (y is None):
        raise SchemaDesignerError(INVALID_ARGUMENT, "Canvas drops need both x and y")
    result = controller.drop() if x is None else controller.drop_on_canvas(x, y)  # type: ignore[arg-type]
    return _result_response(controller, result, "drop")


@_designer_error_guard
@_shutdown_protected
async def _designer_drag_cancel_impl() -> dict[str, Any]:
    controller = get_controller()
    cancelled = controller.cancel_drag()
    return success({"cancelled": cancelled, "drag": controller.drag.to_dict()})


_RESIZE_ACTIONS = ("begin", "preview", "end", "cancel", "commit")


@_designer_error_guard
@_shutdown_protected
async def _designer_resize_impl(
    action: str = "commit",
    node_id: str | None = None,
    width: float | None = None,
    height: float | None = None,
) -> dict[str, Any]:
    controller = get_controller()
    if action not in _RESIZE_ACTIONS:
        raise SchemaDesignerError(INVALID_ARGUMENT, f"action must be one of: {', '.join(_RESIZE_ACTIONS)}")
    if action in ("begin", "commit") and not node_id:
        raise SchemaDesignerError(INVALID_ARGUMENT, f"Resize action '{action}' requires node_id")

    if action == "cancel":
        return success({"cancelled": controller.cancel_resize()})
    if action == "begin":
        result = controller.begin_resize(node_id)  # type: ignore[arg-type]
    elif action == "preview":
        result = controller.preview_resize(width, height)
    elif action == "end":
        result = controller.end_resize()
    else:
        result = controller.begin_resize(node_id)  # type: ignore[arg-type]
        if result.applied:
            controller.preview_resize(width, height)
            result = controller.end_resize()
    resize = controller.resize.to_dict() if controller.resize else None
    return _result_response(controller, result, "resize", resize=resize)


designer_get_document = SERVER.tool(
    name="designer_get_document",
    description="Export the current document tree. Children are always emitted as an ordered list.",
)(_designer_get_document_impl)

designer_load_document = SERVER.tool(
    name="designer_load_document",
    description=(
        "Replace the current document with a new tree (object or JSON string).\n\n"
        "Child slots may use 'body' or 'children' and may be absent, a single node, or a list. "
        "Nodes without an id receive one; duplicate ids or malformed nodes fail with VALIDATION_ERROR. "
        "Loading resets undo history and selection but keeps the clipboard."
    ),
)(_designer_load_document_impl)

designer_get_state = SERVER.tool(
    name="designer_get_state",
    description="Report selection, history, clipboard and gesture state of the designer session.",
)(_designer_get_state_impl)

designer_list_components = SERVER.tool(
    name="designer_list_components",
    description="List palette components with their default props, children and resize constraints.",
)(_designer_list_components_impl)

designer_insert_node = SERVER.tool(
    name="designer_insert_node",
    description=(
        "Insert a node under parent_id. Omit index to append; out-of-range indexes are clamped. "
        "Missing ids are generated. Refusals return applied=false with a reason instead of an error."
    ),
)(_designer_insert_node_impl)

designer_insert_component = SERVER.tool(
    name="designer_insert_component",
    description="Insert a new node built from a palette component template (defaults to the root as parent).",
)(_designer_insert_component_impl)

designer_update_node = SERVER.tool(
    name="designer_update_node",
    description=(
        "Shallow-merge props into a node. 'id' is ignored, 'type' changes the node type, "
        "and 'body'/'children' replace the node's children."
    ),
)(_designer_update_node_impl)

designer_remove_node = SERVER.tool(
    name="designer_remove_node",
    description="Remove a node and its subtree (defaults to the selection). The root cannot be removed.",
)(_designer_remove_node_impl)

designer_move_node = SERVER.tool(
    name="designer_move_node",
    description=(
        "Move a node under a new parent in one undoable step. The index addresses the parent's children "
        "after the node is taken out; omit it to append. Moves into the node's own subtree are refused."
    ),
)(_designer_move_node_impl)

designer_move_sibling = SERVER.tool(
    name="designer_move_sibling",
    description="Swap a node (defaults to the selection) with its previous ('up') or next ('down') sibling.",
)(_designer_move_sibling_impl)

designer_copy = SERVER.tool(
    name="designer_copy",
    description="Copy a subtree (defaults to the selection) into the clipboard.",
)(_designer_copy_impl)

designer_cut = SERVER.tool(
    name="designer_cut",
    description="Copy a subtree into the clipboard and remove it from the document.",
)(_designer_cut_impl)

designer_duplicate = SERVER.tool(
    name="designer_duplicate",
    description="Insert a re-identified clone of a node directly after it.",
)(_designer_duplicate_impl)

designer_paste = SERVER.tool(
    name="designer_paste",
    description=(
        "Paste the clipboard with fresh ids as the last child of parent_id. Without parent_id the "
        "configured paste target is used (the selection, else the root)."
    ),
)(_designer_paste_impl)

designer_undo = SERVER.tool(
    name="designer_undo",
    description="Undo the last committed change.",
)(_designer_undo_impl)

designer_redo = SERVER.tool(
    name="designer_redo",
    description="Redo the last undone change.",
)(_designer_redo_impl)

designer_select = SERVER.tool(
    name="designer_select",
    description="Select a node by id, or clear the selection when node_id is omitted.",
)(_designer_select_impl)

designer_key = SERVER.tool(
    name="designer_key",
    description=(
        "Dispatch a keyboard shortcut: Ctrl/Cmd+Z undo, Ctrl/Cmd+Shift+Z or Ctrl/Cmd+Y redo, "
        "Ctrl/Cmd+C/X/V/D copy/cut/paste/duplicate, Delete/Backspace remove, Ctrl/Cmd+ArrowUp/ArrowDown "
        "reorder, Escape cancels a drag or resize. Shortcuts are ignored when target_tag is an "
        "input, textarea or select, or content_editable is true."
    ),
)(_designer_key_impl)

designer_drag_start = SERVER.tool(
    name="designer_drag_start",
    description="Start dragging an existing node (node_id) or a palette component (component_type).",
)(_designer_drag_start_impl)

designer_drag_over = SERVER.tool(
    name="designer_drag_over",
    description=(
        "Report the hovered drop target and the pointer's vertical position within it as a fraction "
        "from 0.0 (top) to 1.0 (bottom). The upper half prepends, the lower half appends."
    ),
)(_designer_drag_over_impl)

designer_drop = SERVER.tool(
    name="designer_drop",
    description=(
        "Finish the drag. Without coordinates the item lands at the hovered target; with x and y it is "
        "placed on the free-form canvas under the root, snapped to the grid."
    ),
)(_designer_drop_impl)

designer_drag_cancel = SERVER.tool(
    name="designer_drag_cancel",
    description="Abort the current drag without changing the document.",
)(_designer_drag_cancel_impl)

designer_resize = SERVER.tool(
    name="designer_resize",
    description=(
        "Resize a node's style width/height within its component's constraints. "
        "action: 'begin', 'preview', 'end', 'cancel', or 'commit' (begin+preview+end in one call). "
        "Only 'end'/'commit' change the document, as one undoable step."
    ),
)(_designer_resize_impl)


def main(argv: list[str] | None = None) -> None:
    """CLI entrypoint for running the schema designer server."""

    configure_logging()
    try:
        config = load_config(argv)
    except ConfigError as exc:
        LOGGER.error("config.invalid", extra={"context": {"error": str(exc)}})
        raise SystemExit(2) from exc
    configure_logging(config.log_level)
    LOGGER.info(
        "Configuration loaded",
        extra={
            "context": {
                "document_path": str(config.document_path) if config.document_path else None,
                "enable_stdio": config.enable_stdio,
                "enable_http": config.enable_http,
                "enable_metrics": config.enable_metrics,
            }
        },
    )

    try:
        initialize_app(config)
    except SchemaDesignerError as exc:
        LOGGER.error(
            "Failed to initialize designer",
            exc_info=exc,
            extra={"context": dict(exc.details or {})},
        )
        raise SystemExit(1) from exc

    try:
        if config.enable_stdio:
            run_stdio(SERVER, document_path=config.document_path)
        else:
            LOGGER.info("Stdio transport disabled")

        if config.enable_http:
            http_config = HttpTransportConfig(
                host=config.http_host,
                port=config.http_port,
                http_path=config.http_path,
                metrics_path=config.metrics_path,
                enable_http=config.enable_http,
                enable_metrics=config.enable_metrics,
            )
            run_http(SERVER, http_config)
        else:
            LOGGER.info("HTTP transport disabled")
    finally:
        shutdown_app()


if __name__ == "__main__":  # pragma: no cover - manual invocation only
    main()
