"""JSON-file persistence for designer documents."""

from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path
import threading
from threading import RLock
from typing import Callable

from .config import DEFAULT_MAX_DEPTH
from .errors import STORAGE_ERROR, SchemaDesignerError, ValidationError
from .identity import IdentityAssigner
from .logging import get_logger
from .models import Node
from .validation import dumps_document, parse_document

__all__ = ["DocumentStore", "DocumentWriter", "StorageError"]

logger = get_logger(__name__)


class StorageError(SchemaDesignerError):
    """Raised when storage operations fail."""

    def __init__(self, message: str, *, details: dict | None = None) -> None:
        super().__init__(STORAGE_ERROR, message, details)


class DocumentStore:
    """Loads and saves one document file.

    Saves go to a sibling temporary file that is then renamed over the target,
    so readers never observe a half-written document.
    """

    def __init__(
        self,
        path: Path,
        *,
        children_key: str = "body",
        max_depth: int = DEFAULT_MAX_DEPTH,
        assigner: IdentityAssigner | None = None,
    ) -> None:
        self.path = Path(path)
        self.children_key = children_key
        self.max_depth = max_depth
        self.assigner = assigner
        self._lock = RLock()

    def exists(self) -> bool:
        return self.path.exists()

    def load(self) -> Node | None:
        """Return the stored tree, or None when no file exists yet."""

        with self._lock:
            if not self.path.exists():
                return None
            try:
                text = self.path.read_text(encoding="utf-8")
            except OSError as exc:
                raise StorageError(f"Unable to read document {self.path}: {exc}") from exc
        try:
            tree = parse_document(text, max_depth=self.max_depth, assigner=self.assigner)
        except ValidationError as exc:
            raise StorageError(
                f"Stored document {self.path} is invalid: {exc.message}",
                details={"path": str(self.path), **dict(exc.details or {})},
            ) from exc
        logger.info("document.read", extra={"context": {"path": str(self.path)}})
        return tree

    def save(self, tree: Node) -> None:
        payload = dumps_document(tree, children_key=self.children_key) + "\n"
        with self._lock:
            tmp_name: str | None = None
            try:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                with tempfile.NamedTemporaryFile(
                    "w",
                    encoding="utf-8",
                    dir=self.path.parent,
                    prefix=f".{self.path.name}.",
                    suffix=".tmp",
                    delete=False,
                ) as handle:
                    tmp_name = handle.name
                    handle.write(payload)
                    handle.flush()
                    os.fsync(handle.fileno())
                os.replace(tmp_name, self.path)
                tmp_name = None
            except OSError as exc:
                raise StorageError(f"Unable to write document {self.path}: {exc}") from exc
            finally:
                if tmp_name is not None:
                    Path(tmp_name).unlink(missing_ok=True)
        logger.debug("document.saved", extra={"context": {"path": str(self.path)}})

    def __repr__(self) -> str:
        return f"DocumentStore(path={self.path!s})"


class DocumentWriter:
    """Background worker that saves the newest submitted tree.

    ``submit`` only records the tree and returns; the disk write happens on the
    worker thread. Trees submitted while a save is running collapse into one,
    so the file always ends at the latest state.
    """

    def __init__(self, store: DocumentStore, *, on_error: Callable[[StorageError], None] | None = None) -> None:
        self.store = store
        self._on_error = on_error
        self._condition = threading.Condition()
        self._pending: Node | None = None
        self._busy = False
        self._stopping = False
        self._thread: threading.Thread | None = None

    def start(self) -> None:
        with self._condition:
            if self._thread and self._thread.is_alive():
                return
            self._stopping = False
            self._thread = threading.Thread(
                target=self._run,
                name="schema-designer-document-writer",
                daemon=True,
            )
            self._thread.start()

    def submit(self, tree: Node) -> None:
        with self._condition:
            self._pending = tree
            self._condition.notify_all()

    @property
    def idle(self) -> bool:
        with self._condition:
            return self._pending is None and not self._busy

    def flush(self, timeout: float | None = None) -> bool:
        """Wait until every submitted tree is on disk; False on timeout."""

        with self._condition:
            if self._thread is None:
                tree, self._pending = self._pending, None
            else:
                return self._condition.wait_for(lambda: self._pending is None and not self._busy, timeout)
        if tree is not None:
            self._save(tree)
        return True

    def stop(self, timeout: float | None = None) -> bool:
        drained = self.flush(timeout)
        with self._condition:
            self._stopping = True
            self._condition.notify_all()
            thread, self._thread = self._thread, None
        if thread is not None:
            thread.join(timeout=timeout)
        return drained

    def _run(self) -> None:
        while True:
            with self._condition:
                self._condition.wait_for(lambda: self._pending is not None or self._stopping)
                if self._pending is None:
                    return
                tree, self._pending = self._pending, None
                self._busy = True
            try:
                self._save(tree)
            finally:
                with self._condition:
                    self._busy = False
                    self._condition.notify_all()

    def _save(self, tree: Node) -> None:
        try:
            self.store.save(tree)
        except StorageError as exc:
            logger.warning("document.save_failed", extra={"context": {"path": str(self.store.path), "error": exc.message}})
            if self._on_error is not None:
                self._on_error(exc)
        except Exception:  # pragma: no cover - defensive logging
            logger.exception("document.save_crashed")
