from __future__ import annotations

import logging
from datetime import timedelta
from pathlib import Path
from typing import Any

import pytest

from schema_designer.config import Config
from schema_designer.server import SERVER, main as run_main
from schema_designer.transports.stdio import run_stdio


class _DummyServer:
    name = "dummy"

    def __init__(self) -> None:
        self.calls: list[dict[str, Any]] = []

    def run(self, *, transport: str, show_banner: bool) -> None:
        self.calls.append({"transport": transport, "show_banner": show_banner})


def _make_config(*, enable_stdio: bool, enable_http: bool = False) -> Config:
    return Config(
        document_path=None,
        catalog_file=None,
        enable_stdio=enable_stdio,
        enable_http=enable_http,
        enable_metrics=False,
        http_host="127.0.0.1",
        http_port=8766,
        http_path="/mcp",
        metrics_path="/metrics",
        max_depth=100,
        history_limit=100,
        id_length=9,
        drop_split=0.5,
        paste_target="selection",
        children_key="body",
        grid_size=20,
        snap_to_grid=True,
        log_level="INFO",
        shutdown_timeout=timedelta(seconds=5),
        config_file=None,
    )


def _patch_main(monkeypatch: pytest.MonkeyPatch, config: Config, calls: list[tuple[Any, ...]]) -> None:
    monkeypatch.setattr("schema_designer.server.configure_logging", lambda *args, **kwargs: None)
    monkeypatch.setattr("schema_designer.server.initialize_app", lambda cfg: None)
    monkeypatch.setattr("schema_designer.server.shutdown_app", lambda: calls.append(("shutdown",)))
    monkeypatch.setattr("schema_designer.server.run_http", lambda *args, **kwargs: calls.append(("http", args)))
    monkeypatch.setattr("schema_designer.server.load_config", lambda argv: config)


def test_run_stdio_invokes_fastmcp() -> None:
    dummy = _DummyServer()

    run_stdio(dummy, show_banner=False)

    assert dummy.calls == [{"transport": "stdio", "show_banner": False}]


def test_run_stdio_logs_document_label(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    records: list[logging.LogRecord] = []
    handler = logging.Handler()
    handler.emit = records.append
    stdio_logger = logging.getLogger("schema_designer.transports.stdio")
    monkeypatch.setattr(stdio_logger, "handlers", [handler])

    run_stdio(_DummyServer(), show_banner=False, document_path=tmp_path / "page.json")
    run_stdio(_DummyServer(), show_banner=False)

    starts = [record.context for record in records if record.getMessage().startswith("transport.stdio.start")]
    assert [context["document"] for context in starts] == [str(tmp_path / "page.json"), "<memory>"]


def test_run_stdio_propagates_keyboard_interrupt() -> None:
    class InterruptingServer:
        name = "interrupting"

        def run(self, *, transport: str, show_banner: bool) -> None:
            raise KeyboardInterrupt

    with pytest.raises(KeyboardInterrupt):
        run_stdio(InterruptingServer())


def test_main_runs_stdio_when_enabled(monkeypatch: pytest.MonkeyPatch) -> None:
    calls: list[tuple[Any, ...]] = []
    _patch_main(monkeypatch, _make_config(enable_stdio=True), calls)

    def _capture_stdio(server: Any, *, show_banner: bool = True, document_path: Any = None) -> None:
        calls.append(("stdio", server, show_banner))

    monkeypatch.setattr("schema_designer.server.run_stdio", _capture_stdio)

    run_main([])

    assert ("stdio", SERVER, True) in calls
    assert all(call[0] != "http" for call in calls)
    assert calls[-1] == ("shutdown",)


def test_main_skips_stdio_when_disabled(monkeypatch: pytest.MonkeyPatch) -> None:
    calls: list[tuple[Any, ...]] = []
    _patch_main(monkeypatch, _make_config(enable_stdio=False, enable_http=True), calls)
    monkeypatch.setattr("schema_designer.server.run_stdio", lambda *args, **kwargs: calls.append(("stdio", args)))

    run_main([])

    assert all(call[0] != "stdio" for call in calls)
    assert any(call[0] == "http" for call in calls)


def test_main_exits_on_invalid_config(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr("schema_designer.server.configure_logging", lambda *args, **kwargs: None)

    with pytest.raises(SystemExit) as excinfo:
        run_main(["--max-depth", "0"])

    assert excinfo.value.code == 2
