from __future__ import annotations

import threading
import time

import pytest

from schema_designer import load_config
from schema_designer.errors import CONFIG_ERROR
from schema_designer.server import (
    _SHUTDOWN_MANAGER,
    _designer_get_state_impl,
    initialize_app,
    shutdown_app,
)


def _config(*extra: str):
    return load_config(argv=["--enable-stdio", "false", *extra], environ={})


@pytest.mark.asyncio
async def test_requests_rejected_once_shutdown_starts() -> None:
    config = _config()
    initialize_app(config)
    _SHUTDOWN_MANAGER.request_shutdown(config.shutdown_timeout)
    try:
        response = await _designer_get_state_impl()
        assert response["ok"] is False
        assert response["error"]["code"] == CONFIG_ERROR
    finally:
        shutdown_app()


@pytest.mark.asyncio
async def test_requests_fail_before_initialisation() -> None:
    shutdown_app()

    response = await _designer_get_state_impl()

    assert response["ok"] is False
    assert response["error"]["code"] == CONFIG_ERROR


def test_shutdown_waits_for_inflight_requests() -> None:
    config = _config("--shutdown-timeout", "2s")
    initialize_app(config)
    release = _SHUTDOWN_MANAGER.try_enter()
    assert release is not None
    released = False

    thread = threading.Thread(target=shutdown_app)
    thread.start()
    try:
        time.sleep(0.05)
        assert thread.is_alive()
        release()
        released = True
        thread.join(timeout=1)
        assert not thread.is_alive()
    finally:
        if not released:
            release()
        thread.join(timeout=1)


def test_shutdown_gives_up_after_timeout() -> None:
    config = _config("--shutdown-timeout", "0s")
    initialize_app(config)
    release = _SHUTDOWN_MANAGER.try_enter()
    assert release is not None
    try:
        shutdown_app()
        assert _SHUTDOWN_MANAGER.try_enter() is None
    finally:
        release()
