"""Streamable HTTP transport served by uvicorn."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Mapping

import uvicorn
from fastmcp import FastMCP
from fastmcp.utilities.logging import temporary_log_level

from ..logging import get_logger

logger = get_logger(__name__)


@dataclass(slots=True)
class HttpTransportConfig:
    host: str
    port: int
    http_path: str
    metrics_path: str
    enable_http: bool
    enable_metrics: bool


def describe_routes(config: HttpTransportConfig) -> Mapping[str, str]:
    """Return a mapping of logical endpoints to their configured paths."""

    routes: dict[str, str] = {}
    if config.enable_http:
        routes["http"] = normalise_path(config.http_path)
    if config.enable_metrics:
        routes["metrics"] = normalise_path(config.metrics_path)
    return routes


def build_app(server: FastMCP, config: HttpTransportConfig):
    """Build the Starlette app; custom routes registered on ``server`` are included."""

    return server.http_app(path=normalise_path(config.http_path), transport="http")


def run_http(server: FastMCP, config: HttpTransportConfig) -> None:
    if not config.enable_http:
        logger.info("transport.http.skip_disabled")
        return

    context = {"host": config.host, "port": config.port, "routes": dict(describe_routes(config))}

    async def _serve() -> None:
        app = build_app(server, config)
        uvicorn_config = uvicorn.Config(
            app,
            host=config.host,
            port=config.port,
            timeout_graceful_shutdown=0,
            lifespan="on",
        )
        server_instance = uvicorn.Server(uvicorn_config)
        log_level = logger.level if isinstance(logger.level, int) else None
        logger.info("transport.http.serve", extra={"context": context})
        with temporary_log_level(level=log_level):
            await server_instance.serve()

    logger.info("transport.http.start", extra={"context": context})
    try:
        asyncio.run(_serve())
    except KeyboardInterrupt:
        logger.info("transport.http.interrupted", extra={"context": context})
        raise
    except Exception:
        logger.exception("transport.http.failed", extra={"context": context})
        raise
    else:
        logger.info("transport.http.stop", extra={"context": context})


def normalise_path(path: str) -> str:
    if not path.startswith("/"):
        path = "/" + path
    if len(path) > 1 and path.endswith("/"):
        path = path.rstrip("/")
    return path
