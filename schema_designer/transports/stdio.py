"""Stdio transport runner."""

from __future__ import annotations

from pathlib import Path

from fastmcp import FastMCP

from ..logging import get_logger

logger = get_logger(__name__)


def run_stdio(server: FastMCP, *, show_banner: bool = True, document_path: Path | None = None) -> None:
    """Serve the designer tools over MCP stdio until the client disconnects.

    ``document_path`` only labels the session in the log; an unset path means
    the document lives in memory for this session.
    """

    context = {
        "server": server.name,
        "document": str(document_path) if document_path else "<memory>",
        "show_banner": bool(show_banner),
    }
    logger.info("transport.stdio.start", extra={"context": context})
    try:
        server.run(transport="stdio", show_banner=show_banner)
    except KeyboardInterrupt:
        logger.info("transport.stdio.interrupted", extra={"context": context})
        raise
    except Exception:
        logger.exception("transport.stdio.failed", extra={"context": context})
        raise
    logger.info("transport.stdio.stop", extra={"context": context})
