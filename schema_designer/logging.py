"""Logging for the schema designer.

Modules log short event names (``mutation.committed``, ``document.saved``)
and attach their details under ``extra={"context": {...}}``. The handlers
installed here append that context to the rendered line as ``key=value``
pairs so designer events stay readable on stderr.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any, Literal

from fastmcp.utilities.logging import configure_logging as _fastmcp_configure_logging

_PACKAGE_LOGGER_NAME = "schema_designer"
_CONFIGURED = False


class ContextFilter(logging.Filter):
    """Render a record's ``context`` mapping into its message."""

    def filter(self, record: logging.LogRecord) -> bool:
        context = getattr(record, "context", None)
        if isinstance(context, Mapping) and context and not getattr(record, "_context_rendered", False):
            pairs = " ".join(f"{key}={value!r}" for key, value in context.items() if value is not None)
            if pairs:
                record.msg = f"{record.getMessage()} {pairs}"
                record.args = ()
            record._context_rendered = True
        return True


def _qualify(name: str | None) -> str:
    if not name:
        return _PACKAGE_LOGGER_NAME
    if name.startswith(_PACKAGE_LOGGER_NAME):
        return name
    return f"{_PACKAGE_LOGGER_NAME}.{name}"


def configure_logging(
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] | int = "INFO",
    **rich_kwargs: Any,
) -> logging.Logger:
    """Install FastMCP's stderr handler on the package logger.

    stdout is left untouched for the stdio transport.
    """

    global _CONFIGURED

    logger = logging.getLogger(_PACKAGE_LOGGER_NAME)
    _fastmcp_configure_logging(level=level, logger=logger, **rich_kwargs)
    for handler in logger.handlers:
        if not any(isinstance(existing, ContextFilter) for existing in handler.filters):
            handler.addFilter(ContextFilter())

    _CONFIGURED = True
    return logger


def get_logger(name: str | None = None) -> logging.Logger:
    """Return ``schema_designer.<name>``, configuring defaults on first use."""

    if not _CONFIGURED:
        configure_logging()

    return logging.getLogger(_qualify(name))
