"""Logging helpers for vouchersync.

A sync sweep walks sites, voucher groups and vouchers; the interesting part of
a log line is usually *where* in that walk it was emitted. ``log_context``
stores those coordinates in a context variable and the formatter appends them
to every record, so a single failing voucher can be traced back to its site
and group without threading extra arguments through every call.
"""

from __future__ import annotations

import logging
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any, Iterator

_log_context: ContextVar[dict[str, Any]] = ContextVar("log_context", default={})

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s%(context)s"


class ContextualFormatter(logging.Formatter):
    """Formatter that renders the active ``log_context`` fields."""

    def format(self, record: logging.LogRecord) -> str:
        ctx = _log_context.get()
        record.context = (
            " [" + " ".join(f"{k}={v}" for k, v in ctx.items()) + "]" if ctx else ""
        )
        return super().format(record)


@contextmanager
def log_context(**fields: Any) -> Iterator[None]:
    """Temporarily add context fields to all log messages.

    Usage::

        with log_context(site="Lobby", group_id="g-1"):
            logger.info("Reconciling group")

    Fields are merged with any existing context and restored on exit.
    """
    merged = {**_log_context.get(), **fields}
    token = _log_context.set(merged)
    try:
        yield
    finally:
        _log_context.reset(token)


_configured = False


def configure_logging(
    level: int = logging.INFO,
    third_party_level: int = logging.WARNING,
) -> None:
    """Configure application-wide logging once, at process start."""
    global _configured
    if _configured:
        return
    _configured = True

    root = logging.getLogger()
    root.setLevel(level)
    for handler in root.handlers[:]:
        root.removeHandler(handler)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(ContextualFormatter(LOG_FORMAT))
    root.addHandler(handler)

    for name in ("urllib3", "requests", "asyncio"):
        logging.getLogger(name).setLevel(third_party_level)


def get_logger(name: str) -> logging.Logger:
    """Return a logger for the given name.

    When ``configure_logging`` has not run and nothing else installed a
    handler, a stderr handler with the contextual format is attached so
    library use outside the CLI still produces readable output.
    """
    logger = logging.getLogger(name)
    if not _configured and not logger.handlers and not logging.getLogger().handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(ContextualFormatter(LOG_FORMAT))
        logger.addHandler(handler)
        logger.setLevel(logging.INFO)
    return logger


def log_exception(
    logger: logging.Logger,
    message: str,
    exc: BaseException,
    **context: Any,
) -> None:
    """Log an exception with its traceback and extra context fields."""
    with log_context(**context):
        logger.exception("%s: %s", message, exc)
