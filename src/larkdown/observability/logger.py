"""Structured JSON logger for larkdown.

Every log record is emitted as a single-line JSON object.  Records logged
from phase-2 worker threads carry the worker's thread name so that
interleaved diagram and table progress can be told apart::

    {"ts": "2026-03-01T09:30:00.120000+00:00", "level": "WARNING",
     "logger": "larkdown.importer", "thread": "diagram_0",
     "message": "diagram import failed", "task": 3, "attempts": 11}

Usage::

    from larkdown.observability import get_logger

    log = get_logger("larkdown.importer")
    log.info("phase 1 complete", extra={"extra_fields": {"blocks": 42}})
"""

from __future__ import annotations

import json
import logging
import sys
import threading
from datetime import datetime, timezone
from typing import Any

ROOT_LOGGER = "larkdown"


class StructuredFormatter(logging.Formatter):
    """Format log records as single-line JSON objects.

    Guaranteed keys are ``ts``, ``level``, ``logger``, ``thread`` and
    ``message``.  Structured fields passed through
    ``extra={"extra_fields": {...}}`` are merged into the top-level object,
    and exception text is included under ``exception``.
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "thread": record.threadName,
            "message": record.getMessage(),
        }

        extra_fields: dict[str, Any] | None = getattr(record, "extra_fields", None)
        if extra_fields:
            entry.update(extra_fields)

        if record.exc_info and record.exc_info[1] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        if record.stack_info:
            entry["stack_info"] = self.formatStack(record.stack_info)

        return json.dumps(entry, default=str, ensure_ascii=False)


# One handler on the package root; children propagate to it.
_configure_lock = threading.Lock()
_configured = False


def _ensure_root_handler(stream: Any | None = None) -> logging.Logger:
    global _configured
    root = logging.getLogger(ROOT_LOGGER)
    with _configure_lock:
        if not _configured:
            handler = logging.StreamHandler(stream or sys.stderr)
            handler.setFormatter(StructuredFormatter())
            root.addHandler(handler)
            root.setLevel(logging.WARNING)
            root.propagate = False
            _configured = True
    return root


def get_logger(name: str = ROOT_LOGGER) -> logging.Logger:
    """Get a structured JSON logger.

    Parameters
    ----------
    name:
        Logger name.  Names under ``"larkdown."`` share the single handler
        installed on the ``"larkdown"`` root logger, so repeated calls never
        add duplicate handlers.

    Returns
    -------
    logging.Logger
    """
    _ensure_root_handler()
    return logging.getLogger(name)


def set_log_level(level: int | str, stream: Any | None = None) -> None:
    """Set the level of the larkdown root logger.

    Accepts an ``int`` (``logging.DEBUG``) or a case-insensitive name
    (``"debug"``).  The CLI maps ``--verbose`` to ``DEBUG``.
    """
    root = _ensure_root_handler(stream)
    resolved = logging.getLevelName(level.upper()) if isinstance(level, str) else level
    root.setLevel(resolved)
