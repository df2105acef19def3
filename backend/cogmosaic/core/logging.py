"""Logging helpers for the mosaic service."""

from __future__ import annotations

import datetime
import json
import logging
import sys
from typing import Any

_RESERVED_FIELDS = frozenset(
    {
        "name",
        "msg",
        "args",
        "levelname",
        "levelno",
        "pathname",
        "filename",
        "module",
        "exc_info",
        "exc_text",
        "stack_info",
        "lineno",
        "funcName",
        "created",
        "msecs",
        "relativeCreated",
        "thread",
        "threadName",
        "processName",
        "process",
        "taskName",
        "message",
    }
)


def _timestamp() -> str:
    """Return the current UTC timestamp in ISO8601 format."""
    now = datetime.datetime.now(datetime.UTC)
    return now.isoformat(timespec="seconds").replace("+00:00", "Z")


def _extra_fields(record: logging.LogRecord) -> dict[str, Any]:
    """Return non-standard LogRecord fields for JSON logging."""
    return {
        key: value
        for key, value in record.__dict__.items()
        if key not in _RESERVED_FIELDS
    }


class JsonFormatter(logging.Formatter):
    """Format log records as JSON objects (one per line)."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": _timestamp(),
            "level": record.levelname.lower(),
            "logger": record.name,
            "message": record.getMessage(),
        }
        extra = _extra_fields(record)
        if extra:
            payload["extra"] = extra
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


class HumanFormatter(logging.Formatter):
    """Format log records with a concise prefix and optional tile context."""

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        tile = getattr(record, "tile", None)
        if tile:
            return f"[{tile}] {message}"
        return message


def configure_logging(
    level: str = "INFO",
    json_console: bool = False,
) -> logging.Logger:
    """Configure the ``cogmosaic`` logger and return it.

    Replaces any handler previously installed by this function so repeated
    application factories do not duplicate output.

    Args:
        level: Log level name for console output (e.g. ``"DEBUG"``).
        json_console: Emit JSON lines instead of human readable text.

    Returns:
        The configured package logger.
    """
    logger = logging.getLogger("cogmosaic")
    logger.handlers.clear()
    logger.setLevel(logging.getLevelName(level.upper()))
    logger.propagate = False

    handler = logging.StreamHandler(sys.stderr)
    formatter: logging.Formatter
    if json_console:
        formatter = JsonFormatter()
    else:
        formatter = HumanFormatter("%(levelname)s %(name)s: %(message)s")
    handler.setFormatter(formatter)
    logger.addHandler(handler)
    return logger
