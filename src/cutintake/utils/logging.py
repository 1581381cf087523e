"""Structured logging utilities emitting JSON Lines payloads."""

from __future__ import annotations

import json
import logging
import time
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterator, Mapping, MutableMapping, TextIO
from uuid import uuid4

__all__ = [
    "JsonLogFormatter",
    "PACKAGE_LOGGER",
    "configure_json_logger",
    "flush_handlers",
    "generate_trace_id",
    "log_event",
    "timed_event",
]

PACKAGE_LOGGER = "cutintake"

# Attributes every LogRecord carries; anything else arrived through ``extra``.
_RESERVED_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", None, None))) | {"message", "asctime"}


class JsonLogFormatter(logging.Formatter):
    """Format log records as single-line JSON payloads.

    Fields passed through ``extra={...}`` by module loggers are merged into the
    payload, as are the ``extra_fields`` attached by :func:`log_event`.
    """

    def format(self, record: logging.LogRecord) -> str:
        message = record.getMessage()
        payload: MutableMapping[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc)
            .isoformat(timespec="milliseconds")
            .replace("+00:00", "Z"),
            "level": record.levelname.lower(),
            "logger": record.name,
            "message": message,
        }

        trace_id = getattr(record, "trace_id", None)
        if trace_id:
            payload["trace_id"] = trace_id

        payload["event"] = getattr(record, "event", None) or message

        extra_fields = getattr(record, "extra_fields", None)
        if isinstance(extra_fields, Mapping):
            payload.update(extra_fields)

        for key, value in vars(record).items():
            if key in _RESERVED_ATTRS or key in {"trace_id", "event", "extra_fields"}:
                continue
            payload.setdefault(key, value)

        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        return json.dumps(payload, ensure_ascii=False, default=str)


def configure_json_logger(
    log_path: Path | None,
    level: int = logging.INFO,
    *,
    stream: TextIO | None = None,
) -> logging.Logger:
    """Configure the package logger with a JSONL file handler and/or stream.

    Without a path or a stream the logger is silenced with a ``NullHandler`` so
    library use never prints unsolicited output.
    """

    logger = logging.getLogger(PACKAGE_LOGGER)
    logger.setLevel(level)
    logger.propagate = False

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    handlers: list[logging.Handler] = []
    if log_path is not None:
        log_path = Path(log_path)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_path, encoding="utf-8"))
    if stream is not None:
        handlers.append(logging.StreamHandler(stream))

    if not handlers:
        handlers.append(logging.NullHandler())

    for handler in handlers:
        handler.setFormatter(JsonLogFormatter())
        handler.setLevel(level)
        logger.addHandler(handler)
    return logger


def flush_handlers(logger: logging.Logger) -> None:
    """Ensure all handlers flush their buffers."""

    for handler in logger.handlers:
        handler.flush()


def generate_trace_id() -> str:
    """Return a unique trace identifier suitable for correlating log events."""

    return uuid4().hex


def log_event(
    logger: logging.Logger,
    event: str,
    *,
    trace_id: str | None = None,
    level: int = logging.INFO,
    message: str | None = None,
    **fields: Any,
) -> str:
    """Emit a structured event on the provided ``logger`` and return its trace id."""

    event_trace_id = trace_id or generate_trace_id()
    extra = {
        "trace_id": event_trace_id,
        "event": event,
        "extra_fields": fields,
    }

    logger.log(level, message or event, extra=extra)
    return event_trace_id


@contextmanager
def timed_event(
    logger: logging.Logger,
    event: str,
    *,
    trace_id: str | None = None,
    **fields: Any,
) -> Iterator[Dict[str, Any]]:
    """Log ``<event>.completed`` with ``duration_ms`` once the block exits.

    The yielded dict collects the fields of the completion record. An exception
    raised inside the block is logged as ``<event>.failed`` and re-raised.
    """

    event_trace_id = trace_id or generate_trace_id()
    collected: Dict[str, Any] = dict(fields)
    started = time.perf_counter()
    try:
        yield collected
    except Exception as exc:
        log_event(
            logger,
            f"{event}.failed",
            trace_id=event_trace_id,
            level=logging.ERROR,
            error=str(exc),
            duration_ms=round((time.perf_counter() - started) * 1000, 3),
        )
        raise
    log_event(
        logger,
        f"{event}.completed",
        trace_id=event_trace_id,
        duration_ms=round((time.perf_counter() - started) * 1000, 3),
        **collected,
    )
