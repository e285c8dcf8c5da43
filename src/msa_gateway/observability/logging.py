"""Structured logging for the gateway client layer.

Log lines carry the downstream service (``peer_service``) and the inbound
trace id (``trace_id``) of the call being made. Both are bound through
``LogContext`` so code deep in the invoker does not have to pass them around.

Output is JSON by default; set ``MSA_GATEWAY_LOG_FORMAT=console`` for
human-readable lines.
"""

from __future__ import annotations

import contextvars
import json
import logging
import os
import sys
from datetime import datetime, timezone
from typing import IO, Any

__all__ = [
    "LEVEL_NAME_TO_INT",
    "LOG_FORMAT_CONSOLE",
    "LOG_FORMAT_ENV",
    "LOG_FORMAT_JSON",
    "ContextFilter",
    "LogContext",
    "StructuredConsoleFormatter",
    "StructuredJSONFormatter",
    "get_logger",
]


LOG_FORMAT_ENV = "MSA_GATEWAY_LOG_FORMAT"
LOG_FORMAT_JSON = "json"
LOG_FORMAT_CONSOLE = "console"

LEVEL_NAME_TO_INT: dict[str, int] = {
    name: logging.getLevelName(name) for name in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
}

CONTEXT_KEYS = ("trace_id", "peer_service")
_MISSING = "-"

_current_context: contextvars.ContextVar[tuple[tuple[str, Any], ...]] = contextvars.ContextVar(
    "msa_gateway_log_context", default=()
)

# Attributes every LogRecord has; anything else came from ``extra=`` or a filter.
_STANDARD_RECORD_FIELDS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", None, None))) | {
    "message",
    "asctime",
}

_CONSOLE_FORMAT = (
    "%(asctime)s %(levelname)-7s %(name)s %(message)s "
    "peer_service=%(peer_service)s trace_id=%(trace_id)s"
)

_HANDLER_MARKER = "_msa_gateway_format"


def _bound_values() -> dict[str, Any]:
    values = dict.fromkeys(CONTEXT_KEYS)
    values.update(_current_context.get())
    return values


class LogContext:
    """Binds values onto every record logged in the current context.

    Use it as a context manager around a unit of work; the previous values
    come back on exit. Because it is backed by a contextvar, concurrent
    asyncio tasks never see each other's values.

        with LogContext(peer_service="hola", trace_id=trace_id):
            logger.warning("falling back")

    None values are ignored.
    """

    def __init__(self, **values: Any) -> None:
        self._values = {key: value for key, value in values.items() if value is not None}
        self._tokens: list[contextvars.Token] = []

    def __enter__(self) -> LogContext:
        merged = {**dict(_current_context.get()), **self._values}
        self._tokens.append(_current_context.set(tuple(merged.items())))
        return self

    def __exit__(self, *exc_info: Any) -> None:
        if self._tokens:
            _current_context.reset(self._tokens.pop())

    @classmethod
    def bind(cls, **values: Any) -> None:
        """Bind values for the rest of the current context, without a scope."""
        cls(**values).__enter__()

    @classmethod
    def clear(cls) -> None:
        _current_context.set(())

    @classmethod
    def snapshot(cls) -> dict[str, Any]:
        """Return the bound values; the well-known keys are always present."""
        return _bound_values()


class ContextFilter(logging.Filter):
    """Copies LogContext values onto records, ``-`` when unset.

    Values passed explicitly through ``extra=`` take precedence.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        for key, value in _bound_values().items():
            if key not in record.__dict__:
                setattr(record, key, _MISSING if value is None else value)
        return True


class StructuredJSONFormatter(logging.Formatter):
    """One JSON object per line.

    Fixed keys are ``timestamp`` (UTC, millisecond ISO-8601 with a ``Z``
    suffix), ``level``, ``logger`` and ``message``; context and ``extra=``
    fields follow, then ``exception`` when there is one.
    """

    def formatTime(self, record: logging.LogRecord, datefmt: str | None = None) -> str:
        created = datetime.fromtimestamp(record.created, tz=timezone.utc)
        if datefmt:
            return created.strftime(datefmt)
        return created.strftime("%Y-%m-%dT%H:%M:%S.") + f"{int(record.msecs):03d}Z"

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        entry.update(
            (key, value)
            for key, value in record.__dict__.items()
            if key not in _STANDARD_RECORD_FIELDS and key not in entry and not key.startswith("_")
        )
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        elif record.stack_info:
            entry["stack"] = self.formatStack(record.stack_info)
        return json.dumps(entry, default=str, ensure_ascii=False)


class StructuredConsoleFormatter(logging.Formatter):
    """Plain text with the peer service and trace id appended."""

    def __init__(self, fmt: str | None = None, *, datefmt: str | None = None) -> None:
        super().__init__(fmt or _CONSOLE_FORMAT, datefmt)


_FORMATTERS: dict[str, type[logging.Formatter]] = {
    LOG_FORMAT_JSON: StructuredJSONFormatter,
    LOG_FORMAT_CONSOLE: StructuredConsoleFormatter,
}


def _resolve_format(log_format: str | None) -> str:
    candidate = (log_format or os.getenv(LOG_FORMAT_ENV) or "").strip().lower()
    return candidate if candidate in _FORMATTERS else LOG_FORMAT_JSON


def _resolve_level(level: int | str | None) -> int | None:
    if isinstance(level, str):
        return LEVEL_NAME_TO_INT.get(level.strip().upper(), logging.INFO)
    return level


def get_logger(
    name: str,
    *,
    log_format: str | None = None,
    level: int | str | None = None,
    stream: IO[str] | None = None,
) -> logging.Logger:
    """Return ``logging.getLogger(name)`` with a structured handler.

    The handler is attached once per format; later calls with the same
    format return the logger untouched. The logger stops propagating so
    records are not printed twice by a root handler.

    Args:
        name: Logger name, usually ``msa_gateway``.
        log_format: ``json`` or ``console``; falls back to
            ``MSA_GATEWAY_LOG_FORMAT``, then ``json``.
        level: Level as an int or a name such as ``"DEBUG"``. INFO when the
            logger has no level yet.
        stream: Output stream; stdout by default.
    """
    logger = logging.getLogger(name)
    kind = _resolve_format(log_format)
    if any(getattr(h, _HANDLER_MARKER, None) == kind for h in logger.handlers):
        return logger

    handler = logging.StreamHandler(stream if stream is not None else sys.stdout)
    handler.setFormatter(_FORMATTERS[kind]())
    handler.addFilter(ContextFilter())
    setattr(handler, _HANDLER_MARKER, kind)
    logger.addHandler(handler)

    resolved_level = _resolve_level(level)
    if resolved_level is not None:
        logger.setLevel(resolved_level)
    elif logger.level == logging.NOTSET:
        logger.setLevel(logging.INFO)
    logger.propagate = False
    return logger
