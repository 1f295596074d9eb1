"""
Structured JSON logging for the numbering kernel.

Every record leaving the ``numbering_kernel`` logger tree is one JSON object
per line::

    {"ts": "...", "level": "INFO", "logger": "numbering_kernel.services.allocation",
     "message": "allocation_completed", "correlation_id": "...",
     "idempotency_key": "inv-42", "human_id": "IN1-FY26-000042", ...}

Request-scoped fields (correlation id, idempotency key, entity type, client,
actor, trace) live in ``LogContext`` and are stamped on every record emitted
while they are bound.  Values passed through ``extra=`` are flattened into the
top level.
"""

__all__ = [
    "StructuredFormatter",
    "LogContext",
    "get_logger",
    "configure_logging",
    "reset_logging",
]

import json
import logging
import sys
import threading
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, date, datetime
from decimal import Decimal
from enum import Enum
from types import MappingProxyType
from typing import Any
from uuid import UUID

_LOGGER_PREFIX = "numbering_kernel"

# ---------------------------------------------------------------------------
# Context propagation
# ---------------------------------------------------------------------------

_CONTEXT_FIELDS = (
    "correlation_id",
    "idempotency_key",
    "entity_type",
    "client_id",
    "actor_id",
    "trace_id",
)

_EMPTY: Mapping[str, str] = MappingProxyType({})

_log_context: ContextVar[Mapping[str, str]] = ContextVar(
    "numbering_log_context", default=_EMPTY
)


def _merged(fields: dict[str, Any]) -> Mapping[str, str]:
    unknown = set(fields) - set(_CONTEXT_FIELDS)
    if unknown:
        raise TypeError(f"Unknown log context field(s): {sorted(unknown)}")
    current = dict(_log_context.get())
    current.update({k: v for k, v in fields.items() if v is not None})
    return MappingProxyType(current)


class LogContext:
    """
    Request-scoped log fields, safe across threads and asyncio tasks.

    The whole context is one immutable mapping held in a ``ContextVar``;
    ``bind`` swaps in an extended copy and restores the previous one on exit,
    so nested bindings unwind correctly.
    """

    @staticmethod
    def set(**fields: str | None) -> None:
        """Merge fields into the current context. ``None`` values are ignored."""
        _log_context.set(_merged(fields))

    @staticmethod
    def get_all() -> dict[str, str]:
        return dict(_log_context.get())

    @staticmethod
    def clear() -> None:
        _log_context.set(_EMPTY)

    @staticmethod
    @contextmanager
    def bind(**fields: str | None) -> Iterator[type["LogContext"]]:
        token = _log_context.set(_merged(fields))
        try:
            yield LogContext
        finally:
            _log_context.reset(token)


# ---------------------------------------------------------------------------
# JSON Formatter
# ---------------------------------------------------------------------------

# Attributes every LogRecord carries; anything else came in through extra=.
_RECORD_ATTRS: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None))
) | {"message", "taskName"}


def _json_default(obj: Any) -> Any:
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    if isinstance(obj, (UUID, Decimal)):
        return str(obj)
    return repr(obj)


def _exception_fields(exc: BaseException) -> dict[str, Any]:
    fields: dict[str, Any] = {
        "exc_type": type(exc).__name__,
        "exc_message": str(exc),
    }
    code = getattr(exc, "code", None)
    if code is not None:
        fields["exc_code"] = code
    # Structured attributes of NumberingKernelError subclasses.
    for name, value in vars(exc).items():
        if not name.startswith("_") and name != "code":
            fields[f"exc_{name}"] = value
    return fields


class StructuredFormatter(logging.Formatter):
    """One JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **_log_context.get(),
        }
        payload.update(
            (key, value)
            for key, value in vars(record).items()
            if key not in _RECORD_ATTRS and key not in payload
        )
        if record.exc_info and record.exc_info[1] is not None:
            payload.update(_exception_fields(record.exc_info[1]))
            payload["traceback"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=_json_default)


# ---------------------------------------------------------------------------
# Setup
# ---------------------------------------------------------------------------


def get_logger(name: str) -> logging.Logger:
    """Logger under the ``numbering_kernel`` namespace."""
    return logging.getLogger(f"{_LOGGER_PREFIX}.{name}")


_configured = False
_lock = threading.Lock()


def configure_logging(
    *,
    level: int = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> None:
    """
    Attach a JSON handler to the ``numbering_kernel`` logger tree.

    Only the first call has any effect; later calls return immediately so
    library entry points may call it unconditionally.
    """
    global _configured
    with _lock:
        if _configured:
            return
        _configured = True

    target = handler or logging.StreamHandler(stream or sys.stderr)
    target.setFormatter(StructuredFormatter())

    root = logging.getLogger(_LOGGER_PREFIX)
    root.setLevel(level)
    root.propagate = False
    root.addHandler(target)


def reset_logging() -> None:
    """Undo ``configure_logging``. Tests only."""
    global _configured
    with _lock:
        _configured = False
    root = logging.getLogger(_LOGGER_PREFIX)
    root.handlers.clear()
    root.setLevel(logging.WARNING)
