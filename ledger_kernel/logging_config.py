"""
Structured JSON logging for the ledger kernel.

Every record under the ``ledger_kernel`` logger hierarchy is written as one
JSON object per line:

    {"ts": ..., "level": "INFO", "logger": "ledger_kernel.services.journal",
     "component": "services.journal", "message": "journal_entry_posted",
     "entry_id": ..., "entry_code": "JE-2024-0001", ...}

Operation-scoped identifiers (correlation, actor, journal entry,
receivable) live in ``LogContext`` and are merged into every line logged
while they are bound. Money values are written as strings so no amount is
ever rendered through a float.
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
from contextvars import ContextVar, Token
from datetime import date, datetime, timezone
from decimal import Decimal
from types import MappingProxyType
from typing import Any, Mapping
from uuid import UUID

_LOGGER_PREFIX = "ledger_kernel"

CONTEXT_FIELDS: tuple[str, ...] = (
    "correlation_id",
    "actor_id",
    "entry_id",
    "receivable_id",
)

_EMPTY: Mapping[str, str] = MappingProxyType({})
_context: ContextVar[Mapping[str, str]] = ContextVar("ledger_log_context", default=_EMPTY)


def _merged(values: dict[str, Any]) -> Mapping[str, str]:
    """Current context plus ``values``; unknown names and None are dropped."""
    updated = dict(_context.get())
    for name, value in values.items():
        if name in CONTEXT_FIELDS and value is not None:
            updated[name] = str(value)
    return MappingProxyType(updated)


class LogContext:
    """
    Identifiers attached to every log line of the current operation.

    Backed by one ``ContextVar`` holding a read-only mapping, so concurrent
    tasks and threads each see their own context.
    """

    @classmethod
    def set(
        cls,
        *,
        correlation_id: str | None = None,
        actor_id: str | None = None,
        entry_id: str | None = None,
        receivable_id: str | None = None,
    ) -> None:
        """Update the given fields; None leaves a field unchanged."""
        _context.set(
            _merged(
                {
                    "correlation_id": correlation_id,
                    "actor_id": actor_id,
                    "entry_id": entry_id,
                    "receivable_id": receivable_id,
                }
            )
        )

    @classmethod
    def get_all(cls) -> dict[str, str]:
        return dict(_context.get())

    @classmethod
    def clear(cls) -> None:
        _context.set(_EMPTY)

    @classmethod
    def bind(cls, **fields: Any) -> "_BoundContext":
        """
        Bind fields for the duration of a ``with`` block.

            with LogContext.bind(entry_id=entry.id, actor_id=actor_id):
                ...

        Values are stringified. The previous context is restored on exit,
        including when the block raises.
        """
        return _BoundContext(fields)


class _BoundContext:

    def __init__(self, fields: dict[str, Any]):
        self._fields = fields
        self._token: Token | None = None

    def __enter__(self) -> type[LogContext]:
        self._token = _context.set(_merged(self._fields))
        return LogContext

    def __exit__(self, *exc: Any) -> None:
        if self._token is not None:
            _context.reset(self._token)
            self._token = None


# Attributes every LogRecord carries; anything else came from ``extra``.
_RECORD_ATTRS: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None))
) | {"message", "taskName"}


def _encode(obj: Any) -> Any:
    if isinstance(obj, Decimal):
        return str(obj)
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    if isinstance(obj, UUID):
        return str(obj)
    if isinstance(obj, (set, frozenset)):
        return sorted(obj, key=str)
    return str(obj)


def _component(logger_name: str) -> str:
    prefix = f"{_LOGGER_PREFIX}."
    return logger_name[len(prefix):] if logger_name.startswith(prefix) else logger_name


class StructuredFormatter(logging.Formatter):
    """One JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "component": _component(record.name),
            "message": record.getMessage(),
            **_context.get(),
        }

        for key, value in vars(record).items():
            if key not in _RECORD_ATTRS:
                payload.setdefault(key, value)

        if record.exc_info and record.exc_info[1] is not None:
            payload.update(self._exception_fields(record))

        return json.dumps(payload, default=_encode)

    def _exception_fields(self, record: logging.LogRecord) -> dict[str, Any]:
        exc = record.exc_info[1]
        fields: dict[str, Any] = {
            "exc_type": type(exc).__name__,
            "exc_message": str(exc),
        }
        code = getattr(exc, "code", None)
        if code is not None:
            fields["exc_code"] = code
        # LedgerError subclasses keep their context as public attributes
        for name, value in vars(exc).items():
            if not name.startswith("_") and name not in ("args", "code"):
                fields[f"exc_{name}"] = value
        fields["traceback"] = self.formatException(record.exc_info)
        return fields


def get_logger(name: str) -> logging.Logger:
    """Logger named ``ledger_kernel.<name>``."""
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
    Attach a JSON handler to the ``ledger_kernel`` hierarchy.

    Only the first call has any effect. Records do not propagate to the
    root logger, so host applications choose where ledger logs go by
    passing ``stream`` or ``handler``.
    """
    global _configured
    with _lock:
        if _configured:
            return
        _configured = True

    ledger_logger = logging.getLogger(_LOGGER_PREFIX)
    ledger_logger.setLevel(level)
    ledger_logger.propagate = False

    target = handler if handler is not None else logging.StreamHandler(stream or sys.stderr)
    target.setFormatter(StructuredFormatter())
    ledger_logger.addHandler(target)


def reset_logging() -> None:
    """Undo ``configure_logging``. Tests only."""
    global _configured
    with _lock:
        _configured = False
    ledger_logger = logging.getLogger(_LOGGER_PREFIX)
    ledger_logger.handlers.clear()
    ledger_logger.setLevel(logging.WARNING)
