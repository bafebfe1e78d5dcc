"""Structured JSON logging for the expense kernel.

Every record is one JSON object per line.  Request-scoped fields (which
report, which caller, which transition) ride along in ``LogContext`` so
services log short event names such as ``transition_committed`` and let the
formatter attach the who/what.
"""

__all__ = [
    "CONTEXT_FIELDS",
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
from datetime import UTC, date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

# ---------------------------------------------------------------------------
# Context propagation
# ---------------------------------------------------------------------------

CONTEXT_FIELDS = ("correlation_id", "report_id", "actor_id", "action")

_context_vars: dict[str, ContextVar[str | None]] = {
    name: ContextVar(f"expense_log_{name}", default=None) for name in CONTEXT_FIELDS
}


def _context_var(name: str) -> ContextVar[str | None]:
    try:
        return _context_vars[name]
    except KeyError:
        raise TypeError(
            f"Unknown log context field {name!r}; expected one of {CONTEXT_FIELDS}"
        ) from None


class LogContext:
    """Request-scoped log fields, isolated per thread and per asyncio task.

    Values are stored as strings; UUIDs and enums are stringified on the
    way in so the formatter never has to guess.
    """

    @classmethod
    def set(cls, **fields: Any) -> None:
        """Set context fields.  None leaves a field as it is."""
        for name, value in fields.items():
            if value is not None:
                _context_var(name).set(str(value))

    @classmethod
    def get_all(cls) -> dict[str, str]:
        """Non-empty context fields, in declaration order."""
        ctx: dict[str, str] = {}
        for name in CONTEXT_FIELDS:
            value = _context_vars[name].get()
            if value is not None:
                ctx[name] = value
        return ctx

    @classmethod
    def clear(cls) -> None:
        for var in _context_vars.values():
            var.set(None)

    @classmethod
    def bind(cls, **fields: Any) -> "_BoundContext":
        """Set fields for the duration of a ``with`` block, then restore."""
        return _BoundContext(fields)


class _BoundContext:
    """Context manager returned by LogContext.bind()."""

    def __init__(self, fields: dict[str, Any]):
        # Validate eagerly so a typo fails at the call site
        for name in fields:
            _context_var(name)
        self._fields = fields
        self._tokens: list[tuple[ContextVar[str | None], Token]] = []

    def __enter__(self) -> type[LogContext]:
        for name, value in self._fields.items():
            if value is not None:
                var = _context_vars[name]
                self._tokens.append((var, var.set(str(value))))
        return LogContext

    def __exit__(self, *exc: Any) -> None:
        while self._tokens:
            var, token = self._tokens.pop()
            var.reset(token)


# ---------------------------------------------------------------------------
# JSON Formatter
# ---------------------------------------------------------------------------

_STDLIB_KEYS: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None)).keys()
) | {"message", "taskName"}


class _JSONEncoder(json.JSONEncoder):
    """Handle UUID, datetime, date, Decimal, Enum and sets in log payloads."""

    def default(self, obj: Any) -> Any:
        if isinstance(obj, Enum):
            return obj.value
        if isinstance(obj, (UUID, Decimal)):
            return str(obj)
        if isinstance(obj, (datetime, date)):
            return obj.isoformat()
        if isinstance(obj, (set, frozenset)):
            return sorted(obj, key=str)
        return super().default(obj)


def _exception_fields(exc: BaseException) -> dict[str, Any]:
    """Flatten an exception into ``exc_*`` keys.

    Kernel errors carry a stable ``code`` plus their context as instance
    attributes (report_id, slot, expected_status, ...); those are copied
    as-is so log queries can filter on them.
    """
    fields: dict[str, Any] = {
        "exc_type": type(exc).__name__,
        "exc_message": str(exc),
    }
    code = getattr(exc, "code", None)
    if code is not None:
        fields["exc_code"] = code
    for key, value in vars(exc).items():
        if not key.startswith("_") and key not in ("args", "code"):
            fields[f"exc_{key}"] = value
    return fields


class StructuredFormatter(logging.Formatter):
    """Formats each log record as a single JSON line."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(
                timespec="milliseconds"
            ),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update(LogContext.get_all())

        # Context wins over an extra of the same name
        for key, val in vars(record).items():
            if key not in _STDLIB_KEYS and key not in payload:
                payload[key] = val

        if record.exc_info and record.exc_info[1] is not None:
            payload.update(_exception_fields(record.exc_info[1]))
            payload["traceback"] = self.formatException(record.exc_info)

        return json.dumps(payload, cls=_JSONEncoder, default=str)


# ---------------------------------------------------------------------------
# Logger factory
# ---------------------------------------------------------------------------

_LOGGER_PREFIX = "expense_kernel"


def get_logger(name: str) -> logging.Logger:
    """Logger under the ``expense_kernel`` namespace."""
    return logging.getLogger(f"{_LOGGER_PREFIX}.{name}")


# ---------------------------------------------------------------------------
# Initialization
# ---------------------------------------------------------------------------

_configured = False
_lock = threading.Lock()


def configure_logging(
    *,
    level: int | str = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> None:
    """Attach one JSON handler to the ``expense_kernel`` logger.

    Only the first call has any effect until ``reset_logging()``.  Records
    do not propagate to the root logger, so an application's own logging
    setup never double-prints kernel events.
    """
    global _configured
    with _lock:
        if _configured:
            return
        _configured = True

        kernel_logger = logging.getLogger(_LOGGER_PREFIX)
        kernel_logger.setLevel(level)
        kernel_logger.propagate = False

        target = handler if handler is not None else logging.StreamHandler(stream or sys.stderr)
        target.setFormatter(StructuredFormatter())
        kernel_logger.addHandler(target)


def reset_logging() -> None:
    """Drop handlers and the configured flag.  Test suites only."""
    global _configured
    with _lock:
        _configured = False
        kernel_logger = logging.getLogger(_LOGGER_PREFIX)
        for h in list(kernel_logger.handlers):
            kernel_logger.removeHandler(h)
        kernel_logger.setLevel(logging.WARNING)
