"""
Structured JSON logging for the execution kernel.

Every record leaving the ``execution_kernel`` logger tree is one JSON
line carrying the report context (report, facility, quarter) bound by
the session, the record's ``extra`` fields, and the structured
attributes of any ExecutionKernelError attached to it.
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
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, datetime
from decimal import Decimal
from enum import Enum
from typing import Any

# ---------------------------------------------------------------------------
# Report context
# ---------------------------------------------------------------------------

_REPORT_FIELDS = ("report_id", "facility_id", "quarter")

_CONTEXT: dict[str, ContextVar[str | None]] = {
    name: ContextVar(f"execution_log_{name}", default=None) for name in _REPORT_FIELDS
}


def _var(name: str) -> ContextVar[str | None]:
    try:
        return _CONTEXT[name]
    except KeyError:
        raise TypeError(f"Unknown log context field: {name}") from None


class LogContext:
    """Report-scoped fields stamped onto every structured record."""

    @classmethod
    def set(cls, **fields: str | None) -> None:
        """Set context fields. None leaves a field as it is."""
        for name, val in fields.items():
            if val is not None:
                _var(name).set(val)

    @classmethod
    def get_all(cls) -> dict[str, str]:
        return {name: var.get() for name, var in _CONTEXT.items() if var.get() is not None}

    @classmethod
    def clear(cls) -> None:
        for var in _CONTEXT.values():
            var.set(None)

    @staticmethod
    @contextmanager
    def bind(**fields: str | None):
        """Set fields for the duration of a block, then restore them."""
        tokens = [(_var(name), _var(name).set(val)) for name, val in fields.items() if val is not None]
        try:
            yield LogContext
        finally:
            for var, token in reversed(tokens):
                var.reset(token)


# ---------------------------------------------------------------------------
# JSON Formatter
# ---------------------------------------------------------------------------

_STDLIB_KEYS: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None)).keys()
) | {"message", "taskName"}


def _json_default(obj: Any) -> Any:
    """Amounts as exact strings, enums by value."""
    if isinstance(obj, Decimal):
        return str(obj)
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, datetime):
        return obj.isoformat()
    return str(obj)


class StructuredFormatter(logging.Formatter):
    """Formats each log record as a single JSON line."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **LogContext.get_all(),
        }
        payload.update(
            (key, val) for key, val in vars(record).items() if key not in _STDLIB_KEYS and key not in payload
        )

        if record.exc_info and record.exc_info[1] is not None:
            exc = record.exc_info[1]
            payload["exc_type"] = type(exc).__name__
            payload["exc_message"] = str(exc)
            code = getattr(exc, "code", None)
            if code is not None:
                payload["exc_code"] = code
            # ExecutionKernelError attributes: activity_code, quarter, ...
            payload.update(
                (f"exc_{k}", v) for k, v in vars(exc).items() if not k.startswith("_") and k != "code"
            )
            payload["traceback"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=_json_default)


# ---------------------------------------------------------------------------
# Logger factory and setup
# ---------------------------------------------------------------------------

_LOGGER_PREFIX = "execution_kernel"

_configured = False


def get_logger(name: str) -> logging.Logger:
    """Get a logger under the execution_kernel namespace."""
    return logging.getLogger(f"{_LOGGER_PREFIX}.{name}")


def configure_logging(
    *,
    level: int = logging.INFO,
    handler: logging.Handler | None = None,
) -> None:
    """Attach one JSON handler to the execution_kernel tree (idempotent)."""
    global _configured
    if _configured:
        return
    _configured = True

    root_logger = logging.getLogger(_LOGGER_PREFIX)
    root_logger.setLevel(level)
    root_logger.propagate = False

    handler = handler if handler is not None else logging.StreamHandler(sys.stderr)
    handler.setFormatter(StructuredFormatter())
    root_logger.addHandler(handler)


def reset_logging() -> None:
    """Undo configure_logging. Tests only."""
    global _configured
    _configured = False
    logger = logging.getLogger(_LOGGER_PREFIX)
    logger.handlers.clear()
    logger.setLevel(logging.WARNING)
    logger.propagate = True
