"""
Structured JSON logging for the approval kernel.

Every record is one JSON line.  Request-scoped fields bound through
``LogContext`` (the request being worked on, the acting principal, and
the template the request was created from) are merged into each line
emitted while they are bound, so a service call's events can be grouped
without repeating ids in every ``extra`` payload.
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
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, datetime
from enum import Enum
from typing import Any, Iterator
from uuid import UUID

from approval_kernel.exceptions import ApprovalKernelError

# ---------------------------------------------------------------------------
# Context propagation
# ---------------------------------------------------------------------------

CONTEXT_FIELDS: tuple[str, ...] = ("request_id", "actor_id", "template_id")

_context_vars: dict[str, ContextVar[str | None]] = {
    name: ContextVar(f"approval_log_{name}", default=None) for name in CONTEXT_FIELDS
}


class LogContext:
    """Context-variable holder for request-scoped log fields.

    Values live in ``contextvars``, so threads and asyncio tasks each see
    their own binding.  Unknown field names are ignored.
    """

    @staticmethod
    def set(**fields: Any) -> None:
        """Set the given fields; ``None`` values are left untouched."""
        for name, value in fields.items():
            var = _context_vars.get(name)
            if var is not None and value is not None:
                var.set(str(value))

    @staticmethod
    def get_all() -> dict[str, str]:
        """Bound fields only, in ``CONTEXT_FIELDS`` order."""
        bound: dict[str, str] = {}
        for name in CONTEXT_FIELDS:
            value = _context_vars[name].get()
            if value is not None:
                bound[name] = value
        return bound

    @staticmethod
    def clear() -> None:
        for var in _context_vars.values():
            var.set(None)

    @staticmethod
    @contextmanager
    def bind(**fields: Any) -> Iterator[None]:
        """Bind fields for the duration of a ``with`` block.

        The previous values are restored on exit, including on error.
        """
        tokens = [
            (_context_vars[name], _context_vars[name].set(str(value)))
            for name, value in fields.items()
            if name in _context_vars and value is not None
        ]
        try:
            yield
        finally:
            for var, token in reversed(tokens):
                var.reset(token)


# ---------------------------------------------------------------------------
# JSON Formatter
# ---------------------------------------------------------------------------

_STDLIB_KEYS: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None)).keys()
) | {"message", "taskName"}


class _JSONEncoder(json.JSONEncoder):
    """Log payloads carry domain values: enums, UUIDs, datetimes, sets."""

    def default(self, obj: Any) -> Any:
        if isinstance(obj, Enum):
            return obj.value
        if isinstance(obj, datetime):
            return obj.isoformat()
        if isinstance(obj, (frozenset, set)):
            return sorted(obj, key=str)
        if isinstance(obj, UUID):
            return str(obj)
        return str(obj)


def _exception_fields(exc: BaseException) -> dict[str, Any]:
    fields: dict[str, Any] = {
        "exc_type": type(exc).__name__,
        "exc_message": str(exc),
    }
    if isinstance(exc, ApprovalKernelError):
        fields["exc_code"] = exc.code
        # structured attributes (request_id, from_state, actual_version, ...)
        for name, value in vars(exc).items():
            if not name.startswith("_"):
                fields[f"exc_{name}"] = value
    return fields


class StructuredFormatter(logging.Formatter):
    """Formats each log record as a single JSON line."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        # bound context wins over a same-named extra key
        payload.update(LogContext.get_all())
        for key, value in vars(record).items():
            if key not in _STDLIB_KEYS and key not in payload:
                payload[key] = value

        if record.exc_info and record.exc_info[1] is not None:
            payload.update(_exception_fields(record.exc_info[1]))
            payload["traceback"] = self.formatException(record.exc_info)

        return json.dumps(payload, cls=_JSONEncoder)


# ---------------------------------------------------------------------------
# Logger factory and initialization
# ---------------------------------------------------------------------------

_LOGGER_PREFIX = "approval_kernel"

_configured = False
_lock = threading.Lock()


def get_logger(name: str) -> logging.Logger:
    """Logger under the ``approval_kernel`` namespace, e.g. ``services.request``."""
    return logging.getLogger(f"{_LOGGER_PREFIX}.{name}")


def configure_logging(
    *,
    level: int | str = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> None:
    """Attach one JSON handler to the ``approval_kernel`` logger.

    Idempotent: only the first call in a process takes effect, until
    ``reset_logging()``.  ``level`` accepts a number or a level name.
    """
    global _configured
    with _lock:
        if _configured:
            return
        _configured = True

    kernel_logger = logging.getLogger(_LOGGER_PREFIX)
    kernel_logger.setLevel(level.upper() if isinstance(level, str) else level)
    kernel_logger.propagate = False

    h = handler if handler is not None else logging.StreamHandler(stream or sys.stderr)
    h.setFormatter(StructuredFormatter())
    kernel_logger.addHandler(h)


def reset_logging() -> None:
    """Drop handlers and the configured flag. FOR TESTING ONLY."""
    global _configured
    with _lock:
        _configured = False
    kernel_logger = logging.getLogger(_LOGGER_PREFIX)
    kernel_logger.handlers.clear()
    kernel_logger.setLevel(logging.WARNING)
