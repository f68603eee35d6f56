"""
Structured JSON logging for the rental billing core.

Every record under the ``rental_billing`` logger is written as one JSON
object per line.  Request-scoped identifiers (correlation, organization,
actor, lease, invoice, payment) are carried in a context variable and
merged into each record, so a single billing operation can be followed
across the lifecycle, ledger and batch modules.

Usage:
    logger = get_logger("modules.lease.lifecycle")
    with LogContext.bind(organization_id=str(org_id), lease_id=str(lease_id)):
        logger.info("lease_status_changed", extra={"to_status": "active"})
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
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, date, datetime
from decimal import Decimal
from typing import Any, Iterator, Mapping
from uuid import UUID

_LOGGER_PREFIX = "rental_billing"

# Identifiers LogContext accepts; anything else passed to bind() is dropped.
CONTEXT_FIELDS: tuple[str, ...] = (
    "correlation_id",
    "organization_id",
    "actor_id",
    "lease_id",
    "invoice_id",
    "payment_id",
)

_context: ContextVar[Mapping[str, str]] = ContextVar("rental_billing_log_context", default={})


class LogContext:
    """Request-scoped log fields, isolated per thread and per task."""

    @staticmethod
    def set(**fields: Any) -> None:
        """Merge fields into the current context.  None values are ignored."""
        _context.set(_merged(_context.get(), fields))

    @staticmethod
    def get_all() -> dict[str, str]:
        return dict(_context.get())

    @staticmethod
    def clear() -> None:
        _context.set({})

    @staticmethod
    @contextmanager
    def bind(**fields: Any) -> Iterator[None]:
        """Merge fields for the duration of a ``with`` block, then restore."""
        token = _context.set(_merged(_context.get(), fields))
        try:
            yield
        finally:
            _context.reset(token)


def _merged(current: Mapping[str, str], fields: Mapping[str, Any]) -> dict[str, str]:
    merged = dict(current)
    for name, value in fields.items():
        if name in CONTEXT_FIELDS and value is not None:
            merged[name] = str(value)
    return merged


# ---------------------------------------------------------------------------
# Formatter
# ---------------------------------------------------------------------------

_RESERVED_ATTRS: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None))
) | {"message", "taskName"}


def _json_default(value: Any) -> Any:
    if isinstance(value, (UUID, Decimal)):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return str(value)


def _exception_fields(exc: BaseException) -> dict[str, Any]:
    """Type, message, and the public attributes of a billing error."""
    fields: dict[str, Any] = {
        "exc_type": type(exc).__name__,
        "exc_message": str(exc),
    }
    code = getattr(exc, "code", None)
    if code is not None:
        fields["exc_code"] = code
    for name, value in vars(exc).items():
        if not name.startswith("_"):
            fields[f"exc_{name}"] = value
    return fields


class StructuredFormatter(logging.Formatter):
    """One JSON object per record: timestamp, level, logger, message,
    context fields, ``extra`` fields and exception details."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **LogContext.get_all(),
        }
        for name, value in vars(record).items():
            if name not in _RESERVED_ATTRS:
                entry.setdefault(name, value)

        if record.exc_info and record.exc_info[1] is not None:
            entry.update(_exception_fields(record.exc_info[1]))
            entry["traceback"] = self.formatException(record.exc_info)

        return json.dumps(entry, default=_json_default)


# ---------------------------------------------------------------------------
# Setup
# ---------------------------------------------------------------------------


def get_logger(name: str) -> logging.Logger:
    """Logger under the rental_billing namespace, e.g. ``rental_billing.batch.generator``."""
    return logging.getLogger(f"{_LOGGER_PREFIX}.{name}")


_setup_lock = threading.Lock()
_handler: logging.Handler | None = None


def configure_logging(
    *,
    level: int | str = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> None:
    """Attach one JSON handler to the rental_billing logger.  Later calls are no-ops."""
    global _handler
    with _setup_lock:
        if _handler is not None:
            return
        _handler = handler or logging.StreamHandler(stream or sys.stderr)
        _handler.setFormatter(StructuredFormatter())
        billing_logger = logging.getLogger(_LOGGER_PREFIX)
        billing_logger.setLevel(level)
        billing_logger.propagate = False
        billing_logger.addHandler(_handler)


def reset_logging() -> None:
    """Remove the configured handler.  Test helper."""
    global _handler
    with _setup_lock:
        billing_logger = logging.getLogger(_LOGGER_PREFIX)
        billing_logger.handlers.clear()
        billing_logger.setLevel(logging.WARNING)
        _handler = None
