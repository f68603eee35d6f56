"""
Module: rental_kernel.db.retry
Responsibility: Bounded retry of a unit of work on transient database
    conflicts, and translation of every other store failure into the
    kernel's infrastructure errors.
Architecture position: Kernel > DB.  Imports exceptions and logging only.

Invariants enforced:
    - Only serialization failures (SQLSTATE 40001), deadlocks (40P01) and
      SQLite lock contention are retried.  Domain errors (NotFound,
      Validation, Conflict) pass through untouched on the first attempt.
    - The unit of work is re-run from scratch on every attempt; it must open
      and close its own transaction.
    - Backoff is linear: backoff_seconds * attempt.

Failure modes:
    - TransientDatabaseError once max_attempts transient failures occurred.
    - InternalBillingError for any other SQLAlchemyError.  The cause is
      logged with full context; the raised error carries a generic message.
"""

import time
from typing import Callable, TypeVar

from sqlalchemy.exc import DBAPIError, SQLAlchemyError

from rental_kernel.exceptions import InternalBillingError, TransientDatabaseError
from rental_kernel.logging_config import get_logger

logger = get_logger("db.retry")

T = TypeVar("T")

TRANSIENT_SQLSTATES = frozenset({"40001", "40P01"})
_SQLITE_TRANSIENT_MESSAGES = ("database is locked", "database table is locked")


def is_transient_db_error(exc: BaseException) -> bool:
    """True if exc is a serialization failure, deadlock, or SQLite lock."""
    if not isinstance(exc, DBAPIError):
        return False
    orig = exc.orig
    sqlstate = getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)
    if sqlstate in TRANSIENT_SQLSTATES:
        return True
    message = str(orig).lower()
    return any(fragment in message for fragment in _SQLITE_TRANSIENT_MESSAGES)


def run_with_retry(
    operation: str,
    work: Callable[[], T],
    max_attempts: int = 3,
    backoff_seconds: float = 0.05,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """
    Run work(), retrying transient database conflicts.

    Args:
        operation: Name used in log events and raised errors.
        work: Zero-argument callable running one complete transaction.
        max_attempts: Total attempts including the first.
        backoff_seconds: Base delay; attempt n waits backoff_seconds * n.
        sleep: Injectable sleep function.

    Returns:
        Whatever work() returns.

    Raises:
        TransientDatabaseError: Every attempt hit a transient conflict.
        InternalBillingError: A non-transient store failure.
    """
    attempt = 0
    while True:
        attempt += 1
        try:
            return work()
        except SQLAlchemyError as exc:
            if not is_transient_db_error(exc):
                logger.error(
                    "database_operation_failed",
                    extra={"operation": operation, "attempt": attempt},
                    exc_info=True,
                )
                raise InternalBillingError(operation) from exc
            if attempt >= max_attempts:
                logger.error(
                    "transient_retry_exhausted",
                    extra={"operation": operation, "attempts": attempt},
                )
                raise TransientDatabaseError(operation, attempt) from exc
            delay = backoff_seconds * attempt
            logger.warning(
                "transient_db_error_retry",
                extra={
                    "operation": operation,
                    "attempt": attempt,
                    "max_attempts": max_attempts,
                    "delay_seconds": delay,
                },
            )
            sleep(delay)
