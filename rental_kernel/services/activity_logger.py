"""
Activity logger -- the external collaborator that records user-facing
activity ("Lease activated", "Payment applied").

Responsibility:
    Defines the ``ActivityLogger`` protocol and ``ActivityEntry`` value,
    a default ``StructuredActivityLogger`` that writes entries to the
    structured log, and ``dispatch_activity`` which delivers entries after
    the business transaction has committed.

Invariants enforced:
    An activity logger failure never rolls back or fails the business
    operation.  dispatch_activity logs the failure at WARNING and moves on.
"""

from dataclasses import dataclass, field
from typing import Any, Iterable, Protocol
from uuid import UUID

from rental_kernel.logging_config import get_logger

logger = get_logger("services.activity_logger")


@dataclass(frozen=True)
class ActivityEntry:
    organization_id: UUID
    actor_user_id: UUID
    action: str
    target_table: str
    target_id: UUID
    description: str
    before: dict[str, Any] | None = None
    after: dict[str, Any] | None = field(default=None)


class ActivityLogger(Protocol):
    def record(self, entry: ActivityEntry) -> None:
        ...


class StructuredActivityLogger:
    """Writes each activity entry as one structured log line."""

    def __init__(self) -> None:
        self._logger = get_logger("activity")

    def record(self, entry: ActivityEntry) -> None:
        self._logger.info(
            "activity_recorded",
            extra={
                "activity_action": entry.action,
                "organization_id": str(entry.organization_id),
                "actor_user_id": str(entry.actor_user_id),
                "target_table": entry.target_table,
                "target_id": str(entry.target_id),
                "description": entry.description,
                "before": entry.before,
                "after": entry.after,
            },
        )


def dispatch_activity(
    activity_logger: ActivityLogger,
    entries: Iterable[ActivityEntry],
) -> int:
    """
    Deliver entries to the activity logger, isolating its failures.

    Returns:
        Number of entries delivered successfully.
    """
    delivered = 0
    for entry in entries:
        try:
            activity_logger.record(entry)
            delivered += 1
        except Exception:
            logger.warning(
                "activity_log_failed",
                extra={
                    "activity_action": entry.action,
                    "target_table": entry.target_table,
                    "target_id": str(entry.target_id),
                },
                exc_info=True,
            )
    return delivered
