"""
AuditTrail -- append-only writer for billing audit events.

Responsibility:
    Appends one ``BillingAuditEvent`` row per status change, void,
    renewal, deletion or reminder.  Timestamps come from the injected
    Clock.

Architecture position:
    Kernel > Services -- flush-only; the caller owns the transaction, so an
    audit row commits or rolls back together with the change it describes.
"""

from typing import Any
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from rental_kernel.domain.clock import Clock
from rental_kernel.logging_config import get_logger
from rental_kernel.models.audit_event import AuditAction, BillingAuditEvent
from rental_kernel.services.base import BaseService

logger = get_logger("services.audit_trail")


class AuditTrail(BaseService[BillingAuditEvent]):
    """Appends audit rows; never updates or deletes them."""

    def __init__(self, session: Session, clock: Clock):
        super().__init__(session)
        self._clock = clock

    def record(
        self,
        *,
        entity_type: str,
        entity_id: UUID,
        organization_id: UUID,
        action: AuditAction,
        actor_id: UUID,
        from_status: str | None = None,
        to_status: str | None = None,
        reason: str | None = None,
        notes: str | None = None,
        payload: dict[str, Any] | None = None,
    ) -> BillingAuditEvent:
        # Callers hold the entity row lock, so the count is stable.
        seq = self.session.execute(
            select(func.count(BillingAuditEvent.id)).where(
                BillingAuditEvent.entity_type == entity_type,
                BillingAuditEvent.entity_id == entity_id,
            )
        ).scalar_one() + 1
        event = BillingAuditEvent(
            entity_seq=seq,
            entity_type=entity_type,
            entity_id=entity_id,
            organization_id=organization_id,
            action=action.value,
            from_status=from_status,
            to_status=to_status,
            reason=reason,
            notes=notes,
            payload=payload,
            occurred_at=self._clock.now(),
            actor_id=actor_id,
        )
        self.session.add(event)
        self.session.flush()
        logger.debug(
            "audit_event_recorded",
            extra={
                "entity_type": entity_type,
                "entity_id": str(entity_id),
                "action": action.value,
            },
        )
        return event
