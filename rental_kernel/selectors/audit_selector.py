"""Read access to the billing audit trail."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import select

from rental_kernel.models.audit_event import BillingAuditEvent
from rental_kernel.selectors.base import BaseSelector


@dataclass(frozen=True)
class AuditEventRecord:
    id: UUID
    entity_seq: int
    entity_type: str
    entity_id: UUID
    organization_id: UUID
    action: str
    from_status: str | None
    to_status: str | None
    reason: str | None
    notes: str | None
    occurred_at: datetime
    actor_id: UUID
    payload: dict[str, Any] = field(default_factory=dict)


class AuditSelector(BaseSelector[BillingAuditEvent]):
    def events_for(self, entity_type: str, entity_id: UUID) -> list[AuditEventRecord]:
        """Audit history of one entity, oldest first."""
        rows = self.session.execute(
            select(BillingAuditEvent)
            .where(
                BillingAuditEvent.entity_type == entity_type,
                BillingAuditEvent.entity_id == entity_id,
            )
            .order_by(BillingAuditEvent.entity_seq)
        ).scalars().all()
        return [
            AuditEventRecord(
                id=row.id,
                entity_seq=row.entity_seq,
                entity_type=row.entity_type,
                entity_id=row.entity_id,
                organization_id=row.organization_id,
                action=row.action,
                from_status=row.from_status,
                to_status=row.to_status,
                reason=row.reason,
                notes=row.notes,
                occurred_at=row.occurred_at,
                actor_id=row.actor_id,
                payload=dict(row.payload or {}),
            )
            for row in rows
        ]
