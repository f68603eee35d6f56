"""
Module: rental_kernel.models.audit_event
Responsibility: ORM persistence for the append-only billing audit trail.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Rows are append-only.  Status changes, voids, renewals, deletions and
      reminders each INSERT a new row; nothing ever UPDATEs one.  This
      replaces read-modify-write merges into a JSON metadata column, which
      lose updates under concurrency.

Audit relevance:
    BillingAuditEvent IS the audit trail for the billing lifecycle: who moved
    which lease or invoice from which status to which, when, and why.
"""

from datetime import datetime
from enum import Enum
from uuid import UUID

from sqlalchemy import JSON, DateTime, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from rental_kernel.db.base import Base, UUIDString


class AuditAction(str, Enum):
    """Types of auditable billing actions."""

    STATUS_CHANGED = "status_changed"
    LEASE_DELETED = "lease_deleted"
    LEASE_RENEWED = "lease_renewed"
    INVOICE_VOIDED = "invoice_voided"
    REMINDER_SENT = "reminder_sent"


class BillingAuditEvent(Base):
    """One immutable audit record for a lease or invoice."""

    __tablename__ = "billing_audit_events"

    __table_args__ = (
        UniqueConstraint(
            "entity_type", "entity_id", "entity_seq",
            name="uq_billing_audit_entity_seq",
        ),
        Index("idx_billing_audit_org", "organization_id"),
        Index("idx_billing_audit_occurred", "occurred_at"),
    )

    # Position within the entity's own history, starting at 1
    entity_seq: Mapped[int] = mapped_column(Integer, nullable=False)

    # "lease" or "invoice"
    entity_type: Mapped[str] = mapped_column(String(50), nullable=False)

    entity_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    organization_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    action: Mapped[str] = mapped_column(String(50), nullable=False)

    from_status: Mapped[str | None] = mapped_column(String(30), nullable=True)

    to_status: Mapped[str | None] = mapped_column(String(30), nullable=True)

    reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    payload: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    occurred_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )

    actor_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    def __repr__(self) -> str:
        return f"<BillingAuditEvent {self.action} on {self.entity_type}:{self.entity_id}>"
