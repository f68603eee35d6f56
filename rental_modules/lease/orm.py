"""
Lease ORM Models (``rental_modules.lease.orm``).

Responsibility
--------------
SQLAlchemy persistence for leases.  Maps the frozen ``Lease`` dataclass
from ``models.py`` to the ``leases`` table.

Architecture position
---------------------
**Modules layer** -- persistence.  Imports from ``rental_kernel.db.base``
and sibling ``models.py``.  MUST NOT be imported by ``rental_kernel``.
"""

from datetime import date
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import JSON, CheckConstraint, Date, ForeignKey, Index, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from rental_kernel.db.base import TrackedBase
from rental_modules.lease.models import Lease, LeaseStatus


class LeaseModel(TrackedBase):
    """
    ORM model for leases.

    Guarantees:
        - start_date < end_date (ck_leases_dates).
        - due_day_of_month within 1..28 (ck_leases_due_day).
        - rent_amount >= 0 (ck_leases_rent).
        - Interval overlap between occupying leases on one unit is NOT a
          database constraint; LeaseLifecycleManager enforces it under the
          unit row lock.
    """

    __tablename__ = "leases"

    __table_args__ = (
        CheckConstraint("start_date < end_date", name="ck_leases_dates"),
        CheckConstraint(
            "due_day_of_month >= 1 AND due_day_of_month <= 28",
            name="ck_leases_due_day",
        ),
        CheckConstraint("rent_amount >= 0", name="ck_leases_rent"),
        Index("idx_leases_org_status", "organization_id", "status"),
        Index("idx_leases_unit_status", "unit_id", "status"),
        Index("idx_leases_tenant", "tenant_user_id"),
        Index("idx_leases_property", "property_id"),
    )

    organization_id: Mapped[UUID] = mapped_column(
        ForeignKey("organizations.id"), nullable=False
    )
    property_id: Mapped[UUID] = mapped_column(
        ForeignKey("properties.id"), nullable=False
    )
    unit_id: Mapped[UUID] = mapped_column(ForeignKey("units.id"), nullable=False)
    tenant_user_id: Mapped[UUID] = mapped_column(
        ForeignKey("users.id"), nullable=False
    )
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=LeaseStatus.DRAFT.value
    )
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    rent_amount: Mapped[Decimal] = mapped_column(nullable=False)
    deposit_amount: Mapped[Decimal] = mapped_column(
        nullable=False, default=Decimal("0")
    )
    due_day_of_month: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    billing_currency: Mapped[str] = mapped_column(
        String(3), nullable=False, default="KES"
    )
    late_fee_percent: Mapped[Decimal] = mapped_column(
        Numeric(5, 2), nullable=False, default=Decimal("0")
    )
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    metadata_: Mapped[dict[str, Any] | None] = mapped_column(
        "metadata", JSON, nullable=True
    )
    renewed_from_lease_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("leases.id"), nullable=True
    )

    @property
    def status_enum(self) -> LeaseStatus:
        return LeaseStatus(self.status)

    def to_dto(self) -> Lease:
        """Convert ORM model to frozen dataclass."""
        return Lease(
            id=self.id,
            organization_id=self.organization_id,
            property_id=self.property_id,
            unit_id=self.unit_id,
            tenant_user_id=self.tenant_user_id,
            status=LeaseStatus(self.status),
            start_date=self.start_date,
            end_date=self.end_date,
            rent_amount=self.rent_amount,
            deposit_amount=self.deposit_amount,
            due_day_of_month=self.due_day_of_month,
            billing_currency=self.billing_currency,
            late_fee_percent=self.late_fee_percent,
            notes=self.notes,
            metadata=dict(self.metadata_ or {}),
            renewed_from_lease_id=self.renewed_from_lease_id,
        )

    def __repr__(self) -> str:
        return f"<LeaseModel {self.id} {self.status}>"
