"""
Module: rental_kernel.models.reference
Responsibility: ORM persistence for the collaborator entities the billing
    core reads but does not own: organizations, properties, units, users
    (tenants) and payments.
Architecture position: Kernel > Models.  May import from db/base.py only.

Ownership:
    - Organization, Property, User and Payment are created and maintained
      elsewhere.  The billing core only checks their existence and
      organization scope.
    - Unit.status is the one collaborator field the core writes: the lease
      lifecycle flips it on activation, move-in reservation and exit.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import Date, DateTime, ForeignKey, Index, String, func
from sqlalchemy.orm import Mapped, mapped_column

from rental_kernel.db.base import Base, UUIDString


class UnitStatus(str, Enum):
    """Occupancy status of a rentable unit."""

    VACANT = "vacant"
    RESERVED = "reserved"
    OCCUPIED = "occupied"
    UNAVAILABLE = "unavailable"


class Organization(Base):
    """Landlord/operator account; the multi-tenant isolation boundary."""

    __tablename__ = "organizations"

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )


class Property(Base):
    __tablename__ = "properties"

    __table_args__ = (Index("idx_property_org", "organization_id"),)

    organization_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("organizations.id"), nullable=False
    )
    name: Mapped[str] = mapped_column(String(200), nullable=False)


class Unit(Base):
    __tablename__ = "units"

    __table_args__ = (Index("idx_unit_property", "property_id"),)

    property_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("properties.id"), nullable=False
    )
    unit_number: Mapped[str] = mapped_column(String(50), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=UnitStatus.VACANT.value
    )

    @property
    def status_enum(self) -> UnitStatus:
        return UnitStatus(self.status)

    def __repr__(self) -> str:
        return f"<Unit {self.unit_number} {self.status}>"


class User(Base):
    """Platform user; tenants on a lease are users."""

    __tablename__ = "users"

    email: Mapped[str] = mapped_column(String(320), nullable=False, unique=True)
    full_name: Mapped[str | None] = mapped_column(String(200), nullable=True)


class Payment(Base):
    """
    Money received against a lease.

    Referenced by id/amount/currency only; the allocation ledger never
    mutates a payment row.
    """

    __tablename__ = "payments"

    __table_args__ = (
        Index("idx_payment_org", "organization_id"),
        Index("idx_payment_lease", "lease_id"),
    )

    organization_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("organizations.id"), nullable=False
    )
    lease_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    received_on: Mapped[date | None] = mapped_column(Date, nullable=True)
    reference: Mapped[str | None] = mapped_column(String(100), nullable=True)

    def __repr__(self) -> str:
        return f"<Payment {self.id} {self.amount} {self.currency}>"
