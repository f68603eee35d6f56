"""
Invoicing ORM Models (``rental_modules.invoicing.orm``).

Responsibility
--------------
SQLAlchemy persistence for invoices and invoice items.  Maps the frozen
dataclasses from ``models.py`` to the ``invoices`` and ``invoice_items``
tables.

Architecture position
---------------------
**Modules layer** -- persistence.  Imports from ``rental_kernel.db.base``
and sibling ``models.py``.  MUST NOT be imported by ``rental_kernel``.

Invariants enforced
-------------------
* ``invoice_number`` is unique within an organization
  (uq_invoices_org_number).  Application code checks first for a friendly
  error; the constraint is what makes concurrent creators safe.
* subtotal/tax/total/balance consistency is NOT a database constraint.
  InvoiceLedger, InvoiceItemManager and PaymentAllocationLedger are its
  only guardians.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import (
    JSON,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from rental_kernel.db.base import TrackedBase
from rental_modules.invoicing.models import Invoice, InvoiceItem, InvoiceStatus


class InvoiceModel(TrackedBase):
    """ORM model for invoices."""

    __tablename__ = "invoices"

    __table_args__ = (
        UniqueConstraint(
            "organization_id", "invoice_number", name="uq_invoices_org_number"
        ),
        CheckConstraint("balance_amount >= 0", name="ck_invoices_balance_non_negative"),
        Index("idx_invoices_lease_issue", "lease_id", "issue_date"),
        Index("idx_invoices_org_status", "organization_id", "status"),
    )

    organization_id: Mapped[UUID] = mapped_column(
        ForeignKey("organizations.id"), nullable=False
    )
    lease_id: Mapped[UUID] = mapped_column(ForeignKey("leases.id"), nullable=False)
    invoice_number: Mapped[str] = mapped_column(String(64), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=InvoiceStatus.DRAFT.value
    )
    issue_date: Mapped[date] = mapped_column(Date, nullable=False)
    due_date: Mapped[date] = mapped_column(Date, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="KES")
    subtotal_amount: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    tax_amount: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    total_amount: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    balance_amount: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    metadata_: Mapped[dict[str, Any] | None] = mapped_column(
        "metadata", JSON, nullable=True
    )
    void_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    voided_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    items: Mapped[list["InvoiceItemModel"]] = relationship(
        back_populates="invoice",
        cascade="all, delete-orphan",
        order_by="InvoiceItemModel.position",
    )

    @property
    def status_enum(self) -> InvoiceStatus:
        return InvoiceStatus(self.status)

    def to_dto(self, allocations: tuple = ()) -> Invoice:
        """Convert ORM model to frozen dataclass."""
        return Invoice(
            id=self.id,
            organization_id=self.organization_id,
            lease_id=self.lease_id,
            invoice_number=self.invoice_number,
            status=InvoiceStatus(self.status),
            issue_date=self.issue_date,
            due_date=self.due_date,
            currency=self.currency,
            subtotal_amount=self.subtotal_amount,
            tax_amount=self.tax_amount,
            total_amount=self.total_amount,
            balance_amount=self.balance_amount,
            notes=self.notes,
            metadata=dict(self.metadata_ or {}),
            void_reason=self.void_reason,
            voided_at=self.voided_at,
            items=tuple(item.to_dto() for item in self.items),
            allocations=tuple(allocations),
        )

    def __repr__(self) -> str:
        return f"<InvoiceModel {self.invoice_number} {self.status}>"


class InvoiceItemModel(TrackedBase):
    """
    ORM model for invoice line items.

    Guarantees:
        - quantity > 0 (ck_invoice_items_quantity).
        - unit_price >= 0 (ck_invoice_items_unit_price).
        - position orders lines within an invoice.
    """

    __tablename__ = "invoice_items"

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_invoice_items_quantity"),
        CheckConstraint("unit_price >= 0", name="ck_invoice_items_unit_price"),
        Index("idx_invoice_items_invoice", "invoice_id"),
    )

    invoice_id: Mapped[UUID] = mapped_column(
        ForeignKey("invoices.id", ondelete="CASCADE"), nullable=False
    )
    position: Mapped[int] = mapped_column(nullable=False, default=1)
    description: Mapped[str] = mapped_column(String(256), nullable=False)
    quantity: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("1"))
    unit_price: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    line_total: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    metadata_: Mapped[dict[str, Any] | None] = mapped_column(
        "metadata", JSON, nullable=True
    )

    invoice: Mapped[InvoiceModel] = relationship(back_populates="items")

    def to_dto(self) -> InvoiceItem:
        return InvoiceItem(
            id=self.id,
            invoice_id=self.invoice_id,
            description=self.description,
            quantity=self.quantity,
            unit_price=self.unit_price,
            line_total=self.line_total,
            metadata=dict(self.metadata_ or {}),
        )

    def __repr__(self) -> str:
        return f"<InvoiceItemModel {self.description} x{self.quantity}>"
