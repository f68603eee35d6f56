"""
Payment Allocation ORM Models (``rental_modules.payments.orm``).

Responsibility
--------------
SQLAlchemy persistence for payment allocations.

Invariants enforced
-------------------
* One allocation per (payment, invoice) pair (uq_payment_allocations_pair).
* amount_applied > 0 (ck_payment_allocations_positive).
* "Sum of allocations never exceeds the invoice total" and "never exceeds
  the payment amount" are NOT database constraints; PaymentAllocationLedger
  enforces both under row locks.
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import CheckConstraint, ForeignKey, Index, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from rental_kernel.db.base import TrackedBase
from rental_modules.payments.models import PaymentAllocation


class PaymentAllocationModel(TrackedBase):
    """ORM model for payment allocations.  Rows are never updated."""

    __tablename__ = "payment_allocations"

    __table_args__ = (
        UniqueConstraint("payment_id", "invoice_id", name="uq_payment_allocations_pair"),
        CheckConstraint("amount_applied > 0", name="ck_payment_allocations_positive"),
        Index("idx_payment_allocations_invoice", "invoice_id"),
    )

    payment_id: Mapped[UUID] = mapped_column(ForeignKey("payments.id"), nullable=False)
    invoice_id: Mapped[UUID] = mapped_column(ForeignKey("invoices.id"), nullable=False)
    amount_applied: Mapped[Decimal] = mapped_column(nullable=False)

    def to_dto(self) -> PaymentAllocation:
        return PaymentAllocation(
            id=self.id,
            payment_id=self.payment_id,
            invoice_id=self.invoice_id,
            amount_applied=self.amount_applied,
            created_at=self.created_at,
        )

    def __repr__(self) -> str:
        return f"<PaymentAllocationModel {self.payment_id}->{self.invoice_id} {self.amount_applied}>"
