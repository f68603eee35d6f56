"""
Payment Allocation Domain Models (``rental_modules.payments.models``).

Frozen value objects for the application of a payment to an invoice.
All monetary fields use ``Decimal``.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from uuid import UUID


@dataclass(frozen=True)
class PaymentAllocation:
    """Part or all of a payment applied to one invoice."""
    id: UUID
    payment_id: UUID
    invoice_id: UUID
    amount_applied: Decimal
    created_at: datetime | None = None


@dataclass(frozen=True)
class AllocationResult:
    """Outcome of one allocation: the row plus the invoice's new state."""
    allocation: PaymentAllocation
    invoice_status: str
    invoice_balance: Decimal
    payment_unapplied: Decimal
