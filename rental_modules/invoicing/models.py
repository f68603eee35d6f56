"""
Invoicing Domain Models (``rental_modules.invoicing.models``).

Responsibility
--------------
Frozen dataclass value objects for invoices, their line items, manual
invoice input, listing pages and reminder results.

Architecture position
---------------------
**Modules layer** -- pure data definitions with ZERO I/O.

Invariants enforced
-------------------
* All models are ``frozen=True``.
* All monetary fields use ``Decimal`` at 2 decimal places.
* ``total_amount == subtotal_amount + tax_amount`` and
  ``0 <= balance_amount <= total_amount`` hold for every persisted invoice;
  ``Invoice.check_totals()`` verifies both.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from rental_modules.payments.models import PaymentAllocation


class InvoiceStatus(Enum):
    """Invoice lifecycle states."""
    DRAFT = "draft"
    ISSUED = "issued"
    PARTIALLY_PAID = "partiallyPaid"
    PAID = "paid"
    VOID = "void"
    OVERDUE = "overdue"


# Statuses whose balance counts toward a lease's outstanding balance.
UNSETTLED_STATUSES: frozenset[InvoiceStatus] = frozenset({
    InvoiceStatus.ISSUED,
    InvoiceStatus.PARTIALLY_PAID,
    InvoiceStatus.OVERDUE,
})

# Statuses that accept a payment allocation.
PAYABLE_STATUSES = UNSETTLED_STATUSES

# Statuses for which a reminder may be sent.
REMINDABLE_STATUSES: frozenset[InvoiceStatus] = frozenset({
    InvoiceStatus.ISSUED,
    InvoiceStatus.OVERDUE,
})

UPDATABLE_FIELDS: frozenset[str] = frozenset({
    "invoice_number",
    "issue_date",
    "due_date",
    "currency",
    "tax_amount",
    "notes",
    "metadata",
})


@dataclass(frozen=True)
class InvoiceItem:
    """A single line on an invoice."""
    id: UUID
    invoice_id: UUID
    description: str
    quantity: Decimal
    unit_price: Decimal
    line_total: Decimal
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Invoice:
    """A billing document for a lease."""
    id: UUID
    organization_id: UUID
    lease_id: UUID
    invoice_number: str
    status: InvoiceStatus
    issue_date: date
    due_date: date
    currency: str
    subtotal_amount: Decimal
    tax_amount: Decimal
    total_amount: Decimal
    balance_amount: Decimal
    notes: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    void_reason: str | None = None
    voided_at: datetime | None = None
    items: tuple[InvoiceItem, ...] = field(default_factory=tuple)
    allocations: tuple[PaymentAllocation, ...] = field(default_factory=tuple)

    @property
    def amount_paid(self) -> Decimal:
        return self.total_amount - self.balance_amount

    def check_totals(self) -> bool:
        """True if the stored amounts satisfy the invoice invariants."""
        return (
            self.total_amount == self.subtotal_amount + self.tax_amount
            and Decimal("0") <= self.balance_amount <= self.total_amount
        )


@dataclass(frozen=True)
class NewInvoice:
    """Caller input for a manual (draft) invoice."""
    lease_id: UUID
    invoice_number: str
    issue_date: date
    due_date: date
    currency: str | None = None
    notes: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class InvoicePage:
    items: tuple[Invoice, ...]
    total: int
    page: int
    limit: int


@dataclass(frozen=True)
class ReminderResult:
    success: bool
    message: str
    recipient: str
    method: str


@dataclass(frozen=True)
class ItemChange:
    """Result of an item mutation: the item (None when removed) and the recomputed invoice."""
    item: InvoiceItem | None
    invoice: Invoice
