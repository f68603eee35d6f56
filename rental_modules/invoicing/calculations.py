"""
Invoicing Pure Calculation Functions.

- Line totals and full recompute of invoice totals
- Payment status derived from balance
- Deterministic invoice numbers and due dates for a billing period

Every amount is rounded with ``round_money`` (2 places, half up).
"""

from datetime import date
from decimal import Decimal
from typing import Iterable
from uuid import UUID

from rental_kernel.db.types import ZERO, round_money
from rental_kernel.exceptions import InvalidBillingPeriodError
from rental_modules.invoicing.models import InvoiceStatus


def line_total(quantity: Decimal, unit_price: Decimal) -> Decimal:
    return round_money(quantity * unit_price)


def recompute_totals(
    line_totals: Iterable[Decimal],
    tax_amount: Decimal,
    allocated: Decimal,
) -> tuple[Decimal, Decimal, Decimal]:
    """
    Totals from the authoritative line set.

    subtotal = sum(lines); total = subtotal + tax; balance = total - allocated.

    Returns:
        (subtotal, total, balance)
    """
    subtotal = round_money(sum(line_totals, ZERO))
    total = round_money(subtotal + tax_amount)
    balance = round_money(total - allocated)
    return subtotal, total, balance


def derive_payment_status(total: Decimal, balance: Decimal) -> InvoiceStatus | None:
    """
    Status implied by a balance after an allocation.

    balance == 0 -> paid; 0 < balance < total -> partiallyPaid.  A balance
    equal to the total implies no payment status (None).
    """
    if balance == ZERO:
        return InvoiceStatus.PAID
    if ZERO < balance < total:
        return InvoiceStatus.PARTIALLY_PAID
    return None


def validate_period(month: int, year: int, due_day: int | None = None) -> None:
    if not isinstance(month, int) or not 1 <= month <= 12:
        raise InvalidBillingPeriodError(f"month {month!r} must be within 1..12")
    if not isinstance(year, int) or not 2000 <= year <= 9999:
        raise InvalidBillingPeriodError(f"year {year!r} must be within 2000..9999")
    if due_day is not None:
        _validate_due_day(due_day)


def period_invoice_number(year: int, month: int, lease_id: UUID) -> str:
    """
    Deterministic invoice number for a lease's invoice in a period.

    ``YYYYMM-<lease id hex>``: unique per (lease, period) by construction,
    and the organization-scoped unique constraint backs it in the store.
    """
    return f"{year}{month:02d}-{lease_id.hex.upper()}"


def period_due_date(year: int, month: int, due_day: int) -> date:
    _validate_due_day(due_day)
    return date(year, month, due_day)


def _validate_due_day(due_day: int) -> None:
    # bool is an int subclass
    if isinstance(due_day, bool) or not isinstance(due_day, int) or not 1 <= due_day <= 28:
        raise InvalidBillingPeriodError(f"due day {due_day!r} must be within 1..28")
