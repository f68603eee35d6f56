"""
LeaseInvoiceGenerator -- one rent invoice for one lease and period.

Contract:
    ``generate()`` creates an invoice directly in ``issued`` with a single
    rent line, inside the caller's transaction.  Used by the period batch,
    by ad-hoc generation and for the first invoice on lease activation.

Architecture: rental_batch/services.  Flush-only; imports rental_modules
    services and rental_kernel.

Invariants enforced:
    - The lease row is locked FOR UPDATE first, so two generators for the
      same lease serialize.  The period check then runs under that lock.
    - At most one invoice per (lease, calendar month of issue date), in any
      status including void.  A second attempt raises
      InvoiceAlreadyExistsError.
    - Invoice number ``YYYYMM-<lease id hex>`` is unique per organization
      (database constraint), so a racing duplicate also fails.
    - Totals come from InvoiceLedger.recompute_totals over the inserted line.

Proration:
    When requested and the lease starts inside the period on a day other
    than the 1st, the line is rent / daysInMonth x daysRemaining rounded to
    2 places, and the invoice is issued on the start date.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy.orm import Session

from rental_kernel.domain.clock import Clock
from rental_kernel.exceptions import InvoiceAlreadyExistsError, LeaseNotActiveError
from rental_kernel.logging_config import LogContext, get_logger
from rental_modules.invoicing.calculations import (
    period_due_date,
    period_invoice_number,
    validate_period,
)
from rental_modules.invoicing.items import InvoiceItemManager
from rental_modules.invoicing.ledger import InvoiceLedger
from rental_modules.invoicing.models import Invoice, InvoiceStatus
from rental_modules.invoicing.selectors import InvoiceSelector
from rental_modules.lease.calculations import prorated_rent
from rental_modules.lease.lifecycle import LeaseLifecycleManager
from rental_modules.lease.models import LeaseStatus

logger = get_logger("batch.invoice_generator")

DEFAULT_RENT_DESCRIPTION = "Monthly Rent"


class LeaseInvoiceGenerator:
    """Builds the issued rent invoice of a lease for a period.

    Non-goals:
        - Does NOT call ``session.commit()`` -- caller controls boundaries.
        - Does NOT catch errors; the batch decides what a failure means.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock,
        rent_description: str = DEFAULT_RENT_DESCRIPTION,
    ):
        self._session = session
        self._clock = clock
        self._rent_description = rent_description
        self._leases = LeaseLifecycleManager(session, clock)
        self._ledger = InvoiceLedger(session, clock)
        self._items = InvoiceItemManager(session, clock, ledger=self._ledger)
        self._invoices = InvoiceSelector(session)

    def generate(
        self,
        organization_id: UUID,
        actor_id: UUID,
        lease_id: UUID,
        year: int | None = None,
        month: int | None = None,
        due_day: int | None = None,
        prorate: bool = False,
    ) -> Invoice:
        """Generate the lease's invoice for ``month``/``year``.

        The period defaults to the clock's current month.  ``due_day``
        overrides the lease's due day of month.

        Raises:
            LeaseNotFoundError: Lease missing or in another organization.
            LeaseNotActiveError: Lease is not active.
            InvalidBillingPeriodError: Bad month, year or due day.
            InvoiceAlreadyExistsError: An invoice is already issued in the period.
            DuplicateInvoiceNumberError: A concurrent writer took the number.
        """
        today = self._clock.today()
        year = today.year if year is None else year
        month = today.month if month is None else month
        validate_period(month, year, due_day)

        with LogContext.bind(lease_id=str(lease_id)):
            lease = self._leases.load(organization_id, lease_id, lock=True)
            if lease.status != LeaseStatus.ACTIVE.value:
                raise LeaseNotActiveError(str(lease.id), lease.status)

            existing = self._invoices.find_for_period(lease.id, year, month)
            if existing is not None:
                raise InvoiceAlreadyExistsError(str(lease.id), year, month, str(existing.id))

            issue_date = date(year, month, 1)
            amount = lease.rent_amount
            description = self._rent_description
            starts_in_period = (lease.start_date.year, lease.start_date.month) == (year, month)
            if prorate and starts_in_period and lease.start_date.day != 1:
                amount, days = prorated_rent(lease.rent_amount, lease.start_date)
                description = f"Prorated rent for {days} days"
                issue_date = lease.start_date

            if due_day is None:
                due_day = lease.due_day_of_month
            due_date = _due_date(year, month, due_day, issue_date)

            invoice = self._ledger.insert_invoice(
                organization_id,
                actor_id,
                lease_id=lease.id,
                invoice_number=period_invoice_number(year, month, lease.id),
                issue_date=issue_date,
                due_date=due_date,
                currency=lease.billing_currency,
                status=InvoiceStatus.ISSUED,
            )
            self._items.append_line(invoice, actor_id, description, Decimal("1"), amount)
            self._ledger.recompute_totals(invoice)

            logger.info(
                "lease_invoice_generated",
                extra={
                    "invoice_id": str(invoice.id),
                    "invoice_number": invoice.invoice_number,
                    "year": year,
                    "month": month,
                    "total_amount": str(invoice.total_amount),
                    "prorated": description != self._rent_description,
                },
            )
            return self._ledger.to_dto(invoice)


def _due_date(year: int, month: int, due_day: int, issue_date: date) -> date:
    """Due day within the period, rolled to the next month if it precedes issue."""
    due = period_due_date(year, month, due_day)
    if due >= issue_date:
        return due
    if month == 12:
        return period_due_date(year + 1, 1, due_day)
    return period_due_date(year, month + 1, due_day)
