"""
BillingService -- the exposed operations of the rental billing core.

Responsibility:
    Wraps every lease, invoice, item, allocation and generation operation
    in one unit of work: open a session from the factory, run the
    flush-only module services, commit; or roll back on any error.
    Transient database conflicts re-run the whole unit of work.

Architecture position:
    Services -- the outermost layer.  Owns transaction boundaries, retry,
    log context and activity logging.  Receives a session factory built
    once at process start; there is no module-level engine.

Invariants enforced:
    - Each call is atomic: a lease status change, its unit flip, its audit
      row and (optionally) its first invoice commit together or not at all.
    - Activity entries are dispatched only after commit.  An activity
      logger failure is logged at WARNING and never reaches the caller.
    - Domain errors (NotFound, Validation, Conflict) propagate unchanged and
      are never retried.  Non-transient store failures surface as
      InternalBillingError.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Any, Callable, Mapping, TypeVar
from uuid import UUID, uuid4

from sqlalchemy.orm import Session, sessionmaker

from rental_batch.domain.types import BatchGenerationResult
from rental_batch.services.batch_generator import BatchInvoiceGenerator
from rental_batch.services.invoice_generator import LeaseInvoiceGenerator
from rental_config.schema import BillingConfig
from rental_kernel.db.engine import session_scope
from rental_kernel.db.retry import run_with_retry
from rental_kernel.domain.clock import Clock, SystemClock
from rental_kernel.exceptions import InvoiceAlreadyExistsError, RentalBillingError
from rental_kernel.logging_config import LogContext, get_logger
from rental_kernel.services.activity_logger import (
    ActivityEntry,
    ActivityLogger,
    StructuredActivityLogger,
    dispatch_activity,
)
from rental_modules.invoicing.items import InvoiceItemManager
from rental_modules.invoicing.ledger import InvoiceLedger
from rental_modules.invoicing.models import (
    Invoice,
    InvoicePage,
    InvoiceStatus,
    ItemChange,
    NewInvoice,
    ReminderResult,
)
from rental_modules.invoicing.selectors import InvoiceSelector
from rental_modules.lease.balance import LeaseBalanceSelector
from rental_modules.lease.lifecycle import LeaseLifecycleManager
from rental_modules.lease.models import Lease, LeaseBalance, LeasePage, LeaseStatus, NewLease
from rental_modules.lease.selectors import LeaseSelector
from rental_modules.payments.allocation import PaymentAllocationLedger
from rental_modules.payments.models import AllocationResult

logger = get_logger("services.billing")

T = TypeVar("T")

# Receives the open session and a list to append activity entries to.
UnitOfWork = Callable[[Session, list[ActivityEntry]], T]


@dataclass(frozen=True)
class LeaseStatusChange:
    """Result of change_lease_status: the lease and any first invoice."""

    lease: Lease
    first_invoice: Invoice | None = None


class BillingService:
    """
    Transactional facade over the billing modules.

    Every mutating operation takes the caller's ``organization_id`` and
    ``actor_id``; read operations take the organization only.  Entities
    outside the organization are reported as not found.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        clock: Clock | None = None,
        config: BillingConfig | None = None,
        activity_logger: ActivityLogger | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._session_factory = session_factory
        self._clock = clock or SystemClock()
        self._config = config
        self._activity_logger = activity_logger or StructuredActivityLogger()
        self._sleep = sleep

        self._retry_max_attempts = config.retry_max_attempts if config else 3
        self._retry_backoff_seconds = config.retry_backoff_seconds if config else 0.05
        self._prorate_first_invoice = config.prorate_first_invoice if config else True
        self._rent_description = config.rent_item_description if config else "Monthly Rent"
        self._batch_max_workers = config.batch_max_workers if config else 8

    # =========================================================================
    # Unit of work
    # =========================================================================

    def _run(
        self,
        operation: str,
        organization_id: UUID,
        actor_id: UUID | None,
        work: UnitOfWork[T],
        **context: Any,
    ) -> T:
        """Run ``work`` in one transaction with retry, then dispatch activity."""
        entries: list[ActivityEntry] = []

        def unit_of_work() -> T:
            entries.clear()
            with session_scope(self._session_factory) as session:
                return work(session, entries)

        with LogContext.bind(
            correlation_id=LogContext.get_all().get("correlation_id") or str(uuid4()),
            organization_id=str(organization_id),
            actor_id=str(actor_id) if actor_id else None,
            **{key: str(value) for key, value in context.items() if value is not None},
        ):
            logger.debug(f"{operation}_started")
            try:
                result = run_with_retry(
                    operation,
                    unit_of_work,
                    max_attempts=self._retry_max_attempts,
                    backoff_seconds=self._retry_backoff_seconds,
                    sleep=self._sleep,
                )
            except RentalBillingError as exc:
                if exc.operational:
                    logger.info(
                        f"{operation}_rejected",
                        extra={"error_code": exc.code, "error": str(exc)},
                    )
                raise
            logger.debug(f"{operation}_committed")
            dispatch_activity(self._activity_logger, entries)
        return result

    def _read(self, operation: str, organization_id: UUID, query: Callable[[Session], T]) -> T:
        return self._run(operation, organization_id, None, lambda session, _: query(session))

    # =========================================================================
    # Leases
    # =========================================================================

    def create_lease(self, organization_id: UUID, actor_id: UUID, new_lease: NewLease) -> Lease:
        def work(session: Session, entries: list[ActivityEntry]) -> Lease:
            lease = LeaseLifecycleManager(session, self._clock).create_lease(
                organization_id, actor_id, new_lease,
            )
            entries.append(_activity(
                organization_id, actor_id, "create", "leases", lease.id,
                "Lease created", after=_lease_summary(lease),
            ))
            return lease

        return self._run("create_lease", organization_id, actor_id, work)

    def update_lease(
        self,
        organization_id: UUID,
        actor_id: UUID,
        lease_id: UUID,
        changes: Mapping[str, Any],
    ) -> Lease:
        def work(session: Session, entries: list[ActivityEntry]) -> Lease:
            manager = LeaseLifecycleManager(session, self._clock)
            before = _lease_summary(manager.load(organization_id, lease_id).to_dto())
            lease = manager.update_lease(organization_id, actor_id, lease_id, changes)
            entries.append(_activity(
                organization_id, actor_id, "update", "leases", lease.id,
                "Lease updated", before=before, after=_lease_summary(lease),
            ))
            return lease

        return self._run("update_lease", organization_id, actor_id, work, lease_id=lease_id)

    def change_lease_status(
        self,
        organization_id: UUID,
        actor_id: UUID,
        lease_id: UUID,
        new_status: LeaseStatus | str,
        reason: str | None = None,
        notes: str | None = None,
        effective_date: date | None = None,
        generate_first_invoice: bool = False,
    ) -> LeaseStatusChange:
        """
        Move a lease along its workflow.

        With ``generate_first_invoice`` and a target of active, the first
        rent invoice (prorated per configuration) is created in the same
        transaction.  An invoice already present for that period is kept.
        """

        def work(session: Session, entries: list[ActivityEntry]) -> LeaseStatusChange:
            manager = LeaseLifecycleManager(session, self._clock)
            from_status = manager.load(organization_id, lease_id).status
            lease = manager.change_status(
                organization_id, actor_id, lease_id, new_status,
                reason=reason, notes=notes, effective_date=effective_date,
            )
            entries.append(_activity(
                organization_id, actor_id, "statusChange", "leases", lease.id,
                f"Lease status changed to {lease.status.value}",
                before={"status": from_status}, after={"status": lease.status.value},
            ))

            first_invoice = None
            if generate_first_invoice and lease.status is LeaseStatus.ACTIVE:
                first_invoice = self._first_invoice(session, organization_id, actor_id, lease)
                if first_invoice is not None:
                    entries.append(_activity(
                        organization_id, actor_id, "create", "invoices", first_invoice.id,
                        "First invoice generated", after=_invoice_summary(first_invoice),
                    ))
            return LeaseStatusChange(lease=lease, first_invoice=first_invoice)

        return self._run("change_lease_status", organization_id, actor_id, work, lease_id=lease_id)

    def _first_invoice(
        self,
        session: Session,
        organization_id: UUID,
        actor_id: UUID,
        lease: Lease,
    ) -> Invoice | None:
        # Bill the month the lease starts in, or the current month once it has started.
        today = self._clock.today()
        period = max(lease.start_date.replace(day=1), today.replace(day=1))
        generator = LeaseInvoiceGenerator(
            session, self._clock, rent_description=self._rent_description,
        )
        try:
            return generator.generate(
                organization_id, actor_id, lease.id,
                year=period.year, month=period.month,
                prorate=self._prorate_first_invoice,
            )
        except InvoiceAlreadyExistsError as exc:
            logger.info(
                "first_invoice_exists",
                extra={"lease_id": str(lease.id), "invoice_id": exc.invoice_id},
            )
            return None

    def delete_lease(self, organization_id: UUID, actor_id: UUID, lease_id: UUID) -> Lease:
        def work(session: Session, entries: list[ActivityEntry]) -> Lease:
            lease = LeaseLifecycleManager(session, self._clock).delete_lease(
                organization_id, actor_id, lease_id,
            )
            entries.append(_activity(
                organization_id, actor_id, "delete", "leases", lease.id,
                "Lease deleted", before=_lease_summary(lease),
            ))
            return lease

        return self._run("delete_lease", organization_id, actor_id, work, lease_id=lease_id)

    def renew_lease(
        self,
        organization_id: UUID,
        actor_id: UUID,
        lease_id: UUID,
        start_date: date,
        end_date: date,
        rent_amount: Decimal,
        notes: str | None = None,
    ) -> Lease:
        def work(session: Session, entries: list[ActivityEntry]) -> Lease:
            renewal = LeaseLifecycleManager(session, self._clock).renew_lease(
                organization_id, actor_id, lease_id, start_date, end_date, rent_amount, notes,
            )
            entries.append(_activity(
                organization_id, actor_id, "create", "leases", renewal.id,
                f"Lease renewed from {lease_id}", after=_lease_summary(renewal),
            ))
            return renewal

        return self._run("renew_lease", organization_id, actor_id, work, lease_id=lease_id)

    def get_lease_balance(self, organization_id: UUID, lease_id: UUID) -> LeaseBalance:
        return self._read(
            "get_lease_balance", organization_id,
            lambda session: LeaseBalanceSelector(session).get_lease_balance(organization_id, lease_id),
        )

    def get_lease(self, organization_id: UUID, lease_id: UUID) -> Lease:
        return self._read(
            "get_lease", organization_id,
            lambda session: LeaseSelector(session).get(organization_id, lease_id),
        )

    def list_leases(
        self,
        organization_id: UUID,
        property_id: UUID | None = None,
        tenant_user_id: UUID | None = None,
        status: LeaseStatus | str | None = None,
        page: int = 1,
        limit: int = 10,
    ) -> LeasePage:
        return self._read(
            "list_leases", organization_id,
            lambda session: LeaseSelector(session).list_leases(
                organization_id, property_id, tenant_user_id, status, page, limit,
            ),
        )

    def list_leases_for_tenant(self, organization_id: UUID, tenant_user_id: UUID) -> list[Lease]:
        return self._read(
            "list_leases_for_tenant", organization_id,
            lambda session: LeaseSelector(session).list_for_tenant(organization_id, tenant_user_id),
        )

    def list_leases_for_property(self, organization_id: UUID, property_id: UUID) -> list[Lease]:
        return self._read(
            "list_leases_for_property", organization_id,
            lambda session: LeaseSelector(session).list_for_property(organization_id, property_id),
        )

    # =========================================================================
    # Invoices
    # =========================================================================

    def create_invoice(self, organization_id: UUID, actor_id: UUID, new_invoice: NewInvoice) -> Invoice:
        def work(session: Session, entries: list[ActivityEntry]) -> Invoice:
            invoice = InvoiceLedger(session, self._clock).create_invoice(
                organization_id, actor_id, new_invoice,
            )
            entries.append(_activity(
                organization_id, actor_id, "create", "invoices", invoice.id,
                "Invoice created", after=_invoice_summary(invoice),
            ))
            return invoice

        return self._run(
            "create_invoice", organization_id, actor_id, work, lease_id=new_invoice.lease_id,
        )

    def update_invoice(
        self,
        organization_id: UUID,
        actor_id: UUID,
        invoice_id: UUID,
        changes: Mapping[str, Any],
    ) -> Invoice:
        def work(session: Session, entries: list[ActivityEntry]) -> Invoice:
            ledger = InvoiceLedger(session, self._clock)
            before = _invoice_summary(ledger.load(organization_id, invoice_id).to_dto())
            invoice = ledger.update_invoice(organization_id, actor_id, invoice_id, changes)
            entries.append(_activity(
                organization_id, actor_id, "update", "invoices", invoice.id,
                "Invoice updated", before=before, after=_invoice_summary(invoice),
            ))
            return invoice

        return self._run("update_invoice", organization_id, actor_id, work, invoice_id=invoice_id)

    def change_invoice_status(
        self,
        organization_id: UUID,
        actor_id: UUID,
        invoice_id: UUID,
        new_status: InvoiceStatus | str,
        reason: str | None = None,
    ) -> Invoice:
        def work(session: Session, entries: list[ActivityEntry]) -> Invoice:
            ledger = InvoiceLedger(session, self._clock)
            from_status = ledger.load(organization_id, invoice_id).status
            invoice = ledger.change_status(organization_id, actor_id, invoice_id, new_status, reason)
            entries.append(_activity(
                organization_id, actor_id, "statusChange", "invoices", invoice.id,
                f"Invoice status changed to {invoice.status.value}",
                before={"status": from_status}, after={"status": invoice.status.value},
            ))
            return invoice

        return self._run(
            "change_invoice_status", organization_id, actor_id, work, invoice_id=invoice_id,
        )

    def void_invoice(
        self,
        organization_id: UUID,
        actor_id: UUID,
        invoice_id: UUID,
        reason: str | None = None,
    ) -> Invoice:
        def work(session: Session, entries: list[ActivityEntry]) -> Invoice:
            ledger = InvoiceLedger(session, self._clock)
            from_status = ledger.load(organization_id, invoice_id).status
            invoice = ledger.void_invoice(organization_id, actor_id, invoice_id, reason)
            entries.append(_activity(
                organization_id, actor_id, "statusChange", "invoices", invoice.id,
                f"Invoice voided: {reason}" if reason else "Invoice voided",
                before={"status": from_status}, after={"status": invoice.status.value},
            ))
            return invoice

        return self._run("void_invoice", organization_id, actor_id, work, invoice_id=invoice_id)

    def get_invoice(self, organization_id: UUID, invoice_id: UUID) -> Invoice:
        return self._read(
            "get_invoice", organization_id,
            lambda session: InvoiceSelector(session).get(organization_id, invoice_id),
        )

    def list_invoices(
        self,
        organization_id: UUID,
        status: InvoiceStatus | str | None = None,
        lease_id: UUID | None = None,
        start_date: date | None = None,
        end_date: date | None = None,
        page: int = 1,
        limit: int = 10,
    ) -> InvoicePage:
        return self._read(
            "list_invoices", organization_id,
            lambda session: InvoiceSelector(session).list_invoices(
                organization_id, status, lease_id, start_date, end_date, page, limit,
            ),
        )

    def list_lease_invoices(self, organization_id: UUID, lease_id: UUID) -> list[Invoice]:
        return self._read(
            "list_lease_invoices", organization_id,
            lambda session: InvoiceSelector(session).list_for_lease(organization_id, lease_id),
        )

    def send_invoice_reminder(
        self,
        organization_id: UUID,
        actor_id: UUID,
        invoice_id: UUID,
        method: str = "email",
        message: str | None = None,
    ) -> ReminderResult:
        def work(session: Session, entries: list[ActivityEntry]) -> ReminderResult:
            result = InvoiceLedger(session, self._clock).send_reminder(
                organization_id, actor_id, invoice_id, method, message,
            )
            entries.append(_activity(
                organization_id, actor_id, "update", "invoices", invoice_id,
                f"Payment reminder sent via {method}",
            ))
            return result

        return self._run(
            "send_invoice_reminder", organization_id, actor_id, work, invoice_id=invoice_id,
        )

    # =========================================================================
    # Invoice items
    # =========================================================================

    def add_invoice_item(
        self,
        organization_id: UUID,
        actor_id: UUID,
        invoice_id: UUID,
        description: str,
        quantity: Decimal,
        unit_price: Decimal,
        metadata: Mapping[str, Any] | None = None,
    ) -> ItemChange:
        def work(session: Session, entries: list[ActivityEntry]) -> ItemChange:
            change = InvoiceItemManager(session, self._clock).add_item(
                organization_id, actor_id, invoice_id, description, quantity, unit_price, metadata,
            )
            entries.append(_activity(
                organization_id, actor_id, "create", "invoice_items", change.item.id,
                f"Item added to invoice {change.invoice.invoice_number}",
                after={"line_total": str(change.item.line_total)},
            ))
            return change

        return self._run("add_invoice_item", organization_id, actor_id, work, invoice_id=invoice_id)

    def update_invoice_item(
        self,
        organization_id: UUID,
        actor_id: UUID,
        invoice_id: UUID,
        item_id: UUID,
        changes: Mapping[str, Any],
    ) -> ItemChange:
        def work(session: Session, entries: list[ActivityEntry]) -> ItemChange:
            change = InvoiceItemManager(session, self._clock).update_item(
                organization_id, actor_id, invoice_id, item_id, changes,
            )
            entries.append(_activity(
                organization_id, actor_id, "update", "invoice_items", item_id,
                f"Item updated on invoice {change.invoice.invoice_number}",
                after={"line_total": str(change.item.line_total)},
            ))
            return change

        return self._run(
            "update_invoice_item", organization_id, actor_id, work, invoice_id=invoice_id,
        )

    def remove_invoice_item(
        self,
        organization_id: UUID,
        actor_id: UUID,
        invoice_id: UUID,
        item_id: UUID,
    ) -> ItemChange:
        def work(session: Session, entries: list[ActivityEntry]) -> ItemChange:
            change = InvoiceItemManager(session, self._clock).remove_item(
                organization_id, actor_id, invoice_id, item_id,
            )
            entries.append(_activity(
                organization_id, actor_id, "delete", "invoice_items", item_id,
                f"Item removed from invoice {change.invoice.invoice_number}",
            ))
            return change

        return self._run(
            "remove_invoice_item", organization_id, actor_id, work, invoice_id=invoice_id,
        )

    # =========================================================================
    # Generation
    # =========================================================================

    def generate_lease_invoice(
        self,
        organization_id: UUID,
        actor_id: UUID,
        lease_id: UUID,
        year: int | None = None,
        month: int | None = None,
        due_day: int | None = None,
        prorate: bool = False,
    ) -> Invoice:
        def work(session: Session, entries: list[ActivityEntry]) -> Invoice:
            invoice = LeaseInvoiceGenerator(
                session, self._clock, rent_description=self._rent_description,
            ).generate(
                organization_id, actor_id, lease_id,
                year=year, month=month, due_day=due_day, prorate=prorate,
            )
            entries.append(_activity(
                organization_id, actor_id, "create", "invoices", invoice.id,
                "Invoice generated", after=_invoice_summary(invoice),
            ))
            return invoice

        return self._run(
            "generate_lease_invoice", organization_id, actor_id, work, lease_id=lease_id,
        )

    def batch_generate_invoices(
        self,
        organization_id: UUID,
        actor_id: UUID,
        month: int,
        year: int,
        due_day: int | None = None,
    ) -> BatchGenerationResult:
        """
        One issued invoice per active lease for the period.

        Each lease commits on its own; the result reports per-lease failures
        instead of raising.
        """
        batch = BatchInvoiceGenerator(
            self._session_factory,
            self._clock,
            max_workers=self._batch_max_workers,
            retry_max_attempts=self._retry_max_attempts,
            retry_backoff_seconds=self._retry_backoff_seconds,
            rent_description=self._rent_description,
        )
        with LogContext.bind(organization_id=str(organization_id), actor_id=str(actor_id)):
            result = batch.generate_period(organization_id, actor_id, month, year, due_day)
            dispatch_activity(
                self._activity_logger,
                [
                    _activity(
                        organization_id, actor_id, "create", "invoices", invoice_id,
                        f"Invoice generated for {year}-{month:02d}",
                    )
                    for invoice_id in result.invoice_ids
                ],
            )
        return result

    # =========================================================================
    # Payments
    # =========================================================================

    def allocate_payment(
        self,
        organization_id: UUID,
        actor_id: UUID,
        payment_id: UUID,
        invoice_id: UUID,
        amount: Decimal,
    ) -> AllocationResult:
        def work(session: Session, entries: list[ActivityEntry]) -> AllocationResult:
            result = PaymentAllocationLedger(session, self._clock).allocate(
                organization_id, actor_id, payment_id, invoice_id, amount,
            )
            entries.append(_activity(
                organization_id, actor_id, "create", "payment_allocations", result.allocation.id,
                f"Payment of {result.allocation.amount_applied} allocated",
                after={
                    "invoice_status": result.invoice_status,
                    "invoice_balance": str(result.invoice_balance),
                },
            ))
            return result

        return self._run("allocate_payment", organization_id, actor_id, work, invoice_id=invoice_id)


def _activity(
    organization_id: UUID,
    actor_id: UUID,
    action: str,
    target_table: str,
    target_id: UUID,
    description: str,
    before: dict[str, Any] | None = None,
    after: dict[str, Any] | None = None,
) -> ActivityEntry:
    return ActivityEntry(
        organization_id=organization_id,
        actor_user_id=actor_id,
        action=action,
        target_table=target_table,
        target_id=target_id,
        description=description,
        before=before,
        after=after,
    )


def _lease_summary(lease: Lease) -> dict[str, str]:
    return {
        "status": lease.status.value,
        "unit_id": str(lease.unit_id),
        "start_date": lease.start_date.isoformat(),
        "end_date": lease.end_date.isoformat(),
        "rent_amount": str(lease.rent_amount),
    }


def _invoice_summary(invoice: Invoice) -> dict[str, str]:
    return {
        "invoice_number": invoice.invoice_number,
        "status": invoice.status.value,
        "total_amount": str(invoice.total_amount),
        "balance_amount": str(invoice.balance_amount),
    }
