"""
InvoiceLedger -- invoice creation, update, the invoice status state machine,
voiding, reminders, and the canonical totals recompute.

Responsibility:
    Owns every write to the ``invoices`` header row.  The item manager and
    the allocation ledger call back into ``recompute_totals`` /
    ``apply_status`` so that there is one implementation of each invariant.

Architecture position:
    Modules > Invoicing -- flush-only service.  The caller owns the
    transaction.  Every mutation loads the invoice row FOR UPDATE first.

Invariants enforced:
    - invoice_number unique within an organization: checked up front, and
      the INSERT runs in a SAVEPOINT so a concurrent duplicate surfacing as
      IntegrityError becomes DuplicateInvoiceNumberError without poisoning
      the caller's transaction.
    - total = subtotal + tax; 0 <= balance <= total; balance =
      total - sum(allocations).  recompute_totals derives all three from the
      persisted item and allocation rows, never incrementally.
    - Header fields change only while draft.
    - Status edges follow INVOICE_WORKFLOW.  Manual moves to paid or
      partiallyPaid must satisfy the balance guards; moves to void go
      through void_invoice.
    - Void is refused for paid invoices and for any invoice with at least
      one allocation row, regardless of the remaining balance.

Audit relevance:
    Every status change, void and reminder appends a BillingAuditEvent with
    the reason and the clock's timestamp.  Totals are never touched by a
    status change.
"""

from datetime import date
from decimal import Decimal
from typing import Any, Mapping
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from rental_kernel.db.types import ZERO, round_money, to_money, validate_currency
from rental_kernel.domain.clock import Clock
from rental_kernel.exceptions import (
    DuplicateInvoiceNumberError,
    InvalidAmountError,
    InvalidBillingPeriodError,
    InvalidStatusTransitionError,
    InvoiceNotDraftError,
    InvoiceNotFoundError,
    InvoiceNotRemindableError,
    InvoiceNotVoidableError,
    LeaseNotFoundError,
    TransitionGuardError,
    ValidationError,
)
from rental_kernel.logging_config import LogContext, get_logger
from rental_kernel.models.audit_event import AuditAction
from rental_kernel.services.audit_trail import AuditTrail
from rental_kernel.services.base import BaseService
from rental_kernel.services.reference_lookup import ReferenceLookup
from rental_modules.invoicing.calculations import recompute_totals
from rental_modules.invoicing.models import (
    REMINDABLE_STATUSES,
    UPDATABLE_FIELDS,
    Invoice,
    InvoiceStatus,
    NewInvoice,
    ReminderResult,
)
from rental_modules.invoicing.orm import InvoiceItemModel, InvoiceModel
from rental_modules.invoicing.workflows import (
    BALANCE_PARTIAL,
    BALANCE_ZERO,
    INVOICE_WORKFLOW,
    NO_ALLOCATIONS,
)
from rental_modules.lease.orm import LeaseModel
from rental_modules.payments.orm import PaymentAllocationModel

logger = get_logger("modules.invoicing.ledger")


class InvoiceLedger(BaseService[InvoiceModel]):
    """
    Flush-only owner of invoice header rows.

    Non-goals:
        - Does NOT commit.
        - Does NOT mutate line items (InvoiceItemManager) or create
          allocations (PaymentAllocationLedger).
    """

    def __init__(self, session: Session, clock: Clock):
        super().__init__(session)
        self._clock = clock
        self._audit = AuditTrail(session, clock)

    # =========================================================================
    # Loading
    # =========================================================================

    def load(self, organization_id: UUID, invoice_id: UUID, lock: bool = False) -> InvoiceModel:
        """Load an invoice of the organization, optionally FOR UPDATE."""
        stmt = select(InvoiceModel).where(
            InvoiceModel.id == invoice_id,
            InvoiceModel.organization_id == organization_id,
        )
        if lock:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        invoice = self.session.execute(stmt).scalar_one_or_none()
        if invoice is None:
            raise InvoiceNotFoundError(str(invoice_id))
        return invoice

    def to_dto(self, invoice: InvoiceModel) -> Invoice:
        """Full invoice view including items and allocations."""
        allocations = self.session.execute(
            select(PaymentAllocationModel)
            .where(PaymentAllocationModel.invoice_id == invoice.id)
            .order_by(PaymentAllocationModel.created_at, PaymentAllocationModel.id)
        ).scalars().all()
        return invoice.to_dto(allocations=tuple(a.to_dto() for a in allocations))

    def allocated_total(self, invoice_id: UUID) -> Decimal:
        amounts = self.session.execute(
            select(PaymentAllocationModel.amount_applied).where(
                PaymentAllocationModel.invoice_id == invoice_id
            )
        ).scalars().all()
        return round_money(sum(amounts, ZERO))

    def has_allocations(self, invoice_id: UUID) -> bool:
        return self.session.execute(
            select(PaymentAllocationModel.id)
            .where(PaymentAllocationModel.invoice_id == invoice_id)
            .limit(1)
        ).first() is not None

    # =========================================================================
    # Create / update
    # =========================================================================

    def create_invoice(self, organization_id: UUID, actor_id: UUID, new_invoice: NewInvoice) -> Invoice:
        """
        Create a manual invoice in draft with every amount at zero.

        Currency defaults to the lease's billing currency.
        """
        lease = self.session.execute(
            select(LeaseModel).where(
                LeaseModel.id == new_invoice.lease_id,
                LeaseModel.organization_id == organization_id,
            )
        ).scalar_one_or_none()
        if lease is None:
            raise LeaseNotFoundError(str(new_invoice.lease_id))

        invoice = self.insert_invoice(
            organization_id,
            actor_id,
            lease_id=lease.id,
            invoice_number=new_invoice.invoice_number,
            issue_date=new_invoice.issue_date,
            due_date=new_invoice.due_date,
            currency=new_invoice.currency or lease.billing_currency,
            status=InvoiceStatus.DRAFT,
            notes=new_invoice.notes,
            metadata=new_invoice.metadata,
        )
        return self.to_dto(invoice)

    def insert_invoice(
        self,
        organization_id: UUID,
        actor_id: UUID,
        *,
        lease_id: UUID,
        invoice_number: str,
        issue_date: date,
        due_date: date,
        currency: str,
        status: InvoiceStatus,
        notes: str | None = None,
        metadata: Mapping[str, Any] | None = None,
    ) -> InvoiceModel:
        """
        INSERT an invoice header with zero amounts.

        Used for manual drafts and, with status issued, by the invoice
        generator, which adds the rent line in the same transaction.
        """
        number = (invoice_number or "").strip()
        if not number:
            raise ValidationError("invoice number must not be empty")
        _validate_dates(issue_date, due_date)
        currency = validate_currency(currency)
        self._require_unique_number(organization_id, number)

        invoice = InvoiceModel(
            organization_id=organization_id,
            lease_id=lease_id,
            invoice_number=number,
            status=status.value,
            issue_date=issue_date,
            due_date=due_date,
            currency=currency,
            subtotal_amount=ZERO,
            tax_amount=ZERO,
            total_amount=ZERO,
            balance_amount=ZERO,
            notes=notes,
            metadata_=dict(metadata or {}),
            created_by_id=actor_id,
        )
        savepoint = self.session.begin_nested()
        try:
            self.session.add(invoice)
            self.session.flush()
            savepoint.commit()
        except IntegrityError:
            # A concurrent writer took the number between check and insert.
            savepoint.rollback()
            logger.warning(
                "invoice_number_race_rejected",
                extra={"invoice_number": number},
            )
            raise DuplicateInvoiceNumberError(str(organization_id), number) from None

        logger.info(
            "invoice_created",
            extra={
                "invoice_id": str(invoice.id),
                "lease_id": str(lease_id),
                "invoice_number": number,
                "status": status.value,
            },
        )
        return invoice

    def update_invoice(
        self,
        organization_id: UUID,
        actor_id: UUID,
        invoice_id: UUID,
        changes: Mapping[str, Any],
    ) -> Invoice:
        """Patch header fields of a draft invoice."""
        unknown = sorted(set(changes) - UPDATABLE_FIELDS)
        if unknown:
            raise ValidationError(f"{unknown[0]} is not an updatable invoice field")

        invoice = self.load(organization_id, invoice_id, lock=True)
        self.require_draft(invoice, "update invoice")

        number = invoice.invoice_number
        if "invoice_number" in changes:
            number = (changes["invoice_number"] or "").strip()
            if not number:
                raise ValidationError("invoice number must not be empty")
            if number != invoice.invoice_number:
                self._require_unique_number(organization_id, number)
        issue_date = changes.get("issue_date", invoice.issue_date)
        due_date = changes.get("due_date", invoice.due_date)
        _validate_dates(issue_date, due_date)
        currency = validate_currency(changes["currency"]) if "currency" in changes else invoice.currency
        tax = invoice.tax_amount
        if "tax_amount" in changes:
            tax = to_money(changes["tax_amount"], "tax_amount")
            if tax < ZERO:
                raise InvalidAmountError("tax_amount", str(tax), "must not be negative")

        # Only the header update runs inside the savepoint.
        self.session.flush()
        savepoint = self.session.begin_nested()
        try:
            invoice.invoice_number = number
            invoice.issue_date = issue_date
            invoice.due_date = due_date
            invoice.currency = currency
            invoice.tax_amount = tax
            if "notes" in changes:
                invoice.notes = changes["notes"]
            if "metadata" in changes:
                invoice.metadata_ = dict(changes["metadata"] or {})
            invoice.updated_by_id = actor_id
            self.session.flush()
        except IntegrityError:
            savepoint.rollback()
            raise DuplicateInvoiceNumberError(str(organization_id), number) from None
        savepoint.commit()

        self.recompute_totals(invoice)
        logger.info(
            "invoice_updated",
            extra={"invoice_id": str(invoice.id), "fields": sorted(changes)},
        )
        return self.to_dto(invoice)

    # =========================================================================
    # Totals
    # =========================================================================

    def recompute_totals(self, invoice: InvoiceModel) -> InvoiceModel:
        """
        Recompute subtotal, total and balance from the persisted rows.

        Flushes pending item changes first so the SELECT sees them.
        """
        self.session.flush()
        line_totals = self.session.execute(
            select(InvoiceItemModel.line_total).where(
                InvoiceItemModel.invoice_id == invoice.id
            )
        ).scalars().all()
        allocated = self.allocated_total(invoice.id)
        subtotal, total, balance = recompute_totals(
            line_totals, invoice.tax_amount, allocated
        )
        if balance < ZERO:
            raise InvalidAmountError(
                "total_amount", str(total), f"below the {allocated} already allocated"
            )
        invoice.subtotal_amount = subtotal
        invoice.total_amount = total
        invoice.balance_amount = balance
        self.session.flush()

        logger.info(
            "invoice_items_recomputed",
            extra={
                "invoice_id": str(invoice.id),
                "item_count": len(line_totals),
                "subtotal_amount": str(subtotal),
                "total_amount": str(total),
                "balance_amount": str(balance),
            },
        )
        return invoice

    # =========================================================================
    # Status machine
    # =========================================================================

    def change_status(
        self,
        organization_id: UUID,
        actor_id: UUID,
        invoice_id: UUID,
        new_status: InvoiceStatus | str,
        reason: str | None = None,
    ) -> Invoice:
        """
        Move an invoice along INVOICE_WORKFLOW.

        A target of void is delegated to void_invoice.  paid requires a zero
        balance; partiallyPaid requires 0 < balance < total.
        """
        with LogContext.bind(invoice_id=str(invoice_id)):
            invoice = self.load(organization_id, invoice_id, lock=True)
            target = _coerce_status(invoice.status, new_status)
            if target is InvoiceStatus.VOID:
                return self.void_invoice(organization_id, actor_id, invoice_id, reason)

            transition = INVOICE_WORKFLOW.require("invoice", invoice.status, target.value)
            if transition.guard == BALANCE_ZERO and invoice.balance_amount != ZERO:
                raise TransitionGuardError(
                    "invoice", invoice.status, target.value, BALANCE_ZERO.name,
                    f"balance is {invoice.balance_amount}",
                )
            if transition.guard == BALANCE_PARTIAL and not (
                ZERO < invoice.balance_amount < invoice.total_amount
            ):
                raise TransitionGuardError(
                    "invoice", invoice.status, target.value, BALANCE_PARTIAL.name,
                    f"balance {invoice.balance_amount} is not between 0 and {invoice.total_amount}",
                )

            self.apply_status(invoice, target, actor_id, reason)
            return self.to_dto(invoice)

    def apply_status(
        self,
        invoice: InvoiceModel,
        target: InvoiceStatus,
        actor_id: UUID,
        reason: str | None,
        payload: dict[str, Any] | None = None,
    ) -> None:
        """Write a validated status change and its audit row."""
        from_status = invoice.status
        INVOICE_WORKFLOW.require("invoice", from_status, target.value)
        invoice.status = target.value
        invoice.updated_by_id = actor_id
        self._audit.record(
            entity_type="invoice",
            entity_id=invoice.id,
            organization_id=invoice.organization_id,
            action=AuditAction.STATUS_CHANGED,
            actor_id=actor_id,
            from_status=from_status,
            to_status=target.value,
            reason=reason,
            payload=payload,
        )
        self.session.flush()
        logger.info(
            "invoice_status_changed",
            extra={
                "invoice_id": str(invoice.id),
                "from_status": from_status,
                "to_status": target.value,
            },
        )

    def void_invoice(
        self,
        organization_id: UUID,
        actor_id: UUID,
        invoice_id: UUID,
        reason: str | None,
    ) -> Invoice:
        """
        Void an invoice.

        Refused when the invoice is paid or when any allocation row exists,
        however small.  Totals are left untouched; the reason and time are
        stored on the invoice and in the audit trail.
        """
        with LogContext.bind(invoice_id=str(invoice_id)):
            invoice = self.load(organization_id, invoice_id, lock=True)
            from_status = invoice.status
            transition = INVOICE_WORKFLOW.require("invoice", from_status, InvoiceStatus.VOID.value)
            if transition.guard == NO_ALLOCATIONS:
                self._require_no_allocations(invoice)

            now = self._clock.now()
            invoice.status = InvoiceStatus.VOID.value
            invoice.void_reason = reason
            invoice.voided_at = now
            invoice.updated_by_id = actor_id
            self._audit.record(
                entity_type="invoice",
                entity_id=invoice.id,
                organization_id=organization_id,
                action=AuditAction.INVOICE_VOIDED,
                actor_id=actor_id,
                from_status=from_status,
                to_status=InvoiceStatus.VOID.value,
                reason=reason,
            )
            self.session.flush()
            logger.info(
                "invoice_voided",
                extra={"invoice_id": str(invoice.id), "from_status": from_status},
            )
            return self.to_dto(invoice)

    def _require_no_allocations(self, invoice: InvoiceModel) -> None:
        """Evaluate NO_ALLOCATIONS; any allocation row blocks a void, however small."""
        if invoice.status == InvoiceStatus.PAID.value:
            raise InvoiceNotVoidableError(str(invoice.id), "invoice is paid")
        if self.has_allocations(invoice.id):
            raise InvoiceNotVoidableError(
                str(invoice.id), "payments have been allocated to it"
            )

    # =========================================================================
    # Reminders
    # =========================================================================

    def send_reminder(
        self,
        organization_id: UUID,
        actor_id: UUID,
        invoice_id: UUID,
        method: str = "email",
        message: str | None = None,
    ) -> ReminderResult:
        """
        Record a payment reminder for an issued or overdue invoice.

        Delivery belongs to the notification collaborator; this records the
        reminder against the tenant's e-mail in the audit trail.
        """
        invoice = self.load(organization_id, invoice_id, lock=True)
        if invoice.status_enum not in REMINDABLE_STATUSES:
            raise InvoiceNotRemindableError(str(invoice.id), invoice.status)

        lease = self.session.get(LeaseModel, invoice.lease_id)
        tenant = ReferenceLookup(self.session).require_tenant(lease.tenant_user_id)
        text = message or (
            f"Invoice {invoice.invoice_number} has an outstanding balance of "
            f"{invoice.balance_amount} {invoice.currency}, due {invoice.due_date.isoformat()}."
        )
        self._audit.record(
            entity_type="invoice",
            entity_id=invoice.id,
            organization_id=organization_id,
            action=AuditAction.REMINDER_SENT,
            actor_id=actor_id,
            notes=text,
            payload={"method": method, "recipient": tenant.email},
        )
        logger.info(
            "invoice_reminder_recorded",
            extra={"invoice_id": str(invoice.id), "method": method},
        )
        return ReminderResult(
            success=True,
            message=f"Reminder sent to {tenant.email}",
            recipient=tenant.email,
            method=method,
        )

    # =========================================================================
    # Guards
    # =========================================================================

    def require_draft(self, invoice: InvoiceModel, action: str) -> None:
        if invoice.status != InvoiceStatus.DRAFT.value:
            raise InvoiceNotDraftError(str(invoice.id), invoice.status, action)

    def _require_unique_number(self, organization_id: UUID, invoice_number: str) -> None:
        existing = self.session.execute(
            select(InvoiceModel.id).where(
                InvoiceModel.organization_id == organization_id,
                InvoiceModel.invoice_number == invoice_number,
            )
        ).first()
        if existing is not None:
            raise DuplicateInvoiceNumberError(str(organization_id), invoice_number)


def _coerce_status(from_status: str, value: InvoiceStatus | str) -> InvoiceStatus:
    if isinstance(value, InvoiceStatus):
        return value
    try:
        return InvoiceStatus(value)
    except ValueError:
        raise InvalidStatusTransitionError("invoice", from_status, str(value)) from None


def _validate_dates(issue_date: date, due_date: date) -> None:
    if due_date < issue_date:
        raise InvalidBillingPeriodError(
            f"due date {due_date.isoformat()} precedes issue date {issue_date.isoformat()}"
        )
