"""
PaymentAllocationLedger -- applies part or all of a payment to one invoice.

Responsibility:
    Inserts the allocation row, decrements the invoice balance and derives
    the invoice's payment status.  This is the only path by which an
    invoice normally reaches ``partiallyPaid`` or ``paid``.

Architecture position:
    Modules > Payments -- flush-only service.  The caller owns the
    transaction.

Invariants enforced:
    - amount > 0 and amount <= invoice.balance_amount (OverAllocationError),
      so allocations for an invoice never sum past its total.
    - The payment's allocations never sum past the payment amount.
    - One allocation per (payment, invoice) pair.
    - Payment currency equals invoice currency.
    - The invoice must be issued, partiallyPaid or overdue.
    - Locks: invoice row first, then payment row.  Two concurrent
      allocations against the same invoice serialize on the invoice lock;
      two against the same payment serialize on the payment lock.

Audit relevance:
    A status change caused by an allocation appends a BillingAuditEvent
    carrying the payment id and amount.
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from rental_kernel.db.types import ZERO, round_money, to_money
from rental_kernel.domain.clock import Clock
from rental_kernel.exceptions import (
    DuplicateAllocationError,
    InvalidAmountError,
    InvalidCurrencyError,
    InvoiceNotPayableError,
    OverAllocationError,
)
from rental_kernel.logging_config import LogContext, get_logger
from rental_kernel.services.base import BaseService
from rental_kernel.services.reference_lookup import ReferenceLookup
from rental_modules.invoicing.calculations import derive_payment_status
from rental_modules.invoicing.ledger import InvoiceLedger
from rental_modules.invoicing.models import PAYABLE_STATUSES
from rental_modules.payments.models import AllocationResult
from rental_modules.payments.orm import PaymentAllocationModel

logger = get_logger("modules.payments.allocation")


class PaymentAllocationLedger(BaseService[PaymentAllocationModel]):

    def __init__(self, session: Session, clock: Clock, ledger: InvoiceLedger | None = None):
        super().__init__(session)
        self._ledger = ledger or InvoiceLedger(session, clock)
        self._refs = ReferenceLookup(session)

    def allocate(
        self,
        organization_id: UUID,
        actor_id: UUID,
        payment_id: UUID,
        invoice_id: UUID,
        amount: Decimal,
    ) -> AllocationResult:
        """
        Apply ``amount`` of payment ``payment_id`` to invoice ``invoice_id``.

        Postconditions:
            - balance_after = balance_before - amount.
            - status is paid when balance_after == 0, partiallyPaid when
              0 < balance_after < total.
        """
        amount = to_money(amount, "amount")
        if amount <= ZERO:
            raise InvalidAmountError("amount", str(amount), "must be greater than zero")

        with LogContext.bind(invoice_id=str(invoice_id)):
            invoice = self._ledger.load(organization_id, invoice_id, lock=True)
            payment = self._refs.require_payment(organization_id, payment_id, lock=True)

            if invoice.status_enum not in PAYABLE_STATUSES:
                raise InvoiceNotPayableError(str(invoice.id), invoice.status)
            if payment.currency != invoice.currency:
                raise InvalidCurrencyError(
                    payment.currency,
                    f"payment currency does not match invoice currency {invoice.currency}",
                )

            existing = self.session.execute(
                select(PaymentAllocationModel.id).where(
                    PaymentAllocationModel.payment_id == payment.id,
                    PaymentAllocationModel.invoice_id == invoice.id,
                )
            ).first()
            if existing is not None:
                raise DuplicateAllocationError(str(payment.id), str(invoice.id))

            if amount > invoice.balance_amount:
                raise OverAllocationError(
                    "invoice", str(invoice.id), str(amount), str(invoice.balance_amount)
                )
            unapplied = round_money(payment.amount - self._applied_total(payment.id))
            if amount > unapplied:
                raise OverAllocationError(
                    "payment", str(payment.id), str(amount), str(unapplied)
                )

            allocation = PaymentAllocationModel(
                payment_id=payment.id,
                invoice_id=invoice.id,
                amount_applied=amount,
                created_by_id=actor_id,
            )
            savepoint = self.session.begin_nested()
            try:
                self.session.add(allocation)
                self.session.flush()
                savepoint.commit()
            except IntegrityError:
                savepoint.rollback()
                raise DuplicateAllocationError(str(payment.id), str(invoice.id)) from None

            invoice.balance_amount = round_money(invoice.balance_amount - amount)
            invoice.updated_by_id = actor_id
            target = derive_payment_status(invoice.total_amount, invoice.balance_amount)
            if target is not None and target.value != invoice.status:
                self._ledger.apply_status(
                    invoice,
                    target,
                    actor_id,
                    reason="payment allocation",
                    payload={"payment_id": str(payment.id), "amount_applied": str(amount)},
                )
            self.session.flush()

            logger.info(
                "payment_allocated",
                extra={
                    "payment_id": str(payment.id),
                    "amount_applied": str(amount),
                    "invoice_balance": str(invoice.balance_amount),
                    "invoice_status": invoice.status,
                },
            )
            return AllocationResult(
                allocation=allocation.to_dto(),
                invoice_status=invoice.status,
                invoice_balance=invoice.balance_amount,
                payment_unapplied=round_money(unapplied - amount),
            )

    def _applied_total(self, payment_id: UUID) -> Decimal:
        amounts = self.session.execute(
            select(PaymentAllocationModel.amount_applied).where(
                PaymentAllocationModel.payment_id == payment_id
            )
        ).scalars().all()
        return round_money(sum(amounts, ZERO))
