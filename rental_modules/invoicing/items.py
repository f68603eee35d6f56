"""
InvoiceItemManager -- line items of draft invoices.

Every mutation locks the parent invoice row, applies the change, then asks
InvoiceLedger.recompute_totals to rebuild subtotal/total/balance from the
full set of persisted item rows in the same transaction.  Quantity must be
positive with at most 2 decimal places, unit price non-negative, line
total = quantity x unit price at 2 decimal places.
"""

from decimal import Decimal
from typing import Any, Mapping
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from rental_kernel.db.types import ZERO, to_exact_cents, to_money
from rental_kernel.domain.clock import Clock
from rental_kernel.exceptions import InvalidAmountError, InvoiceItemNotFoundError, ValidationError
from rental_kernel.logging_config import LogContext, get_logger
from rental_kernel.services.base import BaseService
from rental_modules.invoicing.calculations import line_total
from rental_modules.invoicing.ledger import InvoiceLedger
from rental_modules.invoicing.models import ItemChange
from rental_modules.invoicing.orm import InvoiceItemModel, InvoiceModel

logger = get_logger("modules.invoicing.items")

ITEM_FIELDS = frozenset({"description", "quantity", "unit_price", "metadata"})


class InvoiceItemManager(BaseService[InvoiceItemModel]):

    def __init__(self, session: Session, clock: Clock, ledger: InvoiceLedger | None = None):
        super().__init__(session)
        self._ledger = ledger or InvoiceLedger(session, clock)

    def add_item(
        self,
        organization_id: UUID,
        actor_id: UUID,
        invoice_id: UUID,
        description: str,
        quantity: Decimal,
        unit_price: Decimal,
        metadata: Mapping[str, Any] | None = None,
    ) -> ItemChange:
        with LogContext.bind(invoice_id=str(invoice_id)):
            invoice = self._ledger.load(organization_id, invoice_id, lock=True)
            self._ledger.require_draft(invoice, "add item")
            item = self.append_line(invoice, actor_id, description, quantity, unit_price, metadata)
            self._ledger.recompute_totals(invoice)
            logger.info(
                "invoice_item_added",
                extra={
                    "item_id": str(item.id),
                    "line_total": str(item.line_total),
                },
            )
            return ItemChange(item=item.to_dto(), invoice=self._ledger.to_dto(invoice))

    def append_line(
        self,
        invoice: InvoiceModel,
        actor_id: UUID,
        description: str,
        quantity: Decimal,
        unit_price: Decimal,
        metadata: Mapping[str, Any] | None = None,
    ) -> InvoiceItemModel:
        """
        Insert a line without the draft guard.

        For callers that already hold the invoice lock and validated its
        state: add_item, and the generator building an issued invoice in
        the same unit of work.  Does NOT recompute totals.
        """
        description, quantity, unit_price = _validate_line(description, quantity, unit_price)
        position = self.session.execute(
            select(func.max(InvoiceItemModel.position)).where(
                InvoiceItemModel.invoice_id == invoice.id
            )
        ).scalar_one_or_none() or 0
        item = InvoiceItemModel(
            invoice_id=invoice.id,
            position=position + 1,
            description=description,
            quantity=quantity,
            unit_price=unit_price,
            line_total=line_total(quantity, unit_price),
            metadata_=dict(metadata or {}),
            created_by_id=actor_id,
        )
        invoice.items.append(item)
        self.session.flush()
        return item

    def update_item(
        self,
        organization_id: UUID,
        actor_id: UUID,
        invoice_id: UUID,
        item_id: UUID,
        changes: Mapping[str, Any],
    ) -> ItemChange:
        unknown = sorted(set(changes) - ITEM_FIELDS)
        if unknown:
            raise ValidationError(f"{unknown[0]} is not an updatable item field")

        with LogContext.bind(invoice_id=str(invoice_id)):
            invoice = self._ledger.load(organization_id, invoice_id, lock=True)
            self._ledger.require_draft(invoice, "update item")
            item = self._item(invoice, item_id)

            description, quantity, unit_price = _validate_line(
                changes.get("description", item.description),
                changes.get("quantity", item.quantity),
                changes.get("unit_price", item.unit_price),
            )
            item.description = description
            item.quantity = quantity
            item.unit_price = unit_price
            item.line_total = line_total(quantity, unit_price)
            if "metadata" in changes:
                item.metadata_ = dict(changes["metadata"] or {})
            item.updated_by_id = actor_id

            self._ledger.recompute_totals(invoice)
            logger.info(
                "invoice_item_updated",
                extra={"item_id": str(item.id), "fields": sorted(changes)},
            )
            return ItemChange(item=item.to_dto(), invoice=self._ledger.to_dto(invoice))

    def remove_item(
        self,
        organization_id: UUID,
        actor_id: UUID,
        invoice_id: UUID,
        item_id: UUID,
    ) -> ItemChange:
        with LogContext.bind(invoice_id=str(invoice_id)):
            invoice = self._ledger.load(organization_id, invoice_id, lock=True)
            self._ledger.require_draft(invoice, "remove item")
            item = self._item(invoice, item_id)

            invoice.items.remove(item)
            invoice.updated_by_id = actor_id
            self._ledger.recompute_totals(invoice)
            logger.info("invoice_item_removed", extra={"item_id": str(item_id)})
            return ItemChange(item=None, invoice=self._ledger.to_dto(invoice))

    def _item(self, invoice: InvoiceModel, item_id: UUID) -> InvoiceItemModel:
        for item in invoice.items:
            if item.id == item_id:
                return item
        raise InvoiceItemNotFoundError(str(item_id))


def _validate_line(description, quantity, unit_price) -> tuple[str, Decimal, Decimal]:
    text = (description or "").strip()
    if not text:
        raise ValidationError("item description must not be empty")
    quantity = to_exact_cents(quantity, "quantity")
    unit_price = to_money(unit_price, "unit_price")
    if quantity <= ZERO:
        raise InvalidAmountError("quantity", str(quantity), "must be greater than zero")
    if unit_price < ZERO:
        raise InvalidAmountError("unit_price", str(unit_price), "must not be negative")
    return text, quantity, unit_price
