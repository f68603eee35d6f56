"""Invoice items: line totals, totals recompute and the draft-only lock."""

from decimal import Decimal
from uuid import uuid4

import pytest

from rental_kernel.exceptions import (
    InvalidAmountError,
    InvoiceItemNotFoundError,
    InvoiceNotDraftError,
    ValidationError,
)
from rental_modules.invoicing.items import InvoiceItemManager
from rental_modules.invoicing.ledger import InvoiceLedger
from rental_modules.invoicing.models import InvoiceStatus
from rental_modules.lease.models import LeaseStatus


@pytest.fixture
def ledger(session, deterministic_clock):
    return InvoiceLedger(session, deterministic_clock)


@pytest.fixture
def items(session, deterministic_clock):
    return InvoiceItemManager(session, deterministic_clock)


@pytest.fixture
def draft(create_lease, create_invoice):
    lease = create_lease(status=LeaseStatus.ACTIVE)
    return create_invoice(lease, items=[], status=InvoiceStatus.DRAFT)


class TestAddItem:
    def test_two_lines_recompute_totals(self, items, organization, draft, actor_id):
        items.add_item(organization.id, actor_id, draft.id, "Water", Decimal("2"), Decimal("1200"))
        change = items.add_item(organization.id, actor_id, draft.id, "Garbage", Decimal("1"), Decimal("1200"))

        assert change.item.line_total == Decimal("1200.00")
        assert change.invoice.subtotal_amount == Decimal("3600.00")
        assert change.invoice.total_amount == Decimal("3600.00")
        assert change.invoice.balance_amount == Decimal("3600.00")
        assert [i.description for i in change.invoice.items] == ["Water", "Garbage"]

    def test_fractional_quantity_rounds_half_up(self, items, organization, draft, actor_id):
        change = items.add_item(
            organization.id, actor_id, draft.id, "Electricity", Decimal("12.5"), Decimal("23.45"),
        )
        # 12.5 x 23.45 = 293.125
        assert change.item.line_total == Decimal("293.13")

    def test_tax_kept_in_total(self, items, ledger, organization, draft, actor_id):
        ledger.update_invoice(organization.id, actor_id, draft.id, {"tax_amount": "100.00"})

        change = items.add_item(organization.id, actor_id, draft.id, "Rent", Decimal("1"), Decimal("45000"))

        assert change.invoice.total_amount == Decimal("45100.00")

    @pytest.mark.parametrize("description, quantity, unit_price, error", [
        ("", Decimal("1"), Decimal("10"), ValidationError),
        ("Water", Decimal("0"), Decimal("10"), InvalidAmountError),
        ("Water", Decimal("-1"), Decimal("10"), InvalidAmountError),
        ("Water", Decimal("1"), Decimal("-10"), InvalidAmountError),
        ("Water", Decimal("0.333"), Decimal("10"), InvalidAmountError),
    ])
    def test_invalid_lines(self, items, organization, draft, actor_id, description, quantity, unit_price, error):
        with pytest.raises(error):
            items.add_item(organization.id, actor_id, draft.id, description, quantity, unit_price)

    def test_issued_invoice_locked(self, items, organization, create_lease, create_invoice, actor_id):
        issued = create_invoice(create_lease())

        with pytest.raises(InvoiceNotDraftError) as exc_info:
            items.add_item(organization.id, actor_id, issued.id, "Late fee", Decimal("1"), Decimal("500"))
        assert exc_info.value.action == "add item"


class TestUpdateAndRemoveItem:
    def test_update_quantity(self, items, organization, draft, actor_id):
        added = items.add_item(organization.id, actor_id, draft.id, "Water", Decimal("2"), Decimal("1200"))

        change = items.update_item(
            organization.id, actor_id, draft.id, added.item.id, {"quantity": Decimal("3")},
        )

        assert change.item.line_total == Decimal("3600.00")
        assert change.invoice.total_amount == Decimal("3600.00")

    def test_remove_line(self, items, organization, draft, actor_id):
        water = items.add_item(organization.id, actor_id, draft.id, "Water", Decimal("2"), Decimal("1200"))
        items.add_item(organization.id, actor_id, draft.id, "Rent", Decimal("1"), Decimal("45000"))

        change = items.remove_item(organization.id, actor_id, draft.id, water.item.id)

        assert change.item is None
        assert change.invoice.total_amount == Decimal("45000.00")
        assert [i.description for i in change.invoice.items] == ["Rent"]

    def test_remove_last_line(self, items, organization, draft, actor_id):
        only = items.add_item(organization.id, actor_id, draft.id, "Water", Decimal("1"), Decimal("800"))

        change = items.remove_item(organization.id, actor_id, draft.id, only.item.id)

        assert change.invoice.total_amount == Decimal("0.00")
        assert change.invoice.items == ()

    def test_unknown_item(self, items, organization, draft, actor_id):
        with pytest.raises(InvoiceItemNotFoundError):
            items.remove_item(organization.id, actor_id, draft.id, uuid4())

    def test_unknown_field(self, items, organization, draft, actor_id):
        added = items.add_item(organization.id, actor_id, draft.id, "Water", Decimal("1"), Decimal("800"))

        with pytest.raises(ValidationError):
            items.update_item(organization.id, actor_id, draft.id, added.item.id, {"line_total": "1"})

    def test_items_locked_after_issue(self, items, organization, create_lease, create_invoice, actor_id):
        issued = create_invoice(create_lease(), items=[("Water", "2", "1200.00")])
        item_id = issued.items[0].id

        with pytest.raises(InvoiceNotDraftError):
            items.update_item(organization.id, actor_id, issued.id, item_id, {"quantity": Decimal("1")})
        with pytest.raises(InvoiceNotDraftError):
            items.remove_item(organization.id, actor_id, issued.id, item_id)
