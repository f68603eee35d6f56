"""
Period batch: one transaction per lease, idempotent reruns, and per-lease
error isolation.
"""

from datetime import date
from uuid import uuid4

import pytest

from rental_batch.domain.types import BatchGenerationResult, LeaseGenerationError
from rental_batch.services import batch_generator
from rental_batch.services.batch_generator import BatchInvoiceGenerator
from rental_batch.services.invoice_generator import LeaseInvoiceGenerator
from rental_kernel.exceptions import InvalidBillingPeriodError, LeaseNotActiveError
from rental_modules.invoicing.models import InvoiceStatus
from rental_modules.invoicing.selectors import InvoiceSelector
from rental_modules.lease.models import LeaseStatus


@pytest.fixture
def batch(session_factory, deterministic_clock):
    # In-memory SQLite shares a single connection: process leases sequentially.
    return BatchInvoiceGenerator(
        session_factory,
        deterministic_clock,
        max_workers=1,
        retry_backoff_seconds=0,
    )


@pytest.fixture
def leases(create_lease):
    """Three active leases plus one draft and one ended lease."""
    active = [create_lease(status=LeaseStatus.ACTIVE) for _ in range(3)]
    create_lease(status=LeaseStatus.DRAFT)
    create_lease(status=LeaseStatus.ENDED)
    return active


class TestGeneratePeriod:
    def test_one_invoice_per_active_lease(self, batch, session_factory, organization, leases, actor_id):
        result = batch.generate_period(organization.id, actor_id, month=2, year=2024)

        assert result.generated == 3
        assert result.skipped == 0
        assert result.errors == ()
        assert result.succeeded

        with session_factory() as check:
            page = InvoiceSelector(check).list_invoices(organization.id, limit=100)
        assert page.total == 3
        assert {invoice.lease_id for invoice in page.items} == {lease.id for lease in leases}
        assert all(invoice.status is InvoiceStatus.ISSUED for invoice in page.items)
        assert all(invoice.issue_date == date(2024, 2, 1) for invoice in page.items)
        assert {invoice.id for invoice in page.items} == set(result.invoice_ids)

    def test_rerun_skips_everything(self, batch, organization, leases, actor_id):
        first = batch.generate_period(organization.id, actor_id, month=2, year=2024)
        second = batch.generate_period(organization.id, actor_id, month=2, year=2024)

        assert (first.generated, first.skipped) == (3, 0)
        assert (second.generated, second.skipped) == (0, 3)
        assert second.errors == ()
        assert second.invoice_ids == ()

    def test_partially_invoiced_period(
        self, batch, organization, leases, create_invoice, actor_id,
    ):
        create_invoice(leases[0], issue_date=date(2024, 2, 3), due_date=date(2024, 2, 10))

        result = batch.generate_period(organization.id, actor_id, month=2, year=2024)

        assert (result.generated, result.skipped) == (2, 1)
        assert result.errors == ()

    def test_due_day_override(self, batch, session_factory, organization, leases, actor_id):
        batch.generate_period(organization.id, actor_id, month=2, year=2024, due_day=15)

        with session_factory() as check:
            page = InvoiceSelector(check).list_invoices(organization.id)
        assert {invoice.due_date for invoice in page.items} == {date(2024, 2, 15)}

    def test_other_organization_untouched(self, batch, other_organization, leases, actor_id):
        result = batch.generate_period(other_organization.id, actor_id, month=2, year=2024)

        assert (result.generated, result.skipped) == (0, 0)

    def test_invalid_period_raises(self, batch, organization, actor_id):
        with pytest.raises(InvalidBillingPeriodError):
            batch.generate_period(organization.id, actor_id, month=13, year=2024)

    def test_zero_due_day_rejected_before_any_lease(self, session_factory, batch, organization, leases, actor_id):
        with pytest.raises(InvalidBillingPeriodError):
            batch.generate_period(organization.id, actor_id, month=1, year=2024, due_day=0)

        with session_factory() as check:
            assert InvoiceSelector(check).list_invoices(organization.id).total == 0


class TestErrorIsolation:
    def test_failing_lease_reported_others_generated(
        self, batch, monkeypatch, organization, leases, actor_id,
    ):
        broken_id = leases[1].id

        class _Flaky(LeaseInvoiceGenerator):
            def generate(self, organization_id, actor_id, lease_id, **kwargs):
                if lease_id == broken_id:
                    raise RuntimeError("disk full")
                return super().generate(organization_id, actor_id, lease_id, **kwargs)

        monkeypatch.setattr(batch_generator, "LeaseInvoiceGenerator", _Flaky)

        result = batch.generate_period(organization.id, actor_id, month=2, year=2024)

        assert result.generated == 2
        assert result.skipped == 1
        assert not result.succeeded
        assert result.errors == (
            LeaseGenerationError(broken_id, "INTERNAL_ERROR", "Internal server error"),
        )

    def test_domain_error_keeps_code_and_message(
        self, batch, monkeypatch, organization, leases, actor_id,
    ):
        broken_id = leases[0].id

        class _Deactivated(LeaseInvoiceGenerator):
            def generate(self, organization_id, actor_id, lease_id, **kwargs):
                if lease_id == broken_id:
                    raise LeaseNotActiveError(str(lease_id), "terminated")
                return super().generate(organization_id, actor_id, lease_id, **kwargs)

        monkeypatch.setattr(batch_generator, "LeaseInvoiceGenerator", _Deactivated)

        result = batch.generate_period(organization.id, actor_id, month=2, year=2024)

        assert result.generated == 2
        [error] = result.errors
        assert error.lease_id == broken_id
        assert error.code == "LEASE_NOT_ACTIVE"
        assert "terminated" in error.message

    def test_failed_lease_rolled_back(
        self, batch, monkeypatch, session_factory, organization, leases, actor_id,
    ):
        broken_id = leases[2].id

        class _FailsAfterInsert(LeaseInvoiceGenerator):
            def generate(self, organization_id, actor_id, lease_id, **kwargs):
                invoice = super().generate(organization_id, actor_id, lease_id, **kwargs)
                if lease_id == broken_id:
                    raise RuntimeError("lost connection after insert")
                return invoice

        monkeypatch.setattr(batch_generator, "LeaseInvoiceGenerator", _FailsAfterInsert)

        result = batch.generate_period(organization.id, actor_id, month=2, year=2024)

        assert result.generated == 2
        with session_factory() as check:
            assert InvoiceSelector(check).find_for_period(broken_id, 2024, 2) is None


class TestResultSerialization:
    def test_to_dict(self):
        lease_id = uuid4()
        result = BatchGenerationResult(
            year=2024,
            month=2,
            generated=4,
            skipped=1,
            errors=(LeaseGenerationError(lease_id, "LEASE_NOT_ACTIVE", "lease ended"),),
        )

        assert result.to_dict() == {
            "year": 2024,
            "month": 2,
            "generated": 4,
            "skipped": 1,
            "errors": [{"lease_id": str(lease_id), "code": "LEASE_NOT_ACTIVE", "message": "lease ended"}],
            "invoice_ids": [],
        }
