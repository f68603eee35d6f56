"""
Concurrent writers against a shared database file.

In-memory SQLite shares one connection, so these tests use a database file
under tmp_path (or DATABASE_URL when it points at PostgreSQL).  Every
worker thread runs its own unit of work through BillingService.
"""

import os
from concurrent.futures import ThreadPoolExecutor
from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from rental_config.schema import BillingConfig
from rental_kernel.db.engine import (
    create_engine_from_url,
    create_session_factory,
    create_tables,
    drop_tables,
    session_scope,
)
from rental_kernel.domain.clock import DeterministicClock
from rental_kernel.exceptions import (
    LeaseOverlapError,
    OverAllocationError,
    UnitUnavailableError,
)
from rental_kernel.models.reference import Organization, Payment, Property, Unit, User
from rental_modules.invoicing.models import InvoiceStatus
from rental_modules.lease.models import LeaseStatus, NewLease
from rental_services import BillingService

pytestmark = pytest.mark.slow_locks

ACTOR = uuid4()


@pytest.fixture
def shared_factory(tmp_path):
    url = os.environ.get("DATABASE_URL") or f"sqlite:///{tmp_path / 'billing.db'}"
    engine = create_engine_from_url(url)
    create_tables(engine)
    yield create_session_factory(engine)
    drop_tables(engine)
    engine.dispose()


@pytest.fixture
def service(shared_factory):
    config = BillingConfig(
        database_url="sqlite://",
        batch_max_workers=4,
        retry_max_attempts=5,
        retry_backoff_seconds=0.01,
    )
    return BillingService(shared_factory, clock=DeterministicClock(), config=config)


@pytest.fixture
def seeded(shared_factory):
    """Organization, property, tenant and four vacant units."""
    with session_scope(shared_factory) as session:
        org = Organization(name="Acacia Homes")
        session.add(org)
        session.flush()
        prop = Property(organization_id=org.id, name="Riverside Court")
        tenant = User(email="wanjiru@example.com", full_name="Wanjiru Kamau")
        session.add_all([prop, tenant])
        session.flush()
        units = [Unit(property_id=prop.id, unit_number=f"C{n}", status="vacant") for n in range(4)]
        session.add_all(units)
        session.flush()
        return {
            "organization_id": org.id,
            "property_id": prop.id,
            "tenant_id": tenant.id,
            "unit_ids": [unit.id for unit in units],
        }


def _new_lease(seeded, unit_id, start=date(2024, 1, 1), end=date(2024, 12, 31)) -> NewLease:
    return NewLease(
        property_id=seeded["property_id"],
        unit_id=unit_id,
        tenant_user_id=seeded["tenant_id"],
        start_date=start,
        end_date=end,
        rent_amount=Decimal("45000.00"),
        due_day_of_month=5,
    )


def _payments(shared_factory, organization_id, count, amount):
    with session_scope(shared_factory) as session:
        rows = [
            Payment(
                organization_id=organization_id,
                amount=Decimal(amount),
                currency="KES",
                received_on=date(2024, 1, 10),
                reference=f"MPESA-{n:04d}",
            )
            for n in range(count)
        ]
        session.add_all(rows)
        session.flush()
        return [row.id for row in rows]


def _run_parallel(fn, args, workers=8):
    """Run fn over args concurrently; return (results, errors)."""

    def call(arg):
        try:
            return fn(arg), None
        except Exception as exc:  # collected for assertions
            return None, exc

    with ThreadPoolExecutor(max_workers=workers) as pool:
        outcomes = list(pool.map(call, args))
    return [r for r, e in outcomes if e is None], [e for r, e in outcomes if e is not None]


class TestParallelAllocation:
    def test_invoice_never_over_allocated(self, service, shared_factory, seeded):
        org_id = seeded["organization_id"]
        lease = service.create_lease(org_id, ACTOR, _new_lease(seeded, seeded["unit_ids"][0]))
        change = service.change_lease_status(
            org_id, ACTOR, lease.id, LeaseStatus.ACTIVE, generate_first_invoice=True,
        )
        invoice_id = change.first_invoice.id
        payment_ids = _payments(shared_factory, org_id, count=10, amount="10000.00")

        results, errors = _run_parallel(
            lambda payment_id: service.allocate_payment(
                org_id, ACTOR, payment_id, invoice_id, Decimal("10000.00"),
            ),
            payment_ids,
        )

        assert len(results) == 4
        assert len(errors) == 6
        assert all(isinstance(error, OverAllocationError) for error in errors)

        invoice = service.get_invoice(org_id, invoice_id)
        assert invoice.balance_amount == Decimal("5000.00")
        assert invoice.status is InvoiceStatus.PARTIALLY_PAID
        assert sum((a.amount_applied for a in invoice.allocations), Decimal("0")) == Decimal("40000.00")

    def test_one_payment_never_overspent(self, service, shared_factory, seeded):
        org_id = seeded["organization_id"]
        invoice_ids = []
        for unit_id in seeded["unit_ids"]:
            lease = service.create_lease(org_id, ACTOR, _new_lease(seeded, unit_id))
            change = service.change_lease_status(
                org_id, ACTOR, lease.id, LeaseStatus.ACTIVE, generate_first_invoice=True,
            )
            invoice_ids.append(change.first_invoice.id)
        [payment_id] = _payments(shared_factory, org_id, count=1, amount="100000.00")

        results, errors = _run_parallel(
            lambda invoice_id: service.allocate_payment(
                org_id, ACTOR, payment_id, invoice_id, Decimal("45000.00"),
            ),
            invoice_ids,
        )

        assert len(results) == 2
        assert all(isinstance(error, OverAllocationError) for error in errors)
        assert min(r.payment_unapplied for r in results) == Decimal("10000.00")


class TestParallelLeases:
    def test_single_activation_wins(self, service, seeded):
        org_id = seeded["organization_id"]
        unit_id = seeded["unit_ids"][0]
        drafts = [
            service.create_lease(org_id, ACTOR, _new_lease(seeded, unit_id, start=date(2024, 1, n + 1)))
            for n in range(4)
        ]

        results, errors = _run_parallel(
            lambda lease: service.change_lease_status(org_id, ACTOR, lease.id, LeaseStatus.ACTIVE),
            drafts,
        )

        assert len(results) == 1
        assert len(errors) == 3
        assert all(isinstance(error, (UnitUnavailableError, LeaseOverlapError)) for error in errors)
        assert service.list_leases(org_id, status=LeaseStatus.ACTIVE).total == 1


class TestParallelBatch:
    def test_concurrent_runs_generate_once(self, service, seeded):
        org_id = seeded["organization_id"]
        for unit_id in seeded["unit_ids"]:
            lease = service.create_lease(org_id, ACTOR, _new_lease(seeded, unit_id))
            service.change_lease_status(org_id, ACTOR, lease.id, LeaseStatus.ACTIVE)

        results, errors = _run_parallel(
            lambda _: service.batch_generate_invoices(org_id, ACTOR, month=2, year=2024),
            range(3),
            workers=3,
        )

        assert errors == []
        assert sum(r.generated for r in results) == 4
        assert sum(r.skipped for r in results) == 8
        assert all(not r.errors for r in results)
        assert service.list_invoices(org_id, start_date=date(2024, 2, 1)).total == 4
