"""
Lease Domain Models (``rental_modules.lease.models``).

Responsibility
--------------
Frozen dataclass value objects for leases: the persisted lease view, the
input for creating a lease, the outstanding-balance result, and one page
of a lease listing.

Architecture position
---------------------
**Modules layer** -- pure data definitions with ZERO I/O.  Returned by the
lease lifecycle manager and lease selectors.

Invariants enforced
-------------------
* All models are ``frozen=True``.
* All monetary fields use ``Decimal`` -- NEVER ``float``.
"""

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID


class LeaseStatus(Enum):
    """Lease lifecycle states."""
    DRAFT = "draft"
    PENDING_MOVE_IN = "pendingMoveIn"
    ACTIVE = "active"
    ENDED = "ended"
    TERMINATED = "terminated"
    CANCELLED = "cancelled"


# Statuses that hold a unit; two of these may never overlap on one unit.
OCCUPYING_STATUSES: frozenset[LeaseStatus] = frozenset({
    LeaseStatus.ACTIVE,
    LeaseStatus.PENDING_MOVE_IN,
})

RENEWABLE_STATUSES: frozenset[LeaseStatus] = frozenset({
    LeaseStatus.ACTIVE,
    LeaseStatus.ENDED,
})

# Statuses whose lease terms are frozen; only UNLOCKED_FIELDS may change.
TERMS_LOCKED_STATUSES: frozenset[LeaseStatus] = frozenset({LeaseStatus.ACTIVE, LeaseStatus.TERMINATED})

# Fields that remain editable on a lease whose terms are frozen.
UNLOCKED_FIELDS: frozenset[str] = frozenset({"notes", "metadata", "late_fee_percent"})

UPDATABLE_FIELDS: frozenset[str] = frozenset({
    "start_date",
    "end_date",
    "rent_amount",
    "deposit_amount",
    "due_day_of_month",
    "billing_currency",
    "late_fee_percent",
    "notes",
    "metadata",
})


@dataclass(frozen=True)
class NewLease:
    """Caller input for a lease; persisted as draft."""
    property_id: UUID
    unit_id: UUID
    tenant_user_id: UUID
    start_date: date
    end_date: date
    rent_amount: Decimal
    deposit_amount: Decimal = Decimal("0")
    due_day_of_month: int = 1
    billing_currency: str = "KES"
    late_fee_percent: Decimal = Decimal("0")
    notes: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Lease:
    """A tenancy agreement binding a tenant to a unit for a date range."""
    id: UUID
    organization_id: UUID
    property_id: UUID
    unit_id: UUID
    tenant_user_id: UUID
    status: LeaseStatus
    start_date: date
    end_date: date
    rent_amount: Decimal
    deposit_amount: Decimal
    due_day_of_month: int
    billing_currency: str
    late_fee_percent: Decimal
    notes: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    renewed_from_lease_id: UUID | None = None

    @property
    def occupies_unit(self) -> bool:
        return self.status in OCCUPYING_STATUSES


@dataclass(frozen=True)
class LeaseBalance:
    """Outstanding balance of a lease across its unsettled invoices."""
    lease_id: UUID
    currency: str
    outstanding: Decimal
    invoice_count: int


@dataclass(frozen=True)
class LeasePage:
    items: tuple[Lease, ...]
    total: int
    page: int
    limit: int
