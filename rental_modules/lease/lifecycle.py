"""
LeaseLifecycleManager -- lease creation, update, renewal, deletion and the
lease status state machine.

Responsibility:
    Owns every write to the ``leases`` table and the one collaborator write
    the billing core makes: ``units.status``.  Validates lease terms, the
    organization scope of every referenced entity, unit availability, and
    the no-overlap rule for occupying leases on a unit.

Architecture position:
    Modules > Lease -- flush-only service.  The caller owns the transaction;
    a status change, its unit flip and its audit row commit together.

Invariants enforced:
    - start_date < end_date; rent and deposit >= 0; due day within 1..28.
    - For one unit, no two leases in {active, pendingMoveIn} have
      intersecting closed date ranges.  Checked on create, on date change
      and on activation, while the unit row is locked (SELECT ... FOR UPDATE)
      so concurrent creates for one unit serialize.
    - Status edges follow LEASE_WORKFLOW; anything else raises
      InvalidStatusTransitionError naming source and target.
    - Entering active/pendingMoveIn flips the unit to occupied/reserved;
      leaving an occupying status for ended/terminated/cancelled flips it
      to vacant.  Cancelling a draft leaves the unit untouched.
    - Once a lease leaves draft only notes, metadata and late_fee_percent
      may change.

Failure modes:
    - LeaseNotFoundError / PropertyNotFoundError / UnitNotFoundError /
      TenantNotFoundError for missing or out-of-organization rows.
    - UnitUnavailableError, LeaseOverlapError (Conflict).
    - InvalidLeaseTermsError, LeaseFieldLockedError, LeaseNotDeletableError,
      LeaseNotRenewableError, InvalidStatusTransitionError (Validation).

Audit relevance:
    Status changes, renewals and deletions append BillingAuditEvent rows with
    reason, notes and effective date.
"""

from datetime import date
from decimal import Decimal
from typing import Any, Mapping
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from rental_kernel.db.types import to_money, validate_currency
from rental_kernel.domain.clock import Clock
from rental_kernel.exceptions import (
    InvalidLeaseTermsError,
    InvalidStatusTransitionError,
    LeaseFieldLockedError,
    LeaseNotDeletableError,
    LeaseNotFoundError,
    LeaseNotRenewableError,
    LeaseOverlapError,
    UnitUnavailableError,
)
from rental_kernel.logging_config import LogContext, get_logger
from rental_kernel.models.audit_event import AuditAction
from rental_kernel.models.reference import Unit, UnitStatus
from rental_kernel.services.audit_trail import AuditTrail
from rental_kernel.services.base import BaseService
from rental_kernel.services.reference_lookup import ReferenceLookup
from rental_modules.lease.calculations import ranges_overlap
from rental_modules.lease.models import (
    OCCUPYING_STATUSES,
    RENEWABLE_STATUSES,
    TERMS_LOCKED_STATUSES,
    UNLOCKED_FIELDS,
    UPDATABLE_FIELDS,
    Lease,
    LeaseStatus,
    NewLease,
)
from rental_modules.lease.orm import LeaseModel
from rental_modules.lease.workflows import LEASE_WORKFLOW, UNIT_STATUS_ON_ENTRY

logger = get_logger("modules.lease.lifecycle")

_AVAILABLE_UNIT_STATUSES = frozenset({UnitStatus.VACANT.value, UnitStatus.UNAVAILABLE.value})
_MAX_LATE_FEE_PERCENT = Decimal("100")


class LeaseLifecycleManager(BaseService[LeaseModel]):
    """
    Flush-only owner of lease rows and unit occupancy flips.

    Non-goals:
        - Does NOT commit.  BillingService owns the unit of work.
        - Does NOT generate invoices; first-invoice generation on activation
          is orchestrated by the caller in the same transaction.
    """

    def __init__(self, session: Session, clock: Clock):
        super().__init__(session)
        self._clock = clock
        self._refs = ReferenceLookup(session)
        self._audit = AuditTrail(session, clock)

    # =========================================================================
    # Loading
    # =========================================================================

    def load(self, organization_id: UUID, lease_id: UUID, lock: bool = False) -> LeaseModel:
        """Load a lease of the organization, optionally FOR UPDATE."""
        stmt = select(LeaseModel).where(
            LeaseModel.id == lease_id,
            LeaseModel.organization_id == organization_id,
        )
        if lock:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        lease = self.session.execute(stmt).scalar_one_or_none()
        if lease is None:
            raise LeaseNotFoundError(str(lease_id))
        return lease

    # =========================================================================
    # Create / update / delete
    # =========================================================================

    def create_lease(
        self,
        organization_id: UUID,
        actor_id: UUID,
        new_lease: NewLease,
        renewed_from: LeaseModel | None = None,
    ) -> Lease:
        """
        Persist a new draft lease.

        Preconditions:
            - Organization, property, unit (on that property) and tenant exist
              and are in the organization's scope.
            - No active/pendingMoveIn lease on the unit intersects the dates.
            - The unit is vacant or unavailable.  When renewing, the unit may
              instead be held by the lease being renewed.
        """
        self._refs.require_organization(organization_id)
        self._refs.require_property(organization_id, new_lease.property_id)
        unit = self._refs.require_unit(
            organization_id, new_lease.unit_id, property_id=new_lease.property_id, lock=True
        )
        self._refs.require_tenant(new_lease.tenant_user_id)

        rent = to_money(new_lease.rent_amount, "rent_amount")
        deposit = to_money(new_lease.deposit_amount, "deposit_amount")
        late_fee = to_money(new_lease.late_fee_percent or 0, "late_fee_percent")
        currency = validate_currency(new_lease.billing_currency)
        _validate_terms(
            new_lease.start_date,
            new_lease.end_date,
            rent,
            deposit,
            new_lease.due_day_of_month,
            late_fee,
        )

        self._check_overlap(unit.id, new_lease.start_date, new_lease.end_date, exclude_id=None)

        if unit.status not in _AVAILABLE_UNIT_STATUSES and not self._held_by(unit, renewed_from):
            raise UnitUnavailableError(str(unit.id), unit.status)

        lease = LeaseModel(
            organization_id=organization_id,
            property_id=new_lease.property_id,
            unit_id=new_lease.unit_id,
            tenant_user_id=new_lease.tenant_user_id,
            status=LeaseStatus.DRAFT.value,
            start_date=new_lease.start_date,
            end_date=new_lease.end_date,
            rent_amount=rent,
            deposit_amount=deposit,
            due_day_of_month=new_lease.due_day_of_month,
            billing_currency=currency,
            late_fee_percent=late_fee,
            notes=new_lease.notes,
            metadata_=dict(new_lease.metadata or {}),
            renewed_from_lease_id=renewed_from.id if renewed_from is not None else None,
            created_by_id=actor_id,
        )
        self.session.add(lease)
        self.session.flush()

        logger.info(
            "lease_created",
            extra={
                "lease_id": str(lease.id),
                "unit_id": str(lease.unit_id),
                "rent_amount": str(rent),
                "start_date": lease.start_date.isoformat(),
                "end_date": lease.end_date.isoformat(),
            },
        )
        return lease.to_dto()

    def update_lease(
        self,
        organization_id: UUID,
        actor_id: UUID,
        lease_id: UUID,
        changes: Mapping[str, Any],
    ) -> Lease:
        """
        Apply a partial update.

        Active and terminated leases accept only notes, metadata and
        late_fee_percent; other statuses accept every updatable field.
        Changed dates re-run the overlap check excluding this lease.
        """
        unknown = sorted(set(changes) - UPDATABLE_FIELDS)
        if unknown:
            raise InvalidLeaseTermsError(unknown[0], "not an updatable lease field")

        lease = self.load(organization_id, lease_id, lock=True)
        if lease.status_enum in TERMS_LOCKED_STATUSES:
            locked = sorted(set(changes) - UNLOCKED_FIELDS)
            if locked:
                raise LeaseFieldLockedError(str(lease.id), lease.status, locked)

        start = changes.get("start_date", lease.start_date)
        end = changes.get("end_date", lease.end_date)
        rent = to_money(changes["rent_amount"], "rent_amount") if "rent_amount" in changes else lease.rent_amount
        deposit = (
            to_money(changes["deposit_amount"], "deposit_amount")
            if "deposit_amount" in changes else lease.deposit_amount
        )
        due_day = changes.get("due_day_of_month", lease.due_day_of_month)
        late_fee = (
            to_money(changes["late_fee_percent"] or 0, "late_fee_percent")
            if "late_fee_percent" in changes else lease.late_fee_percent
        )
        _validate_terms(start, end, rent, deposit, due_day, late_fee)

        if start != lease.start_date or end != lease.end_date:
            self._refs.require_unit(organization_id, lease.unit_id, lock=True)
            self._check_overlap(lease.unit_id, start, end, exclude_id=lease.id)

        lease.start_date = start
        lease.end_date = end
        lease.rent_amount = rent
        lease.deposit_amount = deposit
        lease.due_day_of_month = due_day
        lease.late_fee_percent = late_fee
        if "billing_currency" in changes:
            lease.billing_currency = validate_currency(changes["billing_currency"])
        if "notes" in changes:
            lease.notes = changes["notes"]
        if "metadata" in changes:
            lease.metadata_ = dict(changes["metadata"] or {})
        lease.updated_by_id = actor_id
        self.session.flush()

        logger.info(
            "lease_updated",
            extra={"lease_id": str(lease.id), "fields": sorted(changes)},
        )
        return lease.to_dto()

    def delete_lease(self, organization_id: UUID, actor_id: UUID, lease_id: UUID) -> Lease:
        """Delete a draft lease.  Any other status raises LeaseNotDeletableError."""
        lease = self.load(organization_id, lease_id, lock=True)
        if lease.status != LeaseStatus.DRAFT.value:
            raise LeaseNotDeletableError(str(lease.id), lease.status)

        snapshot = lease.to_dto()
        self._audit.record(
            entity_type="lease",
            entity_id=lease.id,
            organization_id=organization_id,
            action=AuditAction.LEASE_DELETED,
            actor_id=actor_id,
            from_status=lease.status,
        )
        self.session.delete(lease)
        self.session.flush()
        logger.info("lease_deleted", extra={"lease_id": str(lease_id)})
        return snapshot

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
        """
        Create a draft successor of an active or ended lease.

        Same property, unit and tenant; same due day, currency and late fee;
        zero deposit.  Subject to the same overlap check as any new lease,
        so renewal dates must not intersect the lease being renewed while it
        is still active.
        """
        source = self.load(organization_id, lease_id, lock=True)
        if source.status_enum not in RENEWABLE_STATUSES:
            raise LeaseNotRenewableError(str(source.id), source.status)

        renewal = self.create_lease(
            organization_id,
            actor_id,
            NewLease(
                property_id=source.property_id,
                unit_id=source.unit_id,
                tenant_user_id=source.tenant_user_id,
                start_date=start_date,
                end_date=end_date,
                rent_amount=rent_amount,
                deposit_amount=Decimal("0"),
                due_day_of_month=source.due_day_of_month,
                billing_currency=source.billing_currency,
                late_fee_percent=source.late_fee_percent,
                notes=notes,
            ),
            renewed_from=source,
        )
        self._audit.record(
            entity_type="lease",
            entity_id=source.id,
            organization_id=organization_id,
            action=AuditAction.LEASE_RENEWED,
            actor_id=actor_id,
            notes=notes,
            payload={
                "renewal_lease_id": str(renewal.id),
                "start_date": start_date.isoformat(),
                "end_date": end_date.isoformat(),
                "rent_amount": str(renewal.rent_amount),
            },
        )
        logger.info(
            "lease_renewed",
            extra={"lease_id": str(source.id), "renewal_lease_id": str(renewal.id)},
        )
        return renewal

    # =========================================================================
    # Status machine
    # =========================================================================

    def change_status(
        self,
        organization_id: UUID,
        actor_id: UUID,
        lease_id: UUID,
        new_status: LeaseStatus | str,
        reason: str | None = None,
        notes: str | None = None,
        effective_date: date | None = None,
    ) -> Lease:
        """
        Move a lease along LEASE_WORKFLOW and flip the unit status.

        Locks the lease row, then the unit row.  Entering an occupying status
        re-checks unit availability and date overlap under that lock.
        """
        with LogContext.bind(lease_id=str(lease_id)):
            lease = self.load(organization_id, lease_id, lock=True)
            from_status = lease.status
            target = _coerce_status(from_status, new_status)
            LEASE_WORKFLOW.require("lease", from_status, target.value)

            unit = self._refs.require_unit(organization_id, lease.unit_id, lock=True)

            if target in OCCUPYING_STATUSES:
                self._require_unit_available_for(lease, unit)
                self._check_overlap(unit.id, lease.start_date, lease.end_date, exclude_id=lease.id)

            # A draft lease never held the unit, so cancelling it leaves the unit alone.
            if target in OCCUPYING_STATUSES or LeaseStatus(from_status) in OCCUPYING_STATUSES:
                unit.status = UNIT_STATUS_ON_ENTRY[target].value
            lease.status = target.value
            lease.updated_by_id = actor_id

            effective = effective_date or self._clock.today()
            self._audit.record(
                entity_type="lease",
                entity_id=lease.id,
                organization_id=organization_id,
                action=AuditAction.STATUS_CHANGED,
                actor_id=actor_id,
                from_status=from_status,
                to_status=target.value,
                reason=reason,
                notes=notes,
                payload={"effective_date": effective.isoformat()},
            )
            self.session.flush()

            logger.info(
                "lease_status_changed",
                extra={
                    "from_status": from_status,
                    "to_status": target.value,
                    "unit_id": str(unit.id),
                    "unit_status": unit.status,
                    "effective_date": effective.isoformat(),
                },
            )
            return lease.to_dto()

    # =========================================================================
    # Guards
    # =========================================================================

    def _require_unit_available_for(self, lease: LeaseModel, unit: Unit) -> None:
        """Unit must be free, or already reserved for this very lease."""
        if unit.status in _AVAILABLE_UNIT_STATUSES:
            return
        if (
            lease.status == LeaseStatus.PENDING_MOVE_IN.value
            and unit.status == UnitStatus.RESERVED.value
        ):
            return
        raise UnitUnavailableError(str(unit.id), unit.status)

    def _held_by(self, unit: Unit, lease: LeaseModel | None) -> bool:
        """True if the unit's occupancy comes from ``lease`` alone."""
        if lease is None or lease.unit_id != unit.id:
            return False
        return lease.status_enum in OCCUPYING_STATUSES

    def _check_overlap(
        self,
        unit_id: UUID,
        start_date: date,
        end_date: date,
        exclude_id: UUID | None,
    ) -> None:
        stmt = select(LeaseModel).where(
            LeaseModel.unit_id == unit_id,
            LeaseModel.status.in_([s.value for s in OCCUPYING_STATUSES]),
        )
        if exclude_id is not None:
            stmt = stmt.where(LeaseModel.id != exclude_id)
        conflicts = [
            str(other.id)
            for other in self.session.execute(stmt).scalars()
            if ranges_overlap(start_date, end_date, other.start_date, other.end_date)
        ]
        if conflicts:
            logger.warning(
                "lease_overlap_rejected",
                extra={"unit_id": str(unit_id), "conflicting_lease_ids": conflicts},
            )
            raise LeaseOverlapError(str(unit_id), conflicts)


def _coerce_status(from_status: str, value: LeaseStatus | str) -> LeaseStatus:
    if isinstance(value, LeaseStatus):
        return value
    try:
        return LeaseStatus(value)
    except ValueError:
        raise InvalidStatusTransitionError("lease", from_status, str(value)) from None


def _validate_terms(
    start_date: date,
    end_date: date,
    rent_amount: Decimal,
    deposit_amount: Decimal,
    due_day_of_month: int,
    late_fee_percent: Decimal,
) -> None:
    if start_date >= end_date:
        raise InvalidLeaseTermsError("end_date", "must be after start_date")
    if rent_amount < 0:
        raise InvalidLeaseTermsError("rent_amount", "must not be negative")
    if deposit_amount < 0:
        raise InvalidLeaseTermsError("deposit_amount", "must not be negative")
    if not isinstance(due_day_of_month, int) or not 1 <= due_day_of_month <= 28:
        raise InvalidLeaseTermsError("due_day_of_month", "must be between 1 and 28")
    if not Decimal("0") <= late_fee_percent <= _MAX_LATE_FEE_PERCENT:
        raise InvalidLeaseTermsError("late_fee_percent", "must be between 0 and 100")
