"""
Lease selectors -- read-only lease queries.

All queries are scoped to an organization.  Listing is paged: ``page`` is
1-based, ``limit`` is clamped to 1..100, results are ordered newest first.
"""

from uuid import UUID

from sqlalchemy import func, select

from rental_kernel.exceptions import LeaseNotFoundError
from rental_kernel.selectors.base import BaseSelector, status_filter
from rental_kernel.services.reference_lookup import ReferenceLookup
from rental_modules.lease.models import Lease, LeasePage, LeaseStatus
from rental_modules.lease.orm import LeaseModel

MAX_PAGE_SIZE = 100


class LeaseSelector(BaseSelector[LeaseModel]):

    def get(self, organization_id: UUID, lease_id: UUID) -> Lease:
        lease = self.session.execute(
            select(LeaseModel).where(
                LeaseModel.id == lease_id,
                LeaseModel.organization_id == organization_id,
            )
        ).scalar_one_or_none()
        if lease is None:
            raise LeaseNotFoundError(str(lease_id))
        return lease.to_dto()

    def list_leases(
        self,
        organization_id: UUID,
        property_id: UUID | None = None,
        tenant_user_id: UUID | None = None,
        status: LeaseStatus | str | None = None,
        page: int = 1,
        limit: int = 10,
    ) -> LeasePage:
        page = max(page, 1)
        limit = min(max(limit, 1), MAX_PAGE_SIZE)

        conditions = [LeaseModel.organization_id == organization_id]
        if property_id is not None:
            conditions.append(LeaseModel.property_id == property_id)
        if tenant_user_id is not None:
            conditions.append(LeaseModel.tenant_user_id == tenant_user_id)
        if status is not None:
            conditions.append(LeaseModel.status == status_filter("lease", LeaseStatus, status).value)

        total = self.session.execute(
            select(func.count(LeaseModel.id)).where(*conditions)
        ).scalar_one()
        rows = self.session.execute(
            select(LeaseModel)
            .where(*conditions)
            .order_by(LeaseModel.created_at.desc(), LeaseModel.id)
            .offset((page - 1) * limit)
            .limit(limit)
        ).scalars().all()
        return LeasePage(
            items=tuple(row.to_dto() for row in rows),
            total=total,
            page=page,
            limit=limit,
        )

    def list_for_tenant(self, organization_id: UUID, tenant_user_id: UUID) -> list[Lease]:
        """Leases of a tenant; TenantNotFoundError if the user does not exist."""
        ReferenceLookup(self.session).require_tenant(tenant_user_id)
        return self._list_where(
            LeaseModel.organization_id == organization_id,
            LeaseModel.tenant_user_id == tenant_user_id,
        )

    def list_for_property(self, organization_id: UUID, property_id: UUID) -> list[Lease]:
        """Leases on a property; PropertyNotFoundError if outside the organization."""
        ReferenceLookup(self.session).require_property(organization_id, property_id)
        return self._list_where(
            LeaseModel.organization_id == organization_id,
            LeaseModel.property_id == property_id,
        )

    def active_lease_ids(self, organization_id: UUID) -> list[UUID]:
        """Ids of every active lease in the organization, oldest start first."""
        return list(
            self.session.execute(
                select(LeaseModel.id)
                .where(
                    LeaseModel.organization_id == organization_id,
                    LeaseModel.status == LeaseStatus.ACTIVE.value,
                )
                .order_by(LeaseModel.start_date, LeaseModel.id)
            ).scalars()
        )

    def _list_where(self, *conditions) -> list[Lease]:
        rows = self.session.execute(
            select(LeaseModel)
            .where(*conditions)
            .order_by(LeaseModel.start_date.desc(), LeaseModel.id)
        ).scalars().all()
        return [row.to_dto() for row in rows]
