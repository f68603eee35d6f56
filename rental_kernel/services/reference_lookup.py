"""
ReferenceLookup -- existence and organization-scope checks for the
collaborator entities (organization, property, unit, tenant, payment).

Every lookup is scoped to the caller's organization: a row that exists but
belongs to another organization is reported exactly like a missing row.
Units and payments can be loaded with ``lock=True`` (SELECT ... FOR UPDATE)
when the caller is about to write the unit status or allocate the payment.
"""

from uuid import UUID

from sqlalchemy import select

from rental_kernel.exceptions import (
    OrganizationNotFoundError,
    PaymentNotFoundError,
    PropertyNotFoundError,
    TenantNotFoundError,
    UnitNotFoundError,
)
from rental_kernel.models.reference import Organization, Payment, Property, Unit, User
from rental_kernel.services.base import BaseService


class ReferenceLookup(BaseService[Organization]):

    def require_organization(self, organization_id: UUID) -> Organization:
        org = self.session.get(Organization, organization_id)
        if org is None:
            raise OrganizationNotFoundError(str(organization_id))
        return org

    def require_property(self, organization_id: UUID, property_id: UUID) -> Property:
        prop = self.session.execute(
            select(Property).where(
                Property.id == property_id,
                Property.organization_id == organization_id,
            )
        ).scalar_one_or_none()
        if prop is None:
            raise PropertyNotFoundError(str(property_id))
        return prop

    def require_unit(
        self,
        organization_id: UUID,
        unit_id: UUID,
        property_id: UUID | None = None,
        lock: bool = False,
    ) -> Unit:
        """Load a unit that belongs to a property of the organization."""
        stmt = (
            select(Unit)
            .join(Property, Property.id == Unit.property_id)
            .where(
                Unit.id == unit_id,
                Property.organization_id == organization_id,
            )
        )
        if property_id is not None:
            stmt = stmt.where(Unit.property_id == property_id)
        if lock:
            stmt = stmt.with_for_update(of=Unit).execution_options(populate_existing=True)
        unit = self.session.execute(stmt).scalar_one_or_none()
        if unit is None:
            raise UnitNotFoundError(str(unit_id))
        return unit

    def require_tenant(self, tenant_user_id: UUID) -> User:
        user = self.session.get(User, tenant_user_id)
        if user is None:
            raise TenantNotFoundError(str(tenant_user_id))
        return user

    def require_payment(self, organization_id: UUID, payment_id: UUID, lock: bool = False) -> Payment:
        stmt = select(Payment).where(
            Payment.id == payment_id,
            Payment.organization_id == organization_id,
        )
        if lock:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        payment = self.session.execute(stmt).scalar_one_or_none()
        if payment is None:
            raise PaymentNotFoundError(str(payment_id))
        return payment
