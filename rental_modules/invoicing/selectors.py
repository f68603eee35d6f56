"""
Invoice selectors -- read-only invoice queries, organization scoped.
"""

from datetime import date
from uuid import UUID

from sqlalchemy import func, select

from rental_kernel.exceptions import InvoiceNotFoundError, LeaseNotFoundError
from rental_kernel.selectors.base import BaseSelector, status_filter
from rental_modules.invoicing.models import Invoice, InvoicePage, InvoiceStatus
from rental_modules.invoicing.orm import InvoiceModel
from rental_modules.lease.calculations import month_bounds
from rental_modules.lease.orm import LeaseModel
from rental_modules.payments.orm import PaymentAllocationModel

MAX_PAGE_SIZE = 100


class InvoiceSelector(BaseSelector[InvoiceModel]):

    def get(self, organization_id: UUID, invoice_id: UUID) -> Invoice:
        """Invoice with its items and allocations."""
        invoice = self.session.execute(
            select(InvoiceModel).where(
                InvoiceModel.id == invoice_id,
                InvoiceModel.organization_id == organization_id,
            )
        ).scalar_one_or_none()
        if invoice is None:
            raise InvoiceNotFoundError(str(invoice_id))
        allocations = self.session.execute(
            select(PaymentAllocationModel)
            .where(PaymentAllocationModel.invoice_id == invoice.id)
            .order_by(PaymentAllocationModel.created_at, PaymentAllocationModel.id)
        ).scalars().all()
        return invoice.to_dto(allocations=tuple(a.to_dto() for a in allocations))

    def list_invoices(
        self,
        organization_id: UUID,
        status: InvoiceStatus | str | None = None,
        lease_id: UUID | None = None,
        start_date: date | None = None,
        end_date: date | None = None,
        page: int = 1,
        limit: int = 10,
    ) -> InvoicePage:
        """Page of invoices; start/end bound the issue date inclusively."""
        page = max(page, 1)
        limit = min(max(limit, 1), MAX_PAGE_SIZE)

        conditions = [InvoiceModel.organization_id == organization_id]
        if status is not None:
            conditions.append(InvoiceModel.status == status_filter("invoice", InvoiceStatus, status).value)
        if lease_id is not None:
            conditions.append(InvoiceModel.lease_id == lease_id)
        if start_date is not None:
            conditions.append(InvoiceModel.issue_date >= start_date)
        if end_date is not None:
            conditions.append(InvoiceModel.issue_date <= end_date)

        total = self.session.execute(
            select(func.count(InvoiceModel.id)).where(*conditions)
        ).scalar_one()
        rows = self.session.execute(
            select(InvoiceModel)
            .where(*conditions)
            .order_by(InvoiceModel.issue_date.desc(), InvoiceModel.invoice_number)
            .offset((page - 1) * limit)
            .limit(limit)
        ).scalars().all()
        return InvoicePage(
            items=tuple(row.to_dto() for row in rows),
            total=total,
            page=page,
            limit=limit,
        )

    def list_for_lease(self, organization_id: UUID, lease_id: UUID) -> list[Invoice]:
        lease_exists = self.session.execute(
            select(LeaseModel.id).where(
                LeaseModel.id == lease_id,
                LeaseModel.organization_id == organization_id,
            )
        ).first()
        if lease_exists is None:
            raise LeaseNotFoundError(str(lease_id))
        rows = self.session.execute(
            select(InvoiceModel)
            .where(InvoiceModel.lease_id == lease_id)
            .order_by(InvoiceModel.issue_date.desc(), InvoiceModel.invoice_number)
        ).scalars().all()
        return [row.to_dto() for row in rows]

    def find_for_period(self, lease_id: UUID, year: int, month: int) -> InvoiceModel | None:
        """Any invoice of the lease, in any status, issued within the month."""
        start, next_start = month_bounds(year, month)
        return self.session.execute(
            select(InvoiceModel)
            .where(
                InvoiceModel.lease_id == lease_id,
                InvoiceModel.issue_date >= start,
                InvoiceModel.issue_date < next_start,
            )
            .order_by(InvoiceModel.issue_date)
            .limit(1)
        ).scalar_one_or_none()
