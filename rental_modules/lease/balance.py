"""
Balance Calculator -- outstanding balance of a lease.

Sums ``balance_amount`` over the lease's invoices in issued, partiallyPaid
or overdue.  Draft and void invoices are excluded; paid invoices would
contribute zero.  Read-only.
"""

from uuid import UUID

from sqlalchemy import select

from rental_kernel.db.types import ZERO, round_money
from rental_kernel.exceptions import LeaseNotFoundError
from rental_kernel.selectors.base import BaseSelector
from rental_modules.invoicing.models import UNSETTLED_STATUSES
from rental_modules.invoicing.orm import InvoiceModel
from rental_modules.lease.models import LeaseBalance
from rental_modules.lease.orm import LeaseModel


class LeaseBalanceSelector(BaseSelector[InvoiceModel]):

    def get_lease_balance(self, organization_id: UUID, lease_id: UUID) -> LeaseBalance:
        lease = self.session.execute(
            select(LeaseModel).where(
                LeaseModel.id == lease_id,
                LeaseModel.organization_id == organization_id,
            )
        ).scalar_one_or_none()
        if lease is None:
            raise LeaseNotFoundError(str(lease_id))

        # Summed in Python: SQLite SUM over NUMERIC returns float.
        balances = self.session.execute(
            select(InvoiceModel.balance_amount).where(
                InvoiceModel.lease_id == lease.id,
                InvoiceModel.status.in_([s.value for s in UNSETTLED_STATUSES]),
            )
        ).scalars().all()
        return LeaseBalance(
            lease_id=lease.id,
            currency=lease.billing_currency,
            outstanding=round_money(sum(balances, ZERO)),
            invoice_count=len(balances),
        )
