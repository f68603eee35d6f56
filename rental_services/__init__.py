"""
rental_services -- transactional entrypoint of the billing core.

``BillingService`` exposes every lease, invoice, item, payment-allocation
and invoice-generation operation.  It is the only layer that commits.
"""

from rental_services.billing_service import BillingService, LeaseStatusChange

__all__ = [
    "BillingService",
    "LeaseStatusChange",
]
