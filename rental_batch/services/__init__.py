"""rental_batch.services -- single-lease generator and the period batch."""

from rental_batch.services.batch_generator import BatchInvoiceGenerator
from rental_batch.services.invoice_generator import LeaseInvoiceGenerator

__all__ = [
    "BatchInvoiceGenerator",
    "LeaseInvoiceGenerator",
]
