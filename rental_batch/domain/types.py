"""
rental_batch.domain.types -- Frozen results of a period batch run.

Invariants enforced:
    - generated + skipped == number of active leases considered.
    - Every error entry is also counted in ``skipped``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any
from uuid import UUID


@dataclass(frozen=True)
class LeaseGenerationError:
    """One lease whose invoice could not be generated."""

    lease_id: UUID
    code: str  # Stable error code, e.g. "LEASE_NOT_ACTIVE"
    message: str

    def to_dict(self) -> dict[str, str]:
        return {
            "lease_id": str(self.lease_id),
            "code": self.code,
            "message": self.message,
        }


@dataclass(frozen=True)
class BatchGenerationResult:
    """Outcome of ``BatchInvoiceGenerator.generate_period()``."""

    year: int
    month: int
    generated: int
    skipped: int
    errors: tuple[LeaseGenerationError, ...] = ()
    invoice_ids: tuple[UUID, ...] = ()

    @property
    def succeeded(self) -> bool:
        return not self.errors

    def to_dict(self) -> dict[str, Any]:
        return {
            "year": self.year,
            "month": self.month,
            "generated": self.generated,
            "skipped": self.skipped,
            "errors": [error.to_dict() for error in self.errors],
            "invoice_ids": [str(invoice_id) for invoice_id in self.invoice_ids],
        }
