"""
BatchInvoiceGenerator -- idempotent period batch over every active lease.

Contract:
    ``generate_period()`` lists the organization's active leases and runs
    LeaseInvoiceGenerator for each in its own transaction.  Returns counts
    of generated and skipped leases and a per-lease error list.

Architecture: rental_batch/services.  Owns transactions (one per lease);
    receives a session factory, never a global engine.

Invariants enforced:
    - A lease that already has an invoice in the period is skipped without
      an error, so running a period twice yields N/0 then 0/N.
    - Any failure of a single lease is caught, reported under its lease id
      and counted as skipped.  It never aborts the remaining leases.
    - Transient conflicts are retried per lease with bounded backoff.
    - Workers share no mutable state; each opens its own session.  With
      ``max_workers <= 1`` leases are processed sequentially on the
      calling thread.
"""

from __future__ import annotations

import time
from concurrent.futures import ThreadPoolExecutor
from uuid import UUID

from sqlalchemy.orm import Session, sessionmaker

from rental_kernel.db.engine import session_scope
from rental_kernel.db.retry import run_with_retry
from rental_kernel.domain.clock import Clock, SystemClock
from rental_kernel.exceptions import (
    InternalBillingError,
    InvoiceAlreadyExistsError,
    RentalBillingError,
)
from rental_kernel.logging_config import LogContext, get_logger
from rental_modules.invoicing.calculations import validate_period
from rental_modules.lease.selectors import LeaseSelector

from rental_batch.domain.types import BatchGenerationResult, LeaseGenerationError
from rental_batch.services.invoice_generator import (
    DEFAULT_RENT_DESCRIPTION,
    LeaseInvoiceGenerator,
)

logger = get_logger("batch.generator")

DEFAULT_MAX_WORKERS = 8

# Per-lease outcomes collected from workers.
_GENERATED = "generated"
_SKIPPED = "skipped"
_FAILED = "failed"


class BatchInvoiceGenerator:
    """Period batch with one transaction per lease.

    Non-goals:
        - Does NOT schedule itself; callers (CLI, service) trigger runs.
        - Does NOT persist a job record; the invoices are the record.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        clock: Clock | None = None,
        max_workers: int = DEFAULT_MAX_WORKERS,
        retry_max_attempts: int = 3,
        retry_backoff_seconds: float = 0.05,
        rent_description: str = DEFAULT_RENT_DESCRIPTION,
    ):
        self._session_factory = session_factory
        self._clock = clock or SystemClock()
        self._max_workers = max_workers
        self._retry_max_attempts = retry_max_attempts
        self._retry_backoff_seconds = retry_backoff_seconds
        self._rent_description = rent_description

    def generate_period(
        self,
        organization_id: UUID,
        actor_id: UUID,
        month: int,
        year: int,
        due_day: int | None = None,
    ) -> BatchGenerationResult:
        """Generate one issued invoice per active lease for ``month``/``year``.

        Raises:
            InvalidBillingPeriodError: Bad month or year; nothing is processed.
        """
        validate_period(month, year, due_day)
        start_time = time.monotonic()

        with session_scope(self._session_factory) as session:
            lease_ids = LeaseSelector(session).active_lease_ids(organization_id)

        logger.info(
            "batch_generation_started",
            extra={
                "organization_id": str(organization_id),
                "year": year,
                "month": month,
                "lease_count": len(lease_ids),
            },
        )

        def process(lease_id: UUID) -> tuple[str, UUID, object]:
            return self._process_lease(organization_id, actor_id, lease_id, year, month, due_day)

        if self._max_workers <= 1 or len(lease_ids) <= 1:
            outcomes = [process(lease_id) for lease_id in lease_ids]
        else:
            with ThreadPoolExecutor(
                max_workers=self._max_workers,
                thread_name_prefix="invoice-batch",
            ) as pool:
                outcomes = list(pool.map(process, lease_ids))

        generated = 0
        skipped = 0
        errors: list[LeaseGenerationError] = []
        invoice_ids: list[UUID] = []
        for kind, lease_id, detail in outcomes:
            if kind == _GENERATED:
                generated += 1
                invoice_ids.append(detail)
            else:
                skipped += 1
                if kind == _FAILED:
                    errors.append(detail)

        result = BatchGenerationResult(
            year=year,
            month=month,
            generated=generated,
            skipped=skipped,
            errors=tuple(errors),
            invoice_ids=tuple(invoice_ids),
        )
        logger.info(
            "batch_generation_completed",
            extra={
                "organization_id": str(organization_id),
                "year": year,
                "month": month,
                "generated": generated,
                "skipped": skipped,
                "failed": len(errors),
                "duration_ms": int((time.monotonic() - start_time) * 1000),
            },
        )
        return result

    def _process_lease(
        self,
        organization_id: UUID,
        actor_id: UUID,
        lease_id: UUID,
        year: int,
        month: int,
        due_day: int | None,
    ) -> tuple[str, UUID, object]:
        """Run one lease's unit of work and classify the outcome."""

        def work() -> UUID:
            with session_scope(self._session_factory) as session:
                generator = LeaseInvoiceGenerator(
                    session, self._clock, rent_description=self._rent_description,
                )
                invoice = generator.generate(
                    organization_id, actor_id, lease_id,
                    year=year, month=month, due_day=due_day,
                )
                return invoice.id

        with LogContext.bind(organization_id=str(organization_id), lease_id=str(lease_id)):
            try:
                invoice_id = run_with_retry(
                    "generate_lease_invoice",
                    work,
                    max_attempts=self._retry_max_attempts,
                    backoff_seconds=self._retry_backoff_seconds,
                )
            except InvoiceAlreadyExistsError:
                logger.info("lease_invoice_skipped_existing", extra={"year": year, "month": month})
                return _SKIPPED, lease_id, None
            except RentalBillingError as exc:
                logger.warning(
                    "lease_invoice_failed",
                    extra={"error_code": exc.code, "error": str(exc)},
                )
                return _FAILED, lease_id, LeaseGenerationError(lease_id, exc.code, str(exc))
            except Exception:
                logger.exception("lease_invoice_unexpected_error")
                return _FAILED, lease_id, LeaseGenerationError(
                    lease_id, InternalBillingError.code, "Internal server error",
                )
            return _GENERATED, lease_id, invoice_id
