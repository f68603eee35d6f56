"""
BillingConfig schema.

The validated runtime configuration of the billing core.  Built by
``rental_config.loader`` from YAML and environment overrides; immutable
once constructed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from rental_kernel.db.types import ISO_4217_CURRENCIES


@dataclass(frozen=True)
class BillingConfig:
    """Runtime settings for engine, retry, batch and invoice defaults."""

    database_url: str
    default_currency: str = "KES"
    batch_max_workers: int = 8
    retry_max_attempts: int = 3
    retry_backoff_seconds: float = 0.05
    default_due_day: int = 1
    prorate_first_invoice: bool = True
    rent_item_description: str = "Monthly Rent"
    log_level: str = "INFO"

    def __post_init__(self) -> None:
        if not self.database_url:
            raise ValueError("database_url must not be empty")
        if self.default_currency not in ISO_4217_CURRENCIES:
            raise ValueError(
                f"default_currency {self.default_currency!r} is not an ISO 4217 code"
            )
        if isinstance(self.batch_max_workers, bool) or not isinstance(self.batch_max_workers, int) \
                or self.batch_max_workers < 1:
            raise ValueError("batch_max_workers must be a positive integer")
        if isinstance(self.retry_max_attempts, bool) or not isinstance(self.retry_max_attempts, int) \
                or self.retry_max_attempts < 1:
            raise ValueError("retry_max_attempts must be a positive integer")
        if self.retry_backoff_seconds < 0:
            raise ValueError("retry_backoff_seconds must not be negative")
        if not isinstance(self.default_due_day, int) or not 1 <= self.default_due_day <= 28:
            raise ValueError("default_due_day must be within 1..28")
        if not self.rent_item_description.strip():
            raise ValueError("rent_item_description must not be empty")
        if logging.getLevelName(self.log_level.upper()) not in (
            logging.DEBUG, logging.INFO, logging.WARNING, logging.ERROR, logging.CRITICAL,
        ):
            raise ValueError(f"log_level {self.log_level!r} is not a logging level")
