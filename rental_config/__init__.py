"""
rental_config -- single entrypoint for billing configuration.

Responsibility:
    ``get_active_config()`` is the one way to obtain runtime settings.
    Services, the batch and scripts receive the resulting ``BillingConfig``
    rather than reading files or the environment themselves.

Failure modes:
    - ``FileNotFoundError`` -- an explicit or RENTAL_BILLING_CONFIG file is missing.
    - ``ValueError`` -- unknown keys or invalid values.

Audit relevance:
    Every successful call logs ``billing_config_loaded`` with the settings
    that govern retries, batch workers and invoice defaults.  The database
    URL is not logged.
"""

from __future__ import annotations

from pathlib import Path
from typing import Mapping

from rental_config.loader import load_config
from rental_config.schema import BillingConfig
from rental_kernel.logging_config import get_logger

_logger = get_logger("config")


def get_active_config(
    path: Path | str | None = None,
    environ: Mapping[str, str] | None = None,
) -> BillingConfig:
    """Load and validate the active configuration."""
    config = load_config(path, environ)
    _logger.info(
        "billing_config_loaded",
        extra={
            "default_currency": config.default_currency,
            "batch_max_workers": config.batch_max_workers,
            "retry_max_attempts": config.retry_max_attempts,
            "prorate_first_invoice": config.prorate_first_invoice,
            "log_level": config.log_level,
        },
    )
    return config


__all__ = [
    "BillingConfig",
    "get_active_config",
    "load_config",
]
