"""
rental_batch.domain -- Pure result types for invoice generation.

ZERO I/O.  All types are frozen dataclasses.
"""

from rental_batch.domain.types import BatchGenerationResult, LeaseGenerationError

__all__ = [
    "BatchGenerationResult",
    "LeaseGenerationError",
]
