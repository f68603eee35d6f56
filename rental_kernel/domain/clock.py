"""
Injectable time source for the billing core.

Services never read the wall clock themselves.  The current billing
period, the issue date of generated invoices, ``voided_at`` and audit
event timestamps are all taken from a Clock handed to the service.
"""

from abc import ABC, abstractmethod
from datetime import date, datetime, timezone

# 2024-01-15 12:00 UTC: mid-month, so first-invoice proration is exercised.
DEFAULT_TEST_INSTANT = datetime(2024, 1, 15, 12, 0, tzinfo=timezone.utc)


class Clock(ABC):
    """Source of timezone-aware UTC instants."""

    @abstractmethod
    def now(self) -> datetime:
        ...

    def today(self) -> date:
        """Calendar date (UTC) of ``now()``."""
        return self.now().date()


class SystemClock(Clock):
    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """Clock pinned to a single instant; ``now()`` never moves on its own."""

    def __init__(self, instant: datetime | None = None):
        self._instant = instant or DEFAULT_TEST_INSTANT

    def now(self) -> datetime:
        return self._instant
