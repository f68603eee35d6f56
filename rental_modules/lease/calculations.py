"""
Lease Pure Calculation Functions.

Domain math for leases:
- Closed-interval date overlap
- Calendar helpers for billing periods
- First-month rent proration
"""

import calendar
from datetime import date
from decimal import Decimal

from rental_kernel.db.types import round_money


def ranges_overlap(
    start_a: date,
    end_a: date,
    start_b: date,
    end_b: date,
) -> bool:
    """
    True if the closed ranges [start_a, end_a] and [start_b, end_b] intersect.

    Equivalent to: a starts within b, or a ends within b, or a contains b.
    Touching endpoints count as overlap.
    """
    return start_a <= end_b and end_a >= start_b


def days_in_month(year: int, month: int) -> int:
    return calendar.monthrange(year, month)[1]


def month_bounds(year: int, month: int) -> tuple[date, date]:
    """Half-open [first of month, first of next month)."""
    start = date(year, month, 1)
    if month == 12:
        return start, date(year + 1, 1, 1)
    return start, date(year, month + 1, 1)


def prorated_rent(rent_amount: Decimal, start_date: date) -> tuple[Decimal, int]:
    """
    Rent for the partial month beginning on ``start_date``.

    dailyRate = rent / daysInMonth; days = daysInMonth - start.day + 1;
    amount = dailyRate * days, rounded to 2 decimals once at the end.

    Returns:
        (amount, days_charged).  A start on the 1st returns the full rent.
    """
    total_days = days_in_month(start_date.year, start_date.month)
    days_remaining = total_days - start_date.day + 1
    if days_remaining == total_days:
        return round_money(rent_amount), total_days
    daily_rate = rent_amount / Decimal(total_days)
    return round_money(daily_rate * Decimal(days_remaining)), days_remaining
