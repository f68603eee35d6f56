"""
Pure calculation tests: proration, date ranges, totals, payment status,
billing periods and invoice numbering.

No database.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

import pytest

from rental_kernel.exceptions import InvalidBillingPeriodError
from rental_modules.invoicing.calculations import (
    derive_payment_status,
    line_total,
    period_due_date,
    period_invoice_number,
    recompute_totals,
    validate_period,
)
from rental_modules.invoicing.models import InvoiceStatus
from rental_modules.lease.calculations import (
    days_in_month,
    month_bounds,
    prorated_rent,
    ranges_overlap,
)


class TestRangesOverlap:
    def test_disjoint_ranges(self):
        assert not ranges_overlap(date(2024, 1, 1), date(2024, 6, 30), date(2024, 7, 1), date(2024, 12, 31))

    def test_shared_endpoint_overlaps(self):
        assert ranges_overlap(date(2024, 1, 1), date(2024, 6, 30), date(2024, 6, 30), date(2024, 12, 31))

    def test_containment_overlaps(self):
        assert ranges_overlap(date(2024, 1, 1), date(2024, 12, 31), date(2024, 3, 1), date(2024, 3, 31))
        assert ranges_overlap(date(2024, 3, 1), date(2024, 3, 31), date(2024, 1, 1), date(2024, 12, 31))

    def test_partial_overlap_either_side(self):
        assert ranges_overlap(date(2024, 1, 1), date(2024, 6, 30), date(2024, 6, 1), date(2024, 12, 31))
        assert ranges_overlap(date(2024, 6, 1), date(2024, 12, 31), date(2024, 1, 1), date(2024, 6, 30))


class TestCalendar:
    def test_days_in_month_handles_leap_year(self):
        assert days_in_month(2024, 2) == 29
        assert days_in_month(2023, 2) == 28
        assert days_in_month(2024, 4) == 30

    def test_month_bounds_half_open(self):
        assert month_bounds(2024, 3) == (date(2024, 3, 1), date(2024, 4, 1))

    def test_month_bounds_december_rolls_year(self):
        assert month_bounds(2024, 12) == (date(2024, 12, 1), date(2025, 1, 1))


class TestProratedRent:
    def test_start_on_first_charges_full_rent(self):
        assert prorated_rent(Decimal("45000.00"), date(2024, 3, 1)) == (Decimal("45000.00"), 31)

    def test_mid_month_start(self):
        # 30000 / 30 * 16 days (15th..30th)
        amount, days = prorated_rent(Decimal("30000.00"), date(2024, 4, 15))
        assert days == 16
        assert amount == Decimal("16000.00")

    def test_rounds_once_half_up(self):
        # 45000 / 31 * 17 = 24677.419... -> 24677.42
        amount, days = prorated_rent(Decimal("45000.00"), date(2024, 1, 15))
        assert days == 17
        assert amount == Decimal("24677.42")

    def test_last_day_of_month(self):
        amount, days = prorated_rent(Decimal("29000.00"), date(2024, 2, 29))
        assert days == 1
        assert amount == Decimal("1000.00")


class TestTotals:
    def test_line_total_rounds_to_cents(self):
        assert line_total(Decimal("1.50"), Decimal("333.33")) == Decimal("500.00")
        assert line_total(Decimal("3"), Decimal("0.335")) == Decimal("1.01")

    def test_recompute_totals(self):
        subtotal, total, balance = recompute_totals(
            [Decimal("45000.00"), Decimal("1500.00")], Decimal("500.00"), Decimal("0.00"),
        )
        assert subtotal == Decimal("46500.00")
        assert total == Decimal("47000.00")
        assert balance == Decimal("47000.00")

    def test_recompute_subtracts_allocations(self):
        _, total, balance = recompute_totals([Decimal("1200.00")], Decimal("0.00"), Decimal("200.00"))
        assert total == Decimal("1200.00")
        assert balance == Decimal("1000.00")

    def test_recompute_with_no_lines(self):
        assert recompute_totals([], Decimal("0.00"), Decimal("0.00")) == (
            Decimal("0.00"), Decimal("0.00"), Decimal("0.00"),
        )


class TestDerivePaymentStatus:
    def test_zero_balance_is_paid(self):
        assert derive_payment_status(Decimal("45000.00"), Decimal("0.00")) is InvoiceStatus.PAID

    def test_partial_balance(self):
        assert derive_payment_status(Decimal("45000.00"), Decimal("5000.00")) is InvoiceStatus.PARTIALLY_PAID

    def test_untouched_balance_has_no_payment_status(self):
        assert derive_payment_status(Decimal("45000.00"), Decimal("45000.00")) is None


class TestBillingPeriod:
    @pytest.mark.parametrize("month", [0, 13, -1])
    def test_invalid_month(self, month):
        with pytest.raises(InvalidBillingPeriodError):
            validate_period(month, 2024)

    def test_invalid_year(self):
        with pytest.raises(InvalidBillingPeriodError):
            validate_period(1, 1999)

    def test_valid_period(self):
        validate_period(12, 2024)

    def test_invoice_number_is_deterministic(self):
        lease_id = UUID("12345678-1234-5678-1234-567812345678")
        number = period_invoice_number(2024, 3, lease_id)
        assert number == "202403-12345678123456781234567812345678"
        assert period_invoice_number(2024, 3, lease_id) == number
        assert period_invoice_number(2024, 4, lease_id) != number

    def test_due_date(self):
        assert period_due_date(2024, 2, 5) == date(2024, 2, 5)

    @pytest.mark.parametrize("due_day", [0, 29, 31])
    def test_due_day_out_of_range(self, due_day):
        with pytest.raises(InvalidBillingPeriodError):
            period_due_date(2024, 2, due_day)
