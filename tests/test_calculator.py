"""
Test suite for the loan calculator

Tests flat interest, installment counts per frequency, ceiling rounding of
installment amounts and input validation.
"""

import pytest
from decimal import Decimal

from asset_finance.calculator import (
    RepaymentFrequency, calculate_loan, ceil_whole, down_payment_from_percent, to_decimal
)
from asset_finance.exceptions import ValidationError


class TestCalculateLoan:
    """Test loan amount calculation"""

    def test_daily_twelve_month_loan(self):
        """Boxer at 9,000,000 with 1,000,000 down, 30% over 12 months daily"""
        quote = calculate_loan(
            price=Decimal("9000000"),
            down_payment=Decimal("1000000"),
            interest_rate_percent=Decimal("30"),
            duration_months=12,
            frequency=RepaymentFrequency.DAILY
        )

        assert quote.loan_amount == Decimal("8000000")
        assert quote.interest_amount == Decimal("2400000")
        assert quote.total_amount == Decimal("10400000")
        assert quote.duration_days == 360
        assert quote.total_installments == 360
        assert quote.installment_amount == Decimal("28889")

    def test_weekly_installments_round_up_partial_week(self):
        """360 days weekly is 52 installments, the last week partial"""
        quote = calculate_loan("9000000", "1000000", "30", 12, "weekly")

        assert quote.total_installments == 52
        assert quote.installment_amount == Decimal("200000")
        assert quote.end_offset_days == 364

    def test_scheduled_total_covers_loan_total(self):
        """Ceiling rounding never leaves the schedule short"""
        quote = calculate_loan("9000000", "1000000", "30", 12, "daily")

        assert quote.scheduled_total == Decimal("10400040")
        assert quote.rounding_excess == Decimal("40")
        assert quote.rounding_excess < quote.total_installments

    def test_installment_properties_across_terms(self):
        """Installment count and coverage hold for a spread of terms"""
        for months in (1, 3, 6, 12, 18, 24):
            for frequency in RepaymentFrequency:
                for price, down in ((Decimal("4500000"), Decimal("0")),
                                    (Decimal("7350000"), Decimal("735000")),
                                    (Decimal("12999999"), Decimal("1"))):
                    quote = calculate_loan(price, down, "27.5", months, frequency)
                    expected_count = -(-(months * 30) // frequency.days_per_period)

                    assert quote.total_installments == expected_count
                    assert quote.installment_amount == quote.installment_amount.to_integral_value()
                    assert quote.scheduled_total >= quote.total_amount
                    assert quote.scheduled_total - quote.total_amount < quote.total_installments

    def test_zero_interest(self):
        """A zero rate finances the principal only"""
        quote = calculate_loan("3600000", "0", "0", 12, "daily")

        assert quote.interest_amount == 0
        assert quote.total_amount == Decimal("3600000")
        assert quote.installment_amount == Decimal("10000")

    def test_calculation_is_pure(self):
        """Equal inputs give equal quotes"""
        first = calculate_loan("9000000", "1000000", "30", 12, "daily")
        second = calculate_loan("9000000", "1000000", "30", 12, "daily")

        assert first == second

    def test_accepts_strings_and_ints(self):
        """Amounts may arrive as strings or integers"""
        quote = calculate_loan(9000000, "1000000", 30, 12, "DAILY")

        assert quote.frequency is RepaymentFrequency.DAILY
        assert quote.total_amount == Decimal("10400000")


class TestCalculatorValidation:
    """Test rejection of out-of-domain inputs"""

    def test_non_positive_price(self):
        """Test price must be positive"""
        with pytest.raises(ValidationError):
            calculate_loan("0", "0", "30", 12, "daily")

    def test_down_payment_must_be_below_price(self):
        """Test down payment must be below price"""
        with pytest.raises(ValidationError):
            calculate_loan("9000000", "9000000", "30", 12, "daily")

    def test_negative_down_payment(self):
        """Test negative down payment is rejected"""
        with pytest.raises(ValidationError):
            calculate_loan("9000000", "-1", "30", 12, "daily")

    def test_negative_rate(self):
        """Test negative interest rate is rejected"""
        with pytest.raises(ValidationError):
            calculate_loan("9000000", "0", "-5", 12, "daily")

    def test_duration_must_be_positive_integer(self):
        """Test duration must be a positive whole number of months"""
        for duration in (0, -3, 1.5, True):
            with pytest.raises(ValidationError):
                calculate_loan("9000000", "0", "30", duration, "daily")

    def test_unknown_frequency(self):
        """Test unknown repayment frequency is rejected"""
        with pytest.raises(ValidationError):
            calculate_loan("9000000", "0", "30", 12, "monthly")

    def test_non_numeric_amount(self):
        """Test non-numeric amounts are rejected"""
        with pytest.raises(ValidationError):
            calculate_loan("nine million", "0", "30", 12, "daily")

    def test_validation_error_is_value_error(self):
        """Callers catching ValueError still see calculator errors"""
        with pytest.raises(ValueError):
            calculate_loan("9000000", "0", "30", 0, "daily")


class TestHelpers:
    """Test calculator helper functions"""

    def test_ceil_whole(self):
        """Test rounding up to whole currency units"""
        assert ceil_whole(Decimal("28888.0001")) == Decimal("28889")
        assert ceil_whole(Decimal("200000")) == Decimal("200000")

    def test_to_decimal_rejects_infinity(self):
        """Test infinite amounts are rejected"""
        with pytest.raises(ValidationError):
            to_decimal("Infinity")

    def test_to_decimal_from_float(self):
        """Test floats convert through their string form"""
        assert to_decimal(0.1) == Decimal("0.1")

    def test_down_payment_from_percent(self):
        """Test down payment from a percentage of price"""
        assert down_payment_from_percent("9000000", "10") == Decimal("900000")
        assert down_payment_from_percent("7350000", "15") == Decimal("1102500")

    def test_down_payment_percent_range(self):
        """Test down payment percentage must be below 100"""
        with pytest.raises(ValidationError):
            down_payment_from_percent("9000000", "100")

    def test_frequency_days_per_period(self):
        """Test days per repayment period"""
        assert RepaymentFrequency.DAILY.days_per_period == 1
        assert RepaymentFrequency.WEEKLY.days_per_period == 7
        assert RepaymentFrequency.parse("Weekly") is RepaymentFrequency.WEEKLY
