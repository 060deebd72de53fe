"""
Loan Calculator Module

Pure functions turning (price, down payment, rate, duration, frequency) into
principal, interest, total, installment count and per-installment amount.

Interest is flat over the whole term (no compounding) and a month is always
30 days. Installment amounts are rounded up to a whole currency unit, so
``installment_amount * total_installments >= total_amount``.
"""

from dataclasses import dataclass
from decimal import Decimal, ROUND_CEILING, ROUND_HALF_UP
from enum import Enum
from typing import Union

from .exceptions import ValidationError


DAYS_PER_MONTH = 30

Amount = Union[Decimal, int, str]


class RepaymentFrequency(Enum):
    """Repayment frequency with the number of days per period"""
    DAILY = "daily"
    WEEKLY = "weekly"

    @property
    def days_per_period(self) -> int:
        return 1 if self is RepaymentFrequency.DAILY else 7

    @classmethod
    def parse(cls, value) -> 'RepaymentFrequency':
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            raise ValidationError(f"Unknown repayment frequency: {value}") from None


@dataclass(frozen=True)
class LoanQuote:
    """Result of a loan calculation"""
    price: Decimal
    down_payment: Decimal
    interest_rate: Decimal
    duration_months: int
    frequency: RepaymentFrequency
    loan_amount: Decimal
    interest_amount: Decimal
    total_amount: Decimal
    duration_days: int
    total_installments: int
    installment_amount: Decimal

    @property
    def scheduled_total(self) -> Decimal:
        """Sum of all scheduled installments (never below total_amount)"""
        return self.installment_amount * self.total_installments

    @property
    def rounding_excess(self) -> Decimal:
        """Amount the ceiling rounding adds on top of total_amount"""
        return self.scheduled_total - self.total_amount

    @property
    def end_offset_days(self) -> int:
        """Days from start date to the last installment's due date"""
        return self.total_installments * self.frequency.days_per_period


def to_decimal(value: Amount, field_name: str = "amount") -> Decimal:
    """Convert user input to Decimal, rejecting anything non-numeric"""
    if isinstance(value, float):
        value = str(value)
    try:
        result = Decimal(value)
    except Exception:
        raise ValidationError(f"{field_name} must be a number, got {value!r}") from None
    if not result.is_finite():
        raise ValidationError(f"{field_name} must be finite")
    return result


def ceil_whole(value: Decimal) -> Decimal:
    """Round up to a whole currency unit"""
    return value.to_integral_value(rounding=ROUND_CEILING)


def down_payment_from_percent(price: Amount, percent: Amount) -> Decimal:
    """Down payment for a catalog product quoted as a percentage of price"""
    price = to_decimal(price, "price")
    percent = to_decimal(percent, "down_payment_percent")
    if percent < 0 or percent >= 100:
        raise ValidationError("down_payment_percent must be in [0, 100)")
    return (price * percent / Decimal('100')).to_integral_value(rounding=ROUND_HALF_UP)


def calculate_loan(
    price: Amount,
    down_payment: Amount,
    interest_rate_percent: Amount,
    duration_months: int,
    frequency: Union[RepaymentFrequency, str]
) -> LoanQuote:
    """
    Calculate loan amounts and installment plan

    Args:
        price: Asset price
        down_payment: Upfront payment, 0 <= down_payment < price
        interest_rate_percent: Flat interest over the whole term, e.g. 30 for 30%
        duration_months: Loan duration in 30-day months, > 0
        frequency: daily or weekly

    Returns:
        LoanQuote with principal, interest, total and installment plan

    Raises:
        ValidationError: If any input is outside its domain
    """
    price = to_decimal(price, "price")
    down_payment = to_decimal(down_payment, "down_payment")
    rate = to_decimal(interest_rate_percent, "interest_rate")
    frequency = RepaymentFrequency.parse(frequency)

    if price <= 0:
        raise ValidationError("price must be positive")
    if down_payment < 0:
        raise ValidationError("down_payment must not be negative")
    if down_payment >= price:
        raise ValidationError("down_payment must be less than price")
    if rate < 0:
        raise ValidationError("interest_rate must not be negative")
    if isinstance(duration_months, bool) or not isinstance(duration_months, int) or duration_months <= 0:
        raise ValidationError("duration_months must be a positive integer")

    loan_amount = price - down_payment
    interest_amount = loan_amount * rate / Decimal('100')
    total_amount = loan_amount + interest_amount

    duration_days = duration_months * DAYS_PER_MONTH
    days_per_period = frequency.days_per_period
    total_installments = -(-duration_days // days_per_period)
    installment_amount = ceil_whole(total_amount / Decimal(total_installments))

    return LoanQuote(
        price=price,
        down_payment=down_payment,
        interest_rate=rate,
        duration_months=duration_months,
        frequency=frequency,
        loan_amount=loan_amount,
        interest_amount=interest_amount,
        total_amount=total_amount,
        duration_days=duration_days,
        total_installments=total_installments,
        installment_amount=installment_amount
    )
