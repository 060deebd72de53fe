"""
Repayment Schedule Module

Builds the ordered list of due installments for a newly activated loan.
Every row is due ``installment_amount``; the final row does not absorb the
ceiling rounding, so the schedule total may exceed the loan total by less
than one installment per row.
"""

from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import Iterable, List, Optional

from .calculator import RepaymentFrequency
from .exceptions import ValidationError
from .storage import StorageRecord


SCHEDULE_TABLE = "repayment_schedule"


@dataclass
class RepaymentScheduleItem(StorageRecord):
    """One due installment of a loan"""
    loan_id: str
    installment_number: int
    due_date: date
    amount_due: Decimal
    is_paid: bool = False
    amount_paid: Decimal = Decimal('0')
    paid_at: Optional[datetime] = None
    payment_id: Optional[str] = None

    def is_overdue(self, as_of: date) -> bool:
        return not self.is_paid and self.due_date < as_of

    def days_overdue(self, as_of: date) -> int:
        if not self.is_overdue(as_of):
            return 0
        return (as_of - self.due_date).days


def schedule_item_id(loan_id: str, installment_number: int) -> str:
    return f"{loan_id}_{installment_number}"


def generate_schedule(
    loan_id: str,
    installment_amount: Decimal,
    total_installments: int,
    frequency: RepaymentFrequency,
    start_date: date
) -> List[RepaymentScheduleItem]:
    """
    Generate the repayment schedule for a loan

    Row ``i`` (1-based) is due ``start_date + i * days_per_period``.

    Args:
        loan_id: Loan the schedule belongs to
        installment_amount: Amount due on every row
        total_installments: Number of rows, > 0
        frequency: daily or weekly
        start_date: Loan start date (the first row falls one period later)

    Returns:
        Rows ordered by installment number
    """
    if total_installments <= 0:
        raise ValidationError("total_installments must be positive")
    if installment_amount <= 0:
        raise ValidationError("installment_amount must be positive")

    frequency = RepaymentFrequency.parse(frequency)
    step = timedelta(days=frequency.days_per_period)
    now = datetime.now(timezone.utc)

    return [
        RepaymentScheduleItem(
            id=schedule_item_id(loan_id, number),
            created_at=now,
            updated_at=now,
            loan_id=loan_id,
            installment_number=number,
            due_date=start_date + step * number,
            amount_due=installment_amount
        )
        for number in range(1, total_installments + 1)
    ]


def earliest_unpaid(items: Iterable[RepaymentScheduleItem]) -> Optional[RepaymentScheduleItem]:
    """Earliest unpaid row by due date (installment number breaks ties)"""
    unpaid = [item for item in items if not item.is_paid]
    if not unpaid:
        return None
    return min(unpaid, key=lambda item: (item.due_date, item.installment_number))


def schedule_total(items: Iterable[RepaymentScheduleItem]) -> Decimal:
    """Sum of amount_due over all rows"""
    return sum((item.amount_due for item in items), Decimal('0'))


def overdue_items(items: Iterable[RepaymentScheduleItem], as_of: date) -> List[RepaymentScheduleItem]:
    """Unpaid rows whose due date is before ``as_of``, oldest first"""
    overdue = [item for item in items if item.is_overdue(as_of)]
    overdue.sort(key=lambda item: item.installment_number)
    return overdue
