"""
Test suite for repayment schedule generation
"""

import pytest
from datetime import date, timedelta
from decimal import Decimal

from asset_finance.calculator import RepaymentFrequency, calculate_loan
from asset_finance.exceptions import ValidationError
from asset_finance.schedule import (
    RepaymentScheduleItem, earliest_unpaid, generate_schedule, overdue_items,
    schedule_item_id, schedule_total
)


START = date(2026, 1, 1)


class TestGenerateSchedule:
    """Test schedule row generation"""

    def test_daily_schedule(self):
        """One row per day starting the day after the start date"""
        items = generate_schedule("loan-1", Decimal("28889"), 360, RepaymentFrequency.DAILY, START)

        assert len(items) == 360
        assert [item.installment_number for item in items] == list(range(1, 361))
        assert items[0].due_date == date(2026, 1, 2)
        assert items[-1].due_date == START + timedelta(days=360)
        assert all(item.amount_due == Decimal("28889") for item in items)
        assert not any(item.is_paid for item in items)

    def test_weekly_schedule(self):
        """Test weekly schedule due dates"""
        items = generate_schedule("loan-1", Decimal("200000"), 52, "weekly", START)

        assert items[0].due_date == date(2026, 1, 8)
        assert items[1].due_date == date(2026, 1, 15)
        assert items[-1].due_date == START + timedelta(days=364)

    def test_row_ids_derive_from_loan_and_number(self):
        """Test row ids derive from loan and installment number"""
        items = generate_schedule("loan-1", Decimal("10"), 3, "daily", START)

        assert [item.id for item in items] == ["loan-1_1", "loan-1_2", "loan-1_3"]
        assert schedule_item_id("loan-1", 2) == "loan-1_2"

    def test_rounding_excess_stays_on_schedule(self):
        """Every row is due the rounded installment, the last row included"""
        quote = calculate_loan("9000000", "1000000", "30", 12, "daily")
        items = generate_schedule("loan-1", quote.installment_amount, quote.total_installments,
                                  quote.frequency, START)

        assert schedule_total(items) == Decimal("10400040")
        assert schedule_total(items) >= quote.total_amount
        assert items[-1].amount_due == quote.installment_amount

    def test_rejects_empty_schedule(self):
        """Test schedules need at least one installment"""
        with pytest.raises(ValidationError):
            generate_schedule("loan-1", Decimal("10"), 0, "daily", START)

    def test_rejects_non_positive_amount(self):
        """Test installment amount must be positive"""
        with pytest.raises(ValidationError):
            generate_schedule("loan-1", Decimal("0"), 10, "daily", START)


class TestScheduleQueries:
    """Test earliest-unpaid and overdue selection"""

    def setup_method(self):
        self.items = generate_schedule("loan-1", Decimal("100"), 5, "daily", START)

    def test_earliest_unpaid_skips_paid_rows(self):
        """Test earliest unpaid row skips paid rows"""
        self.items[0].is_paid = True
        self.items[1].is_paid = True

        assert earliest_unpaid(self.items).installment_number == 3

    def test_earliest_unpaid_is_by_due_date_not_list_order(self):
        """Test earliest unpaid row is chosen by due date"""
        shuffled = list(reversed(self.items))

        assert earliest_unpaid(shuffled).installment_number == 1

    def test_earliest_unpaid_none_when_all_paid(self):
        """Test no unpaid row once all are paid"""
        for item in self.items:
            item.is_paid = True

        assert earliest_unpaid(self.items) is None
        assert earliest_unpaid(iter(self.items)) is None

    def test_overdue_items(self):
        """Rows due strictly before the reference date and still unpaid"""
        self.items[1].is_paid = True
        overdue = overdue_items(self.items, date(2026, 1, 5))

        assert [item.installment_number for item in overdue] == [1, 3]

    def test_days_overdue(self):
        """Test days overdue"""
        item = self.items[0]

        assert item.days_overdue(date(2026, 1, 2)) == 0
        assert item.days_overdue(date(2026, 1, 12)) == 10
        item.is_paid = True
        assert item.days_overdue(date(2026, 1, 12)) == 0

    def test_round_trip_through_storage_dict(self):
        """Test schedule rows survive conversion to storage form"""
        item = self.items[2]
        restored = RepaymentScheduleItem.from_dict(item.to_dict())

        assert restored.due_date == item.due_date
        assert restored.amount_due == Decimal("100")
        assert restored.is_paid is False
