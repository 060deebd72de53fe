"""
Test suite for the cross-entity consistency scan
"""

import pytest

from asset_finance.exceptions import ConsistencyError
from asset_finance.validation import assert_consistent, find_consistency_violations


class TestConsistencyScan:
    """Test detection of broken invariants"""

    def test_clean_portfolio(self, storage, back_office, pending_loan, active_loan):
        """Test a clean portfolio has no violations"""
        assert find_consistency_violations(storage) == []
        assert_consistent(storage)

    def test_assigned_asset_without_loan(self, storage, back_office, admin):
        """Test assigned asset with no loan is reported"""
        back_office.asset_manager.create_assigned_asset("motorcycle", "Bajaj", "Boxer", "fo-1")

        violations = find_consistency_violations(storage)
        assert len(violations) == 1
        assert "assigned but held by 0" in violations[0].message

    def test_asset_held_by_two_loans(self, storage, active_loan):
        """Test asset held by two loans is reported"""
        duplicate = storage.load("loans", active_loan.id)
        duplicate["id"] = "loan-copy"
        storage.save("loans", "loan-copy", duplicate)

        messages = [v.message for v in find_consistency_violations(storage)]
        assert any("held by 2 live loans" in m for m in messages)

    def test_balance_out_of_bounds(self, storage, active_loan):
        """Test negative balance is reported"""
        storage.compare_and_set("loans", active_loan.id, {}, {"loan_balance": "-1"})

        violations = find_consistency_violations(storage)
        assert [(v.entity_type, v.entity_id) for v in violations] == [("loan", active_loan.id)]

    def test_missing_schedule_rows(self, storage, active_loan):
        """Test missing schedule rows are reported"""
        storage.delete("repayment_schedule", f"{active_loan.id}_360")

        messages = [v.message for v in find_consistency_violations(storage)]
        assert "359 schedule rows, expected 360" in messages

    def test_paid_rows_exceed_installments_paid(self, storage, active_loan):
        """Test more paid rows than installments paid fails the check"""
        storage.compare_and_set("repayment_schedule", f"{active_loan.id}_1", {}, {"is_paid": True})

        with pytest.raises(ConsistencyError):
            assert_consistent(storage)

    def test_pending_loan_with_schedule(self, storage, pending_loan):
        """Test a pending loan with schedule rows is reported"""
        storage.save("repayment_schedule", "stray", {
            "id": "stray", "loan_id": pending_loan.id, "installment_number": 1,
            "amount_due": "100", "is_paid": False
        })

        messages = [v.message for v in find_consistency_violations(storage)]
        assert "pending loan has a schedule" in messages
