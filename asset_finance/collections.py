"""
Collections Management Module

Handles delinquent loans: classification by consecutive missed installments,
escalation to default, asset repossession and release back to stock, and the
periodic job that counts missed installments.
"""

import logging
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional

from .assets import AssetManager, AssetStatus
from .audit import AuditTrail, AuditEventType
from .clients import ClientManager
from .exceptions import AssetFinanceError, PreconditionError, ValidationError
from .loans import Loan, LoanManager, LoanStatus, raise_consistency_error
from .logging_config import log_action
from .schedule import overdue_items
from .storage import StorageInterface


logger = logging.getLogger(__name__)


class DelinquencyStatus(Enum):
    """Delinquency classification of an active loan"""
    CURRENT = "current"                        # Below the at-risk threshold
    AT_RISK = "at_risk"                        # Missed streak reached at_risk_threshold
    RECOVERY_CANDIDATE = "recovery_candidate"  # Missed streak reached recovery_threshold


class CollectionsManager:
    """
    Delinquency classification and the recovery state machine
    """

    def __init__(
        self,
        storage: StorageInterface,
        audit_trail: AuditTrail,
        loan_manager: LoanManager,
        asset_manager: AssetManager,
        client_manager: ClientManager,
        at_risk_threshold: int = 3,
        recovery_threshold: int = 4
    ):
        if at_risk_threshold <= 0 or recovery_threshold < at_risk_threshold:
            raise ValidationError("Thresholds must satisfy 0 < at_risk <= recovery")
        self.storage = storage
        self.audit_trail = audit_trail
        self.loan_manager = loan_manager
        self.asset_manager = asset_manager
        self.client_manager = client_manager
        self.at_risk_threshold = at_risk_threshold
        self.recovery_threshold = recovery_threshold

    def classify(self, loan: Loan) -> Optional[DelinquencyStatus]:
        """Delinquency status of an active loan; None for any other status"""
        if loan.status != LoanStatus.ACTIVE:
            return None
        if loan.consecutive_missed >= self.recovery_threshold:
            return DelinquencyStatus.RECOVERY_CANDIDATE
        if loan.consecutive_missed >= self.at_risk_threshold:
            return DelinquencyStatus.AT_RISK
        return DelinquencyStatus.CURRENT

    def at_risk_loans(self) -> List[Loan]:
        """Active loans at or past the at-risk threshold, worst first"""
        return self._loans_missing_at_least(self.at_risk_threshold)

    def recovery_candidates(self) -> List[Loan]:
        """Active loans at or past the recovery threshold, worst first"""
        return self._loans_missing_at_least(self.recovery_threshold)

    def _loans_missing_at_least(self, threshold: int) -> List[Loan]:
        loans = [
            loan for loan in self.loan_manager.list_loans(LoanStatus.ACTIVE)
            if loan.consecutive_missed >= threshold
        ]
        loans.sort(key=lambda l: l.consecutive_missed, reverse=True)
        return loans

    def get_collection_summary(self, as_of: Optional[date] = None) -> Dict[str, Any]:
        """
        Portfolio-level delinquency statistics over active loans

        ``due_today`` counts loans whose next payment date is on or before
        ``as_of``; ``overdue_amount`` sums unpaid rows due before it.
        """
        as_of = as_of or date.today()
        summary: Dict[str, Any] = {
            "active_loans": 0,
            "loans_by_status": {status.value: 0 for status in DelinquencyStatus},
            "outstanding_balance": Decimal('0'),
            "balance_at_risk": Decimal('0'),
            "due_today": 0,
            "overdue_amount": Decimal('0'),
            "defaulted_loans": len(self.loan_manager.list_loans(LoanStatus.DEFAULTED)),
        }
        for loan in self.loan_manager.list_loans(LoanStatus.ACTIVE):
            status = self.classify(loan)
            summary["active_loans"] += 1
            summary["loans_by_status"][status.value] += 1
            summary["outstanding_balance"] += loan.loan_balance
            if status is not DelinquencyStatus.CURRENT:
                summary["balance_at_risk"] += loan.loan_balance
            if loan.next_payment_date and loan.next_payment_date <= as_of:
                summary["due_today"] += 1
            for item in overdue_items(self.loan_manager.get_schedule(loan.id), as_of):
                summary["overdue_amount"] += item.amount_due
        return summary

    def initiate_recovery(self, loan_id: str, initiated_by: str,
                          notes: Optional[str] = None) -> Loan:
        """
        Move an active loan to ``defaulted``

        No threshold is enforced; the decision is left to staff. The asset
        stays ``assigned`` until it is physically recovered.

        Raises:
            NotFoundError: If the loan does not exist
            PreconditionError: If the loan is not active
        """
        loan = self.loan_manager.transition(
            loan_id,
            LoanStatus.ACTIVE,
            LoanStatus.DEFAULTED,
            initiated_by,
            changes={
                "recovery_initiated_at": datetime.now(timezone.utc),
                "recovery_initiated_by": initiated_by,
                "recovery_notes": notes
            },
            event_type=AuditEventType.RECOVERY_INITIATED
        )
        if loan.consecutive_missed < self.recovery_threshold:
            logger.info("Recovery initiated on loan %s below threshold (%d missed)",
                        loan_id, loan.consecutive_missed)
        return loan

    def mark_recovered(self, loan_id: str, recovered_by: str) -> Loan:
        """
        Record repossession of a defaulted loan's asset

        The loan moves ``defaulted -> recovered`` and its asset
        ``assigned -> recovered`` in one atomic unit.

        Raises:
            PreconditionError: If the loan is not defaulted
            ConsistencyError: If the loan's asset is not ``assigned``
        """
        with self.storage.atomic():
            loan = self.loan_manager.transition(
                loan_id,
                LoanStatus.DEFAULTED,
                LoanStatus.RECOVERED,
                recovered_by,
                changes={
                    "recovered_at": datetime.now(timezone.utc),
                    "recovered_by": recovered_by
                },
                event_type=AuditEventType.ASSET_RECOVERED
            )
            if self.asset_manager.transition(loan.asset_id, AssetStatus.ASSIGNED,
                                             AssetStatus.RECOVERED) is None:
                raise_consistency_error(
                    f"Asset {loan.asset_id} of recovered loan {loan_id} is not assigned",
                    loan_id=loan_id, asset_id=loan.asset_id
                )
        return loan

    def release_asset(self, asset_id: str, released_by: str):
        """
        Return a recovered asset to stock as ``available``

        The previous client's link to the asset is cleared in the same unit.

        Raises:
            NotFoundError: If the asset does not exist
            PreconditionError: If the asset is not ``recovered``
        """
        with self.storage.atomic():
            current = self.asset_manager.require_asset(asset_id)
            asset = self.asset_manager.transition(asset_id, AssetStatus.RECOVERED,
                                                  AssetStatus.AVAILABLE)
            if asset is None:
                raise PreconditionError(
                    f"Asset {asset_id} is {current.status.value}, expected recovered"
                )
            for client in self.client_manager.find_by_asset(asset_id):
                self.client_manager.clear_asset_link(client.id, asset_id)

            self.audit_trail.log_event(
                event_type=AuditEventType.ASSET_RELEASED,
                entity_type="asset",
                entity_id=asset_id,
                metadata={"from": AssetStatus.RECOVERED.value, "to": AssetStatus.AVAILABLE.value},
                user_id=released_by
            )

        log_action(logger, "info", f"Asset {asset_id} released to stock",
                   user_id=released_by, action="release_asset", resource=asset_id)
        return asset


class MissedPaymentReconciler:
    """
    Periodic job counting installments that fell due unpaid

    Each schedule row is counted at most once: the loan keeps the highest
    installment number already examined in ``missed_through_installment``,
    so running the job twice for the same date changes nothing.
    """

    def __init__(self, storage: StorageInterface, audit_trail: AuditTrail,
                 loan_manager: LoanManager):
        self.storage = storage
        self.audit_trail = audit_trail
        self.loan_manager = loan_manager

    def run(self, as_of: Optional[date] = None) -> Dict[str, int]:
        """
        Count missed installments due before ``as_of`` on every active loan

        Returns:
            Counts of loans checked, loans updated, missed installments
            recorded and loans that failed
        """
        as_of = as_of or date.today()
        results = {"loans_checked": 0, "loans_updated": 0, "missed_recorded": 0, "errors": 0}

        for loan in self.loan_manager.list_loans(LoanStatus.ACTIVE):
            results["loans_checked"] += 1
            try:
                missed = self.reconcile_loan(loan, as_of)
            except AssetFinanceError:
                # Leave the loan for the next run
                logger.exception("Missed payment reconciliation failed for loan %s", loan.id)
                results["errors"] += 1
                continue
            if missed is not None:
                results["loans_updated"] += 1
                results["missed_recorded"] += missed

        log_action(logger, "info", f"Missed payment reconciliation as of {as_of.isoformat()}",
                   action="reconcile_missed_payments", extra=results)
        return results

    def reconcile_loan(self, loan: Loan, as_of: date) -> Optional[int]:
        """
        Reconcile one loan

        The schedule read and the counter update form one unit. The update is
        guarded on ``installments_paid`` so a payment confirmed since ``loan``
        was read makes the job skip the loan instead of counting a paid row.

        Returns:
            Number of newly missed installments, or None when no schedule row
            became due since the last run (or the loan changed concurrently)
        """
        with self.storage.atomic():
            schedule = self.loan_manager.get_schedule(loan.id)
            due = [
                item for item in schedule
                if item.due_date < as_of and item.installment_number > loan.missed_through_installment
            ]
            if not due:
                return None

            high_water = max(item.installment_number for item in due)
            missed = len(overdue_items(due, as_of))

            updated = self.storage.compare_and_set(
                self.loan_manager.loans_table, loan.id,
                {"status": LoanStatus.ACTIVE,
                 "installments_paid": loan.installments_paid,
                 "missed_through_installment": loan.missed_through_installment,
                 "consecutive_missed": loan.consecutive_missed},
                {"missed_payments": loan.missed_payments + missed,
                 "consecutive_missed": loan.consecutive_missed + missed,
                 "missed_through_installment": high_water}
            )
            if updated is None:
                logger.warning("Loan %s changed during reconciliation, skipped", loan.id)
                return None

            if missed:
                self.audit_trail.log_event(
                    event_type=AuditEventType.MISSED_PAYMENTS_RECORDED,
                    entity_type="loan",
                    entity_id=loan.id,
                    metadata={
                        "as_of": as_of.isoformat(),
                        "missed": missed,
                        "consecutive_missed": loan.consecutive_missed + missed,
                        "through_installment": high_water
                    }
                )
        return missed
