"""
Payment Module

Applies incoming repayments to loan balances and repayment schedules.

A payment is recorded ``pending`` and later confirmed or rejected by staff.
Confirmation is the only operation that moves money: it lowers the loan
balance, counts one installment and marks the earliest unpaid schedule row
paid, all inside one atomic unit guarded by conditional writes.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from .assets import AssetManager, AssetStatus
from .audit import AuditTrail, AuditEventType
from .calculator import to_decimal
from .exceptions import NotFoundError, PreconditionError, ValidationError
from .loans import LoanManager, LoanStatus, raise_consistency_error
from .logging_config import log_action
from .schedule import earliest_unpaid
from .sequences import SequenceGenerator
from .storage import StorageInterface, StorageRecord


logger = logging.getLogger(__name__)

PAYMENTS_TABLE = "payments"


class PaymentStatus(Enum):
    """Payment lifecycle states"""
    PENDING = "pending"
    CONFIRMED = "confirmed"
    RECONCILED = "reconciled"
    REJECTED = "rejected"


class PaymentMethod(Enum):
    MTN_MOMO = "mtn_momo"
    AIRTEL_MONEY = "airtel_money"
    BANK_TRANSFER = "bank_transfer"
    CASH = "cash"

    @classmethod
    def parse(cls, value) -> 'PaymentMethod':
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            raise ValidationError(f"Unknown payment method: {value}") from None


@dataclass
class Payment(StorageRecord):
    """Repayment received against a loan"""
    payment_reference: str
    loan_id: str
    client_id: str
    amount: Decimal
    payment_method: PaymentMethod
    status: PaymentStatus = PaymentStatus.PENDING
    transaction_id: Optional[str] = None  # External reference, e.g. mobile money id
    phone_number: Optional[str] = None
    branch_id: Optional[str] = None
    received_by: Optional[str] = None
    received_at: Optional[datetime] = None
    confirmed_by: Optional[str] = None
    confirmed_at: Optional[datetime] = None
    rejected_by: Optional[str] = None
    rejected_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None
    reconciled_by: Optional[str] = None
    reconciled_at: Optional[datetime] = None
    reconciliation_notes: Optional[str] = None


class PaymentEngine:
    """
    Records, confirms, rejects and reconciles loan payments
    """

    def __init__(
        self,
        storage: StorageInterface,
        audit_trail: AuditTrail,
        loan_manager: LoanManager,
        asset_manager: AssetManager,
        sequences: SequenceGenerator,
        payment_reference_prefix: str = "PAY"
    ):
        self.storage = storage
        self.audit_trail = audit_trail
        self.loan_manager = loan_manager
        self.asset_manager = asset_manager
        self.sequences = sequences
        self.payment_reference_prefix = payment_reference_prefix

        self.payments_table = PAYMENTS_TABLE

    def record_payment(
        self,
        loan_id: str,
        amount,
        payment_method: Union[PaymentMethod, str],
        received_by: str,
        transaction_id: Optional[str] = None,
        phone_number: Optional[str] = None,
        received_at: Optional[datetime] = None,
        branch_id: Optional[str] = None
    ) -> Payment:
        """
        Record a payment as ``pending``

        Args:
            loan_id: Loan being repaid
            amount: Amount received, > 0
            payment_method: mtn_momo, airtel_money, bank_transfer or cash
            received_by: Staff id recording the payment
            transaction_id: External reference of the transfer
            phone_number: Paying phone number for mobile money
            received_at: When the money arrived, defaults to now
            branch_id: Branch, defaults to the loan's branch

        Returns:
            The pending Payment

        Raises:
            ValidationError: If amount or method is invalid
            NotFoundError: If the loan does not exist
            PreconditionError: If the loan is not active
        """
        amount = to_decimal(amount, "amount")
        if amount <= 0:
            raise ValidationError("Payment amount must be positive")
        payment_method = PaymentMethod.parse(payment_method)

        loan = self.loan_manager.require_loan(loan_id)
        if loan.status != LoanStatus.ACTIVE:
            raise PreconditionError(
                f"Cannot record payment: loan {loan_id} is {loan.status.value}"
            )

        now = datetime.now(timezone.utc)
        payment = Payment(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            payment_reference=self.sequences.next_value(self.payment_reference_prefix),
            loan_id=loan.id,
            client_id=loan.client_id,
            amount=amount,
            payment_method=payment_method,
            status=PaymentStatus.PENDING,
            transaction_id=transaction_id,
            phone_number=phone_number,
            branch_id=branch_id or loan.branch_id,
            received_by=received_by,
            received_at=received_at or now
        )
        self.storage.save(self.payments_table, payment.id, payment.to_dict())

        self.audit_trail.log_event(
            event_type=AuditEventType.PAYMENT_RECORDED,
            entity_type="payment",
            entity_id=payment.id,
            metadata={
                "loan_id": loan.id,
                "amount": str(amount),
                "payment_method": payment_method.value,
                "payment_reference": payment.payment_reference
            },
            user_id=received_by
        )
        log_action(logger, "info", f"Payment {payment.payment_reference} recorded",
                   user_id=received_by, action="record_payment", resource=payment.id,
                   extra={"loan_id": loan.id, "amount": str(amount)})
        return payment

    def confirm_payment(self, payment_id: str, confirmed_by: str) -> Payment:
        """
        Confirm a pending payment and apply it to its loan

        The loan balance drops by the payment amount (floored at zero),
        ``installments_paid`` goes up by one, missed-payment streaks reset and
        the earliest unpaid schedule row is marked paid with the amount
        actually received. A zero balance completes the loan and transfers
        the asset to the client.

        Raises:
            NotFoundError: If the payment or its loan does not exist
            PreconditionError: If the payment is not pending or the loan is
                not active
            ConsistencyError: If the asset or schedule does not match the loan
        """
        with self.storage.atomic():
            payment = self.require_payment(payment_id)
            now = datetime.now(timezone.utc)

            confirmed = self.storage.compare_and_set(
                self.payments_table, payment_id,
                {"status": PaymentStatus.PENDING},
                {"status": PaymentStatus.CONFIRMED, "confirmed_by": confirmed_by,
                 "confirmed_at": now}
            )
            if confirmed is None:
                raise PreconditionError(
                    f"Payment {payment_id} is {payment.status.value}, expected pending"
                )

            loan = self.loan_manager.require_loan(payment.loan_id)
            if loan.status != LoanStatus.ACTIVE:
                raise PreconditionError(
                    f"Cannot confirm payment: loan {loan.id} is {loan.status.value}"
                )

            new_balance = max(Decimal('0'), loan.loan_balance - payment.amount)
            completed = new_balance == 0

            schedule = self.loan_manager.get_schedule(loan.id)
            row = earliest_unpaid(schedule)
            following = earliest_unpaid(item for item in schedule if row is None or item.id != row.id)

            loan_changes: Dict[str, Any] = {
                "loan_balance": new_balance,
                "installments_paid": loan.installments_paid + 1,
                "last_payment_date": now,
                "consecutive_missed": 0,
                "next_payment_date": following.due_date if following and not completed else None
            }
            if completed:
                loan_changes["status"] = LoanStatus.COMPLETED

            updated_loan = self.storage.compare_and_set(
                self.loan_manager.loans_table, loan.id,
                {"status": LoanStatus.ACTIVE,
                 "installments_paid": loan.installments_paid,
                 "loan_balance": loan.loan_balance},
                loan_changes
            )
            if updated_loan is None:
                raise PreconditionError(f"Loan {loan.id} changed while confirming payment")

            if completed:
                if self.asset_manager.transition(loan.asset_id, AssetStatus.ASSIGNED,
                                                 AssetStatus.TRANSFERRED) is None:
                    raise_consistency_error(
                        f"Asset {loan.asset_id} of completed loan {loan.id} is not assigned",
                        loan_id=loan.id, asset_id=loan.asset_id
                    )
                self.audit_trail.log_event(
                    event_type=AuditEventType.LOAN_COMPLETED,
                    entity_type="loan",
                    entity_id=loan.id,
                    metadata={"final_payment_id": payment_id, "asset_id": loan.asset_id},
                    user_id=confirmed_by
                )

            if row is not None:
                marked = self.storage.compare_and_set(
                    self.loan_manager.schedule_table, row.id,
                    {"is_paid": False},
                    {"is_paid": True, "amount_paid": payment.amount, "paid_at": now,
                     "payment_id": payment_id}
                )
                if marked is None:
                    raise_consistency_error(
                        f"Schedule row {row.id} of loan {loan.id} was paid concurrently",
                        loan_id=loan.id, payment_id=payment_id
                    )
            else:
                logger.warning("Loan %s has no unpaid schedule row for payment %s",
                               loan.id, payment_id)

            self.audit_trail.log_event(
                event_type=AuditEventType.PAYMENT_CONFIRMED,
                entity_type="payment",
                entity_id=payment_id,
                metadata={
                    "loan_id": loan.id,
                    "amount": str(payment.amount),
                    "previous_balance": str(loan.loan_balance),
                    "new_balance": str(new_balance),
                    "installment_number": row.installment_number if row else None
                },
                user_id=confirmed_by
            )

        log_action(logger, "info", f"Payment {payment.payment_reference} confirmed",
                   user_id=confirmed_by, action="confirm_payment", resource=payment_id,
                   extra={"loan_id": loan.id, "new_balance": str(new_balance),
                          "loan_completed": completed})
        return Payment.from_dict(confirmed)

    def reject_payment(self, payment_id: str, rejected_by: str,
                       reason: Optional[str] = None) -> Payment:
        """
        Reject a pending payment; no loan or schedule field changes

        Raises:
            NotFoundError: If the payment does not exist
            PreconditionError: If the payment is not pending
        """
        return self._transition(
            payment_id,
            PaymentStatus.PENDING,
            PaymentStatus.REJECTED,
            {"rejected_by": rejected_by, "rejected_at": datetime.now(timezone.utc),
             "rejection_reason": reason},
            AuditEventType.PAYMENT_REJECTED,
            rejected_by
        )

    def reconcile_payment(self, payment_id: str, reconciled_by: str,
                          notes: Optional[str] = None) -> Payment:
        """
        Mark a confirmed payment as matched against the bank or mobile money statement

        Raises:
            NotFoundError: If the payment does not exist
            PreconditionError: If the payment is not confirmed
        """
        return self._transition(
            payment_id,
            PaymentStatus.CONFIRMED,
            PaymentStatus.RECONCILED,
            {"reconciled_by": reconciled_by, "reconciled_at": datetime.now(timezone.utc),
             "reconciliation_notes": notes},
            AuditEventType.PAYMENT_RECONCILED,
            reconciled_by
        )

    def get_payment(self, payment_id: str) -> Optional[Payment]:
        data = self.storage.load(self.payments_table, payment_id)
        return Payment.from_dict(data) if data else None

    def require_payment(self, payment_id: str) -> Payment:
        payment = self.get_payment(payment_id)
        if payment is None:
            raise NotFoundError("payment", payment_id)
        return payment

    def list_payments(
        self,
        loan_id: Optional[str] = None,
        status: Optional[PaymentStatus] = None
    ) -> List[Payment]:
        """List payments, newest first"""
        filters: Dict[str, Any] = {}
        if loan_id:
            filters["loan_id"] = loan_id
        if status:
            filters["status"] = status
        payments = [Payment.from_dict(d) for d in self.storage.find(self.payments_table, filters)]
        payments.sort(key=lambda p: p.created_at, reverse=True)
        return payments

    def _transition(self, payment_id: str, expected: PaymentStatus, new_status: PaymentStatus,
                    changes: Dict[str, Any], event_type: AuditEventType,
                    user_id: str) -> Payment:
        payment = self.require_payment(payment_id)
        payload = dict(changes)
        payload["status"] = new_status
        updated = self.storage.compare_and_set(
            self.payments_table, payment_id, {"status": expected}, payload
        )
        if updated is None:
            logger.warning("Payment %s is %s, cannot move to %s",
                           payment_id, payment.status.value, new_status.value)
            raise PreconditionError(
                f"Payment {payment_id} is {payment.status.value}, expected {expected.value}"
            )

        self.audit_trail.log_event(
            event_type=event_type,
            entity_type="payment",
            entity_id=payment_id,
            metadata={"loan_id": payment.loan_id, "amount": str(payment.amount)},
            user_id=user_id
        )
        log_action(logger, "info", f"Payment {payment.payment_reference} {new_status.value}",
                   user_id=user_id, action=event_type.value, resource=payment_id)
        return Payment.from_dict(updated)
