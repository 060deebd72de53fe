"""
Loan Module

Handles loan origination: application creation, review stages, approval with
schedule generation, and rejection. Every status change is a conditional write
on the current status; changes spanning loan, asset and client run inside one
``storage.atomic()`` unit.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

from .assets import Asset, AssetManager, AssetStatus, AssetType
from .audit import AuditTrail, AuditEventType
from .calculator import (
    LoanQuote, RepaymentFrequency, calculate_loan, down_payment_from_percent, to_decimal
)
from .clients import ClientManager
from .exceptions import (
    ConsistencyError, NotFoundError, PreconditionError, ValidationError
)
from .inquiries import InquiryManager
from .logging_config import log_action
from .schedule import (
    SCHEDULE_TABLE, RepaymentScheduleItem, generate_schedule
)
from .sequences import SequenceGenerator
from .storage import StorageInterface, StorageRecord


logger = logging.getLogger(__name__)

LOANS_TABLE = "loans"


class LoanStatus(Enum):
    """Loan lifecycle states"""
    PENDING = "pending"                      # Application captured
    UNDER_REVIEW = "under_review"            # KYC review in progress
    AWAITING_ASSET = "awaiting_asset"        # Waiting for chassis/registration
    AWAITING_APPROVAL = "awaiting_approval"  # Ready for an approver
    ACTIVE = "active"                        # Schedule generated, repaying
    COMPLETED = "completed"                  # Fully repaid, asset transferred
    DEFAULTED = "defaulted"                  # Recovery initiated
    RECOVERED = "recovered"                  # Asset repossessed
    REJECTED = "rejected"                    # Application refused


PRE_ACTIVE_STATUSES = (
    LoanStatus.PENDING,
    LoanStatus.UNDER_REVIEW,
    LoanStatus.AWAITING_ASSET,
    LoanStatus.AWAITING_APPROVAL,
)

# Loans in these states hold their asset in status ``assigned``
ASSET_HOLDING_STATUSES = PRE_ACTIVE_STATUSES + (LoanStatus.ACTIVE, LoanStatus.DEFAULTED)

TERMINAL_STATUSES = (LoanStatus.COMPLETED, LoanStatus.RECOVERED, LoanStatus.REJECTED)

_APPLICANT_FIELDS = (
    "full_name", "phone", "address", "district", "national_id", "phone_secondary",
    "email", "village", "next_of_kin_name", "next_of_kin_phone",
    "next_of_kin_relationship", "occupation", "monthly_income", "latitude", "longitude",
)


@dataclass(frozen=True)
class CatalogProduct:
    """Product catalog entry an application is made against"""
    product_id: str
    name: str
    asset_type: AssetType
    brand: str
    model: str
    price: Decimal
    down_payment_percent: Optional[Decimal] = None
    interest_rate: Optional[Decimal] = None
    loan_duration_months: Optional[int] = None


@dataclass
class Loan(StorageRecord):
    """Asset financing loan"""
    loan_number: str
    client_id: str
    asset_id: str
    principal_amount: Decimal
    interest_rate: Decimal
    total_amount: Decimal
    down_payment: Decimal
    loan_balance: Decimal
    repayment_frequency: RepaymentFrequency
    duration_months: int
    installment_amount: Decimal
    total_installments: int
    status: LoanStatus = LoanStatus.PENDING
    branch_id: Optional[str] = None
    inquiry_id: Optional[str] = None

    # Repayment progress
    installments_paid: int = 0
    missed_payments: int = 0
    consecutive_missed: int = 0
    missed_through_installment: int = 0

    # Dates
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    next_payment_date: Optional[date] = None
    last_payment_date: Optional[datetime] = None

    # Staff actions
    created_by: Optional[str] = None
    approved_by: Optional[str] = None
    approved_at: Optional[datetime] = None
    rejected_by: Optional[str] = None
    rejected_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None
    recovery_initiated_at: Optional[datetime] = None
    recovery_initiated_by: Optional[str] = None
    recovery_notes: Optional[str] = None
    recovered_at: Optional[datetime] = None
    recovered_by: Optional[str] = None
    deleted_at: Optional[datetime] = None

    @property
    def is_active(self) -> bool:
        return self.status == LoanStatus.ACTIVE

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def holds_asset(self) -> bool:
        return self.status in ASSET_HOLDING_STATUSES


def raise_consistency_error(message: str, **context) -> None:
    """Log an invariant violation at CRITICAL and raise"""
    logger.critical(message, extra={"extra": context} if context else None)
    raise ConsistencyError(message)


class LoanManager:
    """
    Manages loan origination from application through activation
    """

    def __init__(
        self,
        storage: StorageInterface,
        audit_trail: AuditTrail,
        asset_manager: AssetManager,
        client_manager: ClientManager,
        inquiry_manager: InquiryManager,
        sequences: SequenceGenerator,
        loan_number_prefix: str = "LN",
        default_interest_rate: Union[Decimal, str] = Decimal('30'),
        default_duration_months: int = 12
    ):
        self.storage = storage
        self.audit_trail = audit_trail
        self.asset_manager = asset_manager
        self.client_manager = client_manager
        self.inquiry_manager = inquiry_manager
        self.sequences = sequences
        self.loan_number_prefix = loan_number_prefix
        self.default_interest_rate = to_decimal(default_interest_rate, "default_interest_rate")
        self.default_duration_months = default_duration_months

        self.loans_table = LOANS_TABLE
        self.schedule_table = SCHEDULE_TABLE

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    def quote_for_product(
        self,
        product: CatalogProduct,
        repayment_frequency: Union[RepaymentFrequency, str],
        down_payment=None
    ) -> LoanQuote:
        """
        Calculate loan terms for a catalog product

        The down payment defaults to the product's percentage of price, and
        rate and duration fall back to the configured defaults.
        """
        if down_payment is None:
            percent = product.down_payment_percent or Decimal('0')
            down_payment = down_payment_from_percent(product.price, percent)
        return calculate_loan(
            price=product.price,
            down_payment=down_payment,
            interest_rate_percent=product.interest_rate or self.default_interest_rate,
            duration_months=product.loan_duration_months or self.default_duration_months,
            frequency=repayment_frequency
        )

    def create_application(
        self,
        applicant: Dict[str, Any],
        product: CatalogProduct,
        repayment_frequency: Union[RepaymentFrequency, str],
        created_by: str,
        down_payment=None,
        branch_id: Optional[str] = None,
        inquiry_id: Optional[str] = None
    ) -> Loan:
        """
        Create asset, client and pending loan in one atomic unit

        The asset is created ``assigned`` with a placeholder chassis number.
        When ``inquiry_id`` is given the inquiry is marked ``converted`` in the
        same unit.

        Args:
            applicant: Client fields (full_name, phone, address, district, ...)
            product: Catalog product being financed
            repayment_frequency: daily or weekly
            created_by: Staff id creating the application
            down_payment: Upfront payment; defaults to the product percentage
            branch_id: Branch the loan is booked in
            inquiry_id: Inquiry being converted, if any

        Returns:
            The pending Loan

        Raises:
            ValidationError: If applicant fields or loan terms are invalid
            PreconditionError: If the inquiry is already converted or closed
        """
        unknown = set(applicant) - set(_APPLICANT_FIELDS)
        if unknown:
            raise ValidationError(f"Unknown applicant fields: {', '.join(sorted(unknown))}")
        quote = self.quote_for_product(product, repayment_frequency, down_payment)

        with self.storage.atomic():
            asset = self.asset_manager.create_assigned_asset(
                asset_type=product.asset_type,
                brand=product.brand,
                model=product.model,
                registered_by=created_by,
                price=product.price,
                branch_id=branch_id,
                product_id=product.product_id,
                notes=f"Created from product catalog: {product.name}"
            )
            client = self.client_manager.create_client(
                registered_by=created_by,
                branch_id=branch_id,
                asset_id=asset.id,
                **applicant
            )
            loan = self._create_loan_record(
                client_id=client.id,
                asset_id=asset.id,
                quote=quote,
                created_by=created_by,
                branch_id=branch_id,
                inquiry_id=inquiry_id
            )
            if inquiry_id:
                self.inquiry_manager.mark_converted(inquiry_id, created_by)

        log_action(logger, "info", f"Loan application {loan.loan_number} created",
                   user_id=created_by, action="create_application", resource=loan.id,
                   extra={"client_id": client.id, "asset_id": asset.id})
        return loan

    def create_loan(
        self,
        client_id: str,
        asset_id: str,
        repayment_frequency: Union[RepaymentFrequency, str],
        created_by: str,
        down_payment=0,
        price=None,
        interest_rate=None,
        duration_months: Optional[int] = None,
        branch_id: Optional[str] = None
    ) -> Loan:
        """
        Create a pending loan for an existing client and an available asset

        The asset moves ``available -> assigned`` and is linked to the client
        in the same atomic unit. Price defaults to the asset's selling price.

        Raises:
            NotFoundError: If client or asset does not exist
            PreconditionError: If the asset is not available or the client
                already holds an asset
            ValidationError: If loan terms are invalid
        """
        client = self.client_manager.require_client(client_id)
        asset = self.asset_manager.require_asset(asset_id)
        if price is None:
            price = asset.selling_price
        if price is None:
            raise ValidationError(f"Asset {asset_id} has no selling price; give a price")

        quote = calculate_loan(
            price=price,
            down_payment=down_payment,
            interest_rate_percent=self.default_interest_rate if interest_rate is None else interest_rate,
            duration_months=duration_months or self.default_duration_months,
            frequency=repayment_frequency
        )

        with self.storage.atomic():
            if self.asset_manager.transition(asset_id, AssetStatus.AVAILABLE,
                                             AssetStatus.ASSIGNED) is None:
                raise PreconditionError(f"Asset {asset_id} is not available")
            self.client_manager.link_asset(client.id, asset_id)
            loan = self._create_loan_record(
                client_id=client.id,
                asset_id=asset_id,
                quote=quote,
                created_by=created_by,
                branch_id=branch_id or client.branch_id
            )

        log_action(logger, "info", f"Loan {loan.loan_number} created",
                   user_id=created_by, action="create_loan", resource=loan.id)
        return loan

    def _create_loan_record(
        self,
        client_id: str,
        asset_id: str,
        quote: LoanQuote,
        created_by: str,
        branch_id: Optional[str] = None,
        inquiry_id: Optional[str] = None
    ) -> Loan:
        now = datetime.now(timezone.utc)
        loan = Loan(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            loan_number=self.sequences.next_value(self.loan_number_prefix),
            client_id=client_id,
            asset_id=asset_id,
            principal_amount=quote.loan_amount,
            interest_rate=quote.interest_rate,
            total_amount=quote.total_amount,
            down_payment=quote.down_payment,
            loan_balance=quote.total_amount,
            repayment_frequency=quote.frequency,
            duration_months=quote.duration_months,
            installment_amount=quote.installment_amount,
            total_installments=quote.total_installments,
            status=LoanStatus.PENDING,
            branch_id=branch_id,
            inquiry_id=inquiry_id,
            created_by=created_by
        )
        self.storage.save(self.loans_table, loan.id, loan.to_dict())

        self.audit_trail.log_event(
            event_type=AuditEventType.LOAN_APPLICATION_CREATED,
            entity_type="loan",
            entity_id=loan.id,
            metadata={
                "loan_number": loan.loan_number,
                "client_id": client_id,
                "asset_id": asset_id,
                "principal_amount": str(quote.loan_amount),
                "total_amount": str(quote.total_amount),
                "installment_amount": str(quote.installment_amount),
                "total_installments": quote.total_installments,
                "repayment_frequency": quote.frequency.value
            },
            user_id=created_by
        )
        return loan

    # ------------------------------------------------------------------
    # Review stages
    # ------------------------------------------------------------------

    def start_review(self, loan_id: str, reviewed_by: str) -> Loan:
        """Move a pending loan to ``under_review``"""
        return self.transition(loan_id, LoanStatus.PENDING, LoanStatus.UNDER_REVIEW,
                                reviewed_by)

    def complete_kyc_review(self, loan_id: str, reviewed_by: str) -> Loan:
        """
        Finish KYC review

        The loan waits for the asset when the chassis or registration number
        is still missing, otherwise it goes straight to approval.
        """
        with self.storage.atomic():
            loan = self.require_loan(loan_id)
            if loan.status != LoanStatus.UNDER_REVIEW:
                raise PreconditionError(
                    f"Loan {loan_id} is {loan.status.value}, expected under_review"
                )
            if self.asset_manager.require_asset(loan.asset_id).has_identifiers:
                return self.transition(loan_id, LoanStatus.UNDER_REVIEW,
                                       LoanStatus.AWAITING_APPROVAL, reviewed_by)

            waiting = self.transition(loan_id, LoanStatus.UNDER_REVIEW,
                                      LoanStatus.AWAITING_ASSET, reviewed_by)
            # Identifiers recorded after the read found no loan awaiting them
            if self.asset_manager.require_asset(loan.asset_id).has_identifiers:
                return self.transition(loan_id, LoanStatus.AWAITING_ASSET,
                                       LoanStatus.AWAITING_APPROVAL, reviewed_by)
            return waiting

    def assign_asset_identifiers(
        self,
        asset_id: str,
        chassis_number: str,
        registration_number: str,
        recorded_by: str,
        engine_number: Optional[str] = None,
        gps_device_id: Optional[str] = None
    ) -> Tuple[Asset, Optional[Loan]]:
        """
        Record an asset's identifiers and release a loan waiting on them

        A loan holding the asset in ``awaiting_asset`` moves to
        ``awaiting_approval`` in the same atomic unit.

        Returns:
            The updated asset and the advanced loan (None if no loan was waiting)
        """
        advanced = None
        with self.storage.atomic():
            asset = self.asset_manager.update_identifiers(
                asset_id,
                chassis_number=chassis_number,
                registration_number=registration_number,
                recorded_by=recorded_by,
                engine_number=engine_number,
                gps_device_id=gps_device_id
            )
            waiting = self.storage.find(self.loans_table, {
                "asset_id": asset_id,
                "status": LoanStatus.AWAITING_ASSET
            })
            for data in waiting:
                advanced = self.transition(data['id'], LoanStatus.AWAITING_ASSET,
                                            LoanStatus.AWAITING_APPROVAL, recorded_by)
        return asset, advanced

    def approve_loan(self, loan_id: str, approved_by: str,
                     start_date: Optional[date] = None) -> Loan:
        """
        Approve a loan and activate it

        Generates and persists the repayment schedule in the same atomic unit
        as the ``awaiting_approval -> active`` transition.

        Args:
            loan_id: Loan to approve
            approved_by: Approving staff id (required)
            start_date: Repayment start date, defaults to today

        Returns:
            The active Loan

        Raises:
            ValidationError: If no approver is given
            PreconditionError: If the loan is not awaiting approval
        """
        if not approved_by:
            raise ValidationError("approved_by is required")

        with self.storage.atomic():
            loan = self.require_loan(loan_id)
            if loan.status != LoanStatus.AWAITING_APPROVAL:
                raise PreconditionError(
                    f"Loan {loan_id} is {loan.status.value}, expected awaiting_approval"
                )

            start_date = start_date or date.today()
            items = generate_schedule(
                loan_id=loan.id,
                installment_amount=loan.installment_amount,
                total_installments=loan.total_installments,
                frequency=loan.repayment_frequency,
                start_date=start_date
            )

            activated = self.transition(
                loan_id,
                LoanStatus.AWAITING_APPROVAL,
                LoanStatus.ACTIVE,
                approved_by,
                changes={
                    "approved_by": approved_by,
                    "approved_at": datetime.now(timezone.utc),
                    "start_date": start_date,
                    "end_date": items[-1].due_date,
                    "next_payment_date": items[0].due_date
                },
                event_type=AuditEventType.LOAN_APPROVED
            )
            for item in items:
                self.storage.save(self.schedule_table, item.id, item.to_dict())

        return activated

    def reject_loan(self, loan_id: str, rejected_by: str, reason: Optional[str] = None) -> Loan:
        """
        Reject a loan that has not been activated

        The asset returns to ``available`` and the client's link to it is
        cleared, all in one atomic unit.

        Raises:
            PreconditionError: If the loan is active or terminal
            ConsistencyError: If the loan's asset is not ``assigned``
        """
        with self.storage.atomic():
            loan = self.require_loan(loan_id)
            if loan.status not in PRE_ACTIVE_STATUSES:
                raise PreconditionError(
                    f"Loan {loan_id} is {loan.status.value} and cannot be rejected"
                )

            rejected = self.transition(
                loan_id,
                loan.status,
                LoanStatus.REJECTED,
                rejected_by,
                changes={
                    "rejected_by": rejected_by,
                    "rejected_at": datetime.now(timezone.utc),
                    "rejection_reason": reason
                },
                event_type=AuditEventType.LOAN_REJECTED
            )

            if self.asset_manager.transition(loan.asset_id, AssetStatus.ASSIGNED,
                                             AssetStatus.AVAILABLE) is None:
                raise_consistency_error(
                    f"Asset {loan.asset_id} of rejected loan {loan_id} is not assigned",
                    loan_id=loan_id, asset_id=loan.asset_id
                )
            if not self.client_manager.clear_asset_link(loan.client_id, loan.asset_id):
                logger.warning("Client %s was not linked to asset %s", loan.client_id, loan.asset_id)

        return rejected

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_loan(self, loan_id: str) -> Optional[Loan]:
        """Get loan by ID"""
        data = self.storage.load(self.loans_table, loan_id)
        if not data or data.get('deleted_at'):
            return None
        return Loan.from_dict(data)

    def require_loan(self, loan_id: str) -> Loan:
        loan = self.get_loan(loan_id)
        if loan is None:
            raise NotFoundError("loan", loan_id)
        return loan

    def list_loans(self, status: Optional[LoanStatus] = None) -> List[Loan]:
        """List loans, optionally by status, newest first"""
        filters = {"status": status} if status else {}
        loans = [
            Loan.from_dict(data)
            for data in self.storage.find(self.loans_table, filters)
            if not data.get('deleted_at')
        ]
        loans.sort(key=lambda l: l.created_at, reverse=True)
        return loans

    def get_client_loans(self, client_id: str) -> List[Loan]:
        return [
            Loan.from_dict(data)
            for data in self.storage.find(self.loans_table, {"client_id": client_id})
            if not data.get('deleted_at')
        ]

    def get_schedule(self, loan_id: str) -> List[RepaymentScheduleItem]:
        """Repayment schedule of a loan ordered by installment number"""
        items = [
            RepaymentScheduleItem.from_dict(data)
            for data in self.storage.find(self.schedule_table, {"loan_id": loan_id})
        ]
        items.sort(key=lambda item: item.installment_number)
        return items

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def transition(
        self,
        loan_id: str,
        expected: Union[LoanStatus, Iterable[LoanStatus]],
        new_status: LoanStatus,
        user_id: str,
        changes: Optional[Dict[str, Any]] = None,
        event_type: AuditEventType = AuditEventType.LOAN_STAGE_CHANGED
    ) -> Loan:
        """
        Conditionally move a loan to ``new_status``

        Raises:
            NotFoundError: If the loan does not exist
            PreconditionError: If the loan is not in an expected status
        """
        if isinstance(expected, LoanStatus):
            expected_status: Any = expected
            expected_names = expected.value
        else:
            expected_status = tuple(expected)
            expected_names = "|".join(s.value for s in expected_status)

        guard = {"status": expected_status}
        payload = dict(changes or {})
        payload["status"] = new_status

        updated = self.storage.compare_and_set(self.loans_table, loan_id, guard, payload)
        if updated is None:
            current = self.storage.load(self.loans_table, loan_id)
            if current is None:
                raise NotFoundError("loan", loan_id)
            logger.warning("Loan %s transition to %s refused: status is %s",
                           loan_id, new_status.value, current.get('status'))
            raise PreconditionError(
                f"Loan {loan_id} is {current.get('status')}, expected {expected_names}"
            )

        self.audit_trail.log_event(
            event_type=event_type,
            entity_type="loan",
            entity_id=loan_id,
            metadata={"from": expected_names, "to": new_status.value},
            user_id=user_id
        )
        log_action(logger, "info", f"Loan {loan_id} {expected_names} -> {new_status.value}",
                   user_id=user_id, action=event_type.value, resource=loan_id)
        return Loan.from_dict(updated)
