"""
Back Office Facade

Wires storage, audit trail, sequences and the domain managers together and
exposes every operation with the acting staff member as first argument. Each
operation checks the actor's capability before delegating.
"""

import logging
from datetime import date, datetime
from typing import Any, Dict, List, Optional

from .assets import Asset, AssetManager, AssetStatus
from .audit import AuditTrail
from .calculator import LoanQuote, calculate_loan
from .clients import Client, ClientManager
from .collections import CollectionsManager, MissedPaymentReconciler
from .config import AssetFinanceConfig, get_config
from .inquiries import Inquiry, InquiryManager, InquiryStatus, SaleType
from .loans import CatalogProduct, Loan, LoanManager, LoanStatus
from .payments import Payment, PaymentEngine, PaymentStatus
from .rbac import AccessPolicy, Actor, Permission
from .schedule import RepaymentScheduleItem
from .sequences import SequenceGenerator, StorageSequenceGenerator
from .storage import StorageInterface, create_storage
from .validation import Violation, find_consistency_violations


logger = logging.getLogger(__name__)


class BackOffice:
    """Asset financing back office with all components initialized"""

    def __init__(
        self,
        storage: Optional[StorageInterface] = None,
        config: Optional[AssetFinanceConfig] = None,
        policy: Optional[AccessPolicy] = None,
        sequences: Optional[SequenceGenerator] = None
    ):
        self.config = config or get_config()
        self.storage = storage or create_storage(self.config.database_url)
        self.policy = policy or AccessPolicy()
        self.sequences = sequences or StorageSequenceGenerator(
            self.storage, padding=self.config.sequence_padding
        )

        self.audit_trail = AuditTrail(self.storage, enabled=self.config.enable_audit_logging)
        self.asset_manager = AssetManager(self.storage, self.audit_trail)
        self.client_manager = ClientManager(self.storage, self.audit_trail)
        self.inquiry_manager = InquiryManager(self.storage, self.audit_trail)
        self.loan_manager = LoanManager(
            self.storage, self.audit_trail, self.asset_manager, self.client_manager,
            self.inquiry_manager, self.sequences,
            loan_number_prefix=self.config.loan_number_prefix,
            default_interest_rate=self.config.default_interest_rate,
            default_duration_months=self.config.default_duration_months
        )
        self.payment_engine = PaymentEngine(
            self.storage, self.audit_trail, self.loan_manager, self.asset_manager,
            self.sequences, payment_reference_prefix=self.config.payment_reference_prefix
        )
        self.collections_manager = CollectionsManager(
            self.storage, self.audit_trail, self.loan_manager, self.asset_manager,
            self.client_manager,
            at_risk_threshold=self.config.at_risk_threshold,
            recovery_threshold=self.config.recovery_threshold
        )
        self.reconciler = MissedPaymentReconciler(self.storage, self.audit_trail, self.loan_manager)

    def _require(self, actor: Actor, permission: Permission) -> str:
        self.policy.require(actor, permission)
        return actor.staff_id

    # Calculator

    def quote(self, price, down_payment, interest_rate=None, duration_months=None,
              frequency="daily") -> LoanQuote:
        """Loan terms preview; pure, no capability needed"""
        return calculate_loan(
            price=price,
            down_payment=down_payment,
            interest_rate_percent=self.config.default_interest_rate if interest_rate is None else interest_rate,
            duration_months=duration_months or self.config.default_duration_months,
            frequency=frequency
        )

    # Inquiries

    def submit_inquiry(self, full_name: str, phone: str, actor: Optional[Actor] = None,
                       **details) -> Inquiry:
        """Public contact form submission; an actor is optional"""
        return self.inquiry_manager.submit_inquiry(
            full_name, phone, submitted_by=actor.staff_id if actor else None, **details
        )

    def list_inquiries(self, actor: Actor, status: Optional[InquiryStatus] = None,
                       sale_type: Optional[SaleType] = None) -> List[Inquiry]:
        self._require(actor, Permission.MANAGE_INQUIRIES)
        return self.inquiry_manager.list_inquiries(status, sale_type)

    def update_inquiry(self, actor: Actor, inquiry_id: str, **fields) -> Inquiry:
        staff_id = self._require(actor, Permission.MANAGE_INQUIRIES)
        return self.inquiry_manager.update_inquiry(inquiry_id, staff_id, **fields)

    def advance_inquiry(self, actor: Actor, inquiry_id: str) -> Inquiry:
        staff_id = self._require(actor, Permission.MANAGE_INQUIRIES)
        return self.inquiry_manager.advance_inquiry(inquiry_id, staff_id)

    def close_inquiry(self, actor: Actor, inquiry_id: str, reason: Optional[str] = None) -> Inquiry:
        staff_id = self._require(actor, Permission.MANAGE_INQUIRIES)
        return self.inquiry_manager.close_inquiry(inquiry_id, staff_id, reason)

    def complete_cash_sale(self, actor: Actor, inquiry_id: str) -> Inquiry:
        staff_id = self._require(actor, Permission.COMPLETE_CASH_SALE)
        return self.inquiry_manager.complete_cash_sale(inquiry_id, staff_id)

    # Clients and assets

    def create_client(self, actor: Actor, **details) -> Client:
        staff_id = self._require(actor, Permission.MANAGE_CLIENTS)
        return self.client_manager.create_client(registered_by=staff_id, **details)

    def delete_client(self, actor: Actor, client_id: str) -> Client:
        staff_id = self._require(actor, Permission.MANAGE_CLIENTS)
        return self.client_manager.delete_client(client_id, staff_id)

    def register_asset(self, actor: Actor, **details) -> Asset:
        staff_id = self._require(actor, Permission.MANAGE_ASSETS)
        return self.asset_manager.register_asset(registered_by=staff_id, **details)

    def list_assets(self, actor: Actor, status: Optional[AssetStatus] = None) -> List[Asset]:
        self._require(actor, Permission.VIEW_LOANS)
        return self.asset_manager.list_assets(status)

    def assign_asset_identifiers(self, actor: Actor, asset_id: str, chassis_number: str,
                                 registration_number: str, engine_number: Optional[str] = None,
                                 gps_device_id: Optional[str] = None):
        staff_id = self._require(actor, Permission.RECORD_ASSET_IDENTIFIERS)
        return self.loan_manager.assign_asset_identifiers(
            asset_id, chassis_number, registration_number, staff_id,
            engine_number=engine_number, gps_device_id=gps_device_id
        )

    # Origination

    def create_application(self, actor: Actor, applicant: Dict[str, Any],
                           product: CatalogProduct, repayment_frequency,
                           down_payment=None, branch_id: Optional[str] = None,
                           inquiry_id: Optional[str] = None) -> Loan:
        staff_id = self._require(actor, Permission.CREATE_APPLICATION)
        return self.loan_manager.create_application(
            applicant, product, repayment_frequency, staff_id,
            down_payment=down_payment, branch_id=branch_id, inquiry_id=inquiry_id
        )

    def create_loan(self, actor: Actor, client_id: str, asset_id: str, repayment_frequency,
                    **terms) -> Loan:
        staff_id = self._require(actor, Permission.CREATE_APPLICATION)
        return self.loan_manager.create_loan(client_id, asset_id, repayment_frequency,
                                             staff_id, **terms)

    def start_review(self, actor: Actor, loan_id: str) -> Loan:
        staff_id = self._require(actor, Permission.REVIEW_LOAN)
        return self.loan_manager.start_review(loan_id, staff_id)

    def complete_kyc_review(self, actor: Actor, loan_id: str) -> Loan:
        staff_id = self._require(actor, Permission.REVIEW_LOAN)
        return self.loan_manager.complete_kyc_review(loan_id, staff_id)

    def approve_loan(self, actor: Actor, loan_id: str, start_date: Optional[date] = None) -> Loan:
        staff_id = self._require(actor, Permission.APPROVE_LOAN)
        return self.loan_manager.approve_loan(loan_id, staff_id, start_date)

    def reject_loan(self, actor: Actor, loan_id: str, reason: Optional[str] = None) -> Loan:
        staff_id = self._require(actor, Permission.REJECT_LOAN)
        return self.loan_manager.reject_loan(loan_id, staff_id, reason)

    def get_loan(self, actor: Actor, loan_id: str) -> Loan:
        self._require(actor, Permission.VIEW_LOANS)
        return self.loan_manager.require_loan(loan_id)

    def list_loans(self, actor: Actor, status: Optional[LoanStatus] = None) -> List[Loan]:
        self._require(actor, Permission.VIEW_LOANS)
        return self.loan_manager.list_loans(status)

    def get_schedule(self, actor: Actor, loan_id: str) -> List[RepaymentScheduleItem]:
        self._require(actor, Permission.VIEW_LOANS)
        self.loan_manager.require_loan(loan_id)
        return self.loan_manager.get_schedule(loan_id)

    # Payments

    def record_payment(self, actor: Actor, loan_id: str, amount, payment_method,
                       transaction_id: Optional[str] = None, phone_number: Optional[str] = None,
                       received_at: Optional[datetime] = None) -> Payment:
        staff_id = self._require(actor, Permission.RECORD_PAYMENT)
        return self.payment_engine.record_payment(
            loan_id, amount, payment_method, staff_id,
            transaction_id=transaction_id, phone_number=phone_number, received_at=received_at
        )

    def confirm_payment(self, actor: Actor, payment_id: str) -> Payment:
        staff_id = self._require(actor, Permission.CONFIRM_PAYMENT)
        return self.payment_engine.confirm_payment(payment_id, staff_id)

    def reject_payment(self, actor: Actor, payment_id: str, reason: Optional[str] = None) -> Payment:
        staff_id = self._require(actor, Permission.REJECT_PAYMENT)
        return self.payment_engine.reject_payment(payment_id, staff_id, reason)

    def reconcile_payment(self, actor: Actor, payment_id: str, notes: Optional[str] = None) -> Payment:
        staff_id = self._require(actor, Permission.RECONCILE_PAYMENT)
        return self.payment_engine.reconcile_payment(payment_id, staff_id, notes)

    def list_payments(self, actor: Actor, loan_id: Optional[str] = None,
                      status: Optional[PaymentStatus] = None) -> List[Payment]:
        self._require(actor, Permission.VIEW_LOANS)
        return self.payment_engine.list_payments(loan_id, status)

    # Delinquency and recovery

    def at_risk_loans(self, actor: Actor) -> List[Loan]:
        self._require(actor, Permission.VIEW_COLLECTIONS)
        return self.collections_manager.at_risk_loans()

    def recovery_candidates(self, actor: Actor) -> List[Loan]:
        self._require(actor, Permission.VIEW_COLLECTIONS)
        return self.collections_manager.recovery_candidates()

    def collection_summary(self, actor: Actor, as_of: Optional[date] = None) -> Dict[str, Any]:
        self._require(actor, Permission.VIEW_COLLECTIONS)
        return self.collections_manager.get_collection_summary(as_of)

    def initiate_recovery(self, actor: Actor, loan_id: str, notes: Optional[str] = None) -> Loan:
        staff_id = self._require(actor, Permission.INITIATE_RECOVERY)
        return self.collections_manager.initiate_recovery(loan_id, staff_id, notes)

    def mark_recovered(self, actor: Actor, loan_id: str) -> Loan:
        staff_id = self._require(actor, Permission.MARK_RECOVERED)
        return self.collections_manager.mark_recovered(loan_id, staff_id)

    def release_asset(self, actor: Actor, asset_id: str) -> Asset:
        staff_id = self._require(actor, Permission.RELEASE_ASSET)
        return self.collections_manager.release_asset(asset_id, staff_id)

    # Jobs

    def reconcile_missed_payments(self, actor: Actor, as_of: Optional[date] = None) -> Dict[str, int]:
        self._require(actor, Permission.RUN_JOBS)
        return self.reconciler.run(as_of)

    def check_consistency(self, actor: Actor) -> List[Violation]:
        self._require(actor, Permission.RUN_JOBS)
        return find_consistency_violations(self.storage)

    def verify_audit_trail(self, actor: Actor) -> Dict[str, Any]:
        self._require(actor, Permission.RUN_JOBS)
        return self.audit_trail.verify_integrity()

    def close(self) -> None:
        self.storage.close()
