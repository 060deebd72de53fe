"""
Inquiry Module

Sales pipeline: ``new -> contacted -> qualified -> converted``, with ``closed``
reachable from any non-terminal status. A converted cash sale is closed by
operations once the unit is handed over.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from .audit import AuditTrail, AuditEventType
from .exceptions import NotFoundError, PreconditionError, ValidationError
from .logging_config import log_action
from .storage import StorageInterface, StorageRecord


logger = logging.getLogger(__name__)

INQUIRIES_TABLE = "inquiries"


class InquiryStatus(Enum):
    NEW = "new"
    CONTACTED = "contacted"
    QUALIFIED = "qualified"
    CONVERTED = "converted"
    CLOSED = "closed"

    @property
    def is_terminal(self) -> bool:
        return self in (InquiryStatus.CONVERTED, InquiryStatus.CLOSED)


class SaleType(Enum):
    CASH = "cash"
    LOAN = "loan"


# Forward steps of the pipeline; CLOSED is handled separately
_NEXT_STATUS = {
    InquiryStatus.NEW: InquiryStatus.CONTACTED,
    InquiryStatus.CONTACTED: InquiryStatus.QUALIFIED,
    InquiryStatus.QUALIFIED: InquiryStatus.CONVERTED,
}

_EDITABLE_FIELDS = (
    "full_name", "phone", "email", "district", "occupation",
    "monthly_income", "product_interest", "message", "notes", "assigned_to",
)


@dataclass
class Inquiry(StorageRecord):
    """Prospective customer interest"""
    full_name: str
    phone: str
    sale_type: SaleType = SaleType.LOAN
    status: InquiryStatus = InquiryStatus.NEW
    email: Optional[str] = None
    district: Optional[str] = None
    occupation: Optional[str] = None
    monthly_income: Optional[str] = None
    product_interest: Optional[str] = None
    message: Optional[str] = None
    notes: Optional[str] = None
    assigned_to: Optional[str] = None
    followed_up_at: Optional[datetime] = None
    followed_up_by: Optional[str] = None


def _append_note(existing: Optional[str], note: str) -> str:
    return f"{existing or ''}\n{note}".strip()


class InquiryManager:
    """
    Manages the sales inquiry pipeline
    """

    def __init__(self, storage: StorageInterface, audit_trail: AuditTrail):
        self.storage = storage
        self.audit_trail = audit_trail
        self.table_name = INQUIRIES_TABLE

    def submit_inquiry(
        self,
        full_name: str,
        phone: str,
        sale_type: Union[SaleType, str] = SaleType.LOAN,
        email: Optional[str] = None,
        district: Optional[str] = None,
        occupation: Optional[str] = None,
        monthly_income: Optional[str] = None,
        product_interest: Optional[str] = None,
        message: Optional[str] = None,
        submitted_by: Optional[str] = None
    ) -> Inquiry:
        """
        Record a new inquiry in status ``new``

        Raises:
            ValidationError: If name or phone is missing or sale type is unknown
        """
        if not full_name or len(full_name.strip()) < 2:
            raise ValidationError("full_name must be at least 2 characters")
        if not phone or not phone.strip():
            raise ValidationError("phone is required")
        try:
            sale_type = SaleType(sale_type) if not isinstance(sale_type, SaleType) else sale_type
        except ValueError:
            raise ValidationError(f"Unknown sale type: {sale_type}") from None

        now = datetime.now(timezone.utc)
        inquiry = Inquiry(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            full_name=full_name.strip(),
            phone=phone.strip(),
            sale_type=sale_type,
            email=email,
            district=district,
            occupation=occupation,
            monthly_income=monthly_income,
            product_interest=product_interest,
            message=message
        )
        self.storage.save(self.table_name, inquiry.id, inquiry.to_dict())

        self.audit_trail.log_event(
            event_type=AuditEventType.INQUIRY_SUBMITTED,
            entity_type="inquiry",
            entity_id=inquiry.id,
            metadata={"sale_type": sale_type.value, "product_interest": product_interest},
            user_id=submitted_by
        )
        log_action(logger, "info", f"Inquiry {inquiry.id} submitted",
                   user_id=submitted_by, action="submit_inquiry", resource=inquiry.id)
        return inquiry

    def get_inquiry(self, inquiry_id: str) -> Optional[Inquiry]:
        data = self.storage.load(self.table_name, inquiry_id)
        return Inquiry.from_dict(data) if data else None

    def require_inquiry(self, inquiry_id: str) -> Inquiry:
        inquiry = self.get_inquiry(inquiry_id)
        if inquiry is None:
            raise NotFoundError("inquiry", inquiry_id)
        return inquiry

    def list_inquiries(
        self,
        status: Optional[InquiryStatus] = None,
        sale_type: Optional[SaleType] = None
    ) -> List[Inquiry]:
        """List inquiries, newest first"""
        filters: Dict[str, Any] = {}
        if status:
            filters["status"] = status
        if sale_type:
            filters["sale_type"] = sale_type
        inquiries = [Inquiry.from_dict(d) for d in self.storage.find(self.table_name, filters)]
        inquiries.sort(key=lambda i: i.created_at, reverse=True)
        return inquiries

    def update_inquiry(self, inquiry_id: str, updated_by: str, **fields) -> Inquiry:
        """
        Edit contact and follow-up fields of a non-terminal inquiry

        Raises:
            ValidationError: If an unknown field is given
            PreconditionError: If the inquiry is converted or closed
        """
        unknown = set(fields) - set(_EDITABLE_FIELDS)
        if unknown:
            raise ValidationError(f"Cannot edit inquiry fields: {', '.join(sorted(unknown))}")
        if "full_name" in fields and (not fields["full_name"] or len(fields["full_name"].strip()) < 2):
            raise ValidationError("full_name must be at least 2 characters")

        inquiry = self.require_inquiry(inquiry_id)
        open_statuses = tuple(s for s in InquiryStatus if not s.is_terminal)
        updated = self.storage.compare_and_set(
            self.table_name, inquiry_id, {"status": open_statuses}, fields
        )
        if updated is None:
            raise PreconditionError(
                f"Inquiry {inquiry_id} is {inquiry.status.value} and can no longer be edited"
            )

        self.audit_trail.log_event(
            event_type=AuditEventType.INQUIRY_UPDATED,
            entity_type="inquiry",
            entity_id=inquiry_id,
            metadata={"fields": sorted(fields)},
            user_id=updated_by
        )
        return Inquiry.from_dict(updated)

    def advance_inquiry(self, inquiry_id: str, advanced_by: str) -> Inquiry:
        """
        Move an inquiry one step along the pipeline

        ``new -> contacted`` stamps ``followed_up_at/by``. ``qualified -> converted``
        is only allowed here for cash sales; loan inquiries are converted by
        creating the loan application.

        Raises:
            PreconditionError: If there is no next step
        """
        inquiry = self.require_inquiry(inquiry_id)
        target = _NEXT_STATUS.get(inquiry.status)
        if target is None:
            raise PreconditionError(f"Inquiry {inquiry_id} is {inquiry.status.value}")
        if target is InquiryStatus.CONVERTED and inquiry.sale_type is not SaleType.CASH:
            raise PreconditionError(
                f"Loan inquiry {inquiry_id} is converted by creating a loan application"
            )

        changes: Dict[str, Any] = {"status": target}
        if target is InquiryStatus.CONTACTED:
            changes["followed_up_at"] = datetime.now(timezone.utc)
            changes["followed_up_by"] = advanced_by
        return self._transition(inquiry_id, inquiry.status, changes, advanced_by)

    def close_inquiry(self, inquiry_id: str, closed_by: str, reason: Optional[str] = None) -> Inquiry:
        """
        Close a non-terminal inquiry

        Raises:
            PreconditionError: If the inquiry is already converted or closed
        """
        inquiry = self.require_inquiry(inquiry_id)
        if inquiry.status.is_terminal:
            raise PreconditionError(f"Inquiry {inquiry_id} is already {inquiry.status.value}")

        changes: Dict[str, Any] = {"status": InquiryStatus.CLOSED}
        if reason:
            changes["notes"] = _append_note(inquiry.notes, reason)
        return self._transition(inquiry_id, inquiry.status, changes, closed_by)

    def mark_converted(self, inquiry_id: str, converted_by: str) -> Inquiry:
        """
        Convert an open inquiry as part of a loan application

        Raises:
            PreconditionError: If the inquiry is converted or closed
        """
        inquiry = self.require_inquiry(inquiry_id)
        if inquiry.status.is_terminal:
            raise PreconditionError(f"Inquiry {inquiry_id} is already {inquiry.status.value}")
        return self._transition(
            inquiry_id, inquiry.status, {"status": InquiryStatus.CONVERTED}, converted_by
        )

    def complete_cash_sale(self, inquiry_id: str, completed_by: str,
                           on_date: Optional[date] = None) -> Inquiry:
        """
        Close a converted cash sale once operations has handed over the unit

        Raises:
            PreconditionError: If the inquiry is not a converted cash sale
        """
        inquiry = self.require_inquiry(inquiry_id)
        if inquiry.sale_type is not SaleType.CASH or inquiry.status is not InquiryStatus.CONVERTED:
            raise PreconditionError(f"Inquiry {inquiry_id} is not a converted cash sale")

        on_date = on_date or date.today()
        note = f"[{on_date.isoformat()}] Asset assigned - Sale completed by Operations"
        return self._transition(
            inquiry_id,
            InquiryStatus.CONVERTED,
            {"status": InquiryStatus.CLOSED, "notes": _append_note(inquiry.notes, note)},
            completed_by
        )

    def _transition(self, inquiry_id: str, expected: InquiryStatus,
                    changes: Dict[str, Any], user_id: str) -> Inquiry:
        updated = self.storage.compare_and_set(
            self.table_name, inquiry_id, {"status": expected}, changes
        )
        if updated is None:
            raise PreconditionError(f"Inquiry {inquiry_id} is no longer {expected.value}")

        new_status = changes["status"]
        self.audit_trail.log_event(
            event_type=AuditEventType.INQUIRY_STATUS_CHANGED,
            entity_type="inquiry",
            entity_id=inquiry_id,
            metadata={"from": expected.value, "to": new_status.value},
            user_id=user_id
        )
        log_action(logger, "info", f"Inquiry {inquiry_id} {expected.value} -> {new_status.value}",
                   user_id=user_id, action="inquiry_status", resource=inquiry_id)
        return Inquiry.from_dict(updated)
