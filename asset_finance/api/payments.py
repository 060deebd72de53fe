"""
Payment endpoints
"""

from typing import Optional

from fastapi import APIRouter, Depends, status

from ..backoffice import BackOffice
from ..payments import PaymentStatus
from ..rbac import Actor
from .dependencies import get_actor, get_back_office
from .schemas import NotesRequest, ReasonRequest, RecordPaymentRequest


router = APIRouter()


@router.post("", status_code=status.HTTP_201_CREATED)
async def record_payment(
    request: RecordPaymentRequest,
    actor: Actor = Depends(get_actor),
    back_office: BackOffice = Depends(get_back_office)
):
    """Record a received payment as pending"""
    payment = back_office.record_payment(
        actor,
        loan_id=request.loan_id,
        amount=request.amount,
        payment_method=request.payment_method,
        transaction_id=request.transaction_id,
        phone_number=request.phone_number
    )
    return payment.to_dict()


@router.get("")
async def list_payments(
    loan_id: Optional[str] = None,
    status: Optional[PaymentStatus] = None,
    actor: Actor = Depends(get_actor),
    back_office: BackOffice = Depends(get_back_office)
):
    """List payments by loan and/or status"""
    payments = back_office.list_payments(actor, loan_id, status)
    return {"payments": [p.to_dict() for p in payments]}


@router.post("/{payment_id}/confirm")
async def confirm_payment(
    payment_id: str,
    actor: Actor = Depends(get_actor),
    back_office: BackOffice = Depends(get_back_office)
):
    """Confirm a pending payment and apply it to the loan"""
    payment = back_office.confirm_payment(actor, payment_id)
    loan = back_office.loan_manager.require_loan(payment.loan_id)
    return {"payment": payment.to_dict(), "loan": loan.to_dict()}


@router.post("/{payment_id}/reject")
async def reject_payment(
    payment_id: str,
    request: ReasonRequest,
    actor: Actor = Depends(get_actor),
    back_office: BackOffice = Depends(get_back_office)
):
    """Reject a pending payment"""
    return back_office.reject_payment(actor, payment_id, request.reason).to_dict()


@router.post("/{payment_id}/reconcile")
async def reconcile_payment(
    payment_id: str,
    request: NotesRequest,
    actor: Actor = Depends(get_actor),
    back_office: BackOffice = Depends(get_back_office)
):
    """Mark a confirmed payment as reconciled"""
    return back_office.reconcile_payment(actor, payment_id, request.notes).to_dict()
