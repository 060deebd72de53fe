"""
Loan origination endpoints
"""

from typing import Optional

from fastapi import APIRouter, Depends, status

from ..backoffice import BackOffice
from ..loans import LoanStatus
from ..rbac import Actor
from .dependencies import get_actor, get_back_office
from .schemas import (
    ApproveLoanRequest, CreateApplicationRequest, CreateLoanRequest, ReasonRequest
)


router = APIRouter()


@router.post("/applications", status_code=status.HTTP_201_CREATED)
async def create_application(
    request: CreateApplicationRequest,
    actor: Actor = Depends(get_actor),
    back_office: BackOffice = Depends(get_back_office)
):
    """Create client, asset and pending loan from a catalog product"""
    loan = back_office.create_application(
        actor,
        applicant=request.applicant.model_dump(exclude_none=True),
        product=request.product.to_product(),
        repayment_frequency=request.repayment_frequency,
        down_payment=request.down_payment,
        branch_id=request.branch_id,
        inquiry_id=request.inquiry_id
    )
    return loan.to_dict()


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_loan(
    request: CreateLoanRequest,
    actor: Actor = Depends(get_actor),
    back_office: BackOffice = Depends(get_back_office)
):
    """Create a pending loan for an existing client and an available asset"""
    loan = back_office.create_loan(
        actor,
        client_id=request.client_id,
        asset_id=request.asset_id,
        repayment_frequency=request.repayment_frequency,
        down_payment=request.down_payment,
        price=request.price,
        interest_rate=request.interest_rate,
        duration_months=request.duration_months,
        branch_id=request.branch_id
    )
    return loan.to_dict()


@router.get("")
async def list_loans(
    status: Optional[LoanStatus] = None,
    actor: Actor = Depends(get_actor),
    back_office: BackOffice = Depends(get_back_office)
):
    """List loans, optionally by status"""
    return {"loans": [loan.to_dict() for loan in back_office.list_loans(actor, status)]}


@router.get("/{loan_id}")
async def get_loan(
    loan_id: str,
    actor: Actor = Depends(get_actor),
    back_office: BackOffice = Depends(get_back_office)
):
    """Get loan details"""
    return back_office.get_loan(actor, loan_id).to_dict()


@router.get("/{loan_id}/schedule")
async def get_loan_schedule(
    loan_id: str,
    actor: Actor = Depends(get_actor),
    back_office: BackOffice = Depends(get_back_office)
):
    """Get the repayment schedule"""
    return {"schedule": [item.to_dict() for item in back_office.get_schedule(actor, loan_id)]}


@router.post("/{loan_id}/review")
async def start_review(
    loan_id: str,
    actor: Actor = Depends(get_actor),
    back_office: BackOffice = Depends(get_back_office)
):
    """pending -> under_review"""
    return back_office.start_review(actor, loan_id).to_dict()


@router.post("/{loan_id}/kyc-complete")
async def complete_kyc_review(
    loan_id: str,
    actor: Actor = Depends(get_actor),
    back_office: BackOffice = Depends(get_back_office)
):
    """under_review -> awaiting_asset or awaiting_approval"""
    return back_office.complete_kyc_review(actor, loan_id).to_dict()


@router.post("/{loan_id}/approve")
async def approve_loan(
    loan_id: str,
    request: ApproveLoanRequest,
    actor: Actor = Depends(get_actor),
    back_office: BackOffice = Depends(get_back_office)
):
    """Approve and activate a loan, generating its schedule"""
    return back_office.approve_loan(actor, loan_id, request.start_date).to_dict()


@router.post("/{loan_id}/reject")
async def reject_loan(
    loan_id: str,
    request: ReasonRequest,
    actor: Actor = Depends(get_actor),
    back_office: BackOffice = Depends(get_back_office)
):
    """Reject a loan that is not yet active"""
    return back_office.reject_loan(actor, loan_id, request.reason).to_dict()
