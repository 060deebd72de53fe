"""
Inquiry endpoints
"""

from typing import Optional

from fastapi import APIRouter, Depends, status

from ..backoffice import BackOffice
from ..inquiries import InquiryStatus, SaleType
from ..rbac import Actor
from .dependencies import get_actor, get_back_office, get_optional_actor
from .schemas import ReasonRequest, SubmitInquiryRequest, UpdateInquiryRequest


router = APIRouter()


@router.post("", status_code=status.HTTP_201_CREATED)
async def submit_inquiry(
    request: SubmitInquiryRequest,
    actor: Optional[Actor] = Depends(get_optional_actor),
    back_office: BackOffice = Depends(get_back_office)
):
    """Submit an inquiry (public contact form or staff on behalf of a customer)"""
    details = request.model_dump()
    inquiry = back_office.submit_inquiry(
        details.pop("full_name"), details.pop("phone"), actor=actor, **details
    )
    return inquiry.to_dict()


@router.get("")
async def list_inquiries(
    status: Optional[InquiryStatus] = None,
    sale_type: Optional[SaleType] = None,
    actor: Actor = Depends(get_actor),
    back_office: BackOffice = Depends(get_back_office)
):
    """List inquiries, newest first"""
    inquiries = back_office.list_inquiries(actor, status, sale_type)
    return {"inquiries": [i.to_dict() for i in inquiries]}


@router.patch("/{inquiry_id}")
async def update_inquiry(
    inquiry_id: str,
    request: UpdateInquiryRequest,
    actor: Actor = Depends(get_actor),
    back_office: BackOffice = Depends(get_back_office)
):
    """Edit an open inquiry"""
    inquiry = back_office.update_inquiry(actor, inquiry_id, **request.model_dump(exclude_unset=True))
    return inquiry.to_dict()


@router.post("/{inquiry_id}/advance")
async def advance_inquiry(
    inquiry_id: str,
    actor: Actor = Depends(get_actor),
    back_office: BackOffice = Depends(get_back_office)
):
    """Move an inquiry to the next pipeline step"""
    return back_office.advance_inquiry(actor, inquiry_id).to_dict()


@router.post("/{inquiry_id}/close")
async def close_inquiry(
    inquiry_id: str,
    request: ReasonRequest,
    actor: Actor = Depends(get_actor),
    back_office: BackOffice = Depends(get_back_office)
):
    """Close an open inquiry"""
    return back_office.close_inquiry(actor, inquiry_id, request.reason).to_dict()


@router.post("/{inquiry_id}/complete-cash-sale")
async def complete_cash_sale(
    inquiry_id: str,
    actor: Actor = Depends(get_actor),
    back_office: BackOffice = Depends(get_back_office)
):
    """Close a converted cash sale once the unit is handed over"""
    return back_office.complete_cash_sale(actor, inquiry_id).to_dict()
