"""
Delinquency and recovery endpoints
"""

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query

from ..backoffice import BackOffice
from ..rbac import Actor
from .dependencies import get_actor, get_back_office
from .schemas import NotesRequest


router = APIRouter()


@router.get("/at-risk")
async def list_at_risk_loans(
    actor: Actor = Depends(get_actor),
    back_office: BackOffice = Depends(get_back_office)
):
    """Active loans past the at-risk threshold, worst first"""
    return {"loans": [loan.to_dict() for loan in back_office.at_risk_loans(actor)]}


@router.get("/candidates")
async def list_recovery_candidates(
    actor: Actor = Depends(get_actor),
    back_office: BackOffice = Depends(get_back_office)
):
    """Active loans past the recovery threshold, worst first"""
    return {"loans": [loan.to_dict() for loan in back_office.recovery_candidates(actor)]}


@router.get("/summary")
async def get_collection_summary(
    as_of: Optional[date] = Query(None, description="Reference date, defaults to today"),
    actor: Actor = Depends(get_actor),
    back_office: BackOffice = Depends(get_back_office)
):
    """Portfolio delinquency statistics"""
    summary = back_office.collection_summary(actor, as_of)
    for key in ("outstanding_balance", "balance_at_risk", "overdue_amount"):
        summary[key] = str(summary[key])
    return summary


@router.post("/loans/{loan_id}/initiate")
async def initiate_recovery(
    loan_id: str,
    request: NotesRequest,
    actor: Actor = Depends(get_actor),
    back_office: BackOffice = Depends(get_back_office)
):
    """active -> defaulted"""
    return back_office.initiate_recovery(actor, loan_id, request.notes).to_dict()


@router.post("/loans/{loan_id}/recovered")
async def mark_recovered(
    loan_id: str,
    actor: Actor = Depends(get_actor),
    back_office: BackOffice = Depends(get_back_office)
):
    """defaulted -> recovered; the asset becomes recovered"""
    return back_office.mark_recovered(actor, loan_id).to_dict()


@router.post("/assets/{asset_id}/release")
async def release_asset(
    asset_id: str,
    actor: Actor = Depends(get_actor),
    back_office: BackOffice = Depends(get_back_office)
):
    """Return a recovered asset to stock"""
    return back_office.release_asset(actor, asset_id).to_dict()
