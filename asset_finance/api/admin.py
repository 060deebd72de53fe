"""
Admin endpoints for scheduled jobs and integrity checks
"""

from fastapi import APIRouter, Depends

from ..backoffice import BackOffice
from ..rbac import Actor
from .dependencies import get_actor, get_back_office
from .schemas import ReconcileJobRequest


router = APIRouter()


@router.post("/jobs/reconcile-missed-payments")
async def reconcile_missed_payments(
    request: ReconcileJobRequest,
    actor: Actor = Depends(get_actor),
    back_office: BackOffice = Depends(get_back_office)
):
    """Count installments that fell due unpaid"""
    return back_office.reconcile_missed_payments(actor, request.as_of)


@router.get("/consistency")
async def check_consistency(
    actor: Actor = Depends(get_actor),
    back_office: BackOffice = Depends(get_back_office)
):
    """Scan for invariant violations between assets, loans and schedules"""
    violations = back_office.check_consistency(actor)
    return {
        "consistent": not violations,
        "violations": [
            {"entity_type": v.entity_type, "entity_id": v.entity_id, "message": v.message}
            for v in violations
        ]
    }


@router.get("/audit/verify")
async def verify_audit_trail(
    actor: Actor = Depends(get_actor),
    back_office: BackOffice = Depends(get_back_office)
):
    """Verify the audit trail hash chain"""
    return back_office.verify_audit_trail(actor)
