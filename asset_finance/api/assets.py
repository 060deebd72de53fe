"""
Asset endpoints
"""

from typing import Optional

from fastapi import APIRouter, Depends, status

from ..assets import AssetStatus
from ..backoffice import BackOffice
from ..rbac import Actor
from .dependencies import get_actor, get_back_office
from .schemas import AssetIdentifiersRequest, RegisterAssetRequest


router = APIRouter()


@router.post("", status_code=status.HTTP_201_CREATED)
async def register_asset(
    request: RegisterAssetRequest,
    actor: Actor = Depends(get_actor),
    back_office: BackOffice = Depends(get_back_office)
):
    """Register an asset into stock"""
    asset = back_office.register_asset(actor, **request.model_dump(exclude_none=True))
    return asset.to_dict()


@router.get("")
async def list_assets(
    status: Optional[AssetStatus] = None,
    actor: Actor = Depends(get_actor),
    back_office: BackOffice = Depends(get_back_office)
):
    """List assets, optionally by status"""
    return {"assets": [a.to_dict() for a in back_office.list_assets(actor, status)]}


@router.post("/{asset_id}/identifiers")
async def assign_asset_identifiers(
    asset_id: str,
    request: AssetIdentifiersRequest,
    actor: Actor = Depends(get_actor),
    back_office: BackOffice = Depends(get_back_office)
):
    """Record chassis and registration numbers; releases a loan waiting on them"""
    asset, loan = back_office.assign_asset_identifiers(
        actor,
        asset_id,
        chassis_number=request.chassis_number,
        registration_number=request.registration_number,
        engine_number=request.engine_number,
        gps_device_id=request.gps_device_id
    )
    return {
        "asset": asset.to_dict(),
        "loan": loan.to_dict() if loan else None
    }
