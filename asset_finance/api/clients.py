"""
Client endpoints
"""

from fastapi import APIRouter, Depends, status

from ..backoffice import BackOffice
from ..rbac import Actor
from .dependencies import get_actor, get_back_office
from .schemas import CreateClientRequest


router = APIRouter()


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_client(
    request: CreateClientRequest,
    actor: Actor = Depends(get_actor),
    back_office: BackOffice = Depends(get_back_office)
):
    """Register a client"""
    client = back_office.create_client(actor, **request.model_dump(exclude_none=True))
    return client.to_dict()


@router.delete("/{client_id}")
async def delete_client(
    client_id: str,
    actor: Actor = Depends(get_actor),
    back_office: BackOffice = Depends(get_back_office)
):
    """Soft-delete a client"""
    return back_office.delete_client(actor, client_id).to_dict()
