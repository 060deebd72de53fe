"""
Request dependencies: the back office instance and the acting staff member
"""

from typing import Optional

from fastapi import Header, HTTPException, Request, status

from ..backoffice import BackOffice
from ..rbac import SYSTEM_ACTOR, Actor


def get_back_office(request: Request) -> BackOffice:
    return request.app.state.back_office


def get_optional_actor(
    request: Request,
    x_staff_id: Optional[str] = Header(None),
    x_staff_roles: Optional[str] = Header(None)
) -> Optional[Actor]:
    """Actor from the identity headers set by the upstream identity provider"""
    if not x_staff_id:
        return None
    return Actor.from_role_names(x_staff_id, (x_staff_roles or "").split(","))


def get_actor(
    request: Request,
    x_staff_id: Optional[str] = Header(None),
    x_staff_roles: Optional[str] = Header(None)
) -> Actor:
    """
    Acting staff member; 401 when the identity headers are missing

    With ``auth_enabled`` off, anonymous requests run as the system actor.
    """
    actor = get_optional_actor(request, x_staff_id, x_staff_roles)
    if actor is not None:
        return actor
    if not request.app.state.back_office.config.auth_enabled:
        return SYSTEM_ACTOR
    raise HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Missing X-Staff-Id header"
    )
