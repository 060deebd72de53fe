"""
Role-Based Access Control Module

Explicit permission-capability checks performed before every state
transition, independent of how the caller authenticated. Identity itself is
supplied by an external provider; the engine only sees an opaque staff id and
a set of role names.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, FrozenSet, Iterable, Optional, Set

from .exceptions import PermissionDeniedError


logger = logging.getLogger(__name__)


class Permission(Enum):
    """System permissions"""
    # Inquiry permissions
    MANAGE_INQUIRIES = "manage_inquiries"
    COMPLETE_CASH_SALE = "complete_cash_sale"

    # Origination permissions
    VIEW_LOANS = "view_loans"
    CREATE_APPLICATION = "create_application"
    REVIEW_LOAN = "review_loan"
    MANAGE_ASSETS = "manage_assets"
    RECORD_ASSET_IDENTIFIERS = "record_asset_identifiers"
    APPROVE_LOAN = "approve_loan"
    REJECT_LOAN = "reject_loan"
    MANAGE_CLIENTS = "manage_clients"

    # Payment permissions
    RECORD_PAYMENT = "record_payment"
    CONFIRM_PAYMENT = "confirm_payment"
    REJECT_PAYMENT = "reject_payment"
    RECONCILE_PAYMENT = "reconcile_payment"

    # Collection permissions
    VIEW_COLLECTIONS = "view_collections"
    INITIATE_RECOVERY = "initiate_recovery"
    MARK_RECOVERED = "mark_recovered"
    RELEASE_ASSET = "release_asset"

    # Admin permissions
    RUN_JOBS = "run_jobs"


class StaffRole(Enum):
    """Staff roles known to the identity provider"""
    SUPER_ADMIN = "super_admin"
    ADMIN = "admin"
    FIELD_OFFICER = "field_officer"
    ACCOUNTANT = "accountant"
    OPERATIONS_ADMIN = "operations_admin"
    OPERATIONS_OFFICER = "operations_officer"
    CLIENT = "client"


ROLE_PERMISSIONS: Dict[StaffRole, FrozenSet[Permission]] = {
    StaffRole.SUPER_ADMIN: frozenset(Permission),
    StaffRole.ADMIN: frozenset(Permission),
    StaffRole.FIELD_OFFICER: frozenset({
        Permission.MANAGE_INQUIRIES,
        Permission.VIEW_LOANS,
        Permission.CREATE_APPLICATION,
        Permission.REVIEW_LOAN,
        Permission.RECORD_ASSET_IDENTIFIERS,
        Permission.MANAGE_CLIENTS,
        Permission.RECORD_PAYMENT,
        Permission.VIEW_COLLECTIONS,
    }),
    StaffRole.ACCOUNTANT: frozenset({
        Permission.VIEW_LOANS,
        Permission.RECORD_PAYMENT,
        Permission.RECONCILE_PAYMENT,
        Permission.VIEW_COLLECTIONS,
    }),
    StaffRole.OPERATIONS_ADMIN: frozenset({
        Permission.MANAGE_INQUIRIES,
        Permission.COMPLETE_CASH_SALE,
        Permission.VIEW_LOANS,
        Permission.MANAGE_ASSETS,
        Permission.RECORD_ASSET_IDENTIFIERS,
        Permission.RELEASE_ASSET,
    }),
    StaffRole.OPERATIONS_OFFICER: frozenset({
        Permission.VIEW_LOANS,
        Permission.RECORD_ASSET_IDENTIFIERS,
    }),
    StaffRole.CLIENT: frozenset(),
}


@dataclass(frozen=True)
class Actor:
    """Acting staff member as supplied by the identity provider"""
    staff_id: str
    roles: FrozenSet[StaffRole] = field(default_factory=frozenset)

    @classmethod
    def from_role_names(cls, staff_id: str, role_names: Iterable[str]) -> 'Actor':
        """Build an actor from raw role names, skipping names the engine does not know"""
        roles: Set[StaffRole] = set()
        for name in role_names:
            name = name.strip().lower()
            if not name:
                continue
            try:
                roles.add(StaffRole(name))
            except ValueError:
                logger.warning("Ignoring unknown role %r for staff %s", name, staff_id)
        return cls(staff_id=staff_id, roles=frozenset(roles))


SYSTEM_ACTOR = Actor(staff_id="system", roles=frozenset({StaffRole.SUPER_ADMIN}))


class AccessPolicy:
    """Maps roles to permissions and enforces them"""

    def __init__(self, role_permissions: Optional[Dict[StaffRole, FrozenSet[Permission]]] = None):
        self.role_permissions = role_permissions or ROLE_PERMISSIONS

    def permissions_for(self, actor: Actor) -> Set[Permission]:
        """Union of permissions granted by all of the actor's roles"""
        granted: Set[Permission] = set()
        for role in actor.roles:
            granted |= self.role_permissions.get(role, frozenset())
        return granted

    def has_permission(self, actor: Actor, permission: Permission) -> bool:
        return permission in self.permissions_for(actor)

    def require(self, actor: Actor, permission: Permission) -> None:
        """
        Raise PermissionDeniedError unless the actor holds the permission
        """
        if not self.has_permission(actor, permission):
            logger.warning(
                "Permission %s denied for staff %s", permission.value, actor.staff_id
            )
            raise PermissionDeniedError(
                f"Staff {actor.staff_id} lacks permission {permission.value}"
            )
