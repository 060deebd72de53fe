"""
Client Module

Borrower records with identity, contact, next of kin and employment details.
A client links to at most one asset. Clients are soft-deleted only.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import List, Optional

from .assets import AssetStatus, ASSETS_TABLE
from .audit import AuditTrail, AuditEventType
from .calculator import to_decimal
from .exceptions import NotFoundError, PreconditionError, ValidationError
from .logging_config import log_action
from .storage import StorageInterface, StorageRecord


logger = logging.getLogger(__name__)

CLIENTS_TABLE = "clients"


@dataclass
class Client(StorageRecord):
    """Borrower"""
    full_name: str
    phone: str
    address: str
    district: str
    national_id: Optional[str] = None
    phone_secondary: Optional[str] = None
    email: Optional[str] = None
    village: Optional[str] = None
    next_of_kin_name: Optional[str] = None
    next_of_kin_phone: Optional[str] = None
    next_of_kin_relationship: Optional[str] = None
    occupation: Optional[str] = None
    monthly_income: Optional[Decimal] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    branch_id: Optional[str] = None
    asset_id: Optional[str] = None
    registered_by: Optional[str] = None
    is_active: bool = True
    deleted_at: Optional[datetime] = None


class ClientManager:
    """
    Manages client records and their asset link
    """

    def __init__(self, storage: StorageInterface, audit_trail: AuditTrail):
        self.storage = storage
        self.audit_trail = audit_trail
        self.table_name = CLIENTS_TABLE

    def create_client(
        self,
        full_name: str,
        phone: str,
        address: str,
        district: str,
        registered_by: str,
        national_id: Optional[str] = None,
        phone_secondary: Optional[str] = None,
        email: Optional[str] = None,
        village: Optional[str] = None,
        next_of_kin_name: Optional[str] = None,
        next_of_kin_phone: Optional[str] = None,
        next_of_kin_relationship: Optional[str] = None,
        occupation: Optional[str] = None,
        monthly_income=None,
        latitude: Optional[float] = None,
        longitude: Optional[float] = None,
        branch_id: Optional[str] = None,
        asset_id: Optional[str] = None
    ) -> Client:
        """
        Create a new client

        Raises:
            ValidationError: If a required field is missing or income is negative
        """
        for name, value in (("full_name", full_name), ("phone", phone),
                            ("address", address), ("district", district)):
            if not value or not str(value).strip():
                raise ValidationError(f"{name} is required")

        income = None
        if monthly_income is not None:
            income = to_decimal(monthly_income, "monthly_income")
            if income < 0:
                raise ValidationError("monthly_income must not be negative")

        now = datetime.now(timezone.utc)
        client = Client(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            full_name=full_name.strip(),
            phone=phone.strip(),
            address=address,
            district=district,
            national_id=national_id,
            phone_secondary=phone_secondary,
            email=email,
            village=village,
            next_of_kin_name=next_of_kin_name,
            next_of_kin_phone=next_of_kin_phone,
            next_of_kin_relationship=next_of_kin_relationship,
            occupation=occupation,
            monthly_income=income,
            latitude=latitude,
            longitude=longitude,
            branch_id=branch_id,
            asset_id=asset_id,
            registered_by=registered_by
        )
        self.storage.save(self.table_name, client.id, client.to_dict())

        self.audit_trail.log_event(
            event_type=AuditEventType.CLIENT_CREATED,
            entity_type="client",
            entity_id=client.id,
            metadata={"branch_id": branch_id, "asset_id": asset_id},
            user_id=registered_by
        )
        log_action(logger, "info", f"Created client {client.id}",
                   user_id=registered_by, action="create_client", resource=client.id)
        return client

    def get_client(self, client_id: str) -> Optional[Client]:
        """Get client by ID (soft-deleted clients are not returned)"""
        data = self.storage.load(self.table_name, client_id)
        if not data or data.get('deleted_at'):
            return None
        return Client.from_dict(data)

    def require_client(self, client_id: str) -> Client:
        client = self.get_client(client_id)
        if client is None:
            raise NotFoundError("client", client_id)
        return client

    def list_clients(self, include_inactive: bool = False) -> List[Client]:
        clients = [
            Client.from_dict(data)
            for data in self.storage.load_all(self.table_name)
            if not data.get('deleted_at')
        ]
        if not include_inactive:
            clients = [c for c in clients if c.is_active]
        clients.sort(key=lambda c: c.created_at)
        return clients

    def link_asset(self, client_id: str, asset_id: str) -> Client:
        """
        Link an asset to a client that holds none

        Raises:
            PreconditionError: If the client already holds an asset
        """
        self.require_client(client_id)
        updated = self.storage.compare_and_set(
            self.table_name, client_id, {"asset_id": None, "deleted_at": None},
            {"asset_id": asset_id}
        )
        if updated is None:
            raise PreconditionError(f"Client {client_id} already holds an asset")
        return Client.from_dict(updated)

    def clear_asset_link(self, client_id: str, asset_id: str) -> bool:
        """Clear the client's link to ``asset_id``; False if it no longer points there"""
        updated = self.storage.compare_and_set(
            self.table_name, client_id, {"asset_id": asset_id}, {"asset_id": None}
        )
        return updated is not None

    def find_by_asset(self, asset_id: str) -> List[Client]:
        return [
            Client.from_dict(data)
            for data in self.storage.find(self.table_name, {"asset_id": asset_id})
            if not data.get('deleted_at')
        ]

    def delete_client(self, client_id: str, deleted_by: str) -> Client:
        """
        Soft-delete a client

        Raises:
            NotFoundError: If the client does not exist
            PreconditionError: If the client holds an asset on a live loan
        """
        with self.storage.atomic():
            client = self.require_client(client_id)
            if client.asset_id:
                asset = self.storage.load(ASSETS_TABLE, client.asset_id)
                if asset and asset.get('status') == AssetStatus.ASSIGNED.value:
                    raise PreconditionError(
                        f"Client {client_id} holds asset {client.asset_id} on a live loan"
                    )

            now = datetime.now(timezone.utc)
            updated = self.storage.compare_and_set(
                self.table_name, client_id, {"deleted_at": None},
                {"deleted_at": now, "is_active": False}
            )
            if updated is None:
                raise NotFoundError("client", client_id)

            self.audit_trail.log_event(
                event_type=AuditEventType.CLIENT_DELETED,
                entity_type="client",
                entity_id=client_id,
                metadata={"deleted_at": now.isoformat()},
                user_id=deleted_by
            )

        log_action(logger, "info", f"Soft-deleted client {client_id}",
                   user_id=deleted_by, action="delete_client", resource=client_id)
        return Client.from_dict(updated)
