"""
Asset Module

Motorcycles and tricycles financed by the business. An asset moves through
``available -> assigned -> transferred`` on a successful loan, or
``assigned -> recovered -> available`` when it is repossessed.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Union

from .audit import AuditTrail, AuditEventType
from .calculator import to_decimal
from .exceptions import NotFoundError, ValidationError
from .logging_config import log_action
from .storage import StorageInterface, StorageRecord


logger = logging.getLogger(__name__)

ASSETS_TABLE = "assets"

# Applications create the asset before the physical unit is identified
PLACEHOLDER_PREFIX = "PENDING-"


class AssetType(Enum):
    MOTORCYCLE = "motorcycle"
    TRICYCLE = "tricycle"


class AssetStatus(Enum):
    """Asset lifecycle states"""
    AVAILABLE = "available"        # In stock, may be assigned to a loan
    ASSIGNED = "assigned"          # Held by a pre-active, active or defaulted loan
    TRANSFERRED = "transferred"    # Ownership passed to the client (loan completed)
    RECOVERED = "recovered"        # Repossessed from a defaulted loan


@dataclass
class Asset(StorageRecord):
    """A financed vehicle"""
    asset_type: AssetType
    brand: str
    model: str
    status: AssetStatus = AssetStatus.AVAILABLE
    year: Optional[int] = None
    chassis_number: Optional[str] = None
    engine_number: Optional[str] = None
    registration_number: Optional[str] = None
    color: Optional[str] = None
    purchase_price: Optional[Decimal] = None
    selling_price: Optional[Decimal] = None
    gps_device_id: Optional[str] = None
    branch_id: Optional[str] = None
    product_id: Optional[str] = None
    notes: Optional[str] = None
    registered_by: Optional[str] = None
    deleted_at: Optional[datetime] = None

    @property
    def has_identifiers(self) -> bool:
        """True once a real chassis number and a registration number are recorded"""
        chassis = self.chassis_number or ""
        return bool(chassis) and not chassis.startswith(PLACEHOLDER_PREFIX) \
            and bool(self.registration_number)


class AssetManager:
    """
    Registers assets and applies their status transitions
    """

    def __init__(self, storage: StorageInterface, audit_trail: AuditTrail):
        self.storage = storage
        self.audit_trail = audit_trail
        self.table_name = ASSETS_TABLE

    def register_asset(
        self,
        asset_type: Union[AssetType, str],
        brand: str,
        model: str,
        chassis_number: str,
        registered_by: str,
        selling_price=None,
        purchase_price=None,
        year: Optional[int] = None,
        engine_number: Optional[str] = None,
        registration_number: Optional[str] = None,
        color: Optional[str] = None,
        gps_device_id: Optional[str] = None,
        branch_id: Optional[str] = None,
        product_id: Optional[str] = None,
        notes: Optional[str] = None
    ) -> Asset:
        """
        Register a physical asset into stock as ``available``

        Raises:
            ValidationError: If the type, names, chassis number or prices are invalid
        """
        asset_type = self._parse_type(asset_type)
        if not brand or not model:
            raise ValidationError("brand and model are required")
        if not chassis_number or len(chassis_number.strip()) < 5:
            raise ValidationError("chassis_number must be at least 5 characters")

        now = datetime.now(timezone.utc)
        asset = Asset(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            asset_type=asset_type,
            brand=brand,
            model=model,
            status=AssetStatus.AVAILABLE,
            year=year,
            chassis_number=chassis_number.strip(),
            engine_number=engine_number,
            registration_number=registration_number,
            color=color,
            purchase_price=self._parse_price(purchase_price, "purchase_price"),
            selling_price=self._parse_price(selling_price, "selling_price"),
            gps_device_id=gps_device_id,
            branch_id=branch_id,
            product_id=product_id,
            notes=notes,
            registered_by=registered_by
        )
        self.storage.save(self.table_name, asset.id, asset.to_dict())

        self.audit_trail.log_event(
            event_type=AuditEventType.ASSET_REGISTERED,
            entity_type="asset",
            entity_id=asset.id,
            metadata={"asset_type": asset_type.value, "brand": brand, "model": model},
            user_id=registered_by
        )
        log_action(logger, "info", f"Registered asset {asset.id}",
                   user_id=registered_by, action="register_asset", resource=asset.id)
        return asset

    def create_assigned_asset(
        self,
        asset_type: Union[AssetType, str],
        brand: str,
        model: str,
        registered_by: str,
        price: Optional[Decimal] = None,
        branch_id: Optional[str] = None,
        product_id: Optional[str] = None,
        notes: Optional[str] = None
    ) -> Asset:
        """
        Create an ``assigned`` asset for a new application

        The chassis number is a placeholder until the physical unit is
        identified with ``record_identifiers``.
        """
        now = datetime.now(timezone.utc)
        asset = Asset(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            asset_type=self._parse_type(asset_type),
            brand=brand,
            model=model,
            status=AssetStatus.ASSIGNED,
            chassis_number=f"{PLACEHOLDER_PREFIX}{uuid.uuid4().hex[:12].upper()}",
            purchase_price=price,
            selling_price=price,
            branch_id=branch_id,
            product_id=product_id,
            notes=notes,
            registered_by=registered_by
        )
        self.storage.save(self.table_name, asset.id, asset.to_dict())

        self.audit_trail.log_event(
            event_type=AuditEventType.ASSET_REGISTERED,
            entity_type="asset",
            entity_id=asset.id,
            metadata={"asset_type": asset.asset_type.value, "status": asset.status.value,
                      "product_id": product_id},
            user_id=registered_by
        )
        return asset

    def get_asset(self, asset_id: str) -> Optional[Asset]:
        """Get asset by ID"""
        data = self.storage.load(self.table_name, asset_id)
        if not data or data.get('deleted_at'):
            return None
        return Asset.from_dict(data)

    def require_asset(self, asset_id: str) -> Asset:
        asset = self.get_asset(asset_id)
        if asset is None:
            raise NotFoundError("asset", asset_id)
        return asset

    def list_assets(self, status: Optional[AssetStatus] = None) -> List[Asset]:
        """List non-deleted assets, optionally filtered by status"""
        filters = {"status": status} if status else {}
        assets = [
            Asset.from_dict(data)
            for data in self.storage.find(self.table_name, filters)
            if not data.get('deleted_at')
        ]
        assets.sort(key=lambda a: a.created_at)
        return assets

    def update_identifiers(
        self,
        asset_id: str,
        chassis_number: str,
        registration_number: str,
        recorded_by: str,
        engine_number: Optional[str] = None,
        gps_device_id: Optional[str] = None
    ) -> Asset:
        """
        Record the physical identifiers of an asset

        Raises:
            ValidationError: If chassis or registration number is missing
            NotFoundError: If the asset does not exist
        """
        chassis_number = (chassis_number or "").strip()
        registration_number = (registration_number or "").strip()
        if len(chassis_number) < 5 or chassis_number.startswith(PLACEHOLDER_PREFIX):
            raise ValidationError("A real chassis_number of at least 5 characters is required")
        if not registration_number:
            raise ValidationError("registration_number is required")

        self.require_asset(asset_id)
        changes: Dict[str, Any] = {
            "chassis_number": chassis_number,
            "registration_number": registration_number,
        }
        if engine_number:
            changes["engine_number"] = engine_number
        if gps_device_id:
            changes["gps_device_id"] = gps_device_id

        updated = self.storage.compare_and_set(
            self.table_name, asset_id, {"deleted_at": None}, changes
        )
        if updated is None:
            raise NotFoundError("asset", asset_id)

        self.audit_trail.log_event(
            event_type=AuditEventType.ASSET_IDENTIFIERS_RECORDED,
            entity_type="asset",
            entity_id=asset_id,
            metadata=changes,
            user_id=recorded_by
        )
        return Asset.from_dict(updated)

    def transition(
        self,
        asset_id: str,
        expected: Union[AssetStatus, Iterable[AssetStatus]],
        new_status: AssetStatus,
        changes: Optional[Dict[str, Any]] = None
    ) -> Optional[Asset]:
        """
        Conditionally move an asset to ``new_status``

        Returns:
            The updated asset, or None when the asset is not in an expected status
        """
        if isinstance(expected, AssetStatus):
            expected_value: Any = expected
        else:
            expected_value = tuple(expected)
        payload = dict(changes or {})
        payload["status"] = new_status
        updated = self.storage.compare_and_set(
            self.table_name, asset_id, {"status": expected_value}, payload
        )
        if updated is None:
            logger.warning("Asset %s not in %s, cannot move to %s",
                           asset_id, expected, new_status.value)
            return None
        return Asset.from_dict(updated)

    @staticmethod
    def _parse_type(asset_type) -> AssetType:
        if isinstance(asset_type, AssetType):
            return asset_type
        try:
            return AssetType(str(asset_type).lower())
        except ValueError:
            raise ValidationError(f"Unknown asset type: {asset_type}") from None

    @staticmethod
    def _parse_price(value, field_name: str) -> Optional[Decimal]:
        if value is None:
            return None
        price = to_decimal(value, field_name)
        if price < 0:
            raise ValidationError(f"{field_name} must not be negative")
        return price
