"""Error kinds raised by the loan lifecycle engine."""


class AssetFinanceError(Exception):
    """Base exception for all engine errors."""


class ValidationError(AssetFinanceError, ValueError):
    """Malformed or out-of-domain input. Raised before any state change."""


class PreconditionError(AssetFinanceError):
    """Operation invoked against an entity not in the required state."""


class NotFoundError(AssetFinanceError, LookupError):
    """Referenced loan, client, asset, payment or inquiry does not exist."""

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(f"{entity_type.capitalize()} {entity_id} not found")


class ConsistencyError(AssetFinanceError):
    """A cross-entity invariant is violated. Should never occur under atomic writes."""


class PermissionDeniedError(AssetFinanceError):
    """Acting staff member lacks the capability for the operation."""
