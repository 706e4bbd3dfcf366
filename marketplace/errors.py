"""Error taxonomy for the marketplace core.

Every failure a caller can observe is one of:

- ValidationError: malformed or missing input
- NotFoundError: a referenced entity does not exist
- ForbiddenError: the actor lacks rights over the entity
- ConflictError: the entity is not in the state the transition requires
- InternalError: anything unexpected

Each carries a stable ``code`` so transports can map it to a structured
``{code, message}`` payload.
"""

from typing import Any, Dict, Optional


class MarketplaceError(Exception):
    """Base class for marketplace errors."""

    code = "INTERNAL_ERROR"

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code, "message": self.message}


class ValidationError(MarketplaceError):
    """Malformed or missing input."""

    code = "VALIDATION_ERROR"


class NotFoundError(MarketplaceError):
    """Referenced entity is absent."""

    code = "NOT_FOUND"

    def __init__(self, entity: str, entity_id: str):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} not found: {entity_id}")


class ForbiddenError(MarketplaceError):
    """Actor lacks rights over the entity."""

    code = "FORBIDDEN"


class ConflictError(MarketplaceError):
    """Entity is not in the required state for the requested transition."""

    code = "CONFLICT"


class DuplicateRecordError(ConflictError):
    """Raised by storage when a unique constraint rejects a write."""

    def __init__(self, table: str, detail: str = ""):
        self.table = table
        message = f"Duplicate record in {table}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class VersionConflictError(ConflictError):
    """Raised when a record's version doesn't match the expected version.

    This indicates a concurrent modification - another request updated the
    record between when we read it and when we tried to save our changes.
    """

    def __init__(self, table: str, record_id: str, expected_version: int, actual_version: int):
        self.table = table
        self.record_id = record_id
        self.expected_version = expected_version
        self.actual_version = actual_version
        super().__init__(
            f"Version conflict on {table}/{record_id}: "
            f"expected version {expected_version}, found {actual_version}"
        )


class InternalError(MarketplaceError):
    """Unexpected failure."""

    code = "INTERNAL_ERROR"
