"""Offer data model."""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from marketplace.types import coerce_datetime, format_datetime, utc_now


class OfferStatus(str, Enum):
    """Offer lifecycle status. Pending moves to accepted or rejected exactly once."""

    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


VALID_OFFER_STATUS_VALUES = frozenset(s.value for s in OfferStatus)


@dataclass
class Offer:
    """A provider's priced proposal against one job request."""

    id: str
    job_request_id: str
    provider_id: str
    budget: float
    message: str = ""
    estimated_days: int = 1
    status: str = "pending"
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        if isinstance(self.status, OfferStatus):
            self.status = self.status.value
        if self.status not in VALID_OFFER_STATUS_VALUES:
            raise ValueError(f"Invalid status: {self.status}")
        self.budget = float(self.budget)
        if self.budget < 0:
            raise ValueError("Offer budget cannot be negative")
        if int(self.estimated_days) < 1:
            raise ValueError("Estimated days must be at least 1")
        self.estimated_days = int(self.estimated_days)
        if self.created_at is None:
            self.created_at = utc_now()
        if self.updated_at is None:
            self.updated_at = self.created_at

    @property
    def is_pending(self) -> bool:
        return self.status == OfferStatus.PENDING.value

    @property
    def is_accepted(self) -> bool:
        return self.status == OfferStatus.ACCEPTED.value

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "job_request_id": self.job_request_id,
            "provider_id": self.provider_id,
            "budget": self.budget,
            "message": self.message,
            "estimated_days": self.estimated_days,
            "status": self.status,
            "created_at": format_datetime(self.created_at),
            "updated_at": format_datetime(self.updated_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Offer":
        return cls(
            id=data["id"],
            job_request_id=data["job_request_id"],
            provider_id=data["provider_id"],
            budget=data["budget"],
            message=data.get("message") or "",
            estimated_days=data.get("estimated_days", 1),
            status=data.get("status", "pending"),
            created_at=coerce_datetime(data.get("created_at")),
            updated_at=coerce_datetime(data.get("updated_at")),
        )
