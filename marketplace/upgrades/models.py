"""Upgrade request data model."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from marketplace.types import coerce_datetime, format_datetime, utc_now


class UpgradeRequestStatus(str, Enum):
    """Upgrade request lifecycle status."""

    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


VALID_UPGRADE_REQUEST_STATUS_VALUES = frozenset(s.value for s in UpgradeRequestStatus)


@dataclass
class UpgradeRequest:
    """A seeker's application to gain the provider role."""

    id: str
    user_id: str
    attachments: List[str] = field(default_factory=list)
    comment: str = ""
    status: str = "pending"
    admin_explanation: Optional[str] = None
    rejection_comment: Optional[str] = None
    viewed_by_user: bool = False
    decided_by: Optional[str] = None
    decided_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        if isinstance(self.status, UpgradeRequestStatus):
            self.status = self.status.value
        if self.status not in VALID_UPGRADE_REQUEST_STATUS_VALUES:
            raise ValueError(f"Invalid status: {self.status}")
        if not self.attachments:
            raise ValueError("At least one attachment is required")
        if any(not isinstance(a, str) or not a.strip() for a in self.attachments):
            raise ValueError("Attachments must be non-empty URLs")
        if self.created_at is None:
            self.created_at = utc_now()
        if self.updated_at is None:
            self.updated_at = self.created_at

    @property
    def is_pending(self) -> bool:
        return self.status == UpgradeRequestStatus.PENDING.value

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "attachments": list(self.attachments),
            "comment": self.comment,
            "status": self.status,
            "admin_explanation": self.admin_explanation,
            "rejection_comment": self.rejection_comment,
            "viewed_by_user": self.viewed_by_user,
            "decided_by": self.decided_by,
            "decided_at": format_datetime(self.decided_at),
            "created_at": format_datetime(self.created_at),
            "updated_at": format_datetime(self.updated_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "UpgradeRequest":
        return cls(
            id=data["id"],
            user_id=data["user_id"],
            attachments=list(data.get("attachments") or []),
            comment=data.get("comment") or "",
            status=data.get("status", "pending"),
            admin_explanation=data.get("admin_explanation"),
            rejection_comment=data.get("rejection_comment"),
            viewed_by_user=bool(data.get("viewed_by_user", False)),
            decided_by=data.get("decided_by"),
            decided_at=coerce_datetime(data.get("decided_at")),
            created_at=coerce_datetime(data.get("created_at")),
            updated_at=coerce_datetime(data.get("updated_at")),
        )
