"""
Moderation data models.

Complaints move pending -> investigating -> resolved | dismissed. Every
change to a complaint's status or sanction is captured by exactly one
AdminAction, which is append-only.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional, Union

from marketplace.types import coerce_datetime, format_datetime, utc_now


class ProblemType(str, Enum):
    """What a complaint is about."""

    LATE = "late"
    NO_SHOW = "no_show"
    INCOMPLETE_WORK = "incomplete_work"
    POOR_QUALITY = "poor_quality"
    RUDE_BEHAVIOR = "rude_behavior"
    PRICE_DISPUTE = "price_dispute"
    OTHER = "other"


class ComplaintStatus(str, Enum):
    """Complaint lifecycle status."""

    PENDING = "pending"
    INVESTIGATING = "investigating"
    RESOLVED = "resolved"
    DISMISSED = "dismissed"


class ComplaintAction(str, Enum):
    """Sanction recorded on a complaint."""

    WARNING = "warning"
    SUSPENSION = "suspension"
    BAN = "ban"
    REFUND = "refund"
    NONE = "none"


class AdminActionType(str, Enum):
    """Kind of moderation decision recorded in the audit log."""

    INVESTIGATE = "investigate"
    RESOLVE = "resolve"
    DISMISS = "dismiss"
    WARNING = "warning"
    SUSPENSION = "suspension"
    BAN = "ban"
    REFUND = "refund"
    UPDATE = "update"


VALID_PROBLEM_TYPE_VALUES = frozenset(p.value for p in ProblemType)
VALID_COMPLAINT_STATUS_VALUES = frozenset(s.value for s in ComplaintStatus)
VALID_COMPLAINT_ACTION_VALUES = frozenset(a.value for a in ComplaintAction)
VALID_ADMIN_ACTION_TYPE_VALUES = frozenset(a.value for a in AdminActionType)

ACTIVE_COMPLAINT_STATUSES = frozenset(
    {ComplaintStatus.PENDING.value, ComplaintStatus.INVESTIGATING.value}
)

VALID_COMPLAINT_TRANSITIONS = {
    ComplaintStatus.PENDING: {ComplaintStatus.INVESTIGATING},
    ComplaintStatus.INVESTIGATING: {ComplaintStatus.RESOLVED, ComplaintStatus.DISMISSED},
    ComplaintStatus.RESOLVED: set(),
    ComplaintStatus.DISMISSED: set(),
}


def _enum_value(value: Union[Enum, str, None]) -> Optional[str]:
    return value.value if isinstance(value, Enum) else value


@dataclass
class Complaint:
    """A participant-filed report against the counter-party on a job.

    ``version`` increments on every update and guards concurrent admin
    actions.
    """

    id: str
    reporter_id: str
    reported_user_id: str
    job_request_id: str
    problem_type: str
    description: str
    status: str = "pending"
    admin_action: str = "none"
    admin_notes: str = ""
    resolved_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    version: int = 1

    def __post_init__(self):
        self.problem_type = _enum_value(self.problem_type)
        self.status = _enum_value(self.status)
        self.admin_action = _enum_value(self.admin_action)

        if self.problem_type not in VALID_PROBLEM_TYPE_VALUES:
            raise ValueError(f"Invalid problem type: {self.problem_type}")
        if self.status not in VALID_COMPLAINT_STATUS_VALUES:
            raise ValueError(f"Invalid status: {self.status}")
        if self.admin_action not in VALID_COMPLAINT_ACTION_VALUES:
            raise ValueError(f"Invalid admin action: {self.admin_action}")
        if not self.description or not self.description.strip():
            raise ValueError("Description is required")
        if self.reporter_id == self.reported_user_id:
            raise ValueError("Cannot file a complaint against yourself")

        if self.created_at is None:
            self.created_at = utc_now()
        if self.updated_at is None:
            self.updated_at = self.created_at

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_COMPLAINT_STATUSES

    @property
    def is_terminal(self) -> bool:
        return not self.is_active

    def can_transition_to(self, new_status: Union[ComplaintStatus, str]) -> bool:
        current = ComplaintStatus(self.status)
        target = ComplaintStatus(new_status) if isinstance(new_status, str) else new_status
        return target in VALID_COMPLAINT_TRANSITIONS[current]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "reporter_id": self.reporter_id,
            "reported_user_id": self.reported_user_id,
            "job_request_id": self.job_request_id,
            "problem_type": self.problem_type,
            "description": self.description,
            "status": self.status,
            "admin_action": self.admin_action,
            "admin_notes": self.admin_notes,
            "resolved_at": format_datetime(self.resolved_at),
            "created_at": format_datetime(self.created_at),
            "updated_at": format_datetime(self.updated_at),
            "version": self.version,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Complaint":
        return cls(
            id=data["id"],
            reporter_id=data["reporter_id"],
            reported_user_id=data["reported_user_id"],
            job_request_id=data["job_request_id"],
            problem_type=data["problem_type"],
            description=data["description"],
            status=data.get("status", "pending"),
            admin_action=data.get("admin_action", "none"),
            admin_notes=data.get("admin_notes") or "",
            resolved_at=coerce_datetime(data.get("resolved_at")),
            created_at=coerce_datetime(data.get("created_at")),
            updated_at=coerce_datetime(data.get("updated_at")),
            version=int(data.get("version", 1)),
        )


@dataclass(frozen=True)
class AdminAction:
    """Immutable audit record of one moderation decision."""

    id: str
    complaint_id: str
    admin_id: str
    action_type: str
    previous_status: str
    new_status: str
    previous_admin_action: str
    new_admin_action: str
    notes: str = ""
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    created_at: Optional[datetime] = None

    def __post_init__(self):
        # frozen dataclass: normalize through object.__setattr__
        object.__setattr__(self, "action_type", _enum_value(self.action_type))
        if self.action_type not in VALID_ADMIN_ACTION_TYPE_VALUES:
            raise ValueError(f"Invalid action type: {self.action_type}")
        if self.created_at is None:
            object.__setattr__(self, "created_at", utc_now())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "complaint_id": self.complaint_id,
            "admin_id": self.admin_id,
            "action_type": self.action_type,
            "previous_status": self.previous_status,
            "new_status": self.new_status,
            "previous_admin_action": self.previous_admin_action,
            "new_admin_action": self.new_admin_action,
            "notes": self.notes,
            "ip_address": self.ip_address,
            "user_agent": self.user_agent,
            "created_at": format_datetime(self.created_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AdminAction":
        return cls(
            id=data["id"],
            complaint_id=data["complaint_id"],
            admin_id=data["admin_id"],
            action_type=data["action_type"],
            previous_status=data["previous_status"],
            new_status=data["new_status"],
            previous_admin_action=data["previous_admin_action"],
            new_admin_action=data["new_admin_action"],
            notes=data.get("notes") or "",
            ip_address=data.get("ip_address"),
            user_agent=data.get("user_agent"),
            created_at=coerce_datetime(data.get("created_at")),
        )
