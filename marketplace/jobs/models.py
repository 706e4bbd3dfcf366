"""
Job request data models.

Defines the JobRequest lifecycle, its budget and completion proof, and the
audit log of status changes.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from marketplace.types import coerce_datetime, format_datetime, utc_now


class JobStatus(str, Enum):
    """Job request lifecycle status."""

    OPEN = "open"
    ASSIGNED = "assigned"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


VALID_JOB_STATUS_VALUES = frozenset(s.value for s in JobStatus)

# open -> assigned -> completed, open -> cancelled
VALID_JOB_TRANSITIONS = {
    JobStatus.OPEN: {JobStatus.ASSIGNED, JobStatus.CANCELLED},
    JobStatus.ASSIGNED: {JobStatus.COMPLETED},
    JobStatus.COMPLETED: set(),
    JobStatus.CANCELLED: set(),
}

# Statuses in which assigned_provider_id must be set
ASSIGNED_STATUSES = frozenset({JobStatus.ASSIGNED.value, JobStatus.COMPLETED.value})


@dataclass
class Budget:
    """Price range a seeker is willing to pay."""

    min: float
    max: float

    def __post_init__(self):
        self.min = float(self.min)
        self.max = float(self.max)
        if self.min < 0 or self.max < 0:
            raise ValueError("Budget cannot be negative")
        if self.min > self.max:
            raise ValueError("Budget min must not exceed budget max")

    def contains(self, amount: float) -> bool:
        return self.min <= amount <= self.max

    def to_dict(self) -> Dict[str, float]:
        return {"min": self.min, "max": self.max}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Budget":
        return cls(min=data["min"], max=data["max"])


@dataclass
class CompletionProof:
    """Evidence attached by the provider when completing a job."""

    images: List[str] = field(default_factory=list)
    description: str = ""
    completed_at: Optional[datetime] = None

    def __post_init__(self):
        self.completed_at = coerce_datetime(self.completed_at)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "images": list(self.images),
            "description": self.description,
            "completed_at": format_datetime(self.completed_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CompletionProof":
        return cls(
            images=list(data.get("images") or []),
            description=data.get("description") or "",
            completed_at=coerce_datetime(data.get("completed_at")),
        )


@dataclass
class JobRequest:
    """A seeker's posted task.

    Attributes:
        id: Unique identifier
        seeker_id: Owner of the request
        title: Short non-empty title
        description: Free-form details
        category: Must be active in the category registry at creation
        budget: Acceptable price range
        deadline: When the work must be done by
        status: Lifecycle status (see JobStatus)
        assigned_provider_id: Provider of the accepted offer
        attachments: Opaque file URLs
        completion_proof: Set when the provider completes the job
    """

    id: str
    seeker_id: str
    title: str
    description: str
    category: str
    budget: Budget
    deadline: datetime
    status: str = "open"
    assigned_provider_id: Optional[str] = None
    attachments: List[str] = field(default_factory=list)
    completion_proof: Optional[CompletionProof] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    assigned_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None

    def __post_init__(self):
        if isinstance(self.status, JobStatus):
            self.status = self.status.value
        if self.status not in VALID_JOB_STATUS_VALUES:
            raise ValueError(f"Invalid status: {self.status}")

        if not self.title or not self.title.strip():
            raise ValueError("Title cannot be empty")
        if not self.category or not self.category.strip():
            raise ValueError("Category cannot be empty")

        if isinstance(self.budget, dict):
            self.budget = Budget.from_dict(self.budget)
        if isinstance(self.completion_proof, dict):
            self.completion_proof = CompletionProof.from_dict(self.completion_proof)

        has_provider = self.assigned_provider_id is not None
        if has_provider != (self.status in ASSIGNED_STATUSES):
            raise ValueError(
                "assigned_provider_id must be set exactly when status is assigned or completed"
            )

        self.deadline = coerce_datetime(self.deadline)
        if self.created_at is None:
            self.created_at = utc_now()
        if self.updated_at is None:
            self.updated_at = self.created_at

    @property
    def is_open(self) -> bool:
        return self.status == JobStatus.OPEN.value

    @property
    def is_terminal(self) -> bool:
        return self.status in (JobStatus.COMPLETED.value, JobStatus.CANCELLED.value)

    def is_participant(self, user_id: str) -> bool:
        return user_id in (self.seeker_id, self.assigned_provider_id)

    def counterparty_of(self, user_id: str) -> Optional[str]:
        """Return the other participant, or None if user_id is not on the job."""
        if user_id == self.seeker_id:
            return self.assigned_provider_id
        if self.assigned_provider_id is not None and user_id == self.assigned_provider_id:
            return self.seeker_id
        return None

    def can_transition_to(self, new_status: Union[JobStatus, str]) -> bool:
        """Check if transition to new status is valid."""
        current = JobStatus(self.status)
        target = JobStatus(new_status) if isinstance(new_status, str) else new_status
        return target in VALID_JOB_TRANSITIONS.get(current, set())

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "id": self.id,
            "seeker_id": self.seeker_id,
            "title": self.title,
            "description": self.description,
            "category": self.category,
            "budget": self.budget.to_dict(),
            "deadline": format_datetime(self.deadline),
            "status": self.status,
            "assigned_provider_id": self.assigned_provider_id,
            "attachments": list(self.attachments),
            "completion_proof": (
                self.completion_proof.to_dict() if self.completion_proof else None
            ),
            "created_at": format_datetime(self.created_at),
            "updated_at": format_datetime(self.updated_at),
            "assigned_at": format_datetime(self.assigned_at),
            "completed_at": format_datetime(self.completed_at),
            "cancelled_at": format_datetime(self.cancelled_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "JobRequest":
        """Create from dictionary."""
        return cls(
            id=data["id"],
            seeker_id=data["seeker_id"],
            title=data["title"],
            description=data.get("description") or "",
            category=data["category"],
            budget=data["budget"],
            deadline=data["deadline"],
            status=data.get("status", "open"),
            assigned_provider_id=data.get("assigned_provider_id"),
            attachments=list(data.get("attachments") or []),
            completion_proof=data.get("completion_proof"),
            created_at=coerce_datetime(data.get("created_at")),
            updated_at=coerce_datetime(data.get("updated_at")),
            assigned_at=coerce_datetime(data.get("assigned_at")),
            completed_at=coerce_datetime(data.get("completed_at")),
            cancelled_at=coerce_datetime(data.get("cancelled_at")),
        )


@dataclass
class JobStateTransition:
    """Audit log entry for a job status change.

    ``from_status`` is None for the creation entry.
    """

    id: str
    job_id: str
    to_status: str
    actor_id: str
    from_status: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    created_at: Optional[datetime] = None

    def __post_init__(self):
        if self.created_at is None:
            self.created_at = utc_now()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "job_id": self.job_id,
            "from_status": self.from_status,
            "to_status": self.to_status,
            "actor_id": self.actor_id,
            "metadata": self.metadata,
            "created_at": format_datetime(self.created_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "JobStateTransition":
        return cls(
            id=data["id"],
            job_id=data["job_id"],
            from_status=data.get("from_status"),
            to_status=data["to_status"],
            actor_id=data["actor_id"],
            metadata=data.get("metadata") or {},
            created_at=coerce_datetime(data.get("created_at")),
        )
