"""Review and rating snapshot models."""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from marketplace.types import coerce_datetime, format_datetime, utc_now


class ReviewRole(str, Enum):
    """The role of the reviewed party on the job."""

    SEEKER = "seeker"
    PROVIDER = "provider"


VALID_REVIEW_ROLE_VALUES = frozenset(r.value for r in ReviewRole)

MIN_RATING = 1
MAX_RATING = 5


def validate_rating(rating: Any) -> int:
    """Return rating as int, or raise ValueError if it is not an integer in [1, 5]."""
    if isinstance(rating, bool) or not isinstance(rating, int):
        if isinstance(rating, float) and rating.is_integer():
            rating = int(rating)
        else:
            raise ValueError("Rating must be an integer")
    if not MIN_RATING <= rating <= MAX_RATING:
        raise ValueError(f"Rating must be between {MIN_RATING} and {MAX_RATING}")
    return rating


@dataclass
class Review:
    """One participant's rating of the other on a completed job. Immutable once stored."""

    id: str
    reviewer_id: str
    reviewed_user_id: str
    job_request_id: str
    role: str
    rating: int
    comment: str = ""
    created_at: Optional[datetime] = None

    def __post_init__(self):
        if isinstance(self.role, ReviewRole):
            self.role = self.role.value
        if self.role not in VALID_REVIEW_ROLE_VALUES:
            raise ValueError(f"Invalid role: {self.role}")
        self.rating = validate_rating(self.rating)
        if self.reviewer_id == self.reviewed_user_id:
            raise ValueError("Cannot review yourself")
        if self.created_at is None:
            self.created_at = utc_now()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "reviewer_id": self.reviewer_id,
            "reviewed_user_id": self.reviewed_user_id,
            "job_request_id": self.job_request_id,
            "role": self.role,
            "rating": self.rating,
            "comment": self.comment,
            "created_at": format_datetime(self.created_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Review":
        return cls(
            id=data["id"],
            reviewer_id=data["reviewer_id"],
            reviewed_user_id=data["reviewed_user_id"],
            job_request_id=data["job_request_id"],
            role=data["role"],
            rating=data["rating"],
            comment=data.get("comment") or "",
            created_at=coerce_datetime(data.get("created_at")),
        )


@dataclass(frozen=True)
class RatingSnapshot:
    """Derived rating aggregate for one user."""

    user_id: str
    rating: float
    review_count: int
    total_jobs_completed: int
    is_top_rated: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            "user_id": self.user_id,
            "rating": self.rating,
            "review_count": self.review_count,
            "total_jobs_completed": self.total_jobs_completed,
            "is_top_rated": self.is_top_rated,
        }
