"""User data model.

Roles are a capability set. A user holding the provider capability always
carries a ProviderProfile; seekers carry a SeekerProfile. The rating fields
(rating, review_count, total_jobs_completed, is_top_rated) are a derived
view owned by the RatingAggregator and are never edited directly.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Set, Union

from marketplace.types import Role, coerce_datetime, format_datetime, normalize_roles, utc_now


class ProviderUpgradeStatus(str, Enum):
    """Denormalized state of a user's most recent upgrade request."""

    NONE = "none"
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


VALID_UPGRADE_STATUS_VALUES = frozenset(s.value for s in ProviderUpgradeStatus)


@dataclass
class ProviderProfile:
    """Provider-only attributes."""

    verified: bool = False
    skills: List[str] = field(default_factory=list)
    bio: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {"verified": self.verified, "skills": list(self.skills), "bio": self.bio}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ProviderProfile":
        return cls(
            verified=bool(data.get("verified", False)),
            skills=list(data.get("skills") or []),
            bio=data.get("bio") or "",
        )


@dataclass
class SeekerProfile:
    """Seeker-only attributes."""

    location: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"location": self.location}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SeekerProfile":
        return cls(location=data.get("location"))


@dataclass
class User:
    """A marketplace participant.

    Attributes:
        id: Identity-provider subject
        roles: Capability set (seeker, provider, admin)
        provider_upgrade_status: none, pending, accepted or rejected
        is_blocked: Set by a ban; blocked users cannot post, offer or review
        rating: Mean of all reviews about this user (0.0 when none)
        review_count: Number of reviews about this user
        total_jobs_completed: Completed jobs where this user was the provider
        is_top_rated: Derived provider badge
    """

    id: str
    roles: Set[str] = field(default_factory=lambda: {Role.SEEKER.value})
    seeker_profile: Optional[SeekerProfile] = None
    provider_profile: Optional[ProviderProfile] = None
    provider_upgrade_status: str = ProviderUpgradeStatus.NONE.value
    is_blocked: bool = False
    blocked_reason: Optional[str] = None
    rating: float = 0.0
    review_count: int = 0
    total_jobs_completed: int = 0
    is_top_rated: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        if not self.id or not str(self.id).strip():
            raise ValueError("User ID cannot be empty")
        self.roles = set(normalize_roles(self.roles))
        if not self.roles:
            raise ValueError("User must hold at least one role")

        if isinstance(self.provider_upgrade_status, ProviderUpgradeStatus):
            self.provider_upgrade_status = self.provider_upgrade_status.value
        if self.provider_upgrade_status not in VALID_UPGRADE_STATUS_VALUES:
            raise ValueError(f"Invalid provider upgrade status: {self.provider_upgrade_status}")

        if isinstance(self.provider_profile, dict):
            self.provider_profile = ProviderProfile.from_dict(self.provider_profile)
        if isinstance(self.seeker_profile, dict):
            self.seeker_profile = SeekerProfile.from_dict(self.seeker_profile)
        if Role.PROVIDER.value in self.roles and self.provider_profile is None:
            self.provider_profile = ProviderProfile()
        if Role.SEEKER.value in self.roles and self.seeker_profile is None:
            self.seeker_profile = SeekerProfile()

        if not 0.0 <= self.rating <= 5.0:
            raise ValueError("Rating must be between 0 and 5")
        if self.review_count < 0 or self.total_jobs_completed < 0:
            raise ValueError("Counts cannot be negative")

        if self.created_at is None:
            self.created_at = utc_now()
        if self.updated_at is None:
            self.updated_at = self.created_at

    def has_role(self, role: Union[Role, str]) -> bool:
        value = role.value if isinstance(role, Role) else role
        return value in self.roles

    def grant_role(self, role: Union[Role, str]) -> bool:
        """Add a capability. Returns False if the user already held it."""
        value = next(iter(normalize_roles([role])))
        if value in self.roles:
            return False
        self.roles.add(value)
        if value == Role.PROVIDER.value and self.provider_profile is None:
            self.provider_profile = ProviderProfile()
        if value == Role.SEEKER.value and self.seeker_profile is None:
            self.seeker_profile = SeekerProfile()
        return True

    @property
    def is_provider(self) -> bool:
        return Role.PROVIDER.value in self.roles

    @property
    def is_admin(self) -> bool:
        return Role.ADMIN.value in self.roles

    @property
    def provider_verified(self) -> bool:
        return bool(self.provider_profile and self.provider_profile.verified)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "id": self.id,
            "roles": sorted(self.roles),
            "seeker_profile": self.seeker_profile.to_dict() if self.seeker_profile else None,
            "provider_profile": (
                self.provider_profile.to_dict() if self.provider_profile else None
            ),
            "provider_upgrade_status": self.provider_upgrade_status,
            "is_blocked": self.is_blocked,
            "blocked_reason": self.blocked_reason,
            "rating": self.rating,
            "review_count": self.review_count,
            "total_jobs_completed": self.total_jobs_completed,
            "is_top_rated": self.is_top_rated,
            "created_at": format_datetime(self.created_at),
            "updated_at": format_datetime(self.updated_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "User":
        """Create from dictionary."""
        return cls(
            id=data["id"],
            roles=set(data.get("roles") or [Role.SEEKER.value]),
            seeker_profile=data.get("seeker_profile"),
            provider_profile=data.get("provider_profile"),
            provider_upgrade_status=data.get("provider_upgrade_status", "none"),
            is_blocked=bool(data.get("is_blocked", False)),
            blocked_reason=data.get("blocked_reason"),
            rating=float(data.get("rating") or 0.0),
            review_count=int(data.get("review_count") or 0),
            total_jobs_completed=int(data.get("total_jobs_completed") or 0),
            is_top_rated=bool(data.get("is_top_rated", False)),
            created_at=coerce_datetime(data.get("created_at")),
            updated_at=coerce_datetime(data.get("updated_at")),
        )
