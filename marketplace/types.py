"""Shared types for the marketplace core.

Contains:
- Time helpers (utc_now, parse_datetime, format_datetime)
- Role enum and the VALID_ROLE_VALUES allowlist
- Actor: the identity handed to every operation by the identity provider
"""

import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import FrozenSet, Iterable, Optional, Union


def utc_now() -> datetime:
    """Get current timestamp as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def parse_datetime(s: Optional[str]) -> Optional[datetime]:
    """Parse ISO datetime string.

    Naive values are assumed to be UTC so that comparisons against
    utc_now() never mix aware and naive datetimes.
    """
    if not s:
        return None
    dt = datetime.fromisoformat(s.replace("Z", "+00:00"))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def format_datetime(dt: Optional[datetime]) -> Optional[str]:
    """Format a datetime as ISO string, passing None through."""
    return dt.isoformat() if dt else None


def coerce_datetime(value: Union[str, datetime, None]) -> Optional[datetime]:
    """Accept either an ISO string or a datetime."""
    if isinstance(value, str):
        return parse_datetime(value)
    if isinstance(value, datetime) and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def generate_id() -> str:
    """Generate a new record ID."""
    return str(uuid.uuid4())


# === Enums ===


class Role(str, Enum):
    """Capabilities a user can hold."""

    SEEKER = "seeker"
    PROVIDER = "provider"
    ADMIN = "admin"


VALID_ROLE_VALUES = frozenset(r.value for r in Role)


def normalize_roles(roles: Iterable[Union[Role, str]]) -> FrozenSet[str]:
    """Convert a mix of Role members and strings to a frozenset of values.

    Raises:
        ValueError: If any role is unknown
    """
    values = set()
    for role in roles:
        value = role.value if isinstance(role, Role) else str(role)
        if value not in VALID_ROLE_VALUES:
            raise ValueError(f"Invalid role: {value}")
        values.add(value)
    return frozenset(values)


@dataclass(frozen=True)
class Actor:
    """The caller of an operation, as asserted by the identity provider.

    The core never verifies credentials. ``ip_address`` and ``user_agent``
    are request metadata captured for the moderation audit trail.
    """

    actor_id: str
    roles: FrozenSet[str] = frozenset()
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None

    def has_role(self, role: Union[Role, str]) -> bool:
        value = role.value if isinstance(role, Role) else role
        return value in self.roles

    @property
    def is_admin(self) -> bool:
        return Role.ADMIN.value in self.roles
