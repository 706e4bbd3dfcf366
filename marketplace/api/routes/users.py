"""User routes."""

from datetime import datetime

from fastapi import APIRouter, Request
from pydantic import BaseModel

from marketplace.users.models import User

from ..deps import ActorDep, MarketplaceDep
from ..rate_limit import limiter

router = APIRouter(prefix="/users", tags=["users"])


class UserResponse(BaseModel):
    """A user's own profile."""

    id: str
    roles: list[str]
    seeker_profile: dict | None = None
    provider_profile: dict | None = None
    provider_upgrade_status: str
    is_blocked: bool
    blocked_reason: str | None = None
    rating: float
    review_count: int
    total_jobs_completed: int
    is_top_rated: bool
    created_at: datetime
    updated_at: datetime


def to_user_response(user: User) -> UserResponse:
    return UserResponse(**user.to_dict())


@router.get("/me", response_model=UserResponse)
@limiter.limit("60/minute")
def get_me(request: Request, actor: ActorDep, m: MarketplaceDep):
    """The caller's profile, created on first sight."""
    return to_user_response(m.users.get(actor.actor_id))
