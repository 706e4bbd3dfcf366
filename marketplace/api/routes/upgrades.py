"""Provider upgrade routes for users.

Admin decisions live in the admin router.
"""

from datetime import datetime
from typing import Literal

from fastapi import APIRouter, Request, status
from pydantic import BaseModel, Field

from marketplace.logging_config import get_logger
from marketplace.upgrades.models import UpgradeRequest

from ..deps import ActorDep, MarketplaceDep
from ..rate_limit import limiter

logger = get_logger("api.upgrades")
router = APIRouter(prefix="/upgrades", tags=["upgrades"])

UpgradeStatus = Literal["pending", "accepted", "rejected"]


class UpgradeCreate(BaseModel):
    """Request to become a provider."""

    attachments: list[str] = Field(..., min_length=1)
    comment: str = Field("", max_length=1000)


class UpgradeResponse(BaseModel):
    id: str
    user_id: str
    attachments: list[str]
    comment: str
    status: UpgradeStatus
    admin_explanation: str | None = None
    rejection_comment: str | None = None
    viewed_by_user: bool
    decided_by: str | None = None
    decided_at: datetime | None = None
    created_at: datetime
    updated_at: datetime


class MarkViewedResponse(BaseModel):
    updated: int


def to_upgrade_response(upgrade: UpgradeRequest) -> UpgradeResponse:
    return UpgradeResponse(**upgrade.to_dict())


@router.post("", response_model=UpgradeResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit("5/minute")
def request_upgrade(request: Request, body: UpgradeCreate, actor: ActorDep, m: MarketplaceDep):
    """
    Ask to become a provider.

    At most one pending request at a time and a limited number of attempts
    in total.
    """
    logger.info(f"POST /upgrades | user={actor.actor_id} | attachments={len(body.attachments)}")
    upgrade = m.upgrades.request(actor.actor_id, body.attachments, body.comment)
    return to_upgrade_response(upgrade)


@router.get("/mine", response_model=list[UpgradeResponse])
@limiter.limit("60/minute")
def list_my_upgrades(request: Request, actor: ActorDep, m: MarketplaceDep):
    """The caller's upgrade requests, newest first."""
    return [to_upgrade_response(u) for u in m.upgrades.list_for_user(actor.actor_id)]


@router.post("/mine/viewed", response_model=MarkViewedResponse)
@limiter.limit("60/minute")
def mark_my_upgrades_viewed(request: Request, actor: ActorDep, m: MarketplaceDep):
    """Acknowledge decisions on the caller's upgrade requests."""
    return MarkViewedResponse(updated=m.upgrades.mark_viewed(actor.actor_id))
