"""Admin routes for moderation, upgrade decisions and system stats.

Every route here requires the admin role in the caller's token.
"""

from typing import Any

from fastapi import APIRouter, Query, Request
from pydantic import BaseModel, Field

from marketplace.logging_config import get_logger

from ..deps import AdminActor, MarketplaceDep
from ..rate_limit import limiter
from .complaints import (
    AdminActionResponse,
    ComplaintAction,
    ComplaintResponse,
    ComplaintStatus,
    to_action_response,
    to_complaint_response,
)
from .upgrades import UpgradeResponse, UpgradeStatus, to_upgrade_response
from .users import UserResponse, to_user_response

logger = get_logger("api.admin")

router = APIRouter(prefix="/admin", tags=["admin"])


# =============================================================================
# Models
# =============================================================================


class ComplaintActionRequest(BaseModel):
    """Admin decision on a complaint. Any subset of fields may change."""

    status: ComplaintStatus | None = None
    admin_action: ComplaintAction | None = None
    admin_notes: str | None = None
    expected_version: int | None = Field(None, ge=1)


class AcceptUpgradeRequest(BaseModel):
    admin_explanation: str = Field(..., min_length=1, max_length=1000)


class RejectUpgradeRequest(BaseModel):
    rejection_comment: str = Field("", max_length=1000)


class VerifyProviderRequest(BaseModel):
    verified: bool = True


class RecomputeResponse(BaseModel):
    recomputed: int


# =============================================================================
# Stats
# =============================================================================


@router.get("/stats")
@limiter.limit("30/minute")
def get_stats(request: Request, admin: AdminActor, m: MarketplaceDep) -> dict[str, Any]:
    """Counts of users, jobs, complaints and upgrade requests."""
    logger.info(f"GET /admin/stats | admin={admin.actor_id}")
    return m.dashboard_stats()


# =============================================================================
# Complaints
# =============================================================================


@router.get("/complaints", response_model=list[ComplaintResponse])
@limiter.limit("60/minute")
def list_complaints(
    request: Request,
    admin: AdminActor,
    m: MarketplaceDep,
    status_filter: ComplaintStatus | None = Query(None, alias="status"),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
):
    """Complaints, newest first."""
    complaints = m.moderation.list_complaints(status=status_filter, limit=limit, offset=offset)
    return [to_complaint_response(c) for c in complaints]


@router.get("/complaints/{complaint_id}/actions", response_model=list[AdminActionResponse])
@limiter.limit("60/minute")
def list_complaint_actions(
    request: Request, complaint_id: str, admin: AdminActor, m: MarketplaceDep
):
    """Audit trail for a complaint, oldest first."""
    return [to_action_response(a) for a in m.moderation.get_actions(complaint_id)]


@router.post("/complaints/{complaint_id}/actions", response_model=ComplaintResponse)
@limiter.limit("30/minute")
def act_on_complaint(
    request: Request,
    complaint_id: str,
    body: ComplaintActionRequest,
    admin: AdminActor,
    m: MarketplaceDep,
):
    """
    Act on a complaint.

    Status moves pending -> investigating -> resolved | dismissed. Setting
    admin_action to 'ban' blocks the reported user. Pass expected_version
    to fail with 409 if another admin changed the complaint first.
    """
    logger.info(
        f"POST /admin/complaints/{complaint_id}/actions | admin={admin.actor_id} | "
        f"status={body.status} | action={body.admin_action}"
    )
    complaint = m.moderation.act(
        complaint_id,
        admin,
        status=body.status,
        admin_action=body.admin_action,
        admin_notes=body.admin_notes,
        expected_version=body.expected_version,
    )
    return to_complaint_response(complaint)


# =============================================================================
# Upgrade requests
# =============================================================================


@router.get("/upgrades", response_model=list[UpgradeResponse])
@limiter.limit("60/minute")
def list_upgrade_requests(
    request: Request,
    admin: AdminActor,
    m: MarketplaceDep,
    status_filter: UpgradeStatus | None = Query(None, alias="status"),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
):
    """Upgrade requests, newest first."""
    upgrades = m.upgrades.list_requests(status=status_filter, limit=limit, offset=offset)
    return [to_upgrade_response(u) for u in upgrades]


@router.post("/upgrades/{request_id}/accept", response_model=UpgradeResponse)
@limiter.limit("30/minute")
def accept_upgrade(
    request: Request,
    request_id: str,
    body: AcceptUpgradeRequest,
    admin: AdminActor,
    m: MarketplaceDep,
):
    """Accept an upgrade request and grant the provider role."""
    logger.info(f"POST /admin/upgrades/{request_id}/accept | admin={admin.actor_id}")
    return to_upgrade_response(m.upgrades.accept(request_id, admin, body.admin_explanation))


@router.post("/upgrades/{request_id}/reject", response_model=UpgradeResponse)
@limiter.limit("30/minute")
def reject_upgrade(
    request: Request,
    request_id: str,
    admin: AdminActor,
    m: MarketplaceDep,
    body: RejectUpgradeRequest | None = None,
):
    """Reject an upgrade request."""
    logger.info(f"POST /admin/upgrades/{request_id}/reject | admin={admin.actor_id}")
    comment = body.rejection_comment if body else ""
    return to_upgrade_response(m.upgrades.reject(request_id, admin, comment))


# =============================================================================
# Users
# =============================================================================


@router.post("/users/{user_id}/verify", response_model=UserResponse)
@limiter.limit("30/minute")
def verify_provider(
    request: Request,
    user_id: str,
    admin: AdminActor,
    m: MarketplaceDep,
    body: VerifyProviderRequest | None = None,
):
    """Set a provider's verified flag."""
    verified = body.verified if body else True
    logger.info(
        f"POST /admin/users/{user_id}/verify | admin={admin.actor_id} | verified={verified}"
    )
    return to_user_response(m.verify_provider(user_id, admin, verified))


@router.post("/users/{user_id}/unblock", response_model=UserResponse)
@limiter.limit("30/minute")
def unblock_user(request: Request, user_id: str, admin: AdminActor, m: MarketplaceDep):
    """Lift a ban."""
    logger.info(f"POST /admin/users/{user_id}/unblock | admin={admin.actor_id}")
    return to_user_response(m.users.unblock(user_id))


@router.post("/ratings/recompute", response_model=RecomputeResponse)
@limiter.limit("5/minute")
def recompute_ratings(request: Request, admin: AdminActor, m: MarketplaceDep):
    """Re-derive every user's rating aggregate from stored reviews and jobs."""
    logger.info(f"POST /admin/ratings/recompute | admin={admin.actor_id}")
    return RecomputeResponse(recomputed=m.ratings.recompute_all())
