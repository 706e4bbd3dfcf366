"""Complaint routes for participants.

Admin-side handling lives in the admin router.
"""

from datetime import datetime
from typing import Literal

from fastapi import APIRouter, HTTPException, Request, status
from pydantic import BaseModel, Field

from marketplace.logging_config import get_logger
from marketplace.moderation.models import AdminAction, Complaint

from ..deps import ActorDep, MarketplaceDep
from ..rate_limit import limiter

logger = get_logger("api.complaints")
router = APIRouter(prefix="/complaints", tags=["complaints"])

ProblemType = Literal[
    "late",
    "no_show",
    "incomplete_work",
    "poor_quality",
    "rude_behavior",
    "price_dispute",
    "other",
]
ComplaintStatus = Literal["pending", "investigating", "resolved", "dismissed"]
ComplaintAction = Literal["warning", "suspension", "ban", "refund", "none"]


class ComplaintCreate(BaseModel):
    """Request to file a complaint against the other participant on a job."""

    job_request_id: str = Field(..., min_length=1)
    reported_user_id: str = Field(..., min_length=1)
    problem_type: ProblemType
    description: str = Field(..., min_length=1)


class ComplaintResponse(BaseModel):
    id: str
    reporter_id: str
    reported_user_id: str
    job_request_id: str
    problem_type: ProblemType
    description: str
    status: ComplaintStatus
    admin_action: ComplaintAction
    admin_notes: str
    resolved_at: datetime | None = None
    created_at: datetime
    updated_at: datetime
    version: int


class AdminActionResponse(BaseModel):
    id: str
    complaint_id: str
    admin_id: str
    action_type: str
    previous_status: ComplaintStatus
    new_status: ComplaintStatus
    previous_admin_action: ComplaintAction
    new_admin_action: ComplaintAction
    notes: str
    ip_address: str | None = None
    user_agent: str | None = None
    created_at: datetime


def to_complaint_response(complaint: Complaint) -> ComplaintResponse:
    return ComplaintResponse(**complaint.to_dict())


def to_action_response(action: AdminAction) -> AdminActionResponse:
    return AdminActionResponse(**action.to_dict())


@router.post("", response_model=ComplaintResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit("10/minute")
def file_complaint(request: Request, body: ComplaintCreate, actor: ActorDep, m: MarketplaceDep):
    """
    File a complaint.

    Only a participant of the job may file, only against the other
    participant, and only one active complaint per job at a time.
    """
    logger.info(
        f"POST /complaints | reporter={actor.actor_id} | job={body.job_request_id} | "
        f"type={body.problem_type}"
    )
    complaint = m.moderation.file(
        reporter_id=actor.actor_id,
        reported_user_id=body.reported_user_id,
        job_id=body.job_request_id,
        problem_type=body.problem_type,
        description=body.description,
    )
    return to_complaint_response(complaint)


@router.get("/mine", response_model=list[ComplaintResponse])
@limiter.limit("60/minute")
def list_my_complaints(request: Request, actor: ActorDep, m: MarketplaceDep):
    """Complaints the caller has filed, newest first."""
    return [
        to_complaint_response(c) for c in m.moderation.list_complaints(reporter_id=actor.actor_id)
    ]


@router.get("/{complaint_id}", response_model=ComplaintResponse)
@limiter.limit("60/minute")
def get_complaint(request: Request, complaint_id: str, actor: ActorDep, m: MarketplaceDep):
    """Get a complaint (its reporter or an admin)."""
    complaint = m.moderation.get(complaint_id)
    if complaint.reporter_id != actor.actor_id and not actor.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Not authorized to view this complaint",
        )
    return to_complaint_response(complaint)
