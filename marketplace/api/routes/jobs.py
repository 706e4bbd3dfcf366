"""Job request routes.

Endpoints for posting job requests and driving them through
open -> assigned -> completed (or cancelled).
"""

from datetime import datetime, timezone
from typing import Any, Literal

from fastapi import APIRouter, Query, Request, status
from pydantic import BaseModel, Field, field_validator, model_validator

from marketplace.jobs.models import JobRequest, JobStateTransition
from marketplace.logging_config import get_logger

from ..deps import ActorDep, MarketplaceDep
from ..rate_limit import limiter

logger = get_logger("api.jobs")
router = APIRouter(prefix="/jobs", tags=["jobs"])


# =============================================================================
# Request/Response Models
# =============================================================================

JobStatus = Literal["open", "assigned", "completed", "cancelled"]


def _future_deadline(v: datetime) -> datetime:
    if v.tzinfo is None:
        v = v.replace(tzinfo=timezone.utc)
    if v <= datetime.now(timezone.utc):
        raise ValueError("Deadline must be in the future")
    return v


class JobCreate(BaseModel):
    """Request to post a job request."""

    title: str = Field(..., min_length=1)
    description: str = ""
    category: str = Field(..., min_length=1)
    budget_min: float = Field(..., ge=0)
    budget_max: float = Field(..., ge=0)
    deadline: datetime
    attachments: list[str] = Field(default_factory=list)

    @field_validator("deadline")
    @classmethod
    def deadline_must_be_future(cls, v: datetime) -> datetime:
        return _future_deadline(v)

    @field_validator("category")
    @classmethod
    def normalize_category(cls, v: str) -> str:
        return v.strip().lower()

    @model_validator(mode="after")
    def budget_range(self) -> "JobCreate":
        if self.budget_min > self.budget_max:
            raise ValueError("budget_min must not exceed budget_max")
        return self


class JobUpdate(BaseModel):
    """Partial edit of an open job request. Omitted fields keep their value."""

    title: str | None = Field(None, min_length=1)
    description: str | None = None
    category: str | None = Field(None, min_length=1)
    budget_min: float | None = Field(None, ge=0)
    budget_max: float | None = Field(None, ge=0)
    deadline: datetime | None = None
    attachments: list[str] | None = None

    @field_validator("deadline")
    @classmethod
    def deadline_must_be_future(cls, v: datetime | None) -> datetime | None:
        return v if v is None else _future_deadline(v)


class BudgetResponse(BaseModel):
    min: float
    max: float


class CompletionProofResponse(BaseModel):
    images: list[str]
    description: str
    completed_at: datetime | None = None


class JobResponse(BaseModel):
    """Job request details response."""

    id: str
    seeker_id: str
    title: str
    description: str
    category: str
    budget: BudgetResponse
    deadline: datetime
    status: JobStatus
    assigned_provider_id: str | None = None
    attachments: list[str]
    completion_proof: CompletionProofResponse | None = None
    created_at: datetime
    updated_at: datetime
    assigned_at: datetime | None = None
    completed_at: datetime | None = None
    cancelled_at: datetime | None = None


class JobListResponse(BaseModel):
    """Page of job requests."""

    jobs: list[JobResponse]
    limit: int
    offset: int


class TransitionResponse(BaseModel):
    id: str
    job_id: str
    from_status: JobStatus | None = None
    to_status: JobStatus
    actor_id: str
    metadata: dict[str, Any]
    created_at: datetime


class AssignOfferRequest(BaseModel):
    """Request to accept one offer on a job."""

    offer_id: str = Field(..., min_length=1)


class CompleteJobRequest(BaseModel):
    """Completion proof submitted by the assigned provider."""

    images: list[str] = Field(default_factory=list)
    description: str = Field("", max_length=2000)


class CancelJobRequest(BaseModel):
    reason: str | None = Field(None, max_length=1000)


# =============================================================================
# Helper Functions
# =============================================================================


def to_job_response(job: JobRequest) -> JobResponse:
    """Convert a JobRequest to its response model."""
    return JobResponse(**job.to_dict())


def to_transition_response(transition: JobStateTransition) -> TransitionResponse:
    return TransitionResponse(**transition.to_dict())


# =============================================================================
# Routes
# =============================================================================


@router.post("", response_model=JobResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit("20/minute")
def create_job_request(
    request: Request,
    job: JobCreate,
    actor: ActorDep,
    m: MarketplaceDep,
):
    """
    Post a new job request.

    The authenticated user becomes the job owner (seeker). Jobs start in
    'open' status and accept offers until one is assigned.
    """
    logger.info(f"POST /jobs | seeker={actor.actor_id} | title={job.title[:50]}")
    created = m.jobs.create(
        seeker_id=actor.actor_id,
        title=job.title,
        description=job.description,
        category=job.category,
        budget_min=job.budget_min,
        budget_max=job.budget_max,
        deadline=job.deadline,
        attachments=job.attachments,
    )
    return to_job_response(created)


@router.get("", response_model=JobListResponse)
@limiter.limit("60/minute")
def list_job_requests(
    request: Request,
    actor: ActorDep,
    m: MarketplaceDep,
    status_filter: JobStatus | None = Query(None, alias="status"),
    category: str | None = Query(None),
    min_budget: float | None = Query(None, ge=0),
    max_budget: float | None = Query(None, ge=0),
    mine: bool = Query(False, description="Only show jobs I posted"),
    assigned_to_me: bool = Query(False, description="Only show jobs assigned to me"),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
):
    """
    List job requests, newest first.

    Filters:
    - status: Filter by job status
    - category: Filter by category
    - min_budget / max_budget: Only jobs whose budget range overlaps
    - mine: Only jobs you posted
    - assigned_to_me: Only jobs where you are the assigned provider
    """
    logger.info(
        f"GET /jobs | user={actor.actor_id} | status={status_filter} | category={category}"
    )
    jobs = m.jobs.list_jobs(
        status=status_filter,
        category=category,
        seeker_id=actor.actor_id if mine else None,
        provider_id=actor.actor_id if assigned_to_me else None,
        min_budget=min_budget,
        max_budget=max_budget,
        limit=limit,
        offset=offset,
    )
    return JobListResponse(
        jobs=[to_job_response(j) for j in jobs], limit=limit, offset=offset
    )


@router.get("/{job_id}", response_model=JobResponse)
@limiter.limit("60/minute")
def get_job_request(request: Request, job_id: str, actor: ActorDep, m: MarketplaceDep):
    """Get job request details."""
    return to_job_response(m.jobs.get(job_id))


@router.get("/{job_id}/history", response_model=list[TransitionResponse])
@limiter.limit("60/minute")
def get_job_history(request: Request, job_id: str, actor: ActorDep, m: MarketplaceDep):
    """Status transitions for a job request, oldest first."""
    return [to_transition_response(t) for t in m.jobs.get_history(job_id)]


@router.post("/{job_id}/assign", response_model=JobResponse)
@limiter.limit("20/minute")
def assign_offer(
    request: Request,
    job_id: str,
    body: AssignOfferRequest,
    actor: ActorDep,
    m: MarketplaceDep,
):
    """
    Accept an offer (job owner only).

    Transitions: open -> assigned. Every other pending offer is rejected.
    """
    logger.info(f"POST /jobs/{job_id}/assign | seeker={actor.actor_id} | offer={body.offer_id}")
    return to_job_response(m.jobs.assign(job_id, body.offer_id, actor.actor_id))


@router.post("/{job_id}/complete", response_model=JobResponse)
@limiter.limit("20/minute")
def complete_job(
    request: Request,
    job_id: str,
    body: CompleteJobRequest,
    actor: ActorDep,
    m: MarketplaceDep,
):
    """
    Mark the job completed (assigned provider only).

    Transitions: assigned -> completed.
    """
    logger.info(f"POST /jobs/{job_id}/complete | provider={actor.actor_id}")
    updated = m.jobs.complete(
        job_id, actor.actor_id, images=body.images, description=body.description
    )
    return to_job_response(updated)


@router.post("/{job_id}/cancel", response_model=JobResponse)
@limiter.limit("20/minute")
def cancel_job(
    request: Request,
    job_id: str,
    actor: ActorDep,
    m: MarketplaceDep,
    body: CancelJobRequest | None = None,
):
    """
    Cancel an open job request (job owner only).

    Transitions: open -> cancelled.
    """
    logger.info(f"POST /jobs/{job_id}/cancel | user={actor.actor_id}")
    reason = body.reason if body else None
    return to_job_response(m.jobs.cancel(job_id, actor.actor_id, reason=reason))


@router.delete("/{job_id}", status_code=status.HTTP_204_NO_CONTENT)
@limiter.limit("20/minute")
def delete_job_request(request: Request, job_id: str, actor: ActorDep, m: MarketplaceDep):
    """Delete an open job request (owner or admin)."""
    logger.info(f"DELETE /jobs/{job_id} | user={actor.actor_id}")
    m.jobs.delete(job_id, actor)


@router.patch("/{job_id}", response_model=JobResponse)
@limiter.limit("20/minute")
def update_job_request(
    request: Request,
    job_id: str,
    body: JobUpdate,
    actor: ActorDep,
    m: MarketplaceDep,
):
    """
    Edit an open job request (owner or admin).

    Status and assignment cannot be changed here.
    """
    changes = body.model_dump(exclude_none=True)
    logger.info(f"PATCH /jobs/{job_id} | user={actor.actor_id} | fields={sorted(changes)}")
    return to_job_response(m.jobs.update(job_id, actor, **changes))
