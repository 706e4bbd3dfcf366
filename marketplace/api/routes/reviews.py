"""Review and rating routes."""

from datetime import datetime
from typing import Literal

from fastapi import APIRouter, Query, Request, status
from pydantic import BaseModel, Field

from marketplace.logging_config import get_logger
from marketplace.reviews.models import RatingSnapshot, Review

from ..deps import ActorDep, MarketplaceDep
from ..rate_limit import limiter

logger = get_logger("api.reviews")
router = APIRouter(tags=["reviews"])

ReviewRole = Literal["seeker", "provider"]


class ReviewCreate(BaseModel):
    """Request to review the other participant on a completed job."""

    rating: int = Field(..., ge=1, le=5)
    comment: str = ""


class ReviewResponse(BaseModel):
    id: str
    reviewer_id: str
    reviewed_user_id: str
    job_request_id: str
    role: ReviewRole
    rating: int
    comment: str
    created_at: datetime


class RatingResponse(BaseModel):
    """Stored rating aggregate for a user."""

    user_id: str
    rating: float
    review_count: int
    total_jobs_completed: int
    is_top_rated: bool


def to_review_response(review: Review) -> ReviewResponse:
    return ReviewResponse(**review.to_dict())


def to_rating_response(snapshot: RatingSnapshot) -> RatingResponse:
    return RatingResponse(**snapshot.to_dict())


@router.post(
    "/jobs/{job_id}/reviews",
    response_model=ReviewResponse,
    status_code=status.HTTP_201_CREATED,
)
@limiter.limit("20/minute")
def submit_review(
    request: Request,
    job_id: str,
    body: ReviewCreate,
    actor: ActorDep,
    m: MarketplaceDep,
):
    """
    Review the other participant on a completed job.

    The seeker reviews the assigned provider and the provider reviews the
    seeker. One review per direction per job.
    """
    logger.info(f"POST /jobs/{job_id}/reviews | reviewer={actor.actor_id} | rating={body.rating}")
    review = m.reviews.submit(job_id, actor.actor_id, body.rating, body.comment)
    return to_review_response(review)


@router.get("/users/{user_id}/reviews", response_model=list[ReviewResponse])
@limiter.limit("60/minute")
def list_user_reviews(
    request: Request,
    user_id: str,
    actor: ActorDep,
    m: MarketplaceDep,
    role: ReviewRole | None = Query(None, description="Only reviews received in this role"),
):
    """Reviews about a user, newest first."""
    return [to_review_response(r) for r in m.reviews.list_for_user(user_id, role)]


@router.get("/users/{user_id}/rating", response_model=RatingResponse)
@limiter.limit("60/minute")
def get_user_rating(request: Request, user_id: str, actor: ActorDep, m: MarketplaceDep):
    """Stored rating aggregate and top-rated badge for a user."""
    return to_rating_response(m.ratings.snapshot(user_id))
