"""Review gate: who may review whom, and when."""

import logging
from typing import TYPE_CHECKING, List, Optional

from marketplace.config import MarketplaceConfig
from marketplace.errors import (
    ConflictError,
    DuplicateRecordError,
    ForbiddenError,
    NotFoundError,
    ValidationError,
)
from marketplace.jobs.models import JobStatus
from marketplace.reviews.models import Review, ReviewRole, validate_rating
from marketplace.reviews.ratings import RatingAggregator
from marketplace.types import generate_id

if TYPE_CHECKING:
    from marketplace.storage.base import MarketplaceStorage

logger = logging.getLogger(__name__)


class ReviewGate:
    """Accepts reviews for completed jobs and triggers rating recomputation."""

    def __init__(
        self,
        storage: "MarketplaceStorage",
        ratings: RatingAggregator,
        config: Optional[MarketplaceConfig] = None,
    ):
        self.storage = storage
        self.ratings = ratings
        self.config = config or MarketplaceConfig()

    def submit(self, job_id: str, reviewer_id: str, rating: int, comment: str = "") -> Review:
        """Review the other participant on a completed job.

        The reviewed party is whoever the reviewer is not: the seeker
        reviews the assigned provider and vice versa.

        Raises:
            NotFoundError: Job does not exist
            ConflictError: Job is not completed, or this review already exists
            ForbiddenError: Reviewer did not take part in the job
            ValidationError: Rating is not an integer from 1 to 5
        """
        job = self.storage.get_job(job_id)
        if job is None:
            raise NotFoundError("Job request", job_id)
        if job.status != JobStatus.COMPLETED.value:
            raise ConflictError("Reviews can only be submitted for completed job requests")
        if not job.is_participant(reviewer_id):
            raise ForbiddenError("Only participants of this job request can review it")

        try:
            rating = validate_rating(rating)
        except ValueError as e:
            raise ValidationError(str(e)) from e
        if len(comment or "") > self.config.max_review_comment_length:
            raise ValidationError(
                f"Comment too long (max {self.config.max_review_comment_length} characters)"
            )

        if reviewer_id == job.seeker_id:
            reviewed_id = job.assigned_provider_id
            role = ReviewRole.PROVIDER
        else:
            reviewed_id = job.seeker_id
            role = ReviewRole.SEEKER

        if self.storage.get_review(reviewer_id, reviewed_id, job_id) is not None:
            raise ConflictError("You have already reviewed this user for this job request")

        try:
            review = Review(
                id=generate_id(),
                reviewer_id=reviewer_id,
                reviewed_user_id=reviewed_id,
                job_request_id=job_id,
                role=role,
                rating=rating,
                comment=comment or "",
            )
        except (TypeError, ValueError) as e:
            raise ValidationError(str(e)) from e
        try:
            self.storage.save_review(review)
        except DuplicateRecordError as e:
            raise ConflictError("You have already reviewed this user for this job request") from e

        logger.info(
            f"Review submitted | job={job_id} | reviewer={reviewer_id} | "
            f"reviewed={reviewed_id} | rating={rating}"
        )
        self.ratings.recompute(reviewed_id)
        return review

    def list_for_user(self, user_id: str, role: Optional[str] = None) -> List[Review]:
        """Reviews about a user, newest first, optionally only for one role."""
        if role is not None:
            role = role.value if isinstance(role, ReviewRole) else role
            if role not in {r.value for r in ReviewRole}:
                raise ValidationError(f"Invalid role: {role}")
        if self.storage.get_user(user_id) is None:
            raise NotFoundError("User", user_id)
        return self.storage.list_reviews(reviewed_user_id=user_id, role=role, limit=None)
