"""Rating aggregation.

A user's rating, review count, completed-job count and top-rated badge are
a materialized view over the reviews and job_requests tables. This module
is the only writer of those fields, and it always re-derives them from a
fresh aggregate query rather than adjusting counters, so concurrent
recomputes cannot lose an update and repeated runs are idempotent.
"""

import logging
from typing import TYPE_CHECKING, Optional

from marketplace.config import MarketplaceConfig
from marketplace.errors import NotFoundError
from marketplace.reviews.models import RatingSnapshot
from marketplace.users.models import User

if TYPE_CHECKING:
    from marketplace.storage.base import MarketplaceStorage

logger = logging.getLogger(__name__)

# Page size for recompute_all()
_BATCH_SIZE = 500


class RatingAggregator:
    """Recomputes derived rating fields from source-of-truth records."""

    def __init__(self, storage: "MarketplaceStorage", config: Optional[MarketplaceConfig] = None):
        self.storage = storage
        self.config = config or MarketplaceConfig()

    def is_top_rated(
        self, user: User, rating: float, review_count: int, total_jobs_completed: int
    ) -> bool:
        """Apply the top-rated rule. Non-providers are never top rated."""
        if not user.is_provider:
            return False
        return (
            rating >= self.config.top_rated_min_rating
            and review_count > self.config.top_rated_min_reviews
            and total_jobs_completed > self.config.top_rated_min_completed_jobs
            and user.provider_verified
        )

    def recompute(self, user_id: str) -> RatingSnapshot:
        """Re-derive and store the rating aggregate for one user.

        Raises:
            NotFoundError: If the user does not exist
        """
        with self.storage.transaction():
            user = self.storage.get_user(user_id)
            if user is None:
                raise NotFoundError("User", user_id)
            rating, review_count = self.storage.get_review_aggregate(user_id)
            total_jobs_completed = self.storage.count_completed_jobs(user_id)
            top_rated = self.is_top_rated(user, rating, review_count, total_jobs_completed)
            self.storage.update_user_ratings(
                user_id,
                rating=rating,
                review_count=review_count,
                total_jobs_completed=total_jobs_completed,
                is_top_rated=top_rated,
            )

        logger.debug(
            f"Recomputed rating for {user_id}: rating={rating:.2f} "
            f"reviews={review_count} completed={total_jobs_completed} top_rated={top_rated}"
        )
        return RatingSnapshot(
            user_id=user_id,
            rating=rating,
            review_count=review_count,
            total_jobs_completed=total_jobs_completed,
            is_top_rated=top_rated,
        )

    def snapshot(self, user_id: str) -> RatingSnapshot:
        """Read the stored aggregate without recomputing it."""
        user = self.storage.get_user(user_id)
        if user is None:
            raise NotFoundError("User", user_id)
        return RatingSnapshot(
            user_id=user.id,
            rating=user.rating,
            review_count=user.review_count,
            total_jobs_completed=user.total_jobs_completed,
            is_top_rated=user.is_top_rated,
        )

    def recompute_all(self, role: Optional[str] = None) -> int:
        """Recompute every user (optionally only those holding ``role``).

        Returns the number of users recomputed.
        """
        count = 0
        offset = 0
        while True:
            users = self.storage.list_users(role=role, limit=_BATCH_SIZE, offset=offset)
            if not users:
                break
            for user in users:
                self.recompute(user.id)
                count += 1
            offset += len(users)
        logger.info(f"Recomputed ratings for {count} users")
        return count
