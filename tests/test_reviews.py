"""Tests for the review gate and rating aggregation."""

from datetime import datetime, timedelta, timezone

import pytest

from marketplace.config import MarketplaceConfig
from marketplace.core import Marketplace
from marketplace.errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from marketplace.events import InMemoryEventPublisher
from marketplace.reviews.models import Review


def future_deadline(days: int = 7) -> datetime:
    """Helper to create a future deadline."""
    return datetime.now(timezone.utc) + timedelta(days=days)


def complete_job_between(m: Marketplace, seeker_id: str, provider_id: str, price: float = 200):
    """Run a job through open -> assigned -> completed and return it."""
    job = m.jobs.create(
        seeker_id, "Assemble a wardrobe", "", "repairs", 100, 300, future_deadline()
    )
    offer = m.offers.submit(job.id, provider_id, price)
    m.jobs.assign(job.id, offer.id, seeker_id)
    return m.jobs.complete(job.id, provider_id)


class TestReviewGate:
    """Tests for who may review whom, and when."""

    def test_seeker_reviews_provider(self, marketplace, completed_job, seeker, provider):
        """The seeker's review is about the provider in the provider role."""
        review = marketplace.reviews.submit(completed_job.id, seeker.id, 5, "Great work")

        assert review.reviewed_user_id == provider.id
        assert review.role == "provider"
        assert review.rating == 5

        updated = marketplace.users.get(provider.id)
        assert updated.rating == 5.0
        assert updated.review_count == 1

    def test_provider_reviews_seeker(self, marketplace, completed_job, seeker, provider):
        review = marketplace.reviews.submit(completed_job.id, provider.id, 4)
        assert review.reviewed_user_id == seeker.id
        assert review.role == "seeker"
        assert marketplace.users.get(seeker.id).review_count == 1

    def test_both_directions_allowed(self, marketplace, completed_job, seeker, provider):
        marketplace.reviews.submit(completed_job.id, seeker.id, 5)
        marketplace.reviews.submit(completed_job.id, provider.id, 3)
        assert len(marketplace.reviews.list_for_user(provider.id)) == 1
        assert len(marketplace.reviews.list_for_user(seeker.id)) == 1

    def test_duplicate_review_conflicts(self, marketplace, completed_job, seeker):
        """One review per direction per job."""
        marketplace.reviews.submit(completed_job.id, seeker.id, 5)
        with pytest.raises(ConflictError, match="already reviewed"):
            marketplace.reviews.submit(completed_job.id, seeker.id, 1)

    def test_job_must_be_completed(self, marketplace, assigned_job, seeker):
        with pytest.raises(ConflictError, match="completed job requests"):
            marketplace.reviews.submit(assigned_job.id, seeker.id, 5)

    def test_non_participant_forbidden(self, marketplace, completed_job, provider2):
        with pytest.raises(ForbiddenError, match="Only participants"):
            marketplace.reviews.submit(completed_job.id, provider2.id, 5)

    @pytest.mark.parametrize("rating", [0, 6, 3.5])
    def test_rating_out_of_range(self, marketplace, completed_job, seeker, rating):
        with pytest.raises(ValidationError, match="Rating must be"):
            marketplace.reviews.submit(completed_job.id, seeker.id, rating)

    def test_comment_too_long(self, marketplace, completed_job, seeker):
        with pytest.raises(ValidationError, match="Comment too long"):
            marketplace.reviews.submit(completed_job.id, seeker.id, 5, "x" * 1001)

    def test_comment_limit_from_config(self, storage, completed_job, seeker):
        roomy = Marketplace(
            storage=storage, config=MarketplaceConfig(max_review_comment_length=2000)
        )
        review = roomy.reviews.submit(completed_job.id, seeker.id, 5, "Great work. " * 125)
        assert len(review.comment) == 1500

    def test_unknown_job(self, marketplace, seeker):
        with pytest.raises(NotFoundError):
            marketplace.reviews.submit("missing", seeker.id, 5)

    def test_list_filters_by_role(self, marketplace, seeker, provider, provider2):
        """A dual-role user's reviews can be split by the role they were given in."""
        as_provider = complete_job_between(marketplace, seeker.id, provider.id)
        as_seeker = complete_job_between(marketplace, provider.id, provider2.id)
        marketplace.reviews.submit(as_provider.id, seeker.id, 5)
        marketplace.reviews.submit(as_seeker.id, provider2.id, 2)

        by_role = marketplace.reviews.list_for_user(provider.id, "provider")
        assert [(r.role, r.rating) for r in by_role] == [("provider", 5)]
        by_role = marketplace.reviews.list_for_user(provider.id, "seeker")
        assert [(r.role, r.rating) for r in by_role] == [("seeker", 2)]
        assert len(marketplace.reviews.list_for_user(provider.id)) == 2
        assert marketplace.users.get(provider.id).rating == 3.5

    def test_list_is_not_truncated(self, marketplace, storage, provider):
        for i in range(105):
            storage.save_review(
                Review(
                    id=f"review-{i}",
                    reviewer_id=f"seeker-bulk-{i}",
                    reviewed_user_id=provider.id,
                    job_request_id=f"job-bulk-{i}",
                    role="provider",
                    rating=4,
                )
            )
        assert len(marketplace.reviews.list_for_user(provider.id)) == 105

    def test_list_invalid_role(self, marketplace, seeker):
        with pytest.raises(ValidationError, match="Invalid role"):
            marketplace.reviews.list_for_user(seeker.id, "admin")


class TestRatingAggregator:
    """Tests for rating recomputation."""

    def test_running_average(self, marketplace, seeker, provider):
        """Ratings [5, 4, 3] average 4.0; one more 5 moves it to 4.25 over 4 reviews."""
        for score in (5, 4, 3):
            job = complete_job_between(marketplace, seeker.id, provider.id)
            marketplace.reviews.submit(job.id, seeker.id, score)

        snapshot = marketplace.ratings.snapshot(provider.id)
        assert snapshot.rating == pytest.approx(4.0)
        assert snapshot.review_count == 3

        job = complete_job_between(marketplace, seeker.id, provider.id)
        marketplace.reviews.submit(job.id, seeker.id, 5)

        snapshot = marketplace.ratings.snapshot(provider.id)
        assert snapshot.rating == pytest.approx(4.25)
        assert snapshot.review_count == 4
        assert snapshot.total_jobs_completed == 4

    def test_no_reviews_is_zero(self, marketplace, provider):
        snapshot = marketplace.ratings.recompute(provider.id)
        assert snapshot.rating == 0.0
        assert snapshot.review_count == 0
        assert not snapshot.is_top_rated

    def test_recompute_is_idempotent(self, marketplace, completed_job, seeker, provider):
        marketplace.reviews.submit(completed_job.id, seeker.id, 4)
        first = marketplace.ratings.recompute(provider.id)
        second = marketplace.ratings.recompute(provider.id)
        assert first == second

    def test_recompute_repairs_drift(self, marketplace, storage, completed_job, seeker, provider):
        """Stored aggregates are re-derived from the reviews table."""
        marketplace.reviews.submit(completed_job.id, seeker.id, 4)
        storage.update_user_ratings(
            provider.id, rating=1.0, review_count=99, total_jobs_completed=0, is_top_rated=True
        )

        assert marketplace.ratings.recompute_all() >= 2
        user = marketplace.users.get(provider.id)
        assert user.rating == 4.0
        assert user.review_count == 1
        assert user.total_jobs_completed == 1
        assert not user.is_top_rated

    def test_recompute_missing_user(self, marketplace):
        with pytest.raises(NotFoundError):
            marketplace.ratings.recompute("ghost")

    def test_recompute_all_by_role(self, marketplace, seeker, provider, provider2):
        assert marketplace.ratings.recompute_all(role="provider") == 2


class TestTopRated:
    """Tests for the top-rated badge."""

    @pytest.fixture
    def lenient(self, storage):
        """Marketplace with thresholds low enough to reach in a test."""
        config = MarketplaceConfig(
            top_rated_min_rating=4.5,
            top_rated_min_reviews=1,
            top_rated_min_completed_jobs=1,
        )
        return Marketplace(storage=storage, config=config, publisher=InMemoryEventPublisher())

    def earn_reviews(self, m, seeker_id, provider_id, scores):
        for score in scores:
            job = complete_job_between(m, seeker_id, provider_id)
            m.reviews.submit(job.id, seeker_id, score)

    def test_requires_verification(self, lenient, admin):
        lenient.users.register("s", ["seeker"])
        lenient.users.register("p", ["seeker", "provider"])
        self.earn_reviews(lenient, "s", "p", [5, 5])

        assert not lenient.ratings.snapshot("p").is_top_rated

        user = lenient.verify_provider("p", admin)
        assert user.provider_verified
        assert user.is_top_rated

    def test_thresholds_are_strict(self, lenient, admin):
        """review_count and completed jobs must exceed their minimums."""
        lenient.users.register("s", ["seeker"])
        lenient.users.register("p", ["seeker", "provider"], provider_verified=True)
        self.earn_reviews(lenient, "s", "p", [5])
        assert not lenient.ratings.snapshot("p").is_top_rated

        self.earn_reviews(lenient, "s", "p", [5])
        assert lenient.ratings.snapshot("p").is_top_rated

    def test_low_rating_loses_badge(self, lenient):
        lenient.users.register("s", ["seeker"])
        lenient.users.register("p", ["seeker", "provider"], provider_verified=True)
        self.earn_reviews(lenient, "s", "p", [5, 5])
        assert lenient.ratings.snapshot("p").is_top_rated

        self.earn_reviews(lenient, "s", "p", [1])
        assert not lenient.ratings.snapshot("p").is_top_rated

    def test_revoking_verification_drops_badge(self, lenient, admin):
        lenient.users.register("s", ["seeker"])
        lenient.users.register("p", ["seeker", "provider"], provider_verified=True)
        self.earn_reviews(lenient, "s", "p", [5, 5])

        user = lenient.verify_provider("p", admin, verified=False)
        assert not user.is_top_rated

    def test_verify_requires_admin(self, marketplace, provider, seeker):
        from marketplace.types import Actor

        with pytest.raises(ForbiddenError):
            marketplace.verify_provider(provider.id, Actor(seeker.id, frozenset({"seeker"})))

    def test_verify_non_provider(self, marketplace, seeker, admin):
        with pytest.raises(ValidationError, match="not a provider"):
            marketplace.verify_provider(seeker.id, admin)
