"""
Storage protocol for the marketplace core.

Services depend on this protocol, not on a concrete backend. Conditional
writes (``atomic_update_*``, ``update_offer_status``, ``update_complaint``)
only apply when the stored row still matches the state the caller
observed; they are the compare-and-swap primitives every state transition
is built on.

``transaction()`` groups several calls into one atomic unit. Calls made
inside it on the same thread join the transaction; calls made outside it
run in their own.
"""

from typing import ContextManager, Dict, List, Optional, Protocol, Tuple

from marketplace.jobs.models import JobRequest, JobStateTransition
from marketplace.moderation.models import AdminAction, Complaint
from marketplace.offers.models import Offer
from marketplace.reviews.models import Review
from marketplace.upgrades.models import UpgradeRequest
from marketplace.users.models import User


class MarketplaceStorage(Protocol):
    """Protocol for marketplace persistence backends."""

    def transaction(self) -> ContextManager:
        """Serialized write transaction. Rolls back on any exception."""
        ...

    # === Users ===

    def save_user(self, user: User) -> str:
        """Insert a user. Raises DuplicateRecordError if the ID exists."""
        ...

    def get_user(self, user_id: str) -> Optional[User]:
        ...

    def update_user(self, user: User) -> bool:
        """Update roles, profiles, upgrade status and block state.

        Derived rating fields are not written here; see update_user_ratings().
        """
        ...

    def update_user_ratings(
        self,
        user_id: str,
        rating: float,
        review_count: int,
        total_jobs_completed: int,
        is_top_rated: bool,
    ) -> bool:
        """Write the derived rating aggregate."""
        ...

    def block_user(self, user_id: str, reason: Optional[str] = None) -> bool:
        ...

    def list_users(
        self, role: Optional[str] = None, limit: int = 100, offset: int = 0
    ) -> List[User]:
        ...

    def count_users(self, role: Optional[str] = None) -> int:
        ...

    # === Job requests ===

    def save_job(self, job: JobRequest) -> str:
        ...

    def get_job(self, job_id: str) -> Optional[JobRequest]:
        ...

    def list_jobs(
        self,
        status: Optional[str] = None,
        category: Optional[str] = None,
        seeker_id: Optional[str] = None,
        provider_id: Optional[str] = None,
        min_budget: Optional[float] = None,
        max_budget: Optional[float] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> List[JobRequest]:
        """List jobs, newest first."""
        ...

    def atomic_update_job_status(
        self, job_id: str, expected_status: str, new_status: str, **updates
    ) -> Tuple[Optional[JobRequest], Optional[str]]:
        """Move a job from expected_status to new_status.

        Returns:
            (job, None) on success, (None, "not_found") or (None, "conflict")
        """
        ...

    def update_open_job(self, job: JobRequest) -> bool:
        """Rewrite a job's editable fields while it is open. Returns False otherwise."""
        ...

    def delete_job(self, job_id: str) -> bool:
        """Delete a job that is still open. Returns False otherwise."""
        ...

    def count_jobs_by_status(self) -> Dict[str, int]:
        ...

    def count_completed_jobs(self, provider_id: str) -> int:
        ...

    def save_transition(self, transition: JobStateTransition) -> str:
        ...

    def get_transitions(self, job_id: str) -> List[JobStateTransition]:
        """Transitions for a job, oldest first."""
        ...

    # === Offers ===

    def save_offer(self, offer: Offer) -> str:
        """Insert an offer. Raises DuplicateRecordError for a second offer
        by the same provider on the same job."""
        ...

    def get_offer(self, offer_id: str) -> Optional[Offer]:
        ...

    def list_offers(
        self,
        job_id: Optional[str] = None,
        provider_id: Optional[str] = None,
        status: Optional[str] = None,
        limit: Optional[int] = 100,
    ) -> List[Offer]:
        """List offers in creation order. ``limit=None`` returns every match."""
        ...

    def update_offer_status(self, offer_id: str, expected_status: str, new_status: str) -> bool:
        ...

    def reject_pending_offers(
        self, job_id: str, exclude_offer_id: Optional[str] = None
    ) -> List[Offer]:
        """Reject every pending offer of a job. Returns the offers it rejected."""
        ...

    def update_pending_offer(self, offer: Offer) -> bool:
        """Rewrite an offer's terms while it is pending. Returns False otherwise."""
        ...

    def delete_pending_offer(self, offer_id: str) -> bool:
        ...

    def delete_offers_for_job(self, job_id: str) -> int:
        ...

    # === Reviews ===

    def save_review(self, review: Review) -> str:
        """Insert a review. Raises DuplicateRecordError on a repeat
        (reviewer, reviewed user, job)."""
        ...

    def get_review(
        self, reviewer_id: str, reviewed_user_id: str, job_id: str
    ) -> Optional[Review]:
        ...

    def list_reviews(
        self,
        reviewed_user_id: Optional[str] = None,
        reviewer_id: Optional[str] = None,
        job_id: Optional[str] = None,
        role: Optional[str] = None,
        limit: Optional[int] = 100,
    ) -> List[Review]:
        """List reviews, newest first. ``limit=None`` returns every match."""
        ...

    def get_review_aggregate(self, user_id: str) -> Tuple[float, int]:
        """(mean rating, count) over reviews about user_id. Mean is 0.0 when none."""
        ...

    # === Complaints ===

    def save_complaint(self, complaint: Complaint) -> str:
        """Insert a complaint. Raises DuplicateRecordError if the reporter
        already has an active complaint on the job."""
        ...

    def get_complaint(self, complaint_id: str) -> Optional[Complaint]:
        ...

    def list_complaints(
        self,
        status: Optional[str] = None,
        reporter_id: Optional[str] = None,
        reported_user_id: Optional[str] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> List[Complaint]:
        ...

    def update_complaint(self, complaint: Complaint, expected_version: int) -> bool:
        """Write a complaint if its stored version is expected_version.

        Raises VersionConflictError on a mismatch. Returns False if the
        complaint does not exist.
        """
        ...

    def count_complaints_by_status(self) -> Dict[str, int]:
        ...

    def save_admin_action(self, action: AdminAction) -> str:
        ...

    def list_admin_actions(self, complaint_id: str) -> List[AdminAction]:
        """Actions for a complaint, oldest first."""
        ...

    # === Upgrade requests ===

    def save_upgrade_request(self, request: UpgradeRequest) -> str:
        """Insert a request. Raises DuplicateRecordError if the user already
        has a pending one."""
        ...

    def get_upgrade_request(self, request_id: str) -> Optional[UpgradeRequest]:
        ...

    def list_upgrade_requests(
        self,
        user_id: Optional[str] = None,
        status: Optional[str] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> List[UpgradeRequest]:
        ...

    def count_upgrade_requests(self, user_id: str) -> int:
        ...

    def atomic_update_upgrade_status(
        self, request_id: str, expected_status: str, new_status: str, **updates
    ) -> bool:
        ...

    def mark_upgrade_requests_viewed(self, user_id: str) -> int:
        ...

    def count_upgrade_requests_by_status(self) -> Dict[str, int]:
        ...
