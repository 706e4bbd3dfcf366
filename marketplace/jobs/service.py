"""
Job request service.

Owns the job request lifecycle and is the only component that changes a
job's status or assigned provider, and the only one that moves offers out
of ``pending`` after submission.

Every transition is a conditional write ("only if the job is still in the
state I observed") inside one storage transaction, so two concurrent
requests can never both move a job out of the same state.
"""

import logging
from datetime import datetime
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from marketplace.categories import CategoryRegistry, StaticCategoryRegistry
from marketplace.config import MarketplaceConfig
from marketplace.errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from marketplace.events import (
    EventPublisher,
    MarketplaceEvent,
    MarketplaceEventType,
    publish_safely,
)
from marketplace.jobs.models import (
    Budget,
    CompletionProof,
    JobRequest,
    JobStateTransition,
    JobStatus,
)
from marketplace.offers.models import Offer, OfferStatus
from marketplace.types import Actor, Role, coerce_datetime, generate_id, utc_now

if TYPE_CHECKING:
    from marketplace.reviews.ratings import RatingAggregator
    from marketplace.storage.base import MarketplaceStorage

logger = logging.getLogger(__name__)


class JobRequestService:
    """Service for job request lifecycle operations.

    Handles:
    - Creating and editing job requests
    - Assigning one offer and rejecting its competitors
    - Completion by the assigned provider
    - Cancellation and deletion while open
    - State transition logging
    """

    def __init__(
        self,
        storage: "MarketplaceStorage",
        config: Optional[MarketplaceConfig] = None,
        categories: Optional[CategoryRegistry] = None,
        ratings: Optional["RatingAggregator"] = None,
        publisher: Optional[EventPublisher] = None,
    ):
        self.storage = storage
        self.config = config or MarketplaceConfig()
        self.categories = categories or StaticCategoryRegistry(self.config.active_categories)
        self.ratings = ratings
        self.publisher = publisher

    # === Creation ===

    def create(
        self,
        seeker_id: str,
        title: str,
        description: str,
        category: str,
        budget_min: float,
        budget_max: float,
        deadline: datetime,
        attachments: Optional[List[str]] = None,
    ) -> JobRequest:
        """Post a new job request.

        Raises:
            NotFoundError: Seeker does not exist
            ForbiddenError: Seeker lacks the seeker role or is blocked
            ValidationError: Inactive category, bad budget range, past deadline
        """
        seeker = self.storage.get_user(seeker_id)
        if seeker is None:
            raise NotFoundError("User", seeker_id)
        if not seeker.has_role(Role.SEEKER):
            raise ForbiddenError("Only seekers can post job requests")
        if seeker.is_blocked:
            raise ForbiddenError("Blocked users cannot post job requests")

        if not self.categories.is_active(category):
            raise ValidationError(f"Category is not active: {category}")

        deadline = coerce_datetime(deadline)
        if deadline is None or deadline <= utc_now():
            raise ValidationError("Deadline must be in the future")

        if len(title or "") > self.config.max_title_length:
            raise ValidationError(f"Title too long (max {self.config.max_title_length} characters)")
        if len(description or "") > self.config.max_description_length:
            raise ValidationError(
                f"Description too long (max {self.config.max_description_length} characters)"
            )

        try:
            job = JobRequest(
                id=generate_id(),
                seeker_id=seeker_id,
                title=title,
                description=description or "",
                category=category.strip().lower(),
                budget=Budget(min=budget_min, max=budget_max),
                deadline=deadline,
                attachments=list(attachments or []),
            )
        except (TypeError, ValueError) as e:
            raise ValidationError(str(e)) from e

        with self.storage.transaction():
            self.storage.save_job(job)
            self._record_transition(job.id, None, JobStatus.OPEN, seeker_id)

        logger.info(
            f"Job request created | id={job.id} | seeker={seeker_id} | category={job.category}"
        )
        return job

    # === Queries ===

    def get(self, job_id: str) -> JobRequest:
        job = self.storage.get_job(job_id)
        if job is None:
            raise NotFoundError("Job request", job_id)
        return job

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
        """List job requests, newest first."""
        return self.storage.list_jobs(
            status=status,
            category=category.strip().lower() if category else None,
            seeker_id=seeker_id,
            provider_id=provider_id,
            min_budget=min_budget,
            max_budget=max_budget,
            limit=limit,
            offset=offset,
        )

    def get_history(self, job_id: str) -> List[JobStateTransition]:
        """Status transitions for a job, oldest first."""
        self.get(job_id)
        return self.storage.get_transitions(job_id)

    # === Editing ===

    def update(
        self,
        job_id: str,
        actor: Actor,
        title: Optional[str] = None,
        description: Optional[str] = None,
        category: Optional[str] = None,
        budget_min: Optional[float] = None,
        budget_max: Optional[float] = None,
        deadline: Optional[datetime] = None,
        attachments: Optional[List[str]] = None,
    ) -> JobRequest:
        """Edit the details of an open job request.

        Only the owner or an admin may edit, and only while the job is open.
        Status and assignment are never changed here; those move only
        through the lifecycle transitions. Offers already submitted keep
        their price when the budget range changes.

        Raises:
            NotFoundError: Job does not exist
            ForbiddenError: Caller is neither the owner nor an admin
            ConflictError: Job is no longer open
            ValidationError: Nothing to change, or the new values are invalid
        """
        changes = {
            "title": title,
            "description": description,
            "category": category,
            "budget_min": budget_min,
            "budget_max": budget_max,
            "deadline": deadline,
            "attachments": attachments,
        }
        if all(value is None for value in changes.values()):
            raise ValidationError("No changes supplied")

        if category is not None and not self.categories.is_active(category):
            raise ValidationError(f"Category is not active: {category}")
        if deadline is not None:
            deadline = coerce_datetime(deadline)
            if deadline is None or deadline <= utc_now():
                raise ValidationError("Deadline must be in the future")
        if title is not None and len(title) > self.config.max_title_length:
            raise ValidationError(f"Title too long (max {self.config.max_title_length} characters)")
        if description is not None and len(description) > self.config.max_description_length:
            raise ValidationError(
                f"Description too long (max {self.config.max_description_length} characters)"
            )

        with self.storage.transaction():
            job = self.get(job_id)
            if actor.actor_id != job.seeker_id and not actor.is_admin:
                raise ForbiddenError("Only the job owner or an admin can edit this job request")
            if not job.is_open:
                raise ConflictError(f"Only open job requests can be edited (status: {job.status})")

            try:
                updated = JobRequest(
                    id=job.id,
                    seeker_id=job.seeker_id,
                    title=job.title if title is None else title,
                    description=job.description if description is None else description,
                    category=job.category if category is None else category.strip().lower(),
                    budget=Budget(
                        min=job.budget.min if budget_min is None else budget_min,
                        max=job.budget.max if budget_max is None else budget_max,
                    ),
                    deadline=job.deadline if deadline is None else deadline,
                    status=job.status,
                    attachments=job.attachments if attachments is None else list(attachments),
                    created_at=job.created_at,
                    updated_at=utc_now(),
                )
            except (TypeError, ValueError) as e:
                raise ValidationError(str(e)) from e

            if not self.storage.update_open_job(updated):
                raise ConflictError("Job request is no longer open")

        changed = sorted(name for name, value in changes.items() if value is not None)
        logger.info(
            f"Job request updated | id={job_id} | by={actor.actor_id} | "
            f"fields={','.join(changed)}"
        )
        return updated

    # === Transitions ===

    def assign(self, job_id: str, offer_id: str, seeker_id: str) -> JobRequest:
        """Accept one offer and reject every other pending offer on the job.

        Raises:
            NotFoundError: Job or offer does not exist
            ForbiddenError: Caller is not the job owner
            ValidationError: Offer belongs to a different job
            ConflictError: Job is no longer open, or the offer is not pending
        """
        with self.storage.transaction():
            job = self.get(job_id)
            if job.seeker_id != seeker_id:
                raise ForbiddenError("Only the job owner can assign an offer")
            if not job.is_open:
                raise ConflictError(f"Job request is not open (status: {job.status})")

            offer = self.storage.get_offer(offer_id)
            if offer is None:
                raise NotFoundError("Offer", offer_id)
            if offer.job_request_id != job_id:
                raise ValidationError("Offer does not belong to this job request")
            if not offer.is_pending:
                raise ConflictError(f"Offer is not pending (status: {offer.status})")

            updated = self._transition(
                job_id,
                JobStatus.OPEN,
                JobStatus.ASSIGNED,
                assigned_provider_id=offer.provider_id,
                assigned_at=utc_now(),
            )
            if not self.storage.update_offer_status(
                offer_id, OfferStatus.PENDING.value, OfferStatus.ACCEPTED.value
            ):
                raise ConflictError("Offer is no longer pending")
            rejected = self.storage.reject_pending_offers(job_id, exclude_offer_id=offer_id)
            self._record_transition(
                job_id,
                JobStatus.OPEN,
                JobStatus.ASSIGNED,
                seeker_id,
                {"offer_id": offer_id, "rejected_offers": [o.id for o in rejected]},
            )

        logger.info(
            f"Job request assigned | id={job_id} | offer={offer_id} | "
            f"provider={offer.provider_id} | rejected={len(rejected)}"
        )
        publish_safely(
            self.publisher,
            MarketplaceEvent(
                event_type=MarketplaceEventType.OFFER_ACCEPTED,
                recipient_id=offer.provider_id,
                entity_id=offer_id,
                payload={"job_id": job_id},
            ),
        )
        self._publish_rejections(job_id, rejected)
        return updated

    def complete(
        self,
        job_id: str,
        provider_id: str,
        images: Optional[List[str]] = None,
        description: str = "",
    ) -> JobRequest:
        """Mark an assigned job as completed by its provider.

        Raises:
            NotFoundError: Job does not exist
            ConflictError: Job is not assigned
            ForbiddenError: Caller is not the assigned provider
        """
        if images is not None and any(not isinstance(i, str) or not i for i in images):
            raise ValidationError("Completion images must be non-empty URLs")

        with self.storage.transaction():
            job = self.get(job_id)
            if job.status != JobStatus.ASSIGNED.value:
                raise ConflictError(f"Job request is not assigned (status: {job.status})")
            if job.assigned_provider_id != provider_id:
                raise ForbiddenError("Only the assigned provider can complete this job")

            now = utc_now()
            proof = CompletionProof(
                images=list(images or []), description=description or "", completed_at=now
            )
            updated = self._transition(
                job_id,
                JobStatus.ASSIGNED,
                JobStatus.COMPLETED,
                completion_proof=proof,
                completed_at=now,
            )
            self._record_transition(job_id, JobStatus.ASSIGNED, JobStatus.COMPLETED, provider_id)

        logger.info(f"Job request completed | id={job_id} | provider={provider_id}")
        if self.ratings is not None:
            self.ratings.recompute(provider_id)
        publish_safely(
            self.publisher,
            MarketplaceEvent(
                event_type=MarketplaceEventType.JOB_COMPLETED,
                recipient_id=job.seeker_id,
                entity_id=job_id,
                payload={"provider_id": provider_id},
            ),
        )
        return updated

    def cancel(self, job_id: str, actor_id: str, reason: Optional[str] = None) -> JobRequest:
        """Cancel an open job request. Remaining pending offers are rejected."""
        with self.storage.transaction():
            job = self.get(job_id)
            if job.seeker_id != actor_id:
                raise ForbiddenError("Only the job owner can cancel this job request")
            if not job.can_transition_to(JobStatus.CANCELLED):
                raise ConflictError(
                    f"Only open job requests can be cancelled (status: {job.status})"
                )

            updated = self._transition(
                job_id, JobStatus.OPEN, JobStatus.CANCELLED, cancelled_at=utc_now()
            )
            rejected = self.storage.reject_pending_offers(job_id)
            metadata: Dict[str, Any] = {"rejected_offers": [o.id for o in rejected]}
            if reason:
                metadata["reason"] = reason
            self._record_transition(job_id, JobStatus.OPEN, JobStatus.CANCELLED, actor_id, metadata)

        logger.info(f"Job request cancelled | id={job_id} | by={actor_id}")
        self._publish_rejections(job_id, rejected)
        return updated

    def delete(self, job_id: str, actor: Actor) -> None:
        """Delete an open job request along with its offers.

        Only the owner or an admin may delete, and only while the job is
        open. The transition log is kept.
        """
        with self.storage.transaction():
            job = self.get(job_id)
            if actor.actor_id != job.seeker_id and not actor.is_admin:
                raise ForbiddenError("Only the job owner or an admin can delete this job request")
            if not job.is_open:
                raise ConflictError(
                    f"Only open job requests can be deleted (status: {job.status})"
                )

            removed = self.storage.delete_offers_for_job(job_id)
            if not self.storage.delete_job(job_id):
                raise ConflictError("Job request is no longer open")

        logger.info(
            f"Job request deleted | id={job_id} | by={actor.actor_id} | offers_removed={removed}"
        )

    # === Internals ===

    def _transition(
        self, job_id: str, expected: JobStatus, target: JobStatus, **updates
    ) -> JobRequest:
        updated, error = self.storage.atomic_update_job_status(
            job_id, expected.value, target.value, **updates
        )
        if error == "not_found":
            raise NotFoundError("Job request", job_id)
        if error == "conflict":
            raise ConflictError(
                f"Job request was modified concurrently (expected status: {expected.value})"
            )
        return updated

    def _record_transition(
        self,
        job_id: str,
        from_status: Optional[JobStatus],
        to_status: JobStatus,
        actor_id: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.storage.save_transition(
            JobStateTransition(
                id=generate_id(),
                job_id=job_id,
                from_status=from_status.value if from_status else None,
                to_status=to_status.value,
                actor_id=actor_id,
                metadata=metadata or {},
            )
        )

    def _publish_rejections(self, job_id: str, rejected: List[Offer]) -> None:
        for offer in rejected:
            publish_safely(
                self.publisher,
                MarketplaceEvent(
                    event_type=MarketplaceEventType.OFFER_REJECTED,
                    recipient_id=offer.provider_id,
                    entity_id=offer.id,
                    payload={"job_id": job_id},
                ),
            )
