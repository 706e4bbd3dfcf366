"""Offer ledger.

Providers submit, edit and withdraw offers against open job requests.
Accepting and rejecting offers is not done here: both happen only through
the job request's assign transition, which owns every offer status change
after submission.
"""

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
from marketplace.events import (
    EventPublisher,
    MarketplaceEvent,
    MarketplaceEventType,
    publish_safely,
)
from marketplace.offers.models import Offer
from marketplace.types import Role, generate_id, utc_now

if TYPE_CHECKING:
    from marketplace.storage.base import MarketplaceStorage

logger = logging.getLogger(__name__)


class OfferLedger:
    """Submission and lookup of offers."""

    def __init__(
        self,
        storage: "MarketplaceStorage",
        config: Optional[MarketplaceConfig] = None,
        publisher: Optional[EventPublisher] = None,
    ):
        self.storage = storage
        self.config = config or MarketplaceConfig()
        self.publisher = publisher

    def submit(
        self,
        job_id: str,
        provider_id: str,
        budget: float,
        message: str = "",
        estimated_days: int = 1,
    ) -> Offer:
        """Submit an offer on an open job request.

        The job is read and the offer inserted inside one write transaction,
        so an assign or cancel cannot land between the open check and the
        insert and leave a pending offer on a closed job.

        Raises:
            NotFoundError: Job or provider does not exist
            ConflictError: Job is not open, or the provider already offered
            ForbiddenError: Caller is not an active provider
            ValidationError: Offer on own job, or price outside the budget range
        """
        if len(message or "") > self.config.max_offer_message_length:
            raise ValidationError(
                f"Message too long (max {self.config.max_offer_message_length} characters)"
            )

        with self.storage.transaction():
            job = self.storage.get_job(job_id)
            if job is None:
                raise NotFoundError("Job request", job_id)
            if not job.is_open:
                raise ConflictError(f"Job request is not accepting offers (status: {job.status})")

            provider = self.storage.get_user(provider_id)
            if provider is None:
                raise NotFoundError("User", provider_id)
            if not provider.has_role(Role.PROVIDER):
                raise ForbiddenError("Only providers can submit offers")
            if provider.is_blocked:
                raise ForbiddenError("Blocked users cannot submit offers")
            if job.seeker_id == provider_id:
                raise ValidationError("Cannot submit an offer on your own job request")

            try:
                offer = Offer(
                    id=generate_id(),
                    job_request_id=job_id,
                    provider_id=provider_id,
                    budget=budget,
                    message=message,
                    estimated_days=estimated_days,
                )
            except (TypeError, ValueError) as e:
                raise ValidationError(str(e)) from e

            if not job.budget.contains(offer.budget):
                raise ValidationError(
                    f"Offer budget must be between {job.budget.min:g} and {job.budget.max:g}"
                )

            # A write joined onto this transaction may have moved the job
            current = self.storage.get_job(job_id)
            if current is None or not current.is_open:
                raise ConflictError("Job request is not accepting offers")

            try:
                self.storage.save_offer(offer)
            except DuplicateRecordError as e:
                raise ConflictError(
                    "You have already submitted an offer for this job request"
                ) from e

        logger.info(f"Offer submitted | id={offer.id} | job={job_id} | provider={provider_id}")
        publish_safely(
            self.publisher,
            MarketplaceEvent(
                event_type=MarketplaceEventType.OFFER_RECEIVED,
                recipient_id=job.seeker_id,
                entity_id=offer.id,
                payload={"job_id": job_id, "provider_id": provider_id, "budget": offer.budget},
            ),
        )
        return offer

    def update(
        self,
        offer_id: str,
        provider_id: str,
        budget: Optional[float] = None,
        message: Optional[str] = None,
        estimated_days: Optional[int] = None,
    ) -> Offer:
        """Change the terms of a pending offer.

        Only the submitting provider may edit, only while the offer is
        pending and its job is open. A new price must still fall inside the
        job's budget range. Status never changes here.

        Raises:
            NotFoundError: Offer does not exist
            ForbiddenError: Caller did not submit the offer
            ConflictError: Offer is not pending, or the job is not open
            ValidationError: Nothing to change, or the new terms are invalid
        """
        if budget is None and message is None and estimated_days is None:
            raise ValidationError("No changes supplied")
        if message is not None and len(message) > self.config.max_offer_message_length:
            raise ValidationError(
                f"Message too long (max {self.config.max_offer_message_length} characters)"
            )

        with self.storage.transaction():
            offer = self.get(offer_id)
            if offer.provider_id != provider_id:
                raise ForbiddenError("Only the provider who submitted this offer can edit it")
            if not offer.is_pending:
                raise ConflictError(f"Only pending offers can be edited (status: {offer.status})")
            job = self.storage.get_job(offer.job_request_id)
            if job is None or not job.is_open:
                raise ConflictError("Job request is not accepting offers")

            try:
                updated = Offer(
                    id=offer.id,
                    job_request_id=offer.job_request_id,
                    provider_id=offer.provider_id,
                    budget=offer.budget if budget is None else budget,
                    message=offer.message if message is None else message,
                    estimated_days=(
                        offer.estimated_days if estimated_days is None else estimated_days
                    ),
                    status=offer.status,
                    created_at=offer.created_at,
                    updated_at=utc_now(),
                )
            except (TypeError, ValueError) as e:
                raise ValidationError(str(e)) from e
            if not job.budget.contains(updated.budget):
                raise ValidationError(
                    f"Offer budget must be between {job.budget.min:g} and {job.budget.max:g}"
                )

            if not self.storage.update_pending_offer(updated):
                raise ConflictError("Offer is no longer pending")

        logger.info(f"Offer updated | id={offer_id} | provider={provider_id}")
        return updated

    def withdraw(self, offer_id: str, provider_id: str) -> None:
        """Remove a pending offer. Accepted and rejected offers are kept.

        Raises:
            NotFoundError: Offer does not exist
            ForbiddenError: Caller did not submit the offer
            ConflictError: Offer is no longer pending
        """
        with self.storage.transaction():
            offer = self.get(offer_id)
            if offer.provider_id != provider_id:
                raise ForbiddenError("Only the provider who submitted this offer can withdraw it")
            if not offer.is_pending:
                raise ConflictError(
                    f"Only pending offers can be withdrawn (status: {offer.status})"
                )
            if not self.storage.delete_pending_offer(offer_id):
                raise ConflictError("Offer is no longer pending")

        logger.info(
            f"Offer withdrawn | id={offer_id} | job={offer.job_request_id} | "
            f"provider={provider_id}"
        )

    def get(self, offer_id: str) -> Offer:
        offer = self.storage.get_offer(offer_id)
        if offer is None:
            raise NotFoundError("Offer", offer_id)
        return offer

    def list_for(self, job_id: str) -> List[Offer]:
        """All offers for a job request, in the order they were submitted."""
        if self.storage.get_job(job_id) is None:
            raise NotFoundError("Job request", job_id)
        return self.storage.list_offers(job_id=job_id, limit=None)

    def list_for_provider(self, provider_id: str, status: Optional[str] = None) -> List[Offer]:
        return self.storage.list_offers(provider_id=provider_id, status=status, limit=None)
