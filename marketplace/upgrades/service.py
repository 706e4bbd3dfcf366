"""
Upgrade workflow.

A seeker asks to become a provider by submitting supporting attachments;
an admin accepts or rejects. A user may hold at most one pending request
and may submit at most ``max_upgrade_requests`` over their lifetime.

Both limits are enforced inside one serialized write transaction together
with the insert, and the single-pending rule is additionally backed by a
partial unique index, so concurrent submissions cannot both get through.
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
from marketplace.types import Actor, Role, generate_id, utc_now
from marketplace.upgrades.models import (
    VALID_UPGRADE_REQUEST_STATUS_VALUES,
    UpgradeRequest,
    UpgradeRequestStatus,
)
from marketplace.users.models import ProviderUpgradeStatus

if TYPE_CHECKING:
    from marketplace.storage.base import MarketplaceStorage

logger = logging.getLogger(__name__)


class UpgradeWorkflow:
    """Seeker-to-provider upgrade requests."""

    def __init__(
        self,
        storage: "MarketplaceStorage",
        config: Optional[MarketplaceConfig] = None,
        publisher: Optional[EventPublisher] = None,
    ):
        self.storage = storage
        self.config = config or MarketplaceConfig()
        self.publisher = publisher

    def request(self, user_id: str, attachments: List[str], comment: str = "") -> UpgradeRequest:
        """Submit an upgrade request.

        Raises:
            ValidationError: No attachments, or an empty attachment URL
            NotFoundError: User does not exist
            ConflictError: User is already a provider, already has a pending
                request, or has used up their attempts
        """
        if not attachments:
            raise ValidationError("At least one attachment is required")
        if any(not isinstance(a, str) or not a.strip() for a in attachments):
            raise ValidationError("Attachments must be non-empty URLs")

        with self.storage.transaction():
            user = self.storage.get_user(user_id)
            if user is None:
                raise NotFoundError("User", user_id)
            if user.has_role(Role.PROVIDER):
                raise ConflictError("User is already a provider")
            if self.storage.list_upgrade_requests(
                user_id=user_id, status=UpgradeRequestStatus.PENDING.value, limit=1
            ):
                raise ConflictError("You already have a pending upgrade request")
            attempts = self.storage.count_upgrade_requests(user_id)
            if attempts >= self.config.max_upgrade_requests:
                raise ConflictError(
                    f"Maximum of {self.config.max_upgrade_requests} upgrade requests reached"
                )

            request = UpgradeRequest(
                id=generate_id(),
                user_id=user_id,
                attachments=list(attachments),
                comment=comment or "",
            )
            try:
                self.storage.save_upgrade_request(request)
            except DuplicateRecordError as e:
                raise ConflictError("You already have a pending upgrade request") from e

            user.provider_upgrade_status = ProviderUpgradeStatus.PENDING.value
            self.storage.update_user(user)

        logger.info(
            f"Upgrade requested | id={request.id} | user={user_id} | attempt={attempts + 1}"
        )
        return request

    def accept(self, request_id: str, admin: Actor, admin_explanation: str) -> UpgradeRequest:
        """Accept a request and grant the provider role.

        Raises:
            ForbiddenError: Caller is not an admin
            ValidationError: Explanation is empty
            NotFoundError: Request or its user does not exist
            ConflictError: Request is already accepted
        """
        if not admin.is_admin:
            raise ForbiddenError("Only admins can decide upgrade requests")
        if not admin_explanation or not admin_explanation.strip():
            raise ValidationError("An explanation is required to accept an upgrade request")

        with self.storage.transaction():
            request = self.get(request_id)
            if request.status == UpgradeRequestStatus.ACCEPTED.value:
                raise ConflictError("Upgrade request is already accepted")

            now = utc_now()
            if not self.storage.atomic_update_upgrade_status(
                request_id,
                request.status,
                UpgradeRequestStatus.ACCEPTED.value,
                admin_explanation=admin_explanation.strip(),
                decided_by=admin.actor_id,
                decided_at=now,
                viewed_by_user=False,
            ):
                raise ConflictError("Upgrade request was modified concurrently")

            user = self.storage.get_user(request.user_id)
            if user is None:
                raise NotFoundError("User", request.user_id)
            user.grant_role(Role.PROVIDER)
            user.provider_upgrade_status = ProviderUpgradeStatus.ACCEPTED.value
            self.storage.update_user(user)

        request = self.get(request_id)
        logger.info(
            f"Upgrade accepted | id={request_id} | user={request.user_id} | admin={admin.actor_id}"
        )
        self._publish_decision(request)
        return request

    def reject(
        self, request_id: str, admin: Actor, rejection_comment: str = ""
    ) -> UpgradeRequest:
        """Reject a request.

        Raises:
            ForbiddenError: Caller is not an admin
            NotFoundError: Request or its user does not exist
            ConflictError: Request is already rejected
        """
        if not admin.is_admin:
            raise ForbiddenError("Only admins can decide upgrade requests")

        with self.storage.transaction():
            request = self.get(request_id)
            if request.status == UpgradeRequestStatus.REJECTED.value:
                raise ConflictError("Upgrade request is already rejected")

            if not self.storage.atomic_update_upgrade_status(
                request_id,
                request.status,
                UpgradeRequestStatus.REJECTED.value,
                rejection_comment=(rejection_comment or "").strip(),
                decided_by=admin.actor_id,
                decided_at=utc_now(),
                viewed_by_user=False,
            ):
                raise ConflictError("Upgrade request was modified concurrently")

            user = self.storage.get_user(request.user_id)
            if user is None:
                raise NotFoundError("User", request.user_id)
            user.provider_upgrade_status = ProviderUpgradeStatus.REJECTED.value
            self.storage.update_user(user)

        request = self.get(request_id)
        logger.info(
            f"Upgrade rejected | id={request_id} | user={request.user_id} | admin={admin.actor_id}"
        )
        self._publish_decision(request)
        return request

    # === Queries ===

    def get(self, request_id: str) -> UpgradeRequest:
        request = self.storage.get_upgrade_request(request_id)
        if request is None:
            raise NotFoundError("Upgrade request", request_id)
        return request

    def list_for_user(self, user_id: str) -> List[UpgradeRequest]:
        """A user's own requests, newest first."""
        return self.storage.list_upgrade_requests(user_id=user_id)

    def list_requests(
        self, status: Optional[str] = None, limit: int = 100, offset: int = 0
    ) -> List[UpgradeRequest]:
        status = getattr(status, "value", status)
        if status is not None and status not in VALID_UPGRADE_REQUEST_STATUS_VALUES:
            raise ValidationError(f"Invalid upgrade request status: {status}")
        return self.storage.list_upgrade_requests(status=status, limit=limit, offset=offset)

    def mark_viewed(self, user_id: str) -> int:
        """Mark the user's decided requests as seen. Returns how many changed."""
        return self.storage.mark_upgrade_requests_viewed(user_id)

    def _publish_decision(self, request: UpgradeRequest) -> None:
        publish_safely(
            self.publisher,
            MarketplaceEvent(
                event_type=MarketplaceEventType.UPGRADE_DECIDED,
                recipient_id=request.user_id,
                entity_id=request.id,
                payload={"status": request.status},
            ),
        )
