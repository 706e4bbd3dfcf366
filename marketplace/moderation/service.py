"""
Moderation engine.

Participants file complaints against the counter-party on a job; admins
act on them. Each admin action writes the complaint update, its audit
record and (for a ban) the user block in a single transaction: either all
three land or none do.
"""

import logging
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Union

from marketplace.config import MarketplaceConfig
from marketplace.errors import (
    ConflictError,
    DuplicateRecordError,
    ForbiddenError,
    NotFoundError,
    ValidationError,
    VersionConflictError,
)
from marketplace.events import (
    EventPublisher,
    MarketplaceEvent,
    MarketplaceEventType,
    publish_safely,
)
from marketplace.moderation.models import (
    AdminAction,
    AdminActionType,
    Complaint,
    ComplaintAction,
    ComplaintStatus,
    ProblemType,
    VALID_ADMIN_ACTION_TYPE_VALUES,
    VALID_COMPLAINT_ACTION_VALUES,
    VALID_COMPLAINT_STATUS_VALUES,
    VALID_PROBLEM_TYPE_VALUES,
)
from marketplace.types import Actor, generate_id, utc_now

if TYPE_CHECKING:
    from marketplace.storage.base import MarketplaceStorage

logger = logging.getLogger(__name__)

_STATUS_ACTION_TYPES = {
    ComplaintStatus.INVESTIGATING.value: AdminActionType.INVESTIGATE,
    ComplaintStatus.RESOLVED.value: AdminActionType.RESOLVE,
    ComplaintStatus.DISMISSED.value: AdminActionType.DISMISS,
}


def derive_action_type(
    previous_status: str, new_status: str, previous_action: str, new_action: str
) -> AdminActionType:
    """Pick the audit action type for a change.

    A new sanction wins over a status move; anything else is an update.
    """
    if new_action != previous_action and new_action != ComplaintAction.NONE.value:
        return AdminActionType(new_action)
    if new_status != previous_status:
        return _STATUS_ACTION_TYPES[new_status]
    return AdminActionType.UPDATE


def _value(value: Union[str, Any, None]) -> Optional[str]:
    return getattr(value, "value", value)


class ModerationEngine:
    """Complaint lifecycle and the append-only admin action log."""

    def __init__(
        self,
        storage: "MarketplaceStorage",
        config: Optional[MarketplaceConfig] = None,
        publisher: Optional[EventPublisher] = None,
    ):
        self.storage = storage
        self.config = config or MarketplaceConfig()
        self.publisher = publisher

    def file(
        self,
        reporter_id: str,
        reported_user_id: str,
        job_id: str,
        problem_type: Union[ProblemType, str],
        description: str,
    ) -> Complaint:
        """File a complaint against the counter-party on a job.

        Raises:
            ValidationError: Bad problem type or description, self-report, or
                the reported user is not the counter-party
            NotFoundError: Reporter, reported user or job does not exist
            ForbiddenError: Reporter did not take part in the job
            ConflictError: Reporter already has an active complaint on this job
        """
        problem_type = _value(problem_type)
        if problem_type not in VALID_PROBLEM_TYPE_VALUES:
            raise ValidationError(f"Invalid problem type: {problem_type}")
        if not description or not description.strip():
            raise ValidationError("Description is required")
        if len(description) > self.config.max_complaint_description_length:
            raise ValidationError(
                f"Description too long "
                f"(max {self.config.max_complaint_description_length} characters)"
            )
        if reporter_id == reported_user_id:
            raise ValidationError("Cannot file a complaint against yourself")

        if self.storage.get_user(reporter_id) is None:
            raise NotFoundError("User", reporter_id)
        if self.storage.get_user(reported_user_id) is None:
            raise NotFoundError("User", reported_user_id)
        job = self.storage.get_job(job_id)
        if job is None:
            raise NotFoundError("Job request", job_id)
        if not job.is_participant(reporter_id):
            raise ForbiddenError("Only participants of this job request can file a complaint")

        counterparty = job.counterparty_of(reporter_id)
        if counterparty is None:
            raise ValidationError("This job request has no assigned provider to report")
        if counterparty != reported_user_id:
            raise ValidationError("Reported user is not the other participant on this job request")

        try:
            complaint = Complaint(
                id=generate_id(),
                reporter_id=reporter_id,
                reported_user_id=reported_user_id,
                job_request_id=job_id,
                problem_type=problem_type,
                description=description.strip(),
            )
        except (TypeError, ValueError) as e:
            raise ValidationError(str(e)) from e
        try:
            self.storage.save_complaint(complaint)
        except DuplicateRecordError as e:
            raise ConflictError(
                "You already have an active complaint for this job request"
            ) from e

        logger.info(
            f"Complaint filed | id={complaint.id} | job={job_id} | reporter={reporter_id} | "
            f"reported={reported_user_id} | type={problem_type}"
        )
        return complaint

    def act(
        self,
        complaint_id: str,
        admin: Actor,
        status: Optional[Union[ComplaintStatus, str]] = None,
        admin_action: Optional[Union[ComplaintAction, str]] = None,
        admin_notes: Optional[str] = None,
        action_type: Optional[Union[AdminActionType, str]] = None,
        expected_version: Optional[int] = None,
    ) -> Complaint:
        """Apply an admin decision to a complaint.

        Any subset of status, admin_action and admin_notes may change. One
        AdminAction is appended per call. When the resulting sanction is a
        ban, the reported user is blocked in the same transaction.

        Raises:
            ForbiddenError: Caller is not an admin
            ValidationError: Nothing to change, or an unknown value
            NotFoundError: Complaint does not exist
            ConflictError: Complaint is closed, the status move is not
                allowed, or the complaint changed since expected_version
        """
        if not admin.is_admin:
            raise ForbiddenError("Only admins can act on complaints")

        status = _value(status)
        admin_action = _value(admin_action)
        action_type = _value(action_type)
        if status is None and admin_action is None and admin_notes is None:
            raise ValidationError("No changes supplied")
        if status is not None and status not in VALID_COMPLAINT_STATUS_VALUES:
            raise ValidationError(f"Invalid complaint status: {status}")
        if admin_action is not None and admin_action not in VALID_COMPLAINT_ACTION_VALUES:
            raise ValidationError(f"Invalid admin action: {admin_action}")
        if action_type is not None and action_type not in VALID_ADMIN_ACTION_TYPE_VALUES:
            raise ValidationError(f"Invalid action type: {action_type}")
        if admin_notes is not None and len(admin_notes) > self.config.max_admin_notes_length:
            raise ValidationError(
                f"Admin notes too long (max {self.config.max_admin_notes_length} characters)"
            )

        with self.storage.transaction():
            complaint = self.get(complaint_id)
            if expected_version is not None and expected_version != complaint.version:
                raise VersionConflictError(
                    "complaints", complaint_id, expected_version, complaint.version
                )
            if complaint.is_terminal:
                raise ConflictError(f"Complaint is already {complaint.status}")

            previous_status = complaint.status
            previous_action = complaint.admin_action
            version = complaint.version

            if status is not None and status != previous_status:
                if not complaint.can_transition_to(status):
                    raise ConflictError(
                        f"Cannot move complaint from {previous_status} to {status}"
                    )
                complaint.status = status
                if not complaint.is_active:
                    complaint.resolved_at = utc_now()
            if admin_action is not None:
                complaint.admin_action = admin_action
            if admin_notes is not None:
                complaint.admin_notes = admin_notes

            self.storage.update_complaint(complaint, expected_version=version)

            record = AdminAction(
                id=generate_id(),
                complaint_id=complaint_id,
                admin_id=admin.actor_id,
                action_type=action_type
                or derive_action_type(
                    previous_status, complaint.status, previous_action, complaint.admin_action
                ),
                previous_status=previous_status,
                new_status=complaint.status,
                previous_admin_action=previous_action,
                new_admin_action=complaint.admin_action,
                notes=admin_notes or "",
                ip_address=admin.ip_address,
                user_agent=admin.user_agent,
            )
            self.storage.save_admin_action(record)

            if complaint.admin_action == ComplaintAction.BAN.value:
                if not self.storage.block_user(
                    complaint.reported_user_id, reason=f"Banned via complaint {complaint_id}"
                ):
                    raise NotFoundError("User", complaint.reported_user_id)

        logger.info(
            f"Complaint updated | id={complaint_id} | admin={admin.actor_id} | "
            f"action={record.action_type} | status={previous_status}->{complaint.status} | "
            f"sanction={previous_action}->{complaint.admin_action}"
        )
        if complaint.admin_action == ComplaintAction.BAN.value:
            logger.warning(
                f"User blocked | user={complaint.reported_user_id} | complaint={complaint_id}"
            )
        publish_safely(
            self.publisher,
            MarketplaceEvent(
                event_type=MarketplaceEventType.COMPLAINT_UPDATED,
                recipient_id=complaint.reporter_id,
                entity_id=complaint_id,
                payload={"status": complaint.status, "admin_action": complaint.admin_action},
            ),
        )
        return complaint

    # === Queries ===

    def get(self, complaint_id: str) -> Complaint:
        complaint = self.storage.get_complaint(complaint_id)
        if complaint is None:
            raise NotFoundError("Complaint", complaint_id)
        return complaint

    def list_complaints(
        self,
        status: Optional[Union[ComplaintStatus, str]] = None,
        reporter_id: Optional[str] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> List[Complaint]:
        """Complaints, newest first."""
        status = _value(status)
        if status is not None and status not in VALID_COMPLAINT_STATUS_VALUES:
            raise ValidationError(f"Invalid complaint status: {status}")
        return self.storage.list_complaints(
            status=status, reporter_id=reporter_id, limit=limit, offset=offset
        )

    def get_actions(self, complaint_id: str) -> List[AdminAction]:
        """Audit trail for a complaint, oldest first."""
        self.get(complaint_id)
        return self.storage.list_admin_actions(complaint_id)

    def stats(self) -> Dict[str, Any]:
        by_status = {s.value: 0 for s in ComplaintStatus}
        by_status.update(self.storage.count_complaints_by_status())
        return {
            "total": sum(by_status.values()),
            "pending": by_status[ComplaintStatus.PENDING.value],
            "investigating": by_status[ComplaintStatus.INVESTIGATING.value],
            "by_status": by_status,
        }
