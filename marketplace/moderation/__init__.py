"""Complaints and the admin action audit log."""

from marketplace.moderation.models import (
    ACTIVE_COMPLAINT_STATUSES,
    VALID_COMPLAINT_TRANSITIONS,
    AdminAction,
    AdminActionType,
    Complaint,
    ComplaintAction,
    ComplaintStatus,
    ProblemType,
)
from marketplace.moderation.service import ModerationEngine, derive_action_type

__all__ = [
    "Complaint",
    "ComplaintStatus",
    "ComplaintAction",
    "ProblemType",
    "AdminAction",
    "AdminActionType",
    "ACTIVE_COMPLAINT_STATUSES",
    "VALID_COMPLAINT_TRANSITIONS",
    "ModerationEngine",
    "derive_action_type",
]
