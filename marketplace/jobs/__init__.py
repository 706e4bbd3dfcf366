"""Job requests and their lifecycle.

States: open -> assigned -> completed, or open -> cancelled.
"""

from marketplace.jobs.models import (
    ASSIGNED_STATUSES,
    VALID_JOB_STATUS_VALUES,
    VALID_JOB_TRANSITIONS,
    Budget,
    CompletionProof,
    JobRequest,
    JobStateTransition,
    JobStatus,
)
from marketplace.jobs.service import JobRequestService

__all__ = [
    "JobRequest",
    "JobStatus",
    "JobStateTransition",
    "Budget",
    "CompletionProof",
    "VALID_JOB_STATUS_VALUES",
    "VALID_JOB_TRANSITIONS",
    "ASSIGNED_STATUSES",
    "JobRequestService",
]
