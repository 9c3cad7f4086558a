"""Preload job models and snapshot persistence."""

from docset_preload.jobs.models import (
    EnqueuedJob,
    JobListEntry,
    JobOutcome,
    JobProgress,
    JobRequest,
    JobSnapshot,
    JobStatus,
    JobStatusView,
    OutcomeState,
    PreloadDocument,
    PreloadJob,
    PreloadJobResult,
)
from docset_preload.jobs.store import JobStore

__all__ = [
    "EnqueuedJob",
    "JobListEntry",
    "JobOutcome",
    "JobProgress",
    "JobRequest",
    "JobSnapshot",
    "JobStatus",
    "JobStatusView",
    "JobStore",
    "OutcomeState",
    "PreloadDocument",
    "PreloadJob",
    "PreloadJobResult",
]
