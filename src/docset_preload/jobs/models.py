"""Preload job state, snapshots and results."""

from datetime import datetime
from enum import Enum
from typing import Literal

from pydantic import Field

from docset_preload.discovery import DiscoveryDiagnostics
from docset_preload.index.models import (
    DocIndex,
    DocumentSummary,
    PreloadBundle,
    PreloadItem,
    SiteIndex,
)
from docset_preload.models import CamelModel, PathError, utc_now_iso
from docset_preload.output import LocalOutput


class JobStatus(str, Enum):
    QUEUED = "queued"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)


class JobRequest(CamelModel):
    """The normalized request parameters recorded with a job."""

    base_url: str
    format: Literal["json", "jsonl"] = "json"
    max_pages: int
    max_discover: int
    max_depth: int
    concurrency: int


class JobProgress(CamelModel):
    discovered: int = 0
    total: int = 0
    completed: int = 0
    failed: int = 0


class JobSnapshot(CamelModel):
    """Durable record of a job, written on every transition and progress update."""

    id: str
    status: JobStatus
    created_at: str
    updated_at: str
    request: JobRequest
    progress: JobProgress = Field(default_factory=JobProgress)
    error: str | None = None


class JobListEntry(CamelModel):
    id: str
    status: str
    updated_at: str


class PreloadDocument(DocumentSummary):
    """A document summary with its Markdown and index attached."""

    content: str = ""
    index: DocIndex | None = None


class PreloadJobResult(CamelModel):
    """Everything a completed job produced."""

    base_url: str
    discovered: int
    preloaded: int
    failed: int
    items: list[PreloadItem] = Field(default_factory=list)
    documents: list[PreloadDocument] = Field(default_factory=list)
    site_index: SiteIndex
    doc_indexes: dict[str, DocIndex] = Field(default_factory=dict)
    errors: list[PathError] = Field(default_factory=list)
    diagnostics: DiscoveryDiagnostics = Field(default_factory=DiscoveryDiagnostics)
    concurrency: int
    local_output: LocalOutput = Field(default_factory=LocalOutput)

    def to_bundle(self) -> PreloadBundle:
        return PreloadBundle(site_index=self.site_index, doc_indexes=self.doc_indexes, docs=self.items)


class PreloadJob(JobSnapshot):
    """In-memory job. Mutated only by the task running it."""

    result: PreloadJobResult | None = Field(default=None, exclude=True)

    def snapshot(self) -> JobSnapshot:
        return JobSnapshot.model_validate(self.model_dump(exclude={"result"}))

    def touch(self) -> None:
        self.updated_at = utc_now_iso()

    @property
    def updated(self) -> datetime:
        return datetime.fromisoformat(self.updated_at)


class EnqueuedJob(CamelModel):
    job_id: str
    status: JobStatus = JobStatus.QUEUED
    status_url: str
    result_url: str


class JobStatusView(CamelModel):
    """Best currently-known state of a job."""

    id: str
    status: str
    created_at: str | None = None
    updated_at: str | None = None
    request: JobRequest | None = None
    progress: JobProgress | None = None
    error: str | None = None
    has_result: bool = False
    message: str | None = None


class OutcomeState(str, Enum):
    COMPLETED = "completed"
    FAILED = "failed"
    UNFINISHED = "unfinished"
    EXPIRED = "expired"
    NOT_FOUND = "not_found"


class JobOutcome(CamelModel):
    state: OutcomeState
    result: PreloadJobResult | None = None
    error: str | None = None
