"""Preload job orchestration: discovery, a bounded worker pool, persistence."""

import asyncio
import logging
import uuid
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any

from docset_preload.config import AppConfig
from docset_preload.discovery import DiscoveryEngine, DiscoveryResult
from docset_preload.docset import DocumentationFetcher, DocumentRenderer
from docset_preload.errors import PreloadError, StorageError
from docset_preload.fetcher import PageFetcher
from docset_preload.index import PreloadItem, build_preload_bundle
from docset_preload.jobs import (
    EnqueuedJob,
    JobOutcome,
    JobRequest,
    JobStatus,
    JobStatusView,
    JobStore,
    OutcomeState,
    PreloadDocument,
    PreloadJob,
    PreloadJobResult,
)
from docset_preload.models import PathError, utc_now_iso
from docset_preload.output import LocalSites, LocalStore, ScratchSession
from docset_preload.output.sites import require_site_slug
from docset_preload.patterns import DocsetType
from docset_preload.preload import PreloadRequest, build_preload_targets, exclude_base_url

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[PreloadJob], None]

NO_TARGETS_MESSAGE = "No targets found to preload."
NO_PAGES_MESSAGE = "No pages could be preloaded. Check baseUrl and crawl settings."


class JobOrchestrator:
    """Owns the in-memory job table and runs preload jobs as asyncio tasks.

    Each job is mutated only by its own task. Progress counters are updated
    between awaits on a single event loop, so increments are never lost.
    Terminal jobs are evicted from memory after ``jobs.ttl_seconds`` and,
    oldest first, beyond ``jobs.max_jobs``; snapshots on disk remain the
    source of truth for status queries.
    """

    def __init__(
        self,
        config: AppConfig,
        fetcher: PageFetcher,
        renderers: dict[DocsetType, DocumentRenderer] | None = None,
        on_progress: ProgressCallback | None = None,
    ):
        self.config = config
        self.fetcher = fetcher
        self.discovery = DiscoveryEngine(fetcher)
        self.documents = DocumentationFetcher(fetcher, config.extractor, renderers)
        self.store = LocalStore(config.storage.root)
        self.job_store = JobStore(config.storage.root)
        self.on_progress = on_progress
        self._jobs: dict[str, PreloadJob] = {}
        self._tasks: dict[str, asyncio.Task[None]] = {}

    async def enqueue(self, body: PreloadRequest | dict[str, Any]) -> EnqueuedJob:
        """Validate the request, record a queued job and start it in the background.

        Raises :class:`RequestValidationError` for malformed requests.
        """
        request = body if isinstance(body, PreloadRequest) else PreloadRequest.parse(body)

        self._prune()
        now = utc_now_iso()
        job = PreloadJob(
            id=str(uuid.uuid4()),
            status=JobStatus.QUEUED,
            created_at=now,
            updated_at=now,
            request=JobRequest(
                base_url=request.base_url,
                format=request.format,
                max_pages=request.max_pages,
                max_discover=request.max_discover,
                max_depth=request.max_depth,
                concurrency=request.concurrency,
            ),
        )
        self._jobs[job.id] = job
        await self._persist(job)

        task = asyncio.create_task(self._run_job(job, request), name=f"preload-{job.id}")
        self._tasks[job.id] = task
        task.add_done_callback(lambda _: self._tasks.pop(job.id, None))
        logger.info("Queued preload job %s for %s", job.id, request.base_url)

        return EnqueuedJob(
            job_id=job.id,
            status_url=f"/api/preload/jobs/{job.id}",
            result_url=f"/api/preload/jobs/{job.id}/result",
        )

    async def wait(self, job_id: str) -> None:
        """Wait for a job started by this orchestrator to finish."""
        task = self._tasks.get(job_id)
        if task is not None:
            await task

    async def status(self, job_id: str) -> JobStatusView | None:
        """In-memory state, else the persisted snapshot, else the jobs list."""
        self._prune()
        job = self._jobs.get(job_id)
        if job is not None:
            return JobStatusView(
                id=job.id,
                status=job.status.value,
                created_at=job.created_at,
                updated_at=job.updated_at,
                request=job.request,
                progress=job.progress,
                error=job.error,
                has_result=job.result is not None,
            )

        snapshot = await self.job_store.read_snapshot(job_id)
        if snapshot is not None:
            return JobStatusView(
                id=snapshot.id,
                status=snapshot.status.value,
                created_at=snapshot.created_at,
                updated_at=snapshot.updated_at,
                request=snapshot.request,
                progress=snapshot.progress,
                error=snapshot.error,
                has_result=False,
            )

        for entry in await self.job_store.read_jobs_list():
            if entry.id == job_id and entry.status not in (
                JobStatus.COMPLETED.value, JobStatus.FAILED.value
            ):
                return JobStatusView(
                    id=job_id,
                    status=entry.status,
                    updated_at=entry.updated_at,
                    message="Job exists but is unfinished (from jobs.json list).",
                )
        return None

    async def result(self, job_id: str) -> JobOutcome:
        self._prune()
        job = self._jobs.get(job_id)
        if job is not None:
            if job.status == JobStatus.FAILED:
                return JobOutcome(state=OutcomeState.FAILED, error=job.error or "Preload job failed.")
            if job.status != JobStatus.COMPLETED or job.result is None:
                return JobOutcome(
                    state=OutcomeState.UNFINISHED, error="Preload job is not completed yet."
                )
            return JobOutcome(state=OutcomeState.COMPLETED, result=job.result)

        snapshot = await self.job_store.read_snapshot(job_id)
        if snapshot is not None:
            if snapshot.status == JobStatus.FAILED:
                return JobOutcome(
                    state=OutcomeState.FAILED, error=snapshot.error or "Preload job failed."
                )
            if snapshot.status == JobStatus.COMPLETED:
                return JobOutcome(
                    state=OutcomeState.EXPIRED,
                    error="Preload job completed but its result has expired "
                    "and is no longer available.",
                )
            return JobOutcome(
                state=OutcomeState.UNFINISHED, error="Preload job exists but is unfinished."
            )

        return JobOutcome(state=OutcomeState.NOT_FOUND, error="Preload job not found.")

    async def update_local_site(self, slug: str) -> EnqueuedJob:
        """Re-crawl a stored site from its recorded base URL with default settings."""
        slug = require_site_slug(slug)
        site = await LocalSites(self.store).get_site(slug)
        if site is None:
            raise StorageError(f'Local site "{slug}" not found.')
        return await self.enqueue(self.default_request(site.base_url))

    def default_request(self, base_url: str) -> PreloadRequest:
        """A request for ``base_url`` using the configured crawl defaults."""
        discovery, preload = self.config.discovery, self.config.preload
        return PreloadRequest(
            base_url=base_url,
            max_pages=preload.max_pages,
            concurrency=preload.concurrency,
            include_base=preload.include_base,
            max_discover=discovery.max_discover,
            max_depth=discovery.max_depth,
            include_indexes=discovery.include_indexes,
            include_links=discovery.include_links,
            same_host_only=discovery.same_host_only,
        )

    async def _run_job(self, job: PreloadJob, request: PreloadRequest) -> None:
        try:
            job.status = JobStatus.RUNNING
            await self._persist(job)

            discovery = await self.discovery.discover(
                request.base_url, request.discovery_options()
            )
            # The base URL is already the "" target when include_base is set
            discovered_urls = (
                exclude_base_url(discovery.urls, request.base_url)
                if request.include_base
                else discovery.urls
            )
            targets = build_preload_targets(
                request.include_base, request.max_pages, [*request.paths, *discovered_urls]
            )
            job.progress.discovered = len(discovery.urls)
            job.progress.total = len(targets)
            await self._persist(job)

            if not targets:
                raise PreloadError(NO_TARGETS_MESSAGE)

            scratch = await ScratchSession(self.config.storage.root, job.id).open()
            items, errors = await self._fetch_targets(job, request, targets, scratch)
            if not items:
                raise PreloadError(NO_PAGES_MESSAGE)

            job.result = await self._finalize(request, discovery, items, errors, scratch)
            job.status = JobStatus.COMPLETED
            await self._persist(job)
            logger.info(
                "Preload job %s completed: %d preloaded, %d failed",
                job.id, len(items), len(errors),
            )
        except PreloadError as e:
            await self._fail(job, e.message)
        except ValueError as e:
            await self._fail(job, str(e))
        except Exception as e:
            logger.exception("Preload job %s crashed", job.id)
            await self._fail(job, str(e) or "Unknown preload job error")

    async def _fetch_targets(
        self,
        job: PreloadJob,
        request: PreloadRequest,
        targets: list[str],
        scratch: ScratchSession,
    ) -> tuple[list[PreloadItem], list[PathError]]:
        items: list[PreloadItem] = []
        errors: list[PathError] = []
        cursor = 0

        async def worker() -> None:
            nonlocal cursor
            while True:
                current = cursor
                cursor += 1
                if current >= len(targets):
                    return

                target = targets[current]
                path = target or "/"
                try:
                    page = await self.documents.fetch_markdown(
                        request.base_url, target or None, request.docset_type
                    )
                    item = PreloadItem(
                        path=path,
                        url=page.url,
                        docset_type=page.docset_type,
                        content=page.markdown,
                    )
                    await scratch.write_doc(item)
                    items.append(item)
                    job.progress.completed += 1
                except PreloadError as e:
                    logger.debug("Preload target %s failed: %s", path, e.message)
                    errors.append(PathError(path=path, error=e.message))
                    job.progress.failed += 1
                except Exception as e:
                    # Renderers are pluggable and may raise anything
                    logger.warning("Preload target %s raised", path, exc_info=True)
                    errors.append(PathError(path=path, error=str(e) or type(e).__name__))
                    job.progress.failed += 1
                finally:
                    await self._persist(job)

        pool_size = min(request.concurrency, len(targets))
        await asyncio.gather(*(worker() for _ in range(pool_size)))
        return items, errors

    async def _finalize(
        self,
        request: PreloadRequest,
        discovery: DiscoveryResult,
        items: list[PreloadItem],
        errors: list[PathError],
        scratch: ScratchSession,
    ) -> PreloadJobResult:
        bundle = build_preload_bundle(request.base_url, items)
        local_output = await self.store.write_bundle(bundle)
        local_output.docs_json_dir = str(scratch.docs_json_dir)
        local_output.jsonl_file = str(await scratch.finalize_jsonl())

        documents = []
        for summary in bundle.site_index.docs:
            item = bundle.item_for(summary)
            documents.append(
                PreloadDocument(
                    **summary.model_dump(),
                    content=item.content if item else "",
                    index=bundle.doc_indexes.get(summary.id),
                )
            )

        return PreloadJobResult(
            base_url=request.base_url,
            discovered=len(discovery.urls),
            preloaded=len(items),
            failed=len(errors),
            items=bundle.docs,
            documents=documents,
            site_index=bundle.site_index,
            doc_indexes=bundle.doc_indexes,
            errors=errors,
            diagnostics=discovery.diagnostics,
            concurrency=request.concurrency,
            local_output=local_output,
        )

    async def _fail(self, job: PreloadJob, message: str) -> None:
        logger.warning("Preload job %s failed: %s", job.id, message)
        job.status = JobStatus.FAILED
        job.error = message
        await self._persist(job)

    async def _persist(self, job: PreloadJob) -> None:
        """Touch the job and write its snapshot; write failures are only logged."""
        job.touch()
        try:
            await self.job_store.write_snapshot(job.snapshot())
        except (StorageError, OSError):
            logger.warning("Failed to persist snapshot for job %s", job.id, exc_info=True)
        if self.on_progress is not None:
            self.on_progress(job)

    def _prune(self) -> None:
        now = datetime.now(timezone.utc)
        ttl = self.config.jobs.ttl_seconds
        for job_id, job in list(self._jobs.items()):
            if job.status.is_terminal and (now - job.updated).total_seconds() > ttl:
                del self._jobs[job_id]

        max_jobs = self.config.jobs.max_jobs
        if len(self._jobs) <= max_jobs:
            return
        for job in sorted(self._jobs.values(), key=lambda j: j.updated_at):
            if len(self._jobs) <= max_jobs:
                break
            if not job.status.is_terminal:
                continue
            del self._jobs[job.id]
