"""Durable job snapshots: ``root/<id>/job.json`` plus ``root/jobs.json``."""

import asyncio
import logging
import re
from pathlib import Path

import aiofiles.os  # type: ignore[import-untyped]
from pydantic import ValidationError

from docset_preload.errors import StorageError
from docset_preload.jobs.models import JobListEntry, JobSnapshot
from docset_preload.output.files import read_json, write_json, write_model

logger = logging.getLogger(__name__)

JOB_FILE = "job.json"
JOBS_LIST_FILE = "jobs.json"

_JOB_ID_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_-]*$")


class JobStore:
    """Job snapshot persistence. Writes are serialized; last write wins per job."""

    def __init__(self, root: Path):
        self.root = Path(root)
        self._lock = asyncio.Lock()

    def job_dir(self, job_id: str) -> Path:
        return self.root / job_id

    async def write_snapshot(self, snapshot: JobSnapshot) -> None:
        """Write the job file and refresh the newest-first jobs list."""
        async with self._lock:
            try:
                await aiofiles.os.makedirs(self.job_dir(snapshot.id), exist_ok=True)
            except OSError as e:
                raise StorageError(f"Failed to create job directory: {e}") from e
            await write_model(self.job_dir(snapshot.id) / JOB_FILE, snapshot)

            entries = [entry for entry in await self.read_jobs_list() if entry.id != snapshot.id]
            entries.append(
                JobListEntry(
                    id=snapshot.id,
                    status=snapshot.status.value,
                    updated_at=snapshot.updated_at,
                )
            )
            entries.sort(key=lambda entry: entry.updated_at, reverse=True)
            await write_json(
                self.root / JOBS_LIST_FILE,
                [entry.model_dump(by_alias=True) for entry in entries],
            )

    async def read_snapshot(self, job_id: str) -> JobSnapshot | None:
        if not _JOB_ID_RE.match(job_id):
            return None
        data = await read_json(self.job_dir(job_id) / JOB_FILE)
        if not isinstance(data, dict):
            return None
        try:
            return JobSnapshot.model_validate(data)
        except ValidationError:
            logger.warning("Invalid job snapshot for %s", job_id)
            return None

    async def read_jobs_list(self) -> list[JobListEntry]:
        data = await read_json(self.root / JOBS_LIST_FILE)
        if not isinstance(data, list):
            return []
        entries = []
        for raw in data:
            try:
                entries.append(JobListEntry.model_validate(raw))
            except ValidationError:
                continue
        return entries
