from __future__ import annotations

import json

import pytest

from docset_preload.config import JobConfig
from docset_preload.errors import RequestValidationError, StorageError
from docset_preload.jobs import JobStatus, JobStore, OutcomeState
from docset_preload.jobs.store import JOB_FILE, JOBS_LIST_FILE
from docset_preload.orchestrator import NO_PAGES_MESSAGE, JobOrchestrator
from docset_preload.patterns import DocsetType

BASE = "https://docs.example.com"
BODY = "Install the package and configure the client before the first request. " * 4


@pytest.fixture
def small_site(docs_site):
    docs_site.add_page(
        "/",
        "Home",
        f'<h1>Home</h1><p>{BODY}</p><a href="/guide">Guide</a><a href="/api">API</a>'
        '<a href="/broken">Broken</a><a href="/logo.png">Logo</a>',
    )
    docs_site.add_page("/guide", "Guide", f"<h1>Guide</h1><p>{BODY}</p><a href='/api'>API</a>")
    docs_site.add_page("/api", "API", f"<h1>API</h1><p>{BODY}</p>")
    docs_site.add("/broken", "server error", status=500)
    return docs_site


class TitleRenderer:
    def render(self, data, source_url):
        return f"# {data['title']}\n\n{BODY}"


@pytest.fixture
def orchestrator(app_config, fetcher):
    return JobOrchestrator(app_config, fetcher)


async def _run(orchestrator: JobOrchestrator, body: dict) -> str:
    enqueued = await orchestrator.enqueue(body)
    await orchestrator.wait(enqueued.job_id)
    return enqueued.job_id


class TestEnqueue:
    async def test_returns_job_urls(self, orchestrator, small_site):
        enqueued = await orchestrator.enqueue({"baseUrl": BASE})

        assert enqueued.status == JobStatus.QUEUED
        assert enqueued.status_url == f"/api/preload/jobs/{enqueued.job_id}"
        assert enqueued.result_url == f"/api/preload/jobs/{enqueued.job_id}/result"
        await orchestrator.wait(enqueued.job_id)

    async def test_rejects_invalid_request(self, orchestrator):
        with pytest.raises(RequestValidationError, match="baseUrl is required."):
            await orchestrator.enqueue({"paths": ["/a"]})


class TestPreloadJob:
    async def test_completes_and_persists(self, app_config, orchestrator, small_site):
        job_id = await _run(orchestrator, {"baseUrl": BASE, "concurrency": 2})

        outcome = await orchestrator.result(job_id)
        assert outcome.state == OutcomeState.COMPLETED
        result = outcome.result
        assert result.discovered == 4
        assert result.preloaded == 3
        assert result.failed == 1
        assert result.errors[0].path == f"{BASE}/broken"
        assert "HTTP 500" in result.errors[0].error
        assert sorted(doc.title for doc in result.documents) == ["API", "Guide", "Home"]
        assert all(doc.content and doc.index for doc in result.documents)

        output = result.local_output
        assert output.written_docs == 3
        assert (app_config.storage.root / "docs-example-com" / "site-index.json").exists()
        assert len((app_config.storage.root / job_id / "scraped.jsonl").read_text().splitlines()) == 3
        assert output.jsonl_file.endswith("scraped.jsonl")

        status = await orchestrator.status(job_id)
        assert status.status == "completed"
        assert status.has_result
        assert status.progress.total == 4
        assert status.progress.completed == 3
        assert status.progress.failed == 1

        snapshot = json.loads((app_config.storage.root / job_id / JOB_FILE).read_text())
        assert snapshot["status"] == "completed"
        assert snapshot["progress"]["completed"] == 3
        assert "result" not in snapshot

    async def test_base_page_is_fetched_once(self, orchestrator, small_site):
        job_id = await _run(orchestrator, {"baseUrl": BASE, "includeLinks": False})

        result = (await orchestrator.result(job_id)).result
        assert [item.path for item in result.items] == ["/"]
        assert small_site.requested.count("/") == 1

    async def test_user_paths_and_discovered_urls(self, orchestrator, small_site):
        job_id = await _run(orchestrator, {
            "baseUrl": BASE,
            "paths": "api",
            "includeBase": False,
            "includeIndexes": False,
            "includeLinks": False,
        })

        result = (await orchestrator.result(job_id)).result
        assert sorted(item.path for item in result.items) == ["/api", f"{BASE}/"]

    async def test_zero_pages_fails_job(self, orchestrator, docs_site):
        docs_site.add("/", "down", status=500)

        job_id = await _run(orchestrator, {"baseUrl": BASE})

        outcome = await orchestrator.result(job_id)
        assert outcome.state == OutcomeState.FAILED
        assert outcome.error == NO_PAGES_MESSAGE
        status = await orchestrator.status(job_id)
        assert status.status == "failed"
        assert status.error == NO_PAGES_MESSAGE
        assert not status.has_result

    async def test_progress_callback(self, app_config, fetcher, small_site):
        seen = []
        orchestrator = JobOrchestrator(
            app_config, fetcher, on_progress=lambda job: seen.append(job.status)
        )

        await _run(orchestrator, {"baseUrl": BASE, "includeLinks": False})

        assert seen[0] == JobStatus.QUEUED
        assert JobStatus.RUNNING in seen
        assert seen[-1] == JobStatus.COMPLETED

    async def test_rerun_merges_into_store(self, orchestrator, small_site):
        first = await _run(orchestrator, {"baseUrl": BASE})
        second = await _run(orchestrator, {"baseUrl": BASE})

        site_index = await orchestrator.store.read_site_index("docs-example-com")
        assert site_index.total_docs == 3
        first_ids = {doc.url: doc.id for doc in (await orchestrator.result(first)).result.site_index.docs}
        assert {doc.url: doc.id for doc in site_index.docs} == first_ids
        assert (await orchestrator.result(second)).state == OutcomeState.COMPLETED

    async def test_renderer_error_fails_only_its_target(self, app_config, fetcher, site_factory):
        apple = site_factory("developer.apple.com")
        data_root = "/tutorials/data/documentation/swiftui"
        apple.add(f"{data_root}/view.json", json.dumps({"title": "View"}), "application/json")
        apple.add(f"{data_root}/text.json", json.dumps({"kind": "symbol"}), "application/json")
        orchestrator = JobOrchestrator(app_config, fetcher, {DocsetType.APPLE: TitleRenderer()})

        job_id = await _run(orchestrator, {
            "baseUrl": "https://developer.apple.com/documentation/swiftui",
            "paths": ["/documentation/swiftui/view", "/documentation/swiftui/text"],
            "includeBase": False,
            "includeIndexes": False,
            "includeLinks": False,
        })

        outcome = await orchestrator.result(job_id)
        assert outcome.state == OutcomeState.COMPLETED
        assert [item.path for item in outcome.result.items] == ["/documentation/swiftui/view"]
        errors = {error.path: error.error for error in outcome.result.errors}
        assert errors["/documentation/swiftui/text"] == "'title'"


class TestJobLookup:
    async def test_unknown_job(self, orchestrator):
        assert await orchestrator.status("nope") is None
        outcome = await orchestrator.result("nope")
        assert outcome.state == OutcomeState.NOT_FOUND
        assert outcome.error == "Preload job not found."

    async def test_path_like_ids_are_not_found(self, orchestrator):
        assert await orchestrator.status("../jobs") is None

    async def test_completed_job_from_snapshot_is_expired(self, app_config, fetcher, orchestrator, small_site):
        job_id = await _run(orchestrator, {"baseUrl": BASE, "includeLinks": False})

        restarted = JobOrchestrator(app_config, fetcher)
        status = await restarted.status(job_id)
        assert status.status == "completed"
        assert not status.has_result
        outcome = await restarted.result(job_id)
        assert outcome.state == OutcomeState.EXPIRED

    async def test_unfinished_job_from_jobs_list(self, app_config, orchestrator):
        app_config.storage.root.mkdir(parents=True)
        (app_config.storage.root / JOBS_LIST_FILE).write_text(json.dumps([
            {"id": "abc", "status": "running", "updatedAt": "2024-01-01T00:00:00.000Z"},
            {"id": "def", "status": "completed", "updatedAt": "2024-01-01T00:00:00.000Z"},
        ]))

        status = await orchestrator.status("abc")
        assert status.status == "running"
        assert status.message == "Job exists but is unfinished (from jobs.json list)."
        assert await orchestrator.status("def") is None

    async def test_running_snapshot_is_unfinished(self, app_config, orchestrator, small_site):
        job_id = await _run(orchestrator, {"baseUrl": BASE, "includeLinks": False})
        path = app_config.storage.root / job_id / JOB_FILE
        snapshot = json.loads(path.read_text())
        snapshot["status"] = "running"
        path.write_text(json.dumps(snapshot))

        outcome = await JobOrchestrator(app_config, orchestrator.fetcher).result(job_id)
        assert outcome.state == OutcomeState.UNFINISHED
        assert outcome.error == "Preload job exists but is unfinished."

    async def test_terminal_jobs_are_evicted(self, app_config, fetcher, small_site):
        app_config.jobs = JobConfig(max_jobs=1)
        orchestrator = JobOrchestrator(app_config, fetcher)

        first = await _run(orchestrator, {"baseUrl": BASE, "includeLinks": False})
        second = await _run(orchestrator, {"baseUrl": BASE, "includeLinks": False})

        assert (await orchestrator.result(first)).state == OutcomeState.EXPIRED
        assert (await orchestrator.result(second)).state == OutcomeState.COMPLETED

    async def test_jobs_list_is_newest_first(self, app_config, orchestrator, small_site):
        first = await _run(orchestrator, {"baseUrl": BASE, "includeLinks": False})
        second = await _run(orchestrator, {"baseUrl": BASE, "includeLinks": False})

        entries = await JobStore(app_config.storage.root).read_jobs_list()
        assert [entry.id for entry in entries] == [second, first]


class TestUpdateLocalSite:
    async def test_recrawls_stored_base_url(self, orchestrator, small_site):
        await _run(orchestrator, {"baseUrl": BASE, "includeLinks": False})

        enqueued = await orchestrator.update_local_site("docs-example-com")
        await orchestrator.wait(enqueued.job_id)

        status = await orchestrator.status(enqueued.job_id)
        assert status.request.base_url == BASE
        assert status.request.max_pages == 200
        assert status.status == "completed"

    async def test_unknown_site(self, orchestrator):
        with pytest.raises(StorageError, match="not found"):
            await orchestrator.update_local_site("ghost")

    async def test_invalid_slug(self, orchestrator):
        with pytest.raises(RequestValidationError):
            await orchestrator.update_local_site("Not A Slug!")
