from __future__ import annotations

import asyncio
import time

import httpx
import pytest

from docset_preload.config import FetcherConfig
from docset_preload.errors import FetchError, NotFoundError
from docset_preload.fetcher import PageFetcher


def _slow_client(delay: float) -> httpx.AsyncClient:
    async def handler(request: httpx.Request) -> httpx.Response:
        await asyncio.sleep(delay)
        return httpx.Response(200, text="late")

    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


class TestPageFetcher:
    async def test_returns_body_and_final_url(self, fetcher, docs_site):
        docs_site.add("/guide", "<h1>Guide</h1>")

        result = await fetcher.fetch("https://docs.example.com/guide")

        assert result.status_code == 200
        assert result.body == "<h1>Guide</h1>"
        assert result.final_url == "https://docs.example.com/guide"
        assert result.content_type.startswith("text/html")

    async def test_404_raises_not_found(self, fetcher, docs_site):
        with pytest.raises(NotFoundError) as exc_info:
            await fetcher.fetch("https://docs.example.com/missing")
        assert exc_info.value.status_code == 404

    async def test_non_2xx_raises_fetch_error(self, fetcher, docs_site):
        docs_site.add("/broken", "oops", status=503)

        with pytest.raises(FetchError) as exc_info:
            await fetcher.fetch("https://docs.example.com/broken")
        assert exc_info.value.status_code == 503
        assert "HTTP 503" in exc_info.value.message

    async def test_transport_error_raises_fetch_error(self, fetcher, mock_router):
        mock_router.get("https://down.example.com/").mock(side_effect=httpx.ConnectError("refused"))

        with pytest.raises(FetchError) as exc_info:
            await fetcher.fetch("https://down.example.com/")
        assert exc_info.value.status_code is None

    async def test_sends_user_agent_and_headers(self, fetcher, mock_router):
        route = mock_router.get("https://docs.example.com/ua").respond(200, text="ok")

        await fetcher.fetch("https://docs.example.com/ua", headers={"Accept": "text/html"})

        request = route.calls.last.request
        assert request.headers["Accept"] == "text/html"
        assert "Mozilla" in request.headers["User-Agent"]

    async def test_fetch_text(self, fetcher, docs_site):
        docs_site.add("/sitemap.xml", "<urlset/>", content_type="application/xml")
        assert await fetcher.fetch_text("https://docs.example.com/sitemap.xml", "application/xml") == "<urlset/>"

    async def test_times_out(self):
        async with _slow_client(5) as client:
            async with PageFetcher(FetcherConfig(min_interval_ms=0), client=client) as fetcher:
                with pytest.raises(FetchError, match="timed out after 50ms"):
                    await fetcher.fetch("https://slow.example.com/", timeout_ms=50)

    async def test_cancel_event_aborts_request(self):
        cancel = asyncio.Event()
        async with _slow_client(5) as client:
            async with PageFetcher(FetcherConfig(min_interval_ms=0), client=client) as fetcher:
                asyncio.get_running_loop().call_later(0.05, cancel.set)
                with pytest.raises(FetchError, match="aborted"):
                    await fetcher.fetch("https://slow.example.com/", timeout_ms=5000, cancel=cancel)

    async def test_cancelled_before_start(self):
        cancel = asyncio.Event()
        cancel.set()
        async with _slow_client(0) as client:
            async with PageFetcher(FetcherConfig(min_interval_ms=0), client=client) as fetcher:
                with pytest.raises(FetchError, match="aborted"):
                    await fetcher.fetch("https://slow.example.com/", cancel=cancel)

    async def test_requires_context_manager(self):
        fetcher = PageFetcher(FetcherConfig())
        with pytest.raises(RuntimeError):
            await fetcher.fetch("https://docs.example.com/")


class TestPacingAfterFailures:
    async def test_server_error_still_paces_host(self, docs_site):
        docs_site.add("/broken", "oops", status=500)
        docs_site.add("/ok", "fine")

        async with PageFetcher(FetcherConfig(min_interval_ms=100)) as fetcher:
            with pytest.raises(FetchError):
                await fetcher.fetch("https://docs.example.com/broken")
            failed_at = fetcher.scheduler.last_request_time("docs.example.com")
            assert failed_at is not None

            await fetcher.fetch("https://docs.example.com/ok")
            next_at = fetcher.scheduler.last_request_time("docs.example.com")

        assert next_at - failed_at >= 0.09

    async def test_timeout_still_paces_host(self):
        async with _slow_client(5) as client:
            async with PageFetcher(FetcherConfig(min_interval_ms=100), client=client) as fetcher:
                before = time.monotonic()
                with pytest.raises(FetchError, match="timed out"):
                    await fetcher.fetch("https://slow.example.com/", timeout_ms=20)

                granted = fetcher.scheduler.last_request_time("slow.example.com")
                assert granted is not None and granted >= before
