"""Shared fixtures: a fake documentation host behind respx and a temp storage root."""

from __future__ import annotations

import httpx
import pytest
import respx

from docset_preload.config import AppConfig, FetcherConfig, StorageConfig
from docset_preload.fetcher import PageFetcher


class FakeSite:
    """Serves registered paths on one host and answers 404 for everything else."""

    def __init__(self, router: respx.MockRouter, host: str = "docs.example.com"):
        self.host = host
        self.pages: dict[str, tuple[int, str, str]] = {}
        self.requested: list[str] = []
        router.route(host=host).mock(side_effect=self._respond)

    def add(self, path: str, body: str, content_type: str = "text/html", status: int = 200) -> None:
        self.pages[path] = (status, body, content_type)

    def add_page(self, path: str, title: str, body: str) -> None:
        self.add(path, f"<html><head><title>{title}</title></head><body><main>{body}</main></body></html>")

    def _respond(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        self.requested.append(path)
        if path not in self.pages:
            return httpx.Response(404, text="not found")
        status, body, content_type = self.pages[path]
        return httpx.Response(status, text=body, headers={"content-type": content_type})


@pytest.fixture
def app_config(tmp_path) -> AppConfig:
    return AppConfig(
        fetcher=FetcherConfig(min_interval_ms=0, timeout_ms=5000),
        storage=StorageConfig(root=tmp_path / "local"),
    )


@pytest.fixture
def mock_router():
    with respx.mock(assert_all_called=False) as router:
        yield router


@pytest.fixture
def docs_site(mock_router) -> FakeSite:
    return FakeSite(mock_router)


@pytest.fixture
async def fetcher(app_config):
    async with PageFetcher(app_config.fetcher) as page_fetcher:
        yield page_fetcher


@pytest.fixture
def site_factory(mock_router):
    """Build a :class:`FakeSite` for an extra host."""
    return lambda host: FakeSite(mock_router, host)
