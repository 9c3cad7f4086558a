"""HTTP fetcher paced per host."""

import asyncio
import logging

import httpx

from docset_preload.config import FetcherConfig
from docset_preload.errors import FetchError, NotFoundError
from docset_preload.fetcher.base import FetchResult
from docset_preload.utils.rate_limiter import HostScheduler, host_key

logger = logging.getLogger(__name__)


class PageFetcher:
    """Fetch pages through a :class:`HostScheduler` with a hard timeout.

    The per-request timeout always applies. A caller may also pass an
    ``asyncio.Event``; setting it aborts the request. Whichever fires first
    wins. Non-2xx responses, timeouts and transport errors all surface as
    :class:`FetchError` (:class:`NotFoundError` for 404).
    """

    def __init__(
        self,
        config: FetcherConfig,
        scheduler: HostScheduler | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        self.config = config
        self.scheduler = scheduler or HostScheduler()
        self._client = client
        self._owns_client = client is None

    async def __aenter__(self):
        """Initialize HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                follow_redirects=True,
                timeout=self.config.timeout_ms / 1000,
            )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Clean up HTTP client."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def fetch(
        self,
        url: str,
        headers: dict[str, str] | None = None,
        timeout_ms: int | None = None,
        cancel: asyncio.Event | None = None,
    ) -> FetchResult:
        """Fetch ``url`` once its host's pacing slot is granted."""
        if self._client is None:
            raise RuntimeError("Fetcher not initialized. Use 'async with' context manager.")

        request_headers = {"User-Agent": self.config.user_agent}
        if headers:
            request_headers.update(headers)
        timeout_ms = timeout_ms or self.config.timeout_ms

        async with self.scheduler.slot(host_key(url), self.config.min_interval_ms):
            response = await self._send(url, request_headers, timeout_ms, cancel)

        if response.status_code == 404:
            raise NotFoundError(url)
        if not response.is_success:
            raise FetchError(url, status_code=response.status_code)

        return FetchResult(
            url=url,
            final_url=str(response.url),
            status_code=response.status_code,
            body=response.text,
            content_type=response.headers.get("content-type", ""),
        )

    async def fetch_text(self, url: str, accept: str) -> str:
        """Fetch ``url`` and return its body, asking for ``accept`` content."""
        result = await self.fetch(url, headers={"Accept": accept})
        return result.body

    async def _send(
        self,
        url: str,
        headers: dict[str, str],
        timeout_ms: int,
        cancel: asyncio.Event | None,
    ) -> httpx.Response:
        assert self._client is not None
        if cancel is not None and cancel.is_set():
            raise FetchError(url, reason="request aborted")

        request = asyncio.ensure_future(self._client.get(url, headers=headers))
        waiters: set[asyncio.Future] = {request}
        aborted: asyncio.Future | None = None
        if cancel is not None:
            aborted = asyncio.ensure_future(cancel.wait())
            waiters.add(aborted)

        try:
            done, _ = await asyncio.wait(
                waiters,
                timeout=timeout_ms / 1000,
                return_when=asyncio.FIRST_COMPLETED,
            )
        finally:
            for waiter in waiters:
                if not waiter.done():
                    waiter.cancel()

        if request not in done:
            if aborted is not None and aborted in done:
                raise FetchError(url, reason="request aborted")
            raise FetchError(url, reason=f"timed out after {timeout_ms}ms")

        try:
            return request.result()
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            logger.debug("Transport error for %s", url, exc_info=True)
            raise FetchError(url, reason=str(e) or type(e).__name__) from e
