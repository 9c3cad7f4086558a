"""Breadth-first link discovery."""

import logging
from collections import deque

from bs4 import BeautifulSoup

from docset_preload.discovery.base import DiscoveredUrls, DiscoveryDiagnostics
from docset_preload.errors import FetchError
from docset_preload.fetcher import PageFetcher
from docset_preload.utils.url_utils import absolute_http_url, dedupe_preserve_order

logger = logging.getLogger(__name__)

_SKIPPED_HREF_PREFIXES = ("#", "mailto:", "tel:")


def parse_links_from_html(html: str, source_url: str) -> list[str]:
    """Extract all anchor targets from a page as normalized absolute URLs."""
    soup = BeautifulSoup(html, "lxml")
    links = []
    for a in soup.find_all("a", href=True):
        href = str(a["href"]).strip()
        if not href or href.startswith(_SKIPPED_HREF_PREFIXES):
            continue
        url = absolute_http_url(href, source_url)
        if url:
            links.append(url)
    return dedupe_preserve_order(links)


class LinkCrawler:
    """Discover URLs by following links, breadth first, up to ``max_depth``.

    Each frontier URL is visited at most once. Links are admitted into the
    shared :class:`DiscoveredUrls` set; only newly admitted links are queued,
    and only while the current page is shallower than ``max_depth``.
    """

    def __init__(self, fetcher: PageFetcher):
        self.fetcher = fetcher

    async def crawl(
        self,
        start_url: str,
        discovered: DiscoveredUrls,
        diagnostics: DiscoveryDiagnostics,
        max_depth: int,
    ) -> None:
        queue: deque[tuple[str, int]] = deque([(start_url, 0)])
        visited: set[str] = set()

        while queue and not discovered.full:
            url, depth = queue.popleft()
            if depth > max_depth or url in visited:
                continue
            visited.add(url)

            diagnostics.attempted.append(url)
            try:
                result = await self.fetcher.fetch(url, headers={"Accept": "text/html"})
            except FetchError as e:
                logger.debug("Link crawl skipped %s: %s", url, e.message)
                diagnostics.record_error(url, e.message)
                continue
            diagnostics.fetched.append(url)

            # Relative links resolve against the final URL after redirects
            for link in parse_links_from_html(result.body, result.final_url or url):
                if not discovered.add(link):
                    continue
                if depth < max_depth:
                    queue.append((link, depth + 1))
                if discovered.full:
                    break
