"""Discovery engine: index files first, then link crawling."""

import logging
from urllib.parse import urlparse, urlunparse

from docset_preload.discovery.base import (
    DiscoveredUrls,
    DiscoveryDiagnostics,
    DiscoveryOptions,
    DiscoveryResult,
    DiscoverySource,
)
from docset_preload.discovery.crawler import LinkCrawler
from docset_preload.discovery.search_index import SearchIndexSource
from docset_preload.discovery.sitemap import SitemapSource
from docset_preload.errors import PreloadError
from docset_preload.fetcher import PageFetcher
from docset_preload.utils.url_utils import dedupe_preserve_order, normalize_url

logger = logging.getLogger(__name__)


def default_sources() -> list[DiscoverySource]:
    return [SitemapSource(), SearchIndexSource()]


def index_base_candidates(base_url: str) -> list[str]:
    """The base URL's directory (with trailing slash) and the site root."""
    parsed = urlparse(base_url)
    path = parsed.path if parsed.path.endswith("/") else f"{parsed.path}/"
    current_dir = urlunparse(parsed._replace(path=path, params="", query="", fragment=""))
    root = urlunparse(parsed._replace(path="/", params="", query="", fragment=""))
    return dedupe_preserve_order([current_dir, root])


class DiscoveryEngine:
    """Produce the set of in-scope page URLs for a documentation site."""

    def __init__(self, fetcher: PageFetcher, sources: list[DiscoverySource] | None = None):
        self.fetcher = fetcher
        self.sources = sources if sources is not None else default_sources()

    async def discover(
        self, base_url: str, options: DiscoveryOptions | None = None
    ) -> DiscoveryResult:
        """Discover URLs under ``base_url``.

        The normalized base URL is always the first entry. Per-source
        failures land in the diagnostics and never abort discovery.
        """
        options = options or DiscoveryOptions()
        normalized_base = normalize_url(base_url)
        discovered = DiscoveredUrls(normalized_base, options.max_discover, options.same_host_only)
        diagnostics = DiscoveryDiagnostics()

        if options.include_indexes:
            for index_base in index_base_candidates(normalized_base):
                for source in self.sources:
                    for source_url in source.candidate_urls(index_base):
                        if discovered.full:
                            break
                        await self._collect(source, source_url, index_base, discovered, diagnostics)

        if options.include_links and not discovered.full:
            crawler = LinkCrawler(self.fetcher)
            await crawler.crawl(normalized_base, discovered, diagnostics, options.max_depth)

        logger.info(
            "Discovered %d URLs for %s (%d sources fetched, %d errors)",
            len(discovered), normalized_base,
            len(diagnostics.fetched), len(diagnostics.errors),
        )
        return DiscoveryResult(urls=discovered.urls, diagnostics=diagnostics)

    async def _collect(
        self,
        source: DiscoverySource,
        source_url: str,
        index_base: str,
        discovered: DiscoveredUrls,
        diagnostics: DiscoveryDiagnostics,
    ) -> None:
        diagnostics.attempted.append(source_url)
        try:
            body = await self.fetcher.fetch_text(source_url, source.accept)
            diagnostics.fetched.append(source_url)
            urls = source.parse(body, source_url, index_base)
        except PreloadError as e:
            logger.debug("%s source %s failed: %s", source.name, source_url, e.message)
            diagnostics.record_error(source_url, e.message)
            return
        added = discovered.extend(urls)
        logger.debug("%s source %s added %d URLs", source.name, source_url, added)


async def discover_documentation_urls(
    base_url: str,
    fetcher: PageFetcher,
    options: DiscoveryOptions | None = None,
) -> DiscoveryResult:
    """Run discovery with the default sources."""
    return await DiscoveryEngine(fetcher).discover(base_url, options)
