"""URL discovery: sitemaps, search indexes and link crawling."""

from docset_preload.discovery.base import (
    DiscoveredUrls,
    DiscoveryDiagnostics,
    DiscoveryOptions,
    DiscoveryResult,
    DiscoverySource,
)
from docset_preload.discovery.crawler import LinkCrawler, parse_links_from_html
from docset_preload.discovery.engine import (
    DiscoveryEngine,
    discover_documentation_urls,
    index_base_candidates,
)
from docset_preload.discovery.search_index import SearchIndexSource, parse_search_index_urls
from docset_preload.discovery.sitemap import SitemapSource, parse_sitemap_urls

__all__ = [
    "DiscoveredUrls",
    "DiscoveryDiagnostics",
    "DiscoveryEngine",
    "DiscoveryOptions",
    "DiscoveryResult",
    "DiscoverySource",
    "LinkCrawler",
    "SearchIndexSource",
    "SitemapSource",
    "discover_documentation_urls",
    "index_base_candidates",
    "parse_links_from_html",
    "parse_search_index_urls",
    "parse_sitemap_urls",
]
