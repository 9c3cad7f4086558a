from __future__ import annotations

import json

import pytest

from docset_preload.discovery import (
    DiscoveredUrls,
    DiscoveryEngine,
    DiscoveryOptions,
    discover_documentation_urls,
    index_base_candidates,
    parse_links_from_html,
    parse_search_index_urls,
    parse_sitemap_urls,
)
from docset_preload.errors import DiscoveryError

BASE = "https://docs.example.com/"


def _sitemap(*locs: str) -> str:
    entries = "".join(f"<url><loc>{loc}</loc></url>" for loc in locs)
    return f'<urlset xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">{entries}</urlset>'


class TestParsers:
    def test_links_from_html(self):
        html = """
          <a href="/guide/">Guide</a>
          <a href="https://docs.example.com/api/">API</a>
          <a href="#fragment">Skip</a>
          <a href="mailto:team@example.com">Mail</a>
        """
        urls = parse_links_from_html(html, "https://docs.example.com/start/")
        assert urls == ["https://docs.example.com/guide/", "https://docs.example.com/api/"]

    def test_links_drop_fragments_and_duplicates(self):
        html = '<a href="/a#one">1</a><a href="/a#two">2</a><a href="ftp://x/y">3</a>'
        assert parse_links_from_html(html, BASE) == ["https://docs.example.com/a"]

    def test_sitemap_urls(self):
        xml = """
          <urlset>
            <url><loc>https://docs.example.com/guide/</loc></url>
            <url><loc>/api/</loc></url>
          </urlset>
        """
        urls = parse_sitemap_urls(xml, "https://docs.example.com/sitemap.xml")
        assert urls == ["https://docs.example.com/guide/", "https://docs.example.com/api/"]

    def test_namespaced_sitemap(self):
        xml = _sitemap("https://docs.example.com/a", "https://docs.example.com/b")
        assert parse_sitemap_urls(xml, BASE + "sitemap.xml") == [
            "https://docs.example.com/a",
            "https://docs.example.com/b",
        ]

    def test_malformed_sitemap_raises(self):
        with pytest.raises(DiscoveryError):
            parse_sitemap_urls("<urlset><url>", BASE + "sitemap.xml")

    def test_mkdocs_search_index(self):
        raw = json.dumps({
            "docs": [{"location": "/guide/"}, {"url": "/api/"}],
            "urls": ["/extra/"],
        })
        assert parse_search_index_urls(raw, BASE) == [
            "https://docs.example.com/guide/",
            "https://docs.example.com/api/",
            "https://docs.example.com/extra/",
        ]

    def test_sphinx_search_index(self):
        raw = 'Search.setIndex({"docnames":["intro"],"filenames":["api.html"]})'
        assert parse_search_index_urls(raw, BASE) == [
            "https://docs.example.com/api.html",
            "https://docs.example.com/intro.html",
        ]

    def test_entries_search_index(self):
        raw = json.dumps({"entries": [{"href": "reference/"}, {"url": "https://docs.example.com/x"}]})
        assert parse_search_index_urls(raw, BASE) == [
            "https://docs.example.com/reference/",
            "https://docs.example.com/x",
        ]

    def test_garbage_search_index(self):
        assert parse_search_index_urls("not an index", BASE) == []


class TestDiscoveredUrls:
    def test_base_first_and_capped(self):
        discovered = DiscoveredUrls(BASE, max_discover=3)
        added = discovered.extend([BASE + "a", BASE + "b", BASE + "c"])

        assert added == 2
        assert discovered.urls == [BASE, BASE + "a", BASE + "b"]
        assert discovered.full

    def test_rejects_assets_and_other_hosts(self):
        discovered = DiscoveredUrls(BASE, max_discover=10)

        assert not discovered.add(BASE + "logo.png")
        assert not discovered.add(BASE + "bundle.js")
        assert not discovered.add("https://other.example.com/page")
        assert discovered.add(BASE + "guide.html")

    def test_allows_other_hosts_when_not_restricted(self):
        discovered = DiscoveredUrls(BASE, max_discover=10, same_host_only=False)
        assert discovered.add("https://other.example.com/page")


class TestIndexBases:
    def test_directory_then_root(self):
        assert index_base_candidates("https://docs.example.com/v2/guide") == [
            "https://docs.example.com/v2/guide/",
            "https://docs.example.com/",
        ]

    def test_root_only_once(self):
        assert index_base_candidates(BASE) == [BASE]


class TestDiscoveryOptions:
    def test_clamps(self):
        options = DiscoveryOptions(max_discover=99999, max_depth=0)
        assert options.max_discover == 2000
        assert options.max_depth == 1


class TestDiscoveryEngine:
    async def test_sitemap_then_links(self, fetcher, docs_site):
        docs_site.add("/sitemap.xml", _sitemap(BASE + "guide", BASE + "image.png"), "application/xml")
        docs_site.add("/", '<a href="/api">API</a><a href="https://elsewhere.dev/">x</a>')
        docs_site.add("/api", '<a href="/api/deep">Deep</a>')

        result = await discover_documentation_urls(BASE, fetcher)

        assert result.urls[0] == BASE
        assert result.urls == [BASE, BASE + "guide", BASE + "api", BASE + "api/deep"]
        assert BASE + "sitemap.xml" in result.diagnostics.fetched
        assert any(error.url == BASE + "sitemap_index.xml" for error in result.diagnostics.errors)

    async def test_search_index_source(self, fetcher, docs_site):
        docs_site.add(
            "/search/search_index.json",
            json.dumps({"docs": [{"location": "intro/"}, {"location": "setup/"}]}),
            "application/json",
        )

        result = await discover_documentation_urls(
            BASE, fetcher, DiscoveryOptions(include_links=False)
        )

        assert result.urls == [BASE, BASE + "intro/", BASE + "setup/"]

    async def test_max_discover_limits_results(self, fetcher, docs_site):
        pages = [BASE + f"page-{i}" for i in range(20)]
        docs_site.add("/sitemap.xml", _sitemap(*pages), "application/xml")

        result = await discover_documentation_urls(
            BASE, fetcher, DiscoveryOptions(max_discover=5)
        )

        assert len(result.urls) == 5
        assert result.urls[0] == BASE
        assert BASE + "sitemap_index.xml" not in result.diagnostics.attempted

    async def test_crawl_depth_is_bounded(self, fetcher, docs_site):
        docs_site.add("/", '<a href="/one">1</a>')
        docs_site.add("/one", '<a href="/two">2</a>')
        docs_site.add("/two", '<a href="/three">3</a>')

        result = await DiscoveryEngine(fetcher).discover(
            BASE, DiscoveryOptions(include_indexes=False, max_depth=1)
        )

        # /two is admitted from depth 1 but never fetched, so /three stays unknown
        assert result.urls == [BASE, BASE + "one", BASE + "two"]
        assert "/two" not in docs_site.requested

    async def test_failures_are_diagnostics_only(self, fetcher, docs_site):
        docs_site.add("/sitemap.xml", "<urlset><url>", "application/xml")

        result = await discover_documentation_urls(BASE, fetcher)

        assert result.urls == [BASE]
        assert any("Invalid sitemap" in error.error for error in result.diagnostics.errors)
        assert any(error.url == BASE for error in result.diagnostics.errors)

    async def test_nothing_enabled_returns_base(self, fetcher, docs_site):
        result = await discover_documentation_urls(
            "docs.example.com", fetcher,
            DiscoveryOptions(include_indexes=False, include_links=False),
        )
        assert result.urls == [BASE]
        assert docs_site.requested == []
