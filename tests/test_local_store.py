from __future__ import annotations

import asyncio
import json

import pytest

from docset_preload.errors import RequestValidationError, StorageError
from docset_preload.index import PreloadItem, build_preload_bundle
from docset_preload.output import LocalSites, LocalStore, find_local_doc, normalize_site_slug
from docset_preload.output.local_store import SITE_INDEX_FILE, SITES_INDEX_FILE, rewrite_markdown_links

BASE = "https://docs.example.com"
SLUG = "docs-example-com"

SHARED_PROSE = (
    "Configure the client session with retries, timeouts, proxies, certificates, "
    "cookies, headers, authentication, pooling and streaming responses."
)


def _item(path: str, content: str) -> PreloadItem:
    return PreloadItem(path=path, url=f"{BASE}{path}", content=content)


@pytest.fixture
def store(tmp_path) -> LocalStore:
    return LocalStore(tmp_path / "local")


@pytest.fixture
def sites(store) -> LocalSites:
    return LocalSites(store)


class TestRewriteMarkdownLinks:
    url_to_file = {"https://docs.example.com/api": "api.md"}

    def test_rewrites_local_targets(self):
        markdown = "See [API](/api#auth \"API docs\") and [out](https://elsewhere.dev/)."
        rewritten = rewrite_markdown_links(markdown, f"{BASE}/guide", self.url_to_file)
        assert rewritten == "See [API](api.md#auth \"API docs\") and [out](https://elsewhere.dev/)."

    def test_leaves_images_alone(self):
        markdown = "![diagram](/api)"
        assert rewrite_markdown_links(markdown, BASE, self.url_to_file) == markdown

    def test_angle_bracket_targets(self):
        rewritten = rewrite_markdown_links("[API](<https://docs.example.com/api/?v=2>)", BASE, self.url_to_file)
        assert rewritten == "[API](api.md)"


class TestWriteBundle:
    async def test_writes_site_store(self, store):
        bundle = build_preload_bundle(BASE, [
            _item("/guide", "# Getting Started\n\nSee [API](https://docs.example.com/api)."),
            _item("/api", "# API\n\nReference."),
        ])

        output = await store.write_bundle(bundle)

        site_dir = store.site_dir(SLUG)
        assert output.directory == str(site_dir)
        assert output.written_docs == 2
        assert output.written_indexes == 2
        assert output.errors == []
        assert (site_dir / "getting-started.md").read_text() == "# Getting Started\n\nSee [API](api.md)."

        site_index = json.loads((site_dir / SITE_INDEX_FILE).read_text())
        assert site_index["totalDocs"] == 2
        assert site_index["docs"][0]["contentFile"] == "api.md"

        registry = json.loads((store.root / SITES_INDEX_FILE).read_text())
        assert [entry["slug"] for entry in registry["sites"]] == [SLUG]

        guide_index = await store.read_doc_index(SLUG, "getting-started.index.json")
        assert guide_index.links[0].url == "api.md"
        assert guide_index.links[0].local_doc_id == "doc-00001"

    async def test_merges_with_existing_documents(self, store):
        await store.write_bundle(build_preload_bundle(BASE, [
            _item("/a", "# Alpha\n\nFirst."),
            _item("/b", "# Beta\n\nSecond."),
        ]))

        await store.write_bundle(build_preload_bundle(BASE, [
            _item("/b/", "# Beta\n\nUpdated."),
            _item("/c", "# Gamma\n\nThird."),
        ]))

        site_index = await store.read_site_index(SLUG)
        by_title = {doc.title: doc for doc in site_index.docs}
        assert site_index.total_docs == 3
        assert by_title["Alpha"].id == "doc-00001"
        assert by_title["Beta"].id == "doc-00002"
        assert by_title["Beta"].content_file == "beta.md"
        assert by_title["Gamma"].id == "doc-00003"
        assert (store.site_dir(SLUG) / "beta.md").read_text() == "# Beta\n\nUpdated."

    async def test_keeps_stored_suggestions(self, store):
        await store.write_bundle(build_preload_bundle(BASE, [
            _item("/a", f"# Sessions\n\n{SHARED_PROSE}"),
            _item("/b", f"# Clients\n\n{SHARED_PROSE}"),
        ]))
        first = await store.read_doc_index(SLUG, "sessions.index.json")
        assert [entry.doc_id for entry in first.suggested] == ["doc-00002"]

        await store.write_bundle(build_preload_bundle(BASE, [_item("/a", f"# Sessions\n\n{SHARED_PROSE}")]))

        second = await store.read_doc_index(SLUG, "sessions.index.json")
        assert second.suggested == first.suggested

    async def test_file_names_avoid_files_on_disk(self, store):
        site_dir = store.site_dir(SLUG)
        site_dir.mkdir(parents=True)
        (site_dir / "alpha.md").write_text("unrelated")

        await store.write_bundle(build_preload_bundle(BASE, [_item("/a", "# Alpha\n\nText.")]))

        site_index = await store.read_site_index(SLUG)
        assert site_index.docs[0].content_file == "alpha-2.md"
        assert (site_dir / "alpha.md").read_text() == "unrelated"

    async def test_concurrent_writes_keep_every_registry_entry(self, store):
        bundles = [
            build_preload_bundle(f"https://site{n}.example.com", [
                PreloadItem(path="/", url=f"https://site{n}.example.com/", content=f"# Site {n}\n\nText."),
            ])
            for n in range(4)
        ]

        await asyncio.gather(*(store.write_bundle(bundle) for bundle in bundles))

        assert [entry.slug for entry in await store.read_sites_index()] == [
            f"site{n}-example-com" for n in range(4)
        ]

    async def test_concurrent_writes_to_one_site_merge(self, store):
        await asyncio.gather(
            store.write_bundle(build_preload_bundle(BASE, [_item("/a", "# Alpha\n\nText.")])),
            store.write_bundle(build_preload_bundle(BASE, [_item("/b", "# Beta\n\nText.")])),
        )

        site_index = await store.read_site_index(SLUG)
        assert sorted(doc.title for doc in site_index.docs) == ["Alpha", "Beta"]
        assert sorted(doc.id for doc in site_index.docs) == ["doc-00001", "doc-00002"]
        assert site_index.total_docs == 2


class TestSlugs:
    @pytest.mark.parametrize("value, expected", [
        ("Docs-Example", "docs-example"),
        (" abc123 ", "abc123"),
        ("a--b", None),
        ("-a", None),
        ("a_b", None),
        ("", None),
    ])
    def test_normalize(self, value, expected):
        assert normalize_site_slug(value) == expected


class TestFindLocalDoc:
    @pytest.fixture
    def docs(self):
        bundle = build_preload_bundle(BASE, [
            _item("/guide/install", "# Install\n\nSteps."),
            _item("/guide/install-advanced", "# Install (advanced)\n\nMore."),
            _item("/api", "# API\n\nReference."),
        ])
        return bundle.site_index.docs

    def test_by_id(self, docs):
        assert find_local_doc(docs, doc_id="doc-00002").doc.title == "Install"

    def test_by_url_ignores_fragment_and_slash(self, docs):
        assert find_local_doc(docs, url=f"{BASE}/API/#top").doc.title == "API"

    def test_by_path(self, docs):
        assert find_local_doc(docs, path="guide/install/").doc.title == "Install"

    def test_by_title(self, docs):
        assert find_local_doc(docs, title="install").doc.title == "Install"
        lookup = find_local_doc(docs, title="advanced")
        assert lookup.doc.title == "Install (advanced)"
        assert len(lookup.suggestions) == 1

    def test_without_criteria(self, docs):
        lookup = find_local_doc(docs)
        assert lookup.doc is None
        assert len(lookup.suggestions) == 3


class TestLocalSites:
    async def test_list_rebuilds_missing_registry(self, store, sites):
        await store.write_bundle(build_preload_bundle(BASE, [_item("/a", "# Alpha\n\nText.")]))
        (store.root / SITES_INDEX_FILE).unlink()
        (store.root / "some-job-id").mkdir()

        entries = await sites.list_sites()

        assert [(entry.slug, entry.base_url, entry.total_docs) for entry in entries] == [(SLUG, BASE, 1)]
        assert (store.root / SITES_INDEX_FILE).exists()

    async def test_load_latest_site(self, store, sites):
        with pytest.raises(StorageError, match="No local documentation sites"):
            await sites.load_site_index()

        await store.write_bundle(build_preload_bundle(BASE, [_item("/a", "# Alpha\n\nText.")]))
        slug, site_index = await sites.load_site_index()
        assert slug == SLUG
        assert site_index.base_url == BASE

    async def test_read_doc_content(self, store, sites):
        await store.write_bundle(build_preload_bundle(BASE, [_item("/a", "# Alpha\n\nText.")]))

        assert await sites.read_doc_content(SLUG, "alpha.md") == "# Alpha\n\nText."
        with pytest.raises(StorageError, match="Invalid contentFile path"):
            await sites.read_doc_content(SLUG, "../sites-index.json")

    async def test_find_doc_by_url(self, store, sites):
        await store.write_bundle(build_preload_bundle(BASE, [_item("/a", "# Alpha\n\nText.")]))

        located = await sites.find_doc_by_url(f"{BASE}/a?ref=nav")
        assert located.slug == SLUG
        assert located.doc.title == "Alpha"
        assert await sites.find_doc_by_url(f"{BASE}/missing") is None

    async def test_rename_and_delete(self, store, sites):
        await store.write_bundle(build_preload_bundle(BASE, [_item("/a", "# Alpha\n\nText.")]))

        await sites.rename_site(SLUG, "Example")
        assert [site.slug for site in await sites.list_sites()] == ["example"]
        assert not store.site_dir(SLUG).exists()

        await sites.delete_site("example")
        assert not store.site_dir("example").exists()
        assert await store.read_sites_index() == []

    async def test_rename_rejects_existing_target(self, store, sites):
        await store.write_bundle(build_preload_bundle(BASE, [_item("/a", "# Alpha\n\nText.")]))
        await store.write_bundle(build_preload_bundle("https://other.example.com", [
            PreloadItem(path="/", url="https://other.example.com/", content="# Other\n\nText."),
        ]))

        with pytest.raises(RequestValidationError, match="already exists"):
            await sites.rename_site(SLUG, "other-example-com")

    async def test_admin_rejects_invalid_slugs(self, sites):
        with pytest.raises(RequestValidationError):
            await sites.delete_site("../etc")
        with pytest.raises(RequestValidationError, match="Invalid new slug"):
            await sites.rename_site("valid", "Not Valid")

    async def test_rename_missing_site(self, sites):
        with pytest.raises(StorageError, match="not found"):
            await sites.rename_site("ghost", "spirit")

    async def test_site_reads_reject_paths_outside_root(self, store, sites, tmp_path):
        outside = tmp_path / "outside"
        outside.mkdir()
        (outside / SITE_INDEX_FILE).write_text(json.dumps({"baseUrl": "https://secret.example.com"}))
        (outside / "secret.md").write_text("top secret payload")

        with pytest.raises(RequestValidationError):
            await sites.load_site_index("../outside")
        with pytest.raises(RequestValidationError):
            await sites.read_doc_content("../outside", "secret.md")
