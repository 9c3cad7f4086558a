"""Durable per-site store: site index, Markdown files and per-document indexes."""

import asyncio
import logging
import re
from pathlib import Path
from urllib.parse import urlparse

import aiofiles.os  # type: ignore[import-untyped]
from pydantic import Field, ValidationError

from docset_preload.errors import StorageError
from docset_preload.index.builder import doc_id_for, unique_file_base
from docset_preload.index.models import (
    DocIndex,
    DocumentSummary,
    LinkEntry,
    PreloadBundle,
    SiteIndex,
    SuggestedDoc,
)
from docset_preload.models import CamelModel, utc_now_iso
from docset_preload.output.files import read_json, write_model, write_text
from docset_preload.utils.url_utils import (
    is_http_url,
    local_comparable_url,
    resolve_url,
    site_slug_from_base_url,
    slugify,
)

logger = logging.getLogger(__name__)

SITE_INDEX_FILE = "site-index.json"
SITES_INDEX_FILE = "sites-index.json"

_LINK_RE = re.compile(r"\[([^\]]+)\]\(([^)]+)\)")
_LINK_TARGET_RE = re.compile(r"^(\S+)(\s+.+)?$", re.DOTALL)
_DOC_ID_RE = re.compile(r"^doc-(\d+)$")


class SitesIndexEntry(CamelModel):
    slug: str
    base_url: str
    total_docs: int = 0
    updated_at: str = Field(default_factory=utc_now_iso)


class SitesIndex(CamelModel):
    """Registry of every local site, for listing without scanning directories."""

    version: int = 1
    generated_at: str = Field(default_factory=utc_now_iso)
    sites: list[SitesIndexEntry] = Field(default_factory=list)


class LocalOutput(CamelModel):
    """Where a job's output went."""

    directory: str = ""
    written_docs: int = 0
    written_indexes: int = 0
    site_index_file: str = SITE_INDEX_FILE
    docs_json_dir: str = ""
    jsonl_file: str = ""
    errors: list[str] = Field(default_factory=list)


def _parse_link_target(raw_target: str) -> tuple[str, str] | None:
    """Split a Markdown link target into ``(href, title_suffix)``."""
    target = raw_target.strip()
    if not target:
        return None
    if target.startswith("<"):
        closing = target.find(">")
        if closing > 1:
            return target[1:closing], target[closing + 1:]
    match = _LINK_TARGET_RE.match(target)
    if not match:
        return None
    return match.group(1), match.group(2) or ""


def _local_href(url: str, url_to_file: dict[str, str]) -> str | None:
    if not is_http_url(url):
        return None
    local_file = url_to_file.get(local_comparable_url(url))
    if not local_file:
        return None
    fragment = urlparse(url).fragment
    return f"{local_file}#{fragment}" if fragment else local_file


def rewrite_markdown_links(markdown: str, source_url: str, url_to_file: dict[str, str]) -> str:
    """Point links at locally stored documents to their Markdown files.

    Image links are left alone. Fragments and link titles are kept.
    """

    def replace_link(match: re.Match[str]) -> str:
        start = match.start()
        if start > 0 and markdown[start - 1] == "!":
            return match.group(0)
        parsed = _parse_link_target(match.group(2))
        if parsed is None:
            return match.group(0)
        href, title_suffix = parsed
        local = _local_href(resolve_url(href, source_url), url_to_file)
        if local is None:
            return match.group(0)
        return f"[{match.group(1)}]({local}{title_suffix})"

    return _LINK_RE.sub(replace_link, markdown)


def rewrite_doc_index_links(doc_index: DocIndex, url_to_file: dict[str, str]) -> DocIndex:
    links = []
    for link in doc_index.links:
        local = _local_href(link.url, url_to_file)
        links.append(link if local is None else link.model_copy(update={"url": local}))
    return doc_index.model_copy(update={"links": links})


def build_local_file_map(docs: list[DocumentSummary], base_url: str) -> dict[str, str]:
    """Comparable URL (from the doc URL and from its path) to content file."""
    url_to_file: dict[str, str] = {}
    for doc in docs:
        url_to_file[local_comparable_url(doc.url)] = doc.content_file
        if doc.path:
            resolved = resolve_url(doc.path, base_url)
            if is_http_url(resolved):
                url_to_file.setdefault(local_comparable_url(resolved), doc.content_file)
    return url_to_file


class LocalStore:
    """Read and write site stores under ``root``.

    Layout::

        root/sites-index.json
        root/<slug>/site-index.json
        root/<slug>/<file-base>.md
        root/<slug>/<file-base>.index.json
    """

    def __init__(self, root: Path):
        self.root = Path(root)
        self._registry_lock = asyncio.Lock()
        self._site_locks: dict[str, asyncio.Lock] = {}

    def _site_lock(self, slug: str) -> asyncio.Lock:
        return self._site_locks.setdefault(slug, asyncio.Lock())

    def site_dir(self, slug: str) -> Path:
        return self.root / slug

    async def read_site_index(self, slug: str) -> SiteIndex | None:
        data = await read_json(self.site_dir(slug) / SITE_INDEX_FILE)
        if not isinstance(data, dict):
            return None
        try:
            return SiteIndex.model_validate(data)
        except ValidationError:
            logger.warning("Invalid %s for site %s", SITE_INDEX_FILE, slug)
            return None

    async def read_doc_index(self, slug: str, index_file: str) -> DocIndex | None:
        data = await read_json(self.site_dir(slug) / index_file)
        if not isinstance(data, dict):
            return None
        try:
            return DocIndex.model_validate(data)
        except ValidationError:
            logger.warning("Invalid document index %s for site %s", index_file, slug)
            return None

    async def read_sites_index(self) -> list[SitesIndexEntry]:
        """Registry entries sorted by slug; empty when the registry is missing."""
        data = await read_json(self.root / SITES_INDEX_FILE)
        if not isinstance(data, dict) or not isinstance(data.get("sites"), list):
            return []
        entries = []
        for raw in data["sites"]:
            if not isinstance(raw, dict) or not raw.get("slug") or not raw.get("baseUrl"):
                continue
            try:
                entries.append(SitesIndexEntry.model_validate(raw))
            except ValidationError:
                continue
        return sorted(entries, key=lambda entry: entry.slug)

    async def write_sites_index(self, entries: list[SitesIndexEntry]) -> None:
        try:
            await aiofiles.os.makedirs(self.root, exist_ok=True)
        except OSError as e:
            raise StorageError(f"Failed to create {self.root}: {e}") from e
        registry = SitesIndex(sites=sorted(entries, key=lambda entry: entry.slug))
        await write_model(self.root / SITES_INDEX_FILE, registry)

    async def update_sites_index(self, entry: SitesIndexEntry) -> None:
        """Insert or replace one registry entry; serialized across concurrent writers."""
        async with self._registry_lock:
            entries = [site for site in await self.read_sites_index() if site.slug != entry.slug]
            entries.append(entry)
            await self.write_sites_index(entries)

    async def rebuild_sites_index(self, keep_empty: bool = True) -> list[SitesIndexEntry]:
        """Replace the registry with a fresh scan of the site directories."""
        async with self._registry_lock:
            entries = await self.scan_sites()
            if entries or keep_empty:
                await self.write_sites_index(entries)
        return entries

    async def scan_sites(self) -> list[SitesIndexEntry]:
        """Registry entries rebuilt from every directory holding a site index."""
        if not await aiofiles.os.path.isdir(self.root):
            return []
        entries = []
        for name in sorted(await aiofiles.os.listdir(self.root)):
            if not await aiofiles.os.path.isdir(self.root / name):
                continue
            site_index = await self.read_site_index(name)
            if site_index is None:
                continue
            entries.append(
                SitesIndexEntry(
                    slug=name,
                    base_url=site_index.base_url,
                    total_docs=len(site_index.docs),
                )
            )
        return entries

    async def write_bundle(self, bundle: PreloadBundle) -> LocalOutput:
        """Merge ``bundle`` into its site store.

        Documents already stored under the same URL keep their id and file
        names; new ones get the next free id and a file base unused in the
        site directory. Stored documents missing from the bundle are kept.
        An existing non-empty ``suggested`` list is never replaced.
        Writes to the same site are serialized.
        Raises :class:`StorageError` when the store cannot be written.
        """
        base_url = bundle.site_index.base_url
        slug = site_slug_from_base_url(base_url)
        async with self._site_lock(slug):
            return await self._write_bundle(bundle, slug)

    async def _write_bundle(self, bundle: PreloadBundle, slug: str) -> LocalOutput:
        base_url = bundle.site_index.base_url
        site_dir = self.site_dir(slug)
        try:
            await aiofiles.os.makedirs(site_dir, exist_ok=True)
        except OSError as e:
            raise StorageError(f"Failed to create {site_dir}: {e}") from e

        existing = await self.read_site_index(slug)
        existing_docs = existing.docs if existing else []
        merged, id_map = await self._merge_summaries(site_dir, existing_docs, bundle.site_index.docs)
        url_to_file = build_local_file_map(merged, base_url)

        output = LocalOutput(directory=str(site_dir))
        for summary in bundle.site_index.docs:
            final = id_map[summary.id]
            item = bundle.item_for(summary)
            content = rewrite_markdown_links(item.content if item else "", final.url, url_to_file)
            await write_text(site_dir / final.content_file, content)
            output.written_docs += 1

            generated = bundle.doc_indexes.get(summary.id) or DocIndex(doc=summary)
            doc_index = rewrite_doc_index_links(_remap_doc_index(generated, id_map), url_to_file)
            stored = await self.read_doc_index(slug, final.index_file)
            if stored is not None and stored.suggested:
                doc_index.suggested = stored.suggested
            await write_model(site_dir / final.index_file, doc_index)
            output.written_indexes += 1

        site_index = SiteIndex(
            generated_at=bundle.site_index.generated_at,
            base_url=base_url,
            total_docs=len(merged),
            docs=merged,
        )
        await write_model(site_dir / SITE_INDEX_FILE, site_index)

        try:
            await self.update_sites_index(
                SitesIndexEntry(slug=slug, base_url=base_url, total_docs=len(merged))
            )
        except StorageError as e:
            logger.warning("Sites registry not updated: %s", e.message)
            output.errors.append(e.message)

        logger.info(
            "Wrote %d documents to %s (%d total)", output.written_docs, site_dir, len(merged)
        )
        return output

    async def _merge_summaries(
        self,
        site_dir: Path,
        existing_docs: list[DocumentSummary],
        new_docs: list[DocumentSummary],
    ) -> tuple[list[DocumentSummary], dict[str, DocumentSummary]]:
        """Merged document list and a map from bundle id to stored summary."""
        by_url = {local_comparable_url(doc.url): doc for doc in existing_docs}
        used_bases = {_file_base(doc.content_file) for doc in existing_docs}
        if await aiofiles.os.path.isdir(site_dir):
            used_bases.update(
                name[: -len(".md")] for name in await aiofiles.os.listdir(site_dir)
                if name.endswith(".md")
            )
        next_id = 1 + max(
            (int(m.group(1)) for doc in existing_docs if (m := _DOC_ID_RE.match(doc.id))),
            default=0,
        )

        id_map: dict[str, DocumentSummary] = {}
        replaced: dict[str, DocumentSummary] = {}
        added: list[DocumentSummary] = []
        for doc in new_docs:
            match = by_url.get(local_comparable_url(doc.url))
            if match is not None:
                final = doc.model_copy(update={
                    "id": match.id,
                    "content_file": match.content_file,
                    "index_file": match.index_file,
                })
                replaced[match.id] = final
            else:
                file_base = unique_file_base(slugify(doc.title, fallback="document"), used_bases)
                final = doc.model_copy(update={
                    "id": doc_id_for(next_id),
                    "content_file": f"{file_base}.md",
                    "index_file": f"{file_base}.index.json",
                })
                next_id += 1
                added.append(final)
            id_map[doc.id] = final

        merged = [replaced.get(doc.id, doc) for doc in existing_docs] + added
        return merged, id_map


def _file_base(content_file: str) -> str:
    return content_file[: -len(".md")] if content_file.endswith(".md") else content_file


def _remap_doc_index(doc_index: DocIndex, id_map: dict[str, DocumentSummary]) -> DocIndex:
    """Rewrite bundle-local ids and file names to their stored values."""
    links: list[LinkEntry] = []
    for link in doc_index.links:
        target = id_map.get(link.local_doc_id) if link.local_doc_id else None
        links.append(link.model_copy(update={"local_doc_id": target.id if target else None}))

    suggested: list[SuggestedDoc] = []
    for entry in doc_index.suggested:
        target = id_map.get(entry.doc_id)
        if target is None:
            suggested.append(entry)
            continue
        suggested.append(entry.model_copy(update={
            "doc_id": target.id,
            "content_file": target.content_file,
            "index_file": target.index_file,
        }))

    return DocIndex(
        doc=id_map.get(doc_index.doc.id, doc_index.doc),
        headings=doc_index.headings,
        links=links,
        suggested=suggested,
    )

