"""Querying and administering the local site stores."""

import asyncio
import logging
import re
import shutil
from pathlib import Path
from urllib.parse import urlparse, urlunparse

import aiofiles.os  # type: ignore[import-untyped]
from pydantic import BaseModel, Field

from docset_preload.errors import RequestValidationError, StorageError
from docset_preload.index.models import DocumentSummary, SiteIndex
from docset_preload.output.files import read_text
from docset_preload.output.local_store import LocalStore, SitesIndexEntry

logger = logging.getLogger(__name__)

_SLUG_RE = re.compile(r"^[a-z0-9]+(?:-[a-z0-9]+)*$")
INVALID_SLUG_MESSAGE = "Invalid slug. Use lowercase letters, numbers, and hyphens only."


class DocLookup(BaseModel):
    """Result of :func:`find_local_doc`."""

    doc: DocumentSummary | None = None
    suggestions: list[DocumentSummary] = Field(default_factory=list)


class LocatedDoc(BaseModel):
    slug: str
    site_index: SiteIndex
    doc: DocumentSummary


def normalize_site_slug(value: str) -> str | None:
    """Lowercased slug, or None unless it is ``[a-z0-9]+`` runs joined by single hyphens."""
    trimmed = value.strip().lower()
    if not trimmed or not _SLUG_RE.match(trimmed):
        return None
    return trimmed


def require_site_slug(value: str) -> str:
    slug = normalize_site_slug(value)
    if slug is None:
        raise RequestValidationError(INVALID_SLUG_MESSAGE)
    return slug


def _comparable(value: str) -> str:
    """URL or path with query, fragment and trailing slashes dropped, lowercased."""
    trimmed = value.strip()
    if not trimmed:
        return ""
    parsed = urlparse(trimmed)
    if parsed.scheme and parsed.netloc:
        trimmed = urlunparse(parsed._replace(query="", fragment=""))
    return trimmed.rstrip("/").lower()


def _comparable_path(value: str) -> str:
    trimmed = value.strip()
    if not trimmed:
        return "/"
    parsed = urlparse(trimmed)
    path = parsed.path if parsed.scheme and parsed.netloc else trimmed
    if not path.startswith("/"):
        path = f"/{path}"
    if path == "/":
        return path
    return path.rstrip("/").lower()


def find_local_doc(
    docs: list[DocumentSummary],
    doc_id: str | None = None,
    url: str | None = None,
    path: str | None = None,
    title: str | None = None,
) -> DocLookup:
    """Find one document by id, URL, path or title, in that order of precedence.

    A title lookup prefers an exact (case-insensitive) match and otherwise
    returns the first containing match plus up to ten candidates. With no
    criteria, the first ten documents are returned as suggestions.
    """
    doc_id = (doc_id or "").strip()
    url = (url or "").strip()
    path = (path or "").strip()
    title = (title or "").strip()

    if doc_id:
        return DocLookup(doc=next((doc for doc in docs if doc.id == doc_id), None))

    if url:
        wanted = _comparable(url)
        match = next((doc for doc in docs if _comparable(doc.url) == wanted), None)
        if match is None:
            match = next((doc for doc in docs if _comparable(doc.path) == wanted), None)
        return DocLookup(doc=match)

    if path:
        wanted = _comparable_path(path)
        match = next((doc for doc in docs if _comparable_path(doc.path) == wanted), None)
        if match is None:
            match = next((doc for doc in docs if _comparable_path(doc.url) == wanted), None)
        return DocLookup(doc=match)

    if title:
        lower = title.lower()
        exact = next((doc for doc in docs if doc.title.lower() == lower), None)
        if exact is not None:
            return DocLookup(doc=exact)
        contains = [doc for doc in docs if lower in doc.title.lower()]
        return DocLookup(doc=contains[0] if contains else None, suggestions=contains[:10])

    return DocLookup(suggestions=docs[:10])


class LocalSites:
    """Site-level view over a :class:`LocalStore`."""

    def __init__(self, store: LocalStore):
        self.store = store

    async def list_sites(self) -> list[SitesIndexEntry]:
        """Registered sites; rebuilds the registry by scanning when it is empty."""
        entries = await self.store.read_sites_index()
        if entries:
            return entries
        return await self.store.rebuild_sites_index(keep_empty=False)

    async def has_site(self, slug: str) -> bool:
        return any(site.slug == slug for site in await self.list_sites())

    async def get_site(self, slug: str) -> SitesIndexEntry | None:
        return next((site for site in await self.list_sites() if site.slug == slug), None)

    async def load_site_index(self, slug: str | None = None) -> tuple[str, SiteIndex]:
        """Site index for ``slug``, or for the most recently updated site.

        Raises :class:`RequestValidationError` for a malformed slug.
        """
        requested = (slug or "").strip()
        if requested:
            requested = require_site_slug(requested)
        else:
            requested = await self._latest_slug() or ""
            if not requested:
                raise StorageError("No local documentation sites found. Run a preload first.")

        site_index = await self.store.read_site_index(requested)
        if site_index is None:
            raise StorageError(f"Invalid or missing site index for slug {requested}")
        return requested, site_index

    async def _latest_slug(self) -> str | None:
        entries = await self.store.read_sites_index()
        if entries:
            return max(entries, key=lambda entry: entry.updated_at).slug
        scanned = await self.store.scan_sites()
        return scanned[0].slug if scanned else None

    async def read_doc_content(self, slug: str, content_file: str) -> str:
        """Markdown of one document; rejects paths outside the site directory."""
        slug = require_site_slug(slug)
        site_dir = self.store.site_dir(slug).resolve()
        doc_path = (site_dir / content_file).resolve()
        if doc_path != site_dir and site_dir not in doc_path.parents:
            raise StorageError(f"Invalid contentFile path: {content_file}")
        try:
            return await read_text(doc_path)
        except OSError as e:
            raise StorageError(f"Failed to read {content_file} for site {slug}: {e}") from e

    async def find_doc_by_url(self, url: str) -> LocatedDoc | None:
        for site in await self.list_sites():
            site_index = await self.store.read_site_index(site.slug)
            if site_index is None:
                continue
            lookup = find_local_doc(site_index.docs, url=url)
            if lookup.doc is not None:
                return LocatedDoc(slug=site.slug, site_index=site_index, doc=lookup.doc)
        return None

    async def delete_site(self, slug: str) -> None:
        target = self.store.site_dir(require_site_slug(slug))
        if await aiofiles.os.path.isdir(target):
            try:
                await asyncio.to_thread(shutil.rmtree, target)
            except OSError as e:
                raise StorageError(f"Failed to delete {target}: {e}") from e
        await self.rebuild_index()

    async def rename_site(self, old_slug: str, new_slug: str) -> None:
        old = require_site_slug(old_slug)
        new = normalize_site_slug(new_slug)
        if new is None:
            raise RequestValidationError(
                "Invalid new slug. Use lowercase letters, numbers, and hyphens only."
            )
        old_path: Path = self.store.site_dir(old)
        new_path: Path = self.store.site_dir(new)
        if old_path == new_path:
            return
        if not await aiofiles.os.path.exists(old_path):
            raise StorageError(f'Local site "{old_slug}" not found.')
        if await aiofiles.os.path.exists(new_path):
            raise RequestValidationError(f'Target slug "{new}" already exists.')
        try:
            await aiofiles.os.rename(old_path, new_path)
        except OSError as e:
            raise StorageError(f"Failed to rename {old} to {new}: {e}") from e
        await self.rebuild_index()

    async def rebuild_index(self) -> list[SitesIndexEntry]:
        """Rewrite the sites registry from the site directories on disk."""
        entries = await self.store.rebuild_sites_index()
        logger.info("Rebuilt sites registry with %d sites", len(entries))
        return entries
