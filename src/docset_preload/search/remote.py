"""Live search against a documentation site's own search index or sitemap."""

import json
import logging
import re
from collections.abc import Callable
from typing import Any
from urllib.parse import urljoin, urlparse, urlunparse

from pydantic import Field

from docset_preload.discovery.search_index import SEARCH_INDEX_FILENAMES, load_js_index_payload
from docset_preload.discovery.sitemap import parse_sitemap_urls
from docset_preload.errors import PreloadError, RequestValidationError
from docset_preload.fetcher import PageFetcher
from docset_preload.models import CamelModel, UrlError
from docset_preload.patterns import DocsetType
from docset_preload.utils.url_utils import dedupe_preserve_order, ensure_scheme

logger = logging.getLogger(__name__)

MAX_SPHINX_RESULTS = 20
MKDOCS_SNIPPET_LENGTH = 200
KNOWN_VERSIONS = frozenset({"latest", "stable", "dev", "master", "main", "default", "current"})

_VERSIONED_ROOT_RE = re.compile(r"^/([a-z]{2}(?:-[a-z]{2})?)/([^/]+)/", re.IGNORECASE)
_VERSION_LIKE_RE = re.compile(r"^(v?\d|\d+\.\d+)", re.IGNORECASE)
_FILE_LIKE_RE = re.compile(r"\.[a-z0-9]+$", re.IGNORECASE)
_TOKEN_SPLIT_RE = re.compile(r"[^a-z0-9_-]+")
_SOURCE_EXT_RE = re.compile(r"\.(rst|txt)$", re.IGNORECASE)


class RemoteSearchHit(CamelModel):
    title: str
    url: str
    snippet: str = ""
    source: str


class RemoteSearchDiagnostics(CamelModel):
    """Which locations were tried, fetched and parsed during one search."""

    bases_tried: list[str] = Field(default_factory=list)
    index_urls_tried: list[str] = Field(default_factory=list)
    sitemap_urls_tried: list[str] = Field(default_factory=list)
    fetched_source_urls: list[str] = Field(default_factory=list)
    parsed_source_urls: list[str] = Field(default_factory=list)
    parse_errors: list[UrlError] = Field(default_factory=list)


class RemoteSearchResponse(CamelModel):
    query: str
    base_url: str
    results: list[RemoteSearchHit] = Field(default_factory=list)
    diagnostics: RemoteSearchDiagnostics = Field(default_factory=RemoteSearchDiagnostics)


HitParser = Callable[[str, str, str], list[RemoteSearchHit]]


def normalize_search_base(base_url: str) -> str:
    """Absolute base URL without query, fragment or a trailing ``/index.html``."""
    trimmed = (base_url or "").strip()
    if not trimmed:
        raise RequestValidationError("baseUrl is required.")
    parsed = urlparse(ensure_scheme(trimmed))
    if not parsed.hostname:
        raise RequestValidationError(f"Invalid baseUrl: {base_url}")
    path = parsed.path or "/"
    if path.endswith("/index.html"):
        path = path[: -len("/index.html")] or "/"
    return urlunparse(parsed._replace(path=path, params="", query="", fragment=""))


def guess_versioned_docs_root(path: str) -> str | None:
    """``/<lang>/<version>/`` for paths like ``/en/stable/...`` or ``/en-us/v2/...``."""
    match = _VERSIONED_ROOT_RE.match(path)
    if not match:
        return None
    lang, version = match.group(1), match.group(2)
    if version.lower() not in KNOWN_VERSIONS and not _VERSION_LIKE_RE.match(version):
        return None
    return f"/{lang}/{version}/"


def search_base_candidates(base_url: str) -> list[str]:
    """Versioned docs root, first path segment, current directory, then site root."""
    parsed = urlparse(normalize_search_base(base_url))
    origin = f"{parsed.scheme}://{parsed.netloc}"
    path = parsed.path
    if not path.endswith("/") and not _FILE_LIKE_RE.search(path):
        path = f"{path}/"

    candidates = []
    versioned = guess_versioned_docs_root(parsed.path)
    if versioned:
        candidates.append(f"{origin}{versioned}")
    segments = [segment for segment in parsed.path.split("/") if segment]
    if segments:
        candidates.append(f"{origin}/{segments[0]}/")
    candidates.append(f"{origin}{path}")
    candidates.append(f"{origin}/")
    return dedupe_preserve_order(candidates)


def index_filenames_for(docset_type: DocsetType | None) -> list[str]:
    if docset_type == DocsetType.MKDOCS:
        return [name for name in SEARCH_INDEX_FILENAMES if name.endswith(".json")]
    if docset_type == DocsetType.SPHINX:
        return [name for name in SEARCH_INDEX_FILENAMES if name.endswith(".js")]
    return list(SEARCH_INDEX_FILENAMES)


def tokenize_query(query: str) -> list[str]:
    """Lowercased word tokens, plus the parts of ``snake_case`` and ``kebab-case`` tokens."""
    base = [token for token in _TOKEN_SPLIT_RE.split(query.strip().lower()) if token]
    extra: list[str] = []
    for token in base:
        if "_" in token:
            extra.extend(part for part in token.split("_") if part)
        if "-" in token:
            extra.extend(part for part in token.split("-") if part)
    return dedupe_preserve_order(base + extra)


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def sphinx_doc_ids(value: Any) -> list[int]:
    """Document ids from a Sphinx ``terms`` entry: an id, ids, or ``[id, ...]`` pairs."""
    if _is_int(value):
        return [value]
    if not isinstance(value, list):
        return []
    ids = []
    for entry in value:
        if _is_int(entry):
            ids.append(entry)
        elif isinstance(entry, list) and entry and _is_int(entry[0]):
            ids.append(entry[0])
    return ids


def _str_list(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [item if isinstance(item, str) else "" for item in value]


def _at(values: list[str], index: int) -> str:
    return values[index] if 0 <= index < len(values) else ""


def match_mkdocs_index(raw: str, base_url: str, query: str) -> list[RemoteSearchHit]:
    """Documents whose title or text contains ``query`` (already lowercased)."""
    data = json.loads(raw)
    docs = data.get("docs") if isinstance(data, dict) else None
    if not isinstance(docs, list):
        return []

    hits = []
    for doc in docs:
        if not isinstance(doc, dict):
            continue
        title = doc.get("title")
        text = doc.get("text") if isinstance(doc.get("text"), str) else ""
        title_text = title if isinstance(title, str) else ""
        if query not in title_text.lower() and query not in text.lower():
            continue
        location = doc.get("location")
        hits.append(
            RemoteSearchHit(
                title=title if isinstance(title, str) else "Untitled",
                url=urljoin(base_url, location) if isinstance(location, str) and location else base_url,
                snippet=text[:MKDOCS_SNIPPET_LENGTH],
                source="mkdocs",
            )
        )
    return hits


def _sphinx_page(index: int, docnames: list[str], filenames: list[str]) -> str:
    filename = _at(filenames, index)
    docname = _at(docnames, index)
    if filename.endswith((".rst", ".txt")):
        return f"{docname}.html" if docname else _SOURCE_EXT_RE.sub(".html", filename)
    if filename:
        return filename
    return f"{docname}.html" if docname else ""


def match_sphinx_index(raw: str, base_url: str, query: str) -> list[RemoteSearchHit]:
    """Rank Sphinx documents for ``query``.

    A query token found in ``terms`` adds 2 to each listed document; a token
    of three or more characters inside a title or docname adds 1. The top
    :data:`MAX_SPHINX_RESULTS` documents are returned, best first.
    """
    payload = load_js_index_payload(raw)
    if payload is None:
        return []

    docnames = _str_list(payload.get("docnames"))
    titles = _str_list(payload.get("titles"))
    filenames = _str_list(payload.get("filenames"))
    terms = payload.get("terms")
    if not isinstance(terms, dict):
        terms = {}

    tokens = tokenize_query(query)
    scores: dict[int, int] = {}
    for token in tokens:
        for doc_id in sphinx_doc_ids(terms.get(token)):
            scores[doc_id] = scores.get(doc_id, 0) + 2

    for index, title in enumerate(titles):
        title_lower = title.lower()
        docname_lower = _at(docnames, index).lower()
        for token in tokens:
            if len(token) < 3:
                continue
            if token in title_lower or token in docname_lower:
                scores[index] = scores.get(index, 0) + 1

    ranked = sorted(scores.items(), key=lambda entry: -entry[1])[:MAX_SPHINX_RESULTS]
    hits = []
    for index, _ in ranked:
        page = _sphinx_page(index, docnames, filenames)
        url = urljoin(base_url, page) if page else base_url
        title = _at(titles, index) or _at(docnames, index) or url
        hits.append(RemoteSearchHit(title=title, url=url, source="sphinx"))
    return hits


def match_sitemap(raw: str, base_url: str, query: str) -> list[RemoteSearchHit]:
    """Sitemap entries whose URL contains ``query``, titled by their last path segment."""
    return [
        RemoteSearchHit(title=url.split("/")[-1] or url, url=url, source="sitemap")
        for url in parse_sitemap_urls(raw, base_url)
        if query in url.lower()
    ]


class RemoteSearchEngine:
    """Search a documentation site without preloading it.

    Every search index filename is tried under every base candidate, in
    order, and the first source with hits wins. Sitemaps are the fallback.
    Unreachable sources are skipped; unparseable ones are recorded in the
    diagnostics.
    """

    accept = "application/json, text/plain, text/html"

    def __init__(self, fetcher: PageFetcher):
        self.fetcher = fetcher

    async def search(
        self, base_url: str, query: str, docset_type: DocsetType | None = None
    ) -> RemoteSearchResponse:
        """Raises :class:`RequestValidationError` for a missing or malformed base URL."""
        normalized_base = normalize_search_base(base_url)
        normalized_query = query.strip().lower()
        diagnostics = RemoteSearchDiagnostics()

        def respond(results: list[RemoteSearchHit]) -> RemoteSearchResponse:
            return RemoteSearchResponse(
                query=query.strip(),
                base_url=normalized_base,
                results=results,
                diagnostics=diagnostics,
            )

        if not normalized_query:
            return respond([])

        bases = search_base_candidates(normalized_base)
        diagnostics.bases_tried = list(bases)

        for base in bases:
            for filename in index_filenames_for(docset_type):
                index_url = urljoin(base, filename)
                diagnostics.index_urls_tried.append(index_url)
                parser = match_sphinx_index if filename.endswith(".js") else match_mkdocs_index
                hits = await self._query_source(index_url, base, normalized_query, parser, diagnostics)
                if hits:
                    logger.debug("Search index %s matched %d pages", index_url, len(hits))
                    return respond(hits)

        for base in bases:
            sitemap_url = urljoin(base, "sitemap.xml")
            diagnostics.sitemap_urls_tried.append(sitemap_url)
            hits = await self._query_source(sitemap_url, base, normalized_query, match_sitemap, diagnostics)
            if hits:
                logger.debug("Sitemap %s matched %d pages", sitemap_url, len(hits))
                return respond(hits)

        logger.info("No remote results for %r under %s", query, normalized_base)
        return respond([])

    async def _query_source(
        self,
        url: str,
        base: str,
        query: str,
        parser: HitParser,
        diagnostics: RemoteSearchDiagnostics,
    ) -> list[RemoteSearchHit]:
        try:
            raw = await self.fetcher.fetch_text(url, self.accept)
        except PreloadError as e:
            logger.debug("Search source %s unavailable: %s", url, e.message)
            return []
        diagnostics.fetched_source_urls.append(url)

        try:
            hits = parser(raw, base, query)
        except PreloadError as e:
            diagnostics.parse_errors.append(UrlError(url=url, error=e.message))
            return []
        except ValueError as e:
            diagnostics.parse_errors.append(UrlError(url=url, error=str(e)))
            return []
        diagnostics.parsed_source_urls.append(url)
        return hits
