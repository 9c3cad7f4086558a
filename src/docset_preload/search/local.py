"""Title and substring search over the local site stores."""

import logging
import math
import re
from typing import Any

from pydantic import Field

from docset_preload.errors import StorageError
from docset_preload.models import CamelModel
from docset_preload.output.sites import LocalSites, require_site_slug

logger = logging.getLogger(__name__)

SNIPPET_RADIUS = 110
DEFAULT_LIMIT = 50
MAX_LIMIT = 200

_WHITESPACE_RE = re.compile(r"\s+")


class SearchResult(CamelModel):
    slug: str
    base_url: str
    doc_id: str
    title: str
    path: str
    url: str
    docset_type: str
    content_file: str
    title_match: bool
    content_match: bool
    snippet: str
    score: int


class SearchResponse(CamelModel):
    query: str
    total_results: int = 0
    searched_slugs: list[str] = Field(default_factory=list)
    results: list[SearchResult] = Field(default_factory=list)


def make_snippet(content: str, index: int, query_length: int) -> str:
    """Whitespace-collapsed window around a match, with ``...`` on cut edges."""
    start = max(0, index - SNIPPET_RADIUS)
    end = min(len(content), index + query_length + SNIPPET_RADIUS)
    prefix = "..." if start > 0 else ""
    suffix = "..." if end < len(content) else ""
    return f"{prefix}{_WHITESPACE_RE.sub(' ', content[start:end]).strip()}{suffix}"


def compute_search_score(title: str, query: str, content_index: int) -> int:
    """Score a hit. ``query`` is lowercased; ``content_index`` is -1 for no body match."""
    normalized_title = title.lower()
    score = 0
    if normalized_title == query:
        score += 120
    if normalized_title.startswith(query):
        score += 80
    if query in normalized_title:
        score += 40
    if content_index >= 0:
        score += 20
        score += max(0, 20 - content_index // 400)
    return score


def normalize_limit(limit: Any) -> int:
    if isinstance(limit, bool) or not isinstance(limit, (int, float)):
        return DEFAULT_LIMIT
    if not math.isfinite(limit):
        return DEFAULT_LIMIT
    return max(1, min(MAX_LIMIT, math.floor(limit)))


class LocalSearchEngine(LocalSites):
    """Rank stored documents by title and body matches.

    Every candidate is scored before the result list is truncated.
    """

    async def search(
        self, query: str, slug: str | None = None, limit: int | None = None
    ) -> SearchResponse:
        """Rank documents in every site, or only in ``slug``.

        Raises :class:`RequestValidationError` for a malformed ``slug``.
        """
        scope = require_site_slug(slug) if slug and slug.strip() else None
        query = query.strip()
        if not query:
            return SearchResponse(query=query)

        normalized_query = query.lower()
        if scope is not None:
            target_slugs = [scope]
        else:
            target_slugs = [site.slug for site in await self.list_sites()]

        results: list[SearchResult] = []
        for target in target_slugs:
            _, site_index = await self.load_site_index(target)
            for doc in site_index.docs:
                title_match = normalized_query in doc.title.lower()
                try:
                    content = await self.read_doc_content(target, doc.content_file)
                except StorageError as e:
                    logger.warning("Skipping body of %s in %s: %s", doc.id, target, e.message)
                    content = ""
                content_index = content.lower().find(normalized_query)
                content_match = content_index >= 0
                if not title_match and not content_match:
                    continue

                if content_match:
                    snippet = make_snippet(content, content_index, len(query))
                else:
                    snippet = f"Title match: {doc.title or doc.path or doc.url}"

                results.append(
                    SearchResult(
                        slug=target,
                        base_url=site_index.base_url,
                        doc_id=doc.id,
                        title=doc.title,
                        path=doc.path,
                        url=doc.url,
                        docset_type=doc.docset_type.value,
                        content_file=doc.content_file,
                        title_match=title_match,
                        content_match=content_match,
                        snippet=snippet,
                        score=compute_search_score(doc.title, normalized_query, content_index),
                    )
                )

        results.sort(key=lambda result: (-result.score, result.slug, result.title))
        logger.debug("Search %r matched %d documents", query, len(results))
        return SearchResponse(
            query=query,
            total_results=len(results),
            searched_slugs=target_slugs,
            results=results[: normalize_limit(limit)],
        )
