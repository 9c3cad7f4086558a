"""Build a cross-linked site index from fetched pages."""

import logging
import re
from urllib.parse import urlparse

from docset_preload.index.models import (
    DocIndex,
    DocumentSummary,
    Heading,
    LinkEntry,
    PreloadBundle,
    PreloadItem,
    SiteIndex,
)
from docset_preload.index.similarity import compute_suggestions
from docset_preload.models import utc_now_iso
from docset_preload.utils.url_utils import comparable_url, resolve_url, slugify

logger = logging.getLogger(__name__)

DESCRIPTION_MAX_LENGTH = 280

_TITLE_RE = re.compile(r"^#\s+(.+)$", re.MULTILINE)
_HEADING_RE = re.compile(r"^(#{1,6})\s+(.+)$", re.MULTILINE)
_LINK_RE = re.compile(r"\[([^\]]+)\]\(([^)]+)\)")


def doc_id_for(sequence: int) -> str:
    return f"doc-{sequence:05d}"


def clean_text(value: str) -> str:
    """Drop backticks and emphasis markers, collapse whitespace."""
    value = value.replace("`", "").replace("*", "")
    return re.sub(r"\s+", " ", value).strip()


def extract_title(content: str) -> str:
    match = _TITLE_RE.search(content)
    return clean_text(match.group(1)) if match else ""


def extract_description(content: str) -> str:
    """First line that is not blank, a heading, a rule/frontmatter or an abbreviation."""
    for line in content.split("\n"):
        trimmed = line.strip()
        if not trimmed or trimmed.startswith(("#", "---", "*[")):
            continue
        return clean_text(trimmed)[:DESCRIPTION_MAX_LENGTH]
    return ""


def extract_headings(content: str) -> list[Heading]:
    return [
        Heading(level=len(match.group(1)), text=clean_text(match.group(2)))
        for match in _HEADING_RE.finditer(content)
    ]


def extract_links(content: str, source_url: str) -> list[LinkEntry]:
    """Markdown links resolved against ``source_url``, deduplicated by (url, label)."""
    seen: set[tuple[str, str]] = set()
    links = []
    for match in _LINK_RE.finditer(content):
        label = match.group(1).strip()
        target = match.group(2).strip()
        if not label or not target:
            continue
        url = resolve_url(target, source_url)
        title = clean_text(label)
        key = (url, title)
        if key in seen:
            continue
        seen.add(key)
        links.append(LinkEntry(title=title, url=url, description=title))
    return links


def humanize_path(path: str, url: str) -> str:
    """Title fallback: the last path segment with dashes and underscores as spaces."""
    source = path if path and path != "/" else urlparse(url).path
    segments = [part for part in source.split("/") if part]
    leaf = segments[-1] if segments else "Documentation"
    return clean_text(re.sub(r"[-_]", " ", leaf))


def unique_file_base(base: str, used: set[str]) -> str:
    """Return ``base``, or ``base-2``, ``base-3``... if already used."""
    candidate = base
    count = 2
    while candidate in used:
        candidate = f"{base}-{count}"
        count += 1
    used.add(candidate)
    return candidate


def build_preload_bundle(
    base_url: str,
    items: list[PreloadItem],
    generated_at: str | None = None,
) -> PreloadBundle:
    """Turn fetched pages into a site index, per-document indexes and suggestions.

    Pages are sorted by URL before ids are assigned, so the same set of pages
    always yields the same ids regardless of fetch order.
    When several pages share a comparable URL, links resolve to the first of
    them in that order.
    """
    ordered = sorted(items, key=lambda item: (item.url, item.path))
    used_bases: set[str] = set()
    url_to_id: dict[str, str] = {}
    summaries: list[DocumentSummary] = []

    for sequence, item in enumerate(ordered, start=1):
        doc_id = doc_id_for(sequence)
        title = extract_title(item.content) or humanize_path(item.path, item.url)
        file_base = unique_file_base(slugify(title, fallback="document"), used_bases)
        summaries.append(
            DocumentSummary(
                id=doc_id,
                path=item.path,
                url=item.url,
                docset_type=item.docset_type,
                title=title,
                description=extract_description(item.content),
                content_file=f"{file_base}.md",
                index_file=f"{file_base}.index.json",
            )
        )
        url_to_id.setdefault(comparable_url(item.url), doc_id)

    doc_indexes: dict[str, DocIndex] = {}
    for summary, item in zip(summaries, ordered):
        links = extract_links(item.content, item.url)
        for link in links:
            link.local_doc_id = url_to_id.get(comparable_url(link.url))
        doc_indexes[summary.id] = DocIndex(
            doc=summary,
            headings=extract_headings(item.content),
            links=links,
        )

    suggestions = compute_suggestions(
        summaries, {summary.id: item.content for summary, item in zip(summaries, ordered)}
    )
    for doc_id, suggested in suggestions.items():
        doc_indexes[doc_id].suggested = suggested

    logger.debug("Built bundle for %s with %d documents", base_url, len(summaries))
    return PreloadBundle(
        site_index=SiteIndex(
            generated_at=generated_at or utc_now_iso(),
            base_url=base_url,
            total_docs=len(summaries),
            docs=summaries,
        ),
        doc_indexes=doc_indexes,
        docs=ordered,
    )
