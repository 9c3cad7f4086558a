"""Discovery from static-site search indexes (MkDocs, Sphinx and friends)."""

import json
import logging
import re
from typing import Any

from docset_preload.discovery.base import DiscoverySource
from docset_preload.utils.url_utils import absolute_http_url, dedupe_preserve_order

logger = logging.getLogger(__name__)

SEARCH_INDEX_FILENAMES = (
    "search/search_index.json",
    "searchindex.json",
    "search.json",
    "search-index.json",
    "searchindex.js",
)

_JS_PAYLOAD_PATTERNS = (
    re.compile(r"Search\.setIndex\((\{[\s\S]*\})\)\s*;?"),
    re.compile(r"var\s+index\s*=\s*(\{[\s\S]*\})\s*;?"),
)


def _json_document_refs(payload: Any) -> list[str]:
    """``docs[].location|url``, ``urls[]`` and ``entries[].href|url``."""
    if not isinstance(payload, dict):
        return []
    refs: list[str] = []
    for doc in payload.get("docs") or []:
        if isinstance(doc, dict):
            refs.append(doc.get("location") or doc.get("url") or "")
    for value in payload.get("urls") or []:
        if isinstance(value, str):
            refs.append(value)
    for entry in payload.get("entries") or []:
        if isinstance(entry, dict):
            refs.append(entry.get("href") or entry.get("url") or "")
    return refs


def load_js_index_payload(raw: str) -> dict[str, Any] | None:
    """The object literal passed to ``Search.setIndex(...)`` or ``var index = ...``.

    Returns None when neither form is present. Raises
    :class:`json.JSONDecodeError` when the literal is not valid JSON.
    """
    for pattern in _JS_PAYLOAD_PATTERNS:
        match = pattern.search(raw)
        if match:
            break
    else:
        return None

    payload = json.loads(match.group(1))
    return payload if isinstance(payload, dict) else None


def _js_document_refs(raw: str) -> list[str]:
    """``filenames[]`` then ``docnames[]`` (as ``.html``) from a JS literal."""
    try:
        payload = load_js_index_payload(raw)
    except json.JSONDecodeError:
        logger.debug("Unparseable search index payload")
        return []
    if payload is None:
        return []

    refs = [value for value in payload.get("filenames") or [] if isinstance(value, str)]
    refs.extend(
        f"{value}.html" for value in payload.get("docnames") or [] if isinstance(value, str)
    )
    return refs


def parse_search_index_urls(raw: str, source_url: str) -> list[str]:
    """Extract page URLs from a search index body, resolved against ``source_url``."""
    try:
        refs = _json_document_refs(json.loads(raw))
    except json.JSONDecodeError:
        refs = _js_document_refs(raw)

    urls = []
    for ref in refs:
        if not isinstance(ref, str) or not ref:
            continue
        url = absolute_http_url(ref, source_url)
        if url:
            urls.append(url)
    return dedupe_preserve_order(urls)


class SearchIndexSource(DiscoverySource):
    """Well-known search index files, resolved against the index base."""

    name = "search-index"
    accept = "application/json, text/javascript, text/plain"
    filenames = SEARCH_INDEX_FILENAMES

    def parse(self, body: str, source_url: str, index_base: str) -> list[str]:
        return parse_search_index_urls(body, index_base)
