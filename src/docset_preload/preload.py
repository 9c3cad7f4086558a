"""Preload request parsing, target planning and bundle serialization."""

import json
import re
from typing import Any, Literal

from pydantic import Field, ValidationError, field_validator

from docset_preload.discovery import DiscoveryOptions
from docset_preload.errors import RequestValidationError
from docset_preload.index.models import PreloadBundle
from docset_preload.models import CamelModel
from docset_preload.patterns import DocsetType, parse_docset_type
from docset_preload.utils.limits import normalize_positive_int
from docset_preload.utils.url_utils import normalize_url

DEFAULT_MAX_PAGES = 200
MAX_PAGES_LIMIT = 2000
DEFAULT_MAX_DISCOVER = 300
MAX_DISCOVER_LIMIT = 2000
DEFAULT_MAX_DEPTH = 2
MAX_DEPTH_LIMIT = 5
DEFAULT_CONCURRENCY = 4
MAX_CONCURRENCY = 12

_ABSOLUTE_URL_RE = re.compile(r"^https?://", re.IGNORECASE)
_PATH_SEPARATORS_RE = re.compile(r"[\n,\r]")


def normalize_max_pages(value: Any) -> int:
    return normalize_positive_int(value, DEFAULT_MAX_PAGES, MAX_PAGES_LIMIT)


def normalize_max_discover(value: Any) -> int:
    return normalize_positive_int(value, DEFAULT_MAX_DISCOVER, MAX_DISCOVER_LIMIT)


def normalize_max_depth(value: Any) -> int:
    return normalize_positive_int(value, DEFAULT_MAX_DEPTH, MAX_DEPTH_LIMIT)


def normalize_concurrency(value: Any) -> int:
    return normalize_positive_int(value, DEFAULT_CONCURRENCY, MAX_CONCURRENCY)


def _normalize_path(path: str) -> str:
    if not path or _ABSOLUTE_URL_RE.match(path) or path.startswith("/"):
        return path
    return f"/{path}"


def _dedupe_paths(paths: list[str]) -> list[str]:
    seen: set[str] = set()
    deduped = []
    for path in paths:
        normalized = _normalize_path(path)
        if normalized in seen:
            continue
        seen.add(normalized)
        deduped.append(normalized)
    return deduped


def parse_preload_paths(value: Any) -> list[str]:
    """Parse user-supplied paths from a list or a newline/comma separated string.

    Relative paths get a leading ``/``; absolute http(s) URLs are kept as is.

        >>> parse_preload_paths("guide/intro\\n/guide/install, https://docs.example.com/api")
        ['/guide/intro', '/guide/install', 'https://docs.example.com/api']
    """
    if isinstance(value, (list, tuple)):
        parts = [item.strip() for item in value if isinstance(item, str)]
    elif isinstance(value, str):
        parts = [part.strip() for part in _PATH_SEPARATORS_RE.split(value)]
    else:
        return []
    return _dedupe_paths([part for part in parts if part])


def build_preload_targets(include_base: bool, max_pages: Any, paths: list[str]) -> list[str]:
    """Deduplicated fetch targets, ``""`` (the base URL) first when included."""
    merged = ["", *paths] if include_base else list(paths)
    return _dedupe_paths(merged)[: normalize_max_pages(max_pages)]


def exclude_base_url(urls: list[str], base_url: str) -> list[str]:
    """Drop the base URL from discovered URLs.

    Used when the base is already a target (``include_base``) so it is never
    fetched twice. Matching is on the normalized form.
    """
    try:
        normalized_base = normalize_url(base_url)
    except ValueError:
        normalized_base = base_url
    return [url for url in urls if url != normalized_base]


class PreloadRequest(CamelModel):
    """A validated preload request.

    Limits are clamped into range, unknown docset types are ignored and any
    format other than ``jsonl`` means ``json``.
    """

    base_url: str = Field(default="", validate_default=True)
    paths: list[str] = []
    docset_type: DocsetType | None = None
    format: Literal["json", "jsonl"] = "json"
    max_pages: int = DEFAULT_MAX_PAGES
    max_discover: int = DEFAULT_MAX_DISCOVER
    max_depth: int = DEFAULT_MAX_DEPTH
    concurrency: int = DEFAULT_CONCURRENCY
    include_base: bool = True
    include_indexes: bool = True
    include_links: bool = True
    same_host_only: bool = True

    @field_validator("base_url", mode="before")
    @classmethod
    def _require_base_url(cls, value: Any) -> str:
        if not isinstance(value, str) or not value.strip():
            raise ValueError("baseUrl is required.")
        return value.strip()

    @field_validator("paths", mode="before")
    @classmethod
    def _parse_paths(cls, value: Any) -> list[str]:
        return parse_preload_paths(value)

    @field_validator("docset_type", mode="before")
    @classmethod
    def _parse_docset_type(cls, value: Any) -> DocsetType | None:
        return parse_docset_type(value)

    @field_validator("format", mode="before")
    @classmethod
    def _parse_format(cls, value: Any) -> str:
        return "jsonl" if value == "jsonl" else "json"

    @field_validator("max_pages", mode="before")
    @classmethod
    def _clamp_max_pages(cls, value: Any) -> int:
        return normalize_max_pages(value)

    @field_validator("max_discover", mode="before")
    @classmethod
    def _clamp_max_discover(cls, value: Any) -> int:
        return normalize_max_discover(value)

    @field_validator("max_depth", mode="before")
    @classmethod
    def _clamp_max_depth(cls, value: Any) -> int:
        return normalize_max_depth(value)

    @field_validator("concurrency", mode="before")
    @classmethod
    def _clamp_concurrency(cls, value: Any) -> int:
        return normalize_concurrency(value)

    @field_validator(
        "include_base", "include_indexes", "include_links", "same_host_only", mode="before"
    )
    @classmethod
    def _default_true(cls, value: Any) -> bool:
        return value is not False

    @classmethod
    def parse(cls, body: dict[str, Any]) -> "PreloadRequest":
        """Validate a raw request body, raising :class:`RequestValidationError`."""
        try:
            return cls.model_validate(body)
        except ValidationError as e:
            messages = "; ".join(str(error["msg"]).removeprefix("Value error, ") for error in e.errors())
            raise RequestValidationError(messages) from e

    def discovery_options(self) -> DiscoveryOptions:
        return DiscoveryOptions(
            include_indexes=self.include_indexes,
            include_links=self.include_links,
            max_discover=self.max_discover,
            max_depth=self.max_depth,
            same_host_only=self.same_host_only,
        )


def _dumps(payload: dict[str, Any]) -> str:
    return json.dumps(payload, ensure_ascii=False, separators=(",", ":"))


def to_jsonl(bundle: PreloadBundle) -> str:
    """Serialize a bundle as ``site_index``, ``doc`` and ``doc_index`` lines."""
    lines = [
        _dumps({
            "type": "site_index",
            "data": bundle.site_index.model_dump(mode="json", by_alias=True, exclude_none=True),
        })
    ]

    summaries = {(doc.url, doc.path): doc for doc in bundle.site_index.docs}
    for item in bundle.docs:
        summary = summaries.get((item.url, item.path))
        record: dict[str, Any] = {"type": "doc"}
        if summary is not None:
            record.update(
                id=summary.id,
                contentFile=summary.content_file,
                indexFile=summary.index_file,
            )
        record.update(
            path=item.path,
            url=item.url,
            docsetType=item.docset_type.value,
            content=item.content,
        )
        lines.append(_dumps(record))

    for summary in bundle.site_index.docs:
        doc_index = bundle.doc_indexes.get(summary.id)
        if doc_index is None:
            continue
        lines.append(_dumps({
            "type": "doc_index",
            "id": summary.id,
            "data": doc_index.model_dump(mode="json", by_alias=True, exclude_none=True),
        }))

    return "\n".join(lines)
