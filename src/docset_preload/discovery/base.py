"""Shared types for URL discovery."""

from abc import ABC, abstractmethod
from typing import Any
from urllib.parse import urljoin

from pydantic import BaseModel, Field, field_validator

from docset_preload.models import CamelModel, UrlError
from docset_preload.utils.limits import normalize_positive_int
from docset_preload.utils.url_utils import is_admissible_url

MAX_DISCOVER_LIMIT = 2000
MAX_DEPTH_LIMIT = 5


class DiscoveryOptions(BaseModel):
    """Discovery knobs. Out-of-range limits are clamped, not rejected."""

    include_indexes: bool = True
    include_links: bool = True
    max_discover: int = 300
    max_depth: int = 2
    same_host_only: bool = True

    @field_validator("max_discover", mode="before")
    @classmethod
    def _clamp_max_discover(cls, value: Any) -> int:
        return normalize_positive_int(value, 300, MAX_DISCOVER_LIMIT)

    @field_validator("max_depth", mode="before")
    @classmethod
    def _clamp_max_depth(cls, value: Any) -> int:
        return normalize_positive_int(value, 2, MAX_DEPTH_LIMIT)


class DiscoveryDiagnostics(CamelModel):
    """Every URL discovery tried, fetched or failed on."""

    attempted: list[str] = Field(default_factory=list)
    fetched: list[str] = Field(default_factory=list)
    errors: list[UrlError] = Field(default_factory=list)

    def record_error(self, url: str, error: str) -> None:
        self.errors.append(UrlError(url=url, error=error))


class DiscoveryResult(CamelModel):
    """Discovered URLs (base URL first) plus diagnostics."""

    urls: list[str]
    diagnostics: DiscoveryDiagnostics = Field(default_factory=DiscoveryDiagnostics)


class DiscoveredUrls:
    """Insertion-ordered, capped set of admitted URLs.

    The normalized base URL is seeded first and therefore always sits at
    index 0. Every other URL must pass :func:`is_admissible_url`.
    """

    def __init__(self, base_url: str, max_discover: int, same_host_only: bool = True):
        self.base_url = base_url
        self.max_discover = max_discover
        self.same_host_only = same_host_only
        self._urls: dict[str, None] = {base_url: None}

    def __contains__(self, url: object) -> bool:
        return url in self._urls

    def __len__(self) -> int:
        return len(self._urls)

    @property
    def full(self) -> bool:
        return len(self._urls) >= self.max_discover

    def admits(self, url: str) -> bool:
        return is_admissible_url(url, self.base_url, self.same_host_only)

    def add(self, url: str) -> bool:
        """Admit ``url``; False when it was rejected, already present or the set is full."""
        if self.full or url in self._urls or not self.admits(url):
            return False
        self._urls[url] = None
        return True

    def extend(self, urls: list[str]) -> int:
        added = 0
        for url in urls:
            if self.full:
                break
            if self.add(url):
                added += 1
        return added

    @property
    def urls(self) -> list[str]:
        return list(self._urls)


class DiscoverySource(ABC):
    """A well-known file that lists a site's pages (sitemap, search index).

    Sources are tried in order against each index base; each one only has to
    name its candidate files and parse a fetched body into absolute URLs.
    """

    name: str = ""
    accept: str = "*/*"
    filenames: tuple[str, ...] = ()

    def candidate_urls(self, index_base: str) -> list[str]:
        return [urljoin(index_base, filename) for filename in self.filenames]

    @abstractmethod
    def parse(self, body: str, source_url: str, index_base: str) -> list[str]:
        """Return the normalized page URLs listed in ``body``."""
        ...
