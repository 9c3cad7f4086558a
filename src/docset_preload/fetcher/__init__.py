"""Rate-limited page fetching."""

from docset_preload.fetcher.base import FetchResult
from docset_preload.fetcher.http_fetcher import PageFetcher

__all__ = [
    "FetchResult",
    "PageFetcher",
]
