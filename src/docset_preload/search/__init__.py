"""Search over locally stored documentation and over live documentation sites."""

from docset_preload.search.local import (
    LocalSearchEngine,
    SearchResponse,
    SearchResult,
    compute_search_score,
    make_snippet,
)
from docset_preload.search.remote import (
    RemoteSearchDiagnostics,
    RemoteSearchEngine,
    RemoteSearchHit,
    RemoteSearchResponse,
    search_base_candidates,
)

__all__ = [
    "LocalSearchEngine",
    "RemoteSearchDiagnostics",
    "RemoteSearchEngine",
    "RemoteSearchHit",
    "RemoteSearchResponse",
    "SearchResponse",
    "SearchResult",
    "compute_search_score",
    "make_snippet",
    "search_base_candidates",
]
