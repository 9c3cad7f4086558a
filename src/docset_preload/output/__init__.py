"""Local storage: site stores, sites registry and per-job scratch output."""

from docset_preload.output.local_store import (
    LocalOutput,
    LocalStore,
    SitesIndex,
    SitesIndexEntry,
    rewrite_markdown_links,
)
from docset_preload.output.scratch import ScratchSession
from docset_preload.output.sites import (
    DocLookup,
    LocalSites,
    LocatedDoc,
    find_local_doc,
    normalize_site_slug,
)

__all__ = [
    "DocLookup",
    "LocalOutput",
    "LocalSites",
    "LocalStore",
    "LocatedDoc",
    "ScratchSession",
    "SitesIndex",
    "SitesIndexEntry",
    "find_local_doc",
    "normalize_site_slug",
    "rewrite_markdown_links",
]
