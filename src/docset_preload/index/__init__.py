"""Site index construction: ids, titles, cross-links and suggestions."""

from docset_preload.index.builder import build_preload_bundle
from docset_preload.index.models import (
    DocIndex,
    DocumentSummary,
    Heading,
    LinkEntry,
    PreloadBundle,
    PreloadItem,
    SiteIndex,
    SuggestedDoc,
)
from docset_preload.index.similarity import compute_suggestions, tokenize_for_overlap

__all__ = [
    "DocIndex",
    "DocumentSummary",
    "Heading",
    "LinkEntry",
    "PreloadBundle",
    "PreloadItem",
    "SiteIndex",
    "SuggestedDoc",
    "build_preload_bundle",
    "compute_suggestions",
    "tokenize_for_overlap",
]
