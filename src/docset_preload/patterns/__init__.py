"""Docset types and extraction selector tables."""

from docset_preload.patterns.registry import (
    DocsetPattern,
    DocsetType,
    PatternRegistry,
    parse_docset_type,
)

__all__ = [
    "DocsetPattern",
    "DocsetType",
    "PatternRegistry",
    "parse_docset_type",
]
