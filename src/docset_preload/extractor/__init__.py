"""Content extraction from HTML pages."""

from docset_preload.extractor.main_content import ContentExtractor, ExtractedContent

__all__ = [
    "ContentExtractor",
    "ExtractedContent",
]
