"""Docset types and their content-selector tables."""

from enum import Enum
from urllib.parse import urlparse

from pydantic import BaseModel


class DocsetType(str, Enum):
    """Documentation-site generator that produced a page."""

    APPLE = "apple"
    DOCUSAURUS = "docusaurus"
    MKDOCS = "mkdocs"
    SPHINX = "sphinx"
    TYPEDOC = "typedoc"
    JSDOC = "jsdoc"
    RUSTDOC = "rustdoc"
    GODOC = "godoc"
    PDOC = "pdoc"
    HTML = "html"
    GENERIC = "generic"


class DocsetPattern(BaseModel):
    """Extraction settings for one docset type."""

    docset_type: DocsetType
    description: str
    content_selectors: list[str] = []
    html_markers: list[str] = []
    url_markers: list[str] = []


# Tried after the type-specific selectors; the extractor falls back to
# <body> when none of these yields enough text either.
FALLBACK_SELECTORS = ["main", "article", "div[role='main']", "#content", ".content", "body"]


_PATTERNS: dict[DocsetType, DocsetPattern] = {
    DocsetType.APPLE: DocsetPattern(
        docset_type=DocsetType.APPLE,
        description="Apple Developer documentation (rendered from provider JSON)",
        url_markers=["developer.apple.com"],
    ),
    DocsetType.DOCUSAURUS: DocsetPattern(
        docset_type=DocsetType.DOCUSAURUS,
        description="Docusaurus documentation sites",
        content_selectors=["main article", ".theme-doc-markdown", ".markdown"],
        html_markers=["__docusaurus", "docusaurus"],
    ),
    DocsetType.MKDOCS: DocsetPattern(
        docset_type=DocsetType.MKDOCS,
        description="MkDocs documentation sites",
        content_selectors=[".md-content__inner", ".md-content", "main"],
        html_markers=["md-content", "mkdocs"],
    ),
    DocsetType.SPHINX: DocsetPattern(
        docset_type=DocsetType.SPHINX,
        description="Sphinx documentation sites",
        content_selectors=["div[role='main']", ".document", "#content"],
        html_markers=["sphinxsidebar", "searchindex.js", "sphinx"],
        url_markers=["readthedocs", ".rtfd."],
    ),
    DocsetType.TYPEDOC: DocsetPattern(
        docset_type=DocsetType.TYPEDOC,
        description="TypeDoc API references",
        content_selectors=["#main-content", ".tsd-panel", "main"],
        html_markers=["tsd-page-toolbar", "tsd-panel", "typedoc"],
    ),
    DocsetType.JSDOC: DocsetPattern(
        docset_type=DocsetType.JSDOC,
        description="JSDoc API references",
        content_selectors=["#main", "section#main", ".page"],
        html_markers=["jsdoc"],
    ),
    DocsetType.RUSTDOC: DocsetPattern(
        docset_type=DocsetType.RUSTDOC,
        description="rustdoc crate documentation",
        content_selectors=["main", "#main-content", ".docblock"],
        html_markers=["rustdoc"],
        url_markers=["docs.rs"],
    ),
    DocsetType.GODOC: DocsetPattern(
        docset_type=DocsetType.GODOC,
        description="Go package documentation",
        content_selectors=["main", "#pkg-overview", "#pkg-index"],
        html_markers=["pkg-overview"],
        url_markers=["pkg.go.dev"],
    ),
    DocsetType.PDOC: DocsetPattern(
        docset_type=DocsetType.PDOC,
        description="pdoc Python API documentation",
        content_selectors=["main", "#content", ".pdoc"],
        html_markers=["pdoc"],
    ),
    DocsetType.HTML: DocsetPattern(
        docset_type=DocsetType.HTML,
        description="Plain HTML pages (whole body)",
        content_selectors=["body"],
    ),
    DocsetType.GENERIC: DocsetPattern(
        docset_type=DocsetType.GENERIC,
        description="Unknown generators (common content containers)",
        content_selectors=[
            "article",
            "main",
            ".prose",
            ".markdown-body",
            ".docs-content",
            ".doc-content",
            ".content-area",
            ".page-content",
            "div[role='main']",
            "#content",
            ".content",
        ],
    ),
}

# Detection order matters: more specific generators first.
_DETECTION_ORDER = [
    DocsetType.APPLE,
    DocsetType.DOCUSAURUS,
    DocsetType.MKDOCS,
    DocsetType.SPHINX,
    DocsetType.TYPEDOC,
    DocsetType.JSDOC,
    DocsetType.RUSTDOC,
    DocsetType.GODOC,
    DocsetType.PDOC,
]


class PatternRegistry:
    """Registry of docset selector tables."""

    _patterns: dict[DocsetType, DocsetPattern] = dict(_PATTERNS)

    @classmethod
    def get(cls, docset_type: DocsetType) -> DocsetPattern:
        """Get the pattern for a docset type."""
        return cls._patterns[docset_type]

    @classmethod
    def list_patterns(cls) -> list[DocsetPattern]:
        """List all registered patterns."""
        return list(cls._patterns.values())

    @classmethod
    def candidate_selectors(cls, docset_type: DocsetType) -> list[str]:
        """Ordered extraction candidates: type-specific first, then fallbacks."""
        return cls.get(docset_type).content_selectors + FALLBACK_SELECTORS

    @classmethod
    def detect(cls, url: str, html: str) -> DocsetType:
        """Auto-detect the docset type from URL or HTML content."""
        try:
            host = (urlparse(url).hostname or "").lower()
        except ValueError:
            host = ""
        url_lower = url.lower()
        html_lower = html.lower() if html else ""

        for docset_type in _DETECTION_ORDER:
            pattern = cls._patterns[docset_type]
            if any(marker in host or marker in url_lower for marker in pattern.url_markers):
                return docset_type
            if any(marker in html_lower for marker in pattern.html_markers):
                return docset_type

        return DocsetType.GENERIC


def parse_docset_type(value: object) -> DocsetType | None:
    """Return the matching :class:`DocsetType`, or None for unknown input."""
    if isinstance(value, DocsetType):
        return value
    if not isinstance(value, str):
        return None
    try:
        return DocsetType(value.strip().lower())
    except ValueError:
        return None
