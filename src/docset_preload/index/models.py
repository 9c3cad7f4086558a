"""Data model of a preload bundle and the durable site index."""

from pydantic import Field

from docset_preload.models import CamelModel
from docset_preload.patterns import DocsetType


class PreloadItem(CamelModel):
    """One fetched page converted to Markdown."""

    path: str
    url: str
    docset_type: DocsetType = DocsetType.GENERIC
    content: str = ""


class DocumentSummary(CamelModel):
    id: str
    path: str
    url: str
    docset_type: DocsetType = DocsetType.GENERIC
    title: str = ""
    description: str = ""
    content_file: str
    index_file: str


class Heading(CamelModel):
    level: int
    text: str


class LinkEntry(CamelModel):
    """A Markdown link found in a document.

    ``local_doc_id`` is set when the target is another document of the same
    site.
    """

    title: str
    url: str
    description: str = ""
    local_doc_id: str | None = None


class SuggestedDoc(CamelModel):
    """A related document, ranked by token overlap."""

    doc_id: str
    title: str
    path: str
    url: str
    content_file: str
    index_file: str
    overlap_score: float
    shared_terms: int


class DocIndex(CamelModel):
    doc: DocumentSummary
    headings: list[Heading] = Field(default_factory=list)
    links: list[LinkEntry] = Field(default_factory=list)
    suggested: list[SuggestedDoc] = Field(default_factory=list)


class SiteIndex(CamelModel):
    """Manifest of every document stored for one site."""

    version: int = 1
    generated_at: str
    base_url: str
    total_docs: int = 0
    docs: list[DocumentSummary] = Field(default_factory=list)


class PreloadBundle(CamelModel):
    """Complete in-memory result of one crawl, before persistence."""

    site_index: SiteIndex
    doc_indexes: dict[str, DocIndex] = Field(default_factory=dict)
    docs: list[PreloadItem] = Field(default_factory=list)

    def item_for(self, summary: DocumentSummary) -> PreloadItem | None:
        for item in self.docs:
            if item.url == summary.url and item.path == summary.path:
                return item
        return None
