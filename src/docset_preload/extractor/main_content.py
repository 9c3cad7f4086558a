"""Main content extraction from HTML pages."""

import copy
import logging

from bs4 import BeautifulSoup, Tag
from pydantic import BaseModel

from docset_preload.config import ExtractorConfig
from docset_preload.patterns import DocsetType, PatternRegistry

logger = logging.getLogger(__name__)


class ExtractedContent(BaseModel):
    """Extracted content from a page."""

    title: str = ""
    content_html: str = ""
    selector: str | None = None  # None when the whole body was used


class ContentExtractor:
    """Isolate the main content region of a documentation page.

    Candidates are tried in order (docset-specific selectors, then generic
    fallbacks). Each candidate is cloned and stripped of navigation chrome;
    the first clone with enough remaining text wins. The parsed document is
    never modified, so a rejected candidate does not affect later ones.
    """

    def __init__(self, config: ExtractorConfig):
        self.config = config

    def extract(self, html: str, docset_type: DocsetType = DocsetType.GENERIC) -> ExtractedContent:
        """Extract title and content HTML for ``docset_type``."""
        if not html or not html.strip():
            return ExtractedContent()

        soup = BeautifulSoup(html, "lxml")
        root, selector = self._find_main_content(soup, docset_type)
        if root is None:
            return ExtractedContent()

        title_element = root.find("h1")
        title = title_element.get_text(strip=True) if title_element else ""
        if title_element is not None and title:
            title_element.decompose()
        if not title:
            title = self._document_title(soup)

        return ExtractedContent(
            title=title,
            content_html=root.decode_contents(),
            selector=selector,
        )

    def _find_main_content(
        self, soup: BeautifulSoup, docset_type: DocsetType
    ) -> tuple[Tag | None, str | None]:
        for selector in PatternRegistry.candidate_selectors(docset_type):
            node = soup.select_one(selector)
            if node is None:
                continue
            candidate = self._strip_chrome(copy.copy(node))
            text = candidate.get_text().strip()
            if len(text) >= self.config.min_content_length:
                return candidate, selector
            logger.debug(
                "Candidate %r has %d chars after stripping, need %d",
                selector, len(text), self.config.min_content_length,
            )

        body = soup.body
        if body is None:
            return None, None
        return self._strip_chrome(copy.copy(body)), None

    def _strip_chrome(self, root: Tag) -> Tag:
        """Remove navigation, sidebars, search boxes and banners in place."""
        for selector in self.config.strip_selectors:
            for node in root.select(selector):
                node.decompose()
        return root

    @staticmethod
    def _document_title(soup: BeautifulSoup) -> str:
        h1 = soup.find("h1")
        if h1 is not None:
            text = h1.get_text(strip=True)
            if text:
                return text
        if soup.title is not None:
            return soup.title.get_text(strip=True)
        return ""
