"""Single-page fetch and convert."""

import json
import logging
import re
from typing import Any, Protocol
from urllib.parse import urlparse

from pydantic import BaseModel

from docset_preload.config import ExtractorConfig
from docset_preload.converter import html_to_markdown
from docset_preload.errors import FetchError, InsufficientContentError
from docset_preload.extractor import ContentExtractor
from docset_preload.fetcher import PageFetcher
from docset_preload.patterns import DocsetType, PatternRegistry
from docset_preload.utils.url_utils import ensure_scheme, normalize_url, resolve_url

logger = logging.getLogger(__name__)

APPLE_HOST = "developer.apple.com"
APPLE_DATA_ROOT = "https://developer.apple.com/tutorials/data"

_ABSOLUTE_URL_RE = re.compile(r"^https?://", re.IGNORECASE)


class DocumentationPage(BaseModel):
    """A fetched page converted to Markdown."""

    url: str
    docset_type: DocsetType
    title: str = ""
    markdown: str


class DocumentRenderer(Protocol):
    """Turns a provider's page-description JSON into Markdown."""

    def render(self, data: dict[str, Any], source_url: str) -> str: ...


def resolve_target_url(base_url: str, path: str | None = None) -> str:
    """Absolute ``path`` wins; a relative one is resolved against ``base_url``."""
    if path and _ABSOLUTE_URL_RE.match(path.strip()):
        return normalize_url(path.strip())
    base = normalize_url(ensure_scheme(base_url))
    if not path:
        return base
    return normalize_url(resolve_url(path.strip(), base))


def apple_json_url(url: str) -> str | None:
    """Provider JSON location for an Apple documentation page.

    Framework roots (``/documentation/swiftui``) map to the framework index;
    deeper pages map to ``.../documentation/<path>.json``.
    """
    parsed = urlparse(url)
    if (parsed.hostname or "").lower() != APPLE_HOST:
        return None
    parts = [part for part in parsed.path.split("/") if part]
    if not parts or parts[0] != "documentation" or len(parts) < 2:
        return None
    if len(parts) == 2:
        return f"{APPLE_DATA_ROOT}/index/{parts[1]}"
    return f"{APPLE_DATA_ROOT}/{'/'.join(parts)}.json"


def markdown_title(markdown: str) -> str:
    match = re.search(r"^#\s+(.+)$", markdown, re.MULTILINE)
    return match.group(1).strip() if match else ""


class DocumentationFetcher:
    """Fetch one documentation page and convert it to Markdown.

    HTML pages go through the :class:`ContentExtractor` and the Markdown
    converter. Docset types with a registered :class:`DocumentRenderer`
    (Apple) are fetched as provider JSON and rendered instead.
    """

    def __init__(
        self,
        fetcher: PageFetcher,
        config: ExtractorConfig,
        renderers: dict[DocsetType, DocumentRenderer] | None = None,
    ):
        self.fetcher = fetcher
        self.config = config
        self.extractor = ContentExtractor(config)
        self.renderers = renderers or {}

    async def fetch_markdown(
        self,
        base_url: str,
        path: str | None = None,
        docset_type: DocsetType | None = None,
    ) -> DocumentationPage:
        """Fetch, extract and convert a single page.

        Raises :class:`FetchError` when the page cannot be fetched and
        :class:`InsufficientContentError` when too little Markdown survives.
        """
        url = resolve_target_url(base_url, path)

        renderer_type = docset_type
        if renderer_type is None and (urlparse(url).hostname or "") == APPLE_HOST:
            renderer_type = DocsetType.APPLE
        renderer = self.renderers.get(renderer_type) if renderer_type else None

        if renderer is not None and renderer_type == DocsetType.APPLE and apple_json_url(url):
            page = await self._fetch_rendered(url, renderer_type, renderer)
        else:
            page = await self._fetch_html(url, docset_type)

        if len(page.markdown.strip()) < self.config.min_markdown_length:
            raise InsufficientContentError(
                f"Insufficient content extracted from {url} "
                f"({len(page.markdown.strip())} characters)"
            )
        return page

    async def _fetch_html(self, url: str, docset_type: DocsetType | None) -> DocumentationPage:
        result = await self.fetcher.fetch(url, headers={"Accept": "text/html,application/xhtml+xml"})
        detected = docset_type or PatternRegistry.detect(result.final_url, result.body)
        extracted = self.extractor.extract(result.body, detected)
        markdown = html_to_markdown(extracted.content_html)

        if extracted.title and markdown and not markdown.startswith("# "):
            markdown = f"# {extracted.title}\n\n{markdown}"

        logger.debug(
            "Converted %s as %s via %s (%d chars)",
            url, detected.value, extracted.selector or "body", len(markdown),
        )
        return DocumentationPage(
            url=url,
            docset_type=detected,
            title=extracted.title or markdown_title(markdown),
            markdown=markdown,
        )

    async def _fetch_rendered(
        self, url: str, docset_type: DocsetType, renderer: DocumentRenderer
    ) -> DocumentationPage:
        json_url = apple_json_url(url)
        assert json_url is not None
        result = await self.fetcher.fetch(
            json_url, headers={"Accept": "application/json", "Cache-Control": "no-cache"}
        )
        try:
            data = json.loads(result.body)
        except json.JSONDecodeError as e:
            raise FetchError(json_url, reason=f"invalid JSON: {e}") from e
        if not isinstance(data, dict):
            raise FetchError(json_url, reason="unexpected JSON payload")

        markdown = renderer.render(data, url)
        return DocumentationPage(
            url=url,
            docset_type=docset_type,
            title=markdown_title(markdown),
            markdown=markdown,
        )


async def fetch_documentation_markdown(
    fetcher: PageFetcher,
    config: ExtractorConfig,
    base_url: str,
    path: str | None = None,
    docset_type: DocsetType | None = None,
    renderers: dict[DocsetType, DocumentRenderer] | None = None,
) -> DocumentationPage:
    """Convenience wrapper around :meth:`DocumentationFetcher.fetch_markdown`."""
    return await DocumentationFetcher(fetcher, config, renderers).fetch_markdown(
        base_url, path, docset_type
    )
