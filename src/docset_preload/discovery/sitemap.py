"""Sitemap-based URL discovery."""

import logging

from defusedxml import DefusedXmlException
from defusedxml.ElementTree import ParseError, fromstring

from docset_preload.discovery.base import DiscoverySource
from docset_preload.errors import DiscoveryError
from docset_preload.utils.url_utils import absolute_http_url, dedupe_preserve_order

logger = logging.getLogger(__name__)

SITEMAP_FILENAMES = ("sitemap.xml", "sitemap_index.xml")


def parse_sitemap_urls(xml: str, source_url: str) -> list[str]:
    """Extract every ``<loc>`` entry, resolved against ``source_url``.

    Namespaced and plain ``<loc>`` elements are both accepted. Raises
    :class:`DiscoveryError` when the document is not well-formed XML.
    """
    try:
        root = fromstring(xml.strip())
    except (ParseError, DefusedXmlException) as e:
        raise DiscoveryError(source_url, f"Invalid sitemap {source_url}: {e}") from e

    urls = []
    for element in root.iter():
        if not isinstance(element.tag, str) or not element.tag.endswith("loc"):
            continue
        value = (element.text or "").strip()
        if not value:
            continue
        url = absolute_http_url(value, source_url)
        if url:
            urls.append(url)
    return dedupe_preserve_order(urls)


class SitemapSource(DiscoverySource):
    """``sitemap.xml`` and ``sitemap_index.xml``."""

    name = "sitemap"
    accept = "application/xml, text/xml, text/plain"
    filenames = SITEMAP_FILENAMES

    def parse(self, body: str, source_url: str, index_base: str) -> list[str]:
        return parse_sitemap_urls(body, source_url)
