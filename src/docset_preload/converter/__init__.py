"""HTML to Markdown conversion."""

from docset_preload.converter.markdown import MarkdownConverter, html_to_markdown

__all__ = [
    "MarkdownConverter",
    "html_to_markdown",
]
