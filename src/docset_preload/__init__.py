"""Crawl documentation sites into a local, searchable Markdown index."""

__version__ = "0.1.0"
