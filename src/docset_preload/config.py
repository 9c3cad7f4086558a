"""Configuration management with Pydantic models."""

import tomllib
from pathlib import Path

from pydantic import BaseModel, Field


class FetcherConfig(BaseModel):
    """Configuration for page fetching."""

    min_interval_ms: int = Field(default=300, ge=0, le=60000)
    timeout_ms: int = Field(default=20000, ge=1000, le=120000)
    user_agent: str = (
        "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 "
        "(KHTML, like Gecko) Version/17.4.1 Safari/605.1.15"
    )


class ExtractorConfig(BaseModel):
    """Configuration for content extraction."""

    min_content_length: int = Field(default=200, ge=0)
    min_markdown_length: int = Field(default=100, ge=0)
    strip_selectors: list[str] = Field(
        default_factory=lambda: [
            "nav",
            "header",
            "footer",
            "aside",
            "form",
            "button",
            "[role='navigation']",
            ".navbar",
            ".site-header",
            ".site-footer",
            ".topbar",
            ".announcement",
            ".alert",
            ".banner",
            ".cookie",
            ".search",
            ".search-container",
            ".searchbox",
            ".skip-link",
            ".toc-nav",
            ".toc-container",
            ".toc-sidebar",
            ".docs-toc",
            ".docs-toc-container",
            ".docs-header",
            ".site-nav",
            ".site-navigation",
            ".docs-nav",
            ".docs-sidebar",
            ".doc-sidebar",
            ".doc-nav",
            ".sidebar-nav",
            "script",
            "style",
            "noscript",
            "svg",
            ".toc",
            ".table-of-contents",
            ".breadcrumbs",
            ".breadcrumb",
            ".pagination",
            ".sidebar",
            ".theme-doc-sidebar-container",
            ".theme-doc-toc",
            ".theme-doc-toc-mobile",
            ".md-sidebar",
            ".wy-nav-side",
            ".rst-versions",
        ]
    )


class DiscoveryConfig(BaseModel):
    """Default discovery settings used when a request leaves them out."""

    max_discover: int = Field(default=300, ge=1, le=2000)
    max_depth: int = Field(default=2, ge=1, le=5)
    include_indexes: bool = True
    include_links: bool = True
    same_host_only: bool = True


class PreloadConfig(BaseModel):
    """Default crawl settings for preload jobs."""

    max_pages: int = Field(default=200, ge=1, le=2000)
    concurrency: int = Field(default=4, ge=1, le=12)
    include_base: bool = True


class JobConfig(BaseModel):
    """In-memory job table retention."""

    ttl_seconds: float = Field(default=3600.0, ge=0.0)
    max_jobs: int = Field(default=25, ge=1)


class StorageConfig(BaseModel):
    """Where site stores, job snapshots and scratch output live."""

    root: Path = Path("./local")


class AppConfig(BaseModel):
    """Main application configuration."""

    fetcher: FetcherConfig = Field(default_factory=FetcherConfig)
    extractor: ExtractorConfig = Field(default_factory=ExtractorConfig)
    discovery: DiscoveryConfig = Field(default_factory=DiscoveryConfig)
    preload: PreloadConfig = Field(default_factory=PreloadConfig)
    jobs: JobConfig = Field(default_factory=JobConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    verbose: bool = False

    @classmethod
    def from_toml(cls, path: Path) -> "AppConfig":
        """Load config from a TOML file."""
        with open(path, "rb") as f:
            data = tomllib.load(f)
        return cls.model_validate(data)
