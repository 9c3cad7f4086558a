"""Utility functions and classes."""

from docset_preload.utils.rate_limiter import HostScheduler, host_key
from docset_preload.utils.url_utils import (
    comparable_url,
    is_admissible_url,
    normalize_url,
    site_slug_from_base_url,
    slugify,
)

__all__ = [
    "HostScheduler",
    "host_key",
    "comparable_url",
    "is_admissible_url",
    "normalize_url",
    "site_slug_from_base_url",
    "slugify",
]
