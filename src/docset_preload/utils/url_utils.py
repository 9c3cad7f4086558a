"""URL manipulation utilities."""

import re
from posixpath import splitext
from urllib.parse import urljoin, urlparse, urlunparse

NON_DOC_EXTENSIONS = frozenset({
    ".png", ".jpg", ".jpeg", ".gif", ".webp", ".svg", ".ico",
    ".pdf", ".zip", ".gz", ".tgz", ".tar",
    ".mp4", ".mp3", ".wav",
    ".css", ".js", ".map",
    ".woff", ".woff2", ".ttf", ".otf",
})

_SCHEME_RE = re.compile(r"^https?://", re.IGNORECASE)


def ensure_scheme(url: str) -> str:
    """Prefix ``https://`` when a URL has no http(s) scheme."""
    trimmed = url.strip()
    if _SCHEME_RE.match(trimmed):
        return trimmed
    return f"https://{trimmed}"


def normalize_url(url: str) -> str:
    """Normalize a URL: default the scheme, lowercase the host, drop the fragment.

    An empty path becomes ``/`` so ``https://a.dev`` and ``https://a.dev/``
    compare equal. Raises ``ValueError`` for URLs without a host.
    """
    parsed = urlparse(ensure_scheme(url))
    if not parsed.netloc:
        raise ValueError(f"Invalid URL: {url!r}")
    path = parsed.path or "/"
    return urlunparse(parsed._replace(netloc=parsed.netloc.lower(), path=path, fragment=""))


def comparable_url(url: str) -> str:
    """Identity key for a document URL: no fragment, no trailing slash."""
    try:
        normalized = normalize_url(url)
    except ValueError:
        return url
    return normalized[:-1] if normalized.endswith("/") else normalized


def local_comparable_url(url: str) -> str:
    """Like :func:`comparable_url` but also ignores the query string."""
    parsed = urlparse(url)
    if not parsed.scheme or not parsed.netloc:
        return url
    return comparable_url(urlunparse(parsed._replace(query="")))


def resolve_url(href: str, base_url: str) -> str:
    """Convert a potentially relative URL to absolute."""
    try:
        return urljoin(base_url, href)
    except ValueError:
        return href


def is_http_url(url: str) -> bool:
    try:
        parsed = urlparse(url)
    except ValueError:
        return False
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def is_same_host(url: str, base_url: str) -> bool:
    """Check if two URLs share a hostname (ports ignored)."""
    try:
        return urlparse(url).hostname == urlparse(base_url).hostname
    except ValueError:
        return False


def has_document_extension(url: str) -> bool:
    """False for assets such as images, archives, fonts, stylesheets and scripts."""
    try:
        path = urlparse(url).path.lower()
    except ValueError:
        return False
    return splitext(path)[1] not in NON_DOC_EXTENSIONS


def is_admissible_url(url: str, base_url: str, same_host_only: bool = True) -> bool:
    """The admission rule every discovered URL must pass."""
    if not is_http_url(url):
        return False
    if same_host_only and not is_same_host(url, base_url):
        return False
    return has_document_extension(url)


def dedupe_preserve_order(values: list[str]) -> list[str]:
    seen: set[str] = set()
    deduped: list[str] = []
    for value in values:
        if not value or value in seen:
            continue
        seen.add(value)
        deduped.append(value)
    return deduped


def slugify(value: str, fallback: str = "doc") -> str:
    """Lowercase, collapse non-alphanumeric runs to hyphens, trim hyphens."""
    slug = re.sub(r"[^a-z0-9]+", "-", value.lower()).strip("-")
    return slug or fallback


def site_slug_from_base_url(base_url: str) -> str:
    """Storage directory name for a site: slugged host plus path."""
    try:
        parsed = urlparse(ensure_scheme(base_url))
        name = f"{parsed.hostname or ''}{parsed.path.rstrip('/')}".lower()
    except ValueError:
        name = base_url.lower()
    return slugify(name, fallback="docs")


def url_leaf(url: str) -> str:
    """Last non-empty path segment, or the hostname for a root URL."""
    try:
        parsed = urlparse(url)
    except ValueError:
        return ""
    segments = [part for part in parsed.path.split("/") if part]
    return segments[-1] if segments else (parsed.hostname or "")


def absolute_http_url(href: str, base_url: str) -> str | None:
    """Resolve ``href`` against ``base_url`` and normalize it.

    Returns ``None`` for anything that does not resolve to an http(s) URL.
    """
    resolved = resolve_url(href.strip(), base_url)
    if not is_http_url(resolved):
        return None
    try:
        return normalize_url(resolved)
    except ValueError:
        return None
