"""Error taxonomy shared by the fetch, discovery, storage and job layers."""


class PreloadError(Exception):
    """Base class for all expected failures."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class FetchError(PreloadError):
    """A single fetch failed (timeout, transport error or non-2xx status).

    Always scoped to one target; the job keeps going.
    """

    def __init__(
        self,
        url: str,
        reason: str | None = None,
        status_code: int | None = None,
    ):
        if status_code is not None:
            message = f"Failed to fetch {url}: HTTP {status_code}"
        else:
            message = f"Failed to fetch {url}: {reason or 'unknown error'}"
        super().__init__(message)
        self.url = url
        self.reason = reason
        self.status_code = status_code


class NotFoundError(FetchError):
    """The origin answered 404."""

    def __init__(self, url: str):
        super().__init__(url, reason="not found", status_code=404)


class DiscoveryError(PreloadError):
    """One discovery source (sitemap, search index or crawled page) failed."""

    def __init__(self, url: str, message: str):
        super().__init__(message)
        self.url = url


class StorageError(PreloadError):
    """Reading or writing durable state failed."""


class RequestValidationError(PreloadError):
    """A request was rejected before any work started."""


class InsufficientContentError(PreloadError):
    """A page converted to too little Markdown to be worth keeping."""
