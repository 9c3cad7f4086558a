"""Fetch result model."""

from pydantic import BaseModel


class FetchResult(BaseModel):
    """Result of a successful fetch."""

    url: str
    final_url: str  # After redirects
    status_code: int
    body: str
    content_type: str = ""

    @property
    def success(self) -> bool:
        return 200 <= self.status_code < 300
