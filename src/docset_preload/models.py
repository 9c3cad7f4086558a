"""Shared pydantic base models."""

from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Model persisted as JSON with camelCase keys.

    Dump with ``by_alias=True``; both field names and aliases are accepted on
    input.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class UrlError(CamelModel):
    """A failure tied to a single URL."""

    url: str
    error: str


class PathError(CamelModel):
    """A failure tied to a single preload target path."""

    path: str
    error: str


def utc_now_iso() -> str:
    """Current UTC time as an ISO-8601 string with millisecond precision."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")
