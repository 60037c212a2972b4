"""Domain models for the news pipeline."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class RawNewsItem(BaseModel):
    """One article as extracted from a single source feed.

    Text fields are already sanitized and ``url`` is an absolute http(s) URL.
    ``image`` is either absolute or empty, never relative. ``id`` is only
    unique within one fetch.
    """

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    id: str
    title: str
    summary: str
    url: str
    source_name: str
    image: str = ""
    published_at: str = Field("", description="en-GB date (dd/mm/yyyy) or empty string")


class NewsItem(BaseModel):
    """One synthesized story served to clients (camelCase on the wire)."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str
    title: str
    summary: str
    url: str
    source_name: str = Field(..., description="Contributing sources, image provider first")
    image: str
    published_at: str = ""
    source_url: str

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True)
