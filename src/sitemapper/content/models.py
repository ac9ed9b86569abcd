"""Content repository models: pure Pydantic v2 data types.

A ContentItem is one addressable piece of published content (a post, a
page, ...). Items are grouped into date partitions by the calendar day
they were published on, in UTC.
"""

from __future__ import annotations

from datetime import UTC, date, datetime
from enum import StrEnum

from pydantic import BaseModel, Field, field_validator


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC so comparisons never mix kinds."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


class ContentStatus(StrEnum):
    """Visibility of a content item."""

    PUBLISH = "publish"
    DRAFT = "draft"
    PRIVATE = "private"
    TRASH = "trash"


class ContentImage(BaseModel):
    """An image embedded in a content item."""

    url: str
    title: str = ""
    caption: str = ""


class ContentItem(BaseModel):
    """A single item in the content repository."""

    id: str
    url: str
    post_type: str = "post"
    status: ContentStatus = ContentStatus.PUBLISH
    published_at: datetime
    modified_at: datetime
    title: str = ""
    images: list[ContentImage] = Field(default_factory=list)

    @field_validator("published_at", "modified_at")
    @classmethod
    def _normalize_tz(cls, value: datetime) -> datetime:
        return ensure_utc(value)

    @property
    def partition(self) -> date:
        return self.published_at.date()

    @property
    def is_published(self) -> bool:
        return self.status == ContentStatus.PUBLISH


class ContentChange(BaseModel):
    """A modification signal: which partition an edited item belongs to."""

    partition: date
    modified_at: datetime
