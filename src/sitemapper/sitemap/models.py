"""Sitemap domain models: pure Pydantic v2 data types.

No I/O. IndexEntry is the unit providers emit; PartitionDocument is what
the store persists, one per day.
"""

from __future__ import annotations

from datetime import UTC, date, datetime
from enum import StrEnum
from urllib.parse import urlparse

from pydantic import BaseModel, Field, field_validator

from sitemapper.errors import ErrorCode

MAX_URL_LENGTH = 2048


def _check_url(value: str) -> str:
    value = value.strip()
    if not value:
        raise ValueError("URL cannot be empty")
    if len(value) > MAX_URL_LENGTH:
        raise ValueError(f"URL exceeds {MAX_URL_LENGTH} characters")
    parsed = urlparse(value)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ValueError(f"URL must be absolute http(s): {value!r}")
    return value


class ChangeFrequency(StrEnum):
    """Allowed ``<changefreq>`` values."""

    ALWAYS = "always"
    HOURLY = "hourly"
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"
    NEVER = "never"


class ImageRef(BaseModel):
    """An image attached to a sitemap entry."""

    url: str
    title: str = ""
    caption: str = ""

    @field_validator("url")
    @classmethod
    def _valid_url(cls, value: str) -> str:
        return _check_url(value)


class IndexEntry(BaseModel):
    """One ``<url>`` of a sitemap document."""

    url: str
    last_modified: datetime | None = None
    priority: float | None = Field(default=None, ge=0.0, le=1.0)
    change_frequency: ChangeFrequency | None = None
    images: list[ImageRef] = Field(default_factory=list)

    @field_validator("url")
    @classmethod
    def _valid_url(cls, value: str) -> str:
        return _check_url(value)


# ---------------------------------------------------------------------------
# Stored documents
# ---------------------------------------------------------------------------


class PartitionDocument(BaseModel):
    """Persisted sitemap for a single day."""

    partition: date
    content: str
    entry_count: int = Field(ge=0)
    created_at: datetime = Field(default_factory=lambda: datetime.now(tz=UTC))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(tz=UTC))


class GeneratedDocument(BaseModel):
    """Output of the generator before it is stored."""

    partition: date
    content: str = ""
    entry_count: int = 0

    @property
    def is_empty(self) -> bool:
        return self.entry_count == 0


class ValidationReport(BaseModel):
    """Structural check of one stored document."""

    partition: date | None = None
    valid: bool
    url_count: int = 0
    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Maintenance results
# ---------------------------------------------------------------------------


class RecountResult(BaseModel):
    """Outcome of re-deriving entry counts and the aggregate."""

    success: bool = True
    full: bool = False
    sitemap_count: int = 0
    total_entries: int = 0
    previous_total: int = 0
    updated_count: int = 0
    mismatches: list[date] = Field(default_factory=list)
    message: str = ""
    error_code: ErrorCode | None = None


class ValidationSummary(BaseModel):
    success: bool
    checked: int = 0
    valid_count: int = 0
    invalid_count: int = 0
    reports: list[ValidationReport] = Field(default_factory=list)
    message: str = ""
    error_code: ErrorCode | None = None


class SitemapStats(BaseModel):
    sitemap_count: int = 0
    total_entries: int = 0
    earliest: date | None = None
    latest: date | None = None
    last_updated: datetime | None = None
    by_year: dict[int, int] = Field(default_factory=dict)
