"""Error taxonomy and result envelopes shared by every operation.

Expected outcomes (a partition already has a document, a partition has no
content, a run is already in progress) are reported through ``OperationResult``
with an ``ErrorCode``. Exceptions are reserved for malformed input and
corrupt documents.
"""

from __future__ import annotations

from datetime import date
from enum import StrEnum

from pydantic import BaseModel, Field


class ErrorCode(StrEnum):
    """Machine-readable failure reasons."""

    SITEMAP_EXISTS = "sitemap_exists"
    NO_CONTENT = "no_content"
    NO_QUERIES = "no_queries"
    NO_VALID_DATES = "no_valid_dates"
    NO_SITEMAPS_FOUND = "no_sitemaps_found"
    STOPPED = "stopped"
    INVALID_DATE = "invalid_date"
    ALREADY_RUNNING = "already_running"
    CREATION_FAILED = "creation_failed"
    GENERATION_FAILED = "generation_failed"
    PARTIAL_FAILURE = "partial_failure"
    BLOG_NOT_PUBLIC = "blog_not_public"
    RESCHEDULE_FAILED = "reschedule_failed"
    INVALID_FREQUENCY = "invalid_frequency"
    ALREADY_ENABLED = "already_enabled"
    ALREADY_DISABLED = "already_disabled"


# Outcomes that leave the index consistent and are not reported as errors
NON_FATAL_CODES = frozenset({ErrorCode.SITEMAP_EXISTS, ErrorCode.NO_CONTENT})


class InvalidDateError(ValueError):
    """Raised when a partition or date query string cannot be parsed."""


class DocumentParseError(ValueError):
    """Raised when stored sitemap content is not a readable urlset."""


class OperationResult(BaseModel):
    """Outcome of a single operation."""

    success: bool
    message: str = ""
    error_code: ErrorCode | None = None
    partition: date | None = None
    count: int = 0
    entry_count: int = 0

    @classmethod
    def ok(cls, message: str = "", **kwargs: object) -> OperationResult:
        return cls(success=True, message=message, **kwargs)

    @classmethod
    def fail(cls, error_code: ErrorCode, message: str = "", **kwargs: object) -> OperationResult:
        return cls(success=False, error_code=error_code, message=message, **kwargs)

    @property
    def is_fatal(self) -> bool:
        """True when the operation failed for a reason worth reporting."""
        return not self.success and self.error_code not in NON_FATAL_CODES


class PartitionError(BaseModel):
    """A per-partition failure recorded during a batch."""

    partition: date
    error: str


class BatchResult(BaseModel):
    """Outcome of generating a set of partitions synchronously."""

    success: bool
    message: str = ""
    error_code: ErrorCode | None = None
    success_count: int = 0
    skipped_count: int = 0
    failure_count: int = 0
    entry_count: int = 0
    errors: list[PartitionError] = Field(default_factory=list)
