"""Read-only access to the content repository.

ContentRepository is the seam between the sitemap engine and whatever
system owns the content. JsonContentRepository implements it over a single
JSON file and also exposes the write side used by tooling and tests.
"""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from datetime import date, datetime
from pathlib import Path

from pydantic import BaseModel, Field

from sitemapper.content.models import ContentChange, ContentItem, ensure_utc

logger = logging.getLogger(__name__)


class ContentRepository(ABC):
    """Queries the engine needs from the content side.

    Only published items are visible. ``post_types=None`` means every type.
    """

    @abstractmethod
    def has_content(self, partition: date, post_types: list[str] | None = None) -> bool:
        """Whether at least one published item falls on this day."""

    @abstractmethod
    def items_for_partition(
        self,
        partition: date,
        post_types: list[str] | None = None,
        limit: int | None = None,
    ) -> list[ContentItem]:
        """Published items for a day, ordered by publication time."""

    @abstractmethod
    def items_modified_since(
        self,
        since: datetime,
        post_types: list[str] | None = None,
    ) -> list[ContentChange]:
        """Items whose ``modified_at`` is at or after ``since``."""

    @abstractmethod
    def live_count(self, partition: date, post_types: list[str] | None = None) -> int:
        """Number of published items on a day."""

    @abstractmethod
    def all_dates_with_content(self, post_types: list[str] | None = None) -> list[date]:
        """Every day with published content, ascending."""


class _RepositoryData(BaseModel):
    """Internal wrapper for JSON serialization."""

    items: list[ContentItem] = Field(default_factory=list)


class JsonContentRepository(ContentRepository):
    """Content repository stored as one JSON file.

    The file is re-read whenever its modification time changes, so a
    long-running process sees edits made by other processes.
    """

    def __init__(self, path: Path) -> None:
        self._path = path
        self._signature: tuple[int, int] | None = None
        self._data = _RepositoryData()

    # ── Private helpers ──────────────────────────────────────────

    def _items(self) -> list[ContentItem]:
        try:
            stat = self._path.stat()
        except FileNotFoundError:
            self._signature = None
            self._data = _RepositoryData()
            return self._data.items
        signature = (stat.st_mtime_ns, stat.st_size)
        if signature != self._signature:
            self._data = self._load()
            self._signature = signature
        return self._data.items

    def _load(self) -> _RepositoryData:
        try:
            raw = json.loads(self._path.read_text(encoding="utf-8"))
            return _RepositoryData.model_validate(raw)
        except (json.JSONDecodeError, ValueError, KeyError):
            logger.warning("Corrupt content file at %s, treating as empty", self._path)
            return _RepositoryData()

    def _save(self) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._path.write_text(self._data.model_dump_json(indent=2), encoding="utf-8")
        stat = self._path.stat()
        self._signature = (stat.st_mtime_ns, stat.st_size)

    def _visible(self, post_types: list[str] | None) -> list[ContentItem]:
        return [
            item
            for item in self._items()
            if item.is_published and (post_types is None or item.post_type in post_types)
        ]

    # ── Write operations ─────────────────────────────────────────

    def upsert(self, item: ContentItem) -> None:
        """Insert or replace an item by id."""
        self._items()
        self._data.items = [i for i in self._data.items if i.id != item.id]
        self._data.items.append(item)
        self._save()

    def remove(self, item_id: str) -> bool:
        """Delete an item by id. Returns False if it did not exist."""
        before = len(self._items())
        self._data.items = [i for i in self._data.items if i.id != item_id]
        if len(self._data.items) == before:
            return False
        self._save()
        return True

    # ── Read operations ──────────────────────────────────────────

    def get(self, item_id: str) -> ContentItem | None:
        for item in self._items():
            if item.id == item_id:
                return item
        return None

    def has_content(self, partition: date, post_types: list[str] | None = None) -> bool:
        return any(item.partition == partition for item in self._visible(post_types))

    def items_for_partition(
        self,
        partition: date,
        post_types: list[str] | None = None,
        limit: int | None = None,
    ) -> list[ContentItem]:
        items = sorted(
            (item for item in self._visible(post_types) if item.partition == partition),
            key=lambda item: (item.published_at, item.id),
        )
        if limit is not None:
            items = items[:limit]
        return items

    def items_modified_since(
        self,
        since: datetime,
        post_types: list[str] | None = None,
    ) -> list[ContentChange]:
        since = ensure_utc(since)
        changes = [
            ContentChange(partition=item.partition, modified_at=item.modified_at)
            for item in self._visible(post_types)
            if item.modified_at >= since
        ]
        changes.sort(key=lambda change: (change.modified_at, change.partition))
        return changes

    def live_count(self, partition: date, post_types: list[str] | None = None) -> int:
        return sum(1 for item in self._visible(post_types) if item.partition == partition)

    def all_dates_with_content(self, post_types: list[str] | None = None) -> list[date]:
        return sorted({item.partition for item in self._visible(post_types)})
