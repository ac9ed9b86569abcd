"""JSON-backed store of partition documents and the aggregate entry count.

All documents and the running aggregate live in a single JSON file that
is saved after every write operation and re-read whenever another process
has changed it. Documents and aggregate are written together.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from datetime import date, datetime
from pathlib import Path

from pydantic import BaseModel, Field

from sitemapper.dates import DateQuery, utc_now
from sitemapper.sitemap.models import PartitionDocument

logger = logging.getLogger(__name__)

STORE_FILENAME = "sitemaps.json"

# Alias to avoid shadowing inside the class body
_list = list


class _StoreData(BaseModel):
    """Internal wrapper for JSON serialization."""

    documents: _list[PartitionDocument] = Field(default_factory=_list)
    aggregate_count: int = 0


class PartitionStore:
    """At most one document per day, plus the running entry total.

    ``aggregate_count`` is adjusted by the difference between the old and
    new ``entry_count`` on every save and delete.
    """

    def __init__(self, data_dir: Path, clock: Callable[[], datetime] = utc_now) -> None:
        self._path = data_dir / STORE_FILENAME
        self._clock = clock
        self._signature: tuple[int, int] | None = None
        self._data = _StoreData()
        self._index: dict[date, PartitionDocument] = {}
        self._sync()

    # ── Private helpers ──────────────────────────────────────────

    def _load(self) -> _StoreData:
        if not self._path.exists():
            return _StoreData()
        try:
            raw = json.loads(self._path.read_text(encoding="utf-8"))
            return _StoreData.model_validate(raw)
        except (json.JSONDecodeError, ValueError, KeyError):
            logger.warning("Corrupt sitemap store at %s, starting fresh", self._path)
            return _StoreData()

    def _sync(self) -> None:
        """Reload when another process has rewritten the file."""
        signature = self._file_signature()
        if signature is not None and signature == self._signature:
            return
        self._data = self._load()
        self._index = {doc.partition: doc for doc in self._data.documents}
        self._signature = signature

    def _file_signature(self) -> tuple[int, int] | None:
        try:
            stat = self._path.stat()
        except FileNotFoundError:
            return None
        return (stat.st_mtime_ns, stat.st_size)

    def _save(self) -> None:
        self._data.documents = sorted(self._index.values(), key=lambda doc: doc.partition)
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._path.write_text(self._data.model_dump_json(indent=2), encoding="utf-8")
        self._signature = self._file_signature()

    def _remove(self, partition: date) -> int:
        doc = self._index.pop(partition, None)
        if doc is None:
            return 0
        self._data.aggregate_count -= doc.entry_count
        return 1

    # ── Write operations ─────────────────────────────────────────

    def save(self, partition: date, content: str, entry_count: int) -> bool:
        """Insert or overwrite a day's document, keeping its created_at."""
        self._sync()
        now = self._clock()
        existing = self._index.get(partition)
        previous_count = existing.entry_count if existing is not None else 0
        self._index[partition] = PartitionDocument(
            partition=partition,
            content=content,
            entry_count=entry_count,
            created_at=existing.created_at if existing is not None else now,
            updated_at=now,
        )
        self._data.aggregate_count += entry_count - previous_count
        self._save()
        logger.debug("Saved sitemap %s (%d entries)", partition, entry_count)
        return True

    def delete(self, partition: date) -> int:
        """Delete a day's document. Returns how many were removed (0 or 1)."""
        self._sync()
        removed = self._remove(partition)
        if removed:
            self._save()
        return removed

    def delete_matching(self, queries: _list[DateQuery]) -> int:
        """Delete every document any of the queries selects."""
        self._sync()
        targets = [p for p in self._index if any(q.matches(p) for q in queries)]
        removed = sum(self._remove(p) for p in targets)
        if removed:
            self._save()
        return removed

    def delete_all(self) -> int:
        self._sync()
        removed = len(self._index)
        self._index.clear()
        self._data.aggregate_count = 0
        self._save()
        return removed

    def set_entry_count(self, partition: date, entry_count: int) -> None:
        """Correct a document's recorded count without touching its content.

        The aggregate moves by the same difference.
        """
        self._sync()
        doc = self._index.get(partition)
        if doc is None:
            raise KeyError(partition)
        self._data.aggregate_count += entry_count - doc.entry_count
        doc.entry_count = entry_count
        self._save()

    def set_aggregate_count(self, total: int) -> None:
        self._sync()
        self._data.aggregate_count = total
        self._save()

    # ── Read operations ──────────────────────────────────────────

    def find(self, partition: date) -> PartitionDocument | None:
        self._sync()
        return self._index.get(partition)

    def exists(self, partition: date) -> bool:
        self._sync()
        return partition in self._index

    def all_partitions(self) -> _list[date]:
        self._sync()
        return sorted(self._index)

    def all_documents(self) -> _list[PartitionDocument]:
        self._sync()
        return [self._index[p] for p in sorted(self._index)]

    def find_matching(self, queries: _list[DateQuery]) -> _list[PartitionDocument]:
        self._sync()
        return [doc for doc in self.all_documents() if any(q.matches(doc.partition) for q in queries)]

    @property
    def aggregate_count(self) -> int:
        self._sync()
        return self._data.aggregate_count

    def __len__(self) -> int:
        self._sync()
        return len(self._index)
