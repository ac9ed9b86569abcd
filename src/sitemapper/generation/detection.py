"""Finds partitions whose documents are missing or out of date."""

from __future__ import annotations

import logging
from datetime import date

from sitemapper.content.repository import ContentRepository
from sitemapper.generation.models import DetectionResult
from sitemapper.generation.state import GenerationStateService
from sitemapper.sitemap.registry import ProviderRegistry
from sitemapper.sitemap.store import PartitionStore

logger = logging.getLogger(__name__)


class StalenessDetector:
    """Compares the content repository against the stored documents.

    A partition is *missing* when providers report content for it but no
    document exists. It is *stale* when a document exists and either an
    item on that day was modified at or after the last completed pass, or
    the stored entry count differs from the providers' live count.

    The count check cannot see a same-day delete plus add; the
    modification check covers that case whenever a watermark exists.
    """

    def __init__(
        self,
        registry: ProviderRegistry,
        repository: ContentRepository,
        store: PartitionStore,
        state: GenerationStateService,
    ) -> None:
        self._registry = registry
        self._repository = repository
        self._store = store
        self._state = state

    def detect(self) -> DetectionResult:
        stored = set(self._store.all_partitions())
        missing = [p for p in self._registry.content_dates() if p not in stored]
        stale = self._find_stale(stored)
        result = DetectionResult(
            missing=missing,
            stale=stale,
            summary_message=summarize(len(missing), len(stale)),
        )
        logger.info(result.summary_message)
        return result

    def _find_stale(self, stored: set[date]) -> list[date]:
        stale: dict[date, None] = {}

        watermark = self._state.last_completed_at()
        post_types = self._registry.post_types()
        if watermark is not None and post_types:
            for change in self._repository.items_modified_since(watermark, post_types=post_types):
                if change.partition in stored:
                    stale.setdefault(change.partition, None)

        for partition in sorted(stored):
            if partition in stale:
                continue
            document = self._store.find(partition)
            if document is None:
                continue
            live = self._registry.estimate_count(partition)
            if live != document.entry_count:
                # providers may list the same URL; generation stores the deduplicated count
                live = self._registry.entry_count(partition)
            if live != document.entry_count:
                logger.debug(
                    "Count mismatch for %s: stored %d, live %d",
                    partition,
                    document.entry_count,
                    live,
                )
                stale[partition] = None

        return list(stale)


def summarize(missing: int, stale: int) -> str:
    """Human-readable summary of a detection pass."""
    if not missing and not stale:
        return "All sitemaps are up to date."
    parts: list[str] = []
    if missing:
        parts.append(f"{missing} missing sitemap{'s' if missing != 1 else ''}")
    if stale:
        noun = "sitemap that needs" if stale == 1 else "sitemaps that need"
        parts.append(f"{stale} {noun} updating")
    return " and ".join(parts) + "."
