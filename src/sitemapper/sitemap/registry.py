"""Ordered set of content providers contributing to each partition."""

from __future__ import annotations

import logging
from datetime import date

from sitemapper.providers.base import ContentProvider
from sitemapper.sitemap.models import IndexEntry

logger = logging.getLogger(__name__)


class ProviderRegistry:
    """Providers keyed by content type, kept in registration order."""

    def __init__(self, providers: list[ContentProvider] | None = None) -> None:
        self._providers: dict[str, ContentProvider] = {}
        for provider in providers or []:
            self.register(provider)

    def register(self, provider: ContentProvider) -> None:
        """Add a provider.

        Raises ValueError if its content type is already registered.
        """
        if provider.content_type in self._providers:
            raise ValueError(f"Provider already registered: {provider.content_type!r}")
        self._providers[provider.content_type] = provider
        logger.debug("Registered provider %s", provider.content_type)

    def unregister(self, content_type: str) -> bool:
        return self._providers.pop(content_type, None) is not None

    @property
    def providers(self) -> list[ContentProvider]:
        """Enabled providers in registration order."""
        return [p for p in self._providers.values() if p.is_enabled]

    def entries_for_partition(self, partition: date) -> list[IndexEntry]:
        """Entries from every enabled provider, deduplicated by URL.

        On a URL conflict the later-registered provider's entry wins but
        keeps the position where the URL was first seen.
        """
        entries: dict[str, IndexEntry] = {}
        for provider in self.providers:
            for entry in provider.produce_entries(partition):
                entries[entry.url] = entry
        return list(entries.values())

    def is_empty_for(self, partition: date) -> bool:
        return all(provider.estimate_count(partition) == 0 for provider in self.providers)

    def estimate_count(self, partition: date) -> int:
        """Sum of the providers' own counts.

        Overcounts when providers list the same URL; ``entry_count`` is exact.
        """
        return sum(provider.estimate_count(partition) for provider in self.providers)

    def entry_count(self, partition: date) -> int:
        return len(self.entries_for_partition(partition))

    def post_types(self) -> list[str]:
        """Repository post types listed by any enabled provider."""
        types: set[str] = set()
        for provider in self.providers:
            types.update(provider.post_types)
        return sorted(types)

    def content_dates(self) -> list[date]:
        """Union of every provider's content days, ascending."""
        dates: set[date] = set()
        for provider in self.providers:
            dates.update(provider.content_dates())
        return sorted(dates)
