"""Base classes for sitemap content providers."""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import date
from enum import StrEnum

from sitemapper.config import ProvidersConfig
from sitemapper.content.models import ContentItem
from sitemapper.content.repository import ContentRepository
from sitemapper.sitemap.models import ChangeFrequency, ImageRef, IndexEntry


class ProviderType(StrEnum):
    """Registered provider kinds."""

    POSTS = "posts"
    PAGES = "pages"


class ContentProvider(ABC):
    """Supplies the sitemap entries for one kind of content.

    Providers own their inclusion policy and return ``[]`` / ``0`` for
    days with nothing to list. The registry skips disabled providers.
    """

    @property
    @abstractmethod
    def content_type(self) -> str:
        """Unique key of this provider within a registry."""

    @property
    def post_types(self) -> list[str]:
        """Repository post types this provider lists, if it reads the repository."""
        return []

    @property
    def is_enabled(self) -> bool:
        return True

    @abstractmethod
    def produce_entries(self, partition: date) -> list[IndexEntry]:
        """Entries for one day, in a stable order."""

    @abstractmethod
    def estimate_count(self, partition: date) -> int:
        """How many entries ``produce_entries`` would return for this day."""

    @abstractmethod
    def content_dates(self) -> list[date]:
        """Every day this provider has entries for, ascending."""


class RepositoryContentProvider(ContentProvider):
    """Provider backed by a set of post types in the content repository."""

    change_frequency: ChangeFrequency = ChangeFrequency.MONTHLY
    priority: float = 0.5

    def __init__(self, repository: ContentRepository, *, config: ProvidersConfig) -> None:
        self._repository = repository
        self._config = config

    @property
    @abstractmethod
    def post_types(self) -> list[str]:
        """Post types this provider lists."""

    @property
    def include_images(self) -> bool:
        return False

    def produce_entries(self, partition: date) -> list[IndexEntry]:
        items = self._repository.items_for_partition(
            partition,
            post_types=self.post_types,
            limit=self._config.max_entries_per_partition,
        )
        return [self._entry_for(item) for item in items]

    def estimate_count(self, partition: date) -> int:
        live = self._repository.live_count(partition, post_types=self.post_types)
        return min(live, self._config.max_entries_per_partition)

    def content_dates(self) -> list[date]:
        return self._repository.all_dates_with_content(post_types=self.post_types)

    def _entry_for(self, item: ContentItem) -> IndexEntry:
        images: list[ImageRef] = []
        if self.include_images:
            images = [
                ImageRef(url=image.url, title=image.title, caption=image.caption)
                for image in item.images
            ]
        return IndexEntry(
            url=item.url,
            last_modified=item.modified_at,
            priority=self.priority,
            change_frequency=self.change_frequency,
            images=images,
        )
