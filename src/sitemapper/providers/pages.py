"""Pages provider."""

from __future__ import annotations

from sitemapper.providers.base import ProviderType, RepositoryContentProvider
from sitemapper.sitemap.models import ChangeFrequency


class PagesProvider(RepositoryContentProvider):
    change_frequency = ChangeFrequency.WEEKLY
    priority = 0.6

    @property
    def content_type(self) -> str:
        return ProviderType.PAGES

    @property
    def post_types(self) -> list[str]:
        return ["page"]

    @property
    def is_enabled(self) -> bool:
        return self._config.include_pages
