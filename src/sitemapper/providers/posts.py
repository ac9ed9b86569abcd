"""Posts provider: the configured post types, with their images."""

from __future__ import annotations

from sitemapper.providers.base import ProviderType, RepositoryContentProvider
from sitemapper.sitemap.models import ChangeFrequency


class PostsProvider(RepositoryContentProvider):
    change_frequency = ChangeFrequency.MONTHLY
    priority = 0.7

    @property
    def content_type(self) -> str:
        return ProviderType.POSTS

    @property
    def post_types(self) -> list[str]:
        return list(self._config.post_types)

    @property
    def include_images(self) -> bool:
        return self._config.include_images

    @property
    def is_enabled(self) -> bool:
        return bool(self._config.post_types)
