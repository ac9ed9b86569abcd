"""Content providers turning repository items into sitemap entries."""

from __future__ import annotations

from sitemapper.config import ProvidersConfig
from sitemapper.content.repository import ContentRepository
from sitemapper.providers.base import ContentProvider, ProviderType, RepositoryContentProvider


def create_provider(
    provider_type: ProviderType | str,
    repository: ContentRepository,
    *,
    config: ProvidersConfig,
) -> ContentProvider:
    """Create a provider of the given type.

    Raises:
        ValueError: If the provider type is unknown.
    """
    if isinstance(provider_type, str):
        provider_type = ProviderType(provider_type)

    from sitemapper.providers.pages import PagesProvider
    from sitemapper.providers.posts import PostsProvider

    providers: dict[ProviderType, type[RepositoryContentProvider]] = {
        ProviderType.POSTS: PostsProvider,
        ProviderType.PAGES: PagesProvider,
    }

    if provider_type in providers:
        return providers[provider_type](repository, config=config)

    raise ValueError(f"Unknown provider type: {provider_type!r}")


def get_enabled_providers(
    repository: ContentRepository,
    *,
    config: ProvidersConfig,
) -> list[ContentProvider]:
    """Return every provider the config enables, in registration order."""
    result: list[ContentProvider] = []
    for provider_type in ProviderType:
        provider = create_provider(provider_type, repository, config=config)
        if provider.is_enabled:
            result.append(provider)
    return result


__all__ = [
    "ContentProvider",
    "ProviderType",
    "RepositoryContentProvider",
    "create_provider",
    "get_enabled_providers",
]
