"""Shared fixtures: an isolated data directory, content file and clock."""

from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest

from sitemapper.config import GenerationConfig, SiteConfig, SitemapperConfig, StorageConfig
from sitemapper.content.repository import JsonContentRepository
from sitemapper.engine import SitemapEngine, build_engine


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2025, 3, 1, 12, 0, tzinfo=UTC))


@pytest.fixture
def config(tmp_path: Path) -> SitemapperConfig:
    return SitemapperConfig(
        site=SiteConfig(base_url="https://example.com"),
        storage=StorageConfig(data_dir=str(tmp_path / "data")),
        generation=GenerationConfig(batch_size=1),
    )


@pytest.fixture
def repository(config: SitemapperConfig) -> JsonContentRepository:
    return JsonContentRepository(config.storage.content_path)


@pytest.fixture
def engine(
    config: SitemapperConfig,
    repository: JsonContentRepository,
    clock: FakeClock,
) -> SitemapEngine:
    return build_engine(config, repository=repository, clock=clock)
