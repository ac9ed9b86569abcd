"""The operations the engine exposes, wired from configuration.

``build_engine`` assembles repository, providers, store, state and
orchestrators; ``SitemapEngine`` is the surface the CLI (or any other
front-end) calls.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import date, datetime
from pathlib import Path

from sitemapper.config import SitemapperConfig
from sitemapper.content.repository import ContentRepository, JsonContentRepository
from sitemapper.dates import DateQuery, parse_date_query, parse_partition, utc_now
from sitemapper.errors import BatchResult, ErrorCode, InvalidDateError, OperationResult
from sitemapper.generation.detection import StalenessDetector
from sitemapper.generation.models import DetectionResult, ProgressSnapshot, StartResult, TickResult
from sitemapper.generation.orchestrators import FullOrchestrator, IncrementalOrchestrator
from sitemapper.generation.scheduling import (
    CronManagementService,
    LocalScheduler,
    TickHandler,
    Ticker,
)
from sitemapper.generation.state import GenerationStateService
from sitemapper.providers import get_enabled_providers
from sitemapper.sitemap.models import RecountResult, SitemapStats, ValidationSummary
from sitemapper.sitemap.registry import ProviderRegistry
from sitemapper.sitemap.services import SitemapService
from sitemapper.sitemap.store import PartitionStore

logger = logging.getLogger(__name__)


class SitemapEngine:
    """Facade over detection, generation, background runs and maintenance."""

    def __init__(
        self,
        config: SitemapperConfig,
        repository: ContentRepository,
        registry: ProviderRegistry,
        store: PartitionStore,
        state: GenerationStateService,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        data_dir = config.storage.data_path
        self.config = config
        self._clock = clock
        self.repository = repository
        self.registry = registry
        self.store = store
        self.state = state
        self.service = SitemapService(registry, store)
        self.detector = StalenessDetector(registry, repository, store, state)
        batch_size = config.generation.batch_size
        self.incremental = IncrementalOrchestrator(
            self.service, state, self.detector, batch_size=batch_size
        )
        self.full = FullOrchestrator(self.service, state, batch_size=batch_size)
        self.scheduler = LocalScheduler(data_dir, clock=clock)
        self.cron = CronManagementService(
            self.scheduler,
            state,
            site_public=config.site.public,
            default_frequency=config.cron.frequency,
        )
        self.tick_handler = TickHandler(self.incremental, self.cron, state, self.service)

    # ── Detection and runs ───────────────────────────────────────

    def detect_missing(self) -> DetectionResult:
        return self.detector.detect()

    def start_incremental(self, background: bool = False) -> StartResult:
        if background:
            return self.incremental.start()
        return self.incremental.generate_now()

    def start_full(self, background: bool = True) -> StartResult:
        if background:
            return self.full.start()
        return self.full.generate_now()

    def tick(self) -> TickResult:
        """Advance the active run by one batch, whatever its kind."""
        result = self.incremental.tick()
        if result.done and not result.stopped and result.total:
            self.service.cleanup_orphans()
        return result

    def progress(self) -> ProgressSnapshot:
        return self.state.progress()

    def cancel_current_run(self) -> bool:
        return self.incremental.cancel()

    def ticker(self) -> Ticker:
        return Ticker(
            self.tick_handler,
            self.scheduler,
            self.state,
            poll_interval=self.config.generation.poll_interval_seconds,
            clock=self._clock,
        )

    # ── Per-partition operations ─────────────────────────────────

    def generate(self, partition: date | str, force: bool = False) -> OperationResult:
        try:
            day = parse_partition(partition)
        except InvalidDateError as exc:
            return OperationResult.fail(ErrorCode.INVALID_DATE, str(exc))
        try:
            result = self.service.generate_for_partition(day, force=force)
        except Exception as exc:
            logger.warning("Failed to generate sitemap for %s", day, exc_info=True)
            return OperationResult.fail(ErrorCode.CREATION_FAILED, str(exc), partition=day)
        if result.success:
            self.state.record_update()
        return result

    def generate_range(self, queries: list[str], force: bool = False) -> BatchResult:
        """Generate every day selected by ``YYYY`` / ``YYYY-MM`` / ``YYYY-MM-DD`` queries."""
        try:
            parsed = [parse_date_query(q) for q in queries]
        except InvalidDateError as exc:
            return BatchResult(success=False, error_code=ErrorCode.INVALID_DATE, message=str(exc))
        if not self.state.is_idle():
            return BatchResult(
                success=False,
                error_code=ErrorCode.ALREADY_RUNNING,
                message="A generation run is already in progress",
            )
        self.state.clear_cancel_request()
        result = self.service.generate_for_date_queries(
            parsed, force=force, should_stop=self.state.is_cancel_requested
        )
        if result.error_code == ErrorCode.STOPPED:
            self.state.clear_cancel_request()
        if result.success_count:
            self.state.record_update()
        return result

    def delete(
        self,
        partition: date | str | None = None,
        queries: list[str] | None = None,
        all_: bool = False,
    ) -> OperationResult:
        if all_:
            return self.service.delete_all()
        if partition is not None:
            try:
                return self.service.delete_partition(parse_partition(partition))
            except InvalidDateError as exc:
                return OperationResult.fail(ErrorCode.INVALID_DATE, str(exc))
        try:
            parsed = _parse_queries(queries)
        except InvalidDateError as exc:
            return OperationResult.fail(ErrorCode.INVALID_DATE, str(exc))
        return self.service.delete_matching(parsed)

    # ── Maintenance and reporting ────────────────────────────────

    def recount(self, full: bool = False) -> RecountResult:
        self.state.clear_cancel_request()
        return self.service.recount(full=full, should_stop=self.state.is_cancel_requested)

    def cleanup_orphans(self) -> OperationResult:
        return self.service.cleanup_orphans()

    def stats(self) -> SitemapStats:
        return self.service.stats()

    def validate(self, queries: list[str] | None = None) -> ValidationSummary:
        try:
            parsed = _parse_queries(queries)
        except InvalidDateError as exc:
            return ValidationSummary(success=False, error_code=ErrorCode.INVALID_DATE, message=str(exc))
        return self.service.validate(parsed or None)

    def sitemap_index(self) -> str:
        return self.service.sitemap_index(self.config.site.base_url)

    def export(self, directory: Path) -> OperationResult:
        return self.service.export(directory, self.config.site.base_url)

    def reset_all(self) -> OperationResult:
        """Delete every document and clear all run state and schedules."""
        deleted = self.service.delete_all()
        self.cron.reset()
        return OperationResult.ok(f"Deleted {deleted.count} sitemap(s) and cleared all state", count=deleted.count)


def _parse_queries(queries: list[str] | None) -> list[DateQuery]:
    return [parse_date_query(q) for q in queries or []]


def build_engine(
    config: SitemapperConfig,
    repository: ContentRepository | None = None,
    clock: Callable[[], datetime] = utc_now,
) -> SitemapEngine:
    """Wire an engine from configuration.

    Uses the JSON content file from ``[storage]`` unless a repository is
    supplied.
    """
    data_dir = config.storage.data_path
    if repository is None:
        repository = JsonContentRepository(config.storage.content_path)
    registry = ProviderRegistry(get_enabled_providers(repository, config=config.providers))
    return SitemapEngine(
        config,
        repository,
        registry,
        PartitionStore(data_dir, clock=clock),
        GenerationStateService(data_dir, clock=clock),
        clock=clock,
    )
