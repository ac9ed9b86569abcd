"""Per-partition sitemap generation and maintenance operations.

Everything here works directly against the store; the background run
machinery lives in ``sitemapper.generation``.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from datetime import date
from pathlib import Path

from sitemapper.dates import DateQuery, expand_date_queries
from sitemapper.errors import (
    BatchResult,
    DocumentParseError,
    ErrorCode,
    OperationResult,
    PartitionError,
)
from sitemapper.sitemap.formatter import SitemapXmlFormatter
from sitemapper.sitemap.generator import PartitionGenerator
from sitemapper.sitemap.models import (
    RecountResult,
    SitemapStats,
    ValidationSummary,
)
from sitemapper.sitemap.registry import ProviderRegistry
from sitemapper.sitemap.store import PartitionStore

logger = logging.getLogger(__name__)

INDEX_FILENAME = "sitemap-index.xml"

StopCheck = Callable[[], bool]


def _never_stop() -> bool:
    return False


def export_filename(partition: date) -> str:
    return f"sitemap-{partition.isoformat()}.xml"


class SitemapService:
    """Generates, deletes, recounts and validates partition documents."""

    def __init__(
        self,
        registry: ProviderRegistry,
        store: PartitionStore,
        formatter: SitemapXmlFormatter | None = None,
    ) -> None:
        self._registry = registry
        self._store = store
        self._formatter = formatter or SitemapXmlFormatter()
        self._generator = PartitionGenerator(registry, self._formatter)

    @property
    def store(self) -> PartitionStore:
        return self._store

    @property
    def registry(self) -> ProviderRegistry:
        return self._registry

    # ---------------------------------------------------------------------------
    # Generation
    # ---------------------------------------------------------------------------

    def generate_for_partition(self, partition: date, force: bool = False) -> OperationResult:
        """Build and store one day's document.

        An existing document is kept unless ``force`` is set. A day with no
        entries loses its document and reports ``no_content``.
        Provider and formatting exceptions propagate.
        """
        if not force and self._store.exists(partition):
            return OperationResult.fail(
                ErrorCode.SITEMAP_EXISTS,
                f"Sitemap for {partition} already exists",
                partition=partition,
            )

        document = self._generator.generate(partition)
        if document.is_empty:
            removed = self._store.delete(partition)
            if removed:
                logger.info("Removed sitemap for %s, no content left", partition)
            return OperationResult.fail(
                ErrorCode.NO_CONTENT,
                f"No content for {partition}",
                partition=partition,
                count=removed,
            )

        self._store.save(partition, document.content, document.entry_count)
        logger.info("Generated sitemap for %s (%d entries)", partition, document.entry_count)
        return OperationResult.ok(
            f"Generated sitemap for {partition}",
            partition=partition,
            count=1,
            entry_count=document.entry_count,
        )

    def generate_for_partitions(
        self,
        partitions: Iterable[date],
        force: bool = False,
        should_stop: StopCheck = _never_stop,
    ) -> BatchResult:
        """Generate several days synchronously, continuing past failures."""
        result = BatchResult(success=True)
        for partition in partitions:
            if should_stop():
                logger.info("Generation stopped before %s", partition)
                result.success = False
                result.error_code = ErrorCode.STOPPED
                result.message = "Generation stopped by request"
                return result
            try:
                outcome = self.generate_for_partition(partition, force=force)
            except Exception as exc:
                logger.warning("Failed to generate sitemap for %s", partition, exc_info=True)
                result.failure_count += 1
                result.errors.append(PartitionError(partition=partition, error=str(exc)))
                continue
            if outcome.success:
                result.success_count += 1
                result.entry_count += outcome.entry_count
            else:
                result.skipped_count += 1

        if result.failure_count:
            result.success = result.success_count > 0
            result.error_code = ErrorCode.PARTIAL_FAILURE if result.success else ErrorCode.GENERATION_FAILED
        result.message = (
            f"Generated {result.success_count}, skipped {result.skipped_count}, "
            f"failed {result.failure_count}"
        )
        return result

    def generate_for_date_queries(
        self,
        queries: list[DateQuery],
        force: bool = False,
        should_stop: StopCheck = _never_stop,
        today: date | None = None,
    ) -> BatchResult:
        if not queries:
            return BatchResult(success=False, error_code=ErrorCode.NO_QUERIES, message="No dates given")
        partitions = expand_date_queries(queries, today)
        if not partitions:
            return BatchResult(
                success=False,
                error_code=ErrorCode.NO_VALID_DATES,
                message="The dates given are all in the future",
            )
        return self.generate_for_partitions(partitions, force=force, should_stop=should_stop)

    # ---------------------------------------------------------------------------
    # Deletion
    # ---------------------------------------------------------------------------

    def delete_partition(self, partition: date) -> OperationResult:
        removed = self._store.delete(partition)
        return OperationResult.ok(f"Deleted {removed} sitemap(s)", partition=partition, count=removed)

    def delete_matching(self, queries: list[DateQuery]) -> OperationResult:
        if not queries:
            return OperationResult.fail(ErrorCode.NO_QUERIES, "No dates given")
        removed = self._store.delete_matching(queries)
        return OperationResult.ok(f"Deleted {removed} sitemap(s)", count=removed)

    def delete_all(self) -> OperationResult:
        removed = self._store.delete_all()
        logger.info("Deleted all %d sitemaps", removed)
        return OperationResult.ok(f"Deleted {removed} sitemap(s)", count=removed)

    def cleanup_orphans(self) -> OperationResult:
        """Delete documents for days that no longer have any content."""
        removed = 0
        for partition in self._store.all_partitions():
            if self._registry.is_empty_for(partition):
                removed += self._store.delete(partition)
        if removed:
            logger.info("Removed %d orphaned sitemap(s)", removed)
        return OperationResult.ok(f"Removed {removed} orphaned sitemap(s)", count=removed)

    # ---------------------------------------------------------------------------
    # Recount
    # ---------------------------------------------------------------------------

    def recount(self, full: bool = False, should_stop: StopCheck = _never_stop) -> RecountResult:
        """Re-derive the aggregate from the stored documents.

        Fast mode sums the recorded entry counts. Full mode re-parses every
        document, corrects per-document counts that disagree with the
        content, and counts unreadable documents as zero.
        """
        previous = self._store.aggregate_count
        documents = self._store.all_documents()
        result = RecountResult(full=full, sitemap_count=len(documents), previous_total=previous)

        total = 0
        for document in documents:
            if full and should_stop():
                result.success = False
                result.error_code = ErrorCode.STOPPED
                result.message = "Recount stopped by request"
                return result
            count = document.entry_count
            if full:
                try:
                    count = self._formatter.count_entries(document.content)
                except DocumentParseError as exc:
                    logger.warning("Unreadable sitemap for %s: %s", document.partition, exc)
                    count = 0
                if count != document.entry_count:
                    result.mismatches.append(document.partition)
                    self._store.set_entry_count(document.partition, count)
                    result.updated_count += 1
            total += count

        self._store.set_aggregate_count(total)
        result.total_entries = total
        result.message = (
            f"Counted {total} entries in {len(documents)} sitemap(s)"
            if documents
            else "No sitemaps found"
        )
        if previous != total:
            logger.info("Aggregate count corrected from %d to %d", previous, total)
        return result

    # ---------------------------------------------------------------------------
    # Reporting
    # ---------------------------------------------------------------------------

    def validate(self, queries: list[DateQuery] | None = None) -> ValidationSummary:
        documents = self._store.find_matching(queries) if queries else self._store.all_documents()
        if not documents:
            return ValidationSummary(
                success=False,
                error_code=ErrorCode.NO_SITEMAPS_FOUND,
                message="No sitemaps found",
            )
        reports = [self._formatter.validate(doc.content, doc.partition) for doc in documents]
        invalid = sum(1 for report in reports if not report.valid)
        return ValidationSummary(
            success=invalid == 0,
            checked=len(reports),
            valid_count=len(reports) - invalid,
            invalid_count=invalid,
            reports=reports,
            message=f"{len(reports) - invalid} of {len(reports)} sitemap(s) valid",
        )

    def stats(self) -> SitemapStats:
        documents = self._store.all_documents()
        if not documents:
            return SitemapStats(total_entries=self._store.aggregate_count)
        by_year: dict[int, int] = {}
        for doc in documents:
            by_year[doc.partition.year] = by_year.get(doc.partition.year, 0) + 1
        return SitemapStats(
            sitemap_count=len(documents),
            total_entries=self._store.aggregate_count,
            earliest=documents[0].partition,
            latest=documents[-1].partition,
            last_updated=max(doc.updated_at for doc in documents),
            by_year=by_year,
        )

    def sitemap_index(self, base_url: str) -> str:
        return self._formatter.format_index(self._store.all_documents(), base_url)

    def export(self, directory: Path, base_url: str) -> OperationResult:
        """Write every document and a sitemap index into ``directory``."""
        documents = self._store.all_documents()
        if not documents:
            return OperationResult.fail(ErrorCode.NO_SITEMAPS_FOUND, "No sitemaps to export")
        directory.mkdir(parents=True, exist_ok=True)
        for doc in documents:
            (directory / export_filename(doc.partition)).write_text(doc.content, encoding="utf-8")
        (directory / INDEX_FILENAME).write_text(
            self._formatter.format_index(documents, base_url),
            encoding="utf-8",
        )
        logger.info("Exported %d sitemap(s) to %s", len(documents), directory)
        return OperationResult.ok(f"Exported {len(documents)} sitemap(s) to {directory}", count=len(documents))
