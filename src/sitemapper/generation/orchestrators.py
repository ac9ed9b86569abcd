"""Batch orchestrators: drive a run over a work set, directly or tick by tick.

Both orchestrators share one GenerationStateService, so at most one run
(incremental or full) is active at a time.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from datetime import date

from sitemapper.errors import ErrorCode, PartitionError
from sitemapper.generation.detection import StalenessDetector
from sitemapper.generation.models import (
    ProgressSnapshot,
    RunKind,
    RunState,
    StartResult,
    TickResult,
)
from sitemapper.generation.state import GenerationStateService
from sitemapper.sitemap.services import SitemapService

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 10


class BatchOrchestrator(ABC):
    """Shared run contract for incremental and full generation.

    Orchestrated runs regenerate with ``force=True``: stale partitions
    already have a document that must be replaced.
    """

    kind: RunKind

    def __init__(
        self,
        service: SitemapService,
        state: GenerationStateService,
        *,
        batch_size: int = DEFAULT_BATCH_SIZE,
    ) -> None:
        self._service = service
        self._state = state
        self._batch_size = batch_size

    @abstractmethod
    def compute_work_set(self) -> list[date]:
        """Partitions this kind of run should regenerate."""

    def can_start(self) -> bool:
        return self._state.is_idle()

    def start(self, work_set: list[date] | None = None) -> StartResult:
        """Schedule a background run. Ticks do the actual work."""
        if not self.can_start():
            return StartResult(
                success=False,
                error_code=ErrorCode.ALREADY_RUNNING,
                message="A generation run is already in progress",
            )
        if work_set is None:
            work_set = self.compute_work_set()
        if not work_set:
            return StartResult(success=True, method="none", message="Nothing to generate")
        if not self._state.begin(work_set, self.kind):
            return StartResult(
                success=False,
                error_code=ErrorCode.ALREADY_RUNNING,
                message="A generation run is already in progress",
            )
        return StartResult(
            success=True,
            method="background",
            scheduled_count=len(work_set),
            message=f"Scheduled {len(work_set)} sitemap(s) for background generation",
        )

    def generate_now(self, work_set: list[date] | None = None) -> StartResult:
        """Generate synchronously, checking for cancellation between partitions."""
        if not self.can_start():
            return StartResult(
                success=False,
                error_code=ErrorCode.ALREADY_RUNNING,
                message="A generation run is already in progress",
            )
        self._state.clear_cancel_request()
        if work_set is None:
            work_set = self.compute_work_set()
        if not work_set:
            self._state.record_pass(0, completed=True)
            return StartResult(success=True, method="direct", message="Nothing to generate")

        batch = self._service.generate_for_partitions(
            work_set,
            force=True,
            should_stop=self._state.is_cancel_requested,
        )
        if batch.error_code == ErrorCode.STOPPED:
            self._state.clear_cancel_request()
            self._state.record_pass(batch.success_count, completed=False)
            return StartResult(
                success=False,
                method="direct",
                error_code=ErrorCode.STOPPED,
                scheduled_count=len(work_set),
                generated_count=batch.success_count,
                errors=batch.errors,
                message=f"Stopped after generating {batch.success_count} sitemap(s)",
            )

        self._state.record_pass(batch.success_count, completed=batch.failure_count == 0)
        return StartResult(
            success=batch.failure_count == 0,
            method="direct",
            error_code=batch.error_code,
            scheduled_count=len(work_set),
            generated_count=batch.success_count,
            errors=batch.errors,
            message=batch.message,
        )

    def tick(self) -> TickResult:
        """Process up to ``batch_size`` partitions of the active run."""
        current = self._state.load()
        run = current.run
        if run.state == RunState.HALTING:
            logger.info("Run halted after %d of %d partitions", run.completed, run.total)
            self._state.reset()
            return TickResult(done=True, completed=run.completed, total=run.total, stopped=True)
        if run.state != RunState.RUNNING:
            return TickResult(done=True, completed=run.completed, total=run.total)

        processed: list[date] = []
        errors: list[PartitionError] = []
        for partition in self._state.next_batch(self._batch_size):
            if self._state.is_cancel_requested():
                snapshot = self._state.load().run
                logger.info("Run cancelled before %s", partition)
                self._state.reset()
                return TickResult(
                    done=True,
                    completed=snapshot.completed,
                    total=snapshot.total,
                    processed=processed,
                    errors=errors,
                    stopped=True,
                )
            failed = False
            try:
                outcome = self._service.generate_for_partition(partition, force=True)
            except Exception as exc:
                logger.warning("Failed to generate sitemap for %s", partition, exc_info=True)
                errors.append(PartitionError(partition=partition, error=str(exc)))
                failed = True
            else:
                if outcome.success:
                    self._state.record_update()
            # Consumed only after generation so an interrupted tick replays it
            self._state.advance(partition, failed=failed)
            processed.append(partition)

        current = self._state.load()
        if not current.work_set:
            self._state.finish()
            return TickResult(
                done=True,
                completed=current.run.completed,
                total=current.run.total,
                processed=processed,
                errors=errors,
            )
        return TickResult(
            done=False,
            completed=current.run.completed,
            total=current.run.total,
            processed=processed,
            errors=errors,
        )

    def cancel(self) -> bool:
        """Request cancellation of the active run or direct pass."""
        halted = self._state.halt()
        logger.info("Cancellation requested")
        return halted

    def progress(self) -> ProgressSnapshot:
        return self._state.progress()


class IncrementalOrchestrator(BatchOrchestrator):
    """Regenerates only what the staleness detector reports."""

    kind = RunKind.INCREMENTAL

    def __init__(
        self,
        service: SitemapService,
        state: GenerationStateService,
        detector: StalenessDetector,
        *,
        batch_size: int = DEFAULT_BATCH_SIZE,
    ) -> None:
        super().__init__(service, state, batch_size=batch_size)
        self._detector = detector

    def compute_work_set(self) -> list[date]:
        return self._detector.detect().all_dates


class FullOrchestrator(BatchOrchestrator):
    """Regenerates every day that has content."""

    kind = RunKind.FULL

    def compute_work_set(self) -> list[date]:
        return self._service.registry.content_dates()
