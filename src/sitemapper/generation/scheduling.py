"""Periodic driver: cron settings, the tick handler, and a local polling loop.

The periodic trigger itself is external (a system cron entry, a process
manager, or ``sitemapper run``). Triggers may be missed or duplicated;
every tick is idempotent with respect to the persisted run state.
"""

from __future__ import annotations

import json
import logging
import time
from collections.abc import Callable
from datetime import datetime, timedelta
from pathlib import Path

from pydantic import BaseModel

from sitemapper.config import CRON_FREQUENCIES, DEFAULT_CRON_FREQUENCY
from sitemapper.dates import utc_now
from sitemapper.errors import ErrorCode, OperationResult
from sitemapper.generation.models import TickResult
from sitemapper.generation.orchestrators import BatchOrchestrator
from sitemapper.generation.state import GenerationStateService
from sitemapper.sitemap.services import SitemapService

logger = logging.getLogger(__name__)

SCHEDULE_FILENAME = "schedule.json"


class ScheduleState(BaseModel):
    enabled: bool = False
    frequency: str | None = None
    interval_seconds: int = 0
    next_run_at: datetime | None = None


class CronStatus(BaseModel):
    enabled: bool
    next_scheduled: datetime | None = None
    blog_public: bool
    generating: bool
    halted: bool
    current_frequency: str
    valid_frequencies: list[str]
    last_run_at: datetime | None = None
    last_check_at: datetime | None = None


# ---------------------------------------------------------------------------
# Scheduler
# ---------------------------------------------------------------------------


class LocalScheduler:
    """Recurring schedule persisted as JSON next to the other state files."""

    def __init__(self, data_dir: Path, clock: Callable[[], datetime] = utc_now) -> None:
        self._path = data_dir / SCHEDULE_FILENAME
        self._clock = clock

    def load(self) -> ScheduleState:
        if not self._path.exists():
            return ScheduleState()
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
            return ScheduleState.model_validate(data)
        except (json.JSONDecodeError, ValueError, KeyError):
            logger.warning("Corrupt schedule at %s, starting fresh", self._path)
            return ScheduleState()

    def _save(self, state: ScheduleState) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._path.write_text(state.model_dump_json(indent=2), encoding="utf-8")

    def schedule(self, interval_seconds: int) -> None:
        state = self.load()
        state.enabled = True
        state.interval_seconds = interval_seconds
        state.next_run_at = self._clock() + timedelta(seconds=interval_seconds)
        self._save(state)

    def reschedule(self, interval_seconds: int) -> bool:
        """Move an active schedule to a new interval. False if it could not be saved."""
        try:
            self.schedule(interval_seconds)
        except OSError:
            logger.warning("Could not write schedule to %s", self._path, exc_info=True)
            return False
        return True

    def unschedule(self) -> None:
        state = self.load()
        state.enabled = False
        state.next_run_at = None
        self._save(state)

    def set_frequency(self, frequency: str) -> None:
        state = self.load()
        state.frequency = frequency
        self._save(state)

    def is_due(self, now: datetime | None = None) -> bool:
        state = self.load()
        if not state.enabled or state.next_run_at is None:
            return False
        return (now or self._clock()) >= state.next_run_at

    def mark_fired(self, now: datetime | None = None) -> None:
        """Schedule the next occurrence one interval from now.

        Missed occurrences are not replayed.
        """
        state = self.load()
        if not state.enabled:
            return
        state.next_run_at = (now or self._clock()) + timedelta(seconds=state.interval_seconds)
        self._save(state)


# ---------------------------------------------------------------------------
# Cron management
# ---------------------------------------------------------------------------


class CronManagementService:
    """Enables, disables and reschedules automatic updates."""

    def __init__(
        self,
        scheduler: LocalScheduler,
        state: GenerationStateService,
        *,
        site_public: bool = True,
        default_frequency: str = DEFAULT_CRON_FREQUENCY,
    ) -> None:
        self._scheduler = scheduler
        self._state = state
        self._site_public = site_public
        self._default_frequency = default_frequency

    @staticmethod
    def valid_frequencies() -> list[str]:
        return list(CRON_FREQUENCIES)

    def is_enabled(self) -> bool:
        return self._scheduler.load().enabled

    def current_frequency(self) -> str:
        return self._scheduler.load().frequency or self._default_frequency

    def enable(self) -> OperationResult:
        if not self._site_public:
            return OperationResult.fail(
                ErrorCode.BLOG_NOT_PUBLIC, "Cannot enable automatic updates: site is not public"
            )
        if self.is_enabled():
            return OperationResult.fail(ErrorCode.ALREADY_ENABLED, "Automatic updates are already enabled")
        self._scheduler.schedule(CRON_FREQUENCIES[self.current_frequency()])
        logger.info("Automatic updates enabled (%s)", self.current_frequency())
        return OperationResult.ok("Automatic sitemap updates enabled")

    def disable(self) -> OperationResult:
        if not self.is_enabled():
            return OperationResult.fail(ErrorCode.ALREADY_DISABLED, "Automatic updates are already disabled")
        self._scheduler.unschedule()
        self._state.reset()
        logger.info("Automatic updates disabled")
        return OperationResult.ok("Automatic sitemap updates disabled")

    def reset(self) -> OperationResult:
        """Disable unconditionally and clear all generation state."""
        self._scheduler.unschedule()
        self._state.clear_all()
        return OperationResult.ok("Sitemap cron reset to a clean state")

    def update_frequency(self, frequency: str) -> OperationResult:
        if frequency not in CRON_FREQUENCIES:
            return OperationResult.fail(
                ErrorCode.INVALID_FREQUENCY,
                f"Invalid frequency {frequency!r}; choose one of {', '.join(CRON_FREQUENCIES)}",
            )
        self._scheduler.set_frequency(frequency)
        if self.is_enabled() and not self._scheduler.reschedule(CRON_FREQUENCIES[frequency]):
            return OperationResult.fail(ErrorCode.RESCHEDULE_FAILED, "Failed to reschedule automatic updates")
        return OperationResult.ok(f"Automatic update frequency changed to {frequency}")

    def status(self) -> CronStatus:
        schedule = self._scheduler.load()
        generation = self._state.load()
        return CronStatus(
            enabled=schedule.enabled,
            next_scheduled=schedule.next_run_at if schedule.enabled else None,
            blog_public=self._site_public,
            generating=not self._state.is_idle(),
            halted=generation.cancel_requested,
            current_frequency=self.current_frequency(),
            valid_frequencies=self.valid_frequencies(),
            last_run_at=generation.last_run_at,
            last_check_at=generation.last_check_at,
        )


# ---------------------------------------------------------------------------
# Tick handling
# ---------------------------------------------------------------------------


class TickHandler:
    """What one periodic trigger does.

    Seeds an incremental run when idle, advances whatever run is active by
    one batch, and removes orphaned documents once a run completes.
    """

    def __init__(
        self,
        orchestrator: BatchOrchestrator,
        cron: CronManagementService,
        state: GenerationStateService,
        service: SitemapService,
    ) -> None:
        self._orchestrator = orchestrator
        self._cron = cron
        self._state = state
        self._service = service

    def handle(self) -> TickResult | None:
        """Run one tick. Returns None when automatic updates are disabled."""
        if not self._cron.is_enabled():
            logger.debug("Automatic updates disabled, skipping tick")
            return None
        self._state.touch_last_check()

        if self._orchestrator.can_start():
            started = self._orchestrator.start()
            if started.method == "none":
                return TickResult(done=True)

        result = self._orchestrator.tick()
        if result.done and not result.stopped:
            self._service.cleanup_orphans()
        return result


class Ticker:
    """Polling loop standing in for an external cron trigger.

    Fires the handler when the schedule is due, and on every poll while a
    run is in progress so background runs drain without waiting a full
    cron interval per batch.
    """

    def __init__(
        self,
        handler: TickHandler,
        scheduler: LocalScheduler,
        state: GenerationStateService,
        *,
        poll_interval: float = 30.0,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._handler = handler
        self._scheduler = scheduler
        self._state = state
        self._poll_interval = poll_interval
        self._sleep = sleep
        self._clock = clock

    def run_once(self) -> TickResult | None:
        now = self._clock()
        due = self._scheduler.is_due(now)
        if not due and self._state.is_idle():
            return None
        if due:
            self._scheduler.mark_fired(now)
        return self._handler.handle()

    def run(self, max_polls: int | None = None) -> int:
        """Poll until interrupted or ``max_polls`` is reached. Returns ticks fired."""
        fired = 0
        polls = 0
        while max_polls is None or polls < max_polls:
            if self.run_once() is not None:
                fired += 1
            polls += 1
            if max_polls is None or polls < max_polls:
                self._sleep(self._poll_interval)
        return fired
