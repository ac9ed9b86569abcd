"""Persistent generation state: the single run, its work set, and the watermark.

Every method re-reads the state file before acting and writes it back after,
so a cancellation requested by another process is observed on the next call.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from datetime import date, datetime
from pathlib import Path

from sitemapper.dates import utc_now
from sitemapper.generation.models import (
    GenerationRun,
    GenerationState,
    ProgressSnapshot,
    RunKind,
    RunState,
)

logger = logging.getLogger(__name__)

STATE_FILENAME = "generation-state.json"


def load_generation_state(data_dir: Path) -> GenerationState:
    """Load generation state from disk.

    Returns an idle GenerationState if the file doesn't exist or is corrupt.
    """
    state_path = data_dir / STATE_FILENAME
    if not state_path.exists():
        return GenerationState()
    try:
        data = json.loads(state_path.read_text(encoding="utf-8"))
        return GenerationState.model_validate(data)
    except (json.JSONDecodeError, ValueError, KeyError):
        logger.warning("Corrupt generation state at %s, starting fresh", state_path)
        return GenerationState()


def save_generation_state(state: GenerationState, data_dir: Path) -> None:
    """Save generation state to disk."""
    state_path = data_dir / STATE_FILENAME
    state_path.parent.mkdir(parents=True, exist_ok=True)
    state_path.write_text(
        state.model_dump_json(indent=2),
        encoding="utf-8",
    )


class GenerationStateService:
    """State machine for the one logical generation run.

    ``idle → running`` via ``begin``, ``running → halting`` via
    ``halt``, and back to ``idle`` via ``finish`` or ``reset``.
    """

    def __init__(self, data_dir: Path, clock: Callable[[], datetime] = utc_now) -> None:
        self._data_dir = data_dir
        self._clock = clock

    def load(self) -> GenerationState:
        return load_generation_state(self._data_dir)

    def _save(self, state: GenerationState) -> None:
        save_generation_state(state, self._data_dir)

    # ── Run lifecycle ────────────────────────────────────────────

    def is_idle(self) -> bool:
        return self.load().run.state == RunState.IDLE

    def begin(self, work_set: list[date], kind: RunKind) -> bool:
        """Start a run over ``work_set``. Returns False unless idle."""
        state = self.load()
        if state.run.state != RunState.IDLE:
            return False
        state.run = GenerationRun(
            state=RunState.RUNNING,
            kind=kind,
            total=len(work_set),
            completed=0,
            remaining=len(work_set),
            started_at=self._clock(),
        )
        state.work_set = list(work_set)
        state.cancel_requested = False
        self._save(state)
        logger.info("Started %s run over %d partitions", kind, len(work_set))
        return True

    def next_batch(self, size: int) -> list[date]:
        """The next ``size`` partitions, without consuming them."""
        return self.load().work_set[:size]

    def advance(self, partition: date, *, failed: bool = False) -> None:
        """Drop an attempted partition from the work set and count it."""
        state = self.load()
        if partition in state.work_set:
            state.work_set.remove(partition)
        state.run.completed += 1
        if failed:
            state.run.failed += 1
        state.run.remaining = len(state.work_set)
        self._save(state)

    def reset(self) -> None:
        """Back to idle, dropping the work set. The watermark is kept."""
        state = self.load()
        state.run = GenerationRun()
        state.work_set = []
        state.cancel_requested = False
        self._save(state)

    def finish(self) -> datetime:
        """Complete the run: reset to idle and move the watermark to now.

        A run in which any partition failed keeps the previous watermark so
        the failed days are still picked up by the modification check.
        """
        now = self._clock()
        state = self.load()
        failed = state.run.failed
        state.run = GenerationRun()
        state.work_set = []
        state.cancel_requested = False
        state.last_run_at = now
        if not failed:
            state.last_completed_at = now
            logger.info("Generation run complete, watermark set to %s", now.isoformat())
        else:
            logger.warning("Generation run finished with %d failed partition(s)", failed)
        self._save(state)
        return now

    def clear_all(self) -> None:
        self._save(GenerationState())

    # ── Cancellation ─────────────────────────────────────────────

    def halt(self) -> bool:
        """Raise the cancellation flag and halt any running run.

        Returns True if a background run was halted.
        """
        state = self.load()
        state.cancel_requested = True
        halted = state.run.state == RunState.RUNNING
        if halted:
            state.run.state = RunState.HALTING
        self._save(state)
        return halted

    def is_cancel_requested(self) -> bool:
        return self.load().cancel_requested

    def clear_cancel_request(self) -> None:
        state = self.load()
        if state.cancel_requested:
            state.cancel_requested = False
            self._save(state)

    # ── Timestamps ───────────────────────────────────────────────

    def last_completed_at(self) -> datetime | None:
        return self.load().last_completed_at

    def touch_last_check(self) -> None:
        state = self.load()
        state.last_check_at = self._clock()
        self._save(state)

    def record_pass(self, generated: int, *, completed: bool) -> None:
        """Record a direct pass. Completed passes move the watermark."""
        now = self._clock()
        state = self.load()
        state.last_run_at = now
        if generated:
            state.last_update_at = now
        if completed:
            state.last_completed_at = now
        self._save(state)

    def record_update(self) -> None:
        state = self.load()
        state.last_update_at = self._clock()
        self._save(state)

    # ── Reporting ────────────────────────────────────────────────

    def progress(self) -> ProgressSnapshot:
        run = self.load().run
        percent = run.completed / run.total if run.total > 0 else 0.0
        return ProgressSnapshot(
            in_progress=run.state != RunState.IDLE,
            state=run.state,
            kind=run.kind,
            total=run.total,
            completed=run.completed,
            remaining=run.remaining,
            percent_complete=percent,
            started_at=run.started_at,
        )
