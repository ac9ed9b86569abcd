"""Generation domain models: pure Pydantic v2 data types.

No I/O. The persisted GenerationState holds the single logical run, its
work set, the cancellation flag and the completion watermark.
"""

from __future__ import annotations

from datetime import date, datetime
from enum import StrEnum
from typing import Literal

from pydantic import BaseModel, Field

from sitemapper.errors import ErrorCode, PartitionError


class RunState(StrEnum):
    IDLE = "idle"
    RUNNING = "running"
    HALTING = "halting"


class RunKind(StrEnum):
    INCREMENTAL = "incremental"
    FULL = "full"


# ---------------------------------------------------------------------------
# Persisted state
# ---------------------------------------------------------------------------


class GenerationRun(BaseModel):
    """Counters of the current run. Reset to defaults when idle."""

    state: RunState = RunState.IDLE
    kind: RunKind | None = None
    total: int = 0
    completed: int = 0
    remaining: int = 0
    failed: int = 0
    started_at: datetime | None = None


class GenerationState(BaseModel):
    """Everything the engine persists between ticks."""

    run: GenerationRun = Field(default_factory=GenerationRun)
    work_set: list[date] = Field(default_factory=list)
    cancel_requested: bool = False
    last_completed_at: datetime | None = None
    last_run_at: datetime | None = None
    last_update_at: datetime | None = None
    last_check_at: datetime | None = None


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


class ProgressSnapshot(BaseModel):
    in_progress: bool
    state: RunState
    kind: RunKind | None = None
    total: int = 0
    completed: int = 0
    remaining: int = 0
    percent_complete: float = 0.0
    started_at: datetime | None = None


class DetectionResult(BaseModel):
    """Partitions needing work, split by reason."""

    missing: list[date] = Field(default_factory=list)
    stale: list[date] = Field(default_factory=list)
    summary_message: str = ""

    @property
    def all_dates(self) -> list[date]:
        """Missing then stale, without duplicates."""
        seen: dict[date, None] = {}
        for partition in [*self.missing, *self.stale]:
            seen.setdefault(partition, None)
        return list(seen)

    @property
    def is_empty(self) -> bool:
        return not self.missing and not self.stale


class StartResult(BaseModel):
    """Outcome of starting a run, directly or in the background."""

    success: bool
    method: Literal["direct", "background", "none"] = "none"
    scheduled_count: int = 0
    generated_count: int = 0
    message: str = ""
    error_code: ErrorCode | None = None
    errors: list[PartitionError] = Field(default_factory=list)


class TickResult(BaseModel):
    """Outcome of one bounded batch of a background run."""

    done: bool
    completed: int = 0
    total: int = 0
    processed: list[date] = Field(default_factory=list)
    errors: list[PartitionError] = Field(default_factory=list)
    stopped: bool = False
