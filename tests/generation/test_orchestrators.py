"""Tests for incremental and full batch runs."""

from datetime import UTC, date, datetime

from sitemapper.content.models import ContentItem
from sitemapper.errors import ErrorCode
from sitemapper.generation.models import RunKind, RunState
from sitemapper.generation.orchestrators import FullOrchestrator
from sitemapper.providers.base import ContentProvider
from sitemapper.sitemap.models import IndexEntry

JAN_15 = date(2024, 1, 15)
JAN_16 = date(2024, 1, 16)
JAN_17 = date(2024, 1, 17)
DAYS = [JAN_15, JAN_16, JAN_17]


def _item(item_id: str, day: date, **overrides) -> ContentItem:
    published = datetime(day.year, day.month, day.day, 9, 0, tzinfo=UTC)
    defaults = {
        "id": item_id,
        "url": f"https://example.com/{item_id}/",
        "published_at": published,
        "modified_at": published,
    }
    defaults.update(overrides)
    return ContentItem(**defaults)


def _seed(repository, days=DAYS) -> None:
    for index, day in enumerate(days):
        repository.upsert(_item(f"post-{index}", day))


class ExplodingProvider(ContentProvider):
    """Raises while producing entries for one day."""

    def __init__(self, bad_day: date) -> None:
        self.bad_day = bad_day

    @property
    def content_type(self) -> str:
        return "exploding"

    def produce_entries(self, partition: date) -> list[IndexEntry]:
        if partition == self.bad_day:
            raise RuntimeError("provider failure")
        return []

    def estimate_count(self, partition: date) -> int:
        return 0

    def content_dates(self) -> list[date]:
        return []


class HaltingProvider(ContentProvider):
    """Requests cancellation the first time it is asked for entries."""

    def __init__(self, state) -> None:
        self.state = state
        self.calls = 0

    @property
    def content_type(self) -> str:
        return "halting"

    def produce_entries(self, partition: date) -> list[IndexEntry]:
        self.calls += 1
        if self.calls == 1:
            self.state.halt()
        return []

    def estimate_count(self, partition: date) -> int:
        return 0

    def content_dates(self) -> list[date]:
        return []


class TestScenarios:
    def test_single_missing_day(self, engine, repository):
        repository.upsert(_item("a", JAN_15))

        assert engine.detect_missing().missing == [JAN_15]
        first = engine.generate(JAN_15)
        assert first.success
        assert first.entry_count == 1
        second = engine.generate(JAN_15)
        assert second.error_code == ErrorCode.SITEMAP_EXISTS

    def test_deleted_item_makes_day_stale_then_empty(self, engine, repository):
        repository.upsert(_item("a", JAN_15))
        engine.generate(JAN_15)
        engine.state.record_pass(1, completed=True)
        repository.remove("a")

        assert engine.detect_missing().stale == [JAN_15]
        result = engine.generate(JAN_15, force=True)
        assert result.error_code == ErrorCode.NO_CONTENT
        assert engine.store.find(JAN_15) is None

    def test_full_run_one_partition_per_tick(self, engine, repository, clock):
        _seed(repository)
        started = engine.start_full()
        assert started.method == "background"
        assert started.scheduled_count == 3
        assert engine.progress().total == 3

        completed = []
        for _ in range(3):
            clock.advance(minutes=1)
            result = engine.tick()
            completed.append(result.completed)
        assert completed == [1, 2, 3]
        assert result.done
        assert engine.state.is_idle()
        assert engine.state.last_completed_at() == clock.now
        assert engine.store.all_partitions() == DAYS


class TestStart:
    def test_empty_work_set_creates_no_run(self, engine):
        result = engine.start_full()
        assert result.success
        assert result.method == "none"
        assert result.scheduled_count == 0
        assert engine.state.is_idle()

    def test_already_running(self, engine, repository):
        _seed(repository)
        engine.start_full()

        assert engine.start_full().error_code == ErrorCode.ALREADY_RUNNING
        assert engine.start_incremental().error_code == ErrorCode.ALREADY_RUNNING
        assert engine.start_incremental(background=True).error_code == ErrorCode.ALREADY_RUNNING
        assert engine.generate_range(["2024-01"]).error_code == ErrorCode.ALREADY_RUNNING
        assert engine.state.load().run.kind == RunKind.FULL

    def test_incremental_background_uses_detection(self, engine, repository):
        _seed(repository)
        engine.generate(JAN_16)

        result = engine.start_incremental(background=True)
        assert result.scheduled_count == 2
        assert engine.state.load().work_set == [JAN_15, JAN_17]


class TestTick:
    def test_idle_tick_is_noop(self, engine):
        result = engine.tick()
        assert result.done
        assert result.total == 0
        assert engine.state.is_idle()

    def test_duplicate_ticks_after_completion_are_harmless(self, engine, repository):
        _seed(repository, [JAN_15])
        engine.start_full()
        engine.tick()
        aggregate = engine.store.aggregate_count

        assert engine.tick().done
        assert engine.store.aggregate_count == aggregate

    def test_failures_do_not_stop_the_run(self, engine, repository, clock):
        _seed(repository)
        engine.registry.register(ExplodingProvider(JAN_16))
        orchestrator = FullOrchestrator(engine.service, engine.state, batch_size=5)
        orchestrator.start()

        result = orchestrator.tick()
        assert result.done
        assert result.processed == DAYS
        assert [error.partition for error in result.errors] == [JAN_16]
        assert engine.store.all_partitions() == [JAN_15, JAN_17]
        # a run with failures keeps the old watermark
        assert engine.state.last_completed_at() is None

    def test_resumes_in_new_process(self, engine, repository, config, clock):
        from sitemapper.engine import build_engine

        _seed(repository)
        engine.start_full()
        engine.tick()

        restarted = build_engine(config, clock=clock)
        result = restarted.tick()
        assert result.completed == 2
        assert result.processed == [JAN_16]
        assert restarted.state.load().work_set == [JAN_17]


class TestCancellation:
    def test_cancel_between_ticks(self, engine, repository):
        _seed(repository)
        engine.start_full()
        engine.tick()

        assert engine.cancel_current_run() is True
        assert engine.progress().state == RunState.HALTING

        result = engine.tick()
        assert result.stopped
        assert result.done
        assert engine.state.is_idle()
        assert engine.store.all_partitions() == [JAN_15]
        assert engine.state.last_completed_at() is None

    def test_cancel_checked_between_partitions(self, engine, repository):
        _seed(repository)
        engine.registry.register(HaltingProvider(engine.state))
        orchestrator = FullOrchestrator(engine.service, engine.state, batch_size=3)
        orchestrator.start()

        result = orchestrator.tick()
        assert result.stopped
        assert result.processed == [JAN_15]
        assert engine.store.all_partitions() == [JAN_15]
        assert engine.state.is_idle()

    def test_generate_now_stops(self, engine, repository):
        _seed(repository)
        engine.registry.register(HaltingProvider(engine.state))

        result = engine.start_full(background=False)
        assert not result.success
        assert result.method == "direct"
        assert result.error_code == ErrorCode.STOPPED
        assert result.generated_count == 1
        assert engine.store.all_partitions() == [JAN_15]
        assert engine.state.last_completed_at() is None
        assert not engine.state.is_cancel_requested()


class TestDirectPass:
    def test_incremental_now_then_nothing(self, engine, repository, clock):
        _seed(repository)

        result = engine.start_incremental()
        assert result.success
        assert result.method == "direct"
        assert result.generated_count == 3
        assert engine.state.last_completed_at() == clock.now

        clock.advance(minutes=1)
        again = engine.start_incremental()
        assert again.success
        assert again.generated_count == 0
        assert engine.detect_missing().is_empty

    def test_edit_after_pass_is_regenerated(self, engine, repository, clock):
        _seed(repository, [JAN_15])
        engine.start_incremental()

        repository.upsert(_item("post-0", JAN_15, title="Edited", modified_at=clock.advance(minutes=1)))
        clock.advance(minutes=1)

        result = engine.start_incremental()
        assert result.generated_count == 1
        assert engine.state.load().last_update_at == clock.now
        assert engine.detect_missing().is_empty
