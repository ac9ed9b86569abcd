"""Tests for missing and stale partition detection."""

from datetime import UTC, date, datetime

import pytest

from sitemapper.config import ProvidersConfig
from sitemapper.content.models import ContentItem
from sitemapper.engine import build_engine
from sitemapper.generation.detection import summarize

JAN_15 = date(2024, 1, 15)
JAN_16 = date(2024, 1, 16)
JAN_17 = date(2024, 1, 17)


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


class TestMissing:
    def test_days_without_documents(self, engine, repository):
        repository.upsert(_item("b", JAN_16))
        repository.upsert(_item("a", JAN_15))

        result = engine.detect_missing()
        assert result.missing == [JAN_15, JAN_16]
        assert result.stale == []
        assert result.summary_message == "2 missing sitemaps."

    def test_up_to_date(self, engine, repository):
        repository.upsert(_item("a", JAN_15))
        engine.service.generate_for_partition(JAN_15)

        result = engine.detect_missing()
        assert result.is_empty
        assert result.summary_message == "All sitemaps are up to date."

    def test_draft_only_day_not_missing(self, engine, repository):
        repository.upsert(_item("a", JAN_15, status="draft"))
        assert engine.detect_missing().missing == []


class TestStale:
    def test_modified_after_watermark(self, engine, repository, clock):
        repository.upsert(_item("a", JAN_15))
        engine.service.generate_for_partition(JAN_15)
        engine.state.record_pass(1, completed=True)

        edited = clock.advance(minutes=5)
        repository.upsert(_item("a", JAN_15, modified_at=edited))

        result = engine.detect_missing()
        assert result.missing == []
        assert result.stale == [JAN_15]

    def test_modified_before_watermark_ignored(self, engine, repository, clock):
        repository.upsert(_item("a", JAN_15, modified_at=clock.now))
        engine.service.generate_for_partition(JAN_15)
        clock.advance(minutes=5)
        engine.state.record_pass(1, completed=True)

        assert engine.detect_missing().is_empty

    def test_modification_on_undocumented_day_is_missing_not_stale(self, engine, repository, clock):
        engine.state.record_pass(0, completed=True)
        repository.upsert(_item("a", JAN_15, modified_at=clock.advance(minutes=1)))

        result = engine.detect_missing()
        assert result.missing == [JAN_15]
        assert result.stale == []

    def test_count_mismatch_without_watermark(self, engine, repository):
        repository.upsert(_item("a", JAN_15))
        engine.service.generate_for_partition(JAN_15)
        repository.upsert(_item("b", JAN_15))

        result = engine.detect_missing()
        assert result.stale == [JAN_15]
        assert result.summary_message == "1 sitemap that needs updating."

    def test_unpublished_item_shrinks_count(self, engine, repository):
        repository.upsert(_item("a", JAN_15))
        repository.upsert(_item("b", JAN_15))
        engine.service.generate_for_partition(JAN_15)
        repository.upsert(_item("b", JAN_15, status="private"))

        assert engine.detect_missing().stale == [JAN_15]

    def test_modified_first_then_mismatches_ascending(self, engine, repository, clock):
        for item_id, day in (("a", JAN_15), ("b", JAN_16), ("c", JAN_17)):
            repository.upsert(_item(item_id, day))
            engine.service.generate_for_partition(day)
        engine.state.record_pass(3, completed=True)

        repository.upsert(_item("c", JAN_17, modified_at=clock.advance(minutes=1)))
        repository.upsert(_item("a2", JAN_15))
        repository.upsert(_item("b2", JAN_16))

        assert engine.detect_missing().stale == [JAN_17, JAN_15, JAN_16]

    def test_all_dates_lists_missing_first(self, engine, repository):
        repository.upsert(_item("a", JAN_16))
        engine.service.generate_for_partition(JAN_16)
        repository.upsert(_item("b", JAN_16))
        repository.upsert(_item("c", JAN_15))

        result = engine.detect_missing()
        assert result.all_dates == [JAN_15, JAN_16]
        assert result.summary_message == "1 missing sitemap and 1 sitemap that needs updating."


class TestSharedUrls:
    def test_items_sharing_a_url_settle_after_one_pass(self, engine, repository):
        repository.upsert(_item("a", JAN_15, url="https://example.com/shared/"))
        repository.upsert(_item("b", JAN_15, url="https://example.com/shared/"))

        assert engine.start_incremental().success
        assert engine.store.find(JAN_15).entry_count == 1
        assert engine.detect_missing().is_empty

    def test_page_listed_by_both_providers_settles(self, config, repository, clock):
        providers = ProvidersConfig(post_types=["post", "page"], include_pages=True)
        engine = build_engine(
            config.model_copy(update={"providers": providers}), repository=repository, clock=clock
        )
        repository.upsert(_item("about", JAN_15, post_type="page"))

        engine.start_incremental()
        assert engine.store.find(JAN_15).entry_count == 1
        assert engine.detect_missing().is_empty

    def test_real_growth_still_detected(self, engine, repository):
        repository.upsert(_item("a", JAN_15, url="https://example.com/shared/"))
        repository.upsert(_item("b", JAN_15, url="https://example.com/shared/"))
        engine.start_incremental()

        repository.upsert(_item("c", JAN_15))
        assert engine.detect_missing().stale == [JAN_15]


class TestUnlistedPostTypes:
    def test_page_edit_ignored_when_pages_disabled(self, engine, repository, clock):
        repository.upsert(_item("a", JAN_15))
        repository.upsert(_item("about", JAN_15, post_type="page"))
        engine.start_incremental()

        repository.upsert(_item("about", JAN_15, post_type="page", modified_at=clock.advance(minutes=1)))
        assert engine.detect_missing().is_empty

    def test_listed_post_type_edit_detected(self, engine, repository, clock):
        repository.upsert(_item("a", JAN_15))
        engine.start_incremental()

        repository.upsert(_item("a", JAN_15, modified_at=clock.advance(minutes=1)))
        assert engine.detect_missing().stale == [JAN_15]


class TestCountHeuristicGap:
    def test_same_day_swap_undetected_without_modification(self, engine, repository):
        repository.upsert(_item("a", JAN_15))
        engine.service.generate_for_partition(JAN_15)

        repository.remove("a")
        repository.upsert(_item("b", JAN_15))

        assert engine.detect_missing().is_empty

    def test_same_day_swap_detected_through_watermark(self, engine, repository, clock):
        repository.upsert(_item("a", JAN_15))
        engine.service.generate_for_partition(JAN_15)
        engine.state.record_pass(1, completed=True)

        repository.remove("a")
        repository.upsert(_item("b", JAN_15, modified_at=clock.advance(minutes=1)))

        assert engine.detect_missing().stale == [JAN_15]


@pytest.mark.parametrize(
    ("missing", "stale", "expected"),
    [
        (0, 0, "All sitemaps are up to date."),
        (1, 0, "1 missing sitemap."),
        (0, 2, "2 sitemaps that need updating."),
        (3, 1, "3 missing sitemaps and 1 sitemap that needs updating."),
    ],
)
def test_summarize(missing, stale, expected):
    assert summarize(missing, stale) == expected
