"""Tests for the partition document store."""

from datetime import date
from pathlib import Path

from sitemapper.dates import DateQuery
from sitemapper.sitemap.store import STORE_FILENAME, PartitionStore

JAN_15 = date(2024, 1, 15)
JAN_16 = date(2024, 1, 16)
FEB_01 = date(2024, 2, 1)


class TestSaveAndFind:
    def test_save_creates_document(self, tmp_path: Path):
        store = PartitionStore(tmp_path)
        assert store.save(JAN_15, "<urlset/>", 3) is True
        doc = store.find(JAN_15)
        assert doc is not None
        assert doc.entry_count == 3
        assert store.aggregate_count == 3

    def test_overwrite_keeps_created_at_and_adjusts_aggregate(self, tmp_path: Path):
        store = PartitionStore(tmp_path)
        store.save(JAN_15, "v1", 3)
        created = store.find(JAN_15).created_at
        store.save(JAN_16, "other", 2)
        store.save(JAN_15, "v2", 5)

        doc = store.find(JAN_15)
        assert doc.content == "v2"
        assert doc.created_at == created
        assert len(store) == 2
        assert store.aggregate_count == 7

    def test_find_missing(self, tmp_path: Path):
        assert PartitionStore(tmp_path).find(JAN_15) is None

    def test_persists_across_instances(self, tmp_path: Path):
        PartitionStore(tmp_path).save(JAN_15, "v1", 4)
        reopened = PartitionStore(tmp_path)
        assert reopened.find(JAN_15).content == "v1"
        assert reopened.aggregate_count == 4

    def test_all_partitions_sorted(self, tmp_path: Path):
        store = PartitionStore(tmp_path)
        for day in (FEB_01, JAN_15, JAN_16):
            store.save(day, "x", 1)
        assert store.all_partitions() == [JAN_15, JAN_16, FEB_01]


    def test_timestamps_come_from_clock(self, tmp_path: Path, clock):
        store = PartitionStore(tmp_path, clock=clock)
        store.save(JAN_15, "v1", 1)
        created = clock.now
        clock.advance(minutes=5)
        store.save(JAN_15, "v2", 1)

        doc = store.find(JAN_15)
        assert doc.created_at == created
        assert doc.updated_at == clock.now

    def test_set_entry_count_moves_aggregate(self, tmp_path: Path):
        store = PartitionStore(tmp_path)
        store.save(JAN_15, "x", 2)
        store.save(JAN_16, "x", 3)
        store.set_entry_count(JAN_15, 6)
        assert store.find(JAN_15).entry_count == 6
        assert store.aggregate_count == 9

class TestDelete:
    def test_delete_is_idempotent(self, tmp_path: Path):
        store = PartitionStore(tmp_path)
        store.save(JAN_15, "x", 2)
        assert store.delete(JAN_15) == 1
        assert store.delete(JAN_15) == 0
        assert store.aggregate_count == 0

    def test_delete_matching(self, tmp_path: Path):
        store = PartitionStore(tmp_path)
        store.save(JAN_15, "x", 2)
        store.save(JAN_16, "x", 3)
        store.save(FEB_01, "x", 4)
        assert store.delete_matching([DateQuery(year=2024, month=1)]) == 2
        assert store.all_partitions() == [FEB_01]
        assert store.aggregate_count == 4

    def test_delete_all_resets_aggregate(self, tmp_path: Path):
        store = PartitionStore(tmp_path)
        store.save(JAN_15, "x", 2)
        store.set_aggregate_count(99)
        assert store.delete_all() == 1
        assert store.aggregate_count == 0


class TestCorruption:
    def test_corrupt_file_starts_fresh(self, tmp_path: Path):
        (tmp_path / STORE_FILENAME).write_text("{broken", encoding="utf-8")
        store = PartitionStore(tmp_path)
        assert store.all_partitions() == []
        assert store.aggregate_count == 0
