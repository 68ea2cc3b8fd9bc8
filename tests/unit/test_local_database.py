# =============================================================================
# tests/unit/test_local_database.py
# Unit Tests for the SQLite offline database
# =============================================================================

import asyncio
from datetime import datetime, timezone

import pytest

from clinic_core.errors import StoreError


class TestDirtyTracking:
    """Test the sync flag bookkeeping"""

    def test_inserted_rows_are_dirty(self, local_db, sample_products):
        """New rows start with sync = 0 and no syncedAt"""
        local_db.insert_many("product", sample_products)
        dirty = local_db.get_dirty("product")

        assert {row["id"] for row in dirty} == {"p1", "p2", "p3"}
        assert all(row["sync"] == 0 and row["syncedAt"] is None for row in dirty)

    def test_set_clean_only_touches_given_keys(self, local_db, sample_products):
        """Only the listed keys are flagged clean and stamped"""
        local_db.insert_many("product", sample_products)
        stamp = datetime(2026, 5, 4, 12, 0, tzinfo=timezone.utc)

        updated = local_db.set_clean("product", ["p1", "p3"], synced_at=stamp)

        assert updated == 2
        assert [row["id"] for row in local_db.get_dirty("product")] == ["p2"]
        assert local_db.get_by_key("product", "p1")["syncedAt"] == stamp.isoformat()
        assert local_db.get_by_key("product", "p2")["syncedAt"] is None

    def test_update_makes_row_dirty_again(self, local_db, sample_products):
        """An update re-flags a clean row"""
        local_db.insert_many("product", sample_products)
        local_db.set_clean("product", ["p1", "p2", "p3"])

        assert local_db.update("product", "p2", {"quantity": 39})
        assert [row["id"] for row in local_db.get_dirty("product")] == ["p2"]

    def test_set_clean_by_natural_key(self, local_db):
        """Rows can be flagged clean by a column other than id"""
        local_db.insert("consultation", {"id": "c1", "invoiceNo": "INV-1"})
        local_db.insert("consultation", {"id": "c2", "invoiceNo": "INV-2"})

        local_db.set_clean("consultation", ["INV-2"], key_field="invoiceNo")

        assert [row["invoiceNo"] for row in local_db.get_dirty("consultation")] == ["INV-1"]

    def test_set_clean_handles_more_keys_than_one_statement(self, local_db):
        """Key lists longer than one chunk are all flagged"""
        local_db.insert_many(
            "student",
            ({"id": f"s{i}", "name": f"Student {i}"} for i in range(620)),
        )
        keys = [f"s{i}" for i in range(620)]

        assert local_db.set_clean("student", keys) == 620
        assert local_db.get_dirty("student") == []

    def test_set_clean_with_no_keys_is_noop(self, local_db):
        """An empty key list updates nothing"""
        assert local_db.set_clean("product", []) == 0

    def test_set_clean_skips_rows_changed_since_read(self, local_db, sample_products):
        """Rows whose updatedAt moved since they were read stay dirty"""
        local_db.insert_many("product", sample_products)
        versions = {row["id"]: row["updatedAt"] for row in local_db.get_dirty("product")}

        local_db.update("product", "p2", {"quantity": 41})
        updated = local_db.set_clean("product", ["p1", "p2", "p3"], versions=versions)

        assert updated == 2
        assert [row["id"] for row in local_db.get_dirty("product")] == ["p2"]
        assert local_db.get_by_key("product", "p2")["syncedAt"] is None

    def test_pending_counts(self, seeded_clinic):
        """Dirty rows are counted per table"""
        counts = seeded_clinic.get_pending_counts(["product", "student", "consultation"])

        assert counts == {"product": 3, "student": 1, "consultation": 1}


class TestAsyncInterface:
    """Test the awaitable store calls used by the sync engine"""

    def test_find_dirty_and_mark_clean(self, local_db, sample_products):
        """The awaitable calls drain the dirty set"""
        local_db.insert_many("product", sample_products)

        async def scenario():
            dirty = await local_db.find_dirty("product")
            await local_db.mark_clean("product", [row["id"] for row in dirty])
            return await local_db.find_dirty("product")

        assert asyncio.run(scenario()) == []

    def test_probe_succeeds(self, local_db):
        """The reachability check passes on an open database"""
        asyncio.run(local_db.probe())

    def test_store_errors_are_wrapped(self, local_db):
        """sqlite3 errors surface as StoreError"""
        with pytest.raises(StoreError) as exc_info:
            asyncio.run(local_db.find_dirty("no_such_table"))

        assert exc_info.value.details == {"store": "offline", "table": "no_such_table"}


class TestSettingsAndFrames:
    """Test settings storage and pandas export"""

    def test_setting_round_trip(self, local_db):
        """Settings are stored as JSON and read back"""
        local_db.set_setting("last_sync_report", {"success": True, "errors": []})

        assert local_db.get_setting("last_sync_report") == {"success": True, "errors": []}
        assert local_db.get_setting("missing", default="x") == "x"

    def test_to_dataframe_filters_dirty_rows(self, local_db, sample_products):
        """The DataFrame view honours a WHERE clause"""
        local_db.insert_many("product", sample_products)
        local_db.set_clean("product", ["p1"])

        df = local_db.to_dataframe("product", where="sync = ?", params=[0])

        assert sorted(df["id"].tolist()) == ["p2", "p3"]
