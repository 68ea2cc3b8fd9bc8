# =============================================================================
# tests/unit/test_sync_models.py
# Unit Tests for SyncProgress / RunReport
# =============================================================================

import pytest

from clinic_core.offline.sync_models import (
    EntityStatus,
    RunReport,
    SyncMode,
    SyncProgress,
)


class TestSyncMode:
    """Test mode derivation from connectivity"""

    def test_both_available_is_full(self):
        """Both stores reachable is full mode"""
        assert SyncMode.from_connectivity(online=True, offline=True) is SyncMode.FULL

    def test_online_missing_is_offline_only(self):
        """Only the offline store reachable is offline-only mode"""
        assert SyncMode.from_connectivity(online=False, offline=True) is SyncMode.OFFLINE_ONLY

    def test_offline_missing_is_online_only(self):
        """Only the online store reachable is online-only mode"""
        assert SyncMode.from_connectivity(online=True, offline=False) is SyncMode.ONLINE_ONLY

    def test_neither_available_has_no_mode(self):
        """No store reachable has no mode"""
        with pytest.raises(ValueError):
            SyncMode.from_connectivity(online=False, offline=False)


class TestRunReport:
    """Test report bookkeeping"""

    def test_start_marks_every_entity_pending(self):
        """A new report lists every entity as pending"""
        report = RunReport.start(["products", "student"])

        assert report.total_entities == 2
        assert all(p.status is EntityStatus.PENDING for p in report.progress)
        assert report.overall_percentage == 0

    def test_update_progress_recounts_entities(self):
        """Completed and skipped counters follow progress updates"""
        report = RunReport.start(["products", "student", "suppliers", "purchases"])
        report.update_progress(SyncProgress("products", 3, 3, EntityStatus.COMPLETED))
        report.update_progress(SyncProgress("student", 0, 0, EntityStatus.SKIPPED))
        report.update_progress(SyncProgress("suppliers", 1, 4, EntityStatus.SYNCING))

        assert report.completed_entities == 1
        assert report.skipped_entities == 1
        assert report.overall_percentage == 50
        assert report.get_progress("suppliers").completed == 1

    @pytest.mark.parametrize("entities,done,expected", [
        (8, 1, 13),
        (8, 3, 38),
        (3, 1, 33),
        (3, 2, 67),
        (9, 9, 100),
    ])
    def test_overall_percentage_rounds_halves_up(self, entities, done, expected):
        """12.5% shows as 13%, 37.5% as 38%"""
        report = RunReport.start([f"entity{i}" for i in range(entities)])
        for i in range(done):
            report.update_progress(SyncProgress(f"entity{i}", status=EntityStatus.COMPLETED))

        assert report.overall_percentage == expected

    def test_update_progress_ignores_unknown_entity(self):
        """Progress for an unlisted entity is dropped"""
        report = RunReport.start(["products"])
        report.update_progress(SyncProgress("invoices", status=EntityStatus.COMPLETED))

        assert [p.entity for p in report.progress] == ["products"]
        assert report.completed_entities == 0

    def test_finalize_success_depends_on_errors_only(self):
        """Warnings alone keep the run successful"""
        report = RunReport.start(["products"])
        report.warnings.append("products sync skipped - online database not available")
        report.finalize()

        assert report.success
        assert report.is_finished
        assert report.duration >= 0

    def test_finalize_with_errors_is_not_success(self):
        """Any error clears the success flag"""
        report = RunReport.start(["products"])
        report.errors.append("products p2: timeout")
        report.finalize()

        assert not report.success
        assert report.summary_message() == "Sync completed with errors"

    def test_summary_messages(self):
        """The summary reflects errors and warnings"""
        report = RunReport.start(["products"])
        assert report.summary_message() == "Sync completed successfully"

        report.warnings.append("w")
        assert report.summary_message() == "Sync completed with warnings"

        report.errors.append("e")
        assert report.summary_message() == "Sync completed with errors and warnings"

    def test_dict_snapshot_uses_status_api_names(self):
        """to_dict uses camelCase keys and round-trips"""
        report = RunReport.start(["products"])
        report.mode = SyncMode.FULL
        report.finalize()
        data = report.to_dict()

        assert data["totalEntities"] == 1
        assert data["mode"] == "full"
        assert data["progress"][0] == {"entity": "products", "completed": 0, "total": 0, "status": "pending"}
        assert data["connectivityStatus"] == {"online": False, "offline": False}

        restored = RunReport.from_dict(data)
        assert restored.mode is SyncMode.FULL
        assert restored.end_time == report.end_time
        assert restored.progress[0].status is EntityStatus.PENDING
