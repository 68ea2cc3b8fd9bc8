# =============================================================================
# clinic_core/services/sync_service.py
# Trigger and status surface for the offline -> online sync
# =============================================================================
"""
SyncService - the two operations callers use:

- ``trigger()`` starts a run (or reports that one is already running)
- ``status()`` returns the current or most recent run report for polling

Responses carry HTTP-style status codes: 200 on a finished run, 409 while
another run is active, 500 on critical failure.
"""

from __future__ import annotations
import dataclasses
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from clinic_core.config import SyncSettings, load_settings
from clinic_core.errors import SyncInProgressError, describe_error
from clinic_core.offline import (
    SYNC_DESCRIPTORS,
    ConnectionManager,
    EntitySyncer,
    LocalDatabase,
    OnlineDatabase,
    RunReport,
    SyncEngine,
    get_descriptor,
)
from .base_service import BaseService, ServiceResult

HTTP_OK = 200
HTTP_CONFLICT = 409
HTTP_SERVER_ERROR = 500


@dataclass
class SyncResponse:
    """Outcome of a trigger request."""
    status: int
    message: str
    result: Optional[RunReport] = None
    error: Optional[str] = None
    timestamp: Optional[datetime] = None

    @property
    def ok(self) -> bool:
        return self.status == HTTP_OK

    def to_dict(self) -> Dict[str, Any]:
        report = self.result.to_dict() if self.result else None
        data: Dict[str, Any] = {"status": self.status, "message": self.message}

        if self.status == HTTP_CONFLICT:
            data["currentProgress"] = report
            return data

        if self.error is not None:
            data["error"] = self.error
        data["result"] = report
        if self.timestamp is not None:
            data["timestamp"] = self.timestamp.isoformat()
        return data


class SyncService(BaseService):
    """
    Progress/status surface over a SyncEngine.

    Usage:
        service = SyncService(engine, local_db)
        response = await service.trigger()
        status = service.status()
    """

    def __init__(self, engine: SyncEngine, local_db: Optional[LocalDatabase] = None):
        super().__init__()
        self._engine = engine
        self._local_db = local_db

    @property
    def engine(self) -> SyncEngine:
        return self._engine

    def _already_running(self, report: Optional[RunReport]) -> SyncResponse:
        self.logger.info("Sync trigger rejected: a sync is already in progress")
        return SyncResponse(
            status=HTTP_CONFLICT,
            message="Sync already in progress",
            result=report,
        )

    async def trigger(self, payload: Any = None) -> SyncResponse:
        """
        Start a sync run and wait for it to finish.

        Args:
            payload: Optional request body; logged, otherwise unused
        """
        if self._engine.is_running:
            return self._already_running(self._engine.current_report)

        try:
            with self.log_operation("Data sync"):
                report = await self._engine.run(payload)
        except SyncInProgressError as e:
            return self._already_running(e.report)
        except Exception as e:
            return SyncResponse(
                status=HTTP_SERVER_ERROR,
                message="Sync failed critically",
                result=self._engine.current_report,
                error=describe_error(e),
                timestamp=datetime.now(timezone.utc),
            )

        return SyncResponse(
            status=HTTP_OK,
            message=report.summary_message(),
            result=report,
        )

    def status(self) -> Dict[str, Any]:
        """
        Current or most recent run report for polling. Never blocks on a run.

        Returns:
            Dict with isSyncing, overallPercentage, syncStatus, lastSync
        """
        report = self._engine.load_last_report()
        return {
            "isSyncing": self._engine.is_running,
            "overallPercentage": report.overall_percentage if report else 0,
            "syncStatus": report.to_dict() if report else None,
            "lastSync": report.end_time.isoformat() if report and report.end_time else None,
        }

    def pending_changes(self) -> ServiceResult:
        """Count of rows per entity still waiting to be pushed online."""
        if self._local_db is None:
            return ServiceResult.fail("Offline database not configured", error_code="CONFIG_001")

        def count() -> Dict[str, int]:
            tables = {d.source_table: d.entity for d in SYNC_DESCRIPTORS}
            counts = self._local_db.get_pending_counts(tables)
            return {tables[table]: n for table, n in counts.items()}

        return self.safe_execute("Counting pending changes", count)

    def pending_records(self, entity: str) -> ServiceResult:
        """Rows of one entity still waiting to be pushed online, as a DataFrame."""
        if self._local_db is None:
            return ServiceResult.fail("Offline database not configured", error_code="CONFIG_001")

        def load():
            descriptor = get_descriptor(entity)
            return self._local_db.to_dataframe(descriptor.source_table, where="sync = 0")

        return self.safe_execute(f"Loading pending {entity}", load)


# =============================================================================
# SERVICE FACTORY
# =============================================================================

def build_sync_service(settings: SyncSettings) -> SyncService:
    """Wire databases, connectivity probe, syncer and engine from settings."""
    settings.validate()

    local_db = LocalDatabase(settings.local_db_path).initialize()
    online_db = OnlineDatabase(
        settings.supabase_url,
        settings.supabase_key,
        probe_timeout=settings.probe_timeout,
    )

    connection_manager = ConnectionManager(
        online_store=online_db,
        offline_store=local_db,
        backoff_base=settings.backoff_base,
    )
    syncer = EntitySyncer(
        source=local_db,
        target=online_db,
        upsert_retries=settings.upsert_retries,
        retry_delay=settings.upsert_retry_delay,
    )
    descriptors = [
        dataclasses.replace(d, concurrency=settings.concurrency)
        for d in SYNC_DESCRIPTORS
    ]
    engine = SyncEngine(
        connection_manager,
        syncer,
        descriptors=descriptors,
        connect_retries=settings.connect_retries,
        settings_store=local_db,
    )
    return SyncService(engine, local_db)


_sync_service: Optional[SyncService] = None
_sync_service_lock = threading.Lock()


def get_sync_service() -> SyncService:
    """Get the process-wide SyncService (one engine, one single-flight lock)."""
    global _sync_service
    if _sync_service is None:
        with _sync_service_lock:
            if _sync_service is None:
                _sync_service = build_sync_service(load_settings())
    return _sync_service
