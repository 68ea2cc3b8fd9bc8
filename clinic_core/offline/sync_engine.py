# =============================================================================
# clinic_core/offline/sync_engine.py
# Run orchestration for the offline -> online sync
# =============================================================================
"""
SyncEngine - owns one sync run from trigger to final report.

Features:
- Single-flight: a second run is rejected while one is active
- Run mode derived from connectivity (full / offline-only / online-only)
- Entities synced one after another in dependency order
- Run report kept as the engine's current/last report and persisted
  to the offline database when it is reachable
"""

from __future__ import annotations
import asyncio
import threading
from typing import Any, Iterable, List, Optional
import logging

from clinic_core.errors.exceptions import SyncInProgressError, describe_error
from clinic_core.logging import LogContext
from clinic_core.offline.connection_manager import ConnectionManager
from clinic_core.offline.entity_syncer import EntitySyncer
from clinic_core.offline.sync_descriptors import (
    SYNC_DESCRIPTORS,
    EntitySyncDescriptor,
    ordered_descriptors,
)
from clinic_core.offline.sync_models import (
    EntityStatus,
    RunReport,
    RunState,
    SyncMode,
    SyncProgress,
)

logger = logging.getLogger(__name__)

LAST_REPORT_KEY = "last_sync_report"

# Store that is missing for each degraded mode
_MISSING_STORE = {
    SyncMode.OFFLINE_ONLY: "online",
    SyncMode.ONLINE_ONLY: "offline",
}


class SyncEngine:
    """
    Run orchestrator: Idle -> Running -> Completed | Failed.

    Usage:
        engine = SyncEngine(connection_manager, EntitySyncer(local_db, online_db))
        report = await engine.run()
    """

    def __init__(
        self,
        connection_manager: ConnectionManager,
        syncer: EntitySyncer,
        descriptors: Iterable[EntitySyncDescriptor] = SYNC_DESCRIPTORS,
        connect_retries: int = 3,
        settings_store: Any = None,
    ):
        """
        Args:
            connection_manager: Probes both databases
            syncer: Generic per-entity sync algorithm
            descriptors: Entity table (sorted by rank at run time)
            connect_retries: Attempts before a run fails critically
            settings_store: Offline database used to persist the last report
        """
        self._connection_manager = connection_manager
        self._syncer = syncer
        self._descriptors = tuple(descriptors)
        self._connect_retries = connect_retries
        self._settings_store = settings_store

        # Process-wide single-flight lock; acquired without awaiting
        self._run_lock = threading.Lock()
        self._state = RunState.IDLE
        self._report: Optional[RunReport] = None

    @property
    def state(self) -> RunState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._run_lock.locked()

    @property
    def connection_manager(self) -> ConnectionManager:
        return self._connection_manager

    @property
    def current_report(self) -> Optional[RunReport]:
        """The in-flight report, or the last finished one in this process."""
        return self._report

    async def run(self, payload: Any = None) -> RunReport:
        """
        Execute one sync run.

        Returns:
            The finished RunReport (success may be False on record errors)

        Raises:
            SyncInProgressError: another run is active (carries its report)
            ConnectivityError: neither database reachable
        """
        if not self._run_lock.acquire(blocking=False):
            raise SyncInProgressError(report=self._report)

        try:
            if payload:
                logger.info(f"Sync request body: {payload}")

            descriptors = ordered_descriptors(self._descriptors)
            report = RunReport.start([d.entity for d in descriptors])
            self._report = report
            self._state = RunState.RUNNING

            try:
                await self._execute(report, descriptors)
            except asyncio.CancelledError:
                # Entities committed before cancellation stay committed
                report.errors.append("Sync cancelled")
                self._finish(report, RunState.FAILED)
                raise
            except Exception as e:
                logger.error(f"Critical sync error: {e}", exc_info=True)
                report.errors.append(f"Critical error: {describe_error(e)}")
                self._finish(report, RunState.FAILED)
                await self._persist(report)
                raise

            self._finish(report, RunState.COMPLETED)
            await self._persist(report)
            return report

        finally:
            self._run_lock.release()

    async def _execute(
        self,
        report: RunReport,
        descriptors: List[EntitySyncDescriptor],
    ) -> None:
        connectivity = await self._connection_manager.ensure_availability(
            max_retries=self._connect_retries
        )
        report.connectivity = connectivity
        report.mode = SyncMode.from_connectivity(connectivity.online, connectivity.offline)
        logger.info(f"Starting sync in {report.mode.value} mode")

        if report.mode in _MISSING_STORE:
            self._skip_all(report, _MISSING_STORE[report.mode])
            return

        for descriptor in descriptors:
            with LogContext(logger, f"Syncing {descriptor.entity}"):
                outcome = await self._syncer.sync_entity(descriptor, report.update_progress)
            report.errors.extend(outcome.errors)

    def _skip_all(self, report: RunReport, missing: str) -> None:
        logger.info(f"Skipping upstream sync - {missing} database not available")
        for progress in list(report.progress):
            report.update_progress(SyncProgress(
                entity=progress.entity,
                status=EntityStatus.SKIPPED,
                error=f"{missing.capitalize()} database not available",
            ))
            report.warnings.append(
                f"{progress.entity} sync skipped - {missing} database not available"
            )

    def _finish(self, report: RunReport, state: RunState) -> None:
        report.finalize()
        self._state = state
        logger.info(
            f"Sync {state.value}: success={report.success}, "
            f"errors={len(report.errors)}, warnings={len(report.warnings)}, "
            f"mode={report.mode.value if report.mode else None}, "
            f"duration={report.duration}ms"
        )

    async def _persist(self, report: RunReport) -> None:
        if self._settings_store is None:
            return
        try:
            await asyncio.to_thread(
                self._settings_store.set_setting, LAST_REPORT_KEY, report.to_dict()
            )
        except Exception as e:
            logger.warning(f"Could not persist sync report: {e}")

    def load_last_report(self) -> Optional[RunReport]:
        """
        Current/last report of this process, else the persisted one.

        Never raises; an unreadable persisted report is treated as absent.
        """
        if self._report is not None:
            return self._report
        if self._settings_store is None:
            return None
        try:
            data = self._settings_store.get_setting(LAST_REPORT_KEY)
            return RunReport.from_dict(data) if data else None
        except Exception as e:
            logger.warning(f"Could not load persisted sync report: {e}")
            return None
