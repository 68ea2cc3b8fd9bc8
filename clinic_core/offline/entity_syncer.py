# =============================================================================
# clinic_core/offline/entity_syncer.py
# Generic per-entity push from the offline to the online database
# =============================================================================
"""
EntitySyncer - drains one entity type's dirty rows into the online store.

For each descriptor:
1. read every dirty row from the offline store
2. upsert the remapped payloads online through a small worker pool,
   retrying each record a fixed number of times
3. mark exactly the successfully upserted rows clean in one bulk update,
   skipping rows whose updatedAt moved while their upsert was in flight

A record that keeps failing is reported and stays dirty; it never stops
the rest of the batch.
"""

from __future__ import annotations
import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional
import logging

from clinic_core.errors.exceptions import RecordSyncError, describe_error
from clinic_core.offline.sync_descriptors import UPDATED_AT_FIELD, EntitySyncDescriptor
from clinic_core.offline.sync_models import EntityStatus, SyncProgress

logger = logging.getLogger(__name__)

ProgressSink = Callable[[SyncProgress], None]


def _discard_progress(progress: SyncProgress) -> None:
    pass


@dataclass
class EntitySyncOutcome:
    """Result of one sync_entity call."""
    progress: SyncProgress
    synced_keys: List[Any] = field(default_factory=list)
    versions: Dict[Any, Any] = field(default_factory=dict)
    failures: List[RecordSyncError] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    @property
    def entity(self) -> str:
        return self.progress.entity

    @property
    def failed_count(self) -> int:
        return len(self.failures)


class EntitySyncer:
    """
    Generic sync algorithm driven by an EntitySyncDescriptor.

    Usage:
        syncer = EntitySyncer(local_db, online_db)
        outcome = await syncer.sync_entity(descriptor, report.update_progress)
    """

    def __init__(
        self,
        source: Any,
        target: Any,
        upsert_retries: int = 2,
        retry_delay: float = 1.0,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        """
        Args:
            source: Offline store (find_dirty / mark_clean)
            target: Online store (upsert)
            upsert_retries: Attempts per record before it is reported failed
            retry_delay: Seconds between attempts of the same record
            sleep: Awaitable sleep, replaceable in tests
        """
        self._source = source
        self._target = target
        self.upsert_retries = upsert_retries
        self.retry_delay = retry_delay
        self._sleep = sleep

    async def sync_entity(
        self,
        descriptor: EntitySyncDescriptor,
        progress_sink: Optional[ProgressSink] = None,
    ) -> EntitySyncOutcome:
        """
        Push every dirty row of one entity type online.

        Store failures while reading the dirty set or committing the
        mark-clean turn the entity into an ``error`` outcome instead of
        raising.
        """
        sink = progress_sink or _discard_progress
        progress = SyncProgress(entity=descriptor.entity, status=EntityStatus.SYNCING)
        outcome = EntitySyncOutcome(progress=progress)
        sink(progress)

        try:
            records = await self._source.find_dirty(descriptor.source_table)
        except Exception as e:
            return self._fail_entity(outcome, e, sink)

        progress.total = len(records)
        sink(progress)

        if not records:
            progress.status = EntityStatus.COMPLETED
            sink(progress)
            logger.info(f"No {descriptor.entity} records to sync")
            return outcome

        logger.info(f"Starting {descriptor.entity} sync ({len(records)} records)")
        synced_at = datetime.now(timezone.utc)
        pending = iter(records)

        async def worker() -> None:
            # Workers share one iterator; each record is taken exactly once
            for record in pending:
                try:
                    key = await self._sync_record(descriptor, record, synced_at)
                    outcome.synced_keys.append(key)
                    outcome.versions[key] = record.get(UPDATED_AT_FIELD)
                except RecordSyncError as e:
                    outcome.failures.append(e)
                    outcome.errors.append(
                        f"{descriptor.entity} {e.details.get('record_key')}: {e.message}"
                    )
                progress.completed += 1
                sink(progress)

        workers = min(descriptor.concurrency, len(records))
        await asyncio.gather(*(worker() for _ in range(workers)))

        if outcome.synced_keys:
            try:
                cleaned = await self._source.mark_clean(
                    descriptor.source_table,
                    outcome.synced_keys,
                    key_field=descriptor.key_field,
                    synced_at=synced_at,
                    versions=outcome.versions,
                )
            except Exception as e:
                return self._fail_entity(outcome, e, sink)

            changed = len(outcome.synced_keys) - cleaned
            if changed > 0:
                logger.info(
                    f"{changed} {descriptor.entity} rows changed while syncing; "
                    "left dirty for the next run"
                )

        progress.status = EntityStatus.COMPLETED
        sink(progress)
        logger.info(
            f"Synced {len(outcome.synced_keys)} {descriptor.entity} "
            f"({outcome.failed_count} errors)"
        )
        return outcome

    async def _sync_record(
        self,
        descriptor: EntitySyncDescriptor,
        record: Dict[str, Any],
        synced_at: datetime,
    ) -> Any:
        """
        Upsert one record, retrying up to upsert_retries times.

        Returns:
            The record's natural key

        Raises:
            RecordSyncError: every attempt failed
        """
        try:
            key = descriptor.natural_key(record)
        except KeyError as e:
            raise RecordSyncError(
                f"missing natural key {descriptor.key_field}",
                entity=descriptor.entity,
                attempts=0,
            ) from e

        try:
            payload = descriptor.build_payload(record, synced_at)
        except Exception as e:
            raise RecordSyncError(
                describe_error(e), entity=descriptor.entity, record_key=key, attempts=0
            ) from e

        for attempt in range(1, self.upsert_retries + 1):
            try:
                await self._target.upsert(descriptor.target_table, descriptor.key_field, payload)
                return key
            except Exception as e:
                message = describe_error(e)
                logger.warning(
                    f"{descriptor.entity} upsert failed for {key}, attempt {attempt}: {message}"
                )
                if attempt == self.upsert_retries:
                    raise RecordSyncError(
                        message,
                        entity=descriptor.entity,
                        record_key=key,
                        attempts=attempt,
                    ) from e
                await self._sleep(self.retry_delay)

    def _fail_entity(
        self,
        outcome: EntitySyncOutcome,
        error: Exception,
        sink: ProgressSink,
    ) -> EntitySyncOutcome:
        message = describe_error(error)
        logger.error(f"{outcome.entity} sync failed: {message}", exc_info=True)

        outcome.progress.status = EntityStatus.ERROR
        outcome.progress.error = message
        outcome.errors.append(f"{outcome.entity} sync failed: {message}")
        # Nothing was committed as clean
        outcome.synced_keys = []
        outcome.versions = {}
        sink(outcome.progress)
        return outcome
