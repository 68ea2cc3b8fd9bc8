# =============================================================================
# clinic_core/offline/sync_models.py
# Sync progress and run report structures
# =============================================================================
"""
Data structures shared by the entity syncer, the run orchestrator and the
status surface.

A RunReport is created when a run starts, mutated in place while the run
progresses, and left untouched once the run has finished. Status readers
may observe it mid-run; no reader lock is taken.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional


class SyncMode(Enum):
    """Run mode derived from connectivity."""
    FULL = "full"
    OFFLINE_ONLY = "offline-only"   # online database unreachable
    ONLINE_ONLY = "online-only"     # offline database unreachable

    @classmethod
    def from_connectivity(cls, online: bool, offline: bool) -> SyncMode:
        if online and offline:
            return cls.FULL
        if offline:
            return cls.OFFLINE_ONLY
        if online:
            return cls.ONLINE_ONLY
        raise ValueError("No sync mode exists when both databases are unreachable")


class EntityStatus(Enum):
    """Per-entity sync status."""
    PENDING = "pending"
    SYNCING = "syncing"
    COMPLETED = "completed"
    ERROR = "error"
    SKIPPED = "skipped"


class RunState(Enum):
    """Run orchestrator state machine."""
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class ConnectivitySnapshot:
    """Reachability of both databases at probe time."""
    online: bool = False
    offline: bool = False

    def to_dict(self) -> Dict[str, bool]:
        return {"online": self.online, "offline": self.offline}


@dataclass
class SyncProgress:
    """Progress of one entity type within a run."""
    entity: str
    completed: int = 0
    total: int = 0
    status: EntityStatus = EntityStatus.PENDING
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "entity": self.entity,
            "completed": self.completed,
            "total": self.total,
            "status": self.status.value,
        }
        if self.error is not None:
            data["error"] = self.error
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> SyncProgress:
        return cls(
            entity=data["entity"],
            completed=data.get("completed", 0),
            total=data.get("total", 0),
            status=EntityStatus(data.get("status", EntityStatus.PENDING.value)),
            error=data.get("error"),
        )


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _parse_time(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


@dataclass
class RunReport:
    """
    Aggregate result of one orchestrator invocation.

    Attributes:
        success: True when the run finished without any error string
        progress: One SyncProgress per entity, in sync order
        errors: Record-level and entity-level error strings
        warnings: Skip notices and other non-fatal conditions
        duration: Run duration in milliseconds
        mode: Run mode; None until connectivity has been established
    """
    progress: List[SyncProgress] = field(default_factory=list)
    success: bool = False
    completed_entities: int = 0
    skipped_entities: int = 0
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    start_time: datetime = field(default_factory=_utcnow)
    end_time: Optional[datetime] = None
    duration: Optional[int] = None
    mode: Optional[SyncMode] = None
    connectivity: ConnectivitySnapshot = field(default_factory=ConnectivitySnapshot)

    @classmethod
    def start(cls, entities: List[str]) -> RunReport:
        """New report with every entity pending."""
        return cls(progress=[SyncProgress(entity=name) for name in entities])

    @property
    def total_entities(self) -> int:
        return len(self.progress)

    @property
    def is_finished(self) -> bool:
        return self.end_time is not None

    @property
    def overall_percentage(self) -> int:
        if not self.progress:
            return 0
        done = self.completed_entities + self.skipped_entities
        # Halves round up (12.5 -> 13), unlike round()
        return int(100 * done / self.total_entities + 0.5)

    def get_progress(self, entity: str) -> Optional[SyncProgress]:
        for progress in self.progress:
            if progress.entity == entity:
                return progress
        return None

    def update_progress(self, progress: SyncProgress) -> None:
        """
        Replace the entry for progress.entity and refresh the entity counters.

        Used as the progress sink handed to the entity syncer.
        """
        for index, existing in enumerate(self.progress):
            if existing.entity == progress.entity:
                self.progress[index] = progress
                break
        else:
            return

        self.completed_entities = sum(
            1 for p in self.progress if p.status is EntityStatus.COMPLETED
        )
        self.skipped_entities = sum(
            1 for p in self.progress if p.status is EntityStatus.SKIPPED
        )

    def finalize(self) -> None:
        """Stamp end time and duration and derive the success flag."""
        self.success = not self.errors
        self.end_time = _utcnow()
        self.duration = int((self.end_time - self.start_time).total_seconds() * 1000)

    def summary_message(self) -> str:
        has_errors = bool(self.errors)
        has_warnings = bool(self.warnings)
        if has_errors and has_warnings:
            return "Sync completed with errors and warnings"
        if has_errors:
            return "Sync completed with errors"
        if has_warnings:
            return "Sync completed with warnings"
        return "Sync completed successfully"

    def to_dict(self) -> Dict[str, Any]:
        """JSON-ready snapshot using the camelCase field names of the status API."""
        return {
            "success": self.success,
            "totalEntities": self.total_entities,
            "completedEntities": self.completed_entities,
            "skippedEntities": self.skipped_entities,
            "progress": [p.to_dict() for p in self.progress],
            "errors": list(self.errors),
            "warnings": list(self.warnings),
            "startTime": self.start_time.isoformat(),
            "endTime": self.end_time.isoformat() if self.end_time else None,
            "duration": self.duration,
            "mode": self.mode.value if self.mode else None,
            "connectivityStatus": self.connectivity.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> RunReport:
        connectivity = data.get("connectivityStatus") or {}
        return cls(
            progress=[SyncProgress.from_dict(p) for p in data.get("progress", [])],
            success=data.get("success", False),
            completed_entities=data.get("completedEntities", 0),
            skipped_entities=data.get("skippedEntities", 0),
            errors=list(data.get("errors", [])),
            warnings=list(data.get("warnings", [])),
            start_time=_parse_time(data.get("startTime")) or _utcnow(),
            end_time=_parse_time(data.get("endTime")),
            duration=data.get("duration"),
            mode=SyncMode(data["mode"]) if data.get("mode") else None,
            connectivity=ConnectivitySnapshot(
                online=bool(connectivity.get("online")),
                offline=bool(connectivity.get("offline")),
            ),
        )
