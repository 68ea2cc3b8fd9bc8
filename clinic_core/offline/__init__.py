# =============================================================================
# clinic_core/offline/__init__.py
# Offline-First Sync for the clinic inventory
# =============================================================================
"""
Offline-First Sync Module

The clinic records products, students, suppliers, consultations, purchases,
line items and payments in a local SQLite database while disconnected.
This module pushes those rows to the Supabase (online) database.

Architecture:
------------
    SyncService (trigger / status)
            │
            ▼
    SyncEngine ── ConnectionManager ──► probe both databases
            │
            ▼  (one entity at a time, dependency order)
    EntitySyncer ── SYNC_DESCRIPTORS (keys, remapping, concurrency)
       │                     │
       ▼                     ▼
  LocalDatabase ──push──► OnlineDatabase
   (SQLite)                (Supabase)

Usage:
------
from clinic_core.offline import SyncEngine, EntitySyncer, ConnectionManager

engine = SyncEngine(ConnectionManager(online_db, local_db), EntitySyncer(local_db, online_db))
report = await engine.run()
"""

from clinic_core.offline.connection_manager import (
    ConnectionManager,
    ConnectionState,
    ConnectionStatus,
)

from clinic_core.offline.local_database import LocalDatabase

from clinic_core.offline.online_database import OnlineDatabase

from clinic_core.offline.sync_models import (
    ConnectivitySnapshot,
    EntityStatus,
    RunReport,
    RunState,
    SyncMode,
    SyncProgress,
)

from clinic_core.offline.sync_descriptors import (
    EntitySyncDescriptor,
    SYNC_DESCRIPTORS,
    get_descriptor,
    ordered_descriptors,
    rename_fields,
)

from clinic_core.offline.entity_syncer import (
    EntitySyncer,
    EntitySyncOutcome,
)

from clinic_core.offline.sync_engine import SyncEngine

__all__ = [
    # Connectivity
    "ConnectionManager",
    "ConnectionState",
    "ConnectionStatus",
    # Stores
    "LocalDatabase",
    "OnlineDatabase",
    # Models
    "ConnectivitySnapshot",
    "EntityStatus",
    "RunReport",
    "RunState",
    "SyncMode",
    "SyncProgress",
    # Descriptors
    "EntitySyncDescriptor",
    "SYNC_DESCRIPTORS",
    "get_descriptor",
    "ordered_descriptors",
    "rename_fields",
    # Engine
    "EntitySyncer",
    "EntitySyncOutcome",
    "SyncEngine",
]
