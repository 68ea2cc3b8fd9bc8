# =============================================================================
# clinic_core/offline/connection_manager.py
# Connection Status Detection for both databases
# =============================================================================
"""
ConnectionManager - answers "is each database reachable right now".

Features:
- Independent, side-effect-free probe of the online and offline stores
- Retry with exponential backoff until at least one store answers
- Last-known connection state for status display
"""

from __future__ import annotations
import asyncio
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Optional
import logging

from clinic_core.errors.exceptions import ConnectivityError
from clinic_core.offline.sync_models import ConnectivitySnapshot

logger = logging.getLogger(__name__)


class ConnectionStatus(Enum):
    """Connection status states."""
    ONLINE = "online"           # Both databases reachable
    DEGRADED = "degraded"       # Exactly one database reachable
    OFFLINE = "offline"         # Neither database reachable
    UNKNOWN = "unknown"         # Never checked


@dataclass
class ConnectionState:
    """Current connection state with metadata."""
    status: ConnectionStatus = ConnectionStatus.UNKNOWN
    online_available: bool = False
    offline_available: bool = False
    last_check: Optional[datetime] = None
    consecutive_failures: int = 0
    error_message: Optional[str] = None


class ConnectionManager:
    """
    Probes the online (Supabase) and offline (SQLite) stores.

    Any object with an awaitable ``probe()`` that raises when the store is
    unreachable can be used as a store.

    Usage:
        manager = ConnectionManager(online_db, local_db)
        snapshot = await manager.probe()
        snapshot = await manager.ensure_availability(max_retries=3)
    """

    def __init__(
        self,
        online_store: Any,
        offline_store: Any,
        backoff_base: float = 1.0,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        """
        Args:
            online_store: Target store (Supabase)
            offline_store: Source store (SQLite)
            backoff_base: Seconds multiplied by 2**attempt between attempts
            sleep: Awaitable sleep, replaceable in tests
        """
        self._online_store = online_store
        self._offline_store = offline_store
        self._backoff_base = backoff_base
        self._sleep = sleep
        self._state = ConnectionState()

    @property
    def state(self) -> ConnectionState:
        return self._state

    async def _check(self, store: Any, label: str) -> bool:
        try:
            await store.probe()
        except Exception as e:
            logger.info(f"{label} database connection not available: {e}")
            self._state.error_message = f"{label}: {e}"
            return False
        logger.info(f"{label} database connection available")
        return True

    async def probe(self) -> ConnectivitySnapshot:
        """
        Probe both stores independently. Never raises.

        Returns:
            ConnectivitySnapshot with one flag per store
        """
        self._state.error_message = None
        online, offline = await asyncio.gather(
            self._check(self._online_store, "Online"),
            self._check(self._offline_store, "Offline"),
        )

        self._state.online_available = online
        self._state.offline_available = offline
        self._state.last_check = datetime.now(timezone.utc)

        if online and offline:
            self._state.status = ConnectionStatus.ONLINE
            self._state.consecutive_failures = 0
        elif online or offline:
            self._state.status = ConnectionStatus.DEGRADED
            self._state.consecutive_failures = 0
        else:
            self._state.status = ConnectionStatus.OFFLINE
            self._state.consecutive_failures += 1

        return ConnectivitySnapshot(online=online, offline=offline)

    async def ensure_availability(self, max_retries: int = 3) -> ConnectivitySnapshot:
        """
        Probe until at least one store answers.

        Single-store unavailability is returned, not raised; the caller
        downgrades the run mode.

        Raises:
            ConnectivityError: neither store reachable after max_retries attempts
        """
        for attempt in range(1, max_retries + 1):
            snapshot = await self.probe()

            if snapshot.online or snapshot.offline:
                if not snapshot.offline:
                    logger.warning("Offline database not available. Some operations will be skipped.")
                if not snapshot.online:
                    logger.warning("Online database not available. Running in offline mode.")
                return snapshot

            logger.error(
                f"Connection attempt {attempt} failed: "
                "neither online nor offline database is available"
            )
            if attempt < max_retries:
                await self._sleep(self._backoff_base * 2 ** attempt)

        raise ConnectivityError(
            "Neither online nor offline database connections are available",
            attempts=max_retries,
        )

    def get_status_display(self) -> dict:
        """Get status information for UI display."""
        return {
            "status": self._state.status.value,
            "online": self._state.online_available,
            "offline": self._state.offline_available,
            "last_check": self._state.last_check.isoformat() if self._state.last_check else None,
            "failures": self._state.consecutive_failures,
            "error": self._state.error_message,
        }
