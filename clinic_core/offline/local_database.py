# =============================================================================
# clinic_core/offline/local_database.py
# Local SQLite Database for Offline Operations
# =============================================================================
"""
LocalDatabase - SQLite store the clinic works against while disconnected.

Features:
- Automatic schema creation for every syncable entity
- CRUD helpers that flag mutated rows as needing sync (sync = 0)
- Dirty-set queries and bulk mark-clean for the sync engine
- Async wrappers so the sync engine can await store calls
- Settings table (holds the last sync report)
"""

from __future__ import annotations
import asyncio
import json
import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional
import logging

import pandas as pd

from clinic_core.errors.exceptions import StoreError

logger = logging.getLogger(__name__)

# SQLite caps bound parameters per statement; stay well below it
MARK_CLEAN_CHUNK = 500

_SYNC_COLUMNS = """
                createdAt TEXT,
                updatedAt TEXT,
                sync INTEGER NOT NULL DEFAULT 0,
                syncedAt TEXT
"""


class LocalDatabase:
    """
    Local SQLite database for offline data storage.

    Mirrors the online schema (minus the ``_online`` table suffix and the
    renamed foreign-key columns) so rows can be pushed upstream as-is.
    """

    DEFAULT_DB_PATH = Path(__file__).parent.parent.parent / "local_data" / "clinic.db"

    SCHEMA = {
        "product": f"""
            CREATE TABLE IF NOT EXISTS product (
                id TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                barcode TEXT,
                category TEXT,
                quantity INTEGER DEFAULT 0,
                costPrice REAL,
                sellingPrice REAL,
                expiryDate TEXT,
                warehousesId TEXT,
                {_SYNC_COLUMNS}
            )
        """,
        "student": f"""
            CREATE TABLE IF NOT EXISTS student (
                id TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                studentNumber TEXT,
                phone TEXT,
                email TEXT,
                balance REAL DEFAULT 0,
                warehousesId TEXT,
                {_SYNC_COLUMNS}
            )
        """,
        "supplier": f"""
            CREATE TABLE IF NOT EXISTS supplier (
                id TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                contactPerson TEXT,
                phone TEXT,
                email TEXT,
                warehousesId TEXT,
                {_SYNC_COLUMNS}
            )
        """,
        "consultation": f"""
            CREATE TABLE IF NOT EXISTS consultation (
                id TEXT PRIMARY KEY,
                invoiceNo TEXT NOT NULL UNIQUE,
                studentId TEXT,
                diagnosis TEXT,
                totalAmount REAL DEFAULT 0,
                paidAmount REAL DEFAULT 0,
                consultationDate TEXT,
                warehousesId TEXT,
                {_SYNC_COLUMNS}
            )
        """,
        "purchase": f"""
            CREATE TABLE IF NOT EXISTS purchase (
                id TEXT PRIMARY KEY,
                referenceNo TEXT NOT NULL UNIQUE,
                supplierId TEXT,
                totalAmount REAL DEFAULT 0,
                purchaseDate TEXT,
                warehousesId TEXT,
                {_SYNC_COLUMNS}
            )
        """,
        "consultationItem": f"""
            CREATE TABLE IF NOT EXISTS consultationItem (
                id TEXT PRIMARY KEY,
                consultationId TEXT,
                studentId TEXT,
                productId TEXT,
                quantity INTEGER DEFAULT 1,
                unitPrice REAL,
                total REAL,
                warehousesId TEXT,
                {_SYNC_COLUMNS}
            )
        """,
        "purchaseItem": f"""
            CREATE TABLE IF NOT EXISTS purchaseItem (
                id TEXT PRIMARY KEY,
                purchaseId TEXT,
                productId TEXT,
                quantity INTEGER DEFAULT 1,
                unitCost REAL,
                total REAL,
                warehousesId TEXT,
                {_SYNC_COLUMNS}
            )
        """,
        "paymentMethod": f"""
            CREATE TABLE IF NOT EXISTS paymentMethod (
                id TEXT PRIMARY KEY,
                consultationId TEXT,
                method TEXT,
                amount REAL,
                warehousesId TEXT,
                {_SYNC_COLUMNS}
            )
        """,
        "balancePayment": f"""
            CREATE TABLE IF NOT EXISTS balancePayment (
                id TEXT PRIMARY KEY,
                studentId TEXT,
                amount REAL,
                method TEXT,
                paidAt TEXT,
                warehousesId TEXT,
                {_SYNC_COLUMNS}
            )
        """,
        "app_settings": """
            CREATE TABLE IF NOT EXISTS app_settings (
                key TEXT PRIMARY KEY,
                value TEXT,
                updated_at TEXT DEFAULT CURRENT_TIMESTAMP
            )
        """,
    }

    def __init__(self, db_path: Optional[Path] = None):
        """
        Initialize local database.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = Path(db_path) if db_path else self.DEFAULT_DB_PATH
        self._ensure_directory()
        self._connection: Optional[sqlite3.Connection] = None
        # One shared connection; async callers reach it from worker threads
        self._lock = threading.RLock()
        self._initialized = False

    def _ensure_directory(self) -> None:
        """Ensure database directory exists."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

    def _get_connection(self) -> sqlite3.Connection:
        if self._connection is None:
            self._connection = sqlite3.connect(
                str(self.db_path),
                check_same_thread=False,
            )
            self._connection.row_factory = sqlite3.Row
        return self._connection

    @contextmanager
    def transaction(self):
        """Context manager for database transactions."""
        with self._lock:
            conn = self._get_connection()
            try:
                yield conn
                conn.commit()
            except Exception:
                conn.rollback()
                raise

    def initialize(self) -> LocalDatabase:
        """Initialize database schema."""
        if self._initialized:
            return self

        with self.transaction() as conn:
            for table_name, schema in self.SCHEMA.items():
                conn.execute(schema)
                logger.debug(f"Created/verified table: {table_name}")

        self._initialized = True
        logger.info(f"Local database initialized at: {self.db_path}")
        return self

    # =========================================================================
    # GENERIC CRUD OPERATIONS
    # =========================================================================

    def insert(self, table: str, data: Dict[str, Any]) -> None:
        """
        Insert a record and flag it as needing sync.

        Args:
            table: Table name
            data: Dictionary of column:value pairs
        """
        now = datetime.now(timezone.utc).isoformat()
        data = data.copy()
        data.setdefault("createdAt", now)
        data["updatedAt"] = now
        data["sync"] = 0
        data["syncedAt"] = None

        columns = ", ".join(data.keys())
        placeholders = ", ".join(["?" for _ in data])

        with self.transaction() as conn:
            conn.execute(
                f"INSERT INTO {table} ({columns}) VALUES ({placeholders})",
                list(data.values())
            )

    def insert_many(self, table: str, records: Iterable[Dict[str, Any]]) -> int:
        """Insert multiple records, all flagged as needing sync."""
        count = 0
        for data in records:
            self.insert(table, data)
            count += 1
        return count

    def update(
        self,
        table: str,
        key: Any,
        data: Dict[str, Any],
        key_field: str = "id"
    ) -> bool:
        """
        Update a record; any mutation flags it as needing sync again.

        Returns:
            True if a row was updated
        """
        data = data.copy()
        data["updatedAt"] = datetime.now(timezone.utc).isoformat()
        data["sync"] = 0

        set_clause = ", ".join([f"{k} = ?" for k in data.keys()])
        values = list(data.values()) + [key]

        with self.transaction() as conn:
            cursor = conn.execute(
                f"UPDATE {table} SET {set_clause} WHERE {key_field} = ?",
                values
            )
            return cursor.rowcount > 0

    def get_by_key(
        self,
        table: str,
        key: Any,
        key_field: str = "id"
    ) -> Optional[Dict[str, Any]]:
        """Get a record by its key column."""
        rows = self.query(f"SELECT * FROM {table} WHERE {key_field} = ?", [key])
        return rows[0] if rows else None

    def get_all(
        self,
        table: str,
        where: Optional[str] = None,
        params: Optional[List] = None,
        order_by: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """Get all records from a table with optional filtering."""
        query = f"SELECT * FROM {table}"

        if where:
            query += f" WHERE {where}"

        if order_by:
            query += f" ORDER BY {order_by}"

        return self.query(query, params)

    def query(self, sql: str, params: Optional[List] = None) -> List[Dict[str, Any]]:
        """Execute a raw SQL query."""
        with self._lock:
            cursor = self._get_connection().execute(sql, params or [])
            return [dict(row) for row in cursor.fetchall()]

    def execute(self, sql: str, params: Optional[List] = None) -> int:
        """Execute a raw SQL statement."""
        with self.transaction() as conn:
            cursor = conn.execute(sql, params or [])
            return cursor.rowcount

    # =========================================================================
    # PANDAS INTEGRATION
    # =========================================================================

    def to_dataframe(
        self,
        table: str,
        where: Optional[str] = None,
        params: Optional[List] = None
    ) -> pd.DataFrame:
        """
        Load a table into a pandas DataFrame.

        Args:
            table: Table name
            where: Optional WHERE clause
            params: Parameters for WHERE clause
        """
        query = f"SELECT * FROM {table}"
        if where:
            query += f" WHERE {where}"

        with self._lock:
            return pd.read_sql_query(query, self._get_connection(), params=params)

    # =========================================================================
    # SYNC BOOKKEEPING
    # =========================================================================

    def ping(self) -> None:
        """Trivial no-op query; raises if the database cannot be reached."""
        self.query("SELECT 1")

    def get_dirty(self, table: str) -> List[Dict[str, Any]]:
        """All rows of a table still waiting to be mirrored online."""
        return self.get_all(table, where="sync = 0")

    def set_clean(
        self,
        table: str,
        keys: List[Any],
        key_field: str = "id",
        synced_at: Optional[datetime] = None,
        versions: Optional[Mapping[Any, Any]] = None,
    ) -> int:
        """
        Flag the given rows as mirrored and stamp syncedAt.

        Args:
            versions: key -> updatedAt the row had when it was read. A row
                whose updatedAt has moved on since then stays dirty.

        Returns:
            Number of rows updated
        """
        if not keys:
            return 0

        stamp = (synced_at or datetime.now(timezone.utc)).isoformat()
        updated = 0

        with self.transaction() as conn:
            if versions is not None:
                cursor = conn.executemany(
                    f"UPDATE {table} SET sync = 1, syncedAt = ? "
                    f"WHERE {key_field} = ? AND updatedAt IS ?",
                    [(stamp, key, versions.get(key)) for key in keys]
                )
                return cursor.rowcount

            for start in range(0, len(keys), MARK_CLEAN_CHUNK):
                chunk = keys[start:start + MARK_CLEAN_CHUNK]
                placeholders = ", ".join(["?" for _ in chunk])
                cursor = conn.execute(
                    f"UPDATE {table} SET sync = 1, syncedAt = ? "
                    f"WHERE {key_field} IN ({placeholders})",
                    [stamp, *chunk]
                )
                updated += cursor.rowcount

        return updated

    def get_pending_counts(self, tables: Iterable[str]) -> Dict[str, int]:
        """Number of dirty rows per table."""
        counts = {}
        for table in tables:
            result = self.query(f"SELECT COUNT(*) AS count FROM {table} WHERE sync = 0")
            counts[table] = result[0]["count"] if result else 0
        return counts

    # =========================================================================
    # ASYNC STORE INTERFACE (used by the sync engine)
    # =========================================================================

    async def probe(self) -> None:
        await asyncio.to_thread(self.ping)

    async def find_dirty(self, table: str) -> List[Dict[str, Any]]:
        try:
            return await asyncio.to_thread(self.get_dirty, table)
        except sqlite3.Error as e:
            raise StoreError(f"Could not read dirty rows: {e}", store="offline", table=table) from e

    async def mark_clean(
        self,
        table: str,
        keys: List[Any],
        key_field: str = "id",
        synced_at: Optional[datetime] = None,
        versions: Optional[Mapping[Any, Any]] = None,
    ) -> int:
        try:
            return await asyncio.to_thread(
                self.set_clean, table, keys, key_field, synced_at, versions
            )
        except sqlite3.Error as e:
            raise StoreError(f"Could not mark rows clean: {e}", store="offline", table=table) from e

    # =========================================================================
    # SETTINGS
    # =========================================================================

    def get_setting(self, key: str, default: Any = None) -> Any:
        """Get an app setting."""
        result = self.query(
            "SELECT value FROM app_settings WHERE key = ?",
            [key]
        )
        if result:
            try:
                return json.loads(result[0]["value"])
            except json.JSONDecodeError:
                return result[0]["value"]
        return default

    def set_setting(self, key: str, value: Any) -> None:
        """Set an app setting."""
        value_str = json.dumps(value) if not isinstance(value, str) else value
        self.execute(
            """
            INSERT OR REPLACE INTO app_settings (key, value, updated_at)
            VALUES (?, ?, ?)
            """,
            [key, value_str, datetime.now(timezone.utc).isoformat()]
        )

    def close(self) -> None:
        """Close database connection."""
        with self._lock:
            if self._connection is not None:
                self._connection.close()
                self._connection = None
