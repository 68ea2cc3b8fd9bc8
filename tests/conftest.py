# =============================================================================
# tests/conftest.py
# Pytest Configuration and Fixtures
# =============================================================================

import asyncio
from typing import Any, Dict, List, Optional, Set

import pytest

from clinic_core.offline import (
    ConnectionManager,
    EntitySyncer,
    LocalDatabase,
    SyncEngine,
)


# =============================================================================
# FAKE STORES
# =============================================================================

class FakeOnlineDatabase:
    """
    In-memory stand-in for the Supabase target store.

    Rows are kept per table, keyed by the natural key, so repeated upserts
    of the same record overwrite rather than duplicate.
    """

    def __init__(self):
        self.tables: Dict[str, Dict[Any, Dict[str, Any]]] = {}
        self.calls: List[tuple] = []
        self.reachable = True
        self.fail_keys: Set[Any] = set()
        self.flaky: Dict[Any, int] = {}
        self.gate: Optional[asyncio.Event] = None
        self.in_flight = 0
        self.max_in_flight = 0

    async def probe(self) -> None:
        if not self.reachable:
            raise ConnectionError("online database unreachable")

    async def upsert(self, table: str, key_field: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        key = payload[key_field]
        self.calls.append((table, key))
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.gate is not None:
                await self.gate.wait()
            # Yield so pooled workers interleave
            await asyncio.sleep(0)

            if key in self.fail_keys:
                raise RuntimeError(f"foreign key violation for {key}")
            if self.flaky.get(key, 0) > 0:
                self.flaky[key] -= 1
                raise TimeoutError("upstream timeout")

            self.tables.setdefault(table, {})[key] = dict(payload)
            return payload
        finally:
            self.in_flight -= 1

    def rows(self, table: str) -> Dict[Any, Dict[str, Any]]:
        return self.tables.get(table, {})


class StubStore:
    """Store that only answers reachability checks."""

    def __init__(self, reachable: bool = True, name: str = "store"):
        self.reachable = reachable
        self.name = name
        self.probes = 0

    async def probe(self) -> None:
        self.probes += 1
        if not self.reachable:
            raise ConnectionError(f"{self.name} unreachable")


class RecordingSleep:
    """Awaitable sleep replacement that records requested delays."""

    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


# =============================================================================
# STORE FIXTURES
# =============================================================================

@pytest.fixture
def local_db(tmp_path):
    """Initialized SQLite offline database in a temp directory"""
    db = LocalDatabase(tmp_path / "clinic.db").initialize()
    yield db
    db.close()


@pytest.fixture
def online_db():
    """In-memory online database"""
    return FakeOnlineDatabase()


@pytest.fixture
def stub_store():
    """Factory for probe-only stores"""
    return StubStore


@pytest.fixture
def recording_sleep():
    return RecordingSleep()


@pytest.fixture
def make_syncer(local_db, online_db, recording_sleep):
    """Factory for an EntitySyncer over the test stores with no real delays"""
    def _make(source=None, target=None, upsert_retries: int = 2) -> EntitySyncer:
        return EntitySyncer(
            source=source or local_db,
            target=target or online_db,
            upsert_retries=upsert_retries,
            retry_delay=0,
            sleep=recording_sleep,
        )
    return _make


@pytest.fixture
def make_engine(local_db, online_db, make_syncer, recording_sleep):
    """
    Factory for a SyncEngine.

    offline_reachable=False swaps the offline probe for an unreachable stub;
    online reachability is controlled through online_db.reachable.
    """
    def _make(
        offline_reachable: bool = True,
        source=None,
        descriptors=None,
        persist: bool = True,
    ) -> SyncEngine:
        offline_probe = local_db if offline_reachable else StubStore(False, "offline")
        manager = ConnectionManager(
            online_store=online_db,
            offline_store=offline_probe,
            backoff_base=1.0,
            sleep=recording_sleep,
        )
        kwargs = {}
        if descriptors is not None:
            kwargs["descriptors"] = descriptors
        return SyncEngine(
            manager,
            make_syncer(source=source),
            connect_retries=3,
            settings_store=local_db if persist else None,
            **kwargs,
        )
    return _make


# =============================================================================
# SAMPLE DATA FIXTURES
# =============================================================================

@pytest.fixture
def sample_products():
    """Three products captured offline in warehouse w1"""
    return [
        {"id": "p1", "name": "Paracetamol 500mg", "quantity": 120, "sellingPrice": 2.5, "warehousesId": "w1"},
        {"id": "p2", "name": "Amoxicillin 250mg", "quantity": 40, "sellingPrice": 6.0, "warehousesId": "w1"},
        {"id": "p3", "name": "ORS Sachet", "quantity": 300, "sellingPrice": 0.8, "warehousesId": "w1"},
    ]


@pytest.fixture
def seeded_clinic(local_db, sample_products):
    """Offline database holding one of each dependent record type"""
    local_db.insert_many("product", sample_products)
    local_db.insert("student", {"id": "s1", "name": "Amina Yusuf", "studentNumber": "ST-001", "warehousesId": "w1"})
    local_db.insert("supplier", {"id": "sup1", "name": "MedSupply Ltd", "warehousesId": "w1"})
    local_db.insert("consultation", {
        "id": "c1", "invoiceNo": "INV-0001", "studentId": "s1",
        "totalAmount": 8.5, "paidAmount": 8.5, "warehousesId": "w1",
    })
    local_db.insert("purchase", {
        "id": "pu1", "referenceNo": "PO-0001", "supplierId": "sup1",
        "totalAmount": 240.0, "warehousesId": "w1",
    })
    local_db.insert("consultationItem", {
        "id": "ci1", "consultationId": "c1", "studentId": "s1", "productId": "p1",
        "quantity": 2, "unitPrice": 2.5, "total": 5.0, "warehousesId": "w1",
    })
    local_db.insert("purchaseItem", {
        "id": "pi1", "purchaseId": "pu1", "productId": "p2",
        "quantity": 40, "unitCost": 6.0, "total": 240.0, "warehousesId": "w1",
    })
    local_db.insert("paymentMethod", {
        "id": "pm1", "consultationId": "c1", "method": "cash", "amount": 8.5, "warehousesId": "w1",
    })
    local_db.insert("balancePayment", {
        "id": "bp1", "studentId": "s1", "amount": 20.0, "method": "mobile", "warehousesId": "w1",
    })
    return local_db
