# =============================================================================
# clinic_core/offline/sync_descriptors.py
# Entity Sync Descriptor Table
# =============================================================================
"""
Static description of every entity type pushed from the offline database to
the online database.

Each descriptor names the source and target tables, the natural key the
online upsert is keyed on, the dependency rank (lower ranks sync first so
foreign-key targets exist before the rows that reference them) and the
field-remapping rule that turns an offline row into an online payload.
"""

from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, List, Mapping, Tuple

from clinic_core.errors.exceptions import ConfigurationError

Record = Dict[str, Any]
RemapRule = Callable[[Record], Record]

# Columns that only carry offline bookkeeping and never travel as-is
SYNC_FLAG_FIELD = "sync"
SYNCED_AT_FIELD = "syncedAt"
UPDATED_AT_FIELD = "updatedAt"

DEFAULT_CONCURRENCY = 2


def identity(record: Record) -> Record:
    """Remapping rule for entities whose columns match on both sides."""
    return dict(record)


def rename_fields(renames: Mapping[str, str]) -> RemapRule:
    """
    Build a remapping rule that renames offline foreign-key columns.

    Example:
        rule = rename_fields({"warehousesId": "warehouses_onlineId"})
        rule({"id": "p1", "warehousesId": "w1"})
        # {"id": "p1", "warehouses_onlineId": "w1"}
    """
    renames = dict(renames)

    def remap(record: Record) -> Record:
        payload = {}
        for column, value in record.items():
            payload[renames.get(column, column)] = value
        return payload

    remap.renames = renames
    return remap


@dataclass(frozen=True)
class EntitySyncDescriptor:
    """Per-entity sync configuration."""
    entity: str
    rank: int
    source_table: str
    target_table: str
    key_field: str = "id"
    remap: RemapRule = identity
    concurrency: int = DEFAULT_CONCURRENCY

    def __post_init__(self):
        if not isinstance(self.concurrency, int) or self.concurrency < 1:
            raise ConfigurationError(
                f"{self.entity}: concurrency must be a positive integer, got {self.concurrency!r}",
                config_key="concurrency",
                expected_type="int >= 1",
            )

    def natural_key(self, record: Record) -> Any:
        """Value the online upsert is keyed on (also used to mark the row clean)."""
        return record[self.key_field]

    def build_payload(self, record: Record, synced_at: datetime) -> Record:
        """
        Produce the online-shaped payload for one offline row.

        The offline row is never modified; the payload carries the
        remapped foreign keys plus the online sync stamp.
        """
        payload = self.remap(dict(record))
        payload[SYNCED_AT_FIELD] = synced_at.isoformat()
        payload[SYNC_FLAG_FIELD] = True
        return payload


# =============================================================================
# DESCRIPTOR TABLE
# =============================================================================

SYNC_DESCRIPTORS: Tuple[EntitySyncDescriptor, ...] = (
    EntitySyncDescriptor(
        entity="products",
        rank=0,
        source_table="product",
        target_table="product_online",
        remap=rename_fields({"warehousesId": "warehouses_onlineId"}),
    ),
    EntitySyncDescriptor(
        entity="student",
        rank=0,
        source_table="student",
        target_table="student_online",
    ),
    EntitySyncDescriptor(
        entity="suppliers",
        rank=0,
        source_table="supplier",
        target_table="supplier_online",
        remap=rename_fields({"warehousesId": "warehouses_onlineId"}),
    ),
    EntitySyncDescriptor(
        entity="consultation",
        rank=1,
        source_table="consultation",
        target_table="consultation_online",
        key_field="invoiceNo",
    ),
    EntitySyncDescriptor(
        entity="purchases",
        rank=1,
        source_table="purchase",
        target_table="purchase_online",
        key_field="referenceNo",
        remap=rename_fields({
            "warehousesId": "warehouses_onlineId",
            "supplierId": "supplier_onlineId",
        }),
    ),
    EntitySyncDescriptor(
        entity="consultationItems",
        rank=2,
        source_table="consultationItem",
        target_table="consultationItem_online",
    ),
    EntitySyncDescriptor(
        entity="purchaseItems",
        rank=2,
        source_table="purchaseItem",
        target_table="purchaseItem_online",
        remap=rename_fields({
            "warehousesId": "warehouses_onlineId",
            "purchaseId": "purchase_onlineId",
            "productId": "product_onlineId",
        }),
    ),
    EntitySyncDescriptor(
        entity="paymentMethods",
        rank=2,
        source_table="paymentMethod",
        target_table="paymentMethod_online",
        remap=rename_fields({
            "warehousesId": "warehouses_onlineId",
            "consultationId": "consultation_onlineId",
        }),
    ),
    EntitySyncDescriptor(
        entity="balancePayment",
        rank=2,
        source_table="balancePayment",
        target_table="balancePayment_online",
        remap=rename_fields({
            "warehousesId": "warehouses_onlineId",
            "studentId": "student_onlineId",
        }),
    ),
)


def ordered_descriptors(
    descriptors: Tuple[EntitySyncDescriptor, ...] = SYNC_DESCRIPTORS,
) -> List[EntitySyncDescriptor]:
    """Descriptors in ascending dependency rank; table order breaks ties."""
    return sorted(descriptors, key=lambda d: d.rank)


def get_descriptor(entity: str) -> EntitySyncDescriptor:
    for descriptor in SYNC_DESCRIPTORS:
        if descriptor.entity == entity:
            return descriptor
    raise KeyError(f"No sync descriptor for entity: {entity}")
