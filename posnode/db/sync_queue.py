"""
POS Node — Sync queue operations

Every locally-owned mutation writes one outbox row through `enqueue`, using the
caller's session so the row commits in the same transaction as the mutation.
The reconciler reads eligible rows and records each outcome with its own short
write; network calls never happen while one of those writes is open.
"""
import json
import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from posnode.core.clock import utcnow
from posnode.models.sync import SyncAction, SyncQueueEntry, SyncStatus

logger = logging.getLogger(__name__)


class SyncEntity(str, Enum):
    ORDER = "order"
    PAYMENT = "payment"
    PRODUCT = "product"
    STAFF = "staff"
    LOG = "log"
    SUNAT_DOCUMENT = "sunat-document"


@dataclass(frozen=True)
class SyncRoute:
    path: str                        # relative to CLOUD_API_URL
    resource: str                    # cloud-side table the entity lands in
    strip: frozenset[str] = frozenset()

    def to_cloud(self, payload: dict, local_id: str, business_id: str, updated_at: datetime) -> dict:
        data = {k: v for k, v in payload.items() if k not in self.strip}
        data["localId"] = local_id
        data["businessId"] = business_id
        data["updatedAt"] = updated_at.isoformat()
        return data


_ALWAYS_STRIPPED = frozenset({"id"})

SYNC_ROUTES: dict[SyncEntity, SyncRoute] = {
    SyncEntity.ORDER: SyncRoute("/sync/order", "orders", _ALWAYS_STRIPPED | {"payments"}),
    SyncEntity.PAYMENT: SyncRoute("/sync/payment", "payments", _ALWAYS_STRIPPED),
    SyncEntity.PRODUCT: SyncRoute("/sync/product", "products", _ALWAYS_STRIPPED | {"comboItems"}),
    SyncEntity.STAFF: SyncRoute("/sync/staff", "staff_users", _ALWAYS_STRIPPED),
    SyncEntity.LOG: SyncRoute("/sync/log", "system_logs", _ALWAYS_STRIPPED),
    SyncEntity.SUNAT_DOCUMENT: SyncRoute("/sync/sunat-document", "sunat_documents", _ALWAYS_STRIPPED),
}

_unrouted = set(SyncEntity) - SYNC_ROUTES.keys()
if _unrouted:
    raise RuntimeError(f"Sync entities without a cloud route: {sorted(e.value for e in _unrouted)}")


async def enqueue(
    db: AsyncSession,
    entity: SyncEntity,
    entity_id: str,
    action: SyncAction,
    payload: dict,
) -> SyncQueueEntry:
    """Add a PENDING outbox row to the caller's open unit of work."""
    entry = SyncQueueEntry(
        entity=entity.value,
        entity_id=entity_id,
        action=action,
        payload=json.dumps(payload, separators=(",", ":")),
        status=SyncStatus.PENDING,
    )
    db.add(entry)
    await db.flush()
    logger.info("Queued %s %s (%s) as entry #%d", entity.value, entity_id, action.value, entry.id)
    return entry


async def eligible_entries(db: AsyncSession) -> list[SyncQueueEntry]:
    """PENDING and FAILED rows, oldest first."""
    result = await db.execute(
        select(SyncQueueEntry)
        .where(SyncQueueEntry.status.in_([SyncStatus.PENDING, SyncStatus.FAILED]))
        .order_by(SyncQueueEntry.id)
    )
    return list(result.scalars().all())


async def mark_synced(db: AsyncSession, entry_id: int) -> None:
    entry = await db.get(SyncQueueEntry, entry_id)
    if entry is None:
        return
    now = utcnow()
    entry.status = SyncStatus.SYNCED
    entry.attempts += 1
    entry.last_error = None
    entry.synced_at = now
    entry.updated_at = now


async def mark_failed(db: AsyncSession, entry_id: int, error: str) -> None:
    entry = await db.get(SyncQueueEntry, entry_id)
    if entry is None:
        return
    if entry.status == SyncStatus.SYNCED:
        # An overlapping pass already delivered it
        return
    entry.status = SyncStatus.FAILED
    entry.attempts += 1
    entry.last_error = error[:2000]
    entry.updated_at = utcnow()


async def entries_for(db: AsyncSession, entity: SyncEntity, entity_id: str) -> list[SyncQueueEntry]:
    result = await db.execute(
        select(SyncQueueEntry)
        .where(SyncQueueEntry.entity == entity.value, SyncQueueEntry.entity_id == entity_id)
        .order_by(SyncQueueEntry.id)
    )
    return list(result.scalars().all())


async def status_counts(db: AsyncSession) -> tuple[dict[SyncStatus, int], datetime | None]:
    """Row count per status and the creation time of the oldest PENDING row."""
    rows = await db.execute(
        select(SyncQueueEntry.status, func.count(SyncQueueEntry.id)).group_by(SyncQueueEntry.status)
    )
    counts = {s: 0 for s in SyncStatus}
    for status, count in rows.all():
        counts[SyncStatus(status)] = count

    oldest = await db.scalar(
        select(func.min(SyncQueueEntry.created_at)).where(SyncQueueEntry.status == SyncStatus.PENDING)
    )
    return counts, oldest
