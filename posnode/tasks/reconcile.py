"""
POS Node — Reconciliation engine (sync queue → cloud replica)

One pass:
  1. Read the business linkage; without it nothing can be addressed → abort.
  2. Snapshot PENDING + FAILED entries in creation order, then close the read.
  3. For each entry POST /sync/{entity} {localId, action, data}; the cloud
     upserts on (businessId, localId), so replaying an entry is harmless.
  4. Record SYNCED, or FAILED + lastError, in a short write per entry.

Passes may overlap (timer tick while a "sync now" pass is running). Both may
push the same entry; the remote upsert makes that safe and a late FAILED never
overwrites SYNCED. There is no retry cap: FAILED entries go out every pass.
"""
import asyncio
import json
import logging
from dataclasses import dataclass
from datetime import datetime

import httpx
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from posnode.core.clock import utcnow
from posnode.core.cloud_client import build_cloud_client, cloud_headers
from posnode.core.config import get_settings
from posnode.db.database import serialized_write
from posnode.db.link_ops import BusinessLink, get_business_link
from posnode.db.sync_queue import SYNC_ROUTES, SyncEntity, eligible_entries, mark_failed, mark_synced
from posnode.models.sync import SyncAction

settings = get_settings()
logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class _Outbound:
    entry_id: int
    entity: str
    entity_id: str
    action: SyncAction
    payload: str


@dataclass
class SyncReport:
    processed: int = 0
    synced: int = 0
    failed: int = 0
    aborted: bool = False
    reason: str | None = None
    finished_at: datetime | None = None


class Reconciler:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._session_factory = session_factory
        self._transport = transport
        self.last_report: SyncReport | None = None

    async def run_pass(self) -> SyncReport:
        report = SyncReport()

        async with self._session_factory() as db:
            link = await get_business_link(db)
            batch = []
            if link is not None:
                batch = [
                    _Outbound(e.id, e.entity, e.entity_id, e.action, e.payload)
                    for e in await eligible_entries(db)
                ]
            await db.rollback()

            if link is None:
                logger.info("No business linked to this device; skipping sync pass")
                report.aborted = True
                report.reason = "business not linked"
                return self._finish(report)

            if batch:
                logger.info("Sync pass: %d entr%s to push", len(batch), "y" if len(batch) == 1 else "ies")

            async with build_cloud_client(self._transport) as client:
                for outbound in batch:
                    error = await self._push(client, link, outbound)
                    async with serialized_write(db):
                        if error is None:
                            await mark_synced(db, outbound.entry_id)
                        else:
                            await mark_failed(db, outbound.entry_id, error)
                    report.processed += 1
                    if error is None:
                        report.synced += 1
                    else:
                        report.failed += 1
                        logger.warning("Sync of %s %s (%s) failed: %s",
                                       outbound.entity, outbound.entity_id, outbound.action.value, error)

        return self._finish(report)

    def _finish(self, report: SyncReport) -> SyncReport:
        report.finished_at = utcnow()
        self.last_report = report
        if report.processed:
            logger.info("Sync pass done: %d synced, %d failed", report.synced, report.failed)
        return report

    async def _push(self, client: httpx.AsyncClient, link: BusinessLink, outbound: _Outbound) -> str | None:
        """Send one entry. Returns None on success, otherwise the error to record."""
        try:
            entity = SyncEntity(outbound.entity)
        except ValueError:
            return f"unknown entity type '{outbound.entity}'"
        route = SYNC_ROUTES[entity]

        if outbound.action == SyncAction.DELETE:
            data = {"localId": outbound.entity_id, "businessId": link.business_id}
        else:
            try:
                payload = json.loads(outbound.payload)
            except ValueError as exc:
                return f"corrupt payload: {exc}"
            data = route.to_cloud(payload, outbound.entity_id, link.business_id, utcnow())

        body = {"localId": outbound.entity_id, "action": outbound.action.value, "data": data}
        try:
            response = await asyncio.wait_for(
                client.post(route.path, json=body, headers=cloud_headers(link.business_id, link.cloud_token)),
                timeout=settings.CLOUD_HTTP_TIMEOUT_SECONDS,
            )
        except (httpx.TimeoutException, asyncio.TimeoutError) as exc:
            return f"timeout: {exc!r}"
        except httpx.HTTPError as exc:
            return f"transport error: {exc!r}"

        try:
            result = response.json()
        except ValueError:
            result = {}
        if not isinstance(result, dict):
            result = {}

        if response.is_success and result.get("success", True) is not False and not result.get("error"):
            logger.debug("Synced %s %s → %s", entity.value, outbound.entity_id, route.resource)
            return None
        return str(result.get("error") or f"HTTP {response.status_code}")
