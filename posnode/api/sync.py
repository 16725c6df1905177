"""
POS Node — Sync API

  POST /sync/run      run one reconciliation pass now and report it
  POST /sync/catalog  push all local products and staff to the cloud
  POST /sync/online   connectivity restored; wake the background scheduler
  GET  /sync/status   pending / failed / synced counts for diagnostics
  POST /sync/link     link this device to a business (hydrates on first link)
  POST /sync/recover  pull products and staff from the cloud on demand
"""
import logging

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from posnode.api.deps import get_db, get_reconciler, get_scheduler, raise_http
from posnode.core.errors import PosError
from posnode.db import link_ops, sync_queue
from posnode.models.sync import SyncStatus
from posnode.schemas.sync import (
    LinkRequest,
    LinkResponse,
    QueueStatusRead,
    RecoveryReportRead,
    SyncReportRead,
)
from posnode.tasks.catalog_push import push_catalog
from posnode.tasks.reconcile import Reconciler
from posnode.tasks.recovery import recover_from_cloud
from posnode.tasks.scheduler import SyncScheduler

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/sync", tags=["sync"])


@router.post("/run", response_model=SyncReportRead)
async def run_sync(reconciler: Reconciler = Depends(get_reconciler)):
    report = await reconciler.run_pass()
    return SyncReportRead.model_validate(report)


@router.post("/catalog")
async def sync_catalog(request: Request):
    pushed = await push_catalog(request.app.state.session_factory, request.app.state.cloud_transport)
    return {"pushed": pushed}


@router.post("/online")
async def connectivity_restored(
    reconciler: Reconciler = Depends(get_reconciler),
    scheduler: SyncScheduler | None = Depends(get_scheduler),
):
    if scheduler is not None and scheduler.running:
        scheduler.trigger("connectivity restored")
        return {"triggered": True, "report": None}
    report = await reconciler.run_pass()
    return {"triggered": True, "report": SyncReportRead.model_validate(report).snapshot()}


@router.get("/status", response_model=QueueStatusRead)
async def sync_status(db: AsyncSession = Depends(get_db), reconciler: Reconciler = Depends(get_reconciler)):
    counts, oldest = await sync_queue.status_counts(db)
    link = await link_ops.get_business_link(db)
    last = reconciler.last_report
    return QueueStatusRead(
        pending=counts[SyncStatus.PENDING],
        failed=counts[SyncStatus.FAILED],
        synced=counts[SyncStatus.SYNCED],
        oldest_pending_at=oldest,
        business_linked=link is not None,
        last_pass=SyncReportRead.model_validate(last) if last else None,
    )


@router.post("/link", response_model=LinkResponse)
async def link_business(payload: LinkRequest, request: Request, db: AsyncSession = Depends(get_db)):
    """Link the device; the first link to a business hydrates products and staff."""
    config, is_new = await link_ops.link_business(db, payload.business_id, payload.cloud_token)
    response = LinkResponse(business_id=config.business_id, linked_at=config.linked_at)

    if is_new:
        try:
            report = await recover_from_cloud(request.app.state.session_factory, request.app.state.cloud_transport)
            response.recovery = RecoveryReportRead.model_validate(report)
        except PosError as exc:
            logger.warning("Linked to %s but recovery failed: %s", payload.business_id, exc)
            response.recovery_error = str(exc)
    return response


@router.post("/recover", response_model=RecoveryReportRead)
async def recover(request: Request):
    try:
        report = await recover_from_cloud(request.app.state.session_factory, request.app.state.cloud_transport)
    except PosError as exc:
        raise_http(exc)
    return RecoveryReportRead.model_validate(report)
