"""
POS Node — Sync / recovery schemas
"""
from datetime import datetime

from pydantic import Field

from posnode.schemas.base import CamelModel


class LinkRequest(CamelModel):
    business_id: str = Field(..., min_length=1)
    cloud_token: str | None = None


class SyncReportRead(CamelModel):
    processed: int
    synced: int
    failed: int
    aborted: bool
    reason: str | None = None
    finished_at: datetime | None = None


class QueueStatusRead(CamelModel):
    pending: int
    failed: int
    synced: int
    oldest_pending_at: datetime | None = None
    business_linked: bool
    last_pass: SyncReportRead | None = None


class RecoveryReportRead(CamelModel):
    products: int
    staff: int
    skipped: int


class LinkResponse(CamelModel):
    business_id: str
    linked_at: datetime
    recovery: RecoveryReportRead | None = None
    recovery_error: str | None = None
