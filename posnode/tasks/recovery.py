"""
POS Node — Cold-start hydration from the cloud

Pulls the business' products and staff and upserts them into the local store,
keyed by the cloud record's own id (`localId`, falling back to `id`). This is
the only direction in which the cloud is the source; orders and payments are
never pulled back. Nothing written here is queued for upload.
"""
import logging
from dataclasses import dataclass

import httpx
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from posnode.core.cloud_client import build_cloud_client, cloud_headers
from posnode.core.errors import BusinessNotLinked, RecoveryError
from posnode.db.database import serialized_write
from posnode.db.link_ops import get_business_link, mark_recovered
from posnode.models.catalog import Product, StaffUser

logger = logging.getLogger(__name__)

RECOVERY_PATH = "/recovery"

_PRODUCT_FIELDS = {
    "name": "name",
    "price": "price",
    "category": "category",
    "stock": "stock",
    "isCommissionable": "is_commissionable",
    "commissionPercentage": "commission_percentage",
    "isCombo": "is_combo",
}
_STAFF_FIELDS = {"name": "name", "role": "role", "pin": "pin", "status": "status"}


@dataclass
class RecoveryReport:
    products: int = 0
    staff: int = 0
    skipped: int = 0


def _record_key(record: dict) -> str | None:
    key = record.get("localId") or record.get("id")
    return str(key) if key else None


async def _upsert(db: AsyncSession, model, key: str, record: dict, fields: dict[str, str]) -> None:
    row = await db.get(model, key)
    if row is None:
        row = model(id=key)
        db.add(row)
    for cloud_name, attr in fields.items():
        value = record.get(cloud_name)
        if value is not None:
            setattr(row, attr, value)
    if row.name is None:
        row.name = key


async def fetch_snapshot(client: httpx.AsyncClient, business_id: str, cloud_token: str | None) -> dict:
    try:
        response = await client.get(RECOVERY_PATH, headers=cloud_headers(business_id, cloud_token))
    except httpx.HTTPError as exc:
        raise RecoveryError(f"Cloud unreachable: {exc!r}") from exc

    try:
        body = response.json()
    except ValueError:
        body = {}
    if not response.is_success:
        detail = body.get("error") if isinstance(body, dict) else None
        raise RecoveryError(detail or f"Recovery request failed with HTTP {response.status_code}")
    if not isinstance(body, dict) or not isinstance(body.get("data"), dict):
        raise RecoveryError("Recovery response has no data")
    return body["data"]


async def recover_from_cloud(
    session_factory: async_sessionmaker[AsyncSession],
    transport: httpx.AsyncBaseTransport | None = None,
) -> RecoveryReport:
    async with session_factory() as db:
        link = await get_business_link(db)
        await db.rollback()
        if link is None:
            raise BusinessNotLinked("Link a business account before recovering data")

        logger.info("Starting data recovery for business %s", link.business_id)
        async with build_cloud_client(transport) as client:
            data = await fetch_snapshot(client, link.business_id, link.cloud_token)

        report = RecoveryReport()
        async with serialized_write(db):
            for record in data.get("products") or []:
                key = _record_key(record)
                if key is None:
                    logger.warning("Skipping cloud product without id: %s", record.get("name"))
                    report.skipped += 1
                    continue
                await _upsert(db, Product, key, record, _PRODUCT_FIELDS)
                report.products += 1

            for record in data.get("staffUsers") or []:
                key = _record_key(record)
                if key is None:
                    logger.warning("Skipping cloud staff user without id: %s", record.get("name"))
                    report.skipped += 1
                    continue
                await _upsert(db, StaffUser, key, record, _STAFF_FIELDS)
                report.staff += 1

        await mark_recovered(db)

    logger.info("Data recovery completed: %d products, %d staff, %d skipped",
                report.products, report.staff, report.skipped)
    return report
