"""
POS Node — Catalog push (local products and staff → cloud)

The reverse of recovery: the whole local catalog is posted to the cloud's
recovery endpoint so a replacement device can be hydrated from it. Runs on a
slower cadence than the sync queue and is best-effort; a failure is logged and
the next push sends everything again.
"""
import logging

import httpx
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from posnode.core.cloud_client import build_cloud_client, cloud_headers
from posnode.db.link_ops import get_business_link
from posnode.models.catalog import Product, StaffUser
from posnode.schemas.product import ProductRead, StaffUserRead

logger = logging.getLogger(__name__)

CATALOG_PUSH_PATH = "/recovery/sync"


async def catalog_snapshot(db: AsyncSession) -> dict:
    products = (await db.execute(select(Product).order_by(Product.name))).scalars().all()
    staff = (await db.execute(select(StaffUser).order_by(StaffUser.name))).scalars().all()
    return {
        "products": [ProductRead.model_validate(p).snapshot() for p in products],
        "staffUsers": [StaffUserRead.model_validate(u).snapshot() for u in staff],
    }


async def push_catalog(
    session_factory: async_sessionmaker[AsyncSession],
    transport: httpx.AsyncBaseTransport | None = None,
) -> bool:
    """Post every product and staff user to the cloud. Returns True when the cloud accepted it."""
    async with session_factory() as db:
        link = await get_business_link(db)
        if link is None or not link.cloud_token:
            logger.debug("Catalog push skipped: device not linked with a cloud token")
            return False
        body = await catalog_snapshot(db)
        await db.rollback()

    try:
        async with build_cloud_client(transport) as client:
            response = await client.post(
                CATALOG_PUSH_PATH,
                json=body,
                headers=cloud_headers(link.business_id, link.cloud_token),
            )
    except httpx.HTTPError as exc:
        logger.warning("Catalog push to cloud failed: %r", exc)
        return False

    if not response.is_success:
        logger.warning("Catalog push rejected with HTTP %d", response.status_code)
        return False

    logger.info("Pushed %d products and %d staff users to the cloud",
                len(body["products"]), len(body["staffUsers"]))
    return True
