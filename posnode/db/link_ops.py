"""
POS Node — Business linkage (single SystemConfig row)
"""
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession

from posnode.core.clock import utcnow
from posnode.db.database import serialized_write
from posnode.models.sync import SystemConfig

CONFIG_ROW_ID = "default"


@dataclass(frozen=True)
class BusinessLink:
    business_id: str
    cloud_token: str | None


async def get_business_link(db: AsyncSession) -> BusinessLink | None:
    config = await db.get(SystemConfig, CONFIG_ROW_ID, populate_existing=True)
    if config is None or not config.business_id:
        return None
    return BusinessLink(business_id=config.business_id, cloud_token=config.cloud_token)


async def link_business(db: AsyncSession, business_id: str, cloud_token: str | None) -> tuple[SystemConfig, bool]:
    """
    Store the business account this device reports to.

    Returns the config row and whether this is a new linkage (first link, or a
    different business), which is when the device should hydrate from the cloud.
    """
    async with serialized_write(db):
        config = await db.get(SystemConfig, CONFIG_ROW_ID, populate_existing=True)
        if config is None:
            config = SystemConfig(id=CONFIG_ROW_ID)
            db.add(config)
        is_new = config.business_id != business_id or config.recovered_at is None
        config.business_id = business_id
        config.cloud_token = cloud_token
        config.linked_at = utcnow()
    return config, is_new


async def mark_recovered(db: AsyncSession) -> None:
    async with serialized_write(db):
        config = await db.get(SystemConfig, CONFIG_ROW_ID, populate_existing=True)
        if config is not None:
            config.recovered_at = utcnow()
