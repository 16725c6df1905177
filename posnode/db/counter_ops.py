"""
POS Node — Per-day sequential order ids

Format: <DayPrefix>-<6-digit sequence>, e.g. JU-000001. The sequence lives in
order_counters, one row per local calendar date, and is bumped with a single
atomic upsert so two concurrent orders can never read the same count.
"""
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from posnode.core.clock import store_now
from posnode.models.order import Order, OrderCounter

# Indexed by datetime.weekday(): Monday == 0
DAY_PREFIXES = ("LU", "MA", "MI", "JU", "VI", "SA", "DO")


def day_prefix(moment: datetime) -> str:
    return DAY_PREFIXES[moment.weekday()]


def format_order_id(moment: datetime, sequence: int) -> str:
    return f"{day_prefix(moment)}-{sequence:06d}"


async def _bump(db: AsyncSession, date_key: str) -> int:
    stmt = sqlite_insert(OrderCounter).values(date=date_key, count=1)
    stmt = stmt.on_conflict_do_update(
        index_elements=[OrderCounter.date],
        set_={"count": OrderCounter.count + 1},
    ).returning(OrderCounter.count)
    return (await db.execute(stmt)).scalar_one()


async def next_order_id(db: AsyncSession, now: datetime | None = None) -> str:
    """
    Hand out the next id for today. Runs inside the caller's write unit of work.

    If the formatted id is already taken (counter row restored from an older
    backup), keep bumping until a free id comes up.
    """
    moment = now or store_now()
    date_key = moment.strftime("%Y-%m-%d")

    while True:
        custom_id = format_order_id(moment, await _bump(db, date_key))
        taken = await db.scalar(select(Order.id).where(Order.custom_id == custom_id))
        if taken is None:
            return custom_id
