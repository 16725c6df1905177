"""
POS Node — Health endpoint

The local store is the only hard dependency. Redis is reported but a device
without it is still healthy (it only loses monitor events and replay caching),
and an unsynced backlog is reported, never fatal: the node is built to run
offline.
"""
import asyncio
import logging

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from redis.exceptions import RedisError
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from posnode.core.config import get_settings
from posnode.core.redis_client import get_redis
from posnode.db.sync_queue import status_counts
from posnode.models.sync import SyncStatus

settings = get_settings()
logger = logging.getLogger(__name__)
router = APIRouter(tags=["health"])


async def _probe_store(request: Request) -> dict:
    async with request.app.state.session_factory() as session:
        await asyncio.wait_for(session.execute(text("SELECT 1")), timeout=settings.HEALTH_CHECK_TIMEOUT)
        counts, _ = await status_counts(session)
    return {"pending": counts[SyncStatus.PENDING], "failed": counts[SyncStatus.FAILED]}


@router.get("/health")
async def health_check(request: Request):
    deps: dict[str, str] = {}
    backlog = None

    try:
        backlog = await _probe_store(request)
        deps["sqlite"] = "ok"
    except (SQLAlchemyError, OSError, asyncio.TimeoutError) as exc:
        logger.error("Local store health probe failed: %s", exc)
        deps["sqlite"] = f"error: {str(exc)[:100]}"

    try:
        await asyncio.wait_for(get_redis().ping(), timeout=settings.HEALTH_CHECK_TIMEOUT)
        deps["redis"] = "ok"
    except (RedisError, OSError, asyncio.TimeoutError) as exc:
        deps["redis"] = f"unavailable: {str(exc)[:100]}"

    healthy = deps["sqlite"] == "ok"
    return JSONResponse(
        content={
            "status": "healthy" if healthy else "degraded",
            "service": settings.SERVICE_NAME,
            "version": settings.SERVICE_VERSION,
            "dependencies": deps,
            "syncBacklog": backlog,
        },
        status_code=200 if healthy else 503,
    )
