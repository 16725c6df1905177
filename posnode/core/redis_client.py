"""
POS Node — Redis side channel (order event fan-out + idempotency keys)

The local store never depends on redis; callers treat a connection error as
"side channel unavailable" and carry on.
"""
import logging

import redis.asyncio as aioredis
from redis.asyncio.client import PubSub

from posnode.core.config import get_settings

settings = get_settings()
logger = logging.getLogger(__name__)

_redis_client: aioredis.Redis | None = None


def get_redis() -> aioredis.Redis:
    global _redis_client
    if _redis_client is None:
        logger.debug("Connecting side channel at %s", settings.redis_url)
        _redis_client = aioredis.from_url(
            settings.redis_url,
            decode_responses=True,
            socket_connect_timeout=settings.HEALTH_CHECK_TIMEOUT,
        )
    return _redis_client


async def subscribe_events() -> PubSub:
    """Pub/sub handle already subscribed to the order events channel (one per monitor stream)."""
    pubsub = get_redis().pubsub()
    await pubsub.subscribe(settings.EVENTS_CHANNEL)
    return pubsub


async def close_redis() -> None:
    global _redis_client
    if _redis_client is not None:
        await _redis_client.aclose()
        _redis_client = None
