"""
POS Node — Order event publishing

Monitor screens follow order activity through a Redis pub/sub channel.
Publishing happens after the order transaction committed and is best-effort:
a failure here MUST NOT affect the order.
"""
import json
import logging

from redis.exceptions import RedisError

from posnode.core.config import get_settings
from posnode.core.redis_client import get_redis

settings = get_settings()
logger = logging.getLogger(__name__)

ORDER_CREATED = "order_created"
ORDER_UPDATED = "order_updated"
ORDER_COMPLETED = "order_completed"
ORDER_CANCELLED = "order_cancelled"


async def publish_event(event: str, data: dict) -> bool:
    if not settings.EVENTS_ENABLED:
        return False
    message = json.dumps({"event": event, "data": data})
    try:
        await get_redis().publish(settings.EVENTS_CHANNEL, message)
    except (RedisError, OSError) as exc:
        logger.warning("Could not publish %s event: %s", event, exc)
        return False
    return True
