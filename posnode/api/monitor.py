"""
POS Node — Monitor screens (SSE over Redis pub/sub)

Order mutations publish to the events channel after they commit; kitchen/bar
monitors keep an EventSource open here and receive every order event.
"""
import asyncio
import json
import logging
import uuid
from typing import AsyncGenerator

from fastapi import APIRouter, Request
from fastapi.responses import StreamingResponse

from posnode.core.config import get_settings
from posnode.core.redis_client import subscribe_events

settings = get_settings()
logger = logging.getLogger(__name__)
router = APIRouter(prefix="/monitor", tags=["monitor"])


async def _sse_generator(request: Request) -> AsyncGenerator[str, None]:
    client_id = uuid.uuid4().hex[:8]
    pubsub = await subscribe_events()
    logger.info("Monitor %s connected", client_id)

    try:
        yield f"data: {json.dumps({'connected': True, 'clientId': client_id})}\n\n"
        yield f"retry: {settings.SSE_RETRY_MILLISECONDS}\n\n"

        loop = asyncio.get_running_loop()
        last_sent = loop.time()
        while True:
            if await request.is_disconnected():
                break

            message = await pubsub.get_message(ignore_subscribe_messages=True, timeout=1.0)
            if message and message["type"] == "message":
                try:
                    envelope = json.loads(message["data"])
                except ValueError:
                    logger.warning("Dropping malformed event on %s", settings.EVENTS_CHANNEL)
                    continue
                yield f"event: {envelope.get('event', 'message')}\ndata: {json.dumps(envelope.get('data'))}\n\n"
                last_sent = loop.time()
            elif loop.time() - last_sent >= settings.SSE_KEEPALIVE_INTERVAL_SECONDS:
                yield ": keepalive\n\n"
                last_sent = loop.time()
    finally:
        await pubsub.unsubscribe(settings.EVENTS_CHANNEL)
        await pubsub.aclose()
        logger.info("Monitor %s disconnected", client_id)


@router.get("/events")
async def stream_events(request: Request):
    return StreamingResponse(
        _sse_generator(request),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache, no-transform",
            "X-Accel-Buffering": "no",
            "Connection": "keep-alive",
        },
    )
