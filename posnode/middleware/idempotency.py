"""
POS Node — Idempotency Key Middleware

Terminals retry order placement when a response is lost; replaying the same
Idempotency-Key must not create a second order (and burn a second order id).
  - Same key, same body      → cached response, handler not called
  - Same key, different body → 422, the key belongs to another order
  - Unknown key              → handler runs, successful response kept for the TTL
  - Redis down               → pass through; the order is still placed
"""
import hashlib
import json
import logging

from fastapi import Request, Response
from fastapi.responses import JSONResponse
from redis.exceptions import RedisError
from starlette.middleware.base import BaseHTTPMiddleware

from posnode.core.config import get_settings
from posnode.core.redis_client import get_redis

settings = get_settings()
logger = logging.getLogger(__name__)

IDEMPOTENCY_PREFIX = "pos:idempotent:"
IDEMPOTENT_ROUTES = {("POST", "/orders"), ("POST", "/orders/")}


def _fingerprint(raw_body: bytes) -> str:
    return hashlib.sha256(raw_body).hexdigest()


class IdempotencyMiddleware(BaseHTTPMiddleware):

    async def dispatch(self, request: Request, call_next) -> Response:
        idem_key = request.headers.get("Idempotency-Key")
        if not idem_key or (request.method, request.url.path) not in IDEMPOTENT_ROUTES:
            return await call_next(request)

        cache_key = f"{IDEMPOTENCY_PREFIX}{idem_key}"
        fingerprint = _fingerprint(await request.body())
        redis = get_redis()

        try:
            cached = await redis.get(cache_key)
        except (RedisError, OSError) as exc:
            logger.warning("Idempotency cache unavailable, passing through: %s", exc)
            return await call_next(request)

        if cached:
            stored = json.loads(cached)
            if stored.get("fingerprint") != fingerprint:
                return JSONResponse(
                    status_code=422,
                    content={"detail": f"Idempotency-Key {idem_key} was already used for a different order"},
                )
            logger.info("Replaying order placement for Idempotency-Key %s", idem_key)
            return JSONResponse(
                content=stored["body"],
                status_code=stored["status_code"],
                headers={"X-Idempotency-Replay": "true"},
            )

        response = await call_next(request)
        raw = b"".join([chunk async for chunk in response.body_iterator])

        # Rejected placements are not remembered, the terminal may fix and retry
        if response.status_code < 400:
            try:
                await redis.setex(
                    cache_key,
                    settings.IDEMPOTENCY_KEY_TTL_SECONDS,
                    json.dumps({
                        "fingerprint": fingerprint,
                        "status_code": response.status_code,
                        "body": json.loads(raw),
                    }),
                )
            except (RedisError, OSError, ValueError) as exc:
                logger.warning("Could not remember response for Idempotency-Key %s: %s", idem_key, exc)

        return Response(
            content=raw,
            status_code=response.status_code,
            media_type=response.media_type,
            headers=dict(response.headers),
        )
