import time

import redis
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse

from app.core.config import get_settings
from app.core.kv_store import get_kv_store
from app.core.logging import get_logger

settings = get_settings()
logger = get_logger(__name__)

EXEMPT_PATHS = {"/health", "/api/v1/health", "/api/v1/webhooks/billing"}


def allow_request(key: str, limit_per_minute: int) -> bool:
    store = get_kv_store()
    bucket = f"rl:{key}:{int(time.time() // 60)}"
    try:
        current = store.incr(bucket)
        if current == 1:
            store.expire(bucket, 60)
    except redis.RedisError as exc:
        # The limiter never blocks traffic because the store is down.
        logger.warning("rate_limit.store_unavailable", extra={"reason": str(exc)})
        return True
    return current <= limit_per_minute


class RateLimitMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        if request.url.path in EXEMPT_PATHS:
            return await call_next(request)

        client_host = request.client.host if request.client else "unknown"
        key = f"{client_host}:{request.method}:{request.url.path}"
        if not allow_request(key, settings.rate_limit_per_minute):
            return JSONResponse(status_code=429, content={"error": "rate_limit_exceeded"})

        return await call_next(request)
