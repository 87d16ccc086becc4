"""Per-IP fixed-window request limits via Redis."""

import time

import redis.asyncio as aioredis
from fastapi import Request

from app.core.config import get_settings
from app.core.exceptions import TooManyRequestsError
from app.core.logging import get_logger

log = get_logger(__name__)

KEY_PREFIX = "ratelimit"

_redis: aioredis.Redis | None = None


def get_redis() -> aioredis.Redis:
    global _redis
    if _redis is None:
        _redis = aioredis.from_url(
            get_settings().redis_url,
            decode_responses=True,
            socket_connect_timeout=1,
            socket_timeout=1,
        )
    return _redis


async def close_redis() -> None:
    global _redis
    if _redis is not None:
        await _redis.aclose()
        _redis = None


def window_key(scope: str, client_id: str, window_seconds: int, now: float | None = None) -> str:
    window = int((now if now is not None else time.time()) // window_seconds)
    return f"{KEY_PREFIX}:{scope}:{client_id}:{window}"


async def hit(redis, key: str, window_seconds: int) -> int:
    """Increment and return the window count; 0 when Redis is unreachable."""
    try:
        n = await redis.incr(key)
        if n == 1:
            await redis.expire(key, window_seconds)
        return n
    except Exception as e:
        log.warning("rate_limit_unavailable", error=str(e))
        return 0


def client_ip(request: Request) -> str:
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


class RateLimit:
    """FastAPI dependency; limits come from Settings at request time."""

    def __init__(self, scope: str, message: str = "Too many requests, please try again later"):
        self.scope = scope
        self.message = message

    def limits(self) -> tuple[int, int]:
        settings = get_settings()
        return (
            getattr(settings, f"{self.scope}_rate_limit"),
            getattr(settings, f"{self.scope}_rate_window_seconds"),
        )

    async def __call__(self, request: Request) -> None:
        limit, window_seconds = self.limits()
        key = window_key(self.scope, client_ip(request), window_seconds)
        count = await hit(get_redis(), key, window_seconds)
        if count > limit:
            log.info("rate_limited", scope=self.scope, client=client_ip(request))
            raise TooManyRequestsError(self.message, retry_after=window_seconds)


auth_rate_limit = RateLimit("auth", "Too many authentication attempts, please try again later")
search_rate_limit = RateLimit("search", "Too many search requests, please slow down")
upload_rate_limit = RateLimit("upload", "Too many uploads, please try again later")
