import time
from datetime import datetime

from fastapi import APIRouter, status
from fastapi.responses import ORJSONResponse

from app.core.config import get_settings
from app.db.init import ping_db
from app.services.rate_limit import get_redis

router = APIRouter()

_started = time.monotonic()


def stripe_mode(secret_key: str) -> str:
    if not secret_key:
        return "not_configured"
    return "live" if secret_key.startswith("sk_live") else "test"


async def _redis_ok() -> bool:
    try:
        return bool(await get_redis().ping())
    except Exception:
        return False


@router.get("")
async def health():
    """Liveness for load balancers and monitoring."""
    return {"status": "ok"}


@router.get("/ready")
async def health_ready():
    """Readiness: the database must answer."""
    if not await ping_db():
        return ORJSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"status": "not_ready", "database": "unhealthy"},
        )
    return {"status": "ready"}


@router.get("/detailed")
async def health_detailed():
    settings = get_settings()
    db_ok = await ping_db()
    redis_ok = await _redis_ok()
    body = {
        "status": "healthy" if db_ok else "unhealthy",
        "timestamp": datetime.utcnow().isoformat(),
        "version": settings.version,
        "environment": settings.env,
        "uptime_seconds": round(time.monotonic() - _started, 1),
        "checks": {
            "database": {"status": "healthy" if db_ok else "unhealthy"},
            # Redis only backs rate limiting, which fails open.
            "redis": {"status": "healthy" if redis_ok else "degraded"},
            "stripe": {"status": stripe_mode(settings.stripe_secret_key)},
            "payfast": {"status": "configured" if settings.payfast_merchant_id else "not_configured"},
            "sentry": {"status": "configured" if settings.sentry_dsn else "not_configured"},
        },
    }
    code = status.HTTP_200_OK if db_ok else status.HTTP_503_SERVICE_UNAVAILABLE
    return ORJSONResponse(status_code=code, content=body)
