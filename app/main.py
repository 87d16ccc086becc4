import time
import uuid

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse
from fastapi.staticfiles import StaticFiles

from app.core.config import get_settings
from app.core.exceptions import (
    AppError,
    app_exception_handler,
    generic_exception_handler,
    validation_exception_handler,
)
from app.core.logging import bind_request_context, clear_request_context, configure_logging, get_logger
from app.db.init import close_db, init_db
from app.routers import (
    admin,
    auth,
    credits,
    health,
    leads,
    listings,
    packages,
    payments,
    places,
    promocodes,
    properties,
    templates,
    upload,
    users,
)
from app.services.rate_limit import close_redis

settings = get_settings()
configure_logging(debug=settings.debug, env=settings.env)
log = get_logger(__name__)

app = FastAPI(
    title="Property Helper API",
    version=settings.version,
    default_response_class=ORJSONResponse,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def request_id_middleware(request, call_next):
    request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
    request.state.request_id = request_id
    bind_request_context(request_id)
    start = time.perf_counter()
    try:
        response = await call_next(request)
        duration_ms = (time.perf_counter() - start) * 1000
        log.info(
            "request",
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
            duration_ms=round(duration_ms, 2),
        )
        response.headers["X-Request-ID"] = request_id
        return response
    finally:
        clear_request_context()


app.add_exception_handler(AppError, app_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(Exception, generic_exception_handler)

# Routers
app.include_router(health.router, prefix="/health", tags=["health"])
app.include_router(auth.router, prefix="/api/auth", tags=["auth"])
app.include_router(users.router, prefix="/api/users", tags=["users"])
app.include_router(properties.router, prefix="/api/properties", tags=["properties"])
app.include_router(listings.router, prefix="/api/listings", tags=["listings"])
app.include_router(leads.router, prefix="/api/leads", tags=["leads"])
app.include_router(templates.router, prefix="/api/templates", tags=["templates"])
app.include_router(credits.router, prefix="/api/credits", tags=["credits"])
app.include_router(packages.router, prefix="/api/packages", tags=["packages"])
app.include_router(promocodes.router, prefix="/api/promocodes", tags=["promocodes"])
app.include_router(payments.router, prefix="/api/payments", tags=["payments"])
app.include_router(places.router, prefix="/api/places", tags=["places"])
app.include_router(upload.router, prefix="/api/upload", tags=["upload"])
app.include_router(admin.router, prefix="/api/admin", tags=["admin"])

if settings.storage_backend == "local":
    app.mount("/uploads", StaticFiles(directory=settings.storage_local_path, check_dir=False), name="uploads")


@app.on_event("startup")
async def startup():
    if settings.sentry_dsn:
        import sentry_sdk
        sentry_sdk.init(dsn=settings.sentry_dsn, environment=settings.env, traces_sample_rate=0.1)
        log.info("startup", msg="Sentry enabled")
    await init_db()
    log.info("startup", msg="DB connected")


@app.on_event("shutdown")
async def shutdown():
    await close_redis()
    close_db()
    log.info("shutdown")
