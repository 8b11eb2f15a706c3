from contextlib import asynccontextmanager

import sentry_sdk
import structlog
from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_fastapi_instrumentator import Instrumentator
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from sqlalchemy import text

from opa.bookings.routes import router as bookings_router
from opa.config import settings
from opa.database import async_session
from opa.exceptions import SettlementError
from opa.finances.routes import router as finances_router
from opa.middleware import RequestContextMiddleware, SecurityHeadersMiddleware
from opa.notifications.routes import router as notifications_router
from opa.payout_methods.routes import router as payout_methods_router
from opa.utils.rate_limit import limiter
from opa.withdrawals.routes import router as withdrawals_router

# Configure structlog: JSON in production, console in development
processors = [
    structlog.contextvars.merge_contextvars,
    structlog.processors.add_log_level,
    structlog.processors.TimeStamper(fmt="iso"),
]
if settings.is_production:
    processors.append(structlog.processors.JSONRenderer())
else:
    processors.append(structlog.dev.ConsoleRenderer())

structlog.configure(
    processors=processors,
    wrapper_class=structlog.make_filtering_bound_logger(0),
)

logger = structlog.get_logger()

if settings.SENTRY_DSN:
    sentry_sdk.init(
        dsn=settings.SENTRY_DSN,
        traces_sample_rate=0.1,
        environment=settings.APP_ENV,
        send_default_pii=False,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    from opa.services.scheduler import scheduler, start_scheduler

    logger.info("opa_startup", env=settings.APP_ENV)
    if not settings.PAYOUT_WEBHOOK_SECRET:
        logger.warning(
            "payout_webhook_secret_empty",
            message="PAYOUT_WEBHOOK_SECRET is not set; payout callbacks will be rejected.",
        )

    start_scheduler()
    yield
    scheduler.shutdown(wait=True)
    logger.info("opa_shutdown")


app = FastAPI(
    title="Opa Settlement API",
    description="Booking lifecycle, commission and owner payouts for Opa car rentals",
    version="0.1.0",
    lifespan=lifespan,
    docs_url=None if settings.is_production else "/docs",
    redoc_url=None if settings.is_production else "/redoc",
    openapi_url=None if settings.is_production else "/openapi.json",
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)


@app.exception_handler(SettlementError)
async def settlement_error_handler(request: Request, exc: SettlementError):
    logger.info("settlement_error", code=exc.code, path=request.url.path, detail=exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "code": exc.code},
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Catch unhandled exceptions and return a safe 500 response outside development."""
    logger.exception("unhandled_exception", path=request.url.path)
    if settings.APP_ENV != "development":
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error", "code": "internal_error"},
        )
    raise exc


# Middleware is LIFO: the last one added runs first.
if settings.is_production:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PATCH"],
        allow_headers=["Authorization", "Content-Type"],
    )
    if not settings.cors_origins_list:
        logger.warning("cors_origins_empty_in_production", app_env=settings.APP_ENV)
else:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:8081", "http://localhost:19006"],
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

app.add_middleware(SecurityHeadersMiddleware, is_production=settings.is_production)
app.add_middleware(RequestContextMiddleware)


# Custom instrumentation: the default metric set trips over non-numeric Content-Length headers.
def _http_metrics(info) -> None:
    from prometheus_client import Counter, Histogram

    if not hasattr(_http_metrics, "_total"):
        _http_metrics._total = Counter(
            "opa_http_requests_total", "Total HTTP requests",
            ["method", "status", "handler"],
        )
        _http_metrics._latency = Histogram(
            "opa_http_request_duration_seconds", "Request latency",
            ["method", "handler"],
            buckets=(0.01, 0.05, 0.1, 0.25, 0.5, 1, 2.5, 5, 10),
        )
    _http_metrics._total.labels(info.method, info.modified_status, info.modified_handler).inc()
    _http_metrics._latency.labels(info.method, info.modified_handler).observe(info.modified_duration)


Instrumentator(
    should_group_status_codes=True,
    should_ignore_untemplated=True,
    excluded_handlers=["/health", "/metrics"],
).add(_http_metrics).instrument(app)


@app.get("/metrics", include_in_schema=False)
async def metrics_endpoint(request: Request):
    """Prometheus metrics endpoint (protected by API key)."""
    from prometheus_client import generate_latest
    from starlette.responses import Response as StarletteResponse

    if settings.is_production and not settings.METRICS_API_KEY:
        raise HTTPException(status_code=503, detail="Metrics not available")

    if settings.METRICS_API_KEY:
        if request.headers.get("x-metrics-key", "") != settings.METRICS_API_KEY:
            raise HTTPException(status_code=403, detail="Invalid metrics API key")

    return StarletteResponse(
        content=generate_latest(),
        media_type="text/plain; version=0.0.4; charset=utf-8",
    )


app.include_router(bookings_router, prefix="/bookings", tags=["bookings"])
app.include_router(withdrawals_router, prefix="/withdrawals", tags=["withdrawals"])
app.include_router(payout_methods_router, prefix="/payout-methods", tags=["payout-methods"])
app.include_router(finances_router, prefix="/finances", tags=["finances"])
app.include_router(notifications_router, prefix="/notifications", tags=["notifications"])


@app.get("/health")
@limiter.limit("60/minute")
async def health_check(request: Request):
    """Health check with database connectivity and scheduler state."""
    try:
        async with async_session() as db:
            await db.execute(text("SELECT 1"))
    except Exception:
        logger.exception("health_check_database_failed")
        return JSONResponse(
            status_code=503,
            content={"status": "unhealthy", "database": "disconnected"},
        )

    from opa.services.scheduler import scheduler

    return {
        "status": "ok",
        "database": "connected",
        "scheduler": "running" if scheduler.running else "stopped",
    }
