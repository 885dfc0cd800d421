"""
Event Registration API - Main Application Entry Point

Capacity-constrained event registration:
- Seat admission serialized per event on a locked capacity ledger row
- FIFO waitlist with promotion inside the cancellation transaction
- Transactional notification outbox, delivered after commit
- Structured logging with request correlation and Prometheus metrics
"""

import asyncio
import contextlib
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from eventreg.api.middleware import RequestLoggingMiddleware
from eventreg.api.router import api_router
from eventreg.core.config import get_settings
from eventreg.core.exceptions import RegistrationError
from eventreg.core.logging import get_logger, setup_logging
from eventreg.core.metrics import metrics_endpoint
from eventreg.db.session import get_session_factory
from eventreg.infrastructure.redis_client import close_redis, get_redis
from eventreg.services.cache_service import get_cache_stats
from eventreg.services.notification_service import run_outbox_relay
from eventreg.services.sink_factory import close_notification_sink, get_notification_sink

settings = get_settings()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifecycle: startup and shutdown hooks."""
    setup_logging()

    logger.info(
        "application_starting",
        app=settings.APP_NAME,
        version=settings.APP_VERSION,
        environment=settings.ENVIRONMENT,
        notification_sink=settings.NOTIFICATION_SINK,
    )

    redis_client = await get_redis()
    if redis_client:
        logger.info("redis_ready")
    else:
        logger.warning("redis_unavailable", message="Running without cache")

    relay_task = None
    if settings.NOTIFICATION_RELAY_INTERVAL_SECONDS > 0:
        relay_task = asyncio.create_task(
            run_outbox_relay(
                get_session_factory(),
                get_notification_sink(),
                interval=settings.NOTIFICATION_RELAY_INTERVAL_SECONDS,
                batch_size=settings.NOTIFICATION_BATCH_SIZE,
            )
        )

    yield

    if relay_task is not None:
        relay_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await relay_task
    await close_notification_sink()
    await close_redis()
    logger.info("application_shutdown")


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Capacity-constrained event registration with a FIFO waitlist",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Restrict in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_middleware(RequestLoggingMiddleware)

app.include_router(api_router)


@app.exception_handler(RegistrationError)
async def registration_error_handler(request: Request, exc: RegistrationError) -> JSONResponse:
    headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == 401 else None
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail, "code": exc.code},
        headers=headers,
    )


@app.get("/health", tags=["Health"])
async def health_check():
    """Health check endpoint for Docker and load balancers."""
    cache_stats = await get_cache_stats()
    return {
        "status": "healthy",
        "version": settings.APP_VERSION,
        "environment": settings.ENVIRONMENT,
        "cache": cache_stats,
    }


@app.get("/metrics", tags=["Health"], include_in_schema=False)
async def metrics():
    return metrics_endpoint()


@app.get("/", tags=["Root"])
async def root():
    return {
        "message": f"Welcome to {settings.APP_NAME}",
        "version": settings.APP_VERSION,
        "docs": "/docs",
    }
