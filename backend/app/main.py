"""
FastAPI Application Entry Point.

This is the main application file for the Field Force Tracking Backend.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from backend.app.core.config import settings
from backend.app.api.v1.router import router as api_v1_router
from backend.app.db.session import engine, Base, AsyncSessionLocal
from backend.app.core.observability import ObservabilityMiddleware, configure_logging
from backend.app.core.redis_client import redis_client, ping_redis
from backend.app.core.exceptions import (
    AppException,
    app_exception_handler,
    http_exception_handler,
    validation_exception_handler,
    generic_exception_handler
)
from backend.app.services.auto_close import SessionAutoCloser, auto_close_loop

# Import models to ensure they are registered with Base
from backend.app.models.user import User
from backend.app.models.pdv import Pdv
from backend.app.models.working_session import WorkingSession
from backend.app.models.gps_tracking_point import GpsTrackingPoint
from backend.app.models.pdv_visit import PdvVisit
from backend.app.models.audit_log import AuditLog
from backend.app.models.dlq import DeadLetterQueue

configure_logging()
logger = logging.getLogger("fieldtrack")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for application startup/shutdown.

    1. Creates database tables on startup.
    2. Starts the end-of-day closure scheduler when enabled.
    3. Stops the scheduler on shutdown.
    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    scheduler = None
    if settings.auto_close_enabled:
        closer = SessionAutoCloser(AsyncSessionLocal, redis=redis_client)
        scheduler = asyncio.create_task(auto_close_loop(closer))

    yield

    if scheduler is not None:
        scheduler.cancel()
        try:
            await scheduler
        except asyncio.CancelledError:
            logger.info("Auto closure scheduler stopped")


# Initialize FastAPI application
app = FastAPI(
    title=settings.app_name,
    version=settings.api_version,
    debug=settings.debug,
    description="Working sessions, GPS tracking and PDV visits for field-sales representatives",
    lifespan=lifespan,
)

app.add_middleware(ObservabilityMiddleware)

# Register global exception handlers
app.add_exception_handler(AppException, app_exception_handler)
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(Exception, generic_exception_handler)


@app.get("/health", tags=["Health"])
async def health_check():
    """
    Health check endpoint.

    Redis only backs the auto-closure run lock, so an unreachable Redis
    reports "degraded" rather than failing the check.

    Returns:
        dict: Status and application information
    """
    redis_ok = await ping_redis()
    return {
        "status": "healthy" if redis_ok else "degraded",
        "app_name": settings.app_name,
        "version": settings.api_version,
        "redis": "connected" if redis_ok else "unavailable",
    }


# Include API v1 router
app.include_router(api_v1_router, prefix=f"/{settings.api_version}")


@app.get("/", tags=["Root"])
async def root():
    """
    Root endpoint.

    Returns:
        dict: Welcome message and API documentation links
    """
    return {
        "message": "Welcome to Field Force Tracking Backend API",
        "docs": "/docs",
        "health": "/health",
    }
