"""
FastAPI Application Entry Point.

This is the main application file for the Buyback Pickup Logistics service.
"""

import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from buyback.app.core.config import settings
from buyback.app.core.observability import ObservabilityMiddleware, configure_logging
from buyback.app.core.redis_client import ping_redis
from buyback.app.api.v1.router import router as api_v1_router
from buyback.app.db.session import engine, Base, AsyncSessionLocal
from buyback.app.domain.scheduling.slot_scheduler import SlotScheduler
from buyback.app.core.exceptions import (
    AppException,
    app_exception_handler,
    http_exception_handler,
    validation_exception_handler,
    generic_exception_handler
)

# Import models to ensure they are registered with Base
from buyback.app.models.schedule_slot import ScheduleSlot
from buyback.app.models.appointment import Appointment
from buyback.app.models.state_log import StateLog
from buyback.app.models.route import Route
from buyback.app.models.route_pickup import RoutePickup

configure_logging(settings.log_level)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for application startup/shutdown.
    
    1. Creates database tables on startup.
    2. Fills the rolling slot window when init_slots_on_startup is set.
    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    
    if settings.init_slots_on_startup:
        async with AsyncSessionLocal() as session:
            created = await SlotScheduler(session).ensure_slots_initialized()
        logger.info("Startup slot initialization created %d slots", created)
    yield


# Initialize FastAPI application
app = FastAPI(
    title=settings.app_name,
    version=settings.api_version,
    debug=settings.debug,
    description="Pickup pricing, slot scheduling and route planning for device buyback",
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
    
    Returns:
        dict: Status and application information
    """
    health = {
        "status": "healthy",
        "app_name": settings.app_name,
        "version": settings.api_version,
    }
    if settings.cache_backend == "redis":
        health["cache"] = "connected" if await ping_redis() else "unavailable"
    return health


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
        "message": "Welcome to the Buyback Pickup Logistics API",
        "docs": "/docs",
        "health": "/health",
    }
