# pyright: reportMissingTypeStubs=false
"""
CareSync Scheduling Backend API

A FastAPI application exposing the clinic scheduling core.

Features:
- Doctor availability slots, schedule-based generation
- Google Calendar import, export and two-way sync
- Appointment lifecycle with reminder and no-show background jobs
- PostgreSQL database with SQLAlchemy ORM
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api import appointments, availability
from core.constants import CORS_ORIGINS
from core.exceptions import SchedulingError
from services.reminder_service import start_reminder_scheduler, stop_reminder_scheduler

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler()],
)

logger = logging.getLogger(__name__)
logger.info("🏥 CareSync API starting...")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup and shutdown events."""
    logger.info("🚀 Starting CareSync Backend API")

    # Database sessions are created fresh for each scheduler run
    try:
        await start_reminder_scheduler()
        logger.info("✅ Appointment reminder scheduler started")
    except Exception as e:
        logger.exception(f"❌ Failed to start reminder scheduler: {e}")

    yield

    try:
        await stop_reminder_scheduler()
        logger.info("🛑 Appointment reminder scheduler stopped")
    except Exception as e:
        logger.exception(f"❌ Error stopping reminder scheduler: {e}")

    logger.info("🛑 Shutting down CareSync Backend API")


# Create FastAPI application
app = FastAPI(
    title="CareSync Backend",
    description="Clinic scheduling: availability, calendar sync and appointments",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

# CORS middleware for frontend integration
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)

# Include API routers
app.include_router(
    availability.router,
    prefix="/api",
    tags=["availability"],
    responses={
        400: {"description": "Bad request"},
        404: {"description": "Resource not found"},
        409: {"description": "Conflict"},
        502: {"description": "External calendar error"},
    },
)
app.include_router(
    appointments.router,
    prefix="/api",
    tags=["appointments"],
    responses={
        400: {"description": "Bad request"},
        404: {"description": "Resource not found"},
        409: {"description": "Conflict"},
    },
)


@app.get(
    "/",
    summary="Root endpoint",
    description="Returns basic API information",
)
async def root() -> dict[str, str]:
    """Get API information."""
    return {
        "message": "CareSync Backend API",
        "version": "1.0.0",
        "status": "running"
    }


@app.get(
    "/health",
    summary="Health check",
    description="Returns the health status of the API",
)
async def health_check() -> dict[str, str]:
    """Check if the API is healthy and responding."""
    return {"status": "healthy"}


# Global exception handlers
@app.exception_handler(SchedulingError)
async def scheduling_error_handler(request: Request, exc: SchedulingError):
    """Return the scheduling error payload with its status code."""
    if exc.status_code >= 500:
        logger.error(f"{exc.kind} error on {request.url.path}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Handle unexpected exceptions globally."""
    logger.exception(f"Unhandled exception: {exc}")
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error", "error": "internal"},
    )

