"""
MedCommand Backend
Main FastAPI application for medication command scheduling and adherence tracking
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

# Configuration and database
from config import settings
from database import SessionLocal, init_db, DatabaseHealthCheck
from exceptions import (
    ConcurrentModification,
    DuplicateEvent,
    InvariantViolation,
    MedicationError,
    NotFound,
    StorageUnavailable,
    UndoWindowExpired,
    ValidationError,
)
from services.container import build_container
from api import include_routers

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL),
    format=settings.LOG_FORMAT
)
logger = logging.getLogger(__name__)


# ==================== LIFESPAN ====================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup and shutdown"""
    # Startup
    logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION}")
    logger.info(f"Environment: {settings.ENV}")

    # Initialize database
    try:
        init_db()
        logger.info("Database initialized successfully")
    except Exception as e:
        logger.error(f"Database initialization failed: {e}")
        raise

    # Tests install their own container before startup
    if getattr(app.state, "container", None) is None:
        app.state.container = build_container(SessionLocal)

    yield

    # Shutdown
    await app.state.container.notifier.drain()
    logger.info(f"Shutting down {settings.APP_NAME}")


# ==================== APP INITIALIZATION ====================

app = FastAPI(
    title=settings.APP_NAME,
    description="""
    ## MedCommand API

    Event-sourced medication scheduling and adherence tracking.

    ### Features
    - **Medication Commands**: Versioned prescriptions with a status lifecycle
    - **Dose Events**: Append-only log of takes, misses, skips, snoozes, undos and corrections
    - **Today View**: Every active medication placed in exactly one time bucket
    - **Adherence**: Rates, on-time rates, streaks and milestones
    - **Daily Reset**: Per-patient archival into daily summaries
    """,
    version=settings.APP_VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Attach modular API routers (prefix /api/v1)
include_routers(app)


# ==================== EXCEPTION HANDLERS ====================

ERROR_STATUS_CODES = (
    (ValidationError, 422),
    (NotFound, 404),
    (DuplicateEvent, 409),
    (ConcurrentModification, 409),
    (UndoWindowExpired, 410),
    (StorageUnavailable, 503),
    (InvariantViolation, 500),
)


def status_code_for(exc: MedicationError) -> int:
    for error_type, status_code in ERROR_STATUS_CODES:
        if isinstance(exc, error_type):
            return status_code
    return 500


def _utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


@app.exception_handler(MedicationError)
async def medication_error_handler(request: Request, exc: MedicationError):
    status_code = status_code_for(exc)
    if status_code >= 500:
        logger.error(f"{exc.error_code} on {request.method} {request.url.path}: {exc.message}")
    else:
        logger.info(f"{exc.error_code} on {request.method} {request.url.path}: {exc.message}")
    return JSONResponse(
        status_code=status_code,
        content={
            "error": True,
            "code": exc.error_code,
            "message": exc.message,
            "details": exc.details,
            "status_code": status_code,
            "timestamp": _utc_timestamp()
        }
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request, exc: HTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": True,
            "message": exc.detail,
            "status_code": exc.status_code,
            "timestamp": _utc_timestamp()
        }
    )


@app.exception_handler(Exception)
async def general_exception_handler(request, exc: Exception):
    logger.error(f"Unexpected error: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={
            "error": True,
            "message": "An unexpected error occurred" if not settings.DEBUG else str(exc),
            "status_code": 500,
            "timestamp": _utc_timestamp()
        }
    )


# ==================== HEALTH ====================

@app.get("/", tags=["Health"])
async def root():
    """Root endpoint - basic health check"""
    return {
        "name": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "status": "healthy",
        "docs": "/docs"
    }


@app.get("/health", tags=["Health"])
async def health_check():
    """Detailed health check endpoint"""
    db_connected = DatabaseHealthCheck.is_connected()
    return {
        "status": "healthy" if db_connected else "degraded",
        "database": "connected" if db_connected else "disconnected",
        "version": settings.APP_VERSION,
        "environment": settings.ENV,
        "timestamp": _utc_timestamp()
    }


# ==================== MAIN ====================

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "app:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        log_level=settings.LOG_LEVEL.lower()
    )
