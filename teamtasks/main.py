"""
Team Tasks - Main Application Entry Point

FastAPI application serving the daily task REST API and the team event
stream.
"""

import logging
import sys
from contextlib import asynccontextmanager
from datetime import datetime

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from config import settings
from . import __version__
from .database import init_database, close_database, get_database
from .database.exceptions import (
    AssignmentConflictError,
    DatabaseConstraintError,
    DatabaseError,
    EntityNotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from .realtime.broker import get_event_broker
from .web.auth import AuthenticationError

# Configure logging
logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[
        logging.StreamHandler(sys.stdout)
    ]
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup and shutdown."""
    logger.info("Starting Team Tasks...")

    try:
        if await init_database():
            logger.info("Database initialized")
        else:
            logger.warning("Database not configured or failed to initialize")
    except Exception as e:
        logger.warning(f"Database init failed: {e}")

    try:
        await get_event_broker().start()
        logger.info(f"Event broker started ({settings.event_broker})")
    except Exception as e:
        logger.warning(f"Event broker failed to start, real-time updates degraded: {e}")

    yield

    logger.info("Shutting down...")

    try:
        await get_event_broker().stop()
    except Exception as e:
        logger.warning(f"Failed to stop event broker during shutdown: {e}")

    try:
        await close_database()
    except Exception as e:
        logger.warning(f"Failed to close database during shutdown: {e}")

    logger.info("Shutdown complete")


# Create FastAPI app
app = FastAPI(
    title="Team Tasks",
    description="Daily task materialization and assignment for teams",
    version=__version__,
    lifespan=lifespan
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in settings.cors_origins.split(",") if o.strip()],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

from .web.routes import router as api_router
from .realtime.websocket import router as realtime_router
app.include_router(api_router)
app.include_router(realtime_router)


@app.get("/")
async def root():
    """Root endpoint - liveness."""
    return {
        "status": "healthy",
        "service": "Team Tasks",
        "version": __version__,
    }


@app.get("/health")
async def health_check():
    """Detailed health check endpoint."""
    db_health = {"status": "not_configured"}
    try:
        db = get_database()
        db_health = await db.health_check()
    except Exception as e:
        db_health = {"status": "error", "error": str(e)}

    return {
        "status": "healthy" if db_health.get("status") == "healthy" else "degraded",
        "timestamp": datetime.now().isoformat(),
        "services": {
            "database": db_health.get("status", "unknown"),
            "event_broker": settings.event_broker,
        },
    }


# ==================== ERROR HANDLERS ====================

def _error(status_code: int, message: str, code: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message, "code": code})


@app.exception_handler(AuthenticationError)
async def authentication_error_handler(request: Request, exc: AuthenticationError):
    return _error(401, str(exc) or "Authentication required", "UNAUTHORIZED")


@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError):
    return _error(400, str(exc), "VALIDATION")


@app.exception_handler(EntityNotFoundError)
async def not_found_handler(request: Request, exc: EntityNotFoundError):
    return _error(404, str(exc), "NOT_FOUND")


@app.exception_handler(PermissionDeniedError)
async def permission_denied_handler(request: Request, exc: PermissionDeniedError):
    return _error(403, str(exc), "FORBIDDEN")


@app.exception_handler(AssignmentConflictError)
async def assignment_conflict_handler(request: Request, exc: AssignmentConflictError):
    logger.info(f"Assignment conflict on {request.url.path}")
    return _error(409, str(exc), "CONFLICT")


@app.exception_handler(DatabaseConstraintError)
async def constraint_error_handler(request: Request, exc: DatabaseConstraintError):
    return _error(409, str(exc), "CONSTRAINT")


@app.exception_handler(DatabaseError)
async def database_error_handler(request: Request, exc: DatabaseError):
    logger.error(f"Database error on {request.url.path}: {exc}", exc_info=True)
    return _error(500, "Database error", "DATABASE")


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Global exception handler."""
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"error": "Internal server error"}
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "teamtasks.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug
    )
