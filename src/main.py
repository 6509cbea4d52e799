"""
Roadmap Canvas - Main Application Entry Point

FastAPI application serving roadmap trees, guest identities and sharing.
"""

import logging
import sys
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from config import settings
from .cache import close_redis
from .database import init_database, close_database, get_database
from .database.exceptions import (
    AccessDeniedError,
    DatabaseConnectionError,
    DatabaseConstraintError,
    DatabaseError,
    DatabaseOperationError,
    EntityNotFoundError,
    ExpiredError,
    ValidationError,
)
from .middleware.slowapi_limiter import setup_rate_limiting
from .utils.datetime_utils import get_local_now
from .web.routes import router as api_router

# Configure logging
logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[
        logging.StreamHandler(sys.stdout)
    ]
)

logger = logging.getLogger(__name__)

# Checked in order; subclasses before their bases
ERROR_STATUS_CODES = (
    (EntityNotFoundError, 404),
    (ValidationError, 400),
    (AccessDeniedError, 403),
    (DatabaseConstraintError, 409),
    (ExpiredError, 410),
    (DatabaseConnectionError, 503),
    (DatabaseOperationError, 503),
)


def status_code_for(exc: DatabaseError) -> int:
    for error_class, status_code in ERROR_STATUS_CODES:
        if isinstance(exc, error_class):
            return status_code
    return 500


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup and shutdown."""
    logger.info(f"Starting {settings.app_name}...")

    try:
        if await init_database():
            logger.info("Database initialized")
        else:
            logger.warning("Database not configured or failed to initialize")
    except Exception as e:
        logger.warning(f"Database init failed: {e}")

    yield

    logger.info(f"Shutting down {settings.app_name}...")
    await close_redis()
    await close_database()


app = FastAPI(
    title=settings.app_name,
    description="Position-ordered roadmaps with guest identities and sharing",
    version="1.0.0",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

setup_rate_limiting(app)

app.include_router(api_router)


@app.get("/")
async def root():
    """Root endpoint - health check."""
    return {
        "status": "healthy",
        "service": settings.app_name,
        "version": "1.0.0"
    }


@app.get("/health")
async def health_check():
    """Detailed health check endpoint."""
    try:
        db_health = await get_database().health_check()
    except Exception as e:
        db_health = {"status": "error", "error": str(e)}

    return {
        "status": "healthy" if db_health.get("status") == "healthy" else "degraded",
        "timestamp": get_local_now().isoformat(),
        "services": {
            "database": db_health,
            "redis": bool(settings.redis_url),
        }
    }


# Error handlers
@app.exception_handler(DatabaseError)
async def domain_exception_handler(request: Request, exc: DatabaseError):
    """Map domain and storage errors to status codes."""
    status_code = status_code_for(exc)
    if status_code >= 500:
        logger.error(f"Storage failure on {request.url.path}: {exc}")
    return JSONResponse(
        status_code=status_code,
        content={"error": {"message": str(exc)}}
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": {"message": exc.detail}},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Global exception handler."""
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"error": {"message": "Internal server error"}}
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "src.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug
    )
