"""
NGS Vault FastAPI Main Application

JSON API over the run catalogue: run listing, ingestion, FASTQ search and
spreadsheet reconciliation.
"""

import time
from contextlib import asynccontextmanager

import structlog
from fastapi import Depends, FastAPI, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy import select, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ngsvault.config import get_settings
from ngsvault.errors import VaultError
from ngsvault.services.database import get_engine, get_session, init_db
from ngsvault.utils.logging import configure_logging

settings = get_settings()
logger = structlog.get_logger()

# Track application start time
APP_START_TIME = time.monotonic()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    configure_logging(settings.monitoring.log_level, settings.monitoring.log_format)
    logger.info("Starting NGS Vault API server", version=settings.app_version)

    settings.storage.ensure_directories()
    init_db()

    yield

    get_engine().dispose()
    logger.info("NGS Vault API server stopped")


app = FastAPI(
    title="NGS Vault - Sequencing Run Catalogue",
    description="Catalogue of sequencer runs, samples and FASTQ files",
    version=settings.app_version,
    docs_url=None if settings.is_production else "/api/docs",
    redoc_url=None if settings.is_production else "/api/redoc",
    openapi_url="/api/openapi.json",
    lifespan=lifespan,
)


@app.middleware("http")
async def logging_middleware(request: Request, call_next):
    """Log every request with its duration."""
    start_time = time.time()
    response = await call_next(request)
    duration = time.time() - start_time
    logger.info(
        "Request completed",
        method=request.method,
        path=request.url.path,
        status=response.status_code,
        duration_ms=round(duration * 1000, 2),
    )
    return response


@app.exception_handler(VaultError)
async def vault_exception_handler(request: Request, exc: VaultError):
    """Unhandled domain errors become 422 with their error code."""
    logger.warning("Request failed", path=request.url.path, **exc.to_dict())
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"detail": exc.to_dict()},
    )


# ============================================================================
# HEALTH ENDPOINTS
# ============================================================================

@app.get("/health")
def health_check(session: Session = Depends(get_session)):
    """
    Basic health check endpoint.

    Reports the database as degraded when a trivial query fails.
    """
    components = {}
    overall_healthy = True

    try:
        session.execute(select(text("1")))
        components["database"] = "healthy"
    except SQLAlchemyError as e:
        components["database"] = "unhealthy"
        overall_healthy = False
        logger.error("Database health check failed", error=str(e))

    return {
        "status": "healthy" if overall_healthy else "degraded",
        "version": settings.app_version,
        "components": components,
        "uptime_seconds": round(time.monotonic() - APP_START_TIME, 3),
    }


@app.get("/")
def root():
    """Root endpoint with API information."""
    return {
        "name": settings.app_name,
        "version": settings.app_version,
        "documentation": "/api/docs",
        "health": "/health",
    }


# ============================================================================
# INCLUDE ROUTERS
# ============================================================================

from ngsvault.api.routes import runs, samples, samplesheets  # noqa: E402

app.include_router(runs.router, prefix=f"{settings.api_prefix}/runs", tags=["Runs"])
app.include_router(samples.router, prefix=f"{settings.api_prefix}/samples", tags=["Samples"])
app.include_router(
    samplesheets.router,
    prefix=f"{settings.api_prefix}/samplesheets",
    tags=["Sample Sheets"],
)
