"""Attested PDF intake API - Main FastAPI application."""

import logging
import sys
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import make_asgi_app
from sqlalchemy import text

from attest_api.db.schema import ensure_schema, schema_ready
from attest_api.db.session import SessionLocal, engine
from attest_api.dependencies import get_nonce_store
from attest_api.errors import AttestError
from attest_api.middleware.auth import AuthMiddleware
from attest_api.middleware.correlation import CorrelationIDMiddleware
from attest_api.routes import attestations, intake, media, storage_events
from attest_api.settings import get_settings
from attest_api.storage.service import get_storage_service

SERVICE_NAME = "attest-api"
VERSION = "0.1.0"

settings = get_settings()

# Configure logging
if settings.log_format == "json":
    _LOG_FORMAT = '{"time": "%(asctime)s", "level": "%(levelname)s", "message": "%(message)s", "module": "%(name)s"}'
else:
    _LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

logging.basicConfig(
    level=settings.log_level,
    format=_LOG_FORMAT,
    handlers=[logging.StreamHandler(sys.stdout)],
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    logger.info("Starting attested PDF intake API...")
    try:
        settings.validate_production_settings()
    except ValueError as e:
        logger.error(f"Configuration validation failed: {e}")
        raise

    # No intake requests are served unless the ledger table is in place
    created = ensure_schema(engine)
    logger.info("Ledger table created" if created else "Ledger table verified")

    yield
    logger.info("Shutting down attested PDF intake API...")


# Create FastAPI app
app = FastAPI(
    title="Attested PDF Intake API",
    description="Accessibility-attested PDF uploads with an append-only audit ledger",
    version=VERSION,
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=settings.cors_allow_credentials,
    allow_methods=settings.cors_allow_methods,
    allow_headers=settings.cors_allow_headers,
)

# Custom middleware (order matters - last added is first executed)
app.add_middleware(AuthMiddleware)
app.add_middleware(CorrelationIDMiddleware)

# Prometheus metrics
metrics_app = make_asgi_app()
app.mount("/metrics", metrics_app)

# Register routers
app.include_router(intake.router)
app.include_router(media.router)
app.include_router(attestations.router)
app.include_router(storage_events.router)


@app.exception_handler(AttestError)
async def attest_error_handler(request: Request, exc: AttestError):
    """Render service errors with their stable error code."""
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.get("/health")
async def health_check():
    """Health check endpoint (basic liveness)."""
    return {
        "status": "healthy",
        "service": SERVICE_NAME,
        "version": VERSION,
    }


@app.get("/ready")
async def readiness_check():
    """Readiness check endpoint (verifies dependencies)."""
    checks = {
        "database": False,
        "schema": False,
        "object_storage": False,
        "nonce_store": False,
    }

    db = SessionLocal()
    try:
        db.execute(text("SELECT 1"))
        checks["database"] = True
    except Exception as e:
        logger.error(f"Database check failed: {e}")
    finally:
        db.close()

    if checks["database"]:
        checks["schema"] = schema_ready(engine)

    checks["object_storage"] = get_storage_service().ping()

    try:
        checks["nonce_store"] = get_nonce_store().ping()
    except Exception as e:
        logger.error(f"Nonce store check failed: {e}")

    all_ready = all(checks.values())
    return JSONResponse(
        content={
            "status": "ready" if all_ready else "not_ready",
            "checks": checks,
        },
        status_code=200 if all_ready else 503,
    )


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "service": "Attested PDF Intake API",
        "version": VERSION,
        "docs": "/docs",
        "health": "/health",
    }
