"""
Placement API - Main Application Entry Point

This module initializes and configures the FastAPI application including:
- Logging
- Database and Redis connections
- Background job scheduler (opportunity auto-closer, notification dispatcher)
- CORS middleware
- API routing
- Health check endpoints
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text

from placement_api.api import api_router
from placement_api.core.config import settings
from placement_api.core.database import async_session_maker, close_db, init_db
from placement_api.core.redis import close_redis, get_redis, init_redis
from placement_api.core.scheduler import (
    list_registered_jobs,
    pause_job,
    resume_job,
    start_scheduler,
    stop_scheduler,
    trigger_job_manually,
)
from placement_api.modules.notifications import register_notification_jobs
from placement_api.modules.opportunities import register_opportunity_jobs

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger("placement_api")


async def _start_jobs() -> None:
    register_opportunity_jobs()
    register_notification_jobs()
    await start_scheduler()


# Redis first: rate limiting falls back to memory when it is missing
_STARTUP_STEPS = (
    ("Redis", init_redis),
    ("Database", init_db),
    ("Background scheduler", _start_jobs),
)


async def _ping_database() -> int:
    async with async_session_maker() as session:
        result = await session.execute(text("SELECT 1"))
        return result.scalar()


@asynccontextmanager
async def lifespan(_app: FastAPI):
    """
    Start Redis, the database and the job scheduler, then tear them down.

    Outside production a failing component is logged and skipped so the
    API can still be explored locally.
    """
    logger.info(f"Starting Placement API in {settings.python_env} mode...")

    for name, start in _STARTUP_STEPS:
        try:
            await start()
            logger.info(f"[OK] {name} ready")
        except Exception as e:
            logger.error(f"[FAIL] {name} failed to start: {e}")
            if settings.is_production:
                raise

    yield

    logger.info("Shutting down Placement API...")

    # Running jobs may still need the database
    await stop_scheduler()
    await close_redis()
    await close_db()
    logger.info("[OK] Cleanup complete")


app = FastAPI(
    title="Placement API",
    description="Internship and industrial-attachment placement API",
    version="0.1.0",
    docs_url="/docs" if settings.is_development else None,
    redoc_url="/redoc" if settings.is_development else None,
    lifespan=lifespan,
)

app.include_router(api_router, prefix="/api/v1")

# CORS configuration
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/", tags=["Root"])
async def root() -> dict[str, str]:
    """Root endpoint - API welcome message."""
    return {
        "message": "Welcome to the Placement API",
        "status": "running",
        "environment": settings.python_env,
    }


@app.get("/health", tags=["Health"])
async def health_check() -> dict[str, str]:
    """Health check endpoint for container orchestration."""
    return {"status": "healthy"}


@app.get("/ready", tags=["Health"])
async def readiness_check() -> dict[str, str]:
    """Readiness check: the database must answer."""
    try:
        await _ping_database()
    except Exception as e:
        logger.warning(f"Readiness check failed: {e}")
        raise HTTPException(status_code=503, detail={"status": "unavailable"}) from e
    return {"status": "ready"}


# ============================================
# Debug Endpoints (development only)
# ============================================
# Manual triggering of background jobs and connection checks. In
# production, jobs run automatically on schedule.

if settings.is_development:

    @app.get("/debug/db", tags=["Debug"])
    async def debug_db():
        """Test database connection."""
        try:
            return {"database": "connected", "result": await _ping_database()}
        except Exception as e:
            return {"database": "error", "message": str(e)}

    @app.get("/debug/redis", tags=["Debug"])
    async def debug_redis():
        """Test Redis connection."""
        client = await get_redis()
        if client is None:
            return {"redis": "not initialized"}
        try:
            await client.ping()
            return {"redis": "connected"}
        except Exception as e:
            return {"redis": "error", "message": str(e)}

    @app.get("/debug/jobs", tags=["Debug"])
    async def list_jobs():
        """List all registered background jobs with next run time and pause status."""
        return {"jobs": list_registered_jobs()}

    @app.post("/debug/jobs/{job_id}/trigger", tags=["Debug"])
    async def trigger_job(job_id: str):
        """
        Manually trigger a background job.

        Args:
            job_id: The ID of the job to trigger. Available jobs:
                - opportunities_close_expired
                - notifications_dispatch_outbox

        Raises:
            HTTPException 400: If job_id is not found.
        """
        try:
            return await trigger_job_manually(job_id)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e)) from e

    @app.post("/debug/jobs/{job_id}/pause", tags=["Debug"])
    async def pause_job_endpoint(job_id: str):
        """Pause a scheduled job. It stays registered; resume it to restart."""
        return {"job_id": job_id, "paused": pause_job(job_id)}

    @app.post("/debug/jobs/{job_id}/resume", tags=["Debug"])
    async def resume_job_endpoint(job_id: str):
        return {"job_id": job_id, "resumed": resume_job(job_id)}
