"""
PeakSelf Backend — Health Check Routes
========================================

What:  Liveness, readiness and full health probes.
Who:   Docker health checks, load balancers, uptime monitors.
When:  Every few seconds; excluded from the access log and the global rate
       limiter.

Endpoints:
    GET /api/health        SELECT 1 against PostgreSQL with latency;
                           200 healthy / 503 unhealthy
    GET /api/health/ready  200 ready / 503 not_ready by database status
    GET /api/health/live   200 alive whenever the process answers
"""

import logging
import os
import time
from datetime import datetime, timezone

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from app import __version__
from app.config import settings
from app.database import engine
from app.schemas.common import DatabaseCheck, HealthResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/health", tags=["Health"])

_start_time = time.time()


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _uptime() -> float:
    return round(time.time() - _start_time, 3)


async def check_database() -> DatabaseCheck:
    """Run SELECT 1 and report up/down with latency or the error."""
    start = time.perf_counter()
    try:
        async with engine.connect() as conn:
            value = (await conn.execute(text("SELECT 1"))).scalar()
    except (SQLAlchemyError, OSError) as e:
        logger.error("Database health check failed: %s", e)
        return DatabaseCheck(status="down", error=str(e))

    latency = f"{(time.perf_counter() - start) * 1000:.0f}ms"
    if value != 1:
        return DatabaseCheck(status="down", error="Unexpected query result")
    return DatabaseCheck(status="up", latency=latency)


@router.get(
    "",
    response_model=HealthResponse,
    responses={503: {"description": "Database unreachable", "model": HealthResponse}},
    summary="Service health check",
)
async def health_check() -> JSONResponse:
    start = time.perf_counter()
    database = await check_database()
    healthy = database.status == "up"

    body = HealthResponse(
        status="healthy" if healthy else "unhealthy",
        timestamp=_now_iso(),
        uptime=_uptime(),
        responseTime=f"{(time.perf_counter() - start) * 1000:.0f}ms",
        checks={"database": database},
        version=__version__,
        environment=settings.environment,
    )
    return JSONResponse(
        status_code=200 if healthy else 503,
        content=body.model_dump(exclude_none=True),
    )


@router.get("/ready", summary="Readiness probe")
async def readiness() -> JSONResponse:
    database = await check_database()
    ready = database.status == "up"
    return JSONResponse(
        status_code=200 if ready else 503,
        content={
            "status": "ready" if ready else "not_ready",
            "timestamp": _now_iso(),
            "database": database.model_dump(exclude_none=True),
        },
    )


@router.get("/live", summary="Liveness probe")
async def liveness() -> dict:
    return {
        "status": "alive",
        "timestamp": _now_iso(),
        "uptime": _uptime(),
        "pid": os.getpid(),
    }
