"""Health check endpoints."""

import asyncio
import logging

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from kombu import Connection
from sqlalchemy import text

from stormlink.api.deps import SessionDep
from stormlink.config import settings

logger = logging.getLogger(__name__)

router = APIRouter()

# Seconds to wait for the broker during health checks
BROKER_CHECK_TIMEOUT = 3.0


def check_broker() -> str:
    """Open and close a broker connection. Returns the broker status string."""
    if not settings.broker_url:
        return "not_configured"
    with Connection(settings.broker_url, connect_timeout=BROKER_CHECK_TIMEOUT) as conn:
        conn.ensure_connection(max_retries=1)
    return "connected"


@router.get("")
async def health_check():
    """Basic health check - just confirms the service is running."""
    return {"status": "ok"}


@router.get("/db")
async def health_check_db(session: SessionDep):
    """Health check with database connectivity."""
    try:
        await session.execute(text("SELECT 1"))
        return {"status": "ok", "database": "connected"}
    except Exception as e:
        logger.error(f"Database health check failed: {e!r}")
        return JSONResponse(
            status_code=503,
            content={"status": "error", "database": "disconnected"},
        )


@router.get("/broker")
async def health_check_broker():
    """Health check for the message broker (verification queue)."""
    try:
        broker_status = await asyncio.to_thread(check_broker)
    except Exception as e:
        logger.error(f"Broker health check failed: {e!r}")
        broker_status = "disconnected"

    if broker_status != "connected":
        return JSONResponse(
            status_code=503,
            content={"status": "error", "broker": broker_status},
        )
    return {"status": "ok", "broker": broker_status}


@router.get("/ready")
async def readiness_check(session: SessionDep):
    """Readiness check - confirms all dependencies are available.

    Returns 503 if the database or broker is unavailable; registrations
    cannot succeed without both.
    """
    errors = {}

    try:
        await session.execute(text("SELECT 1"))
        db_status = "connected"
    except Exception as e:
        logger.error(f"Database readiness check failed: {e!r}")
        db_status = "disconnected"
        errors["database"] = str(e)

    try:
        broker_status = await asyncio.to_thread(check_broker)
        if broker_status != "connected":
            errors["broker"] = "Broker URL not configured"
    except Exception as e:
        logger.error(f"Broker readiness check failed: {e!r}")
        broker_status = "disconnected"
        errors["broker"] = str(e)

    response = {
        "status": "ok" if not errors else "degraded",
        "database": db_status,
        "broker": broker_status,
    }

    if errors:
        return JSONResponse(status_code=503, content=response)
    return response
