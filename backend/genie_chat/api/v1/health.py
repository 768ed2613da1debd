from __future__ import annotations

import httpx
import structlog
from fastapi import APIRouter

from genie_chat.config import settings
from genie_chat.orchestrator.storage import create_storage
from genie_chat.schemas.health import HealthResponse, ServiceStatus

logger = structlog.get_logger()
router = APIRouter()

_PROBE_KEY = "__health__"


def _check_genie_config() -> ServiceStatus:
    if settings.genie_configured:
        return ServiceStatus(status="healthy")
    return ServiceStatus(status="unhealthy", detail="Databricks settings are incomplete")


async def _check_relay() -> ServiceStatus:
    try:
        async with httpx.AsyncClient(timeout=5) as client:
            resp = await client.get(settings.RELAY_URL)
            if resp.status_code == 200:
                return ServiceStatus(status="healthy")
            return ServiceStatus(status="unhealthy", detail=f"HTTP {resp.status_code}")
    except Exception as e:
        logger.error("health_check_relay_failed", error=str(e))
        return ServiceStatus(status="unhealthy", detail=str(e))


async def _check_session_store() -> ServiceStatus:
    try:
        storage = create_storage(settings.SESSION_BACKEND)
        await storage.set(_PROBE_KEY, "ok")
        if await storage.get(_PROBE_KEY) != "ok":
            return ServiceStatus(status="unhealthy", detail="read-back mismatch")
        return ServiceStatus(status="healthy")
    except Exception as e:
        logger.error("health_check_session_store_failed", backend=settings.SESSION_BACKEND, error=str(e))
        return ServiceStatus(status="unhealthy", detail=str(e))


@router.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """Check configuration, relay liveness and the session store."""
    genie = _check_genie_config()
    relay = await _check_relay()
    session_store = await _check_session_store()

    all_healthy = all(s.status == "healthy" for s in [genie, relay, session_store])

    return HealthResponse(
        status="healthy" if all_healthy else "degraded",
        genie=genie,
        relay=relay,
        session_store=session_store,
    )
