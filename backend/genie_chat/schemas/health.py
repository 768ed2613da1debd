from __future__ import annotations

from pydantic import BaseModel


class ServiceStatus(BaseModel):
    status: str
    detail: str | None = None


class HealthResponse(BaseModel):
    status: str
    genie: ServiceStatus
    relay: ServiceStatus
    session_store: ServiceStatus
