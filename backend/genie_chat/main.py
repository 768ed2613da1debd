from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from prometheus_fastapi_instrumentator import Instrumentator
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from genie_chat.api.genie import router as genie_relay_router
from genie_chat.api.v1.router import api_v1_router
from genie_chat.clients import close_clients
from genie_chat.config import settings
from genie_chat.logging_config import setup_logging
from genie_chat.middleware.logging import RequestLoggingMiddleware
from genie_chat.middleware.rate_limit import limiter
from genie_chat.middleware.security_headers import SecurityHeadersMiddleware

setup_logging(settings.LOG_LEVEL)

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(application: FastAPI) -> AsyncIterator[None]:
    """Application lifespan: startup and shutdown hooks.

    Warns at startup when the relay cannot reach Databricks, and closes the
    shared HTTP and Redis clients on shutdown.

    Args:
        application: The FastAPI application instance (unused directly but
            required by the lifespan protocol).
    """
    if not settings.genie_configured:
        logger.warning(
            "genie_not_configured",
            hint="set DATABRICKS_WORKSPACE_URL, DATABRICKS_PAT_TOKEN, GENIE_SPACE_ID",
        )

    yield
    await close_clients()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application.

    Returns:
        A fully configured FastAPI instance with middleware and routers applied.
    """
    application = FastAPI(
        title="Genie Chat",
        description="Natural-language questions answered by a Databricks Genie space",
        version="0.1.0",
        lifespan=lifespan,
    )

    Instrumentator().instrument(application).expose(application, endpoint="/metrics")

    application.state.limiter = limiter
    application.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    # Middleware: last added is first executed
    application.add_middleware(
        CORSMiddleware,
        allow_origins=[o.strip() for o in settings.CORS_ORIGINS.split(",")],
        allow_credentials=False,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type"],
    )
    application.add_middleware(SecurityHeadersMiddleware)
    application.add_middleware(RequestLoggingMiddleware)

    # Routers
    application.include_router(genie_relay_router)
    application.include_router(api_v1_router)

    return application


app = create_app()
