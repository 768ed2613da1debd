from __future__ import annotations

import httpx
import structlog
from redis.asyncio import Redis

from genie_chat.config import settings

logger = structlog.get_logger()

_genie_http_client: httpx.AsyncClient | None = None
_relay_http_client: httpx.AsyncClient | None = None
_redis_client: Redis | None = None


def get_genie_http_client() -> httpx.AsyncClient:
    """Get or create the singleton HTTP client for the Databricks workspace.

    Returns:
        The shared AsyncClient used by the relay. Created on first call and
        reused on subsequent calls (singleton pattern).
    """
    global _genie_http_client
    if _genie_http_client is None:
        _genie_http_client = httpx.AsyncClient(timeout=settings.GENIE_REQUEST_TIMEOUT)
        logger.info("genie_http_client_created", workspace=settings.DATABRICKS_WORKSPACE_URL)
    return _genie_http_client


def get_relay_http_client() -> httpx.AsyncClient:
    """Get or create the singleton HTTP client the orchestrator uses to reach the relay.

    Carries no credentials: the relay attaches them.
    """
    global _relay_http_client
    if _relay_http_client is None:
        _relay_http_client = httpx.AsyncClient(timeout=settings.RELAY_TIMEOUT)
        logger.info("relay_http_client_created", url=settings.RELAY_URL)
    return _relay_http_client


def get_redis_client() -> Redis:
    """Get or create the singleton async Redis client.

    Returns:
        The shared async Redis instance. Created on first call and reused
        on subsequent calls (singleton pattern).
    """
    global _redis_client
    if _redis_client is None:
        _redis_client = Redis.from_url(settings.REDIS_URL, decode_responses=True)
        logger.info("redis_client_created", url=settings.REDIS_URL)
    return _redis_client


async def close_clients() -> None:
    """Close all singleton clients. Called on app shutdown."""
    global _genie_http_client, _relay_http_client, _redis_client
    if _genie_http_client:
        await _genie_http_client.aclose()
        _genie_http_client = None
        logger.info("genie_http_client_closed")
    if _relay_http_client:
        await _relay_http_client.aclose()
        _relay_http_client = None
        logger.info("relay_http_client_closed")
    if _redis_client:
        await _redis_client.aclose()
        _redis_client = None
        logger.info("redis_client_closed")
