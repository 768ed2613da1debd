import json
import time
from datetime import datetime, timezone
from typing import Any, get_args

import pydantic
import structlog
from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from genie_chat.clients import get_genie_http_client
from genie_chat.config import settings
from genie_chat.databricks import DatabricksGenieClient, GenieAPIError
from genie_chat.exceptions import AppError, ConfigurationError, ValidationError
from genie_chat.metrics import relay_requests_total, relay_upstream_duration
from genie_chat.middleware.rate_limit import limiter
from genie_chat.schemas.relay import RelayAction, RelayEnvelope, RelayLiveness, RelayRequest

logger = structlog.get_logger()
router = APIRouter(prefix="/api", tags=["genie"])

_KNOWN_ACTIONS = set(get_args(RelayAction))


def get_genie_client() -> DatabricksGenieClient:
    """Build the credentialed Genie client from settings.

    Raises:
        ConfigurationError: If any Databricks setting is missing.
    """
    if not settings.genie_configured:
        raise ConfigurationError(
            "Missing required environment variables. Please set DATABRICKS_WORKSPACE_URL, "
            "DATABRICKS_PAT_TOKEN, and GENIE_SPACE_ID"
        )
    return DatabricksGenieClient(
        http_client=get_genie_http_client(),
        workspace_url=settings.DATABRICKS_WORKSPACE_URL,
        token=settings.DATABRICKS_PAT_TOKEN.get_secret_value(),
        space_id=settings.GENIE_SPACE_ID,
        conversation_title=settings.GENIE_CONVERSATION_TITLE,
    )


def categorize_error(message: str) -> str:
    """Coarse error category reported in the envelope's ``type`` field."""
    lowered = message.lower()
    if "401" in lowered or "403" in lowered or "unauthorized" in lowered:
        return "auth"
    if "429" in lowered or "rate limit" in lowered:
        return "rate_limit"
    if "timeout" in lowered:
        return "timeout"
    if "network" in lowered or "fetch" in lowered:
        return "network"
    return "default"


def _error_response(message: str, status_code: int) -> JSONResponse:
    envelope = RelayEnvelope(success=False, error=message, type=categorize_error(message))
    return JSONResponse(status_code=status_code, content=envelope.model_dump(exclude_none=True))


async def _parse_body(request: Request) -> RelayRequest:
    raw = await request.body()
    try:
        payload = json.loads(raw or b"{}")
        # Some hosts double-encode the body as a JSON string
        if isinstance(payload, str):
            payload = json.loads(payload)
    except ValueError as exc:
        raise ValidationError("Invalid JSON in request body") from exc
    if not isinstance(payload, dict):
        raise ValidationError("Request body must be a JSON object")
    try:
        return RelayRequest.model_validate(payload)
    except pydantic.ValidationError as exc:
        raise ValidationError("Request body must include a string action") from exc


async def _dispatch(client: DatabricksGenieClient, body: RelayRequest) -> dict[str, Any]:
    if body.action == "start-conversation":
        return await client.start_conversation()
    if body.action == "send-message":
        if not body.conversation_id or not body.content:
            raise ValidationError("send-message requires conversationId and content")
        return await client.send_message(body.conversation_id, body.content)
    if body.action == "poll-result":
        if not body.conversation_id or not body.message_id:
            raise ValidationError("poll-result requires conversationId and messageId")
        return await client.get_message(body.conversation_id, body.message_id)
    raise ValidationError(f"Unknown action: {body.action}")


@router.get("/genie", response_model=RelayLiveness)
async def relay_liveness() -> RelayLiveness:
    """Liveness check; not part of the conversation protocol."""
    return RelayLiveness(
        message="Genie API is running",
        method="Use POST with action parameter",
        timestamp=datetime.now(timezone.utc).isoformat(),
    )


@router.post("/genie", response_model=RelayEnvelope)
@limiter.limit(settings.RELAY_RATE_LIMIT)
async def relay(request: Request) -> JSONResponse:
    """Forward one action to Databricks Genie with the server-side credential.

    Stateless: no retries, no caching. Upstream 4xx/5xx statuses are passed
    through so the caller can classify auth, rate-limit and server failures;
    an unreachable workspace is reported as 502.

    Args:
        request: The raw request; the body is ``{action, conversationId?,
            messageId?, content?}``.

    Returns:
        JSONResponse wrapping a RelayEnvelope.
    """
    action = "unknown"
    try:
        body = await _parse_body(request)
        action = body.action if body.action in _KNOWN_ACTIONS else "unknown"
        logger.info("relay_request", action=action, conversation_id=body.conversation_id, message_id=body.message_id)

        client = get_genie_client()
        start_time = time.perf_counter()
        data = await _dispatch(client, body)
        relay_upstream_duration.labels(action=action).observe(time.perf_counter() - start_time)
    except AppError as exc:
        logger.warning("relay_rejected", action=action, status=exc.status_code, error=exc.detail)
        relay_requests_total.labels(action=action, status="rejected").inc()
        return _error_response(str(exc.detail), exc.status_code)
    except GenieAPIError as exc:
        status_code = exc.status_code if exc.status_code and exc.status_code >= 400 else 502
        logger.error("relay_upstream_error", action=action, status=exc.status_code, error=str(exc))
        relay_requests_total.labels(action=action, status="error").inc()
        return _error_response(str(exc), status_code)

    relay_requests_total.labels(action=action, status="ok").inc()
    envelope = RelayEnvelope(success=True, data=data)
    return JSONResponse(status_code=200, content=envelope.model_dump(exclude_none=True))
