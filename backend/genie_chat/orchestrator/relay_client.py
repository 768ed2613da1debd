from __future__ import annotations

from typing import Any

import httpx
import structlog

from genie_chat.exceptions import ErrorKind, RelayCallError, classify_status_code
from genie_chat.schemas.relay import RelayAction

logger = structlog.get_logger()

# Relay-side ``type`` field, used when the HTTP status alone is ambiguous
_RELAY_TYPE_KINDS: dict[str, ErrorKind] = {
    "auth": ErrorKind.AUTH,
    "rate_limit": ErrorKind.RATE_LIMITED,
    "timeout": ErrorKind.SERVER_ERROR,
    "network": ErrorKind.SERVER_ERROR,
}


class RelayClient:
    """Calls the relay endpoint; never sees the Databricks credential.

    Every failure is raised as a RelayCallError with a classified kind:

    * relay unreachable, or a body that is not JSON -> ``network``
    * 401/403 -> ``auth``, 429 -> ``rate-limited``, 5xx -> ``server-error``
    * ``success: false`` with an otherwise unclassified status -> the relay's
      own ``type`` when it names one, else ``unknown``
    """

    def __init__(self, http_client: httpx.AsyncClient, url: str) -> None:
        self._http = http_client
        self._url = url

    async def call(self, action: RelayAction, **params: str | None) -> dict[str, Any]:
        """POST one action to the relay and unwrap the envelope.

        Args:
            action: One of ``start-conversation``, ``send-message``,
                ``poll-result``.
            **params: ``conversationId``, ``messageId``, ``content``; ``None``
                values are dropped.

        Returns:
            The envelope's ``data`` payload.

        Raises:
            RelayCallError: On any transport, HTTP or envelope failure.
        """
        body = {"action": action, **{k: v for k, v in params.items() if v is not None}}
        try:
            response = await self._http.post(self._url, json=body)
        except httpx.HTTPError as exc:
            logger.error("relay_unreachable", action=action, error=str(exc))
            raise RelayCallError(ErrorKind.NETWORK, f"Could not reach relay: {exc}") from exc

        try:
            envelope = response.json()
        except ValueError as exc:
            logger.error(
                "relay_non_json_response",
                action=action,
                status=response.status_code,
                body=response.text[:200],
            )
            raise RelayCallError(
                ErrorKind.NETWORK,
                f"Invalid response from server ({response.status_code})",
                status_code=response.status_code,
            ) from exc

        if not isinstance(envelope, dict):
            raise RelayCallError(ErrorKind.NETWORK, "Invalid response envelope", status_code=response.status_code)

        if response.is_success and envelope.get("success"):
            data = envelope.get("data")
            return data if isinstance(data, dict) else {}

        detail = str(envelope.get("error") or f"Server error: {response.status_code}")
        kind = classify_status_code(response.status_code) if response.is_error else ErrorKind.UNKNOWN
        if kind is ErrorKind.UNKNOWN:
            kind = _RELAY_TYPE_KINDS.get(str(envelope.get("type")), ErrorKind.UNKNOWN)
        logger.warning("relay_call_failed", action=action, status=response.status_code, kind=kind.value, error=detail)
        raise RelayCallError(kind, detail, status_code=response.status_code)

    async def start_conversation(self) -> str:
        data = await self.call("start-conversation")
        conversation_id = data.get("conversation_id")
        if not isinstance(conversation_id, str) or not conversation_id:
            raise RelayCallError(ErrorKind.UNKNOWN, "start-conversation returned no conversation_id")
        return conversation_id

    async def send_message(self, conversation_id: str, content: str) -> tuple[str, str | None]:
        """Returns ``(message_id, initial_status)``."""
        data = await self.call("send-message", conversationId=conversation_id, content=content)
        message_id = data.get("id") or data.get("message_id")
        if not isinstance(message_id, str) or not message_id:
            raise RelayCallError(ErrorKind.UNKNOWN, "send-message returned no message id")
        return message_id, data.get("status")

    async def poll_result(self, conversation_id: str, message_id: str) -> dict[str, Any]:
        return await self.call("poll-result", conversationId=conversation_id, messageId=message_id)
