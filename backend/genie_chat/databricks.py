from __future__ import annotations

from typing import Any

import httpx
import structlog

logger = structlog.get_logger()


class GenieAPIError(Exception):
    """Databricks Genie API call failed.

    ``status_code`` is ``None`` when the workspace could not be reached at all,
    and 502 when it answered with a body that is not a JSON object.
    """

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class DatabricksGenieClient:
    """Thin async client for the Databricks Genie conversation API.

    The Genie flow is: start a conversation, send a message into it, then
    read the message back until it reaches a terminal status. Messages carry
    ``attachments`` once completed (generated SQL, query result, text).
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        workspace_url: str,
        token: str,
        space_id: str,
        conversation_title: str = "Genie Chat",
    ) -> None:
        self._http = http_client
        self._base_url = f"{workspace_url.rstrip('/')}/api/2.0/genie/spaces/{space_id}"
        self._headers = {"Authorization": f"Bearer {token}", "Content-Type": "application/json"}
        self._conversation_title = conversation_title

    async def start_conversation(self) -> dict[str, Any]:
        """Create a new conversation thread.

        Returns:
            The Genie response, including ``conversation_id`` and
            ``created_timestamp``.
        """
        # Older API versions read "content", newer ones "title"
        body = {"content": self._conversation_title, "title": self._conversation_title}
        data = await self._request("POST", "/start-conversation", "start conversation", json=body)
        logger.info("genie_conversation_started", conversation_id=data.get("conversation_id"))
        return data

    async def send_message(self, conversation_id: str, content: str) -> dict[str, Any]:
        """Send a question into an existing conversation.

        Returns:
            The created message: ``id``, initial ``status`` (usually
            ``EXECUTING``) and an empty ``attachments`` list.
        """
        data = await self._request(
            "POST",
            f"/conversations/{conversation_id}/messages",
            "send message",
            json={"content": content},
        )
        logger.info("genie_message_sent", message_id=data.get("id"), status=data.get("status"))
        return data

    async def get_message(self, conversation_id: str, message_id: str) -> dict[str, Any]:
        """Read the current state of a message."""
        data = await self._request(
            "GET",
            f"/conversations/{conversation_id}/messages/{message_id}",
            "poll result",
        )
        logger.debug("genie_message_polled", message_id=message_id, status=data.get("status"))
        return data

    async def _request(self, method: str, path: str, operation: str, **kwargs: Any) -> dict[str, Any]:
        url = self._base_url + path
        try:
            response = await self._http.request(method, url, headers=self._headers, **kwargs)
        except httpx.TimeoutException as exc:
            logger.error("genie_request_timeout", operation=operation, url=url)
            raise GenieAPIError(f"Failed to {operation}: timeout") from exc
        except httpx.HTTPError as exc:
            logger.error("genie_request_failed", operation=operation, url=url, error=str(exc))
            raise GenieAPIError(f"Failed to {operation}: network error {exc}") from exc

        if response.is_error:
            body = response.text
            logger.error("genie_http_error", operation=operation, status=response.status_code, body=body[:500])
            raise GenieAPIError(
                f"Failed to {operation}: {response.status_code} {body}",
                status_code=response.status_code,
            )

        try:
            data = response.json()
        except ValueError as exc:
            logger.error(
                "genie_invalid_response",
                operation=operation,
                status=response.status_code,
                body=response.text[:500],
            )
            raise GenieAPIError(f"Failed to {operation}: invalid response from Databricks", status_code=502) from exc
        if not isinstance(data, dict):
            raise GenieAPIError(f"Failed to {operation}: unexpected response from Databricks", status_code=502)
        return data
