from __future__ import annotations

import json
from collections.abc import Iterator
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest
from httpx import AsyncClient

from genie_chat.config import settings
from genie_chat.databricks import DatabricksGenieClient, GenieAPIError
from genie_chat.middleware.rate_limit import limiter


@pytest.fixture(autouse=True)
def _reset_rate_limit() -> Iterator[None]:
    limiter.reset()
    yield
    limiter.reset()


@pytest.fixture
def genie_client() -> Iterator[MagicMock]:
    client = MagicMock()
    client.start_conversation = AsyncMock(return_value={"conversation_id": "c1", "created_timestamp": 1700000000000})
    client.send_message = AsyncMock(return_value={"id": "m1", "status": "EXECUTING", "attachments": []})
    client.get_message = AsyncMock(return_value={"id": "m1", "status": "COMPLETED", "attachments": []})
    with patch("genie_chat.api.genie.get_genie_client", return_value=client):
        yield client


@pytest.mark.anyio
async def test_liveness_check(api_client: AsyncClient) -> None:
    response = await api_client.get("/api/genie")

    assert response.status_code == 200
    body = response.json()
    assert body["message"] == "Genie API is running"
    assert body["method"] == "Use POST with action parameter"
    assert "timestamp" in body


@pytest.mark.anyio
async def test_start_conversation_is_forwarded(api_client: AsyncClient, genie_client: MagicMock) -> None:
    response = await api_client.post("/api/genie", json={"action": "start-conversation"})

    assert response.status_code == 200
    assert response.json() == {
        "success": True,
        "data": {"conversation_id": "c1", "created_timestamp": 1700000000000},
    }
    genie_client.start_conversation.assert_awaited_once_with()


@pytest.mark.anyio
async def test_send_message_and_poll_are_forwarded(api_client: AsyncClient, genie_client: MagicMock) -> None:
    sent = await api_client.post(
        "/api/genie",
        json={"action": "send-message", "conversationId": "c1", "content": "Who won in 1988?"},
    )
    polled = await api_client.post(
        "/api/genie",
        json={"action": "poll-result", "conversationId": "c1", "messageId": "m1"},
    )

    assert sent.json()["data"]["status"] == "EXECUTING"
    assert polled.json()["data"]["status"] == "COMPLETED"
    genie_client.send_message.assert_awaited_once_with("c1", "Who won in 1988?")
    genie_client.get_message.assert_awaited_once_with("c1", "m1")


@pytest.mark.anyio
async def test_double_encoded_body_is_accepted(api_client: AsyncClient, genie_client: MagicMock) -> None:
    response = await api_client.post(
        "/api/genie",
        content=json.dumps(json.dumps({"action": "start-conversation"})),
        headers={"Content-Type": "application/json"},
    )

    assert response.status_code == 200
    assert response.json()["success"] is True


@pytest.mark.anyio
@pytest.mark.parametrize(
    "body",
    [
        {"action": "send-message", "conversationId": "c1"},
        {"action": "send-message", "content": "Who won?"},
        {"action": "poll-result", "conversationId": "c1"},
        {"action": "delete-everything"},
        {"conversationId": "c1"},
        {"action": 7},
    ],
)
async def test_invalid_requests_are_rejected(api_client: AsyncClient, genie_client: MagicMock, body: dict) -> None:
    response = await api_client.post("/api/genie", json=body)

    assert response.status_code == 400
    assert response.json()["success"] is False
    assert response.json()["error"]
    genie_client.send_message.assert_not_awaited()
    genie_client.get_message.assert_not_awaited()


@pytest.mark.anyio
async def test_malformed_json_is_rejected(api_client: AsyncClient, genie_client: MagicMock) -> None:
    response = await api_client.post(
        "/api/genie",
        content=b"{action: start",
        headers={"Content-Type": "application/json"},
    )

    assert response.status_code == 400
    assert response.json()["error"] == "Invalid JSON in request body"


@pytest.mark.anyio
@pytest.mark.parametrize(("upstream", "expected_type"), [(401, "auth"), (429, "rate_limit"), (500, "default")])
async def test_upstream_status_is_passed_through(
    api_client: AsyncClient,
    genie_client: MagicMock,
    upstream: int,
    expected_type: str,
) -> None:
    genie_client.start_conversation.side_effect = GenieAPIError(
        f"Failed to start conversation: {upstream} upstream body", status_code=upstream
    )

    response = await api_client.post("/api/genie", json={"action": "start-conversation"})

    assert response.status_code == upstream
    assert response.json()["success"] is False
    assert response.json()["type"] == expected_type


@pytest.mark.anyio
async def test_unreachable_workspace_is_bad_gateway(api_client: AsyncClient, genie_client: MagicMock) -> None:
    genie_client.get_message.side_effect = GenieAPIError("Failed to poll result: timeout")

    response = await api_client.post(
        "/api/genie",
        json={"action": "poll-result", "conversationId": "c1", "messageId": "m1"},
    )

    assert response.status_code == 502
    assert response.json()["type"] == "timeout"


@pytest.mark.anyio
async def test_missing_configuration_is_server_error(
    api_client: AsyncClient,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setattr(settings, "DATABRICKS_WORKSPACE_URL", "")

    response = await api_client.post("/api/genie", json={"action": "start-conversation"})

    assert response.status_code == 500
    assert "DATABRICKS_WORKSPACE_URL" in response.json()["error"]


@pytest.mark.anyio
async def test_relay_is_rate_limited(
    api_client: AsyncClient,
    genie_client: MagicMock,
) -> None:
    for _ in range(60):
        await api_client.post("/api/genie", json={"action": "start-conversation"})

    response = await api_client.post("/api/genie", json={"action": "start-conversation"})

    assert response.status_code == 429


@pytest.mark.anyio
async def test_non_json_upstream_body_keeps_envelope(api_client: AsyncClient) -> None:
    """A 200 maintenance page from the workspace becomes a 502 envelope, not a bare 500."""
    upstream = DatabricksGenieClient(
        http_client=httpx.AsyncClient(
            transport=httpx.MockTransport(lambda request: httpx.Response(200, text="<html>Maintenance</html>"))
        ),
        workspace_url="https://adb-1.azuredatabricks.net",
        token="dapi-secret",
        space_id="s1",
    )

    with patch("genie_chat.api.genie.get_genie_client", return_value=upstream):
        response = await api_client.post("/api/genie", json={"action": "start-conversation"})

    assert response.status_code == 502
    body = response.json()
    assert body["success"] is False
    assert body["error"].startswith("Failed to start conversation")
    assert "dapi-secret" not in response.text


@pytest.mark.anyio
async def test_non_utf8_body_is_rejected(api_client: AsyncClient, genie_client: MagicMock) -> None:
    response = await api_client.post(
        "/api/genie",
        content=b'{"action": "start-conversation\xff"}',
        headers={"Content-Type": "application/json"},
    )

    assert response.status_code == 400
    assert response.json()["error"] == "Invalid JSON in request body"
    genie_client.start_conversation.assert_not_awaited()
