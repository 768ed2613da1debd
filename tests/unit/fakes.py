from __future__ import annotations

import json
from collections import deque
from collections.abc import AsyncIterator, Callable
from typing import Any

import httpx

from genie_chat.orchestrator.models import ChatEvent
from genie_chat.orchestrator.storage import MemoryStorage

RELAY_URL = "http://relay.test/api/genie"
SESSION_KEY = "GENIE_CHAT_STATE:test"


def ok(data: dict[str, Any]) -> httpx.Response:
    """A successful relay envelope."""
    return httpx.Response(200, json={"success": True, "data": data})


def relay_error(status_code: int, message: str) -> httpx.Response:
    """A failed relay envelope with the given HTTP status."""
    return httpx.Response(status_code, json={"success": False, "error": message})


def message(status: str, attachments: list[dict[str, Any]] | None = None, **extra: Any) -> httpx.Response:
    """A poll-result response carrying a Genie message."""
    return ok({"id": "m1", "status": status, "attachments": attachments or [], **extra})


def table_attachment(
    columns: list[tuple[str, str]],
    rows: list[list[Any]],
    query: str | None = "SELECT 1",
    truncated: bool = False,
    row_count: int | None = None,
) -> dict[str, Any]:
    return {
        "query": {
            "query": query,
            "query_result": {
                "row_count": row_count if row_count is not None else len(rows),
                "data_array": rows,
                "schema": {"columns": [{"name": n, "type": t} for n, t in columns]},
                "truncated": truncated,
            },
        }
    }


class RelayScript:
    """Scripted relay behind an httpx.MockTransport.

    Each action pops its next queued response; when a queue is empty the
    action default builds a fresh response. Every request body is recorded.
    """

    def __init__(self) -> None:
        self.calls: list[dict[str, Any]] = []
        self.queues: dict[str, deque[httpx.Response]] = {
            "start-conversation": deque(),
            "send-message": deque(),
            "poll-result": deque(),
        }
        self.defaults: dict[str, Callable[[], httpx.Response]] = {
            "start-conversation": lambda: ok({"conversation_id": "c1", "created_timestamp": 1700000000000}),
            "send-message": lambda: ok({"id": "m1", "status": "EXECUTING", "attachments": []}),
            "poll-result": lambda: message("EXECUTING"),
        }
        self.on_request: Callable[[dict[str, Any]], None] | None = None

    def queue(self, action: str, *responses: httpx.Response) -> None:
        self.queues[action].extend(responses)

    def handler(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        self.calls.append(body)
        if self.on_request is not None:
            self.on_request(body)
        queue = self.queues[body["action"]]
        return queue.popleft() if queue else self.defaults[body["action"]]()

    @property
    def actions(self) -> list[str]:
        return [call["action"] for call in self.calls]


class FailingStorage(MemoryStorage):
    """Memory storage whose ``fail_on``-th write raises ``error``."""

    def __init__(self, fail_on: int, error: Exception) -> None:
        super().__init__()
        self.fail_on = fail_on
        self.error = error
        self.writes = 0

    async def set(self, key: str, value: str) -> None:
        self.writes += 1
        if self.writes == self.fail_on:
            raise self.error
        await super().set(key, value)


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


class FakeSleep:
    """Records requested sleeps; optionally advances a FakeClock."""

    def __init__(self, clock: FakeClock | None = None) -> None:
        self.delays: list[float] = []
        self.clock = clock

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)
        if self.clock is not None:
            self.clock.now += seconds


async def collect(events: AsyncIterator[ChatEvent]) -> list[ChatEvent]:
    return [event async for event in events]
