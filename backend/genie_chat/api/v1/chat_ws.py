from __future__ import annotations

import asyncio
import contextlib
from collections.abc import AsyncIterator
from typing import Any

import structlog
from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from genie_chat.metrics import websocket_connections
from genie_chat.orchestrator import ChatEvent, Session, build_orchestrator

logger = structlog.get_logger()

router = APIRouter(tags=["websocket"])


def _history_message(session: Session) -> dict[str, Any]:
    return {
        "type": "history",
        "conversation_id": session.conversation_id,
        "messages": [turn.model_dump(mode="json") for turn in session.history],
    }


async def _forward_events(websocket: WebSocket, events: AsyncIterator[ChatEvent]) -> None:
    """Send every orchestrator event to the client as JSON.

    The event generator is closed when this coroutine ends or is cancelled,
    so polling never outlives the connection.
    """
    async with contextlib.aclosing(events) as stream:
        async for event in stream:
            await websocket.send_json(event.model_dump(mode="json", exclude_none=True))


@router.websocket("/ws")
async def chat_websocket(websocket: WebSocket, session_id: str = "default") -> None:
    """WebSocket endpoint for the chat view.

    One orchestrator per connection, restored from durable storage keyed by
    ``session_id`` so a page reload gets its history back. On connect the
    server sends ``{"type": "history", ...}``. Client message types:

    * ``ping``: heartbeat; responds with ``{"type": "pong"}``
    * ``history``: resend the persisted history
    * ``query``: submit ``question``; orchestrator events are streamed back
    * ``retry``: resubmit the last question

    Queries run as tasks so the socket keeps reading while one is in flight;
    a second query meanwhile is answered with a ``busy`` event. Tasks are
    cancelled when the socket closes.

    Args:
        websocket: The Starlette WebSocket connection.
        session_id: Client session identifier (query parameter).
    """
    await websocket.accept()
    websocket_connections.inc()
    logger.info("ws_connection_opened", client=str(websocket.client), session_id=session_id)

    tasks: set[asyncio.Task[None]] = set()

    def _start(events: AsyncIterator[ChatEvent]) -> None:
        task = asyncio.create_task(_forward_events(websocket, events))
        tasks.add(task)
        task.add_done_callback(tasks.discard)
        task.add_done_callback(_log_task_failure)

    try:
        orchestrator = build_orchestrator(session_id)
        session = await orchestrator.restore()
        await websocket.send_json(_history_message(session))

        while True:
            try:
                data: dict[str, Any] = await websocket.receive_json()
            except WebSocketDisconnect:
                logger.info("ws_connection_closed", client=str(websocket.client))
                return

            msg_type: str = data.get("type", "")

            if msg_type == "ping":
                await websocket.send_json({"type": "pong"})
                continue

            if msg_type == "history":
                await websocket.send_json(_history_message(orchestrator.session))
                continue

            if msg_type == "query":
                _start(orchestrator.submit_question(str(data.get("question", ""))))
                continue

            if msg_type == "retry":
                _start(orchestrator.retry())
                continue

            # Unknown message type, ignored
            logger.warning("ws_unknown_message_type", msg_type=msg_type)

    except WebSocketDisconnect:
        logger.info("ws_connection_closed", client=str(websocket.client))
    except Exception as exc:
        logger.error("ws_unhandled_error", error=str(exc))
        with contextlib.suppress(Exception):
            await websocket.send_json({"type": "error", "detail": "Internal server error"})
    finally:
        for task in list(tasks):
            task.cancel()
        websocket_connections.dec()


def _log_task_failure(task: asyncio.Task[None]) -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error("ws_query_task_failed", error=str(exc))
