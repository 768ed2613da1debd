"""Smoke-test a running relay end to end.

This script:
1. Calls the relay liveness endpoint (GET)
2. Starts a conversation
3. Sends a question into it
4. Polls the message with the normal backoff until it completes
5. Logs the normalized outcome (status, columns, row count, generated SQL)

Exits non-zero on the first failing step.

Usage:
    cd backend && PYTHONPATH=. python ../scripts/smoke_relay.py ["question"]
"""

from __future__ import annotations

import asyncio
import sys
import time

import httpx
import structlog

from genie_chat.config import settings
from genie_chat.exceptions import RelayCallError
from genie_chat.logging_config import setup_logging
from genie_chat.orchestrator.models import PendingQuery
from genie_chat.orchestrator.normalize import normalize_completed
from genie_chat.orchestrator.polling import Clock, MessagePoller, Sleep
from genie_chat.orchestrator.relay_client import RelayClient

logger = structlog.get_logger()

DEFAULT_QUESTION = "Show me the top 5 drivers"


async def run_smoke(
    http_client: httpx.AsyncClient,
    url: str,
    question: str = DEFAULT_QUESTION,
    *,
    sleep: Sleep = asyncio.sleep,
    clock: Clock = time.monotonic,
) -> bool:
    """Run every relay action once; returns True when all of them succeeded."""
    try:
        liveness = await http_client.get(url)
    except httpx.HTTPError as exc:
        logger.error("smoke_liveness_unreachable", url=url, error=str(exc))
        return False
    if liveness.status_code != 200:
        logger.error("smoke_liveness_failed", url=url, status=liveness.status_code)
        return False
    logger.info("smoke_liveness_ok", url=url)

    relay = RelayClient(http_client, url)
    try:
        conversation_id = await relay.start_conversation()
        logger.info("smoke_conversation_started", conversation_id=conversation_id)

        message_id, status = await relay.send_message(conversation_id, question)
        logger.info("smoke_message_sent", message_id=message_id, status=status, question=question)

        pending = PendingQuery(question_text=question, message_id=message_id, started_at=clock())
        poller = MessagePoller(
            relay,
            delays_ms=settings.POLL_DELAYS_MS,
            max_attempts=settings.POLL_MAX_ATTEMPTS,
            budget_seconds=settings.SUBMIT_BUDGET_SECONDS,
            sleep=sleep,
            clock=clock,
        )
        message = await poller.wait_for_completion(conversation_id, pending)
    except RelayCallError as exc:
        logger.error("smoke_failed", kind=exc.kind.value, status=exc.status_code, detail=exc.detail)
        return False

    outcome, _ = normalize_completed(message)
    logger.info(
        "smoke_passed",
        status=outcome.status.value,
        attempts=pending.attempt + 1,
        columns=[column.name for column in outcome.columns],
        row_count=len(outcome.rows or []),
        generated_query=outcome.generated_query_text,
    )
    return True


async def _main(question: str) -> bool:
    async with httpx.AsyncClient(timeout=settings.RELAY_TIMEOUT) as client:
        return await run_smoke(client, settings.RELAY_URL, question)


def main() -> None:
    setup_logging(settings.LOG_LEVEL)
    question = sys.argv[1] if len(sys.argv) > 1 else DEFAULT_QUESTION
    logger.info("smoke_started", relay_url=settings.RELAY_URL)

    passed = asyncio.run(_main(question))
    sys.exit(0 if passed else 1)


if __name__ == "__main__":
    main()
