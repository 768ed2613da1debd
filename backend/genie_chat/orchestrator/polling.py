"""Bounded polling of a sent message until it reaches a terminal status.

States: SENT -> intermediate (EXECUTING, FILTERING_CONTEXT,
QUERY_RESULT_EXPIRED, anything unrecognised) -> COMPLETED | FAILED, with
TIMED_OUT reached when the attempt budget or the wall-clock budget runs out
first. Each poll is preceded by a backoff sleep (500, 1000, 2000 ms, then
5000 ms for every later attempt).
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable, Sequence

import structlog

from genie_chat.exceptions import ErrorKind, RelayCallError
from genie_chat.metrics import genie_poll_attempts
from genie_chat.orchestrator.models import PendingQuery
from genie_chat.orchestrator.payloads import CompletedMessage, FailedMessage, decode_message
from genie_chat.orchestrator.relay_client import RelayClient

logger = structlog.get_logger()

DEFAULT_DELAYS_MS: tuple[int, ...] = (500, 1000, 2000, 5000)
DEFAULT_MAX_ATTEMPTS = 30

Sleep = Callable[[float], Awaitable[None]]
Clock = Callable[[], float]


def poll_delay_ms(attempt: int, delays_ms: Sequence[int] = DEFAULT_DELAYS_MS) -> int:
    """Backoff before poll ``attempt`` (0-based); the last entry is the ceiling."""
    if attempt < 0:
        raise ValueError("attempt must be >= 0")
    return delays_ms[min(attempt, len(delays_ms) - 1)]


def cumulative_delay_ms(attempt: int, delays_ms: Sequence[int] = DEFAULT_DELAYS_MS) -> int:
    """Total backoff waited before the polls preceding ``attempt``."""
    return sum(poll_delay_ms(i, delays_ms) for i in range(attempt))


class MessagePoller:
    """Drives one PendingQuery to a terminal state.

    Sleep and clock are injected so the state machine can be exercised
    without real waiting.
    """

    def __init__(
        self,
        relay: RelayClient,
        *,
        delays_ms: Sequence[int] = DEFAULT_DELAYS_MS,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        budget_seconds: float = 60.0,
        sleep: Sleep = asyncio.sleep,
        clock: Clock = time.monotonic,
    ) -> None:
        self._relay = relay
        self._delays_ms = tuple(delays_ms)
        self._max_attempts = max_attempts
        self._budget_seconds = budget_seconds
        self._sleep = sleep
        self._clock = clock

    async def wait_for_completion(self, conversation_id: str, pending: PendingQuery) -> CompletedMessage:
        """Poll until COMPLETED.

        Args:
            conversation_id: Conversation the message belongs to.
            pending: The in-flight query; ``attempt`` is advanced in place and
                ``started_at`` anchors the wall-clock budget.

        Returns:
            The decoded COMPLETED message.

        Raises:
            RelayCallError: ``query-failed`` when the message FAILED,
                ``timeout`` when a budget ran out, or whatever the relay call
                raised.
        """
        if pending.message_id is None:
            raise ValueError("pending query has no message id")

        deadline = pending.started_at + self._budget_seconds
        while pending.attempt < self._max_attempts:
            remaining = deadline - self._clock()
            if remaining <= 0:
                break

            delay = poll_delay_ms(pending.attempt, self._delays_ms) / 1000
            logger.debug("genie_poll_wait", message_id=pending.message_id, attempt=pending.attempt, delay_s=delay)
            await self._sleep(min(delay, remaining))

            data = await self._relay.poll_result(conversation_id, pending.message_id)
            message = decode_message(data)

            if isinstance(message, CompletedMessage):
                genie_poll_attempts.observe(pending.attempt + 1)
                logger.info("genie_message_completed", message_id=pending.message_id, attempts=pending.attempt + 1)
                return message

            if isinstance(message, FailedMessage):
                genie_poll_attempts.observe(pending.attempt + 1)
                logger.warning(
                    "genie_message_failed",
                    message_id=pending.message_id,
                    status=message.status,
                    detail=message.detail[:500],
                )
                raise RelayCallError(ErrorKind.QUERY_FAILED, message.detail)

            pending.attempt += 1

        logger.warning(
            "genie_poll_timeout",
            message_id=pending.message_id,
            attempts=pending.attempt,
            elapsed_s=round(self._clock() - pending.started_at, 2),
        )
        raise RelayCallError(
            ErrorKind.TIMEOUT,
            "Query timeout - Genie took too long to respond. This might be a complex query.",
        )
