from __future__ import annotations

import asyncio
import time
from collections.abc import AsyncIterator, Sequence

import structlog

from genie_chat.exceptions import ErrorKind, RelayCallError, SessionStoreError, is_retryable, user_message
from genie_chat.metrics import genie_errors_total, genie_outcomes_total, genie_submission_duration
from genie_chat.orchestrator.models import (
    ChatEvent,
    ErrorInfo,
    EventType,
    OutcomeStatus,
    PendingQuery,
    QueryOutcome,
    Role,
    Session,
    Turn,
)
from genie_chat.orchestrator.normalize import normalize_completed
from genie_chat.orchestrator.polling import DEFAULT_DELAYS_MS, DEFAULT_MAX_ATTEMPTS, Clock, MessagePoller, Sleep
from genie_chat.orchestrator.relay_client import RelayClient
from genie_chat.orchestrator.session import SessionRepository

logger = structlog.get_logger()

QUESTION_MIN_LENGTH = 5
QUESTION_MAX_LENGTH = 1000


class ConversationOrchestrator:
    """Owns one client's conversation: identity, history and the in-flight question.

    ``submit_question`` is an async generator of ChatEvents. It is cooperative:
    the only suspension points are the backoff sleeps and relay calls, and at
    most one question is in flight. A second submission while one is pending
    is rejected with a ``busy`` event, never queued. Closing the generator (or
    cancelling the task consuming it) stops polling and clears the pending
    query.
    """

    def __init__(
        self,
        relay: RelayClient,
        repository: SessionRepository,
        *,
        poll_delays_ms: Sequence[int] = DEFAULT_DELAYS_MS,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        budget_seconds: float = 60.0,
        min_length: int = QUESTION_MIN_LENGTH,
        max_length: int = QUESTION_MAX_LENGTH,
        sleep: Sleep = asyncio.sleep,
        clock: Clock = time.monotonic,
    ) -> None:
        self._relay = relay
        self._repository = repository
        self._poller = MessagePoller(
            relay,
            delays_ms=poll_delays_ms,
            max_attempts=max_attempts,
            budget_seconds=budget_seconds,
            sleep=sleep,
            clock=clock,
        )
        self._clock = clock
        self._min_length = min_length
        self._max_length = max_length
        self._session = Session()
        self._pending: PendingQuery | None = None
        self._last_question: str | None = None

    @property
    def session(self) -> Session:
        return self._session

    @property
    def pending(self) -> PendingQuery | None:
        return self._pending

    @property
    def busy(self) -> bool:
        return self._pending is not None

    @property
    def last_question(self) -> str | None:
        return self._last_question

    async def restore(self) -> Session:
        """Load the persisted session; called once when the client connects."""
        self._session = await self._repository.load()
        if self._session.conversation_id:
            logger.info(
                "conversation_restored",
                conversation_id=self._session.conversation_id,
                turns=len(self._session.history),
            )
        return self._session

    def validate_question(self, text: str) -> str | None:
        """Return the trimmed question, or ``None`` when its length is out of bounds."""
        question = text.strip()
        if not self._min_length <= len(question) <= self._max_length:
            return None
        return question

    async def retry(self) -> AsyncIterator[ChatEvent]:
        """Resubmit the last captured question."""
        if self._last_question is None:
            yield self._error_event(ErrorKind.INVALID_INPUT, "Nothing to retry", None)
            yield ChatEvent(
                type=EventType.OUTCOME,
                outcome=QueryOutcome(status=OutcomeStatus.FAILED, error_kind=ErrorKind.INVALID_INPUT),
            )
            return
        async for event in self.submit_question(self._last_question):
            yield event

    async def submit_question(self, text: str) -> AsyncIterator[ChatEvent]:
        """Ask one question and stream the resulting events.

        Order of effects: the user turn is appended and persisted, the
        conversation is started if this session has none yet, the question is
        sent, the message is polled to a terminal state, and the normalized
        content is appended as assistant turns. Failures at any step, session
        store failures included, end in an ``error-raised`` event followed by
        the ``outcome`` event; the user turn stays in history so the question
        can be retried.

        Args:
            text: Raw user input; trimmed and length-checked before anything
                else happens.

        Yields:
            ChatEvents, ending with an ``outcome`` event (or a single ``busy``
            event when another question is still in flight).
        """
        question = self.validate_question(text)
        if question is None:
            logger.info("question_rejected_invalid", length=len(text.strip()))
            genie_errors_total.labels(kind=ErrorKind.INVALID_INPUT.value).inc()
            yield self._error_event(
                ErrorKind.INVALID_INPUT,
                f"Question must be between {self._min_length} and {self._max_length} characters",
                text,
            )
            yield ChatEvent(
                type=EventType.OUTCOME,
                outcome=QueryOutcome(status=OutcomeStatus.FAILED, error_kind=ErrorKind.INVALID_INPUT),
            )
            return

        if self._pending is not None:
            logger.info("question_rejected_busy", pending_message_id=self._pending.message_id)
            yield ChatEvent(type=EventType.BUSY)
            return

        pending = PendingQuery(question_text=question, started_at=self._clock())
        self._pending = pending
        self._last_question = question
        submitted_at = self._clock()
        try:
            outcome: QueryOutcome | None = None
            fragments: list[str] = []
            try:
                turn = await self._append_turn(Role.USER, question)
            except SessionStoreError as exc:
                outcome = self._failed_outcome(ErrorKind.UNKNOWN, str(exc))
            else:
                yield ChatEvent(type=EventType.USER_TURN_APPENDED, turn=turn)

                typing = False
                try:
                    conversation_id = await self._ensure_conversation()
                    pending.message_id, initial_status = await self._relay.send_message(conversation_id, question)
                    pending.started_at = self._clock()
                    logger.info(
                        "question_sent",
                        conversation_id=conversation_id,
                        message_id=pending.message_id,
                        status=initial_status,
                        question_length=len(question),
                    )

                    typing = True
                    yield ChatEvent(type=EventType.TYPING_STARTED)

                    message = await self._poller.wait_for_completion(conversation_id, pending)
                    outcome, fragments = normalize_completed(message)
                except RelayCallError as exc:
                    outcome = self._failed_outcome(exc.kind, exc.detail)
                except SessionStoreError as exc:
                    outcome = self._failed_outcome(ErrorKind.UNKNOWN, str(exc))

                if typing:
                    yield ChatEvent(type=EventType.TYPING_STOPPED)

                try:
                    for fragment in fragments:
                        turn = await self._append_turn(Role.ASSISTANT, fragment)
                        yield ChatEvent(type=EventType.ASSISTANT_CONTENT_APPENDED, turn=turn)
                except SessionStoreError as exc:
                    outcome = self._failed_outcome(ErrorKind.UNKNOWN, str(exc))

            if outcome.error_kind is not None:
                genie_errors_total.labels(kind=outcome.error_kind.value).inc()
                yield self._error_event(outcome.error_kind, outcome.error_detail, question)

            genie_outcomes_total.labels(status=outcome.status.value).inc()
            genie_submission_duration.observe(self._clock() - submitted_at)
            logger.info(
                "question_resolved",
                status=outcome.status.value,
                error_kind=outcome.error_kind.value if outcome.error_kind else None,
                message_id=pending.message_id,
                attempts=pending.attempt,
            )
            yield ChatEvent(type=EventType.OUTCOME, outcome=outcome)
        finally:
            self._pending = None

    async def _ensure_conversation(self) -> str:
        if self._session.conversation_id:
            return self._session.conversation_id
        conversation_id = await self._relay.start_conversation()
        self._session = await self._repository.set_conversation_id(self._session, conversation_id)
        logger.info("conversation_started", conversation_id=conversation_id)
        return conversation_id

    async def _append_turn(self, role: Role, content: str) -> Turn:
        turn = Turn(role=role, content=content)
        self._session = await self._repository.append_turn(self._session, turn)
        return turn

    @staticmethod
    def _failed_outcome(kind: ErrorKind, detail: str) -> QueryOutcome:
        status = OutcomeStatus.TIMED_OUT if kind is ErrorKind.TIMEOUT else OutcomeStatus.FAILED
        return QueryOutcome(status=status, error_kind=kind, error_detail=detail or None)

    @staticmethod
    def _error_event(kind: ErrorKind, detail: str | None, question: str | None) -> ChatEvent:
        return ChatEvent(
            type=EventType.ERROR_RAISED,
            error=ErrorInfo(
                kind=kind,
                retryable=is_retryable(kind),
                message=user_message(kind, detail or ""),
                detail=detail,
                question=question,
            ),
        )
