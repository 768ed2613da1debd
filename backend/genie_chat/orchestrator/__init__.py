from __future__ import annotations

from genie_chat.config import settings
from genie_chat.orchestrator.models import (
    ChatEvent,
    Column,
    ColumnType,
    ErrorInfo,
    EventType,
    OutcomeStatus,
    PendingQuery,
    QueryOutcome,
    Role,
    Session,
    Turn,
)
from genie_chat.orchestrator.orchestrator import ConversationOrchestrator
from genie_chat.orchestrator.relay_client import RelayClient
from genie_chat.orchestrator.session import SessionRepository
from genie_chat.orchestrator.storage import SessionStorage, create_storage


def session_key(client_session_id: str) -> str:
    """Storage key for one client session."""
    return f"{settings.SESSION_STORAGE_KEY}:{client_session_id}"


def build_orchestrator(client_session_id: str, storage: SessionStorage | None = None) -> ConversationOrchestrator:
    """Composition root for one client session, wired from settings."""
    from genie_chat.clients import get_relay_http_client

    repository = SessionRepository(
        storage=storage or create_storage(settings.SESSION_BACKEND),
        key=session_key(client_session_id),
        history_limit=settings.HISTORY_LIMIT,
    )
    return ConversationOrchestrator(
        RelayClient(get_relay_http_client(), settings.RELAY_URL),
        repository,
        poll_delays_ms=settings.POLL_DELAYS_MS,
        max_attempts=settings.POLL_MAX_ATTEMPTS,
        budget_seconds=settings.SUBMIT_BUDGET_SECONDS,
        min_length=settings.QUESTION_MIN_LENGTH,
        max_length=settings.QUESTION_MAX_LENGTH,
    )


__all__ = [
    "ChatEvent",
    "Column",
    "ColumnType",
    "ConversationOrchestrator",
    "ErrorInfo",
    "EventType",
    "OutcomeStatus",
    "PendingQuery",
    "QueryOutcome",
    "RelayClient",
    "Role",
    "Session",
    "SessionRepository",
    "Turn",
    "build_orchestrator",
    "session_key",
]
