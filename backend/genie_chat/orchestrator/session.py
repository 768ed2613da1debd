from __future__ import annotations

import pydantic
import structlog
from redis.exceptions import RedisError

from genie_chat.exceptions import SessionStoreError
from genie_chat.orchestrator.models import Session, Turn
from genie_chat.orchestrator.storage import SessionStorage

logger = structlog.get_logger()

DEFAULT_HISTORY_LIMIT = 20


class SessionRepository:
    """Loads and saves the whole Session document under one storage key.

    Saves always write the full document (never individual fields) and keep
    only the most recent ``history_limit`` turns. Storage failures surface as
    SessionStoreError.
    """

    def __init__(self, storage: SessionStorage, key: str, history_limit: int = DEFAULT_HISTORY_LIMIT) -> None:
        self.storage = storage
        self.key = key
        self.history_limit = history_limit

    async def load(self) -> Session:
        """Read the stored session; missing or unparsable documents give an empty one.

        Raises:
            SessionStoreError: If the store itself cannot be reached.
        """
        try:
            raw = await self.storage.get(self.key)
        except UnicodeDecodeError as exc:
            logger.warning("session_state_discarded", key=self.key, error=str(exc)[:200])
            return Session()
        except (OSError, RedisError) as exc:
            logger.error("session_state_load_failed", key=self.key, error=str(exc))
            raise SessionStoreError(f"Could not read session state: {exc}") from exc

        if raw is None:
            return Session()
        try:
            session = Session.model_validate_json(raw)
        except pydantic.ValidationError as exc:
            logger.warning("session_state_discarded", key=self.key, error=str(exc)[:200])
            return Session()
        return self._bounded(session)

    async def save(self, session: Session) -> Session:
        """Persist ``session`` and return the (history-bounded) copy written.

        Raises:
            SessionStoreError: If the write fails.
        """
        bounded = self._bounded(session)
        try:
            await self.storage.set(self.key, bounded.model_dump_json(by_alias=True))
        except (OSError, RedisError) as exc:
            logger.error("session_state_save_failed", key=self.key, error=str(exc))
            raise SessionStoreError(f"Could not save session state: {exc}") from exc
        logger.debug(
            "session_state_saved",
            key=self.key,
            conversation_id=bounded.conversation_id,
            turns=len(bounded.history),
        )
        return bounded

    async def append_turn(self, session: Session, turn: Turn) -> Session:
        return await self.save(session.model_copy(update={"history": [*session.history, turn]}))

    async def set_conversation_id(self, session: Session, conversation_id: str) -> Session:
        if session.conversation_id is not None and session.conversation_id != conversation_id:
            raise ValueError("conversation id is already set for this session")
        return await self.save(session.model_copy(update={"conversation_id": conversation_id}))

    def _bounded(self, session: Session) -> Session:
        if len(session.history) <= self.history_limit:
            return session
        return session.model_copy(update={"history": session.history[len(session.history) - self.history_limit :]})
