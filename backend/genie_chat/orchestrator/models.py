from __future__ import annotations

import enum
import time
from typing import Union

from pydantic import BaseModel, ConfigDict, Field

from genie_chat.exceptions import ErrorKind

Cell = Union[str, int, float, bool, None]


def now_ms() -> int:
    return int(time.time() * 1000)


class Role(str, enum.Enum):
    USER = "user"
    ASSISTANT = "assistant"


class Turn(BaseModel):
    """One immutable unit of displayed conversation content."""

    model_config = ConfigDict(frozen=True)

    role: Role
    content: str
    timestamp: int = Field(default_factory=now_ms)


class Session(BaseModel):
    """Persisted per-client state: the conversation handle and recent turns.

    Serialised with the ``conversationId`` / ``messages`` keys so a stored
    document matches what the browser widget keeps in local storage.
    """

    model_config = ConfigDict(populate_by_name=True)

    conversation_id: str | None = Field(default=None, alias="conversationId")
    history: list[Turn] = Field(default_factory=list, alias="messages")


class PendingQuery(BaseModel):
    """The single in-flight question; never persisted."""

    question_text: str
    message_id: str | None = None
    attempt: int = 0
    started_at: float


class OutcomeStatus(str, enum.Enum):
    COMPLETED_WITH_DATA = "completed-with-data"
    COMPLETED_EMPTY = "completed-empty"
    COMPLETED_NARRATIVE_ONLY = "completed-narrative-only"
    FAILED = "failed"
    TIMED_OUT = "timed-out"


class ColumnType(str, enum.Enum):
    STRING = "STRING"
    LONG = "LONG"
    INT = "INT"
    INTEGER = "INTEGER"
    SHORT = "SHORT"
    BYTE = "BYTE"
    DOUBLE = "DOUBLE"
    FLOAT = "FLOAT"
    DECIMAL = "DECIMAL"
    BOOLEAN = "BOOLEAN"
    DATE = "DATE"
    TIMESTAMP = "TIMESTAMP"
    BINARY = "BINARY"
    UNKNOWN = "UNKNOWN"

    @classmethod
    def parse(cls, raw: object) -> ColumnType:
        """Map a Databricks type name (``DECIMAL(10,2)`` included) to a member."""
        if not isinstance(raw, str):
            return cls.UNKNOWN
        name = raw.split("(", 1)[0].strip().upper()
        try:
            return cls(name)
        except ValueError:
            return cls.UNKNOWN

    @property
    def is_numeric(self) -> bool:
        return self in _NUMERIC_TYPES


_NUMERIC_TYPES = frozenset(
    {
        ColumnType.LONG,
        ColumnType.INT,
        ColumnType.INTEGER,
        ColumnType.SHORT,
        ColumnType.BYTE,
        ColumnType.DOUBLE,
        ColumnType.FLOAT,
        ColumnType.DECIMAL,
    }
)


class Column(BaseModel):
    name: str
    type: ColumnType = ColumnType.STRING


class QueryOutcome(BaseModel):
    """Normalized terminal result of one submitted question."""

    status: OutcomeStatus
    rows: list[list[Cell]] | None = None
    columns: list[Column] = Field(default_factory=list)
    narrative: str | None = None
    generated_query_text: str | None = None
    truncated: bool = False
    row_count: int | None = None
    error_kind: ErrorKind | None = None
    error_detail: str | None = None


class EventType(str, enum.Enum):
    USER_TURN_APPENDED = "user-turn-appended"
    TYPING_STARTED = "typing-started"
    TYPING_STOPPED = "typing-stopped"
    ASSISTANT_CONTENT_APPENDED = "assistant-content-appended"
    ERROR_RAISED = "error-raised"
    BUSY = "busy"
    OUTCOME = "outcome"


class ErrorInfo(BaseModel):
    kind: ErrorKind
    retryable: bool
    message: str
    detail: str | None = None
    question: str | None = None


class ChatEvent(BaseModel):
    """Event emitted to the presentation layer while a question is handled."""

    type: EventType
    turn: Turn | None = None
    error: ErrorInfo | None = None
    outcome: QueryOutcome | None = None
