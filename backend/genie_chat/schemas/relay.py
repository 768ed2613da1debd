from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

RelayAction = Literal["start-conversation", "send-message", "poll-result"]


class RelayRequest(BaseModel):
    """Body of a POST to the relay endpoint."""

    model_config = ConfigDict(populate_by_name=True)

    action: str
    conversation_id: str | None = Field(default=None, alias="conversationId")
    message_id: str | None = Field(default=None, alias="messageId")
    content: str | None = None


class RelayEnvelope(BaseModel):
    """Uniform response envelope returned by the relay."""

    success: bool
    data: dict[str, Any] | None = None
    error: str | None = None
    type: str | None = None


class RelayLiveness(BaseModel):
    message: str
    method: str
    timestamp: str
