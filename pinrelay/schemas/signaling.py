"""Request and response envelopes for the polling signaling endpoint."""
from __future__ import annotations

import enum
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from .rooms import Message


class SignalingAction(str, enum.Enum):
    CREATE_ROOM = "create-room"
    JOIN_ROOM = "join-room"
    SEND_SIGNAL = "send-signal"
    POLL = "poll"
    LEAVE = "leave"


class SignalingRequest(BaseModel):
    """One broker call; ``pin``/``peerId``/``type`` are accepted for older clients."""

    model_config = ConfigDict(extra="ignore")

    action: str
    code: str | None = Field(default=None, validation_alias=AliasChoices("code", "pin"))
    secret_id: str | None = Field(default=None, validation_alias=AliasChoices("secretId", "peerId"))
    kind: str | None = Field(default=None, validation_alias=AliasChoices("kind", "type"))
    payload: Any = None


class RoomTicket(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    code: str
    secret_id: str = Field(alias="secretId")


class PollResult(BaseModel):
    messages: list[Message] = Field(default_factory=list)


class SignalingResponse(BaseModel):
    ok: bool
    data: dict[str, Any] | None = None
    error: str | None = None
    reason: str | None = Field(default=None, description="Stable error kind for client-side classification")
