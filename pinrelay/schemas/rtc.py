"""Frames exchanged over the push signaling WebSocket."""
from __future__ import annotations

import enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ClientFrameType(str, enum.Enum):
    CREATE_ROOM = "create-room"
    JOIN_ROOM = "join-room"
    OFFER = "offer"
    ANSWER = "answer"
    ICE_CANDIDATE = "ice-candidate"


class ClientFrame(BaseModel):
    model_config = ConfigDict(extra="ignore")

    type: str = Field(..., description="Frame type, e.g. create-room or offer")
    pin: str | None = Field(default=None, description="Room PIN the frame refers to")
    payload: Any = None


def error_frame(message: str, reason: str) -> dict[str, str]:
    return {"type": "error", "message": message, "reason": reason}
