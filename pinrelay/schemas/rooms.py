"""Room, peer and message records shared by both signaling bindings."""
from __future__ import annotations

import enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class PeerRole(str, enum.Enum):
    INITIATOR = "initiator"
    JOINER = "joiner"

    @property
    def opposite(self) -> "PeerRole":
        return PeerRole.JOINER if self is PeerRole.INITIATOR else PeerRole.INITIATOR


class MessageKind(str, enum.Enum):
    OFFER = "offer"
    ANSWER = "answer"
    ICE_CANDIDATE = "ice-candidate"
    JOINER_CONNECTED = "joiner-connected"
    PEER_DISCONNECTED = "peer-disconnected"


# Kinds a participant may relay; the rest are broker notifications.
SIGNAL_KINDS = frozenset({MessageKind.OFFER, MessageKind.ANSWER, MessageKind.ICE_CANDIDATE})


class Peer(BaseModel):
    secret_id: str
    last_seen_at: float


class Message(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    kind: MessageKind
    payload: Any = None
    enqueued_at: float = Field(alias="enqueuedAt")


class Room(BaseModel):
    """A pairing slot for one initiator and at most one joiner.

    The two queues are only used by the mailbox delivery strategy; the push
    strategy keeps live connections in its own registry.
    """

    code: str
    created_at: float
    updated_at: float
    initiator: Peer
    joiner: Peer | None = None
    to_initiator: list[Message] = Field(default_factory=list)
    to_joiner: list[Message] = Field(default_factory=list)

    def peer(self, role: PeerRole) -> Peer | None:
        return self.initiator if role is PeerRole.INITIATOR else self.joiner

    def queue(self, role: PeerRole) -> list[Message]:
        return self.to_initiator if role is PeerRole.INITIATOR else self.to_joiner

    def set_queue(self, role: PeerRole, messages: list[Message]) -> None:
        if role is PeerRole.INITIATOR:
            self.to_initiator = messages
        else:
            self.to_joiner = messages
