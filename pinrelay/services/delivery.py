"""Delivery strategies: bounded mailboxes or direct push to a live connection."""
from __future__ import annotations

import abc
import asyncio
import logging
from dataclasses import dataclass, field
from typing import Dict

from ..core.errors import PeerUnavailableError
from ..schemas.rooms import SIGNAL_KINDS, Message, MessageKind, PeerRole, Room

logger = logging.getLogger(__name__)

DEFAULT_MAX_QUEUE_SIZE = 400

# Push frames keep the wire names the browser client already understands.
_FRAME_TYPES = {
    MessageKind.JOINER_CONNECTED: "receiver-connected",
}


class DeliveryStrategy(abc.ABC):
    """Hand a message to the peer holding ``role`` in ``room``."""

    @abc.abstractmethod
    def deliver(self, room: Room, role: PeerRole, message: Message) -> None:
        ...

    @abc.abstractmethod
    def release(self, room: Room, role: PeerRole) -> None:
        """Forget whatever is held for a peer whose slot is being cleared."""

    def drain(self, room: Room, role: PeerRole) -> list[Message]:
        raise TypeError(f"{type(self).__name__} does not buffer messages")


class MailboxDelivery(DeliveryStrategy):
    """Append to the target's queue, trimming the oldest entries past the cap."""

    def __init__(self, max_queue_size: int = DEFAULT_MAX_QUEUE_SIZE) -> None:
        self._max_queue_size = max_queue_size

    def deliver(self, room: Room, role: PeerRole, message: Message) -> None:
        queue = room.queue(role)
        queue.append(message)
        overflow = len(queue) - self._max_queue_size
        if overflow > 0:
            del queue[:overflow]
            logger.debug("Dropped %d queued messages for %s in room %s", overflow, role.value, room.code)

    def release(self, room: Room, role: PeerRole) -> None:
        room.set_queue(role, [])

    def drain(self, room: Room, role: PeerRole) -> list[Message]:
        messages = room.queue(role)
        room.set_queue(role, [])
        return messages


@dataclass(eq=False)
class PeerConnection:
    """A live push connection and the room slot it is linked to, if any."""

    connection_id: str
    outbox: asyncio.Queue[dict] = field(default_factory=asyncio.Queue)
    pin: str | None = None
    secret_id: str | None = None

    @property
    def linked(self) -> bool:
        return self.secret_id is not None

    def send(self, frame: dict) -> None:
        self.outbox.put_nowait(frame)


class PushDelivery(DeliveryStrategy):
    """Forward messages straight to the paired peer's connection."""

    def __init__(self) -> None:
        self._links: Dict[str, PeerConnection] = {}

    def link(self, secret_id: str, pin: str, connection: PeerConnection) -> None:
        connection.pin = pin
        connection.secret_id = secret_id
        self._links[secret_id] = connection

    def connection_for(self, room: Room, role: PeerRole) -> PeerConnection | None:
        peer = room.peer(role)
        if peer is None:
            return None
        return self._links.get(peer.secret_id)

    def deliver(self, room: Room, role: PeerRole, message: Message) -> None:
        connection = self.connection_for(room, role)
        if connection is None:
            raise PeerUnavailableError("Peer is not connected.")
        frame: dict = {"type": _FRAME_TYPES.get(message.kind, message.kind.value), "pin": room.code}
        if message.kind in SIGNAL_KINDS:
            frame["payload"] = message.payload
        connection.send(frame)

    def release(self, room: Room, role: PeerRole) -> None:
        peer = room.peer(role)
        if peer is None:
            return
        connection = self._links.pop(peer.secret_id, None)
        if connection is not None:
            connection.pin = None
            connection.secret_id = None

    @property
    def link_count(self) -> int:
        return len(self._links)
