"""Room pairing state machine shared by the polling and push bindings."""
from __future__ import annotations

import logging
import time
from typing import Any, Callable, MutableMapping

from ..core.errors import (
    AuthError,
    CapacityError,
    ConflictError,
    NotFoundError,
    PeerUnavailableError,
    ValidationError,
)
from ..schemas.rooms import SIGNAL_KINDS, Message, MessageKind, Peer, PeerRole, Room
from . import identity
from .delivery import DeliveryStrategy

logger = logging.getLogger(__name__)

DEFAULT_CREATE_ATTEMPTS = 1000

Clock = Callable[[], float]


def require_signal_kind(value: object) -> MessageKind:
    """Parse a client-supplied kind, accepting only relayable signals."""

    try:
        kind = MessageKind(value)
    except ValueError:
        raise ValidationError("Invalid signal type.") from None
    if kind not in SIGNAL_KINDS:
        raise ValidationError("Invalid signal type.")
    return kind


class RoomController:
    """Create, join, relay, drain and leave rooms held in ``rooms``.

    The controller owns every mutation of the room table. It never blocks:
    callers are expected to serialise access (one lock per request for the
    polling binding, the event loop for the push binding).
    """

    def __init__(
        self,
        rooms: MutableMapping[str, Room],
        delivery: DeliveryStrategy,
        *,
        clock: Clock = time.time,
        create_attempts: int = DEFAULT_CREATE_ATTEMPTS,
    ) -> None:
        self.rooms = rooms
        self.delivery = delivery
        self.clock = clock
        self._create_attempts = create_attempts

    def create_room(self) -> tuple[Room, Peer]:
        code = identity.generate_unique_pin(self.rooms, self._create_attempts)
        if code is None:
            raise CapacityError("Unable to create room PIN.")

        now = self.clock()
        initiator = Peer(secret_id=identity.generate_secret_id(), last_seen_at=now)
        room = Room(code=code, created_at=now, updated_at=now, initiator=initiator)
        self.rooms[code] = room
        logger.info("Room %s created", code)
        return room, initiator

    def join_room(self, code: object) -> Peer:
        room = self._get_room(identity.require_pin(code))
        if room.joiner is not None:
            raise ConflictError("Room already has a joiner.")

        now = self.clock()
        joiner = Peer(secret_id=identity.generate_secret_id(), last_seen_at=now)
        room.joiner = joiner
        room.updated_at = now
        self._notify(room, PeerRole.INITIATOR, MessageKind.JOINER_CONNECTED)
        logger.info("Joiner paired with room %s", room.code)
        return joiner

    def send_signal(self, code: object, secret_id: object, kind: object, payload: Any) -> Message:
        pin = identity.require_pin(code)
        secret = identity.require_secret_id(secret_id)
        signal_kind = require_signal_kind(kind)

        room = self._get_room(pin)
        role = self._authorize(room, secret)
        target = role.opposite
        if room.peer(target) is None:
            raise PeerUnavailableError("Peer is not connected.")

        self._touch(room, role)
        message = self._message(signal_kind, payload)
        self.delivery.deliver(room, target, message)
        logger.debug("Relayed %s from %s in room %s", signal_kind.value, role.value, room.code)
        return message

    def drain(self, code: object, secret_id: object) -> list[Message]:
        pin = identity.require_pin(code)
        secret = identity.require_secret_id(secret_id)

        room = self._get_room(pin, missing="Room not found or expired.")
        role = self._authorize(room, secret)
        self._touch(room, role)
        return self.delivery.drain(room, role)

    def leave(self, code: object, secret_id: object) -> PeerRole | None:
        """Remove the caller from its room; unknown rooms and peers are a no-op."""

        pin = identity.require_pin(code)
        secret = identity.require_secret_id(secret_id)

        room = self.rooms.get(pin)
        if room is None:
            return None
        role = self.resolve_role(room, secret)
        if role is None:
            return None

        if role is PeerRole.INITIATOR:
            self.destroy_room(room, "initiator left")
        else:
            self.clear_joiner(room, "joiner left")
        return role

    def resolve_role(self, room: Room, secret_id: str) -> PeerRole | None:
        # Both comparisons always run so the timing does not reveal which role matched.
        is_initiator = identity.secrets_match(room.initiator.secret_id, secret_id)
        is_joiner = identity.secrets_match(room.joiner.secret_id if room.joiner else None, secret_id)
        if is_initiator:
            return PeerRole.INITIATOR
        if is_joiner:
            return PeerRole.JOINER
        return None

    def destroy_room(self, room: Room, reason: str) -> None:
        """Close the room, telling a paired joiner before its slot is released.

        A mailbox notice is discarded along with the room; only a live push
        connection actually receives it.
        """

        if room.joiner is not None:
            self._notify(room, PeerRole.JOINER, MessageKind.PEER_DISCONNECTED)
            self.delivery.release(room, PeerRole.JOINER)
        self.delivery.release(room, PeerRole.INITIATOR)
        self.rooms.pop(room.code, None)
        logger.info("Room %s closed: %s", room.code, reason)

    def clear_joiner(self, room: Room, reason: str) -> None:
        """Empty the joiner slot, keeping the room open for a fresh join."""

        if room.joiner is None:
            return
        self.delivery.release(room, PeerRole.JOINER)
        room.joiner = None
        room.updated_at = self.clock()
        self._notify(room, PeerRole.INITIATOR, MessageKind.PEER_DISCONNECTED)
        logger.info("Joiner removed from room %s: %s", room.code, reason)

    def _get_room(self, code: str, missing: str = "Room not found.") -> Room:
        room = self.rooms.get(code)
        if room is None:
            raise NotFoundError(missing)
        return room

    def _authorize(self, room: Room, secret_id: str) -> PeerRole:
        role = self.resolve_role(room, secret_id)
        if role is None:
            raise AuthError("Unauthorized peer.")
        return role

    def _touch(self, room: Room, role: PeerRole) -> None:
        now = self.clock()
        peer = room.peer(role)
        if peer is not None:
            peer.last_seen_at = now
        room.updated_at = now

    def _message(self, kind: MessageKind, payload: Any = None) -> Message:
        return Message(id=identity.generate_message_id(), kind=kind, payload=payload, enqueued_at=self.clock())

    def _notify(self, room: Room, role: PeerRole, kind: MessageKind) -> None:
        # Notifications are best effort; the recipient may already be gone.
        try:
            self.delivery.deliver(room, role, self._message(kind))
        except PeerUnavailableError:
            logger.debug("Skipped %s notice for %s in room %s", kind.value, role.value, room.code)
