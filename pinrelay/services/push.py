"""Push binding: rooms live in memory and messages go straight to sockets."""
from __future__ import annotations

import logging
import time
from typing import Dict
from uuid import uuid4

import pydantic

from ..core.config import settings
from ..core.errors import AuthError, ConflictError, NotFoundError, SignalingError, ValidationError
from ..schemas.rooms import Room
from ..schemas.rtc import ClientFrame, ClientFrameType, error_frame
from . import identity
from .delivery import PeerConnection, PushDelivery
from .reaper import DEFAULT_ROOM_IDLE_SECONDS, StaleReaper, SweepReport
from .rooms import DEFAULT_CREATE_ATTEMPTS, Clock, RoomController

logger = logging.getLogger(__name__)


def _is_json_error(exc: pydantic.ValidationError) -> bool:
    return any(error["type"] == "json_invalid" for error in exc.errors())


class PushBroker:
    """Dispatch connect, frame and close events for WebSocket clients.

    All handlers are synchronous and run on the event loop, so the room table
    needs no lock. Outgoing frames are queued on each connection's outbox in
    the order they were produced.
    """

    def __init__(
        self,
        *,
        clock: Clock = time.time,
        create_attempts: int = DEFAULT_CREATE_ATTEMPTS,
        room_idle_seconds: float = DEFAULT_ROOM_IDLE_SECONDS,
    ) -> None:
        self.rooms: Dict[str, Room] = {}
        self.delivery = PushDelivery()
        self.controller = RoomController(self.rooms, self.delivery, clock=clock, create_attempts=create_attempts)
        self.reaper = StaleReaper(room_idle_seconds=room_idle_seconds, check_liveness=False)
        self.connections: Dict[str, PeerConnection] = {}

    def connect(self) -> PeerConnection:
        connection = PeerConnection(connection_id=uuid4().hex)
        self.connections[connection.connection_id] = connection
        return connection

    def handle(self, connection: PeerConnection, raw: str | bytes) -> None:
        """Process one inbound frame; failures become error frames to the sender."""

        try:
            frame = ClientFrame.model_validate_json(raw)
        except pydantic.ValidationError as exc:
            message = "Invalid JSON payload." if _is_json_error(exc) else "Invalid message format."
            connection.send(error_frame(message, ValidationError.reason))
            return

        try:
            self._dispatch(connection, frame)
        except SignalingError as exc:
            connection.send(error_frame(exc.message, exc.reason))

    def disconnect(self, connection: PeerConnection) -> None:
        """Treat a closed socket as an implicit leave and forget the connection."""

        self.connections.pop(connection.connection_id, None)
        if not connection.linked:
            return
        logger.debug("Connection %s closed while linked to room %s", connection.connection_id, connection.pin)
        pin, secret_id = connection.pin, connection.secret_id
        try:
            self.controller.leave(pin, secret_id)
        finally:
            # Deauthorize even if the room was already gone.
            connection.pin = None
            connection.secret_id = None

    def sweep(self) -> SweepReport:
        """Close idle rooms and tell any socket still linked to one that it expired."""

        linked = [(connection, connection.pin) for connection in self.connections.values() if connection.linked]
        report = self.reaper.sweep(self.controller)
        closed = set(report.closed_codes)
        for connection, pin in linked:
            if pin in closed:
                connection.send(error_frame("Room expired.", NotFoundError.reason))
        return report

    def _dispatch(self, connection: PeerConnection, frame: ClientFrame) -> None:
        try:
            frame_type = ClientFrameType(frame.type)
        except ValueError:
            raise ValidationError("Unsupported message type.") from None

        if frame_type is ClientFrameType.CREATE_ROOM:
            self._create_room(connection)
        elif frame_type is ClientFrameType.JOIN_ROOM:
            self._join_room(connection, frame.pin)
        else:
            self._relay(connection, frame_type, frame)

    def _create_room(self, connection: PeerConnection) -> None:
        if connection.linked:
            raise ConflictError("Connection is already in a room.")
        room, initiator = self.controller.create_room()
        self.delivery.link(initiator.secret_id, room.code, connection)
        connection.send({"type": "room-created", "pin": room.code})

    def _join_room(self, connection: PeerConnection, pin: str | None) -> None:
        if connection.linked:
            raise ConflictError("Connection is already in a room.")
        code = identity.require_pin((pin or "").strip())
        joiner = self.controller.join_room(code)
        self.delivery.link(joiner.secret_id, code, connection)
        connection.send({"type": "join-success", "pin": code})

    def _relay(self, connection: PeerConnection, frame_type: ClientFrameType, frame: ClientFrame) -> None:
        if not connection.linked:
            raise AuthError("Connection is not paired.")
        code = identity.require_pin((frame.pin or "").strip())
        if code != connection.pin:
            raise AuthError("PIN does not match current room.")
        self.controller.send_signal(code, connection.secret_id, frame_type.value, frame.payload)


broker = PushBroker(
    create_attempts=settings.create_attempts,
    room_idle_seconds=settings.room_idle_seconds,
)
