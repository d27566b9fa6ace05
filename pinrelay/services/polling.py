"""Store-and-forward binding: one locked room-table transaction per request."""
from __future__ import annotations

import time
from typing import Any

from ..core.config import Settings
from ..core.errors import SignalingError, ValidationError
from ..schemas.signaling import PollResult, RoomTicket, SignalingAction, SignalingRequest
from .delivery import MailboxDelivery
from .reaper import StaleReaper, SweepReport
from .room_store import RoomStore, RoomTable
from .rooms import Clock, RoomController


def parse_action(value: str) -> SignalingAction:
    try:
        return SignalingAction(value)
    except ValueError:
        raise ValidationError("Unsupported action.") from None


class PollingBroker:
    """Run each request as: lock, load, sweep, one operation, persist, unlock."""

    def __init__(self, store: RoomStore, settings: Settings, *, clock: Clock = time.time) -> None:
        self.store = store
        self.settings = settings
        self.clock = clock
        self.reaper = StaleReaper(
            room_idle_seconds=settings.room_idle_seconds,
            stale_peer_seconds=settings.stale_peer_seconds,
        )

    def _controller(self, rooms: RoomTable) -> RoomController:
        return RoomController(
            rooms,
            MailboxDelivery(self.settings.max_queue_size),
            clock=self.clock,
            create_attempts=self.settings.create_attempts,
        )

    async def execute(self, request: SignalingRequest) -> dict[str, Any]:
        action = parse_action(request.action)
        failure: SignalingError | None = None
        data: dict[str, Any] = {}

        async with self.store.transaction() as rooms:
            controller = self._controller(rooms)
            self.reaper.sweep(controller)
            try:
                data = self._dispatch(controller, action, request)
            except SignalingError as exc:
                # The sweep's changes are still written back.
                failure = exc

        if failure is not None:
            raise failure
        return data

    async def sweep(self) -> SweepReport:
        async with self.store.transaction() as rooms:
            return self.reaper.sweep(self._controller(rooms))

    def _dispatch(
        self, controller: RoomController, action: SignalingAction, request: SignalingRequest
    ) -> dict[str, Any]:
        if action is SignalingAction.CREATE_ROOM:
            room, initiator = controller.create_room()
            return RoomTicket(code=room.code, secret_id=initiator.secret_id).model_dump(by_alias=True)

        if action is SignalingAction.JOIN_ROOM:
            joiner = controller.join_room(request.code)
            return RoomTicket(code=request.code, secret_id=joiner.secret_id).model_dump(by_alias=True)

        if action is SignalingAction.SEND_SIGNAL:
            controller.send_signal(request.code, request.secret_id, request.kind, request.payload)
            return {}

        if action is SignalingAction.POLL:
            messages = controller.drain(request.code, request.secret_id)
            return PollResult(messages=messages).model_dump(mode="json", by_alias=True)

        controller.leave(request.code, request.secret_id)
        return {}
