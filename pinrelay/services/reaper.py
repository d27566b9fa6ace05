"""Expiry policy for idle rooms and silent peers."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field

from .rooms import RoomController

logger = logging.getLogger(__name__)

DEFAULT_ROOM_IDLE_SECONDS = 900
DEFAULT_STALE_PEER_SECONDS = 90


@dataclass(slots=True)
class SweepReport:
    rooms_closed: int = 0
    joiners_dropped: int = 0
    closed_codes: list[str] = field(default_factory=list)


class StaleReaper:
    """Sweep a controller's rooms, closing dead rooms and dropping silent joiners.

    ``check_liveness`` enables the per-peer timeout rules. The push binding
    turns it off because connection close already reports departures; the
    idle-room rules apply either way.
    """

    def __init__(
        self,
        *,
        room_idle_seconds: float = DEFAULT_ROOM_IDLE_SECONDS,
        stale_peer_seconds: float = DEFAULT_STALE_PEER_SECONDS,
        check_liveness: bool = True,
    ) -> None:
        self.room_idle_seconds = room_idle_seconds
        self.stale_peer_seconds = stale_peer_seconds
        self.check_liveness = check_liveness

    def sweep(self, controller: RoomController) -> SweepReport:
        report = SweepReport()
        now = controller.clock()

        for room in list(controller.rooms.values()):
            if room.joiner is None and now - room.created_at > self.room_idle_seconds:
                controller.destroy_room(room, "idle without joiner")
                report.rooms_closed += 1
                report.closed_codes.append(room.code)
                continue

            if self.check_liveness and now - room.initiator.last_seen_at > self.stale_peer_seconds:
                controller.destroy_room(room, "initiator timed out")
                report.rooms_closed += 1
                report.closed_codes.append(room.code)
                continue

            if room.joiner is not None:
                if self.check_liveness and now - room.joiner.last_seen_at > self.stale_peer_seconds:
                    controller.clear_joiner(room, "joiner timed out")
                    report.joiners_dropped += 1
            elif now - room.updated_at > self.room_idle_seconds:
                controller.destroy_room(room, "idle after joiner left")
                report.rooms_closed += 1
                report.closed_codes.append(room.code)

        if report.rooms_closed or report.joiners_dropped:
            logger.info(
                "Sweep closed %d rooms and dropped %d joiners", report.rooms_closed, report.joiners_dropped
            )
        return report
