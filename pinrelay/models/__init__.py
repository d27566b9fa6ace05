"""Expose ORM models."""
from .room_state import RoomState

__all__ = [
    "RoomState",
]
