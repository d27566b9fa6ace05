"""Persisted snapshot of the store-and-forward room table."""
from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import JSON, DateTime, Integer
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base

STATE_ROW_ID = 1


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RoomState(Base):
    """Single row holding every live room, keyed by PIN."""

    __tablename__ = "room_state"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    rooms: Mapped[dict] = mapped_column(JSON, default=dict, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)
