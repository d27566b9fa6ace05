"""Shared room table for the store-and-forward binding.

Every request runs inside :meth:`RoomStore.transaction`, which takes exclusive
access, loads the whole table, and writes the whole table back when the body
finishes. An exception escaping the body discards its changes.
"""
from __future__ import annotations

import abc
import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from functools import lru_cache
from typing import Any, AsyncContextManager, AsyncIterator, Dict

import pydantic
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine

from ..core.config import get_settings
from ..core.errors import StorageError
from ..db.session import build_engine, build_sessionmaker
from ..models.base import Base
from ..models.room_state import STATE_ROW_ID, RoomState
from ..schemas.rooms import Room

logger = logging.getLogger(__name__)

RoomTable = Dict[str, Room]


def encode_rooms(rooms: RoomTable) -> dict[str, Any]:
    return {code: room.model_dump(mode="json", by_alias=True) for code, room in rooms.items()}


def decode_rooms(raw: Any) -> RoomTable:
    """Rebuild the room table, dropping entries that no longer parse."""

    if not isinstance(raw, dict):
        return {}
    rooms: RoomTable = {}
    for code, data in raw.items():
        try:
            rooms[code] = Room.model_validate(data)
        except pydantic.ValidationError:
            logger.warning("Discarding unreadable room %s", code)
    return rooms


class RoomStore(abc.ABC):
    @abc.abstractmethod
    def transaction(self) -> AsyncContextManager[RoomTable]:
        ...

    async def close(self) -> None:
        return None


class MemoryRoomStore(RoomStore):
    """Process-local table guarded by a single lock."""

    def __init__(self) -> None:
        self._state: dict[str, Any] = {}
        self._lock = asyncio.Lock()

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[RoomTable]:
        async with self._lock:
            rooms = decode_rooms(self._state)
            yield rooms
            self._state = encode_rooms(rooms)


class SqlRoomStore(RoomStore):
    """Table persisted as one JSON row, locked with ``SELECT ... FOR UPDATE``.

    The process lock serialises requests within a worker; the row lock extends
    that to other workers on databases that honour it. SQLite ignores
    ``FOR UPDATE`` and relies on its own database-level write lock.
    """

    def __init__(self, database_url: str | None = None, *, engine: AsyncEngine | None = None) -> None:
        if engine is None:
            if database_url is None:
                raise ValueError("database_url or engine is required")
            engine = build_engine(database_url)
        self._engine = engine
        self._sessions = build_sessionmaker(engine)
        self._lock = asyncio.Lock()
        self._schema_ready = False

    async def create_schema(self) -> None:
        async with self._engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        self._schema_ready = True

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[RoomTable]:
        async with self._lock:
            try:
                if not self._schema_ready:
                    await self.create_schema()
                async with self._sessions() as session, session.begin():
                    state = await session.get(RoomState, STATE_ROW_ID, with_for_update=True)
                    rooms = decode_rooms(state.rooms if state is not None else {})
                    yield rooms
                    if state is None:
                        state = RoomState(id=STATE_ROW_ID)
                        session.add(state)
                    state.rooms = encode_rooms(rooms)
                    state.updated_at = datetime.now(timezone.utc)
            except SQLAlchemyError as exc:
                logger.exception("Room store transaction failed")
                raise StorageError("Signaling storage is unavailable.") from exc

    async def close(self) -> None:
        await self._engine.dispose()


@lru_cache
def get_room_store() -> RoomStore:
    """Return the configured store; used as a FastAPI dependency."""

    settings = get_settings()
    if settings.room_store == "database":
        return SqlRoomStore(settings.database_url)
    return MemoryRoomStore()
