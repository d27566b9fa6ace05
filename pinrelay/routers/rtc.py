"""Push signaling over WebSocket."""
from __future__ import annotations

import asyncio
import logging
from contextlib import suppress

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from ..services.delivery import PeerConnection
from ..services.push import broker as push_broker

logger = logging.getLogger(__name__)

router = APIRouter()


async def _read_frames(websocket: WebSocket, connection: PeerConnection) -> None:
    """Feed text and binary frames to the broker until the client goes away."""

    while True:
        message = await websocket.receive()
        if message["type"] == "websocket.disconnect":
            return
        raw = message.get("text")
        if raw is None:
            raw = message.get("bytes") or b""
        push_broker.handle(connection, raw)


async def _forward_outbox(websocket: WebSocket, connection: PeerConnection) -> None:
    """Write queued frames to the socket in the order they were produced."""

    while True:
        frame = await connection.outbox.get()
        try:
            await websocket.send_json(frame)
        except (WebSocketDisconnect, RuntimeError) as exc:
            logger.debug("Stopped writing to connection %s: %s", connection.connection_id, exc)
            return


@router.websocket("/signaling")
async def signaling_endpoint(websocket: WebSocket) -> None:
    """Pair two sockets by PIN and relay offer, answer and ICE frames between them."""

    await websocket.accept()
    connection = push_broker.connect()
    reader = asyncio.create_task(_read_frames(websocket, connection))
    writer = asyncio.create_task(_forward_outbox(websocket, connection))

    try:
        # Whichever side stops first ends the session.
        await asyncio.wait({reader, writer}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        push_broker.disconnect(connection)
        for task in (reader, writer):
            task.cancel()
        for task in (reader, writer):
            with suppress(asyncio.CancelledError):
                await task
