"""FastAPI application for the PIN-based WebRTC signaling broker."""
from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager, suppress
from typing import AsyncIterator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response

from .core.config import settings
from .core.errors import StorageError
from .core.logging import configure_logging
from .routers import rtc, signaling
from .services.polling import PollingBroker
from .services.push import broker as push_broker
from .services.room_store import get_room_store

configure_logging(settings.log_level)
logger = logging.getLogger(__name__)


async def _sweep_forever(interval: float) -> None:
    """Reap stale rooms even when no requests arrive to trigger a sweep."""

    polling = PollingBroker(get_room_store(), settings)
    while True:
        await asyncio.sleep(interval)
        try:
            await polling.sweep()
        except StorageError:
            logger.warning("Background sweep skipped: room storage unavailable")
        push_broker.sweep()


@asynccontextmanager
async def lifespan(_: FastAPI) -> AsyncIterator[None]:
    sweeper: asyncio.Task[None] | None = None
    if settings.sweep_interval_seconds > 0:
        sweeper = asyncio.create_task(_sweep_forever(settings.sweep_interval_seconds))
    logger.info("Signaling broker starting (room store: %s)", settings.room_store)
    try:
        yield
    finally:
        if sweeper is not None:
            sweeper.cancel()
            with suppress(asyncio.CancelledError):
                await sweeper
        await get_room_store().close()


app = FastAPI(title="PIN Relay Signaling API", version="0.1.0", lifespan=lifespan)

if settings.cors_allow_origins:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allow_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

app.include_router(signaling.router, prefix="/api", tags=["signaling"])
app.include_router(rtc.router, prefix="/api/rtc", tags=["rtc"])


@app.get("/api/health", tags=["meta"])
async def health() -> dict[str, str]:
    """Simple liveness probe."""

    return {"status": "ok"}


@app.head("/api/health", tags=["meta"])
async def health_head() -> Response:
    """Allow HEAD for uptime monitors that only need the status code."""

    return Response(status_code=200)


@app.get("/api/stats", tags=["meta"])
async def stats() -> dict[str, int]:
    """Counts for the in-process push binding."""

    return {
        "push_rooms": len(push_broker.rooms),
        "push_connections": len(push_broker.connections),
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("pinrelay.main:app", host="0.0.0.0", port=8000)
