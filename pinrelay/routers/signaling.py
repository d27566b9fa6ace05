"""Store-and-forward signaling endpoint."""
from __future__ import annotations

import pydantic
from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from ..core.config import get_settings
from ..core.errors import SignalingError, ValidationError
from ..schemas.signaling import SignalingRequest, SignalingResponse
from ..services.polling import PollingBroker
from ..services.room_store import RoomStore, get_room_store

router = APIRouter()

NO_CACHE_HEADERS = {
    "Cache-Control": "no-store, no-cache, must-revalidate, max-age=0",
    "Pragma": "no-cache",
}


def get_polling_broker(store: RoomStore = Depends(get_room_store)) -> PollingBroker:
    return PollingBroker(store, get_settings())


def _respond(body: SignalingResponse, status_code: int) -> JSONResponse:
    return JSONResponse(
        content=body.model_dump(exclude_none=True),
        status_code=status_code,
        headers=NO_CACHE_HEADERS,
    )


def _failure(exc: SignalingError) -> JSONResponse:
    return _respond(SignalingResponse(ok=False, error=exc.message, reason=exc.reason), exc.status_code)


def _parse(body: bytes) -> SignalingRequest:
    if not body.strip():
        raise ValidationError("Missing request body.")
    try:
        return SignalingRequest.model_validate_json(body)
    except pydantic.ValidationError as exc:
        if any(error["type"] == "json_invalid" for error in exc.errors()):
            raise ValidationError("Invalid JSON body.") from None
        raise ValidationError("Invalid request format.") from None


@router.post("/signaling", response_model=SignalingResponse)
async def signaling(request: Request, broker: PollingBroker = Depends(get_polling_broker)) -> JSONResponse:
    """Create, join, relay, poll or leave a room in one locked transaction."""

    try:
        payload = _parse(await request.body())
        data = await broker.execute(payload)
    except SignalingError as exc:
        return _failure(exc)

    return _respond(SignalingResponse(ok=True, data=data), 200)
