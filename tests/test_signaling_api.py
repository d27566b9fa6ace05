"""End-to-end tests for the polling signaling endpoint."""
from __future__ import annotations

from contextlib import asynccontextmanager

import pytest
from httpx import ASGITransport, AsyncClient

from pinrelay.core.errors import StorageError
from pinrelay.main import app
from pinrelay.services import identity
from pinrelay.services.room_store import MemoryRoomStore, RoomStore, get_room_store

ENDPOINT = "/api/signaling"


@pytest.fixture
def client():
    store = MemoryRoomStore()
    app.dependency_overrides[get_room_store] = lambda: store
    transport = ASGITransport(app=app)
    yield AsyncClient(transport=transport, base_url="http://testserver")
    app.dependency_overrides.pop(get_room_store, None)


async def call(client: AsyncClient, **body):
    response = await client.post(ENDPOINT, json=body)
    return response.status_code, response.json()


@pytest.mark.asyncio
async def test_create_join_relay_poll_and_leave(client):
    async with client:
        status, created = await call(client, action="create-room")
        assert status == 200 and created["ok"] is True
        code = created["data"]["code"]
        initiator = created["data"]["secretId"]

        status, joined = await call(client, action="join-room", code=code)
        assert status == 200
        joiner = joined["data"]["secretId"]
        assert joined["data"]["code"] == code

        _, polled = await call(client, action="poll", code=code, secretId=initiator)
        assert [message["kind"] for message in polled["data"]["messages"]] == ["joiner-connected"]

        status, sent = await call(
            client, action="send-signal", code=code, secretId=initiator, kind="offer", payload={"sdp": "x"}
        )
        assert status == 200 and sent == {"ok": True, "data": {}}

        _, polled = await call(client, action="poll", code=code, secretId=joiner)
        (message,) = polled["data"]["messages"]
        assert message["kind"] == "offer"
        assert message["payload"] == {"sdp": "x"}
        assert set(message) == {"id", "kind", "payload", "enqueuedAt"}

        _, polled = await call(client, action="poll", code=code, secretId=joiner)
        assert polled["data"]["messages"] == []

        status, left = await call(client, action="leave", code=code, secretId=initiator)
        assert status == 200 and left["ok"] is True

        status, failed = await call(
            client, action="send-signal", code=code, secretId=joiner, kind="answer", payload={"sdp": "y"}
        )
        assert status == 404
        assert failed["ok"] is False
        assert failed["reason"] == "not_found"
        assert failed["error"] == "Room not found."


@pytest.mark.asyncio
async def test_legacy_field_names_are_accepted(client):
    async with client:
        _, created = await call(client, action="create-room")
        code = created["data"]["code"]

        status, joined = await call(client, action="join-room", pin=code)
        assert status == 200
        _, sent = await call(
            client,
            action="send-signal",
            pin=code,
            peerId=joined["data"]["secretId"],
            type="answer",
            payload={"sdp": "y"},
        )
        assert sent["ok"] is True


@pytest.mark.asyncio
async def test_second_join_conflicts(client):
    async with client:
        _, created = await call(client, action="create-room")
        code = created["data"]["code"]
        await call(client, action="join-room", code=code)

        status, body = await call(client, action="join-room", code=code)

    assert status == 409
    assert body["reason"] == "conflict"


@pytest.mark.asyncio
async def test_unknown_secret_is_unauthorized(client):
    async with client:
        _, created = await call(client, action="create-room")
        code = created["data"]["code"]
        await call(client, action="join-room", code=code)

        status, body = await call(
            client, action="send-signal", code=code, secretId="f" * 32, kind="offer", payload={}
        )

    assert status == 403
    assert body == {"ok": False, "error": "Unauthorized peer.", "reason": "auth"}


@pytest.mark.asyncio
async def test_joiner_leave_then_rejoin(client):
    async with client:
        _, created = await call(client, action="create-room")
        code = created["data"]["code"]
        initiator = created["data"]["secretId"]
        _, joined = await call(client, action="join-room", code=code)
        await call(client, action="poll", code=code, secretId=initiator)

        status, _ = await call(client, action="leave", code=code, secretId=joined["data"]["secretId"])
        assert status == 200

        _, polled = await call(client, action="poll", code=code, secretId=initiator)
        assert [message["kind"] for message in polled["data"]["messages"]] == ["peer-disconnected"]

        status, rejoined = await call(client, action="join-room", code=code)
        assert status == 200 and rejoined["ok"] is True


@pytest.mark.asyncio
async def test_leave_unknown_room_is_a_noop(client):
    async with client:
        status, body = await call(client, action="leave", code="000001", secretId="a" * 32)

    assert status == 200
    assert body == {"ok": True, "data": {}}


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("content", "error"),
    [
        (b"", "Missing request body."),
        (b"{not json", "Invalid JSON body."),
        (b"[1, 2]", "Invalid request format."),
        (b'{"action": "dance"}', "Unsupported action."),
        (b'{"action": "join-room", "code": "12"}', "PIN must be a 6-digit number."),
    ],
)
async def test_malformed_requests(client, content, error):
    async with client:
        response = await client.post(ENDPOINT, content=content, headers={"Content-Type": "application/json"})

    assert response.status_code == 400
    assert response.json() == {"ok": False, "error": error, "reason": "validation"}


@pytest.mark.asyncio
async def test_responses_are_not_cached(client):
    async with client:
        response = await client.post(ENDPOINT, json={"action": "create-room"})

    assert response.headers["cache-control"].startswith("no-store")
    assert response.headers["pragma"] == "no-cache"


@pytest.mark.asyncio
async def test_exhausted_pins_report_capacity(client, monkeypatch):
    monkeypatch.setattr(identity, "generate_pin", lambda: "123456")

    async with client:
        status, first = await call(client, action="create-room")
        assert status == 200 and first["data"]["code"] == "123456"

        status, body = await call(client, action="create-room")

    assert status == 503
    assert body == {"ok": False, "error": "Unable to create room PIN.", "reason": "capacity"}


class UnavailableStore(RoomStore):
    @asynccontextmanager
    async def transaction(self):
        raise StorageError("Signaling storage is unavailable.")
        yield {}


@pytest.mark.asyncio
async def test_storage_failure_reports_server_error():
    app.dependency_overrides[get_room_store] = UnavailableStore
    transport = ASGITransport(app=app)
    try:
        async with AsyncClient(transport=transport, base_url="http://testserver") as client:
            status, body = await call(client, action="create-room")
    finally:
        app.dependency_overrides.pop(get_room_store, None)

    assert status == 500
    assert body == {"ok": False, "error": "Signaling storage is unavailable.", "reason": "storage"}
