"""Tests for the request-scoped polling broker."""
from __future__ import annotations

import asyncio

import pytest
import pytest_asyncio

from pinrelay.core.config import Settings
from pinrelay.core.errors import NotFoundError, ValidationError
from pinrelay.schemas.signaling import SignalingRequest
from pinrelay.services.polling import PollingBroker
from pinrelay.services.room_store import MemoryRoomStore, SqlRoomStore


class FakeClock:
    def __init__(self, now: float = 50_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


def make_broker(clock: FakeClock) -> tuple[PollingBroker, MemoryRoomStore]:
    store = MemoryRoomStore()
    settings = Settings(room_idle_seconds=900, stale_peer_seconds=90, max_queue_size=3)
    return PollingBroker(store, settings, clock=clock), store


def request(**fields) -> SignalingRequest:
    return SignalingRequest.model_validate(fields)


@pytest.mark.asyncio
async def test_sweep_runs_before_each_request():
    clock = FakeClock()
    broker, _ = make_broker(clock)
    created = await broker.execute(request(action="create-room"))

    clock.now += 91
    with pytest.raises(NotFoundError):
        await broker.execute(request(action="join-room", code=created["code"]))


@pytest.mark.asyncio
async def test_sweep_results_are_kept_when_operation_fails():
    clock = FakeClock()
    broker, store = make_broker(clock)
    created = await broker.execute(request(action="create-room"))

    clock.now += 901
    with pytest.raises(NotFoundError):
        await broker.execute(request(action="poll", code="000000", secretId="a" * 32))

    async with store.transaction() as rooms:
        assert created["code"] not in rooms


@pytest.mark.asyncio
async def test_unsupported_action_fails_before_loading_rooms():
    broker, _ = make_broker(FakeClock())

    with pytest.raises(ValidationError):
        await broker.execute(request(action="shout"))


@pytest.mark.asyncio
async def test_queue_cap_comes_from_settings():
    clock = FakeClock()
    broker, _ = make_broker(clock)
    created = await broker.execute(request(action="create-room"))
    code, initiator = created["code"], created["secretId"]
    joined = await broker.execute(request(action="join-room", code=code))

    for index in range(5):
        await broker.execute(
            request(action="send-signal", code=code, secretId=initiator, kind="ice-candidate", payload=index)
        )

    polled = await broker.execute(request(action="poll", code=code, secretId=joined["secretId"]))
    assert [message["payload"] for message in polled["messages"]] == [2, 3, 4]


@pytest.mark.asyncio
async def test_background_sweep_reaps_without_traffic():
    clock = FakeClock()
    broker, store = make_broker(clock)
    await broker.execute(request(action="create-room"))

    clock.now += 901
    report = await broker.sweep()

    assert report.rooms_closed == 1
    async with store.transaction() as rooms:
        assert rooms == {}


@pytest_asyncio.fixture(params=["memory", "sql"])
async def shared_store(request, tmp_path):
    if request.param == "memory":
        store = MemoryRoomStore()
    else:
        store = SqlRoomStore(f"sqlite+aiosqlite:///{tmp_path / 'rooms.db'}")
    yield store
    await store.close()


@pytest.mark.asyncio
async def test_overlapping_sends_and_polls_deliver_each_message_once(shared_store):
    broker = PollingBroker(shared_store, Settings(), clock=FakeClock())
    created = await broker.execute(request(action="create-room"))
    code, initiator = created["code"], created["secretId"]
    joiner = (await broker.execute(request(action="join-room", code=code)))["secretId"]
    received: list[int] = []

    async def send(index: int) -> None:
        await broker.execute(
            request(action="send-signal", code=code, secretId=initiator, kind="ice-candidate", payload=index)
        )

    async def poll() -> None:
        polled = await broker.execute(request(action="poll", code=code, secretId=joiner))
        received.extend(message["payload"] for message in polled["messages"])

    calls = []
    for index in range(50):
        calls.append(send(index))
        calls.append(poll())
    await asyncio.gather(*calls)
    await poll()

    assert received == list(range(50))
