import asyncio

import pytest

from application.ports.realtime import ROOM_ALL, Envelope, group_room, identity_from_room
from application.services.realtime_service import RealtimeService
from infrastructure.realtime.brokers import InMemoryRealtimeBroker
from infrastructure.realtime.connection_manager import ConnectionManager
from factories import make_entry


ALICE = "alice@example.com"
BOB = "bob@example.com"


class FakeWebSocket:
    def __init__(self, gate: asyncio.Event | None = None):
        self.sent: list[dict] = []
        self.closed_with: int | None = None
        self._gate = gate

    async def send_json(self, payload):
        if self._gate is not None:
            await self._gate.wait()
        self.sent.append(payload)

    async def close(self, code: int = 1000, reason: str | None = None):
        self.closed_with = code

    def types(self) -> list[str]:
        return [m["type"] for m in self.sent]


async def _drain():
    for _ in range(10):
        await asyncio.sleep(0)


@pytest.fixture
async def realtime(store, registry, sync):
    broker = InMemoryRealtimeBroker()
    service = RealtimeService(
        broker=broker,
        connections=ConnectionManager(queue_max=50),
        registry=registry,
        sync=sync,
        store=store,
    )
    await broker.subscribe(service.on_broker_event)
    yield service
    await broker.aclose()


def test_room_helpers():
    assert group_room(ALICE) == f"group:{ALICE}"
    assert identity_from_room(group_room(ALICE)) == ALICE
    assert identity_from_room(ROOM_ALL) is None
    assert identity_from_room(None) is None


@pytest.mark.asyncio
async def test_connect_registers_reconciles_and_sends_snapshot(realtime, store, registry):
    existing = await store.create_master(make_entry())
    ws = FakeWebSocket()

    entries = await realtime.connect(ALICE, ws)
    await _drain()

    assert [e.id for e in entries] == [existing.id]
    assert await registry.is_active(ALICE)
    assert ws.types() == ["InitialData"]
    assert [e["id"] for e in ws.sent[0]["data"]["entries"]] == [existing.id]
    assert ws.sent[0]["data"]["entries"][0]["received_at"].endswith("Z")


@pytest.mark.asyncio
async def test_snapshot_goes_only_to_connecting_socket(realtime):
    first, second = FakeWebSocket(), FakeWebSocket()
    await realtime.connect(ALICE, first)
    await _drain()
    await realtime.connect(ALICE, second)
    await _drain()
    assert first.types() == ["InitialData"]
    assert second.types() == ["InitialData"]


@pytest.mark.asyncio
async def test_new_webhook_broadcast_reaches_everyone(realtime, sync):
    alice, bob = FakeWebSocket(), FakeWebSocket()
    await realtime.connect(ALICE, alice)
    await realtime.connect(BOB, bob)

    saved = await sync.on_capture(make_entry())
    await realtime.announce_new_entry(saved)
    await _drain()

    for ws in (alice, bob):
        assert ws.types()[-1] == "NewWebhook"
        assert ws.sent[-1]["data"]["entry"]["id"] == saved.id
        assert ws.sent[-1]["room"] == ROOM_ALL


@pytest.mark.asyncio
async def test_delete_notifies_own_group_only(realtime, sync, store):
    alice_a, alice_b, bob = FakeWebSocket(), FakeWebSocket(), FakeWebSocket()
    await realtime.connect(ALICE, alice_a)
    await realtime.connect(ALICE, alice_b)
    await realtime.connect(BOB, bob)
    saved = await sync.on_capture(make_entry())

    assert await realtime.delete_entry(ALICE, saved.id) is True
    await _drain()

    assert alice_a.types()[-1] == "EntryDeleted"
    assert alice_b.sent[-1]["data"] == {"id": saved.id}
    assert "EntryDeleted" not in bob.types()
    assert await store.get_inbox(BOB, saved.id) is not None


@pytest.mark.asyncio
async def test_failed_delete_emits_nothing(realtime):
    ws = FakeWebSocket()
    await realtime.connect(ALICE, ws)
    assert await realtime.delete_entry(ALICE, "nope") is False
    await _drain()
    assert ws.types() == ["InitialData"]


@pytest.mark.asyncio
async def test_clear_and_restore_events(realtime, sync, store):
    ws = FakeWebSocket()
    await realtime.connect(ALICE, ws)
    for _ in range(3):
        await sync.on_capture(make_entry())

    assert await realtime.clear_all(ALICE) == 3
    restored = await realtime.restore_all(ALICE)
    await _drain()

    assert ws.types()[-2:] == ["AllCleared", "AllRestored"]
    assert len(ws.sent[-1]["data"]["entries"]) == 3 == len(restored)
    assert len(await store.list_inbox(ALICE)) == 3


@pytest.mark.asyncio
async def test_disconnect_unregisters(realtime, registry):
    ws = FakeWebSocket()
    await realtime.connect(ALICE, ws)
    await realtime.disconnect(ALICE, ws)
    assert not await registry.is_active(ALICE)
    assert await realtime.connections.connection_count() == 0


@pytest.mark.asyncio
async def test_send_queue_drop_oldest():
    gate = asyncio.Event()
    ws = FakeWebSocket(gate)
    manager = ConnectionManager(queue_max=2, overflow_policy="drop_oldest")
    await manager.add(ALICE, ws)
    await manager.send_to(ws, Envelope(type="n", data={"i": 0}))
    await _drain()  # sender is now blocked on payload 0

    for i in range(1, 4):
        await manager.send_to(ws, Envelope(type="n", data={"i": i}))
    gate.set()
    await _drain()

    assert [m["data"]["i"] for m in ws.sent] == [0, 2, 3]
    await manager.remove(ALICE, ws)


@pytest.mark.asyncio
async def test_send_queue_disconnect_policy():
    gate = asyncio.Event()
    ws = FakeWebSocket(gate)
    manager = ConnectionManager(queue_max=1, overflow_policy="disconnect")
    await manager.add(ALICE, ws)
    await manager.send_to(ws, Envelope(type="n", data={"i": 0}))
    await _drain()

    for i in range(1, 3):
        await manager.send_to(ws, Envelope(type="n", data={"i": i}))
    assert ws.closed_with == 1013
    await manager.remove(ALICE, ws)
