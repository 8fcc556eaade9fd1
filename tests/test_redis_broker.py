import asyncio

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from application.ports.realtime import ROOM_ALL, Envelope, group_room
from infrastructure.realtime.brokers import RedisRealtimeBroker


class FakePubSubClient:
    """Loops published messages back to pattern subscribers."""

    def __init__(self, fail_publish: bool = False):
        self.published: list[tuple[str, dict]] = []
        self.patterns: list[str] = []
        self._inbox: asyncio.Queue = asyncio.Queue()
        self._fail_publish = fail_publish

    async def publish(self, channel, message):
        if self._fail_publish:
            raise RedisConnectionError("connection refused")
        self.published.append((channel, message))
        await self._inbox.put({"channel": channel, "data": message, "pattern": "rt:*"})
        return 1

    async def inject(self, data):
        await self._inbox.put({"channel": "rt:junk", "data": data, "pattern": "rt:*"})

    async def psubscribe(self, *patterns):
        self.patterns.extend(patterns)
        while True:
            yield await self._inbox.get()


async def _settle():
    for _ in range(10):
        await asyncio.sleep(0)


@pytest.mark.asyncio
async def test_publish_uses_room_channels_and_loops_back():
    client = FakePubSubClient()
    broker = RedisRealtimeBroker(client)
    received: list[Envelope] = []

    async def handler(env):
        received.append(env)

    await broker.subscribe(handler)
    await _settle()
    assert client.patterns == ["rt:*"]

    await broker.publish(ROOM_ALL, Envelope(type="NewWebhook", data={"entry": {"id": "abc"}}))
    await broker.publish(group_room("alice@example.com"), Envelope(type="AllCleared"))
    await _settle()

    assert [c for c, _ in client.published] == ["rt:all", "rt:group:alice@example.com"]
    assert [(e.type, e.room) for e in received] == [
        ("NewWebhook", ROOM_ALL),
        ("AllCleared", "group:alice@example.com"),
    ]
    await broker.aclose()


@pytest.mark.asyncio
async def test_listener_skips_malformed_messages():
    client = FakePubSubClient()
    broker = RedisRealtimeBroker(client)
    received: list[Envelope] = []

    async def handler(env):
        received.append(env)

    await broker.subscribe(handler)
    await client.inject("not-a-dict")
    await client.inject({"room": "all"})  # missing type
    await broker.publish(ROOM_ALL, Envelope(type="ok"))
    await _settle()

    assert [e.type for e in received] == ["ok"]
    await broker.aclose()


@pytest.mark.asyncio
async def test_publish_failure_is_logged_not_raised():
    broker = RedisRealtimeBroker(FakePubSubClient(fail_publish=True))
    await broker.publish(ROOM_ALL, Envelope(type="NewWebhook"))
