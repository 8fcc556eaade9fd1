import asyncio

import pytest

from infrastructure.realtime.active_registry import ActiveConnectionRegistry


@pytest.mark.asyncio
async def test_refcount_per_identity():
    reg = ActiveConnectionRegistry()
    assert await reg.increment("a@x.io") == 1
    assert await reg.increment("a@x.io") == 2
    assert await reg.is_active("a@x.io")
    assert await reg.decrement("a@x.io") == 1
    assert await reg.is_active("a@x.io")
    assert await reg.decrement("a@x.io") == 0
    assert not await reg.is_active("a@x.io")
    assert await reg.list_active() == set()


@pytest.mark.asyncio
async def test_decrement_floors_at_zero():
    reg = ActiveConnectionRegistry()
    assert await reg.decrement("ghost@x.io") == 0
    await reg.increment("ghost@x.io")
    assert await reg.connection_count("ghost@x.io") == 1


@pytest.mark.asyncio
async def test_concurrent_connects_and_disconnects():
    reg = ActiveConnectionRegistry()
    await asyncio.gather(*(reg.increment("a@x.io") for _ in range(20)), reg.increment("b@x.io"))
    await asyncio.gather(*(reg.decrement("a@x.io") for _ in range(19)))
    assert await reg.list_active() == {"a@x.io", "b@x.io"}
    snapshot = await reg.list_active()
    await reg.decrement("a@x.io")
    # snapshots are copies
    assert snapshot == {"a@x.io", "b@x.io"}
    assert await reg.list_active() == {"b@x.io"}
