import pytest

from domain.common.exceptions import StoreUnavailableException
from factories import make_entry


ALICE = "alice@example.com"
BOB = "bob@example.com"


async def _ids(store, identity):
    return {e.id for e in await store.list_inbox(identity)}


@pytest.mark.asyncio
async def test_capture_fans_out_to_active_identities_only(sync, store, registry):
    await registry.increment(ALICE)
    saved = await sync.on_capture(make_entry())

    assert [e.id for e in await store.list_master()] == [saved.id]
    assert await _ids(store, ALICE) == {saved.id}
    assert await _ids(store, BOB) == set()

    # inactive identity catches up on reconnect
    assert await sync.reconcile_on_connect(BOB) == 1
    assert await _ids(store, BOB) == {saved.id}


@pytest.mark.asyncio
async def test_fanout_failure_does_not_fail_capture(sync, store, registry, monkeypatch):
    await registry.increment(ALICE)
    await registry.increment(BOB)
    original = store.create_inbox

    async def flaky_create_inbox(identity, entry):
        if identity == BOB:
            raise StoreUnavailableException("commit", "disk full")
        return await original(identity, entry)

    monkeypatch.setattr(store, "create_inbox", flaky_create_inbox)
    saved = await sync.on_capture(make_entry())

    assert await _ids(store, ALICE) == {saved.id}
    assert await _ids(store, BOB) == set()
    assert await sync.reconcile_on_connect(BOB) == 1


@pytest.mark.asyncio
async def test_master_failure_propagates(sync, store, monkeypatch):
    async def broken(entry):
        raise StoreUnavailableException("commit", "down")

    monkeypatch.setattr(store, "create_master", broken)
    with pytest.raises(StoreUnavailableException):
        await sync.on_capture(make_entry())


@pytest.mark.asyncio
async def test_reconcile_is_idempotent(sync, store):
    for _ in range(4):
        await store.create_master(make_entry())
    assert await sync.reconcile_on_connect(ALICE) == 4
    assert await sync.reconcile_on_connect(ALICE) == 0
    assert len(await store.list_inbox(ALICE)) == 4


@pytest.mark.asyncio
async def test_reconnect_readds_deleted_entry(sync, store):
    entry = await store.create_master(make_entry())
    await sync.reconcile_on_connect(ALICE)
    assert await store.delete_inbox(ALICE, entry.id)

    assert await sync.reconcile_on_connect(ALICE) == 1
    assert await _ids(store, ALICE) == {entry.id}


@pytest.mark.asyncio
async def test_restore_makes_inbox_equal_to_master(sync, store):
    kept = [await store.create_master(make_entry()) for _ in range(5)]
    await sync.reconcile_on_connect(ALICE)
    await store.delete_inbox(ALICE, kept[0].id)
    await store.clear_inbox(ALICE)

    restored = await sync.restore(ALICE)
    master_ids = {e.id for e in await store.list_master()}
    assert {e.id for e in restored} == master_ids
    assert await _ids(store, ALICE) == master_ids


@pytest.mark.asyncio
async def test_restore_drops_inbox_only_entries(sync, store):
    master_entry = await store.create_master(make_entry())
    orphan = make_entry()
    await store.create_inbox(ALICE, orphan)

    await sync.restore(ALICE)
    assert await _ids(store, ALICE) == {master_entry.id}


@pytest.mark.asyncio
async def test_disconnect_capture_reconnect_adds_exactly_missed(sync, store, registry):
    for _ in range(3):
        await store.create_master(make_entry())
    await registry.increment(ALICE)
    await sync.reconcile_on_connect(ALICE)
    assert len(await store.list_inbox(ALICE)) == 3

    await registry.decrement(ALICE)
    await sync.on_capture(make_entry())
    await sync.on_capture(make_entry())

    await registry.increment(ALICE)
    assert await sync.reconcile_on_connect(ALICE) == 2
    assert len(await store.list_inbox(ALICE)) == 5
