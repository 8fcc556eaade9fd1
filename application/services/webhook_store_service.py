"""Durable store for webhook entries: the master collection plus one inbox per identity.

Every public method opens its own unit of work. Bulk operations (clear,
copy, sweep) are split into chunks of ``batch_size`` operations, each chunk
committed in its own transaction: a chunk is atomic, a multi-chunk call
may stop part way through.
"""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Callable, Iterable, Optional, Sequence

from domain.common.unit_of_work import AbstractUnitOfWork
from domain.webhook import WebhookEntry
from core.config import settings
from core.logging_config import get_logger


logger = get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _chunks(items: Sequence, size: int) -> Iterable[Sequence]:
    for start in range(0, len(items), size):
        yield items[start:start + size]


class WebhookStoreService:
    def __init__(
        self,
        uow_factory: Callable[..., AbstractUnitOfWork],
        *,
        ttl: Optional[timedelta] = None,
        batch_size: Optional[int] = None,
    ) -> None:
        self._uow_factory = uow_factory
        self._ttl = ttl or timedelta(hours=settings.WEBHOOK_TTL_HOURS)
        self._batch_size = batch_size or settings.STORE_BATCH_SIZE

    @property
    def ttl(self) -> timedelta:
        return self._ttl

    @property
    def batch_size(self) -> int:
        return self._batch_size

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------
    async def create_master(self, entry: WebhookEntry) -> WebhookEntry:
        """Assign ``expires_at`` and upsert into master (idempotent by id)."""
        entry = entry.with_expiry(self._ttl)
        async with self._uow_factory() as uow:
            saved = await uow.webhook_repository.upsert_master(entry)
        logger.debug("master_entry_saved", entry_id=saved.id)
        return saved

    async def create_inbox(self, identity: str, entry: WebhookEntry) -> WebhookEntry:
        entry = entry.with_expiry(self._ttl)
        async with self._uow_factory() as uow:
            await uow.webhook_repository.upsert_inbox(identity, [entry])
        return entry

    async def copy_to_inbox(self, identity: str, entries: Sequence[WebhookEntry]) -> int:
        """Batch copy entries into an inbox, one transaction per chunk."""
        copied = 0
        for chunk in _chunks(list(entries), self._batch_size):
            async with self._uow_factory() as uow:
                copied += await uow.webhook_repository.upsert_inbox(
                    identity, [e.with_expiry(self._ttl) for e in chunk]
                )
        return copied

    # ------------------------------------------------------------------
    # Reads (expired rows are filtered, never deleted here)
    # ------------------------------------------------------------------
    async def list_master(self, now: Optional[datetime] = None) -> list[WebhookEntry]:
        async with self._uow_factory(readonly=True) as uow:
            return await uow.webhook_repository.list_master(now=now or _utcnow())

    async def get_master(self, entry_id: str, now: Optional[datetime] = None) -> Optional[WebhookEntry]:
        async with self._uow_factory(readonly=True) as uow:
            return await uow.webhook_repository.get_master(entry_id, now=now or _utcnow())

    async def list_inbox(self, identity: str, now: Optional[datetime] = None) -> list[WebhookEntry]:
        async with self._uow_factory(readonly=True) as uow:
            return await uow.webhook_repository.list_inbox(identity, now=now or _utcnow())

    async def get_inbox(
        self, identity: str, entry_id: str, now: Optional[datetime] = None
    ) -> Optional[WebhookEntry]:
        async with self._uow_factory(readonly=True) as uow:
            return await uow.webhook_repository.get_inbox(identity, entry_id, now=now or _utcnow())

    async def inbox_ids(self, identity: str) -> set[str]:
        async with self._uow_factory(readonly=True) as uow:
            return await uow.webhook_repository.inbox_ids(identity)

    # ------------------------------------------------------------------
    # Deletes
    # ------------------------------------------------------------------
    async def delete_inbox(self, identity: str, entry_id: str, now: Optional[datetime] = None) -> bool:
        """Remove one live entry from an inbox. Master and other inboxes are untouched.

        Rows already past ``expires_at`` count as absent, matching ``get_inbox``.
        """
        now = now or _utcnow()
        async with self._uow_factory() as uow:
            removed = await uow.webhook_repository.delete_inbox(identity, [entry_id], live_at=now)
        return removed > 0

    async def clear_inbox(self, identity: str, now: Optional[datetime] = None) -> int:
        """Remove every row from an inbox in chunks.

        Expired rows are purged too but not counted: the result equals what
        ``list_inbox`` showed before the clear.
        """
        now = now or _utcnow()
        removed = 0
        while True:
            async with self._uow_factory() as uow:
                repo = uow.webhook_repository
                ids = await repo.inbox_id_chunk(identity, limit=self._batch_size)
                if not ids:
                    break
                removed += await repo.delete_inbox(identity, ids, live_at=now)
                await repo.delete_inbox(identity, ids)
            if len(ids) < self._batch_size:
                break
        logger.info("inbox_cleared", identity=identity, count=removed)
        return removed

    async def sweep_expired_master(self, now: Optional[datetime] = None) -> int:
        """Delete master entries whose ``expires_at <= now``. Scheduling is external."""
        now = now or _utcnow()
        removed = 0
        while True:
            async with self._uow_factory() as uow:
                repo = uow.webhook_repository
                ids = await repo.expired_master_ids(now=now, limit=self._batch_size)
                if not ids:
                    break
                removed += await repo.delete_master(ids)
            if len(ids) < self._batch_size:
                break
        logger.info("master_sweep_completed", count=removed, cutoff=now.isoformat())
        return removed

    async def sweep_expired_inboxes(self, now: Optional[datetime] = None) -> int:
        """Delete expired inbox rows across every identity."""
        now = now or _utcnow()
        removed = 0
        while True:
            async with self._uow_factory() as uow:
                repo = uow.webhook_repository
                keys = await repo.expired_inbox_keys(now=now, limit=self._batch_size)
                if not keys:
                    break
                removed += await repo.delete_inbox_keys(keys)
            if len(keys) < self._batch_size:
                break
        logger.info("inbox_sweep_completed", count=removed, cutoff=now.isoformat())
        return removed
