"""Keeps every active identity's inbox in step with the master collection.

- capture: master write first, then fan-out to the identities active at
  call time; one failing inbox does not fail the capture.
- reconnect: additive reconciliation (master ids missing from the inbox).
  It reasons only from what the inbox holds now, so an entry the user
  deleted comes back on reconnect while it is still live in master.
- restore: replace the inbox wholesale with the current master.
"""
from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import List, Optional

from application.services.webhook_store_service import WebhookStoreService
from domain.webhook import WebhookEntry
from infrastructure.realtime.active_registry import ActiveConnectionRegistry
from core.logging_config import get_logger


logger = get_logger(__name__)


class WebhookSyncService:
    def __init__(self, *, store: WebhookStoreService, registry: ActiveConnectionRegistry) -> None:
        self._store = store
        self._registry = registry

    @property
    def store(self) -> WebhookStoreService:
        return self._store

    @property
    def registry(self) -> ActiveConnectionRegistry:
        return self._registry

    async def on_capture(self, entry: WebhookEntry) -> WebhookEntry:
        """Persist to master, then copy into every active identity's inbox.

        A master failure propagates. Inbox failures are logged per identity
        and recovered by that identity's next reconciliation.
        """
        saved = await self._store.create_master(entry)
        identities = sorted(await self._registry.list_active())
        if identities:
            results = await asyncio.gather(
                *(self._store.create_inbox(identity, saved) for identity in identities),
                return_exceptions=True,
            )
            failed = 0
            for identity, result in zip(identities, results):
                if isinstance(result, BaseException):
                    failed += 1
                    logger.warning(
                        "fanout_failed",
                        entry_id=saved.id,
                        identity=identity,
                        error=str(result),
                    )
            logger.info(
                "webhook_fanned_out",
                entry_id=saved.id,
                identities=len(identities),
                failed=failed,
            )
        return saved

    async def reconcile_on_connect(self, identity: str, now: Optional[datetime] = None) -> int:
        """Insert live master entries missing from the inbox; returns count added."""
        now = now or datetime.now(timezone.utc)
        master = await self._store.list_master(now)
        if not master:
            return 0
        present = await self._store.inbox_ids(identity)
        missing = [e for e in master if e.id not in present]
        if missing:
            await self._store.copy_to_inbox(identity, missing)
        logger.info("inbox_reconciled", identity=identity, added=len(missing), master=len(master))
        return len(missing)

    async def restore(self, identity: str, now: Optional[datetime] = None) -> List[WebhookEntry]:
        """Clear the inbox, then copy every live master entry into it."""
        now = now or datetime.now(timezone.utc)
        removed = await self._store.clear_inbox(identity)
        master = await self._store.list_master(now)
        if master:
            await self._store.copy_to_inbox(identity, master)
        logger.info("inbox_restored", identity=identity, removed=removed, restored=len(master))
        return master
