"""In-process registry of identities that currently hold a live connection.

One reference count per identity: every WebSocket connection increments
it, every disconnect decrements it. Nothing is persisted; after a restart
clients reconnect and register again.
"""
from __future__ import annotations

import asyncio
from typing import Dict, Set

from core.logging_config import get_logger


logger = get_logger(__name__)


class ActiveConnectionRegistry:
    def __init__(self) -> None:
        self._counts: Dict[str, int] = {}
        self._lock = asyncio.Lock()

    async def increment(self, identity: str) -> int:
        async with self._lock:
            count = self._counts.get(identity, 0) + 1
            self._counts[identity] = count
        logger.debug("identity_registered", identity=identity, connections=count)
        return count

    async def decrement(self, identity: str) -> int:
        """Drop one connection; the count never goes below zero."""
        async with self._lock:
            count = self._counts.get(identity, 0) - 1
            if count <= 0:
                self._counts.pop(identity, None)
                count = 0
            else:
                self._counts[identity] = count
        logger.debug("identity_unregistered", identity=identity, connections=count)
        return count

    async def is_active(self, identity: str) -> bool:
        async with self._lock:
            return self._counts.get(identity, 0) > 0

    async def list_active(self) -> Set[str]:
        """Snapshot of active identities at call time."""
        async with self._lock:
            return set(self._counts)

    async def connection_count(self, identity: str) -> int:
        async with self._lock:
            return self._counts.get(identity, 0)
