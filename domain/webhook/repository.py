"""Repository abstraction for master and per-identity webhook entries."""
from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Iterable, Optional, Sequence

from .entity import WebhookEntry


class WebhookEntryRepository(ABC):
    """Session-scoped persistence contract.

    Transaction boundaries belong to the unit of work; every method here
    runs inside whatever transaction the caller opened.
    """

    # -------------------- master --------------------
    @abstractmethod
    async def upsert_master(self, entry: WebhookEntry) -> WebhookEntry:
        ...

    @abstractmethod
    async def get_master(self, entry_id: str, *, now: datetime) -> Optional[WebhookEntry]:
        ...

    @abstractmethod
    async def list_master(self, *, now: datetime) -> list[WebhookEntry]:
        ...

    @abstractmethod
    async def expired_master_ids(self, *, now: datetime, limit: int) -> list[str]:
        ...

    @abstractmethod
    async def delete_master(self, entry_ids: Sequence[str]) -> int:
        ...

    # -------------------- inbox --------------------
    @abstractmethod
    async def upsert_inbox(self, identity: str, entries: Iterable[WebhookEntry]) -> int:
        ...

    @abstractmethod
    async def get_inbox(self, identity: str, entry_id: str, *, now: datetime) -> Optional[WebhookEntry]:
        ...

    @abstractmethod
    async def list_inbox(self, identity: str, *, now: datetime) -> list[WebhookEntry]:
        ...

    @abstractmethod
    async def inbox_ids(self, identity: str) -> set[str]:
        ...

    @abstractmethod
    async def inbox_id_chunk(self, identity: str, *, limit: int) -> list[str]:
        ...

    @abstractmethod
    async def delete_inbox(
        self, identity: str, entry_ids: Sequence[str], *, live_at: Optional[datetime] = None
    ) -> int:
        """Delete inbox rows by id. With ``live_at``, only rows not yet expired at that instant."""
        ...

    @abstractmethod
    async def expired_inbox_keys(self, *, now: datetime, limit: int) -> list[tuple[str, str]]:
        ...

    @abstractmethod
    async def delete_inbox_keys(self, keys: Sequence[tuple[str, str]]) -> int:
        ...
