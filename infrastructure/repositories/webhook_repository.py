"""SQLAlchemy-backed repository for master and inbox webhook entries."""
from __future__ import annotations

from datetime import datetime
from typing import Iterable, Optional, Sequence

from sqlalchemy import and_, delete, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from domain.webhook import WebhookEntry, WebhookEntryRepository
from infrastructure.models.webhook_entry import InboxEntryModel, WebhookEntryModel


def _entry_columns(entry: WebhookEntry) -> dict:
    return {
        "id": entry.id,
        "received_at": entry.received_at,
        "expires_at": entry.expires_at,
        "method": entry.method,
        "path": entry.path,
        "channel": entry.channel,
        "query_string": entry.query_string,
        "headers": dict(entry.headers or {}),
        "content_type": entry.content_type,
        "body": entry.body,
        "source_ip": entry.source_ip,
        "content_length": entry.content_length,
    }


class SQLAlchemyWebhookEntryRepository(WebhookEntryRepository):
    """Persist webhook entries using SQLAlchemy ORM."""

    def __init__(self, session: AsyncSession):
        self.session = session

    @staticmethod
    def _to_entity(model) -> WebhookEntry:
        return WebhookEntry(
            id=model.id,
            received_at=model.received_at,
            expires_at=model.expires_at,
            method=model.method,
            path=model.path,
            channel=model.channel,
            query_string=model.query_string,
            headers=dict(model.headers or {}),
            content_type=model.content_type,
            body=model.body,
            source_ip=model.source_ip,
            content_length=int(model.content_length or 0),
        )

    # -------------------- master --------------------
    async def upsert_master(self, entry: WebhookEntry) -> WebhookEntry:
        model = await self.session.merge(WebhookEntryModel(**_entry_columns(entry)))
        await self.session.flush()
        return self._to_entity(model)

    async def get_master(self, entry_id: str, *, now: datetime) -> Optional[WebhookEntry]:
        result = await self.session.execute(
            select(WebhookEntryModel).where(
                WebhookEntryModel.id == entry_id,
                WebhookEntryModel.expires_at > now,
            )
        )
        model = result.scalar_one_or_none()
        return self._to_entity(model) if model else None

    async def list_master(self, *, now: datetime) -> list[WebhookEntry]:
        result = await self.session.execute(
            select(WebhookEntryModel)
            .where(WebhookEntryModel.expires_at > now)
            .order_by(WebhookEntryModel.received_at.desc(), WebhookEntryModel.id.desc())
        )
        return [self._to_entity(m) for m in result.scalars().all()]

    async def expired_master_ids(self, *, now: datetime, limit: int) -> list[str]:
        result = await self.session.execute(
            select(WebhookEntryModel.id)
            .where(WebhookEntryModel.expires_at <= now)
            .order_by(WebhookEntryModel.expires_at)
            .limit(limit)
        )
        return list(result.scalars().all())

    async def delete_master(self, entry_ids: Sequence[str]) -> int:
        if not entry_ids:
            return 0
        result = await self.session.execute(
            delete(WebhookEntryModel).where(WebhookEntryModel.id.in_(list(entry_ids)))
        )
        return int(result.rowcount or 0)

    # -------------------- inbox --------------------
    async def upsert_inbox(self, identity: str, entries: Iterable[WebhookEntry]) -> int:
        count = 0
        for entry in entries:
            await self.session.merge(InboxEntryModel(identity=identity, **_entry_columns(entry)))
            count += 1
        if count:
            await self.session.flush()
        return count

    async def get_inbox(self, identity: str, entry_id: str, *, now: datetime) -> Optional[WebhookEntry]:
        result = await self.session.execute(
            select(InboxEntryModel).where(
                InboxEntryModel.identity == identity,
                InboxEntryModel.id == entry_id,
                InboxEntryModel.expires_at > now,
            )
        )
        model = result.scalar_one_or_none()
        return self._to_entity(model) if model else None

    async def list_inbox(self, identity: str, *, now: datetime) -> list[WebhookEntry]:
        result = await self.session.execute(
            select(InboxEntryModel)
            .where(
                InboxEntryModel.identity == identity,
                InboxEntryModel.expires_at > now,
            )
            .order_by(InboxEntryModel.received_at.desc(), InboxEntryModel.id.desc())
        )
        return [self._to_entity(m) for m in result.scalars().all()]

    async def inbox_ids(self, identity: str) -> set[str]:
        result = await self.session.execute(
            select(InboxEntryModel.id).where(InboxEntryModel.identity == identity)
        )
        return set(result.scalars().all())

    async def inbox_id_chunk(self, identity: str, *, limit: int) -> list[str]:
        result = await self.session.execute(
            select(InboxEntryModel.id)
            .where(InboxEntryModel.identity == identity)
            .order_by(InboxEntryModel.id)
            .limit(limit)
        )
        return list(result.scalars().all())

    async def delete_inbox(
        self, identity: str, entry_ids: Sequence[str], *, live_at: Optional[datetime] = None
    ) -> int:
        if not entry_ids:
            return 0
        stmt = delete(InboxEntryModel).where(
            InboxEntryModel.identity == identity,
            InboxEntryModel.id.in_(list(entry_ids)),
        )
        if live_at is not None:
            stmt = stmt.where(InboxEntryModel.expires_at > live_at)
        result = await self.session.execute(stmt)
        return int(result.rowcount or 0)

    async def expired_inbox_keys(self, *, now: datetime, limit: int) -> list[tuple[str, str]]:
        result = await self.session.execute(
            select(InboxEntryModel.identity, InboxEntryModel.id)
            .where(InboxEntryModel.expires_at <= now)
            .order_by(InboxEntryModel.expires_at)
            .limit(limit)
        )
        return [(row.identity, row.id) for row in result.all()]

    async def delete_inbox_keys(self, keys: Sequence[tuple[str, str]]) -> int:
        if not keys:
            return 0
        clauses = [
            and_(InboxEntryModel.identity == identity, InboxEntryModel.id == entry_id)
            for identity, entry_id in keys
        ]
        result = await self.session.execute(delete(InboxEntryModel).where(or_(*clauses)))
        return int(result.rowcount or 0)
