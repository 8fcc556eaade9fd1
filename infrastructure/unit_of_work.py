"""SQLAlchemy Unit of Work 实现"""
from __future__ import annotations

from typing import Optional, Callable
import inspect

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from domain.common.exceptions import StoreUnavailableException
from domain.common.unit_of_work import AbstractUnitOfWork
from infrastructure.database import AsyncSessionLocal
from infrastructure.repositories.webhook_repository import SQLAlchemyWebhookEntryRepository
from core.logging_config import get_logger


logger = get_logger(__name__)


class SQLAlchemyUnitOfWork(AbstractUnitOfWork):
    """基于SQLAlchemy的Unit of Work

    SQLAlchemyError 在事务边界统一转换为 StoreUnavailableException，
    上层无需依赖 SQLAlchemy。
    """

    def __init__(
        self,
        session_factory: Callable[[], AsyncSession] = AsyncSessionLocal,
        session: Optional[AsyncSession] = None,
        *,
        readonly: bool = False,
    ) -> None:
        super().__init__(readonly=readonly)
        self._session_factory = session_factory
        self._external_session = session
        self.session: Optional[AsyncSession] = session
        self.webhook_repository = None

    async def __aenter__(self) -> "SQLAlchemyUnitOfWork":
        if self.session is None:
            self.session = self._session_factory()
        self.webhook_repository = SQLAlchemyWebhookEntryRepository(self.session)
        # 仅在非只读模式下显式开启事务
        if not self._readonly:
            try:
                self._transaction = await self.session.begin()
            except SQLAlchemyError as exc:
                await self._close_session()
                logger.error("store_begin_failed", error=str(exc))
                raise StoreUnavailableException("begin", str(exc)) from exc
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        try:
            await super().__aexit__(exc_type, exc, tb)
        except SQLAlchemyError as commit_exc:
            logger.error("store_commit_failed", error=str(commit_exc))
            raise StoreUnavailableException("commit", str(commit_exc)) from commit_exc
        finally:
            tx = getattr(self, "_transaction", None)
            if tx is not None and getattr(tx, "is_active", False):
                close = getattr(tx, "close", None)
                if callable(close):
                    res = close()
                    if inspect.isawaitable(res):
                        await res
            await self._close_session()
            self.webhook_repository = None
        if isinstance(exc, SQLAlchemyError):
            logger.error("store_operation_failed", error=str(exc))
            raise StoreUnavailableException("query", str(exc)) from exc

    async def _close_session(self) -> None:
        if self._external_session is None and self.session is not None:
            await self.session.close()
            self.session = None

    async def commit(self) -> None:
        if self._readonly:
            self._committed = True
            return
        if self.session and self.session.in_transaction():
            await self.session.commit()
        self._committed = True

    async def rollback(self) -> None:
        if self.session and self.session.in_transaction():
            await self.session.rollback()
        self._committed = False
