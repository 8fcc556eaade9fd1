"""Unit of Work 抽象：Webhook 存储的事务边界

每个分批操作（clear/sweep/copy）的一个批次对应一个 UoW，批次内原子提交；
批次之间互不回滚，因此多批次操作可能部分完成。
"""
from __future__ import annotations

from abc import ABC, abstractmethod

from domain.webhook.repository import WebhookEntryRepository


class AbstractUnitOfWork(ABC):
    webhook_repository: WebhookEntryRepository

    def __init__(self, *, readonly: bool = False) -> None:
        self._readonly = readonly
        self._committed = False

    @property
    def readonly(self) -> bool:
        return self._readonly

    async def __aenter__(self) -> "AbstractUnitOfWork":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if exc is not None:
            await self.rollback()
            return
        # 只读查询不提交；写操作未显式 commit 时在退出时提交
        if not (self._readonly or self._committed):
            await self.commit()

    @abstractmethod
    async def commit(self) -> None: ...

    @abstractmethod
    async def rollback(self) -> None: ...
