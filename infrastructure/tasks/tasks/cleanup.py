"""Expiry sweep tasks.

``run_sweep`` is shared by the Celery beat task and the manual cleanup
endpoint. Runs are not mutually excluded; overlapping sweeps only race on
rows both would delete anyway.
"""
from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from functools import partial
from typing import Optional

from celery import shared_task
from sqlalchemy.ext.asyncio import async_sessionmaker

from application.dto import CleanupResultDTO
from application.services.webhook_store_service import WebhookStoreService
from core.config import settings
from core.logging_config import get_logger
from infrastructure.database import create_engine_for
from infrastructure.unit_of_work import SQLAlchemyUnitOfWork
from ..config.beat import SWEEP_TASK_NAME
from ..utils.base_task import BaseTask

logger = get_logger(__name__)


async def run_sweep(
    store: WebhookStoreService,
    now: Optional[datetime] = None,
    *,
    include_inboxes: Optional[bool] = None,
) -> CleanupResultDTO:
    now = now or datetime.now(timezone.utc)
    if include_inboxes is None:
        include_inboxes = settings.SWEEP_INCLUDE_INBOXES
    master_deleted = await store.sweep_expired_master(now)
    inbox_deleted = await store.sweep_expired_inboxes(now) if include_inboxes else 0
    logger.info(
        "expired_entries_swept",
        master_deleted=master_deleted,
        inbox_deleted=inbox_deleted,
        cutoff=now.isoformat(),
    )
    return CleanupResultDTO(master_deleted=master_deleted, inbox_deleted=inbox_deleted, cutoff=now)


async def _sweep_with_fresh_engine() -> CleanupResultDTO:
    # 每次 asyncio.run 都是新事件循环，连接池不能跨循环复用
    engine = create_engine_for(settings.database.url)
    try:
        session_factory = async_sessionmaker(bind=engine, expire_on_commit=False)
        store = WebhookStoreService(partial(SQLAlchemyUnitOfWork, session_factory))
        return await run_sweep(store)
    finally:
        await engine.dispose()


@shared_task(name=SWEEP_TASK_NAME, bind=True, base=BaseTask, max_retries=3, default_retry_delay=60)
def sweep_expired(self):
    try:
        result = asyncio.run(_sweep_with_fresh_engine())
    except Exception as exc:  # pragma: no cover
        logger.error("expired_sweep_failed", error=str(exc))
        raise self.retry(exc=exc)
    return result.model_dump(mode="json")
