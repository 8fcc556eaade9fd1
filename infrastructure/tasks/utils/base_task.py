"""Common base task for Celery jobs"""
from __future__ import annotations

import time

from celery import Task
from core.logging_config import get_logger

logger = get_logger(__name__)


class BaseTask(Task):
    """Structured start/success/failure logging around every task run."""

    def before_start(self, task_id, args, kwargs):  # type: ignore[override]
        self._started_at = time.monotonic()
        logger.info("celery_task_started", task_id=task_id, task_name=self.name)

    def _elapsed(self) -> float | None:
        started = getattr(self, "_started_at", None)
        return round(time.monotonic() - started, 3) if started is not None else None

    def on_failure(self, exc, task_id, args, kwargs, einfo):  # type: ignore[override]
        logger.error(
            "celery_task_failure",
            task_id=task_id,
            task_name=self.name,
            duration=self._elapsed(),
            exc=str(exc),
        )
        super().on_failure(exc, task_id, args, kwargs, einfo)

    def on_retry(self, exc, task_id, args, kwargs, einfo):  # type: ignore[override]
        logger.warning("celery_task_retry", task_id=task_id, task_name=self.name, exc=str(exc))
        super().on_retry(exc, task_id, args, kwargs, einfo)

    def on_success(self, retval, task_id, args, kwargs):  # type: ignore[override]
        logger.info(
            "celery_task_success",
            task_id=task_id,
            task_name=self.name,
            duration=self._elapsed(),
            result=retval,
        )
        super().on_success(retval, task_id, args, kwargs)
