"""Celery app for the webhook expiry sweep.

Worker: ``celery -A infrastructure.tasks.config.celery:celery_app worker -Q maintenance``
Beat:   ``celery -A infrastructure.tasks.config.celery:celery_app beat``
"""
from __future__ import annotations

import os

from celery import Celery
from kombu import Queue

from core.config import settings
from core.logging_config import get_logger
from .beat import CELERY_BEAT_SCHEDULE, MAINTENANCE_QUEUE


logger = get_logger(__name__)

TASK_PACKAGES = ("infrastructure.tasks.tasks",)

# 未配置 REDIS__URL 时允许用独立的 broker/backend（如 RabbitMQ）
_broker_url = settings.redis.url or os.getenv("CELERY_BROKER_URL")
_result_backend = settings.redis.url or os.getenv("CELERY_RESULT_BACKEND")

celery_app = Celery("webhook_inbox", broker=_broker_url, backend=_result_backend)

celery_app.conf.update(
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    timezone="UTC",
    enable_utc=True,
    # 清理任务幂等，可在 worker 丢失后重投
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    result_expires=settings.SWEEP_INTERVAL_SECONDS,
    worker_prefetch_multiplier=1,
    task_default_queue=MAINTENANCE_QUEUE,
    task_queues=(Queue(MAINTENANCE_QUEUE),),
    task_routes={"webhooks.*": {"queue": MAINTENANCE_QUEUE}},
    beat_schedule=CELERY_BEAT_SCHEDULE,
    imports=TASK_PACKAGES,
)

if (settings.ENVIRONMENT or "").lower() in {"test", "testing"}:
    celery_app.conf.task_always_eager = True

celery_app.autodiscover_tasks(packages=TASK_PACKAGES)


@celery_app.on_after_configure.connect
def _log_configuration(sender, **kwargs):
    logger.info(
        "celery_configured",
        broker=bool(sender.conf.broker_url),
        eager=bool(sender.conf.task_always_eager),
        sweep_interval_s=settings.SWEEP_INTERVAL_SECONDS,
    )
