"""Beat schedule: periodic removal of entries past their TTL."""
from __future__ import annotations

from core.config import settings

MAINTENANCE_QUEUE = "maintenance"
SWEEP_TASK_NAME = "webhooks.sweep_expired"

CELERY_BEAT_SCHEDULE = {
    "webhooks-sweep-expired": {
        "task": SWEEP_TASK_NAME,
        "schedule": float(settings.SWEEP_INTERVAL_SECONDS),
        # 下一次调度前未执行则丢弃，避免积压的清理任务
        "options": {"queue": MAINTENANCE_QUEUE, "expires": float(settings.SWEEP_INTERVAL_SECONDS)},
    },
}
