from .beat import CELERY_BEAT_SCHEDULE, MAINTENANCE_QUEUE, SWEEP_TASK_NAME

__all__ = ["CELERY_BEAT_SCHEDULE", "MAINTENANCE_QUEUE", "SWEEP_TASK_NAME"]
