"""
Celery application for background optimization runs.
"""

from celery import Celery

from roundscheduler.core.config import (
    OPTIMIZATION_QUEUE, REDIS_URL, RESULT_EXPIRES_SECONDS, TASK_TIME_LIMIT_SECONDS
)

celery_app = Celery(
    "roundscheduler",
    broker=REDIS_URL,
    backend=REDIS_URL,
    include=["roundscheduler.tasks.optimizer_tasks"]
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    enable_utc=True,
    task_track_started=True,
    task_routes={"optimize_schedule": {"queue": OPTIMIZATION_QUEUE}},
    task_time_limit=TASK_TIME_LIMIT_SECONDS,
    # Soft limit one minute ahead of the hard limit
    task_soft_time_limit=max(TASK_TIME_LIMIT_SECONDS - 60, 1),
    result_expires=RESULT_EXPIRES_SECONDS,
    # One long CPU-bound run per worker process at a time
    worker_prefetch_multiplier=1,
    worker_max_tasks_per_child=50,
)
