"""
Run a Celery worker that consumes the optimization queue.
"""

import os

from roundscheduler.core.celery_app import celery_app
from roundscheduler.core.config import OPTIMIZATION_QUEUE, WORKER_CONCURRENCY
from roundscheduler.core.logging_config import setup_logging

if __name__ == "__main__":
    setup_logging()
    print("=" * 60)
    print("Round Scheduler - Celery Worker")
    print("=" * 60)
    print(f"Queue: {OPTIMIZATION_QUEUE}")
    print(f"Concurrency: {WORKER_CONCURRENCY}")
    print("=" * 60)

    celery_app.worker_main([
        "worker",
        "--loglevel=info",
        f"--queues={OPTIMIZATION_QUEUE}",
        f"--concurrency={WORKER_CONCURRENCY}",
        "--pool=solo" if os.name == "nt" else "--pool=prefork"  # prefork is unavailable on Windows
    ])
