"""
Celery application entrypoint for the QA Resource Hub worker.

This module initializes Celery with all necessary configurations,
including the beat schedule of the pending index reconciliation.
"""

import logging

from celery import Celery

from common.config import get_settings
from common.logging_conf import setup_celery_logging

logger = logging.getLogger(__name__)

# Get settings
settings = get_settings()

# Initialize logging
setup_celery_logging(settings)

# Create Celery app
celery_app = Celery(
    "qahub_worker",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=["worker.tasks.maintenance_tasks"]
)

# Celery configuration
celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_time_limit=600,
    task_soft_time_limit=540,
    worker_prefetch_multiplier=1,
    worker_max_tasks_per_child=100,
    beat_schedule={
        "reconcile-pending-indices": {
            "task": "worker.tasks.reconcile_pending_indices",
            "schedule": float(settings.reconcile_interval_seconds),
        },
    },
)

logger.info("Celery app initialized successfully")


if __name__ == "__main__":
    celery_app.start()
