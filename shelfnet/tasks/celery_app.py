"""Celery app for shelfnet background work. Beat drives the nightly activity purge."""

from celery import Celery
from celery.schedules import crontab

from shelfnet.config import get_settings
from shelfnet.logging_config import setup_logging

settings = get_settings()
setup_logging(settings.log_level, settings.log_format)

PURGE_TASK = "shelfnet.tasks.maintenance.purge_old_activities"

celery = Celery(
    "shelfnet",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
    include=["shelfnet.tasks.maintenance"],
)

celery.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    result_expires=86400,
    timezone="UTC",
    enable_utc=True,
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    task_routes={PURGE_TASK: {"queue": "maintenance"}},
    beat_schedule={
        "purge-old-activities": {
            "task": PURGE_TASK,
            "schedule": crontab(hour=settings.activity_purge_hour_utc, minute=0),
        },
    },
)
