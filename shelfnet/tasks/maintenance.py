"""
Periodic maintenance tasks.

``purge_old_activities`` trims the activity feed to the configured retention
window. It runs daily from celery beat and can also be queued by hand.
"""

from __future__ import annotations

import asyncio
import time
from typing import Optional

import structlog

from shelfnet.config import get_settings
from shelfnet.database import engine, session_scope
from shelfnet.services.activity import ActivityRecorder
from shelfnet.tasks.celery_app import PURGE_TASK, celery

logger = structlog.get_logger()
settings = get_settings()


async def purge_activities(retention_days: int) -> int:
    async with session_scope() as session:
        deleted = await ActivityRecorder(session).purge(retention_days)
    # pooled connections are bound to this run's event loop
    await engine.dispose()
    return deleted


@celery.task(
    name=PURGE_TASK,
    bind=True,
    max_retries=2,
    default_retry_delay=60,
)
def purge_old_activities(self, retention_days: Optional[int] = None):
    """Delete activity events older than the retention window."""
    task_id = self.request.id
    days = retention_days if retention_days is not None else settings.activity_retention_days
    start_time = time.time()

    logger.info("purge_started", task_id=task_id, retention_days=days)
    try:
        deleted = asyncio.run(purge_activities(days))
    except Exception as exc:
        logger.error("purge_failed", task_id=task_id, error=str(exc))
        raise self.retry(exc=exc)

    duration = round(time.time() - start_time, 2)
    logger.info("purge_completed", task_id=task_id, deleted=deleted, duration=duration)
    return {"status": "completed", "retention_days": days, "deleted": deleted, "duration_seconds": duration}
