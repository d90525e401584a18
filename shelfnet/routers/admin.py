"""Admin routes — activity retention, date-range exports and usage reports (admin only)."""

from __future__ import annotations

from datetime import datetime

import structlog
from fastapi import APIRouter, Depends, Query

from shelfnet.auth.dependencies import Identity, require_admin
from shelfnet.config import get_settings
from shelfnet.dependencies import get_activity
from shelfnet.schemas.activity import ActiveUserResponse, ActivityResponse, FeedResponse, PurgeResponse
from shelfnet.services.activity import ActivityRecorder

logger = structlog.get_logger()
router = APIRouter(prefix="/admin", tags=["Admin"])


@router.post("/activities/purge", response_model=PurgeResponse)
async def purge_activities(
    retention_days: int | None = Query(None, ge=0),
    activity: ActivityRecorder = Depends(get_activity),
    _admin: Identity = Depends(require_admin),
):
    """
    Delete feed events older than the retention window.
    Defaults to the configured ``activity_retention_days``.
    """
    days = retention_days if retention_days is not None else get_settings().activity_retention_days
    deleted = await activity.purge(days)
    logger.info("purge_triggered", admin_id=_admin.user_id, retention_days=days, deleted=deleted)
    return PurgeResponse(retention_days=days, deleted=deleted)


@router.get("/users/most-active", response_model=list[ActiveUserResponse])
async def most_active_users(
    limit: int = Query(10, ge=1, le=100),
    activity: ActivityRecorder = Depends(get_activity),
    _admin: Identity = Depends(require_admin),
):
    return [ActiveUserResponse(**row) for row in await activity.most_active_users(limit)]


@router.get("/activities", response_model=FeedResponse)
async def activities_in_range(
    start: datetime = Query(...),
    end: datetime = Query(...),
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=200),
    activity: ActivityRecorder = Depends(get_activity),
    _admin: Identity = Depends(require_admin),
):
    """Every feed event created between ``start`` and ``end`` (inclusive), oldest first."""
    events, total = await activity.in_date_range(start, end, page, page_size)
    return FeedResponse(
        activities=[ActivityResponse(**row) for row in await activity.render(events)],
        total=total,
        page=page,
        page_size=page_size,
    )
