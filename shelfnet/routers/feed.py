"""Activity feed routes."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from shelfnet.auth.dependencies import Identity, get_current_user
from shelfnet.dependencies import get_activity
from shelfnet.models.activity import ActivityType
from shelfnet.schemas.activity import ActivityResponse, FeedResponse
from shelfnet.services.activity import ActivityRecorder, FeedMode

router = APIRouter(prefix="/feed", tags=["Feed"])


async def _feed_page(activity: ActivityRecorder, events, total: int, page: int, page_size: int) -> FeedResponse:
    return FeedResponse(
        activities=[ActivityResponse(**row) for row in await activity.render(events)],
        total=total,
        page=page,
        page_size=page_size,
    )


@router.get("", response_model=FeedResponse)
async def get_feed(
    mode: FeedMode = Query(FeedMode.COMBINED),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    activity: ActivityRecorder = Depends(get_activity),
    current_user: Identity = Depends(get_current_user),
):
    """The caller's own events, those of people they follow, or both."""
    events, total = await activity.feed(current_user.user_id, mode, page, page_size)
    return await _feed_page(activity, events, total, page, page_size)


@router.get("/types/{activity_type}", response_model=FeedResponse)
async def feed_by_type(
    activity_type: ActivityType,
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    activity: ActivityRecorder = Depends(get_activity),
    _user: Identity = Depends(get_current_user),
):
    events, total = await activity.by_type(activity_type, page, page_size)
    return await _feed_page(activity, events, total, page, page_size)


@router.get("/{activity_id}", response_model=ActivityResponse)
async def get_activity_event(
    activity_id: int,
    activity: ActivityRecorder = Depends(get_activity),
    _user: Identity = Depends(get_current_user),
):
    rendered = await activity.render([await activity.get(activity_id)])
    return ActivityResponse(**rendered[0])
