"""Activity feed schemas and the per-kind metadata shapes.

Every activity kind declares its target type and the exact metadata it may
carry. ``ActivityRecorder.record`` validates against this table before
anything is written.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from shelfnet.models.activity import ActivityType, TargetType


class _Metadata(BaseModel):
    model_config = ConfigDict(extra="forbid")


class NoMetadata(_Metadata):
    pass


class FinishedBookMetadata(_Metadata):
    rating: Optional[int] = Field(None, ge=1, le=5)


class PostedReviewMetadata(_Metadata):
    book_id: int
    rating: int = Field(..., ge=1, le=5)


class LikedReviewMetadata(_Metadata):
    book_id: int


class AddedToBookshelfMetadata(_Metadata):
    book_id: int


ACTIVITY_SHAPES: dict[ActivityType, tuple[TargetType, type[_Metadata]]] = {
    ActivityType.STARTED_BOOK: (TargetType.BOOK, NoMetadata),
    ActivityType.FINISHED_BOOK: (TargetType.BOOK, FinishedBookMetadata),
    ActivityType.POSTED_REVIEW: (TargetType.REVIEW, PostedReviewMetadata),
    ActivityType.LIKED_REVIEW: (TargetType.REVIEW, LikedReviewMetadata),
    ActivityType.FOLLOWED_USER: (TargetType.USER, NoMetadata),
    ActivityType.CREATED_BOOKSHELF: (TargetType.BOOKSHELF, NoMetadata),
    ActivityType.ADDED_TO_BOOKSHELF: (TargetType.BOOKSHELF, AddedToBookshelfMetadata),
}


class ActivityResponse(BaseModel):
    id: int
    user_id: int
    activity_type: ActivityType
    target_id: Optional[int]
    target_type: Optional[TargetType]
    metadata: dict[str, Any]
    summary: str
    created_at: datetime


class FeedResponse(BaseModel):
    activities: list[ActivityResponse]
    total: int
    page: int
    page_size: int


class ActivityStatsResponse(BaseModel):
    user_id: int
    total_activities: int
    recent_activities: int
    counts: dict[str, int]
    books_added: int
    books_started: int
    books_finished: int
    reviews_written: int
    bookshelves_created: int
    completion_rate: float


class TrendingBookResponse(BaseModel):
    book_id: int
    activity_count: int


class ActiveUserResponse(BaseModel):
    user_id: int
    activity_count: int


class PurgeResponse(BaseModel):
    retention_days: int
    deleted: int
