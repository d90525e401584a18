"""
Activity recorder — appends typed feed events and renders feeds and aggregates.

Metadata is validated against ``ACTIVITY_SHAPES`` at write time and stored as a
JSON object (or NULL when empty).
"""

from __future__ import annotations

import enum
import json
from collections import Counter
from datetime import datetime, timedelta, timezone
from typing import Any, Mapping, Optional

import structlog
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import delete, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from shelfnet.database import utcnow
from shelfnet.errors import NotFoundError, ValidationError
from shelfnet.models.activity import ActivityEvent, ActivityType, TargetType
from shelfnet.models.follow import UserFollow
from shelfnet.models.user import User
from shelfnet.schemas.activity import ACTIVITY_SHAPES
from shelfnet.services.pagination import paginate

logger = structlog.get_logger()

STATS_WINDOW_DAYS = 30
TRENDING_WINDOW_DAYS = 7

_SUMMARIES = {
    ActivityType.STARTED_BOOK: "{name} started reading a book",
    ActivityType.FINISHED_BOOK: "{name} finished reading a book",
    ActivityType.POSTED_REVIEW: "{name} wrote a review",
    ActivityType.LIKED_REVIEW: "{name} liked a review",
    ActivityType.FOLLOWED_USER: "{name} followed a user",
    ActivityType.CREATED_BOOKSHELF: "{name} created a new bookshelf",
    ActivityType.ADDED_TO_BOOKSHELF: "{name} added a book to a bookshelf",
}


class FeedMode(str, enum.Enum):
    OWN = "own"
    FOLLOWING = "following"
    COMBINED = "combined"


def serialize_metadata(metadata: Optional[Mapping[str, Any]]) -> Optional[str]:
    if not metadata:
        return None
    return json.dumps(dict(metadata), sort_keys=True)


def deserialize_metadata(raw: Optional[str]) -> dict[str, Any]:
    if not raw:
        return {}
    return json.loads(raw)


def _as_utc(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


def describe(event: ActivityEvent, actor_name: str) -> str:
    template = _SUMMARIES.get(event.activity_type, "{name} performed an action")
    return template.format(name=actor_name)


class ActivityRecorder:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def record(
        self,
        user_id: int,
        activity_type: ActivityType,
        target_id: Optional[int],
        target_type: TargetType | str,
        metadata: Optional[Mapping[str, Any]] = None,
    ) -> ActivityEvent:
        activity_type = ActivityType(activity_type)
        expected_target, shape = ACTIVITY_SHAPES[activity_type]

        try:
            target_type = TargetType(target_type)
        except ValueError:
            raise ValidationError(f"Unknown target type: {target_type}")
        if target_type != expected_target:
            raise ValidationError(
                f"{activity_type.value} targets {expected_target.value}, not {target_type.value}"
            )

        try:
            validated = shape.model_validate(dict(metadata or {}))
        except PydanticValidationError as e:
            raise ValidationError(f"Invalid metadata for {activity_type.value}: {e.errors()}")

        event = ActivityEvent(
            user_id=user_id,
            activity_type=activity_type,
            target_id=target_id,
            target_type=target_type,
            event_metadata=serialize_metadata(validated.model_dump(exclude_none=True)),
        )
        self.db.add(event)
        await self.db.flush()

        logger.info(
            "activity_recorded",
            activity_id=event.id,
            user_id=user_id,
            activity_type=activity_type.value,
            target_id=target_id,
        )
        return event

    async def get(self, activity_id: int) -> ActivityEvent:
        event = await self.db.get(ActivityEvent, activity_id)
        if event is None:
            raise NotFoundError(f"Activity not found with id: {activity_id}")
        return event

    async def feed(
        self, user_id: int, mode: FeedMode, page: int = 1, page_size: int = 20
    ) -> tuple[list[ActivityEvent], int]:
        followed = select(UserFollow.following_id).where(UserFollow.follower_id == user_id)

        if mode == FeedMode.OWN:
            condition = ActivityEvent.user_id == user_id
        elif mode == FeedMode.FOLLOWING:
            condition = ActivityEvent.user_id.in_(followed)
        else:
            condition = or_(ActivityEvent.user_id == user_id, ActivityEvent.user_id.in_(followed))

        query = (
            select(ActivityEvent)
            .where(condition)
            .order_by(ActivityEvent.created_at.desc(), ActivityEvent.id.desc())
        )
        return await paginate(self.db, query, page, page_size)

    async def by_type(
        self, activity_type: ActivityType, page: int = 1, page_size: int = 20
    ) -> tuple[list[ActivityEvent], int]:
        query = (
            select(ActivityEvent)
            .where(ActivityEvent.activity_type == activity_type)
            .order_by(ActivityEvent.created_at.desc(), ActivityEvent.id.desc())
        )
        return await paginate(self.db, query, page, page_size)

    async def in_date_range(
        self, start: datetime, end: datetime, page: int = 1, page_size: int = 20
    ) -> tuple[list[ActivityEvent], int]:
        """Every event created between ``start`` and ``end`` inclusive, oldest first.

        Naive datetimes are taken as UTC.
        """
        start, end = _as_utc(start), _as_utc(end)
        if start > end:
            raise ValidationError("start must not be after end")
        query = (
            select(ActivityEvent)
            .where(ActivityEvent.created_at >= start, ActivityEvent.created_at <= end)
            .order_by(ActivityEvent.created_at, ActivityEvent.id)
        )
        return await paginate(self.db, query, page, page_size)

    async def render(self, events: list[ActivityEvent]) -> list[dict[str, Any]]:
        """Attach deserialized metadata and a one-line summary to each event."""
        actor_ids = {e.user_id for e in events}
        names: dict[int, str] = {}
        if actor_ids:
            result = await self.db.execute(
                select(User.id, User.username, User.display_name).where(User.id.in_(actor_ids))
            )
            names = {row.id: row.display_name or row.username for row in result}

        return [
            {
                "id": e.id,
                "user_id": e.user_id,
                "activity_type": e.activity_type,
                "target_id": e.target_id,
                "target_type": e.target_type,
                "metadata": deserialize_metadata(e.event_metadata),
                "summary": describe(e, names.get(e.user_id, "Someone")),
                "created_at": e.created_at,
            }
            for e in events
        ]

    async def stats(self, user_id: int) -> dict[str, Any]:
        total = (
            await self.db.execute(
                select(func.count()).select_from(ActivityEvent).where(ActivityEvent.user_id == user_id)
            )
        ).scalar() or 0

        since = utcnow() - timedelta(days=STATS_WINDOW_DAYS)
        result = await self.db.execute(
            select(ActivityEvent.activity_type, func.count())
            .where(ActivityEvent.user_id == user_id, ActivityEvent.created_at >= since)
            .group_by(ActivityEvent.activity_type)
        )
        counts = {kind.value: 0 for kind in ActivityType}
        for kind, count in result.all():
            counts[ActivityType(kind).value] = count

        started = counts[ActivityType.STARTED_BOOK.value]
        finished = counts[ActivityType.FINISHED_BOOK.value]
        return {
            "user_id": user_id,
            "total_activities": total,
            "recent_activities": sum(counts.values()),
            "counts": counts,
            "books_added": counts[ActivityType.ADDED_TO_BOOKSHELF.value],
            "books_started": started,
            "books_finished": finished,
            "reviews_written": counts[ActivityType.POSTED_REVIEW.value],
            "bookshelves_created": counts[ActivityType.CREATED_BOOKSHELF.value],
            "completion_rate": (finished * 100.0 / started) if started else 0.0,
        }

    async def trending(self, limit: int = 10) -> list[dict[str, int]]:
        """Books ranked by BOOK- and REVIEW-targeted events over the last week."""
        since = utcnow() - timedelta(days=TRENDING_WINDOW_DAYS)
        result = await self.db.execute(
            select(ActivityEvent.target_type, ActivityEvent.target_id, ActivityEvent.event_metadata).where(
                ActivityEvent.created_at >= since,
                ActivityEvent.target_type.in_([TargetType.BOOK, TargetType.REVIEW]),
            )
        )

        counter: Counter[int] = Counter()
        for target_type, target_id, raw in result.all():
            if TargetType(target_type) == TargetType.BOOK:
                if target_id is not None:
                    counter[target_id] += 1
            else:
                book_id = deserialize_metadata(raw).get("book_id")
                if book_id is not None:
                    counter[int(book_id)] += 1

        ranked = sorted(counter.items(), key=lambda kv: (-kv[1], kv[0]))[:limit]
        return [{"book_id": book_id, "activity_count": count} for book_id, count in ranked]

    async def most_active_users(self, limit: int = 10) -> list[dict[str, int]]:
        since = utcnow() - timedelta(days=STATS_WINDOW_DAYS)
        count = func.count(ActivityEvent.id)
        result = await self.db.execute(
            select(ActivityEvent.user_id, count)
            .where(ActivityEvent.created_at >= since)
            .group_by(ActivityEvent.user_id)
            .order_by(count.desc(), ActivityEvent.user_id.asc())
            .limit(limit)
        )
        return [{"user_id": user_id, "activity_count": n} for user_id, n in result.all()]

    async def purge(self, retention_days: int) -> int:
        """Delete every event created at or before ``now - retention_days``."""
        if retention_days < 0:
            raise ValidationError("retention_days must be zero or positive")
        cutoff = utcnow() - timedelta(days=retention_days)
        result = await self.db.execute(
            delete(ActivityEvent)
            .where(ActivityEvent.created_at <= cutoff)
            .execution_options(synchronize_session=False)
        )
        deleted = result.rowcount or 0
        logger.info("activities_purged", retention_days=retention_days, deleted=deleted)
        return deleted
