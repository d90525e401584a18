"""Activity feed event ORM model."""

from __future__ import annotations

import enum
from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, Enum, ForeignKey, Index, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from shelfnet.database import Base, utcnow


class ActivityType(str, enum.Enum):
    STARTED_BOOK = "STARTED_BOOK"
    FINISHED_BOOK = "FINISHED_BOOK"
    POSTED_REVIEW = "POSTED_REVIEW"
    LIKED_REVIEW = "LIKED_REVIEW"
    FOLLOWED_USER = "FOLLOWED_USER"
    CREATED_BOOKSHELF = "CREATED_BOOKSHELF"
    ADDED_TO_BOOKSHELF = "ADDED_TO_BOOKSHELF"


class TargetType(str, enum.Enum):
    BOOK = "BOOK"
    REVIEW = "REVIEW"
    USER = "USER"
    BOOKSHELF = "BOOKSHELF"


class ActivityEvent(Base):
    __tablename__ = "activity_feed"
    __table_args__ = (
        Index("ix_activity_feed_user_created", "user_id", "created_at"),
        Index("ix_activity_feed_created", "created_at"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    activity_type: Mapped[ActivityType] = mapped_column(
        Enum(ActivityType, native_enum=False, length=50), nullable=False
    )
    target_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    target_type: Mapped[Optional[TargetType]] = mapped_column(
        Enum(TargetType, native_enum=False, length=50), nullable=True
    )
    # "metadata" is reserved on declarative classes
    event_metadata: Mapped[Optional[str]] = mapped_column("metadata", Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )

    def __repr__(self) -> str:
        return f"<ActivityEvent id={self.id} user={self.user_id} type={self.activity_type}>"
