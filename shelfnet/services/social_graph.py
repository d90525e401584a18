"""
Social graph — directed follow edges between users.

"Mutual" is never stored: it is derived at query time from the two directed
edges. User search and per-user counts live here too.
"""

from __future__ import annotations

from typing import Optional

import structlog
from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from shelfnet.errors import AlreadyFollowingError, NotFoundError, ValidationError
from shelfnet.models.activity import ActivityType, TargetType
from shelfnet.models.follow import UserFollow
from shelfnet.models.reading import ReadingRecord
from shelfnet.models.review import Review
from shelfnet.models.user import User
from shelfnet.services.activity import ActivityRecorder
from shelfnet.services.pagination import LIKE_ESCAPE, contains_pattern, paginate

logger = structlog.get_logger()


class SocialGraph:
    def __init__(self, db: AsyncSession, activity: Optional[ActivityRecorder] = None):
        self.db = db
        self.activity = activity or ActivityRecorder(db)

    async def _require_user(self, user_id: int, label: str = "User") -> User:
        user = await self.db.get(User, user_id)
        if user is None:
            raise NotFoundError(f"{label} not found with id: {user_id}")
        return user

    async def is_following(self, follower_id: int, following_id: int) -> bool:
        result = await self.db.execute(
            select(UserFollow.id).where(
                UserFollow.follower_id == follower_id,
                UserFollow.following_id == following_id,
            )
        )
        return result.first() is not None

    async def is_mutual(self, user_a: Optional[int], user_b: Optional[int]) -> bool:
        if user_a is None or user_b is None or user_a == user_b:
            return False
        return await self.is_following(user_a, user_b) and await self.is_following(user_b, user_a)

    async def follow(self, follower_id: int, following_id: int) -> UserFollow:
        logger.info("follow_requested", follower_id=follower_id, following_id=following_id)

        if follower_id == following_id:
            raise ValidationError("You cannot follow yourself")

        if await self.is_following(follower_id, following_id):
            raise AlreadyFollowingError("You are already following this user")

        await self._require_user(follower_id, "Follower")
        await self._require_user(following_id, "User to follow")

        edge = UserFollow(follower_id=follower_id, following_id=following_id)
        try:
            async with self.db.begin_nested():
                self.db.add(edge)
        except IntegrityError:
            # A concurrent request inserted the same edge first
            raise AlreadyFollowingError("You are already following this user")

        await self.activity.record(
            follower_id, ActivityType.FOLLOWED_USER, following_id, TargetType.USER
        )
        logger.info("user_followed", follower_id=follower_id, following_id=following_id)
        return edge

    async def unfollow(self, follower_id: int, following_id: int) -> None:
        result = await self.db.execute(
            select(UserFollow).where(
                UserFollow.follower_id == follower_id,
                UserFollow.following_id == following_id,
            )
        )
        edge = result.scalar_one_or_none()
        if edge is None:
            raise NotFoundError("Follow relationship not found")

        await self.db.delete(edge)
        await self.db.flush()
        logger.info("user_unfollowed", follower_id=follower_id, following_id=following_id)

    async def follow_stats(self, user_id: int, viewer_id: Optional[int] = None) -> dict:
        await self._require_user(user_id)

        followers_count = (
            await self.db.execute(
                select(func.count()).select_from(UserFollow).where(UserFollow.following_id == user_id)
            )
        ).scalar() or 0
        following_count = (
            await self.db.execute(
                select(func.count()).select_from(UserFollow).where(UserFollow.follower_id == user_id)
            )
        ).scalar() or 0

        is_following = False
        is_followed_by = False
        if viewer_id is not None and viewer_id != user_id:
            is_following = await self.is_following(viewer_id, user_id)
            is_followed_by = await self.is_following(user_id, viewer_id)

        return {
            "user_id": user_id,
            "followers_count": followers_count,
            "following_count": following_count,
            "is_following": is_following,
            "is_followed_by": is_followed_by,
            "is_mutual": is_following and is_followed_by,
        }

    async def followers(self, user_id: int, page: int = 1, page_size: int = 20) -> tuple[list[User], int]:
        await self._require_user(user_id)
        query = (
            select(User)
            .join(UserFollow, UserFollow.follower_id == User.id)
            .where(UserFollow.following_id == user_id)
            .order_by(UserFollow.created_at.desc(), UserFollow.id.desc())
        )
        return await paginate(self.db, query, page, page_size)

    async def following(self, user_id: int, page: int = 1, page_size: int = 20) -> tuple[list[User], int]:
        await self._require_user(user_id)
        query = (
            select(User)
            .join(UserFollow, UserFollow.following_id == User.id)
            .where(UserFollow.follower_id == user_id)
            .order_by(UserFollow.created_at.desc(), UserFollow.id.desc())
        )
        return await paginate(self.db, query, page, page_size)

    async def mutual_follows(self, user_id: int) -> list[User]:
        """Users that ``user_id`` follows and who follow ``user_id`` back."""
        await self._require_user(user_id)
        followed_by_user = select(UserFollow.following_id).where(UserFollow.follower_id == user_id)
        following_user = select(UserFollow.follower_id).where(UserFollow.following_id == user_id)
        result = await self.db.execute(
            select(User)
            .where(User.id.in_(followed_by_user), User.id.in_(following_user))
            .order_by(User.id)
        )
        return list(result.scalars().all())

    async def suggest(self, user_id: int, page: int = 1, page_size: int = 20) -> tuple[list[User], int]:
        """Users who track at least one book that ``user_id`` also tracks.

        Unranked: ordered by user id.
        """
        await self._require_user(user_id)
        user_books = select(ReadingRecord.book_id).where(ReadingRecord.user_id == user_id)
        readers = select(ReadingRecord.user_id).where(
            ReadingRecord.book_id.in_(user_books),
            ReadingRecord.user_id != user_id,
        )
        query = select(User).where(User.id.in_(readers)).order_by(User.id)
        return await paginate(self.db, query, page, page_size)

    async def search_users(self, query: str, page: int = 1, page_size: int = 20) -> tuple[list[User], int]:
        """Active users whose username or display name contains ``query``, case-insensitively."""
        query = query.strip()
        if not query:
            raise ValidationError("Search query must not be blank")
        pattern = contains_pattern(query)
        stmt = (
            select(User)
            .where(
                User.is_active.is_(True),
                or_(
                    User.username.ilike(pattern, escape=LIKE_ESCAPE),
                    User.display_name.ilike(pattern, escape=LIKE_ESCAPE),
                ),
            )
            .order_by(User.username, User.id)
        )
        return await paginate(self.db, stmt, page, page_size)

    async def user_stats(self, user_id: int) -> dict[str, int]:
        """Follower, following, tracked-book and review counts for one user."""
        await self._require_user(user_id)

        async def count(model, *where) -> int:
            return (await self.db.execute(select(func.count()).select_from(model).where(*where))).scalar() or 0

        return {
            "user_id": user_id,
            "followers_count": await count(UserFollow, UserFollow.following_id == user_id),
            "following_count": await count(UserFollow, UserFollow.follower_id == user_id),
            "books_count": await count(ReadingRecord, ReadingRecord.user_id == user_id),
            "reviews_count": await count(Review, Review.user_id == user_id),
        }
