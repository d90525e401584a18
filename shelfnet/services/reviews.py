"""
Reviews and review likes.

``Review.like_count`` is a denormalized counter. It is only ever changed by a
single SQL UPDATE issued in the same transaction as the ReviewLike insert or
delete, and the decrement is clamped at zero.
"""

from __future__ import annotations

from typing import Any, Optional

import structlog
from sqlalchemy import case, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from shelfnet.errors import DuplicateError, NotFoundError, UnauthorizedError, ValidationError
from shelfnet.models.activity import ActivityType, TargetType
from shelfnet.models.book import Book
from shelfnet.models.follow import UserFollow
from shelfnet.models.review import Review, ReviewLike
from shelfnet.models.user import User
from shelfnet.services.activity import ActivityRecorder
from shelfnet.services.pagination import paginate

logger = structlog.get_logger()


def _check_rating(rating: Optional[int]) -> None:
    if rating is not None and not 1 <= rating <= 5:
        raise ValidationError("Rating must be between 1 and 5")


class ReviewService:
    def __init__(self, db: AsyncSession, activity: Optional[ActivityRecorder] = None):
        self.db = db
        self.activity = activity or ActivityRecorder(db)

    async def get(self, review_id: int) -> Review:
        review = await self.db.get(Review, review_id)
        if review is None:
            raise NotFoundError(f"Review not found with id: {review_id}")
        return review

    async def _refresh_book_rating(self, book_id: int) -> None:
        avg = (
            await self.db.execute(select(func.avg(Review.rating)).where(Review.book_id == book_id))
        ).scalar()
        book = await self.db.get(Book, book_id)
        if book is not None:
            book.average_rating = round(float(avg), 2) if avg is not None else 0.0
            await self.db.flush()

    async def create(
        self,
        user_id: int,
        book_id: int,
        rating: int,
        content: str,
        title: Optional[str] = None,
        contains_spoilers: bool = False,
    ) -> Review:
        _check_rating(rating)
        if not content or not content.strip():
            raise ValidationError("Review content must not be blank")

        existing = await self.db.execute(
            select(Review.id).where(Review.user_id == user_id, Review.book_id == book_id)
        )
        if existing.first() is not None:
            raise DuplicateError("You have already reviewed this book")

        if await self.db.get(User, user_id) is None:
            raise NotFoundError(f"User not found with id: {user_id}")
        if await self.db.get(Book, book_id) is None:
            raise NotFoundError(f"Book not found with id: {book_id}")

        review = Review(
            user_id=user_id,
            book_id=book_id,
            rating=rating,
            title=title,
            content=content,
            contains_spoilers=contains_spoilers,
            like_count=0,
        )
        try:
            async with self.db.begin_nested():
                self.db.add(review)
        except IntegrityError:
            raise DuplicateError("You have already reviewed this book")

        await self._refresh_book_rating(book_id)
        await self.activity.record(
            user_id,
            ActivityType.POSTED_REVIEW,
            review.id,
            TargetType.REVIEW,
            {"book_id": book_id, "rating": rating},
        )
        logger.info("review_created", review_id=review.id, user_id=user_id, book_id=book_id)
        return review

    async def update(self, review_id: int, user_id: int, fields: dict[str, Any]) -> Review:
        review = await self.get(review_id)
        if review.user_id != user_id:
            raise UnauthorizedError("You can only update your own reviews")

        _check_rating(fields.get("rating"))
        for field, value in fields.items():
            if value is not None:
                setattr(review, field, value)
        await self.db.flush()

        if fields.get("rating") is not None:
            await self._refresh_book_rating(review.book_id)
        await self.db.refresh(review)
        return review

    async def delete(self, review_id: int, user_id: int) -> None:
        review = await self.get(review_id)
        if review.user_id != user_id:
            raise UnauthorizedError("You can only delete your own reviews")

        book_id = review.book_id
        await self.db.delete(review)
        await self.db.flush()
        await self._refresh_book_rating(book_id)

    # ── Listings ──

    async def for_book(self, book_id: int, page: int = 1, page_size: int = 20) -> tuple[list[Review], int]:
        query = (
            select(Review)
            .where(Review.book_id == book_id)
            .order_by(Review.created_at.desc(), Review.id.desc())
        )
        return await paginate(self.db, query, page, page_size)

    async def popular_for_book(
        self, book_id: int, page: int = 1, page_size: int = 20
    ) -> tuple[list[Review], int]:
        query = (
            select(Review)
            .where(Review.book_id == book_id)
            .order_by(Review.like_count.desc(), Review.id.desc())
        )
        return await paginate(self.db, query, page, page_size)

    async def by_user(self, user_id: int, page: int = 1, page_size: int = 20) -> tuple[list[Review], int]:
        query = (
            select(Review)
            .where(Review.user_id == user_id)
            .order_by(Review.created_at.desc(), Review.id.desc())
        )
        return await paginate(self.db, query, page, page_size)

    async def recent(self, page: int = 1, page_size: int = 20) -> tuple[list[Review], int]:
        query = select(Review).order_by(Review.created_at.desc(), Review.id.desc())
        return await paginate(self.db, query, page, page_size)

    async def count_for_book(self, book_id: int) -> int:
        if await self.db.get(Book, book_id) is None:
            raise NotFoundError(f"Book not found with id: {book_id}")
        return (
            await self.db.execute(
                select(func.count()).select_from(Review).where(Review.book_id == book_id)
            )
        ).scalar() or 0

    async def from_following(
        self, user_id: int, page: int = 1, page_size: int = 20
    ) -> tuple[list[Review], int]:
        followed = select(UserFollow.following_id).where(UserFollow.follower_id == user_id)
        query = (
            select(Review)
            .where(Review.user_id.in_(followed))
            .order_by(Review.created_at.desc(), Review.id.desc())
        )
        return await paginate(self.db, query, page, page_size)

    # ── Likes ──

    async def _find_like(self, user_id: int, review_id: int) -> Optional[ReviewLike]:
        result = await self.db.execute(
            select(ReviewLike).where(ReviewLike.user_id == user_id, ReviewLike.review_id == review_id)
        )
        return result.scalar_one_or_none()

    async def has_liked(self, user_id: int, review_id: int) -> bool:
        return await self._find_like(user_id, review_id) is not None

    async def like(self, user_id: int, review_id: int) -> ReviewLike:
        review = await self.get(review_id)
        if await self.has_liked(user_id, review_id):
            raise DuplicateError("You have already liked this review")
        if await self.db.get(User, user_id) is None:
            raise NotFoundError(f"User not found with id: {user_id}")

        like = ReviewLike(user_id=user_id, review_id=review_id)
        try:
            async with self.db.begin_nested():
                self.db.add(like)
        except IntegrityError:
            raise DuplicateError("You have already liked this review")

        await self.db.execute(
            update(Review)
            .where(Review.id == review_id)
            .values(like_count=Review.like_count + 1)
            .execution_options(synchronize_session=False)
        )
        await self.db.refresh(review)

        await self.activity.record(
            user_id,
            ActivityType.LIKED_REVIEW,
            review_id,
            TargetType.REVIEW,
            {"book_id": review.book_id},
        )
        return like

    async def unlike(self, user_id: int, review_id: int) -> None:
        like = await self._find_like(user_id, review_id)
        if like is None:
            raise NotFoundError("Like not found for this review")

        await self.db.delete(like)
        await self.db.flush()
        await self.db.execute(
            update(Review)
            .where(Review.id == review_id)
            .values(like_count=case((Review.like_count > 0, Review.like_count - 1), else_=0))
            .execution_options(synchronize_session=False)
        )
        review = await self.db.get(Review, review_id)
        if review is not None:
            await self.db.refresh(review)

    async def toggle_like(self, user_id: int, review_id: int) -> bool:
        """Flip the like state; returns True when the review is now liked."""
        if await self.has_liked(user_id, review_id):
            await self.unlike(user_id, review_id)
            return False
        await self.like(user_id, review_id)
        return True

    async def likers(self, review_id: int) -> list[ReviewLike]:
        await self.get(review_id)
        result = await self.db.execute(
            select(ReviewLike).where(ReviewLike.review_id == review_id).order_by(ReviewLike.id)
        )
        return list(result.scalars().all())

    async def liked_by(self, user_id: int, page: int = 1, page_size: int = 20) -> tuple[list[Review], int]:
        """Reviews ``user_id`` has liked, most recently liked first."""
        if await self.db.get(User, user_id) is None:
            raise NotFoundError(f"User not found with id: {user_id}")
        query = (
            select(Review)
            .join(ReviewLike, ReviewLike.review_id == Review.id)
            .where(ReviewLike.user_id == user_id)
            .order_by(ReviewLike.created_at.desc(), ReviewLike.id.desc())
        )
        return await paginate(self.db, query, page, page_size)

    async def like_count(self, review_id: int) -> int:
        """Live count of ReviewLike rows (the source of truth for ``like_count``)."""
        return (
            await self.db.execute(
                select(func.count()).select_from(ReviewLike).where(ReviewLike.review_id == review_id)
            )
        ).scalar() or 0
