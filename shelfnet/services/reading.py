"""Reading records: what a user wants to read, is reading, or has finished."""

from __future__ import annotations

from typing import Optional

import structlog
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from shelfnet.database import utcnow
from shelfnet.errors import NotFoundError
from shelfnet.models.activity import ActivityType, TargetType
from shelfnet.models.book import Book
from shelfnet.models.reading import ReadingRecord, ReadingStatus
from shelfnet.services.activity import ActivityRecorder
from shelfnet.services.pagination import paginate

logger = structlog.get_logger()


class ReadingService:
    def __init__(self, db: AsyncSession, activity: Optional[ActivityRecorder] = None):
        self.db = db
        self.activity = activity or ActivityRecorder(db)

    async def get(self, user_id: int, book_id: int) -> Optional[ReadingRecord]:
        result = await self.db.execute(
            select(ReadingRecord).where(ReadingRecord.user_id == user_id, ReadingRecord.book_id == book_id)
        )
        return result.scalar_one_or_none()

    async def track(
        self,
        user_id: int,
        book_id: int,
        status: ReadingStatus,
        personal_rating: Optional[int] = None,
        current_page: Optional[int] = None,
        is_favorite: Optional[bool] = None,
    ) -> ReadingRecord:
        """Create or update the user's record for a book.

        Entering ``reading`` emits STARTED_BOOK, entering ``completed`` emits
        FINISHED_BOOK. Re-saving the same status emits nothing.
        """
        if await self.db.get(Book, book_id) is None:
            raise NotFoundError(f"Book not found with id: {book_id}")

        record = await self.get(user_id, book_id)
        if record is None:
            record, created = await self._insert_or_fetch(user_id, book_id, status)
            previous = None if created else record.status
        else:
            previous = record.status
        record.status = status

        if personal_rating is not None:
            record.personal_rating = personal_rating
        if current_page is not None:
            record.current_page = current_page
        if is_favorite is not None:
            record.is_favorite = is_favorite

        now = utcnow()
        if status == ReadingStatus.READING and previous != ReadingStatus.READING:
            record.start_date = now
            record.finish_date = None
        elif status == ReadingStatus.COMPLETED and previous != ReadingStatus.COMPLETED:
            record.finish_date = now
        await self.db.flush()
        await self.db.refresh(record)

        if status == ReadingStatus.READING and previous != ReadingStatus.READING:
            await self.activity.record(user_id, ActivityType.STARTED_BOOK, book_id, TargetType.BOOK)
        elif status == ReadingStatus.COMPLETED and previous != ReadingStatus.COMPLETED:
            await self.activity.record(
                user_id,
                ActivityType.FINISHED_BOOK,
                book_id,
                TargetType.BOOK,
                {"rating": record.personal_rating},
            )

        logger.info("reading_status_changed", user_id=user_id, book_id=book_id, status=status.value)
        return record

    async def _insert_or_fetch(
        self, user_id: int, book_id: int, status: ReadingStatus
    ) -> tuple[ReadingRecord, bool]:
        """Insert a fresh record under a SAVEPOINT; if a concurrent insert won, return that row."""
        record = ReadingRecord(user_id=user_id, book_id=book_id, status=status)
        try:
            async with self.db.begin_nested():
                self.db.add(record)
        except IntegrityError:
            winner = await self.get(user_id, book_id)
            if winner is None:
                raise
            logger.info("reading_insert_race_lost", user_id=user_id, book_id=book_id)
            return winner, False
        return record, True

    async def list_for_user(
        self,
        user_id: int,
        status: Optional[ReadingStatus] = None,
        page: int = 1,
        page_size: int = 20,
    ) -> tuple[list[ReadingRecord], int]:
        query = select(ReadingRecord).where(ReadingRecord.user_id == user_id)
        if status is not None:
            query = query.where(ReadingRecord.status == status)
        query = query.order_by(ReadingRecord.updated_at.desc(), ReadingRecord.id.desc())
        return await paginate(self.db, query, page, page_size)

    async def remove(self, user_id: int, book_id: int) -> None:
        record = await self.get(user_id, book_id)
        if record is None:
            raise NotFoundError("Reading record not found")
        await self.db.delete(record)
        await self.db.flush()
