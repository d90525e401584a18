"""
Bookshelves and their ordered entries.

Entry positions are kept dense (0..n-1): inserts and moves shift the
neighbours, removals close the gap. Reads go through the visibility policy,
writes require ownership.
"""

from __future__ import annotations

from typing import Any, Optional

import structlog
from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from shelfnet.errors import DuplicateError, NotFoundError
from shelfnet.models.activity import ActivityType, TargetType
from shelfnet.models.book import Book
from shelfnet.models.bookshelf import Bookshelf, BookshelfBook, PrivacyLevel
from shelfnet.models.user import User
from shelfnet.services.activity import ActivityRecorder
from shelfnet.services.pagination import paginate
from shelfnet.services.visibility import VisibilityPolicy

logger = structlog.get_logger()


class BookshelfService:
    def __init__(
        self,
        db: AsyncSession,
        policy: VisibilityPolicy,
        activity: Optional[ActivityRecorder] = None,
    ):
        self.db = db
        self.policy = policy
        self.activity = activity or ActivityRecorder(db)

    async def _load(self, bookshelf_id: int) -> Bookshelf:
        shelf = await self.db.get(Bookshelf, bookshelf_id)
        if shelf is None:
            raise NotFoundError(f"Bookshelf not found with id: {bookshelf_id}")
        return shelf

    async def _owned(self, bookshelf_id: int, user_id: int, action: str = "modify") -> Bookshelf:
        shelf = await self._load(bookshelf_id)
        self.policy.require_owner(shelf, user_id, action)
        return shelf

    async def _entry(self, bookshelf_id: int, book_id: int) -> Optional[BookshelfBook]:
        result = await self.db.execute(
            select(BookshelfBook).where(
                BookshelfBook.bookshelf_id == bookshelf_id, BookshelfBook.book_id == book_id
            )
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def book_count(self, bookshelf_id: int) -> int:
        return (
            await self.db.execute(
                select(func.count())
                .select_from(BookshelfBook)
                .where(BookshelfBook.bookshelf_id == bookshelf_id)
            )
        ).scalar() or 0

    # ── Shelves ──

    async def create(
        self,
        user_id: int,
        name: str,
        description: Optional[str] = None,
        privacy: PrivacyLevel = PrivacyLevel.PUBLIC,
    ) -> Bookshelf:
        if await self.db.get(User, user_id) is None:
            raise NotFoundError(f"User not found with id: {user_id}")

        shelf = Bookshelf(user_id=user_id, name=name, description=description, privacy=privacy)
        self.db.add(shelf)
        await self.db.flush()

        await self.activity.record(
            user_id, ActivityType.CREATED_BOOKSHELF, shelf.id, TargetType.BOOKSHELF
        )
        logger.info("bookshelf_created", bookshelf_id=shelf.id, user_id=user_id, privacy=privacy.value)
        return shelf

    async def get(self, bookshelf_id: int, viewer_id: Optional[int]) -> Bookshelf:
        shelf = await self._load(bookshelf_id)
        await self.policy.require_view(shelf, viewer_id)
        return shelf

    async def list_for_owner(self, owner_id: int, viewer_id: Optional[int]) -> list[Bookshelf]:
        result = await self.db.execute(
            select(Bookshelf).where(Bookshelf.user_id == owner_id).order_by(Bookshelf.id)
        )
        return [shelf for shelf in result.scalars().all() if await self.policy.can_view(shelf, viewer_id)]

    async def public_shelves(self, page: int = 1, page_size: int = 20) -> tuple[list[Bookshelf], int]:
        """Every PUBLIC shelf, newest first."""
        query = (
            select(Bookshelf)
            .where(Bookshelf.privacy == PrivacyLevel.PUBLIC)
            .order_by(Bookshelf.created_at.desc(), Bookshelf.id.desc())
        )
        return await paginate(self.db, query, page, page_size)

    async def update(self, bookshelf_id: int, user_id: int, fields: dict[str, Any]) -> Bookshelf:
        shelf = await self._owned(bookshelf_id, user_id)
        for field, value in fields.items():
            if value is not None:
                setattr(shelf, field, value)
        await self.db.flush()
        await self.db.refresh(shelf)
        return shelf

    async def delete(self, bookshelf_id: int, user_id: int) -> None:
        shelf = await self._owned(bookshelf_id, user_id, "delete")
        await self.db.delete(shelf)
        await self.db.flush()
        logger.info("bookshelf_deleted", bookshelf_id=bookshelf_id, user_id=user_id)

    # ── Entries ──

    async def add_book(
        self, bookshelf_id: int, user_id: int, book_id: int, position: Optional[int] = None
    ) -> BookshelfBook:
        await self._owned(bookshelf_id, user_id)
        if await self.db.get(Book, book_id) is None:
            raise NotFoundError(f"Book not found with id: {book_id}")
        if await self._entry(bookshelf_id, book_id) is not None:
            raise DuplicateError("Book is already on this bookshelf")

        size = await self.book_count(bookshelf_id)
        target = size if position is None else max(0, min(position, size))

        entry = BookshelfBook(bookshelf_id=bookshelf_id, book_id=book_id, position=target)
        try:
            async with self.db.begin_nested():
                await self.db.execute(
                    update(BookshelfBook)
                    .where(
                        BookshelfBook.bookshelf_id == bookshelf_id,
                        BookshelfBook.position >= target,
                    )
                    .values(position=BookshelfBook.position + 1)
                    .execution_options(synchronize_session=False)
                )
                self.db.add(entry)
        except IntegrityError:
            raise DuplicateError("Book is already on this bookshelf")

        await self.activity.record(
            user_id,
            ActivityType.ADDED_TO_BOOKSHELF,
            bookshelf_id,
            TargetType.BOOKSHELF,
            {"book_id": book_id},
        )
        logger.info("book_added_to_bookshelf", bookshelf_id=bookshelf_id, book_id=book_id, position=target)
        return entry

    async def remove_book(self, bookshelf_id: int, user_id: int, book_id: int) -> None:
        await self._owned(bookshelf_id, user_id)
        entry = await self._entry(bookshelf_id, book_id)
        if entry is None:
            raise NotFoundError("Book is not on this bookshelf")

        removed_at = entry.position
        await self.db.delete(entry)
        await self.db.flush()
        await self.db.execute(
            update(BookshelfBook)
            .where(
                BookshelfBook.bookshelf_id == bookshelf_id,
                BookshelfBook.position > removed_at,
            )
            .values(position=BookshelfBook.position - 1)
            .execution_options(synchronize_session=False)
        )

    async def move_book(self, bookshelf_id: int, user_id: int, book_id: int, position: int) -> BookshelfBook:
        await self._owned(bookshelf_id, user_id)
        entry = await self._entry(bookshelf_id, book_id)
        if entry is None:
            raise NotFoundError("Book is not on this bookshelf")

        size = await self.book_count(bookshelf_id)
        target = max(0, min(position, size - 1))
        current = entry.position
        if target == current:
            return entry

        if target < current:
            shift = (
                update(BookshelfBook)
                .where(
                    BookshelfBook.bookshelf_id == bookshelf_id,
                    BookshelfBook.position >= target,
                    BookshelfBook.position < current,
                )
                .values(position=BookshelfBook.position + 1)
            )
        else:
            shift = (
                update(BookshelfBook)
                .where(
                    BookshelfBook.bookshelf_id == bookshelf_id,
                    BookshelfBook.position > current,
                    BookshelfBook.position <= target,
                )
                .values(position=BookshelfBook.position - 1)
            )
        await self.db.execute(shift.execution_options(synchronize_session=False))
        await self.db.execute(
            update(BookshelfBook)
            .where(BookshelfBook.id == entry.id)
            .values(position=target)
            .execution_options(synchronize_session=False)
        )
        await self.db.refresh(entry)
        return entry

    async def entries(self, bookshelf_id: int, viewer_id: Optional[int]) -> list[tuple[BookshelfBook, Book]]:
        await self.get(bookshelf_id, viewer_id)
        result = await self.db.execute(
            select(BookshelfBook, Book)
            .join(Book, Book.id == BookshelfBook.book_id)
            .where(BookshelfBook.bookshelf_id == bookshelf_id)
            .order_by(BookshelfBook.position, BookshelfBook.id)
            # bulk position shifts bypass the identity map
            .execution_options(populate_existing=True)
        )
        return [(entry, book) for entry, book in result.all()]

    async def shelves_containing(self, book_id: int, viewer_id: Optional[int]) -> list[Bookshelf]:
        result = await self.db.execute(
            select(Bookshelf)
            .join(BookshelfBook, BookshelfBook.bookshelf_id == Bookshelf.id)
            .where(BookshelfBook.book_id == book_id)
            .order_by(Bookshelf.id)
        )
        return [shelf for shelf in result.scalars().all() if await self.policy.can_view(shelf, viewer_id)]
