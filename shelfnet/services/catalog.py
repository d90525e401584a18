"""
Catalog matcher — resolves free-text queries to a single stored Book.

Flow for ``resolve_book``:
1. Local substring search (title or author); first hit wins
2. External catalog lookup on a local miss
3. Map the catalog record to a candidate Book
4. Re-check by ISBN / external id / normalized title+author
5. Insert under a SAVEPOINT; on a uniqueness violation return the row that won

A failed external lookup is logged and reported as "not found".
"""

from __future__ import annotations

import re
from typing import Any, Optional, Protocol

import structlog
from prometheus_client import Counter
from sqlalchemy import and_, func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from shelfnet.errors import DuplicateError, NotFoundError, ValidationError
from shelfnet.models.book import Book, BookSource, normalize, tidy
from shelfnet.models.review import Review
from shelfnet.services.catalog_client import CatalogRecord
from shelfnet.services.pagination import LIKE_ESCAPE, contains_pattern, paginate

logger = structlog.get_logger()

CATALOG_LOOKUPS = Counter(
    "catalog_lookups_total",
    "External catalog lookups by outcome",
    ["outcome"],
)

UNKNOWN_AUTHOR = "Unknown Author"
_ISBN_RE = re.compile(r"^(\d{9}[\dX]|\d{13})$")


class CatalogClient(Protocol):
    async def lookup(self, query: str) -> CatalogRecord | None: ...


def published_year_from(date: Optional[str]) -> Optional[int]:
    """Leading four digits of a catalog date ("1949-06-08" -> 1949), else None."""
    match = re.match(r"[0-9]{4}", date or "")
    return int(match.group(0)) if match else None


def clean_isbn(raw: Optional[str]) -> Optional[str]:
    if raw is None:
        return None
    isbn = re.sub(r"[\s-]", "", raw).upper()
    if not isbn:
        return None
    if not _ISBN_RE.match(isbn):
        raise ValidationError(f"Invalid ISBN: {raw}")
    return isbn


def book_from_record(record: CatalogRecord) -> Book:
    return Book(
        title=record.title,
        author=", ".join(record.authors) if record.authors else UNKNOWN_AUTHOR,
        isbn=record.isbn13 or record.isbn10 or None,
        external_id=record.external_id,
        description=record.description,
        cover_url=record.cover_url,
        published_year=published_year_from(record.published_date),
        genre=record.categories[0] if record.categories else None,
        page_count=record.page_count,
        publisher=record.publisher,
        language=record.language,
        average_rating=0.0,
        is_verified=False,
        source=BookSource.EXTERNAL_CATALOG_PRIMARY,
    )


class CatalogMatcher:
    def __init__(self, db: AsyncSession, catalog: Optional[CatalogClient] = None):
        self.db = db
        self.catalog = catalog

    # ── Lookups ──

    async def get(self, book_id: int) -> Book:
        book = await self.db.get(Book, book_id)
        if book is None:
            raise NotFoundError(f"Book not found with id: {book_id}")
        return book

    async def search(self, query: str, page: int = 1, page_size: int = 20) -> tuple[list[Book], int]:
        """Local-only substring search on title or author."""
        pattern = contains_pattern(query.strip())
        stmt = (
            select(Book)
            .where(
                or_(
                    Book.title.ilike(pattern, escape=LIKE_ESCAPE),
                    Book.author.ilike(pattern, escape=LIKE_ESCAPE),
                )
            )
            .order_by(Book.id)
        )
        return await paginate(self.db, stmt, page, page_size)

    async def advanced_search(
        self,
        title: Optional[str] = None,
        author: Optional[str] = None,
        genre: Optional[str] = None,
        year: Optional[int] = None,
        page: int = 1,
        page_size: int = 20,
    ) -> tuple[list[Book], int]:
        """AND of the given filters; blank or missing filters are ignored."""
        conditions = []
        if title and title.strip():
            conditions.append(Book.title.ilike(contains_pattern(title.strip()), escape=LIKE_ESCAPE))
        if author and author.strip():
            conditions.append(Book.author.ilike(contains_pattern(author.strip()), escape=LIKE_ESCAPE))
        if genre and genre.strip():
            conditions.append(func.lower(Book.genre) == genre.strip().lower())
        if year is not None:
            conditions.append(Book.published_year == year)
        stmt = select(Book).where(*conditions).order_by(Book.id)
        return await paginate(self.db, stmt, page, page_size)

    async def by_genre(self, genre: str, page: int = 1, page_size: int = 20) -> tuple[list[Book], int]:
        stmt = select(Book).where(func.lower(Book.genre) == genre.strip().lower()).order_by(Book.id)
        return await paginate(self.db, stmt, page, page_size)

    async def recently_added(self, page: int = 1, page_size: int = 20) -> tuple[list[Book], int]:
        stmt = select(Book).order_by(Book.created_at.desc(), Book.id.desc())
        return await paginate(self.db, stmt, page, page_size)

    async def most_reviewed(self, page: int = 1, page_size: int = 20) -> tuple[list[Book], int]:
        """Books ordered by review count, unreviewed books last."""
        review_count = func.count(Review.id)
        stmt = (
            select(Book)
            .outerjoin(Review, Review.book_id == Book.id)
            .group_by(Book.id)
            .order_by(review_count.desc(), Book.id)
        )
        return await paginate(self.db, stmt, page, page_size)

    async def highest_rated(
        self, min_reviews: int = 5, page: int = 1, page_size: int = 20
    ) -> tuple[list[Book], int]:
        """Books with at least ``min_reviews`` reviews, best mean rating first."""
        if min_reviews < 0:
            raise ValidationError("min_reviews must not be negative")
        stmt = (
            select(Book)
            .outerjoin(Review, Review.book_id == Book.id)
            .group_by(Book.id)
            .having(func.count(Review.id) >= min_reviews)
            .order_by(func.coalesce(func.avg(Review.rating), 0).desc(), Book.id)
        )
        return await paginate(self.db, stmt, page, page_size)

    async def find_existing(
        self,
        isbn: Optional[str] = None,
        external_id: Optional[str] = None,
        title: Optional[str] = None,
        author: Optional[str] = None,
    ) -> Optional[Book]:
        """Combined-identifier lookup: ISBN, external id, or normalized title AND author."""
        conditions = []
        if isbn:
            conditions.append(Book.isbn == isbn)
        if external_id:
            conditions.append(Book.external_id == external_id)
        if title and author:
            conditions.append(
                and_(
                    Book.normalized_title == normalize(title),
                    Book.normalized_author == normalize(author),
                )
            )
        if not conditions:
            return None

        result = await self.db.execute(select(Book).where(or_(*conditions)).order_by(Book.id).limit(1))
        return result.scalar_one_or_none()

    async def isbn_exists(self, isbn: str) -> bool:
        cleaned = clean_isbn(isbn)
        result = await self.db.execute(select(Book.id).where(Book.isbn == cleaned))
        return result.first() is not None

    # ── Resolution ──

    async def resolve_book(self, query: str) -> Book:
        query = query.strip()
        if not query:
            raise ValidationError("Search query must not be blank")

        local, _ = await self.search(query, page=1, page_size=1)
        if local:
            return local[0]

        record = await self._lookup(query)
        if record is None:
            raise NotFoundError(f"Book not found: {query}")

        candidate = book_from_record(record)
        existing = await self.find_existing(
            candidate.isbn, candidate.external_id, candidate.title, candidate.author
        )
        if existing is not None:
            logger.info("catalog_record_matched_existing", book_id=existing.id, query=query)
            return existing

        book = await self._insert_or_fetch_winner(candidate)
        logger.info("book_resolved_from_catalog", book_id=book.id, external_id=book.external_id)
        return book

    async def _lookup(self, query: str) -> CatalogRecord | None:
        if self.catalog is None:
            return None
        try:
            record = await self.catalog.lookup(query)
        except Exception as e:
            CATALOG_LOOKUPS.labels(outcome="error").inc()
            logger.warning("catalog_lookup_failed", query=query, error=str(e))
            return None
        CATALOG_LOOKUPS.labels(outcome="hit" if record else "miss").inc()
        return record

    async def _insert_or_fetch_winner(self, candidate: Book) -> Book:
        try:
            async with self.db.begin_nested():
                self.db.add(candidate)
        except IntegrityError:
            winner = await self.find_existing(
                candidate.isbn, candidate.external_id, candidate.title, candidate.author
            )
            if winner is None:
                raise
            logger.info("catalog_insert_race_lost", book_id=winner.id)
            return winner
        return candidate

    # ── Manual entry & admin edits ──

    async def create_manual(self, fields: dict[str, Any]) -> Book:
        title = tidy(fields.get("title") or "")
        author = tidy(fields.get("author") or "")
        if not title or not author:
            raise ValidationError("Title and author are required")

        data = dict(fields, title=title, author=author, isbn=clean_isbn(fields.get("isbn")))
        existing = await self.find_existing(data["isbn"], data.get("external_id"), title, author)
        if existing is not None:
            raise DuplicateError(
                f"Book already exists with id: {existing.id}", existing_id=existing.id
            )

        book = Book(**data, source=BookSource.MANUAL_ENTRY, is_verified=False, average_rating=0.0)
        try:
            async with self.db.begin_nested():
                self.db.add(book)
        except IntegrityError:
            winner = await self.find_existing(data["isbn"], data.get("external_id"), title, author)
            raise DuplicateError(
                "Book already exists", existing_id=winner.id if winner else None
            )

        logger.info("book_created_manually", book_id=book.id)
        return book

    async def update(self, book_id: int, fields: dict[str, Any]) -> Book:
        book = await self.get(book_id)

        for key in ("title", "author"):
            if key in fields:
                value = tidy(fields[key] or "")
                if not value:
                    raise ValidationError(f"{key.capitalize()} must not be blank")
                fields[key] = value
        if "isbn" in fields:
            fields["isbn"] = clean_isbn(fields["isbn"])

        try:
            async with self.db.begin_nested():
                for field, value in fields.items():
                    setattr(book, field, value)
        except IntegrityError:
            await self.db.refresh(book)
            raise DuplicateError("Another book already uses these identifiers")
        return book

    async def verify(self, book_id: int) -> Book:
        book = await self.get(book_id)
        book.is_verified = True
        await self.db.flush()
        logger.info("book_verified", book_id=book_id)
        return book

    async def delete(self, book_id: int) -> None:
        book = await self.get(book_id)
        await self.db.delete(book)
        await self.db.flush()
