"""Catalog matcher: resolution, dedup and manual entry."""

from __future__ import annotations

import httpx
import pytest
import pytest_asyncio
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from conftest import ORWELL_1984, FakeCatalog
from shelfnet.errors import DuplicateError, NotFoundError, ValidationError
from shelfnet.models.book import Book, BookSource
from shelfnet.models.review import Review
from shelfnet.services.catalog import (
    UNKNOWN_AUTHOR,
    CatalogMatcher,
    book_from_record,
    clean_isbn,
    published_year_from,
)
from shelfnet.services.catalog_client import CatalogRecord


async def _book_count(db) -> int:
    return (await db.execute(select(func.count()).select_from(Book))).scalar()


class TestRecordMapping:
    def test_published_year_takes_leading_digits(self):
        assert published_year_from("1949-06-08") == 1949
        assert published_year_from("2001") == 2001

    @pytest.mark.parametrize("raw", [None, "", "19", "June 1949", " 1949", "-194"])
    def test_published_year_unparseable_is_none(self, raw):
        assert published_year_from(raw) is None

    def test_authors_joined_and_isbn13_preferred(self):
        record = CatalogRecord(
            external_id="abc",
            title="Good Omens",
            authors=["Terry Pratchett", "Neil Gaiman"],
            isbn13="9780060853983",
            isbn10="0060853980",
            categories=["Fiction", "Humor"],
        )
        book = book_from_record(record)
        assert book.author == "Terry Pratchett, Neil Gaiman"
        assert book.isbn == "9780060853983"
        assert book.genre == "Fiction"
        assert book.source == BookSource.EXTERNAL_CATALOG_PRIMARY
        assert book.is_verified is False
        assert book.average_rating == 0.0

    def test_missing_authors_and_isbn13(self):
        record = CatalogRecord(external_id="x", title="Anonymous Work", isbn10="0451524934")
        book = book_from_record(record)
        assert book.author == UNKNOWN_AUTHOR
        assert book.isbn == "0451524934"
        assert book.genre is None
        assert book.published_year is None

    def test_clean_isbn(self):
        assert clean_isbn("978-0-451-52493-5") == "9780451524935"
        assert clean_isbn("0 8044 2957 x") == "080442957X"
        assert clean_isbn(None) is None
        with pytest.raises(ValidationError):
            clean_isbn("12345")


class TestResolveBook:
    @pytest.mark.asyncio
    async def test_orwell_scenario(self, db, fake_catalog):
        matcher = CatalogMatcher(db, fake_catalog)
        book = await matcher.resolve_book("1984 George Orwell")

        assert book.id is not None
        assert book.title == "1984"
        assert book.author == "George Orwell"
        assert book.published_year == 1949
        assert book.genre == "Fiction"
        assert book.isbn == "9780451524935"
        assert book.source == BookSource.EXTERNAL_CATALOG_PRIMARY

    @pytest.mark.asyncio
    async def test_resolve_is_idempotent(self, db, fake_catalog):
        matcher = CatalogMatcher(db, fake_catalog)
        first = await matcher.resolve_book("1984 George Orwell")
        second = await matcher.resolve_book("1984 George Orwell")

        assert first.id == second.id
        assert await _book_count(db) == 1

    @pytest.mark.asyncio
    async def test_local_hit_skips_catalog(self, db, fake_catalog):
        db.add(Book(title="Dune", author="Frank Herbert", source=BookSource.MANUAL_ENTRY))
        await db.flush()

        book = await CatalogMatcher(db, fake_catalog).resolve_book("herbert")
        assert book.title == "Dune"
        assert fake_catalog.calls == []

    @pytest.mark.asyncio
    async def test_wildcards_in_query_match_literally(self, db):
        db.add(Book(title="Harry Potter", author="J.K. Rowling", source=BookSource.MANUAL_ENTRY))
        db.add(Book(title="100 Years", author="G. Marquez", source=BookSource.MANUAL_ENTRY))
        await db.flush()
        catalog = FakeCatalog({
            "h_rry": CatalogRecord(external_id="ext-h_rry", title="H_rry", authors=["A. Writer"]),
            "100%": CatalogRecord(external_id="ext-100", title="100%", authors=["B. Writer"]),
        })
        matcher = CatalogMatcher(db, catalog)

        book = await matcher.resolve_book("H_rry")
        assert book.title == "H_rry"
        book = await matcher.resolve_book("100%")
        assert book.title == "100%"
        assert catalog.calls == ["H_rry", "100%"]

        # Once stored, the literal title is a local hit
        again = await matcher.resolve_book("h_rry")
        assert again.external_id == "ext-h_rry"
        assert catalog.calls == ["H_rry", "100%"]

    @pytest.mark.asyncio
    async def test_backslash_in_query_is_literal(self, db, fake_catalog):
        db.add(Book(title="ACDC", author="Band", source=BookSource.MANUAL_ENTRY))
        db.add(Book(title="AC\\DC", author="Band", source=BookSource.MANUAL_ENTRY))
        await db.flush()

        books, total = await CatalogMatcher(db, fake_catalog).search("AC\\DC")
        assert total == 1
        assert books[0].title == "AC\\DC"

    @pytest.mark.asyncio
    async def test_local_hits_ordered_by_id(self, db, fake_catalog):
        db.add(Book(title="Emma", author="Jane Austen", source=BookSource.MANUAL_ENTRY))
        db.add(Book(title="Persuasion", author="Jane Austen", source=BookSource.MANUAL_ENTRY))
        await db.flush()

        book = await CatalogMatcher(db, fake_catalog).resolve_book("austen")
        assert book.title == "Emma"

    @pytest.mark.asyncio
    async def test_catalog_miss_is_not_found(self, db, fake_catalog):
        with pytest.raises(NotFoundError):
            await CatalogMatcher(db, fake_catalog).resolve_book("no such book anywhere")

    @pytest.mark.asyncio
    async def test_catalog_failure_is_not_found(self, db, fake_catalog):
        fake_catalog.error = httpx.ConnectError("catalog unreachable")
        with pytest.raises(NotFoundError):
            await CatalogMatcher(db, fake_catalog).resolve_book("1984")
        assert await _book_count(db) == 0

    @pytest.mark.asyncio
    async def test_without_catalog_client(self, db):
        with pytest.raises(NotFoundError):
            await CatalogMatcher(db).resolve_book("1984")

    @pytest.mark.asyncio
    async def test_blank_query_rejected(self, db, fake_catalog):
        with pytest.raises(ValidationError):
            await CatalogMatcher(db, fake_catalog).resolve_book("   ")

    @pytest.mark.asyncio
    async def test_catalog_record_matching_existing_by_title_author(self, db):
        existing = Book(title="  1984 ", author="george orwell", source=BookSource.MANUAL_ENTRY)
        db.add(existing)
        await db.flush()

        catalog = FakeCatalog({"big brother": ORWELL_1984})
        book = await CatalogMatcher(db, catalog).resolve_book("big brother")
        assert book.id == existing.id
        assert await _book_count(db) == 1

    @pytest.mark.asyncio
    async def test_insert_race_returns_winner(self, db, fake_catalog):
        winner = Book(
            title="Nineteen Eighty-Four",
            author="G. Orwell",
            isbn="9780451524935",
            source=BookSource.MANUAL_ENTRY,
        )
        db.add(winner)
        await db.flush()

        # A concurrent request committed the same ISBN after our pre-insert check
        matcher = CatalogMatcher(db, fake_catalog)
        book = await matcher._insert_or_fetch_winner(book_from_record(ORWELL_1984))

        assert book.id == winner.id
        assert await _book_count(db) == 1

    @pytest.mark.asyncio
    async def test_isbns_stay_unique(self, db, fake_catalog):
        matcher = CatalogMatcher(db, fake_catalog)
        for query in ("1984", "1984 George Orwell", "1984"):
            await matcher.resolve_book(query)

        isbns = (await db.execute(select(Book.isbn).where(Book.isbn.is_not(None)))).scalars().all()
        assert len(isbns) == len(set(isbns)) == 1


class TestManualEntry:
    @pytest.mark.asyncio
    async def test_create_manual(self, db):
        book = await CatalogMatcher(db).create_manual(
            {"title": " The Hobbit ", "author": "J.R.R. Tolkien", "isbn": "978-0-547-92822-7"}
        )
        assert book.title == "The Hobbit"
        assert book.isbn == "9780547928227"
        assert book.source == BookSource.MANUAL_ENTRY
        assert book.is_verified is False

    @pytest.mark.asyncio
    async def test_blank_title_rejected(self, db):
        with pytest.raises(ValidationError):
            await CatalogMatcher(db).create_manual({"title": "  ", "author": "Someone"})

    @pytest.mark.asyncio
    async def test_bad_isbn_rejected(self, db):
        with pytest.raises(ValidationError):
            await CatalogMatcher(db).create_manual({"title": "T", "author": "A", "isbn": "97804"})

    @pytest.mark.asyncio
    async def test_duplicate_names_existing_id(self, db):
        matcher = CatalogMatcher(db)
        original = await matcher.create_manual({"title": "The Hobbit", "author": "J.R.R. Tolkien"})

        with pytest.raises(DuplicateError) as exc_info:
            await matcher.create_manual({"title": "the hobbit  ", "author": "  J.R.R. TOLKIEN"})
        assert exc_info.value.existing_id == original.id

    @pytest.mark.asyncio
    async def test_catalog_whitespace_title_blocks_manual_duplicate(self, db):
        catalog = FakeCatalog({
            "dune": CatalogRecord(external_id="ext-dune", title="Dune\t", authors=["Frank  Herbert"]),
        })
        matcher = CatalogMatcher(db, catalog)
        resolved = await matcher.resolve_book("dune")
        assert resolved.title == "Dune"
        assert resolved.author == "Frank Herbert"

        with pytest.raises(DuplicateError) as exc_info:
            await matcher.create_manual({"title": "Dune", "author": "Frank Herbert"})
        assert exc_info.value.existing_id == resolved.id

    @pytest.mark.asyncio
    async def test_non_ascii_case_is_duplicate(self, db):
        matcher = CatalogMatcher(db)
        original = await matcher.create_manual({"title": "ÉMILE", "author": "Rousseau"})

        with pytest.raises(DuplicateError) as exc_info:
            await matcher.create_manual({"title": "émile", "author": "ROUSSEAU"})
        assert exc_info.value.existing_id == original.id
        assert await _book_count(db) == 1

    @pytest.mark.asyncio
    async def test_normalized_pair_is_unique_in_the_database(self, db):
        db.add(Book(title="Straße", author="Autor", source=BookSource.MANUAL_ENTRY))
        await db.flush()
        with pytest.raises(IntegrityError):
            async with db.begin_nested():
                db.add(Book(title="STRASSE", author="autor ", source=BookSource.MANUAL_ENTRY))

    @pytest.mark.asyncio
    async def test_duplicate_isbn(self, db):
        matcher = CatalogMatcher(db)
        original = await matcher.create_manual(
            {"title": "Dune", "author": "Frank Herbert", "isbn": "9780441013593"}
        )
        with pytest.raises(DuplicateError) as exc_info:
            await matcher.create_manual(
                {"title": "Dune (Deluxe)", "author": "F. Herbert", "isbn": "978-0441013593"}
            )
        assert exc_info.value.existing_id == original.id


class TestAdminEdits:
    @pytest.mark.asyncio
    async def test_update_and_verify(self, db):
        matcher = CatalogMatcher(db)
        book = await matcher.create_manual({"title": "Dune", "author": "Frank Herbert"})

        updated = await matcher.update(book.id, {"genre": "Science Fiction", "page_count": 412})
        assert updated.genre == "Science Fiction"

        verified = await matcher.verify(book.id)
        assert verified.is_verified is True

    @pytest.mark.asyncio
    async def test_update_to_taken_isbn_is_duplicate(self, db):
        matcher = CatalogMatcher(db)
        await matcher.create_manual({"title": "Dune", "author": "Frank Herbert", "isbn": "9780441013593"})
        other = await matcher.create_manual({"title": "Emma", "author": "Jane Austen"})

        with pytest.raises(DuplicateError):
            await matcher.update(other.id, {"isbn": "9780441013593"})

        refreshed = await matcher.get(other.id)
        assert refreshed.isbn is None

    @pytest.mark.asyncio
    async def test_update_to_taken_title_author_is_duplicate(self, db):
        matcher = CatalogMatcher(db)
        await matcher.create_manual({"title": "Émile", "author": "Rousseau"})
        other = await matcher.create_manual({"title": "Emma", "author": "Jane Austen"})

        with pytest.raises(DuplicateError):
            await matcher.update(other.id, {"title": " émile", "author": "rousseau"})

        refreshed = await matcher.get(other.id)
        assert refreshed.title == "Emma"
        assert refreshed.normalized_title == "emma"

    @pytest.mark.asyncio
    async def test_delete(self, db):
        matcher = CatalogMatcher(db)
        book = await matcher.create_manual({"title": "Dune", "author": "Frank Herbert"})
        await matcher.delete(book.id)
        with pytest.raises(NotFoundError):
            await matcher.get(book.id)

    @pytest.mark.asyncio
    async def test_isbn_exists(self, db):
        matcher = CatalogMatcher(db)
        await matcher.create_manual({"title": "Dune", "author": "Frank Herbert", "isbn": "9780441013593"})
        assert await matcher.isbn_exists("978-0441013593") is True
        assert await matcher.isbn_exists("9780451524935") is False


async def _review(db, user, book, rating: int) -> None:
    db.add(Review(user_id=user.id, book_id=book.id, rating=rating, content="Thoughts."))
    await db.flush()


@pytest_asyncio.fixture
async def shelf(db):
    books = [
        Book(title="Dune", author="Frank Herbert", genre="Science Fiction", published_year=1965),
        Book(title="Dune Messiah", author="Frank Herbert", genre="Science Fiction", published_year=1969),
        Book(title="Emma", author="Jane Austen", genre="Romance", published_year=1815),
        Book(title="Hyperion", author="Dan Simmons", genre="science fiction", published_year=1989),
    ]
    db.add_all(books)
    await db.flush()
    return books


class TestListings:
    @pytest.mark.asyncio
    async def test_advanced_search_ands_filters(self, db, shelf):
        matcher = CatalogMatcher(db)

        books, total = await matcher.advanced_search(title="dune", author="herbert", year=1969)
        assert total == 1
        assert books[0].title == "Dune Messiah"

        books, total = await matcher.advanced_search(genre="SCIENCE FICTION")
        assert [b.title for b in books] == ["Dune", "Dune Messiah", "Hyperion"]

    @pytest.mark.asyncio
    async def test_advanced_search_without_filters_lists_everything(self, db, shelf):
        books, total = await CatalogMatcher(db).advanced_search(title="  ", page_size=2)
        assert total == 4
        assert len(books) == 2

    @pytest.mark.asyncio
    async def test_by_genre(self, db, shelf):
        books, total = await CatalogMatcher(db).by_genre("Romance")
        assert total == 1
        assert books[0].title == "Emma"

    @pytest.mark.asyncio
    async def test_recently_added_newest_first(self, db, shelf):
        books, total = await CatalogMatcher(db).recently_added()
        assert total == 4
        assert books[0].title == "Hyperion"

    @pytest.mark.asyncio
    async def test_most_reviewed(self, db, make_user, shelf):
        dune, messiah, emma, hyperion = shelf
        a, b = await make_user(), await make_user()
        await _review(db, a, emma, 3)
        await _review(db, b, emma, 4)
        await _review(db, a, hyperion, 5)

        books, total = await CatalogMatcher(db).most_reviewed()
        assert total == 4
        assert [bk.title for bk in books] == ["Emma", "Hyperion", "Dune", "Dune Messiah"]

    @pytest.mark.asyncio
    async def test_highest_rated_respects_minimum(self, db, make_user, shelf):
        dune, messiah, emma, hyperion = shelf
        a, b = await make_user(), await make_user()
        await _review(db, a, emma, 3)
        await _review(db, b, emma, 4)
        await _review(db, a, dune, 5)
        await _review(db, b, dune, 5)
        await _review(db, a, hyperion, 5)

        matcher = CatalogMatcher(db)
        books, total = await matcher.highest_rated(min_reviews=2)
        assert total == 2
        assert [bk.title for bk in books] == ["Dune", "Emma"]

        books, total = await matcher.highest_rated(min_reviews=0)
        assert total == 4

    @pytest.mark.asyncio
    async def test_highest_rated_negative_minimum_rejected(self, db):
        with pytest.raises(ValidationError):
            await CatalogMatcher(db).highest_rated(min_reviews=-1)
