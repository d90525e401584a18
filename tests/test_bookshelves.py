"""Bookshelf service: ownership, privacy-filtered reads and dense ordering."""

from __future__ import annotations

import pytest
import pytest_asyncio
from sqlalchemy import select

from shelfnet.errors import DuplicateError, NotFoundError, UnauthorizedError
from shelfnet.models.activity import ActivityEvent, ActivityType, TargetType
from shelfnet.models.book import Book, BookSource
from shelfnet.models.bookshelf import PrivacyLevel
from shelfnet.services.activity import ActivityRecorder, deserialize_metadata
from shelfnet.services.bookshelves import BookshelfService
from shelfnet.services.social_graph import SocialGraph
from shelfnet.services.visibility import VisibilityPolicy


@pytest_asyncio.fixture
async def books(db):
    items = [
        Book(title=f"Volume {n}", author="Series Author", source=BookSource.MANUAL_ENTRY)
        for n in range(1, 6)
    ]
    db.add_all(items)
    await db.flush()
    return items


@pytest.fixture
def service(db):
    recorder = ActivityRecorder(db)
    graph = SocialGraph(db, recorder)
    return BookshelfService(db, VisibilityPolicy(graph), recorder)


async def _order(service: BookshelfService, shelf_id: int, viewer_id: int) -> list[tuple[int, int]]:
    return [(entry.position, book.id) for entry, book in await service.entries(shelf_id, viewer_id)]


class TestShelves:
    @pytest.mark.asyncio
    async def test_create_emits_event(self, db, make_user, service):
        owner = await make_user()
        shelf = await service.create(owner.id, "To read", privacy=PrivacyLevel.FRIENDS_ONLY)

        assert shelf.privacy == PrivacyLevel.FRIENDS_ONLY
        events = (await db.execute(select(ActivityEvent))).scalars().all()
        assert [(e.activity_type, e.target_type, e.target_id) for e in events] == [
            (ActivityType.CREATED_BOOKSHELF, TargetType.BOOKSHELF, shelf.id)
        ]

    @pytest.mark.asyncio
    async def test_get_respects_privacy(self, make_user, service):
        owner, other = await make_user(), await make_user()
        shelf = await service.create(owner.id, "Secret", privacy=PrivacyLevel.PRIVATE)

        assert (await service.get(shelf.id, owner.id)).id == shelf.id
        with pytest.raises(UnauthorizedError):
            await service.get(shelf.id, other.id)
        with pytest.raises(NotFoundError):
            await service.get(9999, owner.id)

    @pytest.mark.asyncio
    async def test_list_for_owner_filters_by_viewer(self, make_user, service):
        owner, friend, stranger = await make_user(), await make_user(), await make_user()
        graph = service.policy.graph
        await graph.follow(owner.id, friend.id)
        await graph.follow(friend.id, owner.id)

        public = await service.create(owner.id, "Public", privacy=PrivacyLevel.PUBLIC)
        friends = await service.create(owner.id, "Friends", privacy=PrivacyLevel.FRIENDS_ONLY)
        private = await service.create(owner.id, "Private", privacy=PrivacyLevel.PRIVATE)

        ids = lambda shelves: [s.id for s in shelves]  # noqa: E731
        assert ids(await service.list_for_owner(owner.id, owner.id)) == [public.id, friends.id, private.id]
        assert ids(await service.list_for_owner(owner.id, friend.id)) == [public.id, friends.id]
        assert ids(await service.list_for_owner(owner.id, stranger.id)) == [public.id]
        assert ids(await service.list_for_owner(owner.id, None)) == [public.id]

    @pytest.mark.asyncio
    async def test_only_owner_updates_or_deletes(self, make_user, service):
        owner, other = await make_user(), await make_user()
        shelf = await service.create(owner.id, "Mine")

        with pytest.raises(UnauthorizedError):
            await service.update(shelf.id, other.id, {"name": "Theirs"})
        with pytest.raises(UnauthorizedError):
            await service.delete(shelf.id, other.id)

        updated = await service.update(shelf.id, owner.id, {"name": "Still mine", "privacy": PrivacyLevel.PRIVATE})
        assert updated.name == "Still mine"
        assert updated.privacy == PrivacyLevel.PRIVATE

        await service.delete(shelf.id, owner.id)
        with pytest.raises(NotFoundError):
            await service.get(shelf.id, owner.id)


class TestEntries:
    @pytest.mark.asyncio
    async def test_append_keeps_positions_dense(self, db, make_user, service, books):
        owner = await make_user()
        shelf = await service.create(owner.id, "Series")
        for book in books[:3]:
            await service.add_book(shelf.id, owner.id, book.id)

        assert await _order(service, shelf.id, owner.id) == [
            (0, books[0].id),
            (1, books[1].id),
            (2, books[2].id),
        ]
        assert await service.book_count(shelf.id) == 3

    @pytest.mark.asyncio
    async def test_insert_at_position_shifts_and_clamps(self, make_user, service, books):
        owner = await make_user()
        shelf = await service.create(owner.id, "Series")
        await service.add_book(shelf.id, owner.id, books[0].id)
        await service.add_book(shelf.id, owner.id, books[1].id)
        await service.add_book(shelf.id, owner.id, books[2].id, position=0)
        await service.add_book(shelf.id, owner.id, books[3].id, position=99)

        assert await _order(service, shelf.id, owner.id) == [
            (0, books[2].id),
            (1, books[0].id),
            (2, books[1].id),
            (3, books[3].id),
        ]

    @pytest.mark.asyncio
    async def test_add_emits_event_with_book(self, db, make_user, service, books):
        owner = await make_user()
        shelf = await service.create(owner.id, "Series")
        await service.add_book(shelf.id, owner.id, books[0].id)

        result = await db.execute(
            select(ActivityEvent).where(ActivityEvent.activity_type == ActivityType.ADDED_TO_BOOKSHELF)
        )
        event = result.scalar_one()
        assert event.target_id == shelf.id
        assert deserialize_metadata(event.event_metadata) == {"book_id": books[0].id}

    @pytest.mark.asyncio
    async def test_duplicate_entry_rejected(self, make_user, service, books):
        owner = await make_user()
        shelf = await service.create(owner.id, "Series")
        await service.add_book(shelf.id, owner.id, books[0].id)
        with pytest.raises(DuplicateError):
            await service.add_book(shelf.id, owner.id, books[0].id)
        assert await service.book_count(shelf.id) == 1

    @pytest.mark.asyncio
    async def test_non_owner_cannot_add_even_to_public_shelf(self, make_user, service, books):
        owner, other = await make_user(), await make_user()
        shelf = await service.create(owner.id, "Open", privacy=PrivacyLevel.PUBLIC)
        with pytest.raises(UnauthorizedError):
            await service.add_book(shelf.id, other.id, books[0].id)

    @pytest.mark.asyncio
    async def test_remove_closes_gap(self, make_user, service, books):
        owner = await make_user()
        shelf = await service.create(owner.id, "Series")
        for book in books[:4]:
            await service.add_book(shelf.id, owner.id, book.id)

        await service.remove_book(shelf.id, owner.id, books[1].id)
        assert await _order(service, shelf.id, owner.id) == [
            (0, books[0].id),
            (1, books[2].id),
            (2, books[3].id),
        ]
        with pytest.raises(NotFoundError):
            await service.remove_book(shelf.id, owner.id, books[1].id)

    @pytest.mark.asyncio
    async def test_move_book(self, make_user, service, books):
        owner = await make_user()
        shelf = await service.create(owner.id, "Series")
        for book in books[:4]:
            await service.add_book(shelf.id, owner.id, book.id)

        await service.move_book(shelf.id, owner.id, books[0].id, 2)
        assert [b for _, b in await _order(service, shelf.id, owner.id)] == [
            books[1].id,
            books[2].id,
            books[0].id,
            books[3].id,
        ]

        moved = await service.move_book(shelf.id, owner.id, books[3].id, 0)
        assert moved.position == 0
        assert await _order(service, shelf.id, owner.id) == [
            (0, books[3].id),
            (1, books[1].id),
            (2, books[2].id),
            (3, books[0].id),
        ]

    @pytest.mark.asyncio
    async def test_entries_hidden_from_strangers(self, make_user, service, books):
        owner, stranger = await make_user(), await make_user()
        shelf = await service.create(owner.id, "Secret", privacy=PrivacyLevel.PRIVATE)
        await service.add_book(shelf.id, owner.id, books[0].id)
        with pytest.raises(UnauthorizedError):
            await service.entries(shelf.id, stranger.id)

    @pytest.mark.asyncio
    async def test_shelves_containing_book(self, make_user, service, books):
        owner, stranger = await make_user(), await make_user()
        public = await service.create(owner.id, "Public")
        private = await service.create(owner.id, "Private", privacy=PrivacyLevel.PRIVATE)
        await service.add_book(public.id, owner.id, books[0].id)
        await service.add_book(private.id, owner.id, books[0].id)

        assert [s.id for s in await service.shelves_containing(books[0].id, owner.id)] == [public.id, private.id]
        assert [s.id for s in await service.shelves_containing(books[0].id, stranger.id)] == [public.id]

    @pytest.mark.asyncio
    async def test_public_shelves_lists_only_public(self, make_user, service):
        alice, bob = await make_user(), await make_user()
        first = await service.create(alice.id, "Classics")
        await service.create(alice.id, "Guilty pleasures", privacy=PrivacyLevel.PRIVATE)
        await service.create(bob.id, "Book club", privacy=PrivacyLevel.FRIENDS_ONLY)
        latest = await service.create(bob.id, "Sci-fi")

        shelves, total = await service.public_shelves()
        assert total == 2
        assert [s.id for s in shelves] == [latest.id, first.id]
