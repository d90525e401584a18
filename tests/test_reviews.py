"""Reviews, likes and the denormalized like counter."""

from __future__ import annotations

import pytest
import pytest_asyncio
from sqlalchemy import func, select, update

from shelfnet.errors import DuplicateError, NotFoundError, UnauthorizedError, ValidationError
from shelfnet.models.activity import ActivityEvent, ActivityType
from shelfnet.models.book import Book, BookSource
from shelfnet.models.review import Review, ReviewLike
from shelfnet.services.activity import deserialize_metadata
from shelfnet.services.reviews import ReviewService
from shelfnet.services.social_graph import SocialGraph


@pytest_asyncio.fixture
async def book(db):
    book = Book(title="Dune", author="Frank Herbert", source=BookSource.MANUAL_ENTRY)
    db.add(book)
    await db.flush()
    return book


async def _events(db, kind: ActivityType) -> list[ActivityEvent]:
    result = await db.execute(select(ActivityEvent).where(ActivityEvent.activity_type == kind))
    return list(result.scalars().all())


class TestReviewLifecycle:
    @pytest.mark.asyncio
    async def test_create_emits_event_and_rates_book(self, db, make_user, book):
        author = await make_user()
        review = await ReviewService(db).create(author.id, book.id, 4, "Spice must flow.", title="Great")

        assert review.like_count == 0
        events = await _events(db, ActivityType.POSTED_REVIEW)
        assert len(events) == 1
        assert events[0].target_id == review.id
        assert deserialize_metadata(events[0].event_metadata) == {"book_id": book.id, "rating": 4}

        await db.refresh(book)
        assert book.average_rating == 4.0

    @pytest.mark.asyncio
    async def test_average_rating_across_reviews(self, db, make_user, book):
        service = ReviewService(db)
        a, b = await make_user(), await make_user()
        await service.create(a.id, book.id, 5, "Loved it")
        second = await service.create(b.id, book.id, 2, "Meh")
        await db.refresh(book)
        assert book.average_rating == 3.5

        await service.delete(second.id, b.id)
        await db.refresh(book)
        assert book.average_rating == 5.0

    @pytest.mark.asyncio
    @pytest.mark.parametrize("rating", [0, 6])
    async def test_rating_out_of_range(self, db, make_user, book, rating):
        user = await make_user()
        with pytest.raises(ValidationError):
            await ReviewService(db).create(user.id, book.id, rating, "text")

    @pytest.mark.asyncio
    async def test_one_review_per_book(self, db, make_user, book):
        user = await make_user()
        service = ReviewService(db)
        await service.create(user.id, book.id, 4, "First take")
        with pytest.raises(DuplicateError):
            await service.create(user.id, book.id, 2, "Second take")

    @pytest.mark.asyncio
    async def test_missing_book(self, db, make_user):
        user = await make_user()
        with pytest.raises(NotFoundError):
            await ReviewService(db).create(user.id, 424242, 3, "Where is it?")

    @pytest.mark.asyncio
    async def test_only_owner_can_edit_or_delete(self, db, make_user, book):
        owner, other = await make_user(), await make_user()
        service = ReviewService(db)
        review = await service.create(owner.id, book.id, 3, "Fine")

        with pytest.raises(UnauthorizedError):
            await service.update(review.id, other.id, {"content": "Hijacked"})
        with pytest.raises(UnauthorizedError):
            await service.delete(review.id, other.id)

        updated = await service.update(review.id, owner.id, {"rating": 5, "content": "Better on reread"})
        assert updated.rating == 5
        assert updated.content == "Better on reread"

    @pytest.mark.asyncio
    async def test_listings(self, db, make_user, book):
        service = ReviewService(db)
        me, friend, stranger = await make_user(), await make_user(), await make_user()
        await SocialGraph(db).follow(me.id, friend.id)
        friend_review = await service.create(friend.id, book.id, 5, "Must read")
        stranger_review = await service.create(stranger.id, book.id, 1, "Nope")
        await service.like(me.id, stranger_review.id)

        items, total = await service.for_book(book.id)
        assert total == 2

        popular, _ = await service.popular_for_book(book.id)
        assert popular[0].id == stranger_review.id

        mine, total = await service.by_user(friend.id)
        assert [r.id for r in mine] == [friend_review.id]

        feed, total = await service.from_following(me.id)
        assert [r.id for r in feed] == [friend_review.id]

    @pytest.mark.asyncio
    async def test_recent_across_books(self, db, make_user, book):
        other = Book(title="Emma", author="Jane Austen", source=BookSource.MANUAL_ENTRY)
        db.add(other)
        await db.flush()
        service = ReviewService(db)
        a, b = await make_user(), await make_user()
        first = await service.create(a.id, book.id, 4, "Sand everywhere")
        second = await service.create(b.id, other.id, 3, "Matchmaking")

        items, total = await service.recent()
        assert total == 2
        assert [r.id for r in items] == [second.id, first.id]

    @pytest.mark.asyncio
    async def test_count_for_book(self, db, make_user, book):
        service = ReviewService(db)
        assert await service.count_for_book(book.id) == 0
        for user in (await make_user(), await make_user()):
            await service.create(user.id, book.id, 4, "Worth it")
        assert await service.count_for_book(book.id) == 2

        with pytest.raises(NotFoundError):
            await service.count_for_book(31337)


class TestLikes:
    @pytest.mark.asyncio
    async def test_like_increments_and_emits(self, db, make_user, book):
        author, fan = await make_user(), await make_user()
        service = ReviewService(db)
        review = await service.create(author.id, book.id, 4, "Good")

        await service.like(fan.id, review.id)
        assert review.like_count == 1
        assert await service.has_liked(fan.id, review.id)

        events = await _events(db, ActivityType.LIKED_REVIEW)
        assert len(events) == 1
        assert deserialize_metadata(events[0].event_metadata) == {"book_id": book.id}

    @pytest.mark.asyncio
    async def test_double_like_rejected(self, db, make_user, book):
        author, fan = await make_user(), await make_user()
        service = ReviewService(db)
        review = await service.create(author.id, book.id, 4, "Good")
        await service.like(fan.id, review.id)

        with pytest.raises(DuplicateError):
            await service.like(fan.id, review.id)
        assert review.like_count == 1

    @pytest.mark.asyncio
    async def test_like_missing_review(self, db, make_user):
        fan = await make_user()
        with pytest.raises(NotFoundError):
            await ReviewService(db).like(fan.id, 999)

    @pytest.mark.asyncio
    async def test_unlike(self, db, make_user, book):
        author, fan = await make_user(), await make_user()
        service = ReviewService(db)
        review = await service.create(author.id, book.id, 4, "Good")
        await service.like(fan.id, review.id)

        await service.unlike(fan.id, review.id)
        assert review.like_count == 0
        with pytest.raises(NotFoundError):
            await service.unlike(fan.id, review.id)

    @pytest.mark.asyncio
    async def test_like_count_never_negative(self, db, make_user, book):
        author, fan = await make_user(), await make_user()
        service = ReviewService(db)
        review = await service.create(author.id, book.id, 4, "Good")
        await service.like(fan.id, review.id)

        # Counter drifted to zero while a like row still exists
        await db.execute(update(Review).where(Review.id == review.id).values(like_count=0))
        await service.unlike(fan.id, review.id)
        assert review.like_count == 0

    @pytest.mark.asyncio
    async def test_counter_matches_live_likes(self, db, make_user, book):
        author = await make_user()
        fans = [await make_user() for _ in range(4)]
        service = ReviewService(db)
        review = await service.create(author.id, book.id, 4, "Good")

        for fan in fans:
            await service.like(fan.id, review.id)
        await service.unlike(fans[0].id, review.id)
        assert await service.toggle_like(fans[1].id, review.id) is False
        assert await service.toggle_like(fans[0].id, review.id) is True

        live = (
            await db.execute(
                select(func.count()).select_from(ReviewLike).where(ReviewLike.review_id == review.id)
            )
        ).scalar()
        assert review.like_count == live == await service.like_count(review.id) == 3

        likers = await service.likers(review.id)
        assert {like.user_id for like in likers} == {fans[0].id, fans[2].id, fans[3].id}

    @pytest.mark.asyncio
    async def test_liked_by_user(self, db, make_user, book):
        other = Book(title="Emma", author="Jane Austen", source=BookSource.MANUAL_ENTRY)
        db.add(other)
        await db.flush()
        a, b, fan = await make_user(), await make_user(), await make_user()
        service = ReviewService(db)
        dune_review = await service.create(a.id, book.id, 5, "Spice")
        emma_review = await service.create(b.id, other.id, 4, "Witty")
        await service.create(fan.id, other.id, 2, "Not for me")

        await service.like(fan.id, dune_review.id)
        await service.like(fan.id, emma_review.id)

        liked, total = await service.liked_by(fan.id)
        assert total == 2
        assert [r.id for r in liked] == [emma_review.id, dune_review.id]

        nothing, total = await service.liked_by(a.id)
        assert (nothing, total) == ([], 0)

    @pytest.mark.asyncio
    async def test_liked_by_missing_user(self, db):
        with pytest.raises(NotFoundError):
            await ReviewService(db).liked_by(4242)
