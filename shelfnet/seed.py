"""
Seed script — populates the database with demo readers, books, follows,
bookshelves, reading records and reviews.
Run: python -m shelfnet.seed
"""

from __future__ import annotations

import asyncio
import random

from sqlalchemy import select

from shelfnet.auth.password import hash_password
from shelfnet.database import create_tables, session_scope
from shelfnet.models.book import Book, BookSource
from shelfnet.models.bookshelf import PrivacyLevel
from shelfnet.models.reading import ReadingStatus
from shelfnet.models.user import User, UserRole
from shelfnet.services.activity import ActivityRecorder
from shelfnet.services.bookshelves import BookshelfService
from shelfnet.services.reading import ReadingService
from shelfnet.services.reviews import ReviewService
from shelfnet.services.social_graph import SocialGraph
from shelfnet.services.visibility import VisibilityPolicy

SAMPLE_BOOKS = [
    {"title": "The Great Gatsby", "author": "F. Scott Fitzgerald", "genre": "Classic",
     "isbn": "9780743273565", "published_year": 1925},
    {"title": "To Kill a Mockingbird", "author": "Harper Lee", "genre": "Classic",
     "isbn": "9780061120084", "published_year": 1960},
    {"title": "1984", "author": "George Orwell", "genre": "Fiction",
     "isbn": "9780451524935", "published_year": 1949},
    {"title": "Pride and Prejudice", "author": "Jane Austen", "genre": "Romance",
     "isbn": "9780141439518", "published_year": 1813},
    {"title": "Brave New World", "author": "Aldous Huxley", "genre": "Dystopian",
     "isbn": "9780060850524", "published_year": 1932},
    {"title": "The Hobbit", "author": "J.R.R. Tolkien", "genre": "Fantasy",
     "isbn": "9780547928227", "published_year": 1937},
    {"title": "Dune", "author": "Frank Herbert", "genre": "Science Fiction",
     "isbn": "9780441013593", "published_year": 1965},
    {"title": "Foundation", "author": "Isaac Asimov", "genre": "Science Fiction",
     "isbn": "9780553293357", "published_year": 1951},
    {"title": "Neuromancer", "author": "William Gibson", "genre": "Science Fiction",
     "isbn": "9780441569595", "published_year": 1984},
    {"title": "Sapiens", "author": "Yuval Noah Harari", "genre": "Non-Fiction",
     "isbn": "9780062316097", "published_year": 2011},
    {"title": "Educated", "author": "Tara Westover", "genre": "Memoir",
     "isbn": "9780399590504", "published_year": 2018},
    {"title": "The Road", "author": "Cormac McCarthy", "genre": "Post-Apocalyptic",
     "isbn": "9780307387899", "published_year": 2006},
    {"title": "The Martian", "author": "Andy Weir", "genre": "Science Fiction",
     "isbn": "9780553418026", "published_year": 2011},
    {"title": "The Name of the Wind", "author": "Patrick Rothfuss", "genre": "Fantasy",
     "isbn": "9780756404741", "published_year": 2007},
    {"title": "Frankenstein", "author": "Mary Shelley", "genre": "Horror",
     "isbn": "9780486282114", "published_year": 1818},
    {"title": "Norwegian Wood", "author": "Haruki Murakami", "genre": "Literary Fiction",
     "isbn": "9780375704024", "published_year": 1987},
    {"title": "Jane Eyre", "author": "Charlotte Brontë", "genre": "Classic",
     "isbn": "9780142437209", "published_year": 1847},
    {"title": "Moby-Dick", "author": "Herman Melville", "genre": "Adventure",
     "isbn": "9780142437247", "published_year": 1851},
    {"title": "War and Peace", "author": "Leo Tolstoy", "genre": "Historical Fiction",
     "isbn": "9780140447934", "published_year": 1869},
    {"title": "Don Quixote", "author": "Miguel de Cervantes", "genre": "Classic",
     "isbn": "9780060934347", "published_year": 1605},
]

SAMPLE_USERS = [
    {"email": "admin@shelfnet.dev", "username": "admin", "password": "Admin@123456", "role": UserRole.ADMIN},
    {"email": "alice@example.com", "username": "alice", "password": "Alice@123456", "role": UserRole.USER},
    {"email": "bob@example.com", "username": "bob", "password": "Bob@1234567", "role": UserRole.USER},
    {"email": "carol@example.com", "username": "carol", "password": "Carol@123456", "role": UserRole.USER},
    {"email": "dave@example.com", "username": "dave", "password": "Dave@1234567", "role": UserRole.USER},
]

SAMPLE_REVIEWS = [
    "Couldn't put it down.",
    "Slow start, strong finish.",
    "Not for me, but I see the appeal.",
    "An instant favourite.",
    "Worth a re-read every few years.",
]


async def seed():
    """Seed the database with sample data."""
    await create_tables()

    async with session_scope() as session:
        result = await session.execute(select(User).limit(1))
        if result.scalar_one_or_none():
            print("Database already seeded. Skipping.")
            return

        users = []
        for u in SAMPLE_USERS:
            user = User(
                email=u["email"],
                username=u["username"],
                display_name=u["username"].capitalize(),
                hashed_password=hash_password(u["password"]),
                role=u["role"],
            )
            session.add(user)
            users.append(user)
        await session.flush()
        print(f"Created {len(users)} users")

        books = []
        for b in SAMPLE_BOOKS:
            book = Book(**b, source=BookSource.MANUAL_ENTRY, is_verified=True)
            session.add(book)
            books.append(book)
        await session.flush()
        print(f"Created {len(books)} books")

        recorder = ActivityRecorder(session)
        graph = SocialGraph(session, recorder)
        shelves = BookshelfService(session, VisibilityPolicy(graph), recorder)
        reading = ReadingService(session, recorder)
        reviews = ReviewService(session, recorder)

        readers = users[1:]  # Skip admin
        follows = 0
        for reader in readers:
            for other in random.sample(readers, 2):
                if other.id != reader.id and not await graph.is_following(reader.id, other.id):
                    await graph.follow(reader.id, other.id)
                    follows += 1
        print(f"Created {follows} follows")

        review_count = 0
        for reader in readers:
            favourites = await shelves.create(
                reader.id, "Favourites", privacy=random.choice(list(PrivacyLevel))
            )
            for book in random.sample(books, 8):
                status = random.choice(list(ReadingStatus))
                rating = random.randint(1, 5) if status == ReadingStatus.COMPLETED else None
                await reading.track(reader.id, book.id, status, personal_rating=rating)
                if rating is not None:
                    await reviews.create(reader.id, book.id, rating, random.choice(SAMPLE_REVIEWS))
                    review_count += 1
                    if rating >= 4:
                        await shelves.add_book(favourites.id, reader.id, book.id)
        print(f"Created {review_count} reviews")

    print("Seeding complete!")


if __name__ == "__main__":
    asyncio.run(seed())
