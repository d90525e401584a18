"""Shared test configuration and fixtures."""

from __future__ import annotations

import os
import sys
from pathlib import Path

# Ensure the project root is on sys.path so `shelfnet.main` resolves
PROJECT_ROOT = Path(__file__).resolve().parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

# Settings are cached on first import, so the environment must be set first
os.environ["ENVIRONMENT"] = "testing"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["JWT_SECRET_KEY"] = "test-secret-key-for-testing"
os.environ["LOG_FORMAT"] = "console"

import httpx  # noqa: E402
import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from shelfnet.auth.password import hash_password  # noqa: E402
from shelfnet.database import build_engine, create_tables, session_scope  # noqa: E402
from shelfnet.models.user import User, UserRole  # noqa: E402
from shelfnet.services.catalog_client import CatalogRecord  # noqa: E402

PASSWORD = "SecurePass123"

ORWELL_1984 = CatalogRecord(
    external_id="kotPYEqx7kMC",
    title="1984",
    authors=["George Orwell"],
    isbn13="9780451524935",
    isbn10="0451524934",
    description="A dystopian social science fiction novel.",
    published_date="1949-06-08",
    page_count=328,
    categories=["Fiction"],
    publisher="Signet Classic",
    language="en",
)


class FakeCatalog:
    """Stands in for GoogleBooksClient: maps lower-cased queries to records."""

    def __init__(self, records: dict[str, CatalogRecord] | None = None):
        self.records = dict(records or {})
        self.calls: list[str] = []
        self.error: Exception | None = None

    async def lookup(self, query: str) -> CatalogRecord | None:
        self.calls.append(query)
        if self.error is not None:
            raise self.error
        return self.records.get(query.lower())


@pytest_asyncio.fixture
async def engine():
    engine = build_engine("sqlite+aiosqlite://", poolclass=StaticPool)
    await create_tables(engine)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def make_user(db):
    counter = {"n": 0}

    async def _make(username: str | None = None, role: UserRole = UserRole.USER, **fields) -> User:
        counter["n"] += 1
        username = username or f"reader{counter['n']}"
        user = User(
            email=f"{username}@example.com",
            username=username,
            hashed_password=hash_password(PASSWORD),
            role=role,
            **fields,
        )
        db.add(user)
        await db.flush()
        return user

    return _make


@pytest_asyncio.fixture
async def fake_catalog():
    return FakeCatalog({"1984 george orwell": ORWELL_1984, "1984": ORWELL_1984})


@pytest_asyncio.fixture
async def client(session_factory, fake_catalog):
    """Test client for the FastAPI app with the database and catalog swapped out."""
    from shelfnet.database import get_db
    from shelfnet.main import app
    from shelfnet.services.catalog_client import get_catalog_client

    async def _get_db():
        async with session_scope(session_factory) as session:
            yield session

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_catalog_client] = lambda: fake_catalog

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


async def register(client: httpx.AsyncClient, username: str) -> dict:
    """Register a user over HTTP and return auth headers."""
    response = await client.post(
        "/auth/register",
        json={"email": f"{username}@example.com", "username": username, "password": PASSWORD},
    )
    assert response.status_code == 201, response.text
    return {"Authorization": f"Bearer {response.json()['access_token']}"}
