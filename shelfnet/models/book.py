"""Book ORM model.

Identity is guarded three ways at the database level: unique ISBN, unique
external catalog id, and a unique (normalized_title, normalized_author) pair.
The normalized columns are derived in Python whenever title or author is set,
so every backend compares the same keys.
"""

from __future__ import annotations

import enum
import unicodedata
from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, Enum, Float, Integer, String, Text, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column, validates

from shelfnet.database import Base, utcnow


def tidy(value: str) -> str:
    """Collapse every run of whitespace (tabs, newlines, NBSP) to one space and trim."""
    return " ".join(unicodedata.normalize("NFKC", value).split())


def normalize(value: str) -> str:
    """Duplicate-matching key: tidied and case-folded, so "ÉMILE" and " émile\\t" agree."""
    return tidy(value).casefold()


class BookSource(str, enum.Enum):
    EXTERNAL_CATALOG_PRIMARY = "external_catalog_primary"
    EXTERNAL_CATALOG_SECONDARY = "external_catalog_secondary"
    MANUAL_ENTRY = "manual_entry"


class Book(Base):
    __tablename__ = "books"
    __table_args__ = (
        UniqueConstraint("normalized_title", "normalized_author", name="uq_books_normalized_title_author"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(String(500), nullable=False, index=True)
    author: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    normalized_title: Mapped[str] = mapped_column(String(500), nullable=False)
    normalized_author: Mapped[str] = mapped_column(String(255), nullable=False)
    isbn: Mapped[Optional[str]] = mapped_column(String(13), unique=True, nullable=True)
    external_id: Mapped[Optional[str]] = mapped_column(String(64), unique=True, nullable=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    cover_url: Mapped[Optional[str]] = mapped_column(String(1000), nullable=True)
    published_year: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    genre: Mapped[Optional[str]] = mapped_column(String(100), nullable=True, index=True)
    page_count: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    publisher: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    language: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    average_rating: Mapped[float] = mapped_column(Float, default=0.0, server_default="0.0")
    is_verified: Mapped[bool] = mapped_column(default=False, server_default="false")
    source: Mapped[BookSource] = mapped_column(
        Enum(BookSource, values_callable=lambda e: [x.value for x in e], native_enum=False, length=40),
        default=BookSource.MANUAL_ENTRY,
        nullable=False,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )

    @validates("title", "author")
    def _keep_normalized(self, key: str, value: str) -> str:
        if value is None:
            return value
        value = tidy(value)
        setattr(self, f"normalized_{key}", normalize(value))
        return value

    def __repr__(self) -> str:
        return f"<Book id={self.id} title={self.title!r}>"
