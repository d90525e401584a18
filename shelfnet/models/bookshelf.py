"""Bookshelf and ordered bookshelf entry ORM models."""

from __future__ import annotations

import enum
from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, Enum, ForeignKey, Integer, String, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from shelfnet.database import Base, utcnow


class PrivacyLevel(str, enum.Enum):
    PUBLIC = "public"
    FRIENDS_ONLY = "friends_only"
    PRIVATE = "private"


class Bookshelf(Base):
    __tablename__ = "bookshelves"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    privacy: Mapped[PrivacyLevel] = mapped_column(
        Enum(PrivacyLevel, values_callable=lambda e: [x.value for x in e], native_enum=False, length=20),
        default=PrivacyLevel.PUBLIC,
        server_default="public",
        nullable=False,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), onupdate=utcnow
    )

    def __repr__(self) -> str:
        return f"<Bookshelf id={self.id} owner={self.user_id} privacy={self.privacy}>"


class BookshelfBook(Base):
    __tablename__ = "bookshelf_books"
    __table_args__ = (
        UniqueConstraint("bookshelf_id", "book_id", name="uq_bookshelf_books_shelf_book"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    bookshelf_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("bookshelves.id", ondelete="CASCADE"), nullable=False, index=True
    )
    book_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("books.id", ondelete="CASCADE"), nullable=False, index=True
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    added_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )

    def __repr__(self) -> str:
        return f"<BookshelfBook shelf={self.bookshelf_id} book={self.book_id} pos={self.position}>"
