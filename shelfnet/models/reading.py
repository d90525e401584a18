"""Per-user reading record for a book (want to read, reading, completed...)."""

from __future__ import annotations

import enum
from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, Enum, ForeignKey, Integer, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from shelfnet.database import Base, utcnow


class ReadingStatus(str, enum.Enum):
    WANT_TO_READ = "want_to_read"
    READING = "reading"
    COMPLETED = "completed"
    ABANDONED = "abandoned"


class ReadingRecord(Base):
    __tablename__ = "user_books"
    __table_args__ = (UniqueConstraint("user_id", "book_id", name="uq_user_books_user_book"),)

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    book_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("books.id", ondelete="CASCADE"), nullable=False, index=True
    )
    status: Mapped[ReadingStatus] = mapped_column(
        Enum(ReadingStatus, values_callable=lambda e: [x.value for x in e], native_enum=False, length=20),
        nullable=False,
    )
    start_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    finish_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    personal_rating: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    current_page: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    is_favorite: Mapped[bool] = mapped_column(default=False, server_default="false")
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), onupdate=utcnow
    )

    def __repr__(self) -> str:
        return f"<ReadingRecord user={self.user_id} book={self.book_id} status={self.status}>"
