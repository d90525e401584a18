"""Bookshelf schemas."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from shelfnet.models.bookshelf import PrivacyLevel
from shelfnet.schemas.book import BookResponse


class BookshelfCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=500)
    privacy: PrivacyLevel = PrivacyLevel.PUBLIC


class BookshelfUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=500)
    privacy: Optional[PrivacyLevel] = None


class BookshelfResponse(BaseModel):
    id: int
    user_id: int
    name: str
    description: Optional[str]
    privacy: PrivacyLevel
    book_count: int = 0
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class BookshelfBookAdd(BaseModel):
    book_id: int
    position: Optional[int] = Field(None, ge=0)


class BookshelfBookMove(BaseModel):
    position: int = Field(..., ge=0)


class BookshelfBookResponse(BaseModel):
    id: int
    bookshelf_id: int
    position: int
    added_at: datetime
    book: BookResponse


class BookshelfListResponse(BaseModel):
    bookshelves: list[BookshelfResponse]
    total: int
    page: int
    page_size: int
