"""Book schemas."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from shelfnet.models.book import BookSource


class BookCreate(BaseModel):
    title: str = Field(..., max_length=500)
    author: str = Field(..., max_length=255)
    isbn: Optional[str] = Field(None, max_length=20)
    external_id: Optional[str] = Field(None, max_length=64)
    description: Optional[str] = None
    cover_url: Optional[str] = Field(None, max_length=1000)
    published_year: Optional[int] = Field(None, ge=0, le=2100)
    genre: Optional[str] = Field(None, max_length=100)
    page_count: Optional[int] = Field(None, ge=1)
    publisher: Optional[str] = Field(None, max_length=255)
    language: Optional[str] = Field(None, max_length=20)


class BookUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=500)
    author: Optional[str] = Field(None, min_length=1, max_length=255)
    isbn: Optional[str] = Field(None, max_length=20)
    description: Optional[str] = None
    cover_url: Optional[str] = Field(None, max_length=1000)
    published_year: Optional[int] = Field(None, ge=0, le=2100)
    genre: Optional[str] = Field(None, max_length=100)
    page_count: Optional[int] = Field(None, ge=1)
    publisher: Optional[str] = Field(None, max_length=255)
    language: Optional[str] = Field(None, max_length=20)


class BookResponse(BaseModel):
    id: int
    title: str
    author: str
    isbn: Optional[str]
    external_id: Optional[str]
    description: Optional[str]
    cover_url: Optional[str]
    published_year: Optional[int]
    genre: Optional[str]
    page_count: Optional[int]
    publisher: Optional[str]
    language: Optional[str]
    average_rating: float
    is_verified: bool
    source: BookSource
    created_at: datetime

    model_config = {"from_attributes": True}


class BookListResponse(BaseModel):
    books: list[BookResponse]
    total: int
    page: int
    page_size: int


class IsbnCheckResponse(BaseModel):
    isbn: str
    exists: bool
