"""Review and review-like schemas."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class ReviewCreate(BaseModel):
    book_id: int
    rating: int = Field(..., ge=1, le=5)
    title: Optional[str] = Field(None, max_length=255)
    content: str = Field(..., min_length=1, max_length=5000)
    contains_spoilers: bool = False


class ReviewUpdate(BaseModel):
    rating: Optional[int] = Field(None, ge=1, le=5)
    title: Optional[str] = Field(None, max_length=255)
    content: Optional[str] = Field(None, min_length=1, max_length=5000)
    contains_spoilers: Optional[bool] = None


class ReviewResponse(BaseModel):
    id: int
    user_id: int
    book_id: int
    rating: int
    title: Optional[str]
    content: str
    contains_spoilers: bool
    like_count: int
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class ReviewListResponse(BaseModel):
    reviews: list[ReviewResponse]
    total: int
    page: int
    page_size: int


class ReviewLikeResponse(BaseModel):
    id: int
    user_id: int
    review_id: int
    created_at: datetime

    model_config = {"from_attributes": True}


class LikeToggleResponse(BaseModel):
    review_id: int
    liked: bool
    like_count: int


class ReviewCountResponse(BaseModel):
    book_id: int
    review_count: int
