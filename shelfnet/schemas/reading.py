"""Reading record schemas."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from shelfnet.models.reading import ReadingStatus


class ReadingUpdate(BaseModel):
    status: ReadingStatus
    personal_rating: Optional[int] = Field(None, ge=1, le=5)
    current_page: Optional[int] = Field(None, ge=0)
    is_favorite: Optional[bool] = None


class ReadingResponse(BaseModel):
    id: int
    user_id: int
    book_id: int
    status: ReadingStatus
    start_date: Optional[datetime]
    finish_date: Optional[datetime]
    personal_rating: Optional[int]
    current_page: Optional[int]
    is_favorite: bool
    updated_at: datetime

    model_config = {"from_attributes": True}
