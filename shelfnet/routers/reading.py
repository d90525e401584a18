"""Reading record routes for the current user."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from shelfnet.auth.dependencies import Identity, get_current_user
from shelfnet.dependencies import get_reading
from shelfnet.models.reading import ReadingStatus
from shelfnet.schemas.reading import ReadingResponse, ReadingUpdate
from shelfnet.services.reading import ReadingService

router = APIRouter(prefix="/reading", tags=["Reading"])


@router.put("/{book_id}", response_model=ReadingResponse)
async def track_book(
    book_id: int,
    data: ReadingUpdate,
    reading: ReadingService = Depends(get_reading),
    current_user: Identity = Depends(get_current_user),
):
    """Set the caller's reading status for a book, creating the record if needed."""
    record = await reading.track(
        current_user.user_id,
        book_id,
        data.status,
        personal_rating=data.personal_rating,
        current_page=data.current_page,
        is_favorite=data.is_favorite,
    )
    return ReadingResponse.model_validate(record)


@router.get("", response_model=list[ReadingResponse])
async def list_reading(
    status_filter: Optional[ReadingStatus] = Query(None, alias="status"),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    reading: ReadingService = Depends(get_reading),
    current_user: Identity = Depends(get_current_user),
):
    records, _ = await reading.list_for_user(current_user.user_id, status_filter, page, page_size)
    return [ReadingResponse.model_validate(r) for r in records]


@router.delete("/{book_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_reading(
    book_id: int,
    reading: ReadingService = Depends(get_reading),
    current_user: Identity = Depends(get_current_user),
):
    await reading.remove(current_user.user_id, book_id)
