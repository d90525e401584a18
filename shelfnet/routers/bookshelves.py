"""Bookshelf routes — privacy-aware reads, owner-only writes."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from shelfnet.auth.dependencies import Identity, get_current_user, get_optional_user
from shelfnet.dependencies import get_bookshelves
from shelfnet.models.bookshelf import Bookshelf
from shelfnet.schemas.book import BookResponse
from shelfnet.schemas.bookshelf import (
    BookshelfBookAdd,
    BookshelfBookMove,
    BookshelfBookResponse,
    BookshelfCreate,
    BookshelfListResponse,
    BookshelfResponse,
    BookshelfUpdate,
)
from shelfnet.services.bookshelves import BookshelfService

router = APIRouter(prefix="/bookshelves", tags=["Bookshelves"])


async def _shelf_response(shelves: BookshelfService, shelf: Bookshelf) -> BookshelfResponse:
    response = BookshelfResponse.model_validate(shelf)
    response.book_count = await shelves.book_count(shelf.id)
    return response


@router.post("", response_model=BookshelfResponse, status_code=status.HTTP_201_CREATED)
async def create_bookshelf(
    data: BookshelfCreate,
    shelves: BookshelfService = Depends(get_bookshelves),
    current_user: Identity = Depends(get_current_user),
):
    shelf = await shelves.create(current_user.user_id, data.name, data.description, data.privacy)
    return await _shelf_response(shelves, shelf)


@router.get("/public", response_model=BookshelfListResponse)
async def list_public_bookshelves(
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    shelves: BookshelfService = Depends(get_bookshelves),
):
    items, total = await shelves.public_shelves(page, page_size)
    return BookshelfListResponse(
        bookshelves=[await _shelf_response(shelves, shelf) for shelf in items],
        total=total,
        page=page,
        page_size=page_size,
    )


@router.get("/{bookshelf_id}", response_model=BookshelfResponse)
async def get_bookshelf(
    bookshelf_id: int,
    shelves: BookshelfService = Depends(get_bookshelves),
    viewer: Optional[Identity] = Depends(get_optional_user),
):
    shelf = await shelves.get(bookshelf_id, viewer.user_id if viewer else None)
    return await _shelf_response(shelves, shelf)


@router.patch("/{bookshelf_id}", response_model=BookshelfResponse)
async def update_bookshelf(
    bookshelf_id: int,
    data: BookshelfUpdate,
    shelves: BookshelfService = Depends(get_bookshelves),
    current_user: Identity = Depends(get_current_user),
):
    shelf = await shelves.update(
        bookshelf_id, current_user.user_id, data.model_dump(exclude_unset=True)
    )
    return await _shelf_response(shelves, shelf)


@router.delete("/{bookshelf_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_bookshelf(
    bookshelf_id: int,
    shelves: BookshelfService = Depends(get_bookshelves),
    current_user: Identity = Depends(get_current_user),
):
    await shelves.delete(bookshelf_id, current_user.user_id)


@router.get("/{bookshelf_id}/books", response_model=list[BookshelfBookResponse])
async def list_bookshelf_books(
    bookshelf_id: int,
    shelves: BookshelfService = Depends(get_bookshelves),
    viewer: Optional[Identity] = Depends(get_optional_user),
):
    """Entries in shelf order."""
    rows = await shelves.entries(bookshelf_id, viewer.user_id if viewer else None)
    return [
        BookshelfBookResponse(
            id=entry.id,
            bookshelf_id=entry.bookshelf_id,
            position=entry.position,
            added_at=entry.added_at,
            book=BookResponse.model_validate(book),
        )
        for entry, book in rows
    ]


@router.post("/{bookshelf_id}/books", status_code=status.HTTP_201_CREATED)
async def add_book_to_bookshelf(
    bookshelf_id: int,
    data: BookshelfBookAdd,
    shelves: BookshelfService = Depends(get_bookshelves),
    current_user: Identity = Depends(get_current_user),
):
    entry = await shelves.add_book(bookshelf_id, current_user.user_id, data.book_id, data.position)
    return {"bookshelf_id": bookshelf_id, "book_id": entry.book_id, "position": entry.position}


@router.put("/{bookshelf_id}/books/{book_id}")
async def move_book_on_bookshelf(
    bookshelf_id: int,
    book_id: int,
    data: BookshelfBookMove,
    shelves: BookshelfService = Depends(get_bookshelves),
    current_user: Identity = Depends(get_current_user),
):
    entry = await shelves.move_book(bookshelf_id, current_user.user_id, book_id, data.position)
    return {"bookshelf_id": bookshelf_id, "book_id": entry.book_id, "position": entry.position}


@router.delete("/{bookshelf_id}/books/{book_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_book_from_bookshelf(
    bookshelf_id: int,
    book_id: int,
    shelves: BookshelfService = Depends(get_bookshelves),
    current_user: Identity = Depends(get_current_user),
):
    await shelves.remove_book(bookshelf_id, current_user.user_id, book_id)
