"""Book routes — catalog resolution and public reads, admin-only edits."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from shelfnet.auth.dependencies import Identity, get_current_user, get_optional_user, require_admin
from shelfnet.dependencies import get_activity, get_bookshelves, get_matcher, get_reviews
from shelfnet.schemas.activity import TrendingBookResponse
from shelfnet.schemas.book import BookCreate, BookListResponse, BookResponse, BookUpdate, IsbnCheckResponse
from shelfnet.schemas.bookshelf import BookshelfResponse
from shelfnet.schemas.review import ReviewCountResponse, ReviewListResponse, ReviewResponse
from shelfnet.services.activity import ActivityRecorder
from shelfnet.services.bookshelves import BookshelfService
from shelfnet.services.catalog import CatalogMatcher
from shelfnet.services.reviews import ReviewService

router = APIRouter(prefix="/books", tags=["Books"])


def _book_page(books: list, total: int, page: int, page_size: int) -> BookListResponse:
    return BookListResponse(
        books=[BookResponse.model_validate(b) for b in books],
        total=total,
        page=page,
        page_size=page_size,
    )


@router.get("", response_model=BookListResponse)
async def search_books(
    query: str = Query("", max_length=200),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    matcher: CatalogMatcher = Depends(get_matcher),
):
    """Local title/author search. Never calls the external catalog."""
    books, total = await matcher.search(query, page, page_size)
    return _book_page(books, total, page, page_size)


@router.get("/search", response_model=BookResponse)
async def resolve_book(
    query: str = Query(..., min_length=1, max_length=200),
    matcher: CatalogMatcher = Depends(get_matcher),
    _user: Identity = Depends(get_current_user),
):
    """Resolve a free-text query to one stored book, importing it from the catalog if needed."""
    book = await matcher.resolve_book(query)
    return BookResponse.model_validate(book)


@router.get("/check-isbn", response_model=IsbnCheckResponse)
async def check_isbn(
    isbn: str = Query(..., min_length=1, max_length=20),
    matcher: CatalogMatcher = Depends(get_matcher),
):
    return IsbnCheckResponse(isbn=isbn, exists=await matcher.isbn_exists(isbn))


@router.get("/trending", response_model=list[TrendingBookResponse])
async def trending_books(
    limit: int = Query(10, ge=1, le=50),
    activity: ActivityRecorder = Depends(get_activity),
):
    """Books with the most activity over the last seven days."""
    return [TrendingBookResponse(**row) for row in await activity.trending(limit)]


@router.get("/advanced", response_model=BookListResponse)
async def advanced_search(
    title: Optional[str] = Query(None, max_length=200),
    author: Optional[str] = Query(None, max_length=200),
    genre: Optional[str] = Query(None, max_length=100),
    year: Optional[int] = Query(None, ge=0, le=2100),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    matcher: CatalogMatcher = Depends(get_matcher),
):
    """Filter by any mix of title, author, genre and publication year."""
    books, total = await matcher.advanced_search(title, author, genre, year, page, page_size)
    return _book_page(books, total, page, page_size)


@router.get("/genre/{genre}", response_model=BookListResponse)
async def books_by_genre(
    genre: str,
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    matcher: CatalogMatcher = Depends(get_matcher),
):
    books, total = await matcher.by_genre(genre, page, page_size)
    return _book_page(books, total, page, page_size)


@router.get("/most-reviewed", response_model=BookListResponse)
async def most_reviewed_books(
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    matcher: CatalogMatcher = Depends(get_matcher),
):
    books, total = await matcher.most_reviewed(page, page_size)
    return _book_page(books, total, page, page_size)


@router.get("/highest-rated", response_model=BookListResponse)
async def highest_rated_books(
    min_reviews: int = Query(5, ge=0),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    matcher: CatalogMatcher = Depends(get_matcher),
):
    """Best mean rating first, among books with at least ``min_reviews`` reviews."""
    books, total = await matcher.highest_rated(min_reviews, page, page_size)
    return _book_page(books, total, page, page_size)


@router.get("/recent", response_model=BookListResponse)
async def recently_added_books(
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    matcher: CatalogMatcher = Depends(get_matcher),
):
    books, total = await matcher.recently_added(page, page_size)
    return _book_page(books, total, page, page_size)


@router.get("/{book_id}", response_model=BookResponse)
async def get_book(book_id: int, matcher: CatalogMatcher = Depends(get_matcher)):
    return BookResponse.model_validate(await matcher.get(book_id))


@router.get("/{book_id}/reviews", response_model=ReviewListResponse)
async def list_book_reviews(
    book_id: int,
    sort: str = Query("recent", pattern="^(recent|popular)$"),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    matcher: CatalogMatcher = Depends(get_matcher),
    reviews: ReviewService = Depends(get_reviews),
):
    await matcher.get(book_id)
    if sort == "popular":
        items, total = await reviews.popular_for_book(book_id, page, page_size)
    else:
        items, total = await reviews.for_book(book_id, page, page_size)
    return ReviewListResponse(
        reviews=[ReviewResponse.model_validate(r) for r in items],
        total=total,
        page=page,
        page_size=page_size,
    )


@router.get("/{book_id}/reviews/count", response_model=ReviewCountResponse)
async def count_book_reviews(book_id: int, reviews: ReviewService = Depends(get_reviews)):
    return ReviewCountResponse(book_id=book_id, review_count=await reviews.count_for_book(book_id))


@router.get("/{book_id}/bookshelves", response_model=list[BookshelfResponse])
async def list_book_shelves(
    book_id: int,
    matcher: CatalogMatcher = Depends(get_matcher),
    shelves: BookshelfService = Depends(get_bookshelves),
    viewer: Optional[Identity] = Depends(get_optional_user),
):
    """Bookshelves holding this book that the caller is allowed to see."""
    await matcher.get(book_id)
    viewer_id = viewer.user_id if viewer else None
    result = []
    for shelf in await shelves.shelves_containing(book_id, viewer_id):
        response = BookshelfResponse.model_validate(shelf)
        response.book_count = await shelves.book_count(shelf.id)
        result.append(response)
    return result


@router.post("", response_model=BookResponse, status_code=status.HTTP_201_CREATED)
async def create_book(
    data: BookCreate,
    matcher: CatalogMatcher = Depends(get_matcher),
    _user: Identity = Depends(get_current_user),
):
    """Manually add a book that the catalog does not know about."""
    book = await matcher.create_manual(data.model_dump())
    return BookResponse.model_validate(book)


@router.put("/{book_id}", response_model=BookResponse)
async def update_book(
    book_id: int,
    data: BookUpdate,
    matcher: CatalogMatcher = Depends(get_matcher),
    _admin: Identity = Depends(require_admin),
):
    """Update a book (admin only)."""
    book = await matcher.update(book_id, data.model_dump(exclude_unset=True))
    return BookResponse.model_validate(book)


@router.post("/{book_id}/verify", response_model=BookResponse)
async def verify_book(
    book_id: int,
    matcher: CatalogMatcher = Depends(get_matcher),
    _admin: Identity = Depends(require_admin),
):
    return BookResponse.model_validate(await matcher.verify(book_id))


@router.delete("/{book_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_book(
    book_id: int,
    matcher: CatalogMatcher = Depends(get_matcher),
    _admin: Identity = Depends(require_admin),
):
    """Delete a book (admin only)."""
    await matcher.delete(book_id)
