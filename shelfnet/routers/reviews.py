"""Review and like routes."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query, status

from shelfnet.auth.dependencies import Identity, get_current_user
from shelfnet.dependencies import get_reviews
from shelfnet.schemas.review import (
    LikeToggleResponse,
    ReviewCreate,
    ReviewLikeResponse,
    ReviewListResponse,
    ReviewResponse,
    ReviewUpdate,
)
from shelfnet.services.reviews import ReviewService

router = APIRouter(prefix="/reviews", tags=["Reviews"])


@router.post("", response_model=ReviewResponse, status_code=status.HTTP_201_CREATED)
async def create_review(
    data: ReviewCreate,
    reviews: ReviewService = Depends(get_reviews),
    current_user: Identity = Depends(get_current_user),
):
    review = await reviews.create(
        current_user.user_id,
        data.book_id,
        data.rating,
        data.content,
        title=data.title,
        contains_spoilers=data.contains_spoilers,
    )
    return ReviewResponse.model_validate(review)


@router.get("/following", response_model=ReviewListResponse)
async def reviews_from_following(
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    reviews: ReviewService = Depends(get_reviews),
    current_user: Identity = Depends(get_current_user),
):
    """Latest reviews written by people the caller follows."""
    items, total = await reviews.from_following(current_user.user_id, page, page_size)
    return ReviewListResponse(
        reviews=[ReviewResponse.model_validate(r) for r in items],
        total=total,
        page=page,
        page_size=page_size,
    )


@router.get("/recent", response_model=ReviewListResponse)
async def recent_reviews(
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    reviews: ReviewService = Depends(get_reviews),
):
    items, total = await reviews.recent(page, page_size)
    return ReviewListResponse(
        reviews=[ReviewResponse.model_validate(r) for r in items],
        total=total,
        page=page,
        page_size=page_size,
    )


@router.get("/{review_id}", response_model=ReviewResponse)
async def get_review(review_id: int, reviews: ReviewService = Depends(get_reviews)):
    return ReviewResponse.model_validate(await reviews.get(review_id))


@router.patch("/{review_id}", response_model=ReviewResponse)
async def update_review(
    review_id: int,
    data: ReviewUpdate,
    reviews: ReviewService = Depends(get_reviews),
    current_user: Identity = Depends(get_current_user),
):
    review = await reviews.update(
        review_id, current_user.user_id, data.model_dump(exclude_unset=True)
    )
    return ReviewResponse.model_validate(review)


@router.delete("/{review_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_review(
    review_id: int,
    reviews: ReviewService = Depends(get_reviews),
    current_user: Identity = Depends(get_current_user),
):
    await reviews.delete(review_id, current_user.user_id)


@router.post("/{review_id}/like", response_model=ReviewLikeResponse, status_code=status.HTTP_201_CREATED)
async def like_review(
    review_id: int,
    reviews: ReviewService = Depends(get_reviews),
    current_user: Identity = Depends(get_current_user),
):
    like = await reviews.like(current_user.user_id, review_id)
    return ReviewLikeResponse.model_validate(like)


@router.delete("/{review_id}/like", status_code=status.HTTP_204_NO_CONTENT)
async def unlike_review(
    review_id: int,
    reviews: ReviewService = Depends(get_reviews),
    current_user: Identity = Depends(get_current_user),
):
    await reviews.unlike(current_user.user_id, review_id)


@router.post("/{review_id}/like/toggle", response_model=LikeToggleResponse)
async def toggle_like(
    review_id: int,
    reviews: ReviewService = Depends(get_reviews),
    current_user: Identity = Depends(get_current_user),
):
    liked = await reviews.toggle_like(current_user.user_id, review_id)
    review = await reviews.get(review_id)
    return LikeToggleResponse(review_id=review_id, liked=liked, like_count=review.like_count)


@router.get("/{review_id}/likes", response_model=list[ReviewLikeResponse])
async def list_likes(review_id: int, reviews: ReviewService = Depends(get_reviews)):
    return [ReviewLikeResponse.model_validate(like) for like in await reviews.likers(review_id)]
