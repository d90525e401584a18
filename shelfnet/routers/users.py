"""User profile and social graph routes."""

from __future__ import annotations

from typing import Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from shelfnet.auth.dependencies import Identity, get_current_user, get_optional_user
from shelfnet.database import get_db
from shelfnet.dependencies import get_activity, get_bookshelves, get_graph, get_reviews
from shelfnet.models.user import User
from shelfnet.schemas.activity import ActivityStatsResponse
from shelfnet.schemas.bookshelf import BookshelfResponse
from shelfnet.schemas.review import ReviewListResponse, ReviewResponse
from shelfnet.schemas.user import (
    FollowResponse,
    FollowStatsResponse,
    ProfileUpdate,
    UserListResponse,
    UserResponse,
    UserStatsResponse,
)
from shelfnet.services.activity import ActivityRecorder
from shelfnet.services.bookshelves import BookshelfService
from shelfnet.services.reviews import ReviewService
from shelfnet.services.social_graph import SocialGraph

logger = structlog.get_logger()
router = APIRouter(prefix="/users", tags=["Users"])


def _user_page(users: list[User], total: int, page: int, page_size: int) -> UserListResponse:
    return UserListResponse(
        users=[UserResponse.model_validate(u) for u in users],
        total=total,
        page=page,
        page_size=page_size,
    )


@router.get("/me", response_model=UserResponse)
async def get_me(
    db: AsyncSession = Depends(get_db),
    current_user: Identity = Depends(get_current_user),
):
    user = await db.get(User, current_user.user_id)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return UserResponse.model_validate(user)


@router.patch("/me", response_model=UserResponse)
async def update_me(
    data: ProfileUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: Identity = Depends(get_current_user),
):
    user = await db.get(User, current_user.user_id)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")

    for field, value in data.model_dump(exclude_unset=True).items():
        setattr(user, field, value)
    await db.flush()
    await db.refresh(user)
    return UserResponse.model_validate(user)


@router.get("/me/suggestions", response_model=UserListResponse)
async def suggested_users(
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    graph: SocialGraph = Depends(get_graph),
    current_user: Identity = Depends(get_current_user),
):
    """Readers who track at least one of the same books."""
    users, total = await graph.suggest(current_user.user_id, page, page_size)
    return _user_page(users, total, page, page_size)


@router.get("/me/activity-stats", response_model=ActivityStatsResponse)
async def my_activity_stats(
    activity: ActivityRecorder = Depends(get_activity),
    current_user: Identity = Depends(get_current_user),
):
    return ActivityStatsResponse(**await activity.stats(current_user.user_id))


@router.get("/search", response_model=UserListResponse)
async def search_users(
    query: str = Query(..., min_length=1, max_length=100),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    graph: SocialGraph = Depends(get_graph),
):
    """Active users whose username or display name contains ``query``."""
    users, total = await graph.search_users(query, page, page_size)
    return _user_page(users, total, page, page_size)


@router.get("/{user_id}", response_model=UserResponse)
async def get_user(user_id: int, db: AsyncSession = Depends(get_db)):
    user = await db.get(User, user_id)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return UserResponse.model_validate(user)


@router.post("/{user_id}/follow", response_model=FollowResponse, status_code=status.HTTP_201_CREATED)
async def follow_user(
    user_id: int,
    graph: SocialGraph = Depends(get_graph),
    current_user: Identity = Depends(get_current_user),
):
    edge = await graph.follow(current_user.user_id, user_id)
    return FollowResponse.model_validate(edge)


@router.delete("/{user_id}/follow", status_code=status.HTTP_204_NO_CONTENT)
async def unfollow_user(
    user_id: int,
    graph: SocialGraph = Depends(get_graph),
    current_user: Identity = Depends(get_current_user),
):
    await graph.unfollow(current_user.user_id, user_id)


@router.get("/{user_id}/follow-stats", response_model=FollowStatsResponse)
async def follow_stats(
    user_id: int,
    graph: SocialGraph = Depends(get_graph),
    viewer: Optional[Identity] = Depends(get_optional_user),
):
    stats = await graph.follow_stats(user_id, viewer.user_id if viewer else None)
    return FollowStatsResponse(**stats)


@router.get("/{user_id}/stats", response_model=UserStatsResponse)
async def user_stats(user_id: int, graph: SocialGraph = Depends(get_graph)):
    return UserStatsResponse(**await graph.user_stats(user_id))


@router.get("/{user_id}/followers", response_model=UserListResponse)
async def list_followers(
    user_id: int,
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    graph: SocialGraph = Depends(get_graph),
):
    users, total = await graph.followers(user_id, page, page_size)
    return _user_page(users, total, page, page_size)


@router.get("/{user_id}/following", response_model=UserListResponse)
async def list_following(
    user_id: int,
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    graph: SocialGraph = Depends(get_graph),
):
    users, total = await graph.following(user_id, page, page_size)
    return _user_page(users, total, page, page_size)


@router.get("/{user_id}/mutual", response_model=list[UserResponse])
async def list_mutual(user_id: int, graph: SocialGraph = Depends(get_graph)):
    return [UserResponse.model_validate(u) for u in await graph.mutual_follows(user_id)]


@router.get("/{user_id}/bookshelves", response_model=list[BookshelfResponse])
async def list_user_shelves(
    user_id: int,
    shelves: BookshelfService = Depends(get_bookshelves),
    viewer: Optional[Identity] = Depends(get_optional_user),
):
    """The user's bookshelves, filtered to those the caller may see."""
    result = []
    for shelf in await shelves.list_for_owner(user_id, viewer.user_id if viewer else None):
        response = BookshelfResponse.model_validate(shelf)
        response.book_count = await shelves.book_count(shelf.id)
        result.append(response)
    return result


@router.get("/{user_id}/reviews", response_model=ReviewListResponse)
async def list_user_reviews(
    user_id: int,
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    reviews: ReviewService = Depends(get_reviews),
):
    items, total = await reviews.by_user(user_id, page, page_size)
    return ReviewListResponse(
        reviews=[ReviewResponse.model_validate(r) for r in items],
        total=total,
        page=page,
        page_size=page_size,
    )


@router.get("/{user_id}/liked-reviews", response_model=ReviewListResponse)
async def list_liked_reviews(
    user_id: int,
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    reviews: ReviewService = Depends(get_reviews),
):
    items, total = await reviews.liked_by(user_id, page, page_size)
    return ReviewListResponse(
        reviews=[ReviewResponse.model_validate(r) for r in items],
        total=total,
        page=page,
        page_size=page_size,
    )
