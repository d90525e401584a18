"""FastAPI providers that build the domain services on top of a request session."""

from __future__ import annotations

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from shelfnet.database import get_db
from shelfnet.services.activity import ActivityRecorder
from shelfnet.services.bookshelves import BookshelfService
from shelfnet.services.catalog import CatalogMatcher
from shelfnet.services.catalog_client import GoogleBooksClient, get_catalog_client
from shelfnet.services.reading import ReadingService
from shelfnet.services.reviews import ReviewService
from shelfnet.services.social_graph import SocialGraph
from shelfnet.services.visibility import VisibilityPolicy


def get_activity(db: AsyncSession = Depends(get_db)) -> ActivityRecorder:
    return ActivityRecorder(db)


def get_matcher(
    db: AsyncSession = Depends(get_db),
    catalog: GoogleBooksClient = Depends(get_catalog_client),
) -> CatalogMatcher:
    return CatalogMatcher(db, catalog)


def get_graph(
    db: AsyncSession = Depends(get_db),
    activity: ActivityRecorder = Depends(get_activity),
) -> SocialGraph:
    return SocialGraph(db, activity)


def get_policy(graph: SocialGraph = Depends(get_graph)) -> VisibilityPolicy:
    return VisibilityPolicy(graph)


def get_bookshelves(
    db: AsyncSession = Depends(get_db),
    policy: VisibilityPolicy = Depends(get_policy),
    activity: ActivityRecorder = Depends(get_activity),
) -> BookshelfService:
    return BookshelfService(db, policy, activity)


def get_reviews(
    db: AsyncSession = Depends(get_db),
    activity: ActivityRecorder = Depends(get_activity),
) -> ReviewService:
    return ReviewService(db, activity)


def get_reading(
    db: AsyncSession = Depends(get_db),
    activity: ActivityRecorder = Depends(get_activity),
) -> ReadingService:
    return ReadingService(db, activity)
