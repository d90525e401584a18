"""Bookshelf visibility policy.

Privacy only ever governs reads. Every write requires ownership, whatever the
privacy level.
"""

from __future__ import annotations

from typing import Optional

from shelfnet.errors import UnauthorizedError
from shelfnet.models.bookshelf import Bookshelf, PrivacyLevel
from shelfnet.services.social_graph import SocialGraph


class VisibilityPolicy:
    def __init__(self, graph: SocialGraph):
        self.graph = graph

    async def can_view(self, bookshelf: Bookshelf, viewer_id: Optional[int]) -> bool:
        if viewer_id is not None and bookshelf.user_id == viewer_id:
            return True
        if bookshelf.privacy == PrivacyLevel.PUBLIC:
            return True
        if bookshelf.privacy == PrivacyLevel.FRIENDS_ONLY:
            return await self.graph.is_mutual(bookshelf.user_id, viewer_id)
        return False

    async def require_view(self, bookshelf: Bookshelf, viewer_id: Optional[int]) -> None:
        if not await self.can_view(bookshelf, viewer_id):
            raise UnauthorizedError("You don't have permission to access this bookshelf")

    def require_owner(self, bookshelf: Bookshelf, user_id: Optional[int], action: str = "modify") -> None:
        if user_id is None or bookshelf.user_id != user_id:
            raise UnauthorizedError(f"You can only {action} your own bookshelves")
