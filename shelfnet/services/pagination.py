"""Offset pagination and literal substring matching over SELECT statements."""

from __future__ import annotations

from typing import Any

from sqlalchemy import Select, func, select
from sqlalchemy.ext.asyncio import AsyncSession

LIKE_ESCAPE = "\\"


def contains_pattern(text: str) -> str:
    """LIKE pattern matching ``text`` literally anywhere; use with ``escape=LIKE_ESCAPE``."""
    escaped = text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


async def paginate(db: AsyncSession, query: Select, page: int, page_size: int) -> tuple[list[Any], int]:
    """Return one page of scalar rows from ``query`` plus the unpaginated total.

    ``query`` must already carry its ORDER BY.
    """
    count_query = select(func.count()).select_from(query.order_by(None).subquery())
    total = (await db.execute(count_query)).scalar() or 0

    offset = (page - 1) * page_size
    result = await db.execute(query.offset(offset).limit(page_size))
    return list(result.scalars().all()), total
