"""HTTP client for the external book catalog (Google Books volumes API) with circuit breaker and retry."""

from __future__ import annotations

from typing import Any, Optional

import httpx
import structlog
from circuitbreaker import circuit
from pydantic import BaseModel, Field
from tenacity import retry, stop_after_attempt, wait_exponential

from shelfnet.config import get_settings

logger = structlog.get_logger()


class CatalogRecord(BaseModel):
    """A catalog hit normalized away from the provider's wire format."""

    external_id: str
    title: str
    authors: list[str] = Field(default_factory=list)
    isbn13: Optional[str] = None
    isbn10: Optional[str] = None
    description: Optional[str] = None
    cover_url: Optional[str] = None
    published_date: Optional[str] = None
    page_count: Optional[int] = None
    categories: list[str] = Field(default_factory=list)
    publisher: Optional[str] = None
    language: Optional[str] = None


def parse_volume(item: dict[str, Any]) -> CatalogRecord:
    """Map one ``items[]`` entry of a volumes response to a CatalogRecord."""
    info = item.get("volumeInfo", {})

    isbn13, isbn10 = None, None
    for identifier in info.get("industryIdentifiers") or []:
        if identifier.get("type") == "ISBN_13" and not isbn13:
            isbn13 = identifier.get("identifier")
        elif identifier.get("type") == "ISBN_10" and not isbn10:
            isbn10 = identifier.get("identifier")

    links = info.get("imageLinks") or {}
    return CatalogRecord(
        external_id=item["id"],
        title=info.get("title", ""),
        authors=info.get("authors") or [],
        isbn13=isbn13,
        isbn10=isbn10,
        description=info.get("description"),
        cover_url=links.get("thumbnail") or links.get("smallThumbnail"),
        published_date=info.get("publishedDate"),
        page_count=info.get("pageCount"),
        categories=info.get("categories") or [],
        publisher=info.get("publisher"),
        language=info.get("language"),
    )


class GoogleBooksClient:
    def __init__(
        self,
        base_url: str,
        api_key: Optional[str] = None,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url
        self.api_key = api_key
        self.timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout, connect=5.0),
                transport=self._transport,
            )
        return self._client

    @circuit(failure_threshold=5, recovery_timeout=30)
    @retry(stop=stop_after_attempt(3), wait=wait_exponential(multiplier=1, min=1, max=5))
    async def _search(self, query: str) -> dict[str, Any]:
        client = await self._get_client()
        params = {"q": query, "maxResults": 1, "printType": "books"}
        if self.api_key:
            params["key"] = self.api_key
        response = await client.get(self.base_url, params=params)
        response.raise_for_status()
        return response.json()

    async def lookup(self, query: str) -> CatalogRecord | None:
        """Return the first catalog match for ``query``, or None when there is none.

        Transport and HTTP failures propagate to the caller.
        """
        data = await self._search(query)
        items = data.get("items") or []
        if not items:
            logger.info("catalog_lookup_empty", query=query)
            return None
        return parse_volume(items[0])

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None


_client: GoogleBooksClient | None = None


def get_catalog_client() -> GoogleBooksClient:
    global _client
    if _client is None:
        settings = get_settings()
        _client = GoogleBooksClient(
            base_url=settings.google_books_api_url,
            api_key=settings.google_books_api_key,
            timeout=settings.catalog_timeout_seconds,
        )
    return _client


async def close_client() -> None:
    global _client
    if _client:
        await _client.close()
        _client = None
