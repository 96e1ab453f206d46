"""Google Books API client.

Source of rich metadata for the catalogue search: authors, cover
thumbnails, categories, page counts and descriptions. Queries can target
titles or authors; every failure surfaces as ``SourceUnavailableError``.
"""

import logging
from typing import Any, Optional

import httpx

from .errors import SourceUnavailableError
from .models import BookApiResult

logger = logging.getLogger(__name__)

SOURCE_NAME = "Google Books"

# Hard limit imposed by the volumes endpoint
_API_MAX_RESULTS = 40


def _clean_text(value: Any) -> Optional[str]:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _positive_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int) and value > 0:
        return value
    return None


def parse_volume(item: dict) -> Optional[BookApiResult]:
    """Convert one ``items[]`` entry into a search candidate.

    Missing values stay ``None`` so that results from other queries can
    fill them in later.

    Parameters
    ----------
    item : dict
        A volume resource from the Google Books API.

    Returns
    -------
    BookApiResult or None
        The parsed candidate, or ``None`` if the volume has no title.
    """
    info = item.get("volumeInfo") or {}
    title = _clean_text(info.get("title"))
    if not title:
        return None

    authors = [a for a in info.get("authors") or [] if _clean_text(a)]

    cover_url = None
    thumbnail = _clean_text((info.get("imageLinks") or {}).get("thumbnail"))
    if thumbnail:
        # Thumbnails are served over plain http by default
        cover_url = thumbnail.replace("http:", "https:", 1)

    genres = []
    for category in info.get("categories") or []:
        category = _clean_text(category)
        if category and category not in genres:
            genres.append(category)

    return BookApiResult(
        title=title,
        author=authors[0].strip() if authors else None,
        cover_url=cover_url,
        genres=genres,
        page_count=_positive_int(info.get("pageCount")),
        synopsis=_clean_text(info.get("description")),
    )


class GoogleBooksClient:
    """Async client for the Google Books volumes endpoint.

    Parameters
    ----------
    api_key : str, optional
        API key, which raises the anonymous rate limit.
    language : str, optional
        Two-letter language code used as ``langRestrict`` on title queries.
    timeout : float
        Per-request timeout in seconds.
    client : httpx.AsyncClient, optional
        Shared HTTP client. One is created (and owned) when omitted.
    """

    BASE_URL = "https://www.googleapis.com/books/v1/volumes"

    def __init__(
        self,
        api_key: Optional[str] = None,
        language: Optional[str] = None,
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.api_key = api_key
        self.language = language
        self.timeout = timeout
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(timeout=timeout)

    async def search_by_title(self, title: str, limit: int = 15) -> list[BookApiResult]:
        """Search volumes whose title matches *title*.

        Raises
        ------
        SourceUnavailableError
            If the request fails or the response cannot be parsed.
        """
        params = {"q": f"intitle:{title}", "maxResults": min(limit, _API_MAX_RESULTS)}
        if self.language:
            params["langRestrict"] = self.language
        return await self._search(params)

    async def search_by_author(self, author: str, limit: int = 5) -> list[BookApiResult]:
        """Search volumes written by *author*.

        Raises
        ------
        SourceUnavailableError
            If the request fails or the response cannot be parsed.
        """
        params = {"q": f"inauthor:{author}", "maxResults": min(limit, _API_MAX_RESULTS)}
        return await self._search(params)

    async def _search(self, params: dict[str, Any]) -> list[BookApiResult]:
        if self.api_key:
            params["key"] = self.api_key

        logger.debug("%s request: %s", SOURCE_NAME, params["q"])
        try:
            response = await self.client.get(
                self.BASE_URL, params=params, timeout=self.timeout
            )
            response.raise_for_status()
            data = response.json()
        except httpx.TimeoutException as e:
            raise SourceUnavailableError(SOURCE_NAME, f"request timed out: {e}") from e
        except httpx.HTTPError as e:
            raise SourceUnavailableError(SOURCE_NAME, str(e)) from e
        except ValueError as e:
            raise SourceUnavailableError(SOURCE_NAME, f"invalid response: {e}") from e

        try:
            items = data.get("items") or []
            results = [parse_volume(item) for item in items]
        except (AttributeError, TypeError) as e:
            raise SourceUnavailableError(SOURCE_NAME, f"malformed response: {e}") from e

        found = [r for r in results if r is not None]
        logger.debug("%s returned %d results", SOURCE_NAME, len(found))
        return found[: params["maxResults"]]

    async def close(self) -> None:
        """Close the HTTP client if this instance created it."""
        if self._owns_client:
            await self.client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
