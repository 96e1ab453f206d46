"""Open Library search API client.

Broad-coverage catalogue used by the search alongside Google Books.
Results carry title, author, subjects and median page count; covers are
built from the numeric ``cover_i`` id. Open Library has no synopsis in
search results.
"""

import logging
from typing import Any, Optional

import httpx

from .errors import SourceUnavailableError
from .models import BookApiResult

logger = logging.getLogger(__name__)

SOURCE_NAME = "Open Library"

COVER_URL_TEMPLATE = "https://covers.openlibrary.org/b/id/{cover_id}-M.jpg"

# Subjects on Open Library are long, loosely curated lists
MAX_SUBJECTS = 5


def cover_url(cover_id: Any) -> Optional[str]:
    """Build a medium-size cover URL from an Open Library cover id.

    Parameters
    ----------
    cover_id : int or None
        The ``cover_i`` value from a search document.

    Returns
    -------
    str or None
        Cover URL, or ``None`` if *cover_id* is missing or not positive.

    Examples
    --------
    >>> cover_url(123)
    'https://covers.openlibrary.org/b/id/123-M.jpg'
    >>> cover_url(None) is None
    True
    """
    if isinstance(cover_id, bool) or not isinstance(cover_id, int) or cover_id <= 0:
        return None
    return COVER_URL_TEMPLATE.format(cover_id=cover_id)


def parse_doc(doc: dict) -> Optional[BookApiResult]:
    """Convert one ``docs[]`` entry into a search candidate.

    Parameters
    ----------
    doc : dict
        A search document from the Open Library API.

    Returns
    -------
    BookApiResult or None
        The parsed candidate, or ``None`` if the document has no title.
    """
    title = doc.get("title")
    if not isinstance(title, str) or not title.strip():
        return None

    author = None
    author_names = [a for a in doc.get("author_name") or [] if isinstance(a, str) and a.strip()]
    if author_names:
        author = author_names[0].strip()

    genres = []
    for subject in doc.get("subject") or []:
        if isinstance(subject, str) and subject.strip() and subject.strip() not in genres:
            genres.append(subject.strip())
        if len(genres) >= MAX_SUBJECTS:
            break

    page_count = doc.get("number_of_pages_median")
    if isinstance(page_count, bool) or not isinstance(page_count, int) or page_count <= 0:
        page_count = None

    return BookApiResult(
        title=title.strip(),
        author=author,
        cover_url=cover_url(doc.get("cover_i")),
        genres=genres,
        page_count=page_count,
        synopsis=None,
    )


class OpenLibraryClient:
    """Async client for the Open Library ``search.json`` endpoint.

    Parameters
    ----------
    timeout : float
        Per-request timeout in seconds.
    client : httpx.AsyncClient, optional
        Shared HTTP client. One is created (and owned) when omitted.
    """

    BASE_URL = "https://openlibrary.org/search.json"

    def __init__(self, timeout: float = 10.0, client: Optional[httpx.AsyncClient] = None):
        self.timeout = timeout
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(timeout=timeout)

    async def search_by_title(self, title: str, limit: int = 15) -> list[BookApiResult]:
        """Search works whose title matches *title*.

        Parameters
        ----------
        title : str
            Title to search for.
        limit : int, optional
            Maximum number of results, by default 15.

        Returns
        -------
        list of BookApiResult
            Parsed candidates, at most *limit*.

        Raises
        ------
        SourceUnavailableError
            If the HTTP request fails or the response is malformed.
        """
        params = {"title": title, "limit": limit}
        logger.debug("%s request: %s", SOURCE_NAME, title)
        try:
            response = await self.client.get(
                self.BASE_URL, params=params, timeout=self.timeout
            )
            response.raise_for_status()
            data = response.json()
        except httpx.TimeoutException as e:
            raise SourceUnavailableError(SOURCE_NAME, f"request timed out: {e}") from e
        except httpx.HTTPError as e:
            raise SourceUnavailableError(SOURCE_NAME, f"failed to connect: {e}") from e
        except ValueError as e:
            raise SourceUnavailableError(SOURCE_NAME, f"invalid response: {e}") from e

        try:
            docs = data.get("docs") or []
            results = [parse_doc(doc) for doc in docs]
        except (AttributeError, TypeError) as e:
            raise SourceUnavailableError(SOURCE_NAME, f"malformed response: {e}") from e

        found = [r for r in results if r is not None]
        logger.debug("%s returned %d results", SOURCE_NAME, len(found))
        return found[:limit]

    async def close(self) -> None:
        """Close the HTTP client if this instance created it."""
        if self._owns_client:
            await self.client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
