"""Tests for the Google Books and Open Library clients.

Uses respx to mock HTTP responses from both APIs.
"""

import httpx
import pytest
import respx
from httpx import Response

from leituras.errors import SourceUnavailableError
from leituras.googlebooks import GoogleBooksClient, parse_volume
from leituras.openlibrary import OpenLibraryClient, cover_url, parse_doc
from leituras.search import CatalogSearch

pytestmark = pytest.mark.unit

GOOGLE_URL = "https://www.googleapis.com/books/v1/volumes"
OPENLIBRARY_URL = "https://openlibrary.org/search.json"


@pytest.fixture
def google_response():
    return {
        "totalItems": 2,
        "items": [
            {
                "volumeInfo": {
                    "title": "Dom Casmurro",
                    "authors": ["Machado de Assis"],
                    "imageLinks": {"thumbnail": "http://books.google.com/thumb?id=1"},
                    "categories": ["Fiction", "Fiction"],
                    "pageCount": 256,
                    "description": "Bentinho e Capitu.",
                }
            },
            {"volumeInfo": {"authors": ["Sem Título"]}},
        ],
    }


@pytest.fixture
def openlibrary_response():
    return {
        "numFound": 1,
        "docs": [
            {
                "title": "Dom Casmurro",
                "cover_i": 123,
                "subject": ["Fiction", "Brazil", "Fiction", "Classics", "Love", "Jealousy", "Rio"],
                "number_of_pages_median": 240,
            }
        ],
    }


class TestGoogleBooksParsing:
    """Tests for volume parsing."""

    def test_parse_volume(self, google_response):
        result = parse_volume(google_response["items"][0])

        assert result.title == "Dom Casmurro"
        assert result.author == "Machado de Assis"
        assert result.cover_url == "https://books.google.com/thumb?id=1"
        assert result.genres == ["Fiction"]
        assert result.page_count == 256
        assert result.synopsis == "Bentinho e Capitu."

    def test_volume_without_title_is_skipped(self, google_response):
        assert parse_volume(google_response["items"][1]) is None

    def test_missing_values_stay_none(self):
        result = parse_volume({"volumeInfo": {"title": "Iracema", "pageCount": 0}})

        assert result.author is None
        assert result.cover_url is None
        assert result.page_count is None
        assert result.genres == []


class TestGoogleBooksClient:
    """Tests for Google Books requests."""

    @pytest.mark.asyncio
    @respx.mock
    async def test_search_by_title(self, google_response):
        route = respx.get(GOOGLE_URL).mock(return_value=Response(200, json=google_response))

        async with GoogleBooksClient(api_key="k", language="pt") as client:
            results = await client.search_by_title("Dom Casmurro", limit=15)

        assert [r.title for r in results] == ["Dom Casmurro"]
        params = route.calls.last.request.url.params
        assert params["q"] == "intitle:Dom Casmurro"
        assert params["maxResults"] == "15"
        assert params["langRestrict"] == "pt"
        assert params["key"] == "k"

    @pytest.mark.asyncio
    @respx.mock
    async def test_search_by_author(self, google_response):
        route = respx.get(GOOGLE_URL).mock(return_value=Response(200, json=google_response))

        async with GoogleBooksClient() as client:
            await client.search_by_author("Machado", limit=5)

        params = route.calls.last.request.url.params
        assert params["q"] == "inauthor:Machado"
        assert params["maxResults"] == "5"
        assert "key" not in params

    @pytest.mark.asyncio
    @respx.mock
    async def test_no_items(self):
        respx.get(GOOGLE_URL).mock(return_value=Response(200, json={"totalItems": 0}))

        async with GoogleBooksClient() as client:
            assert await client.search_by_title("zzz") == []

    @pytest.mark.asyncio
    @respx.mock
    async def test_server_error_raises(self):
        respx.get(GOOGLE_URL).mock(return_value=Response(503))

        async with GoogleBooksClient() as client:
            with pytest.raises(SourceUnavailableError) as exc_info:
                await client.search_by_title("Dom Casmurro")

        assert exc_info.value.source == "Google Books"

    @pytest.mark.asyncio
    @respx.mock
    async def test_timeout_raises(self):
        respx.get(GOOGLE_URL).mock(side_effect=httpx.ConnectTimeout("timed out"))

        async with GoogleBooksClient(timeout=0.1) as client:
            with pytest.raises(SourceUnavailableError, match="timed out"):
                await client.search_by_title("Dom Casmurro")

    @pytest.mark.asyncio
    @respx.mock
    async def test_malformed_json_raises(self):
        respx.get(GOOGLE_URL).mock(return_value=Response(200, text="<html>"))

        async with GoogleBooksClient() as client:
            with pytest.raises(SourceUnavailableError):
                await client.search_by_title("Dom Casmurro")

    @pytest.mark.asyncio
    @respx.mock
    async def test_unexpected_shape_raises(self):
        respx.get(GOOGLE_URL).mock(return_value=Response(200, json=["not", "a", "dict"]))

        async with GoogleBooksClient() as client:
            with pytest.raises(SourceUnavailableError):
                await client.search_by_title("Dom Casmurro")


class TestOpenLibrary:
    """Tests for Open Library parsing and requests."""

    def test_cover_url(self):
        assert cover_url(123) == "https://covers.openlibrary.org/b/id/123-M.jpg"
        assert cover_url(None) is None
        assert cover_url(-1) is None

    def test_parse_doc(self, openlibrary_response):
        result = parse_doc(openlibrary_response["docs"][0])

        assert result.title == "Dom Casmurro"
        assert result.author is None
        assert result.cover_url == "https://covers.openlibrary.org/b/id/123-M.jpg"
        assert result.genres == ["Fiction", "Brazil", "Classics", "Love", "Jealousy"]
        assert result.page_count == 240
        assert result.synopsis is None

    @pytest.mark.asyncio
    @respx.mock
    async def test_search_by_title(self, openlibrary_response):
        route = respx.get(OPENLIBRARY_URL).mock(
            return_value=Response(200, json=openlibrary_response)
        )

        async with OpenLibraryClient() as client:
            results = await client.search_by_title("Dom Casmurro", limit=15)

        assert len(results) == 1
        params = route.calls.last.request.url.params
        assert params["title"] == "Dom Casmurro"
        assert params["limit"] == "15"

    @pytest.mark.asyncio
    @respx.mock
    async def test_connection_error_raises(self):
        respx.get(OPENLIBRARY_URL).mock(side_effect=httpx.ConnectError("refused"))

        async with OpenLibraryClient() as client:
            with pytest.raises(SourceUnavailableError) as exc_info:
                await client.search_by_title("Dom Casmurro")

        assert exc_info.value.source == "Open Library"


class TestSearchOverHttp:
    """End-to-end search through both real clients."""

    @pytest.mark.asyncio
    @respx.mock
    async def test_dom_casmurro(self):
        respx.get(GOOGLE_URL).mock(return_value=Response(200, json={
            "items": [
                {"volumeInfo": {
                    "title": "Dom Casmurro",
                    "authors": ["Machado de Assis"],
                    "pageCount": 256,
                }}
            ]
        }))
        respx.get(OPENLIBRARY_URL).mock(return_value=Response(200, json={
            "docs": [{"title": "Dom Casmurro", "cover_i": 123, "subject": ["Fiction"]}]
        }))

        async with httpx.AsyncClient() as http:
            search = CatalogSearch(
                GoogleBooksClient(client=http), OpenLibraryClient(client=http)
            )
            results = await search.search_by_title("Dom Casmurro")

        assert len(results) == 1
        book = results[0]
        assert book.author == "Machado de Assis"
        assert book.page_count == 256
        assert book.cover_url == "https://covers.openlibrary.org/b/id/123-M.jpg"
        assert book.genres == ["Fiction"]

    @pytest.mark.asyncio
    @respx.mock
    async def test_google_down_still_returns_open_library(self):
        respx.get(GOOGLE_URL).mock(return_value=Response(500))
        respx.get(OPENLIBRARY_URL).mock(return_value=Response(200, json={
            "docs": [{"title": "Iracema", "author_name": ["José de Alencar"]}]
        }))

        async with httpx.AsyncClient() as http:
            search = CatalogSearch(
                GoogleBooksClient(client=http), OpenLibraryClient(client=http)
            )
            results = await search.search_by_title("Iracema")

        assert [(r.title, r.author) for r in results] == [("Iracema", "José de Alencar")]
