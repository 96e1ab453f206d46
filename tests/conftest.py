"""Pytest fixtures shared by the Leituras tests."""

from dataclasses import replace

import pytest

from leituras import activity_log
from leituras.database import get_connection, init_db
from leituras.errors import SourceUnavailableError
from leituras.models import BookApiResult
from leituras.store import SQLiteBookStore


class FakeSource:
    """In-memory catalogue source with canned results per query."""

    def __init__(self, by_title=None, by_author=None, fail_titles=(), fail=False):
        self.by_title = by_title or {}
        self.by_author = by_author or {}
        self.fail_titles = set(fail_titles)
        self.fail = fail
        self.title_queries = []
        self.author_queries = []

    async def search_by_title(self, title, limit=15):
        self.title_queries.append(title)
        if self.fail or title in self.fail_titles:
            raise SourceUnavailableError("Fake", "down")
        return [replace(r, genres=list(r.genres)) for r in self.by_title.get(title, [])][:limit]

    async def search_by_author(self, author, limit=5):
        self.author_queries.append(author)
        if self.fail:
            raise SourceUnavailableError("Fake", "down")
        return [replace(r, genres=list(r.genres)) for r in self.by_author.get(author, [])][:limit]


@pytest.fixture
def conn(tmp_path):
    """Initialised SQLite connection in a temporary directory."""
    connection = get_connection(tmp_path / "leituras.db")
    init_db(connection)
    yield connection
    connection.close()


@pytest.fixture
def store(conn):
    return SQLiteBookStore(conn)


@pytest.fixture
def activity_path(tmp_path, monkeypatch):
    """Redirect the activity log into the temporary directory."""
    path = tmp_path / "data" / "activity.log"
    monkeypatch.setattr(activity_log, "_LOG_PATH", path)
    return path


@pytest.fixture
def dom_casmurro() -> BookApiResult:
    return BookApiResult(
        title="Dom Casmurro",
        author="Machado de Assis",
        cover_url="https://covers.openlibrary.org/b/id/123-M.jpg",
        genres=["Fiction"],
        page_count=256,
        synopsis="Bentinho e Capitu.",
    )


@pytest.fixture
def make_source():
    """Factory for ``FakeSource`` catalogue stand-ins."""
    return FakeSource
