"""Tests for the command line interface."""

import asyncio
import logging

import pytest
import respx
from click.testing import CliRunner
from httpx import Response

from leituras import cli, ui
from leituras.auth import LocalIdentityProvider
from leituras.database import get_books_by_user, get_connection
from leituras.settings import Settings

pytestmark = pytest.mark.unit

GOOGLE_URL = "https://www.googleapis.com/books/v1/volumes"
OPENLIBRARY_URL = "https://openlibrary.org/search.json"


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "cli.db"


@pytest.fixture
def runner(db_path, activity_path, monkeypatch):
    monkeypatch.setattr(cli, "load_settings", lambda: Settings(db_path=str(db_path)))
    return CliRunner()


@pytest.fixture
def signed_in(runner):
    result = runner.invoke(cli.main, ["login", "ana@example.com", "--name", "Ana"])
    assert result.exit_code == 0, result.output
    return LocalIdentityProvider.uid_for("ana@example.com")


def stored_books(db_path, uid):
    conn = get_connection(db_path)
    try:
        return list(get_books_by_user(conn, uid))
    finally:
        conn.close()


def mock_catalogues():
    respx.get(GOOGLE_URL).mock(return_value=Response(200, json={
        "items": [{"volumeInfo": {"title": "Dom Casmurro", "authors": ["Machado de Assis"]}}]
    }))
    respx.get(OPENLIBRARY_URL).mock(return_value=Response(200, json={
        "docs": [{"title": "Dom Casmurro", "cover_i": 123}]
    }))


def test_login_and_whoami(runner, signed_in):
    result = runner.invoke(cli.main, ["whoami"])

    assert result.exit_code == 0
    assert "Signed in as Ana" in result.output
    assert "ana@example.com" in result.output


def test_login_with_invalid_email(runner):
    result = runner.invoke(cli.main, ["login", "not-an-email"])

    assert result.exit_code == 1
    assert "Could not sign in" in result.output


def test_commands_require_sign_in(runner):
    result = runner.invoke(cli.main, ["list"])

    assert result.exit_code == 1
    assert "Not signed in" in result.output


def test_logout(runner, signed_in):
    assert runner.invoke(cli.main, ["logout"]).exit_code == 0

    assert runner.invoke(cli.main, ["whoami"]).exit_code == 1


def test_profile(runner, signed_in):
    result = runner.invoke(cli.main, ["profile", "--name", "Ana Maria"])
    assert result.exit_code == 0

    assert "Ana Maria" in runner.invoke(cli.main, ["whoami"]).output


@respx.mock
def test_search(runner):
    mock_catalogues()

    result = runner.invoke(cli.main, ["search", "Dom Casmurro"])

    assert result.exit_code == 0, result.output
    assert "Dom Casmurro" in result.output
    assert "Machado de Assis" in result.output


@respx.mock
def test_search_with_both_sources_down(runner):
    respx.get(GOOGLE_URL).mock(return_value=Response(500))
    respx.get(OPENLIBRARY_URL).mock(return_value=Response(500))

    result = runner.invoke(cli.main, ["search", "Dom Casmurro"])

    assert result.exit_code == 1
    assert "all sources failed" in result.output


@respx.mock
def test_add_and_list(runner, signed_in, db_path):
    mock_catalogues()

    result = runner.invoke(
        cli.main, ["add", "Dom Casmurro", "--pick", "1", "--status", "Lido", "--rating", "4.5"]
    )
    assert result.exit_code == 0, result.output
    assert "Added: Dom Casmurro" in result.output

    books = stored_books(db_path, signed_in)
    assert len(books) == 1
    assert books[0].author == "Machado de Assis"
    assert books[0].cover_url == "https://covers.openlibrary.org/b/id/123-M.jpg"
    assert books[0].rating == 4.5

    listing = runner.invoke(cli.main, ["list", "--status", "Lido"])
    assert listing.exit_code == 0
    assert "Dom Casmurro" in listing.output

    activity = runner.invoke(cli.main, ["activity"])
    assert "add" in activity.output


@respx.mock
def test_add_with_pick_out_of_range(runner, signed_in):
    mock_catalogues()

    result = runner.invoke(cli.main, ["add", "Dom Casmurro", "--pick", "9"])

    assert result.exit_code == 2
    assert "--pick" in result.output


@respx.mock
def test_update_favorite_and_remove(runner, signed_in, db_path):
    mock_catalogues()
    runner.invoke(cli.main, ["add", "Dom Casmurro", "--pick", "1"])
    book_id = stored_books(db_path, signed_in)[0].id

    result = runner.invoke(cli.main, ["update", book_id[:6], "--notes", "Capitu traiu?"])
    assert result.exit_code == 0, result.output
    assert stored_books(db_path, signed_in)[0].notes == "Capitu traiu?"

    result = runner.invoke(cli.main, ["update", book_id])
    assert "Nothing to change" in result.output

    result = runner.invoke(cli.main, ["update", book_id, "--rating", "7"])
    assert result.exit_code == 1
    assert "Rating must be between" in result.output

    result = runner.invoke(cli.main, ["favorite", book_id])
    assert result.exit_code == 0
    assert stored_books(db_path, signed_in)[0].favorite is True

    result = runner.invoke(cli.main, ["info", book_id])
    assert "Capitu traiu?" in result.output

    result = runner.invoke(cli.main, ["remove", book_id, "--yes"])
    assert result.exit_code == 0
    assert stored_books(db_path, signed_in) == []

    result = runner.invoke(cli.main, ["info", book_id])
    assert result.exit_code == 1
    assert "No book found" in result.output


def test_stats(runner, signed_in):
    result = runner.invoke(cli.main, ["stats"])

    assert result.exit_code == 0
    assert "Collection: 0 books" in result.output


def test_version(runner):
    result = runner.invoke(cli.main, ["--version"])

    assert result.exit_code == 0
    assert "0.1.0" in result.output


@respx.mock
def test_add_prompts_outside_the_event_loop(runner, signed_in, db_path, monkeypatch):
    mock_catalogues()
    prompted = []

    def pick_first(count):
        with pytest.raises(RuntimeError):
            asyncio.get_running_loop()
        prompted.append(count)
        return 0

    monkeypatch.setattr(ui, "prompt_pick", pick_first)

    result = runner.invoke(cli.main, ["add", "Dom Casmurro"])

    assert result.exit_code == 0, result.output
    assert prompted == [1]
    assert [b.title for b in stored_books(db_path, signed_in)] == ["Dom Casmurro"]


def test_verbose_keeps_request_urls_out_of_logs(runner):
    runner.invoke(cli.main, ["--verbose", "whoami"])

    assert logging.getLogger().level == logging.DEBUG
    assert logging.getLogger("httpx").level == logging.WARNING
