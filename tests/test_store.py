"""Tests for the SQLite book store and database layer."""

import sqlite3

import pytest

from leituras import database
from leituras.errors import PersistenceError, ValidationError
from leituras.models import READ, BookRecord
from leituras.store import SQLiteBookStore, with_id

pytestmark = pytest.mark.unit


def make_record(user_id="u1", title="Iracema", **kwargs) -> BookRecord:
    return BookRecord(
        user_id=user_id,
        title=title,
        author="José de Alencar",
        cover_url="/placeholder.svg",
        **kwargs,
    )


class TestSQLiteBookStore:
    """Tests for the async CRUD adapter."""

    @pytest.mark.asyncio
    async def test_create_and_get(self, store):
        record = make_record(genres=["Romance", "Indianismo"], page_count=180)

        book_id = await store.create(record)
        stored = await store.get(book_id, "u1")

        assert stored == with_id(record, book_id)

    @pytest.mark.asyncio
    async def test_ids_are_unique(self, store):
        first = await store.create(make_record())
        second = await store.create(make_record())

        assert first != second

    @pytest.mark.asyncio
    async def test_list_is_scoped_to_user(self, store):
        await store.create(make_record(user_id="u1", title="Iracema"))
        await store.create(make_record(user_id="u2", title="Senhora"))
        await store.create(make_record(user_id="u1", title="Lucíola"))

        books = await store.list_by_user("u1")

        assert [b.title for b in books] == ["Iracema", "Lucíola"]
        assert await store.list_by_user("nobody") == []

    @pytest.mark.asyncio
    async def test_partial_update(self, store):
        book_id = await store.create(make_record(notes="Primeira leitura", rating=3.0))

        await store.update(book_id, "u1", {"status": READ, "favorite": True})
        stored = await store.get(book_id, "u1")

        assert stored.status == READ
        assert stored.favorite is True
        assert stored.notes == "Primeira leitura"
        assert stored.rating == 3.0

    @pytest.mark.asyncio
    async def test_update_genres(self, store):
        book_id = await store.create(make_record())

        await store.update(book_id, "u1", {"genres": ["Romance"]})

        assert (await store.get(book_id, "u1")).genres == ["Romance"]

    @pytest.mark.asyncio
    async def test_update_missing_book(self, store):
        with pytest.raises(PersistenceError, match="No book found"):
            await store.update("missing", "u1", {"status": READ})

    @pytest.mark.asyncio
    async def test_delete(self, store):
        book_id = await store.create(make_record())

        await store.delete(book_id, "u1")

        assert await store.get(book_id, "u1") is None

    @pytest.mark.asyncio
    async def test_delete_missing_book(self, store):
        with pytest.raises(PersistenceError):
            await store.delete("missing", "u1")

    @pytest.mark.asyncio
    async def test_other_users_cannot_read_or_change(self, store):
        book_id = await store.create(make_record(user_id="alice", notes="Minha nota"))

        assert await store.get(book_id, "bob") is None
        with pytest.raises(PersistenceError):
            await store.update(book_id, "bob", {"notes": "bob was here"})
        with pytest.raises(PersistenceError):
            await store.delete(book_id, "bob")

        stored = await store.get(book_id, "alice")
        assert stored.notes == "Minha nota"

    @pytest.mark.asyncio
    async def test_database_errors_become_persistence_errors(self, tmp_path):
        conn = database.get_connection(tmp_path / "broken.db")
        # No init_db: the books table does not exist
        store = SQLiteBookStore(conn)
        try:
            with pytest.raises(PersistenceError, match="Failed to load books"):
                await store.list_by_user("u1")
        finally:
            conn.close()


class TestDatabase:
    """Tests for the synchronous database functions."""

    def test_init_db_is_idempotent(self, conn):
        database.init_db(conn)
        columns = {row[1] for row in conn.execute("PRAGMA table_info(books)")}
        assert {"language", "favorite"} <= columns

    def test_update_rejects_unknown_fields(self, conn):
        with pytest.raises(ValidationError, match="user_id"):
            database.update_book_fields(conn, "x", "u1", {"user_id": "u2"})

    def test_update_with_no_fields(self, conn):
        assert database.update_book_fields(conn, "x", "u1", {}) is False

    def test_insert_writes_the_document(self, conn):
        record = make_record(genres=["Romance"], notes="Releitura")

        database.insert_book(conn, "a", record)
        row = dict(conn.execute("SELECT * FROM books WHERE id = 'a'").fetchone())

        written = {name for name, value in row.items() if value is not None}
        assert written == {"id", *record.to_document()}
        assert row["genres"] == '["Romance"]'
        assert row["favorite"] == 0
        assert row["rating"] is None

    def test_writes_are_scoped_to_owner(self, conn):
        database.insert_book(conn, "a", make_record(user_id="alice"))
        conn.commit()

        assert not database.update_book_fields(conn, "a", "bob", {"notes": "x"})
        assert not database.delete_book(conn, "a", "bob")
        assert database.get_book_by_id(conn, "a", "bob") is None
        assert database.get_book_by_id(conn, "a", "alice").notes is None

    def test_bad_genres_json(self, conn):
        database.insert_book(conn, "a", make_record())
        conn.execute("UPDATE books SET genres = 'not json' WHERE id = 'a'")
        conn.commit()

        assert database.get_book_by_id(conn, "a", "u1").genres == []

    def test_user_profiles(self, conn):
        assert database.ensure_user_profile(conn, "u1", "ana@example.com", "Ana", None)
        assert not database.ensure_user_profile(conn, "u1", "ana@example.com", "Outra", None)

        database.merge_user_profile(conn, "u1", None, "https://example.com/ana.png")
        profile = database.get_user_profile(conn, "u1")

        assert profile["display_name"] == "Ana"
        assert profile["photo_url"] == "https://example.com/ana.png"
        assert database.get_user_profile(conn, "u2") is None

    def test_session(self, conn):
        assert database.get_session_uid(conn) is None
        database.set_session_uid(conn, "u1")
        database.set_session_uid(conn, "u2")
        assert database.get_session_uid(conn) == "u2"
        database.clear_session(conn)
        assert database.get_session_uid(conn) is None

    def test_connection_uses_row_factory(self, conn):
        assert conn.row_factory is sqlite3.Row
