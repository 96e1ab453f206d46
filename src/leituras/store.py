"""Async persistence adapter over the SQLite ``books`` table.

``SQLiteBookStore`` is the object the collection manager writes through.
Each operation runs the synchronous functions from ``database`` in a worker
thread so callers can await it alongside catalogue requests, and reports
every failure as ``PersistenceError``.
"""

import asyncio
import logging
import sqlite3
import uuid
from dataclasses import replace
from typing import Any, Optional

from . import database
from .errors import PersistenceError
from .models import BookRecord

logger = logging.getLogger(__name__)


class SQLiteBookStore:
    """Collection-scoped CRUD over the ``books`` table.

    Parameters
    ----------
    conn : sqlite3.Connection
        An open connection on which ``database.init_db`` has been run.
    """

    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn

    async def _run(self, description: str, func, *args):
        try:
            return await asyncio.to_thread(func, *args)
        except sqlite3.Error as e:
            logger.error("Failed to %s: %s", description, e)
            raise PersistenceError(f"Failed to {description}: {e}") from e

    async def create(self, record: BookRecord) -> str:
        """Store a new record and return its assigned id.

        Raises
        ------
        PersistenceError
            If the insert fails.
        """
        book_id = uuid.uuid4().hex

        def _insert() -> None:
            database.insert_book(self.conn, book_id, record)
            self.conn.commit()

        await self._run("add book", _insert)
        logger.debug("Created book %s for user %s", book_id, record.user_id)
        return book_id

    async def list_by_user(self, user_id: str) -> list[BookRecord]:
        """Return every record owned by *user_id*."""

        def _fetch() -> list[BookRecord]:
            return list(database.get_books_by_user(self.conn, user_id))

        return await self._run("load books", _fetch)

    async def get(self, book_id: str, user_id: str) -> Optional[BookRecord]:
        """Return *user_id*'s record stored under *book_id*, or ``None``."""
        return await self._run(
            "load book", database.get_book_by_id, self.conn, book_id, user_id
        )

    async def update(self, book_id: str, user_id: str, changes: dict[str, Any]) -> None:
        """Apply a partial update to a record owned by *user_id*.

        Raises
        ------
        PersistenceError
            If the user has no such record or the write fails.
        """
        if not changes:
            return
        updated = await self._run(
            "update book", database.update_book_fields, self.conn, book_id, user_id, changes
        )
        if not updated:
            raise PersistenceError(f"No book found with id: {book_id}")

    async def delete(self, book_id: str, user_id: str) -> None:
        """Delete a record owned by *user_id*, irreversibly.

        Raises
        ------
        PersistenceError
            If the user has no such record or the delete fails.
        """
        deleted = await self._run(
            "remove book", database.delete_book, self.conn, book_id, user_id
        )
        if not deleted:
            raise PersistenceError(f"No book found with id: {book_id}")


def with_id(record: BookRecord, book_id: str) -> BookRecord:
    """Return a copy of *record* carrying the store-assigned *book_id*."""
    return replace(record, id=book_id)
