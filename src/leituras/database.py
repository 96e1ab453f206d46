"""SQLite database operations for Leituras.

Provides functions for creating, reading, updating, and deleting book
records, user profiles, and the local sign-in session. Every book row
carries the ``user_id`` of its owner and every book query filters on it.
The connection is created with ``check_same_thread=False`` because the
async store runs each call in a worker thread.
"""

import json
import sqlite3
from datetime import datetime
from pathlib import Path
from typing import Any, Iterator, Optional

from .errors import ValidationError
from .models import BookRecord

DEFAULT_DB_PATH = Path.home() / ".leituras" / "data" / "leituras.db"


def get_connection(db_path: Optional[Path] = None) -> sqlite3.Connection:
    """Open a SQLite connection, creating the database file if needed.

    Parameters
    ----------
    db_path : Path, optional
        Path to the database file. Defaults to ``DEFAULT_DB_PATH``.

    Returns
    -------
    sqlite3.Connection
        A connection with ``row_factory`` set to ``sqlite3.Row``.
    """
    path = db_path or DEFAULT_DB_PATH
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(path, check_same_thread=False)
    conn.row_factory = sqlite3.Row
    return conn


def init_db(conn: sqlite3.Connection) -> None:
    """Create the tables and indexes if they do not exist.

    Also runs migrations to add any columns introduced after the initial
    schema (``language``, ``favorite``).

    Parameters
    ----------
    conn : sqlite3.Connection
        An open database connection.
    """
    conn.execute("""
        CREATE TABLE IF NOT EXISTS books (
            id TEXT PRIMARY KEY,
            user_id TEXT NOT NULL,
            title TEXT NOT NULL,
            author TEXT NOT NULL,
            cover_url TEXT NOT NULL,
            genres TEXT DEFAULT '[]',
            page_count INTEGER,
            synopsis TEXT,
            status TEXT NOT NULL,
            rating REAL,
            notes TEXT
        )
    """)
    conn.execute("CREATE INDEX IF NOT EXISTS idx_books_user ON books(user_id)")
    conn.execute("""
        CREATE TABLE IF NOT EXISTS users (
            uid TEXT PRIMARY KEY,
            email TEXT NOT NULL,
            display_name TEXT,
            photo_url TEXT,
            created_at TEXT NOT NULL
        )
    """)
    conn.execute("""
        CREATE TABLE IF NOT EXISTS session (
            id INTEGER PRIMARY KEY CHECK (id = 1),
            uid TEXT NOT NULL
        )
    """)

    # Migration: add personal fields introduced after the first release
    cursor = conn.execute("PRAGMA table_info(books)")
    columns = {row[1] for row in cursor.fetchall()}
    if "language" not in columns:
        conn.execute("ALTER TABLE books ADD COLUMN language TEXT")
    if "favorite" not in columns:
        conn.execute("ALTER TABLE books ADD COLUMN favorite INTEGER DEFAULT 0")

    conn.commit()


def _row_to_book(row: sqlite3.Row) -> BookRecord:
    """Convert a database row to a BookRecord instance.

    Parameters
    ----------
    row : sqlite3.Row
        A row from the ``books`` table.

    Returns
    -------
    BookRecord
        A populated ``BookRecord`` dataclass instance.
    """
    try:
        genres = json.loads(row["genres"] or "[]")
    except json.JSONDecodeError:
        genres = []
    return BookRecord(
        id=row["id"],
        user_id=row["user_id"],
        title=row["title"],
        author=row["author"],
        cover_url=row["cover_url"],
        genres=genres,
        page_count=row["page_count"],
        synopsis=row["synopsis"],
        status=row["status"],
        rating=row["rating"],
        notes=row["notes"],
        language=row["language"],
        favorite=bool(row["favorite"]),
    )


def insert_book(conn: sqlite3.Connection, book_id: str, book: BookRecord) -> None:
    """Insert a book row into the database.

    Only the columns present in ``book.to_document()`` are written; unset
    optional values fall back to the column defaults. The caller is
    responsible for committing the transaction.

    Parameters
    ----------
    conn : sqlite3.Connection
        An open database connection.
    book_id : str
        Identifier to store the book under.
    book : BookRecord
        The book to insert. Its own ``id`` is ignored.
    """
    document = book.to_document()
    columns = ["id", *document]
    values = [book_id, *(_to_column(name, value) for name, value in document.items())]
    placeholders = ", ".join("?" for _ in columns)
    conn.execute(
        f"INSERT INTO books ({', '.join(columns)}) VALUES ({placeholders})", values
    )


def get_books_by_user(conn: sqlite3.Connection, user_id: str) -> Iterator[BookRecord]:
    """Yield every book owned by *user_id*, in insertion order.

    Parameters
    ----------
    conn : sqlite3.Connection
        An open database connection.
    user_id : str
        Owner to filter on.

    Yields
    ------
    BookRecord
        Books belonging to the user.
    """
    cursor = conn.execute(
        "SELECT * FROM books WHERE user_id = ? ORDER BY rowid", (user_id,)
    )
    for row in cursor:
        yield _row_to_book(row)


def get_book_by_id(
    conn: sqlite3.Connection, book_id: str, user_id: str
) -> Optional[BookRecord]:
    """Look up a single book by id among the books owned by *user_id*.

    Returns
    -------
    BookRecord or None
        The matching book, or ``None`` if there is no such book for this
        user.
    """
    cursor = conn.execute(
        "SELECT * FROM books WHERE id = ? AND user_id = ?", (book_id, user_id)
    )
    row = cursor.fetchone()
    if row:
        return _row_to_book(row)
    return None


# Allowed fields for update_book_fields; id and user_id are immutable
_UPDATABLE_FIELDS = {
    "title",
    "author",
    "cover_url",
    "genres",
    "page_count",
    "synopsis",
    "status",
    "rating",
    "notes",
    "language",
    "favorite",
}

_BOOL_FIELDS = {"favorite"}
_JSON_FIELDS = {"genres"}


def _to_column(field: str, value: Any) -> Any:
    if field in _JSON_FIELDS:
        return json.dumps(list(value or []), ensure_ascii=False)
    if field in _BOOL_FIELDS:
        return int(value)
    return value


def update_book_fields(
    conn: sqlite3.Connection, book_id: str, user_id: str, updates: dict[str, Any]
) -> bool:
    """Update specific fields of a book owned by *user_id*.

    Only the keys present in *updates* change. Genre lists are serialised
    to JSON and boolean values are converted to integers before storage.
    The transaction is committed automatically on success.

    Parameters
    ----------
    conn : sqlite3.Connection
        An open database connection.
    book_id : str
        Id of the book to update.
    user_id : str
        Owner of the book. Books of other users are never touched.
    updates : dict of str to any
        Mapping of field names to new values.

    Returns
    -------
    bool
        ``True`` if a row was updated, ``False`` if the user has no book
        with this id or *updates* was empty.

    Raises
    ------
    ValidationError
        If *updates* contains a field name not in ``_UPDATABLE_FIELDS``.
    """
    invalid_fields = set(updates.keys()) - _UPDATABLE_FIELDS
    if invalid_fields:
        raise ValidationError(f"Invalid field(s): {', '.join(sorted(invalid_fields))}")

    if not updates:
        return False

    columns = list(updates)
    assignments = ", ".join(f"{column} = ?" for column in columns)
    values = [_to_column(column, updates[column]) for column in columns]
    query = f"UPDATE books SET {assignments} WHERE id = ? AND user_id = ?"
    cursor = conn.execute(query, [*values, book_id, user_id])
    conn.commit()
    return cursor.rowcount > 0


def delete_book(conn: sqlite3.Connection, book_id: str, user_id: str) -> bool:
    """Delete a book owned by *user_id*.

    Returns
    -------
    bool
        ``True`` if a row was removed, ``False`` if the user has no such
        book.
    """
    cursor = conn.execute(
        "DELETE FROM books WHERE id = ? AND user_id = ?", (book_id, user_id)
    )
    conn.commit()
    return cursor.rowcount > 0


def get_user_profile(conn: sqlite3.Connection, uid: str) -> Optional[dict[str, Any]]:
    """Return the stored profile for *uid*, or ``None`` if there is none."""
    cursor = conn.execute("SELECT * FROM users WHERE uid = ?", (uid,))
    row = cursor.fetchone()
    if row:
        return dict(row)
    return None


def ensure_user_profile(
    conn: sqlite3.Connection,
    uid: str,
    email: str,
    display_name: Optional[str],
    photo_url: Optional[str],
) -> bool:
    """Create a profile row for *uid* unless one already exists.

    Parameters
    ----------
    conn : sqlite3.Connection
        An open database connection.
    uid : str
        User identifier.
    email : str
        E-mail address.
    display_name : str or None
        Display name to store.
    photo_url : str or None
        Profile photo URL to store.

    Returns
    -------
    bool
        ``True`` if a new profile was created.
    """
    cursor = conn.execute(
        """
        INSERT OR IGNORE INTO users (uid, email, display_name, photo_url, created_at)
        VALUES (?, ?, ?, ?, ?)
        """,
        (uid, email, display_name, photo_url, datetime.now().isoformat()),
    )
    conn.commit()
    return cursor.rowcount > 0


def merge_user_profile(
    conn: sqlite3.Connection,
    uid: str,
    display_name: Optional[str],
    photo_url: Optional[str],
) -> None:
    """Overwrite display name and photo for *uid*, keeping other columns.

    ``None`` values leave the stored column unchanged.
    """
    conn.execute(
        """
        UPDATE users SET
            display_name = COALESCE(?, display_name),
            photo_url = COALESCE(?, photo_url)
        WHERE uid = ?
        """,
        (display_name, photo_url, uid),
    )
    conn.commit()


def get_session_uid(conn: sqlite3.Connection) -> Optional[str]:
    """Return the uid of the signed-in user, if any."""
    cursor = conn.execute("SELECT uid FROM session WHERE id = 1")
    row = cursor.fetchone()
    if row:
        return row[0]
    return None


def set_session_uid(conn: sqlite3.Connection, uid: str) -> None:
    """Record *uid* as the signed-in user."""
    conn.execute("INSERT OR REPLACE INTO session (id, uid) VALUES (1, ?)", (uid,))
    conn.commit()


def clear_session(conn: sqlite3.Connection) -> None:
    """Forget the signed-in user."""
    conn.execute("DELETE FROM session")
    conn.commit()
