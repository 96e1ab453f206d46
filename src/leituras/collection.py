"""Collection management for a signed-in user.

``CollectionManager`` ties the catalogue search and the book store together:
it adds selected search results to the collection, loads the user's books,
and writes partial updates through the store. ``books`` holds the last
known good list; it only changes after the store confirms a write.

The filtering and sorting helpers are plain functions so the CLI can apply
them to any list of records.
"""

import logging
import unicodedata
from dataclasses import dataclass, field, replace
from typing import Any, Iterable, Optional

from .errors import PersistenceError, ValidationError
from .models import (
    ALL_STATUSES,
    READ,
    READING,
    STATUSES,
    UNREAD,
    BookApiResult,
    BookRecord,
    strip_unset,
    validate_rating,
    validate_status,
)
from .store import with_id

logger = logging.getLogger(__name__)

SORT_BY_STATUS = "status"
SORT_BY_RATING = "rating"
SORT_BY_TITLE = "title"
SORT_BY_FAVORITE = "favorite"

SORT_OPTIONS = (SORT_BY_STATUS, SORT_BY_RATING, SORT_BY_TITLE, SORT_BY_FAVORITE)

STATUS_PRIORITY = {READING: 1, UNREAD: 2, READ: 3}

_IMMUTABLE_FIELDS = {"id", "user_id"}
_REQUIRED_TEXT_FIELDS = ("title", "author", "cover_url")
_OPTIONAL_TEXT_FIELDS = ("synopsis", "notes", "language")
_EDITABLE_FIELDS = {
    *_REQUIRED_TEXT_FIELDS,
    *_OPTIONAL_TEXT_FIELDS,
    "genres",
    "page_count",
    "status",
    "rating",
    "favorite",
}


def validate_changes(changes: dict[str, Any]) -> dict[str, Any]:
    """Check a partial update before it is written.

    Parameters
    ----------
    changes : dict of str to any
        Field name to new value, with unset values already removed.

    Returns
    -------
    dict of str to any
        A copy of *changes* with the rating as a float and genres as a list.

    Raises
    ------
    ValidationError
        If a field is immutable or unknown, a required text field is blank,
        ``page_count`` is not a non-negative integer, ``favorite`` is not a
        bool, ``genres`` is not a list of strings, or the status or rating
        is invalid.
    """
    immutable = _IMMUTABLE_FIELDS & set(changes)
    if immutable:
        raise ValidationError(f"Cannot change: {', '.join(sorted(immutable))}")
    unknown = set(changes) - _EDITABLE_FIELDS
    if unknown:
        raise ValidationError(f"Invalid field(s): {', '.join(sorted(unknown))}")

    checked = dict(changes)
    for name in _REQUIRED_TEXT_FIELDS:
        if name in checked:
            value = checked[name]
            if not isinstance(value, str) or not value.strip():
                raise ValidationError(f"{name} cannot be empty")
    for name in _OPTIONAL_TEXT_FIELDS:
        if name in checked and not isinstance(checked[name], str):
            raise ValidationError(f"{name} must be text")
    if "page_count" in checked:
        pages = checked["page_count"]
        if isinstance(pages, bool) or not isinstance(pages, int) or pages < 0:
            raise ValidationError(f"Invalid page count: {pages!r}")
    if "favorite" in checked and not isinstance(checked["favorite"], bool):
        raise ValidationError(f"Invalid favourite flag: {checked['favorite']!r}")
    if "genres" in checked:
        genres = checked["genres"]
        if not isinstance(genres, (list, tuple)) or not all(
            isinstance(genre, str) for genre in genres
        ):
            raise ValidationError("Genres must be a list of text values")
        checked["genres"] = list(genres)
    if "status" in checked:
        validate_status(checked["status"])
    if "rating" in checked:
        checked["rating"] = validate_rating(checked["rating"])
    return checked


def title_sort_key(title: str) -> tuple[str, str]:
    """Return a key that orders titles the way a reader expects.

    Accents and case are ignored first, so ``"Ébano"`` sorts between
    ``"Dom Casmurro"`` and ``"Fogo Morto"``; the original title breaks ties
    so the order stays total.
    """
    decomposed = unicodedata.normalize("NFKD", title)
    base = "".join(c for c in decomposed if not unicodedata.combining(c))
    return (base.casefold(), title)


def filter_books(records: Iterable[BookRecord], status_filter: str) -> list[BookRecord]:
    """Return the records whose status equals *status_filter*.

    ``ALL_STATUSES`` returns every record. Relative order is preserved.
    """
    if status_filter == ALL_STATUSES:
        return list(records)
    return [book for book in records if book.status == status_filter]


def search_collection(records: Iterable[BookRecord], term: str) -> list[BookRecord]:
    """Return records whose title or author contains *term*, ignoring case."""
    term = (term or "").strip().casefold()
    if not term:
        return list(records)
    return [
        book
        for book in records
        if term in book.title.casefold() or term in book.author.casefold()
    ]


def sort_books(records: Iterable[BookRecord], option: str) -> list[BookRecord]:
    """Return *records* sorted by one of ``SORT_OPTIONS``.

    Parameters
    ----------
    records : iterable of BookRecord
        Books to sort. Not modified.
    option : str
        ``"status"``: Lendo, then Não Lido, then Lido.
        ``"rating"``: highest rating first, unrated counted as 0.
        ``"title"``: alphabetical.
        ``"favorite"``: favourites first.
        Every option falls back to alphabetical title order.

    Raises
    ------
    ValidationError
        If *option* is unknown.
    """
    if option == SORT_BY_STATUS:
        key = lambda b: (STATUS_PRIORITY.get(b.status, len(STATUS_PRIORITY) + 1),
                         title_sort_key(b.title))
    elif option == SORT_BY_RATING:
        key = lambda b: (-(b.rating or 0), title_sort_key(b.title))
    elif option == SORT_BY_TITLE:
        key = lambda b: title_sort_key(b.title)
    elif option == SORT_BY_FAVORITE:
        key = lambda b: (0 if b.favorite else 1, title_sort_key(b.title))
    else:
        raise ValidationError(
            f"Unknown sort option {option!r}; expected one of: {', '.join(SORT_OPTIONS)}"
        )
    return sorted(records, key=key)


@dataclass
class CollectionStats:
    """Summary figures for a collection.

    Attributes
    ----------
    total : int
        Number of books.
    by_status : dict of str to int
        Book count per reading status, every status present.
    favorites : int
        Number of favourites.
    average_rating : float or None
        Mean rating of rated books, ``None`` when nothing is rated.
    """

    total: int = 0
    by_status: dict[str, int] = field(default_factory=dict)
    favorites: int = 0
    average_rating: Optional[float] = None


def collection_stats(records: Iterable[BookRecord]) -> CollectionStats:
    """Count books per status and compute the average rating."""
    records = list(records)
    by_status = {status: 0 for status in STATUSES}
    for book in records:
        by_status[book.status] = by_status.get(book.status, 0) + 1
    ratings = [book.rating for book in records if book.rating is not None]
    return CollectionStats(
        total=len(records),
        by_status=by_status,
        favorites=sum(1 for book in records if book.favorite),
        average_rating=round(sum(ratings) / len(ratings), 2) if ratings else None,
    )


class CollectionManager:
    """Orchestrates search, adoption, and maintenance of a user's books.

    Parameters
    ----------
    store : SQLiteBookStore
        Persistence adapter.
    catalog : CatalogSearch
        Catalogue search used by ``search``.
    """

    def __init__(self, store, catalog):
        self.store = store
        self.catalog = catalog
        self.books: list[BookRecord] = []

    async def search(self, title: str) -> list[BookApiResult]:
        """Search the catalogues for candidates to add.

        Raises
        ------
        ValidationError
            If *title* is blank.
        SearchFailedError
            If no catalogue could be reached.
        """
        if not (title or "").strip():
            raise ValidationError("Enter a book title to search")
        return await self.catalog.search_by_title(title)

    async def add(
        self,
        selected: BookApiResult,
        status: str,
        rating: Optional[float],
        notes: Optional[str],
        user_id: str,
        language: Optional[str] = None,
    ) -> str:
        """Add a selected search result to the user's collection.

        Returns
        -------
        str
            The id assigned by the store.

        Raises
        ------
        ValidationError
            If there is no user or status/rating are invalid.
        PersistenceError
            If the record cannot be stored.
        """
        record = BookRecord.from_api_result(
            selected,
            user_id=user_id,
            status=status,
            rating=rating,
            notes=notes,
            language=language,
        )
        book_id = await self.store.create(record)
        self.books.append(with_id(record, book_id))
        logger.info("Added %r to collection of %s", record.title, user_id)
        return book_id

    async def list_books(self, user_id: str) -> list[BookRecord]:
        """Load every book owned by *user_id* and make it the local list.

        Raises
        ------
        PersistenceError
            If the books cannot be loaded; the local list is kept.
        """
        books = await self.store.list_by_user(user_id)
        self.books = list(books)
        return list(self.books)

    def filter(self, records: Iterable[BookRecord], status_filter: str) -> list[BookRecord]:
        """Apply ``filter_books``."""
        return filter_books(records, status_filter)

    def sort(self, records: Iterable[BookRecord], option: str) -> list[BookRecord]:
        """Apply ``sort_books``."""
        return sort_books(records, option)

    async def toggle_favorite(self, record: BookRecord) -> BookRecord:
        """Flip the favourite flag of *record* and store it."""
        if not record.id:
            raise ValidationError("Book has not been saved yet")
        return await self.update_fields(record.id, {"favorite": not record.favorite})

    async def update_fields(self, book_id: str, changes: dict[str, Any]) -> BookRecord:
        """Write a partial update and apply it to the local list.

        Keys whose value is ``None`` are dropped before writing, so only
        the supplied fields change. Only books in the loaded list can be
        updated, and the write is scoped to their owner.

        Returns
        -------
        BookRecord
            The updated local record.

        Raises
        ------
        ValidationError
            If *changes* touches an immutable or unknown field, or carries
            a value that is invalid for its field.
        PersistenceError
            If the book is not in the loaded list or the write fails; the
            local list is left unchanged.
        """
        changes = validate_changes(strip_unset(changes))
        local = self._require_local(book_id)
        if not changes:
            return local

        await self.store.update(book_id, local.user_id, changes)

        updated = replace(local, **changes)
        self.books = [updated if book.id == book_id else book for book in self.books]
        return updated

    async def remove(self, book_id: str) -> None:
        """Delete a book, irreversibly.

        Raises
        ------
        PersistenceError
            If the book is not in the loaded list or cannot be deleted; the
            local list is left unchanged.
        """
        local = self._require_local(book_id)
        await self.store.delete(book_id, local.user_id)
        self.books = [book for book in self.books if book.id != book_id]
        logger.info("Removed book %s", book_id)

    def _require_local(self, book_id: str) -> BookRecord:
        book = next((book for book in self.books if book.id == book_id), None)
        if book is None:
            raise PersistenceError(f"No book found with id: {book_id}")
        return book
