"""Book data models for Leituras.

Defines ``BookApiResult``, the transient search candidate produced by the
catalogue search, and ``BookRecord``, a user's persisted entry for a book,
together with the reading status values and the validation helpers shared
by the persistence layer and the collection manager.
"""

from dataclasses import dataclass, field
from typing import Any, Optional

from .errors import ValidationError

# Reading status values, as stored
READ = "Lido"
UNREAD = "Não Lido"
READING = "Lendo"

STATUSES = (READ, UNREAD, READING)

# Filter sentinel meaning "every status"
ALL_STATUSES = "Todos"

DEFAULT_TITLE = "Unknown Title"
DEFAULT_AUTHOR = "Unknown Author"
PLACEHOLDER_COVER = "/placeholder.svg"

MAX_RATING = 5.0


@dataclass
class BookApiResult:
    """A search candidate returned by the catalogue search.

    Values may be ``None`` while the search is still merging sources; every
    result handed to callers has non-empty ``title``, ``author`` and
    ``cover_url``.

    Attributes
    ----------
    title : str or None
        Title of the work.
    author : str or None
        First listed author.
    cover_url : str or None
        URL of a cover image, or the placeholder sentinel.
    genres : list of str
        Categories or subjects, without duplicates.
    page_count : int or None
        Number of pages.
    synopsis : str or None
        Description of the book.
    """

    title: Optional[str] = None
    author: Optional[str] = None
    cover_url: Optional[str] = None
    genres: list[str] = field(default_factory=list)
    page_count: Optional[int] = None
    synopsis: Optional[str] = None

    def has_required_fields(self) -> bool:
        """Return ``True`` if title, author and cover URL are all non-empty."""
        return bool(self.title and self.author and self.cover_url)


@dataclass
class BookRecord:
    """A book in a user's collection.

    Attributes
    ----------
    user_id : str
        Identifier of the owning user. Immutable once stored.
    title : str
        Title of the book.
    author : str
        Author name.
    cover_url : str
        Cover image URL, or ``PLACEHOLDER_COVER``.
    status : str
        One of ``STATUSES``.
    id : str or None
        Store-assigned identifier, ``None`` until the record is created.
    genres : list of str
        Genres in display order.
    page_count : int or None
        Number of pages.
    synopsis : str or None
        Book description.
    rating : float or None
        Rating between 0 and 5 in half-point steps.
    notes : str or None
        Free-form personal notes.
    language : str or None
        Language the book is read in.
    favorite : bool
        Whether the book is marked as a favourite.
    """

    user_id: str
    title: str
    author: str
    cover_url: str
    status: str = UNREAD
    id: Optional[str] = None
    genres: list[str] = field(default_factory=list)
    page_count: Optional[int] = None
    synopsis: Optional[str] = None
    rating: Optional[float] = None
    notes: Optional[str] = None
    language: Optional[str] = None
    favorite: bool = False

    @classmethod
    def from_api_result(
        cls,
        result: BookApiResult,
        user_id: str,
        status: str = UNREAD,
        rating: Optional[float] = None,
        notes: Optional[str] = None,
        language: Optional[str] = None,
    ) -> "BookRecord":
        """Build an unsaved record from a selected search candidate.

        Parameters
        ----------
        result : BookApiResult
            The candidate chosen by the user.
        user_id : str
            Owner of the new record.
        status : str, optional
            Initial reading status, by default ``UNREAD``.
        rating : float, optional
            Initial rating.
        notes : str, optional
            Initial notes.
        language : str, optional
            Reading language.

        Returns
        -------
        BookRecord
            A record with ``id`` set to ``None``.

        Raises
        ------
        ValidationError
            If *user_id* is blank, or *status* or *rating* are invalid.
        """
        if not user_id:
            raise ValidationError("A signed-in user is required to add books")
        return cls(
            user_id=user_id,
            title=result.title or DEFAULT_TITLE,
            author=result.author or DEFAULT_AUTHOR,
            cover_url=result.cover_url or PLACEHOLDER_COVER,
            status=validate_status(status),
            genres=list(result.genres),
            page_count=result.page_count,
            synopsis=result.synopsis,
            rating=validate_rating(rating),
            notes=notes,
            language=language,
        )

    def to_document(self) -> dict[str, Any]:
        """Return the stored representation of this record.

        Optional values that are unset are omitted rather than stored as
        ``None``; ``id`` is assigned by the store and is not part of the
        document.

        Returns
        -------
        dict
            Field name to value mapping.
        """
        doc = {
            "user_id": self.user_id,
            "title": self.title,
            "author": self.author,
            "cover_url": self.cover_url,
            "genres": list(self.genres),
            "page_count": self.page_count,
            "synopsis": self.synopsis,
            "status": self.status,
            "rating": self.rating,
            "notes": self.notes,
            "language": self.language,
            "favorite": self.favorite,
        }
        return strip_unset(doc)

    def display_title(self, max_length: int = 50) -> str:
        """Return title truncated with ellipsis if needed."""
        if len(self.title) <= max_length:
            return self.title
        return self.title[: max_length - 3] + "..."

    def display_author(self, max_length: int = 30) -> str:
        """Return author truncated with ellipsis if needed."""
        if len(self.author) <= max_length:
            return self.author
        return self.author[: max_length - 3] + "..."


def validate_status(status: str) -> str:
    """Check that *status* is a known reading status.

    Raises
    ------
    ValidationError
        If *status* is not one of ``STATUSES``.
    """
    if status not in STATUSES:
        raise ValidationError(
            f"Invalid status {status!r}; expected one of: {', '.join(STATUSES)}"
        )
    return status


def validate_rating(rating: Optional[float]) -> Optional[float]:
    """Check that *rating* is between 0 and 5 in half-point steps.

    ``None`` means "not rated" and is returned unchanged.

    Raises
    ------
    ValidationError
        If the rating is out of range or not a multiple of 0.5.
    """
    if rating is None:
        return None
    try:
        value = float(rating)
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid rating: {rating!r}")
    if not 0 <= value <= MAX_RATING:
        raise ValidationError(f"Rating must be between 0 and {MAX_RATING:g}")
    if (value * 2) != int(value * 2):
        raise ValidationError("Rating must use half-point steps")
    return value


def strip_unset(values: dict[str, Any]) -> dict[str, Any]:
    """Return a copy of *values* without the keys whose value is ``None``.

    Partial updates only carry the fields that should change; dropping
    ``None`` keeps a write from clearing stored values by accident.
    """
    return {key: value for key, value in values.items() if value is not None}
