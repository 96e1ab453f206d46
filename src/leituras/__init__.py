"""Leituras: a personal reading tracker."""

__version__ = "0.1.0"

from .collection import CollectionManager
from .errors import (
    AuthError,
    LeiturasError,
    PersistenceError,
    SearchFailedError,
    SourceUnavailableError,
    ValidationError,
)
from .models import BookApiResult, BookRecord
from .search import CatalogSearch

__all__ = [
    "__version__",
    "AuthError",
    "BookApiResult",
    "BookRecord",
    "CatalogSearch",
    "CollectionManager",
    "LeiturasError",
    "PersistenceError",
    "SearchFailedError",
    "SourceUnavailableError",
    "ValidationError",
]
