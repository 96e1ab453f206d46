"""Exception hierarchy for Leituras.

Every error raised to a caller derives from ``LeiturasError`` so the CLI can
report failures uniformly and let the user retry the triggering action.
"""

from typing import Optional


class LeiturasError(Exception):
    """Base class for all application errors."""

    pass


class ValidationError(LeiturasError):
    """Raised when required user input is blank or out of range."""

    pass


class SourceUnavailableError(LeiturasError):
    """Raised when a single book metadata source cannot be used.

    Covers transport errors, timeouts, non-success status codes, and
    malformed response bodies.

    Parameters
    ----------
    source : str
        Human readable name of the source (``"Google Books"``,
        ``"Open Library"``).
    reason : str
        Short description of what went wrong.
    """

    def __init__(self, source: str, reason: str):
        self.source = source
        self.reason = reason
        super().__init__(f"{source} unavailable: {reason}")


NetworkError = SourceUnavailableError


class SearchFailedError(LeiturasError):
    """Raised when every primary catalogue query failed."""

    pass


class PersistenceError(LeiturasError):
    """Raised when a create, read, update, or delete operation fails."""

    pass


class AuthError(LeiturasError):
    """Raised when sign-in, sign-out, or a profile update fails.

    Parameters
    ----------
    message : str
        User-facing description of the failure.
    code : str, optional
        Identity provider error code, when one was reported.
    """

    def __init__(self, message: str, code: Optional[str] = None):
        self.code = code
        self.message = message
        super().__init__(message)
