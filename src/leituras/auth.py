"""Identity provider adapter for Leituras.

``AuthService`` wraps an identity backend and exposes sign-in, sign-out,
profile updates and a subscription to current-user changes. Backend
failures carry the identity service's error codes; they are translated to
user-facing messages and raised as ``AuthError``.

``LocalIdentityProvider`` is the bundled backend. It identifies accounts by
e-mail and keeps the signed-in uid in the SQLite ``session`` table so that
separate command invocations share one session.
"""

import asyncio
import logging
import re
import sqlite3
import uuid
from dataclasses import dataclass, replace
from typing import Callable, Optional, Sequence

from . import database
from .errors import AuthError, ValidationError

logger = logging.getLogger(__name__)

DEFAULT_DISPLAY_NAME = "Leitor"

UNAUTHORIZED_DOMAIN = "auth/unauthorized-domain"
POPUP_CLOSED_BY_USER = "auth/popup-closed-by-user"
CANCELLED_POPUP_REQUEST = "auth/cancelled-popup-request"
POPUP_BLOCKED = "auth/popup-blocked"
INVALID_EMAIL = "auth/invalid-email"
INTERNAL_ERROR = "auth/internal-error"

AUTH_ERROR_MESSAGES = {
    UNAUTHORIZED_DOMAIN: "This domain is not authorised to sign in. Contact the administrator.",
    POPUP_CLOSED_BY_USER: "The sign-in window was closed before finishing. Try again.",
    CANCELLED_POPUP_REQUEST: "Another sign-in request is already in progress.",
    POPUP_BLOCKED: "The sign-in window was blocked. Allow pop-ups and try again.",
}

_GENERIC_MESSAGES = {
    "sign_in": "Could not sign in. Try again.",
    "sign_out": "Could not sign out. Try again.",
    "update_profile": "Could not update your profile. Try again.",
}

_EMAIL_PATTERN = re.compile(r"^[^@\s]+@([^@\s]+\.[^@\s]+)$")


def auth_error_message(code: Optional[str], operation: str) -> str:
    """Return the user-facing message for a provider error code.

    Parameters
    ----------
    code : str or None
        Provider error code, e.g. ``"auth/popup-blocked"``.
    operation : str
        ``"sign_in"``, ``"sign_out"`` or ``"update_profile"``; selects the
        generic message used for unknown codes.

    Returns
    -------
    str
        Message suitable for showing to the user.
    """
    if code in AUTH_ERROR_MESSAGES:
        return AUTH_ERROR_MESSAGES[code]
    return _GENERIC_MESSAGES.get(operation, "Authentication failed. Try again.")


class ProviderError(Exception):
    """Raised by identity backends, carrying the service's error code."""

    def __init__(self, code: str, detail: str = ""):
        self.code = code
        self.detail = detail
        super().__init__(f"{code}: {detail}" if detail else code)


@dataclass(frozen=True)
class User:
    """The signed-in user as reported by the identity backend."""

    uid: str
    email: str
    display_name: Optional[str] = None
    photo_url: Optional[str] = None


class LocalIdentityProvider:
    """Identity backend that keeps accounts and the session in SQLite.

    Parameters
    ----------
    conn : sqlite3.Connection
        An initialised database connection.
    allowed_domains : sequence of str, optional
        E-mail domains allowed to sign in. Empty allows every domain.
    """

    def __init__(self, conn: sqlite3.Connection, allowed_domains: Sequence[str] = ()):
        self.conn = conn
        self.allowed_domains = {d.lower() for d in allowed_domains}

    @staticmethod
    def uid_for(email: str) -> str:
        """Return the stable uid for an e-mail address."""
        return uuid.uuid5(uuid.NAMESPACE_URL, f"mailto:{email.lower()}").hex

    async def _run(self, func, *args):
        try:
            return await asyncio.to_thread(func, *args)
        except sqlite3.Error as e:
            raise ProviderError(INTERNAL_ERROR, str(e)) from e

    async def sign_in(self, email: str, display_name: Optional[str] = None) -> User:
        email = (email or "").strip()
        match = _EMAIL_PATTERN.match(email)
        if not match:
            raise ProviderError(INVALID_EMAIL, f"not an e-mail address: {email!r}")
        domain = match.group(1).lower()
        if self.allowed_domains and domain not in self.allowed_domains:
            raise ProviderError(UNAUTHORIZED_DOMAIN, domain)

        uid = self.uid_for(email)
        profile = await self._run(database.get_user_profile, self.conn, uid)
        await self._run(database.set_session_uid, self.conn, uid)
        if profile:
            return User(uid, profile["email"], profile["display_name"], profile["photo_url"])
        return User(uid, email, display_name)

    async def sign_out(self) -> None:
        await self._run(database.clear_session, self.conn)

    async def restore(self) -> Optional[User]:
        uid = await self._run(database.get_session_uid, self.conn)
        if not uid:
            return None
        profile = await self._run(database.get_user_profile, self.conn, uid)
        if not profile:
            return None
        return User(uid, profile["email"], profile["display_name"], profile["photo_url"])

    async def update_profile(
        self, user: User, display_name: str, photo_url: Optional[str]
    ) -> User:
        return replace(
            user,
            display_name=display_name,
            photo_url=photo_url if photo_url is not None else user.photo_url,
        )


class AuthService:
    """Current-user state with explicit change notifications.

    Parameters
    ----------
    provider : LocalIdentityProvider
        Identity backend.
    conn : sqlite3.Connection
        Database holding the ``users`` profile documents.
    """

    def __init__(self, provider, conn: sqlite3.Connection):
        self.provider = provider
        self.conn = conn
        self._current_user: Optional[User] = None
        self._listeners: list[Callable[[Optional[User]], None]] = []

    @property
    def current_user(self) -> Optional[User]:
        return self._current_user

    def subscribe(self, listener: Callable[[Optional[User]], None]) -> Callable[[], None]:
        """Register *listener* for current-user changes.

        The listener is called right away with the current user, then again
        after every sign-in, sign-out, profile update, or restore.

        Returns
        -------
        callable
            Function that removes the listener.
        """
        self._listeners.append(listener)
        listener(self._current_user)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _publish(self, user: Optional[User]) -> None:
        self._current_user = user
        for listener in list(self._listeners):
            listener(user)

    async def restore(self) -> Optional[User]:
        """Reload the persisted session and publish it."""
        try:
            user = await self.provider.restore()
        except ProviderError as e:
            raise AuthError(auth_error_message(e.code, "sign_in"), e.code) from e
        self._publish(user)
        return user

    async def sign_in(self, email: str, display_name: Optional[str] = None) -> User:
        """Sign in and make sure a profile document exists.

        Raises
        ------
        AuthError
            If the backend refuses the sign-in or the profile cannot be
            stored.
        """
        try:
            user = await self.provider.sign_in(email, display_name)
        except ProviderError as e:
            logger.warning("Sign-in failed: %s", e)
            raise AuthError(auth_error_message(e.code, "sign_in"), e.code) from e

        if not user.display_name:
            user = replace(user, display_name=display_name or DEFAULT_DISPLAY_NAME)
        try:
            created = await asyncio.to_thread(
                database.ensure_user_profile,
                self.conn,
                user.uid,
                user.email,
                user.display_name,
                user.photo_url,
            )
        except sqlite3.Error as e:
            raise AuthError(_GENERIC_MESSAGES["sign_in"], INTERNAL_ERROR) from e
        if created:
            logger.info("Created profile for %s", user.email)

        self._publish(user)
        return user

    async def sign_out(self) -> None:
        """Sign out the current user.

        Raises
        ------
        AuthError
            If the backend fails to end the session.
        """
        try:
            await self.provider.sign_out()
        except ProviderError as e:
            raise AuthError(auth_error_message(e.code, "sign_out"), e.code) from e
        self._publish(None)

    async def update_profile(self, display_name: str, photo_url: Optional[str] = None) -> User:
        """Change the display name and, optionally, the photo URL.

        Raises
        ------
        ValidationError
            If *display_name* is blank.
        AuthError
            If nobody is signed in or the update fails.
        """
        if self._current_user is None:
            raise AuthError("Sign in to update your profile.")
        display_name = (display_name or "").strip()
        if not display_name:
            raise ValidationError("Display name cannot be empty")

        try:
            user = await self.provider.update_profile(
                self._current_user, display_name, photo_url
            )
            await asyncio.to_thread(
                database.merge_user_profile,
                self.conn,
                user.uid,
                user.display_name,
                user.photo_url,
            )
        except ProviderError as e:
            raise AuthError(auth_error_message(e.code, "update_profile"), e.code) from e
        except sqlite3.Error as e:
            raise AuthError(_GENERIC_MESSAGES["update_profile"], INTERNAL_ERROR) from e

        self._publish(user)
        return user
