"""CLI entry point for Leituras."""

import asyncio
import logging
from typing import Optional

import click
import httpx
from rich.logging import RichHandler

from . import __version__, ui
from .activity_log import log_activity, read_recent_activity
from .auth import AuthService, LocalIdentityProvider, User
from .collection import (
    SORT_BY_STATUS,
    SORT_OPTIONS,
    CollectionManager,
    collection_stats,
    search_collection,
)
from .database import get_connection, init_db
from .errors import LeiturasError, PersistenceError
from .googlebooks import GoogleBooksClient
from .models import ALL_STATUSES, STATUSES, UNREAD, BookApiResult, BookRecord
from .openlibrary import OpenLibraryClient
from .search import CatalogSearch
from .settings import Settings, load_settings
from .store import SQLiteBookStore

STATUS_CHOICE = click.Choice(list(STATUSES))


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=ui.console, show_path=False)],
        force=True,
    )
    # httpx logs request URLs, which carry the Google Books API key
    logging.getLogger("httpx").setLevel(logging.WARNING)


def _run(coro):
    """Run a command coroutine and return its result.

    Application errors are reported to the user and end the command.
    """
    try:
        return asyncio.run(coro)
    except LeiturasError as e:
        ui.print_error(str(e))
        raise SystemExit(1)


class Session:
    """Everything a command needs: settings, database, identity and books."""

    def __init__(self, settings: Settings):
        self.settings = settings
        self.conn = get_connection(settings.resolve_db_path())
        init_db(self.conn)
        self.auth = AuthService(
            LocalIdentityProvider(self.conn, settings.allowed_domains), self.conn
        )
        self.store = SQLiteBookStore(self.conn)

    def collection(self, http: Optional[httpx.AsyncClient] = None) -> CollectionManager:
        """Build a collection manager, with catalogue clients when *http* is given."""
        catalog = None
        if http is not None:
            google = GoogleBooksClient(
                api_key=self.settings.google_books_api_key or None,
                language=self.settings.language_restrict or None,
                timeout=self.settings.request_timeout,
                client=http,
            )
            openlibrary = OpenLibraryClient(
                timeout=self.settings.request_timeout, client=http
            )
            catalog = CatalogSearch(google, openlibrary)
        return CollectionManager(self.store, catalog)

    async def require_user(self) -> User:
        user = await self.auth.restore()
        if user is None:
            raise click.ClickException("Not signed in. Run 'leituras login EMAIL' first.")
        return user

    def close(self) -> None:
        self.conn.close()


def _resolve_book(manager: CollectionManager, book_id: str) -> BookRecord:
    """Find a loaded book by full id or unique id prefix."""
    matches = [b for b in manager.books if b.id == book_id]
    if not matches:
        matches = [b for b in manager.books if b.id and b.id.startswith(book_id)]
    if len(matches) > 1:
        raise click.ClickException(f"Id prefix {book_id!r} matches {len(matches)} books")
    if not matches:
        raise PersistenceError(f"No book found with id: {book_id}")
    return matches[0]


@click.group()
@click.version_option(__version__, prog_name="leituras")
@click.option("--verbose", "-v", is_flag=True, help="Show debug logging")
@click.pass_context
def main(ctx: click.Context, verbose: bool) -> None:
    """Leituras - keep track of the books you read."""
    _configure_logging(verbose)
    session = Session(load_settings())
    ctx.obj = session
    ctx.call_on_close(session.close)


@main.command("login")
@click.argument("email")
@click.option("--name", help="Display name for a new profile")
@click.pass_obj
def login_cmd(session: Session, email: str, name: Optional[str]) -> None:
    """Sign in with an e-mail address."""

    async def run() -> None:
        user = await session.auth.sign_in(email, name)
        log_activity("sign_in", user_id=user.uid)
        ui.print_success(f"Welcome, {user.display_name}!")

    _run(run())


@main.command("logout")
@click.pass_obj
def logout_cmd(session: Session) -> None:
    """Sign out."""

    async def run() -> None:
        user = await session.auth.restore()
        await session.auth.sign_out()
        log_activity("sign_out", user_id=user.uid if user else None)
        ui.print_success("Signed out.")

    _run(run())


@main.command("whoami")
@click.pass_obj
def whoami_cmd(session: Session) -> None:
    """Show the signed-in user."""

    async def run() -> None:
        ui.display_user(await session.require_user())

    _run(run())


@main.command("profile")
@click.option("--name", required=True, help="New display name")
@click.option("--photo-url", help="URL of a profile photo")
@click.pass_obj
def profile_cmd(session: Session, name: str, photo_url: Optional[str]) -> None:
    """Update the display name and photo."""

    async def run() -> None:
        await session.require_user()
        user = await session.auth.update_profile(name, photo_url)
        log_activity("profile", user_id=user.uid, display_name=user.display_name)
        ui.print_success("Profile updated.")

    _run(run())


@main.command("search")
@click.argument("title")
@click.pass_obj
def search_cmd(session: Session, title: str) -> None:
    """Search Google Books and Open Library by title."""

    async def run() -> None:
        async with httpx.AsyncClient(timeout=session.settings.request_timeout) as http:
            manager = session.collection(http)
            with ui.create_spinner("Searching..."):
                results = await manager.search(title)
        ui.display_search_results(results)

    _run(run())


@main.command("add")
@click.argument("title")
@click.option("--pick", type=int, help="Number of the search result to add")
@click.option("--status", type=STATUS_CHOICE, default=UNREAD, show_default=True)
@click.option("--rating", type=float, help="Rating from 0 to 5, in half steps")
@click.option("--notes", help="Personal notes")
@click.option("--language", help="Language you read the book in")
@click.pass_obj
def add_cmd(
    session: Session,
    title: str,
    pick: Optional[int],
    status: str,
    rating: Optional[float],
    notes: Optional[str],
    language: Optional[str],
) -> None:
    """Search for TITLE and add one of the results to your collection."""

    async def find() -> tuple[User, list[BookApiResult]]:
        user = await session.require_user()
        async with httpx.AsyncClient(timeout=session.settings.request_timeout) as http:
            with ui.create_spinner("Searching..."):
                results = await session.collection(http).search(title)
        return user, results

    user, results = _run(find())
    if not results:
        ui.print_info("No books found. Try another title.")
        return

    if pick is None:
        ui.display_search_results(results)
        index = ui.prompt_pick(len(results))
        if index is None:
            ui.print_info("Cancelled.")
            return
    else:
        index = pick - 1
        if not 0 <= index < len(results):
            raise click.BadParameter(
                f"must be between 1 and {len(results)}", param_hint="--pick"
            )
    selected = results[index]

    async def save() -> str:
        manager = session.collection()
        return await manager.add(selected, status, rating, notes, user.uid, language)

    book_id = _run(save())
    log_activity("add", user_id=user.uid, book_id=book_id, title=selected.title)
    ui.print_success(f"Added: {selected.title}")


@main.command("list")
@click.option(
    "--status",
    "status_filter",
    type=click.Choice([ALL_STATUSES, *STATUSES]),
    default=ALL_STATUSES,
    show_default=True,
)
@click.option("--sort", "sort_option", type=click.Choice(list(SORT_OPTIONS)),
              default=SORT_BY_STATUS, show_default=True)
@click.option("--query", "-q", help="Only books whose title or author contains this")
@click.pass_obj
def list_cmd(
    session: Session, status_filter: str, sort_option: str, query: Optional[str]
) -> None:
    """List the books in your collection."""

    async def run() -> None:
        user = await session.require_user()
        manager = session.collection()
        books = await manager.list_books(user.uid)
        books = search_collection(books, query or "")
        books = manager.filter(books, status_filter)
        ui.display_book_table(manager.sort(books, sort_option))

    _run(run())


@main.command("info")
@click.argument("book_id")
@click.pass_obj
def info_cmd(session: Session, book_id: str) -> None:
    """Show detailed info for a book."""

    async def run() -> None:
        user = await session.require_user()
        manager = session.collection()
        await manager.list_books(user.uid)
        ui.display_book_info(_resolve_book(manager, book_id))

    _run(run())


@main.command("update")
@click.argument("book_id")
@click.option("--status", type=STATUS_CHOICE)
@click.option("--rating", type=float, help="Rating from 0 to 5, in half steps")
@click.option("--notes", help="Personal notes")
@click.option("--language", help="Language you read the book in")
@click.pass_obj
def update_cmd(
    session: Session,
    book_id: str,
    status: Optional[str],
    rating: Optional[float],
    notes: Optional[str],
    language: Optional[str],
) -> None:
    """Change the status, rating, notes or language of a book."""

    async def run() -> None:
        user = await session.require_user()
        manager = session.collection()
        await manager.list_books(user.uid)
        book = _resolve_book(manager, book_id)
        changes = {"status": status, "rating": rating, "notes": notes, "language": language}
        updated = await manager.update_fields(book.id, changes)
        if updated is book:
            ui.print_info("Nothing to change.")
            return
        log_activity(
            "edit",
            user_id=user.uid,
            book_id=book.id,
            title=book.title,
            fields=sorted(k for k, v in changes.items() if v is not None),
        )
        ui.print_success(f"Updated: {book.title}")

    _run(run())


@main.command("favorite")
@click.argument("book_id")
@click.pass_obj
def favorite_cmd(session: Session, book_id: str) -> None:
    """Mark or unmark a book as a favourite."""

    async def run() -> None:
        user = await session.require_user()
        manager = session.collection()
        await manager.list_books(user.uid)
        updated = await manager.toggle_favorite(_resolve_book(manager, book_id))
        log_activity(
            "favorite",
            user_id=user.uid,
            book_id=updated.id,
            title=updated.title,
            favorite=updated.favorite,
        )
        if updated.favorite:
            ui.print_success(f"Favourite: {updated.title}")
        else:
            ui.print_success(f"No longer a favourite: {updated.title}")

    _run(run())


@main.command("remove")
@click.argument("book_id")
@click.option("--yes", is_flag=True, help="Do not ask for confirmation")
@click.pass_obj
def remove_cmd(session: Session, book_id: str, yes: bool) -> None:
    """Remove a book from your collection. This cannot be undone."""

    async def run() -> None:
        user = await session.require_user()
        manager = session.collection()
        await manager.list_books(user.uid)
        book = _resolve_book(manager, book_id)
        if not yes and not click.confirm(f"Remove {book.title!r}?"):
            ui.print_info("Cancelled.")
            return
        await manager.remove(book.id)
        log_activity("delete", user_id=user.uid, book_id=book.id, title=book.title)
        ui.print_success(f"Removed: {book.title}")

    _run(run())


@main.command("stats")
@click.pass_obj
def stats_cmd(session: Session) -> None:
    """Show collection statistics."""

    async def run() -> None:
        user = await session.require_user()
        books = await session.collection().list_books(user.uid)
        ui.display_stats(collection_stats(books))

    _run(run())


@main.command("activity")
@click.option("--limit", "-n", default=20, show_default=True, help="Entries to show")
@click.pass_obj
def activity_cmd(session: Session, limit: int) -> None:
    """Show your recent activity."""

    async def run() -> None:
        user = await session.require_user()
        ui.display_activity(read_recent_activity(limit, user_id=user.uid))

    _run(run())


if __name__ == "__main__":
    main()
