"""Rich UI components for the Leituras CLI."""

from typing import Iterable, Optional

from rich.console import Console
from rich.panel import Panel
from rich.prompt import Prompt
from rich.table import Table

from .activity_log import ActivityEntry
from .auth import User
from .collection import CollectionStats
from .models import MAX_RATING, PLACEHOLDER_COVER, READ, READING, BookApiResult, BookRecord

console = Console()

DETAIL_MAX_WIDTH = 80

_STATUS_STYLES = {
    READ: "green",
    READING: "yellow",
}


def _detail_width() -> int:
    return min(console.width, DETAIL_MAX_WIDTH)


def print_success(message: str) -> None:
    """Print a success message with checkmark."""
    console.print(f"[green]✓[/green] {message}")


def print_error(message: str) -> None:
    """Print an error message."""
    console.print(f"[red]✗[/red] {message}")


def print_info(message: str) -> None:
    """Print an info message."""
    console.print(f"[dim]{message}[/dim]")


def create_spinner(message: str):
    """Create a spinner context for long operations."""
    return console.status(f"[dim]{message}[/dim]", spinner="dots")


def format_rating(rating: Optional[float]) -> str:
    """Render a rating as five stars, with a half star when needed.

    >>> format_rating(3.5)
    '★★★½☆'
    """
    if rating is None:
        return "☆" * int(MAX_RATING)
    full = int(rating)
    half = rating - full >= 0.5
    empty = int(MAX_RATING) - full - (1 if half else 0)
    return "★" * full + ("½" if half else "") + "☆" * empty


def format_status(status: str) -> str:
    """Return the status wrapped in its colour markup."""
    style = _STATUS_STYLES.get(status, "dim")
    return f"[{style}]{status}[/{style}]"


def display_search_results(results: list[BookApiResult]) -> None:
    """Display numbered search candidates."""
    if not results:
        print_info("No books found. Try another title.")
        return

    table = Table(show_header=True, header_style="dim", box=None, padding=(0, 2))
    table.add_column("#", style="dim", justify="right")
    table.add_column("Title", style="white", no_wrap=False, max_width=45)
    table.add_column("Author", style="dim", no_wrap=False, max_width=25)
    table.add_column("Pages", style="cyan", justify="right")
    table.add_column("Genres", style="dim", no_wrap=False, max_width=25)

    for index, result in enumerate(results, 1):
        table.add_row(
            str(index),
            result.title,
            result.author,
            str(result.page_count) if result.page_count else "-",
            ", ".join(result.genres[:3]),
        )
    console.print(table)


def display_book_table(books: Iterable[BookRecord], max_rows: int = 50) -> None:
    """Display books in a table format."""
    table = Table(show_header=True, header_style="dim", box=None, padding=(0, 2))
    table.add_column("Id", style="dim", no_wrap=True)
    table.add_column("Title", style="white", no_wrap=False, max_width=45)
    table.add_column("Author", style="dim", no_wrap=False, max_width=25)
    table.add_column("Status", no_wrap=True)
    table.add_column("Rating", style="yellow", no_wrap=True)
    table.add_column("", no_wrap=True)

    count = 0
    for book in books:
        table.add_row(
            (book.id or "")[:8],
            book.display_title(45),
            book.display_author(25),
            format_status(book.status),
            format_rating(book.rating),
            "[red]♥[/red]" if book.favorite else "",
        )
        count += 1
        if count >= max_rows:
            break

    console.print(table)

    if count == 0:
        print_info("No books found.")
    elif count == max_rows:
        print_info(f"Showing first {max_rows} books. Use --status or --query to filter.")


def display_book_info(book: BookRecord) -> None:
    """Display detailed book information."""
    lines = []

    def add_field(label: str, value: Optional[str]) -> None:
        if value:
            lines.append(f"[dim]{label}:[/dim] {value}")

    lines.append(f"[bold]{book.title}[/bold]")
    lines.append(f"[dim]by[/dim] {book.author}")
    lines.append("")

    add_field("Id", book.id)
    add_field("Status", format_status(book.status))
    add_field("Rating", format_rating(book.rating) if book.rating is not None else None)
    if book.page_count:
        add_field("Pages", str(book.page_count))
    add_field("Language", book.language)
    if book.cover_url != PLACEHOLDER_COVER:
        add_field("Cover", book.cover_url)
    if book.favorite:
        lines.append("[red]♥ Favourite[/red]")

    if book.genres:
        lines.append("")
        add_field("Genres", ", ".join(book.genres))

    if book.synopsis:
        lines.append("")
        lines.append("[dim]Synopsis:[/dim]")
        synopsis = book.synopsis[:500]
        if len(book.synopsis) > 500:
            synopsis += "..."
        lines.append(synopsis)

    if book.notes:
        lines.append("")
        lines.append("[dim]Notes:[/dim]")
        lines.append(book.notes)

    panel = Panel(
        "\n".join(lines),
        title="[dim]Book Details[/dim]",
        title_align="left",
        border_style="dim",
        width=_detail_width(),
        padding=(1, 2),
    )
    console.print(panel)


def display_stats(stats: CollectionStats) -> None:
    """Display collection statistics."""
    console.print(f"Collection: [bold]{stats.total}[/bold] books\n")

    console.print("[dim]By Status:[/dim]")
    for status, count in stats.by_status.items():
        console.print(f"  {status:<20} {count:>4}")
    console.print()

    console.print(f"[dim]Favourites:[/dim] {stats.favorites}")
    if stats.average_rating is not None:
        console.print(
            f"[dim]Average rating:[/dim] {stats.average_rating:g} "
            f"{format_rating(round(stats.average_rating * 2) / 2)}"
        )


def display_user(user: User) -> None:
    """Display the signed-in user."""
    console.print(f"Signed in as [bold]{user.display_name or user.email}[/bold]")
    print_info(user.email)
    if user.photo_url:
        print_info(f"Photo: {user.photo_url}")


def display_activity(entries: list[ActivityEntry]) -> None:
    """Display recent activity entries, newest first."""
    if not entries:
        print_info("No activity recorded yet.")
        return

    table = Table(show_header=True, header_style="dim", box=None, padding=(0, 2))
    table.add_column("When", style="dim", no_wrap=True)
    table.add_column("Action", style="cyan", no_wrap=True)
    table.add_column("Book", style="white", no_wrap=False, max_width=45)
    table.add_column("Details", style="dim", no_wrap=False, max_width=30)

    for entry in entries:
        details = ", ".join(f"{k}={v}" for k, v in entry.details.items())
        table.add_row(
            entry.timestamp[:19].replace("T", " "),
            entry.action,
            entry.title or "",
            details,
        )
    console.print(table)


def prompt_pick(count: int) -> Optional[int]:
    """Ask which search result to add; return its zero-based index."""
    while True:
        choice = Prompt.ask("[dim]Add which book? (q to cancel)[/dim]", default="1")
        if choice.lower() == "q":
            return None
        try:
            index = int(choice) - 1
            if 0 <= index < count:
                return index
        except ValueError:
            pass
        console.print(f"[dim]Enter a number between 1 and {count}[/dim]")
