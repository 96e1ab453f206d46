"""Activity trail of the changes users make to their collections.

Adding, editing, favouriting or removing a book, signing in or out and
updating the profile each append one JSON object per line to
``~/.leituras/data/activity.log``. Writers take an exclusive ``flock`` and
readers a shared one, so separate command invocations never see half a line.
"""

import fcntl
import json
from contextlib import contextmanager
from dataclasses import asdict, dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Iterator, Optional

_LEITURAS_DIR = Path.home() / ".leituras"
_LOG_PATH = _LEITURAS_DIR / "data" / "activity.log"

ACTIONS = ("add", "edit", "favorite", "delete", "sign_in", "sign_out", "profile")


@dataclass
class ActivityEntry:
    """One line of the activity trail.

    Attributes
    ----------
    timestamp : str
        When the change happened, ISO 8601 with microseconds.
    action : str
        One of ``ACTIONS``.
    user_id : str or None
        Who made the change.
    book_id : str or None
        Affected book, for book actions.
    title : str or None
        Title of the affected book, kept so the trail reads well after a
        delete.
    details : dict
        Extra values recorded by the action, e.g. the changed fields.
    """

    timestamp: str
    action: str
    user_id: Optional[str] = None
    book_id: Optional[str] = None
    title: Optional[str] = None
    details: dict = field(default_factory=dict)

    def to_line(self) -> str:
        return json.dumps(asdict(self), ensure_ascii=False) + "\n"

    @classmethod
    def from_line(cls, line: str) -> Optional["ActivityEntry"]:
        """Parse a log line, returning ``None`` for blank or corrupt lines."""
        line = line.strip()
        if not line:
            return None
        try:
            return cls(**json.loads(line))
        except (json.JSONDecodeError, TypeError):
            return None


def get_log_path() -> Path:
    """Return the location of the activity trail."""
    return _LOG_PATH


@contextmanager
def _locked(path: Path, mode: str) -> Iterator:
    lock = fcntl.LOCK_SH if mode == "r" else fcntl.LOCK_EX
    with open(path, mode, encoding="utf-8") as f:
        fcntl.flock(f.fileno(), lock)
        try:
            yield f
        finally:
            fcntl.flock(f.fileno(), fcntl.LOCK_UN)


def log_activity(
    action: str,
    user_id: Optional[str] = None,
    book_id: Optional[str] = None,
    title: Optional[str] = None,
    **details,
) -> None:
    """Record a change in the activity trail.

    Parameters
    ----------
    action : str
        What happened, one of ``ACTIONS``.
    user_id : str, optional
        Who made the change.
    book_id : str, optional
        Affected book.
    title : str, optional
        Title of the affected book.
    **details
        Extra JSON-serialisable values to keep with the entry.

    Raises
    ------
    ValueError
        If *action* is not one of ``ACTIONS``.
    """
    if action not in ACTIONS:
        raise ValueError(f"Unknown activity action: {action!r}")

    entry = ActivityEntry(
        timestamp=datetime.now().isoformat(),
        action=action,
        user_id=user_id,
        book_id=book_id,
        title=title,
        details=details,
    )
    path = get_log_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    with _locked(path, "a") as f:
        f.write(entry.to_line())


def read_recent_activity(
    limit: int = 100, user_id: Optional[str] = None
) -> list[ActivityEntry]:
    """Return the newest entries of the activity trail.

    Parameters
    ----------
    limit : int
        Maximum number of entries.
    user_id : str, optional
        Restrict the trail to one user.

    Returns
    -------
    list of ActivityEntry
        Newest first. Corrupt lines are skipped.
    """
    path = get_log_path()
    if not path.exists():
        return []

    with _locked(path, "r") as f:
        entries = [entry for entry in map(ActivityEntry.from_line, f) if entry]

    if user_id is not None:
        entries = [entry for entry in entries if entry.user_id == user_id]
    entries.sort(key=lambda entry: entry.timestamp, reverse=True)
    return entries[:limit]
