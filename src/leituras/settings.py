"""User configuration for Leituras.

Configuration lives in ``~/.leituras/leituras-settings.json``. The first run
writes the defaults there; to change a value, edit the file and run the next
command. Unknown keys are ignored and a file that cannot be parsed is
replaced by the defaults in memory (the file itself is left alone).
"""

import json
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any, Optional

_LEITURAS_DIR = Path.home() / ".leituras"
_DEFAULT_SETTINGS_PATH = _LEITURAS_DIR / "leituras-settings.json"


@dataclass
class Settings:
    """Values read from the settings file.

    Attributes
    ----------
    db_path : str
        SQLite database holding books, profiles and the session. Relative
        to ``~/.leituras/`` unless absolute; ``~`` is expanded.
    google_books_api_key : str
        Google Books API key. Empty uses the anonymous quota.
    language_restrict : str
        Language code for Google Books title searches. Empty searches every
        language.
    request_timeout : float
        Seconds to wait for each catalogue request.
    allowed_domains : list of str
        E-mail domains allowed to sign in. Empty allows any domain.
    """

    db_path: str = "data/leituras.db"
    google_books_api_key: str = ""
    language_restrict: str = "pt"
    request_timeout: float = 10.0
    allowed_domains: list[str] = field(default_factory=list)

    def resolve_db_path(self) -> Path:
        """Return ``db_path`` as an absolute path."""
        path = Path(self.db_path).expanduser()
        if not path.is_absolute():
            path = _LEITURAS_DIR / path
        return path.resolve()

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Settings":
        """Build settings from parsed JSON, keeping defaults for absent keys.

        Raises
        ------
        TypeError, ValueError
            If a value has the wrong shape.
        """
        if not isinstance(data, dict):
            raise TypeError(f"settings must be a JSON object, got {type(data).__name__}")
        known = {f.name for f in fields(cls)}
        values = {key: value for key, value in data.items() if key in known}
        if "request_timeout" in values:
            values["request_timeout"] = float(values["request_timeout"])
        if "allowed_domains" in values:
            values["allowed_domains"] = [str(d) for d in values["allowed_domains"]]
        return cls(**values)


def load_settings(path: Optional[Path] = None) -> Settings:
    """Read the settings file, writing the defaults on first run.

    Parameters
    ----------
    path : Path, optional
        Settings file, ``~/.leituras/leituras-settings.json`` by default.

    Returns
    -------
    Settings
        The configured values, or the defaults if the file is unreadable.
    """
    path = path or _DEFAULT_SETTINGS_PATH
    if not path.exists():
        defaults = Settings()
        save_settings(defaults, path)
        return defaults
    try:
        return Settings.from_dict(json.loads(path.read_text(encoding="utf-8")))
    except (json.JSONDecodeError, TypeError, ValueError):
        return Settings()


def save_settings(settings: Settings, path: Optional[Path] = None) -> None:
    """Write *settings* as indented JSON, creating the directory if needed."""
    path = path or _DEFAULT_SETTINGS_PATH
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(asdict(settings), indent=2) + "\n", encoding="utf-8")
