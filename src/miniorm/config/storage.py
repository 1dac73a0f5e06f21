"""Where a context connects when it is opened without an explicit target.

``DATABASE_URI`` wins when it is set. Otherwise contexts use a SQLite file
named ``miniorm.db`` inside the data directory, which is ``MINIORM_DATA_DIR``
or the platform's per-user data location.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Final

from sqlalchemy.engine import URL, make_url
from sqlalchemy.exc import ArgumentError

from .errors import ConfigurationError, MissingConfigurationError

APP_DIR_NAME: Final[str] = "miniorm"
DEFAULT_DB_FILENAME: Final[str] = "miniorm.db"
DATABASE_URI_VAR: Final[str] = "DATABASE_URI"
DATA_DIR_VAR: Final[str] = "MINIORM_DATA_DIR"


def data_dir() -> Path:
    """Return the directory holding the fallback SQLite database."""

    configured = os.getenv(DATA_DIR_VAR)
    if configured:
        return Path(configured).expanduser().resolve()
    if os.name == "nt":
        base = os.getenv("LOCALAPPDATA")
        root = Path(base) if base else Path.home() / "AppData" / "Local"
    else:
        base = os.getenv("XDG_DATA_HOME")
        root = Path(base) if base else Path.home() / ".local" / "share"
    return (root / APP_DIR_NAME).expanduser().resolve()


@dataclass(frozen=True, slots=True)
class DatabaseConfig:
    """Connection target handed to a context when none is given explicitly."""

    url: URL

    @property
    def uri(self) -> str:
        return self.url.render_as_string(hide_password=False)

    @classmethod
    def from_uri(cls, uri: str) -> DatabaseConfig:
        if not uri.strip():
            raise MissingConfigurationError(DATABASE_URI_VAR)
        try:
            url = make_url(uri)
        except ArgumentError as exc:
            raise ConfigurationError(f"Invalid database URI: {uri!r}") from exc
        return cls(url=url)

    @classmethod
    def sqlite_file(cls, directory: Path, filename: str = DEFAULT_DB_FILENAME) -> DatabaseConfig:
        """Point at ``directory/filename``, creating the directory if needed."""

        directory.mkdir(parents=True, exist_ok=True)
        path = directory / filename
        return cls(url=URL.create("sqlite+pysqlite", database=str(path)))


def get_database_config() -> DatabaseConfig:
    """Resolve the database from ``DATABASE_URI`` or fall back to a SQLite file."""

    env_uri = os.getenv(DATABASE_URI_VAR)
    if env_uri is not None:
        return DatabaseConfig.from_uri(env_uri)
    return DatabaseConfig.sqlite_file(data_dir())
