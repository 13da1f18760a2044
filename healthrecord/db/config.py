"""Database settings resolved from the environment."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Dict, Optional

from platformdirs import user_data_dir
from sqlalchemy.engine import make_url

from healthrecord import APP_NAME

DB_FILENAME = "healthrecord.db"


@dataclass(frozen=True)
class DatabaseSettings:
    """Connection URL plus the engine tuning knobs read at startup."""

    url: str
    echo: bool = False
    pool_size: Optional[int] = None
    max_overflow: Optional[int] = None
    pool_timeout: Optional[int] = None

    @classmethod
    def from_env(cls) -> "DatabaseSettings":
        return cls(
            url=_resolve_url(),
            echo=os.getenv("DB_ECHO", "").lower() in {"1", "true", "yes"},
            pool_size=_int_env("DB_POOL_SIZE"),
            max_overflow=_int_env("DB_MAX_OVERFLOW"),
            pool_timeout=_int_env("DB_POOL_TIMEOUT"),
        )

    @property
    def backend(self) -> str:
        return make_url(self.url).get_backend_name()

    @property
    def is_sqlite(self) -> bool:
        return self.backend == "sqlite"

    @property
    def is_postgres(self) -> bool:
        return self.backend in {"postgresql", "postgres"}

    def engine_options(self) -> Dict[str, object]:
        """Keyword arguments for :func:`sqlalchemy.create_engine`."""

        pool = {
            "pool_size": self.pool_size,
            "max_overflow": self.max_overflow,
            "pool_timeout": self.pool_timeout,
        }
        options: Dict[str, object] = {"echo": self.echo}
        options.update({key: value for key, value in pool.items() if value is not None})
        if self.is_sqlite:
            # request handlers may run on a different thread than the one that opened the connection
            options["connect_args"] = {"check_same_thread": False}
        elif self.is_postgres:
            options["connect_args"] = {"options": "-c timezone=UTC"}
        return options


def _int_env(name: str) -> Optional[int]:
    raw = os.getenv(name, "").strip()
    if not raw:
        return None
    try:
        return int(raw)
    except ValueError as exc:
        raise ValueError(f"Environment variable {name} must be an integer; got {raw!r}") from exc


def _sqlite_file(override: Optional[str]) -> Path:
    """Locate the sqlite file, creating its directory.

    Without an override the file lives in the per-user data directory; an
    override naming a directory gets the default filename appended.
    """

    if override:
        path = Path(override).expanduser()
        if path.is_dir():
            path = path / DB_FILENAME
    else:
        path = Path(user_data_dir(APP_NAME, APP_NAME)) / DB_FILENAME
    path.parent.mkdir(parents=True, exist_ok=True)
    return path


def _resolve_url() -> str:
    url = os.getenv("HEALTHRECORD_DATABASE_URL") or os.getenv("DATABASE_URL")
    if url:
        return url
    return f"sqlite:///{_sqlite_file(os.getenv('HEALTHRECORD_DB_PATH'))}"


@lru_cache(maxsize=1)
def get_database_settings() -> DatabaseSettings:
    """Return the process wide settings; call ``cache_clear`` after changing the environment."""

    return DatabaseSettings.from_env()
