"""Database helpers for the health record API."""

from __future__ import annotations

from .config import DatabaseSettings, get_database_settings
from .models import Base
from .session import SessionLocal, engine, enable_sqlite_foreign_keys, get_session

__all__ = [
    "Base",
    "DatabaseSettings",
    "get_database_settings",
    "SessionLocal",
    "engine",
    "enable_sqlite_foreign_keys",
    "get_session",
]
