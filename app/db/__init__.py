"""
Database package: engine, session factory and declarative base.

This makes `from app.db import get_db, Base, engine, etc.` work
and keeps imports consistent.
"""

from .session import (
    engine,
    AsyncSessionLocal,
    Base,
    UTCDateTime,
    get_db,
    init_db,
    close_db,
)

__all__ = [
    "engine",
    "AsyncSessionLocal",
    "Base",
    "UTCDateTime",
    "get_db",
    "init_db",
    "close_db",
]
