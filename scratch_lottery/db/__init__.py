"""Database module - async engine and session management."""

from scratch_lottery.db.engine import (
    async_session_factory,
    close_db,
    engine,
    get_db,
    get_session,
    init_db,
)

__all__ = [
    "engine",
    "async_session_factory",
    "init_db",
    "close_db",
    "get_session",
    "get_db",
]
