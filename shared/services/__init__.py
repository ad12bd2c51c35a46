"""Shared services (minimal exports)."""

from cloud_tasks.db.session import close_db, get_db_session

__all__ = [
    "get_db_session",
    "close_db",
]
