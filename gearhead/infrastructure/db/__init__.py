"""
Database Infrastructure Package for Gearhead Assistant

Exports database utilities.
"""

from gearhead.infrastructure.db.database import (
    DatabaseManager,
    get_db_manager,
    get_session_context,
    init_db,
    close_db,
)


__all__ = [
    "DatabaseManager",
    "get_db_manager",
    "get_session_context",
    "init_db",
    "close_db",
]
