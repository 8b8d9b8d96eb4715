"""
Database module for the Benefit Coverage Engine.

Exports database connection utilities.
"""

from src.db.connection import (
    build_engine,
    build_session_maker,
    check_db_connection,
    close_db_connection,
    get_engine,
    get_session,
    get_session_maker,
    init_models,
)

__all__ = [
    "build_engine",
    "build_session_maker",
    "get_engine",
    "get_session_maker",
    "get_session",
    "init_models",
    "close_db_connection",
    "check_db_connection",
]
