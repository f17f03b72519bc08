"""
Database module for the sync run service.
"""

from syncrun.database.connection import (
    Base,
    DatabaseManager,
    db_manager,
    init_database,
    test_database_connection,
    close_database,
)

__all__ = [
    "Base",
    "DatabaseManager",
    "db_manager",
    "init_database",
    "test_database_connection",
    "close_database",
]
