"""Database adapters package.

Provides the ``DatabaseClient`` Protocol and the async MySQL/MariaDB
implementation.

Usage:
    from db_sync.adapters import DatabaseClient, AsyncMySQLAdapter
"""

from db_sync.adapters.base import DatabaseClient
from db_sync.adapters.mysql import AsyncMySQLAdapter

__all__ = [
    "DatabaseClient",
    "AsyncMySQLAdapter",
]
