"""
pgrows: a PostgreSQL connection pool manager and SQL helpers returning rows as dictionaries.
"""

__version__ = "0.3.0"

from pgrows.config import AuthConfig, PoolConfig
from pgrows.errors import DatabaseErrorDetails, QueryError
from pgrows.pool import PoolManager
from pgrows.queries import Row, insert, query, remove, select, update

__all__ = [
    "AuthConfig",
    "PoolConfig",
    "DatabaseErrorDetails",
    "QueryError",
    "PoolManager",
    "Row",
    "query",
    "insert",
    "update",
    "remove",
    "select",
]
