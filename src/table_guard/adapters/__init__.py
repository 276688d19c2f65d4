"""Database connection adapters.

Provides the ``SchemaConnection`` Protocol and ``SQLAlchemyConnection``,
its implementation over a SQLAlchemy ``Engine`` or ``Connection``.

Usage:
    from table_guard.adapters import SchemaConnection, SQLAlchemyConnection
"""

from table_guard.adapters.base import SchemaConnection
from table_guard.adapters.engine import SQLAlchemyConnection

__all__ = [
    "SchemaConnection",
    "SQLAlchemyConnection",
]
