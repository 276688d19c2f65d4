"""SQLAlchemy implementation of the ``SchemaConnection`` protocol.

Provides ``SQLAlchemyConnection``, which wraps an ``Engine`` or an open
``Connection`` supplied by the caller.

Usage:
    from sqlalchemy import create_engine
    from table_guard.adapters.engine import SQLAlchemyConnection

    conn = SQLAlchemyConnection(create_engine("sqlite:///app.db"))
    conn.table_names()
    conn.execute("CREATE TABLE IF NOT EXISTS notes (id INTEGER PRIMARY KEY)")
"""

import logging
from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy import inspect, text
from sqlalchemy.engine import Connection, Engine

from table_guard.schema.models import DialectInfo, normalize_backend

logger = logging.getLogger(__name__)

# MySQL added fractional-second precision in 5.6.4, MariaDB in 5.3.
MYSQL_FRACTIONAL_SECONDS = (5, 6, 4)
MARIADB_FRACTIONAL_SECONDS = (5, 3)


class SQLAlchemyConnection:
    """Schema access through a SQLAlchemy ``Engine`` or ``Connection``.

    Every catalog query builds a fresh ``sqlalchemy.inspect()`` inspector, so
    nothing is cached between calls. Given an ``Engine``, each ``execute()``
    runs in its own transaction. Given a ``Connection``, statements run on
    it and committing is left to the caller.

    Args:
        bind: Engine or Connection.
        owns_bind: True when the bind was built for this wrapper (from a
            URL). Only an owned Engine is disposed by ``close()``.
    """

    def __init__(self, bind: Engine | Connection, owns_bind: bool = False) -> None:
        if not isinstance(bind, (Engine, Connection)):
            raise TypeError(
                f"Expected a SQLAlchemy Engine or Connection, got {type(bind).__name__}"
            )
        self._bind = bind
        self.owns_bind = owns_bind

    @property
    def bind(self) -> Engine | Connection:
        return self._bind

    @property
    def backend(self) -> str:
        return normalize_backend(self._bind.dialect.name)

    def table_names(self) -> list[str]:
        return inspect(self._bind).get_table_names()

    def table_exists(self, name: str) -> bool:
        return inspect(self._bind).has_table(name)

    def column_names(self, table: str) -> list[str]:
        return [column["name"] for column in inspect(self._bind).get_columns(table)]

    def execute(self, sql: str) -> None:
        if isinstance(self._bind, Engine):
            with self._bind.begin() as conn:
                conn.exec_driver_sql(sql)
            return

        self._bind.exec_driver_sql(sql)

    def close(self) -> None:
        """Dispose the engine's pool if this wrapper created it; otherwise a no-op."""
        if self.owns_bind and isinstance(self._bind, Engine):
            self._bind.dispose()

    @contextmanager
    def _connection(self) -> Iterator[Connection]:
        if isinstance(self._bind, Engine):
            with self._bind.connect() as conn:
                yield conn
        else:
            yield self._bind

    def dialect_info(self) -> DialectInfo:
        """Probe the backend for citext and fractional-second support.

        A failed probe falls back to the conservative choice (no citext,
        whole-second timestamps).
        """
        backend = self.backend
        if backend == "postgres":
            return DialectInfo(backend=backend, supports_citext=self._has_citext())
        if backend == "mysql":
            return DialectInfo(
                backend=backend,
                supports_fractional_seconds=self._has_fractional_seconds(),
            )
        return DialectInfo(backend=backend)

    def _has_citext(self) -> bool:
        try:
            with self._connection() as conn:
                row = conn.execute(
                    text("SELECT 1 FROM pg_available_extensions WHERE name = 'citext'")
                ).first()
        except Exception as e:
            logger.debug("citext probe failed, using VARCHAR for email columns: %s", e)
            return False
        return row is not None

    def _has_fractional_seconds(self) -> bool:
        try:
            with self._connection() as conn:
                version = conn.dialect.server_version_info or ()
                mariadb = bool(getattr(conn.dialect, "is_mariadb", False))
        except Exception as e:
            logger.debug("Server version probe failed, using whole-second timestamps: %s", e)
            return False
        minimum = MARIADB_FRACTIONAL_SECONDS if mariadb else MYSQL_FRACTIONAL_SECONDS
        return tuple(v for v in version if isinstance(v, int)) >= minimum
