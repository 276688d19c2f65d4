"""Tests for the connection factory and the SQLAlchemy adapter.

Verifies:
- URL scheme normalization
- get_connection() accepts URLs, engines, connections and protocol objects
- SQLAlchemyConnection catalog queries, execution and dialect probing
"""

from unittest.mock import patch

import pytest
from sqlalchemy import create_engine

from table_guard.adapters.base import SchemaConnection
from table_guard.adapters.engine import SQLAlchemyConnection
from table_guard.errors import ConfigurationError
from table_guard.factory import create_engine_for_url, get_connection, normalize_database_url
from table_guard.schema.models import DialectInfo, normalize_backend


class StaticConnection:
    """Minimal SchemaConnection reporting a fixed catalog."""

    backend = "sqlite"

    def table_names(self) -> list[str]:
        return ["accounts"]

    def table_exists(self, name: str) -> bool:
        return name == "accounts"

    def column_names(self, table: str) -> list[str]:
        return ["id"]

    def execute(self, sql: str) -> None:
        pass

    def dialect_info(self) -> DialectInfo:
        return DialectInfo(backend=self.backend)


# ============================================================================
# URLs
# ============================================================================


class TestNormalizeDatabaseUrl:
    """Verify scheme aliases."""

    @pytest.mark.parametrize(
        "url,expected",
        [
            ("postgres://u:p@h/db", "postgresql+psycopg://u:p@h/db"),
            ("postgresql://u:p@h/db", "postgresql+psycopg://u:p@h/db"),
            ("postgresql+asyncpg://u:p@h/db", "postgresql+asyncpg://u:p@h/db"),
            ("mysql2://u:p@h/db", "mysql://u:p@h/db"),
            ("sqlite3:///app.db", "sqlite:///app.db"),
            ("sqlite://", "sqlite://"),
        ],
    )
    def test_aliases(self, url: str, expected: str) -> None:
        assert normalize_database_url(url) == expected

    def test_missing_scheme(self) -> None:
        with pytest.raises(ConfigurationError, match="missing scheme"):
            normalize_database_url("localhost/app")

    def test_postgres_connect_timeout(self) -> None:
        """PostgreSQL engines get a connect timeout."""
        with patch("table_guard.factory.create_engine") as mock_create:
            create_engine_for_url("postgres://u:p@h/db")
        mock_create.assert_called_once_with("postgresql+psycopg://u:p@h/db?connect_timeout=10")

    def test_existing_connect_timeout_kept(self) -> None:
        with patch("table_guard.factory.create_engine") as mock_create:
            create_engine_for_url("postgres://u:p@h/db?connect_timeout=3")
        mock_create.assert_called_once_with("postgresql+psycopg://u:p@h/db?connect_timeout=3")


class TestBackendNames:
    """Verify backend tag normalization."""

    @pytest.mark.parametrize(
        "tag,backend",
        [
            ("postgresql", "postgres"),
            ("postgresql+psycopg", "postgres"),
            ("mysql2", "mysql"),
            ("mariadb", "mysql"),
            ("sqlite3", "sqlite"),
        ],
    )
    def test_aliases(self, tag: str, backend: str) -> None:
        assert normalize_backend(tag) == backend

    def test_unsupported(self) -> None:
        with pytest.raises(ConfigurationError, match="Unsupported database backend: oracle"):
            DialectInfo.for_backend("oracle")


# ============================================================================
# get_connection
# ============================================================================


class TestGetConnection:
    """Verify what get_connection() accepts."""

    def test_engine(self) -> None:
        engine = create_engine("sqlite://")
        conn = get_connection(engine)
        assert isinstance(conn, SQLAlchemyConnection)
        assert conn.bind is engine

    def test_connection(self) -> None:
        engine = create_engine("sqlite://")
        with engine.connect() as sa_conn:
            conn = get_connection(sa_conn)
            assert conn.bind is sa_conn

    def test_url(self) -> None:
        conn = get_connection("sqlite3://")
        assert isinstance(conn, SQLAlchemyConnection)
        assert conn.backend == "sqlite"
        assert conn.owns_bind is True

    def test_engine_not_owned(self) -> None:
        """close() leaves a caller's engine alone."""
        engine = create_engine("sqlite://")
        conn = get_connection(engine)
        assert conn.owns_bind is False
        with patch.object(engine, "dispose") as dispose:
            conn.close()
        dispose.assert_not_called()

    def test_protocol_object_passthrough(self) -> None:
        """Objects implementing SchemaConnection are used as-is."""
        custom = StaticConnection()
        assert isinstance(custom, SchemaConnection)
        assert get_connection(custom) is custom

    def test_unsupported(self) -> None:
        with pytest.raises(ConfigurationError, match="Unsupported database connection: int"):
            get_connection(42)


# ============================================================================
# SQLAlchemyConnection
# ============================================================================


class TestSQLAlchemyConnection:
    """Verify the SQLAlchemy adapter against SQLite."""

    def test_rejects_other_types(self) -> None:
        with pytest.raises(TypeError, match="Expected a SQLAlchemy Engine or Connection"):
            SQLAlchemyConnection("sqlite://")

    def test_catalog_queries(self) -> None:
        conn = SQLAlchemyConnection(create_engine("sqlite://"))
        conn.execute("CREATE TABLE notes (id INTEGER PRIMARY KEY, body TEXT)")
        assert conn.table_names() == ["notes"]
        assert conn.table_exists("notes") is True
        assert conn.table_exists("nope") is False
        assert conn.column_names("notes") == ["id", "body"]

    def test_execute_on_connection(self) -> None:
        """On a borrowed Connection statements run without committing."""
        engine = create_engine("sqlite://")
        with engine.connect() as sa_conn:
            conn = SQLAlchemyConnection(sa_conn)
            conn.execute("CREATE TABLE notes (id INTEGER PRIMARY KEY)")
            assert conn.table_exists("notes") is True
            sa_conn.commit()

    def test_sqlite_dialect_info(self) -> None:
        info = SQLAlchemyConnection(create_engine("sqlite://")).dialect_info()
        assert info == DialectInfo(backend="sqlite")
        assert info.supports_partial_indexes is True

    def test_satisfies_protocol(self) -> None:
        assert isinstance(SQLAlchemyConnection(create_engine("sqlite://")), SchemaConnection)


class TestDialectInfo:
    """Verify capability flags."""

    def test_postgres(self) -> None:
        info = DialectInfo.for_backend("postgresql")
        assert info.backend == "postgres"
        assert info.uses_citext is True
        assert info.uses_timestamp_precision is False

    def test_postgres_without_citext(self) -> None:
        assert DialectInfo.for_backend("postgres", supports_citext=False).uses_citext is False

    def test_mysql(self) -> None:
        info = DialectInfo.for_backend("mysql")
        assert info.supports_partial_indexes is False
        assert info.uses_citext is False
        assert info.uses_timestamp_precision is True

    def test_sqlite(self) -> None:
        info = DialectInfo.for_backend("sqlite")
        assert info.uses_citext is False
        assert info.uses_timestamp_precision is False
