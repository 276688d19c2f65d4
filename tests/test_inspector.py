"""Tests for live table inspection and dependency ordering.

Verifies:
- Existence checks against a real SQLite database and a mocked connection
- skip_tables short-circuits the connection
- Inspection failures are reported as missing with the error recorded
- Primary tables and referenced tables order first
- Column listing and column comparison
"""

import logging
from unittest.mock import MagicMock

import pytest
from sqlalchemy import create_engine

from table_guard.adapters.engine import SQLAlchemyConnection
from table_guard.schema.comparator import compare_columns, find_missing_columns
from table_guard.schema.introspector import (
    SchemaInspector,
    _topological_sort,
    is_primary,
    order_by_dependency,
)
from table_guard.schema.models import ColumnRequirement, DriftEntry
from table_guard.schema.registry import builtin_registry


@pytest.fixture
def connection() -> SQLAlchemyConnection:
    engine = create_engine("sqlite://")
    conn = SQLAlchemyConnection(engine)
    conn.execute("CREATE TABLE accounts (id INTEGER PRIMARY KEY, email VARCHAR(255))")
    return conn


def _specs(*features: str, prefix: str = "account"):
    return builtin_registry().resolve(features, prefix)


# ============================================================================
# Existence
# ============================================================================


class TestInspect:
    """Verify SchemaInspector.inspect()."""

    def test_reports_existing_and_missing(self, connection: SQLAlchemyConnection) -> None:
        """Entries follow spec order and reflect the live catalog."""
        entries = SchemaInspector().inspect(_specs("base", "otp"), connection)
        assert [(e.table_name, e.exists) for e in entries] == [
            ("accounts", True),
            ("account_otp_keys", False),
        ]
        assert all(e.error is None for e in entries)

    def test_requeries_every_call(self, connection: SQLAlchemyConnection) -> None:
        """A table created between calls is seen by the second call."""
        inspector = SchemaInspector()
        specs = _specs("otp")
        assert inspector.inspect(specs, connection)[0].exists is False
        connection.execute("CREATE TABLE account_otp_keys (id INTEGER PRIMARY KEY)")
        assert inspector.inspect(specs, connection)[0].exists is True

    def test_skip_tables_reported_present(self) -> None:
        """Skipped tables exist without asking the connection."""
        conn = MagicMock()
        conn.table_names.return_value = []
        entries = SchemaInspector(skip_tables=["account_otp_keys"]).inspect(_specs("otp"), conn)
        assert entries[0].exists is True

    def test_listing_failure_falls_back_to_per_table(self, caplog: pytest.LogCaptureFixture) -> None:
        """When the catalog cannot be listed each table is checked on its own."""
        conn = MagicMock()
        conn.table_names.side_effect = RuntimeError("permission denied")
        conn.table_exists.side_effect = [True, False]

        with caplog.at_level(logging.WARNING):
            entries = SchemaInspector().inspect(_specs("base", "otp"), conn)

        assert [e.exists for e in entries] == [True, False]
        assert conn.table_exists.call_count == 2
        assert "Could not list tables" in caplog.text

    def test_undeterminable_table_is_missing_with_error(self, caplog: pytest.LogCaptureFixture) -> None:
        """A failing existence check reports the table missing and records why."""
        conn = MagicMock()
        conn.table_names.side_effect = RuntimeError("permission denied")
        conn.table_exists.side_effect = [True, PermissionError("no access to account_otp_keys")]

        with caplog.at_level(logging.WARNING):
            entries = SchemaInspector().inspect(_specs("base", "otp"), conn)

        assert entries[0].exists is True
        assert entries[1].exists is False
        assert entries[1].error == "PermissionError: no access to account_otp_keys"
        assert "treating it as missing" in caplog.text

    def test_logger_override(self) -> None:
        """Warnings go to the injected logger."""
        logger = MagicMock()
        conn = MagicMock()
        conn.table_names.side_effect = RuntimeError("boom")
        conn.table_exists.return_value = True
        SchemaInspector(logger=logger).inspect(_specs("base"), conn)
        logger.warning.assert_called_once()


# ============================================================================
# Ordering
# ============================================================================


class TestOrdering:
    """Verify primary-first, foreign-key-aware ordering."""

    def test_is_primary(self) -> None:
        """The accounts table is primary, feature tables are not."""
        accounts, otp = _specs("base", "otp", prefix="user")
        assert is_primary(accounts) is True
        assert is_primary(otp) is False

    def test_primary_first(self) -> None:
        """The accounts table orders first wherever it appears in the input."""
        entries = [DriftEntry(spec=s, exists=False) for s in _specs("otp", "remember", "base")]
        ordered = order_by_dependency(entries)
        assert [e.table_name for e in ordered] == [
            "accounts",
            "account_otp_keys",
            "account_remember_keys",
        ]

    def test_feature_order_stable(self) -> None:
        """Unrelated feature tables keep their input order."""
        entries = [DriftEntry(spec=s, exists=False) for s in _specs("lockout", "webauthn")]
        ordered = order_by_dependency(entries)
        assert [e.table_name for e in ordered] == [e.table_name for e in entries]

    def test_topological_sort(self) -> None:
        """Referenced tables come before the tables referencing them."""
        deps = {"c": {"b"}, "b": {"a"}, "a": set()}
        assert _topological_sort(deps, ["c", "b", "a"]) == ["a", "b", "c"]

    def test_topological_sort_ignores_external_refs(self) -> None:
        """References to tables outside the set are ignored."""
        deps = {"x": {"accounts"}, "y": set()}
        assert _topological_sort(deps, ["y", "x"]) == ["y", "x"]

    def test_topological_sort_tolerates_cycles(self) -> None:
        """A cycle does not recurse forever; every table appears once."""
        deps = {"a": {"b"}, "b": {"a"}}
        assert sorted(_topological_sort(deps, ["a", "b"])) == ["a", "b"]


# ============================================================================
# Columns
# ============================================================================


class TestColumns:
    """Verify column listing and comparison."""

    def test_column_names(self, connection: SQLAlchemyConnection) -> None:
        """Existing tables report their columns; missing ones are left out."""
        result = SchemaInspector().column_names(["accounts", "nope"], connection)
        assert result == {"accounts": {"id", "email"}}

    def test_find_missing_columns(self) -> None:
        """Only columns absent from existing tables are missing."""
        requirements = [
            ColumnRequirement(table="accounts", column="email"),
            ColumnRequirement(table="accounts", column="stripe_id", feature="billing"),
            ColumnRequirement(table="ghost", column="x"),
        ]
        missing = find_missing_columns({"accounts": {"id", "email"}}, requirements)
        assert [(m.table, m.column, m.feature) for m in missing] == [
            ("accounts", "stripe_id", "billing"),
        ]

    def test_compare_columns_marks_missing_tables(self) -> None:
        """compare_columns() reports every requirement, flagging absent tables."""
        requirements = [
            ColumnRequirement(table="accounts", column="email"),
            ColumnRequirement(table="ghost", column="x"),
        ]
        drift = compare_columns({"accounts": {"email"}}, requirements)
        assert [(d.exists, d.table_exists) for d in drift] == [(True, True), (False, False)]

    def test_column_names_listing_failure(self, caplog: pytest.LogCaptureFixture) -> None:
        """Without the table list each table is checked on its own."""
        conn = MagicMock()
        conn.table_names.side_effect = RuntimeError("permission denied")
        conn.table_exists.side_effect = lambda name: name == "accounts"
        conn.column_names.return_value = ["id", "email"]

        with caplog.at_level(logging.WARNING):
            result = SchemaInspector().column_names(["accounts", "ghosts"], conn)

        assert result == {"accounts": {"id", "email"}}
        assert "checking columns table by table" in caplog.text

    def test_unreadable_columns_skipped(self, caplog: pytest.LogCaptureFixture) -> None:
        """A table whose columns cannot be read is left out instead of raising."""
        conn = MagicMock()
        conn.table_names.return_value = ["accounts", "account_otp_keys"]
        conn.column_names.side_effect = [PermissionError("no access"), ["id", "key"]]

        with caplog.at_level(logging.WARNING):
            result = SchemaInspector().column_names(["accounts", "account_otp_keys"], conn)

        assert result == {"account_otp_keys": {"id", "key"}}
        assert "Could not read columns of accounts" in caplog.text
