"""DDL generation for missing tables and columns.

Builds SQLAlchemy ``Table`` objects from resolved table structures and
compiles ``CREATE`` / ``DROP`` statements for the target dialect. No live
connection is needed to produce text; only ``execute_creates()`` and
``execute_drops()`` touch the database.

Dialect differences handled here:
- ``key`` columns are BIGINT, except INTEGER on SQLite.
- ``email`` columns are CITEXT on PostgreSQL when the extension is
  available, VARCHAR(255) elsewhere.
- Partial unique indexes are emitted on PostgreSQL and SQLite; MySQL gets a
  full unique index instead.
- MySQL timestamps use DATETIME(6) / CURRENT_TIMESTAMP(6) when the server
  supports fractional seconds.

Usage:
    from table_guard.schema.ddl import DDLGenerator
    from table_guard.schema.models import DialectInfo

    generator = DDLGenerator(missing_entries, DialectInfo.for_backend("sqlite"))
    print(generator.generate_create_statements())
    generator.execute_creates(connection)
"""

import logging
from collections.abc import Iterable, Sequence
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import (
    JSON,
    BigInteger,
    Column,
    DateTime,
    ForeignKeyConstraint,
    Index,
    Integer,
    MetaData,
    PrimaryKeyConstraint,
    String,
    Table,
    Text,
    text,
)
from sqlalchemy.dialects.mysql import DATETIME as MYSQL_DATETIME
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.engine import Dialect
from sqlalchemy.schema import CreateColumn, CreateIndex, CreateTable, DropTable
from sqlalchemy.types import TypeEngine, UserDefinedType

from table_guard.errors import ExecutionError
from table_guard.schema.introspector import order_by_dependency
from table_guard.schema.migration import render_migration
from table_guard.schema.models import (
    ColumnDrift,
    ColumnSpec,
    ColumnType,
    DialectInfo,
    DriftEntry,
    TableStructure,
)

if TYPE_CHECKING:
    from table_guard.adapters.base import SchemaConnection

logger = logging.getLogger(__name__)

CITEXT_EXTENSION = "CREATE EXTENSION IF NOT EXISTS citext"


class CIText(UserDefinedType):
    """PostgreSQL ``citext`` case-insensitive text type."""

    cache_ok = True

    def get_col_spec(self, **kw) -> str:
        return "CITEXT"


# ------------------------------------------------------------------
# Type mapping
# ------------------------------------------------------------------


def column_type(col_type: ColumnType, dialect: DialectInfo) -> TypeEngine:
    """Map a semantic column type to the SQLAlchemy type for *dialect*."""
    if col_type == ColumnType.KEY:
        return Integer() if dialect.backend == "sqlite" else BigInteger()
    if col_type == ColumnType.INTEGER:
        return Integer()
    if col_type == ColumnType.TEXT:
        return Text()
    if col_type == ColumnType.EMAIL:
        return CIText() if dialect.uses_citext else String(255)
    if col_type == ColumnType.DATETIME:
        return MYSQL_DATETIME(fsp=6) if dialect.uses_timestamp_precision else DateTime()
    if col_type == ColumnType.JSON:
        return JSONB() if dialect.backend == "postgres" else JSON()
    return String(255)


def _server_default(col: ColumnSpec, dialect: DialectInfo):
    if col.default_now:
        if dialect.uses_timestamp_precision:
            return text("CURRENT_TIMESTAMP(6)")
        return text("CURRENT_TIMESTAMP")
    if isinstance(col.default, int):
        return text(str(int(col.default)))
    return col.default


def build_column(col: ColumnSpec, dialect: DialectInfo, primary_key: bool = False) -> Column:
    """Build a SQLAlchemy ``Column`` from a ``ColumnSpec``."""
    return Column(
        col.name,
        column_type(col.type, dialect),
        nullable=col.nullable and not primary_key,
        server_default=_server_default(col, dialect),
        autoincrement=col.autoincrement,
    )


def _clean(ddl: object) -> str:
    """Normalize compiled DDL whitespace."""
    lines = [line.rstrip() for line in str(ddl).strip().splitlines()]
    return "\n".join(line.replace("\t", "    ") for line in lines)


def _as_script(statements: Sequence[str]) -> str:
    return "\n\n".join(f"{statement};" for statement in statements)


# ------------------------------------------------------------------
# Generator
# ------------------------------------------------------------------


class DDLGenerator:
    """Generates and applies DDL for missing tables and columns.

    Args:
        missing: Drift entries for missing tables. Order does not matter;
            they are sorted by dependency.
        dialect: Target dialect. Defaults to PostgreSQL.
        missing_columns: Column drift for tables that exist but lack columns.
    """

    def __init__(
        self,
        missing: Sequence[DriftEntry],
        dialect: DialectInfo | None = None,
        missing_columns: Sequence[ColumnDrift] = (),
    ) -> None:
        self.dialect = dialect or DialectInfo()
        self.ordered_entries = order_by_dependency(list(missing))
        self.missing_columns = list(missing_columns)
        self._sa_dialect: Dialect = self.dialect.sqlalchemy_dialect()
        self._metadata = MetaData()
        self._tables: dict[str, Table] = {}
        self._indexes: dict[str, list[Index]] = {}
        for entry in self.ordered_entries:
            self._add_table(entry.table_name, entry.spec.structure)

    # -- model building ------------------------------------------------

    def _add_table(self, name: str, structure: TableStructure) -> None:
        primary = set(structure.primary_key)
        columns = [build_column(col, self.dialect, col.name in primary) for col in structure.columns]
        for fk in structure.foreign_keys:
            self._ensure_referenced(fk.references, fk.referenced_columns, name)

        constraints = [PrimaryKeyConstraint(*structure.primary_key)] if structure.primary_key else []
        constraints += [
            ForeignKeyConstraint(
                list(fk.columns),
                [f"{fk.references}.{col}" for col in fk.referenced_columns],
                ondelete=fk.on_delete,
            )
            for fk in structure.foreign_keys
        ]
        if name in self._metadata.tables:
            # Replace a stub created for an earlier reference.
            self._metadata.remove(self._metadata.tables[name])
        table = Table(name, self._metadata, *columns, *constraints)
        self._tables[name] = table

        indexes = []
        for spec in structure.indexes:
            kwargs = {}
            if spec.where and self.dialect.supports_partial_indexes:
                kwargs = {"postgresql_where": text(spec.where), "sqlite_where": text(spec.where)}
            indexes.append(
                Index(spec.name, *(table.c[col] for col in spec.columns), unique=spec.unique, **kwargs)
            )
        self._indexes[name] = indexes

    def _ensure_referenced(
        self,
        name: str,
        columns: Iterable[str],
        referrer_name: str,
    ) -> None:
        """Add a stub for a referenced table that is not being created."""
        if name in self._metadata.tables or name == referrer_name:
            return
        Table(
            name,
            self._metadata,
            *(Column(col, column_type(ColumnType.KEY, self.dialect), primary_key=True) for col in columns),
        )

    @property
    def tables(self) -> list[Table]:
        """SQLAlchemy tables for the missing entries, in creation order."""
        return [self._tables[entry.table_name] for entry in self.ordered_entries]

    @property
    def uses_citext(self) -> bool:
        return any(
            isinstance(col.type, CIText) for table in self.tables for col in table.columns
        ) or any(
            d.requirement.type == ColumnType.EMAIL and self.dialect.uses_citext
            for d in self.missing_columns
        )

    # -- statements ----------------------------------------------------

    def _compile(self, element) -> str:
        return _clean(element.compile(dialect=self._sa_dialect))

    def _quote_table(self, name: str) -> str:
        return self._sa_dialect.identifier_preparer.quote(name)

    def _add_column_statement(self, drift: ColumnDrift) -> str:
        spec = drift.requirement.as_column_spec()
        if not spec.nullable and spec.default is None and not spec.default_now:
            # NOT NULL cannot be added to a populated table without a default
            spec = spec.model_copy(update={"nullable": True})
        column = build_column(spec, self.dialect)
        Table(drift.table, MetaData(), column)
        return f"ALTER TABLE {self._quote_table(drift.table)} ADD COLUMN {self._compile(CreateColumn(column))}"

    def _drop_column_statement(self, drift: ColumnDrift) -> str:
        preparer = self._sa_dialect.identifier_preparer
        return f"ALTER TABLE {preparer.quote(drift.table)} DROP COLUMN {preparer.quote(drift.column)}"

    def create_statements(self) -> list[str]:
        """CREATE statements in dependency order.

        Each table is followed by its indexes. Missing columns are added
        last, after every table exists.
        """
        statements: list[str] = []
        if self.uses_citext:
            statements.append(CITEXT_EXTENSION)

        if_not_exists_index = self.dialect.backend != "mysql"
        for table in self.tables:
            statements.append(self._compile(CreateTable(table, if_not_exists=True)))
            for index in self._indexes[table.name]:
                statements.append(self._compile(CreateIndex(index, if_not_exists=if_not_exists_index)))

        statements += [self._add_column_statement(d) for d in self.missing_columns]
        return statements

    def table_drop_statements(self) -> list[str]:
        """DROP TABLE statements in reverse dependency order."""
        return [self._compile(DropTable(table, if_exists=True)) for table in reversed(self.tables)]

    def drop_statements(self) -> list[str]:
        """Undo of ``create_statements()``: added columns first, then tables."""
        statements = [self._drop_column_statement(d) for d in self.missing_columns]
        return statements + self.table_drop_statements()

    def generate_create_statements(self) -> str:
        return _as_script(self.create_statements())

    def generate_drop_statements(self) -> str:
        return _as_script(self.drop_statements())

    def generate_migration(
        self,
        revision: str | None = None,
        message: str | None = None,
        now: datetime | None = None,
    ) -> str:
        """Render an Alembic revision script.

        ``upgrade()`` runs the create statements, ``downgrade()`` runs the
        drop statements.
        """
        tables = ", ".join(entry.table_name for entry in self.ordered_entries)
        return render_migration(
            self.create_statements(),
            self.drop_statements(),
            revision=revision,
            message=message or f"create {tables or 'columns'}",
            created=now,
        )

    # -- execution -----------------------------------------------------

    def _execute(self, statements: Sequence[str], connection: "SchemaConnection", context: str) -> int:
        for count, statement in enumerate(statements):
            logger.debug("Executing: %s", statement)
            try:
                connection.execute(statement)
            except Exception as e:
                logger.error(
                    "[table_guard] Statement %d of %d failed: %s", count + 1, len(statements), e
                )
                raise ExecutionError.from_exception(context, e) from e
        return len(statements)

    def execute_creates(self, connection: "SchemaConnection") -> int:
        """Run every create statement, stopping at the first failure.

        Statements before the failing one stay applied.

        Returns:
            Number of statements executed.

        Raises:
            ExecutionError: If the backend rejects a statement.
        """
        return self._execute(self.create_statements(), connection, "Failed to execute table creation")

    def execute_drops(self, connection: "SchemaConnection") -> int:
        """Drop the generated tables, stopping at the first failure.

        Only tables are dropped. Missing columns do not exist yet, so their
        ``DROP COLUMN`` statements belong to the migration downgrade alone.

        Raises:
            ExecutionError: If the backend rejects a statement.
        """
        return self._execute(self.table_drop_statements(), connection, "Failed to execute table drop")


def drop_tables_by_name(
    names: Iterable[str],
    connection: "SchemaConnection",
    dialect: DialectInfo | None = None,
) -> int:
    """Drop tables by name (``IF EXISTS``), in the order given.

    On PostgreSQL and MySQL the drops cascade, so application tables
    referencing a dropped table do not block it. SQLite has no
    ``CASCADE``.

    Returns:
        Number of statements executed.

    Raises:
        ExecutionError: If the backend rejects a statement.
    """
    dialect = dialect or DialectInfo()
    sa_dialect = dialect.sqlalchemy_dialect()
    suffix = "" if dialect.backend == "sqlite" else " CASCADE"
    metadata = MetaData()
    count = 0
    for name in names:
        statement = _clean(DropTable(Table(name, metadata), if_exists=True).compile(dialect=sa_dialect))
        statement += suffix
        try:
            connection.execute(statement)
        except Exception as e:
            raise ExecutionError.from_exception("Failed to execute table drop", e) from e
        count += 1
    return count
