"""Live table-existence checks against a borrowed database connection.

The inspector only asks the connection which tables (and, for column
requirements, which columns) exist. Nothing is cached: every call
re-queries the catalog, so a schema changed between two calls is seen by
the second one.

Usage:
    from table_guard.schema.introspector import SchemaInspector

    inspector = SchemaInspector(skip_tables={"legacy_accounts"})
    entries = inspector.inspect(specs, connection)
    missing = [e for e in entries if not e.exists]
"""

import logging
from collections.abc import Iterable, Sequence
from typing import TYPE_CHECKING

from table_guard.schema.models import (
    DEFAULT_PREFIX,
    DriftEntry,
    FeatureTableSpec,
    TableKind,
    pluralize,
)

if TYPE_CHECKING:
    from table_guard.adapters.base import SchemaConnection


class SchemaInspector:
    """Compares required table specs with the tables a connection reports.

    Tables listed in ``skip_tables`` are reported as existing without
    querying the connection.
    """

    def __init__(
        self,
        skip_tables: Iterable[str] = (),
        logger: logging.Logger | None = None,
    ) -> None:
        self.skip_tables = frozenset(skip_tables)
        self._logger = logger or logging.getLogger(__name__)

    def inspect(
        self,
        specs: Sequence[FeatureTableSpec],
        connection: "SchemaConnection",
    ) -> list[DriftEntry]:
        """Return one ``DriftEntry`` per spec, in spec order.

        The catalog is listed once. If listing fails, each table is checked
        on its own; a table whose state still cannot be determined is
        reported missing with the failure recorded on ``DriftEntry.error``.
        """
        existing: set[str] | None
        try:
            existing = set(connection.table_names())
        except Exception as e:
            self._logger.warning(
                "[table_guard] Could not list tables (%s: %s), checking each table individually",
                type(e).__name__,
                e,
            )
            existing = None

        entries: list[DriftEntry] = []
        for spec in specs:
            if spec.table_name in self.skip_tables:
                entries.append(DriftEntry(spec=spec, exists=True))
                continue

            if existing is not None:
                entries.append(DriftEntry(spec=spec, exists=spec.table_name in existing))
                continue

            try:
                exists = connection.table_exists(spec.table_name)
            except Exception as e:
                error = f"{type(e).__name__}: {e}"
                self._logger.warning(
                    "[table_guard] Could not determine whether %s exists, treating it as missing: %s",
                    spec.table_name,
                    error,
                )
                entries.append(DriftEntry(spec=spec, exists=False, error=error))
                continue
            entries.append(DriftEntry(spec=spec, exists=bool(exists)))

        return entries

    def column_names(
        self,
        tables: Iterable[str],
        connection: "SchemaConnection",
    ) -> dict[str, set[str]]:
        """Get column names for each of *tables* that exists.

        Tables the connection does not know are left out of the result,
        the same shape ``find_missing_columns()`` expects. Catalog failures
        fall back like ``inspect()``: when the table list cannot be read each
        table is checked on its own, and a table whose columns still cannot
        be read is logged and left out.
        """
        wanted = [t for t in dict.fromkeys(tables) if t not in self.skip_tables]
        present: set[str] | None
        try:
            present = set(connection.table_names())
        except Exception as e:
            self._logger.warning(
                "[table_guard] Could not list tables (%s: %s), checking columns table by table",
                type(e).__name__,
                e,
            )
            present = None

        result: dict[str, set[str]] = {}
        for table in wanted:
            try:
                if present is None:
                    if not connection.table_exists(table):
                        continue
                elif table not in present:
                    continue
                result[table] = set(connection.column_names(table))
            except Exception as e:
                self._logger.warning(
                    "[table_guard] Could not read columns of %s, skipping its column checks: %s: %s",
                    table,
                    type(e).__name__,
                    e,
                )
        return result


def is_primary(spec: FeatureTableSpec) -> bool:
    """True for the accounts table of a spec set.

    A table is primary when its structure says so or its name matches the
    account naming pattern, singular or plural, for the default or the
    resolved prefix.
    """
    if spec.structure.kind == TableKind.PRIMARY:
        return True
    names = {DEFAULT_PREFIX, pluralize(DEFAULT_PREFIX)}
    if spec.prefix:
        names |= {spec.prefix, pluralize(spec.prefix)}
    return spec.table_name in names


def _topological_sort(dependencies: dict[str, set[str]], tables: list[str]) -> list[str]:
    """Topological sort of tables based on FK dependencies.

    Returns tables in forward order: referenced tables first. Tables with
    no constraint between them keep their input order.
    """
    relevant = {t: dependencies.get(t, set()) & set(tables) for t in tables}

    sorted_tables: list[str] = []
    visited: set[str] = set()
    visiting: set[str] = set()  # For cycle detection

    def visit(table: str) -> None:
        if table in visited or table in visiting:
            return
        visiting.add(table)
        for dep in sorted(relevant.get(table, set()), key=tables.index):
            visit(dep)
        visiting.discard(table)
        visited.add(table)
        sorted_tables.append(table)

    for table in tables:
        visit(table)

    return sorted_tables


def order_by_dependency(entries: Sequence[DriftEntry]) -> list[DriftEntry]:
    """Order entries for creation: primary tables first, then feature tables.

    A final foreign-key pass moves any referenced table ahead of the
    tables referencing it. Reverse the result for drops.
    """
    primary = [e for e in entries if is_primary(e.spec)]
    feature = [e for e in entries if not is_primary(e.spec)]
    staged = primary + feature

    by_name = {e.table_name: e for e in staged}
    dependencies = {
        e.table_name: {
            fk.references
            for fk in e.spec.structure.foreign_keys
            if fk.references != e.table_name
        }
        for e in staged
    }
    order = _topological_sort(dependencies, list(by_name))
    return [by_name[name] for name in order]
