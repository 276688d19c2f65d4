"""Table guard: checks required tables at boot and reports on them.

``TableGuard`` ties the registry, the inspector, the policy and the DDL
generator together for one enabled-feature set and one database
connection. ``guard_tables()`` is the bootstrap entry point.

Every reporting method re-queries the database; nothing is cached between
calls.

Usage:
    from table_guard import TableGuardConfig, guard_tables

    guard = guard_tables(
        ["base", "otp"],
        engine,
        TableGuardConfig(mode="raise", remediation="create"),
    )
    guard.table_status()
"""

import logging
from collections.abc import Iterable
from enum import Enum
from pathlib import Path
from typing import Any

from table_guard.config.models import TableGuardConfig
from table_guard.errors import ConfigurationError
from table_guard.factory import get_connection
from table_guard.policy import (
    Outcome,
    OutcomeKind,
    RemediationMode,
    ValidationMode,
    resolve_column_policy,
    resolve_table_policy,
)
from table_guard.schema.comparator import compare_columns, find_missing_columns
from table_guard.schema.ddl import DDLGenerator, drop_tables_by_name
from table_guard.schema.introspector import SchemaInspector, order_by_dependency
from table_guard.schema.migration import migration_label, write_migration
from table_guard.schema.models import (
    ColumnDrift,
    ColumnRequirement,
    ColumnType,
    DialectInfo,
    DriftEntry,
    FeatureTableSpec,
)
from table_guard.schema.registry import TableRegistry, default_registry

# Alembic's revision table; dropped by the ``drop`` remediation so
# migrations re-run from scratch.
MIGRATION_TRACKING_TABLES = ("alembic_version",)

RULE = "-" * 70


class TableGuard:
    """Required-table guard for one feature set and one borrowed connection.

    Mode, remediation and the feature list are validated at construction,
    so a bad configuration fails before any database query.

    Args:
        features: Enabled feature names (any iterable of str or str-enum).
            ``None`` uses ``config.features``.
        connection: URL, SQLAlchemy Engine/Connection, or SchemaConnection.
            An engine built from a URL is released by ``close()``.
        config: Guard configuration (defaults apply when omitted).
        registry: Feature registry (default: the process-wide registry).
        logger: Logger override (default: ``logging.getLogger("table_guard")``).
        dialect: DDL dialect override (default: probed from the connection).

    Raises:
        ConfigurationError: For an invalid mode or remediation, an empty
            feature list, or an unknown feature.
    """

    def __init__(
        self,
        features: Iterable[str | Enum] | None,
        connection: Any,
        config: TableGuardConfig | None = None,
        *,
        registry: TableRegistry | None = None,
        logger: logging.Logger | None = None,
        dialect: DialectInfo | None = None,
    ) -> None:
        self.config = config or TableGuardConfig()
        self.mode = ValidationMode.parse(self.config.mode)
        self.remediation = RemediationMode.parse(self.config.remediation)
        self.registry = registry or default_registry()
        self.features = [
            str(f.value if isinstance(f, Enum) else f)
            for f in (self.config.features if features is None else features)
        ]
        # Fail fast on an empty or unknown feature list
        self.registry.resolve(self.features, self.config.prefix)

        self.connection = get_connection(connection)
        # Only an engine built here from a URL is ours to dispose
        self._owns_connection = isinstance(connection, str)
        self.logger = logger or logging.getLogger("table_guard")
        self.inspector = SchemaInspector(self.config.skip_tables, self.logger)
        self._dialect = dialect
        self._column_requirements: dict[tuple[str, str], ColumnRequirement] = {}

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    def table_configuration(self) -> list[FeatureTableSpec]:
        """Resolved specs for every required table, in feature order."""
        return self.registry.resolve(self.features, self.config.prefix)

    def table_status(self) -> list[DriftEntry]:
        """Existence of every required table."""
        return self.inspector.inspect(self.table_configuration(), self.connection)

    def missing_tables(self) -> list[DriftEntry]:
        return [entry for entry in self.table_status() if not entry.exists]

    def list_all_required_tables(self) -> list[str]:
        """Sorted, unique required table names."""
        return sorted({spec.table_name for spec in self.table_configuration()})

    def register_required_column(
        self,
        table: str,
        column: str,
        type: ColumnType | str = ColumnType.STRING,
        nullable: bool = True,
        feature: str = "unknown",
    ) -> ColumnRequirement:
        """Require *column* on the existing table *table*.

        Registering the same table and column again replaces the earlier
        requirement.
        """
        requirement = ColumnRequirement(
            table=table,
            column=column,
            type=ColumnType(type),
            nullable=nullable,
            feature=feature,
        )
        self._column_requirements[(table, column)] = requirement
        self.logger.debug(
            "[table_guard] Registered required column %s.%s (%s)", table, column, feature
        )
        return requirement

    @property
    def column_requirements(self) -> list[ColumnRequirement]:
        return list(self._column_requirements.values())

    def list_all_required_columns(self) -> list[ColumnRequirement]:
        """Registered column requirements sorted by table, then column."""
        return sorted(self.column_requirements, key=lambda r: (r.table, r.column))

    def _actual_columns(self) -> dict[str, set[str]]:
        tables = [r.table for r in self.column_requirements]
        return self.inspector.column_names(tables, self.connection)

    def column_status(self) -> list[ColumnDrift]:
        """Existence of every registered column requirement."""
        if not self._column_requirements:
            return []
        return compare_columns(self._actual_columns(), self.column_requirements)

    def missing_columns(self) -> list[ColumnDrift]:
        """Required columns absent from existing tables.

        Always empty when ``config.check_columns`` is off.
        """
        if not self.config.check_columns or not self._column_requirements:
            return []
        return find_missing_columns(self._actual_columns(), self.column_requirements)

    # ------------------------------------------------------------------
    # DDL
    # ------------------------------------------------------------------

    def dialect_info(self) -> DialectInfo:
        return self._dialect or self.connection.dialect_info()

    def generator(
        self,
        missing: list[DriftEntry] | None = None,
        missing_columns: list[ColumnDrift] | None = None,
    ) -> DDLGenerator:
        """DDL generator for the given (default: currently missing) tables and columns."""
        return DDLGenerator(
            self.missing_tables() if missing is None else missing,
            self.dialect_info(),
            self.missing_columns() if missing_columns is None else missing_columns,
        )

    # ------------------------------------------------------------------
    # Check
    # ------------------------------------------------------------------

    def should_check(self) -> bool:
        """False only for a silent mode with no remediation configured."""
        return not (self.mode.is_silent and self.remediation is None)

    def check_required_tables(self) -> Outcome:
        """Run the policy against the database, then any remediation.

        Returns:
            The policy outcome (tables first, then columns).

        Raises:
            ConfigurationError: When the policy fails (``raise`` mode or a
                failing callback result).
            SystemExit: In ``halt`` mode.
            ExecutionError: When remediation DDL is rejected.
        """
        missing = self.missing_tables()
        missing_cols = self.missing_columns()
        always_remediate = self.remediation in (RemediationMode.RECREATE, RemediationMode.DROP)

        if not missing and not missing_cols and not always_remediate:
            self._log_success()
            return Outcome.continue_()

        outcome = Outcome.continue_()
        if not always_remediate:
            context = self.table_configuration()
            outcome = self._apply(
                resolve_table_policy(self.mode, missing, self.remediation, context)
            )
            if missing_cols:
                column_outcome = self._apply(
                    resolve_column_policy(self.mode, missing_cols, self.remediation, context)
                )
                if outcome.kind == OutcomeKind.CONTINUE:
                    outcome = column_outcome

        if self.remediation is not None:
            self._remediate(missing, missing_cols)
        return outcome

    def _apply(self, outcome: Outcome) -> Outcome:
        if outcome.kind == OutcomeKind.CONTINUE:
            if self.mode.is_silent:
                self.logger.debug(
                    "[table_guard] Discovered %d tables, skipping validation",
                    len(self.table_configuration()),
                )
        elif outcome.kind == OutcomeKind.LOG_WARNING:
            self.logger.warning(outcome.message)
        elif outcome.kind == OutcomeKind.LOG_ERROR:
            self.logger.error(outcome.message)
        elif outcome.kind == OutcomeKind.FAIL:
            self.logger.error(outcome.message)
            raise ConfigurationError(outcome.message)
        elif outcome.kind == OutcomeKind.HALT:
            self.logger.critical(outcome.message)
            raise SystemExit(1)
        return outcome

    def _log_success(self) -> None:
        self.logger.info(RULE)
        self.logger.info("[table_guard] All required tables and columns exist")
        self.logger.info("  %d tables validated successfully", len(self.table_configuration()))
        if self._column_requirements:
            self.logger.info("  %d columns validated successfully", len(self._column_requirements))
        self.logger.info(RULE)

    # ------------------------------------------------------------------
    # Remediation
    # ------------------------------------------------------------------

    def _remediate(self, missing: list[DriftEntry], missing_cols: list[ColumnDrift]) -> None:
        if self.remediation.destructive and not self._development_only():
            return
        try:
            if self.remediation == RemediationMode.LOG:
                migration = self.generator(missing, missing_cols).generate_migration()
                self.logger.info("[table_guard] Migration code:\n\n%s", migration)

            elif self.remediation == RemediationMode.MIGRATION:
                path = self.write_migration(missing, missing_cols)
                self.logger.info("[table_guard] Generated migration file: %s", path)

            elif self.remediation == RemediationMode.CREATE:
                generator = self.generator(missing, missing_cols)
                count = generator.execute_creates(self.connection)
                self.logger.info(
                    "[table_guard] Created %d table(s) (%d statements)", len(missing), count
                )
                self._revalidate()

            elif self.remediation == RemediationMode.SYNC:
                generator = self.generator(missing, missing_cols)
                self.logger.info("[table_guard] Syncing %d table(s)...", len(missing))
                generator.execute_drops(self.connection)
                generator.execute_creates(self.connection)
                self.logger.info(
                    "[table_guard] Synced %d table(s) (dropped and recreated)", len(missing)
                )
                self._revalidate()

            elif self.remediation == RemediationMode.RECREATE:
                names = self._drop_all_required()
                current_missing = self.missing_tables()
                if current_missing:
                    self.generator(current_missing, []).execute_creates(self.connection)
                self.logger.info("[table_guard] Recreated %d table(s)", len(names))
                self._revalidate()

            elif self.remediation == RemediationMode.DROP:
                names = self._drop_all_required()
                drop_tables_by_name(MIGRATION_TRACKING_TABLES, self.connection, self.dialect_info())
                self.logger.info(
                    "[table_guard] Dropped %d table(s) and migration tracking", len(names)
                )
                self.logger.info("[table_guard] Migrations will run from scratch on next execution")
        except Exception as e:
            self.logger.error(
                "[table_guard] Remediation (%s) failed: %s - %s",
                self.remediation.value,
                type(e).__name__,
                e,
            )
            raise

    def write_migration(
        self,
        missing: list[DriftEntry] | None = None,
        missing_cols: list[ColumnDrift] | None = None,
    ) -> Path:
        """Write a migration for missing tables/columns to ``config.migration_path``."""
        content = self.generator(missing, missing_cols).generate_migration()
        label = migration_label(self.features, self.config.prefix)
        return write_migration(content, self.config.migration_path, label)

    def _development_only(self) -> bool:
        if self.config.is_development:
            return True
        self.logger.error(
            "[table_guard] %s remediation only available in dev/test environments (current: %s)",
            self.remediation.value,
            self.config.environment,
        )
        return False

    def _drop_all_required(self) -> list[str]:
        """Drop every required table in reverse dependency order."""
        entries = [e for e in self.table_status() if e.table_name not in self.inspector.skip_tables]
        names = [e.table_name for e in reversed(order_by_dependency(entries))]
        self.logger.info("[table_guard] Dropping %d table(s)...", len(names))
        drop_tables_by_name(names, self.connection, self.dialect_info())
        return names

    def close(self) -> None:
        """Dispose the engine built from a URL. Connections passed in are left open."""
        if self._owns_connection:
            self.connection.close()

    def _revalidate(self) -> None:
        still_missing = self.missing_tables()
        if not still_missing:
            self.logger.info(RULE)
            self.logger.info("[table_guard] All required tables now exist")
            self.logger.info(
                "  %d tables validated successfully", len(self.table_configuration())
            )
            self.logger.info(RULE)
            return

        self.logger.error(
            "[table_guard] Still missing %d table(s) after creation!", len(still_missing)
        )
        for entry in still_missing:
            self.logger.error("  - %s (%s)", entry.table_name, entry.feature)


def guard_tables(
    features: Iterable[str | Enum] | None,
    connection: Any,
    config: TableGuardConfig | None = None,
    **kwargs: Any,
) -> TableGuard:
    """Build a ``TableGuard`` and run the check when the configuration asks for one.

    Raises:
        ConfigurationError: For invalid configuration or a failing policy.
    """
    guard = TableGuard(features, connection, config, **kwargs)
    if guard.should_check():
        guard.check_required_tables()
    return guard
