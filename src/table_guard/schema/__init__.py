"""Table requirements, live inspection, and DDL generation.

Provides the feature table registry (``TableRegistry``), live existence
checks (``SchemaInspector``), column requirement comparison
(``find_missing_columns``), DDL generation (``DDLGenerator``), and
Alembic migration rendering (``render_migration``, ``write_migration``).

Usage:
    from table_guard.schema import default_registry, SchemaInspector
    from table_guard.schema import DDLGenerator, DialectInfo
"""

from table_guard.schema.comparator import compare_columns, find_missing_columns
from table_guard.schema.ddl import DDLGenerator, drop_tables_by_name
from table_guard.schema.introspector import SchemaInspector, is_primary, order_by_dependency
from table_guard.schema.migration import (
    migration_filename,
    migration_label,
    render_migration,
    write_migration,
)
from table_guard.schema.models import (
    ColumnDrift,
    ColumnRequirement,
    ColumnSpec,
    ColumnType,
    DialectInfo,
    DriftEntry,
    FeatureTableSpec,
    ForeignKeySpec,
    IndexSpec,
    TableKind,
    TableStructure,
    pluralize,
    resolve_template,
    singularize,
)
from table_guard.schema.registry import TableRegistry, default_registry, register_feature

__all__ = [
    "TableRegistry",
    "default_registry",
    "register_feature",
    "SchemaInspector",
    "is_primary",
    "order_by_dependency",
    "compare_columns",
    "find_missing_columns",
    "DDLGenerator",
    "drop_tables_by_name",
    "migration_filename",
    "migration_label",
    "render_migration",
    "write_migration",
    "ColumnDrift",
    "ColumnRequirement",
    "ColumnSpec",
    "ColumnType",
    "DialectInfo",
    "DriftEntry",
    "FeatureTableSpec",
    "ForeignKeySpec",
    "IndexSpec",
    "TableKind",
    "TableStructure",
    "pluralize",
    "resolve_template",
    "singularize",
]
