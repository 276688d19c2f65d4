"""table-guard: detect and repair missing authentication tables.

Checks the tables an authentication library's enabled features require
against a live database, applies a validation policy (silent, warn, error,
raise, halt, or a callback), and generates or executes the DDL to create
what is missing on PostgreSQL, MySQL and SQLite.

Usage:
    from table_guard import TableGuard, TableGuardConfig, guard_tables
    from table_guard import DDLGenerator, DialectInfo, default_registry
    from table_guard import ConfigurationError, ExecutionError
"""

__version__ = "0.1.0"

# Errors
from table_guard.errors import ConfigurationError, ExecutionError, TableGuardError

# Adapters
from table_guard.adapters.base import SchemaConnection
from table_guard.adapters.engine import SQLAlchemyConnection

# Config
from table_guard.config.loader import load_guard_config
from table_guard.config.models import TableGuardConfig

# Factory
from table_guard.factory import get_connection, normalize_database_url

# Policy
from table_guard.policy import Outcome, OutcomeKind, RemediationMode, ValidationMode

# Schema
from table_guard.schema.ddl import DDLGenerator
from table_guard.schema.introspector import SchemaInspector
from table_guard.schema.models import (
    ColumnType,
    DialectInfo,
    DriftEntry,
    FeatureTableSpec,
    TableStructure,
)
from table_guard.schema.registry import TableRegistry, default_registry, register_feature

# Guard
from table_guard.guard import TableGuard, guard_tables

__all__ = [
    # Errors
    "TableGuardError",
    "ConfigurationError",
    "ExecutionError",
    # Adapters
    "SchemaConnection",
    "SQLAlchemyConnection",
    # Config
    "load_guard_config",
    "TableGuardConfig",
    # Factory
    "get_connection",
    "normalize_database_url",
    # Policy
    "Outcome",
    "OutcomeKind",
    "RemediationMode",
    "ValidationMode",
    # Schema
    "DDLGenerator",
    "SchemaInspector",
    "ColumnType",
    "DialectInfo",
    "DriftEntry",
    "FeatureTableSpec",
    "TableStructure",
    "TableRegistry",
    "default_registry",
    "register_feature",
    # Guard
    "TableGuard",
    "guard_tables",
]
