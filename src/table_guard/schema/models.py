"""Pydantic models for table specifications and drift reports.

This module contains schema-domain models:
- Structure models: ColumnSpec, ForeignKeySpec, IndexSpec, TableStructure
- Registry model: FeatureTableSpec
- Drift models: DriftEntry, ColumnRequirement, ColumnDrift
- Dialect model: DialectInfo

Names inside a ``TableStructure`` may be templates. ``%plural%`` and
``%singular%`` resolve against the table prefix, ``%account_id%`` resolves
to the structure's account-id column.
"""

from enum import Enum

from pydantic import BaseModel, ConfigDict, field_validator
from sqlalchemy.dialects import mysql, postgresql, sqlite
from sqlalchemy.engine import Dialect

from table_guard.errors import ConfigurationError

PLURAL_PLACEHOLDER = "%plural%"
SINGULAR_PLACEHOLDER = "%singular%"
ACCOUNT_ID_PLACEHOLDER = "%account_id%"

DEFAULT_PREFIX = "account"
DEFAULT_ACCOUNT_ID_COLUMN = "account_id"


# ============================================================================
# Inflection
# ============================================================================


def pluralize(word: str) -> str:
    """Pluralize *word* by appending a trailing "s".

    Only the trivial English suffix rule is applied. Irregular plurals
    ("mouse" -> "mice") are not handled.

    Example:
        >>> pluralize("account")
        'accounts'
        >>> pluralize("accounts")
        'accounts'
    """
    if word.endswith("s"):
        return word
    return f"{word}s"


def singularize(word: str) -> str:
    """Strip a single trailing "s" from *word*.

    Example:
        >>> singularize("users")
        'user'
    """
    if not word.endswith("s"):
        return word
    return word[:-1]


def resolve_template(template: str, prefix: str = DEFAULT_PREFIX) -> str:
    """Substitute ``%plural%`` / ``%singular%`` in *template*.

    Example:
        >>> resolve_template("%singular%_otp_keys", "user")
        'user_otp_keys'
        >>> resolve_template("%plural%", "user")
        'users'
    """
    return template.replace(PLURAL_PLACEHOLDER, pluralize(prefix)).replace(
        SINGULAR_PLACEHOLDER, prefix
    )


# ============================================================================
# Structure Models
# ============================================================================


class ColumnType(str, Enum):
    """Semantic column types mapped to concrete types per dialect."""

    KEY = "key"  # 64-bit integer key (native INTEGER on SQLite)
    INTEGER = "integer"
    STRING = "string"
    TEXT = "text"
    EMAIL = "email"
    DATETIME = "datetime"
    JSON = "json"


class TableKind(str, Enum):
    """Dependency class of a table."""

    PRIMARY = "primary"
    FEATURE = "feature"


class ColumnSpec(BaseModel):
    """A column in a required table.

    Example:
        >>> col = ColumnSpec(name="deadline", type=ColumnType.DATETIME)
        >>> col.nullable
        False
    """

    model_config = ConfigDict(frozen=True)

    name: str
    type: ColumnType = ColumnType.STRING
    nullable: bool = False
    default: int | str | None = None
    default_now: bool = False  # DEFAULT CURRENT_TIMESTAMP
    autoincrement: bool = False


class ForeignKeySpec(BaseModel):
    """A foreign key from local columns to another required table."""

    model_config = ConfigDict(frozen=True)

    columns: tuple[str, ...]
    references: str
    referenced_columns: tuple[str, ...] = ("id",)
    on_delete: str | None = None  # CASCADE, SET NULL, ...


class IndexSpec(BaseModel):
    """An index; ``where`` marks a partial index predicate."""

    model_config = ConfigDict(frozen=True)

    name: str
    columns: tuple[str, ...]
    unique: bool = False
    where: str | None = None


class TableStructure(BaseModel):
    """Declarative structure of one table.

    ``account_id_column`` is the name of the column referencing the
    accounts table, for structures that do not reuse ``id`` for that.
    """

    model_config = ConfigDict(frozen=True)

    columns: tuple[ColumnSpec, ...]
    primary_key: tuple[str, ...] = ("id",)
    foreign_keys: tuple[ForeignKeySpec, ...] = ()
    indexes: tuple[IndexSpec, ...] = ()
    kind: TableKind = TableKind.FEATURE
    account_id_column: str | None = None

    def column(self, name: str) -> ColumnSpec | None:
        """Return the column named *name*, if declared."""
        for col in self.columns:
            if col.name == name:
                return col
        return None

    def resolve(self, prefix: str) -> "TableStructure":
        """Return a copy with every name template resolved against *prefix*."""
        account_id = resolve_template(
            self.account_id_column or DEFAULT_ACCOUNT_ID_COLUMN, prefix
        )

        def name(value: str) -> str:
            return resolve_template(value.replace(ACCOUNT_ID_PLACEHOLDER, account_id), prefix)

        def names(values: tuple[str, ...]) -> tuple[str, ...]:
            return tuple(name(v) for v in values)

        return TableStructure(
            columns=tuple(col.model_copy(update={"name": name(col.name)}) for col in self.columns),
            primary_key=names(self.primary_key),
            foreign_keys=tuple(
                fk.model_copy(
                    update={
                        "columns": names(fk.columns),
                        "references": name(fk.references),
                        "referenced_columns": names(fk.referenced_columns),
                    }
                )
                for fk in self.foreign_keys
            ),
            indexes=tuple(
                idx.model_copy(update={"name": name(idx.name), "columns": names(idx.columns)})
                for idx in self.indexes
            ),
            kind=self.kind,
            account_id_column=account_id if self.account_id_column else None,
        )


class FeatureTableSpec(BaseModel):
    """One required table for one feature.

    Unresolved specs (as registered) carry templates in ``table_name`` and
    the structure; ``resolve()`` produces the concrete spec for a prefix.

    Example:
        >>> spec = FeatureTableSpec(
        ...     method_name="otp_keys_table",
        ...     feature="otp",
        ...     table_name="%singular%_otp_keys",
        ...     structure=TableStructure(columns=(ColumnSpec(name="id", type=ColumnType.KEY),)),
        ... )
        >>> spec.resolve("account").table_name
        'account_otp_keys'
    """

    model_config = ConfigDict(frozen=True)

    method_name: str
    feature: str
    table_name: str
    structure: TableStructure
    prefix: str | None = None  # set once resolved

    @property
    def resolved(self) -> bool:
        return self.prefix is not None

    @property
    def account_id_column(self) -> str | None:
        """Resolved account-id column name, when the structure overrides it."""
        return self.structure.account_id_column if self.resolved else None

    def resolve(self, prefix: str = DEFAULT_PREFIX) -> "FeatureTableSpec":
        return self.model_copy(
            update={
                "table_name": resolve_template(self.table_name, prefix),
                "structure": self.structure.resolve(prefix),
                "prefix": prefix,
            }
        )


# ============================================================================
# Drift Models
# ============================================================================


class DriftEntry(BaseModel):
    """Existence check result for one ``FeatureTableSpec``.

    Created fresh on every inspection; ``error`` carries the reason when the
    table state could not be determined (the entry is then reported missing).
    """

    model_config = ConfigDict(frozen=True)

    spec: FeatureTableSpec
    exists: bool
    error: str | None = None

    @property
    def table_name(self) -> str:
        return self.spec.table_name

    @property
    def feature(self) -> str:
        return self.spec.feature

    @property
    def method_name(self) -> str:
        return self.spec.method_name


class ColumnRequirement(BaseModel):
    """A column registered as required on an existing table."""

    model_config = ConfigDict(frozen=True)

    table: str
    column: str
    type: ColumnType = ColumnType.STRING
    nullable: bool = True
    feature: str = "unknown"

    def as_column_spec(self) -> ColumnSpec:
        return ColumnSpec(name=self.column, type=self.type, nullable=self.nullable)


class ColumnDrift(BaseModel):
    """Existence check result for one ``ColumnRequirement``."""

    model_config = ConfigDict(frozen=True)

    requirement: ColumnRequirement
    exists: bool
    table_exists: bool = True

    @property
    def table(self) -> str:
        return self.requirement.table

    @property
    def column(self) -> str:
        return self.requirement.column

    @property
    def feature(self) -> str:
        return self.requirement.feature


# ============================================================================
# Dialect
# ============================================================================

_BACKEND_ALIASES = {
    "postgres": "postgres",
    "postgresql": "postgres",
    "pg": "postgres",
    "psycopg": "postgres",
    "mysql": "mysql",
    "mysql2": "mysql",
    "mariadb": "mysql",
    "sqlite": "sqlite",
    "sqlite3": "sqlite",
}


def normalize_backend(tag: str) -> str:
    """Map a backend tag or alias to ``postgres``, ``mysql`` or ``sqlite``.

    Raises:
        ConfigurationError: If the tag is not a supported backend.
    """
    key = str(tag).lower().split("+", 1)[0]
    if key not in _BACKEND_ALIASES:
        raise ConfigurationError(
            f"Unsupported database backend: {tag}. Expected postgres, mysql, or sqlite."
        )
    return _BACKEND_ALIASES[key]


class DialectInfo(BaseModel):
    """Backend tag plus capability flags used for DDL generation.

    No live connection is needed to build one; ``SchemaConnection``
    implementations probe the capabilities they can.

    Example:
        >>> DialectInfo.for_backend("sqlite3").supports_partial_indexes
        True
        >>> DialectInfo.for_backend("mysql").supports_partial_indexes
        False
    """

    model_config = ConfigDict(frozen=True)

    backend: str = "postgres"
    supports_citext: bool = True
    supports_fractional_seconds: bool = True

    @field_validator("backend", mode="before")
    @classmethod
    def _normalize_backend(cls, value: str) -> str:
        return normalize_backend(value)

    @classmethod
    def for_backend(cls, tag: str, **capabilities: bool) -> "DialectInfo":
        return cls(backend=tag, **capabilities)

    @property
    def supports_partial_indexes(self) -> bool:
        return self.backend in ("postgres", "sqlite")

    @property
    def uses_citext(self) -> bool:
        return self.backend == "postgres" and self.supports_citext

    @property
    def uses_timestamp_precision(self) -> bool:
        return self.backend == "mysql" and self.supports_fractional_seconds

    def sqlalchemy_dialect(self) -> Dialect:
        """Instantiate the SQLAlchemy dialect used to compile DDL text."""
        if self.backend == "postgres":
            return postgresql.dialect()
        if self.backend == "mysql":
            return mysql.dialect()
        return sqlite.dialect()
