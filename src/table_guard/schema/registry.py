"""Registry of the tables each authentication feature requires.

Maps feature names to ``FeatureTableSpec`` templates and resolves them
against a table prefix. The module-level default registry is preloaded
with the built-in features; third-party features plug in through
``register_feature()``.

Usage:
    from table_guard.schema.registry import default_registry

    specs = default_registry().resolve(["base", "otp"], prefix="user")
    [spec.table_name for spec in specs]
    # ['users', 'user_otp_keys']
"""

from collections.abc import Iterable
from enum import Enum

from table_guard.errors import ConfigurationError
from table_guard.schema.models import (
    ACCOUNT_ID_PLACEHOLDER,
    DEFAULT_PREFIX,
    ColumnSpec,
    ColumnType,
    FeatureTableSpec,
    ForeignKeySpec,
    IndexSpec,
    TableKind,
    TableStructure,
)

ACCOUNTS = "%plural%"
ACCOUNT_ID = ACCOUNT_ID_PLACEHOLDER
ACCOUNT_ID_OVERRIDE = "%singular%_id"


def _feature_name(feature: str | Enum) -> str:
    if isinstance(feature, Enum):
        return str(feature.value)
    return str(feature)


class TableRegistry:
    """Feature name -> required table templates.

    Features keep their registration order; tables keep their declaration
    order within a feature.
    """

    def __init__(self) -> None:
        self._features: dict[str, tuple[FeatureTableSpec, ...]] = {}

    @property
    def features(self) -> list[str]:
        """Registered feature names, in registration order."""
        return list(self._features)

    def __contains__(self, feature: object) -> bool:
        return _feature_name(feature) in self._features  # type: ignore[arg-type]

    def register(
        self,
        feature: str,
        tables: Iterable[FeatureTableSpec],
        replace: bool = False,
    ) -> None:
        """Register the table templates for *feature*.

        Args:
            feature: Feature name.
            tables: Unresolved table specs owned by the feature.
            replace: Overwrite an existing registration instead of failing.

        Raises:
            ConfigurationError: If the feature is already registered (and
                *replace* is false), declares no tables, or declares the same
                method name twice.
        """
        feature = _feature_name(feature)
        if feature in self._features and not replace:
            raise ConfigurationError(f"Feature already registered: {feature}")

        specs = tuple(
            spec if spec.feature == feature else spec.model_copy(update={"feature": feature})
            for spec in tables
        )
        if not specs:
            raise ConfigurationError(f"Feature {feature} declares no tables")

        seen: set[str] = set()
        for spec in specs:
            if spec.method_name in seen:
                raise ConfigurationError(
                    f"Duplicate table method {spec.method_name} in feature {feature}"
                )
            seen.add(spec.method_name)

        self._features[feature] = specs

    def templates_for(self, feature: str | Enum) -> list[FeatureTableSpec]:
        """Return the unresolved table specs of *feature*.

        Raises:
            ConfigurationError: If no tables are registered for the feature.
        """
        name = _feature_name(feature)
        if name not in self._features:
            raise ConfigurationError(f"No migration template for feature: {name}")
        return list(self._features[name])

    def resolve(
        self,
        features: Iterable[str | Enum],
        prefix: str = DEFAULT_PREFIX,
    ) -> list[FeatureTableSpec]:
        """Resolve every table required by *features* against *prefix*.

        Features are de-duplicated, keeping first occurrence.

        Raises:
            ConfigurationError: If *features* is empty, names an unknown
                feature, or two specs resolve to the same table name.
        """
        names = list(dict.fromkeys(_feature_name(f) for f in features))
        if not names:
            raise ConfigurationError("No features specified")

        resolved: list[FeatureTableSpec] = []
        owners: dict[str, str] = {}
        for feature in names:
            for template in self.templates_for(feature):
                spec = template.resolve(prefix or DEFAULT_PREFIX)
                if spec.table_name in owners:
                    raise ConfigurationError(
                        f"Table {spec.table_name} required by both "
                        f"{owners[spec.table_name]} and {feature}"
                    )
                owners[spec.table_name] = feature
                resolved.append(spec)
        return resolved


# ============================================================================
# Built-in feature tables
# ============================================================================


def _key(name: str = "id", **kwargs) -> ColumnSpec:
    return ColumnSpec(name=name, type=ColumnType.KEY, **kwargs)


def _string(name: str, **kwargs) -> ColumnSpec:
    return ColumnSpec(name=name, type=ColumnType.STRING, **kwargs)


def _integer(name: str, **kwargs) -> ColumnSpec:
    return ColumnSpec(name=name, type=ColumnType.INTEGER, **kwargs)


def _datetime(name: str, now: bool = False, **kwargs) -> ColumnSpec:
    return ColumnSpec(name=name, type=ColumnType.DATETIME, default_now=now, **kwargs)


def _keyed_by_account(*columns: ColumnSpec, primary_key: tuple[str, ...] = ("id",)) -> TableStructure:
    """Structure whose ``id`` column is also the foreign key to the accounts table."""
    return TableStructure(
        columns=(_key(), *columns),
        primary_key=primary_key,
        foreign_keys=(ForeignKeySpec(columns=("id",), references=ACCOUNTS),),
    )


def _owned_by_account(
    *columns: ColumnSpec,
    primary_key: tuple[str, ...] = ("id",),
    serial: bool = True,
    indexes: tuple[IndexSpec, ...] = (),
) -> TableStructure:
    """Structure referencing the accounts table through an overridable column."""
    leading = (_key(autoincrement=True),) if serial else ()
    return TableStructure(
        columns=(*leading, _key(ACCOUNT_ID), *columns),
        primary_key=primary_key,
        foreign_keys=(
            ForeignKeySpec(columns=(ACCOUNT_ID,), references=ACCOUNTS, on_delete="CASCADE"),
        ),
        indexes=indexes,
        account_id_column=ACCOUNT_ID_OVERRIDE,
    )


def _spec(feature: str, method_name: str, table_name: str, structure: TableStructure) -> FeatureTableSpec:
    return FeatureTableSpec(
        method_name=method_name,
        feature=feature,
        table_name=table_name,
        structure=structure,
    )


ACCOUNTS_STRUCTURE = TableStructure(
    columns=(
        _key(autoincrement=True),
        ColumnSpec(name="email", type=ColumnType.EMAIL),
        _integer("status", default=1),
        _string("password_hash", nullable=True),
    ),
    indexes=(
        IndexSpec(
            name="index_%plural%_on_email",
            columns=("email",),
            unique=True,
            where="status IN (1, 2)",
        ),
    ),
    kind=TableKind.PRIMARY,
)

BUILTIN_FEATURES: dict[str, tuple[FeatureTableSpec, ...]] = {
    "base": (_spec("base", "accounts_table", ACCOUNTS, ACCOUNTS_STRUCTURE),),
    "remember": (
        _spec(
            "remember",
            "remember_table",
            "%singular%_remember_keys",
            _keyed_by_account(_string("key"), _datetime("deadline")),
        ),
    ),
    "verify_account": (
        _spec(
            "verify_account",
            "verify_account_table",
            "%singular%_verification_keys",
            _keyed_by_account(
                _string("key"),
                _datetime("requested_at", now=True),
                _datetime("email_last_sent", now=True),
            ),
        ),
    ),
    "verify_login_change": (
        _spec(
            "verify_login_change",
            "verify_login_change_table",
            "%singular%_login_change_keys",
            _keyed_by_account(_string("key"), _string("login"), _datetime("deadline")),
        ),
    ),
    "reset_password": (
        _spec(
            "reset_password",
            "reset_password_table",
            "%singular%_password_reset_keys",
            _keyed_by_account(
                _string("key"), _datetime("deadline"), _datetime("email_last_sent", now=True)
            ),
        ),
    ),
    "email_auth": (
        _spec(
            "email_auth",
            "email_auth_table",
            "%singular%_email_auth_keys",
            _keyed_by_account(
                _string("key"), _datetime("deadline"), _datetime("email_last_sent", now=True)
            ),
        ),
    ),
    "otp": (
        _spec(
            "otp",
            "otp_keys_table",
            "%singular%_otp_keys",
            _keyed_by_account(
                _string("key"),
                _integer("num_failures", default=0),
                _datetime("last_use", now=True),
            ),
        ),
    ),
    "otp_unlock": (
        _spec(
            "otp_unlock",
            "otp_unlock_table",
            "%singular%_otp_unlocks",
            _keyed_by_account(
                _integer("num_successes", default=1),
                _datetime("next_auth_attempt_after", now=True),
            ),
        ),
    ),
    "sms_codes": (
        _spec(
            "sms_codes",
            "sms_codes_table",
            "%singular%_sms_codes",
            _keyed_by_account(
                _string("phone_number"),
                _integer("num_failures", nullable=True),
                _string("code", nullable=True),
                _datetime("code_issued_at", now=True),
            ),
        ),
    ),
    "recovery_codes": (
        _spec(
            "recovery_codes",
            "recovery_codes_table",
            "%singular%_recovery_codes",
            _keyed_by_account(_string("code"), primary_key=("id", "code")),
        ),
    ),
    "webauthn": (
        _spec(
            "webauthn",
            "webauthn_keys_table",
            "%singular%_webauthn_keys",
            _owned_by_account(
                _string("webauthn_id"),
                _string("public_key"),
                _integer("sign_count"),
                _datetime("last_use", now=True),
                primary_key=(ACCOUNT_ID, "webauthn_id"),
                serial=False,
            ),
        ),
        _spec(
            "webauthn",
            "webauthn_user_ids_table",
            "%singular%_webauthn_user_ids",
            _keyed_by_account(_string("webauthn_id")),
        ),
    ),
    "lockout": (
        _spec(
            "lockout",
            "account_login_failures_table",
            "%singular%_login_failures",
            _keyed_by_account(_integer("number", default=1)),
        ),
        _spec(
            "lockout",
            "account_lockouts_table",
            "%singular%_lockouts",
            _keyed_by_account(
                _string("key"),
                _datetime("deadline"),
                _datetime("email_last_sent", nullable=True),
            ),
        ),
    ),
    "active_sessions": (
        _spec(
            "active_sessions",
            "active_sessions_table",
            "%singular%_active_session_keys",
            _owned_by_account(
                _string("session_id"),
                _datetime("created_at", now=True),
                _datetime("last_use", now=True),
                primary_key=(ACCOUNT_ID, "session_id"),
                serial=False,
            ),
        ),
    ),
    "account_expiration": (
        _spec(
            "account_expiration",
            "account_activity_table",
            "%singular%_activity_times",
            _keyed_by_account(
                _datetime("last_activity_at"),
                _datetime("last_login_at"),
                _datetime("expired_at", nullable=True),
            ),
        ),
    ),
    "password_expiration": (
        _spec(
            "password_expiration",
            "password_expiration_table",
            "%singular%_password_change_times",
            _keyed_by_account(_datetime("changed_at", now=True)),
        ),
    ),
    "single_session": (
        _spec(
            "single_session",
            "single_session_table",
            "%singular%_session_keys",
            _keyed_by_account(_string("key")),
        ),
    ),
    "audit_logging": (
        _spec(
            "audit_logging",
            "audit_logging_table",
            "%singular%_authentication_audit_logs",
            _owned_by_account(
                _datetime("at", now=True),
                ColumnSpec(name="message", type=ColumnType.TEXT),
                ColumnSpec(name="metadata", type=ColumnType.JSON, nullable=True),
                indexes=(
                    IndexSpec(name="%singular%_audit_id_at_idx", columns=(ACCOUNT_ID, "at")),
                    IndexSpec(name="%singular%_audit_at_idx", columns=("at",)),
                ),
            ),
        ),
    ),
    "disallow_password_reuse": (
        _spec(
            "disallow_password_reuse",
            "previous_password_hash_table",
            "%singular%_previous_password_hashes",
            _owned_by_account(_string("password_hash")),
        ),
    ),
    "jwt_refresh": (
        _spec(
            "jwt_refresh",
            "jwt_refresh_token_table",
            "%singular%_jwt_refresh_keys",
            _owned_by_account(
                _string("key"),
                _datetime("deadline"),
                indexes=(IndexSpec(name="%singular%_jwt_rk_id_idx", columns=(ACCOUNT_ID,)),),
            ),
        ),
    ),
}


def builtin_registry() -> TableRegistry:
    """Build a fresh registry holding only the built-in features."""
    registry = TableRegistry()
    for feature, tables in BUILTIN_FEATURES.items():
        registry.register(feature, tables)
    return registry


_default_registry: TableRegistry | None = None


def default_registry() -> TableRegistry:
    """Return the process-wide registry, creating it on first use."""
    global _default_registry
    if _default_registry is None:
        _default_registry = builtin_registry()
    return _default_registry


def register_feature(
    feature: str,
    tables: Iterable[FeatureTableSpec],
    replace: bool = False,
) -> None:
    """Register a third-party feature on the default registry."""
    default_registry().register(feature, tables, replace=replace)
