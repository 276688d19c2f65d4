"""Validation policy: turns a drift list and a configured mode into an outcome.

Modes form a severity ladder:

- ``silent`` (alias ``skip``): nothing is reported.
- ``warn``: the missing-table listing is logged as a warning.
- ``error``: a CRITICAL line plus the listing is logged as an error. The
  application keeps booting.
- ``raise``: initialization fails with ``ConfigurationError``.
- ``halt``: the process exits with status 1.

A callable can stand in for the mode. It receives the drift list (and,
when it accepts a second positional argument, the resolved table
configuration) and returns one of:

- ``"continue"``, ``None``, ``False`` or ``Outcome.continue_()``: keep going.
- ``"error"``, ``"raise"`` or ``True``: fail with the standard message.
- Any other string: fail with that string as the message.
- An ``Outcome``: used as-is.

Usage:
    from table_guard.policy import ValidationMode, resolve_table_policy

    mode = ValidationMode.parse("warn")
    outcome = resolve_table_policy(mode, missing_entries)
    if outcome.aborts:
        raise ConfigurationError(outcome.message)
"""

import inspect
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Any

from table_guard.errors import ConfigurationError
from table_guard.schema.models import ColumnDrift, DriftEntry

VALID_MODES = ("silent", "skip", "warn", "error", "raise", "halt")

MODE_ALIASES = {"skip": "silent", "exit": "halt"}


# ============================================================================
# Modes
# ============================================================================


@dataclass(frozen=True)
class ValidationMode:
    """A parsed validation mode: a named level or a user callback."""

    name: str
    callback: Callable[..., Any] | None = None

    @classmethod
    def parse(cls, value: Any) -> "ValidationMode":
        """Parse a configured mode value.

        Args:
            value: A mode name, ``None`` (silent), a ``ValidationMode``, an
                enum whose value is a mode name, or a callable.

        Raises:
            ConfigurationError: If *value* is not a recognized mode.

        Example:
            >>> ValidationMode.parse("skip").name
            'silent'
            >>> ValidationMode.parse(lambda missing: "continue").is_callback
            True
        """
        if isinstance(value, ValidationMode):
            return value
        if value is None:
            return cls("silent")
        if isinstance(value, Enum):
            value = value.value
        if isinstance(value, str):
            name = value.strip().lower().lstrip(":")
            name = MODE_ALIASES.get(name, name)
            if name in VALID_MODES:
                return cls(name)
        elif callable(value):
            return cls("callback", callback=value)

        raise ConfigurationError(
            f"Invalid table_guard_mode: {value!r}. "
            f"Expected silent, skip, warn, error, raise, halt, or a callable."
        )

    @property
    def is_callback(self) -> bool:
        return self.callback is not None

    @property
    def is_silent(self) -> bool:
        return self.name == "silent"

    def __str__(self) -> str:
        return self.name


class RemediationMode(str, Enum):
    """What to do about missing tables once the policy has run."""

    LOG = "log"  # log the migration text
    MIGRATION = "migration"  # write a migration file
    CREATE = "create"  # create missing tables now
    SYNC = "sync"  # drop then recreate missing tables (dev/test only)
    RECREATE = "recreate"  # drop and recreate every required table (dev/test only)
    DROP = "drop"  # drop every required table and migration tracking (dev/test only)

    @classmethod
    def parse(cls, value: "str | RemediationMode | None") -> "RemediationMode | None":
        """Parse a configured remediation value; ``None`` disables remediation.

        Raises:
            ConfigurationError: If *value* is not a remediation mode.
        """
        if value is None or isinstance(value, RemediationMode):
            return value
        name = str(value).strip().lower().lstrip(":")
        if not name or name == "none":
            return None
        try:
            return cls(name)
        except ValueError:
            raise ConfigurationError(
                f"Invalid table_guard remediation mode: {value!r}. "
                f"Expected {', '.join(m.value for m in cls)}, or None."
            ) from None

    @property
    def destructive(self) -> bool:
        return self in (RemediationMode.SYNC, RemediationMode.RECREATE, RemediationMode.DROP)


# ============================================================================
# Outcome
# ============================================================================


class OutcomeKind(str, Enum):
    CONTINUE = "continue"
    LOG_WARNING = "log_warning"
    LOG_ERROR = "log_error"
    FAIL = "fail"
    HALT = "halt"


@dataclass(frozen=True)
class Outcome:
    """Decision produced by the policy; the caller acts on it."""

    kind: OutcomeKind
    message: str = ""

    @classmethod
    def continue_(cls) -> "Outcome":
        return cls(OutcomeKind.CONTINUE)

    @classmethod
    def log_warning(cls, message: str) -> "Outcome":
        return cls(OutcomeKind.LOG_WARNING, message)

    @classmethod
    def log_error(cls, message: str) -> "Outcome":
        return cls(OutcomeKind.LOG_ERROR, message)

    @classmethod
    def fail(cls, message: str) -> "Outcome":
        return cls(OutcomeKind.FAIL, message)

    @classmethod
    def halt(cls, message: str) -> "Outcome":
        return cls(OutcomeKind.HALT, message)

    @property
    def aborts(self) -> bool:
        """True when initialization must not proceed."""
        return self.kind in (OutcomeKind.FAIL, OutcomeKind.HALT)


# ============================================================================
# Resolution
# ============================================================================


def _accepts_context(callback: Callable[..., Any]) -> bool:
    """True when *callback* takes a second positional argument."""
    try:
        params = inspect.signature(callback).parameters.values()
    except (TypeError, ValueError):
        return False
    positional = [
        p for p in params if p.kind in (p.POSITIONAL_ONLY, p.POSITIONAL_OR_KEYWORD)
    ]
    return len(positional) >= 2 or any(p.kind == p.VAR_POSITIONAL for p in params)


def interpret_callback_result(result: Any, standard_message: str) -> Outcome:
    """Map a callback return value to an ``Outcome``.

    Raises:
        ConfigurationError: If the return value has an unsupported type.

    Example:
        >>> interpret_callback_result("continue", "std").kind.value
        'continue'
        >>> interpret_callback_result("tables gone", "std").message
        'tables gone'
    """
    if isinstance(result, Outcome):
        return result
    if result is None or result is False:
        return Outcome.continue_()
    if result is True:
        return Outcome.fail(standard_message)
    if isinstance(result, Enum):
        result = result.value
    if isinstance(result, str):
        tag = result.strip().lstrip(":").lower()
        if tag == "continue":
            return Outcome.continue_()
        if tag in ("error", "raise") or not tag:
            return Outcome.fail(standard_message)
        return Outcome.fail(result)

    raise ConfigurationError(
        f"Invalid table_guard_mode callback result: {result!r}. "
        f"Expected 'continue', 'error', a message string, or an Outcome."
    )


def resolve_outcome(
    mode: ValidationMode,
    drift: Sequence[DriftEntry] | Sequence[ColumnDrift],
    message: str,
    critical_message: str,
    context: Any = None,
) -> Outcome:
    """Decide what to do about *drift* under *mode*.

    Empty drift always continues, whatever the mode.

    Args:
        mode: Parsed validation mode.
        drift: Missing entries (tables or columns).
        message: Standard multi-line listing.
        critical_message: One-line CRITICAL summary.
        context: Extra argument for two-argument callbacks.
    """
    if not drift:
        return Outcome.continue_()

    if mode.callback is not None:
        if _accepts_context(mode.callback):
            result = mode.callback(list(drift), context)
        else:
            result = mode.callback(list(drift))
        return interpret_callback_result(result, message)

    if mode.name == "silent":
        return Outcome.continue_()
    if mode.name == "warn":
        return Outcome.log_warning(message)
    if mode.name == "error":
        return Outcome.log_error(f"{critical_message}\n{message}")
    if mode.name == "raise":
        return Outcome.fail(message)
    if mode.name == "halt":
        return Outcome.halt(critical_message)

    raise ConfigurationError(f"Invalid table_guard_mode: {mode.name!r}")


# ============================================================================
# Messages
# ============================================================================


def _remediation_hints(remediation: RemediationMode | None, subject: str) -> list[str]:
    if remediation is not None:
        return []
    return [
        f"Quick fix for development ({subject} automatically):",
        "  remediation = \"create\"",
        "",
        "Other options:",
        "  remediation = \"log\"        # Show migration code",
        "  remediation = \"migration\"  # Generate migration file",
        "",
    ]


def build_missing_tables_message(
    missing: Sequence[DriftEntry],
    remediation: RemediationMode | None = None,
) -> str:
    """Multi-line listing of missing tables with hints for fixing them."""
    lines = ["[table_guard] Missing required database tables!", ""]
    for entry in missing:
        line = f"  - Table: {entry.table_name} (feature: {entry.feature}, method: {entry.method_name})"
        if entry.error:
            line += f" [could not inspect: {entry.error}]"
        lines.append(line)

    tables = list(dict.fromkeys(entry.table_name for entry in missing))
    lines += ["", "DATABASE OPERATIONS WILL FAIL UNTIL TABLES ARE CREATED", ""]
    lines += _remediation_hints(remediation, "creates tables")
    lines.append("Required tables:")
    lines += [f"  - {table}" for table in tables]
    lines += [
        "",
        "To disable checking: mode = \"silent\"",
        f"To skip specific tables: skip_tables = {tables!r}",
    ]
    return "\n".join(lines)


def build_missing_tables_error(missing: Sequence[DriftEntry]) -> str:
    """One-line CRITICAL summary of missing tables."""
    table_list = ", ".join(entry.table_name for entry in missing)
    return f"CRITICAL: Missing required database tables - {table_list}"


def build_missing_columns_message(
    missing: Sequence[ColumnDrift],
    remediation: RemediationMode | None = None,
) -> str:
    """Multi-line listing of missing columns grouped by table."""
    lines = ["[table_guard] Missing required database columns!", ""]
    by_table: dict[str, list[ColumnDrift]] = {}
    for drift in missing:
        by_table.setdefault(drift.table, []).append(drift)
    for table, columns in by_table.items():
        lines.append(f"  Table: {table}")
        for drift in columns:
            lines.append(
                f"    - Column: {drift.column} "
                f"(type: {drift.requirement.type.value}, feature: {drift.feature})"
            )

    lines += ["", "DATABASE OPERATIONS MAY FAIL UNTIL COLUMNS ARE ADDED", ""]
    lines += _remediation_hints(remediation, "adds columns")
    lines.append("Required columns:")
    lines += [
        f"  - {d.table}.{d.column} ({d.requirement.type.value}, {d.feature})" for d in missing
    ]
    lines += ["", "To disable checking: mode = \"silent\""]
    return "\n".join(lines)


def build_missing_columns_error(missing: Sequence[ColumnDrift]) -> str:
    """One-line CRITICAL summary of missing columns."""
    column_list = ", ".join(f"{d.table}.{d.column}" for d in missing)
    return f"CRITICAL: Missing required database columns - {column_list}"


def resolve_table_policy(
    mode: ValidationMode,
    missing: Sequence[DriftEntry],
    remediation: RemediationMode | None = None,
    context: Any = None,
) -> Outcome:
    """Resolve *mode* against missing tables with the standard messages."""
    if not missing:
        return Outcome.continue_()
    return resolve_outcome(
        mode,
        missing,
        build_missing_tables_message(missing, remediation),
        build_missing_tables_error(missing),
        context,
    )


def resolve_column_policy(
    mode: ValidationMode,
    missing: Sequence[ColumnDrift],
    remediation: RemediationMode | None = None,
    context: Any = None,
) -> Outcome:
    """Resolve *mode* against missing columns with the standard messages."""
    if not missing:
        return Outcome.continue_()
    return resolve_outcome(
        mode,
        missing,
        build_missing_columns_message(missing, remediation),
        build_missing_columns_error(missing),
        context,
    )
