"""Tests for the validation policy.

Verifies:
- Mode parsing, aliases and invalid values
- The severity ladder for missing tables
- Empty drift continues under every mode
- The callback contract (return values, optional context argument)
- Message content for tables and columns
"""

import pytest

from table_guard.errors import ConfigurationError
from table_guard.policy import (
    Outcome,
    OutcomeKind,
    RemediationMode,
    ValidationMode,
    build_missing_columns_error,
    build_missing_columns_message,
    build_missing_tables_error,
    build_missing_tables_message,
    interpret_callback_result,
    resolve_column_policy,
    resolve_table_policy,
)
from table_guard.schema.models import ColumnDrift, ColumnRequirement, DriftEntry
from table_guard.schema.registry import builtin_registry


@pytest.fixture
def missing() -> list[DriftEntry]:
    return [
        DriftEntry(spec=spec, exists=False)
        for spec in builtin_registry().resolve(["base", "otp"])
    ]


@pytest.fixture
def missing_columns() -> list[ColumnDrift]:
    requirement = ColumnRequirement(table="accounts", column="stripe_id", feature="billing")
    return [ColumnDrift(requirement=requirement, exists=False)]


# ============================================================================
# Parsing
# ============================================================================


class TestValidationModeParse:
    """Verify ValidationMode.parse()."""

    @pytest.mark.parametrize(
        "value,name",
        [
            ("silent", "silent"),
            ("skip", "silent"),
            (None, "silent"),
            ("warn", "warn"),
            ("error", "error"),
            ("raise", "raise"),
            ("halt", "halt"),
            (":warn", "warn"),
            (" RAISE ", "raise"),
        ],
    )
    def test_named_modes(self, value, name: str) -> None:
        """Names, aliases and symbol-style values parse to canonical names."""
        mode = ValidationMode.parse(value)
        assert mode.name == name
        assert mode.is_callback is False

    def test_callable(self) -> None:
        """A callable becomes a callback mode."""
        mode = ValidationMode.parse(lambda missing: "continue")
        assert mode.is_callback is True
        assert mode.is_silent is False

    def test_passthrough(self) -> None:
        """A parsed mode parses to itself."""
        mode = ValidationMode.parse("warn")
        assert ValidationMode.parse(mode) is mode

    @pytest.mark.parametrize("value", ["loud", "", 42, 3.5, ["warn"]])
    def test_invalid(self, value) -> None:
        """Anything else is a configuration error listing the valid modes."""
        with pytest.raises(ConfigurationError, match="Invalid table_guard_mode"):
            ValidationMode.parse(value)


class TestRemediationModeParse:
    """Verify RemediationMode.parse()."""

    @pytest.mark.parametrize("value", [None, "", "none"])
    def test_disabled(self, value) -> None:
        """Empty values disable remediation."""
        assert RemediationMode.parse(value) is None

    def test_named(self) -> None:
        """Known names parse to members."""
        assert RemediationMode.parse("create") is RemediationMode.CREATE
        assert RemediationMode.parse(":migration") is RemediationMode.MIGRATION

    def test_invalid(self) -> None:
        """Unknown names are configuration errors."""
        with pytest.raises(ConfigurationError, match="Invalid table_guard remediation mode"):
            RemediationMode.parse("explode")

    def test_destructive(self) -> None:
        """sync, recreate and drop are the destructive remediations."""
        assert {m for m in RemediationMode if m.destructive} == {
            RemediationMode.SYNC,
            RemediationMode.RECREATE,
            RemediationMode.DROP,
        }


# ============================================================================
# Ladder
# ============================================================================


class TestSeverityLadder:
    """Verify each named mode maps missing tables to its outcome."""

    def test_silent(self, missing: list[DriftEntry]) -> None:
        outcome = resolve_table_policy(ValidationMode.parse("silent"), missing)
        assert outcome == Outcome.continue_()

    def test_warn(self, missing: list[DriftEntry]) -> None:
        """warn logs the full listing."""
        outcome = resolve_table_policy(ValidationMode.parse("warn"), missing)
        assert outcome.kind == OutcomeKind.LOG_WARNING
        assert "Missing required database tables" in outcome.message
        assert outcome.aborts is False

    def test_error(self, missing: list[DriftEntry]) -> None:
        """error logs the CRITICAL line followed by the listing."""
        outcome = resolve_table_policy(ValidationMode.parse("error"), missing)
        assert outcome.kind == OutcomeKind.LOG_ERROR
        first, rest = outcome.message.split("\n", 1)
        assert first == "CRITICAL: Missing required database tables - accounts, account_otp_keys"
        assert rest.startswith("[table_guard] Missing required database tables!")

    def test_raise(self, missing: list[DriftEntry]) -> None:
        """raise fails with the listing."""
        outcome = resolve_table_policy(ValidationMode.parse("raise"), missing)
        assert outcome.kind == OutcomeKind.FAIL
        assert "accounts" in outcome.message
        assert outcome.aborts is True

    def test_halt(self, missing: list[DriftEntry]) -> None:
        """halt carries the CRITICAL line."""
        outcome = resolve_table_policy(ValidationMode.parse("halt"), missing)
        assert outcome.kind == OutcomeKind.HALT
        assert outcome.message.startswith("CRITICAL:")
        assert outcome.aborts is True

    @pytest.mark.parametrize("mode", ["silent", "warn", "error", "raise", "halt"])
    def test_no_drift_continues(self, mode: str) -> None:
        """Nothing missing means continue, whatever the mode."""
        assert resolve_table_policy(ValidationMode.parse(mode), []) == Outcome.continue_()
        assert resolve_column_policy(ValidationMode.parse(mode), []) == Outcome.continue_()

    def test_columns_raise(self, missing_columns: list[ColumnDrift]) -> None:
        """Missing columns follow the same ladder."""
        outcome = resolve_column_policy(ValidationMode.parse("raise"), missing_columns)
        assert outcome.kind == OutcomeKind.FAIL
        assert "accounts.stripe_id" in outcome.message


# ============================================================================
# Callbacks
# ============================================================================


class TestCallbacks:
    """Verify the callback contract."""

    def test_callback_receives_drift(self, missing: list[DriftEntry]) -> None:
        """A one-argument callback gets the missing entries."""
        seen = []

        def callback(entries):
            seen.extend(entries)
            return "continue"

        outcome = resolve_table_policy(ValidationMode.parse(callback), missing)
        assert outcome == Outcome.continue_()
        assert [e.table_name for e in seen] == ["accounts", "account_otp_keys"]

    def test_callback_receives_context(self, missing: list[DriftEntry]) -> None:
        """A two-argument callback also gets the table configuration."""
        seen = {}

        def callback(entries, config):
            seen["config"] = config
            return None

        resolve_table_policy(ValidationMode.parse(callback), missing, context=["cfg"])
        assert seen["config"] == ["cfg"]

    def test_callback_not_called_without_drift(self) -> None:
        """Callbacks only run when something is missing."""
        calls = []

        def callback(entries):
            calls.append(entries)

        resolve_table_policy(ValidationMode.parse(callback), [])
        assert calls == []

    def test_callback_error(self, missing: list[DriftEntry]) -> None:
        """'error' fails with the standard message."""
        outcome = resolve_table_policy(ValidationMode.parse(lambda entries: "error"), missing)
        assert outcome.kind == OutcomeKind.FAIL
        assert "Missing required database tables" in outcome.message

    def test_callback_custom_message(self, missing: list[DriftEntry]) -> None:
        """Any other string fails with exactly that message."""
        outcome = resolve_table_policy(
            ValidationMode.parse(lambda entries: "Run migrations first"), missing
        )
        assert outcome == Outcome.fail("Run migrations first")

    def test_callback_outcome(self, missing: list[DriftEntry]) -> None:
        """An Outcome is used as-is."""
        outcome = resolve_table_policy(
            ValidationMode.parse(lambda entries: Outcome.log_warning("custom")), missing
        )
        assert outcome == Outcome.log_warning("custom")

    @pytest.mark.parametrize(
        "result,kind",
        [
            (None, OutcomeKind.CONTINUE),
            (False, OutcomeKind.CONTINUE),
            ("continue", OutcomeKind.CONTINUE),
            (":continue", OutcomeKind.CONTINUE),
            (True, OutcomeKind.FAIL),
            ("raise", OutcomeKind.FAIL),
            ("  ", OutcomeKind.FAIL),
        ],
    )
    def test_interpret_result(self, result, kind: OutcomeKind) -> None:
        """Return values map to outcomes."""
        assert interpret_callback_result(result, "std").kind == kind

    def test_interpret_blank_uses_standard_message(self) -> None:
        """A blank string fails with the standard message."""
        assert interpret_callback_result("", "std") == Outcome.fail("std")

    def test_interpret_invalid_type(self) -> None:
        """Unsupported return types are configuration errors."""
        with pytest.raises(ConfigurationError, match="callback result"):
            interpret_callback_result(42, "std")


# ============================================================================
# Messages
# ============================================================================


class TestMessages:
    """Verify message content."""

    def test_tables_message_lists_each_table(self, missing: list[DriftEntry]) -> None:
        message = build_missing_tables_message(missing)
        assert "  - Table: accounts (feature: base, method: accounts_table)" in message
        assert "  - Table: account_otp_keys (feature: otp, method: otp_keys_table)" in message
        assert "Required tables:" in message
        assert "skip_tables = ['accounts', 'account_otp_keys']" in message

    def test_tables_message_hints_without_remediation(self, missing: list[DriftEntry]) -> None:
        """Fix hints only appear when no remediation is configured."""
        assert 'remediation = "create"' in build_missing_tables_message(missing)
        assert 'remediation = "create"' not in build_missing_tables_message(
            missing, RemediationMode.MIGRATION
        )

    def test_tables_message_shows_inspection_error(self, missing: list[DriftEntry]) -> None:
        """Entries whose state was unknown say why."""
        entry = missing[0].model_copy(update={"error": "OperationalError: locked"})
        message = build_missing_tables_message([entry])
        assert "[could not inspect: OperationalError: locked]" in message

    def test_tables_error(self, missing: list[DriftEntry]) -> None:
        assert (
            build_missing_tables_error(missing)
            == "CRITICAL: Missing required database tables - accounts, account_otp_keys"
        )

    def test_columns_message(self, missing_columns: list[ColumnDrift]) -> None:
        message = build_missing_columns_message(missing_columns)
        assert "[table_guard] Missing required database columns!" in message
        assert "  Table: accounts" in message
        assert "    - Column: stripe_id (type: string, feature: billing)" in message

    def test_columns_error(self, missing_columns: list[ColumnDrift]) -> None:
        assert (
            build_missing_columns_error(missing_columns)
            == "CRITICAL: Missing required database columns - accounts.stripe_id"
        )
