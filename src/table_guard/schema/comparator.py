"""Column requirement comparison using set operations.

Compares registered column requirements against the actual columns of the
database. Pure logic -- no I/O, no database connections.

Usage:
    from table_guard.schema.comparator import find_missing_columns
    from table_guard.schema.introspector import SchemaInspector

    actual = SchemaInspector().column_names({r.table for r in requirements}, connection)
    missing = find_missing_columns(actual, requirements)
"""

from collections.abc import Iterable

from table_guard.schema.models import ColumnDrift, ColumnRequirement


def compare_columns(
    actual_columns: dict[str, set[str]],
    requirements: Iterable[ColumnRequirement],
) -> list[ColumnDrift]:
    """Report the status of every requirement, in registration order.

    Args:
        actual_columns: Dict mapping existing table name to its column names,
            as returned by ``SchemaInspector.column_names()``.
        requirements: Registered column requirements.

    Returns:
        One ``ColumnDrift`` per requirement. A requirement on a table that
        does not exist has ``table_exists=False`` and ``exists=False``.

    Examples:
        >>> req = ColumnRequirement(table="accounts", column="name")
        >>> [d.exists for d in compare_columns({"accounts": {"id", "name"}}, [req])]
        [True]
        >>> compare_columns({}, [req])[0].table_exists
        False
    """
    drift: list[ColumnDrift] = []
    for requirement in requirements:
        columns = actual_columns.get(requirement.table)
        if columns is None:
            drift.append(ColumnDrift(requirement=requirement, exists=False, table_exists=False))
        else:
            drift.append(ColumnDrift(requirement=requirement, exists=requirement.column in columns))
    return drift


def find_missing_columns(
    actual_columns: dict[str, set[str]],
    requirements: Iterable[ColumnRequirement],
) -> list[ColumnDrift]:
    """Return the requirements whose table exists but lacks the column.

    Requirements on missing tables are skipped: the table check already
    reports those.

    Examples:
        >>> reqs = [
        ...     ColumnRequirement(table="accounts", column="name"),
        ...     ColumnRequirement(table="profiles", column="bio"),
        ... ]
        >>> [d.column for d in find_missing_columns({"accounts": {"id"}}, reqs)]
        ['name']
    """
    return [
        d for d in compare_columns(actual_columns, requirements) if d.table_exists and not d.exists
    ]
