"""Schema connection protocol definition.

Defines the ``SchemaConnection`` Protocol the inspector and DDL generator
talk to. Implementations wrap a live database handle owned by the caller;
they never close or pool it.

Usage:
    from table_guard.adapters.base import SchemaConnection

    def report(conn: SchemaConnection) -> None:
        print(conn.backend, sorted(conn.table_names()))
        conn.execute("CREATE TABLE IF NOT EXISTS notes (id INTEGER PRIMARY KEY)")
"""

from collections.abc import Iterable
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from table_guard.schema.models import DialectInfo


@runtime_checkable
class SchemaConnection(Protocol):
    """Minimal database surface needed to detect and repair missing tables."""

    @property
    def backend(self) -> str:
        """Backend tag: ``postgres``, ``mysql`` or ``sqlite``."""
        ...

    def table_names(self) -> Iterable[str]:
        """List existing table names.

        Raises:
            Exception: Whatever the driver raises when the catalog cannot be
                read (missing permissions, lost connection).
        """
        ...

    def table_exists(self, name: str) -> bool:
        """Check whether a single table exists."""
        ...

    def column_names(self, table: str) -> Iterable[str]:
        """List the column names of an existing table."""
        ...

    def execute(self, sql: str) -> None:
        """Execute one DDL statement."""
        ...

    def dialect_info(self) -> "DialectInfo":
        """Describe the backend and its DDL capabilities."""
        ...
