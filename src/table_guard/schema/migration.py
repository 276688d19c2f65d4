"""Alembic migration scripts for generated DDL.

Renders create/drop statements as a revision script whose ``upgrade()``
and ``downgrade()`` run the statements through ``op.execute``, and writes
it under a timestamped file name.

Usage:
    from table_guard.schema.migration import migration_label, write_migration

    label = migration_label(["base", "otp"], prefix="account")
    path = write_migration(generator.generate_migration(), "migrations/versions", label)
    # migrations/versions/20260101120000_create_auth_base_otp.py
"""

import uuid
from collections.abc import Iterable, Sequence
from datetime import datetime
from enum import Enum
from pathlib import Path

from table_guard.schema.models import DEFAULT_PREFIX

DEFAULT_MIGRATION_PATH = "migrations/versions"

TIMESTAMP_FORMAT = "%Y%m%d%H%M%S"

_TEMPLATE = '''"""{message}

Revision ID: {revision}
Revises: {down_revision_text}
Create Date: {created}

"""

from typing import Sequence, Union

from alembic import op

# revision identifiers, used by Alembic.
revision: str = {revision!r}
down_revision: Union[str, Sequence[str], None] = {down_revision!r}
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
{upgrade}


def downgrade() -> None:
{downgrade}
'''


def migration_label(features: Iterable[str | Enum], prefix: str | None = DEFAULT_PREFIX) -> str:
    """Build the label used in migration file names.

    Example:
        >>> migration_label(["base", "otp"])
        'auth_base_otp'
        >>> migration_label(["webauthn"], prefix="user")
        'auth_user_webauthn'
    """
    parts = ["auth"]
    if prefix and prefix != DEFAULT_PREFIX:
        parts.append(prefix)
    parts.extend(str(f.value if isinstance(f, Enum) else f) for f in features)
    return "_".join(parts)


def migration_filename(label: str, now: datetime | None = None) -> str:
    """``<YYYYMMDDHHMMSS>_create_<label>.py``"""
    timestamp = (now or datetime.now()).strftime(TIMESTAMP_FORMAT)
    return f"{timestamp}_create_{label}.py"


def _literal(sql: str) -> str:
    if '"""' in sql or "\\" in sql or "\n" not in sql:
        return repr(sql)
    body = "\n".join(f"        {line}" if line else "" for line in sql.splitlines())
    return f'"""\n{body}\n        """'


def _body(statements: Sequence[str]) -> str:
    if not statements:
        return "    pass"
    return "\n".join(f"    op.execute({_literal(sql)})" for sql in statements)


def render_migration(
    upgrade: Sequence[str],
    downgrade: Sequence[str],
    revision: str | None = None,
    message: str | None = None,
    created: datetime | None = None,
    down_revision: str | None = None,
) -> str:
    """Render an Alembic revision script.

    Args:
        upgrade: Statements run by ``upgrade()``, in order.
        downgrade: Statements run by ``downgrade()``, in order.
        revision: Revision id (random 12-character hex by default).
        message: First docstring line.
        created: Create date shown in the header.
        down_revision: Parent revision id.
    """
    return _TEMPLATE.format(
        message=message or "create auth tables",
        revision=revision or uuid.uuid4().hex[:12],
        down_revision=down_revision,
        down_revision_text=down_revision or "",
        created=(created or datetime.now()).isoformat(sep=" ", timespec="seconds"),
        upgrade=_body(upgrade),
        downgrade=_body(downgrade),
    )


def write_migration(
    content: str,
    directory: str | Path = DEFAULT_MIGRATION_PATH,
    label: str = "auth_tables",
    now: datetime | None = None,
) -> Path:
    """Write *content* to a new migration file, creating *directory* if needed.

    Returns:
        Path of the written file.
    """
    path = Path(directory)
    path.mkdir(parents=True, exist_ok=True)
    target = path / migration_filename(label, now)
    target.write_text(content)
    return target
