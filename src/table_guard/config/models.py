"""Pydantic models for guard configuration."""

from typing import Any

from pydantic import BaseModel, Field

from table_guard.schema.migration import DEFAULT_MIGRATION_PATH
from table_guard.schema.models import DEFAULT_PREFIX

# Environments in which destructive remediation (sync, recreate, drop) may run
DEVELOPMENT_ENVIRONMENTS = ("dev", "development", "test")


class TableGuardConfig(BaseModel):
    """Process-wide guard configuration, from table_guard.toml and the environment."""

    prefix: str = DEFAULT_PREFIX
    mode: Any = "warn"  # mode name or a callable
    remediation: str | None = None
    skip_tables: list[str] = Field(default_factory=list)
    check_columns: bool = True
    migration_path: str = DEFAULT_MIGRATION_PATH
    environment: str | None = None
    features: list[str] = Field(default_factory=list)
    database_url: str | None = None

    @property
    def is_development(self) -> bool:
        """True when ``environment`` names a development or test environment."""
        if not self.environment:
            return False
        env = self.environment.strip().lower()
        return any(env.startswith(name) for name in DEVELOPMENT_ENVIRONMENTS)
