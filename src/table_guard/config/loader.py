"""Configuration loading from table_guard.toml and environment variables."""

import os
import tomllib
from pathlib import Path

from table_guard.config.models import TableGuardConfig

DEFAULT_CONFIG_FILE = "table_guard.toml"

# Environment variable (without prefix) -> config field
ENV_OVERRIDES = {
    "TABLE_GUARD_MODE": "mode",
    "TABLE_GUARD_REMEDIATION": "remediation",
    "TABLE_GUARD_PREFIX": "prefix",
    "DATABASE_URL": "database_url",
    "APP_ENV": "environment",
}


def load_guard_config(
    config_path: Path | str | None = None,
    env_prefix: str = "",
) -> TableGuardConfig:
    """Load guard configuration from TOML, then apply environment overrides.

    Reads the ``[table_guard]`` table of the file. Environment variables
    ``{env_prefix}TABLE_GUARD_MODE``, ``{env_prefix}TABLE_GUARD_REMEDIATION``,
    ``{env_prefix}TABLE_GUARD_PREFIX``, ``{env_prefix}DATABASE_URL`` and
    ``{env_prefix}APP_ENV`` override file values.

    Args:
        config_path: Path to the TOML file (default: ./table_guard.toml,
            which may be absent).
        env_prefix: Prefix for the environment variable names.

    Returns:
        TableGuardConfig

    Raises:
        FileNotFoundError: If an explicit config_path does not exist
        pydantic.ValidationError: If the file holds values of the wrong type
    """
    data: dict = {}
    if config_path is None:
        default_path = Path.cwd() / DEFAULT_CONFIG_FILE
        if default_path.exists():
            data = _read_table(default_path)
    else:
        config_path = Path(config_path)
        if not config_path.exists():
            raise FileNotFoundError(
                f"table-guard config not found: {config_path}\n"
                f"Create it with a [table_guard] table, or omit --config to use defaults."
            )
        data = _read_table(config_path)

    for env_name, field in ENV_OVERRIDES.items():
        value = os.environ.get(f"{env_prefix}{env_name}")
        if value:
            data[field] = value

    return TableGuardConfig(**data)


def _read_table(path: Path) -> dict:
    with open(path, "rb") as f:
        raw = tomllib.load(f)
    return dict(raw.get("table_guard", {}))
