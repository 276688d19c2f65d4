"""Configuration management: TOML loading and the guard config model.

Usage:
    >>> from table_guard.config import load_guard_config, TableGuardConfig
"""

from table_guard.config.loader import load_guard_config
from table_guard.config.models import TableGuardConfig

__all__ = ["load_guard_config", "TableGuardConfig"]
