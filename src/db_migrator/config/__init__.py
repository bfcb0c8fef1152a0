"""Configuration management: profiles, TOML loading, and config models.

Usage:
    >>> from db_migrator.config import load_config, DatabaseProfile, MigratorConfig
"""

from db_migrator.config.loader import load_config
from db_migrator.config.models import DatabaseProfile, MigrationSettings, MigratorConfig

__all__ = ["load_config", "DatabaseProfile", "MigrationSettings", "MigratorConfig"]
