"""Configuration loading from migrations.toml."""

import tomllib
from pathlib import Path

from pydantic import ValidationError

from db_migrator.config.models import DatabaseProfile, MigrationSettings, MigratorConfig

DEFAULT_CONFIG_FILE = "migrations.toml"


def load_config(config_path: Path | None = None) -> MigratorConfig:
    """Load migrator configuration from a TOML file.

    Args:
        config_path: Path to migrations.toml.  When ``None``, defaults to
            ``Path.cwd() / "migrations.toml"``.

    Returns:
        MigratorConfig with all profiles and migration settings.  Relative
        ``migrations.dir`` values are resolved against the config file's
        directory.

    Raises:
        FileNotFoundError: If config file doesn't exist
        ValueError: If config format is invalid
    """
    if config_path is None:
        config_path = Path.cwd() / DEFAULT_CONFIG_FILE

    if not config_path.exists():
        raise FileNotFoundError(
            f"Migrator config not found: {config_path}\n"
            f"Run 'db-migrator init' to create one."
        )

    with open(config_path, "rb") as f:
        try:
            data = tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            raise ValueError(f"Invalid TOML in {config_path}: {e}") from e

    try:
        # Parse profiles
        profiles = {
            name: DatabaseProfile(**profile_data)
            for name, profile_data in data.get("profiles", {}).items()
        }
        settings = MigrationSettings(**data.get("migrations", {}))
    except (TypeError, ValidationError) as e:
        raise ValueError(f"Invalid config in {config_path}: {e}") from e

    migrations_dir = Path(settings.dir)
    if not migrations_dir.is_absolute():
        settings.dir = str(config_path.parent / migrations_dir)

    return MigratorConfig(profiles=profiles, migrations=settings)
