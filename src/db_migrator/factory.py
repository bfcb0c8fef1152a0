"""Migration manager factory.

Builds the collaborators a ``MigrationManager`` needs from migrations.toml:

1. Profile resolution: explicit name, else the ``{prefix}DB_PROFILE``
   environment variable.
2. Client: ``SurrealClient`` on the profile URL, namespace and database,
   signing in with the profile password or ``{prefix}DB_PASSWORD``.
3. Schema source: imported from the ``module:attribute`` path in
   ``[migrations].schema_source``.

Usage:
    from db_migrator.factory import build_manager

    manager = build_manager(env_prefix="APP_")
    result = await manager.apply("add_orders")
    await manager.client.close()
"""

import importlib
import logging
import os
from pathlib import Path
from typing import Any

from db_migrator.adapters.base import DatabaseClient
from db_migrator.adapters.surreal import SurrealClient
from db_migrator.config.loader import load_config
from db_migrator.config.models import DatabaseProfile, MigratorConfig
from db_migrator.errors import ProfileNotFoundError
from db_migrator.migrations.history import MigrationHistory
from db_migrator.migrations.manager import MigrationManager
from db_migrator.schema.introspector import InfoIntrospector
from db_migrator.schema.models import SchemaSnapshot
from db_migrator.schema.registry import SchemaSource

logger = logging.getLogger(__name__)


# ============================================================================
# Profile Resolution
# ============================================================================


def get_active_profile_name(env_prefix: str = "") -> str:
    """Get active profile name from the environment.

    Args:
        env_prefix: Prefix for the environment variable, e.g. ``"APP_"``
            reads ``APP_DB_PROFILE``.

    Raises:
        ProfileNotFoundError: If the variable is not set.
    """
    env_var = f"{env_prefix}DB_PROFILE"
    env_profile = os.environ.get(env_var)
    if env_profile:
        return env_profile

    raise ProfileNotFoundError(
        "No database profile configured.\n"
        f"Set {env_var}=<name> or pass --profile <name>."
    )


def get_active_profile(
    config: MigratorConfig,
    profile_name: str | None = None,
    env_prefix: str = "",
) -> tuple[str, DatabaseProfile]:
    """Return ``(name, profile)`` for the requested or active profile.

    Raises:
        ProfileNotFoundError: If no profile is selected or it is not configured.
    """
    if profile_name is None:
        profile_name = get_active_profile_name(env_prefix)

    if profile_name not in config.profiles:
        available = ", ".join(config.profiles.keys()) or "(none)"
        raise ProfileNotFoundError(
            f"Profile '{profile_name}' not found in config.\n"
            f"Available profiles: {available}"
        )
    return profile_name, config.profiles[profile_name]


def resolve_password(profile: DatabaseProfile, env_prefix: str = "") -> str | None:
    """Return the sign-in password for *profile*.

    ``db_password`` from the profile wins; otherwise the
    ``{prefix}DB_PASSWORD`` environment variable is used, so secrets can
    stay out of migrations.toml.

    Example:
        >>> resolve_password(DatabaseProfile(url="ws://h", namespace="n", database="d", db_password="s"))
        's'
    """
    if profile.db_password:
        return profile.db_password
    return os.environ.get(f"{env_prefix}DB_PASSWORD")


# ============================================================================
# Schema Source
# ============================================================================


class _CallableSource:
    """Adapts a zero-argument callable returning a snapshot."""

    def __init__(self, func: Any) -> None:
        self._func = func

    def current_schema_from_code(self) -> SchemaSnapshot:
        snapshot = self._func()
        if not isinstance(snapshot, SchemaSnapshot):
            raise TypeError(
                f"Schema source returned {type(snapshot).__name__}, expected SchemaSnapshot"
            )
        return snapshot


def load_schema_source(path: str) -> SchemaSource:
    """Import a schema source from ``"package.module:attribute"``.

    The attribute may be an object with ``current_schema_from_code()``
    (e.g. an ``EntityRegistry``) or a callable returning a
    ``SchemaSnapshot``.

    Raises:
        ValueError: If *path* is malformed or the attribute is unusable.
        ImportError: If the module cannot be imported.
    """
    module_name, sep, attribute = path.partition(":")
    if not sep or not module_name or not attribute:
        raise ValueError(f"Schema source must look like 'module:attribute', got {path!r}")

    module = importlib.import_module(module_name)
    try:
        target = getattr(module, attribute)
    except AttributeError as e:
        raise ValueError(f"Module {module_name} has no attribute {attribute!r}") from e

    if hasattr(target, "current_schema_from_code"):
        return target
    if callable(target):
        return _CallableSource(target)
    raise ValueError(f"{path} is neither a schema source nor a callable")


# ============================================================================
# Factory
# ============================================================================


def get_client(
    profile_name: str | None = None,
    env_prefix: str = "",
    config: MigratorConfig | None = None,
    config_path: Path | None = None,
) -> DatabaseClient:
    """Create a client for the requested or active profile."""
    if config is None:
        config = load_config(config_path)
    name, profile = get_active_profile(config, profile_name, env_prefix)
    logger.info(f"Using database profile '{name}'")
    return SurrealClient(
        profile.url,
        namespace=profile.namespace,
        database=profile.database,
        username=profile.username,
        password=resolve_password(profile, env_prefix),
    )


def build_manager(
    profile_name: str | None = None,
    env_prefix: str = "",
    config_path: Path | None = None,
    config: MigratorConfig | None = None,
    client: DatabaseClient | None = None,
    source: SchemaSource | None = None,
    offline: bool = False,
) -> MigrationManager:
    """Assemble a ``MigrationManager`` from configuration.

    Args:
        profile_name: Profile to connect to (default: ``{prefix}DB_PROFILE``).
        env_prefix: Environment variable prefix.
        config_path: Path to migrations.toml (default: ``./migrations.toml``).
        config: Already loaded config (skips loading).
        client: Client to use instead of building one from the profile.
        source: Schema source to use instead of the configured one.
        offline: Build without a database client (snapshot, plan and
            status only).

    Raises:
        FileNotFoundError: If the config file is missing.
        ProfileNotFoundError: If no usable profile is configured.
        ValueError: If no schema source is configured or it is unusable.
    """
    if config is None:
        config = load_config(config_path)

    if source is None:
        if not config.migrations.schema_source:
            raise ValueError("No schema source configured: set [migrations].schema_source")
        source = load_schema_source(config.migrations.schema_source)

    if client is None and not offline:
        client = get_client(profile_name, env_prefix, config=config)

    introspector = None
    if client is not None:
        introspector = InfoIntrospector(client, exclude=config.migrations.exclude_tables)

    return MigrationManager(
        history=MigrationHistory(config.migrations.dir),
        source=source,
        client=client,
        introspector=introspector,
        verify_after_apply=config.migrations.verify_after_apply,
    )
