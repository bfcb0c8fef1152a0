"""Pydantic models for migrator configuration."""

from pydantic import BaseModel, Field


# ============================================================================
# Configuration Models
# ============================================================================


class DatabaseProfile(BaseModel):
    """Database connection profile from migrations.toml."""

    url: str  # ws://, wss://, http:// or https:// SurrealDB endpoint
    namespace: str
    database: str
    username: str | None = None
    db_password: str | None = None
    description: str = ""


class MigrationSettings(BaseModel):
    """The ``[migrations]`` table of migrations.toml."""

    dir: str = "migrations"
    schema_source: str | None = None  # "package.module:attribute"
    verify_after_apply: bool = True
    exclude_tables: list[str] = Field(default_factory=list)


class MigratorConfig(BaseModel):
    """Complete configuration from migrations.toml."""

    profiles: dict[str, DatabaseProfile] = Field(default_factory=dict)
    migrations: MigrationSettings = Field(default_factory=MigrationSettings)
