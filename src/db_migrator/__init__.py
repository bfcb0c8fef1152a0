"""db-migrator: schema snapshots, diffs and migrations for declarative schemas.

Captures the schema declared in code as immutable snapshots, diffs
snapshots structurally, sequences the statements that move a database
between them, and applies or rolls them back with drift checks.

Usage:
    from db_migrator import diff, generate_statements, validate
    from db_migrator import EntityRegistry, MigrationManager, MigrationHistory
    from db_migrator import build_manager, load_config
"""

__version__ = "0.1.0"

# Adapters
from db_migrator.adapters.base import DatabaseClient
from db_migrator.adapters.surreal import SurrealClient

# Config
from db_migrator.config.loader import load_config
from db_migrator.config.models import DatabaseProfile, MigrationSettings, MigratorConfig

# Errors
from db_migrator.errors import (
    ConstructionError,
    DriftDetectedError,
    ExecutionError,
    HistoryError,
    InvalidSnapshotError,
    MigrationError,
    MigrationLockedError,
    ProfileNotFoundError,
    RenderError,
    RenderFailure,
    SequenceError,
)

# Factory
from db_migrator.factory import build_manager, get_client, load_schema_source, resolve_password

# Migrations
from db_migrator.migrations import (
    HistoryEntry,
    MigrationHistory,
    MigrationManager,
    MigrationResult,
    MigrationState,
    MigrationStatus,
    SnapshotResult,
)

# Schema
from db_migrator.schema import (
    ColumnSnapshot,
    DeviationReport,
    EdgeDeclaration,
    EdgeSnapshot,
    EntityRegistry,
    EntryDeclaration,
    EventSnapshot,
    IndexSnapshot,
    InfoIntrospector,
    LiveEntity,
    LiveInfo,
    SchemaDiff,
    SchemaSnapshot,
    Statement,
    TableDeclaration,
    TableSnapshot,
    diff,
    generate_reverse_statements,
    generate_statements,
    validate,
)

__all__ = [
    # Adapters
    "DatabaseClient",
    "SurrealClient",
    # Config
    "load_config",
    "DatabaseProfile",
    "MigrationSettings",
    "MigratorConfig",
    # Errors
    "MigrationError",
    "ConstructionError",
    "InvalidSnapshotError",
    "RenderError",
    "SequenceError",
    "RenderFailure",
    "ExecutionError",
    "DriftDetectedError",
    "HistoryError",
    "MigrationLockedError",
    "ProfileNotFoundError",
    # Factory
    "build_manager",
    "get_client",
    "load_schema_source",
    "resolve_password",
    # Migrations
    "HistoryEntry",
    "MigrationHistory",
    "MigrationManager",
    "MigrationResult",
    "MigrationState",
    "MigrationStatus",
    "SnapshotResult",
    # Schema
    "ColumnSnapshot",
    "IndexSnapshot",
    "EventSnapshot",
    "TableSnapshot",
    "EdgeSnapshot",
    "SchemaSnapshot",
    "SchemaDiff",
    "diff",
    "Statement",
    "generate_statements",
    "generate_reverse_statements",
    "validate",
    "LiveEntity",
    "LiveInfo",
    "DeviationReport",
    "InfoIntrospector",
    "EntityRegistry",
    "EntryDeclaration",
    "TableDeclaration",
    "EdgeDeclaration",
]
