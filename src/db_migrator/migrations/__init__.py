"""Migration history and orchestration.

Usage:
    from db_migrator.migrations import MigrationHistory, MigrationManager, MigrationState
"""

from db_migrator.migrations.history import HistoryEntry, MigrationHistory
from db_migrator.migrations.manager import (
    MigrationManager,
    MigrationResult,
    MigrationState,
    MigrationStatus,
    SnapshotResult,
)

__all__ = [
    "HistoryEntry",
    "MigrationHistory",
    "MigrationManager",
    "MigrationResult",
    "MigrationState",
    "MigrationStatus",
    "SnapshotResult",
]
