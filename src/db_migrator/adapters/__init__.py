"""Database adapters package.

Provides the ``DatabaseClient`` Protocol and the bundled SurrealDB
implementation.

Usage:
    from db_migrator.adapters import DatabaseClient, SurrealClient
"""

from db_migrator.adapters.base import DatabaseClient
from db_migrator.adapters.surreal import SurrealClient

__all__ = [
    "DatabaseClient",
    "SurrealClient",
]
