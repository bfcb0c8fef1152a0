"""Database client protocol definition.

Defines the ``DatabaseClient`` Protocol the migration manager and the
introspector talk to.  All methods are ``async def``; only statement
execution and introspection suspend, everything else is pure.

Usage:
    from db_migrator.adapters.base import DatabaseClient

    async def do_work(client: DatabaseClient) -> None:
        await client.execute("DEFINE TABLE OVERWRITE users SCHEMAFULL;")
        rows = await client.query("INFO FOR DB;")
        await client.close()
"""

from typing import Any, Protocol


class DatabaseClient(Protocol):
    """Live database connection interface.

    One client represents one target database.  Callers must ``await``
    every operation and never issue two statements concurrently on the
    same client.
    """

    async def execute(self, statement: str) -> None:
        """Execute one schema statement.

        Args:
            statement: Complete statement text, e.g.
                ``"REMOVE FIELD email ON TABLE users;"``.

        Raises:
            ExecutionError: If the database rejects the statement.  The
                error carries the statement text and the driver exception.

        Example:
            await client.execute("DEFINE FIELD OVERWRITE email ON TABLE users TYPE string;")
        """
        ...

    async def query(self, statement: str) -> list[dict[str, Any]]:
        """Run a read-only statement and return its rows.

        Args:
            statement: Query text, e.g. ``"INFO FOR TABLE users;"``.

        Returns:
            List of dicts, one per row.  Empty list if nothing matched.

        Raises:
            ExecutionError: If the database rejects the query.
        """
        ...

    async def close(self) -> None:
        """Close the connection."""
        ...
