"""Live schema introspection via ``INFO FOR`` queries.

This module asks the live database for its structure and maps the
structured payloads into ``LiveInfo``:
- ``INFO FOR DB``: table names mapped to their definition statements
- ``INFO FOR TABLE <name>``: fields, indexes and events mapped to their
  definition statements

The definition texts are taken verbatim -- they are never parsed.  Edges
are reported as tables; the drift validator reclassifies them using the
expected snapshot's edge names.

Usage:
    from db_migrator.schema.introspector import InfoIntrospector

    introspector = InfoIntrospector(client)
    live = await introspector.describe_database()
"""

import logging
from collections.abc import Iterable
from typing import TYPE_CHECKING, Any, Protocol

from db_migrator.errors import ExecutionError
from db_migrator.schema.models import LiveEntity, LiveInfo

if TYPE_CHECKING:
    from db_migrator.adapters.base import DatabaseClient

logger = logging.getLogger(__name__)


class Introspector(Protocol):
    """Source of the live database structure."""

    async def describe_database(self) -> LiveInfo:
        """Return the live tables and edges with their rendered definitions."""
        ...


def _payload(rows: list[dict[str, Any]], statement: str) -> dict[str, Any]:
    """Extract the info object from a query result.

    Accepts either the object itself as the single row, or a row wrapping
    it under ``result``.
    """
    if not rows:
        return {}
    row = rows[0]
    if "result" in row and isinstance(row["result"], dict):
        row = row["result"]
    if not isinstance(row, dict):
        raise ExecutionError(statement, f"Unexpected INFO payload: {row!r}")
    return row


def _texts(section: Any) -> dict[str, str]:
    if not section:
        return {}
    return {str(name): str(text) for name, text in section.items()}


class InfoIntrospector:
    """Introspects the live database with ``INFO FOR`` statements.

    Usage:
        introspector = InfoIntrospector(client, exclude=["migration_log"])
        live = await introspector.describe_database()
        live.tables["users"].columns
        # {'email': 'DEFINE FIELD email ON users TYPE string', ...}
    """

    # Tables to exclude from introspection (bookkeeping tables)
    EXCLUDED_TABLES: frozenset[str] = frozenset()

    def __init__(self, client: "DatabaseClient", exclude: Iterable[str] = ()) -> None:
        """Initialize with a database client.

        Args:
            client: Connection implementing ``DatabaseClient.query()``.
            exclude: Extra table names to leave out of the result.
        """
        self._client = client
        self._excluded = self.EXCLUDED_TABLES | frozenset(exclude)

    async def describe_database(self) -> LiveInfo:
        """Introspect every table and its fields, indexes and events.

        Raises:
            ExecutionError: If an ``INFO`` query is rejected.
        """
        statement = "INFO FOR DB;"
        db_info = _payload(await self._client.query(statement), statement)
        table_texts = _texts(db_info.get("tables"))

        live = LiveInfo()
        for name in sorted(table_texts):
            if name in self._excluded:
                continue
            live.tables[name] = await self._describe_table(name, table_texts[name])

        logger.debug(f"Introspected {len(live.tables)} tables")
        return live

    async def _describe_table(self, name: str, definition: str) -> LiveEntity:
        statement = f"INFO FOR TABLE {name};"
        info = _payload(await self._client.query(statement), statement)
        return LiveEntity(
            name=name,
            definition=definition,
            columns=_texts(info.get("fields")),
            indexes=_texts(info.get("indexes")),
            events=_texts(info.get("events")),
        )
