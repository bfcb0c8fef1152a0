"""SurrealDB client.

Provides ``SurrealClient``, an implementation of the ``DatabaseClient``
protocol on top of the ``surrealdb`` SDK.  The connection is opened on
first use, signs in when credentials are configured, and selects the
profile's namespace and database.

Usage:
    from db_migrator.adapters.surreal import SurrealClient

    client = SurrealClient("ws://localhost:8000/rpc", namespace="app", database="app",
                           username="root", password="root")
    await client.execute("DEFINE TABLE OVERWRITE users SCHEMAFULL;")
    info = await client.query("INFO FOR DB;")
    await client.close()
"""

import logging
from collections.abc import Callable
from contextlib import AsyncExitStack
from typing import Any
from urllib.parse import urlsplit, urlunsplit

from surrealdb import AsyncSurreal

from db_migrator.errors import ExecutionError

logger = logging.getLogger(__name__)

SUPPORTED_SCHEMES = ("ws", "wss", "http", "https")
SCHEME_ALIASES = {"surrealdb": "ws", "surreal": "ws"}


def normalize_url(database_url: str) -> str:
    """Return a connection URL the SDK accepts.

    ``surrealdb://`` and ``surreal://`` are aliases for ``ws://``.
    WebSocket URLs without a path get the ``/rpc`` endpoint.

    Raises:
        ValueError: For schemes other than ws, wss, http and https.

    Examples:
        >>> normalize_url("surrealdb://localhost:8000")
        'ws://localhost:8000/rpc'
        >>> normalize_url("http://localhost:8000")
        'http://localhost:8000'
    """
    parts = urlsplit(database_url)
    scheme = parts.scheme.lower()
    scheme = SCHEME_ALIASES.get(scheme, scheme)
    if scheme not in SUPPORTED_SCHEMES:
        raise ValueError(
            f"Unsupported database URL scheme {parts.scheme!r} in {database_url}; "
            f"expected one of: {', '.join(SUPPORTED_SCHEMES)}"
        )

    path = parts.path
    if scheme in ("ws", "wss") and path in ("", "/"):
        path = "/rpc"
    return urlunsplit((scheme, parts.netloc, path, parts.query, parts.fragment))


def _error_text(error: Any) -> str:
    if isinstance(error, dict):
        return str(error.get("message") or error)
    return str(error)


class SurrealClient:
    """``DatabaseClient`` backed by one SurrealDB connection.

    Every statement is sent on its own; a statement whose result status is
    not ``OK`` raises ``ExecutionError``.  There is no transaction spanning
    a whole migration.

    Args:
        url: Connection URL (normalized with ``normalize_url``).
        namespace: Namespace to select after connecting.
        database: Database to select after connecting.
        username: Sign-in user (no sign-in when ``None``).
        password: Sign-in password.
        connect: Factory returning an async context manager connection
            (default: ``surrealdb.AsyncSurreal``).
    """

    def __init__(
        self,
        url: str,
        namespace: str,
        database: str,
        username: str | None = None,
        password: str | None = None,
        connect: Callable[[str], Any] = AsyncSurreal,
    ) -> None:
        self.url = normalize_url(url)
        self.namespace = namespace
        self.database = database
        self.username = username
        self._password = password
        self._connect = connect
        self._stack: AsyncExitStack | None = None
        self._db: Any = None

    async def _connection(self) -> Any:
        if self._db is not None:
            return self._db

        stack = AsyncExitStack()
        try:
            db = await stack.enter_async_context(self._connect(self.url))
            if self.username is not None:
                await db.signin({"username": self.username, "password": self._password or ""})
            await db.use(self.namespace, self.database)
        except Exception as e:
            await stack.aclose()
            raise ExecutionError(
                f"USE NS {self.namespace} DB {self.database}",
                f"Cannot connect to {self.url}: {e}",
                cause=e,
            ) from e

        logger.info(f"Connected to {self.url} ({self.namespace}/{self.database})")
        self._stack, self._db = stack, db
        return db

    async def _send(self, statement: str) -> list[dict[str, Any]]:
        """Send *statement* and return its per-statement results."""
        db = await self._connection()
        try:
            response = await db.query_raw(statement)
        except Exception as e:
            raise ExecutionError(statement, f"Statement rejected: {e}", cause=e) from e

        if response.get("error"):
            raise ExecutionError(statement, f"Statement rejected: {_error_text(response['error'])}")

        results = response.get("result") or []
        for item in results:
            if item.get("status") != "OK":
                raise ExecutionError(
                    statement, f"Statement rejected: {_error_text(item.get('result'))}"
                )
        return results

    async def execute(self, statement: str) -> None:
        """Execute one statement; rejections become ``ExecutionError``."""
        logger.debug(f"Executing: {statement}")
        await self._send(statement)

    async def query(self, statement: str) -> list[dict[str, Any]]:
        """Run a query and return the rows of its last statement.

        An object result (such as an ``INFO`` payload) is returned as a
        single row.
        """
        results = await self._send(statement)
        if not results:
            return []
        value = results[-1].get("result")
        if value is None:
            return []
        if isinstance(value, dict):
            return [value]
        return [row for row in value if isinstance(row, dict)]

    async def close(self) -> None:
        """Close the connection if one was opened."""
        if self._stack is not None:
            await self._stack.aclose()
        self._stack = None
        self._db = None
