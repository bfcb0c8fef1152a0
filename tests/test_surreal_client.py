"""Tests for SurrealClient.

The SDK connection is replaced by an ``AsyncMock`` returned from the
``connect`` factory, so no server is needed.  Verifies URL
normalization, sign-in and namespace selection, result unwrapping and
how rejected statements become ``ExecutionError``.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from db_migrator.adapters.surreal import SurrealClient, normalize_url
from db_migrator.errors import ExecutionError


def _connection(response: dict | None = None) -> AsyncMock:
    conn = AsyncMock()
    conn.__aenter__.return_value = conn
    conn.__aexit__.return_value = None
    conn.query_raw.return_value = response or {"result": [{"status": "OK", "result": []}]}
    return conn


def _client(conn: AsyncMock, **kwargs) -> tuple[SurrealClient, MagicMock]:
    connect = MagicMock(return_value=conn)
    kwargs.setdefault("username", "root")
    kwargs.setdefault("password", "root")
    client = SurrealClient("ws://localhost:8000/rpc", "app", "main", connect=connect, **kwargs)
    return client, connect


# ------------------------------------------------------------------
# normalize_url()
# ------------------------------------------------------------------


class TestNormalizeUrl:
    """Connection URL handling."""

    @pytest.mark.parametrize(
        "url,expected",
        [
            ("surrealdb://localhost:8000", "ws://localhost:8000/rpc"),
            ("ws://localhost:8000/", "ws://localhost:8000/rpc"),
            ("wss://db.example.com/rpc", "wss://db.example.com/rpc"),
            ("https://db.example.com", "https://db.example.com"),
        ],
    )
    def test_supported(self, url: str, expected: str) -> None:
        """Aliases become ws:// and bare WebSocket URLs get /rpc."""
        assert normalize_url(url) == expected

    def test_unsupported_scheme(self) -> None:
        """Other databases' URLs are rejected."""
        with pytest.raises(ValueError, match="postgresql"):
            normalize_url("postgresql://localhost/app")


# ------------------------------------------------------------------
# Connection
# ------------------------------------------------------------------


class TestConnection:
    """Lazy connection, sign-in and namespace selection."""

    async def test_connects_on_first_statement(self) -> None:
        """signin and use run once, before the first statement."""
        conn = _connection()
        client, connect = _client(conn)
        connect.assert_not_called()

        await client.execute("DEFINE TABLE OVERWRITE users SCHEMAFULL;")
        await client.execute("DEFINE TABLE OVERWRITE posts SCHEMAFULL;")

        connect.assert_called_once_with("ws://localhost:8000/rpc")
        conn.signin.assert_awaited_once_with({"username": "root", "password": "root"})
        conn.use.assert_awaited_once_with("app", "main")
        assert conn.query_raw.await_count == 2

    async def test_no_signin_without_username(self) -> None:
        """Anonymous profiles only select namespace and database."""
        conn = _connection()
        client, _ = _client(conn, username=None, password=None)
        await client.execute("INFO FOR DB;")
        conn.signin.assert_not_awaited()
        conn.use.assert_awaited_once_with("app", "main")

    async def test_connect_failure(self) -> None:
        """A failed sign-in is an ExecutionError and the connection is closed."""
        conn = _connection()
        conn.signin.side_effect = RuntimeError("authentication failed")
        client, _ = _client(conn)

        with pytest.raises(ExecutionError, match="Cannot connect to ws://localhost:8000/rpc") as exc_info:
            await client.execute("INFO FOR DB;")

        assert exc_info.value.statement == "USE NS app DB main"
        assert isinstance(exc_info.value.cause, RuntimeError)
        conn.__aexit__.assert_awaited_once()
        conn.query_raw.assert_not_awaited()

    async def test_close(self) -> None:
        """close() exits the connection and a later call reconnects."""
        conn = _connection()
        client, connect = _client(conn)
        await client.execute("INFO FOR DB;")

        await client.close()
        conn.__aexit__.assert_awaited_once()

        await client.execute("INFO FOR DB;")
        assert connect.call_count == 2

    async def test_close_without_connection(self) -> None:
        """Closing an unused client is a no-op."""
        conn = _connection()
        client, connect = _client(conn)
        await client.close()
        connect.assert_not_called()


# ------------------------------------------------------------------
# Statements
# ------------------------------------------------------------------


class TestStatements:
    """execute() and query() result handling."""

    async def test_query_object_result_is_one_row(self) -> None:
        """INFO payloads come back as a single row."""
        info = {"tables": {"users": "DEFINE TABLE users TYPE NORMAL SCHEMAFULL"}}
        conn = _connection({"result": [{"status": "OK", "time": "1ms", "result": info}]})
        client, _ = _client(conn)
        assert await client.query("INFO FOR DB;") == [info]

    async def test_query_list_result_keeps_rows(self) -> None:
        """Row lists are returned as-is; non-object values are dropped."""
        rows = [{"id": "users:1"}, {"id": "users:2"}, 3]
        conn = _connection({"result": [{"status": "OK", "result": rows}]})
        client, _ = _client(conn)
        assert await client.query("SELECT * FROM users;") == rows[:2]

    async def test_query_uses_last_statement(self) -> None:
        """With several statements only the last result is returned."""
        conn = _connection({"result": [
            {"status": "OK", "result": None},
            {"status": "OK", "result": [{"n": 1}]},
        ]})
        client, _ = _client(conn)
        assert await client.query("USE NS app; SELECT 1 AS n FROM ONLY {};") == [{"n": 1}]

    async def test_query_empty_result(self) -> None:
        """No results and null results are empty lists."""
        conn = _connection({"result": []})
        client, _ = _client(conn)
        assert await client.query("INFO FOR DB;") == []

        conn.query_raw.return_value = {"result": [{"status": "OK", "result": None}]}
        assert await client.query("INFO FOR DB;") == []

    async def test_err_status_raises(self) -> None:
        """A statement with an ERR status is an ExecutionError."""
        statement = "DEFINE FIELD OVERWRITE email ON TABLE users TYPE strin;"
        conn = _connection({"result": [
            {"status": "ERR", "result": "Parse error: unknown type strin"},
        ]})
        client, _ = _client(conn)

        with pytest.raises(ExecutionError, match="unknown type strin") as exc_info:
            await client.execute(statement)
        assert exc_info.value.statement == statement

    async def test_top_level_error_raises(self) -> None:
        """RPC-level errors are ExecutionErrors."""
        conn = _connection({"error": {"code": -32000, "message": "There was a problem with the database"}})
        client, _ = _client(conn)
        with pytest.raises(ExecutionError, match="problem with the database"):
            await client.query("INFO FOR DB;")

    async def test_transport_error_raises(self) -> None:
        """Exceptions from the SDK are wrapped with the statement."""
        conn = _connection()
        conn.query_raw.side_effect = ConnectionError("socket closed")
        client, _ = _client(conn)

        with pytest.raises(ExecutionError, match="socket closed") as exc_info:
            await client.execute("REMOVE TABLE users;")
        assert exc_info.value.statement == "REMOVE TABLE users;"
        assert isinstance(exc_info.value.cause, ConnectionError)
