"""Tests for the explicit entity registry.

Verifies that ``EntityRegistry`` builds complete, rendered snapshots from
registered declarations and fails as a whole when any definition is bad.
"""

import pytest

from db_migrator.errors import InvalidSnapshotError, RenderError
from db_migrator.schema.registry import (
    EdgeDeclaration,
    EntityRegistry,
    EntryDeclaration,
    TableDeclaration,
)


class _FieldDefinition:
    """Structured field definition rendering its own statement."""

    def __init__(self, table: str, name: str, type_: str) -> None:
        self.table = table
        self.name = name
        self.type_ = type_

    def build(self) -> str:
        return f"DEFINE FIELD {self.name} ON TABLE {self.table} TYPE {self.type_}"


class _BrokenDefinition:
    def build(self) -> str:
        raise ValueError("no type given")


def _users() -> TableDeclaration:
    return TableDeclaration(
        name="users",
        definition="DEFINE TABLE users SCHEMAFULL",
        columns=[
            EntryDeclaration("name", _FieldDefinition("users", "name", "string")),
            EntryDeclaration("id", "DEFINE FIELD id ON TABLE users TYPE string"),
        ],
        indexes=[EntryDeclaration("users_name", "DEFINE INDEX users_name ON TABLE users FIELDS name")],
    )


class TestBuildSnapshot:
    """current_schema_from_code() returns a fully rendered snapshot."""

    def test_tables_and_entries(self) -> None:
        """Declared tables and their entries are present and ordered."""
        registry = EntityRegistry(tables=[_users()])
        snap = registry.current_schema_from_code()
        assert list(snap.tables) == ["users"]
        assert list(snap.tables["users"].columns) == ["id", "name"]
        assert list(snap.tables["users"].indexes) == ["users_name"]

    def test_structured_definitions_rendered(self) -> None:
        """Renderable definitions are turned into text."""
        snap = EntityRegistry(tables=[_users()]).current_schema_from_code()
        name = snap.tables["users"].columns["name"]
        assert name.definition_text == "DEFINE FIELD name ON TABLE users TYPE string"

    def test_edges_registered(self) -> None:
        """Edge declarations become edge snapshots with endpoints."""
        registry = EntityRegistry(tables=[_users()])
        registry.edge(EdgeDeclaration(
            name="follows",
            definition="DEFINE TABLE follows TYPE RELATION FROM users TO users",
            from_table="users",
            to_table="users",
        ))
        snap = registry.current_schema_from_code()
        assert snap.edges["follows"].endpoints == ["users", "users"]
        assert registry.edge_names == ["follows"]

    def test_registries_are_independent(self) -> None:
        """There is no shared catalog between registries."""
        first = EntityRegistry(tables=[_users()])
        second = EntityRegistry()
        assert first.table_names == ["users"]
        assert second.current_schema_from_code().is_empty()


class TestAllOrNothing:
    """Any failure prevents the snapshot from being returned."""

    def test_duplicate_registration_rejected(self) -> None:
        """The same name cannot be registered twice."""
        registry = EntityRegistry(tables=[_users()])
        with pytest.raises(ValueError, match="users"):
            registry.table(_users())

    def test_render_failure_raises(self) -> None:
        """One broken definition fails the whole build."""
        registry = EntityRegistry(tables=[
            _users(),
            TableDeclaration(
                name="posts",
                definition="DEFINE TABLE posts",
                columns=[EntryDeclaration("body", _BrokenDefinition())],
            ),
        ])
        with pytest.raises(RenderError) as exc_info:
            registry.current_schema_from_code()
        assert exc_info.value.name == "body"

    def test_dangling_edge_raises(self) -> None:
        """Edges must point at registered tables."""
        registry = EntityRegistry(edges=[EdgeDeclaration(
            name="likes", definition="DEFINE TABLE likes", from_table="users", to_table="posts",
        )])
        with pytest.raises(InvalidSnapshotError):
            registry.current_schema_from_code()
