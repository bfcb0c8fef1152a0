"""Explicit registry of code-declared entities.

Entities are registered on a registry object built at startup and passed
to whatever needs the code schema -- there is no process-wide catalog.

Usage:
    from db_migrator.schema.registry import EntityRegistry, TableDeclaration, EntryDeclaration

    registry = EntityRegistry()
    registry.table(TableDeclaration(
        name="users",
        definition="DEFINE TABLE users SCHEMAFULL",
        columns=[EntryDeclaration("email", "DEFINE FIELD email ON TABLE users TYPE string")],
    ))

    snapshot = registry.current_schema_from_code()
"""

from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any, Protocol

from db_migrator.schema.models import (
    ColumnSnapshot,
    EdgeSnapshot,
    EventSnapshot,
    IndexSnapshot,
    SchemaSnapshot,
    TableSnapshot,
)
from db_migrator.schema.render import Renderable


class SchemaSource(Protocol):
    """Anything that can describe the schema currently declared in code."""

    def current_schema_from_code(self) -> SchemaSnapshot:
        """Build a complete snapshot or raise; never return a partial one."""
        ...


@dataclass
class EntryDeclaration:
    """A column, index or event: a name and its definition.

    ``definition`` is either statement text or a ``Renderable``.
    """

    name: str
    definition: "Renderable | str"


@dataclass
class TableDeclaration:
    """A table and the entries it owns."""

    name: str
    definition: "Renderable | str"
    columns: list[EntryDeclaration] = field(default_factory=list)
    indexes: list[EntryDeclaration] = field(default_factory=list)
    events: list[EntryDeclaration] = field(default_factory=list)


@dataclass
class EdgeDeclaration(TableDeclaration):
    """An edge between two tables."""

    from_table: str | None = None
    to_table: str | None = None


def _definition_fields(definition: "Renderable | str") -> dict[str, Any]:
    if isinstance(definition, str):
        return {"definition_text": definition}
    return {"definition": definition}


def _entries(model: type, declarations: list[EntryDeclaration]) -> list[Any]:
    return [model(name=d.name, **_definition_fields(d.definition)) for d in declarations]


class EntityRegistry:
    """Registry of table and edge declarations.

    Duplicate names are rejected at registration time.  Building a
    snapshot renders every definition first, so a failing definition
    raises before any snapshot is returned.
    """

    def __init__(
        self,
        tables: Iterable[TableDeclaration] = (),
        edges: Iterable[EdgeDeclaration] = (),
    ) -> None:
        self._tables: dict[str, TableDeclaration] = {}
        self._edges: dict[str, EdgeDeclaration] = {}
        for declaration in tables:
            self.table(declaration)
        for declaration in edges:
            self.edge(declaration)

    def table(self, declaration: TableDeclaration) -> TableDeclaration:
        """Register a table declaration and return it."""
        if declaration.name in self._tables or declaration.name in self._edges:
            raise ValueError(f"Entity already registered: {declaration.name}")
        self._tables[declaration.name] = declaration
        return declaration

    def edge(self, declaration: EdgeDeclaration) -> EdgeDeclaration:
        """Register an edge declaration and return it."""
        if declaration.name in self._tables or declaration.name in self._edges:
            raise ValueError(f"Entity already registered: {declaration.name}")
        self._edges[declaration.name] = declaration
        return declaration

    @property
    def table_names(self) -> list[str]:
        return sorted(self._tables)

    @property
    def edge_names(self) -> list[str]:
        return sorted(self._edges)

    def current_schema_from_code(self) -> SchemaSnapshot:
        """Build the snapshot of every registered entity.

        Raises:
            RenderError: If any definition cannot be rendered.
            InvalidSnapshotError: If an edge endpoint is not a registered table.
        """
        tables = [
            TableSnapshot(
                name=d.name,
                columns=_entries(ColumnSnapshot, d.columns),
                indexes=_entries(IndexSnapshot, d.indexes),
                events=_entries(EventSnapshot, d.events),
                **_definition_fields(d.definition),
            )
            for d in self._tables.values()
        ]
        edges = [
            EdgeSnapshot(
                name=d.name,
                from_table=d.from_table,
                to_table=d.to_table,
                columns=_entries(ColumnSnapshot, d.columns),
                indexes=_entries(IndexSnapshot, d.indexes),
                events=_entries(EventSnapshot, d.events),
                **_definition_fields(d.definition),
            )
            for d in self._edges.values()
        ]

        snapshot = SchemaSnapshot(tables=tables, edges=edges).rendered()
        snapshot.check_edges()
        return snapshot
