"""Turn a ``SchemaDiff`` into an ordered list of executable statements.

Pure sync logic.  Ordering follows dependencies between entities:

0. Kind changes: a name that turns from a table into an edge (or back)
   is removed under its old kind before anything is created.
1. Added tables: table, then its columns, indexes, events.
2. Modified tables: table redefinition (when its own text changed), then
   removed events, indexes, columns, then added/modified columns, indexes,
   events.
3. Edges, after every table creation: removed edges first, then modified
   edges, then added edges.  An edge references its endpoint tables, so it
   is never created before them and always removed before them.
4. Removed tables: events, indexes, columns, then the table itself.

Usage:
    from db_migrator.schema.diff import diff
    from db_migrator.schema.sequencer import generate_statements

    for statement in generate_statements(diff(previous, current)):
        await client.execute(statement.sql)
"""

import logging
from dataclasses import dataclass
from typing import Literal

from db_migrator.errors import RenderError, RenderFailure
from db_migrator.schema.diff import EntityDiff, SchemaDiff
from db_migrator.schema.models import EntitySnapshot, EntrySnapshot
from db_migrator.schema.render import StatementRenderer, SurrealQLRenderer

logger = logging.getLogger(__name__)

Action = Literal["define", "remove"]
Kind = Literal["table", "edge", "column", "index", "event"]


@dataclass(frozen=True)
class Statement:
    """One executable statement plus what it acts on.

    Example:
        stmt = Statement(sql="REMOVE TABLE users;", action="remove", kind="table",
                         target="users", table="users")
        str(stmt)
        # 'REMOVE TABLE users;'
    """

    sql: str
    action: Action
    kind: Kind
    target: str
    table: str

    def __str__(self) -> str:
        return self.sql


class _Sequence:
    """Accumulates statements for one diff."""

    def __init__(self, renderer: StatementRenderer) -> None:
        self.renderer = renderer
        self.statements: list[Statement] = []

    def define(self, entry: EntrySnapshot, kind: Kind, table: str) -> None:
        try:
            text = entry.canonical_text()
        except RenderError as e:
            raise RenderFailure(entry.name, e) from e
        self.statements.append(
            Statement(self.renderer.define(text), "define", kind, entry.name, table)
        )

    def remove(self, kind: Kind, name: str, table: str) -> None:
        if kind in ("table", "edge"):
            sql = self.renderer.remove_table(name)
        elif kind == "column":
            sql = self.renderer.remove_column(table, name)
        elif kind == "index":
            sql = self.renderer.remove_index(table, name)
        else:
            sql = self.renderer.remove_event(table, name)
        self.statements.append(Statement(sql, "remove", kind, name, table))

    # ------------------------------------------------------------------
    # Per-entity groups
    # ------------------------------------------------------------------

    def create_entity(self, entity: EntitySnapshot, kind: Kind) -> None:
        self.define(entity, kind, entity.name)
        for column in entity.columns.values():
            self.define(column, "column", entity.name)
        for index in entity.indexes.values():
            self.define(index, "index", entity.name)
        for event in entity.events.values():
            self.define(event, "event", entity.name)

    def modify_entity(self, entity_diff: EntityDiff, kind: Kind) -> None:
        table = entity_diff.name
        if entity_diff.definition_changed:
            self.define(entity_diff.current, kind, table)

        for name in entity_diff.removed_events:
            self.remove("event", name, table)
        for name in entity_diff.removed_indexes:
            self.remove("index", name, table)
        for name in entity_diff.removed_columns:
            self.remove("column", name, table)

        for column in entity_diff.added_columns:
            self.define(column, "column", table)
        for column in entity_diff.modified_columns.values():
            self.define(column, "column", table)
        for index in entity_diff.added_indexes:
            self.define(index, "index", table)
        for index in entity_diff.modified_indexes.values():
            self.define(index, "index", table)
        for event in entity_diff.added_events:
            self.define(event, "event", table)
        for event in entity_diff.modified_events.values():
            self.define(event, "event", table)

    def drop_entity(self, entity: EntitySnapshot, kind: Kind) -> None:
        for name in entity.events:
            self.remove("event", name, entity.name)
        for name in entity.indexes:
            self.remove("index", name, entity.name)
        for name in entity.columns:
            self.remove("column", name, entity.name)
        self.remove(kind, entity.name, entity.name)


def generate_statements(
    schema_diff: SchemaDiff,
    renderer: StatementRenderer | None = None,
) -> list[Statement]:
    """Generate the ordered statement sequence that applies *schema_diff*.

    Args:
        schema_diff: Diff produced by ``db_migrator.schema.diff.diff()``.
        renderer: Statement renderer (default: ``SurrealQLRenderer``).

    Returns:
        Statements in execution order.  Empty for an empty diff.

    Raises:
        RenderFailure: If any definition referenced by the diff cannot be
            rendered.  Nothing is skipped.
    """
    seq = _Sequence(renderer or SurrealQLRenderer())
    source = schema_diff.source
    target = schema_diff.target

    # 0. Names changing kind share one underlying table; drop the old one first
    edges_to_tables = schema_diff.removed_edges & schema_diff.added_tables
    tables_to_edges = schema_diff.removed_tables & schema_diff.added_edges
    for name in sorted(edges_to_tables):
        seq.drop_entity(source.edges[name], "edge")
    for name in sorted(tables_to_edges):
        seq.drop_entity(source.tables[name], "table")

    # 1. Tables that need to exist before edges reference them
    for name in sorted(schema_diff.added_tables):
        seq.create_entity(target.tables[name], "table")
    for name in sorted(schema_diff.modified_tables):
        seq.modify_entity(schema_diff.modified_tables[name], "table")

    # 2. Edges: removals first, then modifications, then creations
    for name in sorted(schema_diff.removed_edges - edges_to_tables):
        seq.drop_entity(source.edges[name], "edge")
    for name in sorted(schema_diff.modified_edges):
        seq.modify_entity(schema_diff.modified_edges[name], "edge")
    for name in sorted(schema_diff.added_edges):
        seq.create_entity(target.edges[name], "edge")

    # 3. Tables no edge can reference any more
    for name in sorted(schema_diff.removed_tables - tables_to_edges):
        seq.drop_entity(source.tables[name], "table")

    logger.debug(
        f"Sequenced {len(seq.statements)} statements for "
        f"{schema_diff.change_count()} changed entities"
    )
    return seq.statements


def generate_reverse_statements(
    schema_diff: SchemaDiff,
    renderer: StatementRenderer | None = None,
) -> list[Statement]:
    """Generate the statement sequence that undoes *schema_diff*."""
    return generate_statements(schema_diff.reverse(), renderer)
