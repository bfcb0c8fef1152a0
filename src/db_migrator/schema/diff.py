"""Structural diff between two schema snapshots.

Pure logic -- no I/O.  Entities and their sub-entries are matched by name;
an entry is unchanged iff its canonical statement text is byte-equal on
both sides.  There is no rename detection: a renamed field is a removal of
the old name plus an addition of the new one, which applies as a REMOVE
followed by a DEFINE (the field's data does not follow the rename).

Usage:
    from db_migrator.schema.diff import diff

    changes = diff(previous_snapshot, current_snapshot)
    if not changes.is_empty():
        undo = changes.reverse()   # equals diff(current_snapshot, previous_snapshot)
"""

from __future__ import annotations

from typing import Any, TypeVar

from pydantic import BaseModel, Field

from db_migrator.errors import ConstructionError
from db_migrator.schema.models import (
    ColumnSnapshot,
    EdgeSnapshot,
    EntitySnapshot,
    EntrySnapshot,
    EventSnapshot,
    IndexSnapshot,
    SchemaSnapshot,
    TableSnapshot,
)

E = TypeVar("E", bound=EntrySnapshot)


def _diff_entries(
    previous: dict[str, E],
    current: dict[str, E],
) -> tuple[list[E], list[str], dict[str, E]]:
    """Three-way split of two name-keyed entry mappings.

    Returns:
        ``(added, removed, modified)`` -- added entries sorted by name,
        removed names sorted, and modified names mapped to the new entry.
    """
    added = [current[name] for name in sorted(current.keys() - previous.keys())]
    removed = sorted(previous.keys() - current.keys())
    modified = {
        name: current[name]
        for name in sorted(current.keys() & previous.keys())
        if not previous[name].same_as(current[name])
    }
    return added, removed, modified


# ============================================================================
# Entity Diffs
# ============================================================================


class EntityDiff(BaseModel):
    """Changes of one table or edge and of its columns, indexes and events.

    ``previous`` is ``None`` when the entity is newly added; ``current`` is
    always present.  Build instances with ``between()``.
    """

    previous: Any = None
    current: Any
    added_columns: list[ColumnSnapshot] = Field(default_factory=list)
    removed_columns: list[str] = Field(default_factory=list)
    modified_columns: dict[str, ColumnSnapshot] = Field(default_factory=dict)
    added_indexes: list[IndexSnapshot] = Field(default_factory=list)
    removed_indexes: list[str] = Field(default_factory=list)
    modified_indexes: dict[str, IndexSnapshot] = Field(default_factory=dict)
    added_events: list[EventSnapshot] = Field(default_factory=list)
    removed_events: list[str] = Field(default_factory=list)
    modified_events: dict[str, EventSnapshot] = Field(default_factory=dict)

    @classmethod
    def between(cls, previous: EntitySnapshot | None, current: EntitySnapshot | None):
        """Compute the diff that turns *previous* into *current*.

        Args:
            previous: Entity before the change, or ``None`` if it is new.
            current: Entity after the change.

        Raises:
            ConstructionError: If *current* is ``None`` (an entity that
                disappears is a removal, not a diff).
        """
        if current is None and previous is None:
            raise ConstructionError(f"Cannot diff {cls._kind()}s: both sides are missing")
        if current is None:
            raise ConstructionError(
                f"Cannot diff {cls._kind()} '{previous.name}': current definition is "
                f"missing; record it as removed instead"
            )
        if previous is not None and previous.name != current.name:
            raise ConstructionError(
                f"Cannot diff {cls._kind()} '{previous.name}' against '{current.name}'"
            )

        before_columns = previous.columns if previous else {}
        before_indexes = previous.indexes if previous else {}
        before_events = previous.events if previous else {}

        added_columns, removed_columns, modified_columns = _diff_entries(
            before_columns, current.columns
        )
        added_indexes, removed_indexes, modified_indexes = _diff_entries(
            before_indexes, current.indexes
        )
        added_events, removed_events, modified_events = _diff_entries(
            before_events, current.events
        )

        return cls(
            previous=previous,
            current=current,
            added_columns=added_columns,
            removed_columns=removed_columns,
            modified_columns=modified_columns,
            added_indexes=added_indexes,
            removed_indexes=removed_indexes,
            modified_indexes=modified_indexes,
            added_events=added_events,
            removed_events=removed_events,
            modified_events=modified_events,
        )

    @classmethod
    def _kind(cls) -> str:
        return "entity"

    @property
    def name(self) -> str:
        return self.current.name

    @property
    def definition_changed(self) -> bool:
        """True if the entity's own definition text differs (or it is new)."""
        return self.previous is None or not self.previous.same_as(self.current)

    def has_entry_changes(self) -> bool:
        """True if any column, index or event changed."""
        return bool(
            self.added_columns or self.removed_columns or self.modified_columns
            or self.added_indexes or self.removed_indexes or self.modified_indexes
            or self.added_events or self.removed_events or self.modified_events
        )

    def is_empty(self) -> bool:
        return not self.definition_changed and not self.has_entry_changes()

    def reverse(self):
        """Return the diff that undoes this one.

        Added and removed entries swap; modified entries take their
        previous definitions.

        Raises:
            ConstructionError: If there is no previous definition to
                return to (the entity was newly added).
        """
        if self.previous is None:
            raise ConstructionError(
                f"Cannot reverse diff of {self._kind()} '{self.name}': it has no "
                f"previous definition"
            )
        before: EntitySnapshot = self.previous
        return type(self)(
            previous=self.current,
            current=before,
            added_columns=[before.columns[n] for n in self.removed_columns],
            removed_columns=[c.name for c in self.added_columns],
            modified_columns={n: before.columns[n] for n in self.modified_columns},
            added_indexes=[before.indexes[n] for n in self.removed_indexes],
            removed_indexes=[i.name for i in self.added_indexes],
            modified_indexes={n: before.indexes[n] for n in self.modified_indexes},
            added_events=[before.events[n] for n in self.removed_events],
            removed_events=[e.name for e in self.added_events],
            modified_events={n: before.events[n] for n in self.modified_events},
        )


class TableDiff(EntityDiff):
    """Changes of one table."""

    previous: TableSnapshot | None = None
    current: TableSnapshot

    @classmethod
    def _kind(cls) -> str:
        return "table"


class EdgeDiff(EntityDiff):
    """Changes of one edge."""

    previous: EdgeSnapshot | None = None
    current: EdgeSnapshot

    @classmethod
    def _kind(cls) -> str:
        return "edge"


# ============================================================================
# Schema Diff
# ============================================================================


class SchemaDiff(BaseModel):
    """Changes between two snapshots, partitioned into added/removed/modified.

    ``source`` is the previous snapshot and ``target`` the current one.  A
    name appears in at most one of the added, removed and modified
    partitions.
    """

    added_tables: set[str] = Field(default_factory=set)
    removed_tables: set[str] = Field(default_factory=set)
    modified_tables: dict[str, TableDiff] = Field(default_factory=dict)
    added_edges: set[str] = Field(default_factory=set)
    removed_edges: set[str] = Field(default_factory=set)
    modified_edges: dict[str, EdgeDiff] = Field(default_factory=dict)
    source: SchemaSnapshot = Field(default_factory=SchemaSnapshot)
    target: SchemaSnapshot = Field(default_factory=SchemaSnapshot)

    def is_empty(self) -> bool:
        return not (
            self.added_tables or self.removed_tables or self.modified_tables
            or self.added_edges or self.removed_edges or self.modified_edges
        )

    def change_count(self) -> int:
        """Number of tables and edges touched by this diff."""
        return (
            len(self.added_tables) + len(self.removed_tables) + len(self.modified_tables)
            + len(self.added_edges) + len(self.removed_edges) + len(self.modified_edges)
        )

    def reverse(self) -> SchemaDiff:
        """Return the diff that undoes this one.

        ``diff(a, b).reverse() == diff(b, a)`` for any well-formed
        snapshots ``a`` and ``b``.
        """
        return SchemaDiff(
            added_tables=set(self.removed_tables),
            removed_tables=set(self.added_tables),
            modified_tables={n: d.reverse() for n, d in self.modified_tables.items()},
            added_edges=set(self.removed_edges),
            removed_edges=set(self.added_edges),
            modified_edges={n: d.reverse() for n, d in self.modified_edges.items()},
            source=self.target,
            target=self.source,
        )


def _diff_entities(
    previous: dict[str, EntitySnapshot],
    current: dict[str, EntitySnapshot],
    diff_type: type[EntityDiff],
) -> tuple[set[str], set[str], dict[str, Any]]:
    added = set(current.keys() - previous.keys())
    removed = set(previous.keys() - current.keys())
    modified: dict[str, Any] = {}
    for name in sorted(current.keys() & previous.keys()):
        entity_diff = diff_type.between(previous[name], current[name])
        if not entity_diff.is_empty():
            modified[name] = entity_diff
    return added, removed, modified


def diff(previous: SchemaSnapshot | None, current: SchemaSnapshot) -> SchemaDiff:
    """Compute the structural diff that turns *previous* into *current*.

    Args:
        previous: Last known snapshot, or ``None`` for an empty schema.
        current: Target snapshot.

    Returns:
        ``SchemaDiff`` holding both snapshots for traceability.

    Raises:
        ConstructionError: If *current* is ``None``.
        InvalidSnapshotError: If either snapshot has dangling edge endpoints.
        RenderError: If a definition cannot be rendered for comparison.

    Examples:
        >>> from db_migrator.schema.models import TableSnapshot
        >>> a = SchemaSnapshot()
        >>> b = SchemaSnapshot(tables=[TableSnapshot(name="users", definition_text="DEFINE TABLE users")])
        >>> sorted(diff(a, b).added_tables)
        ['users']
        >>> diff(b, b).is_empty()
        True
    """
    if current is None:
        raise ConstructionError("Cannot diff schemas: current snapshot is missing")

    source = previous if previous is not None else SchemaSnapshot()
    source.check_edges()
    current.check_edges()

    added_tables, removed_tables, modified_tables = _diff_entities(
        source.tables, current.tables, TableDiff
    )
    added_edges, removed_edges, modified_edges = _diff_entities(
        source.edges, current.edges, EdgeDiff
    )

    return SchemaDiff(
        added_tables=added_tables,
        removed_tables=removed_tables,
        modified_tables=modified_tables,
        added_edges=added_edges,
        removed_edges=removed_edges,
        modified_edges=modified_edges,
        source=source,
        target=current,
    )
