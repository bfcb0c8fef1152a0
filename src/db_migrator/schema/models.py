"""Pydantic models for schema snapshots, live introspection and drift reports.

This module contains schema-domain models:
- Snapshot models: ColumnSnapshot, IndexSnapshot, EventSnapshot,
  TableSnapshot, EdgeSnapshot, SchemaSnapshot
- Introspection models: LiveEntity, LiveInfo
- Validation models: EntityDeviation, DeviationReport

Diff models (SchemaDiff, TableDiff, EdgeDiff) live in
db_migrator.schema.diff.

Change detection is text based: two entries are unchanged iff their
canonical statement texts are byte-equal.
"""

import hashlib
from collections.abc import Iterable
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator

from db_migrator.errors import InvalidSnapshotError, RenderError


# ============================================================================
# Entry Snapshots (columns, indexes, events)
# ============================================================================


class EntrySnapshot(BaseModel):
    """Common shape of every named schema entry.

    ``definition`` holds a structured definition object exposing
    ``build() -> str``; it is never serialized.  ``definition_text`` holds
    the rendered statement text.  At least one must be present for the
    entry to be actionable.
    """

    name: str
    definition: Any = Field(default=None, exclude=True, repr=False)
    definition_text: str | None = None

    def canonical_text(self) -> str:
        """Return the canonical statement text of this entry.

        Raises:
            RenderError: If there is no text and no definition, or the
                definition fails to render.
        """
        if self.definition_text is not None:
            return self.definition_text
        if self.definition is None:
            raise RenderError(
                self.name, f"'{self.name}' has neither a definition nor rendered text"
            )
        try:
            text = self.definition.build()
        except RenderError:
            raise
        except Exception as e:
            raise RenderError(self.name, f"Cannot render '{self.name}': {e}") from e
        if not isinstance(text, str):
            raise RenderError(
                self.name, f"Definition of '{self.name}' rendered {type(text).__name__}"
            )
        return text

    def same_as(self, other: "EntrySnapshot") -> bool:
        """True if both entries render to byte-equal text."""
        return self.canonical_text() == other.canonical_text()

    def rendered(self):
        """Return a copy with ``definition_text`` filled in."""
        return self.model_copy(update={"definition_text": self.canonical_text()})


class ColumnSnapshot(EntrySnapshot):
    """Snapshot of a field (column) definition.

    Example:
        >>> col = ColumnSnapshot(name="email", definition_text="DEFINE FIELD email ON TABLE users TYPE string")
        >>> col.canonical_text()
        'DEFINE FIELD email ON TABLE users TYPE string'
    """


class IndexSnapshot(EntrySnapshot):
    """Snapshot of an index definition."""


class EventSnapshot(EntrySnapshot):
    """Snapshot of an event definition."""


def _keyed(value: Any) -> Any:
    """Accept a list of entries and key it by entry name."""
    if isinstance(value, (list, tuple)):
        keyed: dict[str, Any] = {}
        for entry in value:
            name = entry.name if isinstance(entry, BaseModel) else entry["name"]
            if name in keyed:
                raise ValueError(f"Duplicate entry name: {name}")
            keyed[name] = entry
        return keyed
    return value


def _sorted_by_name(value: dict[str, Any]) -> dict[str, Any]:
    """Order a name-keyed mapping by name, checking keys match entry names."""
    for key, entry in value.items():
        if key != entry.name:
            raise ValueError(f"Key '{key}' does not match entry name '{entry.name}'")
    return dict(sorted(value.items()))


# ============================================================================
# Table / Edge Snapshots
# ============================================================================


class EntitySnapshot(EntrySnapshot):
    """A table-like entity owning columns, indexes and events."""

    columns: dict[str, ColumnSnapshot] = Field(default_factory=dict)
    indexes: dict[str, IndexSnapshot] = Field(default_factory=dict)
    events: dict[str, EventSnapshot] = Field(default_factory=dict)

    @field_validator("columns", "indexes", "events", mode="before")
    @classmethod
    def _key_entries(cls, value: Any) -> Any:
        return _keyed(value)

    @field_validator("columns", "indexes", "events")
    @classmethod
    def _order_entries(cls, value: dict[str, Any]) -> dict[str, Any]:
        return _sorted_by_name(value)

    def rendered(self):
        """Return a copy with every definition rendered to text."""
        return self.model_copy(
            update={
                "definition_text": self.canonical_text(),
                "columns": {n: c.rendered() for n, c in self.columns.items()},
                "indexes": {n: i.rendered() for n, i in self.indexes.items()},
                "events": {n: e.rendered() for n, e in self.events.items()},
            }
        )


class TableSnapshot(EntitySnapshot):
    """Snapshot of a table with its columns, indexes and events.

    Example:
        >>> table = TableSnapshot(
        ...     name="users",
        ...     definition_text="DEFINE TABLE users SCHEMAFULL",
        ...     columns=[ColumnSnapshot(name="name", definition_text="DEFINE FIELD name ON TABLE users TYPE string")],
        ... )
        >>> list(table.columns)
        ['name']
    """


class EdgeSnapshot(EntitySnapshot):
    """Snapshot of an edge (relation table) between two tables."""

    from_table: str | None = None
    to_table: str | None = None

    @property
    def endpoints(self) -> list[str]:
        """Declared endpoint table names (unknown endpoints omitted)."""
        return [t for t in (self.from_table, self.to_table) if t is not None]


class SchemaSnapshot(BaseModel):
    """Complete schema description at one point in time.

    Example:
        >>> snap = SchemaSnapshot(tables=[TableSnapshot(name="users", definition_text="DEFINE TABLE users")])
        >>> list(snap.tables)
        ['users']
    """

    tables: dict[str, TableSnapshot] = Field(default_factory=dict)
    edges: dict[str, EdgeSnapshot] = Field(default_factory=dict)

    @field_validator("tables", "edges", mode="before")
    @classmethod
    def _key_entities(cls, value: Any) -> Any:
        return _keyed(value)

    @field_validator("tables", "edges")
    @classmethod
    def _order_entities(cls, value: dict[str, Any]) -> dict[str, Any]:
        return _sorted_by_name(value)

    def check_edges(self, external_tables: Iterable[str] = ()) -> None:
        """Reject edges whose endpoints are not tables of this snapshot.

        Args:
            external_tables: Table names resolvable outside this snapshot.

        Raises:
            InvalidSnapshotError: If any edge endpoint dangles.
        """
        known = set(self.tables) | set(external_tables)
        dangling: list[str] = []
        for edge in self.edges.values():
            for endpoint in edge.endpoints:
                if endpoint not in known:
                    dangling.append(f"{edge.name} -> {endpoint}")
        if dangling:
            raise InvalidSnapshotError(
                f"Edges reference unknown tables: {', '.join(dangling)}"
            )

    def rendered(self) -> "SchemaSnapshot":
        """Return a copy where every entry carries its rendered text."""
        return SchemaSnapshot(
            tables={n: t.rendered() for n, t in self.tables.items()},
            edges={n: e.rendered() for n, e in self.edges.items()},
        )

    def checksum(self) -> str:
        """SHA-256 of the rendered snapshot's JSON form."""
        payload = self.rendered().model_dump_json()
        return hashlib.sha256(payload.encode("utf-8")).hexdigest()

    def is_empty(self) -> bool:
        return not self.tables and not self.edges


# ============================================================================
# Live Introspection Models
# ============================================================================


class LiveEntity(BaseModel):
    """Live definition of one table or edge as reported by the database."""

    name: str
    definition: str = ""
    columns: dict[str, str] = Field(default_factory=dict)
    indexes: dict[str, str] = Field(default_factory=dict)
    events: dict[str, str] = Field(default_factory=dict)


class LiveInfo(BaseModel):
    """Structure of the live database: names mapped to rendered definitions."""

    tables: dict[str, LiveEntity] = Field(default_factory=dict)
    edges: dict[str, LiveEntity] = Field(default_factory=dict)

    def to_snapshot(self, edge_names: Iterable[str] = ()) -> SchemaSnapshot:
        """Convert to a ``SchemaSnapshot``.

        Args:
            edge_names: Names to classify as edges even when the live
                database reported them as plain tables.
        """
        edge_set = set(edge_names)
        tables: dict[str, TableSnapshot] = {}
        edges: dict[str, EdgeSnapshot] = {}

        for name, entity in self.tables.items():
            if name in edge_set:
                edges[name] = _entity_snapshot(EdgeSnapshot, entity)
            else:
                tables[name] = _entity_snapshot(TableSnapshot, entity)
        for name, entity in self.edges.items():
            edges[name] = _entity_snapshot(EdgeSnapshot, entity)

        return SchemaSnapshot(tables=tables, edges=edges)


def _entity_snapshot(model: type[EntitySnapshot], entity: LiveEntity) -> Any:
    return model(
        name=entity.name,
        definition_text=entity.definition,
        columns={n: ColumnSnapshot(name=n, definition_text=t) for n, t in entity.columns.items()},
        indexes={n: IndexSnapshot(name=n, definition_text=t) for n, t in entity.indexes.items()},
        events={n: EventSnapshot(name=n, definition_text=t) for n, t in entity.events.items()},
    )


# ============================================================================
# Drift Report Models
# ============================================================================


class EntityDeviation(BaseModel):
    """Differences found on a table or edge present both live and expected."""

    name: str
    kind: Literal["table", "edge"] = "table"
    definition_mismatch: bool = False
    missing_columns: list[str] = Field(default_factory=list)
    extra_columns: list[str] = Field(default_factory=list)
    modified_columns: list[str] = Field(default_factory=list)
    missing_indexes: list[str] = Field(default_factory=list)
    extra_indexes: list[str] = Field(default_factory=list)
    modified_indexes: list[str] = Field(default_factory=list)
    missing_events: list[str] = Field(default_factory=list)
    extra_events: list[str] = Field(default_factory=list)
    modified_events: list[str] = Field(default_factory=list)

    def describe(self) -> list[str]:
        """Human-readable lines, one per difference."""
        lines: list[str] = []
        if self.definition_mismatch:
            lines.append("definition differs")
        for label, names in (
            ("missing field", self.missing_columns),
            ("extra field", self.extra_columns),
            ("modified field", self.modified_columns),
            ("missing index", self.missing_indexes),
            ("extra index", self.extra_indexes),
            ("modified index", self.modified_indexes),
            ("missing event", self.missing_events),
            ("extra event", self.extra_events),
            ("modified event", self.modified_events),
        ):
            lines.extend(f"{label} {name}" for name in names)
        return lines


class DeviationReport(BaseModel):
    """Result of comparing a live database against an expected snapshot.

    Example:
        >>> report = DeviationReport()
        >>> report.has_issues()
        False
        >>> report.format_report()
        'No drift detected'
    """

    missing: list[str] = Field(default_factory=list)
    extra: list[str] = Field(default_factory=list)
    modified: list[EntityDeviation] = Field(default_factory=list)

    def has_issues(self) -> bool:
        """True if anything is missing, extra or modified."""
        return bool(self.missing or self.extra or self.modified)

    @property
    def issue_count(self) -> int:
        return len(self.missing) + len(self.extra) + len(self.modified)

    @property
    def modified_names(self) -> list[str]:
        return [d.name for d in self.modified]

    def get(self, name: str) -> EntityDeviation | None:
        """Return the deviation recorded for *name*, if any."""
        for deviation in self.modified:
            if deviation.name == name:
                return deviation
        return None

    def format_report(self) -> str:
        """Format the report as a human-readable block."""
        if not self.has_issues():
            return "No drift detected"

        lines = ["Schema drift detected:"]

        if self.missing:
            lines.append(f"\n  Missing ({len(self.missing)}):")
            for name in self.missing:
                lines.append(f"    - {name}")

        if self.extra:
            lines.append(f"\n  Extra ({len(self.extra)}):")
            for name in self.extra:
                lines.append(f"    - {name}")

        if self.modified:
            lines.append(f"\n  Modified ({len(self.modified)}):")
            for deviation in self.modified:
                lines.append(f"    - {deviation.kind} {deviation.name}")
                for detail in deviation.describe():
                    lines.append(f"        {detail}")

        return "\n".join(lines)
