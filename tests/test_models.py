"""Tests for snapshot, live-introspection and drift-report models.

Verifies that:
- Entries are keyed and ordered by name, with mismatches rejected
- Canonical text comes from rendered text or the structured definition
- Rendering failures surface as ``RenderError``
- Dangling edge endpoints are rejected
- Snapshots survive a JSON round-trip unchanged
- ``LiveInfo`` converts into a comparable snapshot
- ``DeviationReport`` reports issues correctly
"""

import pytest
from pydantic import ValidationError

from db_migrator.errors import InvalidSnapshotError, RenderError
from db_migrator.schema.diff import diff
from db_migrator.schema.models import (
    ColumnSnapshot,
    DeviationReport,
    EdgeSnapshot,
    EntityDeviation,
    IndexSnapshot,
    LiveEntity,
    LiveInfo,
    SchemaSnapshot,
    TableSnapshot,
)


class _Definition:
    """Structured definition stand-in exposing ``build()``."""

    def __init__(self, text: str) -> None:
        self.text = text
        self.calls = 0

    def build(self) -> str:
        self.calls += 1
        return self.text


class _BrokenDefinition:
    def build(self) -> str:
        raise RuntimeError("missing type")


def _users() -> TableSnapshot:
    return TableSnapshot(
        name="users",
        definition_text="DEFINE TABLE users SCHEMAFULL",
        columns=[
            ColumnSnapshot(name="name", definition_text="DEFINE FIELD name ON TABLE users TYPE string"),
            ColumnSnapshot(name="id", definition_text="DEFINE FIELD id ON TABLE users TYPE string"),
        ],
        indexes=[
            IndexSnapshot(name="users_name", definition_text="DEFINE INDEX users_name ON TABLE users FIELDS name"),
        ],
    )


# ------------------------------------------------------------------
# Entry keying
# ------------------------------------------------------------------


class TestEntryKeying:
    """Entries are stored in name-keyed, name-ordered mappings."""

    def test_list_input_is_keyed_by_name(self) -> None:
        """A list of columns becomes a dict keyed by column name."""
        table = _users()
        assert set(table.columns) == {"id", "name"}
        assert table.columns["id"].name == "id"

    def test_entries_ordered_by_name(self) -> None:
        """Keys are sorted regardless of input order."""
        assert list(_users().columns) == ["id", "name"]

    def test_duplicate_names_rejected(self) -> None:
        """Two entries with the same name are a validation error."""
        with pytest.raises(ValidationError):
            TableSnapshot(
                name="users",
                definition_text="DEFINE TABLE users",
                columns=[
                    ColumnSnapshot(name="id", definition_text="a"),
                    ColumnSnapshot(name="id", definition_text="b"),
                ],
            )

    def test_key_must_match_entry_name(self) -> None:
        """A dict key that differs from the entry's name is rejected."""
        with pytest.raises(ValidationError):
            TableSnapshot(
                name="users",
                definition_text="DEFINE TABLE users",
                columns={"email": ColumnSnapshot(name="mail", definition_text="x")},
            )

    def test_snapshot_tables_keyed(self) -> None:
        """SchemaSnapshot accepts a list of tables."""
        snap = SchemaSnapshot(tables=[_users()])
        assert list(snap.tables) == ["users"]


# ------------------------------------------------------------------
# Canonical text
# ------------------------------------------------------------------


class TestCanonicalText:
    """canonical_text() prefers rendered text and falls back to build()."""

    def test_rendered_text_returned(self) -> None:
        """definition_text is returned as-is."""
        col = ColumnSnapshot(name="id", definition_text="DEFINE FIELD id ON TABLE t")
        assert col.canonical_text() == "DEFINE FIELD id ON TABLE t"

    def test_definition_built_when_no_text(self) -> None:
        """Without text, the structured definition is rendered."""
        col = ColumnSnapshot(name="id", definition=_Definition("DEFINE FIELD id ON TABLE t"))
        assert col.canonical_text() == "DEFINE FIELD id ON TABLE t"

    def test_neither_present_raises(self) -> None:
        """No text and no definition is a RenderError naming the entry."""
        with pytest.raises(RenderError) as exc_info:
            ColumnSnapshot(name="ghost").canonical_text()
        assert exc_info.value.name == "ghost"

    def test_build_failure_raises_render_error(self) -> None:
        """Exceptions from build() are wrapped in RenderError."""
        col = ColumnSnapshot(name="broken", definition=_BrokenDefinition())
        with pytest.raises(RenderError, match="missing type"):
            col.canonical_text()

    def test_rendered_fills_text(self) -> None:
        """rendered() returns a copy carrying the built text."""
        definition = _Definition("DEFINE TABLE users")
        table = TableSnapshot(
            name="users",
            definition=definition,
            columns=[ColumnSnapshot(name="id", definition=_Definition("DEFINE FIELD id ON TABLE users"))],
        )
        rendered = table.rendered()
        assert rendered.definition_text == "DEFINE TABLE users"
        assert rendered.columns["id"].definition_text == "DEFINE FIELD id ON TABLE users"
        assert table.definition_text is None

    def test_definition_not_serialized(self) -> None:
        """The structured definition never appears in JSON."""
        col = ColumnSnapshot(name="id", definition=_Definition("x")).rendered()
        assert set(col.model_dump()) == {"name", "definition_text"}


# ------------------------------------------------------------------
# Edges
# ------------------------------------------------------------------


class TestCheckEdges:
    """check_edges() rejects endpoints that name unknown tables."""

    def test_known_endpoints_pass(self) -> None:
        """Edges between tables of the snapshot are valid."""
        snap = SchemaSnapshot(
            tables=[_users(), TableSnapshot(name="posts", definition_text="DEFINE TABLE posts")],
            edges=[EdgeSnapshot(name="wrote", definition_text="DEFINE TABLE wrote TYPE RELATION",
                                from_table="users", to_table="posts")],
        )
        snap.check_edges()

    def test_dangling_endpoint_raises(self) -> None:
        """An edge pointing at a missing table is invalid."""
        snap = SchemaSnapshot(
            tables=[_users()],
            edges=[EdgeSnapshot(name="wrote", definition_text="DEFINE TABLE wrote",
                                from_table="users", to_table="posts")],
        )
        with pytest.raises(InvalidSnapshotError, match="wrote -> posts"):
            snap.check_edges()

    def test_external_tables_accepted(self) -> None:
        """Endpoints resolvable outside the snapshot can be whitelisted."""
        snap = SchemaSnapshot(
            edges=[EdgeSnapshot(name="wrote", definition_text="DEFINE TABLE wrote",
                                from_table="users", to_table="posts")],
        )
        snap.check_edges(external_tables=["users", "posts"])

    def test_unknown_endpoints_unconstrained(self) -> None:
        """Edges without declared endpoints never dangle."""
        SchemaSnapshot(edges=[EdgeSnapshot(name="link", definition_text="DEFINE TABLE link")]).check_edges()


# ------------------------------------------------------------------
# Serialization
# ------------------------------------------------------------------


class TestSerialization:
    """JSON round-trip preserves the snapshot exactly."""

    def test_round_trip_diff_is_empty(self) -> None:
        """Loading a saved snapshot yields no diff against the original."""
        original = SchemaSnapshot(
            tables=[_users(), TableSnapshot(name="posts", definition_text="DEFINE TABLE posts")],
            edges=[EdgeSnapshot(name="wrote", definition_text="DEFINE TABLE wrote TYPE RELATION",
                                from_table="users", to_table="posts")],
        )
        loaded = SchemaSnapshot.model_validate_json(original.model_dump_json())
        assert diff(original, loaded).is_empty()
        assert loaded.edges["wrote"].to_table == "posts"

    def test_checksum_stable_across_round_trip(self) -> None:
        """The checksum depends only on content."""
        original = SchemaSnapshot(tables=[_users()])
        loaded = SchemaSnapshot.model_validate_json(original.model_dump_json())
        assert original.checksum() == loaded.checksum()

    def test_checksum_changes_with_content(self) -> None:
        """Changing one definition changes the checksum."""
        a = SchemaSnapshot(tables=[TableSnapshot(name="t", definition_text="DEFINE TABLE t")])
        b = SchemaSnapshot(tables=[TableSnapshot(name="t", definition_text="DEFINE TABLE t SCHEMAFULL")])
        assert a.checksum() != b.checksum()


# ------------------------------------------------------------------
# Live info
# ------------------------------------------------------------------


class TestLiveInfo:
    """LiveInfo converts into a SchemaSnapshot."""

    def test_to_snapshot_maps_texts(self) -> None:
        """Fields, indexes and events become entry snapshots."""
        live = LiveInfo(tables={
            "users": LiveEntity(
                name="users",
                definition="DEFINE TABLE users",
                columns={"id": "DEFINE FIELD id ON users"},
                indexes={"idx": "DEFINE INDEX idx ON users"},
                events={"ev": "DEFINE EVENT ev ON users"},
            ),
        })
        snap = live.to_snapshot()
        users = snap.tables["users"]
        assert users.canonical_text() == "DEFINE TABLE users"
        assert users.columns["id"].canonical_text() == "DEFINE FIELD id ON users"
        assert list(users.indexes) == ["idx"]
        assert list(users.events) == ["ev"]

    def test_edge_names_reclassify_tables(self) -> None:
        """Live tables named as edges are returned as edges."""
        live = LiveInfo(tables={
            "users": LiveEntity(name="users", definition="DEFINE TABLE users"),
            "follows": LiveEntity(name="follows", definition="DEFINE TABLE follows TYPE RELATION"),
        })
        snap = live.to_snapshot(edge_names=["follows"])
        assert list(snap.tables) == ["users"]
        assert list(snap.edges) == ["follows"]


# ------------------------------------------------------------------
# Deviation report
# ------------------------------------------------------------------


class TestDeviationReport:
    """DeviationReport summarises drift."""

    def test_empty_report_has_no_issues(self) -> None:
        """A clean report says so."""
        report = DeviationReport()
        assert not report.has_issues()
        assert report.issue_count == 0
        assert report.format_report() == "No drift detected"

    def test_issue_count_and_names(self) -> None:
        """Every list contributes to the issue count."""
        report = DeviationReport(
            missing=["orders"],
            extra=["legacy"],
            modified=[EntityDeviation(name="users", missing_columns=["email"])],
        )
        assert report.has_issues()
        assert report.issue_count == 3
        assert report.modified_names == ["users"]
        assert report.get("users").missing_columns == ["email"]
        assert report.get("orders") is None

    def test_format_report_lists_details(self) -> None:
        """The formatted report names each deviation."""
        report = DeviationReport(
            missing=["orders"],
            modified=[EntityDeviation(name="users", missing_columns=["email"])],
        )
        text = report.format_report()
        assert "Missing (1)" in text
        assert "orders" in text
        assert "missing field email" in text
