"""Drift detection: compare a live database against an expected snapshot.

Pure logic -- no I/O, no database connections.  The live structure comes
from an ``Introspector`` and is diffed with the same engine used for
migrations, treating the live state as "previous" and the expected
snapshot as "current".

Usage:
    from db_migrator.schema.validator import validate

    live = await introspector.describe_database()
    report = validate(live, expected_snapshot)
    if report.has_issues():
        print(report.format_report())
"""

from db_migrator.schema.diff import EntityDiff, diff
from db_migrator.schema.models import (
    DeviationReport,
    EntityDeviation,
    LiveInfo,
    SchemaSnapshot,
)


def _deviation(entity_diff: EntityDiff, kind: str) -> EntityDeviation:
    return EntityDeviation(
        name=entity_diff.name,
        kind=kind,
        definition_mismatch=entity_diff.definition_changed,
        missing_columns=[c.name for c in entity_diff.added_columns],
        extra_columns=list(entity_diff.removed_columns),
        modified_columns=list(entity_diff.modified_columns),
        missing_indexes=[i.name for i in entity_diff.added_indexes],
        extra_indexes=list(entity_diff.removed_indexes),
        modified_indexes=list(entity_diff.modified_indexes),
        missing_events=[e.name for e in entity_diff.added_events],
        extra_events=list(entity_diff.removed_events),
        modified_events=list(entity_diff.modified_events),
    )


def validate(live: LiveInfo | SchemaSnapshot, expected: SchemaSnapshot) -> DeviationReport:
    """Validate the live database structure against *expected*.

    Produces:
    - Missing: tables/edges in *expected* but absent live
    - Extra: tables/edges live but not in *expected*
    - Modified: tables/edges present in both whose definition, columns,
      indexes or events differ textually

    Args:
        live: Live structure from ``Introspector.describe_database()``, or
            an already converted snapshot.  Live tables named as edges in
            *expected* are compared as edges.
        expected: Snapshot the database should match.

    Returns:
        ``DeviationReport``; ``has_issues()`` is ``False`` on a match.

    Examples:
        >>> from db_migrator.schema.models import LiveEntity, TableSnapshot, ColumnSnapshot
        >>> live = LiveInfo(tables={"users": LiveEntity(name="users", definition="DEFINE TABLE users")})
        >>> expected = SchemaSnapshot(tables=[TableSnapshot(name="users", definition_text="DEFINE TABLE users")])
        >>> validate(live, expected).has_issues()
        False
    """
    if isinstance(live, LiveInfo):
        actual = live.to_snapshot(edge_names=expected.edges.keys())
    else:
        actual = live

    changes = diff(actual, expected)

    missing: list[str] = sorted(changes.added_tables) + sorted(changes.added_edges)
    extra: list[str] = sorted(changes.removed_tables) + sorted(changes.removed_edges)
    modified: list[EntityDeviation] = [
        _deviation(changes.modified_tables[name], "table")
        for name in sorted(changes.modified_tables)
    ] + [
        _deviation(changes.modified_edges[name], "edge")
        for name in sorted(changes.modified_edges)
    ]

    return DeviationReport(missing=missing, extra=extra, modified=modified)
