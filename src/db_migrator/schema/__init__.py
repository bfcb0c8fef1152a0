"""Schema snapshots, diffing, statement sequencing and drift detection.

Provides the snapshot models, the structural diff engine (``diff``), the
statement sequencer (``generate_statements``), the drift validator
(``validate``), live introspection (``InfoIntrospector``) and the explicit
declaration registry (``EntityRegistry``).

Usage:
    from db_migrator.schema import diff, generate_statements, validate
    from db_migrator.schema import SchemaSnapshot, TableSnapshot, EntityRegistry
"""

from db_migrator.schema.diff import EdgeDiff, EntityDiff, SchemaDiff, TableDiff, diff
from db_migrator.schema.introspector import InfoIntrospector, Introspector
from db_migrator.schema.models import (
    ColumnSnapshot,
    DeviationReport,
    EdgeSnapshot,
    EntityDeviation,
    EventSnapshot,
    IndexSnapshot,
    LiveEntity,
    LiveInfo,
    SchemaSnapshot,
    TableSnapshot,
)
from db_migrator.schema.registry import (
    EdgeDeclaration,
    EntityRegistry,
    EntryDeclaration,
    SchemaSource,
    TableDeclaration,
)
from db_migrator.schema.render import (
    Renderable,
    StatementRenderer,
    SurrealQLRenderer,
    ensure_overwrite,
)
from db_migrator.schema.sequencer import (
    Statement,
    generate_reverse_statements,
    generate_statements,
)
from db_migrator.schema.validator import validate

__all__ = [
    # Snapshots
    "ColumnSnapshot",
    "IndexSnapshot",
    "EventSnapshot",
    "TableSnapshot",
    "EdgeSnapshot",
    "SchemaSnapshot",
    # Diff
    "diff",
    "SchemaDiff",
    "EntityDiff",
    "TableDiff",
    "EdgeDiff",
    # Sequencing
    "Statement",
    "generate_statements",
    "generate_reverse_statements",
    "Renderable",
    "StatementRenderer",
    "SurrealQLRenderer",
    "ensure_overwrite",
    # Drift
    "validate",
    "LiveEntity",
    "LiveInfo",
    "EntityDeviation",
    "DeviationReport",
    "Introspector",
    "InfoIntrospector",
    # Declarations
    "SchemaSource",
    "EntityRegistry",
    "EntryDeclaration",
    "TableDeclaration",
    "EdgeDeclaration",
]
