"""Typed errors raised by the migration toolkit.

Every failure surfaced to callers of ``MigrationManager`` is one of these
types -- nothing is swallowed and nothing aborts the process.

Usage:
    from db_migrator.errors import ConstructionError, ExecutionError

    try:
        result = await manager.apply("0002_add_orders")
        result.raise_for_state()
    except DriftDetectedError as e:
        print(e.report.format_report())
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from db_migrator.schema.models import DeviationReport


class MigrationError(Exception):
    """Base class for all migration toolkit errors."""

    pass


class ConstructionError(MigrationError):
    """Raised when a diff is requested with malformed inputs.

    Both sides missing, or the current side missing where it is required.
    These are programming-contract violations, raised before any I/O.
    """

    pass


class InvalidSnapshotError(MigrationError):
    """Raised when a snapshot references edge endpoints that do not exist."""

    pass


class RenderError(MigrationError):
    """Raised when a definition cannot produce its canonical statement text."""

    def __init__(self, name: str, message: str = "") -> None:
        self.name = name
        super().__init__(message or f"Cannot render definition for '{name}'")


class SequenceError(MigrationError):
    """Raised when a diff cannot be turned into a statement sequence."""

    pass


class RenderFailure(SequenceError):
    """A definition referenced by a diff failed to render."""

    def __init__(self, name: str, cause: Exception | None = None) -> None:
        self.name = name
        self.cause = cause
        detail = f": {cause}" if cause else ""
        super().__init__(f"Render failure for '{name}'{detail}")


class ExecutionError(MigrationError):
    """Raised when the live database rejects a statement.

    Attributes:
        statement: The statement text that failed.
        index: 1-based position of the statement in its sequence (when known).
        cause: The underlying driver exception (when known).
    """

    def __init__(
        self,
        statement: str,
        message: str = "",
        index: int | None = None,
        cause: Exception | None = None,
    ) -> None:
        self.statement = statement
        self.index = index
        self.cause = cause
        super().__init__(message or f"Statement failed: {statement}")


class DriftDetectedError(MigrationError):
    """Raised when the live database does not match the expected snapshot."""

    def __init__(self, report: DeviationReport, message: str = "") -> None:
        self.report = report
        super().__init__(
            message or f"Schema drift detected: {report.issue_count} issues"
        )


class HistoryError(MigrationError):
    """Raised for invalid migration history operations.

    Unknown migration names, out-of-order apply, rollback of a migration
    that is not the applied head, corrupt history files.
    """

    pass


class MigrationLockedError(MigrationError):
    """Raised when another process holds the migration lock."""

    pass


class ProfileNotFoundError(MigrationError):
    """Raised when no database profile is configured."""

    pass
