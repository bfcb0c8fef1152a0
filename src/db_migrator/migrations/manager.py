"""Migration orchestration: snapshot, apply, rollback, drift checks.

The manager ties the pure pieces (diff, sequencer, validator) to the two
shared resources (the live database and the on-disk history) and holds
exclusive access to both for the duration of an apply or rollback.

State machine:

    CLEAN --snapshot()--> PENDING_DIFF --apply()--> APPLYING --> APPLIED
                                                        |
                                                        +--> FAILED
                                                        +--> DRIFT_DETECTED

A failed run leaves the applied head unchanged and the database in
whatever state the executed prefix produced.  Nothing is rolled back
automatically; the result says exactly how far the run got.

Usage:
    from db_migrator.migrations import MigrationHistory, MigrationManager

    manager = MigrationManager(
        history=MigrationHistory("migrations"),
        source=registry,
        client=client,
        introspector=InfoIntrospector(client),
    )
    manager.snapshot("add_orders")
    result = await manager.apply("add_orders")
    if not result.success:
        print(result.format_report())

    # or step through every pending entry
    results = await manager.up()
"""

import asyncio
import logging
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Literal

from pydantic import BaseModel, Field

from db_migrator.errors import (
    DriftDetectedError,
    ExecutionError,
    HistoryError,
    MigrationError,
)
from db_migrator.migrations.history import HistoryEntry, MigrationHistory
from db_migrator.schema.diff import diff
from db_migrator.schema.introspector import InfoIntrospector
from db_migrator.schema.models import DeviationReport, SchemaSnapshot
from db_migrator.schema.render import StatementRenderer, SurrealQLRenderer
from db_migrator.schema.sequencer import Statement, generate_statements
from db_migrator.schema.validator import validate

if TYPE_CHECKING:
    from db_migrator.adapters.base import DatabaseClient
    from db_migrator.schema.introspector import Introspector
    from db_migrator.schema.registry import SchemaSource

logger = logging.getLogger(__name__)


# ============================================================================
# Result Models
# ============================================================================


class MigrationState(str, Enum):
    """Lifecycle state of the manager and of each run."""

    CLEAN = "clean"
    PENDING_DIFF = "pending_diff"
    APPLYING = "applying"
    APPLIED = "applied"
    FAILED = "failed"
    DRIFT_DETECTED = "drift_detected"


class SnapshotResult(BaseModel):
    """Outcome of ``MigrationManager.snapshot()``.

    Attributes:
        written: True if a new history entry was written.
        entry_name: Name of the new entry (or of the newest one when
            nothing changed).
        sequence: Sequence number of that entry.
        statement_count: Statements the new entry applies (0 if not written).
        change_count: Tables and edges touched by the change.
        checksum: Checksum of the captured code schema.
    """

    written: bool = False
    entry_name: str | None = None
    sequence: int | None = None
    statement_count: int = 0
    change_count: int = 0
    checksum: str = ""


class MigrationResult(BaseModel):
    """Outcome of an apply or rollback run.

    Attributes:
        state: ``APPLIED``, ``FAILED`` or ``DRIFT_DETECTED``.
        migration_name: Entry the run targeted.
        direction: ``"apply"`` or ``"rollback"``.
        statements_executed: Statements that completed successfully.
        total_statements: Length of the planned sequence.
        executed_statements: Text of the completed statements, in order.
        failed_statement_index: 1-based index of the statement that failed
            or was interrupted.
        failed_statement: Its text.
        error: Error message for a failed run.
        deviations: Drift found before the run (or after it, when
            post-apply verification failed).
        cancelled: True if the caller cancelled the run mid-flight.
    """

    state: MigrationState
    migration_name: str
    direction: Literal["apply", "rollback"] = "apply"
    statements_executed: int = 0
    total_statements: int = 0
    executed_statements: list[str] = Field(default_factory=list)
    failed_statement_index: int | None = None
    failed_statement: str | None = None
    error: str | None = None
    deviations: DeviationReport | None = None
    cancelled: bool = False

    @property
    def success(self) -> bool:
        return self.state == MigrationState.APPLIED

    def raise_for_state(self) -> None:
        """Raise the typed error matching a failed or drift-blocked run.

        Raises:
            DriftDetectedError: Drift blocked the run, or post-apply
                verification found deviations.
            ExecutionError: A statement failed or was interrupted.
            MigrationError: Any other failure.
        """
        if self.state == MigrationState.DRIFT_DETECTED:
            raise DriftDetectedError(self.deviations or DeviationReport())
        if self.state != MigrationState.FAILED:
            return
        if self.failed_statement is not None:
            raise ExecutionError(
                self.failed_statement,
                self.error or "",
                index=self.failed_statement_index,
            )
        if self.deviations is not None and self.deviations.has_issues():
            raise DriftDetectedError(self.deviations, self.error or "")
        raise MigrationError(self.error or f"Migration {self.migration_name} failed")

    def format_report(self) -> str:
        """Format the result as a human-readable block."""
        verb = "Applied" if self.direction == "apply" else "Rolled back"
        if self.success:
            return f"{verb} {self.migration_name}: {self.statements_executed} statements"

        if self.state == MigrationState.DRIFT_DETECTED:
            lines = [f"{self.migration_name} blocked by drift (use force to override)"]
            if self.deviations is not None:
                lines.append(self.deviations.format_report())
            return "\n".join(lines)

        lines = [
            f"{self.migration_name} failed after {self.statements_executed} of "
            f"{self.total_statements} statements"
        ]
        if self.cancelled:
            lines.append("  Run was cancelled")
        if self.failed_statement is not None:
            lines.append(f"  Statement {self.failed_statement_index}: {self.failed_statement}")
        if self.error:
            lines.append(f"  Error: {self.error}")
        if self.statements_executed:
            lines.append(
                "  The database holds the executed prefix; the applied head is unchanged."
            )
        if self.deviations is not None and self.deviations.has_issues():
            lines.append(self.deviations.format_report())
        return "\n".join(lines)


class MigrationStatus(BaseModel):
    """Snapshot of where the history stands (no database access)."""

    state: MigrationState
    applied_head: str | None = None
    applied: list[str] = Field(default_factory=list)
    pending: list[str] = Field(default_factory=list)
    code_changed: bool = False
    last_result: MigrationResult | None = None


# ============================================================================
# Manager
# ============================================================================


class MigrationManager:
    """Orchestrates snapshots and apply/rollback runs against one database.

    Args:
        history: History directory reader/writer.
        source: Provides the schema currently declared in code.
        client: Live database connection.  Optional for offline use
            (snapshot, plan, status); apply, rollback and validate need it.
        introspector: Reports the live structure for drift checks
            (default: ``InfoIntrospector(client)``).
        renderer: Statement renderer (default: ``SurrealQLRenderer``).
        verify_after_apply: Re-validate the live database after a run.
    """

    def __init__(
        self,
        history: MigrationHistory,
        source: "SchemaSource",
        client: "DatabaseClient | None" = None,
        introspector: "Introspector | None" = None,
        renderer: StatementRenderer | None = None,
        verify_after_apply: bool = True,
    ) -> None:
        self.history = history
        self.source = source
        self.client = client
        if introspector is None and client is not None:
            introspector = InfoIntrospector(client)
        self.introspector = introspector
        self.renderer: StatementRenderer = renderer or SurrealQLRenderer()
        self.verify_after_apply = verify_after_apply
        self.state = MigrationState.CLEAN
        self.last_result: MigrationResult | None = None
        self._lock = asyncio.Lock()

    def _set_state(self, state: MigrationState) -> None:
        if state != self.state:
            logger.info(f"Migration state: {self.state.value} -> {state.value}")
        self.state = state

    # ------------------------------------------------------------------
    # Snapshots and planning (no database access)
    # ------------------------------------------------------------------

    def snapshot(self, name: str | None = None) -> SnapshotResult:
        """Capture the code schema and persist it if it changed.

        Args:
            name: Entry name (default: UTC timestamp based).

        Returns:
            ``SnapshotResult``; ``written`` is False when the code schema
            equals the newest entry.

        Raises:
            RenderError / RenderFailure: If a definition cannot be rendered.
            InvalidSnapshotError: If an edge endpoint is unknown.
            HistoryError: If *name* is invalid or taken.
        """
        current = self.source.current_schema_from_code()

        with self.history.lock():
            latest = self.history.latest()
            changes = diff(latest.snapshot if latest else None, current)

            if changes.is_empty():
                logger.info("Code schema unchanged; no snapshot written")
                return SnapshotResult(
                    written=False,
                    entry_name=latest.name if latest else None,
                    sequence=latest.sequence if latest else None,
                    checksum=current.checksum(),
                )

            statements = generate_statements(changes, self.renderer)
            entry_name = name or datetime.now(timezone.utc).strftime("snapshot_%Y%m%d_%H%M%S")
            entry = self.history.append(entry_name, current, len(statements))

        self._set_state(MigrationState.PENDING_DIFF)
        return SnapshotResult(
            written=True,
            entry_name=entry.name,
            sequence=entry.sequence,
            statement_count=len(statements),
            change_count=changes.change_count(),
            checksum=entry.checksum,
        )

    async def snapshot_from_db(self, name: str | None = None) -> SnapshotResult:
        """Record the live database structure as a new, already applied entry.

        Used to adopt changes made to the database outside the history.
        Names the code schema declares as edges are recorded as edges.

        Args:
            name: Entry name (default: UTC timestamp based).

        Returns:
            ``SnapshotResult``; ``written`` is False when the live structure
            equals the newest entry.

        Raises:
            MigrationError: If no database connection is configured.
            HistoryError: If entries are pending, or *name* is invalid or taken.
        """
        if self.introspector is None:
            raise MigrationError("No database connection configured for this manager")

        live = await self.introspector.describe_database()
        edge_names = self.source.current_schema_from_code().edges
        captured = live.to_snapshot(edge_names=edge_names)

        async with self._lock:
            with self.history.lock():
                pending = self.history.pending()
                if pending:
                    raise HistoryError(
                        f"Cannot snapshot the database: migration {pending[0].name} is pending"
                    )
                latest = self.history.latest()
                changes = diff(latest.snapshot if latest else None, captured)

                if changes.is_empty():
                    logger.info("Database matches the newest entry; no snapshot written")
                    return SnapshotResult(
                        written=False,
                        entry_name=latest.name if latest else None,
                        sequence=latest.sequence if latest else None,
                        checksum=captured.checksum(),
                    )

                statements = generate_statements(changes, self.renderer)
                entry_name = name or datetime.now(timezone.utc).strftime("database_%Y%m%d_%H%M%S")
                entry = self.history.append(entry_name, captured, len(statements))
                self.history.mark_applied(entry.name)

        logger.info(f"Recorded live database as {entry.filename} (applied)")
        self._set_state(MigrationState.CLEAN)
        return SnapshotResult(
            written=True,
            entry_name=entry.name,
            sequence=entry.sequence,
            statement_count=len(statements),
            change_count=changes.change_count(),
            checksum=entry.checksum,
        )

    def _before(self, name: str) -> SchemaSnapshot:
        previous = self.history.previous(name)
        return previous.snapshot if previous else SchemaSnapshot()

    def plan(self, migration_name: str, reverse: bool = False) -> list[Statement]:
        """Statements that apply (or with *reverse*, undo) an entry.

        Raises:
            HistoryError: If the entry does not exist.
            RenderFailure: If a definition cannot be rendered.
        """
        entry = self.history.get(migration_name)
        changes = diff(self._before(migration_name), entry.snapshot)
        if reverse:
            changes = changes.reverse()
        return generate_statements(changes, self.renderer)

    def status(self) -> MigrationStatus:
        """Applied head, pending entries and whether code changed since the newest entry."""
        applied = self.history.applied()
        pending = [e.name for e in self.history.pending()]
        latest = self.history.latest()
        code = self.source.current_schema_from_code()
        code_changed = not diff(latest.snapshot if latest else None, code).is_empty()

        state = self.state
        if state in (MigrationState.CLEAN, MigrationState.APPLIED, MigrationState.PENDING_DIFF):
            if pending or code_changed:
                state = MigrationState.PENDING_DIFF
            elif state == MigrationState.PENDING_DIFF:
                state = MigrationState.CLEAN

        return MigrationStatus(
            state=state,
            applied_head=applied[-1] if applied else None,
            applied=applied,
            pending=pending,
            code_changed=code_changed,
            last_result=self.last_result,
        )

    # ------------------------------------------------------------------
    # Drift
    # ------------------------------------------------------------------

    async def _check(self, expected: SchemaSnapshot) -> DeviationReport:
        if self.introspector is None:
            raise MigrationError("No database connection configured for this manager")
        live = await self.introspector.describe_database()
        return validate(live, expected)

    async def validate(self, expected: SchemaSnapshot | None = None) -> DeviationReport:
        """Compare the live database against *expected*.

        Args:
            expected: Snapshot to compare against (default: the applied
                head's snapshot, or an empty schema if nothing is applied).
        """
        if expected is None:
            head = self.history.head()
            expected = self.history.get(head).snapshot if head else SchemaSnapshot()

        report = await self._check(expected)
        if report.has_issues():
            logger.warning(f"Drift detected: {report.issue_count} issues")
            if self.state != MigrationState.APPLYING:
                self._set_state(MigrationState.DRIFT_DETECTED)
        return report

    # ------------------------------------------------------------------
    # Apply / rollback
    # ------------------------------------------------------------------

    async def apply(self, migration_name: str, force: bool = False) -> MigrationResult:
        """Apply the next pending entry.

        Args:
            migration_name: Must be the first entry after the applied head.
            force: Proceed even if the live database drifted from the
                snapshot preceding the entry.

        Returns:
            ``MigrationResult``.  A rejected statement is reported here
            (``FAILED``) rather than raised.

        Raises:
            HistoryError: If the entry is unknown or not next in line.
            MigrationLockedError: If another process holds the history lock.
        """
        return await self._run(migration_name, "apply", force)

    async def rollback(self, migration_name: str, force: bool = False) -> MigrationResult:
        """Undo the applied head.

        Args:
            migration_name: Must be the current applied head.
            force: Proceed even if the live database drifted from the
                entry's snapshot.

        Raises:
            HistoryError: If the entry is unknown or not the applied head.
            MigrationLockedError: If another process holds the history lock.
        """
        return await self._run(migration_name, "rollback", force)

    async def up(self, steps: int | None = None, force: bool = False) -> list[MigrationResult]:
        """Apply pending entries in order.

        Args:
            steps: Apply at most this many entries (default: all pending).
            force: Passed to each ``apply()``.

        Returns:
            One result per attempted entry.  Stops after the first result
            that is not ``APPLIED``.
        """
        results: list[MigrationResult] = []
        for entry in self.history.pending():
            if steps is not None and len(results) >= steps:
                break
            result = await self.apply(entry.name, force=force)
            results.append(result)
            if not result.success:
                break
        return results

    async def down(self, steps: int = 1, force: bool = False) -> list[MigrationResult]:
        """Roll back the applied head *steps* times.

        Stops early when nothing is applied or a rollback does not end
        ``APPLIED``.
        """
        results: list[MigrationResult] = []
        while len(results) < steps:
            head = self.history.head()
            if head is None:
                break
            result = await self.rollback(head, force=force)
            results.append(result)
            if not result.success:
                break
        return results

    def _endpoints(
        self, entry: HistoryEntry, direction: str
    ) -> tuple[SchemaSnapshot, SchemaSnapshot]:
        """``(expected live state before the run, target state)``."""
        if direction == "apply":
            pending = self.history.pending()
            if not pending or pending[0].name != entry.name:
                next_name = pending[0].name if pending else None
                raise HistoryError(
                    f"Cannot apply {entry.name}: next pending migration is {next_name}"
                )
            return self._before(entry.name), entry.snapshot

        head = self.history.head()
        if head != entry.name:
            raise HistoryError(f"Cannot roll back {entry.name}: applied head is {head}")
        return entry.snapshot, self._before(entry.name)

    async def _run(
        self,
        migration_name: str,
        direction: Literal["apply", "rollback"],
        force: bool,
    ) -> MigrationResult:
        if self.client is None:
            raise MigrationError("No database connection configured for this manager")
        async with self._lock:
            with self.history.lock():
                entry = self.history.get(migration_name)
                expected, target = self._endpoints(entry, direction)
                statements = self.plan(migration_name, reverse=direction == "rollback")

                result = MigrationResult(
                    state=MigrationState.APPLYING,
                    migration_name=migration_name,
                    direction=direction,
                    total_statements=len(statements),
                )
                self._set_state(MigrationState.APPLYING)
                try:
                    await self._execute(result, statements, expected, target, force)
                except asyncio.CancelledError:
                    result.state = MigrationState.FAILED
                    result.cancelled = True
                    result.error = result.error or "Cancelled"
                    logger.error(
                        f"{direction} {migration_name} cancelled after "
                        f"{result.statements_executed} of {len(statements)} statements; "
                        f"executed: {result.executed_statements}"
                    )
                    self.last_result = result
                    self._set_state(MigrationState.FAILED)
                    raise
                except Exception as e:
                    result.state = MigrationState.FAILED
                    result.error = result.error or str(e)
                    logger.error(
                        f"{direction} {migration_name} aborted after "
                        f"{result.statements_executed} of {len(statements)} statements: {e}"
                    )
                    self.last_result = result
                    self._set_state(MigrationState.FAILED)
                    raise

                self.last_result = result
                self._set_state(result.state)
                return result

    async def _execute(
        self,
        result: MigrationResult,
        statements: list[Statement],
        expected: SchemaSnapshot,
        target: SchemaSnapshot,
        force: bool,
    ) -> None:
        name = result.migration_name

        report = await self._check(expected)
        if report.has_issues():
            result.deviations = report
            if not force:
                logger.warning(f"{result.direction} {name} blocked: {report.issue_count} drift issues")
                result.state = MigrationState.DRIFT_DETECTED
                return
            logger.warning(
                f"{result.direction} {name}: ignoring {report.issue_count} drift issues (force)"
            )

        for index, statement in enumerate(statements, start=1):
            try:
                await self.client.execute(statement.sql)
            except asyncio.CancelledError:
                result.failed_statement_index = index
                result.failed_statement = statement.sql
                result.error = f"Cancelled during statement {index}"
                raise
            except Exception as e:
                result.state = MigrationState.FAILED
                result.failed_statement_index = index
                result.failed_statement = statement.sql
                result.error = str(e)
                logger.error(f"{result.direction} {name} failed at statement {index}: {e}")
                return
            result.statements_executed = index
            result.executed_statements.append(statement.sql)
            logger.debug(f"[{index}/{len(statements)}] {statement.sql}")

        if self.verify_after_apply:
            report = await self._check(target)
            if report.has_issues():
                result.state = MigrationState.FAILED
                result.deviations = report
                result.error = (
                    f"Post-{result.direction} verification found {report.issue_count} issues"
                )
                logger.error(f"{result.direction} {name}: {result.error}")
                return

        if result.direction == "apply":
            self.history.mark_applied(name)
        else:
            self.history.unmark_applied(name)
        result.state = MigrationState.APPLIED
        logger.info(f"{result.direction} {name}: {result.statements_executed} statements executed")
