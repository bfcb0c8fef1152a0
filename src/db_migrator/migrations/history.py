"""On-disk migration history.

Layout of a history directory:

    migrations/
        snapshots/
            0001_initial.json        # one immutable HistoryEntry per file
            0002_add_orders.json
        applied.json                 # ordered list of applied entry names
        .lock                        # present while a run holds the lock

Entry files are written once, atomically (temp file + rename), and never
modified afterwards.  The applied head is the last name in
``applied.json``.

Usage:
    from db_migrator.migrations.history import MigrationHistory

    history = MigrationHistory("migrations")
    history.init()
    entry = history.append("initial", snapshot, statement_count=4)
    with history.lock():
        history.mark_applied(entry.name)
"""

import json
import logging
import os
import re
import tempfile
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path

from pydantic import BaseModel, Field, ValidationError

from db_migrator.errors import HistoryError, MigrationLockedError
from db_migrator.schema.models import SchemaSnapshot

logger = logging.getLogger(__name__)

ENTRY_FILE_PATTERN = re.compile(r"^(\d{4})_([A-Za-z0-9_\-]+)\.json$")
NAME_PATTERN = re.compile(r"^[A-Za-z0-9_\-]+$")


class HistoryEntry(BaseModel):
    """One persisted snapshot of the code schema."""

    name: str
    sequence: int
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    checksum: str
    statement_count: int = 0
    snapshot: SchemaSnapshot

    @property
    def filename(self) -> str:
        return f"{self.sequence:04d}_{self.name}.json"


def _atomic_write(path: Path, content: str) -> None:
    """Write *content* to *path* through a temp file in the same directory."""
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(content)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


class MigrationHistory:
    """Reads and writes the history directory.

    Args:
        directory: Root of the history (created by ``init()``).
    """

    def __init__(self, directory: str | Path) -> None:
        self.directory = Path(directory)
        self.snapshots_dir = self.directory / "snapshots"
        self.applied_path = self.directory / "applied.json"
        self.lock_path = self.directory / ".lock"

    def init(self) -> bool:
        """Create the directory layout.

        Returns:
            ``True`` if anything was created, ``False`` if it already existed.
        """
        created = not self.snapshots_dir.exists() or not self.applied_path.exists()
        self.snapshots_dir.mkdir(parents=True, exist_ok=True)
        if not self.applied_path.exists():
            _atomic_write(self.applied_path, "[]\n")
        return created

    def _require_initialized(self) -> None:
        if not self.snapshots_dir.is_dir():
            raise HistoryError(
                f"Migration history not initialized: {self.directory}\n"
                f"Run 'db-migrator init' first."
            )

    # ------------------------------------------------------------------
    # Entries
    # ------------------------------------------------------------------

    def _load_entry(self, path: Path) -> HistoryEntry:
        match = ENTRY_FILE_PATTERN.match(path.name)
        if match is None:
            raise HistoryError(f"Unexpected file in history: {path.name}")

        try:
            entry = HistoryEntry.model_validate_json(path.read_text(encoding="utf-8"))
        except ValidationError as e:
            raise HistoryError(f"Corrupt history entry {path.name}: {e}") from e

        if entry.sequence != int(match.group(1)) or entry.name != match.group(2):
            raise HistoryError(
                f"History entry {path.name} does not match its content "
                f"({entry.sequence:04d}_{entry.name})"
            )
        if entry.snapshot.checksum() != entry.checksum:
            raise HistoryError(f"Checksum mismatch for history entry {path.name}")
        return entry

    def entries(self) -> list[HistoryEntry]:
        """All entries ordered by sequence.

        Raises:
            HistoryError: If the history is missing, corrupt or has gaps.
        """
        self._require_initialized()
        entries = [
            self._load_entry(path)
            for path in sorted(self.snapshots_dir.glob("*.json"))
        ]
        for expected, entry in enumerate(entries, start=1):
            if entry.sequence != expected:
                raise HistoryError(
                    f"History sequence gap: expected {expected:04d}, found {entry.filename}"
                )
        return entries

    def latest(self) -> HistoryEntry | None:
        """Newest entry, or ``None`` for an empty history."""
        entries = self.entries()
        return entries[-1] if entries else None

    def get(self, name: str) -> HistoryEntry:
        """Entry named *name*.

        Raises:
            HistoryError: If no such entry exists.
        """
        for entry in self.entries():
            if entry.name == name:
                return entry
        raise HistoryError(f"Unknown migration: {name}")

    def previous(self, name: str) -> HistoryEntry | None:
        """Entry preceding *name*, or ``None`` if *name* is the first."""
        entries = self.entries()
        for i, entry in enumerate(entries):
            if entry.name == name:
                return entries[i - 1] if i > 0 else None
        raise HistoryError(f"Unknown migration: {name}")

    def append(
        self,
        name: str,
        snapshot: SchemaSnapshot,
        statement_count: int = 0,
    ) -> HistoryEntry:
        """Persist *snapshot* as the next entry.

        Args:
            name: Entry name (letters, digits, ``_`` and ``-``).
            snapshot: Schema to store; it is rendered before writing.
            statement_count: Number of statements the entry applies.

        Raises:
            HistoryError: If the name is invalid or already used.
            RenderError: If a definition in *snapshot* cannot be rendered.
        """
        if not NAME_PATTERN.match(name):
            raise HistoryError(f"Invalid migration name: {name!r}")

        entries = self.entries()
        if any(e.name == name for e in entries):
            raise HistoryError(f"Migration already exists: {name}")

        rendered = snapshot.rendered()
        entry = HistoryEntry(
            name=name,
            sequence=len(entries) + 1,
            checksum=rendered.checksum(),
            statement_count=statement_count,
            snapshot=rendered,
        )
        path = self.snapshots_dir / entry.filename
        if path.exists():
            raise HistoryError(f"History file already exists: {path}")

        _atomic_write(path, entry.model_dump_json(indent=2) + "\n")
        logger.info(f"Wrote history entry {entry.filename} ({statement_count} statements)")
        return entry

    # ------------------------------------------------------------------
    # Applied log
    # ------------------------------------------------------------------

    def applied(self) -> list[str]:
        """Names of applied entries, oldest first."""
        self._require_initialized()
        if not self.applied_path.exists():
            return []
        try:
            names = json.loads(self.applied_path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            raise HistoryError(f"Corrupt applied log {self.applied_path}: {e}") from e
        if not isinstance(names, list) or not all(isinstance(n, str) for n in names):
            raise HistoryError(f"Corrupt applied log {self.applied_path}: expected a list of names")
        return names

    def head(self) -> str | None:
        """Name of the applied head, or ``None`` if nothing is applied."""
        names = self.applied()
        return names[-1] if names else None

    def _write_applied(self, names: list[str]) -> None:
        _atomic_write(self.applied_path, json.dumps(names, indent=2) + "\n")

    def mark_applied(self, name: str) -> None:
        """Advance the applied head to *name*."""
        names = self.applied()
        names.append(name)
        self._write_applied(names)

    def unmark_applied(self, name: str) -> None:
        """Move the applied head back from *name*.

        Raises:
            HistoryError: If *name* is not the current head.
        """
        names = self.applied()
        if not names or names[-1] != name:
            raise HistoryError(f"Cannot unmark {name}: applied head is {self.head()}")
        names.pop()
        self._write_applied(names)

    def pending(self) -> list[HistoryEntry]:
        """Entries after the applied head, in apply order."""
        entries = self.entries()
        head = self.head()
        if head is None:
            return entries
        for i, entry in enumerate(entries):
            if entry.name == head:
                return entries[i + 1:]
        raise HistoryError(f"Applied head {head} is not in the history")

    # ------------------------------------------------------------------
    # Cross-process lock
    # ------------------------------------------------------------------

    @contextmanager
    def lock(self) -> Iterator[None]:
        """Hold the exclusive history lock for the duration of the block.

        Raises:
            MigrationLockedError: If another run holds the lock.
        """
        self._require_initialized()
        try:
            fd = os.open(self.lock_path, os.O_CREAT | os.O_EXCL | os.O_WRONLY)
        except FileExistsError as e:
            raise MigrationLockedError(
                f"Migration history is locked: {self.lock_path}\n"
                f"Another run is in progress, or a crashed run left the lock behind."
            ) from e
        try:
            os.write(fd, f"{os.getpid()}\n".encode())
        finally:
            os.close(fd)

        try:
            yield
        finally:
            self.lock_path.unlink(missing_ok=True)
