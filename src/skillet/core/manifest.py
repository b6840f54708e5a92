"""Manifest: the durable record of every installed skill.

Single interface for reading and mutating ``<home>/manifest.json``:

    {"schemaVersion": 2, "records": [InstalledRecord, ...]}

- Reads (load, find, all, all_by_target) are unlocked; writers replace the
  file atomically so a reader sees either the old or the new document.
- Mutations (upsert, remove) run load → mutate → save under ManifestLock.
- An unreadable or structurally invalid file is treated as absent.
- An older schema is migrated forward on load and persisted under the lock.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from skillet.core.fs import read_json, write_json_atomic
from skillet.core.lock import LockTimeoutError, ManifestLock
from skillet.core.migrations import (
    MANIFEST_MIGRATIONS,
    MANIFEST_VERSION,
    document_version,
    run_migrations,
)
from skillet.core.models import InstalledRecord, Scope

logger = logging.getLogger(__name__)

MANIFEST_FILE = "manifest.json"
LOCK_FILE = "manifest.lock"


@dataclass
class StateDocument:
    schema_version: int = MANIFEST_VERSION
    records: list[InstalledRecord] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "schemaVersion": self.schema_version,
            "records": [r.to_dict() for r in self.records],
        }


class Manifest:
    """Data access layer for installed-skill records.

    Args:
        path: Location of the manifest JSON file.
        lock: Lock guarding mutations. Defaults to a ``manifest.lock``
            marker next to *path*.
    """

    def __init__(self, path: Path, lock: ManifestLock | None = None) -> None:
        self.path = Path(path)
        self.lock = lock if lock is not None else ManifestLock(self.path.with_name(LOCK_FILE))

    @classmethod
    def in_home(cls, home: Path) -> Manifest:
        return cls(home / MANIFEST_FILE)

    # ------------------------------------------------------------------
    # Document I/O
    # ------------------------------------------------------------------

    def load(self) -> StateDocument:
        """Return the current document; empty if missing, corrupt or invalid.

        A migrated document is persisted under the manifest lock. If the lock
        is busy the migrated document is returned unsaved; the next writer
        persists it.
        """
        return self._load(locked=False)

    def _load(self, *, locked: bool) -> StateDocument:
        if not self.path.exists():
            return StateDocument()

        raw = read_json(self.path)
        if not _is_valid_shape(raw):
            logger.warning("Ignoring unreadable manifest %s", self.path)
            return StateDocument()

        raw, migrated = run_migrations(raw, MANIFEST_MIGRATIONS)
        try:
            records = [InstalledRecord.from_dict(r) for r in raw["records"]]
        except (KeyError, ValueError) as exc:
            logger.warning("Ignoring invalid manifest %s: %s", self.path, exc)
            return StateDocument()

        doc = StateDocument(schema_version=document_version(raw), records=records)
        if not migrated:
            return doc
        if not locked:
            try:
                with self.lock.held():
                    # Re-read: a writer may have changed or migrated the file.
                    return self._load(locked=True)
            except LockTimeoutError:
                logger.warning("Manifest %s is busy; migration not saved yet", self.path)
                return doc
        logger.info("Migrated manifest %s to schema %d", self.path, doc.schema_version)
        self.save(doc)
        return doc

    def save(self, doc: StateDocument) -> None:
        """Persist *doc* atomically (temp file → rename)."""
        write_json_atomic(self.path, doc.to_dict())

    # ------------------------------------------------------------------
    # Mutations (locked)
    # ------------------------------------------------------------------

    def upsert(self, record: InstalledRecord) -> None:
        """Insert *record*, replacing any record with the same (name, target, scope).

        Raises:
            LockTimeoutError: If another process holds the manifest lock.
        """
        with self.lock.held():
            doc = self._load(locked=True)
            doc.records = [r for r in doc.records if r.key != record.key]
            doc.records.append(record)
            self.save(doc)

    def remove(self, name: str, target: str, scope: Scope = Scope.PROJECT) -> None:
        """Delete the record for (name, target, scope). Missing keys are a no-op.

        Raises:
            LockTimeoutError: If another process holds the manifest lock.
        """
        key = (name, target, Scope(scope))
        with self.lock.held():
            doc = self._load(locked=True)
            doc.records = [r for r in doc.records if r.key != key]
            self.save(doc)

    # ------------------------------------------------------------------
    # Queries (unlocked)
    # ------------------------------------------------------------------

    def find(self, name: str, target: str, scope: Scope | None = None) -> InstalledRecord | None:
        """Return the matching record; *scope* None matches either scope."""
        for record in self.load().records:
            if record.name != name or record.target != target:
                continue
            if scope is None or record.scope == Scope(scope):
                return record
        return None

    def all_by_target(self, target: str) -> list[InstalledRecord]:
        return [r for r in self.load().records if r.target == target]

    def all(self) -> list[InstalledRecord]:
        return self.load().records


def _is_valid_shape(raw: Any) -> bool:
    if not isinstance(raw, dict):
        return False
    version = raw.get("schemaVersion", raw.get("version"))
    if not isinstance(version, int) or isinstance(version, bool):
        return False
    records = raw.get("records", raw.get("skills"))
    return isinstance(records, list)
