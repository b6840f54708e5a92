"""Forward-only migrations for skillet's JSON/YAML documents.

Each document type has an append-only list of ``(version, step)`` entries.
A step receives the raw document at ``version - 1`` and returns it at
``version``. Steps must be idempotent on already-migrated input so a crash
between migrate and persist is harmless.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

Document = dict[str, Any]
Migration = tuple[int, Callable[[Document], Document]]


# ---------------------------------------------------------------------------
# Manifest (state document)
# ---------------------------------------------------------------------------


def _manifest_v2(doc: Document) -> Document:
    """v1 ``{version, skills: [{agent, repoOwner, ...}]}`` → v2 ``{schemaVersion, records}``."""
    legacy = doc.get("skills", doc.get("records", []))
    records = []
    for raw in legacy if isinstance(legacy, list) else []:
        if not isinstance(raw, dict):
            records.append(raw)  # left for structural validation to reject
            continue
        records.append(
            {
                "name": raw.get("name"),
                "target": raw.get("target", raw.get("agent")),
                "sourceOwner": raw.get("sourceOwner", raw.get("repoOwner")),
                "sourceName": raw.get("sourceName", raw.get("repoName")),
                "sourcePath": raw.get("sourcePath", raw.get("repoPath")),
                "revision": raw.get("revision", raw.get("commitHash")),
                "installedAt": raw.get("installedAt"),
                "scope": raw.get("scope") or "project",
            }
        )
    return {"schemaVersion": 2, "records": records}


MANIFEST_MIGRATIONS: list[Migration] = [
    (2, _manifest_v2),
]

MANIFEST_VERSION: int = MANIFEST_MIGRATIONS[-1][0]


# ---------------------------------------------------------------------------
# Config document
# ---------------------------------------------------------------------------


def _config_v1(doc: Document) -> Document:
    """v0 (unversioned) → v1.

    - ``registries`` / ``repos`` → ``sources``
    - ``agents`` → ``targetOverrides``
    - cursor skill path ``.cursor/rules`` → ``.cursor/skills``
    """
    migrated = dict(doc)
    for legacy in ("registries", "repos"):
        if legacy in migrated:
            value = migrated.pop(legacy)
            migrated.setdefault("sources", value)
    if "agents" in migrated:
        migrated.setdefault("targetOverrides", migrated.pop("agents"))

    overrides = migrated.get("targetOverrides")
    if isinstance(overrides, dict):
        cursor = overrides.get("cursor")
        if isinstance(cursor, dict) and cursor.get("skillPath") == ".cursor/rules":
            overrides["cursor"] = {**cursor, "skillPath": ".cursor/skills"}

    migrated["schemaVersion"] = 1
    return migrated


CONFIG_MIGRATIONS: list[Migration] = [
    (1, _config_v1),
]

CONFIG_VERSION: int = CONFIG_MIGRATIONS[-1][0]


# ---------------------------------------------------------------------------
# Runner
# ---------------------------------------------------------------------------


def document_version(doc: Document) -> int:
    """Return the schema version of *doc*; legacy ``version`` is honoured, missing → 0."""
    for key in ("schemaVersion", "version"):
        value = doc.get(key)
        if isinstance(value, int) and not isinstance(value, bool):
            return value
    return 0


def run_migrations(doc: Document, migrations: list[Migration]) -> tuple[Document, bool]:
    """Apply all pending *migrations* to *doc* in ascending version order.

    Returns:
        ``(document, changed)``. A document already at or beyond the latest
        version is returned unchanged, never downgraded.
    """
    current = document_version(doc)
    changed = False
    for version, step in migrations:
        if version > current:
            doc = step(doc)
            doc["schemaVersion"] = version
            doc.pop("version", None)
            current = version
            changed = True
    return doc, changed
