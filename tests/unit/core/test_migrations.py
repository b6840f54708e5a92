"""Tests for document migrations."""

from __future__ import annotations

from skillet.core.migrations import (
    CONFIG_MIGRATIONS,
    CONFIG_VERSION,
    MANIFEST_MIGRATIONS,
    MANIFEST_VERSION,
    document_version,
    run_migrations,
)


def test_current_versions() -> None:
    assert MANIFEST_VERSION == 2
    assert CONFIG_VERSION == 1


def test_migration_lists_are_ascending() -> None:
    for migrations in (MANIFEST_MIGRATIONS, CONFIG_MIGRATIONS):
        versions = [v for v, _ in migrations]
        assert versions == sorted(versions)
        assert len(set(versions)) == len(versions)


def test_document_version() -> None:
    assert document_version({"schemaVersion": 2}) == 2
    assert document_version({"version": 1}) == 1
    assert document_version({}) == 0
    assert document_version({"schemaVersion": True}) == 0


def test_manifest_v1_to_v2_renames_keys() -> None:
    doc, changed = run_migrations(
        {
            "version": 1,
            "skills": [
                {
                    "name": "pdf",
                    "agent": "codex",
                    "repoOwner": "acme",
                    "repoName": "skills",
                    "commitHash": "abc",
                    "installedAt": "t",
                }
            ],
        },
        MANIFEST_MIGRATIONS,
    )
    assert changed
    assert doc["schemaVersion"] == 2
    assert "version" not in doc
    assert doc["records"][0] == {
        "name": "pdf",
        "target": "codex",
        "sourceOwner": "acme",
        "sourceName": "skills",
        "sourcePath": None,
        "revision": "abc",
        "installedAt": "t",
        "scope": "project",
    }


def test_manifest_migration_is_idempotent_on_v2_records() -> None:
    record = {
        "name": "pdf",
        "target": "claude",
        "sourceOwner": "acme",
        "sourceName": "skills",
        "sourcePath": "skills/pdf",
        "revision": "abc",
        "installedAt": "t",
        "scope": "global",
    }
    doc, _ = run_migrations({"version": 1, "records": [record]}, MANIFEST_MIGRATIONS)
    assert doc["records"] == [record]


def test_current_document_is_unchanged() -> None:
    original = {"schemaVersion": 2, "records": []}
    doc, changed = run_migrations(dict(original), MANIFEST_MIGRATIONS)
    assert not changed
    assert doc == original


def test_newer_document_is_not_downgraded() -> None:
    doc, changed = run_migrations({"schemaVersion": 9, "records": []}, MANIFEST_MIGRATIONS)
    assert not changed
    assert doc["schemaVersion"] == 9


def test_config_v0_to_v1() -> None:
    doc, changed = run_migrations(
        {
            "registries": [{"name": "mine", "url": "https://github.com/me/skills"}],
            "agents": {"cursor": {"skillPath": ".cursor/rules"}},
        },
        CONFIG_MIGRATIONS,
    )
    assert changed
    assert doc == {
        "schemaVersion": 1,
        "sources": [{"name": "mine", "url": "https://github.com/me/skills"}],
        "targetOverrides": {"cursor": {"skillPath": ".cursor/skills"}},
    }


def test_config_migration_keeps_existing_sources() -> None:
    doc, _ = run_migrations(
        {"sources": [{"name": "new", "url": "a/b"}], "repos": [{"name": "old", "url": "c/d"}]},
        CONFIG_MIGRATIONS,
    )
    assert doc["sources"] == [{"name": "new", "url": "a/b"}]
    assert "repos" not in doc
