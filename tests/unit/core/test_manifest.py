"""Tests for the manifest state store."""

from __future__ import annotations

import json
import multiprocessing
import os
import time
from pathlib import Path
from unittest.mock import patch

import pytest

from skillet.core.lock import LockTimeoutError, LockToken, ManifestLock
from skillet.core.manifest import Manifest, StateDocument
from skillet.core.models import InstalledRecord, Scope


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _record(name: str, target: str = "claude", scope: Scope = Scope.PROJECT, rev: str = "a1") -> InstalledRecord:
    return InstalledRecord(
        name=name,
        target=target,
        source_owner="acme",
        source_name="skills",
        revision=rev,
        installed_at="2026-01-01T00:00:00+00:00",
        scope=scope,
    )


def _raw(manifest: Manifest) -> dict:
    return json.loads(manifest.path.read_text(encoding="utf-8"))


# ---------------------------------------------------------------------------
# load
# ---------------------------------------------------------------------------


def test_load_missing_file_is_empty(manifest: Manifest) -> None:
    doc = manifest.load()
    assert doc.schema_version == 2
    assert doc.records == []
    assert not manifest.path.exists()


@pytest.mark.parametrize(
    "content",
    ["not json", "[]", '{"schemaVersion": "2", "records": []}', '{"schemaVersion": 2, "records": {}}'],
)
def test_load_invalid_document_is_empty(manifest: Manifest, content: str) -> None:
    manifest.path.write_text(content, encoding="utf-8")
    assert manifest.load().records == []


def test_load_invalid_record_is_empty(manifest: Manifest) -> None:
    manifest.path.write_text(
        json.dumps({"schemaVersion": 2, "records": [{"name": "x"}]}), encoding="utf-8"
    )
    assert manifest.load().records == []


def test_future_schema_is_not_downgraded(manifest: Manifest) -> None:
    original = json.dumps({"schemaVersion": 7, "records": [_record("pdf").to_dict()]})
    manifest.path.write_text(original, encoding="utf-8")

    doc = manifest.load()

    assert doc.schema_version == 7
    assert [r.name for r in doc.records] == ["pdf"]
    assert manifest.path.read_text(encoding="utf-8") == original


# ---------------------------------------------------------------------------
# Migration
# ---------------------------------------------------------------------------


def test_v1_document_migrates_and_is_persisted(manifest: Manifest) -> None:
    legacy = {
        "version": 1,
        "skills": [
            {
                "name": "pdf",
                "agent": "claude",
                "repoOwner": "acme",
                "repoName": "skills",
                "repoPath": "skills/pdf",
                "commitHash": "abc1234",
                "installedAt": "2025-05-01T10:00:00Z",
            },
            {
                "name": "xlsx",
                "agent": "cursor",
                "repoOwner": "acme",
                "repoName": "skills",
                "commitHash": "abc1234",
                "installedAt": "2025-05-01T10:00:00Z",
                "scope": "global",
            },
        ],
    }
    manifest.path.write_text(json.dumps(legacy), encoding="utf-8")

    doc = manifest.load()

    assert doc.schema_version == 2
    pdf, xlsx = doc.records
    assert pdf == InstalledRecord(
        name="pdf",
        target="claude",
        source_owner="acme",
        source_name="skills",
        source_path="skills/pdf",
        revision="abc1234",
        installed_at="2025-05-01T10:00:00Z",
        scope=Scope.PROJECT,
    )
    assert xlsx.scope is Scope.GLOBAL
    assert xlsx.source_path is None

    raw = _raw(manifest)
    assert raw["schemaVersion"] == 2
    assert "version" not in raw and "skills" not in raw
    assert raw["records"][0]["sourceOwner"] == "acme"


def test_migrated_document_is_stable_on_save_and_reload(manifest: Manifest) -> None:
    manifest.path.write_text(
        json.dumps(
            {
                "version": 1,
                "skills": [
                    {
                        "name": "pdf",
                        "agent": "claude",
                        "repoOwner": "acme",
                        "repoName": "skills",
                        "commitHash": "abc1234",
                        "installedAt": "2025-05-01T10:00:00Z",
                    }
                ],
            }
        ),
        encoding="utf-8",
    )
    first = manifest.load()
    manifest.save(first)
    after_save = manifest.path.read_text(encoding="utf-8")

    second = manifest.load()

    assert second == first
    assert manifest.path.read_text(encoding="utf-8") == after_save


# ---------------------------------------------------------------------------
# upsert / remove
# ---------------------------------------------------------------------------


def test_upsert_inserts_and_replaces(manifest: Manifest) -> None:
    manifest.upsert(_record("pdf", rev="a1"))
    manifest.upsert(_record("pdf", rev="b2"))

    records = manifest.all()
    assert len(records) == 1
    assert records[0].revision == "b2"
    assert _raw(manifest)["schemaVersion"] == 2


def test_scope_is_part_of_the_key(manifest: Manifest) -> None:
    manifest.upsert(_record("pdf", scope=Scope.PROJECT))
    manifest.upsert(_record("pdf", scope=Scope.GLOBAL))

    assert len(manifest.all()) == 2
    assert manifest.find("pdf", "claude", Scope.GLOBAL).scope is Scope.GLOBAL
    assert manifest.find("pdf", "claude") is not None


def test_interleaved_upserts_and_removes_are_last_write_wins(manifest: Manifest) -> None:
    ops = [
        ("upsert", "pdf", "claude", "r1"),
        ("upsert", "xlsx", "claude", "r1"),
        ("upsert", "pdf", "cursor", "r1"),
        ("remove", "pdf", "claude", None),
        ("upsert", "pdf", "claude", "r2"),
        ("upsert", "xlsx", "claude", "r3"),
        ("remove", "pdf", "cursor", None),
        ("remove", "docx", "codex", None),
        ("upsert", "pdf", "claude", "r4"),
    ]
    expected: dict[tuple[str, str], str] = {}
    for op, name, target, rev in ops:
        if op == "upsert":
            manifest.upsert(_record(name, target, rev=rev))
            expected[(name, target)] = rev
        else:
            manifest.remove(name, target)
            expected.pop((name, target), None)

    records = manifest.all()
    assert {(r.name, r.target): r.revision for r in records} == expected
    assert len({r.key for r in records}) == len(records)


def test_remove_missing_key_leaves_document_untouched(manifest: Manifest) -> None:
    manifest.upsert(_record("pdf"))
    manifest.upsert(_record("xlsx", target="cursor"))
    before = _raw(manifest)

    manifest.remove("docx", "claude")

    assert _raw(manifest) == before


def test_remove_matches_scope(manifest: Manifest) -> None:
    manifest.upsert(_record("pdf", scope=Scope.GLOBAL))
    manifest.remove("pdf", "claude", Scope.PROJECT)
    assert len(manifest.all()) == 1

    manifest.remove("pdf", "claude", Scope.GLOBAL)
    assert manifest.all() == []


def test_all_by_target(manifest: Manifest) -> None:
    manifest.upsert(_record("pdf", "claude"))
    manifest.upsert(_record("xlsx", "cursor"))
    assert [r.name for r in manifest.all_by_target("cursor")] == ["xlsx"]


# ---------------------------------------------------------------------------
# Atomicity and locking
# ---------------------------------------------------------------------------


def test_crash_before_rename_keeps_old_file(manifest: Manifest, monkeypatch) -> None:
    manifest.upsert(_record("pdf"))
    before = manifest.path.read_bytes()

    def _crash(src, dst):
        raise OSError("simulated crash")

    monkeypatch.setattr("skillet.core.fs.os.replace", _crash)
    with pytest.raises(OSError, match="simulated crash"):
        manifest.upsert(_record("xlsx"))

    assert manifest.path.read_bytes() == before
    assert list(manifest.path.parent.glob(".manifest.json.*")) == []
    assert not manifest.lock.path.exists()


def test_mutation_fails_while_lock_is_held_elsewhere(home: Path) -> None:
    lock_path = home / "manifest.lock"
    lock_path.write_text(
        LockToken(holder_id="other", pid=os.getpid(), acquired_at=time.time()).to_json(),
        encoding="utf-8",
    )
    manifest = Manifest(
        home / "manifest.json",
        lock=ManifestLock(lock_path, holder_id="me", timeout=0.05, retry_interval=0.01),
    )

    with pytest.raises(LockTimeoutError):
        manifest.upsert(_record("pdf"))
    assert not manifest.path.exists()


def test_reads_do_not_take_the_lock(home: Path) -> None:
    lock_path = home / "manifest.lock"
    lock_path.write_text(
        LockToken(holder_id="other", pid=os.getpid(), acquired_at=time.time()).to_json(),
        encoding="utf-8",
    )
    manifest = Manifest(home / "manifest.json")
    manifest.save(StateDocument(records=[_record("pdf")]))

    assert [r.name for r in manifest.all()] == ["pdf"]


_LEGACY = {
    "version": 1,
    "skills": [
        {
            "name": "pdf",
            "agent": "claude",
            "repoOwner": "acme",
            "repoName": "skills",
            "commitHash": "abc1234",
            "installedAt": "2025-05-01T10:00:00Z",
        }
    ],
}


def test_migration_on_read_is_saved_under_the_lock(home: Path) -> None:
    manifest = Manifest(home / "manifest.json")
    manifest.path.write_text(json.dumps(_LEGACY), encoding="utf-8")

    with patch.object(manifest.lock, "held", wraps=manifest.lock.held) as held:
        assert [r.name for r in manifest.all()] == ["pdf"]

    held.assert_called_once()
    assert _raw(manifest)["schemaVersion"] == 2
    assert not manifest.lock.path.exists()


def test_migration_on_read_is_not_saved_while_lock_is_busy(home: Path) -> None:
    lock_path = home / "manifest.lock"
    lock_path.write_text(
        LockToken(holder_id="other", pid=os.getpid(), acquired_at=time.time()).to_json(),
        encoding="utf-8",
    )
    manifest = Manifest(
        home / "manifest.json",
        lock=ManifestLock(lock_path, holder_id="me", timeout=0.05, retry_interval=0.01),
    )
    manifest.path.write_text(json.dumps(_LEGACY), encoding="utf-8")

    assert [r.name for r in manifest.all()] == ["pdf"]
    assert _raw(manifest) == _LEGACY


def test_mutation_persists_pending_migration(manifest: Manifest) -> None:
    manifest.path.write_text(json.dumps(_LEGACY), encoding="utf-8")

    manifest.upsert(_record("xlsx"))

    raw = _raw(manifest)
    assert raw["schemaVersion"] == 2
    assert [r["name"] for r in raw["records"]] == ["pdf", "xlsx"]


# ---------------------------------------------------------------------------
# Concurrent writers
# ---------------------------------------------------------------------------

_WORKERS = 4
_ROUNDS = 12
_SHARED_KEYS = [("pdf", "claude"), ("pdf", "cursor"), ("xlsx", "claude")]


def _contend(path: str, worker: int) -> None:
    manifest = Manifest(
        Path(path),
        ManifestLock(Path(path).with_name("manifest.lock"), holder_id=f"worker-{worker}", timeout=60),
    )
    for i in range(_ROUNDS):
        name, target = _SHARED_KEYS[(worker + i) % len(_SHARED_KEYS)]
        if i % 3 == 2:
            manifest.remove(name, target)
        else:
            manifest.upsert(_record(name, target, rev=f"w{worker}-{i}"))
        manifest.upsert(_record(f"own-{worker}-{i}", target="codex"))


@pytest.mark.skipif(
    "fork" not in multiprocessing.get_all_start_methods(), reason="needs fork start method"
)
def test_concurrent_writers_keep_one_record_per_key(manifest: Manifest) -> None:
    ctx = multiprocessing.get_context("fork")
    workers = [ctx.Process(target=_contend, args=(str(manifest.path), w)) for w in range(_WORKERS)]
    for process in workers:
        process.start()
    for process in workers:
        process.join(timeout=120)

    assert [p.exitcode for p in workers] == [0] * _WORKERS
    records = manifest.all()
    keys = [r.key for r in records]
    assert len(keys) == len(set(keys))
    own = {r.name for r in records if r.name.startswith("own-")}
    assert own == {f"own-{w}-{i}" for w in range(_WORKERS) for i in range(_ROUNDS)}
    assert not manifest.lock.path.exists()
