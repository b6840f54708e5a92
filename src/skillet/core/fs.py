"""Filesystem helpers shared by the manifest, cache and config layers.

Responsibilities:
  1. Atomic document writes (temp file in the same directory → os.replace).
     A reader never observes a half-written file.
  2. Tolerant JSON reads: missing or unparseable files read as None.
  3. Path confinement: user-supplied relative paths must stay inside a base
     directory (../ traversal is rejected, never normalised away).
  4. Recursive discovery of directories that contain a SKILL.md.
"""

from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path
from typing import Any

SKILL_FILE = "SKILL.md"

# Directories never searched for skills.
_SKIP_DIRS: frozenset[str] = frozenset(
    [
        ".git",
        "node_modules",
        "dist",
        "build",
        "__pycache__",
        ".venv",
        "venv",
        ".tox",
        "coverage",
        ".nyc_output",
    ]
)


# ------------------------------------------------------------------
# Atomic write
# ------------------------------------------------------------------


def write_atomic(path: Path, content: str) -> None:
    """Write *content* to *path* atomically (temp → rename).

    Creates parent directories if needed. On any failure the temp file is
    removed and the exception propagates; an existing *path* is untouched.
    """
    path.parent.mkdir(parents=True, exist_ok=True)

    fd, tmp_path = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(content)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, path)
    except BaseException:
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise


def write_json_atomic(path: Path, data: Any) -> None:
    """Serialise *data* as indented JSON and write it atomically."""
    write_atomic(path, json.dumps(data, indent=2) + "\n")


def read_json(path: Path) -> Any | None:
    """Return the parsed JSON content of *path*, or None if missing or invalid."""
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError):
        return None


# ------------------------------------------------------------------
# Path confinement
# ------------------------------------------------------------------


def is_path_within(base: Path, target: Path) -> bool:
    """Return True if *target* resolves to *base* or somewhere below it."""
    base_resolved = Path(os.path.abspath(base))
    target_resolved = Path(os.path.abspath(target))
    return target_resolved == base_resolved or base_resolved in target_resolved.parents


def safe_join(base: Path, user_path: str) -> Path | None:
    """Join *user_path* onto *base*, or return None if the result escapes *base*.

    Absolute *user_path* values are rejected outright.
    """
    if Path(user_path).is_absolute():
        return None
    joined = Path(os.path.normpath(base / user_path))
    return joined if is_path_within(base, joined) else None


# ------------------------------------------------------------------
# Skill directory discovery
# ------------------------------------------------------------------


def find_skill_dirs(base: Path, max_depth: int = 10) -> list[Path]:
    """Return every directory below *base* that contains a SKILL.md.

    A directory holding a SKILL.md is not searched further. Unreadable
    directories are skipped. Results are sorted per level for a stable order.
    """
    if not base.is_dir():
        return []

    results: list[Path] = []

    def _search(directory: Path, depth: int) -> None:
        if depth > max_depth:
            return
        try:
            entries = sorted(directory.iterdir(), key=lambda p: p.name)
        except OSError:
            return
        for entry in entries:
            if entry.name in _SKIP_DIRS or entry.is_symlink() or not entry.is_dir():
                continue
            if (entry / SKILL_FILE).is_file():
                results.append(entry)
            else:
                _search(entry, depth + 1)

    _search(base, 0)
    return results
