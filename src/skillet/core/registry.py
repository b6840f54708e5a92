"""Repository cache: per-source index of discoverable skills.

One JSON file per configured source at ``<cache_dir>/<source>.json``:

    {"lastUpdated": "2026-01-01T00:00:00+00:00", "bundles": [RepoSkill, ...]}

The cache is derived data: it is rebuilt from the source URL by fetch +
discovery, may be deleted at any time, and is never used to decide whether
a skill is installed (that is the manifest's job). Concurrent refreshes are
not coordinated; the last writer wins.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Protocol

from skillet.core.fs import is_path_within, read_json, write_json_atomic
from skillet.core.git import FetchError, LocalMirror
from skillet.core.models import utc_now
from skillet.core.skill import SkillInfo, discover_skills
from skillet.core.urls import is_valid_source_name, parse_git_url

logger = logging.getLogger(__name__)


class Fetcher(Protocol):
    def ensure_local(
        self, owner: str, name: str, url: str | None = None, *, update: bool = False
    ) -> LocalMirror: ...

    def current_revision(self, owner: str, name: str) -> str | None: ...


class SourceLike(Protocol):
    name: str
    url: str


@dataclass
class RepoSkill:
    """A skill as indexed in the cache for one configured source."""

    name: str
    description: str
    relative_path: str
    source: str  # configured source name
    source_owner: str
    source_name: str
    license: str | None = None
    compatibility: str | None = None
    metadata: dict[str, str] | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "relativePath": self.relative_path,
            "source": self.source,
            "sourceOwner": self.source_owner,
            "sourceName": self.source_name,
            "license": self.license,
            "compatibility": self.compatibility,
            "metadata": self.metadata,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RepoSkill:
        metadata = data.get("metadata")
        return cls(
            name=str(data["name"]),
            description=str(data.get("description") or ""),
            relative_path=str(data.get("relativePath") or ""),
            source=str(data["source"]),
            source_owner=str(data["sourceOwner"]),
            source_name=str(data["sourceName"]),
            license=data.get("license"),
            compatibility=data.get("compatibility"),
            metadata=metadata if isinstance(metadata, dict) else None,
        )


@dataclass
class CacheInfo:
    bundle_count: int = 0
    last_updated: str | None = None


@dataclass
class RefreshResult:
    succeeded: list[str] = field(default_factory=list)
    failed: list[tuple[str, str]] = field(default_factory=list)  # (source, error)


class RepositoryCache:
    """Read, rebuild and search the per-source skill index.

    Args:
        cache_dir: Directory holding one ``<source>.json`` per source.
        fetcher: Fetch collaborator (see :class:`skillet.core.git.GitFetcher`).
        discover: Discovery collaborator; defaults to :func:`discover_skills`.
    """

    def __init__(
        self,
        cache_dir: Path,
        fetcher: Fetcher,
        discover: Callable[[Path], list[SkillInfo]] = discover_skills,
    ) -> None:
        self.cache_dir = Path(cache_dir)
        self.fetcher = fetcher
        self.discover = discover

    # ------------------------------------------------------------------
    # Rebuild
    # ------------------------------------------------------------------

    def refresh(self, source_name: str, url: str) -> list[RepoSkill]:
        """Fetch *url*, rediscover its skills and rewrite the cache entry.

        Raises:
            ValueError: If *source_name* or *url* is invalid.
            FetchError: If fetching or discovery fails; the entry is left as it was.
        """
        cache_path = self._entry_path(source_name)
        if cache_path is None:
            raise ValueError(f"Invalid source name: {source_name}")
        parsed = parse_git_url(url)
        if parsed is None:
            raise ValueError(f"Invalid repository URL: {url}")

        mirror = self.fetcher.ensure_local(parsed.owner, parsed.repo, parsed.clone_url, update=True)
        try:
            found = self.discover(mirror.path)
        except OSError as exc:
            raise FetchError(f"Skill discovery failed for {source_name}: {exc}") from exc

        skills = [
            RepoSkill(
                name=info.name,
                description=info.description,
                relative_path=info.relative_path,
                source=source_name,
                source_owner=parsed.owner,
                source_name=parsed.repo,
                license=info.license,
                compatibility=info.compatibility,
                metadata=info.metadata,
            )
            for info in found
        ]
        write_json_atomic(
            cache_path,
            {"lastUpdated": utc_now(), "bundles": [s.to_dict() for s in skills]},
        )
        logger.info("Indexed %d skill(s) from %s", len(skills), source_name)
        return skills

    def refresh_all(self, sources: Iterable[SourceLike]) -> RefreshResult:
        result = RefreshResult()
        for source in sources:
            try:
                self.refresh(source.name, source.url)
            except (FetchError, ValueError) as exc:
                result.failed.append((source.name, str(exc)))
            else:
                result.succeeded.append(source.name)
        return result

    def ensure(self, source_name: str, url: str) -> list[RepoSkill]:
        """Return cached skills for a source, refreshing first if the cache is empty."""
        skills = self.load(source_name)
        if not skills:
            skills = self.refresh(source_name, url)
        return skills

    def drop(self, source_name: str) -> bool:
        """Delete the cache entry for *source_name*. Returns True if one existed."""
        path = self._entry_path(source_name)
        if path is None or not path.exists():
            return False
        path.unlink()
        return True

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def load(self, source_name: str) -> list[RepoSkill]:
        """Return cached skills for *source_name*; [] if absent or corrupt. Never raises."""
        raw = self._read_entry(source_name)
        if raw is None:
            return []
        bundles = raw.get("bundles")
        if not isinstance(bundles, list):
            return []
        skills: list[RepoSkill] = []
        for item in bundles:
            try:
                skills.append(RepoSkill.from_dict(item))
            except (KeyError, TypeError, AttributeError):
                logger.warning("Discarding corrupt cache entry for %s", source_name)
                return []
        return skills

    def info(self, source_name: str) -> CacheInfo:
        raw = self._read_entry(source_name)
        if raw is None:
            return CacheInfo()
        bundles = raw.get("bundles")
        last_updated = raw.get("lastUpdated")
        return CacheInfo(
            bundle_count=len(bundles) if isinstance(bundles, list) else 0,
            last_updated=last_updated if isinstance(last_updated, str) else None,
        )

    def find(self, source_name: str, skill_name: str) -> RepoSkill | None:
        return next((s for s in self.load(source_name) if s.name == skill_name), None)

    def all_skills(self, sources: Iterable[SourceLike]) -> list[RepoSkill]:
        skills: list[RepoSkill] = []
        for source in sources:
            skills.extend(self.load(source.name))
        return skills

    def search(self, query: str, sources: Iterable[SourceLike]) -> list[RepoSkill]:
        """Case-insensitive substring match on name and description across *sources*.

        Sources with an empty cache are refreshed first; a source whose refresh
        fails is logged and skipped. Results keep source iteration order.
        """
        candidates: list[RepoSkill] = []
        for source in sources:
            skills = self.load(source.name)
            if not skills:
                try:
                    skills = self.refresh(source.name, source.url)
                except (FetchError, ValueError) as exc:
                    logger.warning("Failed to refresh %s: %s", source.name, exc)
                    continue
            candidates.extend(skills)

        needle = query.lower()
        return [
            s for s in candidates
            if needle in s.name.lower() or needle in s.description.lower()
        ]

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _entry_path(self, source_name: str) -> Path | None:
        if not is_valid_source_name(source_name):
            return None
        path = self.cache_dir / f"{source_name}.json"
        return path if is_path_within(self.cache_dir, path) else None

    def _read_entry(self, source_name: str) -> dict[str, Any] | None:
        path = self._entry_path(source_name)
        if path is None:
            logger.warning("Invalid source name: %s", source_name)
            return None
        raw = read_json(path)
        return raw if isinstance(raw, dict) else None
