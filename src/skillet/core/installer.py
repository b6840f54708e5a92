"""Install / uninstall orchestration.

One request installs one or more skills from one source into one or more
targets:

    RESOLVING → INSTALLING (i/n) → COMMITTED
                              └──→ ROLLING_BACK → FAILED

Pairs are processed skill-major, target-minor. Each finished step is pushed
onto a saga list; on failure the saga is unwound in reverse through one
reversal function per step kind, then the original exception is re-raised.
A failed reversal is logged and never replaces the original error; it can
leave installed content without a manifest record.

A manifest write failing after the content was copied counts as an install
failure: that pair's content is reversed together with the earlier pairs.
"""

from __future__ import annotations

import dataclasses
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Protocol

from skillet.agents.base import Agent
from skillet.config import SkilletConfig, SourceConfig
from skillet.core.fs import SKILL_FILE, safe_join
from skillet.core.git import FetchError
from skillet.core.manifest import Manifest
from skillet.core.models import InstalledRecord, Scope, utc_now
from skillet.core.registry import Fetcher, RepositoryCache
from skillet.core.skill import ParsedSkill, SkillInfo, discover_skills, load_skill, load_skill_info
from skillet.core.urls import ParsedGitUrl, parse_git_url, split_shorthand_path

logger = logging.getLogger(__name__)

UNKNOWN_REVISION = "unknown"


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class InstallError(RuntimeError):
    """Base class for request resolution failures."""


class InvalidSourceError(InstallError):
    """The source locator cannot be parsed or points outside the repository."""


class NoSkillsFoundError(InstallError):
    """The source contains no valid skills."""


class SkillNotFoundError(InstallError):
    def __init__(self, name: str, available: list[str]) -> None:
        super().__init__(f"Skill not found: {name}")
        self.name = name
        self.available = available


class SelectionRequiredError(InstallError):
    """Several skills are available and none was chosen."""

    def __init__(self, available: list[str]) -> None:
        super().__init__(
            f"Source contains {len(available)} skills; name one or pass --all"
        )
        self.available = available


class UnknownTargetError(InstallError):
    def __init__(self, target: str, available: list[str]) -> None:
        super().__init__(f"Invalid agent: {target}")
        self.target = target
        self.available = available


# ---------------------------------------------------------------------------
# Request / outcome types
# ---------------------------------------------------------------------------


class RequestState(str, Enum):
    RESOLVING = "resolving"
    INSTALLING = "installing"
    COMMITTED = "committed"
    ROLLING_BACK = "rolling_back"
    FAILED = "failed"


class StepKind(str, Enum):
    CONTENT = "content"
    RECORD = "record"


@dataclass(frozen=True)
class CompletedStep:
    kind: StepKind
    skill: str
    target: str
    scope: Scope


@dataclass
class InstallRequest:
    """A validated install request.

    Attributes:
        source: ``owner/repo``, ``owner/repo/sub/path``, a git URL, or a
            configured source name.
        targets: Agent names; empty means the configured default target.
        skill_name: Install exactly this skill.
        install_all: Install every skill in the source.
        selection: Install these skills, in this order.
    """

    source: str
    targets: list[str] = field(default_factory=list)
    scope: Scope = Scope.PROJECT
    skill_name: str | None = None
    install_all: bool = False
    selection: list[str] | None = None


@dataclass
class SkippedPair:
    skill: str
    target: str
    reasons: list[str]


@dataclass
class InstallOutcome:
    source_owner: str
    source_name: str
    revision: str
    scope: Scope
    total: int = 0
    installed: list[tuple[str, str]] = field(default_factory=list)  # (skill, target)
    skipped: list[SkippedPair] = field(default_factory=list)
    state: RequestState = RequestState.RESOLVING


@dataclass
class UninstallOutcome:
    name: str
    scope: Scope
    held_by: list[str] = field(default_factory=list)
    removed: list[str] = field(default_factory=list)
    cleaned: list[str] = field(default_factory=list)


@dataclass
class SkillUpdate:
    record: InstalledRecord
    current_revision: str
    latest_revision: str
    commit_messages: list[str] = field(default_factory=list)


@dataclass
class ResolvedSource:
    owner: str
    repo: str
    mirror_path: Path
    revision: str
    skills: list[SkillInfo]


class UpdateFetcher(Fetcher, Protocol):
    def commit_messages(
        self, owner: str, name: str, from_rev: str, to_rev: str, limit: int = 5
    ) -> list[str]: ...


ProgressCallback = Callable[[int, int, str, str], None]


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------


class Installer:
    """Drive install, uninstall and update requests.

    Args:
        manifest: State store receiving one record per installed pair.
        cache: Repository cache for configured sources.
        fetcher: Fetch collaborator providing local mirrors.
        agents: Install targets by name; iteration order is the "all agents" order.
        config: Loaded configuration (sources, default target).
        on_progress: Called as ``(index, total, skill, target)`` before each pair.
    """

    def __init__(
        self,
        manifest: Manifest,
        cache: RepositoryCache,
        fetcher: UpdateFetcher,
        agents: dict[str, Agent],
        config: SkilletConfig,
        *,
        on_progress: ProgressCallback | None = None,
    ) -> None:
        self.manifest = manifest
        self.cache = cache
        self.fetcher = fetcher
        self.agents = agents
        self.config = config
        self.on_progress = on_progress
        self.last_state = RequestState.RESOLVING

    # ------------------------------------------------------------------
    # Install
    # ------------------------------------------------------------------

    def install(self, request: InstallRequest) -> InstallOutcome:
        """Install the requested skills into the requested targets.

        Raises:
            InstallError: If the source, skills or targets cannot be resolved.
            FetchError: If the source cannot be fetched.
            LockTimeoutError, OSError, ...: From an install step, after rollback.
        """
        self.last_state = RequestState.RESOLVING
        scope = Scope(request.scope)
        targets = self._resolve_targets(request.targets)
        resolved = self._resolve_source(request.source)
        skills = _select_skills(resolved.skills, request)

        outcome = InstallOutcome(
            source_owner=resolved.owner,
            source_name=resolved.repo,
            revision=resolved.revision,
            scope=scope,
            total=len(skills) * len(targets),
        )
        saga: list[CompletedStep] = []
        index = 0

        self.last_state = RequestState.INSTALLING
        try:
            for info in skills:
                skill = load_skill(info.path)
                if skill is None:
                    logger.warning("Skipping %s: SKILL.md could not be loaded", info.name)
                    for target in targets:
                        outcome.skipped.append(SkippedPair(info.name, target, ["invalid SKILL.md"]))
                    index += len(targets)
                    continue

                for target in targets:
                    index += 1
                    if self.on_progress is not None:
                        self.on_progress(index, outcome.total, skill.name, target)
                    if self._install_pair(skill, info, target, scope, resolved, saga, outcome):
                        outcome.installed.append((skill.name, target))
        except Exception:
            self.last_state = RequestState.ROLLING_BACK
            outcome.state = self.last_state
            self._rollback(saga)
            self.last_state = RequestState.FAILED
            outcome.state = self.last_state
            raise

        self.last_state = RequestState.COMMITTED
        outcome.state = self.last_state
        return outcome

    def install_by_name(
        self, name: str, targets: list[str], scope: Scope = Scope.PROJECT
    ) -> InstallOutcome:
        """Search configured sources for *name* and install the best match.

        An exact (case-insensitive) name match wins; otherwise the first hit.

        Raises:
            NoSkillsFoundError: If nothing matches.
        """
        results = self.cache.search(name, self.config.sources)
        if not results:
            raise NoSkillsFoundError(f"No skills found matching: {name}")
        match = next((s for s in results if s.name.lower() == name.lower()), results[0])
        return self.install(
            InstallRequest(source=match.source, targets=targets, scope=scope, skill_name=match.name)
        )

    def _install_pair(
        self,
        skill: ParsedSkill,
        info: SkillInfo,
        target: str,
        scope: Scope,
        resolved: ResolvedSource,
        saga: list[CompletedStep],
        outcome: InstallOutcome,
    ) -> bool:
        agent = self.agents[target]
        compatibility = agent.is_compatible(skill)
        if not compatibility.ok:
            logger.warning(
                "%s not compatible with %s: %s",
                skill.name,
                agent.display_name,
                ", ".join(compatibility.reasons),
            )
            outcome.skipped.append(SkippedPair(skill.name, target, compatibility.reasons))
            return False

        agent.install_content(skill, info.path, scope)
        saga.append(CompletedStep(StepKind.CONTENT, skill.name, target, scope))

        self.manifest.upsert(
            InstalledRecord(
                name=skill.name,
                target=target,
                source_owner=resolved.owner,
                source_name=resolved.repo,
                source_path=info.relative_path or None,
                revision=resolved.revision,
                installed_at=utc_now(),
                scope=scope,
            )
        )
        saga.append(CompletedStep(StepKind.RECORD, skill.name, target, scope))
        logger.debug("Installed %s → %s%s", skill.name, target, scope.label)
        return True

    # ------------------------------------------------------------------
    # Rollback
    # ------------------------------------------------------------------

    def _rollback(self, saga: list[CompletedStep]) -> None:
        if not saga:
            return
        pairs = sum(1 for step in saga if step.kind is StepKind.CONTENT)
        logger.warning("Installation failed, rolling back %d installed skill(s)", pairs)
        for step in reversed(saga):
            try:
                _REVERSALS[step.kind](self, step)
            except Exception as exc:
                logger.error(
                    "Failed to roll back %s of %s for %s%s: %s",
                    step.kind.value,
                    step.skill,
                    step.target,
                    step.scope.label,
                    exc,
                )
            else:
                logger.info("Rolled back %s of %s for %s", step.kind.value, step.skill, step.target)

    def _reverse_content(self, step: CompletedStep) -> None:
        self.agents[step.target].uninstall_content(step.skill, step.scope)

    def _reverse_record(self, step: CompletedStep) -> None:
        self.manifest.remove(step.skill, step.target, step.scope)

    # ------------------------------------------------------------------
    # Uninstall
    # ------------------------------------------------------------------

    def holders(
        self, name: str, scope: Scope = Scope.PROJECT, targets: list[str] | None = None
    ) -> list[str]:
        """Targets holding skill *name* on disk or in the manifest.

        *targets* limits the check (None = every agent).

        Raises:
            UnknownTargetError: If a named target does not exist.
        """
        scope = Scope(scope)
        candidates = list(self.agents) if targets is None else self._resolve_targets(targets)
        return [
            target
            for target in candidates
            if self.agents[target].has_skill(name, scope)
            or self.manifest.find(name, target, scope) is not None
        ]

    def uninstall(
        self, name: str, targets: list[str] | None = None, scope: Scope = Scope.PROJECT
    ) -> UninstallOutcome:
        """Remove skill *name* from *targets* (None = every agent holding it).

        ``held_by`` lists the targets that had the skill (content or record)
        before anything was removed. ``removed`` holds the targets whose
        content was deleted; ``cleaned`` the ones where only a leftover
        manifest record was dropped because the content was already gone.

        Raises:
            UnknownTargetError: If a named target does not exist.
            LockTimeoutError: If the manifest lock cannot be acquired.
        """
        scope = Scope(scope)
        held_by = self.holders(name, scope, targets)

        outcome = UninstallOutcome(name=name, scope=scope, held_by=held_by)
        for target in held_by:
            if self.agents[target].uninstall_content(name, scope):
                self.manifest.remove(name, target, scope)
                outcome.removed.append(target)
            elif self.manifest.find(name, target, scope) is not None:
                self.manifest.remove(name, target, scope)
                outcome.cleaned.append(target)
                logger.info("Dropped record of %s for %s%s: content was missing", name, target, scope.label)
        return outcome

    # ------------------------------------------------------------------
    # Updates
    # ------------------------------------------------------------------

    def check_updates(self) -> list[SkillUpdate]:
        """Fetch every source with installed skills once and list outdated records.

        Sources that fail to fetch are logged and skipped.
        """
        groups: dict[tuple[str, str], list[InstalledRecord]] = {}
        for record in self.manifest.all():
            groups.setdefault((record.source_owner, record.source_name), []).append(record)

        updates: list[SkillUpdate] = []
        for (owner, repo), records in groups.items():
            try:
                mirror = self.fetcher.ensure_local(
                    owner, repo, self._clone_url_for(owner, repo), update=True
                )
            except FetchError as exc:
                logger.warning("Failed to check %s/%s: %s", owner, repo, exc)
                continue

            latest = mirror.revision or self.fetcher.current_revision(owner, repo)
            if not latest:
                continue
            for record in records:
                if record.revision != latest:
                    updates.append(
                        SkillUpdate(
                            record=record,
                            current_revision=record.revision,
                            latest_revision=latest,
                            commit_messages=self.fetcher.commit_messages(
                                owner, repo, record.revision, latest, 3
                            ),
                        )
                    )
        return updates

    def apply_update(self, update: SkillUpdate) -> InstalledRecord:
        """Reinstall an outdated skill from its mirror and record the new revision.

        Raises:
            UnknownTargetError: If the record's target no longer exists.
            SkillNotFoundError: If the skill is gone from the source.
        """
        record = update.record
        if record.target not in self.agents:
            raise UnknownTargetError(record.target, list(self.agents))
        mirror = self.fetcher.ensure_local(
            record.source_owner, record.source_name, self._clone_url_for(record.source_owner, record.source_name)
        )
        located = _locate_skill(mirror.path, record)
        if located is None:
            raise SkillNotFoundError(record.name, [])
        skill_dir, skill = located

        self.agents[record.target].install_content(skill, skill_dir, record.scope)
        refreshed = dataclasses.replace(
            record, revision=update.latest_revision, installed_at=utc_now()
        )
        self.manifest.upsert(refreshed)
        return refreshed

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    def _resolve_targets(self, targets: list[str]) -> list[str]:
        resolved = list(dict.fromkeys(targets)) or [self.config.default_target]
        for target in resolved:
            if target not in self.agents:
                raise UnknownTargetError(target, list(self.agents))
        return resolved

    def _resolve_source(self, locator: str) -> ResolvedSource:
        configured = self.config.get_source(locator)
        subpath: str | None = None
        if configured is not None:
            parsed = parse_git_url(configured.url)
        else:
            parsed = parse_git_url(locator)
            if parsed is None and (split := split_shorthand_path(locator)):
                parsed = parse_git_url(split[0])
                subpath = split[1]
            if parsed is not None:
                subpath = subpath or parsed.path
                configured = self._configured_source_for(parsed)
        if parsed is None:
            raise InvalidSourceError(f"Invalid source format: {locator}")

        cached = None
        if configured is not None and subpath is None:
            cached = self.cache.ensure(configured.name, configured.url)

        mirror = self.fetcher.ensure_local(parsed.owner, parsed.repo, parsed.clone_url)
        revision = (
            self.fetcher.current_revision(parsed.owner, parsed.repo)
            or mirror.revision
            or UNKNOWN_REVISION
        )

        if subpath is not None:
            skills = _skills_at_subpath(mirror.path, subpath)
        elif cached is not None:
            skills = []
            for entry in cached:
                skill_dir = safe_join(mirror.path, entry.relative_path) if entry.relative_path else mirror.path
                if skill_dir is None:
                    logger.warning("Ignoring cached skill %s with unsafe path", entry.name)
                    continue
                skills.append(
                    SkillInfo(
                        name=entry.name,
                        description=entry.description,
                        path=skill_dir,
                        relative_path=entry.relative_path,
                        license=entry.license,
                        compatibility=entry.compatibility,
                        metadata=entry.metadata,
                    )
                )
        else:
            skills = discover_skills(mirror.path)

        if not skills:
            raise NoSkillsFoundError(
                f"No skills found in {parsed.owner}/{parsed.repo}"
                + (f" at {subpath}" if subpath else "")
            )
        return ResolvedSource(
            owner=parsed.owner,
            repo=parsed.repo,
            mirror_path=mirror.path,
            revision=revision,
            skills=skills,
        )

    def _configured_source_for(self, parsed: ParsedGitUrl) -> SourceConfig | None:
        for source in self.config.sources:
            candidate = parse_git_url(source.url)
            if candidate is not None and (candidate.host, candidate.owner, candidate.repo) == (
                parsed.host,
                parsed.owner,
                parsed.repo,
            ):
                return source
        return None

    def _clone_url_for(self, owner: str, repo: str) -> str | None:
        for source in self.config.sources:
            candidate = parse_git_url(source.url)
            if candidate is not None and (candidate.owner, candidate.repo) == (owner, repo):
                return candidate.clone_url
        return None


_REVERSALS: dict[StepKind, Callable[[Installer, CompletedStep], None]] = {
    StepKind.CONTENT: Installer._reverse_content,
    StepKind.RECORD: Installer._reverse_record,
}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _select_skills(available: list[SkillInfo], request: InstallRequest) -> list[SkillInfo]:
    names = [s.name for s in available]
    by_name = {s.name: s for s in available}

    if request.skill_name:
        if request.skill_name not in by_name:
            raise SkillNotFoundError(request.skill_name, names)
        return [by_name[request.skill_name]]
    if request.install_all:
        return list(available)
    if request.selection is not None:
        for name in request.selection:
            if name not in by_name:
                raise SkillNotFoundError(name, names)
        return [by_name[n] for n in dict.fromkeys(request.selection)]
    if len(available) == 1:
        return list(available)
    raise SelectionRequiredError(names)


def _skills_at_subpath(mirror: Path, subpath: str) -> list[SkillInfo]:
    base = safe_join(mirror, subpath)
    if base is None:
        raise InvalidSourceError(f"Invalid path: {subpath}")
    if not base.exists():
        raise InvalidSourceError(f"Path not found: {subpath}")
    if (base / SKILL_FILE).is_file():
        info = load_skill_info(base, mirror)
        return [info] if info else []
    return [
        dataclasses.replace(s, relative_path=f"{subpath.strip('/')}/{s.relative_path}")
        for s in discover_skills(base)
    ]


def _locate_skill(mirror: Path, record: InstalledRecord) -> tuple[Path, ParsedSkill] | None:
    """Find the directory of *record*'s skill inside *mirror*."""
    candidates = [record.source_path] if record.source_path else [f"skills/{record.name}", ""]
    for candidate in candidates:
        skill_dir = safe_join(mirror, candidate) if candidate else mirror
        if skill_dir is None:
            continue
        skill = load_skill(skill_dir)
        if skill is not None and skill.name == record.name:
            return skill_dir, skill
    return None
