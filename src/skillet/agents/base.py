"""Install targets ("agents").

Every built-in agent stores skills the same way (one directory per skill,
named after the skill, under a per-agent base directory) and differs only
in where that base directory is:

  project scope: <project_dir>/<skill_path>          e.g. ./.claude/skills
  global scope:  <home_dir>/<global_dir_name>/skills  e.g. ~/.claude/skills

The project path can be overridden per target in config.yaml
(targetOverrides.<target>.skillPath).
"""

from __future__ import annotations

import os
import shutil
import tempfile
from dataclasses import dataclass, field
from pathlib import Path

from skillet.core.fs import safe_join
from skillet.core.models import Scope
from skillet.core.skill import (
    ParsedSkill,
    discover_skills,
    validate_skill_description,
    validate_skill_name,
)

# Sibling directories used while a new copy is written.
_STAGING_PREFIX = ".skillet-staging-"


@dataclass
class Compatibility:
    ok: bool
    reasons: list[str] = field(default_factory=list)


@dataclass
class InstalledSkill:
    """A skill found on disk in a target directory."""

    name: str
    description: str
    path: Path
    scope: Scope
    version: str | None = None


class Agent:
    """A target directory tree skills are installed into.

    Args:
        name: Identifier used on the command line and in the manifest.
        display_name: Human-readable name.
        default_skill_path: Project-relative skill directory.
        global_dir_name: Directory under *home_dir* holding ``skills/``.
        project_dir: Project root. Defaults to CWD at call time.
        home_dir: Home directory. Defaults to ``Path.home()`` at call time.
        skill_path: Project-relative override of *default_skill_path*.
    """

    def __init__(
        self,
        name: str,
        display_name: str,
        default_skill_path: str,
        global_dir_name: str,
        *,
        project_dir: Path | None = None,
        home_dir: Path | None = None,
        skill_path: str | None = None,
    ) -> None:
        self.name = name
        self.display_name = display_name
        self.default_skill_path = default_skill_path
        self.global_dir_name = global_dir_name
        self._project_dir = project_dir
        self._home_dir = home_dir
        self._skill_path = skill_path

    def __repr__(self) -> str:
        return f"Agent({self.name!r})"

    # ------------------------------------------------------------------
    # Paths
    # ------------------------------------------------------------------

    def skill_path(self) -> Path:
        """Project-scope skill directory."""
        base = self._project_dir if self._project_dir is not None else Path.cwd()
        return base / (self._skill_path or self.default_skill_path)

    def global_skill_path(self) -> Path:
        """Global-scope skill directory."""
        home = self._home_dir if self._home_dir is not None else Path.home()
        return home / self.global_dir_name / "skills"

    def target_path(self, scope: Scope = Scope.PROJECT) -> Path:
        return self.global_skill_path() if Scope(scope) is Scope.GLOBAL else self.skill_path()

    # ------------------------------------------------------------------
    # Target contract
    # ------------------------------------------------------------------

    def is_compatible(self, skill: ParsedSkill) -> Compatibility:
        """Check *skill* against this target's naming rules."""
        reasons: list[str] = []
        if error := validate_skill_name(skill.name):
            reasons.append(f"name: {error}")
        if error := validate_skill_description(skill.description):
            reasons.append(f"description: {error}")
        return Compatibility(ok=not reasons, reasons=reasons)

    def install_content(
        self, skill: ParsedSkill, source_dir: Path, scope: Scope = Scope.PROJECT
    ) -> None:
        """Copy *source_dir* to ``<target_path>/<skill.name>``, replacing any previous copy.

        Symlinks inside the skill are copied as the files they point to.

        Raises:
            FileNotFoundError: If *source_dir* does not exist.
            ValueError: If *source_dir* is a symlink or the skill name escapes
                the target directory.
            OSError: On copy failure.
        """
        if source_dir.is_symlink():
            raise ValueError(f"Skill directory cannot be a symlink: {source_dir}")
        if not source_dir.is_dir():
            raise FileNotFoundError(f"Skill directory not found: {source_dir}")

        base = self.target_path(scope)
        destination = safe_join(base, skill.name)
        if destination is None or destination == base:
            raise ValueError(f"Invalid skill name: {skill.name}")

        base.mkdir(parents=True, exist_ok=True)
        staging = Path(tempfile.mkdtemp(dir=base, prefix=f"{_STAGING_PREFIX}{skill.name}."))
        try:
            shutil.copytree(
                source_dir,
                staging,
                symlinks=False,
                ignore=shutil.ignore_patterns(".git"),
                dirs_exist_ok=True,
            )
        except BaseException:
            shutil.rmtree(staging, ignore_errors=True)
            raise
        _swap_into_place(staging, destination)

    def uninstall_content(self, name: str, scope: Scope = Scope.PROJECT) -> bool:
        """Remove the skill directory *name*. Returns False if nothing was there."""
        base = self.target_path(scope)
        destination = safe_join(base, name)
        if destination is None or destination == base:
            return False
        if not destination.exists() and not destination.is_symlink():
            return False
        _remove_path(destination)
        return True

    # ------------------------------------------------------------------
    # Inspection
    # ------------------------------------------------------------------

    def list_installed(self, scope: Scope | None = None) -> list[InstalledSkill]:
        """Return skills present on disk; *scope* None lists both scopes."""
        scopes = [Scope(scope)] if scope is not None else [Scope.PROJECT, Scope.GLOBAL]
        installed: list[InstalledSkill] = []
        for s in scopes:
            base = self.target_path(s)
            if not base.is_dir():
                continue
            for info in discover_skills(base):
                if info.path == base or info.path.name.startswith(_STAGING_PREFIX):
                    continue
                installed.append(
                    InstalledSkill(
                        name=info.name,
                        description=info.description,
                        path=info.path,
                        scope=s,
                        version=(info.metadata or {}).get("version"),
                    )
                )
        return installed

    def has_skill(self, name: str, scope: Scope = Scope.PROJECT) -> bool:
        return any(s.name == name for s in self.list_installed(scope))


def _remove_path(path: Path) -> None:
    if path.is_symlink() or path.is_file():
        path.unlink()
    else:
        shutil.rmtree(path)


def _swap_into_place(staging: Path, destination: Path) -> None:
    """Move the finished copy *staging* to *destination*.

    An existing *destination* is moved aside first and restored if the final
    rename fails, so a target always holds either the old or the new copy.
    """
    if not (destination.exists() or destination.is_symlink()):
        try:
            os.replace(staging, destination)
        except OSError:
            shutil.rmtree(staging, ignore_errors=True)
            raise
        return

    backup = staging.with_name(staging.name + ".old")
    try:
        os.replace(destination, backup)
    except OSError:
        shutil.rmtree(staging, ignore_errors=True)
        raise
    try:
        os.replace(staging, destination)
    except OSError:
        os.replace(backup, destination)
        shutil.rmtree(staging, ignore_errors=True)
        raise
    _remove_path(backup)
