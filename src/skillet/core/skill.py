"""SKILL.md parsing, validation and discovery.

A skill is a directory containing a ``SKILL.md`` whose YAML frontmatter has
at least ``name`` and ``description``:

    ---
    name: pdf-tools
    description: PDF utilities
    license: MIT
    ---
    # Body...

Frontmatter is read with yaml.safe_load(), never yaml.load().
"""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from skillet.core.fs import SKILL_FILE, find_skill_dirs

logger = logging.getLogger(__name__)

_FRONTMATTER_RE = re.compile(r"\A---[ \t]*\r?\n(.*?)^---[ \t]*(?:\r?\n|\Z)", re.DOTALL | re.MULTILINE)
_NAME_RE = re.compile(r"^[a-z]([a-z0-9-]*[a-z0-9])?$")

MAX_NAME_LENGTH = 64
MAX_DESCRIPTION_LENGTH = 1024
MAX_CONTENT_LINES = 500


class InvalidSkillError(ValueError):
    """Raised when a SKILL.md is missing required frontmatter or cannot be parsed."""


@dataclass
class ParsedSkill:
    """A SKILL.md split into frontmatter and body."""

    name: str
    description: str
    content: str
    frontmatter: dict[str, Any] = field(default_factory=dict)

    @property
    def license(self) -> str | None:
        value = self.frontmatter.get("license")
        return str(value) if value is not None else None

    @property
    def compatibility(self) -> str | None:
        value = self.frontmatter.get("compatibility")
        return str(value) if value is not None else None

    @property
    def metadata(self) -> dict[str, str] | None:
        value = self.frontmatter.get("metadata")
        if not isinstance(value, dict):
            return None
        return {str(k): str(v) for k, v in value.items()}


@dataclass
class SkillInfo:
    """A skill found by discovery.

    Attributes:
        name: Frontmatter name.
        description: Frontmatter description.
        path: Absolute directory of the skill.
        relative_path: Directory relative to the discovery base ('' for the base itself).
    """

    name: str
    description: str
    path: Path
    relative_path: str
    license: str | None = None
    compatibility: str | None = None
    metadata: dict[str, str] | None = None


# ------------------------------------------------------------------
# Parsing
# ------------------------------------------------------------------


def parse_skill_md(source: str) -> ParsedSkill:
    """Parse SKILL.md text.

    Raises:
        InvalidSkillError: If frontmatter is absent, not a mapping, or lacks
            a string ``name`` / ``description``.
    """
    match = _FRONTMATTER_RE.match(source)
    if not match:
        raise InvalidSkillError("SKILL.md must start with a YAML frontmatter block")
    try:
        data = yaml.safe_load(match.group(1)) or {}
    except yaml.YAMLError as exc:
        raise InvalidSkillError(f"Invalid YAML frontmatter: {exc}") from exc
    if not isinstance(data, dict):
        raise InvalidSkillError("SKILL.md frontmatter must be a mapping")

    name = data.get("name")
    description = data.get("description")
    if not isinstance(name, str) or not name:
        raise InvalidSkillError("SKILL.md must have a 'name' field in frontmatter")
    if not isinstance(description, str) or not description:
        raise InvalidSkillError("SKILL.md must have a 'description' field in frontmatter")

    return ParsedSkill(
        name=name,
        description=description,
        content=source[match.end():].strip(),
        frontmatter=data,
    )


def load_skill(skill_dir: Path) -> ParsedSkill | None:
    """Load the SKILL.md in *skill_dir*; None if missing, unreadable or invalid."""
    skill_md = skill_dir / SKILL_FILE
    if not skill_md.is_file():
        return None
    try:
        return parse_skill_md(skill_md.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, InvalidSkillError) as exc:
        logger.debug("Skipping %s: %s", skill_md, exc)
        return None


def load_skill_info(skill_dir: Path, base: Path | None = None) -> SkillInfo | None:
    skill = load_skill(skill_dir)
    if skill is None:
        return None
    if base is None:
        relative = skill_dir.name
    else:
        relative = os.path.relpath(skill_dir, base).replace(os.sep, "/")
        if relative == ".":
            relative = ""
    return SkillInfo(
        name=skill.name,
        description=skill.description,
        path=skill_dir,
        relative_path=relative,
        license=skill.license,
        compatibility=skill.compatibility,
        metadata=skill.metadata,
    )


# ------------------------------------------------------------------
# Discovery
# ------------------------------------------------------------------


def discover_skills(base: Path) -> list[SkillInfo]:
    """Return every valid skill at or below *base*.

    If *base* itself holds a SKILL.md it is the only result.
    """
    if (base / SKILL_FILE).is_file():
        info = load_skill_info(base, base)
        return [info] if info else []

    skills: list[SkillInfo] = []
    for skill_dir in find_skill_dirs(base):
        info = load_skill_info(skill_dir, base)
        if info is not None:
            skills.append(info)
    return skills


# ------------------------------------------------------------------
# Validation
# ------------------------------------------------------------------


def validate_skill_name(name: str) -> str | None:
    """Return an error message for an invalid skill name, or None."""
    if not name:
        return "Name cannot be empty"
    if len(name) > MAX_NAME_LENGTH:
        return f"Name must be {MAX_NAME_LENGTH} characters or less"
    if not _NAME_RE.match(name):
        return "Name must be lowercase letters, numbers, and hyphens; cannot start/end with hyphen"
    if "--" in name:
        return "Name cannot contain consecutive hyphens"
    return None


def validate_skill_description(description: str) -> str | None:
    """Return an error message for an invalid description, or None."""
    if not description:
        return "Description cannot be empty"
    if len(description) > MAX_DESCRIPTION_LENGTH:
        return f"Description must be {MAX_DESCRIPTION_LENGTH} characters or less"
    return None


def check_skill_file(skill_md: Path, *, strict: bool = False) -> list[str]:
    """Return the problems found in one SKILL.md (empty when it is valid).

    Strict mode also requires the name to match the directory, a license
    field and at most MAX_CONTENT_LINES lines of instructions.
    """
    try:
        parsed = parse_skill_md(skill_md.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError) as exc:
        return [f"Cannot read file: {exc}"]
    except InvalidSkillError as exc:
        return [str(exc)]

    problems: list[str] = []
    if error := validate_skill_name(parsed.name):
        problems.append(f"name: {error}")
    if strict and parsed.name != skill_md.parent.name:
        problems.append(f'name "{parsed.name}" does not match directory "{skill_md.parent.name}"')
    if error := validate_skill_description(parsed.description):
        problems.append(f"description: {error}")
    if not parsed.content:
        problems.append("Skill has no instructions content")
    if strict:
        if parsed.license is None:
            problems.append("Missing license field (recommended)")
        lines = len(parsed.content.splitlines())
        if lines > MAX_CONTENT_LINES:
            problems.append(
                f"Content exceeds {MAX_CONTENT_LINES} lines ({lines} lines). "
                "Consider splitting into smaller, focused skills"
            )
    return problems
