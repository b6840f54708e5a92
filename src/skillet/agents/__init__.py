"""Built-in install targets."""

from __future__ import annotations

from pathlib import Path

from skillet.agents.base import Agent, Compatibility, InstalledSkill
from skillet.config import SkilletConfig

# name, display name, project skill path, global dir under $HOME
BUILTIN_AGENTS: tuple[tuple[str, str, str, str], ...] = (
    ("claude", "Claude Code", ".claude/skills", ".claude"),
    ("antigravity", "Antigravity", ".antigravity/skills", ".antigravity"),
    ("codex", "Codex", ".codex/skills", ".codex"),
    ("cursor", "Cursor", ".cursor/skills", ".cursor"),
)


def agent_names() -> list[str]:
    return [name for name, *_ in BUILTIN_AGENTS]


def build_agents(
    cfg: SkilletConfig | None = None,
    *,
    project_dir: Path | None = None,
    home_dir: Path | None = None,
) -> dict[str, Agent]:
    """Return all built-in agents keyed by name, in a stable order.

    Project skill paths from ``cfg.target_overrides`` replace the defaults.
    """
    overrides = cfg.target_overrides if cfg is not None else {}
    agents: dict[str, Agent] = {}
    for name, display_name, skill_path, global_dir in BUILTIN_AGENTS:
        override = overrides.get(name)
        agents[name] = Agent(
            name,
            display_name,
            skill_path,
            global_dir,
            project_dir=project_dir,
            home_dir=home_dir,
            skill_path=override.skill_path if override else None,
        )
    return agents


__all__ = [
    "Agent",
    "BUILTIN_AGENTS",
    "Compatibility",
    "InstalledSkill",
    "agent_names",
    "build_agents",
]
