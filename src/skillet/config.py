"""skillet configuration loader.

Priority (high → low):
  1. CLI flags           (handled at call site, not in this module)
  2. Environment variables  (SKILLET_DEFAULT_TARGET, SKILLET_DEFAULT_SCOPE)
  3. <home>/config.yaml
  4. Hardcoded defaults

<home> is $SKILLET_HOME if set, else ~/.skillet.

The config document is versioned and migrated forward like the manifest; a
migrated or corrupt file is rewritten (corrupt → defaults). Environment
overrides are never written back.
All YAML reads use yaml.safe_load(), never yaml.load().
"""

from __future__ import annotations

import logging
import os
import warnings
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from skillet.core.fs import write_atomic
from skillet.core.migrations import CONFIG_MIGRATIONS, CONFIG_VERSION, run_migrations
from skillet.core.models import Scope
from skillet.core.urls import is_valid_source_name, parse_git_url

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_HOME_ENV = "SKILLET_HOME"
_DEFAULT_HOME_NAME = ".skillet"
_CONFIG_NAME = "config.yaml"

_KNOWN_KEYS: frozenset[str] = frozenset(
    ["schemaVersion", "defaultTarget", "defaultScope", "sources", "targetOverrides"]
)

_DEFAULT_SOURCES: tuple[tuple[str, str], ...] = (
    ("anthropic-official", "https://github.com/anthropics/skills"),
    ("openai-official", "https://github.com/openai/skills"),
)


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class ConfigError(ValueError):
    """Raised when a config value is invalid (bad source name, URL or scope)."""


# ---------------------------------------------------------------------------
# Data model
# ---------------------------------------------------------------------------


@dataclass
class SourceConfig:
    """A configured skill source (config.yaml: sources[])."""

    name: str
    url: str


@dataclass
class TargetOverride:
    """Per-target project path override (config.yaml: targetOverrides.<target>)."""

    skill_path: str


@dataclass
class SkilletConfig:
    """Root configuration object, built by load_config()."""

    schema_version: int = CONFIG_VERSION
    default_target: str = "claude"
    default_scope: Scope = Scope.PROJECT
    sources: list[SourceConfig] = field(
        default_factory=lambda: [SourceConfig(n, u) for n, u in _DEFAULT_SOURCES]
    )
    target_overrides: dict[str, TargetOverride] = field(default_factory=dict)

    def get_source(self, name: str) -> SourceConfig | None:
        return next((s for s in self.sources if s.name == name), None)

    def to_dict(self) -> dict[str, Any]:
        return {
            "schemaVersion": self.schema_version,
            "defaultTarget": self.default_target,
            "defaultScope": self.default_scope.value,
            "sources": [{"name": s.name, "url": s.url} for s in self.sources],
            "targetOverrides": {
                k: {"skillPath": v.skill_path} for k, v in self.target_overrides.items()
            },
        }


# ---------------------------------------------------------------------------
# Paths
# ---------------------------------------------------------------------------


def skillet_home() -> Path:
    """Return the state directory: $SKILLET_HOME or ~/.skillet."""
    if env := os.environ.get(_HOME_ENV):
        return Path(env).expanduser()
    return Path.home() / _DEFAULT_HOME_NAME


def config_path(home: Path | None = None) -> Path:
    return (home if home is not None else skillet_home()) / _CONFIG_NAME


# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------


def _parse_scope(value: Any, default: Scope) -> Scope:
    try:
        return Scope(value)
    except ValueError:
        return default


def _warn_unknown_keys(data: dict[str, Any], source: Path) -> None:
    """Emit a UserWarning for unrecognised top-level keys."""
    for key in data:
        if key not in _KNOWN_KEYS:
            warnings.warn(
                f"Unknown config key '{key}' in '{source}'; ignored.",
                UserWarning,
                stacklevel=4,
            )


def validate_source(name: str, url: str) -> None:
    """Raise ConfigError if *name* or *url* cannot be used as a source."""
    if not is_valid_source_name(name):
        raise ConfigError(
            f"Invalid source name: '{name}'. "
            "Use only letters, numbers, dashes, and underscores."
        )
    if parse_git_url(url) is None:
        raise ConfigError(
            f"Invalid repository URL: '{url}'. "
            "Supported formats: https://host/owner/repo, git@host:owner/repo, owner/repo"
        )


# ---------------------------------------------------------------------------
# Build
# ---------------------------------------------------------------------------


def _cfg_from_dict(data: dict[str, Any]) -> SkilletConfig:
    """Build a *SkilletConfig* from a migrated raw YAML dict; invalid entries are dropped."""
    cfg = SkilletConfig()
    cfg.schema_version = int(data.get("schemaVersion", CONFIG_VERSION))

    if isinstance(data.get("defaultTarget"), str) and data["defaultTarget"]:
        cfg.default_target = data["defaultTarget"]
    cfg.default_scope = _parse_scope(data.get("defaultScope"), cfg.default_scope)

    raw_sources = data.get("sources")
    if isinstance(raw_sources, list):
        cfg.sources = [
            SourceConfig(name=s["name"], url=s["url"])
            for s in raw_sources
            if isinstance(s, dict) and isinstance(s.get("name"), str) and isinstance(s.get("url"), str)
        ]

    raw_overrides = data.get("targetOverrides")
    if isinstance(raw_overrides, dict):
        for target, value in raw_overrides.items():
            if isinstance(value, dict) and isinstance(value.get("skillPath"), str):
                cfg.target_overrides[str(target)] = TargetOverride(skill_path=value["skillPath"])

    return cfg


def _apply_env_overrides(cfg: SkilletConfig) -> SkilletConfig:
    """Apply SKILLET_* environment variable overrides (layer 2)."""
    if target := os.environ.get("SKILLET_DEFAULT_TARGET"):
        cfg.default_target = target
    if scope := os.environ.get("SKILLET_DEFAULT_SCOPE"):
        cfg.default_scope = _parse_scope(scope, cfg.default_scope)
    return cfg


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(home: Path | None = None, *, apply_env: bool = True) -> SkilletConfig:
    """Load and return the merged *SkilletConfig*.

    A missing file is created with defaults. An unreadable or non-mapping
    file is replaced by defaults. An older schema is migrated and saved.

    Args:
        home: State directory override (for testing). Defaults to skillet_home().
        apply_env: Apply SKILLET_* environment overrides to the result.
    """
    path = config_path(home)

    if not path.exists():
        cfg = SkilletConfig()
        save_config(cfg, home)
        return _apply_env_overrides(cfg) if apply_env else cfg

    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, yaml.YAMLError) as exc:
        logger.warning("Config %s is unreadable (%s); resetting to defaults", path, exc)
        raw = None

    if not isinstance(raw, dict):
        cfg = SkilletConfig()
        save_config(cfg, home)
        return _apply_env_overrides(cfg) if apply_env else cfg

    raw, migrated = run_migrations(raw, CONFIG_MIGRATIONS)
    _warn_unknown_keys(raw, path)
    cfg = _cfg_from_dict(raw)
    if migrated:
        logger.info("Migrated config %s to schema %d", path, cfg.schema_version)
        save_config(cfg, home)

    return _apply_env_overrides(cfg) if apply_env else cfg


def save_config(cfg: SkilletConfig, home: Path | None = None) -> Path:
    """Write *cfg* atomically to ``<home>/config.yaml`` and return the path."""
    path = config_path(home)
    content = (
        "# skillet configuration, managed by `skillet repo` and friends.\n"
        + yaml.safe_dump(cfg.to_dict(), sort_keys=False)
    )
    write_atomic(path, content)
    return path


def add_source(name: str, url: str, home: Path | None = None) -> SkilletConfig:
    """Add source *name* (or update its URL if it exists) and save.

    Raises:
        ConfigError: If *name* or *url* is invalid.
    """
    validate_source(name, url)
    cfg = load_config(home, apply_env=False)
    existing = cfg.get_source(name)
    if existing is not None:
        existing.url = url
    else:
        cfg.sources.append(SourceConfig(name=name, url=url))
    save_config(cfg, home)
    return cfg


def remove_source(name: str, home: Path | None = None) -> bool:
    """Remove source *name*. Returns False if it was not configured."""
    cfg = load_config(home, apply_env=False)
    remaining = [s for s in cfg.sources if s.name != name]
    if len(remaining) == len(cfg.sources):
        return False
    cfg.sources = remaining
    save_config(cfg, home)
    return True


def get_config_value(cfg: SkilletConfig, key: str) -> Any:
    """Return the value at dotted *key* in the config file layout.

    Raises:
        ConfigError: If *key* does not name a config value.
    """
    node: Any = cfg.to_dict()
    for part in key.split("."):
        if not isinstance(node, dict) or part not in node:
            raise ConfigError(f"Unknown config key: '{key}'")
        node = node[part]
    return node


def set_config_value(
    key: str, value: str, targets: list[str], home: Path | None = None
) -> SkilletConfig:
    """Set one config value and save.

    Settable keys are ``defaultTarget``, ``defaultScope`` and
    ``targetOverrides.<target>.skillPath``. *targets* lists the valid
    target names. Sources are changed with add_source()/remove_source().

    Raises:
        ConfigError: If *key* is not settable or *value* is invalid for it.
    """
    cfg = load_config(home, apply_env=False)
    parts = key.split(".")

    if key == "defaultTarget":
        if value not in targets:
            raise ConfigError(
                f"Invalid target: '{value}'. Available targets: {', '.join(targets)}"
            )
        cfg.default_target = value
    elif key == "defaultScope":
        try:
            cfg.default_scope = Scope(value)
        except ValueError:
            raise ConfigError(f"Invalid scope: '{value}'. Use 'project' or 'global'.") from None
    elif len(parts) == 3 and parts[0] == "targetOverrides" and parts[2] == "skillPath":
        if parts[1] not in targets:
            raise ConfigError(
                f"Invalid target: '{parts[1]}'. Available targets: {', '.join(targets)}"
            )
        if not value.strip():
            raise ConfigError("skillPath cannot be empty")
        cfg.target_overrides[parts[1]] = TargetOverride(skill_path=value)
    else:
        raise ConfigError(
            f"Cannot set '{key}'. Settable keys: defaultTarget, defaultScope, "
            "targetOverrides.<target>.skillPath"
        )

    save_config(cfg, home)
    return cfg
