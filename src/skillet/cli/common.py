"""Shared wiring for skillet commands: one state home, its stores and the installer."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from skillet.agents import build_agents
from skillet.agents.base import Agent
from skillet.config import SkilletConfig, load_config, skillet_home
from skillet.core.git import GitFetcher
from skillet.core.installer import Installer, ProgressCallback
from skillet.core.manifest import Manifest
from skillet.core.models import Scope
from skillet.core.registry import RepositoryCache

_REPOS_DIR = "repos"
_MIRRORS_DIR = "mirrors"


@dataclass
class Home:
    path: Path
    config: SkilletConfig
    manifest: Manifest
    cache: RepositoryCache
    fetcher: GitFetcher
    agents: dict[str, Agent]

    def installer(self, on_progress: ProgressCallback | None = None) -> Installer:
        return Installer(
            self.manifest,
            self.cache,
            self.fetcher,
            self.agents,
            self.config,
            on_progress=on_progress,
        )


def open_home(home: Path | None = None) -> Home:
    """Load config and build the stores rooted at *home* (default: skillet_home())."""
    path = home if home is not None else skillet_home()
    config = load_config(path)
    fetcher = GitFetcher(path / _MIRRORS_DIR)
    return Home(
        path=path,
        config=config,
        manifest=Manifest.in_home(path),
        cache=RepositoryCache(path / _REPOS_DIR, fetcher),
        fetcher=fetcher,
        agents=build_agents(config),
    )


def resolve_scope(global_: bool, config: SkilletConfig) -> Scope:
    """``--global`` wins; otherwise the configured default scope."""
    return Scope.GLOBAL if global_ else config.default_scope
