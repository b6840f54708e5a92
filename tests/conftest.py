"""Shared pytest fixtures."""

from __future__ import annotations

from pathlib import Path

import pytest

from skillet.agents import build_agents
from skillet.config import SkilletConfig
from skillet.core.git import FetchError, LocalMirror
from skillet.core.manifest import Manifest
from skillet.core.registry import RepositoryCache

REV_A = "a" * 40
REV_B = "b" * 40


def write_skill(base: Path, name: str, description: str = "", body: str = "# Usage\n") -> Path:
    """Create ``<base>/<name>/SKILL.md`` and return the skill directory."""
    skill_dir = base / name
    skill_dir.mkdir(parents=True, exist_ok=True)
    (skill_dir / "SKILL.md").write_text(
        f"---\nname: {name}\ndescription: {description or name + ' skill'}\n---\n{body}",
        encoding="utf-8",
    )
    return skill_dir


class FakeFetcher:
    """In-memory stand-in for GitFetcher: (owner, repo) → prepared directory."""

    def __init__(self) -> None:
        self.repos: dict[tuple[str, str], Path] = {}
        self.revisions: dict[tuple[str, str], str] = {}
        self.messages: list[str] = []
        self.calls: list[tuple[str, str, bool]] = []
        self.failing: set[tuple[str, str]] = set()

    def add(self, owner: str, repo: str, path: Path, revision: str = REV_A) -> Path:
        path.mkdir(parents=True, exist_ok=True)
        self.repos[(owner, repo)] = path
        self.revisions[(owner, repo)] = revision
        return path

    def ensure_local(
        self, owner: str, name: str, url: str | None = None, *, update: bool = False
    ) -> LocalMirror:
        self.calls.append((owner, name, update))
        key = (owner, name)
        if key in self.failing or key not in self.repos:
            raise FetchError(f"git clone failed for {owner}/{name}")
        return LocalMirror(path=self.repos[key], revision=self.revisions[key])

    def current_revision(self, owner: str, name: str) -> str | None:
        return self.revisions.get((owner, name))

    def commit_messages(
        self, owner: str, name: str, from_rev: str, to_rev: str, limit: int = 5
    ) -> list[str]:
        return self.messages[:limit]


@pytest.fixture
def skill_writer():
    return write_skill


@pytest.fixture
def fetcher() -> FakeFetcher:
    return FakeFetcher()


@pytest.fixture
def home(tmp_path: Path) -> Path:
    path = tmp_path / "skillet-home"
    path.mkdir()
    return path


@pytest.fixture
def project(tmp_path: Path) -> Path:
    path = tmp_path / "project"
    path.mkdir()
    return path


@pytest.fixture
def user_home(tmp_path: Path) -> Path:
    path = tmp_path / "user"
    path.mkdir()
    return path


@pytest.fixture
def manifest(home: Path) -> Manifest:
    return Manifest.in_home(home)


@pytest.fixture
def cache(home: Path, fetcher: FakeFetcher) -> RepositoryCache:
    return RepositoryCache(home / "repos", fetcher)


@pytest.fixture
def agents(project: Path, user_home: Path):
    return build_agents(SkilletConfig(sources=[]), project_dir=project, home_dir=user_home)


@pytest.fixture
def cli_env(monkeypatch, home: Path, project: Path, user_home: Path, fetcher: FakeFetcher) -> FakeFetcher:
    """Point the CLI at temp directories and the fake fetcher; returns the fetcher."""
    monkeypatch.setenv("SKILLET_HOME", str(home))
    monkeypatch.setenv("HOME", str(user_home))
    for var in ("SKILLET_DEFAULT_TARGET", "SKILLET_DEFAULT_SCOPE", "GIT_TOKEN"):
        monkeypatch.delenv(var, raising=False)
    monkeypatch.chdir(project)
    monkeypatch.setattr("skillet.cli.common.GitFetcher", lambda mirrors_dir: fetcher)
    return fetcher
