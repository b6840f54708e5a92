"""Tests for built-in install targets."""

from __future__ import annotations

import shutil
from pathlib import Path

import pytest

from skillet.agents import BUILTIN_AGENTS, agent_names, build_agents
from skillet.config import SkilletConfig, TargetOverride
from skillet.core.models import Scope
from skillet.core.skill import ParsedSkill, load_skill


def _skill(name: str = "pdf", description: str = "PDF tools") -> ParsedSkill:
    return ParsedSkill(name=name, description=description, content="")


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


def test_builtin_agent_order() -> None:
    assert agent_names() == ["claude", "antigravity", "codex", "cursor"]
    assert len(BUILTIN_AGENTS) == 4


def test_paths(project: Path, user_home: Path) -> None:
    agents = build_agents(project_dir=project, home_dir=user_home)
    assert agents["claude"].skill_path() == project / ".claude" / "skills"
    assert agents["cursor"].global_skill_path() == user_home / ".cursor" / "skills"
    assert agents["codex"].target_path(Scope.GLOBAL) == user_home / ".codex" / "skills"
    assert agents["codex"].target_path("project") == project / ".codex" / "skills"


def test_target_override(project: Path, user_home: Path) -> None:
    cfg = SkilletConfig(target_overrides={"cursor": TargetOverride(skill_path="custom/skills")})
    agents = build_agents(cfg, project_dir=project, home_dir=user_home)
    assert agents["cursor"].skill_path() == project / "custom" / "skills"
    assert agents["claude"].skill_path() == project / ".claude" / "skills"


# ---------------------------------------------------------------------------
# Compatibility
# ---------------------------------------------------------------------------


def test_is_compatible(agents) -> None:
    assert agents["claude"].is_compatible(_skill()).ok
    result = agents["claude"].is_compatible(_skill(name="Bad_Name", description=""))
    assert not result.ok
    assert len(result.reasons) == 2


# ---------------------------------------------------------------------------
# install_content / uninstall_content
# ---------------------------------------------------------------------------


def test_install_copies_tree_without_git(agents, tmp_path: Path, skill_writer) -> None:
    source = skill_writer(tmp_path / "src", "pdf")
    (source / ".git").mkdir()
    (source / ".git" / "HEAD").write_text("ref", encoding="utf-8")
    (source / "ref" / "guide.md").parent.mkdir()
    (source / "ref" / "guide.md").write_text("guide", encoding="utf-8")

    agents["claude"].install_content(load_skill(source), source)

    dest = agents["claude"].skill_path() / "pdf"
    assert (dest / "SKILL.md").is_file()
    assert (dest / "ref" / "guide.md").read_text(encoding="utf-8") == "guide"
    assert not (dest / ".git").exists()


def test_install_dereferences_symlinks(agents, tmp_path: Path, skill_writer) -> None:
    source = skill_writer(tmp_path / "src", "pdf")
    outside = tmp_path / "outside.txt"
    outside.write_text("data", encoding="utf-8")
    (source / "linked.txt").symlink_to(outside)

    agents["claude"].install_content(load_skill(source), source)

    copied = agents["claude"].skill_path() / "pdf" / "linked.txt"
    assert not copied.is_symlink()
    assert copied.read_text(encoding="utf-8") == "data"


def test_install_rejects_symlinked_source(agents, tmp_path: Path, skill_writer) -> None:
    real = skill_writer(tmp_path / "src", "pdf")
    link = tmp_path / "link"
    link.symlink_to(real, target_is_directory=True)
    with pytest.raises(ValueError, match="symlink"):
        agents["claude"].install_content(_skill(), link)


def test_reinstall_replaces_previous_copy(agents, tmp_path: Path, skill_writer) -> None:
    old = skill_writer(tmp_path / "old", "pdf")
    (old / "obsolete.md").write_text("old", encoding="utf-8")
    agents["claude"].install_content(load_skill(old), old)

    new = skill_writer(tmp_path / "new", "pdf", body="# New\n")
    agents["claude"].install_content(load_skill(new), new)

    dest = agents["claude"].skill_path() / "pdf"
    assert "# New" in (dest / "SKILL.md").read_text(encoding="utf-8")
    assert not (dest / "obsolete.md").exists()
    assert [p.name for p in agents["claude"].skill_path().iterdir()] == ["pdf"]


def test_failed_copy_keeps_previous_copy(agents, tmp_path: Path, skill_writer, monkeypatch) -> None:
    old = skill_writer(tmp_path / "old", "pdf")
    agents["cursor"].install_content(load_skill(old), old)
    new = skill_writer(tmp_path / "new", "pdf", body="# New\n")

    def _copy_then_fail(src, dst, **kwargs):
        Path(dst, "partial").write_text("x", encoding="utf-8")
        raise OSError("disk full")

    monkeypatch.setattr("skillet.agents.base.shutil.copytree", _copy_then_fail)

    with pytest.raises(OSError, match="disk full"):
        agents["cursor"].install_content(load_skill(new), new)

    base = agents["cursor"].skill_path()
    assert [p.name for p in base.iterdir()] == ["pdf"]
    assert sorted(p.name for p in (base / "pdf").iterdir()) == ["SKILL.md"]
    assert "# Usage" in (base / "pdf" / "SKILL.md").read_text(encoding="utf-8")


def test_staging_directories_are_not_listed(agents, tmp_path: Path, skill_writer) -> None:
    staged = skill_writer(tmp_path / "src", "pdf")
    shutil.copytree(staged, agents["claude"].skill_path() / ".skillet-staging-pdf.abc")

    assert agents["claude"].list_installed(Scope.PROJECT) == []
    assert not agents["claude"].has_skill("pdf")


def test_install_missing_source(agents, tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        agents["claude"].install_content(_skill(), tmp_path / "nope")


@pytest.mark.parametrize("name", ["../escape", "a/../.."])
def test_install_rejects_escaping_name(agents, tmp_path: Path, skill_writer, name: str) -> None:
    source = skill_writer(tmp_path / "src", "pdf")
    with pytest.raises(ValueError):
        agents["claude"].install_content(_skill(name=name), source)


def test_uninstall(agents, tmp_path: Path, skill_writer) -> None:
    source = skill_writer(tmp_path / "src", "pdf")
    agents["codex"].install_content(load_skill(source), source, Scope.GLOBAL)

    assert agents["codex"].has_skill("pdf", Scope.GLOBAL)
    assert not agents["codex"].has_skill("pdf", Scope.PROJECT)
    assert agents["codex"].uninstall_content("pdf", Scope.GLOBAL)
    assert not agents["codex"].uninstall_content("pdf", Scope.GLOBAL)
    assert not agents["codex"].uninstall_content("..", Scope.GLOBAL)


def test_list_installed_both_scopes(agents, tmp_path: Path, skill_writer) -> None:
    source = skill_writer(tmp_path / "src", "pdf")
    skill = load_skill(source)
    agents["claude"].install_content(skill, source, Scope.PROJECT)
    agents["claude"].install_content(skill, source, Scope.GLOBAL)

    listed = agents["claude"].list_installed()
    assert [(s.name, s.scope) for s in listed] == [("pdf", Scope.PROJECT), ("pdf", Scope.GLOBAL)]
    assert agents["claude"].list_installed(Scope.GLOBAL)[0].path == agents["claude"].global_skill_path() / "pdf"
