"""Tests for skillet rich error messages."""

from __future__ import annotations

from skillet.cli.errors import (
    err_fetch_failed,
    err_invalid_target,
    err_lock_timeout,
    err_not_installed,
    err_selection_required,
    err_skill_not_found,
    warn_incompatible,
)
from skillet.cli.install import describe_install_error
from skillet.core.git import FetchError
from skillet.core.installer import SelectionRequiredError, UnknownTargetError
from skillet.core.lock import LockTimeoutError


def test_lock_timeout_mentions_concurrency() -> None:
    msg = err_lock_timeout()
    assert "[red]Error:[/]" in msg
    assert "concurrent operation" in msg


def test_invalid_target_lists_agents() -> None:
    msg = err_invalid_target("vim", ["claude", "cursor"])
    assert "'vim'" in msg
    assert "claude, cursor" in msg


def test_skill_not_found_without_available() -> None:
    assert "(none)" in err_skill_not_found("pdf", [], "acme/skills")


def test_selection_required_shows_next_command() -> None:
    msg = err_selection_required("acme/skills", ["pdf", "xlsx"])
    assert "2 skills" in msg
    assert "skillet install acme/skills --all" in msg


def test_not_installed_scope_label() -> None:
    assert "not installed (global)" in err_not_installed("pdf", " (global)")


def test_fetch_failed_suggests_token() -> None:
    assert "GIT_TOKEN" in err_fetch_failed("acme/skills", "denied")


def test_warn_incompatible() -> None:
    msg = warn_incompatible("Bad", "claude", ["name: bad", "description: empty"])
    assert "Skipped Bad for claude" in msg
    assert "name: bad; description: empty" in msg


def test_describe_install_error_dispatch() -> None:
    assert "concurrent operation" in describe_install_error(LockTimeoutError("x"), "s")
    assert "Invalid agent" in describe_install_error(UnknownTargetError("vim", ["claude"]), "s")
    assert "--all" in describe_install_error(SelectionRequiredError(["a", "b"]), "s")
    assert "Failed to fetch s" in describe_install_error(FetchError("boom"), "s")
    assert "rolled back" in describe_install_error(OSError("disk full"), "s")
