"""Git fetcher: keeps local mirrors of skill sources.

Mirrors live at ``<mirrors_dir>/<owner>-<repo>``. The fetcher guarantees a
mirror exists (shallow clone) and optionally pulls it; the revision token is
the mirror's HEAD commit id.

Security requirements:
- shell=False always (no command injection); every URL is passed after "--".
- Owner/repo names validated before they become directory names.
- GIT_TOKEN injected into HTTPS URLs in-memory; never logged, never in error output.
- Commit ids validated before they reach ``git log``.
"""

from __future__ import annotations

import logging
import os
import re
import shutil
import subprocess
import urllib.parse
from dataclasses import dataclass
from pathlib import Path

from skillet.core.fs import is_path_within
from skillet.core.urls import is_valid_repo_part

logger = logging.getLogger(__name__)

_CRED_RE = re.compile(r"(https?://)([^@/]+@)", re.IGNORECASE)
_COMMIT_RE = re.compile(r"^[0-9a-fA-F]{4,40}$")

# Seconds before a single git command is abandoned.
GIT_TIMEOUT: float = 300.0


class FetchError(RuntimeError):
    """Raised when a source cannot be cloned, pulled or inspected."""


def sanitise_url(text: str) -> str:
    """Remove embedded credentials from URLs in *text* for safe logging / error messages."""
    return _CRED_RE.sub(r"\1***@", text)


@dataclass(frozen=True)
class LocalMirror:
    path: Path
    revision: str | None
    previous_revision: str | None = None

    @property
    def changed(self) -> bool:
        return self.previous_revision is not None and self.previous_revision != self.revision


class GitFetcher:
    """Clone and update git mirrors under *mirrors_dir*."""

    def __init__(self, mirrors_dir: Path) -> None:
        self.mirrors_dir = Path(mirrors_dir)
        self._git_checked = False

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def mirror_path(self, owner: str, name: str) -> Path:
        """Return the mirror directory for *owner*/*name* (validated, not created)."""
        if not is_valid_repo_part(owner):
            raise FetchError(f"Invalid repository owner name: {owner}")
        if not is_valid_repo_part(name):
            raise FetchError(f"Invalid repository name: {name}")
        path = self.mirrors_dir / f"{owner}-{name}"
        if not is_path_within(self.mirrors_dir, path):
            raise FetchError(f"Invalid repository path: {owner}/{name}")
        return path

    def ensure_local(
        self, owner: str, name: str, url: str | None = None, *, update: bool = False
    ) -> LocalMirror:
        """Make sure a mirror of *owner*/*name* exists locally.

        Clones (depth 1) when absent. With *update*, an existing mirror is
        pulled and ``previous_revision`` is set.

        Args:
            owner: Repository owner / namespace.
            name: Repository name.
            url: Clone URL; defaults to ``https://github.com/<owner>/<name>.git``.
            update: Pull an existing mirror.

        Raises:
            FetchError: If git is missing or clone/pull fails.
        """
        self._ensure_git()
        path = self.mirror_path(owner, name)
        clone_url = url or f"https://github.com/{owner}/{name}.git"

        if not path.exists():
            self.mirrors_dir.mkdir(parents=True, exist_ok=True)
            self._clone(clone_url, path)
            return LocalMirror(path=path, revision=self.current_revision(owner, name))

        if not update:
            return LocalMirror(path=path, revision=self.current_revision(owner, name))

        previous = self.current_revision(owner, name)
        try:
            self._run(["pull", "--ff-only"], cwd=path)
        except FetchError as exc:
            raise FetchError(f"git pull failed for {owner}/{name}: {exc}") from None
        return LocalMirror(
            path=path,
            revision=self.current_revision(owner, name),
            previous_revision=previous,
        )

    def current_revision(self, owner: str, name: str) -> str | None:
        """Return the mirror's HEAD commit id, or None if there is no mirror."""
        path = self.mirror_path(owner, name)
        if not path.exists():
            return None
        try:
            return self._run(["rev-parse", "HEAD"], cwd=path) or None
        except FetchError:
            return None

    def commit_messages(
        self, owner: str, name: str, from_rev: str, to_rev: str, limit: int = 5
    ) -> list[str]:
        """Return up to *limit* one-line commit summaries in ``from_rev..to_rev``.

        Invalid revisions or a missing mirror yield an empty list.
        """
        if not _COMMIT_RE.match(from_rev) or not _COMMIT_RE.match(to_rev):
            return []
        if not 1 <= limit <= 100:
            limit = 5
        path = self.mirror_path(owner, name)
        if not path.exists():
            return []
        try:
            output = self._run(["log", "--oneline", f"-{limit}", f"{from_rev}..{to_rev}"], cwd=path)
        except FetchError:
            return []
        return [line for line in output.splitlines() if line.strip()]

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _ensure_git(self) -> None:
        if self._git_checked:
            return
        if shutil.which("git") is None:
            raise FetchError(
                "Git is not installed or not in PATH. Install git to fetch skill sources.\n"
                "  macOS: brew install git\n"
                "  Ubuntu/Debian: sudo apt install git"
            )
        self._git_checked = True

    def _clone(self, url: str, path: Path) -> None:
        """Shallow-clone *url* into *path*; a failed clone leaves no directory behind."""
        logger.info("Cloning %s", sanitise_url(url))
        try:
            self._run(["clone", "--depth", "1", "--", _inject_token(url), str(path)])
        except FetchError as exc:
            shutil.rmtree(path, ignore_errors=True)
            raise FetchError(f"git clone failed for {sanitise_url(url)}: {exc}") from None

    @staticmethod
    def _run(args: list[str], cwd: Path | None = None) -> str:
        """Run git (shell=False) and return stripped stdout. Raises FetchError."""
        try:
            result = subprocess.run(
                ["git", *args],
                cwd=cwd,
                shell=False,
                check=True,
                capture_output=True,
                text=True,
                env={**os.environ, "GIT_TERMINAL_PROMPT": "0"},
                timeout=GIT_TIMEOUT,
            )
        except subprocess.CalledProcessError as exc:
            raise FetchError(sanitise_url((exc.stderr or "").strip() or str(exc))) from None
        except subprocess.TimeoutExpired:
            raise FetchError(f"git {args[0]} timed out after {GIT_TIMEOUT:g}s") from None
        except FileNotFoundError:
            raise FetchError("git executable not found") from None
        return result.stdout.strip()


def _inject_token(url: str) -> str:
    """Inject GIT_TOKEN into an HTTPS/HTTP URL for private repo auth.

    The modified URL is only used for the git call and is never logged or
    included in exception messages.
    """
    token = os.environ.get("GIT_TOKEN", "")
    if not token or not url.startswith(("https://", "http://")):
        return url
    parsed = urllib.parse.urlparse(url)
    if "@" in parsed.netloc:
        return url
    return parsed._replace(netloc=f"{token}@{parsed.netloc}").geturl()
