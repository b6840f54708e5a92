"""Git source locator parsing.

Supported formats:
  https://host/owner/repo[.git][/tree/<branch>/<path>]
  git@host:owner/repo[.git]
  git://host/owner/repo[.git]
  github:owner/repo
  owner/repo                      (GitHub shorthand)

Owner and repo components are restricted to a conservative character set;
they become directory names under the mirrors directory.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

_REPO_PART_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]*$")
_SOURCE_NAME_RE = re.compile(r"^[A-Za-z0-9_-]+$")
_CONTROL_RE = re.compile(r"[\x00-\x1f]")

_HTTPS_RE = re.compile(r"^https?://([^/]+)/([^/]+)/([^/]+?)(?:\.git)?(?:/tree/[^/]+/(.+?))?/?$")
_SSH_RE = re.compile(r"^git@([^:]+):([^/]+)/([^/]+?)(?:\.git)?$")
_GIT_PROTOCOL_RE = re.compile(r"^git://([^/]+)/([^/]+)/([^/]+?)(?:\.git)?$")
_GITHUB_SCHEME_RE = re.compile(r"^github:([^/]+)/([^/]+)$")
_SHORTHAND_RE = re.compile(r"^([^/]+)/([^/]+)$")

_MAX_NAME_LENGTH = 100


@dataclass(frozen=True)
class ParsedGitUrl:
    host: str
    owner: str
    repo: str
    clone_url: str
    path: str | None = None  # subpath within the repository, if any


def is_valid_repo_part(name: str) -> bool:
    """Owner / repository component: alphanumerics, dot, dash, underscore."""
    return len(name) <= _MAX_NAME_LENGTH and bool(_REPO_PART_RE.match(name))


def is_valid_source_name(name: str) -> bool:
    """Configured source name: alphanumerics, dash, underscore (used as a file stem)."""
    return 0 < len(name) <= _MAX_NAME_LENGTH and bool(_SOURCE_NAME_RE.match(name))


def parse_git_url(url: str) -> ParsedGitUrl | None:
    """Parse *url* into its components, or return None if it is not a git locator."""
    if not url or _CONTROL_RE.search(url):
        return None

    if match := _HTTPS_RE.match(url):
        host, owner, repo, path = match.groups()
        scheme = url.split("://", 1)[0]
        return _build(host, owner, repo, f"{scheme}://{host}/{owner}/{repo}.git", path)

    if match := _SSH_RE.match(url):
        host, owner, repo = match.groups()
        return _build(host, owner, repo, f"git@{host}:{owner}/{repo}.git")

    if match := _GIT_PROTOCOL_RE.match(url):
        host, owner, repo = match.groups()
        return _build(host, owner, repo, f"git://{host}/{owner}/{repo}.git")

    if match := _GITHUB_SCHEME_RE.match(url):
        owner, repo = match.groups()
        return _build("github.com", owner, repo, f"https://github.com/{owner}/{repo}.git")

    # Shorthand must not look like a host or a scp-style URL.
    if (match := _SHORTHAND_RE.match(url)) and ":" not in url and "." not in url:
        owner, repo = match.groups()
        return _build("github.com", owner, repo, f"https://github.com/{owner}/{repo}.git")

    return None


def split_shorthand_path(locator: str) -> tuple[str, str | None] | None:
    """Split ``owner/repo/sub/path`` into (``owner/repo``, ``sub/path``).

    Returns None when *locator* has fewer than three components or looks like
    a URL.
    """
    if ":" in locator or locator.startswith("/"):
        return None
    parts = [p for p in locator.split("/") if p]
    if len(parts) < 3:
        return None
    return f"{parts[0]}/{parts[1]}", "/".join(parts[2:])


def _build(
    host: str, owner: str, repo: str, clone_url: str, path: str | None = None
) -> ParsedGitUrl | None:
    if not is_valid_repo_part(owner) or not is_valid_repo_part(repo):
        return None
    return ParsedGitUrl(host=host, owner=owner, repo=repo, clone_url=clone_url, path=path)
