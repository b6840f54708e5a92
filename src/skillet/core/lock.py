"""Cross-process lock over the manifest file.

The lock is a marker file created with O_CREAT | O_EXCL. Its content is a
JSON token ``{"holderId", "pid", "acquiredAt"}``; presence means held.

A marker is reclaimed when:
  - its content cannot be parsed (corrupt),
  - the recording process is no longer running, or
  - it is older than ``stale_after`` seconds.

PID liveness alone is unreliable (PID reuse, Windows semantics of
os.kill), so the age rule always applies as well.

Usage:
    lock = ManifestLock(home / "manifest.lock")
    with lock.held():
        ...  # load → mutate → save
"""

from __future__ import annotations

import json
import logging
import os
import sys
import time
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT: float = 5.0
RETRY_INTERVAL: float = 0.05
STALE_AFTER: float = 30.0

# Upper bound on PIDs accepted from a marker on Windows.
_WINDOWS_MAX_PID = 4_194_304
# Seconds an empty marker is given for its holder to write the token.
_WRITE_GRACE = 1.0


class LockTimeoutError(RuntimeError):
    """Raised when the manifest lock cannot be acquired in time."""


@dataclass(frozen=True)
class LockToken:
    holder_id: str
    pid: int
    acquired_at: float  # epoch seconds; 0 for legacy PID-only markers

    def to_json(self) -> str:
        return json.dumps(
            {"holderId": self.holder_id, "pid": self.pid, "acquiredAt": self.acquired_at}
        )


def parse_token(content: str) -> LockToken | None:
    """Parse marker *content* into a LockToken, or None if it is corrupt.

    A bare positive integer is accepted as a legacy PID-only marker and is
    given ``acquired_at=0`` so that it always counts as stale.
    """
    text = content.strip()
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        return None

    if isinstance(data, bool):
        return None
    if isinstance(data, int):
        return LockToken(holder_id=str(data), pid=data, acquired_at=0.0) if data > 0 else None
    if not isinstance(data, dict):
        return None

    holder = data.get("holderId")
    pid = data.get("pid")
    acquired = data.get("acquiredAt")
    if not isinstance(holder, str) or not holder:
        return None
    if not isinstance(pid, int) or isinstance(pid, bool):
        return None
    if not isinstance(acquired, (int, float)) or isinstance(acquired, bool):
        return None
    return LockToken(holder_id=holder, pid=pid, acquired_at=float(acquired))


def pid_alive(pid: int) -> bool:
    """Best-effort check that process *pid* is still running."""
    if pid <= 0:
        return False
    if sys.platform == "win32":
        # os.kill would terminate the process here; rely on the age rule.
        return pid < _WINDOWS_MAX_PID
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return True
    except OSError:
        return False
    return True


class ManifestLock:
    """Exclusive, stale-recoverable lock backed by a marker file.

    Args:
        path: Marker file location (its parent is created on demand).
        holder_id: Identity written into the marker. Re-acquiring with the
            same identity succeeds immediately. Defaults to this process's PID.
        timeout: Default overall wait for :meth:`acquire`, in seconds.
        retry_interval: Back-off between attempts while the lock is held.
        stale_after: Age in seconds after which a marker is reclaimed.
    """

    def __init__(
        self,
        path: Path,
        *,
        holder_id: str | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        retry_interval: float = RETRY_INTERVAL,
        stale_after: float = STALE_AFTER,
    ) -> None:
        self.path = Path(path)
        self.holder_id = holder_id or str(os.getpid())
        self.timeout = timeout
        self.retry_interval = retry_interval
        self.stale_after = stale_after

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def acquire(self, timeout: float | None = None) -> bool:
        """Try to take the lock within *timeout* seconds. Returns success."""
        budget = self.timeout if timeout is None else timeout
        deadline = time.monotonic() + budget

        while True:
            if self._try_create():
                return True

            content = self._read_marker()
            if content is None:
                continue  # released in the meantime

            token = parse_token(content)
            if token is None and not (content == "" and self._just_created()):
                logger.warning("Removing corrupt lock marker %s", self.path)
                if self._reclaim(content):
                    continue
            if token is not None:
                if token.holder_id == self.holder_id:
                    return True
                if not pid_alive(token.pid) or self._is_stale(token):
                    logger.info(
                        "Reclaiming stale lock held by %s (pid %d)", token.holder_id, token.pid
                    )
                    if self._reclaim(content):
                        continue

            if time.monotonic() >= deadline:
                return False
            time.sleep(self.retry_interval)

    def release(self) -> None:
        """Remove the marker. A missing marker is not an error."""
        self._remove_marker()

    @contextmanager
    def held(self, timeout: float | None = None) -> Iterator[LockToken]:
        """Hold the lock for the duration of the block.

        Raises:
            LockTimeoutError: If the lock is not acquired within *timeout*.
        """
        if not self.acquire(timeout):
            raise LockTimeoutError(
                f"Could not acquire lock {self.path} - another operation may be in progress"
            )
        try:
            content = self._read_marker()
            token = parse_token(content) if content else None
            yield token or LockToken(self.holder_id, os.getpid(), time.time())
        finally:
            self.release()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _try_create(self) -> bool:
        token = LockToken(holder_id=self.holder_id, pid=os.getpid(), acquired_at=time.time())
        try:
            fd = os.open(self.path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
        except FileExistsError:
            return False
        except FileNotFoundError:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            return self._try_create()
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(token.to_json())
        return True

    def _read_marker(self) -> str | None:
        """Return the marker content, "" if unreadable, or None if it is gone."""
        try:
            return self.path.read_text(encoding="utf-8").strip()
        except FileNotFoundError:
            return None
        except (OSError, UnicodeDecodeError):
            return ""

    def _just_created(self) -> bool:
        # An empty marker may belong to a holder that has not written its token yet.
        try:
            age = time.time() - self.path.stat().st_mtime
        except OSError:
            return False
        return age < _WRITE_GRACE

    def _is_stale(self, token: LockToken) -> bool:
        return time.time() - token.acquired_at > self.stale_after

    def _remove_marker(self) -> None:
        try:
            self.path.unlink()
        except FileNotFoundError:
            pass

    def _reclaim(self, inspected: str) -> bool:
        """Remove the marker only if it still holds *inspected*.

        The marker is first renamed to a private name, so of several processes
        reclaiming the same marker only one gets it. A marker that was replaced
        after inspection is put back. Returns False if the rename failed.
        """
        claimed = self.path.with_name(f"{self.path.name}.{uuid.uuid4().hex}.reclaim")
        try:
            os.rename(self.path, claimed)
        except FileNotFoundError:
            return True
        except OSError as exc:
            logger.debug("Could not reclaim lock marker %s: %s", self.path, exc)
            return False

        try:
            content = claimed.read_text(encoding="utf-8").strip()
        except (OSError, UnicodeDecodeError):
            content = ""
        if content != inspected:
            try:
                os.link(claimed, self.path)
            except OSError as exc:
                logger.warning("Lock marker %s was replaced while reclaiming: %s", self.path, exc)
        claimed.unlink(missing_ok=True)
        return True
