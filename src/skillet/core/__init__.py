"""skillet state layer: lock, manifest and repository cache."""

from skillet.core.lock import LockTimeoutError, LockToken, ManifestLock
from skillet.core.manifest import Manifest, StateDocument
from skillet.core.models import InstalledRecord, Scope
from skillet.core.registry import RepoSkill, RepositoryCache

__all__ = [
    "InstalledRecord",
    "LockTimeoutError",
    "LockToken",
    "Manifest",
    "ManifestLock",
    "RepoSkill",
    "RepositoryCache",
    "Scope",
    "StateDocument",
]
