"""Domain models for skillet's persisted state."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any


class Scope(str, Enum):
    PROJECT = "project"
    GLOBAL = "global"

    @property
    def label(self) -> str:
        """Suffix used in user-facing messages: '' for project, ' (global)' for global."""
        return " (global)" if self is Scope.GLOBAL else ""


def utc_now() -> str:
    """Current time as an ISO-8601 UTC string (second precision)."""
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat()


@dataclass(frozen=True)
class InstalledRecord:
    """One installed skill in one target at one scope.

    Unique key: ``(name, target, scope)``.
    """

    name: str
    target: str
    source_owner: str
    source_name: str
    revision: str
    installed_at: str
    scope: Scope = Scope.PROJECT
    source_path: str | None = None

    @property
    def key(self) -> tuple[str, str, Scope]:
        return (self.name, self.target, self.scope)

    @property
    def source_label(self) -> str:
        return f"{self.source_owner}/{self.source_name}"

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "name": self.name,
            "target": self.target,
            "sourceOwner": self.source_owner,
            "sourceName": self.source_name,
            "revision": self.revision,
            "installedAt": self.installed_at,
            "scope": self.scope.value,
        }
        if self.source_path:
            data["sourcePath"] = self.source_path
        return data

    @classmethod
    def from_dict(cls, data: Any) -> InstalledRecord:
        """Build a record from its persisted form.

        Raises:
            ValueError: If a required field is missing or has the wrong type.
        """
        if not isinstance(data, dict):
            raise ValueError("record must be an object")
        for field_name in ("name", "target", "sourceOwner", "sourceName", "revision", "installedAt"):
            if not isinstance(data.get(field_name), str) or not data[field_name]:
                raise ValueError(f"record field '{field_name}' must be a non-empty string")
        source_path = data.get("sourcePath")
        if source_path is not None and not isinstance(source_path, str):
            raise ValueError("record field 'sourcePath' must be a string")
        return cls(
            name=data["name"],
            target=data["target"],
            source_owner=data["sourceOwner"],
            source_name=data["sourceName"],
            revision=data["revision"],
            installed_at=data["installedAt"],
            scope=Scope(data.get("scope", Scope.PROJECT.value)),
            source_path=source_path or None,
        )
