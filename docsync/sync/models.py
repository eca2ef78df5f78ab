"""
Data structures for documents, version history, and retry jobs.

All records round-trip through plain dicts so they can be stored as
JSON in the local key/value store.
"""

import time
import uuid
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Optional


class SaveType(str, Enum):
    """How a save was triggered."""
    MANUAL = "manual"
    AUTO = "auto"
    ROLLBACK = "rollback"


def now_millis() -> str:
    """Current time as epoch milliseconds string."""
    return str(int(time.time() * 1000))


def new_version_id() -> str:
    """
    Generate a unique version id.

    Falls back to a millisecond timestamp if UUID generation fails.
    """
    try:
        return str(uuid.uuid4())
    except (OSError, NotImplementedError):
        # no usable entropy source
        return now_millis()


@dataclass(frozen=True)
class Snapshot:
    """One immutable captured state of a document."""
    name: str
    markdown: str
    css: str
    styles: dict[str, Any] = field(default_factory=dict)
    update: str = field(default_factory=now_millis)

    def touched(self) -> "Snapshot":
        """Copy with a fresh update timestamp."""
        return replace(self, update=now_millis())

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "markdown": self.markdown,
            "css": self.css,
            "styles": self.styles,
            "update": self.update,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Snapshot":
        return cls(
            name=data["name"],
            markdown=data["markdown"],
            css=data["css"],
            styles=data.get("styles") or {},
            update=data.get("update") or now_millis(),
        )


@dataclass(frozen=True)
class VersionItem:
    """A persisted, hashed, timestamped history entry."""
    version_id: str
    created_at: str
    hash: str
    type: SaveType
    name: str
    markdown: str
    css: str
    styles: dict[str, Any]

    def to_snapshot(self) -> Snapshot:
        """Rebuild a snapshot from this version with a fresh timestamp."""
        return Snapshot(
            name=self.name,
            markdown=self.markdown,
            css=self.css,
            styles=self.styles,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "versionId": self.version_id,
            "createdAt": self.created_at,
            "hash": self.hash,
            "type": self.type.value,
            "name": self.name,
            "markdown": self.markdown,
            "css": self.css,
            "styles": self.styles,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "VersionItem":
        return cls(
            version_id=data["versionId"],
            created_at=data["createdAt"],
            hash=data["hash"],
            type=SaveType(data.get("type", SaveType.MANUAL.value)),
            name=data["name"],
            markdown=data["markdown"],
            css=data["css"],
            styles=data.get("styles") or {},
        )


@dataclass
class RetryJob:
    """
    Pending remote commit for one document.

    Mutable: the retry queue updates attempt and next_run_at in place and
    replaces the payload when a newer save is coalesced into the job.
    """
    id: str
    attempt: int
    next_run_at: float  # epoch seconds
    snapshot: Snapshot
    save_type: SaveType

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "attempt": self.attempt,
            "nextRunAt": self.next_run_at,
            "snapshot": self.snapshot.to_dict(),
            "saveType": self.save_type.value,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "RetryJob":
        return cls(
            id=data["id"],
            attempt=int(data.get("attempt", 0)),
            next_run_at=float(data["nextRunAt"]),
            snapshot=Snapshot.from_dict(data["snapshot"]),
            save_type=SaveType(data.get("saveType", SaveType.MANUAL.value)),
        )


@dataclass(frozen=True)
class SyncOutcome:
    """
    Result of a sync attempt after a local save.

    suppressed=True tells the notification layer to stay silent.
    """
    accepted: bool
    suppressed: bool
    error_kind: Optional[str] = None
