"""Typed models for trigger-captured memories."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal

MemoryKind = Literal["goal", "fact", "challenge", "idea", "project", "preference"]
MemoryCategory = Literal[
    "health",
    "work",
    "family",
    "learning",
    "finance",
    "relationships",
    "spirituality",
    "routine",
    "technical",
    "general",
]
MemoryPartition = Literal["goals", "facts", "challenges", "ideas", "projects"]

PARTITIONS: tuple[MemoryPartition, ...] = ("goals", "facts", "challenges", "ideas", "projects")

KIND_TO_PARTITION: dict[str, MemoryPartition] = {
    "goal": "goals",
    "fact": "facts",
    "preference": "facts",
    "challenge": "challenges",
    "idea": "ideas",
    "project": "projects",
}

ACCEPT_THRESHOLD = 0.8


@dataclass(slots=True)
class Extraction:
    """One trigger match from a message."""

    kind: MemoryKind
    content: str
    confidence: float
    category: MemoryCategory = "general"
    raw: str = ""
    sync_eligible: bool = False

    @property
    def accepted(self) -> bool:
        return self.confidence >= ACCEPT_THRESHOLD


@dataclass(slots=True)
class ExtractionResult:
    """Accepted extractions are stored; pending ones need confirmation first."""

    accepted: list[Extraction] = field(default_factory=list)
    pending: list[Extraction] = field(default_factory=list)


@dataclass(slots=True)
class StoredMemory:
    """One persisted memory item."""

    id: str
    kind: MemoryKind
    content: str
    category: MemoryCategory
    source: str
    channel: str
    user_id: str
    date: str
    confidence: float
    synced: bool = False
    sync_date: str | None = None

    def to_record(self) -> dict[str, Any]:
        record: dict[str, Any] = {
            "id": self.id,
            "type": self.kind,
            "content": self.content,
            "category": self.category,
            "source": self.source,
            "channel": self.channel,
            "userId": self.user_id,
            "date": self.date,
            "confidence": self.confidence,
            "synced": self.synced,
        }
        if self.sync_date:
            record["syncDate"] = self.sync_date
        return record

    @classmethod
    def from_record(cls, data: dict[str, Any]) -> StoredMemory:
        return cls(
            id=str(data["id"]),
            kind=data.get("type") or data.get("kind") or "fact",
            content=str(data.get("content") or ""),
            category=data.get("category") or "general",
            source=str(data.get("source") or ""),
            channel=str(data.get("channel") or ""),
            user_id=str(data.get("userId") or data.get("user_id") or ""),
            date=str(data.get("date") or ""),
            confidence=float(data.get("confidence") or 0.0),
            synced=bool(data.get("synced", data.get("syncedToTelos", False))),
            sync_date=data.get("syncDate") or data.get("telosSyncDate"),
        )


@dataclass(slots=True)
class CaptureResult:
    """Capture summary for one message."""

    stored: list[StoredMemory] = field(default_factory=list)
    pending: list[Extraction] = field(default_factory=list)
    duplicates: int = 0


@dataclass(slots=True)
class SyncResult:
    """Outcome of one sync batch."""

    synced: int = 0
    skipped: int = 0
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {"synced": self.synced, "skipped": self.skipped, "errors": list(self.errors)}
