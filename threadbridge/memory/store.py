"""Partitioned JSON memory store."""

from __future__ import annotations

import json
import random
import threading
from pathlib import Path
from typing import Any, Callable, Iterable

from loguru import logger

from threadbridge.memory.extractor import extract
from threadbridge.memory.models import (
    KIND_TO_PARTITION,
    PARTITIONS,
    CaptureResult,
    Extraction,
    MemoryPartition,
    StoredMemory,
)
from threadbridge.utils.helpers import atomic_write_json, now_ms, today_date, truncate_string

_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"


def _to_base36(value: int) -> str:
    if value <= 0:
        return "0"
    digits: list[str] = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


def generate_memory_id(clock: Callable[[], int] = now_ms) -> str:
    suffix = "".join(random.choice(_BASE36) for _ in range(4))
    return f"mem-{_to_base36(clock())}-{suffix}"


class MemoryStore:
    """Memories grouped by partition, persisted as one JSON document.

    The document is loaded on construction, mutated in memory, and rewritten
    atomically after every mutation. Preferences share the ``facts`` partition.
    """

    def __init__(self, path: Path | None = None, *, today: Callable[[], str] = today_date) -> None:
        self.path = path
        self._today = today
        self._lock = threading.RLock()
        self._partitions: dict[MemoryPartition, list[StoredMemory]] = {name: [] for name in PARTITIONS}
        self.load()

    def load(self) -> None:
        with self._lock:
            self._partitions = {name: [] for name in PARTITIONS}
            if self.path is None or not self.path.exists():
                return
            try:
                raw = json.loads(self.path.read_text(encoding="utf-8"))
            except (OSError, json.JSONDecodeError) as e:
                logger.error("Error loading memory store {}: {}", self.path, e)
                return
            if not isinstance(raw, dict):
                logger.error("Memory store {} is not a JSON object; starting empty", self.path)
                return
            for name in PARTITIONS:
                rows = raw.get(name)
                if not isinstance(rows, list):
                    continue
                for row in rows:
                    if not isinstance(row, dict) or not row.get("id"):
                        continue
                    try:
                        self._partitions[name].append(StoredMemory.from_record(row))
                    except (TypeError, ValueError) as e:
                        logger.warning("Skipping malformed memory {}: {}", row.get("id"), e)

    def save(self) -> None:
        if self.path is None:
            return
        with self._lock:
            data = {name: [m.to_record() for m in items] for name, items in self._partitions.items()}
        atomic_write_json(self.path, data)

    def add(self, extraction: Extraction, *, channel_id: str, user_id: str) -> StoredMemory | None:
        """Store one extraction; returns None when the partition already holds the content."""
        partition = KIND_TO_PARTITION.get(extraction.kind, "facts")
        with self._lock:
            target = self._partitions[partition]
            needle = extraction.content.lower()
            if any(m.content.lower() == needle for m in target):
                logger.debug("Skipped duplicate memory: {!r}", truncate_string(extraction.content, 50))
                return None
            memory = StoredMemory(
                id=generate_memory_id(),
                kind=extraction.kind,
                content=extraction.content,
                category=extraction.category,
                source=f"slack:{channel_id}",
                channel=channel_id,
                user_id=user_id,
                date=self._today(),
                confidence=extraction.confidence,
            )
            target.append(memory)
            self.save()
        logger.info("Stored {}: {!r}", memory.kind, truncate_string(memory.content, 50))
        return memory

    def capture(self, text: str, *, channel_id: str, user_id: str) -> CaptureResult:
        """Extract memories from ``text`` and store every accepted one."""
        extracted = extract(text)
        result = CaptureResult(pending=list(extracted.pending))
        for extraction in extracted.accepted:
            memory = self.add(extraction, channel_id=channel_id, user_id=user_id)
            if memory is None:
                result.duplicates += 1
            else:
                result.stored.append(memory)
        return result

    def all(self) -> list[StoredMemory]:
        with self._lock:
            return [m for name in PARTITIONS for m in self._partitions[name]]

    def partition(self, name: MemoryPartition) -> list[StoredMemory]:
        with self._lock:
            return list(self._partitions[name])

    def unsynced(self) -> list[StoredMemory]:
        return [m for m in self.all() if not m.synced]

    def recent(self, *, channel_id: str | None = None, limit: int = 5) -> list[StoredMemory]:
        """Newest first by date; ties keep partition order."""
        items = [m for m in self.all() if channel_id is None or m.channel == channel_id]
        items.sort(key=lambda m: m.date, reverse=True)
        return items[: max(0, limit)]

    def mark_synced(self, ids: Iterable[str], *, save: bool = True) -> int:
        wanted = set(ids)
        if not wanted:
            return 0
        today = self._today()
        marked = 0
        with self._lock:
            for memory in self.all():
                if memory.id in wanted:
                    memory.synced = True
                    memory.sync_date = today
                    marked += 1
            if save:
                self.save()
        return marked

    def stats(self) -> dict[str, Any]:
        with self._lock:
            by_type = {name: len(items) for name, items in self._partitions.items()}
        everything = self.all()
        return {
            "total": len(everything),
            "byType": by_type,
            "unsynced": sum(1 for m in everything if not m.synced),
        }
