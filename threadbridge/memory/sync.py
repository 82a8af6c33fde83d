"""Sync captured memories into the operator's markdown life documents."""

from __future__ import annotations

from datetime import datetime
from pathlib import Path

from loguru import logger

from threadbridge.memory.models import StoredMemory, SyncResult
from threadbridge.memory.store import MemoryStore
from threadbridge.utils.helpers import atomic_write_json, truncate_string

MARKER_FILE = "_UPGRADE_FLAG.md"

KIND_TARGETS: dict[str, tuple[str, str]] = {
    "goal": ("GOALS.md", "## Active Goals"),
    "fact": ("LEARNED.md", "## Recent Learnings"),
    "preference": ("LEARNED.md", "## Recent Learnings"),
    "challenge": ("CHALLENGES.md", "## Active Challenges"),
    "idea": ("IDEAS.md", "## Recent Ideas"),
    "project": ("PROJECTS.md", "## Active Projects"),
}


class SyncTargetError(RuntimeError):
    """A target document or section is missing."""


def format_entry(memory: StoredMemory) -> str:
    return f"- [slack] {memory.content} _({memory.date}, {memory.channel[-6:]})_"


def insert_after_section(content: str, section: str, entry: str) -> str:
    """Insert ``entry`` as the first item under ``section``.

    Blank lines and ``<!-- ... -->`` blocks directly after the header are
    skipped so template comments stay on top.
    """
    start = content.find(section)
    if start == -1:
        raise SyncTargetError(f"Section {section!r} not found")
    header_end = content.find("\n", start)
    if header_end == -1:
        return f"{content}\n{entry}"

    pos = header_end + 1
    while pos < len(content) and content[pos] == "\n":
        pos += 1
    while content.startswith("<!--", pos):
        comment_end = content.find("-->", pos)
        if comment_end == -1:
            break
        pos = comment_end + 3
        while pos < len(content) and content[pos] == "\n":
            pos += 1
    return f"{content[:pos]}{entry}\n{content[pos:]}"


class LifeDocSync:
    """Append memories to GOALS.md / LEARNED.md / ... under a sync root."""

    def __init__(self, store: MemoryStore, root: Path, *, export_path: Path | None = None) -> None:
        self.store = store
        self.root = root
        self.export_path = export_path

    @property
    def ready(self) -> bool:
        return (self.root / MARKER_FILE).exists()

    def file_status(self) -> dict[str, bool]:
        files = sorted({filename for filename, _ in KIND_TARGETS.values()})
        return {filename: (self.root / filename).exists() for filename in files}

    def sync(self, memories: list[StoredMemory] | None = None) -> SyncResult:
        result = SyncResult()
        if not self.ready:
            logger.error("Sync marker {} not found in {}", MARKER_FILE, self.root)
            result.errors.append(f"Sync marker {MARKER_FILE} not found")
            return result

        batch = self.store.unsynced() if memories is None else memories
        if not batch:
            logger.info("No memories to sync")
            return result

        logger.info("Syncing {} memories to {}", len(batch), self.root)
        synced_ids: list[str] = []
        for memory in batch:
            target = KIND_TARGETS.get(memory.kind)
            if target is None:
                result.skipped += 1
                continue
            filename, section = target
            try:
                self._append(filename, section, format_entry(memory))
            except (OSError, SyncTargetError) as e:
                logger.error("Failed to sync memory {} to {}: {}", memory.id, filename, e)
                result.errors.append(f"Failed to sync: {truncate_string(memory.content, 40)}")
                continue
            result.synced += 1
            synced_ids.append(memory.id)
            logger.info("Synced to {}: {!r}", filename, truncate_string(memory.content, 40))

        if synced_ids:
            self.store.mark_synced(synced_ids)
        return result

    def _append(self, filename: str, section: str, entry: str) -> None:
        path = self.root / filename
        if not path.exists():
            raise SyncTargetError(f"File not found: {path}")
        content = path.read_text(encoding="utf-8")
        path.write_text(insert_after_section(content, section, entry), encoding="utf-8")

    def export(self, path: Path | None = None) -> Path:
        """Write unsynced memories plus store stats to a JSON file."""
        target = path or self.export_path or (self.root / "memory-export.json")
        memories = self.store.unsynced()
        atomic_write_json(
            target,
            {
                "exportDate": datetime.now().isoformat(),
                "stats": self.store.stats(),
                "memories": [m.to_record() for m in memories],
            },
        )
        logger.info("Exported {} memories to {}", len(memories), target)
        return target
