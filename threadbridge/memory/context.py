"""Goal and recent-memory context block for new agent sessions."""

from __future__ import annotations

from pathlib import Path

from loguru import logger

from threadbridge.memory.store import MemoryStore

GOALS_FILE = "GOALS.md"
GOALS_SECTION = "## Active Goals"


def load_active_goals(path: Path) -> list[str]:
    """Bullet items of the ``## Active Goals`` section, skipping comments."""
    if not path.exists():
        return []
    try:
        lines = path.read_text(encoding="utf-8").splitlines()
    except OSError as e:
        logger.error("Error loading goals from {}: {}", path, e)
        return []

    goals: list[str] = []
    in_section = False
    for line in lines:
        if line.startswith(GOALS_SECTION):
            in_section = True
            continue
        if in_section and line.startswith("## "):
            break
        if in_section and line.startswith("- "):
            goal = line[2:].strip()
            if goal and not goal.startswith("<!--"):
                goals.append(goal)
    return goals


class ContextBuilder:
    def __init__(
        self,
        store: MemoryStore,
        sync_root: Path,
        *,
        max_goals: int = 5,
        max_memories: int = 5,
    ) -> None:
        self.store = store
        self.sync_root = sync_root
        self.max_goals = max_goals
        self.max_memories = max_memories

    def build(self, channel_id: str) -> str:
        """Markdown block ending with ``---``; empty when there is nothing to say."""
        goals = load_active_goals(self.sync_root / GOALS_FILE)[: self.max_goals]
        memories = self.store.recent(channel_id=channel_id, limit=self.max_memories)

        sections: list[str] = []
        if goals:
            sections.append("**Active Goals:**")
            sections.extend(f"- {goal}" for goal in goals)
            sections.append("")
        if memories:
            sections.append("**Recent Context:**")
            sections.extend(f"- [{m.kind}] {m.content}" for m in memories)
            sections.append("")
        if not sections:
            return ""
        sections.extend(["---", ""])
        return "\n".join(sections)
