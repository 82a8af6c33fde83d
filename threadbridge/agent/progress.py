"""Activity tracking for the agent's stream-json output."""

from __future__ import annotations

import json
import time
from dataclasses import dataclass
from typing import Any, Callable, Literal, TypeAlias

StreamEventType: TypeAlias = Literal["tool", "thinking", "tool_result"]


@dataclass(frozen=True, slots=True)
class StreamEvent:
    """Progress-relevant event parsed from one stream line."""

    type: StreamEventType
    detail: str | None = None


def _basename(path: str) -> str:
    return path.rstrip("/").split("/")[-1] or path


def describe_tool_use(name: str, tool_input: dict[str, Any]) -> str:
    """Short human label for one tool invocation."""
    if name == "Read" and tool_input.get("file_path"):
        return f"Reading {_basename(str(tool_input['file_path']))}"
    if name == "Glob" and tool_input.get("pattern"):
        return f"Glob: {tool_input['pattern']}"
    if name == "Grep" and tool_input.get("pattern"):
        return f"Grep: {str(tool_input['pattern'])[:25]}"
    if name == "Bash" and tool_input.get("command"):
        parts = str(tool_input["command"]).split()
        return f"Running {parts[0]}" if parts else "Running command"
    if name == "Edit" and tool_input.get("file_path"):
        return f"Editing {_basename(str(tool_input['file_path']))}"
    if name == "Write" and tool_input.get("file_path"):
        return f"Writing {_basename(str(tool_input['file_path']))}"
    if name == "WebSearch" and tool_input.get("query"):
        return f"Searching: {str(tool_input['query'])[:20]}"
    if name == "WebFetch":
        return "Fetching URL"
    if name == "Task":
        return f"Spawning {tool_input.get('subagent_type') or 'agent'}"
    if name == "TodoWrite":
        return "Updating tasks"
    return name


def parse_stream_event(line: str) -> StreamEvent | None:
    """Classify one stream-json line; non-JSON lines yield None."""
    try:
        data = json.loads(line)
    except json.JSONDecodeError:
        return None
    if not isinstance(data, dict):
        return None

    if data.get("type") == "assistant":
        content = (data.get("message") or {}).get("content")
        if isinstance(content, list):
            for block in content:
                if not isinstance(block, dict):
                    continue
                if block.get("type") == "tool_use":
                    tool_input = block.get("input") if isinstance(block.get("input"), dict) else {}
                    return StreamEvent("tool", describe_tool_use(str(block.get("name") or "tool"), tool_input))
                if block.get("type") == "text" and block.get("text"):
                    return StreamEvent("thinking")

    if data.get("type") == "user" and data.get("tool_use_result"):
        return StreamEvent("tool_result")
    return None


class ActivityTracker:
    """Fold stream events into rate-limited "<activity> (<elapsed>s)" updates."""

    def __init__(
        self,
        *,
        min_interval_seconds: float = 3.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._min_interval = max(0.0, float(min_interval_seconds))
        self._clock = clock
        self.started_at = clock()
        self._last_emit = self.started_at
        self.current = "Thinking"
        self.tool_count = 0

    @property
    def elapsed_seconds(self) -> int:
        return round(self._clock() - self.started_at)

    def observe(self, event: StreamEvent | None) -> str | None:
        """Record ``event`` and return progress text when an update is due.

        A tool invocation is reported immediately; anything else only once the
        minimum interval has passed since the previous update.
        """
        if event is not None:
            if event.type == "tool" and event.detail:
                self.current = event.detail
                self.tool_count += 1
                return self._emit(self._clock())
            if event.type == "thinking":
                self.current = "Thinking"
        return self.heartbeat()

    def heartbeat(self) -> str | None:
        now = self._clock()
        if now - self._last_emit < self._min_interval:
            return None
        return self._emit(now)

    def _emit(self, now: float) -> str:
        self._last_emit = now
        return f"{self.current} ({round(now - self.started_at)}s)"
