"""Port interfaces between the continuity core and its collaborators."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Awaitable, Callable, Protocol, TypeAlias

from threadbridge.core.models import ThreadMessage

ProgressCallback: TypeAlias = Callable[[str], Awaitable[None]]


@dataclass(frozen=True, slots=True, kw_only=True)
class AgentRequest:
    """One agent turn: the assembled prompt plus an optional resume directive."""

    prompt: str
    resume_session_id: str | None = None


@dataclass(frozen=True, slots=True, kw_only=True)
class AgentResult:
    """Terminal agent event for a successful turn."""

    result_text: str
    session_id: str | None = None
    tool_count: int = 0
    duration_seconds: float = 0.0


class HistoryFetcher(Protocol):
    """Chat platform history lookup."""

    async def fetch_replies(self, channel_id: str, thread_root_id: str) -> list[ThreadMessage]:
        """Return the full ordered message list of one thread."""


class AgentAdapter(Protocol):
    """Process/RPC boundary to the stateful agent."""

    async def invoke(
        self,
        request: AgentRequest,
        *,
        on_progress: ProgressCallback | None = None,
    ) -> AgentResult:
        """Run one turn; raise AgentInvocationError on failure."""


class ProgressSink(Protocol):
    """Human-readable activity display for one in-flight turn."""

    async def start(self, channel_id: str, thread_root_id: str) -> None:
        """Create the progress display."""

    async def update(self, channel_id: str, thread_root_id: str, text: str) -> None:
        """Replace the progress text."""

    async def finish(self, channel_id: str, thread_root_id: str, *, ok: bool, summary: str) -> None:
        """Remove or finalize the progress display."""
