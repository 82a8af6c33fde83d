"""Domain models shared by the continuity engine and the chat adapters."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal, TypeAlias

MessageId: TypeAlias = str
ThreadKey: TypeAlias = str
SessionMode: TypeAlias = Literal["new", "resume"]


def thread_key(channel_id: str, thread_root_id: str) -> ThreadKey:
    """Stable continuity key for one thread: channel plus root message id."""
    return f"{channel_id}_{thread_root_id}"


@dataclass(frozen=True, slots=True, kw_only=True)
class ThreadMessage:
    """One message of a thread as returned by the platform history."""

    id: MessageId
    text: str
    author_id: str | None = None
    is_bot: bool = False


@dataclass(frozen=True, slots=True, kw_only=True)
class ThreadEvent:
    """Normalized inbound mention addressed to the bot inside a thread."""

    channel_id: str
    thread_root_id: MessageId
    message_id: MessageId
    text: str
    author_id: str | None = None
    raw_metadata: dict[str, object] = field(default_factory=dict)

    @property
    def key(self) -> ThreadKey:
        return thread_key(self.channel_id, self.thread_root_id)


@dataclass(frozen=True, slots=True, kw_only=True)
class HandleResult:
    """Outcome of one controller turn."""

    response_text: str
    ok: bool
    watermark: MessageId | None
    session_id: str | None = None
    mode: SessionMode = "new"
    injected_count: int = 0
