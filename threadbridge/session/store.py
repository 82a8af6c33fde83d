"""Durable thread -> agent session mapping."""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

from loguru import logger

from threadbridge.core.models import MessageId, ThreadKey
from threadbridge.session.reconcile import is_newer
from threadbridge.utils.helpers import atomic_write_json, now_ms

DEFAULT_EXPIRY_MS = 4 * 60 * 60 * 1000


@dataclass(slots=True)
class ThreadSession:
    """Continuity state for one conversation thread."""

    thread_key: ThreadKey
    agent_session_id: str | None
    last_processed_message_id: MessageId = "0"
    created_at: int = 0
    refreshed_at: int = 0

    @property
    def established(self) -> bool:
        return bool(self.agent_session_id)

    def to_record(self) -> dict[str, object]:
        return {
            "agentSessionId": self.agent_session_id,
            "createdAt": self.created_at,
            "refreshedAt": self.refreshed_at,
            "lastProcessedMessageId": self.last_processed_message_id,
        }


class SessionStore:
    """File-backed session map: load on start, mutate in memory, persist on every write.

    Entries without an agent session id are kept in memory only (pending the
    first successful invocation) and never reach the JSON document. Expired
    entries are dropped lazily when the document is loaded.
    """

    def __init__(
        self,
        path: Path | None = None,
        *,
        expiry_ms: int = DEFAULT_EXPIRY_MS,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self.path = path
        self.expiry_ms = max(1, int(expiry_ms))
        self._clock = clock
        self._sessions: dict[ThreadKey, ThreadSession] = {}

    def load(self) -> int:
        """Load persisted sessions, skipping expired or malformed entries."""
        self._sessions.clear()
        if self.path is None or not self.path.exists():
            return 0
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            logger.error("Error loading sessions from {}: {}", self.path, e)
            return 0
        if not isinstance(raw, dict):
            logger.error("Session store {} is not a JSON object; starting empty", self.path)
            return 0

        now = self._clock()
        expired = 0
        for key, value in raw.items():
            if not isinstance(value, dict):
                continue
            session_id = str(value.get("agentSessionId") or value.get("sessionId") or "").strip()
            if not session_id:
                continue
            try:
                created_at = int(value.get("createdAt") or 0)
            except (TypeError, ValueError):
                created_at = 0
            if now - created_at > self.expiry_ms:
                expired += 1
                continue
            watermark = str(
                value.get("lastProcessedMessageId") or value.get("lastMessageTs") or "0"
            )
            try:
                refreshed_at = int(value.get("refreshedAt") or created_at)
            except (TypeError, ValueError):
                refreshed_at = created_at
            self._sessions[str(key)] = ThreadSession(
                thread_key=str(key),
                agent_session_id=session_id,
                last_processed_message_id=watermark,
                created_at=created_at,
                refreshed_at=refreshed_at,
            )

        logger.info("Loaded {} active sessions ({} expired)", len(self._sessions), expired)
        return len(self._sessions)

    def save(self) -> None:
        """Rewrite the whole document synchronously."""
        if self.path is None:
            return
        data = {
            key: session.to_record()
            for key, session in self._sessions.items()
            if session.established
        }
        atomic_write_json(self.path, data)

    def get(self, key: ThreadKey) -> ThreadSession | None:
        """Return the established session for ``key``, if any."""
        session = self._sessions.get(key)
        if session is None or not session.established:
            return None
        return session

    def peek(self, key: ThreadKey) -> ThreadSession | None:
        """Return any entry for ``key``, including a pending one."""
        return self._sessions.get(key)

    def commit(
        self,
        key: ThreadKey,
        *,
        session_id: str | None,
        watermark: MessageId,
    ) -> ThreadSession:
        """Record one successful turn: adopt ``session_id`` and advance the watermark."""
        now = self._clock()
        self._prune_pending(now)
        session = self._sessions.get(key)
        if session is None:
            session = ThreadSession(
                thread_key=key,
                agent_session_id=None,
                created_at=now,
                refreshed_at=now,
            )
            self._sessions[key] = session

        if session_id and session_id != session.agent_session_id:
            if session.agent_session_id:
                logger.info(
                    "Session rotated for {}: {} -> {}", key, session.agent_session_id, session_id
                )
            else:
                session.created_at = now
                logger.info("Stored new session {} for thread {}", session_id, key)
            session.agent_session_id = session_id

        if is_newer(watermark, session.last_processed_message_id):
            session.last_processed_message_id = watermark
        session.refreshed_at = now

        if session.established:
            self.save()
            logger.debug("Updated watermark for {} to {}", key, session.last_processed_message_id)
        return session

    def _prune_pending(self, now: int) -> None:
        """Forget in-memory pending entries untouched for longer than the expiry window."""
        stale = [
            key
            for key, session in self._sessions.items()
            if not session.established and now - session.refreshed_at > self.expiry_ms
        ]
        for key in stale:
            del self._sessions[key]
        if stale:
            logger.debug("Dropped {} stale pending sessions", len(stale))

    def clear(self) -> int:
        """Drop every entry and persist the empty document."""
        count = len(self.sessions())
        self._sessions.clear()
        self.save()
        logger.info("Cleared {} sessions", count)
        return count

    def sessions(self) -> list[ThreadSession]:
        """Established sessions in insertion order."""
        return [session for session in self._sessions.values() if session.established]

    def keys(self) -> list[ThreadKey]:
        return [session.thread_key for session in self.sessions()]

    @property
    def active_count(self) -> int:
        return len(self.sessions())
