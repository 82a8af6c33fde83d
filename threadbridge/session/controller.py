"""Session continuity: decide new vs resume, assemble the prompt, commit on success."""

from __future__ import annotations

import asyncio
import time
from typing import Awaitable, Callable, TypeAlias

from loguru import logger

from threadbridge.core.models import HandleResult, ThreadEvent, ThreadKey, ThreadMessage
from threadbridge.core.ports import AgentAdapter, AgentRequest, AgentResult, ProgressSink
from threadbridge.session.reconcile import format_messages, reconcile
from threadbridge.session.store import SessionStore

AGENT_FAILURE_REPLY = "Sorry, I couldn't process that request right now."
ERROR_REPLY = "Sorry, I encountered an error. Please try again."

MISSED_HEADER = "## Missed Messages (conversation that happened while you were away)"
PREVIOUS_CONTEXT_HEADER = "## Previous Thread Context"
THREAD_HISTORY_HEADER = "## Thread History"
CURRENT_HEADER = "## Current Message"

FetchHistory: TypeAlias = Callable[[str, str], Awaitable[list[ThreadMessage]]]
ContextProvider: TypeAlias = Callable[[str], str]


def build_new_session_prompt(
    prompt: str,
    prior: list[ThreadMessage],
    *,
    context_prefix: str = "",
) -> str:
    """Prompt for the first turn of a thread: optional context block plus prior history."""
    history = format_messages(prior)
    if context_prefix and history:
        return f"{context_prefix}\n{THREAD_HISTORY_HEADER}\n\n{history}\n\n{CURRENT_HEADER}\n\n{prompt}"
    if context_prefix:
        return f"{context_prefix}\n{CURRENT_HEADER}\n\n{prompt}"
    if history:
        return f"{PREVIOUS_CONTEXT_HEADER}\n\n{history}\n\n{CURRENT_HEADER}\n\n{prompt}"
    return prompt


def build_resume_prompt(prompt: str, gap: list[ThreadMessage]) -> str:
    """Prompt for a resumed turn: the missed messages, if any, then the current one."""
    if not gap:
        return prompt
    return f"{MISSED_HEADER}\n\n{format_messages(gap)}\n\n{CURRENT_HEADER}\n\n{prompt}"


class SessionContinuityController:
    """Run one agent turn per mention while keeping each thread's session coherent.

    Turns on the same thread are serialized with a per-key lock. Session state
    changes only after the agent reports success; any failure leaves both the
    session id and the watermark untouched.
    """

    def __init__(
        self,
        store: SessionStore,
        adapter: AgentAdapter,
        *,
        progress: ProgressSink | None = None,
        context_provider: ContextProvider | None = None,
    ) -> None:
        self.store = store
        self.adapter = adapter
        self.progress = progress
        self.context_provider = context_provider
        self._locks: dict[ThreadKey, asyncio.Lock] = {}
        self._lock_users: dict[ThreadKey, int] = {}

    def _lock_for(self, key: ThreadKey) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    def is_busy(self, key: ThreadKey) -> bool:
        lock = self._locks.get(key)
        return bool(lock and lock.locked())

    async def handle(self, event: ThreadEvent, fetch_history: FetchHistory) -> HandleResult:
        key = event.key
        lock = self._lock_for(key)
        self._lock_users[key] = self._lock_users.get(key, 0) + 1
        try:
            async with lock:
                return await self._handle_locked(event, fetch_history)
        finally:
            # Drop the lock once no turn holds or waits for it.
            self._lock_users[key] -= 1
            if not self._lock_users[key]:
                del self._lock_users[key]
                self._locks.pop(key, None)

    async def _handle_locked(self, event: ThreadEvent, fetch_history: FetchHistory) -> HandleResult:
        key = event.key
        session = self.store.get(key)
        pending = self.store.peek(key)
        previous_watermark = pending.last_processed_message_id if pending else None

        try:
            history = await fetch_history(event.channel_id, event.thread_root_id)
        except Exception as e:
            logger.error("Failed to fetch history for {}: {}", key, e)
            return HandleResult(response_text=ERROR_REPLY, ok=False, watermark=previous_watermark)

        if session is None:
            prior = reconcile(history, None, event.message_id)
            context_prefix = self._build_context(event.channel_id)
            prompt = build_new_session_prompt(event.text, prior, context_prefix=context_prefix)
            request = AgentRequest(prompt=prompt)
            mode = "new"
            injected = len(prior)
            logger.info("New session for thread {} ({} prior messages)", key, injected)
        else:
            gap = reconcile(history, session.last_processed_message_id, event.message_id)
            prompt = build_resume_prompt(event.text, gap)
            request = AgentRequest(prompt=prompt, resume_session_id=session.agent_session_id)
            mode = "resume"
            injected = len(gap)
            if gap:
                logger.info("Injecting {} missed messages into thread {}", injected, key)
            else:
                logger.info("Resuming session {} for thread {}", session.agent_session_id, key)

        result = await self._invoke(event, request)
        if result is None:
            return HandleResult(
                response_text=AGENT_FAILURE_REPLY,
                ok=False,
                watermark=previous_watermark,
                session_id=session.agent_session_id if session else None,
                mode=mode,
                injected_count=injected,
            )

        committed = self.store.commit(key, session_id=result.session_id, watermark=event.message_id)
        if not committed.established:
            logger.warning("Agent returned no session id for thread {}; next turn starts fresh", key)
        return HandleResult(
            response_text=result.result_text,
            ok=True,
            watermark=committed.last_processed_message_id,
            session_id=committed.agent_session_id,
            mode=mode,
            injected_count=injected,
        )

    def _build_context(self, channel_id: str) -> str:
        if self.context_provider is None:
            return ""
        try:
            return self.context_provider(channel_id)
        except Exception as e:
            logger.warning("Context build failed for {}: {}", channel_id, e)
            return ""

    async def _invoke(self, event: ThreadEvent, request: AgentRequest) -> AgentResult | None:
        started = time.monotonic()
        await self._progress_start(event)

        on_progress = None
        if self.progress is not None:
            sink = self.progress

            async def on_progress(text: str) -> None:
                await sink.update(event.channel_id, event.thread_root_id, text)

        try:
            result = await self.adapter.invoke(request, on_progress=on_progress)
        except Exception as e:
            elapsed = round(time.monotonic() - started)
            logger.error("Agent invocation failed for {} after {}s: {}", event.key, elapsed, e)
            await self._progress_finish(event, ok=False, summary=f"Error after {elapsed}s")
            return None

        elapsed = round(time.monotonic() - started)
        await self._progress_finish(
            event, ok=True, summary=f"Done ({elapsed}s, {result.tool_count} operations)"
        )
        return result

    async def _progress_start(self, event: ThreadEvent) -> None:
        if self.progress is None:
            return
        try:
            await self.progress.start(event.channel_id, event.thread_root_id)
        except Exception as e:
            logger.warning("Failed to start progress for {}: {}", event.key, e)

    async def _progress_finish(self, event: ThreadEvent, *, ok: bool, summary: str) -> None:
        if self.progress is None:
            return
        try:
            await self.progress.finish(event.channel_id, event.thread_root_id, ok=ok, summary=summary)
        except Exception as e:
            logger.warning("Failed to finish progress for {}: {}", event.key, e)
