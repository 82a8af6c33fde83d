"""Mention pipeline: normalize, capture memories, run the continuity controller, reply."""

from __future__ import annotations

from dataclasses import replace
from typing import Awaitable, Callable, TYPE_CHECKING, TypeAlias

from loguru import logger

from threadbridge.core.models import ThreadEvent, ThreadMessage
from threadbridge.session.controller import ERROR_REPLY, SessionContinuityController

if TYPE_CHECKING:
    from threadbridge.memory.store import MemoryStore
    from threadbridge.memory.sync import LifeDocSync

EMPTY_PROMPT_REPLY = "Hey! How can I help?"

FetchHistory: TypeAlias = Callable[[str, str], Awaitable[list[ThreadMessage]]]
ReplySender: TypeAlias = Callable[[str, str, str], Awaitable[object]]


class MentionOrchestrator:
    """Glue between a chat channel and the continuity controller.

    Every failure inside one mention is converted into the generic error
    reply so a single bad turn never takes the listener down.
    """

    def __init__(
        self,
        *,
        controller: SessionContinuityController,
        fetch_history: FetchHistory,
        send_reply: ReplySender,
        memory: "MemoryStore | None" = None,
        sync: "LifeDocSync | None" = None,
        auto_sync: bool = False,
        strip_mentions: Callable[[str], str] | None = None,
    ) -> None:
        self._controller = controller
        self._fetch_history = fetch_history
        self._send_reply = send_reply
        self._memory = memory
        self._sync = sync
        self._auto_sync = auto_sync
        self._strip_mentions = strip_mentions or (lambda text: text.strip())

    async def handle(self, event: ThreadEvent) -> str:
        """Process one mention and post the reply into its thread; returns the reply text."""
        logger.info("Mention received in {}: {!r}", event.channel_id, event.text[:50])
        try:
            reply = await self._process(event)
        except Exception as e:
            logger.exception("Error handling mention in {}: {}", event.key, e)
            reply = ERROR_REPLY
        try:
            await self._send_reply(event.channel_id, reply, event.thread_root_id)
        except Exception as e:
            logger.error("Failed to post reply to {}: {}", event.key, e)
        return reply

    async def _process(self, event: ThreadEvent) -> str:
        prompt = self._strip_mentions(event.text)
        if not prompt:
            return EMPTY_PROMPT_REPLY
        event = replace(event, text=prompt)

        if self._memory is not None:
            self._capture(event)

        result = await self._controller.handle(event, self._fetch_history)
        if result.ok:
            logger.info(
                "Response ready for thread {} ({} mode, {} injected)", event.key, result.mode, result.injected_count
            )
        return result.response_text

    def _capture(self, event: ThreadEvent) -> None:
        assert self._memory is not None
        captured = self._memory.capture(
            event.text,
            channel_id=event.channel_id,
            user_id=event.author_id or "unknown",
        )
        if not captured.stored:
            return
        logger.info("Extracted {} memories from message", len(captured.stored))
        if not (self._auto_sync and self._sync is not None):
            return
        synced = self._sync.sync(captured.stored)
        if synced.synced:
            logger.info("Auto-synced {} memories", synced.synced)
        if synced.errors:
            logger.error("Sync errors: {}", synced.errors)
