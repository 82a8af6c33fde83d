"""Periodic thread transcript sweep.

Reads the session store's thread keys, fetches each thread, and writes a
cleaned transcript snapshot under the history directory. It never mutates
the session or memory stores; its own bookkeeping lives in a separate
extraction-state document.
"""

from __future__ import annotations

import asyncio
import json
import re
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Awaitable, Callable, TypeAlias

from loguru import logger

from threadbridge.core.models import ThreadMessage
from threadbridge.memory.extractor import extract
from threadbridge.session.store import SessionStore
from threadbridge.utils.helpers import atomic_write_json, ensure_dir, safe_filename

FetchHistory: TypeAlias = Callable[[str, str], Awaitable[list[ThreadMessage]]]
ResolveUser: TypeAlias = Callable[[str], Awaitable[str]]

_USER_MENTION_RE = re.compile(r"<@[A-Z0-9]+>")
_CHANNEL_LINK_RE = re.compile(r"<#[A-Z0-9]+\|([^>]+)>")
_LABELED_LINK_RE = re.compile(r"<([^|>]+)\|([^>]+)>")
_BARE_LINK_RE = re.compile(r"<([^>]+)>")


def clean_slack_markup(text: str) -> str:
    text = _USER_MENTION_RE.sub("@user", text)
    text = _CHANNEL_LINK_RE.sub(r"#\1", text)
    text = _LABELED_LINK_RE.sub(r"\2", text)
    return _BARE_LINK_RE.sub(r"\1", text)


@dataclass(slots=True)
class SweepReport:
    threads_processed: int = 0
    threads_skipped: int = 0
    items_found: int = 0


class ThreadSweeper:
    def __init__(
        self,
        sessions: SessionStore,
        fetch_history: FetchHistory,
        *,
        history_dir: Path,
        state_path: Path,
        interval_seconds: float = 3600,
        min_hours_between: float = 1.0,
        delay_seconds: float = 0.5,
        resolve_user: ResolveUser | None = None,
    ) -> None:
        self.sessions = sessions
        self.fetch_history = fetch_history
        self.history_dir = history_dir
        self.state_path = state_path
        self.interval_seconds = max(1.0, float(interval_seconds))
        self.min_hours_between = min_hours_between
        self.delay_seconds = delay_seconds
        self.resolve_user = resolve_user
        self._task: asyncio.Task | None = None

    def load_state(self) -> dict[str, Any]:
        if self.state_path.exists():
            try:
                raw = json.loads(self.state_path.read_text(encoding="utf-8"))
                if isinstance(raw, dict):
                    raw.setdefault("lastExtraction", {})
                    raw.setdefault("lastFullExtraction", "")
                    return raw
            except (OSError, json.JSONDecodeError) as e:
                logger.error("Error loading sweep state {}: {}", self.state_path, e)
        return {"lastExtraction": {}, "lastFullExtraction": ""}

    def _save_state(self, state: dict[str, Any]) -> None:
        atomic_write_json(self.state_path, state)

    def _recently_swept(self, state: dict[str, Any], key: str, now: datetime) -> bool:
        last = state["lastExtraction"].get(key)
        if not last:
            return False
        try:
            hours = (now - datetime.fromisoformat(last)).total_seconds() / 3600
        except (TypeError, ValueError):
            return False
        return hours < self.min_hours_between

    async def format_thread(self, messages: list[ThreadMessage]) -> str:
        names: dict[str, str] = {}
        lines: list[str] = []
        for message in messages:
            if not message.text:
                continue
            if message.is_bot:
                speaker = "Assistant"
            elif message.author_id:
                if message.author_id not in names:
                    names[message.author_id] = await self._display_name(message.author_id)
                speaker = names[message.author_id]
            else:
                speaker = "Unknown"
            lines.append(f"[{speaker}]: {clean_slack_markup(message.text)}")
        return "\n\n".join(lines)

    async def _display_name(self, user_id: str) -> str:
        if self.resolve_user is None:
            return user_id
        try:
            return await self.resolve_user(user_id) or user_id
        except Exception as e:
            logger.debug("User lookup failed for {}: {}", user_id, e)
            return user_id

    async def sweep_thread(self, channel_id: str, thread_root_id: str) -> int | None:
        """Snapshot one thread; returns the trigger hit count, or None when nothing was saved."""
        messages = await self.fetch_history(channel_id, thread_root_id)
        if len(messages) < 2:
            return None
        formatted = await self.format_thread(messages)
        found = 0
        for message in messages:
            if message.is_bot or not message.text:
                continue
            hits = extract(message.text)
            found += len(hits.accepted) + len(hits.pending)
        ensure_dir(self.history_dir)
        atomic_write_json(
            self.history_dir / f"{safe_filename(f'{channel_id}_{thread_root_id}')}.json",
            {
                "channel": channel_id,
                "thread_ts": thread_root_id,
                "messageCount": len(messages),
                "fetchedAt": datetime.now().isoformat(),
                "formatted": formatted,
            },
        )
        logger.info(
            "Swept thread {}/{}: {} msgs, {} items found", channel_id, thread_root_id, len(messages), found
        )
        return found

    async def run_once(self) -> SweepReport:
        keys = self.sessions.keys()
        state = self.load_state()
        now = datetime.now()
        report = SweepReport()
        logger.info("Running thread sweep on {} threads", len(keys))

        for key in keys:
            if self._recently_swept(state, key, now):
                report.threads_skipped += 1
                continue
            channel_id, _, thread_root_id = key.partition("_")
            if not thread_root_id:
                continue
            try:
                found = await self.sweep_thread(channel_id, thread_root_id)
            except Exception as e:
                logger.error("Sweep failed for {}: {}", key, e)
                found = None
            if found is not None:
                report.threads_processed += 1
                report.items_found += found
                state["lastExtraction"][key] = datetime.now().isoformat()
                self._save_state(state)
            if self.delay_seconds > 0:
                await asyncio.sleep(self.delay_seconds)

        state["lastFullExtraction"] = now.isoformat()
        self._save_state(state)
        logger.info(
            "Sweep complete: {} threads, {} items found", report.threads_processed, report.items_found
        )
        return report

    async def _loop(self) -> None:
        while True:
            try:
                await self.run_once()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error("Thread sweep failed: {}", e)
            await asyncio.sleep(self.interval_seconds)

    def start(self) -> None:
        if self._task is not None and not self._task.done():
            return
        logger.info("Starting thread sweep every {} minutes", round(self.interval_seconds / 60))
        self._task = asyncio.create_task(self._loop())

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Stopped thread sweep")
