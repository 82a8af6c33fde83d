"""Slack channel: Web API client over httpx and a Socket Mode listener over websockets."""

from __future__ import annotations

import asyncio
import contextlib
import json
import random
import re
import time
from typing import Any

import httpx
from loguru import logger

from threadbridge.channels.base import BaseChannel, MentionHandler
from threadbridge.config.schema import ProgressConfig, SlackConfig
from threadbridge.core.models import ThreadEvent, ThreadMessage, thread_key

DEDUPE_TTL_SECONDS = 10 * 60
MAX_DEDUPE_ENTRIES = 2000

_MENTION_RE = re.compile(r"<@[A-Z0-9]+>")


def strip_mentions(text: str) -> str:
    """Remove ``<@U...>`` user mentions and surrounding whitespace."""
    return _MENTION_RE.sub("", text or "").strip()


class SlackAPIError(RuntimeError):
    """Slack Web API answered ``ok: false`` or an HTTP error."""

    def __init__(self, method: str, error: str):
        super().__init__(f"Slack API error in {method}: {error}")
        self.method = method
        self.error = error


def message_from_payload(data: dict[str, Any]) -> ThreadMessage:
    return ThreadMessage(
        id=str(data.get("ts") or "0"),
        text=str(data.get("text") or ""),
        author_id=data.get("user"),
        is_bot=bool(data.get("bot_id")),
    )


class SlackWebClient:
    """Minimal Slack Web API client for the calls the bridge needs."""

    def __init__(
        self,
        token: str,
        *,
        api_base: str = "https://slack.com/api",
        timeout_seconds: float = 30.0,
        history_limit: int = 200,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.token = token
        self.history_limit = max(1, int(history_limit))
        self._client = httpx.AsyncClient(
            base_url=api_base.rstrip("/") + "/",
            timeout=timeout_seconds,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def call(
        self,
        method: str,
        *,
        params: dict[str, Any] | None = None,
        payload: dict[str, Any] | None = None,
        token: str | None = None,
    ) -> dict[str, Any]:
        headers = {"Authorization": f"Bearer {token or self.token}"}
        try:
            if payload is None:
                response = await self._client.get(method, params=params, headers=headers)
            else:
                headers["Content-Type"] = "application/json; charset=utf-8"
                response = await self._client.post(method, json=payload, headers=headers)
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPError as e:
            raise SlackAPIError(method, str(e)) from e
        except ValueError as e:
            raise SlackAPIError(method, f"invalid JSON response: {e}") from e
        if not isinstance(data, dict) or not data.get("ok"):
            error = data.get("error") if isinstance(data, dict) else "malformed response"
            raise SlackAPIError(method, str(error or "unknown_error"))
        return data

    async def fetch_replies(self, channel_id: str, thread_root_id: str) -> list[ThreadMessage]:
        """Every message of a thread, oldest first, following pagination cursors."""
        messages: list[ThreadMessage] = []
        cursor: str | None = None
        while True:
            params: dict[str, Any] = {"channel": channel_id, "ts": thread_root_id, "limit": self.history_limit}
            if cursor:
                params["cursor"] = cursor
            data = await self.call("conversations.replies", params=params)
            for item in data.get("messages") or []:
                if isinstance(item, dict):
                    messages.append(message_from_payload(item))
            cursor = ((data.get("response_metadata") or {}).get("next_cursor") or "").strip()
            if not data.get("has_more") or not cursor:
                break
        return messages

    async def post_message(self, channel_id: str, text: str, *, thread_ts: str | None = None) -> str | None:
        payload: dict[str, Any] = {"channel": channel_id, "text": text}
        if thread_ts:
            payload["thread_ts"] = thread_ts
        data = await self.call("chat.postMessage", payload=payload)
        return data.get("ts")

    async def update_message(self, channel_id: str, ts: str, text: str) -> None:
        await self.call("chat.update", payload={"channel": channel_id, "ts": ts, "text": text})

    async def delete_message(self, channel_id: str, ts: str) -> None:
        await self.call("chat.delete", payload={"channel": channel_id, "ts": ts})

    async def user_name(self, user_id: str) -> str:
        data = await self.call("users.info", params={"user": user_id})
        user = data.get("user") or {}
        return str(user.get("real_name") or user.get("name") or user_id)

    async def open_socket_url(self, app_token: str) -> str:
        data = await self.call("apps.connections.open", payload={}, token=app_token)
        url = str(data.get("url") or "")
        if not url:
            raise SlackAPIError("apps.connections.open", "missing url")
        return url


class SlackProgressSink:
    """One in-thread status message per running turn, edited as the agent works."""

    def __init__(self, client: SlackWebClient, config: ProgressConfig | None = None) -> None:
        self.client = client
        self.config = config or ProgressConfig()
        self._active: dict[str, tuple[str, str]] = {}

    async def start(self, channel_id: str, thread_root_id: str) -> None:
        if not self.config.enabled:
            return
        try:
            ts = await self.client.post_message(channel_id, self.config.initial_text, thread_ts=thread_root_id)
        except SlackAPIError as e:
            logger.warning("Failed to start progress: {}", e)
            return
        if ts:
            self._active[thread_key(channel_id, thread_root_id)] = (channel_id, ts)

    async def update(self, channel_id: str, thread_root_id: str, text: str) -> None:
        entry = self._active.get(thread_key(channel_id, thread_root_id))
        if entry is None:
            return
        try:
            await self.client.update_message(entry[0], entry[1], text)
        except SlackAPIError as e:
            logger.warning("Failed to update progress: {}", e)

    async def finish(self, channel_id: str, thread_root_id: str, *, ok: bool, summary: str) -> None:
        entry = self._active.pop(thread_key(channel_id, thread_root_id), None)
        if entry is None:
            return
        if ok:
            # The real reply is posted separately; the status line goes away.
            try:
                await self.client.delete_message(entry[0], entry[1])
                return
            except SlackAPIError as e:
                logger.debug("Progress delete failed, leaving summary: {}", e)
        try:
            await self.client.update_message(entry[0], entry[1], summary)
        except SlackAPIError as e:
            logger.warning("Failed to finish progress: {}", e)


class SlackChannel(BaseChannel):
    """Slack channel receiving ``app_mention`` events over Socket Mode."""

    name = "slack"

    def __init__(
        self,
        config: SlackConfig,
        client: SlackWebClient,
        on_mention: MentionHandler | None = None,
    ):
        super().__init__(config, on_mention)
        self.config: SlackConfig = config
        self.client = client
        self._ws: Any | None = None
        self._connected = False
        self._reconnect_attempts = 0
        self._inbound_tasks: set[asyncio.Task[None]] = set()
        self._recent_event_ids: dict[str, float] = {}

    @property
    def connected(self) -> bool:
        return self._connected

    async def start(self) -> None:
        """Connect to Socket Mode and dispatch mentions until stopped."""
        import websockets

        app_token = self.config.resolved_app_token
        if not app_token:
            raise RuntimeError("slack.appToken (SLACK_APP_TOKEN) is required for Socket Mode")

        self._running = True
        while self._running:
            try:
                url = await self.client.open_socket_url(app_token)
                logger.info("Connecting to Slack Socket Mode...")
                async with websockets.connect(url, ping_interval=20, ping_timeout=20) as ws:
                    self._ws = ws
                    self._connected = True
                    self._reconnect_attempts = 0
                    async for raw in ws:
                        if not await self._handle_frame(raw):
                            break
                    logger.info("Slack Socket Mode connection closed")
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.warning("Slack Socket Mode connection error: {}", e)
                if not self._running:
                    break
                self._reconnect_attempts += 1
                delay = self._compute_backoff_ms(self._reconnect_attempts) / 1000.0
                logger.info("Reconnecting in {:.2f}s...", delay)
                await asyncio.sleep(delay)
            finally:
                self._connected = False
                self._ws = None

    async def stop(self) -> None:
        self._running = False
        self._connected = False
        for task in list(self._inbound_tasks):
            task.cancel()
        self._inbound_tasks.clear()
        if self._ws is not None:
            with contextlib.suppress(Exception):
                await self._ws.close()
            self._ws = None

    async def send(self, channel_id: str, text: str, *, thread_root_id: str | None = None) -> str | None:
        return await self.client.post_message(channel_id, text, thread_ts=thread_root_id)

    async def _handle_frame(self, raw: str | bytes) -> bool:
        """Process one Socket Mode envelope; returns False when Slack asks us to reconnect."""
        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Invalid JSON from Slack Socket Mode")
            return True
        if not isinstance(data, dict):
            return True

        frame_type = data.get("type")
        if frame_type == "hello":
            logger.info("Connected to Slack Socket Mode")
            return True
        if frame_type == "disconnect":
            logger.info("Slack requested reconnect ({})", data.get("reason"))
            return False

        envelope_id = data.get("envelope_id")
        if envelope_id and self._ws is not None:
            await self._ws.send(json.dumps({"envelope_id": envelope_id}))

        if frame_type != "events_api":
            return True
        payload = data.get("payload") or {}
        event = payload.get("event") or {}
        if event.get("type") != "app_mention":
            return True
        if self._is_duplicate(str(payload.get("event_id") or event.get("client_msg_id") or event.get("ts") or "")):
            return True

        thread_event = self.event_from_mention(event, event_id=payload.get("event_id"))
        task = asyncio.create_task(self._handle_mention(thread_event))
        self._inbound_tasks.add(task)
        task.add_done_callback(self._on_inbound_task_done)
        return True

    @staticmethod
    def event_from_mention(event: dict[str, Any], *, event_id: str | None = None) -> ThreadEvent:
        ts = str(event.get("ts") or "")
        return ThreadEvent(
            channel_id=str(event.get("channel") or ""),
            thread_root_id=str(event.get("thread_ts") or ts),
            message_id=ts,
            text=str(event.get("text") or ""),
            author_id=event.get("user"),
            raw_metadata={"event_id": event_id, "team": event.get("team")},
        )

    def _is_duplicate(self, event_id: str) -> bool:
        if not event_id:
            return False
        now = time.monotonic()
        if len(self._recent_event_ids) > MAX_DEDUPE_ENTRIES:
            cutoff = now - DEDUPE_TTL_SECONDS
            self._recent_event_ids = {k: v for k, v in self._recent_event_ids.items() if v >= cutoff}
        if event_id in self._recent_event_ids:
            logger.debug("Skipping duplicate Slack event {}", event_id)
            return True
        self._recent_event_ids[event_id] = now
        return False

    def _on_inbound_task_done(self, task: asyncio.Task[None]) -> None:
        self._inbound_tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Slack inbound task failed: {}", exc)

    def _compute_backoff_ms(self, attempt: int) -> int:
        initial = max(100, self.config.reconnect_initial_ms)
        capped = min(float(self.config.reconnect_max_ms), initial * (2 ** max(0, attempt - 1)))
        jitter = capped * 0.2
        return int(random.uniform(max(100.0, capped - jitter), capped + jitter))
