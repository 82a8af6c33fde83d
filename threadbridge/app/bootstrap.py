"""Runtime composition for the threadbridge gateway."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import TYPE_CHECKING

from loguru import logger

from threadbridge.agent.claude_cli import ClaudeCLIAdapter, ensure_not_root
from threadbridge.api.server import create_app, serve_api
from threadbridge.channels.slack import SlackChannel, SlackProgressSink, SlackWebClient, strip_mentions
from threadbridge.config.loader import validate_runtime_config
from threadbridge.core.orchestrator import MentionOrchestrator
from threadbridge.memory.context import ContextBuilder
from threadbridge.memory.store import MemoryStore
from threadbridge.memory.sweep import ThreadSweeper
from threadbridge.memory.sync import LifeDocSync
from threadbridge.session.controller import SessionContinuityController
from threadbridge.session.store import SessionStore

if TYPE_CHECKING:
    from fastapi import FastAPI

    from threadbridge.config.schema import Config


def build_stores(config: "Config") -> tuple[SessionStore, MemoryStore, LifeDocSync]:
    """Process-wide stores, loaded from disk."""
    sessions = SessionStore(config.session_store_path, expiry_ms=config.sessions.expiry_ms)
    sessions.load()
    memory = MemoryStore(config.memory_store_path)
    sync = LifeDocSync(
        memory,
        config.sync_root_path,
        export_path=config.data_file(config.memory.export_path),
    )
    return sessions, memory, sync


@dataclass(slots=True)
class BridgeRuntime:
    """Lifecycle holder for the composed gateway runtime."""

    config: "Config"
    sessions: SessionStore
    memory: MemoryStore
    sync: LifeDocSync
    client: SlackWebClient
    channel: SlackChannel
    controller: SessionContinuityController
    orchestrator: MentionOrchestrator
    sweeper: ThreadSweeper | None
    api: "FastAPI | None"

    async def run(self) -> None:
        try:
            if self.sweeper is not None:
                self.sweeper.start()
            tasks = [self.channel.start()]
            if self.api is not None:
                tasks.append(serve_api(self.api, self.config.api))
            await asyncio.gather(*tasks)
        finally:
            await self.shutdown()

    async def shutdown(self) -> None:
        if self.sweeper is not None:
            await self.sweeper.stop()
        await self.channel.stop()
        await self.client.aclose()
        logger.info("threadbridge stopped")


def build_runtime(config: "Config") -> BridgeRuntime:
    """Compose the gateway: stores, Slack client, agent adapter, controller, API."""
    validate_runtime_config(config)
    ensure_not_root(allow_root=config.agent.allow_root)

    sessions, memory, sync = build_stores(config)
    client = SlackWebClient(
        config.slack.resolved_bot_token,
        api_base=config.slack.api_base,
        timeout_seconds=config.slack.request_timeout_seconds,
        history_limit=config.slack.history_limit,
    )
    adapter = ClaudeCLIAdapter(
        command=config.agent.command or None,
        allowed_tools=config.agent.allowed_tools,
        skip_permissions=config.agent.skip_permissions,
        timeout_seconds=config.agent.timeout_seconds,
        workspace=config.agent.workspace,
        extra_args=config.agent.extra_args,
        progress_interval_seconds=config.progress.min_interval_seconds,
    )

    context_provider = None
    if config.memory.enabled and config.memory.context_injection:
        context_provider = ContextBuilder(
            memory,
            config.sync_root_path,
            max_goals=config.memory.context_max_goals,
            max_memories=config.memory.context_max_memories,
        ).build

    controller = SessionContinuityController(
        sessions,
        adapter,
        progress=SlackProgressSink(client, config.progress) if config.progress.enabled else None,
        context_provider=context_provider,
    )

    async def send_reply(channel_id: str, text: str, thread_root_id: str) -> str | None:
        return await client.post_message(channel_id, text, thread_ts=thread_root_id)

    orchestrator = MentionOrchestrator(
        controller=controller,
        fetch_history=client.fetch_replies,
        send_reply=send_reply,
        memory=memory if config.memory.enabled else None,
        sync=sync,
        auto_sync=config.memory.auto_sync,
        strip_mentions=strip_mentions,
    )
    channel = SlackChannel(config.slack, client, on_mention=orchestrator.handle)

    sweeper = None
    if config.sweep.enabled:
        sweeper = ThreadSweeper(
            sessions,
            client.fetch_replies,
            history_dir=config.data_file(config.sweep.history_dir),
            state_path=config.data_file(config.sweep.state_path),
            interval_seconds=config.sweep.interval_minutes * 60,
            min_hours_between=config.sweep.min_hours_between,
            delay_seconds=config.sweep.delay_seconds,
            resolve_user=client.user_name,
        )

    api = None
    if config.api.enabled:
        api = create_app(
            config,
            sessions,
            memory=memory if config.memory.enabled else None,
            sync=sync,
            channel=channel,
        )

    logger.info(
        "Runtime ready: {} sessions loaded, agent command {}", sessions.active_count, adapter.command
    )
    return BridgeRuntime(
        config=config,
        sessions=sessions,
        memory=memory,
        sync=sync,
        client=client,
        channel=channel,
        controller=controller,
        orchestrator=orchestrator,
        sweeper=sweeper,
        api=api,
    )
