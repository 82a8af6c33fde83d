"""FastAPI-based control surface for threadbridge.

Endpoints:
- GET /health - Health check (no auth required)
- GET /sessions - Active thread sessions (auth required)
- POST /sessions/clear - Drop every thread session (auth required)
- GET /memory - Memory store statistics (auth required)
- POST /memory/sync - Sync unsynced memories to life documents (auth required)
- POST /send - Post a message through the chat channel (auth required)

Security:
- Token auth via Bearer header (except /health)
- Rate limiting on all authenticated endpoints
"""

from __future__ import annotations

import hmac
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from loguru import logger

from threadbridge.config.schema import ApiConfig

if TYPE_CHECKING:
    from threadbridge.channels.base import BaseChannel
    from threadbridge.config.schema import Config
    from threadbridge.memory.store import MemoryStore
    from threadbridge.memory.sync import LifeDocSync
    from threadbridge.session.store import SessionStore


@dataclass
class AppState:
    """Shared state for the API."""

    config: Config
    sessions: SessionStore
    memory: MemoryStore | None = None
    sync: LifeDocSync | None = None
    channel: BaseChannel | None = None
    start_time: float = 0.0


def _check_auth(auth_header: str | None, expected_token: str) -> bool:
    """Validate Bearer token auth."""
    if not auth_header:
        return False
    if not auth_header.startswith("Bearer "):
        return False
    token = auth_header[7:]  # Remove "Bearer " prefix
    return hmac.compare_digest(token, expected_token)


def _rate_limit_key(request: Any) -> str:
    """Extract rate limit key from request."""
    if hasattr(request, "client") and request.client:
        return request.client.host
    return "unknown"


class RateLimiter:
    """Sliding one-minute window per client key, in memory."""

    def __init__(self, limit: int, window_seconds: int = 60) -> None:
        self.limit = max(1, int(limit))
        self.window_seconds = window_seconds
        self._hits: dict[str, list[float]] = {}

    def check(self, key: str) -> tuple[bool, int]:
        """Returns (allowed, remaining_requests)."""
        now = time.monotonic()
        window_start = now - self.window_seconds
        hits = [t for t in self._hits.get(key, []) if t > window_start]
        self._hits[key] = hits
        if len(hits) >= self.limit:
            return False, 0
        hits.append(now)
        return True, self.limit - len(hits)


def create_app(
    config: Config,
    sessions: SessionStore,
    *,
    memory: MemoryStore | None = None,
    sync: LifeDocSync | None = None,
    channel: BaseChannel | None = None,
    api_config: ApiConfig | None = None,
) -> FastAPI:
    """Create the FastAPI application.

    Args:
        config: threadbridge configuration
        sessions: The process-wide session store
        memory: Optional memory store for /memory
        sync: Optional life-document sync for /memory/sync
        channel: Optional chat channel for /send
        api_config: API-specific configuration (defaults to config.api)

    Returns:
        FastAPI application instance
    """

    api_config = api_config or config.api
    state = AppState(
        config=config,
        sessions=sessions,
        memory=memory,
        sync=sync,
        channel=channel,
        start_time=time.monotonic(),
    )
    limiter = RateLimiter(api_config.rate_limit_per_minute)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        state.start_time = time.monotonic()
        logger.info("Control API starting on http://{}:{}", api_config.host, api_config.port)
        yield
        logger.info("Control API shutting down")

    app = FastAPI(
        title="threadbridge",
        description="Control surface for the Slack thread to agent session bridge",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.bridge = state

    def verify_auth(request: Request) -> None:
        """Verify authentication for protected endpoints."""
        if not api_config.auth_token:
            # No auth token configured - allow all (development mode)
            return

        auth_header = request.headers.get("Authorization")
        if not _check_auth(auth_header, api_config.auth_token):
            raise HTTPException(
                status_code=401,
                detail="Invalid or missing authentication token",
                headers={"WWW-Authenticate": "Bearer"},
            )

    def check_rate_limit(request: Request) -> None:
        """Check rate limit for request."""
        allowed, _ = limiter.check(_rate_limit_key(request))
        if not allowed:
            raise HTTPException(
                status_code=429,
                detail="Rate limit exceeded",
                headers={"Retry-After": "60", "X-RateLimit-Remaining": "0"},
            )

    def guard(request: Request) -> None:
        verify_auth(request)
        check_rate_limit(request)

    @app.get("/health", tags=["health"])
    async def health_check() -> dict[str, Any]:
        """Health check endpoint (no auth required)."""
        return {
            "status": "healthy",
            "activeSessionCount": state.sessions.active_count,
            "botTokenConfigured": bool(state.config.slack.resolved_bot_token),
            "appTokenConfigured": bool(state.config.slack.resolved_app_token),
            "uptimeSeconds": round(time.monotonic() - state.start_time, 2),
        }

    @app.get("/sessions", tags=["sessions"])
    async def list_sessions(request: Request) -> dict[str, Any]:
        guard(request)
        return {
            "sessions": [
                {
                    "threadKey": session.thread_key,
                    "agentSessionId": session.agent_session_id,
                    "lastProcessedMessageId": session.last_processed_message_id,
                }
                for session in state.sessions.sessions()
            ]
        }

    @app.post("/sessions/clear", tags=["sessions"])
    async def clear_sessions(request: Request) -> dict[str, Any]:
        guard(request)
        client_ip = request.client.host if request.client else "unknown"
        cleared = state.sessions.clear()
        logger.info("Sessions cleared from {} ({} removed)", client_ip, cleared)
        return {"ok": True, "message": "Sessions cleared"}

    @app.get("/memory", tags=["memory"])
    async def memory_stats(request: Request) -> dict[str, Any]:
        guard(request)
        if state.memory is None:
            raise HTTPException(status_code=503, detail="Memory is disabled")
        return state.memory.stats()

    @app.post("/memory/sync", tags=["memory"])
    async def memory_sync(request: Request) -> dict[str, Any]:
        guard(request)
        if state.sync is None:
            raise HTTPException(status_code=503, detail="Memory sync is not configured")
        return state.sync.sync().to_dict()

    @app.post("/send", tags=["messages"])
    async def send_message(request: Request) -> Any:
        guard(request)
        try:
            data = await request.json()
        except ValueError:
            data = None
        if not isinstance(data, dict) or not data.get("channel") or not data.get("text"):
            return JSONResponse(status_code=400, content={"error": "channel and text required"})
        if state.channel is None:
            raise HTTPException(status_code=503, detail="Channel not available")
        try:
            ts = await state.channel.send(
                str(data["channel"]), str(data["text"]), thread_root_id=data.get("thread_ts")
            )
        except Exception as e:
            logger.error("Send error: {}", e)
            return JSONResponse(status_code=500, content={"error": str(e) or "Failed to send message"})
        return {"ok": True, "ts": ts}

    return app


async def serve_api(app: FastAPI, api_config: ApiConfig) -> None:
    """Run the API inside an existing event loop until cancelled."""
    import uvicorn

    if not api_config.enabled:
        logger.info("Control API disabled")
        return
    server = uvicorn.Server(
        uvicorn.Config(app, host=api_config.host, port=api_config.port, log_level="info")
    )
    await server.serve()
