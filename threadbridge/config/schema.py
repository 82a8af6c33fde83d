"""Configuration schema using Pydantic."""

import os
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_ALLOWED_TOOLS = ["Bash", "Read", "Write", "Edit", "Glob", "Grep", "WebSearch", "WebFetch"]


class SlackConfig(BaseModel):
    """Slack channel configuration (Socket Mode + Web API)."""

    model_config = ConfigDict(extra="ignore")

    enabled: bool = True
    bot_token: str = ""  # xoxb-...; falls back to SLACK_BOT_TOKEN
    app_token: str = ""  # xapp-...; falls back to SLACK_APP_TOKEN
    api_base: str = "https://slack.com/api"
    request_timeout_seconds: float = 30.0
    history_limit: int = 200
    reconnect_initial_ms: int = 1000
    reconnect_max_ms: int = 30000

    @property
    def resolved_bot_token(self) -> str:
        return (self.bot_token or os.environ.get("SLACK_BOT_TOKEN", "")).strip()

    @property
    def resolved_app_token(self) -> str:
        return (self.app_token or os.environ.get("SLACK_APP_TOKEN", "")).strip()


class AgentConfig(BaseModel):
    """Agent CLI invocation settings."""

    model_config = ConfigDict(extra="ignore")

    command: str = ""  # empty means auto-detect the claude binary
    allowed_tools: list[str] = Field(default_factory=lambda: list(DEFAULT_ALLOWED_TOOLS))
    skip_permissions: bool = True
    timeout_seconds: int = 600
    workspace: str | None = None
    extra_args: list[str] = Field(default_factory=list)
    allow_root: bool = False


class SessionsConfig(BaseModel):
    """Thread session persistence."""

    model_config = ConfigDict(extra="ignore")

    expiry_hours: float = 4.0
    store_path: str = "state/sessions/thread-sessions.json"

    @property
    def expiry_ms(self) -> int:
        return int(self.expiry_hours * 60 * 60 * 1000)


class MemoryConfig(BaseModel):
    """Trigger-based memory capture and life-document sync."""

    model_config = ConfigDict(extra="ignore")

    enabled: bool = True
    auto_sync: bool = False
    context_injection: bool = True
    store_path: str = "state/memory/store.json"
    sync_root: str = "docs"
    export_path: str = "state/memory-export.json"
    context_max_goals: int = 5
    context_max_memories: int = 5


class ProgressConfig(BaseModel):
    """In-thread progress message updates while the agent runs."""

    model_config = ConfigDict(extra="ignore")

    enabled: bool = True
    min_interval_seconds: float = 3.0
    initial_text: str = "Processing..."


class SweepConfig(BaseModel):
    """Periodic thread transcript sweep."""

    model_config = ConfigDict(extra="ignore")

    enabled: bool = False
    interval_minutes: int = 60
    min_hours_between: float = 1.0
    history_dir: str = "state/history"
    state_path: str = "state/memory/extraction-state.json"
    delay_seconds: float = 0.5


class ApiConfig(BaseModel):
    """Control plane HTTP API."""

    model_config = ConfigDict(extra="ignore")

    enabled: bool = True
    host: str = "127.0.0.1"  # localhost only by default
    port: int = 9000
    auth_token: str | None = None  # Required for all endpoints except /health
    rate_limit_per_minute: int = 60


class Config(BaseSettings):
    """Root configuration for threadbridge."""

    model_config = SettingsConfigDict(
        extra="ignore",
        populate_by_name=True,
        env_prefix="THREADBRIDGE_",
        env_nested_delimiter="__",
    )

    config_version: int = 1
    slack: SlackConfig = Field(default_factory=SlackConfig)
    agent: AgentConfig = Field(default_factory=AgentConfig)
    sessions: SessionsConfig = Field(default_factory=SessionsConfig)
    memory: MemoryConfig = Field(default_factory=MemoryConfig)
    progress: ProgressConfig = Field(default_factory=ProgressConfig)
    sweep: SweepConfig = Field(default_factory=SweepConfig)
    api: ApiConfig = Field(default_factory=ApiConfig)

    def data_file(self, raw: str) -> Path:
        """Resolve a configured relative path under the data directory."""
        from threadbridge.utils.helpers import resolve_path

        return resolve_path(raw)

    @property
    def session_store_path(self) -> Path:
        return self.data_file(self.sessions.store_path)

    @property
    def memory_store_path(self) -> Path:
        return self.data_file(self.memory.store_path)

    @property
    def sync_root_path(self) -> Path:
        return self.data_file(self.memory.sync_root)
