"""Agent invocation adapter and progress tracking."""

from threadbridge.agent.claude_cli import (
    AgentInvocationError,
    AgentTimeoutError,
    ClaudeCLIAdapter,
    ensure_not_root,
    parse_stream_output,
)
from threadbridge.agent.progress import ActivityTracker, StreamEvent, parse_stream_event

__all__ = [
    "ActivityTracker",
    "AgentInvocationError",
    "AgentTimeoutError",
    "ClaudeCLIAdapter",
    "StreamEvent",
    "ensure_not_root",
    "parse_stream_event",
    "parse_stream_output",
]
