"""Thread session continuity: store, reconciler, controller."""

from threadbridge.session.controller import (
    AGENT_FAILURE_REPLY,
    ERROR_REPLY,
    SessionContinuityController,
)
from threadbridge.session.reconcile import format_messages, is_newer, reconcile
from threadbridge.session.store import SessionStore, ThreadSession

__all__ = [
    "AGENT_FAILURE_REPLY",
    "ERROR_REPLY",
    "SessionContinuityController",
    "SessionStore",
    "ThreadSession",
    "format_messages",
    "is_newer",
    "reconcile",
]
