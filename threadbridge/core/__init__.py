"""Typed core models and ports."""

from threadbridge.core.models import HandleResult, ThreadEvent, ThreadMessage, thread_key

__all__ = ["HandleResult", "ThreadEvent", "ThreadMessage", "thread_key"]
