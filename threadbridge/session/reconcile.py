"""Missed-message reconciliation between a thread's history and its watermark.

Everything here is pure: no I/O, no clocks, no store access. Ordering follows
the platform's message ids, not the order in which events reached us.
"""

from __future__ import annotations

import re
from typing import Iterable

from threadbridge.core.models import MessageId, ThreadMessage

_SLACK_TS_RE = re.compile(r"^(\d+)(?:\.(\d+))?$")
_UNSET_WATERMARKS = {"", "0"}


def message_order_key(message_id: MessageId) -> tuple[int, int, int, str]:
    """Sort key for platform message ids.

    Slack ``ts`` values ("1767876869.211069") compare numerically as
    (seconds, fraction). Anything else falls back to plain string order and
    sorts after numeric ids.
    """
    raw = str(message_id or "").strip()
    match = _SLACK_TS_RE.match(raw)
    if match:
        seconds = int(match.group(1))
        fraction = (match.group(2) or "").ljust(6, "0")
        return (0, seconds, int(fraction), "")
    return (1, 0, 0, raw)


def is_unset_watermark(watermark: MessageId | None) -> bool:
    return watermark is None or str(watermark).strip() in _UNSET_WATERMARKS


def is_newer(candidate: MessageId, than: MessageId | None) -> bool:
    """True when ``candidate`` orders strictly after ``than``."""
    if is_unset_watermark(than):
        return True
    return message_order_key(candidate) > message_order_key(than or "")


def reconcile(
    history: Iterable[ThreadMessage],
    watermark: MessageId | None,
    current_id: MessageId,
) -> list[ThreadMessage]:
    """Messages the agent has not seen yet: ``watermark < id < current_id``.

    The watermark itself and the current message are both excluded. An unset
    watermark (None, "" or "0") yields everything before the current message.
    The platform order of ``history`` is preserved.
    """
    upper = message_order_key(current_id)
    lower = None if is_unset_watermark(watermark) else message_order_key(watermark or "")

    gap: list[ThreadMessage] = []
    for message in history:
        key = message_order_key(message.id)
        if key >= upper:
            continue
        if lower is not None and key <= lower:
            continue
        gap.append(message)
    return gap


def format_messages(messages: Iterable[ThreadMessage]) -> str:
    """Render messages for prompt injection, tagging who said what."""
    lines: list[str] = []
    for message in messages:
        sender = "Assistant" if message.is_bot else f"User {message.author_id or 'unknown'}"
        lines.append(f"[{sender}]: {message.text}")
    return "\n\n".join(lines)
