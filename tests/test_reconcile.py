from threadbridge.core.models import ThreadMessage
from threadbridge.session.reconcile import (
    format_messages,
    is_newer,
    is_unset_watermark,
    message_order_key,
    reconcile,
)


def _msg(ts: str, text: str = "", *, bot: bool = False, user: str | None = "U1") -> ThreadMessage:
    return ThreadMessage(id=ts, text=text or f"m{ts}", author_id=None if bot else user, is_bot=bot)


def test_gap_excludes_watermark_and_current() -> None:
    history = [_msg("1700000000.000005"), _msg("1700000000.000006"), _msg("1700000000.000007")]
    gap = reconcile(history, "1700000000.000005", "1700000000.000007")
    assert [m.id for m in gap] == ["1700000000.000006"]


def test_gap_excludes_messages_after_current() -> None:
    history = [_msg("100.000001"), _msg("100.000002"), _msg("100.000003"), _msg("100.000004")]
    gap = reconcile(history, "100.000001", "100.000003")
    assert [m.id for m in gap] == ["100.000002"]


def test_unset_watermark_yields_everything_before_current() -> None:
    history = [_msg("100.000001"), _msg("100.000002"), _msg("100.000003")]
    for watermark in (None, "", "0"):
        gap = reconcile(history, watermark, "100.000003")
        assert [m.id for m in gap] == ["100.000001", "100.000002"]


def test_gap_preserves_platform_order() -> None:
    history = [_msg("100.000004"), _msg("100.000002"), _msg("100.000003")]
    gap = reconcile(history, "100.000001", "100.000009")
    assert [m.id for m in gap] == ["100.000004", "100.000002", "100.000003"]


def test_empty_gap_when_watermark_is_latest() -> None:
    history = [_msg("100.000001"), _msg("100.000002")]
    assert reconcile(history, "100.000001", "100.000002") == []


def test_ordering_is_numeric_not_lexical() -> None:
    assert message_order_key("999.000001") < message_order_key("1000.000001")
    assert is_newer("1000.000001", "999.999999")
    history = [_msg("999.500000"), _msg("1000.000001")]
    gap = reconcile(history, "999.000001", "1000.000002")
    assert [m.id for m in gap] == ["999.500000", "1000.000001"]


def test_is_newer_against_unset_watermark() -> None:
    assert is_unset_watermark("0")
    assert is_unset_watermark(None)
    assert not is_unset_watermark("100.000001")
    assert is_newer("100.000001", "0")
    assert not is_newer("100.000001", "100.000001")
    assert not is_newer("100.000001", "100.000002")


def test_format_messages_tags_speakers() -> None:
    text = format_messages(
        [
            _msg("1.000001", "hello", user="U123"),
            _msg("1.000002", "hi there", bot=True),
        ]
    )
    assert text == "[User U123]: hello\n\n[Assistant]: hi there"
