import json
from datetime import datetime
from pathlib import Path

import pytest

from threadbridge.core.models import ThreadMessage
from threadbridge.memory.sweep import ThreadSweeper, clean_slack_markup
from threadbridge.session.store import SessionStore


def _sessions(tmp_path: Path, *keys: str) -> SessionStore:
    store = SessionStore(tmp_path / "sessions.json")
    for key in keys:
        store.commit(key, session_id=f"sess-{key}", watermark="1.000001")
    return store


def _sweeper(tmp_path: Path, sessions: SessionStore, threads: dict[tuple[str, str], list[ThreadMessage]], **kwargs):
    fetched: list[tuple[str, str]] = []

    async def fetch(channel_id: str, thread_root_id: str) -> list[ThreadMessage]:
        fetched.append((channel_id, thread_root_id))
        return threads.get((channel_id, thread_root_id), [])

    sweeper = ThreadSweeper(
        sessions,
        fetch,
        history_dir=tmp_path / "history",
        state_path=tmp_path / "extraction-state.json",
        delay_seconds=0,
        **kwargs,
    )
    return sweeper, fetched


def test_clean_slack_markup() -> None:
    text = "<@U123ABC> see <#C999|general> and <https://example.com|the docs> or <https://x.io>"
    assert clean_slack_markup(text) == "@user see #general and the docs or https://x.io"


@pytest.mark.asyncio
async def test_run_once_snapshots_threads(tmp_path: Path) -> None:
    sessions = _sessions(tmp_path, "C1_1.000001", "C2_2.000001")
    threads = {
        ("C1", "1.000001"): [
            ThreadMessage(id="1.000001", text="<@UBOT> goal: ship v1", author_id="U1"),
            ThreadMessage(id="1.000002", text="On it", is_bot=True),
        ],
        ("C2", "2.000001"): [ThreadMessage(id="2.000001", text="only one", author_id="U1")],
    }

    async def resolve(user_id: str) -> str:
        return "Alice"

    sweeper, fetched = _sweeper(tmp_path, sessions, threads, resolve_user=resolve)
    report = await sweeper.run_once()

    assert fetched == [("C1", "1.000001"), ("C2", "2.000001")]
    assert report.threads_processed == 1
    assert report.items_found == 1

    snapshot = json.loads((tmp_path / "history" / "C1_1.000001.json").read_text())
    assert snapshot["channel"] == "C1"
    assert snapshot["thread_ts"] == "1.000001"
    assert snapshot["messageCount"] == 2
    assert snapshot["formatted"] == "[Alice]: @user goal: ship v1\n\n[Assistant]: On it"
    assert not (tmp_path / "history" / "C2_2.000001.json").exists()

    state = json.loads((tmp_path / "extraction-state.json").read_text())
    assert "C1_1.000001" in state["lastExtraction"]
    assert "C2_2.000001" not in state["lastExtraction"]
    assert state["lastFullExtraction"]


@pytest.mark.asyncio
async def test_recently_swept_threads_are_skipped(tmp_path: Path) -> None:
    sessions = _sessions(tmp_path, "C1_1.000001")
    (tmp_path / "extraction-state.json").write_text(
        json.dumps({"lastExtraction": {"C1_1.000001": datetime.now().isoformat()}, "lastFullExtraction": ""})
    )
    sweeper, fetched = _sweeper(tmp_path, sessions, {})

    report = await sweeper.run_once()

    assert fetched == []
    assert report.threads_skipped == 1


@pytest.mark.asyncio
async def test_fetch_errors_do_not_stop_the_sweep(tmp_path: Path) -> None:
    sessions = _sessions(tmp_path, "C1_1.000001", "C2_2.000001")
    messages = [
        ThreadMessage(id="2.000001", text="hi", author_id="U1"),
        ThreadMessage(id="2.000002", text="hello", author_id="U2"),
    ]

    async def fetch(channel_id: str, thread_root_id: str) -> list[ThreadMessage]:
        if channel_id == "C1":
            raise RuntimeError("channel_not_found")
        return messages

    sweeper = ThreadSweeper(
        sessions,
        fetch,
        history_dir=tmp_path / "history",
        state_path=tmp_path / "state.json",
        delay_seconds=0,
    )
    report = await sweeper.run_once()

    assert report.threads_processed == 1
    assert (tmp_path / "history" / "C2_2.000001.json").exists()
    assert sessions.keys() == ["C1_1.000001", "C2_2.000001"]
