import json
from pathlib import Path

from threadbridge.session.store import DEFAULT_EXPIRY_MS, SessionStore


class _Clock:
    def __init__(self, now: int = 1_700_000_000_000) -> None:
        self.now = now

    def __call__(self) -> int:
        return self.now


def test_commit_persists_established_session(tmp_path: Path) -> None:
    path = tmp_path / "sessions.json"
    clock = _Clock()
    store = SessionStore(path, clock=clock)

    store.commit("C1_100.000001", session_id="sess-1", watermark="100.000001")

    data = json.loads(path.read_text())
    assert data == {
        "C1_100.000001": {
            "agentSessionId": "sess-1",
            "createdAt": clock.now,
            "refreshedAt": clock.now,
            "lastProcessedMessageId": "100.000001",
        }
    }


def test_pending_entry_is_never_persisted(tmp_path: Path) -> None:
    path = tmp_path / "sessions.json"
    store = SessionStore(path, clock=_Clock())

    pending = store.commit("C1_100.000001", session_id=None, watermark="100.000002")

    assert not pending.established
    assert store.get("C1_100.000001") is None
    assert store.peek("C1_100.000001") is pending
    assert store.active_count == 0
    assert not path.exists()

    store.commit("C2_200.000001", session_id="sess-2", watermark="200.000001")
    data = json.loads(path.read_text())
    assert list(data) == ["C2_200.000001"]


def test_watermark_never_moves_backward(tmp_path: Path) -> None:
    store = SessionStore(tmp_path / "sessions.json", clock=_Clock())
    key = "C1_100.000001"
    store.commit(key, session_id="sess-1", watermark="100.000005")
    store.commit(key, session_id="sess-1", watermark="100.000003")
    assert store.get(key).last_processed_message_id == "100.000005"

    store.commit(key, session_id="sess-1", watermark="100.000009")
    assert store.get(key).last_processed_message_id == "100.000009"


def test_rotated_session_id_is_adopted(tmp_path: Path) -> None:
    clock = _Clock()
    store = SessionStore(tmp_path / "sessions.json", clock=clock)
    key = "C1_100.000001"
    store.commit(key, session_id="sess-1", watermark="100.000001")
    created = store.get(key).created_at

    clock.now += 1000
    store.commit(key, session_id="sess-2", watermark="100.000002")

    session = store.get(key)
    assert session.agent_session_id == "sess-2"
    assert session.created_at == created
    assert session.refreshed_at == clock.now


def test_load_skips_expired_entries(tmp_path: Path) -> None:
    path = tmp_path / "sessions.json"
    now = 1_700_000_000_000
    path.write_text(
        json.dumps(
            {
                "C1_fresh": {
                    "agentSessionId": "fresh",
                    "createdAt": now - 1000,
                    "lastProcessedMessageId": "100.000001",
                },
                "C1_stale": {
                    "agentSessionId": "stale",
                    "createdAt": now - DEFAULT_EXPIRY_MS - 1,
                    "lastProcessedMessageId": "100.000001",
                },
            }
        )
    )

    store = SessionStore(path, clock=_Clock(now))
    assert store.load() == 1
    assert store.keys() == ["C1_fresh"]
    assert store.get("C1_stale") is None
    assert store.active_count == 1


def test_load_accepts_legacy_field_names(tmp_path: Path) -> None:
    path = tmp_path / "sessions.json"
    now = 1_700_000_000_000
    path.write_text(
        json.dumps({"C1_100.000001": {"sessionId": "legacy", "createdAt": now, "lastMessageTs": "100.000004"}})
    )

    store = SessionStore(path, clock=_Clock(now))
    store.load()
    session = store.get("C1_100.000001")
    assert session.agent_session_id == "legacy"
    assert session.last_processed_message_id == "100.000004"


def test_corrupt_document_loads_empty(tmp_path: Path) -> None:
    path = tmp_path / "sessions.json"
    path.write_text("{not json")

    store = SessionStore(path)
    assert store.load() == 0
    assert store.sessions() == []


def test_clear_empties_store_and_document(tmp_path: Path) -> None:
    path = tmp_path / "sessions.json"
    store = SessionStore(path, clock=_Clock())
    store.commit("C1_1.000001", session_id="a", watermark="1.000001")
    store.commit("C1_2.000001", session_id="b", watermark="2.000001")

    assert store.clear() == 2
    assert store.sessions() == []
    assert json.loads(path.read_text()) == {}


def test_reload_round_trips_state(tmp_path: Path) -> None:
    path = tmp_path / "sessions.json"
    clock = _Clock()
    store = SessionStore(path, clock=clock)
    store.commit("C1_1.000001", session_id="a", watermark="1.000007")

    reloaded = SessionStore(path, clock=clock)
    reloaded.load()
    session = reloaded.get("C1_1.000001")
    assert session.agent_session_id == "a"
    assert session.last_processed_message_id == "1.000007"


def test_stale_pending_entries_are_dropped(tmp_path: Path) -> None:
    clock = _Clock()
    store = SessionStore(tmp_path / "sessions.json", expiry_ms=1000, clock=clock)
    store.commit("C1_1.000001", session_id=None, watermark="1.000001")

    clock.now += 500
    store.commit("C1_2.000001", session_id="sess-2", watermark="2.000001")
    assert store.peek("C1_1.000001") is not None

    clock.now += 1000
    store.commit("C1_3.000001", session_id="sess-3", watermark="3.000001")
    assert store.peek("C1_1.000001") is None
    assert store.keys() == ["C1_2.000001", "C1_3.000001"]
