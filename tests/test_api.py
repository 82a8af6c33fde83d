from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from threadbridge.api.server import RateLimiter, _check_auth, create_app
from threadbridge.config.schema import ApiConfig, Config, SlackConfig
from threadbridge.memory.store import MemoryStore
from threadbridge.memory.sync import MARKER_FILE, LifeDocSync
from threadbridge.session.store import SessionStore


class _FakeChannel:
    def __init__(self, *, fail: bool = False) -> None:
        self.fail = fail
        self.sent: list[tuple[str, str, str | None]] = []

    async def send(self, channel_id: str, text: str, *, thread_root_id: str | None = None) -> str | None:
        if self.fail:
            raise RuntimeError("not_in_channel")
        self.sent.append((channel_id, text, thread_root_id))
        return "1700000000.000100"


@pytest.fixture(autouse=True)
def _no_slack_env(monkeypatch) -> None:
    monkeypatch.delenv("SLACK_BOT_TOKEN", raising=False)
    monkeypatch.delenv("SLACK_APP_TOKEN", raising=False)


def _config(**api: object) -> Config:
    return Config(slack=SlackConfig(bot_token="xoxb-test"), api=ApiConfig(**api))


def _sessions(tmp_path: Path) -> SessionStore:
    store = SessionStore(tmp_path / "sessions.json")
    store.commit("C1_1.000001", session_id="sess-1", watermark="1.000003")
    return store


def test_health_reports_session_count_and_tokens(tmp_path: Path) -> None:
    client = TestClient(create_app(_config(auth_token="secret"), _sessions(tmp_path)))

    response = client.get("/health")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert data["activeSessionCount"] == 1
    assert data["botTokenConfigured"] is True
    assert data["appTokenConfigured"] is False
    assert data["uptimeSeconds"] >= 0


def test_protected_endpoints_require_bearer_token(tmp_path: Path) -> None:
    client = TestClient(create_app(_config(auth_token="secret"), _sessions(tmp_path)))

    assert client.get("/sessions").status_code == 401
    assert client.get("/sessions", headers={"Authorization": "Bearer wrong"}).status_code == 401

    response = client.get("/sessions", headers={"Authorization": "Bearer secret"})
    assert response.status_code == 200
    assert response.json() == {
        "sessions": [
            {"threadKey": "C1_1.000001", "agentSessionId": "sess-1", "lastProcessedMessageId": "1.000003"}
        ]
    }


def test_clear_sessions_then_health_shows_zero(tmp_path: Path) -> None:
    sessions = _sessions(tmp_path)
    client = TestClient(create_app(_config(), sessions))

    response = client.post("/sessions/clear")

    assert response.json() == {"ok": True, "message": "Sessions cleared"}
    assert client.get("/sessions").json() == {"sessions": []}
    assert client.get("/health").json()["activeSessionCount"] == 0
    assert sessions.sessions() == []


def test_memory_endpoints(tmp_path: Path) -> None:
    memory = MemoryStore(tmp_path / "memory.json", today=lambda: "2026-01-02")
    memory.capture("goal: ship v1", channel_id="C1", user_id="U1")
    root = tmp_path / "life"
    root.mkdir()
    (root / MARKER_FILE).write_text("marker\n")
    (root / "GOALS.md").write_text("## Active Goals\n")
    client = TestClient(
        create_app(_config(), _sessions(tmp_path), memory=memory, sync=LifeDocSync(memory, root))
    )

    stats = client.get("/memory").json()
    assert stats["total"] == 1
    assert stats["unsynced"] == 1

    assert client.post("/memory/sync").json() == {"synced": 1, "skipped": 0, "errors": []}
    assert client.get("/memory").json()["unsynced"] == 0


def test_memory_endpoint_unavailable_when_disabled(tmp_path: Path) -> None:
    client = TestClient(create_app(_config(), _sessions(tmp_path)))
    assert client.get("/memory").status_code == 503
    assert client.post("/memory/sync").status_code == 503


def test_send_validates_payload(tmp_path: Path) -> None:
    client = TestClient(create_app(_config(), _sessions(tmp_path), channel=_FakeChannel()))

    response = client.post("/send", json={"channel": "C1"})

    assert response.status_code == 400
    assert response.json() == {"error": "channel and text required"}


def test_send_posts_through_channel(tmp_path: Path) -> None:
    channel = _FakeChannel()
    client = TestClient(create_app(_config(), _sessions(tmp_path), channel=channel))

    response = client.post("/send", json={"channel": "C1", "text": "hello", "thread_ts": "1.000001"})

    assert response.json() == {"ok": True, "ts": "1700000000.000100"}
    assert channel.sent == [("C1", "hello", "1.000001")]


def test_send_reports_channel_errors(tmp_path: Path) -> None:
    client = TestClient(create_app(_config(), _sessions(tmp_path), channel=_FakeChannel(fail=True)))

    response = client.post("/send", json={"channel": "C1", "text": "hello"})

    assert response.status_code == 500
    assert response.json() == {"error": "not_in_channel"}


def test_rate_limit_applies_to_protected_endpoints(tmp_path: Path) -> None:
    client = TestClient(create_app(_config(rate_limit_per_minute=2), _sessions(tmp_path)))

    assert client.get("/sessions").status_code == 200
    assert client.get("/sessions").status_code == 200
    assert client.get("/sessions").status_code == 429
    assert client.get("/health").status_code == 200


def test_auth_and_limiter_helpers() -> None:
    assert _check_auth("Bearer abc", "abc")
    assert not _check_auth("Token abc", "abc")
    assert not _check_auth(None, "abc")

    limiter = RateLimiter(1)
    assert limiter.check("a") == (True, 0)
    assert limiter.check("a") == (False, 0)
    assert limiter.check("b") == (True, 0)
