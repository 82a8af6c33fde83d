import json
import re
from pathlib import Path

from threadbridge.memory.context import ContextBuilder, load_active_goals
from threadbridge.memory.extractor import detect_category, extract
from threadbridge.memory.models import Extraction, StoredMemory
from threadbridge.memory.store import MemoryStore, _to_base36, generate_memory_id


def _store(tmp_path: Path, day: str = "2026-01-02") -> MemoryStore:
    return MemoryStore(tmp_path / "memory.json", today=lambda: day)


def test_explicit_goal_is_accepted() -> None:
    result = extract("goal: ship v1 by Friday")
    assert result.pending == []
    assert len(result.accepted) == 1
    item = result.accepted[0]
    assert item.kind == "goal"
    assert item.content == "ship v1 by Friday"
    assert item.confidence == 0.95
    assert item.category == "general"
    assert not item.sync_eligible


def test_soft_trigger_is_pending() -> None:
    result = extract("I want to learn rust this year")
    assert result.accepted == []
    assert len(result.pending) == 1
    item = result.pending[0]
    assert item.kind == "goal"
    assert item.content == "learn rust this year"
    assert item.confidence == 0.7
    assert item.category == "learning"


def test_fact_category_follows_taxonomy_order() -> None:
    result = extract("remember: my kids love the morning routine")
    item = result.accepted[0]
    assert item.kind == "fact"
    assert item.category == "family"
    assert item.sync_eligible


def test_one_message_can_yield_several_items() -> None:
    result = extract("idea: project: build a server dashboard")
    kinds = {item.kind: item for item in result.accepted}
    assert set(kinds) == {"idea", "project"}
    assert kinds["idea"].content == "project: build a server dashboard"
    assert kinds["idea"].category == "work"
    assert kinds["project"].content == "build a server dashboard"
    assert kinds["project"].category == "technical"


def test_plain_message_yields_nothing() -> None:
    result = extract("thanks, looks great")
    assert result.accepted == []
    assert result.pending == []


def test_detect_category_defaults_to_general() -> None:
    assert detect_category("Budget review on Monday") == "finance"
    assert detect_category("nothing in particular") == "general"


def test_memory_id_format() -> None:
    memory_id = generate_memory_id(clock=lambda: 1_700_000_000_000)
    assert re.fullmatch(r"mem-[0-9a-z]+-[0-9a-z]{4}", memory_id)
    assert memory_id.startswith(f"mem-{_to_base36(1_700_000_000_000)}-")
    assert _to_base36(35) == "z"
    assert _to_base36(36) == "10"


def test_capture_stores_and_dedupes(tmp_path: Path) -> None:
    store = _store(tmp_path)

    first = store.capture("goal: Ship v1 by Friday", channel_id="C0123456789", user_id="U1")
    second = store.capture("goal: ship V1 by friday", channel_id="C0123456789", user_id="U2")

    assert len(first.stored) == 1
    assert second.stored == []
    assert second.duplicates == 1
    memory = first.stored[0]
    assert memory.source == "slack:C0123456789"
    assert memory.date == "2026-01-02"
    assert not memory.synced

    data = json.loads((tmp_path / "memory.json").read_text())
    assert set(data) == {"goals", "facts", "challenges", "ideas", "projects"}
    assert data["goals"][0]["type"] == "goal"
    assert data["goals"][0]["userId"] == "U1"


def test_preferences_share_facts_partition(tmp_path: Path) -> None:
    store = _store(tmp_path)
    store.add(
        Extraction(kind="preference", content="short answers", confidence=0.85),
        channel_id="C1",
        user_id="U1",
    )
    assert [m.kind for m in store.partition("facts")] == ["preference"]
    assert store.stats() == {
        "total": 1,
        "byType": {"goals": 0, "facts": 1, "challenges": 0, "ideas": 0, "projects": 0},
        "unsynced": 1,
    }


def test_mark_synced_persists(tmp_path: Path) -> None:
    store = _store(tmp_path)
    stored = store.capture("idea: weekly digest", channel_id="C1", user_id="U1").stored
    assert store.mark_synced([m.id for m in stored]) == 1
    assert store.unsynced() == []

    reloaded = _store(tmp_path)
    memory = reloaded.all()[0]
    assert memory.synced
    assert memory.sync_date == "2026-01-02"


def test_load_accepts_legacy_sync_fields(tmp_path: Path) -> None:
    path = tmp_path / "memory.json"
    path.write_text(
        json.dumps(
            {
                "goals": [
                    {
                        "id": "mem-1",
                        "type": "goal",
                        "content": "run a marathon",
                        "category": "health",
                        "source": "slack:C1",
                        "channel": "C1",
                        "userId": "U1",
                        "date": "2025-12-01",
                        "confidence": 0.95,
                        "syncedToTelos": True,
                        "telosSyncDate": "2025-12-02",
                    }
                ]
            }
        )
    )
    memory = MemoryStore(path).all()[0]
    assert memory.synced
    assert memory.sync_date == "2025-12-02"
    assert memory.to_record()["syncDate"] == "2025-12-02"


def test_recent_filters_by_channel_newest_first(tmp_path: Path) -> None:
    store = _store(tmp_path, day="2026-01-01")
    store.capture("goal: older", channel_id="C1", user_id="U1")
    store._today = lambda: "2026-01-05"
    store.capture("fact: newer", channel_id="C1", user_id="U1")
    store.capture("fact: elsewhere", channel_id="C2", user_id="U1")

    assert [m.content for m in store.recent(channel_id="C1")] == ["newer", "older"]
    assert len(store.recent(limit=1)) == 1


def test_load_active_goals_skips_comments(tmp_path: Path) -> None:
    goals = tmp_path / "GOALS.md"
    goals.write_text(
        "# Goals\n\n## Active Goals\n\n- <!-- placeholder -->\n- ship v1\n- run 10k\n\n## Done\n\n- old goal\n"
    )
    assert load_active_goals(goals) == ["ship v1", "run 10k"]
    assert load_active_goals(tmp_path / "missing.md") == []


def test_context_builder_combines_goals_and_memories(tmp_path: Path) -> None:
    (tmp_path / "GOALS.md").write_text("## Active Goals\n- ship v1\n")
    store = _store(tmp_path)
    store.capture("challenge: flaky deploys", channel_id="C1", user_id="U1")

    builder = ContextBuilder(store, tmp_path)

    assert builder.build("C1") == (
        "**Active Goals:**\n- ship v1\n\n**Recent Context:**\n- [challenge] flaky deploys\n\n---\n"
    )
    assert builder.build("C2") == "**Active Goals:**\n- ship v1\n\n---\n"


def test_context_builder_empty_without_data(tmp_path: Path) -> None:
    assert ContextBuilder(_store(tmp_path), tmp_path).build("C1") == ""


def test_stored_memory_record_round_trip() -> None:
    memory = StoredMemory(
        id="mem-x",
        kind="idea",
        content="digest",
        category="general",
        source="slack:C1",
        channel="C1",
        user_id="U1",
        date="2026-01-01",
        confidence=0.95,
    )
    record = memory.to_record()
    assert "syncDate" not in record
    assert StoredMemory.from_record(record) == memory
