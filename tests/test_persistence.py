"""Tests for learning-state persistence backends."""

import json

import pytest

from ensemble.agents import DynamicsAgent
from ensemble.persistence import InMemoryPersistence, JsonPersistence
from ensemble.runtime import AgentRuntime
from ensemble.schemas import AgentSnapshot, PatternRecord


def sample_snapshot(agent_id="dynamics"):
    return AgentSnapshot(
        agent_id=agent_id,
        kind="dynamics",
        preferences={"nudge_up": 0.62},
        patterns={"activity:0.9|zone:center:nudge_up": PatternRecord(count=2, avg_reward=0.85)},
        avg_reward=0.7,
        confidence=0.55,
        current_state="flowing",
        dwell_time=12.5,
    )


@pytest.mark.asyncio
async def test_in_memory_round_trip_returns_copies():
    persistence = InMemoryPersistence()
    await persistence.initialize()
    snapshot = sample_snapshot()

    await persistence.save_snapshot("s1", snapshot)
    loaded = await persistence.load_snapshot("s1", "dynamics")
    loaded.preferences["nudge_up"] = 0.0

    again = await persistence.load_snapshot("s1", "dynamics")
    assert again.preferences["nudge_up"] == pytest.approx(0.62)
    assert await persistence.load_snapshot("s1", "ghost") is None
    assert await persistence.list_snapshots("s1") == ["dynamics"]

    await persistence.delete_session("s1")
    assert await persistence.list_snapshots("s1") == []


@pytest.mark.asyncio
async def test_json_backend_writes_one_file_per_agent(tmp_path):
    persistence = JsonPersistence(tmp_path)
    await persistence.initialize()

    await persistence.save_snapshot("night", sample_snapshot("dynamics"))
    await persistence.save_snapshot("night", sample_snapshot("texture"))

    path = tmp_path / "night" / "dynamics.json"
    assert path.exists()
    data = json.loads(path.read_text())
    assert data["current_state"] == "flowing"
    assert data["patterns"]["activity:0.9|zone:center:nudge_up"]["count"] == 2

    loaded = await persistence.load_snapshot("night", "dynamics")
    assert loaded == sample_snapshot("dynamics").model_copy(update={"saved_at": loaded.saved_at})
    assert await persistence.list_snapshots("night") == ["dynamics", "texture"]
    assert await persistence.load_snapshot("night", "ghost") is None

    await persistence.delete_session("night")
    assert not (tmp_path / "night").exists()
    assert await persistence.list_snapshots("night") == []


@pytest.mark.asyncio
async def test_runtime_restores_controller_state(clock, bus, signals, tmp_path):
    persistence = JsonPersistence(tmp_path)
    first = AgentRuntime(clock=clock, bus=bus, signals=signals, persistence=persistence)
    dynamics = first.register(DynamicsAgent("dynamics", first.mesh, clock=clock, bus=bus))
    dynamics.controller.force_state("building")
    dynamics.learning.record("ctx", "nudge_up", 0.9)
    clock.advance(4.0)

    assert await first.save_learning("evening") == 1

    second = AgentRuntime(clock=clock, bus=bus, signals=signals, persistence=persistence)
    restored = second.register(DynamicsAgent("dynamics", second.mesh, clock=clock, bus=bus))
    assert await second.load_learning("evening") == 1

    assert restored.controller.current_state == "building"
    assert restored.controller.dwell_time == pytest.approx(4.0)
    assert restored.get_preference("nudge_up") == pytest.approx(0.58)
    assert restored.learning.pattern("ctx", "nudge_up").count == 1


@pytest.mark.asyncio
async def test_missing_session_restores_nothing(clock, bus, signals):
    runtime = AgentRuntime(clock=clock, bus=bus, signals=signals)
    runtime.register(DynamicsAgent("dynamics", runtime.mesh, clock=clock, bus=bus))

    assert await runtime.load_learning("never-saved") == 0
