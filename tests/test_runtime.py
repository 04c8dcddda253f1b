"""Tests for the agent runtime: pipeline order, isolation and scheduling."""

import itertools

import pytest

from ensemble.agent import Agent
from ensemble.persistence import InMemoryPersistence
from ensemble.runtime import AgentRuntime
from ensemble.schemas import CandidateAction

from conftest import RecordingAgent


class FaultyAgent(Agent):
    """Fails in perceive, act and the update hook on every tick."""

    kind = "faulty"

    def perceive(self):
        raise RuntimeError("sensor offline")

    def candidate_actions(self):
        return [CandidateAction(type="explode", priority=0.9)]

    def execute_action(self, action):
        raise RuntimeError("boom")

    def on_update(self, dt):
        raise RuntimeError("hook failed")


class CountingAgent(Agent):
    """Always proposes one action and remembers how often it acted."""

    kind = "counter"

    def __init__(self, *args, reward=0.5, **kwargs):
        super().__init__(*args, **kwargs)
        self.reward = reward
        self.executed = 0

    def candidate_actions(self):
        return [CandidateAction(type="count", priority=0.5)]

    def execute_action(self, action):
        self.executed += 1
        return self.executed

    def calculate_reward(self, record):
        return self.reward


def test_ping_is_delivered_in_one_tick(runtime, make_agent):
    a = make_agent(RecordingAgent, "a", kind="x")
    b = make_agent(RecordingAgent, "b", kind="y")

    assert a.send("b", "ping")
    report = runtime.tick()

    assert report.ran == ["a", "b"]
    assert not b.mailbox
    assert len(b.received) == 1
    assert b.received[0].type == "ping"
    assert b.received[0].sender == "a"
    assert runtime.agents_by_kind("y") == [b]


def test_one_failing_agent_never_stops_the_others(runtime, make_agent, bus):
    errors = []
    bus.subscribe("error", lambda event, data: errors.append(data))
    bad = make_agent(FaultyAgent, "bad")
    good = make_agent(CountingAgent, "good")

    first = runtime.tick()
    runtime.clock.advance(0.05)
    second = runtime.tick()

    assert first.ran == ["bad", "good"]
    assert second.ran == ["bad", "good"]
    assert good.executed == 2
    steps = [step for agent_id, step, _ in first.errors if agent_id == "bad"]
    assert steps == ["perceive", "act", "update"]
    assert {data["step"] for data in errors} == {"perceive", "act", "update"}

    # The failed action is recorded with no result and earns nothing
    assert bad.last_action.failed is True
    assert bad.last_action.result is None
    assert bad.learning.preference("explode") < 0.5


class FlakySensorAgent(Agent):
    """Reads its sensor once, then the sensor goes offline."""

    kind = "flaky"

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.reads = 0

    def perceive(self):
        self.reads += 1
        if self.reads > 1:
            raise RuntimeError("sensor offline")
        return {"zone": "center", "activity": 0.3}


def test_failed_perception_reuses_last_good_snapshot(runtime, make_agent):
    agent = make_agent(FlakySensorAgent, "flaky")

    first = runtime.tick()
    assert first.errors == []
    assert agent.has_changed("zone")

    runtime.clock.advance(0.05)
    second = runtime.tick()

    assert [(agent_id, step) for agent_id, step, _ in second.errors] == [("flaky", "perceive")]
    assert agent.perception == {"zone": "center", "activity": 0.3}
    assert agent.changes == {}
    assert not agent.has_changed("zone")
    assert agent.perception_history[-1].data == {"zone": "center", "activity": 0.3}


def test_paused_agent_keeps_queueing_messages(runtime, make_agent):
    a = make_agent(RecordingAgent, "a")
    b = make_agent(RecordingAgent, "b")
    b.pause()

    a.send("b", "one")
    a.send("b", "two")
    report = runtime.tick()

    assert "b" not in report.ran
    assert len(b.mailbox) == 2

    b.resume()
    runtime.clock.advance(0.05)
    runtime.tick()
    assert [message.type for message in b.received] == ["one", "two"]


def test_agents_run_at_their_own_interval(runtime, make_agent):
    slow = make_agent(CountingAgent, "slow", update_interval=0.1)
    fast = make_agent(CountingAgent, "fast")

    for _ in range(4):
        runtime.tick()
        runtime.clock.advance(0.05)

    assert fast.tick_count == 4
    assert slow.tick_count == 2


def test_tick_budget_defers_non_critical_agents(clock, bus, signals):
    counter = itertools.count()
    runtime = AgentRuntime(
        clock=clock, bus=bus, signals=signals, update_interval=0.05, tick_budget=0.5,
        timer=lambda: next(counter),
    )
    critical = runtime.register(CountingAgent("critical", runtime.mesh, clock=clock, bus=bus))
    optional = CountingAgent("optional", runtime.mesh, clock=clock, bus=bus)
    optional.critical = False
    runtime.register(optional)

    report = runtime.tick()

    assert report.ran == ["critical"]
    assert report.deferred == ["optional"]
    assert critical.executed == 1
    assert optional.executed == 0


def test_unregister_mid_tick_skips_the_removed_agent(runtime, make_agent):
    class Remover(RecordingAgent):
        def on_update(self, dt):
            self.mesh.unregister("victim")

    make_agent(Remover, "remover")
    victim = make_agent(RecordingAgent, "victim")

    report = runtime.tick()

    assert report.ran == ["remover"]
    assert victim.tick_count == 0
    assert runtime.get("victim") is None


@pytest.mark.asyncio
async def test_run_advances_virtual_clock(runtime, make_agent):
    agent = make_agent(CountingAgent, "counter")
    seen = []
    runtime.add_tick_listener(lambda tick, report: seen.append(tick))

    result = await runtime.run(num_ticks=5)

    assert result == {"ticks": 5, "errors": 0}
    assert seen == [1, 2, 3, 4, 5]
    assert runtime.clock.now() == pytest.approx(0.25)
    assert agent.executed == 5
    assert runtime.running is False


@pytest.mark.asyncio
async def test_stop_from_listener_ends_run(runtime, make_agent):
    make_agent(CountingAgent, "counter")

    def listener(tick, report):
        if tick == 3:
            runtime.stop()

    runtime.add_tick_listener(listener)
    result = await runtime.run()

    assert result["ticks"] == 3


def test_listener_failure_is_logged_not_raised(runtime, make_agent, capsys):
    make_agent(CountingAgent, "counter")
    runtime.add_tick_listener(lambda tick, report: 1 / 0)

    report = runtime.tick()

    assert report.ran == ["counter"]
    assert "Tick listener failed" in capsys.readouterr().out


def test_factory_creates_registered_agents(runtime):
    runtime.register_kind("counter", CountingAgent)

    agent = runtime.create("counter", "c1", reward=0.9)

    assert isinstance(agent, CountingAgent)
    assert agent.state.active
    assert agent.bus is runtime.bus
    assert agent.signals is runtime.signals
    assert runtime.get("c1") is agent
    assert runtime.create("unknown-kind", "c2") is None


def test_bulk_controls(runtime, make_agent):
    a = make_agent(CountingAgent, "a")
    b = make_agent(CountingAgent, "b")

    runtime.pause_all()
    assert runtime.tick().ran == []

    runtime.resume_all()
    runtime.stop_all()
    assert not a.state.active and not b.state.active

    runtime.start_all()
    assert runtime.tick().ran == ["a", "b"]


@pytest.mark.asyncio
async def test_learning_survives_save_and_load(clock, bus, signals):
    persistence = InMemoryPersistence()
    first = AgentRuntime(clock=clock, bus=bus, signals=signals, persistence=persistence, update_interval=0.05)
    trained = first.register(CountingAgent("learner", first.mesh, clock=clock, bus=bus, reward=1.0))
    await first.run(num_ticks=10)

    assert await first.save_learning("session") == 1

    second = AgentRuntime(clock=clock, bus=bus, signals=signals, persistence=persistence, update_interval=0.05)
    fresh = second.register(CountingAgent("learner", second.mesh, clock=clock, bus=bus))
    assert await second.load_learning("session") == 1

    assert fresh.get_preference("count") == pytest.approx(trained.get_preference("count"))
    assert fresh.learning.avg_reward == pytest.approx(trained.learning.avg_reward)
    assert fresh.state.confidence == pytest.approx(trained.state.confidence)
