"""Tests for the orchestrator: permissions, era adaptation, form and reward."""

import pytest

from ensemble.agents import VoiceAgent
from ensemble.orchestrator import Orchestrator
from ensemble.schemas import ActionRecord, CandidateAction, FormSection, MusicalForm

from conftest import RecordingAgent


def tiny_forms():
    return {
        "tiny": MusicalForm(
            name="tiny",
            sections=[
                FormSection(name="a", length=2, dynamics=0.5),
                FormSection(name="b", length=2, dynamics=0.5),
            ],
        )
    }


def test_permission_request_gets_a_response(runtime, make_agent):
    make_agent(Orchestrator, "orchestrator")
    asker = make_agent(RecordingAgent, "dynamics")

    asker.send("orchestrator", "request.permission", {"action": "build_to_climax"})
    runtime.tick()

    responses = [m for m in asker.received if m.type == "permission.response"]
    assert len(responses) == 1
    payload = responses[0].payload
    assert payload["action"] == "build_to_climax"
    assert payload["granted"] is True
    assert set(payload["conditions"]) == {"dynamics", "tension", "mood"}


def test_build_is_denied_during_release_sections(clock):
    orchestrator = Orchestrator(clock=clock)
    orchestrator.set_form("build_up")
    orchestrator.section_index = 4

    assert orchestrator.section.name == "release"
    assert orchestrator.evaluate_permission("build_to_climax") is False
    assert orchestrator.evaluate_permission("boost") is False
    assert orchestrator.evaluate_permission("add_texture") is True


def test_unknown_form_is_rejected(clock):
    with pytest.raises(ValueError):
        Orchestrator(clock=clock, form="polka")

    orchestrator = Orchestrator(clock=clock)
    assert orchestrator.set_form("polka") is False
    assert orchestrator.form.name == "ambient"


def test_era_change_adapts_form_tempo_and_mood(runtime, make_agent, signals, bus):
    signals.update(era="modern")
    orchestrator = make_agent(Orchestrator, "orchestrator")
    drums = make_agent(VoiceAgent, "drums")
    orchestrator.manage("drums", kind="voice")
    committed = []
    bus.subscribe("directive.characteristics.set", lambda event, data: committed.append(data["params"]["mood"]))

    runtime.tick()

    assert orchestrator.era == "modern"
    assert orchestrator.form.name == "build_up"
    assert orchestrator.tempo == 120
    assert orchestrator.controller.target_state == "energetic"
    assert bus.recent("directive.tempo.set")[-1][1]["value"] == 120

    for _ in range(300):
        runtime.clock.advance(0.05)
        runtime.tick()

    assert orchestrator.current_mood == "energetic"
    assert orchestrator.state.mood == "energetic"
    assert drums.playing is True
    assert drums.sound_type == "driving"
    assert orchestrator.agent_states["drums"]["sound_type"] == "driving"
    assert committed == ["energetic"]


def test_tempo_is_clamped(clock, bus):
    orchestrator = Orchestrator(clock=clock, bus=bus)

    assert orchestrator.set_tempo(500) == 200
    assert orchestrator.set_tempo(5) == 40
    assert [data["value"] for _, data in bus.recent("directive.tempo.set")] == [200, 40]


def test_sections_advance_with_the_beat_and_loop(runtime, make_agent, signals, bus):
    orchestrator = make_agent(Orchestrator, "orchestrator", forms=tiny_forms(), form="tiny", exploration_rate=0.0)
    listener = make_agent(RecordingAgent, "listener")
    orchestrator.manage("listener")

    runtime.tick()
    assert orchestrator.section.name == "a"

    signals.update(beat=2)
    runtime.clock.advance(0.1)
    runtime.tick()
    assert orchestrator.section.name == "b"
    assert orchestrator.section_beat == 0

    signals.update(beat=4)
    runtime.clock.advance(0.1)
    runtime.tick()
    assert orchestrator.section.name == "a"
    assert orchestrator.loops == 1
    assert bus.recent("agent.orchestrator.form.complete")

    sections = [data["value"] for _, data in bus.recent("directive.section.transition")]
    assert sections == ["b", "a"]
    changes = [m.payload["section"] for m in listener.received if m.type == "section.change"]
    assert changes == ["b", "a"]
    assert orchestrator.managed_by_kind("recorder") == ["listener"]


def test_reward_mixes_engagement_coherence_and_responsiveness(clock):
    orchestrator = Orchestrator(clock=clock)
    orchestrator.activity_level = 0.5
    orchestrator.target_dynamics = 0.5
    record = ActionRecord(action=CandidateAction(type="dynamics_adjust"), timestamp=0.0)

    assert orchestrator.responsiveness() == 0.5
    assert orchestrator.calculate_reward(record) == pytest.approx(0.65)

    failed = ActionRecord(action=CandidateAction(type="dynamics_adjust"), failed=True)
    assert orchestrator.calculate_reward(failed) == 0.0


def test_responsiveness_counts_actions_per_event(clock):
    orchestrator = Orchestrator(clock=clock)
    orchestrator._record_event("zone")
    orchestrator._record_event("pattern")

    assert orchestrator.responsiveness() == 0.0

    orchestrator.action_history.append(ActionRecord(action=CandidateAction(type="x"), timestamp=clock.now()))
    assert orchestrator.responsiveness() == pytest.approx(0.5)

    clock.advance(31.0)
    orchestrator._record_event("zone")
    assert len(orchestrator.significant_events) == 1


def test_zone_and_unlock_changes_raise_activity(runtime, make_agent, signals, bus):
    orchestrator = make_agent(Orchestrator, "orchestrator")
    signals.update(zone="center")
    runtime.tick()
    assert orchestrator.activity_level == 0.0

    signals.update(zone="top-left", unlock="gate")
    runtime.clock.advance(0.1)
    runtime.tick()

    kinds = [kind for _, kind in orchestrator.significant_events]
    assert kinds == ["era", "zone", "unlock"]
    assert orchestrator.activity_level == pytest.approx(0.1)
    assert bus.recent("agent.orchestrator.unlock.celebration")


def test_voice_instructions_follow_the_mood_plan(clock):
    orchestrator = Orchestrator(clock=clock)
    orchestrator.manage("bass", kind="voice")
    orchestrator.manage("drums", kind="voice")
    orchestrator.agent_states["bass"] = {"role": "bass", "active": False, "sound_type": None}
    orchestrator.agent_states["drums"] = {"role": "drums", "active": False}
    orchestrator.agent_states["stranger"] = {"role": "bass", "active": False}

    assert orchestrator.generate_agent_instructions() == [{"agent": "bass", "instruction": "activate"}]

    orchestrator.agent_states["bass"] = {"role": "bass", "active": True, "sound_type": "drone"}
    assert orchestrator.generate_agent_instructions() == [
        {"agent": "bass", "instruction": "change_type", "type": "sub"}
    ]


def test_state_reports_and_suggestions_are_recorded(runtime, make_agent):
    orchestrator = make_agent(Orchestrator, "orchestrator")
    peer = make_agent(RecordingAgent, "peer")

    peer.send("orchestrator", "report.state", {"role": "harmony", "active": True})
    peer.send("orchestrator", "suggest.change", {"mood": "flowing"})
    peer.send("orchestrator", "gossip", {"x": 1})
    report = runtime.tick()

    assert orchestrator.agent_states["peer"] == {"role": "harmony", "active": True}
    assert orchestrator.suggestions[0]["suggestion"] == {"mood": "flowing"}
    assert orchestrator.suggestions[0]["source"] == "peer"
    assert not report.errors
    assert [m.type for m in peer.received] == []


def test_mood_requests_respect_successors(clock):
    orchestrator = Orchestrator(clock=clock)

    assert orchestrator.request_mood("ecstatic") is False
    assert orchestrator.request_mood("flowing") is True
    assert orchestrator.controller.target_state == "flowing"
    assert orchestrator.request_mood("ecstatic", force=True) is True


def test_suggest_mood_matches_activity(clock):
    orchestrator = Orchestrator(clock=clock)

    # serene (0.3) -> flowing (0.5) is the closest successor to 0.55
    assert orchestrator.suggest_mood(0.55) == "flowing"
    assert orchestrator.suggest_mood(0.3) is None
    assert orchestrator.suggest_mood(1.0) is None
