"""Tests for the satellite agents: dynamics, texture and voice."""

import random

import pytest

from ensemble.agents import DynamicsAgent, TextureAgent, VoiceAgent
from ensemble.clock import VirtualClock
from ensemble.events import NotificationBus
from ensemble.presets import MOOD_VOICES

from conftest import RecordingAgent


def standalone(cls, agent_id, **kwargs):
    return cls(agent_id, clock=VirtualClock(), bus=NotificationBus(), rng=random.Random(1), **kwargs)


# ----------------------------------------------------------------------
# Dynamics
# ----------------------------------------------------------------------


def test_zone_influence_bends_characteristics():
    dynamics = standalone(DynamicsAgent, "dynamics")
    flat = {"volume": 0.5, "brightness": 0.5, "density": 0.5}

    assert dynamics.apply_zone_influence(flat) == flat

    dynamics.zone = "bottom-right"
    bent = dynamics.apply_zone_influence(flat)
    assert bent["volume"] == pytest.approx(0.5075)
    assert bent["brightness"] == pytest.approx(0.53)
    assert bent["density"] == pytest.approx(0.56)


def test_era_selects_energy_profile(runtime, make_agent, signals):
    signals.update(era="modern")
    dynamics = make_agent(DynamicsAgent, "dynamics")

    runtime.tick()

    assert dynamics.era == "modern"
    assert dynamics.controller.mode_name == "modern"
    assert dynamics.controller.target_state == "flowing"


def test_build_to_climax_schedules_rising_states():
    dynamics = standalone(DynamicsAgent, "dynamics")

    assert dynamics.build_to_climax(duration=30) == 5
    assert dynamics.controller.target_state == "contemplative"
    assert dynamics.controller.sequence_pending == 4

    dynamics.controller.force_state("climactic")
    assert dynamics.build_to_climax() == 0


def test_state_changes_are_reported(runtime, make_agent):
    conductor = make_agent(RecordingAgent, "orchestrator")
    dynamics = make_agent(DynamicsAgent, "dynamics")

    assert dynamics.follow_instruction({"instruction": "force_state", "state": "flowing"})

    reports = [m for m in conductor.mailbox if m.type == "report.state"]
    assert [m.payload["state"] for m in reports] == ["ambient", "flowing"]
    assert reports[-1].payload["level"] == pytest.approx(0.5)
    assert reports[-1].payload["voices"]["drums"] is True
    assert reports[-1].payload["voices"]["lead"] is True
    assert reports[0].payload["voices"]["drums"] is False


def test_granted_permission_starts_build(runtime, make_agent):
    conductor = make_agent(RecordingAgent, "orchestrator")
    dynamics = make_agent(DynamicsAgent, "dynamics")

    conductor.send("dynamics", "permission.response", {"action": "build_to_climax", "granted": False})
    dynamics.drain_mailbox()
    assert not dynamics.controller.sequence_pending
    assert not dynamics.controller.is_transitioning

    conductor.send("dynamics", "permission.response", {"action": "build_to_climax", "granted": True})
    dynamics.drain_mailbox()
    assert dynamics.controller.target_state == "contemplative"


def test_surging_activity_requests_permission(runtime, make_agent, signals):
    conductor = make_agent(RecordingAgent, "orchestrator")
    dynamics = make_agent(DynamicsAgent, "dynamics", exploration_rate=0.0)
    signals.update(activity=0.95)
    runtime.clock.set(11.0)

    runtime.tick()

    requests = [m for m in conductor.mailbox if m.type == "request.permission"]
    assert len(requests) == 1
    assert requests[0].payload == {"action": "build_to_climax"}
    assert dynamics.controller.target_state == "emerging"


def test_unknown_instruction_is_ignored():
    dynamics = standalone(DynamicsAgent, "dynamics")

    assert dynamics.follow_instruction({"instruction": "explode"}) is False
    assert dynamics.follow_instruction({"instruction": "auto", "enabled": False}) is True
    assert dynamics.controller.auto_transition is False


def test_characteristics_are_published_once_until_they_change(runtime, make_agent, bus):
    make_agent(DynamicsAgent, "dynamics")

    runtime.tick()
    runtime.clock.advance(0.05)
    runtime.tick()

    published = bus.recent("directive.characteristics.set")
    assert len(published) == 1
    assert published[0][1]["target"] == "dynamics"


# ----------------------------------------------------------------------
# Texture
# ----------------------------------------------------------------------


def test_era_activates_first_combination():
    texture = standalone(TextureAgent, "texture")

    texture.set_era("genesis")

    assert texture.active_combination == "cosmic_ambience"
    assert texture.active == {"void_hum": 1.0, "stellar_wind": 1.0, "cosmic_dust": 1.0}


def test_weakest_texture_is_evicted_at_capacity():
    texture = standalone(TextureAgent, "texture")
    texture.set_era("genesis")

    assert texture.add_texture("primordial_pulse", 0.4)
    assert len(texture.active) == 4
    assert texture.add_texture("emergence_tone")

    assert len(texture.active) == 4
    assert "primordial_pulse" not in texture.active
    assert texture.active["emergence_tone"] == pytest.approx(0.7)
    assert texture.bus.recent("directive.source.deactivate")[-1][1]["target"] == "primordial_pulse"


def test_unknown_texture_is_ignored():
    texture = standalone(TextureAgent, "texture")
    texture.set_era("genesis")

    assert texture.add_texture("tape_hiss") is False
    assert "tape_hiss" not in texture.active


def test_era_change_swaps_textures():
    texture = standalone(TextureAgent, "texture")
    texture.set_era("genesis")

    texture.set_era("modern")

    assert texture.active_combination == "lo_fi_bed"
    assert set(texture.active) == {"analog_warmth", "tape_hiss", "vinyl_crackle"}
    removed = {data["target"] for _, data in texture.bus.recent("directive.source.deactivate")}
    assert removed == {"void_hum", "stellar_wind", "cosmic_dust"}


def test_zone_reaction_depends_on_reactivity():
    eager = standalone(TextureAgent, "texture", reactivity=1.0)
    eager.set_era("genesis")
    eager.on_zone_change("center")
    actions = eager.candidate_actions()
    assert actions[0].type == "zone_texture"
    assert actions[0].get("texture") == "emergence_tone"

    eager.on_zone_change("top-left")
    assert eager.candidate_actions()[0].type == "boost_texture"

    calm = standalone(TextureAgent, "texture", reactivity=0.0)
    calm.set_era("genesis")
    calm.on_zone_change("center")
    assert calm.zone_associations == {"emergence_tone": {"center": 1}}
    assert all(action.type != "zone_texture" for action in calm.candidate_actions())


def test_empty_bed_starts_a_combination():
    texture = standalone(TextureAgent, "texture")
    texture.era = "tribal"

    actions = texture.candidate_actions()

    assert [action.type for action in actions] == ["start_combination"]
    assert texture.execute_action(actions[0]) is True
    assert texture.active_combination == "ritual_ground"


def test_texture_follows_instructions_and_mood(runtime, make_agent):
    conductor = make_agent(RecordingAgent, "orchestrator")
    texture = make_agent(TextureAgent, "texture")
    texture.set_era("sacred")

    conductor.send("texture", "instruction", {"instruction": "activate_combination", "combination": "meditation_space"})
    conductor.send("texture", "mood.apply", {"mood": "ecstatic", "characteristics": {"energy": 1.0}})
    texture.drain_mailbox()

    assert texture.active_combination == "meditation_space"
    assert texture.reactivity == pytest.approx(0.7)

    conductor.send("texture", "instruction", {"instruction": "stop_all"})
    texture.drain_mailbox()
    assert texture.active == {}


# ----------------------------------------------------------------------
# Voice
# ----------------------------------------------------------------------


def test_voice_applies_mood_plan_and_reports(runtime, make_agent, bus):
    conductor = make_agent(RecordingAgent, "orchestrator")
    drums = make_agent(VoiceAgent, "drums")

    conductor.send(
        "drums",
        "mood.apply",
        {"mood": "energetic", "characteristics": {"energy": 0.8}, "voices": MOOD_VOICES["energetic"]},
    )
    runtime.tick()

    assert drums.playing is True
    assert drums.sound_type == "driving"
    assert drums.intensity == pytest.approx(0.8)
    assert drums.state.mood == "energetic"
    activation = bus.recent("directive.source.activate")[-1][1]
    assert activation["target"] == "drums"
    assert activation["value"] == "driving"

    report = conductor.mailbox[-1]
    assert report.type == "report.state"
    assert report.payload["active"] is True


def test_voice_instructions(runtime, make_agent):
    conductor = make_agent(RecordingAgent, "orchestrator")
    bass = make_agent(VoiceAgent, "bass", sound_type="sub", playing=True)

    conductor.send("bass", "instruction", {"instruction": "change_type", "type": "drone"})
    conductor.send("bass", "instruction", {"instruction": "set_intensity", "value": 1.4})
    conductor.send("bass", "instruction", {"instruction": "deactivate"})
    bass.drain_mailbox()

    assert bass.sound_type == "drone"
    assert bass.intensity == 1.0
    assert bass.playing is False
    assert len([m for m in conductor.mailbox if m.type == "report.state"]) == 3
