"""Tests for the signal board, perception diffing and the notification bus."""

from ensemble.events import Directive, DirectiveKind, NotificationBus
from ensemble.perception import SignalBoard, diff_perceptions

from conftest import RecordingAgent


def test_signal_board_clamps_activity_and_keeps_extras():
    board = SignalBoard()

    board.update(activity=1.7, zone="center", pattern="spiral")

    perception = board.as_perception()
    assert perception["activity"] == 1.0
    assert perception["zone"] == "center"
    assert perception["pattern"] == "spiral"
    assert board.era == "genesis"

    board.update(activity=-3)
    assert board.activity == 0.0
    assert board.as_perception()["pattern"] == "spiral"


def test_first_perception_marks_every_key_changed():
    changes = diff_perceptions(None, {"zone": "center", "activity": 0.2})

    assert set(changes) == {"zone", "activity"}
    assert changes["zone"].previous is None


def test_diff_reports_only_changed_keys():
    previous = {"zone": "center", "activity": 0.2, "era": "genesis"}
    current = {"zone": "top-left", "activity": 0.2}

    changes = diff_perceptions(previous, current)

    assert list(changes) == ["zone"]
    assert changes["zone"].previous == "center"
    assert changes["zone"].current == "top-left"


def test_agent_perception_history_tracks_changes(runtime, make_agent, signals):
    agent = make_agent(RecordingAgent, "listener")
    signals.update(zone="center")
    runtime.tick()
    signals.update(zone="bottom-left")
    runtime.clock.advance(0.05)
    runtime.tick()

    assert agent.has_changed("zone")
    assert agent.get_change("zone").previous == "center"
    assert not agent.has_changed("era")
    assert len(agent.perception_history) == 2
    assert agent.get_perception("zone") == "bottom-left"


def test_bus_patterns_and_unsubscribe():
    bus = NotificationBus()
    seen = []
    unsubscribe = bus.subscribe("directive.*", lambda event, data: seen.append(event))

    directive = Directive(kind=DirectiveKind.TEMPO_SET, source="orchestrator", value=120)
    assert bus.publish_directive(directive) == 1
    assert bus.publish("agent.x.action") == 0

    unsubscribe()
    bus.publish_directive(directive)
    assert seen == ["directive.tempo.set"]
    assert len(bus.recent("directive.*")) == 2


def test_failing_listener_does_not_block_others(capsys):
    bus = NotificationBus()
    seen = []
    bus.subscribe("error", lambda event, data: 1 / 0)
    bus.subscribe("error", lambda event, data: seen.append(data["step"]))

    assert bus.publish("error", {"step": "act"}) == 1
    assert seen == ["act"]
    assert "[!]" in capsys.readouterr().out
