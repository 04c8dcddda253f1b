"""Tests for the message mesh: delivery order, routing and unregistration."""

import pytest

from ensemble.clock import VirtualClock
from ensemble.mesh import DuplicateAgentError, MessageMesh

from conftest import RecordingAgent


def make_mesh(*ids):
    clock = VirtualClock()
    mesh = MessageMesh(clock=clock)
    agents = {agent_id: RecordingAgent(agent_id, clock=clock) for agent_id in ids}
    for agent in agents.values():
        mesh.register(agent)
    return mesh, agents


def test_mailbox_is_fifo_per_sender():
    mesh, agents = make_mesh("a", "b")

    for n in range(3):
        assert mesh.send("a", "b", "step", {"n": n})

    assert mesh.pending("b") == 3
    assert agents["b"].drain_mailbox() == 3
    assert [message.payload["n"] for message in agents["b"].received] == [0, 1, 2]
    assert all(message.sender == "a" for message in agents["b"].received)
    assert not agents["b"].mailbox


def test_send_to_unknown_recipient_is_silent_noop():
    mesh, agents = make_mesh("a")

    assert mesh.send("a", "ghost", "ping") is False
    assert agents["a"].send("ghost", "ping") is False
    # Still recorded in the sender's outbound log
    assert agents["a"].outbox[-1].recipient == "ghost"


def test_broadcast_reaches_everyone_but_sender():
    mesh, agents = make_mesh("a", "b", "c")

    assert mesh.broadcast("a", "hello", {"x": 1}) == 2
    assert not agents["a"].mailbox
    assert agents["b"].mailbox[0].type == "hello"
    assert agents["c"].mailbox[0].payload == {"x": 1}


def test_duplicate_registration_raises():
    mesh, _ = make_mesh("a")

    with pytest.raises(DuplicateAgentError):
        mesh.register(RecordingAgent("a"))


def test_unregister_with_pending_send_is_safe():
    mesh, agents = make_mesh("a", "b")
    a, b = agents["a"], agents["b"]
    a.start()

    assert b.send("a", "ping")
    assert mesh.unregister("a") is True

    assert not a.mailbox
    assert a.state.active is False
    assert a.mesh is None
    assert b.send("a", "ping") is False
    assert mesh.unregister("a") is False


def test_drain_handles_messages_sent_during_drain():
    mesh, agents = make_mesh("a")
    a = agents["a"]
    seen = []

    def handler(message):
        seen.append(message.type)
        if message.type == "first":
            mesh.send("a", "a", "second")

    mesh.send("a", "a", "first")
    assert mesh.drain("a", handler) == 2
    assert seen == ["first", "second"]
    assert not a.mailbox


def test_subscriptions_are_recorded_not_filtered():
    mesh, agents = make_mesh("a", "b")

    assert mesh.subscribe("b", "section")
    assert agents["b"].subscriptions == {"section"}

    mesh.send("a", "b", "mood")
    assert mesh.pending("b") == 1

    assert mesh.unsubscribe("b", "section")
    assert agents["b"].subscriptions == set()
    assert mesh.subscribe("ghost", "section") is False
