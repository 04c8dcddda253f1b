"""Shared fixtures: a virtual clock and a runtime wired around it."""

import random
from typing import List

import pytest

from ensemble.agent import Agent
from ensemble.clock import VirtualClock
from ensemble.events import NotificationBus
from ensemble.perception import SignalBoard
from ensemble.runtime import AgentRuntime
from ensemble.schemas import Message


class RecordingAgent(Agent):
    """Agent that keeps every message it handles."""

    kind = "recorder"

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.received: List[Message] = []

    def handle_message(self, message: Message) -> None:
        self.received.append(message)


@pytest.fixture
def clock() -> VirtualClock:
    return VirtualClock()


@pytest.fixture
def bus() -> NotificationBus:
    return NotificationBus()


@pytest.fixture
def signals() -> SignalBoard:
    return SignalBoard()


@pytest.fixture
def runtime(clock, bus, signals) -> AgentRuntime:
    return AgentRuntime(clock=clock, bus=bus, signals=signals, update_interval=0.05)


@pytest.fixture
def make_agent(runtime):
    """Build and register an agent on the shared runtime with a seeded rng."""

    def factory(cls, agent_id, **kwargs):
        kwargs.setdefault("rng", random.Random(f"test:{agent_id}"))
        agent = cls(
            agent_id,
            runtime.mesh,
            bus=runtime.bus,
            signals=runtime.signals,
            clock=runtime.clock,
            **kwargs,
        )
        return runtime.register(agent)

    return factory
