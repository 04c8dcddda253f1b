"""
Ensemble - coordination and learning runtime for a generative instrument.

Autonomous "mind" agents perceive shared signals, exchange mailbox
messages, choose actions through a learned preference model, and move
between musical states with probabilistic, dwell-gated state machines.

No audio, no rendering, no global registry.
All collaborators are injected by the host.
"""

__version__ = "0.1.0"

# Runtime and coordination
from .runtime import AgentRuntime
from .mesh import MessageMesh, DuplicateAgentError
from .events import NotificationBus, Directive, DirectiveKind
from .perception import SignalBoard, Signals, diff_perceptions
from .clock import Clock, MonotonicClock, VirtualClock

# Agents
from .agent import Agent
from .orchestrator import Orchestrator
from .agents import DynamicsAgent, TextureAgent, VoiceAgent

# Learning
from .learning import LearningState, Experience, PatternEntry, hash_perceptions
from .selection import select_actions, exploration_probability

# State machines
from .statemachine import (
    StateMachineController,
    StateMachineDescriptor,
    StateDefinition,
    ModeProfile,
    Transition,
    ease,
)

# Persistence
from .persistence import PersistenceStrategy, InMemoryPersistence, JsonPersistence

# Schemas
from .schemas import (
    AgentConfig,
    AgentState,
    Message,
    CandidateAction,
    ScoredAction,
    ActionRecord,
    MusicalForm,
    FormSection,
    AgentSnapshot,
    AgentStatusReport,
    TickReport,
)

# Descriptor loader helpers
from .scenario import DescriptorLoader, load_descriptor

__all__ = [
    # Runtime and coordination
    "AgentRuntime",
    "MessageMesh",
    "DuplicateAgentError",
    "NotificationBus",
    "Directive",
    "DirectiveKind",
    "SignalBoard",
    "Signals",
    "diff_perceptions",
    "Clock",
    "MonotonicClock",
    "VirtualClock",
    # Agents
    "Agent",
    "Orchestrator",
    "DynamicsAgent",
    "TextureAgent",
    "VoiceAgent",
    # Learning
    "LearningState",
    "Experience",
    "PatternEntry",
    "hash_perceptions",
    "select_actions",
    "exploration_probability",
    # State machines
    "StateMachineController",
    "StateMachineDescriptor",
    "StateDefinition",
    "ModeProfile",
    "Transition",
    "ease",
    # Persistence
    "PersistenceStrategy",
    "InMemoryPersistence",
    "JsonPersistence",
    # Schemas
    "AgentConfig",
    "AgentState",
    "Message",
    "CandidateAction",
    "ScoredAction",
    "ActionRecord",
    "MusicalForm",
    "FormSection",
    "AgentSnapshot",
    "AgentStatusReport",
    "TickReport",
    # Descriptor loader helpers
    "DescriptorLoader",
    "load_descriptor",
]
