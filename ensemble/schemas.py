"""
Pydantic schemas for the Ensemble runtime.

Data structures shared by the mesh, the agent pipeline, the learning
subsystem, and the persistence layer are defined here.

Design Philosophy:
- Messages are immutable once created (frozen models)
- Bounded scalars are validated on every assignment, so an agent can never
  hold an energy or confidence outside [0, 1]
- Candidate actions carry arbitrary type-specific fields via `params`
- Snapshot models are JSON-compatible so persistence backends stay trivial
"""

import time
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from .config import Config


# ============================================================================
# Agent Configuration & State
# ============================================================================


class AgentConfig(BaseModel):
    """Per-agent tuning knobs.

    Defaults come from `Config` (environment driven); explicit keyword
    arguments win. The decay rates are expressed per second of elapsed time.
    """

    update_interval: float = Field(
        default_factory=lambda: Config.UPDATE_RATE_MS / 1000.0,
        gt=0,
        description="Minimum seconds between two pipeline runs for this agent",
    )
    history_length: int = Field(
        default_factory=lambda: Config.HISTORY_LENGTH,
        ge=1,
        description="Length of the perception and action histories",
    )
    learning_rate: float = Field(
        default_factory=lambda: Config.LEARNING_RATE,
        ge=0.0,
        le=1.0,
        description="Weight of the newest reward in the running average",
    )
    exploration_rate: float = Field(
        default_factory=lambda: Config.EXPLORATION_RATE,
        ge=0.0,
        le=1.0,
        description="Base probability of picking a random candidate",
    )
    energy_decay: float = Field(0.01, ge=0.0, description="Energy lost per second")
    focus_decay: float = Field(0.005, ge=0.0, description="Focus lost per second")
    max_actions: int = Field(
        default_factory=lambda: Config.MAX_ACTIONS,
        ge=1,
        description="Maximum number of actions executed in one tick",
    )
    verbose: bool = Field(
        default_factory=lambda: Config.VERBOSE,
        description="Print routine agent chatter",
    )


class AgentState(BaseModel):
    """Mutable runtime state of one agent.

    Assignment is validated, so out-of-range writes raise instead of silently
    corrupting the state. Use the clamping setters on `Agent` for arithmetic.
    """

    model_config = ConfigDict(validate_assignment=True)

    active: bool = Field(False, description="True between start() and stop()")
    paused: bool = Field(False, description="Paused agents keep their mailbox but skip ticks")
    energy: float = Field(0.5, ge=0.0, le=1.0)
    focus: float = Field(0.5, ge=0.0, le=1.0)
    creativity: float = Field(0.5, ge=0.0, le=1.0)
    confidence: float = Field(0.5, ge=0.0, le=1.0)
    mood: str = Field("neutral", description="Free-form mood label")


# ============================================================================
# Messaging
# ============================================================================


class Message(BaseModel):
    """One mailbox entry. Never mutated after creation.

    The wire names `from` and `to` are Python keywords, so the attributes are
    `sender` and `recipient` with aliases for (de)serialization.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    sender: str = Field(..., alias="from", description="Sending agent id")
    recipient: str = Field(..., alias="to", description="Receiving agent id")
    type: str = Field(..., description="Message type, e.g. 'ping' or 'mood.apply'")
    payload: Dict[str, Any] = Field(default_factory=dict)
    timestamp: float = Field(default_factory=time.time)


# ============================================================================
# Decision Pipeline
# ============================================================================


class CandidateAction(BaseModel):
    """Ephemeral action proposal produced by an agent's decide step."""

    type: str = Field(..., description="Action type; keys the preference map")
    priority: float = Field(0.5, ge=0.0, description="Agent-specific base priority")
    params: Dict[str, Any] = Field(default_factory=dict, description="Type-specific fields")

    def get(self, key: str, default: Any = None) -> Any:
        return self.params.get(key, default)


class ScoredAction(BaseModel):
    """Candidate paired with its final score for this tick."""

    action: CandidateAction
    score: float


class ActionRecord(BaseModel):
    """Result of executing one selected action."""

    action: CandidateAction
    result: Any = None
    failed: bool = False
    timestamp: float = Field(default_factory=time.time)


class PerceptionChange(BaseModel):
    """One key whose value differs from the previous perception."""

    key: str
    previous: Any = None
    current: Any = None


class PerceptionSnapshot(BaseModel):
    """Perception recorded at one tick together with its changes."""

    timestamp: float
    data: Dict[str, Any] = Field(default_factory=dict)
    changes: Dict[str, PerceptionChange] = Field(default_factory=dict)


# ============================================================================
# Musical Structure
# ============================================================================


class FormSection(BaseModel):
    """One section of a musical form."""

    name: str
    length: int = Field(..., gt=0, description="Section length in beats")
    dynamics: float = Field(0.5, ge=0.0, le=1.0)


class MusicalForm(BaseModel):
    """Ordered sections that the orchestrator walks through and loops."""

    name: str
    sections: List[FormSection] = Field(..., min_length=1)
    transition_style: str = Field("smooth", description="Opaque hint for renderers")

    def section(self, index: int) -> FormSection:
        return self.sections[index % len(self.sections)]

    @property
    def total_length(self) -> int:
        return sum(section.length for section in self.sections)


# ============================================================================
# Snapshots & Status
# ============================================================================


class PatternRecord(BaseModel):
    """Serialized pattern-table entry."""

    count: int = 0
    avg_reward: float = 0.0


class AgentSnapshot(BaseModel):
    """Persisted learning shape for one agent.

    `current_state` and `dwell_time` are only populated for agents that drive
    a state-machine controller.
    """

    agent_id: str
    kind: str
    preferences: Dict[str, float] = Field(default_factory=dict)
    patterns: Dict[str, PatternRecord] = Field(default_factory=dict)
    avg_reward: float = 0.5
    confidence: float = Field(0.5, ge=0.0, le=1.0)
    current_state: Optional[str] = None
    dwell_time: float = 0.0
    saved_at: float = Field(default_factory=time.time)


class AgentStatusReport(BaseModel):
    """Summary returned by `Agent.get_status()`."""

    agent_id: str
    kind: str
    active: bool
    paused: bool
    energy: float
    focus: float
    creativity: float
    confidence: float
    mood: str
    mailbox_size: int
    history_size: int
    action_count: int
    avg_reward: float
    patterns_learned: int
    subscriptions: List[str] = Field(default_factory=list)
    extra: Dict[str, Any] = Field(default_factory=dict, description="Kind-specific details")


class TickReport(BaseModel):
    """Outcome of one runtime timer firing."""

    tick: int
    ran: List[str] = Field(default_factory=list)
    deferred: List[str] = Field(default_factory=list)
    errors: List[Tuple[str, str, str]] = Field(
        default_factory=list, description="(agent_id, step, message) per caught error"
    )
