"""
Pydantic schemas for state-machine descriptors and transitions.

Descriptors are static configuration validated once, at construction or
load time. A descriptor that names an unknown successor, default state or
mode state fails with `pydantic.ValidationError` instead of surfacing as a
missing key in the middle of a performance.
"""

from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .easing import DEFAULT_CURVE, normalize_curve_name, CURVES


def check_curve(value: str) -> str:
    key = normalize_curve_name(value)
    if key not in CURVES:
        raise ValueError(f"unknown easing curve '{value}'")
    return key


class StateDefinition(BaseModel):
    """One named state: numeric vectors, legal successors and dwell range.

    `characteristics` and `intensities` are the vectors interpolated during
    transitions. `active` and `attributes` are opaque extras passed through to
    consumers (e.g. which sub-agent voices are switched on).
    """

    name: str = ""
    level: float = Field(0.0, ge=0.0, description="Position on the energy/intensity axis")
    description: str = ""
    characteristics: Dict[str, float] = Field(default_factory=dict)
    intensities: Dict[str, float] = Field(default_factory=dict, description="Sub-agent intensity per voice")
    active: Dict[str, bool] = Field(default_factory=dict, description="Sub-agent on/off per voice")
    successors: List[str] = Field(default_factory=list)
    dwell_range: Tuple[float, float] = Field((1.0, 5.0), description="[min, max] seconds before leaving")
    weight: float = Field(1.0, gt=0.0, description="Base preference weight when drawn as a successor")
    attributes: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("dwell_range")
    @classmethod
    def _check_dwell(cls, value: Tuple[float, float]) -> Tuple[float, float]:
        low, high = value
        if low < 0 or high < low:
            raise ValueError(f"dwell_range must satisfy 0 <= min <= max, got {value}")
        return value

    @property
    def min_dwell(self) -> float:
        return self.dwell_range[0]

    @property
    def max_dwell(self) -> float:
        return self.dwell_range[1]


class ModeProfile(BaseModel):
    """How a mode (era) biases the controller."""

    name: str = ""
    preferred_states: List[str] = Field(default_factory=list)
    max_state: Optional[str] = Field(None, description="Highest-level state reachable in this mode")
    transition_speed: float = Field(0.5, gt=0.0, description="Divides transition durations")
    volatility: float = Field(0.3, ge=0.0, le=1.0)
    default_state: Optional[str] = None


class StateMachineDescriptor(BaseModel):
    """Complete static configuration of one state machine."""

    name: str
    states: Dict[str, StateDefinition] = Field(..., min_length=1)
    default_state: str
    modes: Dict[str, ModeProfile] = Field(default_factory=dict)
    default_mode: Optional[str] = None
    curve: str = DEFAULT_CURVE
    base_duration: float = Field(2.0, ge=0.0, description="Seconds for a transition between equal levels")
    duration_per_level: float = Field(0.5, ge=0.0, description="Extra seconds per level of distance")
    transition_speed: float = Field(1.0, gt=0.0, description="Used when no mode is active")
    volatility: float = Field(0.3, ge=0.0, le=1.0, description="Used when no mode is active")
    decision_interval: float = Field(3.0, ge=0.0, description="Minimum seconds between probability draws")
    activity_decay: float = Field(0.95, ge=0.0, le=1.0, description="Activity multiplier per update without input")
    recency_penalty: float = Field(0.75, gt=0.0, le=1.0, description="Weight factor for returning to the previous state")

    @field_validator("curve")
    @classmethod
    def _normalize_curve(cls, value: str) -> str:
        return check_curve(value)

    @model_validator(mode="after")
    def _check_references(self) -> "StateMachineDescriptor":
        for key, state in self.states.items():
            if not state.name:
                state.name = key
            elif state.name != key:
                raise ValueError(f"state '{key}' declares mismatching name '{state.name}'")
            unknown = [target for target in state.successors if target not in self.states]
            if unknown:
                raise ValueError(f"state '{key}' lists unknown successors: {unknown}")

        if self.default_state not in self.states:
            raise ValueError(f"default_state '{self.default_state}' is not a declared state")

        for key, mode in self.modes.items():
            if not mode.name:
                mode.name = key
            referenced = list(mode.preferred_states)
            referenced += [s for s in (mode.max_state, mode.default_state) if s is not None]
            unknown = [s for s in referenced if s not in self.states]
            if unknown:
                raise ValueError(f"mode '{key}' references unknown states: {unknown}")

        if self.default_mode is not None and self.default_mode not in self.modes:
            raise ValueError(f"default_mode '{self.default_mode}' is not a declared mode")
        return self

    @property
    def max_level(self) -> float:
        return max(state.level for state in self.states.values())

    def state(self, name: str) -> StateDefinition:
        return self.states[name]


class Transition(BaseModel):
    """An in-flight move between two states.

    The start vectors are what the controller presented when the transition
    began, which equals the source state's static vectors unless a transition
    was retargeted mid-flight.
    """

    model_config = ConfigDict(populate_by_name=True)

    from_state: str = Field(..., alias="from")
    to_state: str = Field(..., alias="to")
    start_time: float
    duration: float = Field(..., ge=0.0)
    curve: str = DEFAULT_CURVE
    forced: bool = False
    start_characteristics: Dict[str, float] = Field(default_factory=dict)
    start_intensities: Dict[str, float] = Field(default_factory=dict)

    @field_validator("curve")
    @classmethod
    def _normalize_curve(cls, value: str) -> str:
        return check_curve(value)

    def progress(self, now: float) -> float:
        if self.duration <= 0:
            return 1.0
        return max(0.0, min(1.0, (now - self.start_time) / self.duration))


class TransitionRecord(BaseModel):
    """Entry of the bounded transition history."""

    model_config = ConfigDict(populate_by_name=True)

    from_state: Optional[str] = Field(None, alias="from")
    to_state: str = Field(..., alias="to")
    time: float
    forced: bool = False


class StateStats(BaseModel):
    """Learned per-state statistics, updated whenever the state is left."""

    weight: float = 1.0
    visits: int = 0
    dwell_total: float = 0.0
    avg_dwell: float = 0.0


class ControllerSnapshot(BaseModel):
    """Persisted controller shape."""

    current_state: str
    dwell_time: float = Field(0.0, ge=0.0)
    mode: Optional[str] = None
