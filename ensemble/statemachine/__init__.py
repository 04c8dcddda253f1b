"""Probabilistic, dwell-gated state machines with eased transitions."""

from .controller import StateMachineController, interpolate, lerp, transition_probability
from .easing import CURVES, DEFAULT_CURVE, ease, get_curve
from .schemas import (
    ControllerSnapshot,
    ModeProfile,
    StateDefinition,
    StateMachineDescriptor,
    StateStats,
    Transition,
    TransitionRecord,
)

__all__ = [
    "StateMachineController",
    "interpolate",
    "lerp",
    "transition_probability",
    "CURVES",
    "DEFAULT_CURVE",
    "ease",
    "get_curve",
    "ControllerSnapshot",
    "ModeProfile",
    "StateDefinition",
    "StateMachineDescriptor",
    "StateStats",
    "Transition",
    "TransitionRecord",
]
