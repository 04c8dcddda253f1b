"""
Inbound signals and perception diffing.

The core consumes only abstract numeric signals from the input, clock and
synthesis layers. Hosts write those signals into a `SignalBoard`; every
agent reads a flat snapshot of the board during its perceive step.

Signals pulled each tick:
- zone: discretized input-zone identifier (None while nothing is touched)
- activity: continuous [0, 1] activity/energy level of the performer
- era: mode tag selecting which state-machine profile applies
- beat / measure: raw timing counters from the external clock
- bpm: tempo reported by the external clock
- extras: free-form host-specific values

Usage:
    board = SignalBoard()
    board.update(zone="center", activity=0.7)
    perception = board.as_perception()
    changes = diff_perceptions(previous, perception)
"""

import threading
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field

from .schemas import PerceptionChange


class Signals(BaseModel):
    """Immutable view of the signal board at one instant."""

    zone: Optional[str] = None
    activity: float = Field(0.0, ge=0.0, le=1.0)
    era: str = "genesis"
    beat: int = Field(0, ge=0)
    measure: int = Field(0, ge=0)
    bpm: float = Field(90.0, gt=0)
    extras: Dict[str, Any] = Field(default_factory=dict)


class SignalBoard:
    """Thread-safe holder for the latest inbound signals.

    Written by the host (input handlers, audio clock), read by agents. The
    activity value is clamped to [0, 1] on write; unknown keyword arguments
    land in `extras`.
    """

    _FIELDS = ("zone", "activity", "era", "beat", "measure", "bpm")

    def __init__(self, **initial: Any) -> None:
        self._lock = threading.Lock()
        self._signals = Signals()
        if initial:
            self.update(**initial)

    def update(self, **values: Any) -> Signals:
        with self._lock:
            data = self._signals.model_dump()
            extras = dict(data.pop("extras"))
            for key, value in values.items():
                if key == "activity" and value is not None:
                    value = max(0.0, min(1.0, float(value)))
                if key in self._FIELDS:
                    data[key] = value
                else:
                    extras[key] = value
            self._signals = Signals(**data, extras=extras)
            return self._signals

    def snapshot(self) -> Signals:
        with self._lock:
            return self._signals

    def as_perception(self) -> Dict[str, Any]:
        """Flatten the board into the dict shape agents perceive."""
        signals = self.snapshot()
        data = signals.model_dump(exclude={"extras"})
        data.update(signals.extras)
        return data

    # Convenience accessors used by agents
    @property
    def zone(self) -> Optional[str]:
        return self.snapshot().zone

    @property
    def activity(self) -> float:
        return self.snapshot().activity

    @property
    def era(self) -> str:
        return self.snapshot().era


def diff_perceptions(
    previous: Optional[Dict[str, Any]],
    current: Dict[str, Any],
) -> Dict[str, PerceptionChange]:
    """Return the keys whose value differs between two perceptions.

    Keys missing from `previous` count as changed (previous value None).
    Keys dropped from `current` are not reported. On the very first
    perception every key is a change.
    """
    previous = previous or {}
    changes: Dict[str, PerceptionChange] = {}
    for key, value in current.items():
        old = previous.get(key)
        if key not in previous or old != value:
            changes[key] = PerceptionChange(key=key, previous=old, current=value)
    return changes
