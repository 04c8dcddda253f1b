"""Time sources for the runtime and the state-machine controllers.

Every time-dependent component takes a clock instead of calling `time`
directly, so tests and offline renders can advance time by hand.
"""

import time
from typing import Protocol


class Clock(Protocol):
    def now(self) -> float:
        """Current time in seconds."""
        ...


class MonotonicClock:
    """Wall clock based on `time.monotonic`."""

    def now(self) -> float:
        return time.monotonic()


class VirtualClock:
    """Manually advanced clock.

    Example:
        clock = VirtualClock()
        controller = StateMachineController(descriptor, clock=clock)
        clock.advance(1.5)
        controller.update(activity=1.0)
    """

    def __init__(self, start: float = 0.0) -> None:
        self._now = float(start)

    def now(self) -> float:
        return self._now

    def advance(self, seconds: float) -> float:
        if seconds < 0:
            raise ValueError("VirtualClock cannot move backwards")
        self._now += seconds
        return self._now

    def set(self, value: float) -> None:
        if value < self._now:
            raise ValueError("VirtualClock cannot move backwards")
        self._now = float(value)
