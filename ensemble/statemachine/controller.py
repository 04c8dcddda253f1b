"""
Probabilistic, dwell-gated state-machine controller.

Moves a subject (the orchestrator's mood, a dynamics energy level, ...)
between the named states of a `StateMachineDescriptor` and presents
smoothly interpolated numeric characteristics while doing so.

Each `update()`:
1. Runs any scheduled sequence step that has come due
2. While a transition is in flight, advances progress = elapsed / duration,
   eases it, and interpolates every characteristic and intensity; at
   progress 1 the target is committed and dwell restarts at zero
3. Otherwise, once the current state's minimum dwell has passed (and the
   decision interval allows), draws against the transition probability and,
   on success, picks a weighted successor and starts a transition

Forced changes (`force_state`) skip the dwell gate, the draw and the
interpolation entirely.
"""

import random
from collections import deque
from typing import Callable, Deque, Dict, List, Optional, Tuple

from ..clock import Clock, MonotonicClock
from ..logging_utils import log_error, log_transition, verbose_enabled
from .easing import CURVES, ease, normalize_curve_name
from .schemas import (
    check_curve,
    ControllerSnapshot,
    ModeProfile,
    StateDefinition,
    StateMachineDescriptor,
    StateStats,
    Transition,
    TransitionRecord,
)

StateChangeListener = Callable[[Optional[str], str], None]
TransitionListener = Callable[[Transition], None]

DWELL_WEIGHT = 0.5
ACTIVITY_WEIGHT = 0.3
VOLATILITY_WEIGHT = 0.2
HIGH_ACTIVITY = 0.5
LOW_ACTIVITY = 0.2
RISE_BONUS = 1.5
FALL_BONUS = 1.3
PREFERRED_BONUS = 1.4


def lerp(start: float, end: float, t: float) -> float:
    """Interpolate so that t == 0 and t == 1 return the endpoints exactly."""
    return start * (1.0 - t) + end * t


def interpolate(start: Dict[str, float], end: Dict[str, float], t: float) -> Dict[str, float]:
    """Interpolate over the union of keys; a missing key counts as 0."""
    keys = list(start) + [key for key in end if key not in start]
    return {key: lerp(start.get(key, 0.0), end.get(key, 0.0), t) for key in keys}


def transition_probability(
    dwell_time: float,
    dwell_range: Tuple[float, float],
    activity: float,
    volatility: float,
) -> float:
    """Probability of leaving a state at this draw.

    Zero until `dwell_time` reaches the minimum dwell. Beyond it:
    dwell share (saturating at the maximum dwell) * 0.5 + activity * 2 * 0.3
    + volatility * 0.2, clamped to [0, 1].
    """
    min_dwell, max_dwell = dwell_range
    if dwell_time < min_dwell:
        return 0.0
    span = max_dwell - min_dwell
    dwell_share = 1.0 if span <= 0 else min(1.0, (dwell_time - min_dwell) / span)
    probability = (
        dwell_share * DWELL_WEIGHT
        + activity * 2 * ACTIVITY_WEIGHT
        + volatility * VOLATILITY_WEIGHT
    )
    return max(0.0, min(1.0, probability))


class StateMachineController:
    """Runs one descriptor against a clock and a random source.

    Attributes:
        descriptor: Static states, successors, dwell ranges and modes
        current_state: Committed state (always a member of the descriptor)
        previous_state: State committed before the current one
        transition: In-flight Transition, or None
        characteristics / intensities: Presented (interpolated) vectors
        activity: Last activity input in [0, 1]
        draw_count: Probability draws performed
        transition_count: Transitions started (forced changes excluded)
    """

    def __init__(
        self,
        descriptor: StateMachineDescriptor,
        *,
        clock: Optional[Clock] = None,
        rng: Optional[random.Random] = None,
        mode: Optional[str] = None,
        curve: Optional[str] = None,
        auto_transition: bool = True,
        history_size: int = 50,
        name: Optional[str] = None,
    ) -> None:
        self.descriptor = descriptor
        self.name = name or descriptor.name
        self.clock: Clock = clock or MonotonicClock()
        self.rng = rng or random.Random()
        self.curve = check_curve(curve) if curve else descriptor.curve
        self.auto_transition = auto_transition
        self.decision_interval = descriptor.decision_interval

        self.mode: Optional[ModeProfile] = None
        self.mode_name: Optional[str] = None

        self.current_state = descriptor.default_state
        self.previous_state: Optional[str] = None
        self.transition: Optional[Transition] = None
        self.activity = 0.0

        definition = descriptor.state(self.current_state)
        self.characteristics: Dict[str, float] = dict(definition.characteristics)
        self.intensities: Dict[str, float] = dict(definition.intensities)

        now = self.clock.now()
        self._entered_at = now
        self._frozen_dwell: Optional[float] = None
        self._last_draw: Optional[float] = None
        self._sequence: Deque[Tuple[float, str, float]] = deque()

        self.draw_count = 0
        self.transition_count = 0
        self.history: Deque[TransitionRecord] = deque(maxlen=history_size)
        self.stats: Dict[str, StateStats] = {
            key: StateStats(weight=state.weight) for key, state in descriptor.states.items()
        }

        self._state_listeners: List[StateChangeListener] = []
        self._transition_listeners: List[TransitionListener] = []

        initial_mode = mode or descriptor.default_mode
        if initial_mode is not None:
            self.set_mode(initial_mode)

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def is_transitioning(self) -> bool:
        return self.transition is not None

    @property
    def target_state(self) -> str:
        return self.transition.to_state if self.transition is not None else self.current_state

    @property
    def dwell_time(self) -> float:
        """Seconds spent in the current state, frozen while a transition runs."""
        if self._frozen_dwell is not None:
            return self._frozen_dwell
        return max(0.0, self.clock.now() - self._entered_at)

    @property
    def progress(self) -> float:
        if self.transition is None:
            return 0.0
        return self.transition.progress(self.clock.now())

    @property
    def volatility(self) -> float:
        return self.mode.volatility if self.mode is not None else self.descriptor.volatility

    @property
    def transition_speed(self) -> float:
        return self.mode.transition_speed if self.mode is not None else self.descriptor.transition_speed

    def state_definition(self, name: Optional[str] = None) -> StateDefinition:
        return self.descriptor.state(name or self.current_state)

    def transition_probability(self, activity: Optional[float] = None) -> float:
        """Probability a draw would trigger right now. Zero below minimum dwell."""
        level = self.activity if activity is None else max(0.0, min(1.0, activity))
        return transition_probability(
            self.dwell_time,
            self.state_definition().dwell_range,
            level,
            self.volatility,
        )

    def valid_successors(self) -> List[str]:
        """Legal successors of the current state within the mode's maximum level."""
        successors = self.state_definition().successors
        if self.mode is None or self.mode.max_state is None:
            return list(successors)
        ceiling = self.descriptor.state(self.mode.max_state).level
        return [name for name in successors if self.descriptor.state(name).level <= ceiling]

    def energy_level(self) -> float:
        """Current state's level normalized by the descriptor's highest level."""
        top = self.descriptor.max_level
        if top <= 0:
            return 0.0
        return self.state_definition().level / top

    def presented(self) -> Dict[str, Dict[str, float]]:
        return {
            "characteristics": dict(self.characteristics),
            "intensities": dict(self.intensities),
        }

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------

    def on_state_change(self, listener: StateChangeListener) -> None:
        self._state_listeners.append(listener)

    def on_transition_start(self, listener: TransitionListener) -> None:
        self._transition_listeners.append(listener)

    def _notify_state_change(self, previous: Optional[str], current: str) -> None:
        for listener in list(self._state_listeners):
            try:
                listener(previous, current)
            except Exception as exc:
                log_error(f"[{self.name}] state-change listener failed: {exc}")

    def _notify_transition_start(self, transition: Transition) -> None:
        for listener in list(self._transition_listeners):
            try:
                listener(transition)
            except Exception as exc:
                log_error(f"[{self.name}] transition listener failed: {exc}")

    # ------------------------------------------------------------------
    # Modes
    # ------------------------------------------------------------------

    def set_mode(self, name: str) -> bool:
        """Apply a mode profile.

        If the current (or targeted) state is not preferred in the new mode,
        a transition to the mode's default state starts, bypassing legality.
        """
        profile = self.descriptor.modes.get(name)
        if profile is None:
            log_error(f"[{self.name}] unknown mode '{name}' ignored")
            return False
        if name == self.mode_name:
            return True

        self.mode = profile
        self.mode_name = name
        if (
            profile.preferred_states
            and self.target_state not in profile.preferred_states
            and profile.default_state is not None
        ):
            self.transition_to(profile.default_state, override=True)
        return True

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def transition_duration(self, source: str, target: str) -> float:
        """(base + per_level * level distance) / transition speed, in seconds."""
        distance = abs(self.descriptor.state(target).level - self.descriptor.state(source).level)
        base = self.descriptor.base_duration + self.descriptor.duration_per_level * distance
        return base / self.transition_speed

    def transition_to(
        self,
        target: str,
        *,
        duration: Optional[float] = None,
        curve: Optional[str] = None,
        override: bool = False,
    ) -> bool:
        """Begin an eased transition towards `target`.

        Args:
            target: Destination state
            duration: Seconds; defaults to the level-distance rule
            curve: Easing curve name; defaults to the controller's curve
            override: Skip the successor-legality check

        Returns:
            False (and logs) for unknown or illegal targets, unknown curves,
            or when already there
        """
        if target not in self.descriptor.states:
            log_error(f"[{self.name}] unknown state '{target}' ignored")
            return False
        curve_name = normalize_curve_name(curve) if curve else self.curve
        if curve_name not in CURVES:
            log_error(f"[{self.name}] unknown easing curve '{curve}' ignored")
            return False
        if target == self.current_state and self.transition is None:
            return False
        if self.transition is not None and target == self.transition.to_state:
            return False
        if not override and target not in self._legal_targets():
            log_error(f"[{self.name}] illegal transition {self.current_state} -> {target} ignored")
            return False

        now = self.clock.now()
        if self.transition is None:
            self._record_exit(self.current_state, self.dwell_time)
            self._frozen_dwell = self.dwell_time

        source = self.current_state
        transition = Transition(
            from_state=source,
            to_state=target,
            start_time=now,
            duration=duration if duration is not None else self.transition_duration(source, target),
            curve=curve_name,
            forced=override,
            start_characteristics=dict(self.characteristics),
            start_intensities=dict(self.intensities),
        )
        self.transition = transition
        self.transition_count += 1
        self.history.append(TransitionRecord(from_state=source, to_state=target, time=now, forced=override))
        if verbose_enabled():
            log_transition(f"[{self.name}] {source} -> {target} over {transition.duration:.2f}s ({transition.curve})")
        self._notify_transition_start(transition)
        return True

    def _legal_targets(self) -> List[str]:
        legal = list(self.state_definition().successors)
        if self.transition is not None:
            # Mid-flight: may retarget to the in-flight target's successors or turn back
            legal += self.descriptor.state(self.transition.to_state).successors
            legal.append(self.current_state)
        return legal

    def force_state(self, target: str) -> bool:
        """Apply `target` immediately: no dwell gate, no draw, no interpolation."""
        if target not in self.descriptor.states:
            log_error(f"[{self.name}] unknown state '{target}' ignored")
            return False

        now = self.clock.now()
        if self.transition is None:
            self._record_exit(self.current_state, self.dwell_time)

        previous = self.current_state
        self._apply(target, now)
        self.history.append(TransitionRecord(from_state=previous, to_state=target, time=now, forced=True))
        self._notify_state_change(previous, target)
        return True

    def restore(self, state: str, dwell_time: float = 0.0) -> bool:
        """Put the controller back into a persisted state without notifications."""
        if state not in self.descriptor.states:
            log_error(f"[{self.name}] cannot restore unknown state '{state}'")
            return False
        self._apply(state, self.clock.now() - max(0.0, dwell_time))
        return True

    def _apply(self, target: str, entered_at: float) -> None:
        if target != self.current_state:
            self.previous_state = self.current_state
        definition = self.descriptor.state(target)
        self.current_state = target
        self.transition = None
        self._frozen_dwell = None
        self._entered_at = entered_at
        self.characteristics = dict(definition.characteristics)
        self.intensities = dict(definition.intensities)

    def _record_exit(self, state: str, dwell: float) -> None:
        stats = self.stats[state]
        stats.visits += 1
        stats.dwell_total += dwell
        stats.avg_dwell = stats.dwell_total / stats.visits

    # ------------------------------------------------------------------
    # Tick
    # ------------------------------------------------------------------

    def register_activity(self, intensity: float = 1.0) -> None:
        self.activity = min(1.0, self.activity + intensity * 0.1)

    def update(self, activity: Optional[float] = None) -> Optional[str]:
        """Advance the machine to the clock's current time.

        Args:
            activity: External activity in [0, 1]; when omitted the last value
                decays by the descriptor's activity_decay

        Returns:
            The state committed during this call, if any.
        """
        now = self.clock.now()
        if activity is not None:
            self.activity = max(0.0, min(1.0, activity))
        else:
            self.activity *= self.descriptor.activity_decay

        self._run_sequence(now)

        if self.transition is not None:
            return self._advance(now)

        if self.auto_transition and not self._sequence:
            self._maybe_draw(now)
        return None

    def _advance(self, now: float) -> Optional[str]:
        transition = self.transition
        t = transition.progress(now)
        weight = ease(transition.curve, t)
        target = self.descriptor.state(transition.to_state)
        self.characteristics = interpolate(transition.start_characteristics, target.characteristics, weight)
        self.intensities = interpolate(transition.start_intensities, target.intensities, weight)

        if t < 1.0:
            return None

        source = transition.from_state
        self._apply(transition.to_state, now)
        self.previous_state = source
        self._notify_state_change(source, self.current_state)
        return self.current_state

    def _maybe_draw(self, now: float) -> None:
        definition = self.state_definition()
        if self.dwell_time < definition.min_dwell:
            return
        if self._last_draw is not None and now - self._last_draw < self.decision_interval:
            return

        self._last_draw = now
        self.draw_count += 1
        if self.rng.random() >= self.transition_probability():
            return

        target = self.select_successor()
        if target is not None:
            self.transition_to(target)

    def successor_weights(self) -> Dict[str, float]:
        """Weights of the valid successors for the next draw."""
        current_level = self.state_definition().level
        preferred = self.mode.preferred_states if self.mode is not None else []
        weights: Dict[str, float] = {}
        for name in self.valid_successors():
            if name == self.current_state:
                continue
            weight = self.stats[name].weight
            level = self.descriptor.state(name).level
            if self.activity > HIGH_ACTIVITY and level > current_level:
                weight *= RISE_BONUS
            elif self.activity < LOW_ACTIVITY and level < current_level:
                weight *= FALL_BONUS
            if name in preferred:
                weight *= PREFERRED_BONUS
            if name == self.previous_state:
                weight *= self.descriptor.recency_penalty
            weights[name] = weight
        return weights

    def select_successor(self) -> Optional[str]:
        """Weighted random choice among valid successors; None when there are none."""
        weights = self.successor_weights()
        if not weights:
            return None
        names = list(weights)
        return self.rng.choices(names, weights=[weights[name] for name in names], k=1)[0]

    # ------------------------------------------------------------------
    # Guided movement
    # ------------------------------------------------------------------

    def nudge(self, direction: int) -> Optional[str]:
        """Transition to the nearest valid successor one step up or down in level."""
        current_level = self.state_definition().level
        if direction > 0:
            options = [s for s in self.valid_successors() if self.descriptor.state(s).level > current_level]
            pick = min(options, key=lambda s: self.descriptor.state(s).level, default=None)
        else:
            options = [s for s in self.valid_successors() if self.descriptor.state(s).level < current_level]
            pick = max(options, key=lambda s: self.descriptor.state(s).level, default=None)
        if pick is None or not self.transition_to(pick):
            return None
        return pick

    def schedule_sequence(self, states: List[str], total_duration: float) -> int:
        """Walk through `states` over `total_duration` seconds.

        Each step starts a legality-override transition lasting 80% of its
        slot. Automatic draws pause until the sequence is done.

        Returns:
            Number of steps scheduled (unknown states are dropped and logged).
        """
        known = [s for s in states if s in self.descriptor.states]
        for state in states:
            if state not in self.descriptor.states:
                log_error(f"[{self.name}] unknown state '{state}' dropped from sequence")
        self._sequence.clear()
        if not known:
            return 0

        step = max(0.0, total_duration) / len(known)
        start = self.clock.now()
        for index, state in enumerate(known):
            self._sequence.append((start + index * step, state, step * 0.8))
        self._run_sequence(start)
        return len(known)

    def cancel_sequence(self) -> None:
        self._sequence.clear()

    @property
    def sequence_pending(self) -> int:
        return len(self._sequence)

    def _run_sequence(self, now: float) -> None:
        while self._sequence and self._sequence[0][0] <= now:
            _, state, duration = self._sequence.popleft()
            self.transition_to(state, duration=duration, override=True)

    def reset(self) -> None:
        """Force the mode's default state (or the descriptor default) and clear activity."""
        self.cancel_sequence()
        default = None
        if self.mode is not None:
            default = self.mode.default_state
        self.force_state(default or self.descriptor.default_state)
        self.activity = 0.0

    # ------------------------------------------------------------------
    # Snapshots
    # ------------------------------------------------------------------

    def snapshot(self) -> ControllerSnapshot:
        return ControllerSnapshot(
            current_state=self.current_state,
            dwell_time=self.dwell_time,
            mode=self.mode_name,
        )

    def __repr__(self) -> str:
        return (
            f"StateMachineController(name={self.name!r}, state={self.current_state!r}, "
            f"target={self.target_state!r}, dwell={self.dwell_time:.2f})"
        )
