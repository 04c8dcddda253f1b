"""
Agent base class: one autonomous perceive/decide/act/learn unit.

Subclasses override a handful of hooks; the pipeline itself is driven by
`AgentRuntime`, which calls the step methods below in a fixed order and
isolates failures:

1. perceive_step   - read signals, diff against previous snapshot, record history
2. drain_mailbox   - dispatch every queued message in arrival order
3. decide_step     - enumerate, score and select candidate actions
4. act_step        - execute the selection, record results, emit notifications
5. learn_step      - fold rewards into the learning state, adjust confidence
6. decay_step      - reduce energy and focus by elapsed time
7. on_update       - agent-specific hook

Hooks for subclasses:
    perceive()              -> dict of current observations
    handle_message(msg)     -> react to one mailbox message
    candidate_actions()     -> list of CandidateAction
    evaluate_action(action) -> base score (defaults to the action's priority)
    refine(selected, dt)    -> final selection (defaults to unchanged)
    execute_action(action)  -> result
    calculate_reward(rec)   -> reward in [0, 1]
    learn(experiences)      -> extra learning
    on_start / on_stop / on_update(dt)

Collaborators (mesh, bus, signal board, clock, random source) are injected at
construction; an agent never reaches for global state.
"""

import random
from collections import deque
from typing import TYPE_CHECKING, Any, Deque, Dict, FrozenSet, List, Optional, Set

from .clock import Clock, MonotonicClock
from .config import Config
from .events import Directive, DirectiveKind, NotificationBus
from .learning import Experience, LearningState, PatternEntry, hash_perceptions
from .logging_utils import colored, Color, log_deterministic, log_error, verbose_enabled
from .perception import SignalBoard, diff_perceptions
from .schemas import (
    ActionRecord,
    AgentConfig,
    AgentSnapshot,
    AgentState,
    AgentStatusReport,
    CandidateAction,
    Message,
    PerceptionChange,
    PerceptionSnapshot,
    ScoredAction,
)
from .selection import select_actions

if TYPE_CHECKING:
    from .mesh import MessageMesh
    from .statemachine.controller import StateMachineController

PATTERN_BONUS = 0.2


class Agent:
    """Base class for every mind in the ensemble.

    Attributes:
        id: Stable identifier, unique per mesh
        kind: Behavior-kind tag (class attribute unless overridden per instance)
        state: Bounded runtime scalars plus active/paused flags
        mailbox: Inbound messages; appended and popped only through the mesh
        outbox: Log of messages this agent sent
        perception_history: Recent perception snapshots (bounded)
        action_history: Recent ActionRecords (bounded, always present)
        learning: Preference map, pattern table and experience buffer
        controller: Optional state-machine controller included in snapshots
        critical: Non-critical agents may be deferred when a tick runs late
    """

    kind: str = "agent"
    default_update_interval: Optional[float] = None
    critical: bool = True
    # Perception keys left out of the learning context (monotonic clock counters)
    context_exclude: FrozenSet[str] = frozenset({"beat", "measure"})

    def __init__(
        self,
        agent_id: str,
        mesh: Optional["MessageMesh"] = None,
        *,
        bus: Optional[NotificationBus] = None,
        signals: Optional[SignalBoard] = None,
        clock: Optional[Clock] = None,
        config: Optional[AgentConfig] = None,
        rng: Optional[random.Random] = None,
        kind: Optional[str] = None,
        **config_overrides: Any,
    ) -> None:
        if not agent_id:
            raise ValueError("agent_id must be a non-empty string")

        self.id = agent_id
        if kind is not None:
            self.kind = kind
        self.mesh = mesh
        self.bus = bus or NotificationBus()
        self.signals = signals
        self.clock: Clock = clock or (mesh.clock if mesh is not None else MonotonicClock())

        if config is None:
            if self.default_update_interval is not None:
                config_overrides.setdefault("update_interval", self.default_update_interval)
            config = AgentConfig(**config_overrides)
        elif config_overrides:
            config = config.model_copy(update=config_overrides)
        self.config = config

        if rng is None:
            # Distinct but reproducible stream per agent when ENSEMBLE_SEED is set
            rng = random.Random(None if Config.SEED is None else f"{Config.SEED}:{agent_id}")
        self.rng = rng

        self.state = AgentState()

        history = self.config.history_length
        self.perception: Dict[str, Any] = {}
        self.previous_perception: Dict[str, Any] = {}
        self.changes: Dict[str, PerceptionChange] = {}
        self.perception_history: Deque[PerceptionSnapshot] = deque(maxlen=history)
        self.action_history: Deque[ActionRecord] = deque(maxlen=history)
        self.last_action: Optional[ActionRecord] = None
        self.working_memory: Dict[str, Any] = {}
        self.learning = LearningState(history_length=history, learning_rate=self.config.learning_rate)
        self.learning_enabled = True

        self.mailbox: Deque[Message] = deque()
        self.outbox: Deque[Message] = deque(maxlen=history)
        self.subscriptions: Set[str] = set()

        self.controller: Optional["StateMachineController"] = None

        self.tick_count = 0
        self.last_update: Optional[float] = None
        self.last_errors: List[tuple] = []

        # Per-tick scratch shared between decide, act and learn
        self._selected: List[CandidateAction] = []
        self._executed: List[ActionRecord] = []

    # ==================================================================
    # Lifecycle
    # ==================================================================

    def start(self) -> None:
        if self.state.active:
            return
        self.state.active = True
        self.state.paused = False
        self.last_update = self.clock.now()
        self.on_start()
        self.log("Started")

    def stop(self) -> None:
        if not self.state.active:
            return
        self.state.active = False
        self.on_stop()
        self.log("Stopped")

    def pause(self) -> None:
        self.state.paused = True
        self.log("Paused")

    def resume(self) -> None:
        self.state.paused = False
        self.last_update = self.clock.now()
        self.log("Resumed")

    @property
    def runnable(self) -> bool:
        return self.state.active and not self.state.paused

    def is_due(self, now: float) -> bool:
        """True when at least `config.update_interval` has passed since the last run."""
        if self.last_update is None or self.tick_count == 0:
            return True
        # Small tolerance so a 50 ms agent runs on every 50 ms timer firing
        return now - self.last_update >= self.config.update_interval - 1e-9

    def begin_tick(self, now: float) -> float:
        """Advance the tick counter and return seconds elapsed since the last run."""
        dt = 0.0 if self.last_update is None else max(0.0, now - self.last_update)
        self.last_update = now
        self.tick_count += 1
        self.last_errors = []
        self._selected = []
        self._executed = []
        return dt

    # ==================================================================
    # 1. Perceive
    # ==================================================================

    def perceive(self) -> Dict[str, Any]:
        """Return current observations. Defaults to the flattened signal board."""
        if self.signals is None:
            return {}
        return self.signals.as_perception()

    def perceive_step(self) -> None:
        self.previous_perception = self.perception
        try:
            current = dict(self.perceive())
        except Exception as exc:
            # Reuse the last good snapshot; nothing counts as changed
            self.report_error("perceive", exc)
            current = dict(self.previous_perception)
            self.changes = {}
        else:
            self.changes = diff_perceptions(self.previous_perception, current)

        self.perception = current
        self.perception_history.append(
            PerceptionSnapshot(
                timestamp=self.clock.now(),
                data=dict(current),
                changes=dict(self.changes),
            )
        )

    def get_perception(self, key: str, default: Any = None) -> Any:
        value = self.perception.get(key)
        return default if value is None else value

    def has_changed(self, key: str) -> bool:
        return key in self.changes

    def get_change(self, key: str) -> Optional[PerceptionChange]:
        return self.changes.get(key)

    # ==================================================================
    # 2. Drain mailbox
    # ==================================================================

    def handle_message(self, message: Message) -> None:
        """React to one message. Unknown types are ignored by default."""
        self.log(f"Ignoring message '{message.type}' from {message.sender}")

    def _dispatch(self, message: Message) -> None:
        try:
            self.handle_message(message)
        except Exception as exc:
            # The message is consumed; the drain carries on with the next one
            self.report_error("drain", exc)

    def drain_mailbox(self) -> int:
        """Dispatch every queued message, oldest first, until the mailbox is empty."""
        if self.mesh is None:
            handled = 0
            while self.mailbox:
                self._dispatch(self.mailbox.popleft())
                handled += 1
            return handled
        return self.mesh.drain(self.id, self._dispatch)

    # ==================================================================
    # 3. Decide
    # ==================================================================

    def candidate_actions(self) -> List[CandidateAction]:
        """Enumerate the actions worth considering this tick."""
        return []

    def evaluate_action(self, action: CandidateAction) -> float:
        """Agent-specific base score. Defaults to the action's priority."""
        return action.priority

    def refine(self, selected: List[CandidateAction], dt: float) -> List[CandidateAction]:
        """Last chance to adjust the selection before it executes."""
        return selected

    def score_action(self, action: CandidateAction, context: Optional[str] = None) -> float:
        """Combine the agent's own evaluation with what it has learned.

        score = evaluate_action * (0.5 + preference), boosted by
        (1 + 0.2 * avg_reward) when this exact context previously worked.
        """
        score = self.evaluate_action(action) * (0.5 + self.learning.preference(action.type))
        if context is None:
            context = self.learning_context()
        pattern = self.learning.pattern(context, action.type)
        if pattern is not None:
            score *= 1.0 + PATTERN_BONUS * pattern.avg_reward
        return max(0.0, score)

    def decide_step(self, dt: float) -> List[CandidateAction]:
        candidates = self.candidate_actions()
        if not candidates:
            self._selected = []
            return []

        context = self.learning_context()
        scored = [ScoredAction(action=action, score=self.score_action(action, context)) for action in candidates]
        selected = select_actions(
            scored,
            exploration_rate=self.config.exploration_rate,
            confidence=self.state.confidence,
            max_batch=self.config.max_actions,
            rng=self.rng,
        )
        self._selected = list(self.refine(selected, dt))[: self.config.max_actions]
        return self._selected

    # ==================================================================
    # 4. Act
    # ==================================================================

    def execute_action(self, action: CandidateAction) -> Any:
        """Carry out one action and return its result."""
        return None

    def act_step(self, actions: Optional[List[CandidateAction]] = None) -> List[ActionRecord]:
        actions = self._selected if actions is None else actions
        records: List[ActionRecord] = []
        for action in actions:
            try:
                result = self.execute_action(action)
                record = ActionRecord(action=action, result=result, timestamp=self.clock.now())
            except Exception as exc:
                self.report_error("act", exc)
                record = ActionRecord(action=action, result=None, failed=True, timestamp=self.clock.now())

            if not record.failed and (self.config.verbose or verbose_enabled()):
                log_deterministic(f"[{self.id}] {action.type} -> {record.result}")

            self.last_action = record
            self.action_history.append(record)
            records.append(record)
            self.emit(
                "action",
                {"action": action.model_dump(mode="json"), "failed": record.failed},
            )
        self._executed = records
        return records

    # ==================================================================
    # 5. Learn
    # ==================================================================

    def calculate_reward(self, record: ActionRecord) -> float:
        """Reward for one executed action. Failed actions earn nothing."""
        return 0.0 if record.failed else 0.5

    def learn(self, experiences: List[Experience]) -> None:
        """Extra learning on top of the shared preference/pattern update."""

    def learn_step(self) -> List[Experience]:
        if not self.learning_enabled or not self._executed:
            return []

        context = self.learning_context()
        experiences: List[Experience] = []
        for record in self._executed:
            try:
                reward = self.calculate_reward(record)
            except Exception as exc:
                self.report_error("learn", exc)
                reward = 0.0
            experiences.append(
                self.learning.record(
                    context,
                    record.action.type,
                    reward,
                    perception=self.perception,
                    result=record.result,
                    failed=record.failed,
                    timestamp=record.timestamp,
                )
            )

        self.state.confidence = self.learning.adjust_confidence(self.state.confidence)
        self.learn(experiences)
        return experiences

    def learning_context(self) -> str:
        """Hash of the current perception, minus the keys in `context_exclude`."""
        return hash_perceptions(
            {key: value for key, value in self.perception.items() if key not in self.context_exclude}
        )

    def get_preference(self, action_type: str) -> float:
        return self.learning.preference(action_type)

    def match_pattern(self, action_type: str) -> Optional[PatternEntry]:
        """Pattern recorded for this action in exactly the current context, if any."""
        return self.learning.pattern(self.learning_context(), action_type)

    # ==================================================================
    # 6. Decay & 7. hooks
    # ==================================================================

    def decay_step(self, dt: float) -> None:
        self.state.energy = max(0.0, self.state.energy - self.config.energy_decay * dt)
        self.state.focus = max(0.0, self.state.focus - self.config.focus_decay * dt)

    def on_start(self) -> None:
        pass

    def on_stop(self) -> None:
        pass

    def on_update(self, dt: float) -> None:
        pass

    # ==================================================================
    # State setters
    # ==================================================================

    @staticmethod
    def _clamp(value: float) -> float:
        return max(0.0, min(1.0, float(value)))

    def set_energy(self, value: float) -> None:
        self.state.energy = self._clamp(value)
        self.emit("state.energy", {"value": self.state.energy})

    def set_focus(self, value: float) -> None:
        self.state.focus = self._clamp(value)
        self.emit("state.focus", {"value": self.state.focus})

    def set_creativity(self, value: float) -> None:
        self.state.creativity = self._clamp(value)

    def boost(self, amount: float = 0.2) -> None:
        self.state.energy = self._clamp(self.state.energy + amount)

    def set_mood(self, mood: str) -> None:
        previous = self.state.mood
        self.state.mood = mood
        if previous != mood:
            self.emit("state.mood", {"from": previous, "to": mood})

    # ==================================================================
    # Communication
    # ==================================================================

    def send(self, recipient: str, type: str, payload: Optional[Dict[str, Any]] = None) -> bool:
        """Send a message through the mesh. Unknown recipients are a silent no-op."""
        payload = dict(payload or {})
        self.outbox.append(
            Message(sender=self.id, recipient=recipient, type=type, payload=payload, timestamp=self.clock.now())
        )
        if self.mesh is None:
            return False
        return self.mesh.send(self.id, recipient, type, payload)

    def broadcast(self, type: str, payload: Optional[Dict[str, Any]] = None) -> int:
        payload = dict(payload or {})
        self.outbox.append(
            Message(sender=self.id, recipient="*", type=type, payload=payload, timestamp=self.clock.now())
        )
        if self.mesh is None:
            return 0
        return self.mesh.broadcast(self.id, type, payload)

    def subscribe(self, topic: str) -> None:
        self.subscriptions.add(topic)

    def unsubscribe(self, topic: str) -> None:
        self.subscriptions.discard(topic)

    # ==================================================================
    # Events & directives
    # ==================================================================

    def emit(self, type: str, data: Optional[Dict[str, Any]] = None) -> None:
        """Publish `agent.<id>.<type>` and the wildcard `agent.*.<type>`."""
        payload = dict(data or {})
        self.bus.publish(f"agent.{self.id}.{type}", payload)
        self.bus.publish(f"agent.*.{type}", {"agent_id": self.id, **payload})

    def publish_directive(
        self,
        kind: DirectiveKind,
        target: Optional[str] = None,
        value: Any = None,
        **params: Any,
    ) -> Directive:
        directive = Directive(
            kind=kind,
            source=self.id,
            target=target,
            value=value,
            params=params,
            timestamp=self.clock.now(),
        )
        self.bus.publish_directive(directive)
        return directive

    # ==================================================================
    # Working memory
    # ==================================================================

    def remember(self, key: str, value: Any) -> None:
        self.working_memory[key] = value

    def recall(self, key: str, default: Any = None) -> Any:
        return self.working_memory.get(key, default)

    def forget(self, key: str) -> None:
        self.working_memory.pop(key, None)

    def clear_working_memory(self) -> None:
        self.working_memory.clear()

    # ==================================================================
    # Errors & logging
    # ==================================================================

    def report_error(self, step: str, exc: BaseException) -> None:
        """Log a recovered pipeline error and publish it as an `error` event."""
        message = f"{type(exc).__name__}: {exc}"
        self.last_errors.append((self.id, step, message))
        log_error(f"[Agent:{self.id}] {step} error: {message}")
        self.bus.publish("error", {"agent_id": self.id, "step": step, "error": message})

    def log(self, message: str) -> None:
        if self.config.verbose or verbose_enabled():
            print(colored(f"[Agent:{self.id}] {message}", Color.CYAN))

    # ==================================================================
    # Status & snapshots
    # ==================================================================

    def status_extra(self) -> Dict[str, Any]:
        """Kind-specific details merged into `get_status()`."""
        return {}

    def get_status(self) -> AgentStatusReport:
        extra = dict(self.status_extra())
        if self.controller is not None:
            extra.setdefault("state_machine", self.controller.current_state)
        return AgentStatusReport(
            agent_id=self.id,
            kind=self.kind,
            active=self.state.active,
            paused=self.state.paused,
            energy=self.state.energy,
            focus=self.state.focus,
            creativity=self.state.creativity,
            confidence=self.state.confidence,
            mood=self.state.mood,
            mailbox_size=len(self.mailbox),
            history_size=len(self.perception_history),
            action_count=len(self.action_history),
            avg_reward=self.learning.avg_reward,
            patterns_learned=len(self.learning.patterns),
            subscriptions=sorted(self.subscriptions),
            extra=extra,
        )

    def export_snapshot(self) -> AgentSnapshot:
        current_state = None
        dwell_time = 0.0
        if self.controller is not None:
            controller_snapshot = self.controller.snapshot()
            current_state = controller_snapshot.current_state
            dwell_time = controller_snapshot.dwell_time
        return AgentSnapshot(
            agent_id=self.id,
            kind=self.kind,
            preferences=dict(self.learning.preferences),
            patterns=self.learning.export_patterns(),
            avg_reward=self.learning.avg_reward,
            confidence=self.state.confidence,
            current_state=current_state,
            dwell_time=dwell_time,
            saved_at=self.clock.now(),
        )

    def import_snapshot(self, snapshot: AgentSnapshot) -> None:
        self.learning.import_state(snapshot.preferences, snapshot.patterns, snapshot.avg_reward)
        self.state.confidence = snapshot.confidence
        if self.controller is not None and snapshot.current_state is not None:
            self.controller.restore(snapshot.current_state, snapshot.dwell_time)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(id={self.id!r}, kind={self.kind!r})"
