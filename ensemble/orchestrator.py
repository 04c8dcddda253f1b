"""
Orchestrator: the agent that conducts the rest of the ensemble.

It owns a set of managed agents and keeps the musical structure moving:

- a musical form (ordered sections, lengths in beats) advanced by the
  external beat counter
- a mood state machine (`StateMachineController` over the mood descriptor)
  whose committed changes are pushed into managed agents' mailboxes
- global dynamics and tension, eased towards per-section targets
- era adaptation: form, mood and tempo follow the era signal

Message protocol (inbound):
    request.permission  -> replies permission.response {action, granted, conditions}
    report.state        -> records the sender's reported state
    suggest.change      -> queued for later consideration
    anything else       -> logged and ignored

Usage:
    conductor = Orchestrator("conductor", mesh, bus=bus, signals=board, clock=clock)
    runtime.register(conductor)
    conductor.manage("drums", kind="voice")
"""

from collections import deque
from typing import Any, Deque, Dict, List, Optional, Tuple

from .agent import Agent
from .events import DirectiveKind
from .learning import Experience
from .presets import (
    ERA_FORMS,
    ERA_MOODS,
    ERA_TEMPOS,
    MAX_TEMPO,
    MIN_TEMPO,
    MOOD_VOICES,
    MUSICAL_FORMS,
    mood_descriptor,
)
from .schemas import ActionRecord, CandidateAction, Message, MusicalForm
from .statemachine.controller import StateMachineController
from .statemachine.schemas import StateMachineDescriptor, Transition

SECTION_END = 0.95
ACTIVITY_DECAY = 0.95
ZONE_BOOST = 0.1
PATTERN_BOOST = 0.2
UNLOCK_DYNAMICS_BOOST = 0.2
DYNAMICS_FOLLOW = 0.05
EVENT_WINDOW = 30.0
RESPONSE_WINDOW = 5.0
MOOD_MARGIN = 0.1
MOOD_RANGE = 0.2
ENERGETIC_MOODS = ("energetic", "ecstatic", "intense")
TOP_ACTIONS = 3

PRIORITIES = {
    "section_transition": 0.9,
    "mood_change": 0.7,
    "dynamics_adjust": 0.5,
    "agent_instruction": 0.6,
    "build_tension": 0.6,
    "release_tension": 0.7,
}


class Orchestrator(Agent):
    """Top-level conductor agent.

    The mood controller runs with `auto_transition=False`: it never draws
    against the dwell-gated transition probability. Moods move only through
    the `mood_change` action (legal successors only) or an era change, which
    overrides legality. The controller still eases every mood transition.

    Attributes:
        managed: Managed agent id -> kind
        agent_states: Last state each managed agent reported
        form: Current MusicalForm
        section_index: Index of the current section within the form
        dynamics / target_dynamics / tension: Global musical scalars in [0, 1]
        tempo: Current tempo in bpm
        era: Era currently adapted to (None until the first era signal)
        suggestions: Queued suggest.change payloads
    """

    kind = "orchestrator"
    default_update_interval = 0.1

    def __init__(
        self,
        agent_id: str = "orchestrator",
        mesh=None,
        *,
        descriptor: Optional[StateMachineDescriptor] = None,
        forms: Optional[Dict[str, MusicalForm]] = None,
        form: str = "ambient",
        **kwargs: Any,
    ) -> None:
        super().__init__(agent_id, mesh, **kwargs)
        self.managed: Dict[str, str] = {}
        self.agent_states: Dict[str, Dict[str, Any]] = {}
        self.forms = dict(forms or MUSICAL_FORMS)
        if form not in self.forms:
            raise ValueError(f"unknown musical form '{form}'")

        self.form: MusicalForm = self.forms[form]
        self.section_index = 0
        self.section_start_beat = 0
        self.beat = 0
        self.loops = 0
        self.dynamics = 0.5
        self.target_dynamics = self.form.section(0).dynamics
        self.tension = 0.0
        self.tempo = 90.0
        self.era: Optional[str] = None

        self.activity_level = 0.0
        self.significant_events: Deque[Tuple[float, str]] = deque()
        self.suggestions: Deque[Dict[str, Any]] = deque(maxlen=20)

        self.controller = StateMachineController(
            descriptor or mood_descriptor(),
            clock=self.clock,
            rng=self.rng,
            auto_transition=False,
            name=f"{self.id}.mood",
        )
        self.state.mood = self.controller.current_state
        self.controller.on_state_change(self._on_mood_committed)
        self.controller.on_transition_start(self._on_mood_transition)

    # ==================================================================
    # Managed agents
    # ==================================================================

    def manage(self, agent_id: str, kind: Optional[str] = None) -> None:
        """Take `agent_id` under management and tell it the current mood."""
        if kind is None and self.mesh is not None:
            agent = self.mesh.get(agent_id)
            kind = agent.kind if agent is not None else "agent"
        self.managed[agent_id] = kind or "agent"
        self._send_mood(agent_id, self.current_mood)

    def release(self, agent_id: str) -> bool:
        self.agent_states.pop(agent_id, None)
        return self.managed.pop(agent_id, None) is not None

    def managed_by_kind(self, kind: str) -> List[str]:
        return [agent_id for agent_id, agent_kind in self.managed.items() if agent_kind == kind]

    # ==================================================================
    # Musical state
    # ==================================================================

    @property
    def current_mood(self) -> str:
        return self.controller.current_state

    @property
    def section(self):
        return self.form.section(self.section_index)

    @property
    def section_beat(self) -> int:
        return max(0, self.beat - self.section_start_beat)

    def section_progress(self) -> float:
        return self.section_beat / self.section.length

    def set_form(self, name: str) -> bool:
        form = self.forms.get(name)
        if form is None:
            self.log(f"Unknown musical form '{name}' ignored")
            return False
        self.form = form
        self.section_index = 0
        self.section_start_beat = self.beat
        self.target_dynamics = form.section(0).dynamics
        self.emit("form.change", {"form": name})
        return True

    def set_tempo(self, bpm: float) -> float:
        self.tempo = float(max(MIN_TEMPO, min(MAX_TEMPO, bpm)))
        self.publish_directive(DirectiveKind.TEMPO_SET, value=self.tempo)
        return self.tempo

    def set_tension(self, value: float) -> None:
        self.tension = self._clamp(value)
        self.publish_directive(DirectiveKind.TENSION_SET, value=self.tension)

    def request_mood(self, mood: str, *, force: bool = False) -> bool:
        """Move towards `mood`. Illegal successors need `force=True`."""
        if force:
            return self.controller.transition_to(mood, override=True)
        return self.controller.transition_to(mood)

    # ==================================================================
    # Perceive
    # ==================================================================

    def perceive(self) -> Dict[str, Any]:
        perception = super().perceive()
        self.activity_level *= ACTIVITY_DECAY
        return perception

    def perceive_step(self) -> None:
        super().perceive_step()
        self._absorb_changes()

    def effective_activity(self) -> float:
        return max(self.activity_level, float(self.get_perception("activity", 0.0)))

    def _record_event(self, kind: str) -> None:
        now = self.clock.now()
        self.significant_events.append((now, kind))
        while self.significant_events and self.significant_events[0][0] < now - EVENT_WINDOW:
            self.significant_events.popleft()

    def _absorb_changes(self) -> None:
        zone = self.get_change("zone")
        if zone is not None and zone.current is not None and zone.previous is not None:
            self._record_event("zone")
            self.activity_level = min(1.0, self.activity_level + ZONE_BOOST)

        pattern = self.get_change("pattern")
        if pattern is not None and pattern.current:
            self._record_event("pattern")
            self.activity_level = min(1.0, self.activity_level + PATTERN_BOOST)

        unlock = self.get_change("unlock")
        if unlock is not None and unlock.current:
            self._record_event("unlock")
            self.target_dynamics = min(1.0, self.dynamics + UNLOCK_DYNAMICS_BOOST)
            self.emit("unlock.celebration", {"unlock": unlock.current})

        era = self.get_perception("era")
        if era is not None and era != self.era:
            self.adapt_to_era(era)

        beat = int(self.get_perception("beat", 0))
        if beat < self.section_start_beat:
            # External clock restarted
            self.section_start_beat = beat
        elapsed = max(0, beat - self.beat)
        self.beat = beat
        if elapsed:
            self.dynamics += (self.target_dynamics - self.dynamics) * (1 - (1 - DYNAMICS_FOLLOW) ** elapsed)

    def adapt_to_era(self, era: str) -> None:
        """Select the era's form, mood and tempo."""
        previous = self.era
        self.era = era
        self._record_event("era")

        if era in self.controller.descriptor.modes:
            self.controller.set_mode(era)
        mood = ERA_MOODS.get(era)
        if mood is not None and mood in self.controller.descriptor.states:
            self.controller.transition_to(mood, override=True)
        form = ERA_FORMS.get(era)
        if form is not None and form in self.forms:
            self.set_form(form)
        self.set_tempo(ERA_TEMPOS.get(era, 90))
        self.emit("era.adapted", {"from": previous, "era": era, "form": self.form.name})

    # ==================================================================
    # Messages
    # ==================================================================

    def handle_message(self, message: Message) -> None:
        if message.type == "request.permission":
            action = message.payload.get("action")
            granted = self.evaluate_permission(action)
            self.send(
                message.sender,
                "permission.response",
                {
                    "action": action,
                    "granted": granted,
                    "conditions": self.action_conditions() if granted else None,
                },
            )
        elif message.type == "report.state":
            self.agent_states[message.sender] = dict(message.payload)
        elif message.type == "suggest.change":
            self.suggestions.append(
                {"source": message.sender, "suggestion": dict(message.payload), "time": message.timestamp}
            )
        else:
            self.log(f"Unhandled message type '{message.type}' from {message.sender}")

    def evaluate_permission(self, action: Any) -> bool:
        """Everything is allowed unless it fights a release section."""
        if action in ("build_to_climax", "boost") and self.section.name in ("release", "resolution", "outro"):
            return False
        return True

    def action_conditions(self) -> Dict[str, Any]:
        return {"dynamics": self.dynamics, "tension": self.tension, "mood": self.current_mood}

    # ==================================================================
    # Decide
    # ==================================================================

    def suggest_mood(self, activity: float) -> Optional[str]:
        """Mood among legal successors whose energy best matches activity.

        It must beat the current mood's match by MOOD_MARGIN and sit within
        MOOD_RANGE of the activity level.
        """
        descriptor = self.controller.descriptor
        current_gap = abs(descriptor.state(self.current_mood).characteristics.get("energy", 0.5) - activity)
        best, best_gap = None, None
        for name in self.controller.valid_successors():
            gap = abs(descriptor.state(name).characteristics.get("energy", 0.5) - activity)
            if best_gap is None or gap < best_gap:
                best, best_gap = name, gap
        if best is None or best_gap >= MOOD_RANGE or current_gap - best_gap <= MOOD_MARGIN:
            return None
        return best

    def should_build_tension(self, activity: float) -> bool:
        if self.section.name == "build" and self.section_progress() > 0.3 and self.tension < 0.8:
            return True
        return activity > 0.7 and self.tension < 0.6

    def should_release_tension(self, activity: float) -> bool:
        name = self.section.name
        if name == "peak" and self.section_progress() > 0.9:
            return True
        if name in ("release", "resolution") and self.tension > 0.2:
            return True
        return activity < 0.2 and self.tension > 0.4

    def generate_agent_instructions(self) -> List[Dict[str, Any]]:
        """Instructions that bring reporting voices in line with the mood's voice plan."""
        plan = MOOD_VOICES.get(self.current_mood, {})
        instructions = []
        for agent_id, reported in self.agent_states.items():
            if agent_id not in self.managed:
                continue
            voice = plan.get(reported.get("role"))
            if voice is None:
                continue
            if bool(reported.get("active")) != voice["active"]:
                instructions.append(
                    {"agent": agent_id, "instruction": "activate" if voice["active"] else "deactivate"}
                )
            elif voice["active"] and voice.get("type") and reported.get("sound_type") != voice["type"]:
                instructions.append({"agent": agent_id, "instruction": "change_type", "type": voice["type"]})
        return instructions

    def candidate_actions(self) -> List[CandidateAction]:
        activity = self.effective_activity()
        actions: List[CandidateAction] = []

        if self.section_progress() > SECTION_END:
            actions.append(CandidateAction(type="section_transition", priority=PRIORITIES["section_transition"]))

        if not self.controller.is_transitioning:
            mood = self.suggest_mood(activity)
            if mood is not None:
                actions.append(
                    CandidateAction(type="mood_change", priority=PRIORITIES["mood_change"], params={"mood": mood})
                )

        change = self.target_dynamics - self.dynamics
        if abs(change) > 0.1:
            actions.append(
                CandidateAction(
                    type="dynamics_adjust",
                    priority=PRIORITIES["dynamics_adjust"],
                    params={"target": self.target_dynamics, "change": change},
                )
            )

        instructions = self.generate_agent_instructions()
        if instructions:
            actions.append(
                CandidateAction(
                    type="agent_instruction",
                    priority=PRIORITIES["agent_instruction"],
                    params={"instructions": instructions},
                )
            )

        if self.should_build_tension(activity):
            actions.append(
                CandidateAction(type="build_tension", priority=PRIORITIES["build_tension"], params={"amount": 0.1})
            )
        elif self.should_release_tension(activity):
            actions.append(
                CandidateAction(type="release_tension", priority=PRIORITIES["release_tension"], params={"amount": 0.2})
            )
        return actions

    def evaluate_action(self, action: CandidateAction) -> float:
        score = action.priority
        if action.type == "section_transition":
            score *= 1.5 if self.section_progress() > 0.9 else 0.5
        elif action.type == "mood_change":
            descriptor = self.controller.descriptor
            current = descriptor.state(self.current_mood).characteristics.get("energy", 0.5)
            target = descriptor.state(action.get("mood")).characteristics.get("energy", 0.5)
            score *= 0.5 + min(abs(target - current), 0.3)
            if action.get("mood") in ENERGETIC_MOODS:
                score *= 0.5 + self.effective_activity()
        elif action.type == "dynamics_adjust":
            score *= 1.2 if abs(action.get("change", 0.0)) < 0.2 else 0.8
        return min(1.0, score)

    def refine(self, selected: List[CandidateAction], dt: float) -> List[CandidateAction]:
        return sorted(selected, key=lambda action: action.priority, reverse=True)[:TOP_ACTIONS]

    # ==================================================================
    # Act
    # ==================================================================

    def execute_action(self, action: CandidateAction) -> Any:
        if action.type == "section_transition":
            return self.advance_section()
        if action.type == "mood_change":
            return self.request_mood(action.get("mood"))
        if action.type == "dynamics_adjust":
            self.dynamics = self._clamp(self.dynamics + action.get("change", 0.0) * 0.5)
            self.publish_directive(DirectiveKind.DYNAMICS_SET, value=self.dynamics)
            return self.dynamics
        if action.type == "agent_instruction":
            sent = 0
            for item in action.get("instructions", []):
                payload = {key: value for key, value in item.items() if key != "agent"}
                sent += bool(self.send(item["agent"], "instruction", payload))
            return sent
        if action.type == "build_tension":
            self.set_tension(self.tension + action.get("amount", 0.1))
            return self.tension
        if action.type == "release_tension":
            self.set_tension(self.tension - action.get("amount", 0.2))
            return self.tension
        self.log(f"Unknown action '{action.type}' ignored")
        return None

    def advance_section(self) -> str:
        """Move to the next section of the form, looping at the end."""
        previous = self.section.name
        self.section_index += 1
        if self.section_index >= len(self.form.sections):
            self.section_index = 0
            self.loops += 1
            self.emit("form.complete", {"form": self.form.name, "loops": self.loops})
        self.section_start_beat = self.beat
        section = self.section
        self.target_dynamics = section.dynamics
        self.publish_directive(
            DirectiveKind.SECTION_TRANSITION,
            value=section.name,
            previous=previous,
            form=self.form.name,
            style=self.form.transition_style,
        )
        for agent_id in self.managed:
            self.send(agent_id, "section.change", {"section": section.name, "dynamics": section.dynamics})
        return section.name

    # ==================================================================
    # Mood controller hooks
    # ==================================================================

    def _on_mood_transition(self, transition: Transition) -> None:
        self.emit(
            "mood.transition",
            {"from": transition.from_state, "to": transition.to_state, "duration": transition.duration},
        )

    def _on_mood_committed(self, previous: Optional[str], mood: str) -> None:
        self.set_mood(mood)
        characteristics = self.controller.state_definition(mood).characteristics
        self.publish_directive(DirectiveKind.CHARACTERISTICS_SET, target="mood", value=dict(characteristics), mood=mood)
        for agent_id in self.managed:
            self._send_mood(agent_id, mood)

    def _send_mood(self, agent_id: str, mood: str) -> None:
        definition = self.controller.state_definition(mood)
        self.send(
            agent_id,
            "mood.apply",
            {
                "mood": mood,
                "characteristics": dict(definition.characteristics),
                "voices": definition.attributes.get("voices", {}),
            },
        )

    def on_update(self, dt: float) -> None:
        self.controller.update(activity=self.effective_activity())

    # ==================================================================
    # Learn
    # ==================================================================

    def responsiveness(self) -> float:
        """Share of recent significant events that were answered by an action."""
        cutoff = self.clock.now() - RESPONSE_WINDOW
        events = sum(1 for time, _ in self.significant_events if time > cutoff)
        if events == 0:
            return 0.5
        actions = sum(1 for record in self.action_history if record.timestamp > cutoff)
        return min(1.0, actions / events)

    def calculate_reward(self, record: ActionRecord) -> float:
        if record.failed:
            return 0.0
        engagement = self.effective_activity()
        coherence = 1.0 - abs(self.dynamics - self.target_dynamics)
        return engagement * 0.4 + coherence * 0.3 + self.responsiveness() * 0.3

    def learn(self, experiences: List[Experience]) -> None:
        self.remember("last_reward", experiences[-1].reward if experiences else None)

    # ==================================================================
    # Status
    # ==================================================================

    def status_extra(self) -> Dict[str, Any]:
        return {
            "form": self.form.name,
            "section": self.section.name,
            "section_progress": self.section_progress(),
            "mood": self.current_mood,
            "mood_target": self.controller.target_state,
            "dynamics": self.dynamics,
            "tension": self.tension,
            "tempo": self.tempo,
            "era": self.era,
            "activity": self.effective_activity(),
            "managed": dict(self.managed),
        }
