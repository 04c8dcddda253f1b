"""
Dynamics agent: drives the ensemble's energy level.

Runs a `StateMachineController` over the energy descriptor (dormant up to
transcendent), follows the era signal through mode profiles, bends the
presented characteristics by the current input zone, and publishes the
result as `characteristics.set` / `dynamics.set` directives.

Instructions it accepts (message type `instruction`):
    {"instruction": "build_to_climax", "duration": 30}
    {"instruction": "release", "duration": 20}
    {"instruction": "force_state", "state": "flowing"}
    {"instruction": "nudge", "direction": 1}
    {"instruction": "reset"}
    {"instruction": "auto", "enabled": false}
"""

from typing import Any, Dict, List, Optional

from ..agent import Agent
from ..events import DirectiveKind
from ..presets import BUILD_SEQUENCE, RELEASE_SEQUENCE, ZONE_DYNAMICS, energy_descriptor
from ..schemas import ActionRecord, CandidateAction, Message
from ..statemachine.controller import StateMachineController
from ..statemachine.schemas import StateMachineDescriptor, Transition

HIGH_ACTIVITY = 0.7
LOW_ACTIVITY = 0.15
SURGE_ACTIVITY = 0.85
PUBLISH_EPSILON = 0.01
BUILD_DURATION = 30.0
RELEASE_DURATION = 20.0


class DynamicsAgent(Agent):
    """Energy-state mind.

    Attributes:
        controller: Energy StateMachineController
        zone: Last perceived input zone
        era: Era whose mode profile is active
        zone_influence: How strongly zone bias bends characteristics
        characteristics: Presented characteristics after zone influence
    """

    kind = "dynamics"
    default_update_interval = 0.05

    def __init__(
        self,
        agent_id: str = "dynamics",
        mesh=None,
        *,
        descriptor: Optional[StateMachineDescriptor] = None,
        zone_dynamics: Optional[Dict[str, Dict[str, float]]] = None,
        zone_influence: float = 0.3,
        orchestrator_id: str = "orchestrator",
        **kwargs: Any,
    ) -> None:
        super().__init__(agent_id, mesh, **kwargs)
        self.controller = StateMachineController(
            descriptor or energy_descriptor(),
            clock=self.clock,
            rng=self.rng,
            name=f"{self.id}.energy",
        )
        self.controller.on_state_change(self._on_state_committed)
        self.controller.on_transition_start(self._on_transition_start)

        self.zone_dynamics = zone_dynamics if zone_dynamics is not None else ZONE_DYNAMICS
        self.zone_influence = max(0.0, min(1.0, zone_influence))
        self.orchestrator_id = orchestrator_id
        self.zone: Optional[str] = None
        self.era: Optional[str] = None
        self.characteristics: Dict[str, float] = dict(self.controller.characteristics)
        self._published: Dict[str, float] = {}
        self._awaiting_permission = False

    # ------------------------------------------------------------------
    # Perception
    # ------------------------------------------------------------------

    def perceive_step(self) -> None:
        super().perceive_step()
        zone = self.get_change("zone")
        if zone is not None:
            self.zone = zone.current
            if zone.previous is not None:
                self.controller.register_activity()
        era = self.get_perception("era")
        if era is not None and era != self.era:
            self.set_era(era)

    def set_era(self, era: str) -> bool:
        self.era = era
        if era not in self.controller.descriptor.modes:
            self.log(f"No energy profile for era '{era}'")
            return False
        return self.controller.set_mode(era)

    # ------------------------------------------------------------------
    # Guided movement
    # ------------------------------------------------------------------

    def build_to_climax(self, duration: float = BUILD_DURATION) -> int:
        """Schedule the build states above the current level."""
        level = self.controller.state_definition().level
        states = [
            name for name in BUILD_SEQUENCE
            if name in self.controller.descriptor.states and self.controller.descriptor.state(name).level > level
        ]
        if not states:
            return 0
        self.emit("build.start", {"states": states, "duration": duration})
        return self.controller.schedule_sequence(states, duration)

    def release(self, duration: float = RELEASE_DURATION) -> int:
        self.emit("release.start", {"duration": duration})
        return self.controller.schedule_sequence(list(RELEASE_SEQUENCE), duration)

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------

    def handle_message(self, message: Message) -> None:
        payload = message.payload
        if message.type == "instruction":
            self.follow_instruction(payload)
        elif message.type == "permission.response":
            self._awaiting_permission = False
            if payload.get("granted") and payload.get("action") == "build_to_climax":
                self.build_to_climax()
        elif message.type == "section.change":
            dynamics = float(payload.get("dynamics", 0.5))
            if dynamics >= 0.9 and not self.controller.sequence_pending:
                self.build_to_climax(BUILD_DURATION / 2)
        elif message.type == "mood.apply":
            self.remember("mood", payload.get("mood"))
        else:
            self.log(f"Ignoring message '{message.type}' from {message.sender}")

    def follow_instruction(self, payload: Dict[str, Any]) -> bool:
        instruction = payload.get("instruction")
        if instruction == "build_to_climax":
            return self.build_to_climax(float(payload.get("duration", BUILD_DURATION))) > 0
        if instruction == "release":
            return self.release(float(payload.get("duration", RELEASE_DURATION))) > 0
        if instruction == "force_state":
            return self.controller.force_state(payload.get("state", ""))
        if instruction == "nudge":
            return self.controller.nudge(int(payload.get("direction", 1))) is not None
        if instruction == "reset":
            self.controller.reset()
            return True
        if instruction == "auto":
            self.controller.auto_transition = bool(payload.get("enabled", True))
            return True
        self.log(f"Unknown instruction '{instruction}' ignored")
        return False

    # ------------------------------------------------------------------
    # Decide / act
    # ------------------------------------------------------------------

    def _can_move(self) -> bool:
        controller = self.controller
        if controller.is_transitioning or controller.sequence_pending:
            return False
        return controller.dwell_time >= controller.state_definition().min_dwell

    def _has_successor(self, direction: int) -> bool:
        level = self.controller.state_definition().level
        for name in self.controller.valid_successors():
            other = self.controller.descriptor.state(name).level
            if (direction > 0 and other > level) or (direction < 0 and other < level):
                return True
        return False

    def candidate_actions(self) -> List[CandidateAction]:
        if not self._can_move():
            return []
        activity = float(self.get_perception("activity", 0.0))
        actions = [CandidateAction(type="hold", priority=0.3)]
        if activity > SURGE_ACTIVITY and not self._awaiting_permission and self._has_successor(1):
            actions.append(CandidateAction(type="request_build", priority=0.6))
        if activity > HIGH_ACTIVITY and self._has_successor(1):
            actions.append(CandidateAction(type="nudge_up", priority=0.5))
        elif activity < LOW_ACTIVITY and self._has_successor(-1):
            actions.append(CandidateAction(type="nudge_down", priority=0.4))
        return actions

    def evaluate_action(self, action: CandidateAction) -> float:
        activity = float(self.get_perception("activity", 0.0))
        if action.type in ("nudge_up", "request_build"):
            return action.priority * (0.5 + activity)
        if action.type == "nudge_down":
            return action.priority * (1.5 - activity)
        return action.priority

    def execute_action(self, action: CandidateAction) -> Any:
        if action.type == "nudge_up":
            return self.controller.nudge(1)
        if action.type == "nudge_down":
            return self.controller.nudge(-1)
        if action.type == "request_build":
            self._awaiting_permission = True
            return self.send(self.orchestrator_id, "request.permission", {"action": "build_to_climax"})
        if action.type == "hold":
            return self.controller.current_state
        self.log(f"Unknown action '{action.type}' ignored")
        return None

    def calculate_reward(self, record: ActionRecord) -> float:
        if record.failed:
            return 0.0
        activity = float(self.get_perception("activity", 0.0))
        if record.action.type == "nudge_up":
            return activity if record.result else 0.2
        if record.action.type == "nudge_down":
            return 1.0 - activity if record.result else 0.2
        if record.action.type == "request_build":
            return 0.6 if record.result else 0.1
        # Holding pays when the level already matches the activity
        return 1.0 - abs(self.controller.energy_level() - activity)

    # ------------------------------------------------------------------
    # Update & publishing
    # ------------------------------------------------------------------

    def apply_zone_influence(self, characteristics: Dict[str, float]) -> Dict[str, float]:
        """Bend characteristics by the current zone's bias, clamped to [0, 1]."""
        result = dict(characteristics)
        bias = self.zone_dynamics.get(self.zone) if self.zone else None
        if not bias:
            return result
        influence = self.zone_influence
        if "volume" in result:
            result["volume"] = self._clamp(result["volume"] + bias.get("energy_bias", 0.0) * influence * 0.1)
        if "brightness" in result:
            result["brightness"] = self._clamp(result["brightness"] + bias.get("brightness_boost", 0.0) * influence)
        if "density" in result:
            result["density"] = self._clamp(result["density"] + bias.get("density_mod", 0.0) * influence)
        return result

    def on_update(self, dt: float) -> None:
        activity = float(self.get_perception("activity", 0.0))
        if activity > self.controller.activity:
            self.controller.update(activity=activity)
        else:
            self.controller.update()

        self.characteristics = self.apply_zone_influence(self.controller.characteristics)
        if self._changed_since_publish():
            self._published = dict(self.characteristics)
            self.publish_directive(
                DirectiveKind.CHARACTERISTICS_SET,
                target=self.id,
                value=dict(self.characteristics),
                intensities=dict(self.controller.intensities),
                state=self.controller.current_state,
            )

    def _changed_since_publish(self) -> bool:
        if self._published.keys() != self.characteristics.keys():
            return True
        return any(
            abs(self.characteristics[key] - self._published[key]) > PUBLISH_EPSILON for key in self.characteristics
        )

    def _on_transition_start(self, transition: Transition) -> None:
        self.emit("transition.start", {"from": transition.from_state, "to": transition.to_state})

    def _on_state_committed(self, previous: Optional[str], state: str) -> None:
        level = self.controller.energy_level()
        self.publish_directive(DirectiveKind.DYNAMICS_SET, target=self.id, value=level, state=state)
        self.emit("state.change", {"from": previous, "to": state, "level": level})
        self.report_state()

    def report_state(self) -> bool:
        definition = self.controller.state_definition()
        return self.send(
            self.orchestrator_id,
            "report.state",
            {
                "kind": self.kind,
                "role": "dynamics",
                "active": True,
                "state": definition.name,
                "level": self.controller.energy_level(),
                "voices": dict(definition.active),
            },
        )

    def on_start(self) -> None:
        self.report_state()

    def status_extra(self) -> Dict[str, Any]:
        controller = self.controller
        return {
            "state": controller.current_state,
            "target": controller.target_state,
            "transitioning": controller.is_transitioning,
            "progress": controller.progress,
            "dwell_time": controller.dwell_time,
            "energy_level": controller.energy_level(),
            "characteristics": dict(self.characteristics),
            "intensities": dict(controller.intensities),
            "zone": self.zone,
            "era": self.era,
        }
