"""Managed sound-source agent (drums, bass, harmony, melody, ...)."""

from typing import Any, Dict, Optional

from ..agent import Agent
from ..events import DirectiveKind
from ..schemas import Message


class VoiceAgent(Agent):
    """Follows the orchestrator: mood plans and instructions switch it on,
    off or to another sound type. Every change is published as a directive
    and reported back to whoever asked for it.
    """

    kind = "voice"
    default_update_interval = 0.05

    def __init__(
        self,
        agent_id: str,
        mesh=None,
        *,
        role: Optional[str] = None,
        sound_type: Optional[str] = None,
        playing: bool = False,
        orchestrator_id: str = "orchestrator",
        **kwargs: Any,
    ) -> None:
        super().__init__(agent_id, mesh, **kwargs)
        self.role = role or agent_id
        self.sound_type = sound_type
        self.playing = playing
        self.intensity = 0.5
        self.orchestrator_id = orchestrator_id

    def activate(self) -> bool:
        if self.playing:
            return False
        self.playing = True
        self._publish_activate()
        return True

    def deactivate(self) -> bool:
        if not self.playing:
            return False
        self.playing = False
        self.publish_directive(DirectiveKind.SOURCE_DEACTIVATE, target=self.role)
        return True

    def change_type(self, sound_type: str) -> bool:
        if sound_type == self.sound_type:
            return False
        self.sound_type = sound_type
        if self.playing:
            self._publish_activate()
        return True

    def set_intensity(self, value: float) -> None:
        self.intensity = self._clamp(value)
        if self.playing:
            self._publish_activate()

    def _publish_activate(self) -> None:
        self.publish_directive(
            DirectiveKind.SOURCE_ACTIVATE,
            target=self.role,
            value=self.sound_type,
            intensity=self.intensity,
        )

    def apply_plan(self, plan: Dict[str, Any]) -> None:
        if plan.get("type"):
            self.change_type(plan["type"])
        if plan.get("active"):
            self.activate()
        else:
            self.deactivate()

    def handle_message(self, message: Message) -> None:
        payload = message.payload
        if message.type == "mood.apply":
            self.set_mood(payload.get("mood", self.state.mood))
            plan = payload.get("voices", {}).get(self.role)
            if plan is not None:
                self.intensity = self._clamp(payload.get("characteristics", {}).get("energy", self.intensity))
                self.apply_plan(plan)
            self.report_state(message.sender)
        elif message.type == "instruction":
            instruction = payload.get("instruction")
            if instruction == "activate":
                self.activate()
            elif instruction == "deactivate":
                self.deactivate()
            elif instruction == "change_type":
                self.change_type(payload.get("type", self.sound_type))
            elif instruction == "set_intensity":
                self.set_intensity(payload.get("value", self.intensity))
            else:
                self.log(f"Unknown instruction '{instruction}' ignored")
            self.report_state(message.sender)
        elif message.type == "section.change":
            self.set_intensity(payload.get("dynamics", self.intensity))
        else:
            self.log(f"Ignoring message '{message.type}' from {message.sender}")

    def report_state(self, recipient: Optional[str] = None) -> bool:
        return self.send(
            recipient or self.orchestrator_id,
            "report.state",
            {
                "kind": self.kind,
                "role": self.role,
                "active": self.playing,
                "sound_type": self.sound_type,
                "intensity": self.intensity,
            },
        )

    def status_extra(self) -> Dict[str, Any]:
        return {"role": self.role, "playing": self.playing, "sound_type": self.sound_type, "intensity": self.intensity}
