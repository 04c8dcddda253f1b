"""
Texture agent: keeps a small set of background textures alive.

Textures, combinations and the zone map are opaque era-keyed data (see
`ensemble.presets`). The agent only decides which names are active and at
what level, and publishes `source.activate` / `source.deactivate`
directives for the synthesis layer.
"""

from collections import deque
from typing import Any, Deque, Dict, List, Optional

from ..agent import Agent
from ..events import DirectiveKind
from ..presets import TEXTURE_COMBINATIONS, TEXTURE_LIBRARY, ZONE_TEXTURE_MAP
from ..schemas import ActionRecord, CandidateAction, Message

ADD_LEVEL = 0.7
ZONE_LEVEL = 0.5
BOOST_FACTOR = 1.2
ADD_CHANCE = 0.3
CHANGE_CHANCE = 0.1


class TextureAgent(Agent):
    """Texture selector.

    Attributes:
        active: Active texture name -> level in [0, 1]
        active_combination: Name of the last activated combination
        max_active: Concurrent texture limit; the weakest is evicted beyond it
        reactivity: Probability of answering a zone change
        decision_interval: Seconds between routine decisions
    """

    kind = "texture"
    default_update_interval = 0.05
    critical = False

    def __init__(
        self,
        agent_id: str = "texture",
        mesh=None,
        *,
        library: Optional[Dict[str, Dict[str, Dict[str, Any]]]] = None,
        combinations: Optional[Dict[str, Dict[str, List[str]]]] = None,
        zone_map: Optional[Dict[str, Dict[str, str]]] = None,
        max_active: int = 4,
        reactivity: float = 0.5,
        decision_interval: float = 2.0,
        orchestrator_id: str = "orchestrator",
        **kwargs: Any,
    ) -> None:
        super().__init__(agent_id, mesh, **kwargs)
        if max_active < 1:
            raise ValueError("max_active must be at least 1")
        self.library = library if library is not None else TEXTURE_LIBRARY
        self.combinations = combinations if combinations is not None else TEXTURE_COMBINATIONS
        self.zone_map = zone_map if zone_map is not None else ZONE_TEXTURE_MAP
        self.max_active = max_active
        self.reactivity = max(0.0, min(1.0, reactivity))
        self.decision_interval = decision_interval
        self.orchestrator_id = orchestrator_id

        self.era: Optional[str] = None
        self.zone: Optional[str] = None
        self.active: Dict[str, float] = {}
        self.active_combination: Optional[str] = None
        self.combination_history: Deque[Dict[str, Any]] = deque(maxlen=50)
        self.zone_history: Deque[str] = deque(maxlen=50)
        self.zone_associations: Dict[str, Dict[str, int]] = {}
        self._last_decision: Optional[float] = None
        self._zone_reaction: Optional[CandidateAction] = None

    # ------------------------------------------------------------------
    # Library lookups
    # ------------------------------------------------------------------

    def available_textures(self) -> List[str]:
        return list(self.library.get(self.era or "", {}))

    def available_combinations(self) -> List[str]:
        return list(self.combinations.get(self.era or "", {}))

    def texture_weight(self, name: str) -> float:
        """Selection weight; grows with how often the texture answered a zone."""
        return 1.0 + 0.1 * sum(self.zone_associations.get(name, {}).values())

    # ------------------------------------------------------------------
    # Texture control
    # ------------------------------------------------------------------

    def add_texture(self, name: str, level: float = ADD_LEVEL) -> bool:
        entry = self.library.get(self.era or "", {}).get(name)
        if entry is None:
            self.log(f"Unknown texture '{name}' for era '{self.era}' ignored")
            return False
        level = self._clamp(level)
        if name in self.active:
            self.active[name] = max(self.active[name], level)
        else:
            while len(self.active) >= self.max_active:
                weakest = min(self.active, key=self.active.get)
                self.remove_texture(weakest)
            self.active[name] = level
        self.publish_directive(
            DirectiveKind.SOURCE_ACTIVATE,
            target=name,
            value=self.active[name],
            era=self.era,
            source=entry.get("source"),
            intensity=entry.get("intensity"),
        )
        return True

    def remove_texture(self, name: str) -> bool:
        if self.active.pop(name, None) is None:
            return False
        self.publish_directive(DirectiveKind.SOURCE_DEACTIVATE, target=name, era=self.era)
        return True

    def boost_texture(self, name: str, factor: float = BOOST_FACTOR) -> bool:
        if name not in self.active:
            return False
        self.active[name] = self._clamp(self.active[name] * factor)
        self.publish_directive(DirectiveKind.SOURCE_ACTIVATE, target=name, value=self.active[name], era=self.era)
        return True

    def stop_all(self) -> int:
        stopped = 0
        for name in list(self.active):
            stopped += self.remove_texture(name)
        self.active_combination = None
        return stopped

    def activate_combination(self, name: str) -> bool:
        textures = self.combinations.get(self.era or "", {}).get(name)
        if textures is None:
            self.log(f"Unknown combination '{name}' for era '{self.era}' ignored")
            return False
        for active in list(self.active):
            if active not in textures:
                self.remove_texture(active)
        for texture in textures:
            if texture not in self.active:
                self.add_texture(texture, 1.0)
        self.active_combination = name
        self.combination_history.append({"name": name, "era": self.era, "time": self.clock.now()})
        self.report_state()
        return True

    def set_era(self, era: str) -> None:
        previous = self.era
        self.stop_all()
        self.era = era
        combinations = self.available_combinations()
        if combinations:
            self.activate_combination(combinations[0])
        self.emit("era.change", {"from": previous, "to": era})

    # ------------------------------------------------------------------
    # Perception
    # ------------------------------------------------------------------

    def perceive_step(self) -> None:
        super().perceive_step()
        era = self.get_perception("era")
        if era is not None and era != self.era:
            self.set_era(era)
        zone = self.get_change("zone")
        if zone is not None and zone.current is not None:
            self.on_zone_change(zone.current)

    def on_zone_change(self, zone: str) -> None:
        self.zone = zone
        self.zone_history.append(zone)
        texture = self.zone_map.get(self.era or "", {}).get(zone)
        if texture is None:
            return
        counts = self.zone_associations.setdefault(texture, {})
        counts[zone] = counts.get(zone, 0) + 1
        if self.rng.random() < self.reactivity:
            action = "boost_texture" if texture in self.active else "zone_texture"
            self._zone_reaction = CandidateAction(type=action, priority=0.8, params={"texture": texture})

    # ------------------------------------------------------------------
    # Decide / act
    # ------------------------------------------------------------------

    def _pick_new_texture(self) -> Optional[str]:
        candidates = [name for name in self.available_textures() if name not in self.active]
        if not candidates:
            return None
        return self.rng.choices(candidates, weights=[self.texture_weight(n) for n in candidates], k=1)[0]

    def _pick_new_combination(self) -> Optional[str]:
        names = self.available_combinations()
        candidates = [name for name in names if name != self.active_combination]
        if not candidates:
            return names[0] if names else None
        return self.rng.choice(candidates)

    def candidate_actions(self) -> List[CandidateAction]:
        actions: List[CandidateAction] = []
        if self._zone_reaction is not None:
            actions.append(self._zone_reaction)
            self._zone_reaction = None

        now = self.clock.now()
        if self._last_decision is not None and now - self._last_decision < self.decision_interval:
            return actions
        self._last_decision = now

        if not self.active:
            combinations = self.available_combinations()
            if combinations:
                actions.append(
                    CandidateAction(type="start_combination", priority=0.9, params={"combination": combinations[0]})
                )
        elif len(self.active) < 2 and self.rng.random() < ADD_CHANCE:
            texture = self._pick_new_texture()
            if texture is not None:
                actions.append(CandidateAction(type="add_texture", priority=0.6, params={"texture": texture}))
        elif self.rng.random() < CHANGE_CHANCE:
            combination = self._pick_new_combination()
            if combination is not None:
                actions.append(
                    CandidateAction(type="change_combination", priority=0.4, params={"combination": combination})
                )
        return actions

    def execute_action(self, action: CandidateAction) -> Any:
        if action.type in ("start_combination", "change_combination"):
            return self.activate_combination(action.get("combination"))
        if action.type == "add_texture":
            return self.add_texture(action.get("texture"), ADD_LEVEL)
        if action.type == "zone_texture":
            return self.add_texture(action.get("texture"), ZONE_LEVEL)
        if action.type == "boost_texture":
            return self.boost_texture(action.get("texture"))
        self.log(f"Unknown action '{action.type}' ignored")
        return None

    def calculate_reward(self, record: ActionRecord) -> float:
        if record.failed or not record.result:
            return 0.0
        if record.action.type in ("zone_texture", "boost_texture"):
            return 0.5 + 0.5 * float(self.get_perception("activity", 0.0))
        # A fuller (but not saturated) bed is preferred
        return 0.4 + 0.4 * min(1.0, len(self.active) / 3)

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------

    def handle_message(self, message: Message) -> None:
        payload = message.payload
        if message.type == "instruction":
            instruction = payload.get("instruction")
            if instruction == "activate_combination":
                self.activate_combination(payload.get("combination", ""))
            elif instruction == "add_texture":
                self.add_texture(payload.get("texture", ""), float(payload.get("level", ADD_LEVEL)))
            elif instruction in ("deactivate", "stop_all"):
                self.stop_all()
            elif instruction == "set_reactivity":
                self.reactivity = self._clamp(payload.get("value", self.reactivity))
            else:
                self.log(f"Unknown instruction '{instruction}' ignored")
        elif message.type == "mood.apply":
            energy = float(payload.get("characteristics", {}).get("energy", 0.5))
            self.reactivity = self._clamp(0.3 + 0.4 * energy)
        elif message.type in ("section.change", "permission.response"):
            self.remember(message.type, dict(payload))
        else:
            self.log(f"Ignoring message '{message.type}' from {message.sender}")

    def report_state(self) -> bool:
        return self.send(
            self.orchestrator_id,
            "report.state",
            {
                "kind": self.kind,
                "role": "texture",
                "active": bool(self.active),
                "textures": dict(self.active),
                "combination": self.active_combination,
            },
        )

    def status_extra(self) -> Dict[str, Any]:
        return {
            "era": self.era,
            "zone": self.zone,
            "textures": dict(self.active),
            "combination": self.active_combination,
            "reactivity": self.reactivity,
        }
