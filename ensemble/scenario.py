"""
Descriptor loading from JSON files.

State-machine descriptors and musical forms are data, not code: a new mood
set or energy ladder can be dropped into the descriptors directory and
loaded without touching the agents. Everything is validated at load time,
so a descriptor that names an unknown successor fails here rather than in
the middle of a performance.

Descriptor file structure (state machine):
```json
{
  "type": "state_machine",
  "name": "pulse",
  "default_state": "low",
  "curve": "easeInOut",
  "states": {
    "low":  {"level": 0, "characteristics": {"volume": 0.2}, "successors": ["high"], "dwell_range": [1, 2]},
    "high": {"level": 1, "characteristics": {"volume": 0.9}, "successors": ["low"], "dwell_range": [1, 2]}
  },
  "modes": {"calm": {"preferred_states": ["low"], "default_state": "low"}}
}
```

Musical form files use `"type": "form"` plus `sections` and
`transition_style`.

Usage:
    loader = DescriptorLoader()
    descriptor = loader.load("pulse")
    controller = StateMachineController(descriptor, clock=clock)
"""

import json
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from .config import Config
from .schemas import MusicalForm
from .statemachine.schemas import StateMachineDescriptor

STATE_MACHINE = "state_machine"
FORM = "form"


class DescriptorLoader:
    """Load and validate descriptors from `<descriptors_dir>/<name>.json`.

    Directory structure:
    - Default: {PROJECT_ROOT}/examples/descriptors/
    - Override via constructor: DescriptorLoader(Path("/custom/descriptors"))

    Validation:
    - Required fields: name, plus states/default_state (state machines) or
      sections (forms)
    - Everything else is checked by the pydantic models; their
      ValidationError is a ValueError
    """

    def __init__(self, descriptors_dir: Optional[Path] = None):
        self.descriptors_dir = Path(descriptors_dir) if descriptors_dir is not None else Config.DESCRIPTORS_DIR

    def _read(self, name: str) -> Dict[str, Any]:
        path = self.descriptors_dir / f"{name}.json"
        if not path.exists():
            raise FileNotFoundError(f"Descriptor '{name}' not found at {path}")
        try:
            data = json.loads(path.read_text())
        except json.JSONDecodeError as exc:
            raise ValueError(f"Descriptor '{name}' is not valid JSON: {exc}") from exc
        if not isinstance(data, dict):
            raise ValueError(f"Descriptor '{name}' must be a JSON object")
        return data

    def load(self, name: str) -> StateMachineDescriptor:
        """Load a state-machine descriptor.

        Raises:
            FileNotFoundError: If the file doesn't exist
            ValueError: If the JSON is malformed or fails validation
        """
        data = self._read(name)
        return self.parse_state_machine(data, name)

    def load_form(self, name: str) -> MusicalForm:
        data = self._read(name)
        return self.parse_form(data, name)

    def load_any(self, name: str) -> Union[StateMachineDescriptor, MusicalForm]:
        """Load whichever kind of descriptor the file declares in `type`."""
        data = self._read(name)
        kind = data.get("type", STATE_MACHINE)
        if kind == FORM:
            return self.parse_form(data, name)
        if kind == STATE_MACHINE:
            return self.parse_state_machine(data, name)
        raise ValueError(f"Descriptor '{name}' has unknown type '{kind}'")

    @staticmethod
    def parse_state_machine(data: Dict[str, Any], name: str = "<inline>") -> StateMachineDescriptor:
        if data.get("type", STATE_MACHINE) != STATE_MACHINE:
            raise ValueError(f"Descriptor '{name}' is a '{data.get('type')}', not a state machine")
        missing = [field for field in ("name", "states", "default_state") if field not in data]
        if missing:
            raise ValueError(f"Descriptor '{name}' missing required fields: {missing}")
        fields = {key: value for key, value in data.items() if key not in ("type", "description")}
        return StateMachineDescriptor(**fields)

    @staticmethod
    def parse_form(data: Dict[str, Any], name: str = "<inline>") -> MusicalForm:
        if data.get("type") != FORM:
            raise ValueError(f"Descriptor '{name}' is not a musical form")
        missing = [field for field in ("name", "sections") if field not in data]
        if missing:
            raise ValueError(f"Form '{name}' missing required fields: {missing}")
        return MusicalForm(
            name=data["name"],
            sections=data["sections"],
            transition_style=data.get("transition_style", "smooth"),
        )

    def list_descriptors(self) -> List[str]:
        if not self.descriptors_dir.exists():
            return []
        return sorted(f.stem for f in self.descriptors_dir.glob("*.json") if not f.name.startswith("_"))

    def get_descriptor_info(self, name: str) -> Dict[str, Any]:
        """Summary without full validation."""
        data = self._read(name)
        kind = data.get("type", STATE_MACHINE)
        return {
            "name": data.get("name", name),
            "type": kind,
            "description": data.get("description", "No description"),
            "size": len(data.get("states", {})) if kind == STATE_MACHINE else len(data.get("sections", [])),
        }


def load_descriptor(name: str, descriptors_dir: Optional[Path] = None) -> StateMachineDescriptor:
    """Convenience wrapper around `DescriptorLoader(descriptors_dir).load(name)`."""
    return DescriptorLoader(descriptors_dir).load(name)
