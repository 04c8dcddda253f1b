"""Notification bus and outbound directives.

The bus is how the core talks to the excluded subsystems (synthesis,
rendering, metrics). Agents publish events such as `agent.texture.action`
or `directive.source.activate`; hosts subscribe with shell-style patterns
and realize the directives however they like. The core never waits for a
listener and never sees a listener failure.
"""

import time
from collections import deque
from enum import Enum
from fnmatch import fnmatchcase
from typing import Any, Callable, Deque, Dict, List, Optional, Tuple

from pydantic import BaseModel, Field

from .logging_utils import log_error

Listener = Callable[[str, Dict[str, Any]], None]


class DirectiveKind(str, Enum):
    """Fire-and-forget instructions for the synthesis/rendering layers."""

    SOURCE_ACTIVATE = "source.activate"
    SOURCE_DEACTIVATE = "source.deactivate"
    DYNAMICS_SET = "dynamics.set"
    TENSION_SET = "tension.set"
    SECTION_TRANSITION = "section.transition"
    CHARACTERISTICS_SET = "characteristics.set"
    TEMPO_SET = "tempo.set"


class Directive(BaseModel):
    """Typed outbound directive.

    `target` names the sound source, section or parameter the directive is
    about; `value` carries the numeric or symbolic setting.
    """

    kind: DirectiveKind
    source: str = Field(..., description="Agent id that issued the directive")
    target: Optional[str] = None
    value: Any = None
    params: Dict[str, Any] = Field(default_factory=dict)
    timestamp: float = Field(default_factory=time.time)

    @property
    def event_name(self) -> str:
        return f"directive.{self.kind.value}"


class NotificationBus:
    """Synchronous publish/subscribe hub with pattern subscriptions.

    Patterns use `fnmatch` syntax, so `directive.*` receives every directive
    and `agent.*.state.mood` receives mood changes of every agent.
    """

    def __init__(self, history_size: int = 200) -> None:
        self._listeners: List[Tuple[str, Listener]] = []
        self.history: Deque[Tuple[str, Dict[str, Any]]] = deque(maxlen=history_size)

    def subscribe(self, pattern: str, listener: Listener) -> Callable[[], None]:
        """Register a listener; returns a callable that removes it again."""
        entry = (pattern, listener)
        self._listeners.append(entry)

        def unsubscribe() -> None:
            if entry in self._listeners:
                self._listeners.remove(entry)

        return unsubscribe

    def publish(self, event: str, data: Optional[Dict[str, Any]] = None) -> int:
        """Deliver an event to every matching listener.

        Returns:
            Number of listeners that received the event without raising.
        """
        payload = dict(data or {})
        self.history.append((event, payload))

        delivered = 0
        for pattern, listener in list(self._listeners):
            if not fnmatchcase(event, pattern):
                continue
            try:
                listener(event, payload)
                delivered += 1
            except Exception as exc:
                log_error(f"Listener for '{pattern}' failed on '{event}': {exc}")
        return delivered

    def publish_directive(self, directive: Directive) -> int:
        return self.publish(directive.event_name, directive.model_dump(mode="json"))

    def recent(self, pattern: str = "*") -> List[Tuple[str, Dict[str, Any]]]:
        """Return buffered events whose name matches `pattern`, oldest first."""
        return [(event, data) for event, data in self.history if fnmatchcase(event, pattern)]

    def clear(self) -> None:
        self.history.clear()
