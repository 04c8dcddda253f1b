"""
Message Mesh: name-addressed mailbox delivery between agents.

The mesh is the only state shared between agents. It maps agent ids to the
registered agent objects; each agent owns its mailbox (a deque), but every
append and pop on a mailbox goes through the mesh lock so that register,
unregister and send are atomic with respect to a drain in progress.

Delivery semantics:
- at most once: a message is popped exactly once by the owner's drain
- FIFO per (sender, recipient) pair; no ordering across senders
- best effort: sending to an unknown id returns False and drops the message
"""

import threading
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional

from .clock import Clock, MonotonicClock
from .schemas import Message

if TYPE_CHECKING:
    from .agent import Agent


class DuplicateAgentError(ValueError):
    """Raised when an agent id is registered twice on the same mesh."""


class MessageMesh:
    """Directory of registered agents and their mailboxes.

    Construct one mesh per session and hand it to every agent. Nothing in the
    package keeps a module-level mesh, so tests can build as many isolated
    meshes as they need.
    """

    def __init__(self, clock: Optional[Clock] = None) -> None:
        self.clock: Clock = clock or MonotonicClock()
        self._agents: Dict[str, "Agent"] = {}
        self._lock = threading.RLock()

    # ------------------------------------------------------------------
    # Directory
    # ------------------------------------------------------------------

    def register(self, agent: "Agent") -> None:
        with self._lock:
            if agent.id in self._agents:
                raise DuplicateAgentError(f"Agent id '{agent.id}' is already registered")
            self._agents[agent.id] = agent
            agent.mesh = self

    def unregister(self, agent_id: str) -> bool:
        """Stop the agent, release its mailbox and forget it.

        Returns:
            False if no agent with that id was registered.
        """
        with self._lock:
            agent = self._agents.pop(agent_id, None)
            if agent is None:
                return False
            agent.mailbox.clear()

        # Stop outside the lock; on_stop hooks may send farewells.
        agent.stop()
        agent.mesh = None
        return True

    def get(self, agent_id: str) -> Optional["Agent"]:
        with self._lock:
            return self._agents.get(agent_id)

    def agent_ids(self) -> List[str]:
        with self._lock:
            return list(self._agents)

    def agents(self) -> List["Agent"]:
        with self._lock:
            return list(self._agents.values())

    def __contains__(self, agent_id: object) -> bool:
        with self._lock:
            return agent_id in self._agents

    def __len__(self) -> int:
        with self._lock:
            return len(self._agents)

    # ------------------------------------------------------------------
    # Delivery
    # ------------------------------------------------------------------

    def send(
        self,
        sender: str,
        recipient: str,
        type: str,
        payload: Optional[Dict[str, Any]] = None,
    ) -> bool:
        """Append a message to the recipient's mailbox.

        Returns:
            True if the recipient exists, False if the message was dropped.
        """
        with self._lock:
            target = self._agents.get(recipient)
            if target is None:
                return False
            message = Message(
                sender=sender,
                recipient=recipient,
                type=type,
                payload=dict(payload or {}),
                timestamp=self.clock.now(),
            )
            target.mailbox.append(message)
            return True

    def broadcast(
        self,
        sender: str,
        type: str,
        payload: Optional[Dict[str, Any]] = None,
    ) -> int:
        """Send individually to every registered agent except the sender.

        Returns:
            Number of mailboxes the message was appended to.
        """
        with self._lock:
            recipients = [agent_id for agent_id in self._agents if agent_id != sender]
            return sum(1 for agent_id in recipients if self.send(sender, agent_id, type, payload))

    def pop(self, agent_id: str) -> Optional[Message]:
        """Remove and return the oldest pending message for `agent_id`."""
        with self._lock:
            agent = self._agents.get(agent_id)
            if agent is None or not agent.mailbox:
                return None
            return agent.mailbox.popleft()

    def drain(self, agent_id: str, handler: Callable[[Message], None]) -> int:
        """Dispatch every queued message to `handler` in arrival order.

        Messages are popped one at a time under the lock and handled outside
        it, so a handler may send (even to its own agent) without deadlock.
        Messages appended while draining are handled in the same drain, which
        leaves the mailbox empty on return.

        Returns:
            Number of messages dispatched.
        """
        handled = 0
        while True:
            message = self.pop(agent_id)
            if message is None:
                return handled
            handler(message)
            handled += 1

    def pending(self, agent_id: str) -> int:
        with self._lock:
            agent = self._agents.get(agent_id)
            return len(agent.mailbox) if agent is not None else 0

    # ------------------------------------------------------------------
    # Topics
    # ------------------------------------------------------------------

    def subscribe(self, agent_id: str, topic: str) -> bool:
        """Record topic interest. Delivery is not filtered by topic."""
        with self._lock:
            agent = self._agents.get(agent_id)
            if agent is None:
                return False
            agent.subscriptions.add(topic)
            return True

    def unsubscribe(self, agent_id: str, topic: str) -> bool:
        with self._lock:
            agent = self._agents.get(agent_id)
            if agent is None:
                return False
            agent.subscriptions.discard(topic)
            return True
