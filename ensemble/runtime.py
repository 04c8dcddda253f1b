"""
Agent Runtime: the shared timer driving every registered agent.

Fully decoupled from I/O. The mesh, notification bus, signal board, clock
and persistence backend are injected (or defaulted) at construction.

Each timer firing runs, for every registered agent that is active, not
paused and due according to its own update interval:

1. perceive      5. learn
2. drain mailbox 6. decay
3. decide        7. on_update hook
4. act

Every step is isolated: an exception is logged, published as an `error`
event, recorded in the TickReport, and the remaining steps and agents still
run. No agent failure can stop the timer.
"""

import asyncio
import time
from typing import Any, Callable, Dict, List, Optional

from .agent import Agent
from .clock import Clock, MonotonicClock, VirtualClock
from .config import Config
from .events import NotificationBus
from .logging_utils import (
    colored,
    Color,
    LOG_TAG_SUCCESS,
    log_error,
    log_info,
    verbose_enabled,
)
from .mesh import MessageMesh
from .perception import SignalBoard
from .persistence import PersistenceStrategy, InMemoryPersistence
from .schemas import TickReport

AgentFactory = Callable[..., Agent]
TickListener = Callable[[int, TickReport], None]


class AgentRuntime:
    """
    Owns the shared timer and the per-agent pipeline.

    The mesh is the single agent directory: registering with the runtime
    registers with the mesh, and the runtime iterates the mesh on each tick.
    """

    def __init__(
        self,
        *,
        mesh: Optional[MessageMesh] = None,
        bus: Optional[NotificationBus] = None,
        signals: Optional[SignalBoard] = None,
        clock: Optional[Clock] = None,
        update_interval: Optional[float] = None,
        tick_budget: Optional[float] = None,
        persistence: Optional[PersistenceStrategy] = None,
        tick_listeners: Optional[List[TickListener]] = None,
        timer: Callable[[], float] = time.perf_counter,
    ):
        """Initialize the runtime with its collaborators.

        Args:
            mesh: Message mesh; a new one sharing `clock` is created if omitted
            bus: Notification bus for events and directives
            signals: Inbound signal board handed to agents built by `create`
            clock: Time source for agents and dwell timing
            update_interval: Seconds between timer firings (ENSEMBLE_UPDATE_RATE_MS)
            tick_budget: Optional wall-clock budget per firing; once exceeded,
                non-critical agents not yet run are deferred to the next firing
            persistence: Backend for save_learning/load_learning
                (defaults to InMemoryPersistence)
            tick_listeners: Callables invoked after each tick with
                (tick, report)
            timer: Wall-clock source used only for the tick budget
        """
        self.clock: Clock = clock or (mesh.clock if mesh is not None else MonotonicClock())
        self.mesh = mesh or MessageMesh(clock=self.clock)
        self.bus = bus or NotificationBus()
        self.signals = signals or SignalBoard()
        self.update_interval = (
            update_interval if update_interval is not None else Config.UPDATE_RATE_MS / 1000.0
        )
        if self.update_interval <= 0:
            raise ValueError("update_interval must be positive")
        self.tick_budget = tick_budget
        self.persistence = persistence or InMemoryPersistence()
        self.tick_listeners: List[TickListener] = list(tick_listeners or [])
        self._timer = timer

        self._factories: Dict[str, AgentFactory] = {}
        self.tick_count = 0
        self._running = False

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def register(self, agent: Agent, *, start: bool = True) -> Agent:
        """Register an agent on the mesh and (by default) start it.

        Raises:
            DuplicateAgentError: If the id is already taken
        """
        self.mesh.register(agent)
        if start:
            agent.start()
        return agent

    def unregister(self, agent_id: str) -> bool:
        """Stop and remove an agent. Safe to call mid-tick."""
        return self.mesh.unregister(agent_id)

    def register_kind(self, kind: str, factory: AgentFactory) -> None:
        """Make `create(kind, ...)` available.

        The factory is called as
        `factory(agent_id, mesh, bus=..., signals=..., clock=..., **kwargs)`,
        which matches every Agent subclass constructor.
        """
        self._factories[kind] = factory

    def create(self, kind: str, agent_id: str, *, start: bool = True, **kwargs: Any) -> Optional[Agent]:
        """Build and register an agent of a registered kind.

        Returns:
            The new agent, or None (logged) if the kind is unknown.
        """
        factory = self._factories.get(kind)
        if factory is None:
            log_error(f"Unknown agent kind '{kind}'; nothing created")
            return None
        kwargs.setdefault("bus", self.bus)
        kwargs.setdefault("signals", self.signals)
        kwargs.setdefault("clock", self.clock)
        agent = factory(agent_id, self.mesh, **kwargs)
        return self.register(agent, start=start)

    def get(self, agent_id: str) -> Optional[Agent]:
        return self.mesh.get(agent_id)

    def agents(self) -> List[Agent]:
        return self.mesh.agents()

    def agents_by_kind(self, kind: str) -> List[Agent]:
        return [agent for agent in self.mesh.agents() if agent.kind == kind]

    def start_all(self) -> None:
        for agent in self.mesh.agents():
            agent.start()

    def stop_all(self) -> None:
        for agent in self.mesh.agents():
            agent.stop()

    def pause_all(self) -> None:
        for agent in self.mesh.agents():
            agent.pause()

    def resume_all(self) -> None:
        for agent in self.mesh.agents():
            agent.resume()

    def add_tick_listener(self, listener: TickListener) -> None:
        self.tick_listeners.append(listener)

    # ------------------------------------------------------------------
    # Timer
    # ------------------------------------------------------------------

    def tick(self) -> TickReport:
        """Run one timer firing synchronously.

        Returns:
            TickReport listing agents that ran, agents deferred by the tick
            budget, and every error caught along the way.
        """
        self.tick_count += 1
        report = TickReport(tick=self.tick_count)
        started = self._timer()

        # Snapshot the directory; agents unregistered mid-tick are skipped below
        for agent in self.mesh.agents():
            if self.mesh.get(agent.id) is not agent:
                continue
            if not agent.runnable:
                continue

            now = self.clock.now()
            if not agent.is_due(now):
                continue

            if (
                self.tick_budget is not None
                and not agent.critical
                and self._timer() - started > self.tick_budget
            ):
                report.deferred.append(agent.id)
                continue

            self._run_pipeline(agent, now)
            report.ran.append(agent.id)
            report.errors.extend(agent.last_errors)

        for listener in list(self.tick_listeners):
            try:
                listener(self.tick_count, report)
            except Exception as exc:
                log_error(f"Tick listener failed at tick {self.tick_count}: {exc}")

        return report

    def _run_pipeline(self, agent: Agent, now: float) -> None:
        dt = agent.begin_tick(now)

        self._guard(agent, "perceive", agent.perceive_step)
        self._guard(agent, "drain", agent.drain_mailbox)
        self._guard(agent, "decide", lambda: agent.decide_step(dt))
        self._guard(agent, "act", agent.act_step)
        self._guard(agent, "learn", agent.learn_step)
        self._guard(agent, "decay", lambda: agent.decay_step(dt))
        self._guard(agent, "update", lambda: agent.on_update(dt))

    @staticmethod
    def _guard(agent: Agent, step: str, fn: Callable[[], Any]) -> None:
        try:
            fn()
        except Exception as exc:
            agent.report_error(step, exc)

    async def run(self, num_ticks: Optional[int] = None) -> Dict[str, Any]:
        """Fire the timer every `update_interval` seconds.

        With a VirtualClock the clock is advanced by the interval instead of
        sleeping, so offline renders and tests run at full speed.

        Args:
            num_ticks: Number of firings; None runs until `stop()` is called

        Returns:
            Dict with the number of ticks completed and errors caught
        """
        self._running = True
        completed = 0
        errors = 0
        if verbose_enabled():
            log_info(f"Runtime starting: {len(self.mesh)} agents, interval {self.update_interval:.3f}s")

        try:
            while self._running and (num_ticks is None or completed < num_ticks):
                report = self.tick()
                completed += 1
                errors += len(report.errors)

                if isinstance(self.clock, VirtualClock):
                    self.clock.advance(self.update_interval)
                    await asyncio.sleep(0)
                else:
                    await asyncio.sleep(self.update_interval)
        finally:
            self._running = False

        if verbose_enabled():
            print(colored(f"{LOG_TAG_SUCCESS} Runtime finished after {completed} ticks", Color.GREEN))
        return {"ticks": completed, "errors": errors}

    def stop(self) -> None:
        """Ask a running `run()` loop to exit after the current tick."""
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    # ------------------------------------------------------------------
    # Learning persistence
    # ------------------------------------------------------------------

    async def save_learning(self, session_id: str) -> int:
        """Persist every registered agent's snapshot. Returns the count saved."""
        await self.persistence.initialize()
        saved = 0
        for agent in self.mesh.agents():
            await self.persistence.save_snapshot(session_id, agent.export_snapshot())
            saved += 1
        return saved

    async def load_learning(self, session_id: str) -> int:
        """Restore snapshots for registered agents. Returns the count restored."""
        await self.persistence.initialize()
        restored = 0
        for agent in self.mesh.agents():
            snapshot = await self.persistence.load_snapshot(session_id, agent.id)
            if snapshot is None:
                continue
            agent.import_snapshot(snapshot)
            restored += 1
        return restored
