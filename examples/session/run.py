"""
Session demo: a full ensemble driven by scripted gestures
==========================================================

WHAT THIS SHOWS:
- One orchestrator managing voices, a dynamics mind and a texture mind
- Agents wired through an explicit mesh, notification bus and signal board
- A virtual clock so a few minutes of music render in well under a second
- Directives (what a synth/renderer would subscribe to) printed as they fire
- Learned state saved to JSON at the end

RUN:
    python examples/session/run.py --ticks 600 --era tribal
    python examples/session/run.py --save demo-session
"""

import argparse
import asyncio
import random

from ensemble import (
    AgentRuntime,
    DynamicsAgent,
    JsonPersistence,
    NotificationBus,
    Orchestrator,
    SignalBoard,
    TextureAgent,
    VirtualClock,
    VoiceAgent,
)
from ensemble.config import Config
from ensemble.logging_utils import log_info, log_success, log_transition

ZONES = [
    "top-left", "top-center", "top-right",
    "middle-left", "center", "middle-right",
    "bottom-left", "bottom-center", "bottom-right",
]


def build_runtime(seed: int, era: str, persistence=None) -> AgentRuntime:
    clock = VirtualClock()
    bus = NotificationBus()
    signals = SignalBoard(era=era, bpm=90)
    runtime = AgentRuntime(clock=clock, bus=bus, signals=signals, persistence=persistence)

    def rng(name: str) -> random.Random:
        return random.Random(f"{seed}:{name}")

    runtime.register_kind("voice", VoiceAgent)
    conductor = runtime.register(
        Orchestrator("orchestrator", runtime.mesh, bus=bus, signals=signals, clock=clock, rng=rng("orchestrator"))
    )
    for role in ("drums", "bass", "harmony", "melody"):
        runtime.create("voice", role, rng=rng(role))
        conductor.manage(role, kind="voice")

    dynamics = runtime.register(
        DynamicsAgent("dynamics", runtime.mesh, bus=bus, signals=signals, clock=clock, rng=rng("dynamics"))
    )
    texture = runtime.register(
        TextureAgent("texture", runtime.mesh, bus=bus, signals=signals, clock=clock, rng=rng("texture"))
    )
    conductor.manage(dynamics.id)
    conductor.manage(texture.id)
    return runtime


def script_gestures(runtime: AgentRuntime, seed: int, bpm: float):
    """Tick listener moving the performer's hand and the beat counter."""
    rng = random.Random(seed)
    state = {"activity": 0.2, "zone": "center"}

    def listener(tick: int, report) -> None:
        now = runtime.clock.now()
        # Slow swell of activity with jitter
        state["activity"] = max(0.0, min(1.0, state["activity"] + rng.uniform(-0.05, 0.06)))
        if rng.random() < 0.02:
            state["zone"] = rng.choice(ZONES)
        runtime.signals.update(
            activity=state["activity"],
            zone=state["zone"],
            beat=int(now * bpm / 60.0),
        )

    return listener


def print_directive(event: str, data) -> None:
    log_transition(f"{event:<32} {data.get('target') or '':<16} {data.get('value')}")


async def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__, formatter_class=argparse.RawDescriptionHelpFormatter)
    parser.add_argument("--ticks", type=int, default=600, help="Timer firings to run (50 ms each)")
    parser.add_argument("--era", default="genesis", choices=["genesis", "primordial", "tribal", "sacred", "modern"])
    parser.add_argument("--seed", type=int, default=Config.SEED if Config.SEED is not None else 7)
    parser.add_argument("--save", metavar="SESSION", help="Save learned state under this session id")
    parser.add_argument("--quiet", action="store_true", help="Do not print directives")
    args = parser.parse_args()

    persistence = JsonPersistence(Config.SNAPSHOT_DIR) if args.save else None
    runtime = build_runtime(args.seed, args.era, persistence)
    runtime.add_tick_listener(script_gestures(runtime, args.seed, bpm=90))
    if not args.quiet:
        runtime.bus.subscribe("directive.*", print_directive)

    log_info(Config.display())
    result = await runtime.run(num_ticks=args.ticks)
    log_success(f"Rendered {runtime.clock.now():.1f}s in {result['ticks']} ticks ({result['errors']} errors)")

    for agent in runtime.agents():
        status = agent.get_status()
        log_info(
            f"{status.agent_id:<13} kind={status.kind:<12} reward={status.avg_reward:.2f} "
            f"confidence={status.confidence:.2f} patterns={status.patterns_learned}"
        )

    if args.save:
        saved = await runtime.save_learning(args.save)
        log_success(f"Saved {saved} agent snapshots to {Config.SNAPSHOT_DIR / args.save}")


if __name__ == "__main__":
    asyncio.run(main())
