"""
Demo: The Three Textbook Suzuki–Kasami Situations

Walks through the protocol step by step and prints the trace:

1. Immediate hand-off: an idle token holder answers a REQUEST directly
2. Queued release: two requests reach a busy holder and are served in order
3. Late request: a REQUEST misses the holder but a later holder serves it

Output: output/demo_scenarios/*.png (ring view after each scenario)
"""

import logging
from pathlib import Path

import matplotlib.pyplot as plt

from skmutex.analysis import InvariantMonitor
from skmutex.core import EngineConfig, MessageKind, ProtocolEngine
from skmutex.trace import ProtocolTrace
from skmutex.viz import plot_snapshot, save_figure


def drain(engine):
    while len(engine.channel):
        engine.step()


def pending(engine, sender, receiver, kind=MessageKind.REQUEST):
    return next(
        m for m in engine.channel
        if m.sender == sender and m.receiver == receiver and m.kind is kind
    )


def deliver(engine, sender, receiver, kind=MessageKind.REQUEST):
    """Let one message cover its whole path ahead of the others, then deliver it."""
    message = pending(engine, sender, receiver, kind)
    message.transit = 1.0
    engine.on_message_arrival(message)


def show(engine, trace, name, output_dir):
    snap = engine.snapshot()
    print("\n   Trace (oldest first):")
    for line in reversed(trace.lines):
        print(f"     {line}")
    print(f"   Executing: {snap.executing()}  Token: {snap.token}")

    fig, _ = plot_snapshot(snap, title=name)
    path = output_dir / f"{name.lower().replace(' ', '_')}.png"
    save_figure(fig, path)
    plt.close(fig)
    print(f"   Saved to: {path}")


def scenario_immediate(output_dir):
    print("\n1. Immediate hand-off (P0 idle with the token, P1 requests)")
    engine = ProtocolEngine(EngineConfig(n_processes=5, transit_step=0.5))
    InvariantMonitor.attach(engine)
    trace = ProtocolTrace.attach(engine)

    engine.request_cs(1)
    drain(engine)
    show(engine, trace, "Immediate hand-off", output_dir)


def scenario_queued(output_dir):
    print("\n2. Queued release (P0 executing, P2 and P3 request)")
    engine = ProtocolEngine(EngineConfig(n_processes=5, transit_step=0.5, initial_holder=4))
    InvariantMonitor.attach(engine)
    engine.request_cs(0)
    drain(engine)

    trace = ProtocolTrace.attach(engine)
    engine.request_cs(2)
    engine.request_cs(3)
    drain(engine)
    print(f"   RN at P0 before release: {engine.registry.get(0).request_numbers}")

    engine.release_cs(0)
    drain(engine)
    engine.release_cs(2)
    drain(engine)
    show(engine, trace, "Queued release", output_dir)


def scenario_late(output_dir):
    print("\n3. Late request (P1's REQUEST reaches P0 after the token left)")
    engine = ProtocolEngine(EngineConfig(n_processes=5, transit_step=0.5, initial_holder=4))
    InvariantMonitor.attach(engine)
    engine.request_cs(0)
    drain(engine)

    trace = ProtocolTrace.attach(engine)
    engine.request_cs(2)
    engine.request_cs(1)
    deliver(engine, 2, 0)
    deliver(engine, 1, 2)

    engine.release_cs(0)
    deliver(engine, 0, 2, MessageKind.TOKEN)
    deliver(engine, 1, 0)

    engine.release_cs(2)
    drain(engine)
    show(engine, trace, "Late request", output_dir)


def main():
    logging.basicConfig(level=logging.WARNING)

    print("=" * 60)
    print("  SUZUKI–KASAMI SCENARIOS")
    print("=" * 60)

    output_dir = Path("output") / "demo_scenarios"
    output_dir.mkdir(parents=True, exist_ok=True)

    scenario_immediate(output_dir)
    scenario_queued(output_dir)
    scenario_late(output_dir)

    print("\n" + "=" * 60)
    print("Demo complete!")
    print("=" * 60)


if __name__ == "__main__":
    main()
