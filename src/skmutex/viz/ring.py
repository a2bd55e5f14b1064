"""
Ring view of a simulation snapshot.

Processes sit evenly on a circle, P0 at the top, numbered clockwise.
Messages are drawn part-way along the line from sender to receiver
according to their transit. The token's LN array, wait queue and holder
are printed in the middle; while the token is in flight the middle reads
"Transferring Token" instead.
"""

from __future__ import annotations
from typing import TYPE_CHECKING

import numpy as np
import matplotlib.pyplot as plt
from matplotlib.axes import Axes
from matplotlib.figure import Figure
from matplotlib.patches import Circle

from skmutex.core.messages import MessageKind
from skmutex.core.registry import Phase

if TYPE_CHECKING:
    from skmutex.core.engine import Snapshot


PHASE_COLORS = {
    Phase.IDLE: "#1e293b",        # slate
    Phase.REQUESTING: "#f59e0b",  # amber
    Phase.EXECUTING: "#10b981",   # emerald
}

MESSAGE_COLORS = {
    MessageKind.REQUEST: "#f59e0b",
    MessageKind.TOKEN: "#10b981",
}

DEFAULT_RADIUS = 210.0
DEFAULT_CENTER = (350.0, 350.0)


def node_positions(
    n_processes: int,
    radius: float = DEFAULT_RADIUS,
    center: tuple[float, float] = DEFAULT_CENTER,
) -> np.ndarray:
    """
    Ring layout for n processes.

    Process i sits at angle 2π·i/n − π/2, so P0 is at the top of the screen
    (screen y grows downward).

    Returns:
        [n, 2] array of (x, y) positions
    """
    angles = np.arange(n_processes) / n_processes * 2 * np.pi - np.pi / 2
    cx, cy = center
    return np.column_stack([cx + np.cos(angles) * radius, cy + np.sin(angles) * radius])


def message_position(positions: np.ndarray, sender: int, receiver: int, transit: float) -> np.ndarray:
    """Point reached by a message after covering `transit` of its route."""
    start, end = positions[sender], positions[receiver]
    return start + (end - start) * transit


def plot_snapshot(
    snapshot: "Snapshot",
    title: str = "Suzuki–Kasami Distributed Mutual Exclusion",
    ax: Axes | None = None,
    show_rn: bool = True,
    figsize: tuple[float, float] = (8, 8),
) -> tuple[Figure, Axes]:
    """
    Draw processes, in-flight messages and the token state.

    Args:
        snapshot: State captured by ProtocolEngine.snapshot()
        title: Plot title
        ax: Existing axes to draw on (creates new figure if None)
        show_rn: Print each process's RN array under its label
        figsize: Figure size if creating new figure

    Returns:
        (fig, ax) tuple
    """
    if ax is None:
        fig, ax = plt.subplots(figsize=figsize)
    else:
        fig = ax.figure

    n = snapshot.n_processes
    positions = node_positions(n)
    cx, cy = DEFAULT_CENTER

    ax.add_patch(Circle((cx, cy), DEFAULT_RADIUS, fill=False, linestyle="--", alpha=0.2))

    # Messages: faint route line plus a dot at the current position
    for message in snapshot.in_flight:
        color = MESSAGE_COLORS[message.kind]
        start, end = positions[message.sender], positions[message.receiver]
        ax.plot([start[0], end[0]], [start[1], end[1]], color=color, alpha=0.15, lw=1)

        x, y = message_position(positions, message.sender, message.receiver, message.transit)
        size = 160 if message.kind is MessageKind.TOKEN else 60
        ax.scatter([x], [y], s=size, c=color, zorder=4)
        ax.annotate(message.label(), (x, y), xytext=(0, -14), textcoords="offset points",
                    ha="center", fontsize=7, color=color)

    # Processes
    for process, (x, y) in zip(snapshot.processes, positions):
        ax.scatter([x], [y], s=1400, c=PHASE_COLORS[process.phase],
                   edgecolors="black", linewidths=1.5 if process.has_token else 0.5, zorder=5)
        ax.annotate(f"P{process.pid}", (x, y), ha="center", va="center",
                    color="white", fontsize=10, fontweight="bold", zorder=6)
        if process.has_token:
            ax.annotate("TOKEN", (x, y), xytext=(0, 26), textcoords="offset points",
                        ha="center", fontsize=7, color=PHASE_COLORS[Phase.EXECUTING])
        if show_rn:
            rn = " ".join(str(v) for v in process.request_numbers)
            ax.annotate(f"RN [{rn}]", (x, y), xytext=(0, -30), textcoords="offset points",
                        ha="center", fontsize=7, family="monospace")

    # Token HUD
    if snapshot.token is not None:
        ln = " ".join(str(v) for v in snapshot.token.last_satisfied)
        queue = " → ".join(f"P{pid}" for pid in snapshot.token.queue) or "Queue Empty"
        hud = f"LN [{ln}]\nQueue: {queue}\nLocked: Process P{snapshot.last_token_holder}"
    else:
        hud = "Transferring Token"
    ax.text(cx, cy, hud, ha="center", va="center", fontsize=9, family="monospace",
            bbox=dict(boxstyle="round", facecolor="white", alpha=0.8))

    ax.set_xlim(cx - DEFAULT_RADIUS * 1.5, cx + DEFAULT_RADIUS * 1.5)
    ax.set_ylim(cy + DEFAULT_RADIUS * 1.5, cy - DEFAULT_RADIUS * 1.5)  # screen coordinates
    ax.set_aspect("equal")
    ax.axis("off")
    ax.set_title(f"{title} (step {snapshot.current_step})")
    return fig, ax
