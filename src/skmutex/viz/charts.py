"""
Charts for protocol state and workload statistics.

- RN matrix heatmap: what every process knows about every peer's requests
- Waiting-time histogram and per-process entry counts
"""

from __future__ import annotations
from pathlib import Path
from typing import TYPE_CHECKING

import numpy as np
import matplotlib.pyplot as plt
from matplotlib.axes import Axes
from matplotlib.colors import LinearSegmentedColormap
from matplotlib.figure import Figure

if TYPE_CHECKING:
    from skmutex.core.engine import Snapshot
    from skmutex.analysis.stats import EntryTracker


def _create_rn_cmap():
    """Dark slate (never requested) → indigo → warm white (many requests)."""
    colors = [
        (0.059, 0.090, 0.165),  # Slate
        (0.310, 0.275, 0.898),  # Indigo
        (0.506, 0.549, 0.973),  # Light indigo
        (0.993, 0.978, 0.925),  # Warm white
    ]
    return LinearSegmentedColormap.from_list("request_numbers", colors)


CMAP_RN = _create_rn_cmap()


def rn_matrix(snapshot: "Snapshot") -> np.ndarray:
    """RN arrays of all processes stacked into an [n, n] matrix."""
    return np.array([p.request_numbers for p in snapshot.processes], dtype=np.int64)


def plot_request_numbers(
    snapshot: "Snapshot",
    title: str = "RN arrays (row = observer, column = requester)",
    ax: Axes | None = None,
    colorbar: bool = True,
    figsize: tuple[float, float] = (6, 5),
) -> tuple[Figure, Axes]:
    """
    Heatmap of the RN matrix, with the token's LN array as an extra row.

    Returns:
        (fig, ax) tuple
    """
    if ax is None:
        fig, ax = plt.subplots(figsize=figsize)
    else:
        fig = ax.figure

    matrix = rn_matrix(snapshot)
    labels = [f"P{p.pid}" for p in snapshot.processes]
    if snapshot.token is not None:
        matrix = np.vstack([matrix, np.array(snapshot.token.last_satisfied, dtype=np.int64)])
        labels.append("LN")

    im = ax.imshow(matrix, cmap=CMAP_RN, vmin=0, aspect="equal")
    for (r, c), value in np.ndenumerate(matrix):
        ax.text(c, r, str(value), ha="center", va="center", fontsize=8, color="gray")

    ax.set_xticks(range(snapshot.n_processes))
    ax.set_xticklabels([f"P{i}" for i in range(snapshot.n_processes)])
    ax.set_yticks(range(len(labels)))
    ax.set_yticklabels(labels)
    ax.set_title(title)

    if colorbar:
        plt.colorbar(im, ax=ax, fraction=0.046, pad=0.04)
    return fig, ax


def plot_wait_times(
    tracker: "EntryTracker",
    title: str = "Critical Section Waiting Times",
    figsize: tuple[float, float] = (12, 5),
) -> Figure:
    """
    Histogram of request-to-entry waits and entries per process.

    Returns:
        Figure
    """
    fig, (ax_hist, ax_bar) = plt.subplots(1, 2, figsize=figsize)

    waits = [r.wait for r in tracker.completed]
    if waits:
        ax_hist.hist(waits, bins=min(30, max(1, len(waits))), color="#10b981", alpha=0.8)
        ax_hist.axvline(np.mean(waits), color="black", linestyle="--", label=f"mean = {np.mean(waits):.0f}")
        ax_hist.legend()
    ax_hist.set_xlabel("Steps from request to entry")
    ax_hist.set_ylabel("Count")
    ax_hist.set_title("Waiting time")
    ax_hist.grid(True, alpha=0.3)

    pids = np.array([r.pid for r in tracker.completed], dtype=np.int64)
    counts = np.bincount(pids, minlength=tracker.n_processes)
    ax_bar.bar([f"P{i}" for i in range(tracker.n_processes)], counts, color="#4f46e5")
    ax_bar.set_ylabel("Entries")
    ax_bar.set_title("Entries per process")
    ax_bar.grid(True, axis="y", alpha=0.3)

    fig.suptitle(title)
    fig.tight_layout()
    return fig


def save_figure(fig: Figure, path: str | Path, dpi: int = 150, **kwargs) -> None:
    """Save figure to file."""
    fig.savefig(path, dpi=dpi, bbox_inches="tight", **kwargs)
