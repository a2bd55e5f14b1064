"""
Visualization utilities.

- Ring view of a snapshot (processes, messages in flight, token HUD)
- RN matrix heatmap
- Waiting-time and fairness charts
"""

from skmutex.viz.ring import (
    node_positions,
    message_position,
    plot_snapshot,
    PHASE_COLORS,
    MESSAGE_COLORS,
)

from skmutex.viz.charts import (
    rn_matrix,
    plot_request_numbers,
    plot_wait_times,
    save_figure,
)

__all__ = [
    "node_positions",
    "message_position",
    "plot_snapshot",
    "PHASE_COLORS",
    "MESSAGE_COLORS",
    "rn_matrix",
    "plot_request_numbers",
    "plot_wait_times",
    "save_figure",
]
