"""
Analysis layer: safety checks and usage statistics.

IMPORTANT: This is NOT seen by the engine. One-way derivation only.

- check_invariants: raise on any broken safety property in a snapshot
- InvariantMonitor: re-check after every engine call, plus RN monotonicity
- EntryTracker: request/entry/release timeline per critical-section use
- compute_wait_statistics: waiting times and per-process fairness
- message_complexity: messages exchanged per entry
"""

from skmutex.analysis.invariants import check_invariants, InvariantMonitor
from skmutex.analysis.stats import (
    EntryRecord,
    EntryTracker,
    compute_wait_statistics,
    message_complexity,
)

__all__ = [
    "check_invariants",
    "InvariantMonitor",
    "EntryRecord",
    "EntryTracker",
    "compute_wait_statistics",
    "message_complexity",
]
