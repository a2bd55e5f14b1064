"""
Critical-section usage statistics derived from engine events.

One-way derivation only: the engine never reads anything computed here.

- EntryTracker: records request / entry / release steps for every CS use
- compute_wait_statistics: waiting-time summary (steps from request to entry)
- message_complexity: messages exchanged per critical-section entry
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import TYPE_CHECKING

import numpy as np

from skmutex.core.events import MessageSent, PhaseChanged, SimulationReset
from skmutex.core.messages import MessageKind
from skmutex.core.registry import Phase

if TYPE_CHECKING:
    from skmutex.core.engine import ProtocolEngine
    from skmutex.core.events import Event


@dataclass
class EntryRecord:
    """One request and what became of it."""

    pid: int
    seq: int
    requested_step: int
    entered_step: int | None = None
    released_step: int | None = None

    @property
    def wait(self) -> int | None:
        """Steps between request and entry, None while still waiting."""
        if self.entered_step is None:
            return None
        return self.entered_step - self.requested_step

    @property
    def hold(self) -> int | None:
        if self.entered_step is None or self.released_step is None:
            return None
        return self.released_step - self.entered_step


class EntryTracker:
    """
    Listener that follows every request through to entry and release.

    Message counts are kept per kind so message complexity can be derived.
    """

    def __init__(self, n_processes: int):
        self.n_processes = n_processes
        self.records: list[EntryRecord] = []
        self.messages_sent = {kind: 0 for kind in MessageKind}
        self._open: dict[int, EntryRecord] = {}

    @classmethod
    def attach(cls, engine: "ProtocolEngine") -> EntryTracker:
        tracker = cls(engine.n_processes)
        engine.subscribe(tracker)
        return tracker

    def __call__(self, event: "Event") -> None:
        if isinstance(event, SimulationReset):
            self.records.clear()
            self._open.clear()
            self.messages_sent = {kind: 0 for kind in MessageKind}

        elif isinstance(event, MessageSent):
            self.messages_sent[event.message.kind] += 1

        elif isinstance(event, PhaseChanged):
            if event.new is Phase.REQUESTING:
                record = EntryRecord(pid=event.pid, seq=event.seq, requested_step=event.step)
                self.records.append(record)
                self._open[event.pid] = record
            elif event.new is Phase.EXECUTING and event.pid in self._open:
                self._open[event.pid].entered_step = event.step
            elif event.old is Phase.EXECUTING and event.pid in self._open:
                self._open.pop(event.pid).released_step = event.step

    @property
    def completed(self) -> list[EntryRecord]:
        """Records whose process has entered the critical section."""
        return [r for r in self.records if r.entered_step is not None]

    @property
    def waiting(self) -> list[EntryRecord]:
        return [r for r in self.records if r.entered_step is None]


def compute_wait_statistics(tracker: EntryTracker) -> dict:
    """
    Summarize waiting times and fairness.

    Returns:
        Dict with n_requests, n_entries, mean_wait, max_wait, p95_wait,
        entries_per_process and still_waiting
    """
    entries = tracker.completed
    waits = np.array([r.wait for r in entries], dtype=np.float64)
    per_process = np.bincount(
        np.array([r.pid for r in entries], dtype=np.int64),
        minlength=tracker.n_processes,
    )

    if waits.size:
        mean_wait = float(waits.mean())
        max_wait = float(waits.max())
        p95_wait = float(np.percentile(waits, 95))
    else:
        mean_wait = max_wait = p95_wait = 0.0

    return {
        "n_requests": len(tracker.records),
        "n_entries": len(entries),
        "mean_wait": mean_wait,
        "max_wait": max_wait,
        "p95_wait": p95_wait,
        "entries_per_process": per_process.tolist(),
        "still_waiting": [r.pid for r in tracker.waiting],
    }


def message_complexity(tracker: EntryTracker) -> dict:
    """
    Messages per critical-section entry.

    Suzuki–Kasami needs N-1 REQUEST messages and at most one TOKEN message
    per entry, so `per_entry` is bounded by N.
    """
    n_entries = len(tracker.completed)
    requests = tracker.messages_sent[MessageKind.REQUEST]
    tokens = tracker.messages_sent[MessageKind.TOKEN]
    total = requests + tokens
    return {
        "requests": requests,
        "tokens": tokens,
        "total": total,
        "per_entry": total / n_entries if n_entries else 0.0,
        "bound": tracker.n_processes,
    }
