"""
ProcessRegistry: the fixed set of N peer processes.

The registry stores ONLY per-process primitives:
- Phase (idle, requesting, executing)
- RN array: highest request number seen from every peer
- Whether the token currently sits at the process

It does NOT store the token's LN array or wait queue; those live in the
TokenStore and travel with the token.
"""

from __future__ import annotations
from dataclasses import dataclass
from enum import Enum
from typing import Iterator

import numpy as np


class Phase(str, Enum):
    """Where a process is in its request/execute/release cycle."""

    IDLE = "IDLE"
    REQUESTING = "REQUESTING"
    EXECUTING = "EXECUTING"


@dataclass(frozen=True)
class ProcessView:
    """Read-only copy of one process, safe to hand to renderers."""

    pid: int
    phase: Phase
    request_numbers: tuple[int, ...]
    has_token: bool

    @property
    def own_sequence(self) -> int:
        """Sequence number of this process's most recent request."""
        return self.request_numbers[self.pid]


class ProcessRegistry:
    """
    Per-process state for all N processes.

    IMPORTANT: membership is closed. Ids are always in [0, N) and
    nothing here validates them beyond what numpy indexing does.
    """

    def __init__(self, n_processes: int, initial_holder: int = 0):
        self.n_processes = n_processes

        # RN matrix: request_numbers[r, j] = highest SN process r has seen from j
        self.request_numbers = np.zeros((n_processes, n_processes), dtype=np.int64)

        self.phases: list[Phase] = [Phase.IDLE] * n_processes

        self.has_token = np.zeros(n_processes, dtype=bool)
        self.has_token[initial_holder] = True

    def __len__(self) -> int:
        return self.n_processes

    def iter_ids(self) -> Iterator[int]:
        """Iterate over process ids in ascending order."""
        return iter(range(self.n_processes))

    def get(self, pid: int) -> ProcessView:
        """Return a detached, read-only view of one process."""
        return ProcessView(
            pid=pid,
            phase=self.phases[pid],
            request_numbers=tuple(int(v) for v in self.request_numbers[pid]),
            has_token=bool(self.has_token[pid]),
        )

    def views(self) -> tuple[ProcessView, ...]:
        return tuple(self.get(pid) for pid in self.iter_ids())

    def phase(self, pid: int) -> Phase:
        return self.phases[pid]

    def set_phase(self, pid: int, phase: Phase) -> Phase:
        """Set a process phase. Returns the previous phase."""
        old = self.phases[pid]
        self.phases[pid] = phase
        return old

    def bump_own_sequence(self, pid: int) -> int:
        """Increment and return the process's own request number."""
        self.request_numbers[pid, pid] += 1
        return int(self.request_numbers[pid, pid])

    def observe_sequence(self, pid: int, peer: int, seq: int) -> int:
        """
        Record that `pid` has seen request number `seq` from `peer`.

        Stale or duplicate observations never lower the stored value.

        Returns:
            The stored value after the observation
        """
        current = int(self.request_numbers[pid, peer])
        if seq > current:
            self.request_numbers[pid, peer] = seq
            return seq
        return current

    def request_number(self, pid: int, peer: int) -> int:
        return int(self.request_numbers[pid, peer])

    def set_has_token(self, pid: int, flag: bool) -> None:
        self.has_token[pid] = flag

    def token_holders(self) -> list[int]:
        """Ids of processes currently flagged as holding the token."""
        return [int(i) for i in np.flatnonzero(self.has_token)]

    def executing(self) -> list[int]:
        """Ids of processes currently in the critical section."""
        return [pid for pid, phase in enumerate(self.phases) if phase is Phase.EXECUTING]
