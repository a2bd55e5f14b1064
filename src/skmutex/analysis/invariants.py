"""
Safety checks over engine snapshots.

These encode the properties every reachable state must satisfy:
- Mutual exclusion: at most one process is EXECUTING
- Token uniqueness: resident tokens + TOKEN messages in flight == 1
- Holder agreement: has_token is set exactly at the resident holder
- Execution needs the token: EXECUTING implies has_token
- Queue hygiene: no process id appears twice in any wait queue
- Monotonic RN: no request number ever decreases (tracked over time)

A violation is an implementation bug, never a runtime condition.
"""

from __future__ import annotations
from collections import Counter
from typing import TYPE_CHECKING

import numpy as np

from skmutex.core.events import MessageDelivered, SimulationReset
from skmutex.core.registry import Phase
from skmutex.core.token import TokenView
from skmutex.errors import InvariantViolation

if TYPE_CHECKING:
    from skmutex.core.engine import ProtocolEngine, Snapshot
    from skmutex.core.events import Event


def _duplicates(queue) -> list[int]:
    return sorted(pid for pid, n in Counter(queue).items() if n > 1)


def check_invariants(snapshot: "Snapshot") -> None:
    """
    Raise InvariantViolation if `snapshot` breaks any safety property.

    Args:
        snapshot: State captured by ProtocolEngine.snapshot()
    """
    executing = snapshot.executing()
    if len(executing) > 1:
        raise InvariantViolation(f"mutual exclusion broken: {executing} all executing")

    holders = snapshot.token_holders()
    if len(holders) > 1:
        raise InvariantViolation(f"token held by several processes: {holders}")

    in_flight = snapshot.tokens_in_flight()
    resident = 1 if snapshot.token is not None else 0
    if resident + len(in_flight) != 1:
        raise InvariantViolation(
            f"expected exactly one token, found {resident} resident "
            f"and {len(in_flight)} in flight"
        )

    if snapshot.token is not None and len(holders) != 1:
        raise InvariantViolation("token is resident but no process is flagged as holder")
    if snapshot.token is None and holders:
        raise InvariantViolation(f"token is in transit but {holders} claim to hold it")

    for process in snapshot.processes:
        if process.phase is Phase.EXECUTING and not process.has_token:
            raise InvariantViolation(f"P{process.pid} is executing without the token")

    queues = []
    if snapshot.token is not None:
        queues.append(snapshot.token.queue)
    for message in in_flight:
        if isinstance(message.payload, TokenView):
            queues.append(message.payload.queue)

    for queue in queues:
        dups = _duplicates(queue)
        if dups:
            raise InvariantViolation(f"wait queue {list(queue)} repeats {dups}")


class InvariantMonitor:
    """
    Event listener that re-checks every invariant after each engine call.

    Also tracks what a single snapshot cannot show:
    - RN entries never decrease between calls
    - No message id is delivered twice
    """

    def __init__(self, engine: "ProtocolEngine"):
        self.engine = engine
        self.checks = 0
        self.delivered: Counter[int] = Counter()
        self._previous_rn = engine.registry.request_numbers.copy()

    @classmethod
    def attach(cls, engine: "ProtocolEngine") -> InvariantMonitor:
        monitor = cls(engine)
        engine.subscribe(monitor)
        return monitor

    def __call__(self, event: "Event") -> None:
        if isinstance(event, SimulationReset):
            self.delivered.clear()
            self._previous_rn = self.engine.registry.request_numbers.copy()
            return

        if isinstance(event, MessageDelivered):
            msg_id = event.message.msg_id
            self.delivered[msg_id] += 1
            if self.delivered[msg_id] > 1:
                raise InvariantViolation(f"message #{msg_id} delivered twice")

        self.check()

    def check(self) -> None:
        """Check the engine's current state right now."""
        check_invariants(self.engine.snapshot())

        current = self.engine.registry.request_numbers
        regressed = np.argwhere(current < self._previous_rn)
        if regressed.size:
            r, j = (int(v) for v in regressed[0])
            raise InvariantViolation(
                f"RN[{r}][{j}] decreased from {self._previous_rn[r, j]} to {current[r, j]}"
            )
        self._previous_rn = current.copy()
        self.checks += 1
