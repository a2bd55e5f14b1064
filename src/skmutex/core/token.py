"""
Token and TokenStore: the single capability that grants the critical section.

The token carries two pieces of bookkeeping that move as one unit:
- LN array: sequence number of the last granted request per process
- Wait queue: FIFO of process ids whose next request is known and unsatisfied

At any instant the token is either resident at exactly one process (held by
the TokenStore) or owned by exactly one TOKEN message in flight. It is moved,
never copied, between those two places.
"""

from __future__ import annotations
from collections import deque
from dataclasses import dataclass, field

import numpy as np

from skmutex.errors import TokenOwnershipError


@dataclass(frozen=True)
class TokenView:
    """Read-only LN array and wait queue."""

    last_satisfied: tuple[int, ...]
    queue: tuple[int, ...]


@dataclass(eq=False)
class Token:
    """The token value: LN array plus wait queue."""

    last_satisfied: np.ndarray
    queue: deque[int] = field(default_factory=deque)

    @classmethod
    def fresh(cls, n_processes: int) -> Token:
        """A token for a new session: nothing granted, nobody waiting."""
        return cls(last_satisfied=np.zeros(n_processes, dtype=np.int64))

    def view(self) -> TokenView:
        """Frozen copy for snapshots and events. Ownership never moves via views."""
        return TokenView(last_satisfied=self.ln_tuple(), queue=self.queue_tuple())

    def is_eligible(self, peer: int, current_rn: int) -> bool:
        """
        Is `current_rn` exactly the next unsatisfied request of `peer`?

        This is the admission test used both when a REQUEST reaches an idle
        holder and when a holder scans RN at release time.
        """
        return current_rn == int(self.last_satisfied[peer]) + 1

    def queue_tuple(self) -> tuple[int, ...]:
        return tuple(self.queue)

    def ln_tuple(self) -> tuple[int, ...]:
        return tuple(int(v) for v in self.last_satisfied)


class TokenStore:
    """
    Holds the token while it is resident at some process.

    `detach()` and `attach()` are the only ways the token changes hands;
    queue operations require the token to be resident.
    """

    def __init__(self, token: Token | None = None, holder: int | None = None):
        self._token = token
        self._holder = holder if token is not None else None

    @property
    def resident(self) -> bool:
        """True iff the token sits at a process (not in transit)."""
        return self._token is not None

    @property
    def holder(self) -> int | None:
        """Id of the process the token is resident at, or None in transit."""
        return self._holder

    @property
    def token(self) -> Token:
        if self._token is None:
            raise TokenOwnershipError("token is in transit, not resident")
        return self._token

    def peek(self) -> Token | None:
        """The resident token or None, without raising."""
        return self._token

    def mark_satisfied(self, peer: int, seq: int) -> None:
        """Record that request `seq` from `peer` has been granted."""
        self.token.last_satisfied[peer] = seq

    def enqueue_if_eligible(self, peer: int, current_rn: int) -> bool:
        """
        Add `peer` to the wait queue if its latest request is the next unsatisfied one.

        Older or already-granted requests are ignored, and a peer already
        waiting is never queued twice.

        Returns:
            True if `peer` was appended to the queue
        """
        token = self.token
        if peer in token.queue:
            return False
        if not token.is_eligible(peer, current_rn):
            return False
        token.queue.append(peer)
        return True

    def dequeue_next(self) -> int | None:
        """Pop the head of the wait queue, or None when nobody waits."""
        token = self.token
        if not token.queue:
            return None
        return token.queue.popleft()

    def detach(self) -> Token:
        """Remove the token from its holder so it can be sent away."""
        if self._token is None:
            raise TokenOwnershipError("cannot detach: token is not resident")
        token = self._token
        self._token = None
        self._holder = None
        return token

    def attach(self, token: Token, holder: int) -> None:
        """Make `token` resident at `holder`."""
        if self._token is not None:
            raise TokenOwnershipError(
                f"cannot attach at P{holder}: token already resident at P{self._holder}"
            )
        self._token = token
        self._holder = holder
