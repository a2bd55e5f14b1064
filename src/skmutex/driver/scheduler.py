"""
Workload Scheduler: drives a protocol engine with random CS traffic.

Each tick:
1. Release every process that has held the critical section for hold_ticks
2. Let each idle, token-less process request with probability request_probability
3. Advance message transit once and deliver at most one arrived message

The scheduler is the engine's only caller during a run. Pausing simply
stops ticks from doing anything; all engine state is kept as-is.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import TYPE_CHECKING
import logging

import numpy as np

from skmutex.core.registry import Phase

if TYPE_CHECKING:
    from skmutex.core.engine import ProtocolEngine

logger = logging.getLogger(__name__)


@dataclass
class WorkloadSchedulerConfig:
    """Configuration for the workload scheduler."""

    request_probability: float = 0.01  # Per idle process, per tick
    hold_ticks: int = 50                # Ticks spent inside the CS before releasing
    transit_step: float | None = None   # None = engine's configured step
    max_requests: int | None = None     # Stop generating requests after this many
    seed: int | None = None             # Reproducible workloads

    def __post_init__(self):
        if not 0.0 <= self.request_probability <= 1.0:
            raise ValueError(
                f"request_probability must be in [0, 1], got {self.request_probability}"
            )
        if self.hold_ticks < 0:
            raise ValueError(f"hold_ticks must be non-negative, got {self.hold_ticks}")


@dataclass
class WorkloadScheduler:
    """Random request/release workload on top of a ProtocolEngine."""

    engine: "ProtocolEngine"
    config: WorkloadSchedulerConfig = field(default_factory=WorkloadSchedulerConfig)

    current_tick: int = field(default=0, init=False)
    paused: bool = field(default=False, init=False)
    requests_issued: int = field(default=0, init=False)
    releases: int = field(default=0, init=False)
    deliveries: int = field(default=0, init=False)
    _rng: np.random.Generator = field(default=None, init=False, repr=False)
    _entered_at: dict[int, int] = field(default_factory=dict, init=False, repr=False)
    _draining: bool = field(default=False, init=False, repr=False)

    def __post_init__(self):
        self._rng = np.random.default_rng(self.config.seed)

    def pause(self):
        self.paused = True

    def resume(self):
        self.paused = False

    def reset(self):
        """Reset the engine and all workload counters. Pause state is kept."""
        self.engine.reset()
        self.current_tick = 0
        self.requests_issued = 0
        self.releases = 0
        self.deliveries = 0
        self._entered_at.clear()
        self._rng = np.random.default_rng(self.config.seed)

    def run(self, n_ticks: int) -> dict:
        """Run the workload for n_ticks (ticks while paused do nothing)."""
        for _ in range(n_ticks):
            self.tick()
        return self.stats()

    def run_until_quiet(self, max_ticks: int = 100_000) -> dict:
        """
        Stop issuing requests and run until every request has been served.

        Quiet means no message in flight, nobody requesting and nobody
        executing. Used to check that every requester eventually enters.

        Returns:
            Stats dict with an extra "quiet" flag and "drain_ticks" count
        """
        self._draining = True
        start = self.current_tick
        try:
            while not self._is_quiet() and self.current_tick - start < max_ticks:
                if self.paused:
                    break
                self.tick()
        finally:
            self._draining = False

        stats = self.stats()
        stats["quiet"] = self._is_quiet()
        stats["drain_ticks"] = self.current_tick - start
        if not stats["quiet"]:
            logger.warning("engine not quiet after %d drain ticks", stats["drain_ticks"])
        return stats

    def tick(self) -> bool:
        """
        One scheduler tick.

        Returns:
            False if paused (nothing happened), True otherwise
        """
        if self.paused:
            return False

        self.current_tick += 1
        engine = self.engine

        self._release_due()
        if not self._draining:
            self._issue_requests()

        if engine.step(self.config.transit_step) is not None:
            self.deliveries += 1

        for pid in engine.registry.executing():
            self._entered_at.setdefault(pid, self.current_tick)
        return True

    def _release_due(self):
        for pid, entered in list(self._entered_at.items()):
            if self.current_tick - entered < self.config.hold_ticks:
                continue
            if self.engine.release_cs(pid):
                self.releases += 1
            del self._entered_at[pid]

    def _issue_requests(self):
        cfg = self.config
        registry = self.engine.registry
        draws = self._rng.random(registry.n_processes)

        for pid in registry.iter_ids():
            if cfg.max_requests is not None and self.requests_issued >= cfg.max_requests:
                return
            if registry.phase(pid) is not Phase.IDLE or registry.has_token[pid]:
                continue
            if draws[pid] < cfg.request_probability and self.engine.request_cs(pid):
                self.requests_issued += 1

    def _is_quiet(self) -> bool:
        return self.engine.is_quiet() and not self.engine.registry.executing()

    def stats(self) -> dict:
        return {
            "current_tick": self.current_tick,
            "engine_step": self.engine.current_step,
            "requests_issued": self.requests_issued,
            "releases": self.releases,
            "deliveries": self.deliveries,
            "in_flight": len(self.engine.channel),
            "executing": self.engine.registry.executing(),
        }
