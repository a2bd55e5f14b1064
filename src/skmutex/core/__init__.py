"""
Core engine primitives.

This layer knows NOTHING about rendering, traces, or workloads.
It only knows:
- Processes with a phase and an RN array
- A single token with an LN array and a wait queue
- Messages in flight with simulated transit
- The Suzuki–Kasami rules for requesting, granting and forwarding the token

Everything else (trace, statistics, drivers, plots) consumes the engine's
events and snapshots.
"""

from skmutex.core.registry import Phase, ProcessRegistry, ProcessView
from skmutex.core.token import Token, TokenStore, TokenView
from skmutex.core.messages import (
    Message,
    MessageChannel,
    MessageKind,
    MessageView,
    RequestPayload,
    TokenPayload,
)
from skmutex.core.events import (
    EventBus,
    MessageDelivered,
    MessageSent,
    PhaseChanged,
    SimulationReset,
    TokenGranted,
    TokenRetained,
)
from skmutex.core.engine import EngineConfig, ProtocolEngine, Snapshot

__all__ = [
    "Phase",
    "ProcessRegistry",
    "ProcessView",
    "Token",
    "TokenStore",
    "TokenView",
    "Message",
    "MessageChannel",
    "MessageKind",
    "MessageView",
    "RequestPayload",
    "TokenPayload",
    "EventBus",
    "MessageDelivered",
    "MessageSent",
    "PhaseChanged",
    "SimulationReset",
    "TokenGranted",
    "TokenRetained",
    "EngineConfig",
    "ProtocolEngine",
    "Snapshot",
]
