"""
ProtocolTrace: the running log shown next to the simulation.

Each engine event becomes one line such as

    [12] P1 requests CS. Tuple: (P1, SN:1). Broadcasting.

The newest line comes first and only the last `max_lines` lines are kept.
Every line is also sent to the `skmutex.trace` logger at INFO, so a demo
that configures logging gets the same trace on its console.
"""

from __future__ import annotations
from collections import deque
from typing import TYPE_CHECKING
import logging

from skmutex.core.events import (
    MessageDelivered,
    MessageSent,
    PhaseChanged,
    SimulationReset,
    TokenGranted,
    TokenRetained,
)
from skmutex.core.registry import Phase

if TYPE_CHECKING:
    from skmutex.core.engine import ProtocolEngine
    from skmutex.core.events import Event

logger = logging.getLogger("skmutex.trace")

DEFAULT_MAX_LINES = 30


def format_event(event: "Event", include_messages: bool = False) -> str | None:
    """
    Render one event as a trace line, without the step prefix.

    Message send/delivery events are only rendered when `include_messages`
    is set; they are too chatty for the default trace.

    Returns:
        The line, or None if the event is not traced
    """
    if isinstance(event, PhaseChanged):
        if event.new is Phase.REQUESTING:
            return (
                f"P{event.pid} requests CS. "
                f"Tuple: (P{event.pid}, SN:{event.seq}). Broadcasting."
            )
        if event.new is Phase.EXECUTING:
            return f"P{event.pid} received Token. Entering Critical Section."
        if event.old is Phase.EXECUTING:
            return f"P{event.pid} releasing CS. Updating Token and checking Queue."
        return None

    if isinstance(event, TokenGranted):
        if event.immediate:
            return (
                f"P{event.sender} satisfies request "
                f"(P{event.receiver}, SN:{event.seq}). Transferring Token."
            )
        return f"Popping P{event.receiver} from Token Queue. Sending Token."

    if isinstance(event, TokenRetained):
        return f"P{event.pid} keeps Token. Queue empty."

    if isinstance(event, SimulationReset):
        return f"Simulation reset. P{event.initial_holder} re-initialized with the token."

    if include_messages and isinstance(event, (MessageSent, MessageDelivered)):
        verb = "sent" if isinstance(event, MessageSent) else "delivered"
        m = event.message
        return f"{m.kind.value} #{m.msg_id} {m.label()} P{m.sender} -> P{m.receiver} {verb}."

    return None


class ProtocolTrace:
    """
    Bounded trace of protocol events, newest first.

    Usage:
        trace = ProtocolTrace.attach(engine)
        engine.request_cs(1)
        trace.lines[0]  # "[0] P1 requests CS. Tuple: (P1, SN:1). Broadcasting."
    """

    def __init__(
        self,
        max_lines: int = DEFAULT_MAX_LINES,
        include_messages: bool = False,
        initial_holder: int = 0,
    ):
        if max_lines < 1:
            raise ValueError(f"max_lines must be at least 1, got {max_lines}")
        self.include_messages = include_messages
        self._lines: deque[str] = deque(maxlen=max_lines)
        self._write(f"System initialized. P{initial_holder} holds the token.")

    @classmethod
    def attach(cls, engine: "ProtocolEngine", **kwargs) -> ProtocolTrace:
        """Create a trace and subscribe it to `engine`."""
        kwargs.setdefault("initial_holder", engine.config.initial_holder)
        trace = cls(**kwargs)
        engine.subscribe(trace)
        return trace

    def __call__(self, event: "Event") -> None:
        if isinstance(event, SimulationReset):
            self._lines.clear()

        text = format_event(event, include_messages=self.include_messages)
        if text is not None:
            self._write(f"[{event.step}] {text}")

    def _write(self, line: str):
        self._lines.appendleft(line)
        logger.info(line)

    @property
    def lines(self) -> list[str]:
        """Trace lines, newest first."""
        return list(self._lines)

    @property
    def max_lines(self) -> int:
        return self._lines.maxlen

    def __len__(self) -> int:
        return len(self._lines)
