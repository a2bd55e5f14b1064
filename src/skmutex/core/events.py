"""
Events published by the protocol engine.

Consumers (trace, statistics, invariant monitors, renderers) subscribe to
an EventBus. Events carry enough data for a human-readable trace line;
listeners must not mutate the engine from inside a callback.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Callable, Union

from skmutex.core.messages import MessageView
from skmutex.core.registry import Phase


@dataclass(frozen=True)
class PhaseChanged:
    step: int
    pid: int
    old: Phase
    new: Phase
    seq: int  # the process's own request number at the time


@dataclass(frozen=True)
class MessageSent:
    step: int
    message: MessageView


@dataclass(frozen=True)
class MessageDelivered:
    step: int
    message: MessageView


@dataclass(frozen=True)
class TokenGranted:
    """The token left `sender` for `receiver`."""

    step: int
    sender: int
    receiver: int
    seq: int  # request number of `receiver` being granted
    queue: tuple[int, ...]
    last_satisfied: tuple[int, ...]
    immediate: bool  # True when an idle holder answered a REQUEST directly


@dataclass(frozen=True)
class TokenRetained:
    """A release found nobody waiting; the token stays put."""

    step: int
    pid: int
    last_satisfied: tuple[int, ...]


@dataclass(frozen=True)
class SimulationReset:
    step: int
    initial_holder: int


Event = Union[
    PhaseChanged,
    MessageSent,
    MessageDelivered,
    TokenGranted,
    TokenRetained,
    SimulationReset,
]

Listener = Callable[[Event], None]


class EventBus:
    """Synchronous fan-out to listeners, in subscription order."""

    def __init__(self):
        self._listeners: list[Listener] = []

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """
        Register a listener.

        Returns:
            A callable that removes the listener again
        """
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def publish(self, event: Event) -> None:
        for listener in list(self._listeners):
            listener(event)
