"""
Messages and the in-flight channel for the protocol engine.

Every message takes time to arrive. A message is created with transit 0.0,
the driver advances all in-flight messages together, and a message becomes
deliverable once its transit reaches 1.0.

When several messages cross the threshold in the same advance, exactly one
is delivered per step: the one created first. The others keep their
progress and are delivered on the following steps.

There are two kinds of message:
- REQUEST: broadcast by a process that wants the critical section
- TOKEN: carries the token itself, always to exactly one receiver
"""

from __future__ import annotations
from dataclasses import dataclass
from enum import Enum
from itertools import count
from typing import Callable, Iterator, Union
import logging

from skmutex.core.token import Token, TokenView
from skmutex.errors import MessageNotArrivedError, MessageNotInFlightError

logger = logging.getLogger(__name__)


class MessageKind(str, Enum):
    REQUEST = "REQUEST"
    TOKEN = "TOKEN"


@dataclass(frozen=True)
class RequestPayload:
    """A request broadcast: (requester id, its new sequence number)."""

    sender: int
    seq: int


@dataclass(frozen=True)
class TokenPayload:
    """The token in transit. The message owns it until delivery."""

    token: Token


Payload = Union[RequestPayload, TokenPayload]

PAYLOAD_TYPES = {
    MessageKind.REQUEST: RequestPayload,
    MessageKind.TOKEN: TokenPayload,
}


def _label(payload) -> str:
    if isinstance(payload, RequestPayload):
        return f"(P{payload.sender}, SN:{payload.seq})"
    return "TOKEN"


@dataclass(frozen=True)
class MessageView:
    """
    Read-only copy of a message, as seen by snapshots and event listeners.

    A carried token appears as a TokenView.
    """

    msg_id: int
    sender: int
    receiver: int
    kind: MessageKind
    payload: Union[RequestPayload, TokenView]
    transit: float

    @property
    def arrived(self) -> bool:
        return self.transit >= 1.0

    def label(self) -> str:
        return _label(self.payload)


@dataclass
class Message:
    """
    A message from one process to another.

    `msg_id` doubles as the creation order: lower ids were created first
    and win delivery ties.
    """

    msg_id: int
    sender: int
    receiver: int
    kind: MessageKind
    payload: Payload
    transit: float = 0.0  # 0 = just sent, 1 = arrived

    def __post_init__(self):
        expected = PAYLOAD_TYPES[self.kind]
        if not isinstance(self.payload, expected):
            raise TypeError(
                f"{self.kind.value} message needs {expected.__name__}, "
                f"got {type(self.payload).__name__}"
            )

    @property
    def arrived(self) -> bool:
        return self.transit >= 1.0

    def view(self) -> MessageView:
        payload = self.payload
        if isinstance(payload, TokenPayload):
            payload = payload.token.view()
        return MessageView(
            msg_id=self.msg_id,
            sender=self.sender,
            receiver=self.receiver,
            kind=self.kind,
            payload=payload,
            transit=self.transit,
        )

    def label(self) -> str:
        """Short label, e.g. for drawing the message on screen."""
        return _label(self.payload)


class MessageChannel:
    """
    Holds every message currently in flight.

    Structure:
    - `_in_flight`: msg_id -> Message, kept in creation order
    - `_ids`: monotonically increasing id source, never reused

    Delivery removes a message exactly once; a removed message can never
    be delivered again.
    """

    def __init__(self, n_processes: int):
        self.n_processes = n_processes
        self._in_flight: dict[int, Message] = {}
        self._ids = count()

    def __len__(self) -> int:
        return len(self._in_flight)

    def __iter__(self) -> Iterator[Message]:
        return iter(self._in_flight.values())

    def __contains__(self, msg_id: int) -> bool:
        return msg_id in self._in_flight

    def send(self, sender: int, receiver: int, kind: MessageKind, payload: Payload) -> Message:
        """Create a single message and put it in flight."""
        message = Message(
            msg_id=next(self._ids),
            sender=sender,
            receiver=receiver,
            kind=kind,
            payload=payload,
        )
        self._in_flight[message.msg_id] = message
        logger.debug("sent #%d %s P%d -> P%d", message.msg_id, kind.value, sender, receiver)
        return message

    def broadcast(
        self,
        sender: int,
        kind: MessageKind,
        payload_factory: Callable[[int], Payload],
    ) -> list[Message]:
        """
        Send one message to every other process, in ascending receiver order.

        Args:
            sender: Broadcasting process (excluded from the receivers)
            kind: Message kind for every copy
            payload_factory: Called with each receiver id to build its payload

        Returns:
            The created messages
        """
        return [
            self.send(sender, receiver, kind, payload_factory(receiver))
            for receiver in range(self.n_processes)
            if receiver != sender
        ]

    def advance(self, step: float) -> list[Message]:
        """
        Move every in-flight message `step` closer to its receiver.

        Transit is clamped to 1.0. Applied to the whole set before any
        delivery happens.

        Returns:
            Messages that have arrived and await delivery, oldest first
        """
        if step <= 0:
            raise ValueError(f"transit step must be positive, got {step}")

        for message in self._in_flight.values():
            message.transit = min(1.0, message.transit + step)

        return [m for m in self._in_flight.values() if m.arrived]

    def peek_arrived(self) -> Message | None:
        """Oldest arrived message, without removing it."""
        for message in self._in_flight.values():
            if message.arrived:
                return message
        return None

    def next_arrived(self) -> Message | None:
        """
        Remove and return the oldest arrived message.

        Returns None when nothing has arrived yet. Messages that have not
        arrived keep their progress.
        """
        message = self.peek_arrived()
        if message is None:
            return None
        return self.remove(message.msg_id)

    def get(self, msg_id: int) -> Message:
        """The in-flight message with this id, without removing it."""
        try:
            return self._in_flight[msg_id]
        except KeyError:
            raise MessageNotInFlightError(f"message #{msg_id} is not in flight") from None

    def take_arrived(self, msg_id: int) -> Message:
        """
        Remove and return one specific message that has reached its receiver.

        Unlike next_arrived(), the caller picks which arrived message goes
        first. A message still on its way stays in flight untouched.
        """
        message = self.get(msg_id)
        if not message.arrived:
            raise MessageNotArrivedError(
                f"message #{msg_id} is at transit {message.transit:.3f}, not arrived"
            )
        return self.remove(msg_id)

    def remove(self, msg_id: int) -> Message:
        """Take a message out of flight. Each id can be removed only once."""
        try:
            return self._in_flight.pop(msg_id)
        except KeyError:
            raise MessageNotInFlightError(f"message #{msg_id} is not in flight") from None

    def tokens_in_flight(self) -> list[Message]:
        return [m for m in self._in_flight.values() if m.kind is MessageKind.TOKEN]

    def snapshot(self) -> tuple[MessageView, ...]:
        return tuple(m.view() for m in self._in_flight.values())
