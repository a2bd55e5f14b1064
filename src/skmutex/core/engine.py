"""
ProtocolEngine: the Suzuki–Kasami state machine.

Owns all simulation state (registry, token store, channel) and is the only
thing that mutates it. Three local operations drive the protocol:

    request_cs(pid)   IDLE -> REQUESTING, broadcast REQUEST(pid, sn)
    release_cs(pid)   EXECUTING -> IDLE, update LN, queue, forward token
    step(delta)       advance transit, deliver at most one arrived message

Message handling:
    REQUEST(j, sn) at r:  RN_r[j] = max(RN_r[j], sn); an idle holder whose
                          LN[j] + 1 == RN_r[j] sends the token to j at once.
    TOKEN at r:           r holds the token and enters the critical section.

Every public call runs to completion before the next one; at most one
mutation happens per call. Events are buffered during a call and published
only after it completes, so listeners always observe a consistent state.
"""

from __future__ import annotations
from contextlib import contextmanager
from dataclasses import dataclass, field
import logging

from skmutex.core.events import (
    Event,
    EventBus,
    Listener,
    MessageDelivered,
    MessageSent,
    PhaseChanged,
    SimulationReset,
    TokenGranted,
    TokenRetained,
)
from skmutex.core.messages import (
    Message,
    MessageChannel,
    MessageView,
    MessageKind,
    RequestPayload,
    TokenPayload,
)
from skmutex.core.registry import Phase, ProcessRegistry, ProcessView
from skmutex.core.token import Token, TokenStore, TokenView

logger = logging.getLogger(__name__)


@dataclass
class EngineConfig:
    """Configuration for a protocol engine."""

    n_processes: int = 5  # Fixed for the whole session
    transit_step: float = 0.002  # Default transit added per step
    initial_holder: int = 0  # Process that starts with the token

    def __post_init__(self):
        if self.n_processes < 1:
            raise ValueError(f"n_processes must be at least 1, got {self.n_processes}")
        if not 0.0 < self.transit_step <= 1.0:
            raise ValueError(f"transit_step must be in (0, 1], got {self.transit_step}")
        if not 0 <= self.initial_holder < self.n_processes:
            raise ValueError(
                f"initial_holder must be in [0, {self.n_processes}), got {self.initial_holder}"
            )


@dataclass(frozen=True)
class Snapshot:
    """
    Read-only copy of the whole simulation after the latest engine call.

    `token` is None while the token is in transit.
    """

    processes: tuple[ProcessView, ...]
    token: TokenView | None
    in_flight: tuple[MessageView, ...]
    last_token_holder: int
    current_step: int = 0

    @property
    def n_processes(self) -> int:
        return len(self.processes)

    def executing(self) -> list[int]:
        return [p.pid for p in self.processes if p.phase is Phase.EXECUTING]

    def token_holders(self) -> list[int]:
        return [p.pid for p in self.processes if p.has_token]

    def tokens_in_flight(self) -> list[MessageView]:
        return [m for m in self.in_flight if m.kind is MessageKind.TOKEN]


@dataclass
class ProtocolEngine:
    """
    Suzuki–Kasami engine over N simulated processes.

    All state is owned here and passed explicitly; there are no module-level
    singletons. Create one engine per independent simulation.
    """

    config: EngineConfig = field(default_factory=EngineConfig)

    current_step: int = field(default=0, init=False)
    last_token_holder: int = field(default=0, init=False)
    registry: ProcessRegistry = field(default=None, init=False)
    store: TokenStore = field(default=None, init=False)
    channel: MessageChannel = field(default=None, init=False)
    bus: EventBus = field(default_factory=EventBus, init=False)
    _pending: list[Event] = field(default_factory=list, init=False, repr=False)

    def __post_init__(self):
        self._build_state()

    def _build_state(self):
        n = self.config.n_processes
        holder = self.config.initial_holder
        self.registry = ProcessRegistry(n, initial_holder=holder)
        self.store = TokenStore(Token.fresh(n), holder=holder)
        self.channel = MessageChannel(n)
        self.last_token_holder = holder

    @property
    def n_processes(self) -> int:
        return self.config.n_processes

    # ═══════════════════════════════════════════════════════════════
    # Events
    # ═══════════════════════════════════════════════════════════════

    def subscribe(self, listener: Listener):
        """Register an event listener. Returns an unsubscribe callable."""
        return self.bus.subscribe(listener)

    def _emit(self, event: Event):
        self._pending.append(event)

    def _flush(self):
        pending, self._pending = self._pending, []
        for event in pending:
            self.bus.publish(event)

    @contextmanager
    def _publishing(self):
        """Publish the events of one call once it completes; drop them if it fails."""
        try:
            yield
        except Exception:
            self._pending.clear()
            raise
        self._flush()

    # ═══════════════════════════════════════════════════════════════
    # Local actions
    # ═══════════════════════════════════════════════════════════════

    def request_cs(self, pid: int) -> bool:
        """
        Ask for the critical section on behalf of `pid`.

        Only an idle process without the token may request. Anything else
        is ignored.

        Returns:
            True if a request was broadcast
        """
        reg = self.registry
        if reg.phase(pid) is not Phase.IDLE or reg.has_token[pid]:
            logger.debug(
                "P%d request ignored (phase=%s, has_token=%s)",
                pid, reg.phase(pid).value, bool(reg.has_token[pid]),
            )
            return False

        with self._publishing():
            seq = reg.bump_own_sequence(pid)
            self._set_phase(pid, Phase.REQUESTING)

            for message in self.channel.broadcast(
                pid, MessageKind.REQUEST, lambda _receiver: RequestPayload(sender=pid, seq=seq)
            ):
                self._emit(MessageSent(self.current_step, message.view()))

            logger.info("P%d requests CS with SN %d", pid, seq)
        return True

    def release_cs(self, pid: int) -> bool:
        """
        Leave the critical section and pass the token on if anyone waits.

        Returns:
            True if `pid` was executing and has now released
        """
        reg = self.registry
        if reg.phase(pid) is not Phase.EXECUTING:
            logger.debug("P%d release ignored (phase=%s)", pid, reg.phase(pid).value)
            return False

        with self._publishing():
            store = self.store
            store.mark_satisfied(pid, reg.request_number(pid, pid))

            for peer in reg.iter_ids():
                store.enqueue_if_eligible(peer, reg.request_number(pid, peer))

            self._set_phase(pid, Phase.IDLE)

            receiver = store.dequeue_next()
            if receiver is None:
                self._emit(TokenRetained(self.current_step, pid, store.token.ln_tuple()))
                logger.info("P%d released CS, queue empty, keeping token", pid)
            else:
                self._forward_token(pid, receiver, immediate=False)
        return True

    # ═══════════════════════════════════════════════════════════════
    # Delivery
    # ═══════════════════════════════════════════════════════════════

    def step(self, delta: float | None = None) -> MessageView | None:
        """
        Advance every in-flight message, then deliver at most one.

        Args:
            delta: Transit added to every message (config default if None)

        Returns:
            The delivered message, or None if nothing arrived
        """
        if delta is None:
            delta = self.config.transit_step

        with self._publishing():
            self.current_step += 1
            self.channel.advance(delta)

            message = self.channel.next_arrived()
            if message is None:
                return None
            view = message.view()
            self._deliver(message)
        return view

    def on_message_arrival(self, message: Message | MessageView) -> None:
        """
        Deliver one specific message that has already arrived.

        Only the message's id is used; the instance held by the channel is
        the one delivered. Raises MessageNotArrivedError while the message
        is still on its way (it stays in flight), and MessageNotInFlightError
        if it was already delivered.
        """
        with self._publishing():
            held = self.channel.take_arrived(message.msg_id)
            self._deliver(held)

    def _deliver(self, message: Message):
        payload = message.payload
        if isinstance(payload, RequestPayload):
            self._on_request(message.receiver, payload)
        elif isinstance(payload, TokenPayload):
            self._on_token(message.receiver, payload.token)
        else:
            raise TypeError(f"unknown payload type {type(payload).__name__}")

        self._emit(MessageDelivered(self.current_step, message.view()))

    def _on_request(self, receiver: int, payload: RequestPayload):
        reg = self.registry
        sender = payload.sender
        current = reg.observe_sequence(receiver, sender, payload.seq)

        token = self.store.peek()
        if token is None or self.store.holder != receiver:
            return
        if reg.phase(receiver) is not Phase.IDLE:
            return
        if not token.is_eligible(sender, current):
            return

        logger.info("P%d satisfies request (P%d, SN:%d)", receiver, sender, payload.seq)
        self._forward_token(receiver, sender, immediate=True)

    def _on_token(self, receiver: int, token: Token):
        self.registry.set_has_token(receiver, True)
        self.store.attach(token, receiver)
        self.last_token_holder = receiver
        self._set_phase(receiver, Phase.EXECUTING)
        logger.info("P%d received token, entering CS", receiver)

    # ═══════════════════════════════════════════════════════════════
    # Helpers
    # ═══════════════════════════════════════════════════════════════

    def _forward_token(self, sender: int, receiver: int, immediate: bool):
        token = self.store.detach()
        self.registry.set_has_token(sender, False)
        message = self.channel.send(sender, receiver, MessageKind.TOKEN, TokenPayload(token))

        self._emit(TokenGranted(
            step=self.current_step,
            sender=sender,
            receiver=receiver,
            seq=self.registry.request_number(sender, receiver),
            queue=token.queue_tuple(),
            last_satisfied=token.ln_tuple(),
            immediate=immediate,
        ))
        self._emit(MessageSent(self.current_step, message.view()))

    def _set_phase(self, pid: int, phase: Phase):
        old = self.registry.set_phase(pid, phase)
        self._emit(PhaseChanged(
            step=self.current_step,
            pid=pid,
            old=old,
            new=phase,
            seq=self.registry.request_number(pid, pid),
        ))

    # ═══════════════════════════════════════════════════════════════
    # Lifecycle & views
    # ═══════════════════════════════════════════════════════════════

    def reset(self) -> None:
        """Return to the initial state: all idle, token at the initial holder."""
        self._pending.clear()
        with self._publishing():
            self.current_step = 0
            self._build_state()
            logger.info("simulation reset, P%d holds the token", self.config.initial_holder)
            self._emit(SimulationReset(self.current_step, self.config.initial_holder))

    def snapshot(self) -> Snapshot:
        """Consistent, detached copy of all state."""
        token = self.store.peek()
        token_view = token.view() if token is not None else None

        return Snapshot(
            processes=self.registry.views(),
            token=token_view,
            in_flight=self.channel.snapshot(),
            last_token_holder=self.last_token_holder,
            current_step=self.current_step,
        )

    def is_quiet(self) -> bool:
        """Nothing in flight and nobody waiting for the token."""
        return len(self.channel) == 0 and all(
            phase is not Phase.REQUESTING for phase in self.registry.phases
        )
