"""Unit tests for ProtocolEngine."""

import dataclasses

import pytest

from skmutex.core import (
    EngineConfig,
    MessageDelivered,
    MessageKind,
    MessageSent,
    Phase,
    PhaseChanged,
    ProtocolEngine,
    RequestPayload,
    SimulationReset,
    TokenGranted,
)
from skmutex.errors import MessageNotArrivedError, MessageNotInFlightError


def pending(engine, sender, receiver, kind=MessageKind.REQUEST):
    """The in-flight message of `kind` from sender to receiver."""
    matches = [
        m for m in engine.channel
        if m.sender == sender and m.receiver == receiver and m.kind is kind
    ]
    assert len(matches) == 1, f"expected one {kind.value} P{sender}->P{receiver}, got {matches}"
    return matches[0]


def deliver(engine, sender, receiver, kind=MessageKind.REQUEST):
    """Bring one message to the end of its path ahead of the others and deliver it."""
    message = pending(engine, sender, receiver, kind)
    message.transit = 1.0
    engine.on_message_arrival(message)
    return message


def phases(engine):
    return [p.phase for p in engine.snapshot().processes]


class TestEngineConfig:
    """Tests for EngineConfig."""

    def test_default_config(self):
        cfg = EngineConfig()
        assert cfg.n_processes == 5
        assert cfg.transit_step == 0.002
        assert cfg.initial_holder == 0

    @pytest.mark.parametrize("kwargs", [
        {"n_processes": 0},
        {"transit_step": 0.0},
        {"transit_step": 1.5},
        {"n_processes": 3, "initial_holder": 3},
        {"initial_holder": -1},
    ])
    def test_invalid_config(self, kwargs):
        with pytest.raises(ValueError):
            EngineConfig(**kwargs)


class TestInitialState:
    """Tests for a freshly created engine."""

    def test_initial_snapshot(self, engine):
        snap = engine.snapshot()

        assert snap.n_processes == 5
        assert all(p.phase is Phase.IDLE for p in snap.processes)
        assert snap.token_holders() == [0]
        assert snap.token.last_satisfied == (0, 0, 0, 0, 0)
        assert snap.token.queue == ()
        assert snap.in_flight == ()
        assert snap.last_token_holder == 0
        assert snap.current_step == 0

    def test_custom_initial_holder(self, engine_holder4):
        snap = engine_holder4.snapshot()
        assert snap.token_holders() == [4]
        assert snap.last_token_holder == 4


class TestRequestCS:
    """Tests for request_cs."""

    def test_request_broadcasts_to_all_peers(self, engine):
        assert engine.request_cs(1) is True
        snap = engine.snapshot()

        assert snap.processes[1].phase is Phase.REQUESTING
        assert snap.processes[1].request_numbers == (0, 1, 0, 0, 0)
        assert [m.receiver for m in snap.in_flight] == [0, 2, 3, 4]
        assert all(m.kind is MessageKind.REQUEST for m in snap.in_flight)
        assert all(m.payload == RequestPayload(sender=1, seq=1) for m in snap.in_flight)

    def test_token_holder_cannot_request(self, engine):
        before = engine.snapshot()
        assert engine.request_cs(0) is False
        assert engine.snapshot() == before

    def test_request_while_requesting_is_ignored(self, engine):
        engine.request_cs(1)
        before = engine.snapshot()

        assert engine.request_cs(1) is False
        assert engine.snapshot() == before

    def test_request_does_not_deliver_anything(self, engine):
        engine.request_cs(1)
        assert engine.registry.request_number(0, 1) == 0


class TestScenarioImmediateHandoff:
    """An idle holder answers an eligible REQUEST straight away."""

    def test_token_goes_to_requester(self, engine, drain):
        engine.request_cs(1)

        first = engine.step()
        assert first.receiver == 0

        # P0 gave the token away at once; it is now in flight
        snap = engine.snapshot()
        assert snap.token is None
        assert snap.processes[0].has_token is False
        token_msgs = snap.tokens_in_flight()
        assert len(token_msgs) == 1
        assert (token_msgs[0].sender, token_msgs[0].receiver) == (0, 1)

        drain(engine)
        snap = engine.snapshot()
        assert snap.processes[1].phase is Phase.EXECUTING
        assert snap.processes[1].has_token is True
        assert snap.token_holders() == [1]
        assert snap.token.queue == ()
        assert snap.last_token_holder == 1

    def test_release_with_nobody_waiting_keeps_token(self, engine, drain):
        engine.request_cs(1)
        drain(engine)

        assert engine.release_cs(1) is True
        snap = engine.snapshot()

        assert snap.processes[1].phase is Phase.IDLE
        assert snap.token_holders() == [1]
        assert snap.token.last_satisfied == (0, 1, 0, 0, 0)
        assert snap.in_flight == ()

    def test_idle_holder_after_release_hands_off(self, engine, drain):
        engine.request_cs(1)
        drain(engine)
        engine.release_cs(1)

        engine.request_cs(3)
        drain(engine)

        snap = engine.snapshot()
        assert snap.processes[3].phase is Phase.EXECUTING
        assert snap.token_holders() == [3]
        assert snap.last_token_holder == 3


class TestScenarioQueuedRelease:
    """Requests reaching a busy holder are queued at release time."""

    def test_executing_holder_keeps_token(self, engine, drain):
        engine.request_cs(1)
        drain(engine)

        engine.request_cs(2)
        drain(engine)

        snap = engine.snapshot()
        assert snap.processes[1].phase is Phase.EXECUTING
        assert snap.processes[1].request_numbers[2] == 1
        assert snap.tokens_in_flight() == []
        assert snap.processes[2].phase is Phase.REQUESTING

    def test_two_waiters_are_served_in_scan_order(self, p0_executing, drain):
        engine = p0_executing
        assert engine.registry.get(0).request_numbers == (1, 0, 0, 0, 0)

        engine.request_cs(2)
        engine.request_cs(3)
        drain(engine)

        assert engine.registry.get(0).request_numbers == (1, 0, 1, 1, 0)
        assert engine.registry.phase(0) is Phase.EXECUTING

        assert engine.release_cs(0) is True
        snap = engine.snapshot()

        assert snap.processes[0].phase is Phase.IDLE
        assert snap.processes[0].has_token is False
        assert snap.token is None
        [token_msg] = snap.tokens_in_flight()
        assert token_msg.receiver == 2
        assert token_msg.payload.last_satisfied == (1, 0, 0, 0, 0)
        assert token_msg.payload.queue == (3,)

        drain(engine)
        snap = engine.snapshot()
        assert snap.executing() == [2]
        assert snap.token.queue == (3,)

        engine.release_cs(2)
        drain(engine)
        snap = engine.snapshot()
        assert snap.executing() == [3]
        assert snap.token.queue == ()
        assert snap.token.last_satisfied == (1, 0, 1, 0, 0)


class TestScenarioLateRequest:
    """A REQUEST that misses the holder is still served by a later holder."""

    def test_late_request_is_requeued(self, p0_executing, drain):
        engine = p0_executing
        engine.request_cs(2)
        engine.request_cs(1)

        # P0 hears from P2 only; P2 hears from P1
        deliver(engine, 2, 0)
        deliver(engine, 1, 2)

        engine.release_cs(0)
        token_msg = pending(engine, 0, 2, MessageKind.TOKEN)
        assert token_msg.payload.token.ln_tuple()[1] == 0
        deliver(engine, 0, 2, MessageKind.TOKEN)
        assert engine.registry.phase(2) is Phase.EXECUTING

        # P1's request reaches P0 only now: P0 no longer holds anything
        deliver(engine, 1, 0)
        assert engine.registry.request_number(0, 1) == 1
        assert engine.snapshot().tokens_in_flight() == []

        engine.release_cs(2)
        assert pending(engine, 2, 1, MessageKind.TOKEN) is not None

        drain(engine)
        assert engine.snapshot().executing() == [1]


class TestStaleRequest:
    """Already-satisfied requests never move the token."""

    def test_stale_request_at_idle_holder_is_ignored(self, engine):
        engine.request_cs(1)
        deliver(engine, 1, 0)
        deliver(engine, 0, 1, MessageKind.TOKEN)
        engine.release_cs(1)

        engine.request_cs(2)
        deliver(engine, 2, 1)
        deliver(engine, 1, 2, MessageKind.TOKEN)
        engine.release_cs(2)
        assert engine.store.holder == 2

        # P1's first request finally reaches P2, long after it was granted
        deliver(engine, 1, 2)

        snap = engine.snapshot()
        assert snap.processes[2].request_numbers[1] == 1
        assert snap.token_holders() == [2]
        assert snap.tokens_in_flight() == []


class TestRelease:
    """Tests for release_cs guards."""

    def test_release_when_idle_is_ignored(self, engine):
        before = engine.snapshot()
        assert engine.release_cs(0) is False
        assert engine.release_cs(3) is False
        assert engine.snapshot() == before

    def test_release_when_requesting_is_ignored(self, engine):
        engine.request_cs(2)
        before = engine.snapshot()
        assert engine.release_cs(2) is False
        assert engine.snapshot() == before


class TestStep:
    """Tests for step-driven delivery."""

    def test_one_delivery_per_step(self):
        engine = ProtocolEngine(EngineConfig(n_processes=3, transit_step=0.5))
        engine.request_cs(1)

        assert engine.step() is None          # both requests half-way
        assert engine.step().msg_id == 0      # both arrive, oldest first
        assert engine.step().msg_id == 1      # second one, token half-way
        token_msg = engine.step()             # token arrives
        assert token_msg.kind is MessageKind.TOKEN

        snap = engine.snapshot()
        assert snap.executing() == [1]
        assert snap.current_step == 4

    def test_step_delta_overrides_config(self):
        engine = ProtocolEngine(EngineConfig(n_processes=3, transit_step=0.002))
        engine.request_cs(2)
        assert engine.step(1.0) is not None

    def test_step_with_nothing_in_flight(self, engine):
        assert engine.step() is None
        assert engine.current_step == 1

    def test_delivery_happens_exactly_once(self, engine):
        engine.request_cs(1)
        msg = deliver(engine, 1, 3)

        with pytest.raises(MessageNotInFlightError):
            engine.on_message_arrival(msg)

    def test_each_message_id_delivered_once(self, engine, drain):
        delivered = []
        engine.subscribe(
            lambda e: delivered.append(e.message.msg_id) if isinstance(e, MessageDelivered) else None
        )
        for pid in (1, 2, 3):
            engine.request_cs(pid)
        drain(engine)
        engine.release_cs(1)
        drain(engine)

        assert len(delivered) == len(set(delivered))


class TestTargetedDelivery:
    """Tests for on_message_arrival."""

    def test_message_in_transit_is_rejected(self):
        engine = ProtocolEngine(EngineConfig(n_processes=3, transit_step=0.002))
        engine.request_cs(1)
        events = []
        engine.subscribe(events.append)
        msg = pending(engine, 1, 0)

        with pytest.raises(MessageNotArrivedError):
            engine.on_message_arrival(msg)

        assert msg.msg_id in engine.channel
        assert msg.transit == 0.0
        assert engine.registry.request_number(0, 1) == 0
        assert engine.store.holder == 0
        assert engine.current_step == 0
        assert events == []

    def test_half_way_message_is_rejected(self):
        engine = ProtocolEngine(EngineConfig(n_processes=3, transit_step=0.5))
        engine.request_cs(1)
        engine.step()

        with pytest.raises(MessageNotArrivedError):
            engine.on_message_arrival(pending(engine, 1, 0))
        assert engine.registry.phase(1) is Phase.REQUESTING

    def test_no_entry_without_transit(self):
        engine = ProtocolEngine(EngineConfig(n_processes=3, transit_step=0.002))
        engine.request_cs(1)
        pending(engine, 1, 0).transit = 1.0
        engine.on_message_arrival(pending(engine, 1, 0))

        with pytest.raises(MessageNotArrivedError):
            engine.on_message_arrival(pending(engine, 0, 1, MessageKind.TOKEN))
        assert engine.snapshot().executing() == []

    def test_arrived_message_may_go_first(self, engine):
        engine.request_cs(1)
        engine.channel.advance(1.0)
        first, second = pending(engine, 1, 0), pending(engine, 1, 2)

        engine.on_message_arrival(second)

        assert engine.registry.request_number(2, 1) == 1
        assert engine.registry.request_number(0, 1) == 0
        assert first.msg_id in engine.channel

    def test_delivers_the_channel_instance(self, engine):
        engine.request_cs(1)
        engine.channel.advance(1.0)
        view = engine.snapshot().in_flight[0]
        assert view.receiver == 0

        engine.on_message_arrival(view)

        assert view.msg_id not in engine.channel
        assert engine.store.resident is False
        assert pending(engine, 0, 1, MessageKind.TOKEN).payload.token.ln_tuple() == (0,) * 5


class TestFailedCall:
    """A call that raises publishes none of its events."""

    def test_failed_delivery_drops_buffered_events(self, engine, monkeypatch):
        events = []
        engine.subscribe(events.append)
        engine.request_cs(1)
        deliver(engine, 1, 0)
        token_msg = pending(engine, 0, 1, MessageKind.TOKEN)
        token_msg.transit = 1.0

        def broken(receiver, token):
            engine._set_phase(receiver, Phase.EXECUTING)
            raise RuntimeError("token lost")

        monkeypatch.setattr(engine, "_on_token", broken)
        events.clear()
        with pytest.raises(RuntimeError):
            engine.on_message_arrival(token_msg)

        assert events == []
        assert engine._pending == []

        engine.request_cs(3)
        assert [e.pid for e in events if isinstance(e, PhaseChanged)] == [3]


class TestEvents:
    """Tests for event notifications."""

    def test_request_events(self, engine):
        events = []
        engine.subscribe(events.append)
        engine.request_cs(1)

        assert isinstance(events[0], PhaseChanged)
        assert (events[0].pid, events[0].old, events[0].new, events[0].seq) == (
            1, Phase.IDLE, Phase.REQUESTING, 1
        )
        assert [type(e) for e in events[1:]] == [MessageSent] * 4

    def test_listeners_see_completed_state(self, engine):
        seen = []
        engine.subscribe(lambda _e: seen.append(len(engine.snapshot().in_flight)))
        engine.request_cs(1)
        assert seen == [4, 4, 4, 4, 4]

    def test_token_granted_event(self, engine):
        grants = []
        engine.subscribe(lambda e: grants.append(e) if isinstance(e, TokenGranted) else None)
        engine.request_cs(1)
        engine.step()

        [grant] = grants
        assert (grant.sender, grant.receiver, grant.seq) == (0, 1, 1)
        assert grant.immediate is True
        assert grant.queue == ()

    def test_unsubscribe(self, engine):
        events = []
        unsubscribe = engine.subscribe(events.append)
        unsubscribe()
        engine.request_cs(1)
        assert events == []


class TestSnapshotAndReset:
    """Tests for snapshot isolation and reset."""

    def test_snapshot_is_detached(self, engine):
        snap = engine.snapshot()
        engine.request_cs(1)
        engine.step()

        assert snap.processes[1].phase is Phase.IDLE
        assert snap.in_flight == ()
        assert snap.token is not None

    def test_snapshot_messages_are_copies(self, engine):
        engine.request_cs(1)
        snap = engine.snapshot()
        engine.step()
        assert all(m.transit == 0.0 for m in snap.in_flight)

    def test_snapshot_messages_are_frozen(self, engine):
        engine.request_cs(1)
        engine.step()
        [token_msg] = engine.snapshot().tokens_in_flight()

        with pytest.raises(dataclasses.FrozenInstanceError):
            token_msg.transit = 1.0
        assert token_msg.payload.queue == ()
        assert token_msg.payload.last_satisfied == (0, 0, 0, 0, 0)

    def test_reset(self, engine, drain):
        events = []
        engine.subscribe(events.append)
        engine.request_cs(1)
        drain(engine)

        engine.reset()
        snap = engine.snapshot()

        assert isinstance(events[-1], SimulationReset)
        assert snap == ProtocolEngine(engine.config).snapshot()
        assert phases(engine) == [Phase.IDLE] * 5
        assert snap.current_step == 0

    def test_is_quiet(self, engine, drain):
        assert engine.is_quiet()
        engine.request_cs(1)
        assert not engine.is_quiet()
        drain(engine)
        assert engine.is_quiet()
