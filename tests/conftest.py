"""
Pytest configuration and shared fixtures.
"""

import pytest


@pytest.fixture
def engine():
    """Five processes, P0 holds the token, every message arrives after one step."""
    from skmutex.core import EngineConfig, ProtocolEngine
    return ProtocolEngine(EngineConfig(n_processes=5, transit_step=1.0))


@pytest.fixture
def engine_holder4():
    """Five processes with the token starting at P4, so P0 can request it."""
    from skmutex.core import EngineConfig, ProtocolEngine
    return ProtocolEngine(EngineConfig(n_processes=5, transit_step=1.0, initial_holder=4))


@pytest.fixture
def drain():
    """Step an engine until no message is in flight. Returns delivered messages."""

    def _drain(engine, max_steps=1000):
        delivered = []
        for _ in range(max_steps):
            if len(engine.channel) == 0:
                return delivered
            message = engine.step()
            if message is not None:
                delivered.append(message)
        raise AssertionError(f"messages still in flight after {max_steps} steps")

    return _drain


@pytest.fixture
def p0_executing(engine_holder4, drain):
    """P0 inside the critical section; its RN array is [1, 0, 0, 0, 0]."""
    engine_holder4.request_cs(0)
    drain(engine_holder4)
    return engine_holder4
