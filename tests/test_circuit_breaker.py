import asyncio

import pytest

from khata.services.circuit_breaker import CircuitBreaker, CircuitState
from khata.utils.exceptions import ServiceUnavailableError


class FakeClock:

    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


async def ok():
    return "ok"


async def boom():
    raise RuntimeError("provider down")


def run(coro):
    return asyncio.run(coro)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def breaker(clock):
    return CircuitBreaker("test", failure_threshold=3, success_threshold=2, reset_timeout=60, clock=clock)


def trip(breaker):
    for _ in range(breaker.failure_threshold):
        with pytest.raises(RuntimeError):
            run(breaker.call(boom))


def test_passes_through_when_closed(breaker):
    assert run(breaker.call(ok)) == "ok"
    assert breaker.state is CircuitState.CLOSED


def test_opens_after_threshold(breaker):
    trip(breaker)
    assert breaker.state is CircuitState.OPEN


def test_success_resets_failure_count(breaker):
    with pytest.raises(RuntimeError):
        run(breaker.call(boom))
    run(breaker.call(ok))
    assert breaker.failure_count == 0


def test_open_short_circuits(breaker):
    trip(breaker)
    calls = []

    async def tracked():
        calls.append(1)
        return "ok"

    with pytest.raises(ServiceUnavailableError):
        run(breaker.call(tracked))
    assert calls == []


def test_open_uses_fallback(breaker):
    trip(breaker)
    assert run(breaker.call(ok, fallback=lambda: "cached")) == "cached"


def test_half_open_then_closed(breaker, clock):
    trip(breaker)
    clock.now += 61

    run(breaker.call(ok))
    assert breaker.state is CircuitState.HALF_OPEN
    run(breaker.call(ok))
    assert breaker.state is CircuitState.CLOSED


def test_half_open_failure_reopens(breaker, clock):
    trip(breaker)
    clock.now += 61

    with pytest.raises(RuntimeError):
        run(breaker.call(boom))
    assert breaker.state is CircuitState.OPEN
    with pytest.raises(ServiceUnavailableError):
        run(breaker.call(ok))


def test_reset(breaker):
    trip(breaker)
    breaker.reset()
    assert breaker.state is CircuitState.CLOSED
    assert run(breaker.call(ok)) == "ok"
