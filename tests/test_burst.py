"""Tests for request burst spacing."""

import asyncio

from feedlyclient.budget.burst import MIN_REQUEST_INTERVAL_MS, burst_wait_ms, wait_for_burst
from feedlyclient.clock import epoch_ms


def test_no_previous_request_means_no_wait(state, clock):
    assert burst_wait_ms(state, epoch_ms(clock.now())) == 0


def test_wait_is_remaining_interval(state, clock):
    now_ms = epoch_ms(clock.now())
    state.last_request_ts = now_ms - 500
    assert burst_wait_ms(state, now_ms) == 1500
    state.last_request_ts = now_ms - MIN_REQUEST_INTERVAL_MS
    assert burst_wait_ms(state, now_ms) == 0


def test_wait_for_burst_sleeps_remaining_time(state, clock):
    state.last_request_ts = epoch_ms(clock.now()) - 1250
    sleeps: list[float] = []

    async def fake_sleep(seconds: float) -> None:
        sleeps.append(seconds)

    asyncio.run(wait_for_burst(state, clock, sleep=fake_sleep))
    assert sleeps == [0.75]


def test_wait_for_burst_returns_immediately_when_clear(state, clock):
    state.last_request_ts = epoch_ms(clock.now()) - 5000
    sleeps: list[float] = []

    async def fake_sleep(seconds: float) -> None:
        sleeps.append(seconds)

    asyncio.run(wait_for_burst(state, clock, sleep=fake_sleep))
    assert sleeps == []
