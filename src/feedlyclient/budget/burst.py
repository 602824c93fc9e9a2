"""Minimum spacing between consecutive requests."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable

import structlog

from feedlyclient.budget.models import RateState
from feedlyclient.clock import Clock, epoch_ms

logger = structlog.get_logger()

MIN_REQUEST_INTERVAL_MS = 2000


def burst_wait_ms(state: RateState, now_ms: int) -> int:
    """Milliseconds left before another request may be issued (0 when clear)."""
    if state.last_request_ts <= 0:
        return 0
    elapsed = now_ms - state.last_request_ts
    if elapsed < MIN_REQUEST_INTERVAL_MS:
        return MIN_REQUEST_INTERVAL_MS - elapsed
    return 0


async def wait_for_burst(
    state: RateState,
    clock: Clock,
    *,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> None:
    wait_ms = burst_wait_ms(state, epoch_ms(clock.now()))
    if wait_ms > 0:
        logger.debug("Spacing request burst", sleep_ms=wait_ms)
        await sleep(wait_ms / 1000)
