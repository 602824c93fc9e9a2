"""Admission decisions for prospective Feedly API requests."""

from __future__ import annotations

import math
from datetime import datetime

from feedlyclient.budget import breaker
from feedlyclient.budget.burst import burst_wait_ms
from feedlyclient.budget.models import BudgetCheck, DenialReason, RateState
from feedlyclient.budget.table import PRIORITY_DONOR, RESERVE, BudgetAllocation, BudgetTable
from feedlyclient.clock import epoch_ms


def _unused(table: BudgetTable, state: RateState, consumer: str) -> int:
    allocation = table.consumers.get(consumer)
    if allocation is None:
        return 0
    return max(0, allocation.daily_limit - state.daily.by_consumer.get(consumer, 0))


def effective_daily_limit(table: BudgetTable, state: RateState, consumer: str, allocation: BudgetAllocation) -> int:
    """Daily limit for a consumer including any capacity it may borrow.

    Borrowing only starts once the consumer's own allowance is spent. Borrowers
    draw on the reserve; priority-1 consumers additionally draw on the
    priority donor's unused allowance. Nobody borrows from priority 1.
    """
    used = state.daily.by_consumer.get(consumer, 0)
    limit = allocation.daily_limit
    if used >= allocation.daily_limit and allocation.can_borrow:
        limit += _unused(table, state, RESERVE)
        if allocation.priority == 1:
            limit += _unused(table, state, PRIORITY_DONOR)
    return limit


def check_budget(state: RateState, table: BudgetTable, consumer: str, now: datetime) -> BudgetCheck:
    """Decide whether ``consumer`` may issue a request right now.

    Rules are evaluated in order and the first match wins: open circuit,
    burst spacing, upstream-reported hard stop, global hard cap, global soft
    cap (allowed, cache only), then the consumer's own budget with borrowing.
    """
    now_ms = epoch_ms(now)
    allocation = table.allocation_for(consumer)
    global_used = state.daily.total
    global_remaining = table.global_daily_limit - global_used
    remaining_hourly = max(0, allocation.hourly_limit - state.hourly.total)

    if breaker.is_open(state.circuit_breaker, now_ms):
        wait_ms = breaker.remaining_ms(state.circuit_breaker, now_ms)
        return BudgetCheck(
            allowed=False,
            reason=f"Circuit breaker tripped, {math.ceil(wait_ms / 1000)}s remaining",
            remaining_daily=global_remaining,
            remaining_hourly=remaining_hourly,
            wait_ms=wait_ms,
            denial=DenialReason.CIRCUIT_OPEN,
        )

    wait_ms = burst_wait_ms(state, now_ms)
    if wait_ms > 0:
        return BudgetCheck(
            allowed=False,
            reason=f"Burst rate limit, wait {wait_ms}ms",
            remaining_daily=global_remaining,
            remaining_hourly=remaining_hourly,
            wait_ms=wait_ms,
            denial=DenialReason.BURST_LIMITED,
        )

    api_info = state.last_api_rate_info
    if api_info is not None and api_info.percent_used >= table.hard_cap_percent:
        return BudgetCheck(
            allowed=False,
            reason=f"API rate limit at {api_info.percent_used:.0f}%, hard stop",
            remaining_daily=global_remaining,
            remaining_hourly=remaining_hourly,
            denial=DenialReason.UPSTREAM_HARD_STOP,
        )

    if global_used >= table.global_daily_limit:
        return BudgetCheck(
            allowed=False,
            reason=f"Global daily limit reached ({global_used}/{table.global_daily_limit})",
            remaining_daily=0,
            remaining_hourly=0,
            denial=DenialReason.GLOBAL_DAILY_EXHAUSTED,
        )

    if global_used * 100 >= table.global_daily_limit * table.soft_cap_percent:
        return BudgetCheck(
            allowed=True,
            cache_only=True,
            reason=f"Global usage at {global_used / table.global_daily_limit * 100:.0f}%, cache-only mode",
            remaining_daily=global_remaining,
            remaining_hourly=remaining_hourly,
        )

    used = state.daily.by_consumer.get(consumer, 0)
    limit = effective_daily_limit(table, state, consumer, allocation)
    if used >= limit:
        return BudgetCheck(
            allowed=False,
            reason=f'Consumer "{consumer}" daily limit reached ({used}/{limit})',
            remaining_daily=0,
            remaining_hourly=0,
            denial=DenialReason.CONSUMER_DAILY_EXHAUSTED,
        )

    return BudgetCheck(
        allowed=True,
        remaining_daily=limit - used,
        remaining_hourly=remaining_hourly,
    )
