"""State mutations for admitted, completed and failed requests.

Each function takes the current state and returns an updated deep copy; the
caller persists the result.
"""

from __future__ import annotations

from datetime import datetime

from feedlyclient.budget import breaker
from feedlyclient.budget.models import RateLimitInfo, RateState, Reservation
from feedlyclient.clock import epoch_ms


def record_request(
    state: RateState,
    consumer: str,
    endpoint: str,
    rate_info: RateLimitInfo | None,
    now: datetime,
) -> RateState:
    state = state.model_copy(deep=True)
    daily = state.daily
    daily.total += 1
    daily.by_endpoint[endpoint] = daily.by_endpoint.get(endpoint, 0) + 1
    daily.by_consumer[consumer] = daily.by_consumer.get(consumer, 0) + 1
    state.hourly.total += 1
    state.monthly.total += 1
    state.last_request_ts = epoch_ms(now)

    # Upstream telemetry always wins, even when it reports lower usage.
    if rate_info is not None:
        state.last_api_rate_info = rate_info

    state.circuit_breaker = breaker.record_success(state.circuit_breaker)
    return state


def record_error(state: RateState, now: datetime) -> RateState:
    state = state.model_copy(deep=True)
    state.circuit_breaker = breaker.record_failure(state.circuit_breaker, epoch_ms(now))
    return state


def record_rate_info(state: RateState, rate_info: RateLimitInfo, now: datetime) -> RateState:
    """Store upstream telemetry from a throttled response without counting it."""
    state = state.model_copy(deep=True)
    state.last_api_rate_info = rate_info
    state.last_request_ts = epoch_ms(now)
    return state


def reserve_request(
    state: RateState,
    consumer: str,
    endpoint: str,
    now: datetime,
) -> tuple[RateState, Reservation]:
    """Count an admitted request before it is sent upstream."""
    state = state.model_copy(deep=True)
    daily = state.daily
    daily.total += 1
    daily.by_endpoint[endpoint] = daily.by_endpoint.get(endpoint, 0) + 1
    daily.by_consumer[consumer] = daily.by_consumer.get(consumer, 0) + 1
    state.hourly.total += 1
    state.monthly.total += 1
    previous_request_ts = state.last_request_ts
    state.last_request_ts = epoch_ms(now)
    reservation = Reservation(
        consumer=consumer,
        endpoint=endpoint,
        date=daily.date,
        hour=state.hourly.hour,
        month=state.monthly.month,
        requested_ts=state.last_request_ts,
        previous_request_ts=previous_request_ts,
    )
    return state, reservation


def settle_request(state: RateState, rate_info: RateLimitInfo | None) -> RateState:
    """Finish a reserved request that succeeded upstream."""
    state = state.model_copy(deep=True)
    if rate_info is not None:
        state.last_api_rate_info = rate_info
    state.circuit_breaker = breaker.record_success(state.circuit_breaker)
    return state


def _decrement(counts: dict[str, int], key: str) -> None:
    remaining = counts.get(key, 0) - 1
    if remaining > 0:
        counts[key] = remaining
    else:
        counts.pop(key, None)


def release_request(state: RateState, reservation: Reservation, *, sent: bool = True) -> RateState:
    """Give back a reserved slot that never produced a counted request.

    Buckets that rolled over since the reservation are left alone. When the
    request never left the process, the burst stamp is restored too, unless a
    later admission has moved it on.
    """
    state = state.model_copy(deep=True)
    daily = state.daily
    if daily.date == reservation.date and daily.by_consumer.get(reservation.consumer, 0) > 0:
        daily.total = max(0, daily.total - 1)
        _decrement(daily.by_consumer, reservation.consumer)
        _decrement(daily.by_endpoint, reservation.endpoint)
    if state.hourly.hour == reservation.hour and state.hourly.total > 0:
        state.hourly.total -= 1
    if state.monthly.month == reservation.month and state.monthly.total > 0:
        state.monthly.total -= 1
    if not sent and state.last_request_ts == reservation.requested_ts:
        state.last_request_ts = reservation.previous_request_ts
    return state
