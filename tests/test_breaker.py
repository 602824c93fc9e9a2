"""Tests for the circuit breaker state machine."""

from feedlyclient.budget import breaker
from feedlyclient.budget.models import CircuitBreakerState, CooldownLevel

MINUTE = 60 * 1000
T0 = 1_700_000_000_000


def _fail_at(state: CircuitBreakerState, *times: int) -> CircuitBreakerState:
    for ts in times:
        state = breaker.record_failure(state, ts)
    return state


class TestTrip:
    def test_five_errors_within_window_trip(self):
        state = _fail_at(CircuitBreakerState(), *(T0 + i * 2 * MINUTE + i for i in range(5)))
        last = T0 + 8 * MINUTE + 4
        assert breaker.is_open(state, last)
        assert state.tripped_until == last + 15 * MINUTE

    def test_four_errors_do_not_trip(self):
        state = _fail_at(CircuitBreakerState(), T0, T0 + 1, T0 + 2, T0 + 3)
        assert state.consecutive_errors == 4
        assert not breaker.is_open(state, T0 + 4)

    def test_expired_window_resets_counter(self):
        state = _fail_at(CircuitBreakerState(), T0, T0 + 2 * MINUTE)
        # Third error lands 11 minutes after the first: the window restarts.
        state = breaker.record_failure(state, T0 + 11 * MINUTE)
        assert state.consecutive_errors == 1
        assert state.first_error_ts == T0 + 11 * MINUTE

        state = _fail_at(state, T0 + 12 * MINUTE, T0 + 13 * MINUTE, T0 + 14 * MINUTE)
        assert state.consecutive_errors == 4
        assert not breaker.is_open(state, T0 + 14 * MINUTE)

    def test_window_boundary_is_inclusive(self):
        state = _fail_at(CircuitBreakerState(), T0, T0 + 10 * MINUTE)
        assert state.consecutive_errors == 2
        assert state.first_error_ts == T0

    def test_record_failure_returns_new_object(self):
        original = CircuitBreakerState()
        breaker.record_failure(original, T0)
        assert original.consecutive_errors == 0


class TestCooldownAlternation:
    def test_trips_alternate_standard_and_extended(self):
        state = _fail_at(CircuitBreakerState(), *(T0 + i for i in range(5)))
        assert state.tripped_until == T0 + 4 + 15 * MINUTE
        assert state.cooldown == CooldownLevel.EXTENDED
        assert state.extended_cooldown is True

        state = breaker.record_success(state)
        t1 = T0 + 60 * MINUTE
        state = _fail_at(state, *(t1 + i for i in range(5)))
        assert state.tripped_until == t1 + 4 + 30 * MINUTE
        assert state.cooldown == CooldownLevel.STANDARD

        state = breaker.record_success(state)
        t2 = T0 + 180 * MINUTE
        state = _fail_at(state, *(t2 + i for i in range(5)))
        assert state.tripped_until == t2 + 4 + 15 * MINUTE

    def test_success_keeps_cooldown_level(self):
        state = CircuitBreakerState(consecutive_errors=3, first_error_ts=T0, cooldown=CooldownLevel.EXTENDED)
        cleared = breaker.record_success(state)
        assert cleared.consecutive_errors == 0
        assert cleared.first_error_ts == 0
        assert cleared.cooldown == CooldownLevel.EXTENDED


def test_remaining_ms():
    state = CircuitBreakerState(tripped_until=T0 + 5000)
    assert breaker.remaining_ms(state, T0) == 5000
    assert breaker.remaining_ms(state, T0 + 9000) == 0
