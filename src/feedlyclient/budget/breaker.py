"""Circuit breaker over consecutive upstream failures."""

from __future__ import annotations

import structlog

from feedlyclient.budget.models import CircuitBreakerState, CooldownLevel
from feedlyclient.clock import from_epoch_ms

logger = structlog.get_logger()

FAILURE_THRESHOLD = 5
FAILURE_WINDOW_MS = 10 * 60 * 1000
COOLDOWN_MS = {
    CooldownLevel.STANDARD: 15 * 60 * 1000,
    CooldownLevel.EXTENDED: 30 * 60 * 1000,
}


def is_open(breaker: CircuitBreakerState, now_ms: int) -> bool:
    return breaker.tripped_until > now_ms


def remaining_ms(breaker: CircuitBreakerState, now_ms: int) -> int:
    return max(0, breaker.tripped_until - now_ms)


def record_failure(breaker: CircuitBreakerState, now_ms: int) -> CircuitBreakerState:
    """Count a failure, tripping the breaker once the threshold is reached.

    Errors older than the window are forgotten before the new one is counted.
    Each trip alternates between the standard and extended cooldown.
    """
    breaker = breaker.model_copy()
    if breaker.first_error_ts > 0 and now_ms - breaker.first_error_ts > FAILURE_WINDOW_MS:
        breaker.consecutive_errors = 0
        breaker.first_error_ts = 0

    breaker.consecutive_errors += 1
    if breaker.first_error_ts == 0:
        breaker.first_error_ts = now_ms

    if breaker.consecutive_errors >= FAILURE_THRESHOLD:
        cooldown_ms = COOLDOWN_MS[breaker.cooldown]
        breaker.tripped_until = now_ms + cooldown_ms
        breaker.cooldown = breaker.cooldown.flipped()
        logger.warning(
            "Circuit breaker tripped",
            errors=breaker.consecutive_errors,
            cooldown_seconds=cooldown_ms // 1000,
            until=from_epoch_ms(breaker.tripped_until).isoformat(),
        )
    return breaker


def record_success(breaker: CircuitBreakerState) -> CircuitBreakerState:
    """Clear the failure streak. The cooldown level is kept."""
    return breaker.model_copy(update={"consecutive_errors": 0, "first_error_ts": 0})
