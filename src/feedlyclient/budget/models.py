"""Rate budget state and verdict types."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field

from feedlyclient.clock import day_key, hour_key, month_key

SCHEMA_VERSION = 1


class RateLimitInfo(BaseModel):
    """Rate limit telemetry reported by the Feedly API response headers."""

    count: int = Field(..., description="Requests used this upstream period")
    limit: int = Field(..., description="Maximum requests this upstream period")
    reset: int = Field(0, description="Epoch seconds when the upstream counter resets")
    remaining: int
    percent_used: float


class DailyUsage(BaseModel):
    date: str
    total: int = 0
    by_endpoint: dict[str, int] = Field(default_factory=dict)
    by_consumer: dict[str, int] = Field(default_factory=dict)


class HourlyUsage(BaseModel):
    hour: str
    total: int = 0


class MonthlyUsage(BaseModel):
    month: str
    total: int = 0


class CooldownLevel(str, Enum):
    STANDARD = "standard"
    EXTENDED = "extended"

    def flipped(self) -> CooldownLevel:
        return CooldownLevel.STANDARD if self is CooldownLevel.EXTENDED else CooldownLevel.EXTENDED


class CircuitBreakerState(BaseModel):
    consecutive_errors: int = 0
    first_error_ts: int = 0
    tripped_until: int = 0
    cooldown: CooldownLevel = CooldownLevel.STANDARD

    @property
    def extended_cooldown(self) -> bool:
        return self.cooldown is CooldownLevel.EXTENDED


class RateState(BaseModel):
    """Persisted request accounting shared by every consumer of the client."""

    schema_version: int = SCHEMA_VERSION
    daily: DailyUsage
    hourly: HourlyUsage
    monthly: MonthlyUsage
    last_api_rate_info: RateLimitInfo | None = None
    last_request_ts: int = 0
    circuit_breaker: CircuitBreakerState = Field(default_factory=CircuitBreakerState)
    last_updated: datetime

    @classmethod
    def empty(cls, now: datetime) -> RateState:
        return cls(
            daily=DailyUsage(date=day_key(now)),
            hourly=HourlyUsage(hour=hour_key(now)),
            monthly=MonthlyUsage(month=month_key(now)),
            last_updated=now,
        )


class DenialReason(str, Enum):
    CIRCUIT_OPEN = "circuit_open"
    BURST_LIMITED = "burst_limited"
    UPSTREAM_HARD_STOP = "upstream_hard_stop"
    GLOBAL_DAILY_EXHAUSTED = "global_daily_exhausted"
    CONSUMER_DAILY_EXHAUSTED = "consumer_daily_exhausted"


@dataclass(frozen=True)
class BudgetCheck:
    """Admission verdict for a single prospective request."""

    allowed: bool
    remaining_daily: int
    remaining_hourly: int
    reason: str | None = None
    cache_only: bool = False
    wait_ms: int | None = None
    denial: DenialReason | None = None


@dataclass(frozen=True)
class Reservation:
    """A request slot counted at admission, keyed to the periods it was counted in."""

    consumer: str
    endpoint: str
    date: str
    hour: str
    month: str
    requested_ts: int = 0
    previous_request_ts: int = 0


@dataclass(frozen=True)
class Admission:
    check: BudgetCheck
    reservation: Reservation | None = None
