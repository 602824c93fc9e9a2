"""JSON persistence for the shared rate state."""

from __future__ import annotations

import json
import os
from collections.abc import Callable, Generator
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any

import structlog
from filelock import FileLock, Timeout
from pydantic import ValidationError

from feedlyclient.budget.models import SCHEMA_VERSION, DailyUsage, HourlyUsage, MonthlyUsage, RateState
from feedlyclient.clock import Clock, SystemClock, day_key, hour_key, month_key
from feedlyclient.errors import BudgetStateError

logger = structlog.get_logger()


def _upgrade_v0(payload: dict[str, Any]) -> dict[str, Any]:
    """Translate the legacy camelCase layout written before versioning."""
    daily = payload.get("daily") or {}
    rate_info = payload.get("lastApiRateInfo")
    breaker = payload.get("circuitBreaker") or {}

    upgraded: dict[str, Any] = {
        "schema_version": 1,
        "daily": {
            "date": daily.get("date", ""),
            "total": daily.get("total", 0),
            "by_endpoint": daily.get("byEndpoint") or {},
            "by_consumer": daily.get("byConsumer") or {},
        },
        "hourly": payload.get("hourly") or {"hour": ""},
        "monthly": payload.get("monthly") or {"month": ""},
        "last_api_rate_info": None,
        "last_request_ts": payload.get("lastRequestTs", 0),
        # Older files predate the breaker entirely.
        "circuit_breaker": {
            "consecutive_errors": breaker.get("consecutiveErrors", 0),
            "first_error_ts": breaker.get("firstErrorTs", 0),
            "tripped_until": breaker.get("trippedUntil", 0),
            "cooldown": "extended" if breaker.get("extendedCooldown") else "standard",
        },
        "last_updated": payload.get("lastUpdated") or "1970-01-01T00:00:00+00:00",
    }
    if rate_info:
        upgraded["last_api_rate_info"] = {
            "count": rate_info.get("count", 0),
            "limit": rate_info.get("limit", 0),
            "reset": rate_info.get("reset", 0),
            "remaining": rate_info.get("remaining", 0),
            "percent_used": rate_info.get("percentUsed", 0.0),
        }
    return upgraded


_UPGRADES: dict[int, Callable[[dict[str, Any]], dict[str, Any]]] = {
    0: _upgrade_v0,
}


def upgrade_payload(payload: dict[str, Any]) -> dict[str, Any]:
    """Bring a decoded payload up to the current schema version."""
    version = payload.get("schema_version", 0)
    if not isinstance(version, int) or version > SCHEMA_VERSION:
        raise BudgetStateError(f"Unsupported rate state schema version: {version!r}")
    while version < SCHEMA_VERSION:
        payload = _UPGRADES[version](payload)
        version = payload["schema_version"]
    return payload


def apply_rollover(state: RateState, now: datetime) -> RateState:
    """Reset every period bucket whose key no longer matches the clock."""
    today, hour, month = day_key(now), hour_key(now), month_key(now)
    if state.daily.date != today:
        logger.info("Rate period rolled over", period="daily", previous=state.daily.date, current=today)
        state.daily = DailyUsage(date=today)
    if state.hourly.hour != hour:
        state.hourly = HourlyUsage(hour=hour)
    if state.monthly.month != month:
        logger.info("Rate period rolled over", period="monthly", previous=state.monthly.month, current=month)
        state.monthly = MonthlyUsage(month=month)
    return state


class StateStore:
    """Loads and saves the rate state file, guarding it with an advisory lock."""

    def __init__(
        self,
        path: str | Path,
        *,
        clock: Clock | None = None,
        lock_timeout_seconds: float = 10.0,
    ) -> None:
        self.path = Path(path).expanduser()
        self.clock = clock or SystemClock()
        self.lock_path = self.path.with_name(self.path.name + ".lock")
        self.lock_timeout_seconds = lock_timeout_seconds
        self._lock: FileLock | None = None

    def _file_lock(self) -> FileLock:
        if self._lock is None:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self._lock = FileLock(str(self.lock_path), timeout=self.lock_timeout_seconds)
        return self._lock

    @contextmanager
    def locked(self) -> Generator[None, None, None]:
        """Hold the exclusive lock for a load-decide-mutate-save sequence."""
        try:
            with self._file_lock():
                yield
        except Timeout as exc:
            raise BudgetStateError(f"Timed out waiting for rate state lock {self.lock_path}") from exc

    def load(self) -> RateState:
        now = self.clock.now()
        if not self.path.exists():
            return RateState.empty(now)

        try:
            payload = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            raise BudgetStateError(f"Cannot read rate state {self.path}: {exc}") from exc
        if not isinstance(payload, dict):
            raise BudgetStateError(f"Rate state {self.path} is not a JSON object")

        try:
            state = RateState.model_validate(upgrade_payload(payload))
        except ValidationError as exc:
            raise BudgetStateError(f"Invalid rate state {self.path}: {exc}") from exc

        return apply_rollover(state, now)

    def save(self, state: RateState) -> None:
        state.last_updated = self.clock.now()
        tmp_path = self.path.with_name(self.path.name + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(state.model_dump_json(indent=2), encoding="utf-8")
            os.replace(tmp_path, self.path)
        except OSError as exc:
            logger.error("Rate state write failed", path=str(self.path), error=str(exc))
            raise BudgetStateError(f"Cannot write rate state {self.path}: {exc}") from exc
