"""Pytest fixtures for the Feedly rate budget tests."""

from datetime import UTC, datetime

import pytest

from feedlyclient.budget.manager import RateBudget
from feedlyclient.budget.models import RateState
from feedlyclient.budget.store import StateStore
from feedlyclient.budget.table import DEFAULT_BUDGET_TABLE, BudgetTable
from feedlyclient.clock import ManualClock

START = datetime(2026, 3, 14, 10, 30, tzinfo=UTC)


@pytest.fixture
def clock() -> ManualClock:
    """Clock frozen mid-morning on a fixed day."""
    return ManualClock(START)


@pytest.fixture
def table() -> BudgetTable:
    return DEFAULT_BUDGET_TABLE


@pytest.fixture
def state(clock: ManualClock) -> RateState:
    """Empty state keyed to the clock's current periods."""
    return RateState.empty(clock.now())


@pytest.fixture
def state_path(tmp_path):
    return tmp_path / "data" / "rate-state.json"


@pytest.fixture
def store(state_path, clock: ManualClock) -> StateStore:
    return StateStore(state_path, clock=clock, lock_timeout_seconds=1.0)


@pytest.fixture
def budget(store: StateStore, table: BudgetTable, clock: ManualClock) -> RateBudget:
    return RateBudget(store, table, clock)


def with_usage(state: RateState, **by_consumer: int) -> RateState:
    """Give ``state`` per-consumer usage (underscores map to dashes) and a matching total."""
    state = state.model_copy(deep=True)
    for key, used in by_consumer.items():
        state.daily.by_consumer[key.replace("_", "-")] = used
    state.daily.total = sum(state.daily.by_consumer.values())
    return state
