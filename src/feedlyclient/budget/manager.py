"""Rate budget facade tying the state store to the allocator and recorder.

Every mutation runs load -> mutate -> save while holding the store's file
lock, so independent CLI invocations sharing one state file cannot lose
increments. Checks read under the same lock.

``admit`` decides and reserves inside one lock hold. Two clients sharing a
state file therefore cannot both pass the burst gate or both take the last
slot of a budget; the reserved slot is later settled or released.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable

import structlog

from feedlyclient.budget import recorder
from feedlyclient.budget.allocator import check_budget
from feedlyclient.budget.burst import wait_for_burst
from feedlyclient.budget.models import Admission, BudgetCheck, RateLimitInfo, RateState, Reservation
from feedlyclient.budget.status import format_status
from feedlyclient.budget.store import StateStore
from feedlyclient.budget.table import BudgetTable, load_budget_table
from feedlyclient.clock import Clock, SystemClock
from feedlyclient.config import settings

logger = structlog.get_logger()


class RateBudget:
    def __init__(self, store: StateStore, table: BudgetTable, clock: Clock | None = None) -> None:
        self.store = store
        self.table = table
        self.clock = clock or store.clock

    @classmethod
    def from_settings(
        cls,
        clock: Clock | None = None,
        *,
        state_path: str | None = None,
        table_path: str | None = None,
    ) -> RateBudget:
        clock = clock or SystemClock()
        store = StateStore(
            state_path or settings.rate_state_path,
            clock=clock,
            lock_timeout_seconds=settings.state_lock_timeout_seconds,
        )
        return cls(store, load_budget_table(table_path or settings.budget_table_path), clock)

    def snapshot(self) -> RateState:
        with self.store.locked():
            return self.store.load()

    def _log_denial(self, consumer: str, result: BudgetCheck) -> None:
        denial = result.denial.value if result.denial else None
        logger.info(
            "Request denied",
            consumer=consumer,
            denial=denial,
            reason=result.reason,
        )

    def check_budget(self, consumer: str) -> BudgetCheck:
        state = self.snapshot()
        result = check_budget(state, self.table, consumer, self.clock.now())
        if not result.allowed:
            self._log_denial(consumer, result)
        return result

    def admit(self, consumer: str, endpoint: str) -> Admission:
        """Check the budget and, when allowed, count the request in the same lock hold."""
        with self.store.locked():
            state = self.store.load()
            now = self.clock.now()
            result = check_budget(state, self.table, consumer, now)
            if not result.allowed:
                self._log_denial(consumer, result)
                return Admission(check=result)
            state, reservation = recorder.reserve_request(state, consumer, endpoint, now)
            self.store.save(state)
        return Admission(check=result, reservation=reservation)

    def _mutate(self, change: Callable[[RateState], RateState]) -> RateState:
        with self.store.locked():
            state = change(self.store.load())
            self.store.save(state)
        return state

    def settle(self, rate_info: RateLimitInfo | None = None) -> RateState:
        return self._mutate(lambda s: recorder.settle_request(s, rate_info))

    def release(self, reservation: Reservation, *, sent: bool = True) -> RateState:
        return self._mutate(lambda s: recorder.release_request(s, reservation, sent=sent))

    def record_request(self, consumer: str, endpoint: str, rate_info: RateLimitInfo | None = None) -> RateState:
        return self._mutate(lambda s: recorder.record_request(s, consumer, endpoint, rate_info, self.clock.now()))

    def record_error(self) -> RateState:
        return self._mutate(lambda s: recorder.record_error(s, self.clock.now()))

    def record_rate_info(self, rate_info: RateLimitInfo) -> RateState:
        return self._mutate(lambda s: recorder.record_rate_info(s, rate_info, self.clock.now()))

    async def wait_for_burst(self, *, sleep: Callable[[float], Awaitable[None]] | None = None) -> None:
        state = self.snapshot()
        if sleep is None:
            await wait_for_burst(state, self.clock)
        else:
            await wait_for_burst(state, self.clock, sleep=sleep)

    def format_status(self) -> str:
        return format_status(self.snapshot(), self.table, self.clock.now())
