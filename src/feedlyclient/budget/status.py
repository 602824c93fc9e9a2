"""Human-readable rate budget report."""

from __future__ import annotations

from datetime import datetime

from feedlyclient.budget import breaker
from feedlyclient.budget.models import RateState
from feedlyclient.budget.table import BudgetTable
from feedlyclient.clock import epoch_ms, from_epoch_ms


def format_status(state: RateState, table: BudgetTable, now: datetime) -> str:
    lines = [
        "Rate Budget Status",
        "=" * 50,
        f"Date: {state.daily.date}",
        f"Daily total: {state.daily.total} / {table.global_daily_limit}",
        f"Hourly total: {state.hourly.total}",
        f"Monthly total: {state.monthly.total}",
        "",
        "By consumer:",
    ]
    for consumer, used in sorted(state.daily.by_consumer.items()):
        allocation = table.consumers.get(consumer)
        limit = allocation.daily_limit if allocation else "?"
        lines.append(f"  {consumer}: {used} / {limit}")

    lines.extend(["", "By endpoint:"])
    for endpoint, count in sorted(state.daily.by_endpoint.items()):
        lines.append(f"  {endpoint}: {count}")

    info = state.last_api_rate_info
    if info is not None:
        lines.extend(
            [
                "",
                "API Rate Headers (last seen):",
                f"  Used: {info.count}/{info.limit}",
                f"  Remaining: {info.remaining}",
                f"  Percent: {info.percent_used:.1f}%",
            ]
        )

    cb = state.circuit_breaker
    if breaker.is_open(cb, epoch_ms(now)):
        lines.extend(["", f"[CIRCUIT BREAKER ACTIVE] Until: {from_epoch_ms(cb.tripped_until).isoformat()}"])

    return "\n".join(lines)
