"""Static per-consumer budget allocations."""

from __future__ import annotations

from pathlib import Path
from typing import Literal

import yaml  # type: ignore[import-untyped]
from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from feedlyclient.errors import BudgetConfigError

RESERVE = "reserve"
# Priority-1 consumers may also borrow this consumer's unused allowance.
PRIORITY_DONOR = "twitter-bot"


class BudgetAllocation(BaseModel):
    model_config = ConfigDict(frozen=True)

    daily_limit: int = Field(..., ge=0)
    hourly_limit: int = Field(..., ge=0)
    priority: Literal[1, 2, 3]
    can_borrow: bool = False


class BudgetTable(BaseModel):
    """Consumer allocations plus the global daily caps."""

    model_config = ConfigDict(frozen=True)

    consumers: dict[str, BudgetAllocation]
    global_daily_limit: int = Field(1667, gt=0)
    soft_cap_percent: int = Field(85, ge=0, le=100)
    hard_cap_percent: int = Field(90, ge=0, le=100)

    @model_validator(mode="after")
    def _require_reserve(self) -> BudgetTable:
        if RESERVE not in self.consumers:
            raise ValueError(f"budget table must define a '{RESERVE}' consumer")
        return self

    def allocation_for(self, consumer: str) -> BudgetAllocation:
        """Return the consumer's allocation, falling back to the reserve tier."""
        return self.consumers.get(consumer) or self.consumers[RESERVE]

    @property
    def reserve(self) -> BudgetAllocation:
        return self.consumers[RESERVE]


DEFAULT_BUDGET_TABLE = BudgetTable(
    consumers={
        "cyber-ops": BudgetAllocation(daily_limit=1000, hourly_limit=42, priority=1, can_borrow=True),
        "twitter-bot": BudgetAllocation(daily_limit=500, hourly_limit=21, priority=2, can_borrow=False),
        "landscape": BudgetAllocation(daily_limit=300, hourly_limit=13, priority=3, can_borrow=True),
        RESERVE: BudgetAllocation(daily_limit=167, hourly_limit=7, priority=3, can_borrow=False),
    },
)


def load_budget_table(path: str | None = None) -> BudgetTable:
    """Load a budget table from YAML, or the built-in table when no path is given."""
    if not path:
        return DEFAULT_BUDGET_TABLE
    p = Path(path).expanduser()
    if not p.exists():
        raise BudgetConfigError(f"Budget table not found: {path}")
    try:
        return BudgetTable.model_validate(yaml.safe_load(p.read_text()) or {})
    except (yaml.YAMLError, ValidationError) as exc:
        raise BudgetConfigError(f"Invalid budget table {path}: {exc}") from exc
