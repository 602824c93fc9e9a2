"""Exceptions raised by the Feedly client and its rate budget."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from feedlyclient.budget.models import BudgetCheck


class BudgetStateError(RuntimeError):
    """Raised when the persisted rate state cannot be read, written or locked."""


class BudgetConfigError(ValueError):
    """Raised when a budget table file is malformed."""


class RateLimitError(RuntimeError):
    """Raised when a request is refused locally or throttled upstream."""

    def __init__(self, message: str, check: BudgetCheck | None = None) -> None:
        super().__init__(message)
        self.check = check


class FeedlyApiError(RuntimeError):
    """Raised for non-2xx responses from the Feedly API."""

    def __init__(self, status_code: int, body: str, path: str) -> None:
        super().__init__(f"Feedly API {status_code} on {path}: {body[:200]}")
        self.status_code = status_code
        self.body = body
        self.path = path


class FeedlyAuthError(RuntimeError):
    """Raised when no Feedly API token is configured."""
