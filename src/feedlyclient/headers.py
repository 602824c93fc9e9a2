"""Parsing of Feedly rate limit response headers."""

from __future__ import annotations

from collections.abc import Mapping

from feedlyclient.budget.models import RateLimitInfo


def _int_header(headers: Mapping[str, str], name: str) -> int | None:
    raw = headers.get(name)
    if raw is None:
        return None
    try:
        return int(raw.strip())
    except ValueError:
        return None


def parse_rate_headers(headers: Mapping[str, str]) -> RateLimitInfo | None:
    """Build RateLimitInfo from X-Ratelimit-* headers, or None when absent."""
    count = _int_header(headers, "X-Ratelimit-Count")
    limit = _int_header(headers, "X-Ratelimit-Limit")
    if count is None or limit is None or limit <= 0:
        return None
    return RateLimitInfo(
        count=count,
        limit=limit,
        reset=_int_header(headers, "X-Ratelimit-Reset") or 0,
        remaining=limit - count,
        percent_used=count / limit * 100,
    )
