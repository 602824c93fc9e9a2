"""Budget-aware async client for the Feedly API."""

from __future__ import annotations

import asyncio
import json
import time
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Any

import httpx
import structlog

from feedlyclient.budget.manager import RateBudget
from feedlyclient.budget.models import Admission, RateLimitInfo, Reservation
from feedlyclient.cache import ResponseCache
from feedlyclient.config import settings
from feedlyclient.errors import FeedlyApiError, FeedlyAuthError, RateLimitError
from feedlyclient.headers import parse_rate_headers

logger = structlog.get_logger()


class FeedlyClient:
    """
    Feedly API client that admits every call through the shared rate budget.

    Usage:
        cache = ResponseCache(settings.cache_dir)
        async with FeedlyClient(RateBudget.from_settings(), cache=cache) as client:
            data = await client.get("/v3/memes/vulnerabilities/en", consumer="cyber-ops", endpoint="trending")
    """

    def __init__(
        self,
        budget: RateBudget,
        *,
        token: str | None = None,
        base_url: str | None = None,
        timeout_seconds: float | None = None,
        cache: ResponseCache | None = None,
        request_log_path: str | None = None,
        max_inline_wait_ms: int | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if token is None and settings.feedly_api_token is not None:
            token = settings.feedly_api_token.get_secret_value()
        self.budget = budget
        self.token = token
        self.cache = cache
        self.request_log_path = Path(request_log_path or settings.request_log_path).expanduser()
        self.max_inline_wait_ms = settings.max_inline_wait_ms if max_inline_wait_ms is None else max_inline_wait_ms
        self._sleep = sleep
        self._http = httpx.AsyncClient(
            base_url=base_url or settings.feedly_base_url,
            timeout=timeout_seconds or settings.feedly_timeout_seconds,
            transport=transport,
        )

    async def __aenter__(self) -> FeedlyClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    async def get(self, path: str, *, consumer: str, endpoint: str, force_refresh: bool = False) -> Any:
        return await self.request("GET", path, consumer=consumer, endpoint=endpoint, force_refresh=force_refresh)

    async def post(self, path: str, body: Any, *, consumer: str, endpoint: str, force_refresh: bool = False) -> Any:
        return await self.request(
            "POST",
            path,
            consumer=consumer,
            endpoint=endpoint,
            json_body=body,
            force_refresh=force_refresh,
        )

    async def _admit(self, consumer: str, endpoint: str) -> Admission:
        admission = self.budget.admit(consumer, endpoint)
        check = admission.check
        if not check.allowed and check.wait_ms is not None and check.wait_ms <= self.max_inline_wait_ms:
            await self._sleep(check.wait_ms / 1000)
            admission = self.budget.admit(consumer, endpoint)
            check = admission.check
        if not check.allowed:
            raise RateLimitError(check.reason or "Rate limit exceeded", check)
        return admission

    async def request(
        self,
        method: str,
        path: str,
        *,
        consumer: str,
        endpoint: str,
        json_body: Any = None,
        force_refresh: bool = False,
    ) -> Any:
        """Serve from cache when possible, otherwise admit, send and account for one call.

        Admission counts the request up front; failures that should not cost
        budget give the slot back.
        """
        body_key = json.dumps(json_body, sort_keys=True) if json_body is not None else None

        if self.cache is not None and not force_refresh:
            cached = self.cache.get(endpoint, path, body_key)
            if cached is not None:
                self._log_request(path, method, consumer, cached=True, status=200, latency_ms=0, rate_info=None)
                return cached

        admission = await self._admit(consumer, endpoint)
        reservation: Reservation = admission.reservation

        if admission.check.cache_only and self.cache is not None:
            stale = self.cache.get_stale(endpoint, path, body_key)
            if stale is not None:
                self.budget.release(reservation, sent=False)
                self._log_request(path, method, consumer, cached=True, status=200, latency_ms=0, rate_info=None)
                return stale
            logger.warning("Cache-only mode but no cached data", path=path, consumer=consumer)

        if not self.token:
            self.budget.release(reservation, sent=False)
            raise FeedlyAuthError("FEEDLY_API_TOKEN is not configured")

        started = time.perf_counter()
        try:
            response = await self._http.request(
                method,
                path,
                json=json_body,
                headers={"Authorization": f"Bearer {self.token}"},
            )
        except httpx.RequestError as exc:
            logger.error("Feedly request failed", path=path, error=str(exc))
            self.budget.release(reservation)
            self.budget.record_error()
            raise

        latency_ms = int((time.perf_counter() - started) * 1000)
        rate_info = parse_rate_headers(response.headers)

        if response.is_error:
            self._log_request(
                path, method, consumer, cached=False, status=response.status_code, latency_ms=latency_ms, rate_info=rate_info
            )
            self.budget.release(reservation)
            if response.status_code == 429:
                self.budget.record_error()
                if rate_info is not None:
                    self.budget.record_rate_info(rate_info)
                detail = rate_info.model_dump_json() if rate_info else "none"
                raise RateLimitError(f"Feedly API returned 429. Rate info: {detail}")
            if response.status_code >= 500:
                self.budget.record_error()
            raise FeedlyApiError(response.status_code, response.text, path)

        self.budget.settle(rate_info)
        data = response.json()
        if self.cache is not None:
            self.cache.set(endpoint, path, data, body_key)
        self._log_request(
            path, method, consumer, cached=False, status=response.status_code, latency_ms=latency_ms, rate_info=rate_info
        )
        return data

    def _log_request(
        self,
        path: str,
        method: str,
        consumer: str,
        *,
        cached: bool,
        status: int,
        latency_ms: int,
        rate_info: RateLimitInfo | None,
    ) -> None:
        entry = {
            "timestamp": self.budget.clock.now().isoformat(),
            "method": method,
            "path": path,
            "consumer": consumer,
            "cached": cached,
            "status": status,
            "latency_ms": latency_ms,
            "rate_limit_after": rate_info.model_dump() if rate_info else None,
        }
        try:
            self.request_log_path.parent.mkdir(parents=True, exist_ok=True)
            with self.request_log_path.open("a", encoding="utf-8") as handle:
                handle.write(json.dumps(entry) + "\n")
        except OSError as exc:
            logger.warning("Request log write failed", path=str(self.request_log_path), error=str(exc))
