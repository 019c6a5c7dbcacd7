"""
Base classes for API collectors in the transfer enrichment pipeline.

Two throttling gates are applied to outbound calls against API-Football:

- ``RequestRateLimiter`` paces every HTTP request (requests/second) and
  enforces a hard hourly ceiling.
- ``DailyQuotaGuard`` tracks the remaining daily quota, one unit per HTTP call,
  and refuses further calls once the emergency threshold is reached.
"""

from __future__ import annotations

import asyncio
import logging
import time
from abc import ABC
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Optional

import aiohttp

from src.domain.errors import QuotaExceededError
from src.domain.models import QuotaStats, RateLimiterStats


HOUR_SECONDS = 3600.0

Clock = Callable[[], float]
Sleeper = Callable[[float], Awaitable[Any]]


class RequestRateLimiter:
    """Requests/second pacing plus hourly ceiling.

    One instance is shared by every caller in a process; the internal lock
    serialises concurrent pipeline runs through the same counters.
    """

    def __init__(
        self,
        requests_per_second: float = 5.0,
        max_requests_per_hour: int = 1000,
        *,
        clock: Clock = time.monotonic,
        sleep: Sleeper = asyncio.sleep,
    ):
        if requests_per_second <= 0:
            raise ValueError("requests_per_second must be positive")
        self.requests_per_second = requests_per_second
        self.max_requests_per_hour = max_requests_per_hour
        self.delay_seconds = 1.0 / requests_per_second
        self._clock = clock
        self._sleep = sleep
        self.request_count = 0
        self.hourly_window_start = clock()
        self.last_request_time: Optional[float] = None
        self._lock = asyncio.Lock()
        self.logger = logging.getLogger("collector.rate_limiter")

    async def wait_for_next_request(self) -> None:
        """Kehrt erst zurück, wenn der nächste Request erlaubt ist."""
        async with self._lock:
            now = self._clock()
            if now - self.hourly_window_start > HOUR_SECONDS:
                self._reset_window(now)

            if self.request_count >= self.max_requests_per_hour:
                wait = HOUR_SECONDS - (now - self.hourly_window_start)
                if wait > 0:
                    self.logger.warning(
                        f"Hourly limit of {self.max_requests_per_hour} reached, waiting {wait:.1f}s"
                    )
                    await self._sleep(wait)
                now = self._clock()
                self._reset_window(now)

            if self.last_request_time is not None:
                elapsed = now - self.last_request_time
                if elapsed < self.delay_seconds:
                    await self._sleep(self.delay_seconds - elapsed)

            self.request_count += 1
            self.last_request_time = self._clock()

    def _reset_window(self, now: float) -> None:
        self.request_count = 0
        self.hourly_window_start = now

    def get_stats(self) -> RateLimiterStats:
        elapsed = min(self._clock() - self.hourly_window_start, HOUR_SECONDS)
        return RateLimiterStats(
            requests_this_hour=self.request_count,
            max_requests_per_hour=self.max_requests_per_hour,
            hourly_utilization=round(self.request_count / self.max_requests_per_hour * 100, 1),
            hour_progress=round(max(elapsed, 0.0) / HOUR_SECONDS * 100, 1),
            delay_between_requests=self.delay_seconds,
        )


class DailyQuotaGuard:
    """Daily call ceiling with an emergency mode.

    Once the remaining quota drops to ``emergency_threshold`` of the ceiling,
    guarded calls fail fast with ``QuotaExceededError`` instead of spending the
    rest of the budget. The counter resets at local midnight.
    """

    def __init__(
        self,
        daily_limit: int = 3000,
        emergency_threshold: float = 0.1,
        *,
        now: Callable[[], datetime] = datetime.now,
    ):
        self.daily_limit = daily_limit
        self.emergency_threshold = emergency_threshold
        self._now = now
        self.calls_remaining = daily_limit
        self.reset_time = self._next_midnight()
        self.emergency_mode = False
        self._lock = asyncio.Lock()
        self.logger = logging.getLogger("collector.quota_guard")

    def _next_midnight(self) -> datetime:
        tomorrow = self._now() + timedelta(days=1)
        return tomorrow.replace(hour=0, minute=0, second=0, microsecond=0)

    def _maybe_reset(self) -> None:
        if self._now() >= self.reset_time:
            self.calls_remaining = self.daily_limit
            self.reset_time = self._next_midnight()
            if self.emergency_mode:
                self.logger.info("Daily quota reset, leaving emergency mode")
            self.emergency_mode = False

    async def acquire(self, *, player_id: Optional[int] = None) -> None:
        """Bucht einen HTTP-Call vom Tageskontingent oder wirft ``QuotaExceededError``."""
        async with self._lock:
            self._maybe_reset()
            if self.calls_remaining <= self.daily_limit * self.emergency_threshold:
                if not self.emergency_mode:
                    self.logger.warning(
                        f"Entering emergency mode: {self.calls_remaining} of {self.daily_limit} calls left"
                    )
                self.emergency_mode = True
            if self.emergency_mode:
                raise QuotaExceededError(player_id)
            self.calls_remaining -= 1

    def get_stats(self) -> QuotaStats:
        self._maybe_reset()
        return QuotaStats(
            calls_remaining=self.calls_remaining,
            daily_limit=self.daily_limit,
            reset_time=self.reset_time,
            emergency_mode=self.emergency_mode,
        )


class HttpCollector(ABC):
    """Abstract base class for aiohttp based API collectors."""

    def __init__(
        self,
        name: str,
        base_url: str,
        headers: Optional[dict[str, str]] = None,
        timeout_seconds: float = 30.0,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        self.name = name
        self.base_url = base_url.rstrip("/")
        self.headers = headers or {}
        self.timeout_seconds = timeout_seconds
        self.session = session
        self._owns_session = session is None
        self.logger = logging.getLogger(f"collector.{name}")

    async def initialize(self):
        """Erstellt die aiohttp Session (idempotent)."""
        if self.session is None:
            self.session = aiohttp.ClientSession(
                headers=self.headers,
                connector=aiohttp.TCPConnector(limit=10),
                timeout=aiohttp.ClientTimeout(total=self.timeout_seconds),
            )
            self._owns_session = True

    async def cleanup(self):
        """Räumt Ressourcen auf"""
        if self.session is not None and self._owns_session:
            await self.session.close()
            self.session = None

    async def __aenter__(self):
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.cleanup()

    def build_url(self, endpoint: str) -> str:
        return f"{self.base_url}/{endpoint.lstrip('/')}"
