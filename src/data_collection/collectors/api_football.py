"""
API-Football Collector
Authentifizierte GET-Requests gegen v3.football.api-sports.io mit Retry/Backoff
"""

import asyncio
import time
from typing import Any, Awaitable, Callable, Optional

import aiohttp

from src.core.config import APIConfig, Settings
from src.domain.errors import ApiRequestError, FetchOutcome
from src.monitoring.metrics import EnrichmentMetrics

from .base import DailyQuotaGuard, HttpCollector, RequestRateLimiter


class ApiFootballClient(HttpCollector):
    """Resilienter Client für API-Football.

    Jeder Versuch wartet zuerst auf den gemeinsamen ``RequestRateLimiter`` und
    bucht dann einen Call beim ``DailyQuotaGuard``. 429-Antworten werden mit
    längerem Backoff (``rate_limit_backoff * attempt``) wiederholt, alle anderen
    Fehler mit kürzerem (``error_backoff * attempt``).
    """

    def __init__(
        self,
        api_config: APIConfig,
        rate_limiter: Optional[RequestRateLimiter] = None,
        *,
        quota_guard: Optional[DailyQuotaGuard] = None,
        timeout_seconds: float = 30.0,
        max_retries: int = 3,
        rate_limit_backoff: float = 5.0,
        error_backoff: float = 1.0,
        session: Optional[aiohttp.ClientSession] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        metrics: Optional[EnrichmentMetrics] = None,
    ):
        super().__init__(
            api_config.name,
            api_config.base_url,
            headers=api_config.headers,
            timeout_seconds=timeout_seconds,
            session=session,
        )
        self.api_config = api_config
        self.rate_limiter = rate_limiter
        self.quota_guard = quota_guard
        self.max_retries = max_retries
        self.rate_limit_backoff = rate_limit_backoff
        self.error_backoff = error_backoff
        self._sleep = sleep
        self.metrics = metrics

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        rate_limiter: Optional[RequestRateLimiter] = None,
        **kwargs: Any,
    ) -> "ApiFootballClient":
        return cls(
            APIConfig.api_football(settings),
            rate_limiter,
            timeout_seconds=settings.api_request_timeout_seconds,
            max_retries=settings.api_max_retries,
            rate_limit_backoff=settings.api_rate_limit_backoff_seconds,
            error_backoff=settings.api_error_backoff_seconds,
            **kwargs,
        )

    async def fetch_with_retry(
        self,
        endpoint: str,
        params: Optional[dict[str, Any]] = None,
        max_retries: Optional[int] = None,
        *,
        charge_quota: bool = True,
    ) -> dict[str, Any]:
        """GET ``endpoint`` und liefert den JSON-Body einer 2xx-Antwort.

        Wirft ``ApiRequestError`` nach ``max_retries`` erfolglosen Versuchen und
        ``QuotaExceededError``, sobald der Quota Guard weitere Calls verweigert.
        """
        attempts = self.max_retries if max_retries is None else max_retries
        if attempts < 1:
            raise ValueError("max_retries must be >= 1")
        if self.session is None:
            await self.initialize()
        url = self.build_url(endpoint)

        for attempt in range(1, attempts + 1):
            if self.rate_limiter is not None:
                await self.rate_limiter.wait_for_next_request()
            if charge_quota and self.quota_guard is not None:
                await self._charge_quota()
            started = time.monotonic()
            try:
                async with self.session.get(url, params=params, headers=self.headers) as response:
                    outcome = FetchOutcome.from_status(response.status)
                    self._record(endpoint, str(response.status), started)
                    if outcome is FetchOutcome.OK:
                        return await response.json(content_type=None)
                    if outcome is FetchOutcome.RATE_LIMITED and attempt < attempts:
                        wait = self.rate_limit_backoff * attempt
                        self.logger.warning(
                            f"429 from {endpoint}, backing off {wait:.1f}s (attempt {attempt}/{attempts})"
                        )
                        await self._sleep(wait)
                        continue
                    raise ApiRequestError(
                        f"API request failed: {response.status} {response.reason}",
                        status=response.status,
                    )
            except (ApiRequestError, aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
                if not isinstance(e, ApiRequestError):
                    self._record(endpoint, "error", started)
                self.logger.error(f"API request failed: {url} - {e} (attempt {attempt}/{attempts})")
                if attempt == attempts:
                    if isinstance(e, ApiRequestError):
                        raise
                    raise ApiRequestError(f"API request failed: {e}") from e
                await self._sleep(self.error_backoff * attempt)

        # range(1, attempts + 1) is never empty for attempts >= 1
        raise ApiRequestError(f"API request failed: no attempts made for {endpoint}")

    async def _charge_quota(self) -> None:
        try:
            await self.quota_guard.acquire()
        finally:
            if self.metrics is not None:
                self.metrics.update_quota(self.quota_guard.get_stats())

    def _record(self, endpoint: str, status: str, started: float) -> None:
        if self.metrics is not None:
            self.metrics.record_api_request(endpoint, status, time.monotonic() - started)

    def _response_items(self, data: dict[str, Any]) -> list[dict[str, Any]]:
        items = data.get("response") or []
        if not isinstance(items, list):
            self.logger.warning(f"Unexpected response payload of type {type(items).__name__}")
            return []
        return [item for item in items if isinstance(item, dict)]

    async def get_player(self, player_id: int, season: Optional[int] = None) -> Optional[dict]:
        """``{player, statistics}`` für einen Spieler oder None, wenn die API nichts liefert."""
        params: dict[str, Any] = {"id": player_id}
        if season is not None:
            params["season"] = season
        items = self._response_items(
            await self.fetch_with_retry(self.api_config.endpoints["players"], params)
        )
        return items[0] if items else None

    async def get_league(self, league_id: int) -> Optional[dict]:
        items = self._response_items(
            await self.fetch_with_retry(self.api_config.endpoints["leagues"], {"id": league_id})
        )
        return items[0] if items else None

    async def get_teams(self, league_id: int, season: int) -> list[dict]:
        return self._response_items(
            await self.fetch_with_retry(
                self.api_config.endpoints["teams"], {"league": league_id, "season": season}
            )
        )

    async def get_transfers(
        self, *, team_id: Optional[int] = None, player_id: Optional[int] = None
    ) -> list[dict]:
        if team_id is None and player_id is None:
            raise ValueError("get_transfers requires team_id or player_id")
        params = {"team": team_id} if team_id is not None else {"player": player_id}
        return self._response_items(
            await self.fetch_with_retry(self.api_config.endpoints["transfers"], params)
        )

    async def get_status(self) -> dict[str, Any]:
        """Account- und Request-Kontingent laut ``/status``."""
        # /status zählt nicht gegen das Tageskontingent
        data = await self.fetch_with_retry(self.api_config.endpoints["status"], charge_quota=False)
        status = data.get("response") or {}
        # /status liefert ein Objekt, bei manchen Plänen eine Liste mit einem Eintrag
        if isinstance(status, list):
            status = status[0] if status else {}
        return status
