"""
Enrichment Runner

Programmatische Schnittstelle für Route-Layer und CLI: baut Client, Rate
Limiter, Quota Guard, Cache und Pipeline aus den Settings zusammen und liefert
strukturierte Ergebnisse (``success`` + Fortschritt bzw. Fehler + Dauer).
"""

import asyncio
import logging
import time
from datetime import timedelta
from typing import Any, Awaitable, Callable, Optional

from src.core.config import Settings
from src.data_collection.collectors.api_football import ApiFootballClient
from src.data_collection.collectors.base import DailyQuotaGuard, RequestRateLimiter
from src.database.manager import DatabaseManager
from src.database.services.enrichment import EnrichmentRepository
from src.domain.contracts import EnrichmentStore
from src.domain.models import utcnow
from src.enrichment.cache import CachedPlayerEnrichmentService, PlayerCache
from src.enrichment.pipeline import EnrichmentPipeline
from src.enrichment.player_service import PlayerEnrichmentService
from src.monitoring.metrics import EnrichmentMetrics


class EnrichmentRunner:
    """Ein Runner pro Prozess; Rate Limiter und Quota Guard werden von allen Läufen geteilt."""

    def __init__(
        self,
        settings: Settings,
        db_manager: Optional[DatabaseManager] = None,
        *,
        repository: Optional[EnrichmentStore] = None,
        client: Optional[ApiFootballClient] = None,
        rate_limiter: Optional[RequestRateLimiter] = None,
        quota_guard: Optional[DailyQuotaGuard] = None,
        cache: Optional[PlayerCache] = None,
        metrics: Optional[EnrichmentMetrics] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        settings.require_enrichment_config()
        self.settings = settings
        self.db_manager = db_manager or DatabaseManager(settings)
        self.repository = repository or EnrichmentRepository(self.db_manager)
        self.metrics = metrics
        self._sleep = sleep
        self.logger = logging.getLogger("enrichment.runner")

        self.rate_limiter = rate_limiter or RequestRateLimiter(
            settings.api_requests_per_second, settings.api_max_hourly_requests
        )
        self.quota_guard = quota_guard or DailyQuotaGuard(
            settings.api_daily_call_limit, settings.api_emergency_threshold
        )
        self.client = client or ApiFootballClient.from_settings(
            settings, self.rate_limiter, quota_guard=self.quota_guard, metrics=metrics
        )
        if self.client.quota_guard is None:
            self.client.quota_guard = self.quota_guard
        self.player_service = PlayerEnrichmentService(self.client)
        self.cached_service = CachedPlayerEnrichmentService(
            self.player_service,
            self.repository,
            cache
            or PlayerCache(
                ttl=timedelta(days=settings.cache_ttl_days),
                max_entries=settings.cache_max_entries,
            ),
            load_limit=settings.cache_load_limit,
            metrics=metrics,
        )

    def build_pipeline(self, use_cache: bool = True) -> EnrichmentPipeline:
        s = self.settings
        return EnrichmentPipeline(
            self.cached_service if use_cache else self.player_service,
            self.repository,
            batch_size=s.enrichment_batch_size,
            transfer_delay=s.enrichment_transfer_delay_seconds,
            batch_delay=s.enrichment_batch_delay_seconds,
            retry_base_delay=s.enrichment_retry_base_delay_seconds,
            max_retries=s.enrichment_max_retries,
            fetch_limit=s.enrichment_fetch_limit,
            sleep=self._sleep,
            metrics=self.metrics,
        )

    async def enrich(
        self, season: int, resume_from_id: Optional[str] = None, use_cache: bool = True
    ) -> dict[str, Any]:
        started = time.monotonic()
        pipeline = self.build_pipeline(use_cache)
        cache_baseline = self.cached_service.cache.counters()
        try:
            if use_cache:
                await self.cached_service.initialize_cache()
            progress = await pipeline.enrich_transfers(season, resume_from_id)
            if use_cache:
                await self._persist_cache()
        except Exception as e:
            return self._failure("enrich", e, started)

        self._record_run("enrich", "success", started)
        result: dict[str, Any] = {
            "success": True,
            "progress": progress.model_dump(mode="json"),
            "timestamp": utcnow().isoformat(),
        }
        if use_cache:
            stats = self.cached_service.get_cache_stats(since=cache_baseline)
            result["cache_stats"] = stats.model_dump()
        return result

    async def retry(
        self, season: int, max_retries: Optional[int] = None, use_cache: bool = True
    ) -> dict[str, Any]:
        started = time.monotonic()
        pipeline = self.build_pipeline(use_cache)
        try:
            if use_cache:
                await self.cached_service.initialize_cache()
            progress = await pipeline.retry_failed_transfers(season, max_retries)
            if use_cache:
                await self._persist_cache()
        except Exception as e:
            return self._failure("retry", e, started)

        self._record_run("retry", "success", started)
        return {
            "success": True,
            "progress": progress.model_dump(mode="json"),
            "timestamp": utcnow().isoformat(),
        }

    async def enrich_and_retry(
        self,
        season: int,
        resume_from_id: Optional[str] = None,
        max_retries: Optional[int] = None,
        use_cache: bool = True,
    ) -> dict[str, Any]:
        """Enrichment-Lauf, danach ein Retry-Lauf falls Fehler auftraten."""
        enrichment = await self.enrich(season, resume_from_id, use_cache)
        retry = None
        if enrichment["success"] and enrichment["progress"]["failed"] > 0:
            retry = await self.retry(season, max_retries, use_cache)
        return {
            "success": enrichment["success"] and (retry is None or retry["success"]),
            "enrichment": enrichment,
            "retry": retry,
        }

    async def stats(self, include_failed: bool = False, season: Optional[int] = None) -> dict[str, Any]:
        started = time.monotonic()
        try:
            stats = await self.repository.get_enrichment_stats(season)
            failed = None
            if include_failed:
                failed = await self.build_pipeline().get_failed_enrichments(
                    limit=self.settings.failed_list_limit
                )
        except Exception as e:
            return self._failure("stats", e, started)

        payload = stats.model_dump()
        payload["enrichment_rate"] = stats.enrichment_rate_percent
        result: dict[str, Any] = {
            "success": True,
            "stats": payload,
            "timestamp": utcnow().isoformat(),
        }
        if failed is not None:
            result["failed_enrichments"] = [f.model_dump(mode="json") for f in failed]
        return result

    async def quota_status(self, probe_api: bool = True) -> dict[str, Any]:
        """Lokaler Quota-Stand, optional ergänzt um den ``/status`` der API."""
        result: dict[str, Any] = {
            "quota": self.quota_guard.get_stats().model_dump(mode="json"),
            "rate_limiter": self.rate_limiter.get_stats().model_dump(),
        }
        if probe_api:
            result["api_status"] = await self.client.get_status()
        return result

    async def _persist_cache(self) -> None:
        try:
            await self.cached_service.persist_cache()
        except Exception:
            # Enrichment-Ergebnisse sind bereits gespeichert; nur der Cache-Snapshot fehlt
            self.logger.exception("Failed to persist player cache")

    def _failure(self, kind: str, error: Exception, started: float) -> dict[str, Any]:
        duration = round(time.monotonic() - started, 3)
        self.logger.exception(f"{kind} run failed after {duration}s: {error}")
        self._record_run(kind, "error", started)
        return {
            "success": False,
            "error": str(error),
            "error_type": type(error).__name__,
            "duration_seconds": duration,
            "timestamp": utcnow().isoformat(),
        }

    def _record_run(self, kind: str, status: str, started: float) -> None:
        if self.metrics is not None:
            self.metrics.record_run(kind, status, time.monotonic() - started)

    async def close(self) -> None:
        await self.client.cleanup()
