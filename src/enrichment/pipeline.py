"""
Enrichment Pipeline

Orchestriert das Anreichern der Transfers einer Saison: Transfers werden
einzeln (in Batches mit Pausen) über den (ggf. gecachten) Enrichment Service
angereichert, Ergebnisse persistiert und jeder Versuch im Enrichment-Log
festgehalten. Der Fortschritt ergibt sich allein aus dem Log und der
Reihenfolge der Transfer-IDs, deshalb ist ein Abbruch jederzeit sicher.
"""

import asyncio
import logging
import uuid
from datetime import date, datetime
from typing import Any, Awaitable, Callable, Optional

from src.common.logging_utils import RunLoggerAdapter
from src.domain.contracts import EnrichmentStore, PlayerEnricher
from src.domain.errors import EnrichmentError
from src.domain.models import (
    EnrichmentLogEntry,
    EnrichmentStats,
    EnrichmentStatus,
    FailedEnrichment,
    PipelineProgress,
    TransferRecord,
    utcnow,
)
from src.monitoring.metrics import EnrichmentMetrics


class EnrichmentPipeline:
    def __init__(
        self,
        player_service: PlayerEnricher,
        store: EnrichmentStore,
        *,
        batch_size: int = 50,
        transfer_delay: float = 0.1,
        batch_delay: float = 1.0,
        retry_base_delay: float = 1.0,
        max_retries: int = 3,
        fetch_limit: Optional[int] = 1000,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], datetime] = utcnow,
        today: Callable[[], date] = date.today,
        metrics: Optional[EnrichmentMetrics] = None,
    ):
        if batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        self.player_service = player_service
        self.store = store
        self.batch_size = batch_size
        self.transfer_delay = transfer_delay
        self.batch_delay = batch_delay
        self.retry_base_delay = retry_base_delay
        self.max_retries = max_retries
        self.fetch_limit = fetch_limit
        self._sleep = sleep
        self._clock = clock
        self._today = today
        self.metrics = metrics
        self.logger = logging.getLogger("enrichment.pipeline")

    def _run_logger(self, season: int) -> RunLoggerAdapter:
        return RunLoggerAdapter(self.logger, uuid.uuid4().hex[:12], season)

    async def enrich_transfers(
        self, season: int, resume_from_id: Optional[str] = None
    ) -> PipelineProgress:
        """Reichert alle offenen Transfers der Saison an.

        Mit ``resume_from_id`` werden alle Transfers bis einschließlich dieser
        ID übersprungen. Einzelne Fehlschläge brechen den Lauf nicht ab.
        """
        log = self._run_logger(season)
        progress = PipelineProgress(start_time=self._clock())

        transfers = await self.store.get_transfers_for_enrichment(
            season, after_id=resume_from_id, limit=self.fetch_limit
        )
        transfers = sorted(
            (t for t in transfers if resume_from_id is None or t.id > resume_from_id),
            key=lambda t: t.id,
        )
        latest = await self.store.get_latest_log_entries(season)
        progress.total = len(transfers)
        log.info(
            f"Starting enrichment of {len(transfers)} transfers"
            + (f" after {resume_from_id}" if resume_from_id else "")
        )

        for batch_no, start in enumerate(range(0, len(transfers), self.batch_size)):
            if batch_no and self.batch_delay > 0:
                await self._sleep(self.batch_delay)
            batch = transfers[start : start + self.batch_size]
            for position, transfer in enumerate(batch):
                if position and self.transfer_delay > 0:
                    await self._sleep(self.transfer_delay)
                await self._process_transfer(transfer, season, progress, latest.get(transfer.id), log)
            log.info(
                f"Batch {batch_no + 1} done: {progress.processed}/{progress.total} processed, "
                f"{progress.succeeded} succeeded, {progress.failed} failed"
            )

        progress.finish(self._clock())
        log.info(
            f"Enrichment finished in {progress.duration_seconds}s: {progress.succeeded} succeeded, "
            f"{progress.failed} failed, {progress.skipped} skipped"
        )
        return progress

    async def retry_failed_transfers(
        self, season: int, max_retries: Optional[int] = None
    ) -> PipelineProgress:
        """Wiederholt nur Transfers, deren neuester Log-Eintrag fehlgeschlagen ist
        und deren retry_count unter ``max_retries`` liegt."""
        max_retries = self.max_retries if max_retries is None else max_retries
        log = self._run_logger(season)
        progress = PipelineProgress(start_time=self._clock())

        failed = await self.store.get_failed_enrichments(
            season=season, max_retry_count=max_retries
        )
        failed = sorted(
            (e for e in failed if e.failed and e.retry_count < max_retries),
            key=lambda e: (e.timestamp, e.transfer_id),
        )
        progress.total = len(failed)
        log.info(f"Retrying {len(failed)} failed transfers (max_retries={max_retries})")

        for entry in failed:
            transfer = await self.store.get_transfer(entry.transfer_id)
            if transfer is None:
                log.warning(f"Transfer {entry.transfer_id} no longer exists, skipping retry")
                progress.processed += 1
                progress.skipped += 1
                continue
            if self.retry_base_delay > 0:
                await self._sleep(self.retry_base_delay * 2 ** entry.retry_count)
            await self._process_transfer(transfer, season, progress, entry, log)

        progress.finish(self._clock())
        log.info(
            f"Retry finished in {progress.duration_seconds}s: {progress.succeeded} succeeded, "
            f"{progress.failed} failed"
        )
        return progress

    async def _process_transfer(
        self,
        transfer: TransferRecord,
        season: int,
        progress: PipelineProgress,
        previous: Optional[EnrichmentLogEntry],
        log: logging.LoggerAdapter,
    ) -> None:
        # Anzahl aller bisherigen Fehlschläge; Erfolgs-Einträge führen den Zähler weiter
        prior_failures = 0
        if previous is not None:
            prior_failures = previous.retry_count + (1 if previous.failed else 0)

        if transfer.player_id is None:
            log.warning(f"Transfer {transfer.id} has no player id, skipping")
            progress.skipped += 1
        elif transfer.is_enriched:
            # bereits angereichert; ein offener Fehler-Eintrag wird aufgelöst
            if previous is not None and previous.failed:
                await self._write_log(transfer, EnrichmentStatus.SUCCESS, prior_failures)
            progress.succeeded += 1
        else:
            try:
                record = await self.player_service.enrich(transfer.player_id, season)
            except EnrichmentError as e:
                entry = await self._write_log(
                    transfer, EnrichmentStatus.FAILED, prior_failures, error=str(e)
                )
                progress.failed += 1
                progress.errors.append(FailedEnrichment.from_log_entry(entry))
                log.warning(
                    f"Enrichment failed for transfer {transfer.id} "
                    f"(player {transfer.player_id}, retry_count={prior_failures}): {e}"
                )
                self._record_attempt("failed")
            else:
                await self.store.upsert_player(record)
                await self.store.update_transfer_enrichment(
                    transfer.id, record.transfer_fields(self._today())
                )
                await self._write_log(transfer, EnrichmentStatus.SUCCESS, prior_failures)
                progress.succeeded += 1
                self._record_attempt("success")

        progress.processed += 1
        progress.last_processed_id = transfer.id

    async def _write_log(
        self,
        transfer: TransferRecord,
        status: EnrichmentStatus,
        retry_count: int,
        error: Optional[str] = None,
    ) -> EnrichmentLogEntry:
        entry = EnrichmentLogEntry(
            transfer_id=transfer.id,
            player_id=transfer.player_id,
            status=status,
            error=error,
            retry_count=retry_count,
            timestamp=self._clock(),
        )
        await self.store.insert_enrichment_log(entry)
        return entry

    def _record_attempt(self, outcome: str) -> None:
        if self.metrics is not None:
            self.metrics.record_attempt(outcome)

    async def get_enrichment_stats(self, season: Optional[int] = None) -> EnrichmentStats:
        return await self.store.get_enrichment_stats(season)

    async def get_failed_enrichments(
        self, limit: int = 50, min_retry_count: int = 0
    ) -> list[FailedEnrichment]:
        entries = await self.store.get_failed_enrichments(
            min_retry_count=min_retry_count, limit=limit
        )
        return [FailedEnrichment.from_log_entry(e) for e in entries]
