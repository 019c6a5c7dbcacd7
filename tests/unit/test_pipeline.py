from datetime import date, datetime, timedelta, timezone
from typing import Optional

import aiohttp
import pytest

from src.data_collection.collectors.api_football import ApiFootballClient
from src.domain.errors import EnrichmentError, PlayerNotFoundError
from src.domain.models import EnrichmentLogEntry, EnrichmentStatus, PlayerRecord
from src.enrichment.cache import CachedPlayerEnrichmentService, PlayerCache
from src.enrichment.pipeline import EnrichmentPipeline
from src.enrichment.player_service import PlayerEnrichmentService
from tests.fakes import InMemoryEnrichmentStore, ScriptedSession, ok, transfer

T0 = datetime(2025, 1, 19, 8, 0, tzinfo=timezone.utc)


class ScriptedEnricher:
    """PlayerEnricher answering from per-player outcome lists (last outcome repeats)."""

    def __init__(self, outcomes: Optional[dict] = None):
        self.outcomes = outcomes or {}
        self.calls: list[int] = []

    async def enrich(self, player_id: int, season: Optional[int] = None) -> PlayerRecord:
        self.calls.append(player_id)
        queue = self.outcomes.get(player_id, [])
        outcome = queue.pop(0) if len(queue) > 1 else (queue[0] if queue else None)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome or PlayerRecord(
            player_id=player_id,
            name=f"Player {player_id}",
            age=25,
            nationality="Germany",
            position="Defender",
            photo_url=f"https://img/{player_id}.png",
        )


def _failed_log(tid: str, pid: int, retry_count: int, minutes: int) -> EnrichmentLogEntry:
    return EnrichmentLogEntry(
        transfer_id=tid,
        player_id=pid,
        status=EnrichmentStatus.FAILED,
        error="API request failed: 500 Internal Server Error",
        retry_count=retry_count,
        timestamp=T0 + timedelta(minutes=minutes),
    )


class TestEnrichTransfers:
    @pytest.fixture
    def make_pipeline(self, recorded_sleeps):
        def _make(enricher, store, **kwargs):
            kwargs.setdefault("sleep", recorded_sleeps)
            return EnrichmentPipeline(enricher, store, today=lambda: date(2025, 1, 19), **kwargs)
        return _make

    @pytest.mark.asyncio
    async def test_enriches_all_open_transfers(self, make_pipeline, store):
        enricher = ScriptedEnricher()
        progress = await make_pipeline(enricher, store).enrich_transfers(2024)

        assert (progress.total, progress.processed, progress.succeeded, progress.failed) == (3, 3, 3, 0)
        assert progress.last_processed_id == "t-003"
        assert progress.duration_seconds is not None
        assert enricher.calls == [101, 102, 103]
        t1 = store.transfers["t-001"]
        assert (t1.position, t1.age, t1.nationality, t1.player_photo_url) == (
            "Defender", 25, "GER", "https://img/101.png"
        )
        assert set(store.players) == {101, 102, 103}
        assert [e.status for e in store.logs] == [EnrichmentStatus.SUCCESS] * 3
        assert all(e.retry_count == 0 for e in store.logs)

    @pytest.mark.asyncio
    async def test_partial_failure_does_not_abort_run(self, make_pipeline, store):
        enricher = ScriptedEnricher({102: [PlayerNotFoundError(102)]})
        progress = await make_pipeline(enricher, store).enrich_transfers(2024)

        assert (progress.processed, progress.succeeded, progress.failed) == (3, 2, 1)
        assert progress.errors[0].transfer_id == "t-002"
        assert progress.errors[0].error == "No player data found for ID: 102"
        assert not store.transfers["t-002"].is_enriched
        assert store.transfers["t-003"].is_enriched

        latest = store.latest()["t-002"]
        assert latest.failed and latest.retry_count == 0
        assert latest.error == "No player data found for ID: 102"

    @pytest.mark.asyncio
    async def test_resume_skips_up_to_and_including_id(self, make_pipeline, store):
        enricher = ScriptedEnricher()
        progress = await make_pipeline(enricher, store).enrich_transfers(2024, resume_from_id="t-001")
        assert enricher.calls == [102, 103]
        assert progress.total == 2
        assert not store.transfers["t-001"].is_enriched

    @pytest.mark.asyncio
    async def test_interrupted_run_resumes_from_last_processed_id(self, make_pipeline, store):
        enricher = ScriptedEnricher({102: [RuntimeError("connection lost")]})
        with pytest.raises(RuntimeError):
            await make_pipeline(enricher, store).enrich_transfers(2024)
        # t-001 done before the crash
        assert store.transfers["t-001"].is_enriched

        resumed = ScriptedEnricher()
        progress = await make_pipeline(resumed, store).enrich_transfers(2024, resume_from_id="t-001")
        assert resumed.calls == [102, 103]
        assert progress.succeeded == 2
        assert all(t.is_enriched for t in store.transfers.values())

    @pytest.mark.asyncio
    async def test_transfer_without_player_id_is_skipped(self, make_pipeline):
        store = InMemoryEnrichmentStore([transfer("t-001", None), transfer("t-002", 102)])
        enricher = ScriptedEnricher()
        progress = await make_pipeline(enricher, store).enrich_transfers(2024)
        assert enricher.calls == [102]
        assert (progress.processed, progress.skipped, progress.succeeded) == (2, 1, 1)
        assert [e.transfer_id for e in store.logs] == ["t-002"]

    @pytest.mark.asyncio
    async def test_other_seasons_are_ignored(self, make_pipeline):
        store = InMemoryEnrichmentStore([transfer("t-001", 101, season=2023), transfer("t-002", 102)])
        enricher = ScriptedEnricher()
        await make_pipeline(enricher, store).enrich_transfers(2024)
        assert enricher.calls == [102]

    @pytest.mark.asyncio
    async def test_batch_and_transfer_delays(self, make_pipeline, store, recorded_sleeps):
        pipeline = make_pipeline(ScriptedEnricher(), store, batch_size=2, transfer_delay=0.1, batch_delay=1.0)
        await pipeline.enrich_transfers(2024)
        assert recorded_sleeps.calls == [0.1, 1.0]

    @pytest.mark.asyncio
    async def test_failure_after_failed_log_increments_retry_count(self, make_pipeline, store):
        store.logs.append(_failed_log("t-002", 102, 1, 0))
        enricher = ScriptedEnricher({102: [EnrichmentError("still broken", 102)]})
        await make_pipeline(enricher, store).enrich_transfers(2024)
        assert store.latest()["t-002"].retry_count == 2

    @pytest.mark.asyncio
    async def test_retry_count_counts_failures_before_a_success(self, make_pipeline, store):
        store.logs += [
            _failed_log("t-002", 102, 0, 0),
            EnrichmentLogEntry(
                transfer_id="t-002", player_id=102, status=EnrichmentStatus.SUCCESS,
                retry_count=1, timestamp=T0 + timedelta(minutes=5),
            ),
        ]
        enricher = ScriptedEnricher({102: [EnrichmentError("broken again", 102)]})
        await make_pipeline(enricher, store).enrich_transfers(2024)
        assert store.latest()["t-002"].retry_count == 1

        await make_pipeline(enricher, store).enrich_transfers(2024)
        assert store.latest()["t-002"].retry_count == 2
        assert len([e for e in store.logs if e.transfer_id == "t-002" and e.failed]) == 3

    @pytest.mark.asyncio
    async def test_warm_cache_makes_no_api_calls(self, make_pipeline, store, dt_clock):
        enricher = ScriptedEnricher()
        cached = CachedPlayerEnrichmentService(enricher, store, PlayerCache(clock=dt_clock))
        await make_pipeline(cached, store).enrich_transfers(2024)
        assert len(enricher.calls) == 3

        # wipe the enrichment so the same transfers are open again
        for tid, t in list(store.transfers.items()):
            store.transfers[tid] = t.model_copy(update={"position": None, "age": None, "nationality": None})

        progress = await make_pipeline(cached, store).enrich_transfers(2024)
        assert progress.succeeded == 3
        assert len(enricher.calls) == 3

    @pytest.mark.asyncio
    async def test_network_errors_recovered_by_client_retries(self, api_config, recorded_sleeps, store):
        session = ScriptedSession({
            101: [ok(101)],
            102: [aiohttp.ClientConnectionError("reset"), aiohttp.ClientConnectionError("reset"), ok(102)],
            103: [ok(103)],
        })
        client = ApiFootballClient(api_config, session=session, sleep=recorded_sleeps)
        pipeline = EnrichmentPipeline(
            PlayerEnrichmentService(client), store, sleep=recorded_sleeps,
            today=lambda: date(2025, 1, 19),
        )
        progress = await pipeline.enrich_transfers(2024)

        assert (progress.succeeded, progress.failed) == (3, 0)
        assert len(session.calls) == 5
        assert store.transfers["t-002"].position == "Attacker"
        assert store.transfers["t-002"].nationality == "BRA"


class TestRetryFailedTransfers:
    @pytest.fixture
    def pipeline_for(self, recorded_sleeps):
        def _make(enricher, store, **kwargs):
            return EnrichmentPipeline(
                enricher, store, sleep=recorded_sleeps, today=lambda: date(2025, 1, 19), **kwargs
            )
        return _make

    @pytest.mark.asyncio
    async def test_only_retries_below_max_retries(self, pipeline_for, store, recorded_sleeps):
        store.logs += [
            _failed_log("t-001", 101, 3, 0),
            _failed_log("t-002", 102, 1, 1),
        ]
        enricher = ScriptedEnricher()
        progress = await pipeline_for(enricher, store).retry_failed_transfers(2024, max_retries=3)

        assert enricher.calls == [102]
        assert (progress.total, progress.succeeded) == (1, 1)
        latest = store.latest()
        assert latest["t-002"].status == EnrichmentStatus.SUCCESS
        assert latest["t-002"].retry_count == 2
        assert latest["t-001"].retry_count == 3
        assert recorded_sleeps.calls == [2.0]

    @pytest.mark.asyncio
    async def test_transfers_with_latest_success_are_not_retried(self, pipeline_for, store):
        store.logs += [
            _failed_log("t-001", 101, 0, 0),
            EnrichmentLogEntry(
                transfer_id="t-001", player_id=101, status=EnrichmentStatus.SUCCESS,
                retry_count=1, timestamp=T0 + timedelta(minutes=5),
            ),
        ]
        enricher = ScriptedEnricher()
        progress = await pipeline_for(enricher, store).retry_failed_transfers(2024)
        assert enricher.calls == []
        assert progress.total == 0

    @pytest.mark.asyncio
    async def test_oldest_failure_retried_first(self, pipeline_for, store):
        store.logs += [
            _failed_log("t-003", 103, 0, 0),
            _failed_log("t-001", 101, 0, 5),
        ]
        enricher = ScriptedEnricher()
        await pipeline_for(enricher, store).retry_failed_transfers(2024)
        assert enricher.calls == [103, 101]

    @pytest.mark.asyncio
    async def test_repeated_failure_stops_at_max_retries(self, pipeline_for, store, recorded_sleeps):
        store.logs.append(_failed_log("t-002", 102, 0, 0))
        enricher = ScriptedEnricher({102: [EnrichmentError("API request failed: 500", 102)]})
        pipeline = pipeline_for(enricher, store, max_retries=2)

        first = await pipeline.retry_failed_transfers(2024)
        second = await pipeline.retry_failed_transfers(2024)
        third = await pipeline.retry_failed_transfers(2024)

        assert (first.failed, second.failed, third.total) == (1, 1, 0)
        assert first.errors[0].retry_count == 1
        assert store.latest()["t-002"].retry_count == 2
        assert len(enricher.calls) == 2
        # exponential backoff on the stored retry_count
        assert recorded_sleeps.calls == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_already_enriched_transfer_resolves_failed_entry(self, pipeline_for):
        store = InMemoryEnrichmentStore([
            transfer("t-001", 101, position="Defender", age=30, nationality="ESP"),
        ])
        store.logs.append(_failed_log("t-001", 101, 0, 0))
        enricher = ScriptedEnricher()
        progress = await pipeline_for(enricher, store).retry_failed_transfers(2024)
        assert enricher.calls == []
        assert progress.succeeded == 1
        latest = store.latest()["t-001"]
        assert latest.status == EnrichmentStatus.SUCCESS
        assert latest.retry_count == 1

    @pytest.mark.asyncio
    async def test_missing_transfer_is_skipped(self, pipeline_for, store):
        store.get_failed_enrichments = _returning([_failed_log("t-404", 404, 0, 0)])
        enricher = ScriptedEnricher()
        progress = await pipeline_for(enricher, store).retry_failed_transfers(2024)
        assert (progress.processed, progress.skipped) == (1, 1)
        assert enricher.calls == []


def _returning(value):
    async def _fn(**kwargs):
        return value
    return _fn


class TestQueries:
    @pytest.mark.asyncio
    async def test_stats_and_failed_list(self, store):
        store.logs += [_failed_log("t-001", 101, 0, 0), _failed_log("t-002", 102, 2, 3)]
        await store.update_transfer_enrichment(
            "t-003", {"position": "Attacker", "age": 20, "nationality": "FRA"}
        )
        pipeline = EnrichmentPipeline(ScriptedEnricher(), store)

        stats = await pipeline.get_enrichment_stats(2024)
        assert (stats.total_transfers, stats.enriched_transfers, stats.failed_enrichments) == (3, 1, 2)
        assert stats.enrichment_rate_percent == pytest.approx(33.3)

        failed = await pipeline.get_failed_enrichments(limit=1)
        assert [f.transfer_id for f in failed] == ["t-002"]
        failed = await pipeline.get_failed_enrichments(min_retry_count=1)
        assert [f.retry_count for f in failed] == [2]
