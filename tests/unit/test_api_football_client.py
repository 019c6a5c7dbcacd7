import asyncio

import aiohttp
import pytest

from src.data_collection.collectors.api_football import ApiFootballClient
from src.data_collection.collectors.base import RequestRateLimiter
from src.domain.errors import ApiRequestError, FetchOutcome
from src.monitoring.metrics import EnrichmentMetrics
from tests.fakes import FakeResponse, ScriptedSession, ok


class TestApiFootballClient:
    @pytest.fixture
    def make_client(self, api_config, recorded_sleeps):
        def _make(script, **kwargs):
            session = ScriptedSession(script)
            client = ApiFootballClient(
                api_config, session=session, sleep=recorded_sleeps, **kwargs
            )
            return client, session
        return _make

    @pytest.mark.asyncio
    async def test_success_returns_json_and_sends_api_key(self, make_client):
        client, session = make_client([ok(276)])
        data = await client.fetch_with_retry("/players", {"id": 276, "season": 2024})
        assert data["response"][0]["player"]["id"] == 276
        call = session.calls[0]
        assert call["url"] == "https://v3.football.api-sports.io/players"
        assert call["params"] == {"id": 276, "season": 2024}
        assert call["headers"]["x-apisports-key"] == "test-key"

    @pytest.mark.asyncio
    async def test_429_backs_off_linearly_then_fails(self, make_client, recorded_sleeps):
        client, session = make_client([FakeResponse(429)] * 3)
        with pytest.raises(ApiRequestError) as exc:
            await client.fetch_with_retry("/players", {"id": 1})
        assert recorded_sleeps.calls == [5.0, 10.0]
        assert len(session.calls) == 3
        assert exc.value.status == 429
        assert "429" in str(exc.value)

    @pytest.mark.asyncio
    async def test_429_then_success(self, make_client, recorded_sleeps):
        client, _ = make_client([FakeResponse(429), ok(9)])
        data = await client.fetch_with_retry("/players", {"id": 9})
        assert data["response"][0]["player"]["id"] == 9
        assert recorded_sleeps.calls == [5.0]

    @pytest.mark.asyncio
    async def test_server_error_uses_short_backoff(self, make_client, recorded_sleeps):
        client, session = make_client([FakeResponse(500)] * 3)
        with pytest.raises(ApiRequestError) as exc:
            await client.fetch_with_retry("/players", {"id": 1})
        assert recorded_sleeps.calls == [1.0, 2.0]
        assert len(session.calls) == 3
        assert str(exc.value) == "API request failed: 500 Internal Server Error"

    @pytest.mark.asyncio
    async def test_network_errors_are_retried(self, make_client, recorded_sleeps):
        client, session = make_client(
            [aiohttp.ClientConnectionError("reset"), asyncio.TimeoutError(), ok(5)]
        )
        data = await client.fetch_with_retry("/players", {"id": 5})
        assert data["response"][0]["player"]["id"] == 5
        assert recorded_sleeps.calls == [1.0, 2.0]
        assert len(session.calls) == 3

    @pytest.mark.asyncio
    async def test_network_error_on_last_attempt_is_wrapped(self, make_client):
        client, _ = make_client([aiohttp.ClientConnectionError("down")] * 2)
        with pytest.raises(ApiRequestError) as exc:
            await client.fetch_with_retry("/players", {"id": 5}, max_retries=2)
        assert isinstance(exc.value.__cause__, aiohttp.ClientConnectionError)
        assert exc.value.status is None

    @pytest.mark.asyncio
    async def test_explicit_single_attempt_is_honoured(self, make_client, recorded_sleeps):
        client, session = make_client([FakeResponse(500), ok(1)])
        with pytest.raises(ApiRequestError):
            await client.fetch_with_retry("/players", {"id": 1}, max_retries=1)
        assert len(session.calls) == 1
        assert recorded_sleeps.calls == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("max_retries", [0, -1])
    async def test_max_retries_below_one_is_rejected(self, make_client, max_retries):
        client, session = make_client([ok(1)])
        with pytest.raises(ValueError, match="max_retries"):
            await client.fetch_with_retry("/players", {"id": 1}, max_retries=max_retries)
        assert session.calls == []

    @pytest.mark.asyncio
    async def test_each_attempt_waits_for_rate_limiter(self, api_config, fake_clock):
        limiter = RequestRateLimiter(5, 1000, clock=fake_clock, sleep=fake_clock.sleep)
        session = ScriptedSession([FakeResponse(500), ok(3)])
        client = ApiFootballClient(api_config, limiter, session=session, sleep=fake_clock.sleep)
        await client.fetch_with_retry("/players", {"id": 3})
        assert limiter.request_count == 2

    @pytest.mark.asyncio
    async def test_get_player_returns_none_on_empty_response(self, make_client):
        client, _ = make_client([FakeResponse(200, {"response": []})])
        assert await client.get_player(42, 2024) is None

    @pytest.mark.asyncio
    async def test_get_player_ignores_non_list_response(self, make_client):
        client, _ = make_client([FakeResponse(200, {"response": {"player": {"id": 42}}})])
        assert await client.get_player(42, 2024) is None

    @pytest.mark.asyncio
    async def test_get_teams_skips_non_object_items(self, make_client):
        client, _ = make_client([FakeResponse(200, {"response": [{"team": {"id": 1}}, "junk"]})])
        assert await client.get_teams(78, 2024) == [{"team": {"id": 1}}]

    @pytest.mark.asyncio
    async def test_get_player_returns_first_item(self, make_client):
        client, session = make_client([ok(42)])
        payload = await client.get_player(42, 2024)
        assert payload["player"]["id"] == 42
        assert session.calls[0]["params"] == {"id": 42, "season": 2024}

    @pytest.mark.asyncio
    async def test_get_status_unwraps_list(self, make_client):
        client, _ = make_client(
            [FakeResponse(200, {"response": [{"requests": {"current": 12, "limit_day": 100}}]})]
        )
        status = await client.get_status()
        assert status["requests"]["limit_day"] == 100

    @pytest.mark.asyncio
    async def test_get_transfers_requires_filter(self, make_client):
        client, _ = make_client([])
        with pytest.raises(ValueError):
            await client.get_transfers()

    @pytest.mark.asyncio
    async def test_metrics_record_each_attempt(self, api_config, recorded_sleeps):
        metrics = EnrichmentMetrics()
        session = ScriptedSession([FakeResponse(500), ok(1)])
        client = ApiFootballClient(api_config, session=session, sleep=recorded_sleeps, metrics=metrics)
        await client.fetch_with_retry("/players", {"id": 1})
        exported = metrics.export_metrics().decode()
        assert 'external_api_requests_total{endpoint="/players",status="500"} 1.0' in exported
        assert 'external_api_requests_total{endpoint="/players",status="200"} 1.0' in exported

    @pytest.mark.asyncio
    async def test_cleanup_keeps_injected_session_open(self, make_client):
        client, session = make_client([])
        await client.cleanup()
        assert session.closed is False


@pytest.mark.parametrize(
    "status,outcome",
    [(200, FetchOutcome.OK), (204, FetchOutcome.OK), (429, FetchOutcome.RATE_LIMITED),
     (404, FetchOutcome.FAILED), (503, FetchOutcome.FAILED)],
)
def test_fetch_outcome_from_status(status, outcome):
    assert FetchOutcome.from_status(status) is outcome
