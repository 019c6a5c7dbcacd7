import pytest

from src.data_collection.collectors.base import RequestRateLimiter


class TestRequestRateLimiter:
    @pytest.fixture
    def limiter(self, fake_clock):
        return RequestRateLimiter(
            requests_per_second=5, max_requests_per_hour=10,
            clock=fake_clock, sleep=fake_clock.sleep,
        )

    @pytest.mark.asyncio
    async def test_first_request_does_not_wait(self, limiter, fake_clock):
        await limiter.wait_for_next_request()
        assert fake_clock.sleeps == []
        assert limiter.request_count == 1

    @pytest.mark.asyncio
    async def test_requests_are_paced(self, limiter, fake_clock):
        await limiter.wait_for_next_request()
        await limiter.wait_for_next_request()
        assert fake_clock.sleeps == [pytest.approx(0.2)]

    @pytest.mark.asyncio
    async def test_no_pacing_when_enough_time_passed(self, limiter, fake_clock):
        await limiter.wait_for_next_request()
        fake_clock.now += 1.0
        await limiter.wait_for_next_request()
        assert fake_clock.sleeps == []

    @pytest.mark.asyncio
    async def test_hourly_ceiling_blocks_until_window_ends(self, limiter, fake_clock):
        for _ in range(10):
            await limiter.wait_for_next_request()
        elapsed = fake_clock.now  # nine pacing sleeps of 0.2s
        assert elapsed == pytest.approx(1.8)

        await limiter.wait_for_next_request()

        hourly_wait = fake_clock.sleeps[-1]
        assert hourly_wait == pytest.approx(3600 - 1.8)
        assert hourly_wait >= 3598
        assert limiter.request_count == 1
        assert fake_clock.now >= 3600

    @pytest.mark.asyncio
    async def test_window_resets_after_an_hour(self, limiter, fake_clock):
        for _ in range(10):
            await limiter.wait_for_next_request()
        fake_clock.now += 3601
        sleeps_before = len(fake_clock.sleeps)
        await limiter.wait_for_next_request()
        assert len(fake_clock.sleeps) == sleeps_before
        assert limiter.request_count == 1

    @pytest.mark.asyncio
    async def test_get_stats(self, limiter, fake_clock):
        for _ in range(4):
            await limiter.wait_for_next_request()
        stats = limiter.get_stats()
        assert stats.requests_this_hour == 4
        assert stats.max_requests_per_hour == 10
        assert stats.hourly_utilization == 40.0
        assert stats.delay_between_requests == pytest.approx(0.2)
        assert 0 <= stats.hour_progress < 1

    def test_rejects_non_positive_rate(self):
        with pytest.raises(ValueError):
            RequestRateLimiter(requests_per_second=0)
