import pytest

from src.core.config import APIConfig, ConfigurationError, Settings


def test_defaults_match_documented_limits():
    cfg = Settings(_env_file=None)
    assert cfg.api_requests_per_second == 5.0
    assert cfg.api_max_hourly_requests == 1000
    assert cfg.api_daily_call_limit == 3000
    assert cfg.api_emergency_threshold == 0.1
    assert cfg.enrichment_max_retries == 3
    assert cfg.enrichment_batch_size == 50
    assert cfg.cache_ttl_days == 7
    assert cfg.cache_max_entries == 10000


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("API_FOOTBALL_KEY", "from-env")
    monkeypatch.setenv("ENRICHMENT_BATCH_SIZE", "10")
    monkeypatch.setenv("API_EMERGENCY_THRESHOLD", "0.25")
    cfg = Settings(_env_file=None)
    assert cfg.api_football_key == "from-env"
    assert cfg.enrichment_batch_size == 10
    assert cfg.api_emergency_threshold == 0.25


def test_require_enrichment_config_lists_all_missing(monkeypatch):
    monkeypatch.delenv("API_FOOTBALL_KEY", raising=False)
    cfg = Settings(_env_file=None, database_url=None)
    with pytest.raises(ConfigurationError) as exc:
        cfg.require_enrichment_config()
    assert str(exc.value) == "Missing required configuration: API_FOOTBALL_KEY, DATABASE_URL"


def test_api_football_config(settings):
    cfg = APIConfig.api_football(settings)
    assert cfg.base_url == "https://v3.football.api-sports.io"
    assert cfg.headers["x-apisports-key"] == "test-key"
    assert cfg.endpoints["players"] == "/players"
    assert cfg.rate_limit == 5.0
