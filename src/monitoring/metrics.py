"""
Prometheus Metrics für die Transfer Enrichment Pipeline

Eigene Registry pro Instanz, damit Tests und mehrere Apps im selben Prozess
sich nicht in die Quere kommen.
"""

import logging
from typing import Optional

from prometheus_client import (
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
    start_http_server,
)

from src.domain.models import QuotaStats


class EnrichmentMetrics:
    """Prometheus Metriken für Enrichment-Läufe und API-Zugriffe"""

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        self.logger = logging.getLogger("enrichment_metrics")
        self.registry = registry or CollectorRegistry()

        self.enrichment_attempts_total = Counter(
            "enrichment_attempts_total",
            "Enrichment attempts by outcome",
            ["outcome"],
            registry=self.registry,
        )
        self.external_api_requests_total = Counter(
            "external_api_requests_total",
            "Requests against the external sports-data API",
            ["endpoint", "status"],
            registry=self.registry,
        )
        self.external_api_request_duration = Histogram(
            "external_api_request_duration_seconds",
            "External API request duration in seconds",
            ["endpoint"],
            registry=self.registry,
        )
        self.cache_lookups_total = Counter(
            "player_cache_lookups_total",
            "Player cache lookups",
            ["result"],
            registry=self.registry,
        )
        self.quota_calls_remaining = Gauge(
            "api_daily_calls_remaining",
            "Remaining daily API calls tracked by the quota guard",
            registry=self.registry,
        )
        self.quota_emergency_mode = Gauge(
            "api_emergency_mode",
            "1 while the quota guard refuses calls",
            registry=self.registry,
        )
        self.run_duration = Histogram(
            "enrichment_run_duration_seconds",
            "Duration of enrichment and retry runs",
            ["kind", "status"],
            buckets=(1, 5, 30, 60, 300, 900, 1800, 3600, 7200),
            registry=self.registry,
        )

    def start_metrics_server(self, port: int = 8008):
        """Startet Prometheus Metrics HTTP Server"""
        start_http_server(port, registry=self.registry)
        self.logger.info(f"Prometheus metrics server started on port {port}")

    def record_attempt(self, outcome: str):
        self.enrichment_attempts_total.labels(outcome=outcome).inc()

    def record_api_request(self, endpoint: str, status: str, duration: float):
        self.external_api_requests_total.labels(endpoint=endpoint, status=status).inc()
        self.external_api_request_duration.labels(endpoint=endpoint).observe(duration)

    def record_cache_lookup(self, hit: bool):
        self.cache_lookups_total.labels(result="hit" if hit else "miss").inc()

    def update_quota(self, stats: QuotaStats):
        self.quota_calls_remaining.set(stats.calls_remaining)
        self.quota_emergency_mode.set(1 if stats.emergency_mode else 0)

    def record_run(self, kind: str, status: str, duration: float):
        self.run_duration.labels(kind=kind, status=status).observe(duration)

    def export_metrics(self) -> bytes:
        """Exportiert Metriken im Prometheus Format"""
        return generate_latest(self.registry)
