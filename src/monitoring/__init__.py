"""
Monitoring Package für die Transfer Enrichment Pipeline

Enthält die Prometheus Metriken für Enrichment-Läufe, API-Zugriffe und Cache.
"""

from .metrics import EnrichmentMetrics

__all__ = ["EnrichmentMetrics"]
