"""
Enrichment Package

Player Enrichment Service, Spieler-Cache, Pipeline-Orchestrierung und Runner.
"""

__all__: list[str] = []
