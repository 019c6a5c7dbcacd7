"""
API Dependencies
Dependency Injection für FastAPI
"""

from fastapi import Request

from src.enrichment.runner import EnrichmentRunner


async def get_enrichment_runner(request: Request) -> EnrichmentRunner:
    """Dependency für den Enrichment Runner (geteilt über App-Lebenszyklus)"""
    return request.app.state.runner
