"""
Enrichment API Endpoints
POST startet einen Enrichment-Lauf, GET liefert Statistiken, PATCH wiederholt Fehlschläge
"""

import time
from typing import Any

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from src.api.dependencies import get_enrichment_runner
from src.api.models import APIResponse, EnrichRequest, RetryRequest
from src.enrichment.runner import EnrichmentRunner

router = APIRouter()


def _respond(result: dict[str, Any], start_time: float) -> JSONResponse:
    execution_time = (time.time() - start_time) * 1000
    data = {k: v for k, v in result.items() if k not in ("success", "error")}
    response = APIResponse(
        success=result["success"],
        data=data,
        error=result.get("error"),
        execution_time_ms=execution_time,
    )
    return JSONResponse(
        status_code=200 if response.success else 500,
        content=response.model_dump(mode="json"),
    )


@router.post("/enrichment/players", response_model=APIResponse)
async def start_enrichment(
    request: EnrichRequest,
    runner: EnrichmentRunner = Depends(get_enrichment_runner),
):
    """Enrich all open transfers of a season"""
    start_time = time.time()
    result = await runner.enrich(request.season, request.resume_from_id, request.use_cache)
    return _respond(result, start_time)


@router.get("/enrichment/players", response_model=APIResponse)
async def enrichment_stats(
    include_failed: bool = False,
    runner: EnrichmentRunner = Depends(get_enrichment_runner),
):
    """Enrichment statistics, optionally with the most recent failures"""
    start_time = time.time()
    result = await runner.stats(include_failed=include_failed)
    return _respond(result, start_time)


@router.patch("/enrichment/players", response_model=APIResponse)
async def retry_enrichment(
    request: RetryRequest,
    runner: EnrichmentRunner = Depends(get_enrichment_runner),
):
    """Retry failed transfers below the retry limit"""
    start_time = time.time()
    result = await runner.retry(request.season, request.max_retries)
    return _respond(result, start_time)


@router.get("/enrichment/quota", response_model=APIResponse)
async def quota(
    probe_api: bool = False,
    runner: EnrichmentRunner = Depends(get_enrichment_runner),
):
    """Local quota guard and rate limiter state"""
    start_time = time.time()
    result = await runner.quota_status(probe_api=probe_api)
    return _respond({"success": True, **result}, start_time)
