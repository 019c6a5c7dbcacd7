"""
Aggregated API router for versioned endpoints.
"""

from fastapi import APIRouter

from src.api.endpoints import enrichment


api_router = APIRouter()

# Register endpoint routers here to keep create_fastapi_app clean
api_router.include_router(enrichment.router, tags=["enrichment"])
