"""
API Module
FastAPI Anwendung, Endpoints und Models
"""

from .dependencies import get_enrichment_runner
from .main import create_app, create_fastapi_app
from .models import APIResponse, EnrichRequest, RetryRequest

__all__ = [
    "create_app",
    "create_fastapi_app",
    "APIResponse",
    "EnrichRequest",
    "RetryRequest",
    "get_enrichment_runner",
]
