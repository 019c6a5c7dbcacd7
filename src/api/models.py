"""
API Models
Pydantic Models für API Requests und Responses
"""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field


class APIResponse(BaseModel):
    """Standard API Response Model"""

    success: bool
    data: Optional[Any] = None
    error: Optional[str] = None
    execution_time_ms: Optional[float] = None
    timestamp: datetime = Field(default_factory=datetime.now)


class EnrichRequest(BaseModel):
    """Request model for an enrichment run"""

    season: int = Field(..., ge=1900, le=2100)
    resume_from_id: Optional[str] = None
    use_cache: bool = True


class RetryRequest(BaseModel):
    """Request model for a retry run"""

    season: int = Field(..., ge=1900, le=2100)
    max_retries: int = Field(3, ge=1, le=10)
